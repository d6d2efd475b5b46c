# /wetreat/services/localization.py
"""Report language selection and label packs."""
import json
import logging
import os
from functools import lru_cache

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ('en', 'de', 'ro', 'fr')
FALLBACK_LANGUAGE = 'en'

LANGUAGE_HEADER = 'X-Language'
LANGUAGE_COOKIE = 'i18next'
LANGUAGE_PARAMS = ('lng', 'lang')


def normalize_language(value):
    """'fr-CA' -> 'fr'. Returns None for empty or non-string input."""
    if not isinstance(value, str):
        return None
    value = value.strip().lower().replace('_', '-')
    if not value:
        return None
    return value.split('-', 1)[0]


def resolve_language(body=None, header=None, query=None, cookie=None, detected=None,
                     supported=SUPPORTED_LANGUAGES, fallback=FALLBACK_LANGUAGE):
    """
    Picks one language code from request signals.

    The first signal present in precedence order (body, header, query,
    cookie, detected) is the candidate; if it is not supported the fallback
    is used. Never raises.
    """
    for signal in (body, header, query, cookie, detected):
        candidate = normalize_language(signal)
        if candidate is None:
            continue
        return candidate if candidate in supported else fallback
    return fallback


def _first_param(mapping):
    if not mapping:
        return None
    for name in LANGUAGE_PARAMS:
        value = mapping.get(name)
        if value:
            return value
    return None


def language_from_request(req, supported=SUPPORTED_LANGUAGES, fallback=FALLBACK_LANGUAGE):
    """Collects the language signals of a Flask request and resolves them."""
    body = req.get_json(silent=True) if req.is_json else None
    return resolve_language(
        body=_first_param(body) if isinstance(body, dict) else None,
        header=req.headers.get(LANGUAGE_HEADER),
        query=_first_param(req.args),
        cookie=req.cookies.get(LANGUAGE_COOKIE),
        detected=req.accept_languages.best_match(supported),
        supported=supported,
        fallback=fallback,
    )


def _read_pack(path):
    try:
        with open(path, encoding='utf-8') as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        logger.warning("Could not load label pack %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Label pack %s is not a JSON object", path)
        return {}
    return data


@lru_cache(maxsize=32)
def load_labels(language, locales_dir):
    """
    Returns the label pack for ``language``. Keys missing from a non-English
    pack fall back to the English labels.
    """
    labels = dict(_read_pack(os.path.join(locales_dir, f'{FALLBACK_LANGUAGE}.json')))
    if language != FALLBACK_LANGUAGE:
        labels.update(_read_pack(os.path.join(locales_dir, f'{language}.json')))
    return labels
