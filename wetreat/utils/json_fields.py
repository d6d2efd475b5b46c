# /wetreat/utils/json_fields.py
import json

from wetreat.utils.errors import ValidationError


def decode_record_list(value):
    """
    Normalizes a semi-structured list column into a Python list.

    Accepts a native list, a JSON string holding a list, or None. Anything
    that does not decode to a list (bad JSON, a JSON object, a number)
    yields an empty list; decoding never raises.
    """
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, bytes):
        try:
            value = value.decode('utf-8')
        except UnicodeDecodeError:
            return []
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            decoded = json.loads(value)
        except ValueError:
            return []
        return decoded if isinstance(decoded, list) else []
    return []


def json_object(req):
    """The request's JSON body as a dict. An absent body is empty; any other shape is rejected."""
    data = req.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data


def clean_text(key, value):
    """Free-text payload fields are strings or null; anything else is rejected."""
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"'{key}' must be text")
    return value
