# /wetreat/services/report_renderer.py
"""
Consultation report rendering.

build_report() turns an EMR into the ordered list of report blocks; the
block order is the section order of the printed document. render_pdf()
lays the blocks out with ReportLab and returns the finished PDF bytes.
"""
import html
import io
import logging
import os
from collections import namedtuple
from datetime import date, datetime

import requests
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer

from wetreat.utils.errors import UpstreamAssetError
from wetreat.utils.json_fields import decode_record_list

logger = logging.getLogger(__name__)

NOT_AVAILABLE = 'N/A'
TAG_SEPARATOR = ', '
SIGNATURE_RULE = '_________________________'
LOGO_SIZE = 80
MARGIN = 50

# Bundled DejaVu faces cover the Latin Extended letters of every label pack
FONTS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'fonts')
DEFAULT_FONT_PATH = os.path.join(FONTS_DIR, 'DejaVuSans.ttf')
DEFAULT_BOLD_FONT_PATH = os.path.join(FONTS_DIR, 'DejaVuSans-Bold.ttf')

# kind is one of: title, heading, field, list, timestamp, signature
ReportBlock = namedtuple('ReportBlock', ['key', 'kind', 'label', 'lines'])


# -------------------------------
# Formatting helpers
# -------------------------------
def _get(record, name, default=None):
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def text_or_na(value):
    """Stored text verbatim, or the N/A placeholder when absent or blank."""
    if value is None:
        return NOT_AVAILABLE
    if isinstance(value, str):
        return value if value.strip() else NOT_AVAILABLE
    return str(value)


def format_date(value):
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return text_or_na(value)


def format_document(document):
    """'name: url (password: pw)' for one medical-document record, in every language."""
    if not isinstance(document, dict):
        return text_or_na(document)
    return '{}: {} (password: {})'.format(
        text_or_na(document.get('name')),
        text_or_na(document.get('url')),
        text_or_na(document.get('password')),
    )


def format_consultation_type(tag):
    """
    A tag is either a plain string ('video') or an object such as
    {'type': 'video', 'platform': 'Zoom'} -> 'video (platform: Zoom)'.
    """
    if isinstance(tag, str):
        return tag.strip()
    if not isinstance(tag, dict):
        return ''

    head_key = next((k for k in ('type', 'name', 'label') if tag.get(k)), None)
    head = str(tag[head_key]) if head_key else ''
    details = [
        f'{key}: {value}'
        for key, value in tag.items()
        if key != head_key and value not in (None, '', [], {}) and not isinstance(value, (dict, list))
    ]
    if head and details:
        return f"{head} ({', '.join(details)})"
    return head or ', '.join(details)


def format_timestamp(value):
    return value.strftime('%Y-%m-%d %H:%M UTC')


# -------------------------------
# Report structure
# -------------------------------
def build_report(emr, doctor_name, labels, generated_at=None):
    """
    Returns the report as an ordered list of ReportBlock.

    ``emr`` may be an Emr model or a dict of its columns. Semi-structured
    fields are decoded defensively; every free-text field falls back to
    N/A.
    """
    generated_at = generated_at or datetime.utcnow()

    documents = [format_document(d) for d in decode_record_list(_get(emr, 'medical_documents'))]
    tags = [format_consultation_type(t) for t in decode_record_list(_get(emr, 'consultation_type'))]
    tags = [t for t in tags if t]

    signer = doctor_name if doctor_name and doctor_name.strip() else labels['physician']

    return [
        ReportBlock('title', 'title', labels['title'], []),
        ReportBlock('patient_data', 'heading', labels['patientData'], [
            f"{labels['patientName']}: {text_or_na(_get(emr, 'patient_name'))}",
            f"{labels['dob']}: {format_date(_get(emr, 'patient_dob'))}",
        ]),
        ReportBlock('symptoms', 'field', labels['symptoms'], [text_or_na(_get(emr, 'symptoms'))]),
        ReportBlock('medical_history', 'field', labels['medHistory'], [text_or_na(_get(emr, 'medical_history'))]),
        ReportBlock('current_medication', 'field', labels['medication'], [text_or_na(_get(emr, 'current_medication'))]),
        ReportBlock('medical_documents', 'list', labels['medicalDocuments'], documents or [NOT_AVAILABLE]),
        ReportBlock('physician_report', 'heading', labels['physicianReport'], []),
        ReportBlock('diagnosis', 'field', labels['diagnosis'], [text_or_na(_get(emr, 'doctor_diagnosis'))]),
        ReportBlock('findings', 'field', labels['reportFindings'], [text_or_na(_get(emr, 'doctor_report'))]),
        ReportBlock('recommendations', 'field', labels['recommendations'], [text_or_na(_get(emr, 'doctor_recommendations'))]),
        ReportBlock('consultation_type', 'field', labels['consultationType'], [TAG_SEPARATOR.join(tags) or NOT_AVAILABLE]),
        ReportBlock('generated_on', 'timestamp', None, [f"{labels['generatedOn']}: {format_timestamp(generated_at)}"]),
        ReportBlock('signature', 'signature', None, [SIGNATURE_RULE, f"{labels['signature']}: {signer}"]),
    ]


# -------------------------------
# Branding
# -------------------------------
def _download_logo(url, timeout):
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise UpstreamAssetError(f'Logo download failed: {e}') from e

    data = response.content
    try:
        ImageReader(io.BytesIO(data)).getSize()
    except Exception as e:
        raise UpstreamAssetError(f'Logo could not be decoded: {e}') from e
    return data


def fetch_logo(url, timeout=5):
    """Best-effort logo download. Returns image bytes or None, never raises."""
    if not url:
        return None
    try:
        return _download_logo(url, timeout)
    except UpstreamAssetError as e:
        logger.warning("Rendering report without logo: %s", e.message)
        return None


# -------------------------------
# PDF layout
# -------------------------------
def _load_ttf(path):
    """Registers one TTF under its file stem; returns the font name or None."""
    if not path:
        return None
    name = os.path.splitext(os.path.basename(path))[0]
    try:
        if name not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont(name, path))
    except Exception as e:
        logger.warning("Could not register report font %s: %s", path, e)
        return None
    return name


def _register_font(font_path, bold_font_path=None):
    """Returns the (regular, bold) font names, falling back to Helvetica."""
    regular = _load_ttf(font_path)
    if regular is None:
        return 'Helvetica', 'Helvetica-Bold'
    return regular, _load_ttf(bold_font_path) or regular


def _para_text(text):
    return '<br/>'.join(html.escape(line) for line in str(text).splitlines()) or '&nbsp;'


def _styles(font, bold):
    base = getSampleStyleSheet()
    normal = ParagraphStyle('ReportNormal', parent=base['Normal'], fontName=font, fontSize=11, leading=14)
    return {
        'title': ParagraphStyle('ReportTitle', parent=normal, fontName=bold, fontSize=20, leading=24,
                                alignment=TA_CENTER, spaceAfter=18),
        'heading': ParagraphStyle('ReportHeading', parent=normal, fontName=bold, fontSize=14, leading=18,
                                  textColor=colors.HexColor('#0f172a'), spaceBefore=12, spaceAfter=6),
        'label': ParagraphStyle('ReportLabel', parent=normal, fontName=bold, fontSize=12, leading=15, spaceBefore=6),
        'body': normal,
        'small': ParagraphStyle('ReportSmall', parent=normal, fontSize=10, leading=12, spaceBefore=24),
        'signature': ParagraphStyle('ReportSignature', parent=normal, fontSize=10, leading=14, alignment=TA_RIGHT),
    }


def _flowables(block, styles):
    if block.kind == 'title':
        return [Paragraph(_para_text(block.label), styles['title'])]
    if block.kind == 'heading':
        story = [Paragraph(f'<u>{_para_text(block.label)}</u>', styles['heading'])]
        story.extend(Paragraph(_para_text(line), styles['body']) for line in block.lines)
        return story
    if block.kind in ('field', 'list'):
        story = [Paragraph(f'{_para_text(block.label)}:', styles['label'])]
        bullet = '• ' if block.kind == 'list' and block.lines != [NOT_AVAILABLE] else ''
        story.extend(Paragraph(bullet + _para_text(line), styles['body']) for line in block.lines)
        return story
    if block.kind == 'timestamp':
        return [Paragraph(_para_text(line), styles['small']) for line in block.lines]
    if block.kind == 'signature':
        return [Spacer(1, 12)] + [Paragraph(_para_text(line), styles['signature']) for line in block.lines]
    raise ValueError(f'Unknown report block kind: {block.kind}')


def render_pdf(blocks, logo=None, font_path=DEFAULT_FONT_PATH, bold_font_path=DEFAULT_BOLD_FONT_PATH,
               title=None):
    """Lays out report blocks on A4 pages and returns the PDF bytes."""
    font, bold = _register_font(font_path, bold_font_path)
    styles = _styles(font, bold)

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=title or '',
    )

    story = []
    if logo:
        story.append(Image(io.BytesIO(logo), width=LOGO_SIZE, height=LOGO_SIZE, kind='proportional'))
        story.append(Spacer(1, 18))
    for block in blocks:
        story.extend(_flowables(block, styles))

    doc.build(story)
    return buf.getvalue()
