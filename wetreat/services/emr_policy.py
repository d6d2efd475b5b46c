# /wetreat/services/emr_policy.py
"""
Role-gated partial updates of an EMR.

filter_updates() decides which requested fields a role may write and
validates their values. next_status() computes the resulting lifecycle
status. plan_update() combines both into the column assignments for a
single UPDATE statement.
"""
from datetime import datetime

from wetreat.models.emr_models import EmrStatus, TERMINAL_STATUSES
from wetreat.models.user_models import ROLE_ADMIN, ROLE_DOCTOR
from wetreat.utils.errors import ForbiddenError, ValidationError
from wetreat.utils.json_fields import clean_text, decode_record_list

# camelCase request key -> column
ADMIN_FIELDS = {
    'assignedDoctorId': 'assigned_doctor_id',
    'isPaymentConfirmed': 'is_payment_confirmed',
    'adminNotes': 'admin_notes',
    'status': 'status',
}

DOCTOR_FIELDS = {
    'doctorDiagnosis': 'doctor_diagnosis',
    'doctorReport': 'doctor_report',
    'doctorRecommendations': 'doctor_recommendations',
    'doctorPrivateNotes': 'doctor_private_notes',
    'consultationType': 'consultation_type',
    'status': 'status',
}

# Patient-authored fields a doctor may rewrite when full-record edit is enabled
DOCTOR_RECORD_FIELDS = {
    'symptoms': 'symptoms',
    'medicalHistory': 'medical_history',
    'currentMedication': 'current_medication',
    'medicalDocuments': 'medical_documents',
}

JSON_COLUMNS = frozenset({'medical_documents', 'consultation_type'})


def owned_fields(role, full_record_edit=False):
    """Returns the request-key -> column map a role may write."""
    if role == ROLE_ADMIN:
        return dict(ADMIN_FIELDS)
    if role == ROLE_DOCTOR:
        fields = dict(DOCTOR_FIELDS)
        if full_record_edit:
            fields.update(DOCTOR_RECORD_FIELDS)
        return fields
    raise ForbiddenError('Invalid role for update.')


def _clean_value(column, key, value):
    if column in JSON_COLUMNS:
        return decode_record_list(value)
    if column == 'is_payment_confirmed':
        if not isinstance(value, bool):
            raise ValidationError(f"'{key}' must be a boolean")
        return value
    if column == 'status':
        status = EmrStatus.parse(value)
        if status is None:
            allowed = ', '.join(s.value for s in EmrStatus)
            raise ValidationError(f"Unknown status '{value}'. Allowed: {allowed}")
        return status
    if column == 'assigned_doctor_id':
        if value in (None, ''):
            return None
        if not isinstance(value, str):
            raise ValidationError(f"'{key}' must be a user id")
        return value
    return clean_text(key, value)


def filter_updates(role, updates, strict=True, full_record_edit=False):
    """
    Maps a sparse update payload onto the columns the role owns.

    Only keys present in ``updates`` are candidates. Keys the role does not
    own raise ValidationError when ``strict`` is set and are dropped
    otherwise. Returns a column -> cleaned value dict (status values are
    EmrStatus members).
    """
    fields = owned_fields(role, full_record_edit)
    if not isinstance(updates, dict):
        raise ValidationError("'updates' must be an object")

    unowned = sorted(key for key in updates if key not in fields)
    if unowned and strict:
        raise ValidationError(f"Fields not editable by {role}: {', '.join(unowned)}")

    assignments = {}
    for key, value in updates.items():
        column = fields.get(key)
        if column is None:
            continue
        assignments[column] = _clean_value(column, key, value)
    return assignments


def _explicit_transition(current, requested):
    if current == EmrStatus.CLOSED and requested != EmrStatus.CLOSED:
        raise ValidationError('A closed EMR cannot change status')
    if current == EmrStatus.REPORT_COMPLETE and requested not in TERMINAL_STATUSES:
        raise ValidationError('A completed report can only be closed')
    return requested


def _without_payment(assignments, current_doctor_id):
    """Where an EMR falls back to once its payment confirmation is withdrawn."""
    doctor_id = assignments.get('assigned_doctor_id', current_doctor_id)
    return EmrStatus.ASSIGNED if doctor_id else EmrStatus.SUBMITTED_BY_PATIENT


def next_status(current, role, assignments, doctor_status_override=True, current_doctor_id=None):
    """
    Computes the status an EMR moves to after ``assignments`` are applied.

    ``current`` is the stored status (string or EmrStatus). An unknown
    stored value is treated as the initial state. ``current_doctor_id`` is
    the stored assignee, consulted when payment confirmation is withdrawn.
    """
    current = EmrStatus.parse(current) or EmrStatus.SUBMITTED_BY_PATIENT
    requested = assignments.get('status')

    if role == ROLE_DOCTOR:
        if doctor_status_override:
            if current == EmrStatus.CLOSED:
                return current
            return EmrStatus.REPORT_COMPLETE
        if requested is not None:
            return _explicit_transition(current, requested)
        return current

    if role != ROLE_ADMIN:
        raise ForbiddenError('Invalid role for update.')

    if requested is not None:
        return _explicit_transition(current, requested)
    if current in TERMINAL_STATUSES:
        return current

    payment = assignments.get('is_payment_confirmed')
    if payment is True:
        return EmrStatus.PAYMENT_CONFIRMED
    if payment is False and current == EmrStatus.PAYMENT_CONFIRMED:
        return _without_payment(assignments, current_doctor_id)

    if 'assigned_doctor_id' in assignments:
        if assignments['assigned_doctor_id'] and current == EmrStatus.SUBMITTED_BY_PATIENT:
            return EmrStatus.ASSIGNED
        if not assignments['assigned_doctor_id'] and current == EmrStatus.ASSIGNED:
            return EmrStatus.SUBMITTED_BY_PATIENT
    return current


def plan_update(current_status, role, updates, strict=True, full_record_edit=False,
                doctor_status_override=True, now=None, current_doctor_id=None):
    """
    Returns the column assignments for one EMR update, or an empty dict
    when nothing is to be written. A non-empty plan always carries the
    resulting status and an ``updated_at`` touch.
    """
    assignments = filter_updates(role, updates, strict=strict, full_record_edit=full_record_edit)
    if not assignments:
        return {}

    status = next_status(current_status, role, assignments, doctor_status_override, current_doctor_id)
    assignments['status'] = status.value
    assignments['updated_at'] = now or datetime.utcnow()
    return assignments
