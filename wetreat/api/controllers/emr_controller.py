import io
from datetime import date
from flask import request, jsonify, current_app, send_file
from sqlalchemy import update
from wetreat.extensions import db
from wetreat.models.emr_models import Emr
from wetreat.models.user_models import User, ROLE_ADMIN, ROLE_DOCTOR, ROLES
from wetreat.services.emr_policy import plan_update
from wetreat.services.localization import language_from_request, load_labels
from wetreat.services.report_renderer import build_report, fetch_logo, render_pdf
from wetreat.utils.errors import (
    AppError, ForbiddenError, NotFoundError, PaymentNotConfirmedError, ValidationError
)
from wetreat.utils.json_fields import clean_text, decode_record_list, json_object

SUBMISSION_TEXT_FIELDS = ('email', 'password', 'name', 'symptoms', 'medicalHistory', 'medication', 'notes')


def _with_doctor():
    """EMR query with the assigned doctor's profile joined in."""
    return Emr.query.options(
        db.joinedload(Emr.assigned_doctor).joinedload(User.doctor_profile)
    )


def _parse_dob(value):
    if value in (None, ''):
        return None
    if not isinstance(value, str):
        raise ValidationError('Date of birth must be a YYYY-MM-DD string.')
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise ValidationError('Date of birth must be a YYYY-MM-DD string.')


def submit_emr():
    """Stores a patient's consultation request."""
    data = json_object(request)

    required_fields = ['email', 'password', 'name']
    if any(not data.get(field) for field in required_fields):
        raise ValidationError('Email, password, and name are required.')

    text = {key: clean_text(key, data.get(key)) for key in SUBMISSION_TEXT_FIELDS}
    documents = data.get('medicalDocuments', data.get('documents'))

    emr = Emr(
        patient_email=text['email'].strip(),
        patient_name=text['name'],
        patient_dob=_parse_dob(data.get('dob')),
        symptoms=text['symptoms'],
        medical_history=text['medicalHistory'],
        current_medication=text['medication'],
        medical_documents=decode_record_list(documents),
        patient_notes=text['notes'],
    )
    emr.set_patient_secret(data['password'])

    db.session.add(emr)
    db.session.commit()
    current_app.logger.info(f"EMR {emr.id} submitted")
    return jsonify({
        'message': 'EMR submitted successfully. An admin will contact you shortly.',
        'emrId': emr.id
    }), 201


def list_emrs():
    """Admins see every EMR, doctors only the ones assigned to them."""
    user_id = request.args.get('userId')
    user_role = request.args.get('userRole')

    query = _with_doctor()
    if user_role == ROLE_ADMIN:
        pass
    elif user_role == ROLE_DOCTOR:
        if not user_id:
            raise ValidationError('userId is required for doctors.')
        query = query.filter(Emr.assigned_doctor_id == user_id)
    else:
        raise ForbiddenError('Forbidden')

    emrs = query.order_by(Emr.created_at.desc()).all()
    return jsonify([emr.to_dict() for emr in emrs]), 200


def _check_assignee(assignments):
    doctor_id = assignments.get('assigned_doctor_id')
    if doctor_id is None:
        return
    doctor = db.session.get(User, doctor_id)
    if doctor is None or not doctor.is_doctor:
        raise ValidationError('assignedDoctorId must reference a doctor.')


def update_emr(emr_id):
    """Applies a role-gated partial update and the resulting status change."""
    data = json_object(request)
    role = data.get('role')
    updates = data.get('updates')

    if role not in ROLES:
        raise ForbiddenError('Invalid role for update.')
    if not isinstance(updates, dict):
        raise ValidationError('No updates provided.')

    emr = db.session.get(Emr, emr_id)
    if emr is None:
        raise NotFoundError('EMR not found.')

    user_id = data.get('userId')
    if role == ROLE_DOCTOR and user_id and emr.assigned_doctor_id != user_id:
        raise ForbiddenError('EMR is not assigned to this doctor.')

    assignments = plan_update(
        emr.status,
        role,
        updates,
        strict=current_app.config['EMR_STRICT_UPDATES'],
        full_record_edit=current_app.config['DOCTOR_FULL_RECORD_EDIT'],
        doctor_status_override=current_app.config['DOCTOR_STATUS_OVERRIDE'],
        current_doctor_id=emr.assigned_doctor_id,
    )
    if not assignments:
        return jsonify({'message': 'No changes to apply', 'updated': False}), 200

    if 'assigned_doctor_id' in assignments:
        _check_assignee(assignments)

    result = db.session.execute(
        update(Emr).where(Emr.id == emr_id).values(**assignments)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise NotFoundError('EMR not found.')
    db.session.commit()

    current_app.logger.info(f"EMR {emr_id} updated by {role}: {sorted(assignments)}")
    return jsonify({
        'message': 'EMR updated successfully',
        'updated': True,
        'emr': db.session.get(Emr, emr_id).to_dict()
    }), 200


def generate_pdf(emr_id):
    """Renders the consultation report and sends it as a PDF attachment."""
    config = current_app.config
    language = language_from_request(
        request,
        supported=config['SUPPORTED_LANGUAGES'],
        fallback=config['DEFAULT_LANGUAGE'],
    )

    emr = _with_doctor().filter(Emr.id == emr_id).first()
    if emr is None:
        raise NotFoundError('EMR not found.')
    if config['PDF_REQUIRE_PAYMENT'] and not emr.is_payment_confirmed:
        raise PaymentNotConfirmedError()

    labels = load_labels(language, config['LOCALES_DIR'])
    logo = fetch_logo(config['REPORT_LOGO_URL'], config['REPORT_LOGO_TIMEOUT'])
    blocks = build_report(emr, emr.doctor_name, labels)

    # The document is built completely before the response starts
    try:
        pdf = render_pdf(blocks, logo=logo, font_path=config['REPORT_FONT_PATH'],
                         bold_font_path=config['REPORT_BOLD_FONT_PATH'], title=labels['title'])
    except Exception as e:
        current_app.logger.exception(f"PDF generation failed for EMR {emr_id}: {e}")
        raise AppError('Server error generating PDF.', code='PDF_GENERATION_FAILED', http_status=500)

    return send_file(
        io.BytesIO(pdf),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f'Report_{emr.id}_{language}.pdf'
    )
