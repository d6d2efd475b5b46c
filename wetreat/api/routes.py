# /wetreat/api/routes.py

from . import api_bp
from wetreat.extensions import limiter
from wetreat.utils.decorators import audit_log, require_role
from .controllers import auth_controller, emr_controller, doctor_controller


# --- Authentication Endpoints ---
@api_bp.route('/auth/login', methods=['POST'])
@limiter.limit("10 per minute")
@audit_log("USER_LOGIN", "authentication")
def login():
    return auth_controller.login_user()


# --- EMR Endpoints ---
@api_bp.route('/emr/submit', methods=['POST'])
@limiter.limit("20 per hour")
@audit_log("EMR_SUBMISSION", "emrs")
def submit_emr():
    return emr_controller.submit_emr()

@api_bp.route('/emrs', methods=['GET'])
@audit_log("VIEW_EMRS", "emrs")
def get_emrs():
    return emr_controller.list_emrs()

@api_bp.route('/emrs/<string:emr_id>', methods=['PUT'])
@audit_log("UPDATE_EMR", "emrs")
def update_emr(emr_id):
    return emr_controller.update_emr(emr_id)

@api_bp.route('/emrs/<string:emr_id>/generate-pdf', methods=['GET'])
@audit_log("GENERATE_EMR_PDF", "emrs")
def generate_pdf(emr_id):
    return emr_controller.generate_pdf(emr_id)


# --- Doctor Endpoints ---
@api_bp.route('/doctors', methods=['GET'])
@audit_log("VIEW_ALL_DOCTORS", "doctors")
def get_doctors():
    return doctor_controller.get_all_doctors()

@api_bp.route('/users/doctor', methods=['POST'])
@audit_log("DOCTOR_CREATION", "doctors")
@require_role('admin')
def create_doctor():
    return doctor_controller.create_doctor()

@api_bp.route('/doctor-profiles/<string:user_id>', methods=['PUT'])
@audit_log("UPDATE_DOCTOR_PROFILE", "doctors")
@require_role('admin')
def update_doctor_profile(user_id):
    return doctor_controller.update_doctor_profile(user_id)

@api_bp.route('/users/doctor/<string:user_id>', methods=['DELETE'])
@audit_log("DOCTOR_DELETION", "doctors")
@require_role('admin')
def delete_doctor(user_id):
    return doctor_controller.delete_doctor(user_id)
