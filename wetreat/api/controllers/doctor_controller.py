from datetime import datetime
from decimal import Decimal, InvalidOperation
from flask import request, jsonify, current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from wetreat.extensions import db
from wetreat.models.emr_models import Emr
from wetreat.models.user_models import User, DoctorProfile, ROLE_DOCTOR
from wetreat.utils.errors import ConflictError, NotFoundError, ValidationError
from wetreat.utils.json_fields import clean_text, json_object


MAX_FEE = Decimal('99999999.99')


def _clean_fee(key, value):
    if value in (None, ''):
        return None
    try:
        fee = Decimal(str(value))
        if not fee.is_finite():
            raise ValidationError(f"'{key}' must be a number")
        fee = fee.quantize(Decimal('0.01'))
    except InvalidOperation:
        raise ValidationError(f"'{key}' must be a number")
    if fee < 0:
        raise ValidationError(f"'{key}' must not be negative")
    if fee > MAX_FEE:
        raise ValidationError(f"'{key}' is too large")
    return fee


def _clean_profile_fields(data):
    """Maps camelCase profile keys onto DoctorProfile columns."""
    values = {}
    for key, column in DoctorProfile.EDITABLE_FIELDS.items():
        if key not in data:
            continue
        if column in DoctorProfile.FEE_COLUMNS:
            values[column] = _clean_fee(key, data[key])
        else:
            values[column] = clean_text(key, data[key])
    return values


def _serialize_doctor(user, profile):
    return {
        'user_id': user.id,
        'email': user.email,
        'role': user.role,
        **{k: v for k, v in profile.to_dict().items() if k not in ('id', 'user_id')},
        'profile_id': profile.id,
    }


def get_all_doctors():
    doctors = (
        db.session.query(User, DoctorProfile)
        .join(DoctorProfile, DoctorProfile.user_id == User.id)
        .filter(User.role == ROLE_DOCTOR)
        .order_by(DoctorProfile.full_name)
        .all()
    )
    return jsonify({'doctors': [_serialize_doctor(user, profile) for user, profile in doctors]}), 200


def create_doctor():
    """Creates a doctor user and its profile in one transaction."""
    data = json_object(request)
    profile_data = data.get('profile') or {}
    if not isinstance(profile_data, dict):
        raise ValidationError("'profile' must be an object")

    if not data.get('email') or not data.get('password') or not profile_data.get('fullName'):
        raise ValidationError('Email, password, and full name are required.')
    if not isinstance(data['email'], str) or not isinstance(data['password'], str):
        raise ValidationError('Email and password must be strings.')

    email = data['email'].strip().lower()
    if User.query.filter_by(email=email).first():
        raise ConflictError('Email already exists')

    new_user = User(email=email, role=ROLE_DOCTOR)
    new_user.set_password(data['password'])
    new_user.doctor_profile = DoctorProfile(**_clean_profile_fields(profile_data))

    try:
        db.session.add(new_user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Email already exists')

    current_app.logger.info(f"Doctor {new_user.id} created")
    return jsonify({'message': 'Doctor created successfully', 'userId': new_user.id}), 201


def update_doctor_profile(user_id):
    profile = DoctorProfile.query.filter_by(user_id=user_id).first()
    if not profile:
        raise NotFoundError('Doctor profile not found')

    data = json_object(request)
    values = _clean_profile_fields(data)
    if 'full_name' in values and not values['full_name']:
        raise ValidationError('Full name cannot be empty.')

    for column, value in values.items():
        setattr(profile, column, value)
    db.session.commit()

    return jsonify({'message': 'Doctor profile updated successfully', 'profile': profile.to_dict()}), 200


def delete_doctor(user_id):
    """Deletes a doctor and its profile; their EMRs become unassigned."""
    user = db.session.get(User, user_id)
    if not user or not user.is_doctor:
        raise NotFoundError('Doctor not found')

    db.session.execute(
        update(Emr).where(Emr.assigned_doctor_id == user_id).values(assigned_doctor_id=None, updated_at=datetime.utcnow())
    )
    db.session.delete(user)
    db.session.commit()

    current_app.logger.info(f"Doctor {user_id} deleted")
    return jsonify({'message': 'Doctor deleted successfully'}), 200
