from flask import request, jsonify
from flask_jwt_extended import create_access_token
from wetreat.models.user_models import User
from wetreat.utils.errors import AuthenticationError, ValidationError
from wetreat.utils.json_fields import json_object


def login_user():
    """Logs in an administrator or doctor."""
    data = json_object(request)
    email = data.get('email')
    password = data.get('password')
    if not email or not password:
        raise ValidationError('Email and password are required.')
    if not isinstance(email, str) or not isinstance(password, str):
        raise ValidationError('Email and password must be strings.')

    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user or not user.check_password(password):
        raise AuthenticationError('Invalid email or password')

    profile = user.doctor_profile.to_dict() if user.is_doctor and user.doctor_profile else None

    # Identity is the user id; the role travels as a claim for role-gated routes
    access_token = create_access_token(identity=user.id, additional_claims={'role': user.role})

    return jsonify({
        'message': 'Login successful',
        'user': user.to_dict(),
        'profile': profile,
        'access_token': access_token,
    }), 200
