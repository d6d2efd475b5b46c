"""
Pytest configuration and shared fixtures.

Every test gets a fresh application in the testing configuration backed
by an in-memory SQLite store, seeded with the administrator and the demo
doctor.
"""
import base64
from datetime import date

import pytest

from wetreat import create_app
from wetreat.commands import DEMO_DOCTOR, seed_defaults
from wetreat.extensions import db
from wetreat.models.emr_models import Emr
from wetreat.models.user_models import User

# 1x1 transparent PNG
PNG_PIXEL = base64.b64decode(
    'iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=='
)


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        seed_defaults()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_id(app):
    return User.query.filter_by(email=app.config['ADMIN_EMAIL']).first().id


@pytest.fixture
def doctor_id(app):
    return User.query.filter_by(email=DEMO_DOCTOR['email']).first().id


@pytest.fixture
def admin_headers(app, client):
    resp = client.post('/api/auth/login', json={
        'email': app.config['ADMIN_EMAIL'],
        'password': app.config['ADMIN_PASSWORD'],
    })
    assert resp.status_code == 200
    return {'Authorization': f"Bearer {resp.get_json()['access_token']}"}


@pytest.fixture
def doctor_headers(client):
    resp = client.post('/api/auth/login', json={
        'email': DEMO_DOCTOR['email'],
        'password': DEMO_DOCTOR['password'],
    })
    assert resp.status_code == 200
    return {'Authorization': f"Bearer {resp.get_json()['access_token']}"}


@pytest.fixture
def make_emr(app):
    """Factory storing an EMR directly and returning its id."""
    def _make_emr(**overrides):
        values = {
            'patient_email': 'jane@example.com',
            'patient_name': 'Jane Doe',
            'patient_dob': date(1990, 1, 15),
            'symptoms': 'Chest pain on exertion',
            'medical_history': 'Hypertension',
            'current_medication': 'Lisinopril 10mg',
            'medical_documents': [
                {'name': 'ECG', 'url': 'https://files.example.com/ecg.pdf', 'password': 'ecg123'},
            ],
        }
        values.update(overrides)
        emr = Emr(**values)
        emr.set_patient_secret('patient-secret')
        db.session.add(emr)
        db.session.commit()
        return emr.id
    return _make_emr


@pytest.fixture
def emr_payload():
    return {
        'email': 'jane@example.com',
        'password': 'patient-secret',
        'name': 'Jane Doe',
        'dob': '1990-01-15',
        'symptoms': 'Chest pain on exertion',
        'medicalHistory': 'Hypertension',
        'medication': 'Lisinopril 10mg',
        'medicalDocuments': [
            {'name': 'ECG', 'url': 'https://files.example.com/ecg.pdf', 'password': 'ecg123'},
            {'name': 'Blood panel', 'url': 'https://files.example.com/blood.pdf', 'password': 'b1'},
        ],
        'notes': 'Available weekday mornings',
    }


def fetch_emr(emr_id):
    """Reads an EMR bypassing the identity map of the test's session."""
    db.session.expire_all()
    return db.session.get(Emr, emr_id)
