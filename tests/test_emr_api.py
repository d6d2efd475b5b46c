"""
EMR submission, listing, role-gated updates and report download over HTTP.
"""
import io
from unittest.mock import patch

import pytest
import requests
from pypdf import PdfReader

from conftest import fetch_emr
from wetreat.extensions import db
from wetreat.models.emr_models import Emr
from wetreat.models.user_models import User


class TestSubmitEmr:

    def test_submit_creates_record(self, client, emr_payload):
        resp = client.post('/api/emr/submit', json=emr_payload)
        assert resp.status_code == 201
        data = resp.get_json()
        assert data['emrId']

        emr = fetch_emr(data['emrId'])
        assert emr.status == 'submitted_by_patient'
        assert emr.is_payment_confirmed is False
        assert emr.patient_dob.isoformat() == '1990-01-15'
        assert len(emr.medical_documents) == 2
        assert emr.patient_notes == 'Available weekday mornings'

    def test_patient_secret_is_hashed(self, client, emr_payload):
        emr_id = client.post('/api/emr/submit', json=emr_payload).get_json()['emrId']
        emr = fetch_emr(emr_id)
        assert emr.patient_password != 'patient-secret'
        assert emr.check_patient_secret('patient-secret')

    @pytest.mark.parametrize('missing', ['email', 'password', 'name'])
    def test_required_fields(self, client, emr_payload, missing):
        del emr_payload[missing]
        resp = client.post('/api/emr/submit', json=emr_payload)
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'VALIDATION_ERROR'
        assert Emr.query.count() == 0

    @pytest.mark.parametrize('field', ['email', 'password', 'name', 'symptoms', 'medicalHistory', 'medication', 'notes'])
    @pytest.mark.parametrize('value', [{'a': 1}, ['x'], 42])
    def test_non_text_fields_rejected(self, client, emr_payload, field, value):
        emr_payload[field] = value
        resp = client.post('/api/emr/submit', json=emr_payload)
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'VALIDATION_ERROR'
        assert Emr.query.count() == 0

    def test_body_must_be_an_object(self, client):
        resp = client.post('/api/emr/submit', json=['jane@example.com'])
        assert resp.status_code == 400

    def test_invalid_date_of_birth(self, client, emr_payload):
        emr_payload['dob'] = '15/01/1990'
        assert client.post('/api/emr/submit', json=emr_payload).status_code == 400

    def test_documents_alias_and_string_form(self, client, emr_payload):
        del emr_payload['medicalDocuments']
        emr_payload['documents'] = '[{"name": "CT", "url": "https://x/ct", "password": "c"}]'
        emr_id = client.post('/api/emr/submit', json=emr_payload).get_json()['emrId']
        assert fetch_emr(emr_id).medical_documents == [{'name': 'CT', 'url': 'https://x/ct', 'password': 'c'}]

    def test_malformed_documents_stored_as_empty_list(self, client, emr_payload):
        emr_payload['medicalDocuments'] = 'not a list'
        emr_id = client.post('/api/emr/submit', json=emr_payload).get_json()['emrId']
        assert fetch_emr(emr_id).medical_documents == []


class TestListEmrs:

    def test_admin_sees_all(self, client, make_emr, doctor_id):
        first = make_emr()
        second = make_emr(assigned_doctor_id=doctor_id)
        resp = client.get('/api/emrs?userRole=admin')
        assert resp.status_code == 200
        assert {row['id'] for row in resp.get_json()} == {first, second}

    def test_doctor_sees_only_assigned(self, client, make_emr, doctor_id):
        make_emr()
        mine = make_emr(assigned_doctor_id=doctor_id)
        resp = client.get(f'/api/emrs?userRole=doctor&userId={doctor_id}')
        assert resp.status_code == 200
        rows = resp.get_json()
        assert [row['id'] for row in rows] == [mine]
        assert rows[0]['doctor_name'] == 'Dr. John Smith'

    def test_doctor_without_user_id(self, client):
        assert client.get('/api/emrs?userRole=doctor').status_code == 400

    @pytest.mark.parametrize('role', ['patient', '', 'root'])
    def test_other_roles_forbidden(self, client, make_emr, role):
        make_emr()
        resp = client.get(f'/api/emrs?userRole={role}')
        assert resp.status_code == 403

    def test_patient_secret_never_returned(self, client, make_emr):
        make_emr()
        row = client.get('/api/emrs?userRole=admin').get_json()[0]
        assert 'patient_password' not in row

    def test_malformed_json_fields_decode_to_empty_lists(self, client, make_emr):
        make_emr(medical_documents='{broken', consultation_type=None)
        row = client.get('/api/emrs?userRole=admin').get_json()[0]
        assert row['medical_documents'] == []
        assert row['consultation_type'] == []


class TestUpdateEmr:

    def _put(self, client, emr_id, role, updates, **extra):
        return client.put(f'/api/emrs/{emr_id}', json={'role': role, 'updates': updates, **extra})

    def test_admin_assigns_doctor(self, client, make_emr, doctor_id):
        emr_id = make_emr()
        resp = self._put(client, emr_id, 'admin', {'assignedDoctorId': doctor_id})
        assert resp.status_code == 200
        assert resp.get_json()['emr']['status'] == 'assigned'
        emr = fetch_emr(emr_id)
        assert emr.assigned_doctor_id == doctor_id
        assert emr.status == 'assigned'

    def test_admin_confirms_payment_and_assigns_at_once(self, client, make_emr, doctor_id):
        emr_id = make_emr()
        resp = self._put(client, emr_id, 'admin', {'assignedDoctorId': doctor_id, 'isPaymentConfirmed': True})
        assert resp.status_code == 200
        emr = fetch_emr(emr_id)
        assert emr.is_payment_confirmed is True
        assert emr.status == 'payment_confirmed'

    def test_partial_update_leaves_other_fields_untouched(self, client, make_emr, doctor_id):
        emr_id = make_emr(assigned_doctor_id=doctor_id, admin_notes='first call done', status='assigned')
        self._put(client, emr_id, 'admin', {'isPaymentConfirmed': True})
        emr = fetch_emr(emr_id)
        assert emr.assigned_doctor_id == doctor_id
        assert emr.admin_notes == 'first call done'
        assert emr.symptoms == 'Chest pain on exertion'

    def test_withdrawing_payment_moves_status_back(self, client, make_emr, doctor_id):
        emr_id = make_emr(assigned_doctor_id=doctor_id, status='payment_confirmed', is_payment_confirmed=True)
        resp = self._put(client, emr_id, 'admin', {'isPaymentConfirmed': False})
        assert resp.status_code == 200
        emr = fetch_emr(emr_id)
        assert emr.is_payment_confirmed is False
        assert emr.status == 'assigned'

    def test_unassigning_moves_status_back(self, client, make_emr, doctor_id):
        emr_id = make_emr(assigned_doctor_id=doctor_id, status='assigned')
        self._put(client, emr_id, 'admin', {'assignedDoctorId': None})
        emr = fetch_emr(emr_id)
        assert emr.assigned_doctor_id is None
        assert emr.status == 'submitted_by_patient'

    def test_text_update_must_be_a_string(self, client, make_emr):
        emr_id = make_emr()
        assert self._put(client, emr_id, 'admin', {'adminNotes': {'a': 1}}).status_code == 400

    def test_update_bumps_updated_at(self, client, make_emr):
        emr_id = make_emr()
        before = fetch_emr(emr_id).updated_at
        self._put(client, emr_id, 'admin', {'adminNotes': 'called'})
        assert fetch_emr(emr_id).updated_at >= before

    def test_doctor_status_is_forced_to_report_complete(self, client, make_emr, doctor_id):
        emr_id = make_emr(assigned_doctor_id=doctor_id, status='payment_confirmed', is_payment_confirmed=True)
        resp = self._put(client, emr_id, 'doctor', {
            'doctorDiagnosis': 'Stable angina',
            'doctorReport': 'ST depression on exercise',
            'doctorRecommendations': 'Aspirin',
            'doctorPrivateNotes': 'Check lipids next time',
            'consultationType': [{'type': 'video', 'platform': 'Zoom'}],
            'status': 'assigned',
        }, userId=doctor_id)
        assert resp.status_code == 200
        emr = fetch_emr(emr_id)
        assert emr.status == 'report_complete'
        assert emr.doctor_diagnosis == 'Stable angina'
        assert emr.consultation_type == [{'type': 'video', 'platform': 'Zoom'}]

    def test_doctor_status_kept_when_override_disabled(self, app, client, make_emr):
        app.config['DOCTOR_STATUS_OVERRIDE'] = False
        emr_id = make_emr(status='assigned')
        self._put(client, emr_id, 'doctor', {'doctorReport': 'draft'})
        assert fetch_emr(emr_id).status == 'assigned'

    def test_unowned_field_rejected_in_strict_mode(self, client, make_emr):
        emr_id = make_emr()
        resp = self._put(client, emr_id, 'doctor', {'isPaymentConfirmed': True, 'doctorReport': 'x'})
        assert resp.status_code == 400
        emr = fetch_emr(emr_id)
        assert emr.is_payment_confirmed is False
        assert emr.doctor_report is None

    def test_unowned_field_dropped_in_permissive_mode(self, app, client, make_emr):
        app.config['EMR_STRICT_UPDATES'] = False
        emr_id = make_emr()
        resp = self._put(client, emr_id, 'doctor', {'isPaymentConfirmed': True, 'doctorReport': 'x'})
        assert resp.status_code == 200
        emr = fetch_emr(emr_id)
        assert emr.is_payment_confirmed is False
        assert emr.doctor_report == 'x'

    def test_patient_fields_need_full_record_edit(self, app, client, make_emr):
        emr_id = make_emr()
        assert self._put(client, emr_id, 'doctor', {'symptoms': 'rewritten'}).status_code == 400

        app.config['DOCTOR_FULL_RECORD_EDIT'] = True
        assert self._put(client, emr_id, 'doctor', {'symptoms': 'rewritten'}).status_code == 200
        assert fetch_emr(emr_id).symptoms == 'rewritten'

    def test_empty_updates_is_a_no_op(self, client, make_emr):
        emr_id = make_emr()
        before = fetch_emr(emr_id).updated_at
        resp = self._put(client, emr_id, 'admin', {})
        assert resp.status_code == 200
        assert resp.get_json()['updated'] is False
        emr = fetch_emr(emr_id)
        assert emr.updated_at == before
        assert emr.status == 'submitted_by_patient'

    def test_missing_updates(self, client, make_emr):
        emr_id = make_emr()
        resp = client.put(f'/api/emrs/{emr_id}', json={'role': 'admin'})
        assert resp.status_code == 400

    @pytest.mark.parametrize('role', ['patient', None, 'superadmin'])
    def test_unknown_role_forbidden_without_mutation(self, client, make_emr, role):
        emr_id = make_emr()
        before = fetch_emr(emr_id).updated_at
        resp = self._put(client, emr_id, role, {'status': 'closed', 'adminNotes': 'x'})
        assert resp.status_code == 403
        emr = fetch_emr(emr_id)
        assert emr.status == 'submitted_by_patient'
        assert emr.admin_notes is None
        assert emr.updated_at == before

    def test_unknown_emr(self, client):
        resp = self._put(client, 'does-not-exist', 'admin', {'adminNotes': 'x'})
        assert resp.status_code == 404
        assert resp.get_json()['code'] == 'NOT_FOUND'

    def test_unknown_status_rejected(self, client, make_emr):
        emr_id = make_emr()
        assert self._put(client, emr_id, 'admin', {'status': 'done'}).status_code == 400
        assert fetch_emr(emr_id).status == 'submitted_by_patient'

    def test_assignee_must_be_a_doctor(self, client, make_emr, admin_id):
        emr_id = make_emr()
        assert self._put(client, emr_id, 'admin', {'assignedDoctorId': admin_id}).status_code == 400
        assert self._put(client, emr_id, 'admin', {'assignedDoctorId': 'nobody'}).status_code == 400
        assert fetch_emr(emr_id).assigned_doctor_id is None

    def test_doctor_cannot_update_someone_elses_emr(self, client, make_emr, doctor_id):
        emr_id = make_emr(assigned_doctor_id=doctor_id)
        resp = self._put(client, emr_id, 'doctor', {'doctorReport': 'x'}, userId='another-doctor')
        assert resp.status_code == 403

    def test_closed_record_cannot_be_reopened(self, client, make_emr):
        emr_id = make_emr(status='closed')
        assert self._put(client, emr_id, 'admin', {'status': 'assigned'}).status_code == 400
        assert fetch_emr(emr_id).status == 'closed'


class TestGeneratePdf:

    def test_unknown_emr(self, client):
        assert client.get('/api/emrs/missing/generate-pdf').status_code == 404

    def test_payment_gate_blocks_unconfirmed(self, client, make_emr):
        emr_id = make_emr()
        resp = client.get(f'/api/emrs/{emr_id}/generate-pdf')
        assert resp.status_code == 403
        assert resp.mimetype == 'application/json'
        assert resp.get_json()['code'] == 'PAYMENT_NOT_CONFIRMED'

    def test_payment_gate_opens_after_confirmation(self, client, make_emr):
        emr_id = make_emr()
        assert client.get(f'/api/emrs/{emr_id}/generate-pdf').status_code == 403

        client.put(f'/api/emrs/{emr_id}', json={'role': 'admin', 'updates': {'isPaymentConfirmed': True}})
        resp = client.get(f'/api/emrs/{emr_id}/generate-pdf')
        assert resp.status_code == 200
        assert resp.mimetype == 'application/pdf'
        assert resp.data.startswith(b'%PDF')

    def test_ungated_policy_renders_unconfirmed(self, app, client, make_emr):
        app.config['PDF_REQUIRE_PAYMENT'] = False
        emr_id = make_emr()
        resp = client.get(f'/api/emrs/{emr_id}/generate-pdf')
        assert resp.status_code == 200
        assert resp.data.startswith(b'%PDF')

    def test_filename_embeds_id_and_language(self, client, make_emr):
        emr_id = make_emr(is_payment_confirmed=True)
        resp = client.get(f'/api/emrs/{emr_id}/generate-pdf?lng=fr')
        assert resp.status_code == 200
        disposition = resp.headers['Content-Disposition']
        assert disposition.startswith('attachment')
        assert f'Report_{emr_id}_fr.pdf' in disposition

    def test_unsupported_language_falls_back_to_english(self, client, make_emr):
        emr_id = make_emr(is_payment_confirmed=True)
        resp = client.get(f'/api/emrs/{emr_id}/generate-pdf?lng=xx')
        assert resp.status_code == 200
        assert f'Report_{emr_id}_en.pdf' in resp.headers['Content-Disposition']

    def test_header_override(self, client, make_emr):
        emr_id = make_emr(is_payment_confirmed=True)
        resp = client.get(f'/api/emrs/{emr_id}/generate-pdf?lng=fr', headers={'X-Language': 'de'})
        assert f'Report_{emr_id}_de.pdf' in resp.headers['Content-Disposition']

    def test_logo_failure_does_not_abort_rendering(self, app, client, make_emr, doctor_id):
        app.config['REPORT_LOGO_URL'] = 'https://logo.example.com/logo.png'
        emr_id = make_emr(is_payment_confirmed=True, assigned_doctor_id=doctor_id)
        with patch('wetreat.services.report_renderer.requests.get',
                   side_effect=requests.ConnectionError('offline')) as get:
            resp = client.get(f'/api/emrs/{emr_id}/generate-pdf')
        get.assert_called_once()
        assert resp.status_code == 200
        assert resp.data.startswith(b'%PDF')

    def test_render_failure_returns_json_error(self, client, make_emr):
        emr_id = make_emr(is_payment_confirmed=True)
        with patch('wetreat.api.controllers.emr_controller.render_pdf', side_effect=RuntimeError('boom')):
            resp = client.get(f'/api/emrs/{emr_id}/generate-pdf')
        assert resp.status_code == 500
        assert resp.mimetype == 'application/json'
        assert 'boom' not in resp.get_data(as_text=True)

    def test_report_reflects_submitted_documents(self, app, client, emr_payload):
        from wetreat.services.localization import load_labels
        from wetreat.services.report_renderer import build_report

        emr_id = client.post('/api/emr/submit', json=emr_payload).get_json()['emrId']
        emr = fetch_emr(emr_id)
        blocks = build_report(emr, emr.doctor_name, load_labels('en', app.config['LOCALES_DIR']))
        documents = next(b for b in blocks if b.key == 'medical_documents')
        assert documents.lines == [
            'ECG: https://files.example.com/ecg.pdf (password: ecg123)',
            'Blood panel: https://files.example.com/blood.pdf (password: b1)',
        ]

    def test_doctor_deleted_report_signs_generically(self, client, make_emr, doctor_id, admin_headers):
        emr_id = make_emr(is_payment_confirmed=True, assigned_doctor_id=doctor_id)
        client.delete(f'/api/users/doctor/{doctor_id}', headers=admin_headers)
        emr = fetch_emr(emr_id)
        assert emr.assigned_doctor_id is None
        assert emr.doctor_name is None
        assert db.session.get(User, doctor_id) is None
        assert client.get(f'/api/emrs/{emr_id}/generate-pdf').status_code == 200

    def test_romanian_report_keeps_diacritics(self, client, make_emr, doctor_id):
        emr_id = make_emr(is_payment_confirmed=True, assigned_doctor_id=doctor_id)
        resp = client.get(f'/api/emrs/{emr_id}/generate-pdf?lng=ro')
        assert resp.status_code == 200
        text = '\n'.join(page.extract_text() for page in PdfReader(io.BytesIO(resp.data)).pages)
        assert 'Raport de Consultație Medicală' in text
        assert 'Semnătura Medicului: Dr. John Smith' in text
