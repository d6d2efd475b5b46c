import enum
import uuid
from datetime import datetime
from wetreat.extensions import db, bcrypt
from wetreat.utils.json_fields import decode_record_list


class EmrStatus(str, enum.Enum):
    SUBMITTED_BY_PATIENT = 'submitted_by_patient'
    ASSIGNED = 'assigned'
    PAYMENT_CONFIRMED = 'payment_confirmed'
    REPORT_COMPLETE = 'report_complete'
    CLOSED = 'closed'

    @classmethod
    def parse(cls, value):
        """Returns the member for a raw status string, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


TERMINAL_STATUSES = frozenset({EmrStatus.REPORT_COMPLETE, EmrStatus.CLOSED})


class Emr(db.Model):
    """One patient consultation request and the doctor's findings."""
    __tablename__ = 'emrs'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # --- Patient-authored ---
    patient_email = db.Column(db.String(255), nullable=False)
    patient_password = db.Column(db.String(255), nullable=False)  # bcrypt hash
    patient_name = db.Column(db.String(255))
    patient_dob = db.Column(db.Date)
    symptoms = db.Column(db.Text)
    medical_history = db.Column(db.Text)
    current_medication = db.Column(db.Text)
    medical_documents = db.Column(db.JSON)
    patient_notes = db.Column(db.Text)

    # --- Admin-owned ---
    assigned_doctor_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), index=True)
    is_payment_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    admin_notes = db.Column(db.Text)
    status = db.Column(db.String(50), nullable=False, default=EmrStatus.SUBMITTED_BY_PATIENT.value)

    # --- Doctor-owned ---
    consultation_type = db.Column(db.JSON)
    doctor_diagnosis = db.Column(db.Text)
    doctor_report = db.Column(db.Text)
    doctor_recommendations = db.Column(db.Text)
    doctor_private_notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    assigned_doctor = db.relationship('User', foreign_keys=[assigned_doctor_id])

    @property
    def doctor_name(self):
        doctor = self.assigned_doctor
        if doctor is None or doctor.doctor_profile is None:
            return None
        return doctor.doctor_profile.full_name

    def set_patient_secret(self, secret: str) -> None:
        self.patient_password = bcrypt.generate_password_hash(secret).decode('utf-8')

    def check_patient_secret(self, secret: str) -> bool:
        if not self.patient_password or not secret:
            return False
        return bcrypt.check_password_hash(self.patient_password, secret)

    def to_dict(self):
        """Serializes the EMR for API responses. The patient secret is never included."""
        return {
            'id': self.id,
            'patient_email': self.patient_email,
            'patient_name': self.patient_name,
            'patient_dob': self.patient_dob.isoformat() if self.patient_dob else None,
            'symptoms': self.symptoms,
            'medical_history': self.medical_history,
            'current_medication': self.current_medication,
            'medical_documents': decode_record_list(self.medical_documents),
            'patient_notes': self.patient_notes,
            'assigned_doctor_id': self.assigned_doctor_id,
            'doctor_name': self.doctor_name,
            'is_payment_confirmed': bool(self.is_payment_confirmed),
            'admin_notes': self.admin_notes,
            'status': self.status,
            'consultation_type': decode_record_list(self.consultation_type),
            'doctor_diagnosis': self.doctor_diagnosis,
            'doctor_report': self.doctor_report,
            'doctor_recommendations': self.doctor_recommendations,
            'doctor_private_notes': self.doctor_private_notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
