import uuid
from datetime import datetime
from wetreat.extensions import db, bcrypt

ROLE_ADMIN = 'admin'
ROLE_DOCTOR = 'doctor'
ROLES = (ROLE_ADMIN, ROLE_DOCTOR)


def _new_id():
    return str(uuid.uuid4())


def _money(value):
    return float(value) if value is not None else None


class User(db.Model):
    """Staff account: an administrator or a doctor."""
    __tablename__ = 'users'
    __table_args__ = (
        db.CheckConstraint("role IN ('admin', 'doctor')", name='ck_users_role'),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # --- Relationships ---
    doctor_profile = db.relationship(
        'DoctorProfile',
        backref='user',
        uselist=False,
        cascade='all, delete-orphan'
    )

    @property
    def is_doctor(self):
        return self.role == ROLE_DOCTOR

    def set_password(self, password: str) -> None:
        """Hashes and sets the user's password."""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password: str) -> bool:
        if not self.password_hash or not password:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
        }


class DoctorProfile(db.Model):
    """Display and fee metadata for a doctor user."""
    __tablename__ = 'doctor_profiles'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    full_name = db.Column(db.String(255), nullable=False)
    photo_url = db.Column(db.String(1024))
    specialty = db.Column(db.String(255))
    expertise_area = db.Column(db.Text)
    current_affiliation = db.Column(db.String(255))
    linkedin_url = db.Column(db.String(1024))
    fee_office = db.Column(db.Numeric(10, 2))
    fee_home = db.Column(db.Numeric(10, 2))
    fee_video = db.Column(db.Numeric(10, 2))
    fee_phone = db.Column(db.Numeric(10, 2))
    fee_review = db.Column(db.Numeric(10, 2))

    # camelCase request key -> column
    EDITABLE_FIELDS = {
        'fullName': 'full_name',
        'photoUrl': 'photo_url',
        'specialty': 'specialty',
        'expertiseArea': 'expertise_area',
        'currentAffiliation': 'current_affiliation',
        'linkedinUrl': 'linkedin_url',
        'feeOffice': 'fee_office',
        'feeHome': 'fee_home',
        'feeVideo': 'fee_video',
        'feePhone': 'fee_phone',
        'feeReview': 'fee_review',
    }
    FEE_COLUMNS = ('fee_office', 'fee_home', 'fee_video', 'fee_phone', 'fee_review')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'full_name': self.full_name,
            'photo_url': self.photo_url,
            'specialty': self.specialty,
            'expertise_area': self.expertise_area,
            'current_affiliation': self.current_affiliation,
            'linkedin_url': self.linkedin_url,
            'fee_office': _money(self.fee_office),
            'fee_home': _money(self.fee_home),
            'fee_video': _money(self.fee_video),
            'fee_phone': _money(self.fee_phone),
            'fee_review': _money(self.fee_review),
        }
