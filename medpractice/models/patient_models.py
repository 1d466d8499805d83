from datetime import datetime
from medpractice.extensions import db
from medpractice.utils.encryption_util import encryptor
from medpractice.utils.helpers import (
    ValidationError, validate_cpf, format_cpf, is_valid_email, parse_date,
    calculate_age, only_digits
)

GENDERS = ('male', 'female', 'other', 'prefer_not_to_say')
BLOOD_TYPES = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')
PATIENT_STATUSES = ('active', 'inactive', 'deceased')
LIST_FIELDS = ('allergies', 'medications', 'pre_existing_conditions', 'family_history')
JSON_FIELDS = ('emergency_contact', 'address', 'insurance_info')


class Patient(db.Model):
    """Patient record. The CPF is stored encrypted with a hashed lookup column."""
    __tablename__ = 'patients'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, index=True)

    # --- Encrypted identifier ---
    cpf = db.Column(db.String(512), nullable=False)
    cpf_hash = db.Column(db.String(64), unique=True, nullable=False, index=True)

    rg = db.Column(db.String(20), unique=True)
    birth_date = db.Column(db.Date, nullable=False)
    gender = db.Column(db.String(20), nullable=False)
    phone = db.Column(db.String(20))
    emergency_contact = db.Column(db.JSON)
    address = db.Column(db.JSON)
    blood_type = db.Column(db.String(3))
    allergies = db.Column(db.JSON, default=list)
    medications = db.Column(db.JSON, default=list)
    pre_existing_conditions = db.Column(db.JSON, default=list)
    family_history = db.Column(db.JSON, default=list)
    insurance_info = db.Column(db.JSON)
    primary_care_physician = db.Column(db.Integer, db.ForeignKey('users.id'))
    status = db.Column(db.String(20), default='active')
    notes = db.Column(db.Text)
    privacy_consent = db.Column(db.Boolean, default=False)
    data_consent_date = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime)

    physician = db.relationship('User', foreign_keys=[primary_care_physician], backref='patients')
    documents = db.relationship('Document', back_populates='patient', lazy='dynamic')
    medical_notes = db.relationship('Note', back_populates='patient', lazy='dynamic')
    appointments = db.relationship('Appointment', back_populates='patient', lazy='dynamic')
    prescriptions = db.relationship('Prescription', back_populates='patient', lazy='dynamic')
    certificates = db.relationship('MedicalCertificate', back_populates='patient', lazy='dynamic')

    @classmethod
    def active(cls):
        """Query over patients that have not been soft-deleted."""
        return cls.query.filter(cls.deleted_at.is_(None))

    @classmethod
    def find_by_cpf(cls, cpf):
        return cls.query.filter_by(cpf_hash=encryptor.lookup_hash(validate_cpf(cpf))).first()

    def set_cpf(self, cpf):
        digits = validate_cpf(cpf)
        self.cpf = encryptor.encrypt(digits)
        self.cpf_hash = encryptor.lookup_hash(digits)

    def get_cpf(self):
        return encryptor.decrypt(self.cpf)

    def apply_payload(self, data, creating=False):
        """Validates and copies request data onto the record."""
        if creating:
            missing = [f for f in ('name', 'cpf', 'birth_date', 'gender') if not data.get(f)]
            if missing:
                raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        if 'name' in data:
            name = (data['name'] or '').strip()
            if not 2 <= len(name) <= 100:
                raise ValidationError('Name must have between 2 and 100 characters')
            self.name = name
        if 'email' in data:
            if data['email'] and not is_valid_email(data['email']):
                raise ValidationError('Invalid email')
            self.email = data['email'] or None
        if 'cpf' in data:
            self.set_cpf(data['cpf'])
        if 'birth_date' in data:
            self.birth_date = parse_date(data['birth_date'])
        if 'gender' in data:
            if data['gender'] not in GENDERS:
                raise ValidationError(f"Gender must be one of: {', '.join(GENDERS)}")
            self.gender = data['gender']
        if 'blood_type' in data:
            if data['blood_type'] and data['blood_type'] not in BLOOD_TYPES:
                raise ValidationError('Invalid blood type')
            self.blood_type = data['blood_type'] or None
        if 'status' in data:
            if data['status'] not in PATIENT_STATUSES:
                raise ValidationError('Invalid status')
            self.status = data['status']
        if 'phone' in data:
            self.phone = only_digits(data['phone']) or None

        for field in LIST_FIELDS:
            if field in data:
                value = data[field] or []
                if not isinstance(value, list):
                    raise ValidationError(f'{field} must be a list')
                setattr(self, field, value)
        for field in JSON_FIELDS + ('rg', 'notes', 'primary_care_physician'):
            if field in data:
                setattr(self, field, data[field])

        if 'privacy_consent' in data:
            consent = bool(data['privacy_consent'])
            if consent and not self.privacy_consent:
                self.data_consent_date = datetime.utcnow()
            self.privacy_consent = consent

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'cpf': format_cpf(self.get_cpf()),
            'rg': self.rg,
            'birth_date': self.birth_date.isoformat() if self.birth_date else None,
            'age': calculate_age(self.birth_date) if self.birth_date else None,
            'gender': self.gender,
            'phone': self.phone,
            'emergency_contact': self.emergency_contact,
            'address': self.address,
            'blood_type': self.blood_type,
            'allergies': self.allergies or [],
            'medications': self.medications or [],
            'pre_existing_conditions': self.pre_existing_conditions or [],
            'family_history': self.family_history or [],
            'insurance_info': self.insurance_info,
            'primary_care_physician': self.primary_care_physician,
            'status': self.status,
            'notes': self.notes,
            'privacy_consent': self.privacy_consent,
            'data_consent_date': self.data_consent_date.isoformat() if self.data_consent_date else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<Patient {self.id}: {self.name}>'
