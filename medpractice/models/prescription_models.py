# /medpractice/models/prescription_models.py
from datetime import datetime, timedelta
from medpractice.extensions import db
from medpractice.utils.helpers import ValidationError, generate_unique_code, parse_datetime

PRESCRIPTION_STATUSES = ('active', 'dispensed', 'cancelled', 'expired')
DEFAULT_VALIDITY_DAYS = 30


class Prescription(db.Model):
    """Medical prescription issued by a doctor, verifiable by pharmacies."""
    __tablename__ = 'prescriptions'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'))

    prescription_number = db.Column(db.String(20), unique=True, nullable=False, index=True)
    medications = db.Column(db.JSON, nullable=False)
    diagnosis = db.Column(db.Text)
    instructions = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='active', index=True)
    valid_until = db.Column(db.DateTime, nullable=False)
    digital_signature = db.Column(db.Text)
    verification_code = db.Column(db.String(20), nullable=False)
    pharmacy_dispensed = db.Column(db.String(255))
    dispensed_at = db.Column(db.DateTime)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = db.relationship('Patient', back_populates='prescriptions')
    doctor = db.relationship('User', foreign_keys=[doctor_id], backref='issued_prescriptions')
    appointment = db.relationship('Appointment', backref='prescriptions')

    @staticmethod
    def next_number(now=None):
        """RX-<year>-<6-digit sequence> based on the running prescription count."""
        now = now or datetime.utcnow()
        sequence = Prescription.query.count() + 1
        number = f'RX-{now.year}-{sequence:06d}'
        # Skip forward if a number was freed up by a deleted row
        while Prescription.query.filter_by(prescription_number=number).first():
            sequence += 1
            number = f'RX-{now.year}-{sequence:06d}'
        return number

    @classmethod
    def issue(cls, patient_id, doctor_id, data):
        """Builds a new prescription with number, verification code and validity."""
        medications = data.get('medications')
        if not medications or not isinstance(medications, list):
            raise ValidationError('At least one medication is required')

        valid_until = parse_datetime(data.get('valid_until'))
        if valid_until is None:
            valid_until = datetime.utcnow() + timedelta(days=DEFAULT_VALIDITY_DAYS)

        return cls(
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_id=data.get('appointment_id'),
            prescription_number=cls.next_number(),
            verification_code=generate_unique_code(13),
            medications=medications,
            diagnosis=data.get('diagnosis'),
            instructions=data.get('instructions'),
            valid_until=valid_until,
            notes=data.get('notes'),
        )

    @property
    def is_expired(self):
        return self.valid_until < datetime.utcnow()

    def append_note(self, label, text):
        self.notes = f"{self.notes or ''}\n\n{label}: {text}"

    def to_dict(self, include_code=True):
        data = {
            'id': self.id,
            'prescription_number': self.prescription_number,
            'patient_id': self.patient_id,
            'patient_name': self.patient.name if self.patient else None,
            'doctor_id': self.doctor_id,
            'doctor_name': self.doctor.name if self.doctor else None,
            'doctor_crm': self.doctor.crm if self.doctor else None,
            'appointment_id': self.appointment_id,
            'medications': self.medications,
            'diagnosis': self.diagnosis,
            'instructions': self.instructions,
            'status': self.status,
            'valid_until': self.valid_until.isoformat() if self.valid_until else None,
            'is_expired': self.is_expired if self.valid_until else False,
            'pharmacy_dispensed': self.pharmacy_dispensed,
            'dispensed_at': self.dispensed_at.isoformat() if self.dispensed_at else None,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_code:
            data['verification_code'] = self.verification_code
        return data
