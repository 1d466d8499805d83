from datetime import datetime
from medpractice.extensions import db
from medpractice.utils.helpers import ValidationError, parse_datetime

APPOINTMENT_STATUSES = ('scheduled', 'confirmed', 'in_progress', 'completed', 'cancelled', 'no_show')
APPOINTMENT_TYPES = ('consultation', 'follow_up', 'exam', 'procedure', 'emergency', 'telemedicine')
APPOINTMENT_PRIORITIES = ('low', 'normal', 'high', 'urgent')
# Statuses that still block the doctor's agenda
BLOCKING_STATUSES = ('scheduled', 'confirmed', 'in_progress')


class Appointment(db.Model):
    """Model for storing appointment details between a doctor and a patient."""
    __tablename__ = 'appointments'

    id = db.Column(db.Integer, primary_key=True)

    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    # Appointment details
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)
    duration = db.Column(db.Integer)  # minutes
    status = db.Column(db.String(20), default='scheduled', index=True)
    type = db.Column(db.String(20), default='consultation')
    priority = db.Column(db.String(10), default='normal')
    location = db.Column(db.JSON)  # e.g. {'room': '3'} or {'online': True}
    reason = db.Column(db.Text)
    notes = db.Column(db.Text)
    confirmed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    cancellation_reason = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = db.relationship('Patient', back_populates='appointments')
    doctor = db.relationship('User', foreign_keys=[doctor_id], backref='doctor_appointments')
    creator = db.relationship('User', foreign_keys=[created_by])

    @classmethod
    def find_conflict(cls, doctor_id, start_time, end_time, exclude_id=None):
        """Returns an active appointment of the doctor overlapping [start_time, end_time)."""
        query = cls.query.filter(
            cls.doctor_id == doctor_id,
            cls.status.in_(BLOCKING_STATUSES),
            cls.start_time < end_time,
            cls.end_time > start_time,
        )
        if exclude_id:
            query = query.filter(cls.id != exclude_id)
        return query.first()

    def apply_payload(self, data, creating=False):
        if creating:
            missing = [f for f in ('patient_id', 'doctor_id', 'start_time', 'end_time') if not data.get(f)]
            if missing:
                raise ValidationError(f"Missing required fields: {', '.join(missing)}")
            self.patient_id = data['patient_id']
            self.doctor_id = data['doctor_id']

        if 'start_time' in data:
            self.start_time = parse_datetime(data['start_time'])
        if 'end_time' in data:
            self.end_time = parse_datetime(data['end_time'])
        if self.start_time and self.end_time:
            if self.end_time <= self.start_time:
                raise ValidationError('End time must be after start time')
            self.duration = int((self.end_time - self.start_time).total_seconds() // 60)

        if 'status' in data:
            if data['status'] not in APPOINTMENT_STATUSES:
                raise ValidationError('Invalid status')
            self.status = data['status']
        if 'type' in data:
            if data['type'] not in APPOINTMENT_TYPES:
                raise ValidationError(f"type must be one of: {', '.join(APPOINTMENT_TYPES)}")
            self.type = data['type']
        if 'priority' in data:
            if data['priority'] not in APPOINTMENT_PRIORITIES:
                raise ValidationError('Invalid priority')
            self.priority = data['priority']
        for field in ('location', 'reason', 'notes'):
            if field in data:
                setattr(self, field, data[field])

    def to_dict(self):
        return {
            'id': self.id,
            'patient_id': self.patient_id,
            'patient_name': self.patient.name if self.patient else None,
            'doctor_id': self.doctor_id,
            'doctor_name': self.doctor.name if self.doctor else None,
            'created_by': self.created_by,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration': self.duration,
            'status': self.status,
            'type': self.type,
            'priority': self.priority,
            'location': self.location,
            'reason': self.reason,
            'notes': self.notes,
            'confirmed_at': self.confirmed_at.isoformat() if self.confirmed_at else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
            'cancellation_reason': self.cancellation_reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
