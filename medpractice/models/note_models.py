# /medpractice/models/note_models.py
from datetime import datetime
from medpractice.extensions import db
from medpractice.utils.helpers import ValidationError, parse_datetime

NOTE_TYPES = (
    'consultation', 'examination', 'prescription', 'procedure', 'follow_up',
    'emergency', 'general', 'lab_result', 'imaging', 'surgery'
)
NOTE_PRIORITIES = ('low', 'normal', 'high', 'urgent')
NOTE_STATUSES = ('draft', 'active', 'completed', 'archived')
LIST_FIELDS = ('tags', 'symptoms', 'diagnosis', 'medications', 'related_notes', 'attachments')
DICT_FIELDS = ('treatment_plan', 'vital_signs')


class Note(db.Model):
    """Clinical note written by a staff member about a patient."""
    __tablename__ = 'notes'

    id = db.Column(db.Integer, primary_key=True)

    # Foreign keys
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=True, index=True)

    # Note metadata
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    note_type = db.Column(db.String(20), index=True)
    priority = db.Column(db.String(10), default='normal')
    status = db.Column(db.String(20), default='active')

    tags = db.Column(db.JSON, default=list)
    symptoms = db.Column(db.JSON, default=list)
    diagnosis = db.Column(db.JSON, default=list)
    treatment_plan = db.Column(db.JSON, default=dict)
    medications = db.Column(db.JSON, default=list)
    vital_signs = db.Column(db.JSON, default=dict)
    related_notes = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list)
    is_confidential = db.Column(db.Boolean, default=False)
    follow_up_required = db.Column(db.Boolean, default=False)
    follow_up_date = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime)

    # Relationships
    patient = db.relationship('Patient', back_populates='medical_notes')
    user = db.relationship('User', foreign_keys=[user_id], backref='authored_notes')
    appointment = db.relationship('Appointment', backref='appointment_notes')

    @classmethod
    def active(cls):
        return cls.query.filter(cls.deleted_at.is_(None))

    def apply_payload(self, data, creating=False):
        """Validates and copies request data onto the note."""
        if creating:
            missing = [f for f in ('patient_id', 'title', 'content', 'note_type') if not data.get(f)]
            if missing:
                raise ValidationError(f"Missing required fields: {', '.join(missing)}")
            self.patient_id = data['patient_id']
            self.appointment_id = data.get('appointment_id')

        if 'title' in data:
            title = (data['title'] or '').strip()
            if not 3 <= len(title) <= 200:
                raise ValidationError('Title must have between 3 and 200 characters')
            self.title = title
        if 'content' in data:
            content = (data['content'] or '').strip()
            if not 10 <= len(content) <= 10000:
                raise ValidationError('Content must have between 10 and 10000 characters')
            self.content = content
        if 'note_type' in data:
            if data['note_type'] not in NOTE_TYPES:
                raise ValidationError(f"note_type must be one of: {', '.join(NOTE_TYPES)}")
            self.note_type = data['note_type']
        if 'priority' in data:
            if data['priority'] not in NOTE_PRIORITIES:
                raise ValidationError('Invalid priority')
            self.priority = data['priority']
        if 'status' in data:
            if data['status'] not in NOTE_STATUSES:
                raise ValidationError('Invalid status')
            self.status = data['status']

        for field in LIST_FIELDS:
            if field in data:
                setattr(self, field, data[field] or [])
        for field in DICT_FIELDS:
            if field in data:
                setattr(self, field, data[field] or {})
        for field in ('is_confidential', 'follow_up_required'):
            if field in data:
                setattr(self, field, bool(data[field]))
        if 'follow_up_date' in data:
            self.follow_up_date = parse_datetime(data['follow_up_date'])

    def to_dict(self):
        return {
            'id': self.id,
            'patient_id': self.patient_id,
            'patient_name': self.patient.name if self.patient else None,
            'user_id': self.user_id,
            'author_name': self.user.name if self.user else None,
            'appointment_id': self.appointment_id,
            'title': self.title,
            'content': self.content,
            'note_type': self.note_type,
            'priority': self.priority,
            'status': self.status,
            'tags': self.tags or [],
            'symptoms': self.symptoms or [],
            'diagnosis': self.diagnosis or [],
            'treatment_plan': self.treatment_plan or {},
            'medications': self.medications or [],
            'vital_signs': self.vital_signs or {},
            'is_confidential': self.is_confidential,
            'follow_up_required': self.follow_up_required,
            'follow_up_date': self.follow_up_date.isoformat() if self.follow_up_date else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
