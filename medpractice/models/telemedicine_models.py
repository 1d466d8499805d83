# /medpractice/models/telemedicine_models.py
import secrets
import string
import time
from datetime import datetime
from medpractice.extensions import db
from medpractice.utils.encryption_util import encryptor

SESSION_STATUSES = ('scheduled', 'waiting', 'active', 'completed', 'cancelled', 'no_show')
MESSAGE_TYPES = ('text', 'image', 'document', 'audio', 'system')


def generate_session_id():
    """TM-<epoch millis>-<6 random chars>"""
    suffix = ''.join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f'TM-{int(time.time() * 1000)}-{suffix}'


class TelemedicineSession(db.Model):
    """Video consultation attached to an appointment."""
    __tablename__ = 'telemedicine_sessions'

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=False, unique=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)

    session_id = db.Column(db.String(40), unique=True, nullable=False, default=generate_session_id)
    room_url = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False, default='scheduled', index=True)
    started_at = db.Column(db.DateTime)
    ended_at = db.Column(db.DateTime)
    duration_minutes = db.Column(db.Integer)
    quality_rating = db.Column(db.Integer)
    technical_issues = db.Column(db.JSON)
    prescription_issued = db.Column(db.Boolean, default=False)
    follow_up_required = db.Column(db.Boolean, default=False)
    follow_up_date = db.Column(db.DateTime)
    session_notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    appointment = db.relationship('Appointment', backref=db.backref('telemedicine_session', uselist=False))
    doctor = db.relationship('User', foreign_keys=[doctor_id])
    patient = db.relationship('Patient', backref='telemedicine_sessions')
    messages = db.relationship('TelemedicineChat', back_populates='session', lazy='dynamic',
                               cascade='all, delete-orphan')

    @property
    def room(self):
        """SocketIO room name for live chat."""
        return f'telemedicine_{self.id}'

    def start(self, room_url=None):
        self.status = 'active'
        self.started_at = datetime.utcnow()
        if room_url:
            self.room_url = room_url

    def end(self, ended_at=None):
        self.status = 'completed'
        self.ended_at = ended_at or datetime.utcnow()
        if self.started_at:
            self.duration_minutes = int((self.ended_at - self.started_at).total_seconds() // 60)

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'appointment_id': self.appointment_id,
            'doctor_id': self.doctor_id,
            'doctor_name': self.doctor.name if self.doctor else None,
            'patient_id': self.patient_id,
            'patient_name': self.patient.name if self.patient else None,
            'room_url': self.room_url,
            'status': self.status,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'ended_at': self.ended_at.isoformat() if self.ended_at else None,
            'duration_minutes': self.duration_minutes,
            'quality_rating': self.quality_rating,
            'technical_issues': self.technical_issues,
            'prescription_issued': self.prescription_issued,
            'follow_up_required': self.follow_up_required,
            'follow_up_date': self.follow_up_date.isoformat() if self.follow_up_date else None,
            'session_notes': self.session_notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class TelemedicineChat(db.Model):
    """Encrypted chat message exchanged during a telemedicine session."""
    __tablename__ = 'telemedicine_chats'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('telemedicine_sessions.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    sender_type = db.Column(db.String(10), nullable=False)  # 'doctor' or 'patient'

    # Encrypted message content
    message = db.Column(db.Text, nullable=False)

    message_type = db.Column(db.String(20), nullable=False, default='text')
    file_url = db.Column(db.String(255))
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime)
    sent_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    session = db.relationship('TelemedicineSession', back_populates='messages')
    sender = db.relationship('User', foreign_keys=[sender_id])

    def set_message(self, text):
        self.message = encryptor.encrypt(text)

    def to_dict(self, decrypt_content=True):
        """Convert message to dictionary format for API responses."""
        data = {
            'id': self.id,
            'session_id': self.session_id,
            'sender_id': self.sender_id,
            'sender_name': self.sender.name if self.sender else None,
            'sender_type': self.sender_type,
            'message_type': self.message_type,
            'file_url': self.file_url,
            'is_read': self.is_read,
            'read_at': self.read_at.isoformat() if self.read_at else None,
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
        }

        if decrypt_content:
            content = encryptor.decrypt(self.message)
            data['message'] = content if content is not None else '[Decryption Error]'
        else:
            data['message'] = '[Encrypted]'

        return data
