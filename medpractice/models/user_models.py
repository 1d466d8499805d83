from datetime import datetime, timedelta
from medpractice.extensions import db, bcrypt

USER_ROLES = ('admin', 'doctor', 'nurse', 'assistant')

# Static role -> (resource, action) grants checked by require_permission.
ROLE_PERMISSIONS = {
    'admin': {
        ('patients', 'read'), ('patients', 'write'), ('patients', 'delete'),
        ('documents', 'read'), ('documents', 'write'), ('documents', 'delete'),
        ('notes', 'read'), ('notes', 'write'), ('notes', 'delete'),
        ('appointments', 'read'), ('appointments', 'write'),
        ('prescriptions', 'read'), ('prescriptions', 'write'),
        ('certificates', 'read'), ('certificates', 'write'),
        ('telemedicine', 'read'), ('telemedicine', 'write'),
        ('dashboard', 'read'), ('users', 'admin'),
    },
    'doctor': {
        ('patients', 'read'), ('patients', 'write'), ('patients', 'delete'),
        ('documents', 'read'), ('documents', 'write'), ('documents', 'delete'),
        ('notes', 'read'), ('notes', 'write'), ('notes', 'delete'),
        ('appointments', 'read'), ('appointments', 'write'),
        ('prescriptions', 'read'), ('prescriptions', 'write'),
        ('certificates', 'read'), ('certificates', 'write'),
        ('telemedicine', 'read'), ('telemedicine', 'write'),
        ('dashboard', 'read'),
    },
    'nurse': {
        ('patients', 'read'), ('patients', 'write'),
        ('documents', 'read'), ('documents', 'write'),
        ('notes', 'read'), ('notes', 'write'),
        ('appointments', 'read'), ('appointments', 'write'),
        ('prescriptions', 'read'), ('certificates', 'read'),
        ('telemedicine', 'read'),
        ('dashboard', 'read'),
    },
    'assistant': {
        ('patients', 'read'), ('patients', 'write'),
        ('documents', 'read'), ('documents', 'write'),
        ('appointments', 'read'), ('appointments', 'write'),
        ('dashboard', 'read'),
    },
}

MAX_FAILED_LOGINS = 5
LOCKOUT_MINUTES = 30
PASSWORD_MAX_AGE_DAYS = 90


class User(db.Model):
    """Staff member account: doctors, nurses, assistants and administrators."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='assistant', index=True)
    crm = db.Column(db.String(20), unique=True)
    specialty = db.Column(db.String(100))
    phone = db.Column(db.String(20))
    is_active = db.Column(db.Boolean, default=True)
    email_verified = db.Column(db.Boolean, default=False)
    last_login = db.Column(db.DateTime)
    failed_login_attempts = db.Column(db.Integer, default=0)
    account_locked_until = db.Column(db.DateTime)
    password_changed_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime)

    audit_logs = db.relationship('AuditLog', backref='user', lazy='dynamic')

    def set_password(self, password: str) -> None:
        """Hashes and sets the user's password, enforcing complexity rules."""
        if not self.validate_password_strength(password):
            raise ValueError("Password does not meet complexity requirements")
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')
        self.password_changed_at = datetime.utcnow()

    @property
    def is_locked(self) -> bool:
        return bool(self.account_locked_until and datetime.utcnow() < self.account_locked_until)

    def check_password(self, password: str) -> bool:
        """Checks a password and handles login attempt bookkeeping."""
        if self.is_locked:
            return False

        is_valid = bcrypt.check_password_hash(self.password_hash, password)

        if not is_valid:
            self.failed_login_attempts = (self.failed_login_attempts or 0) + 1
            if self.failed_login_attempts >= MAX_FAILED_LOGINS:
                self.account_locked_until = datetime.utcnow() + timedelta(minutes=LOCKOUT_MINUTES)
        else:
            self.failed_login_attempts = 0
            self.account_locked_until = None
            self.last_login = datetime.utcnow()

        db.session.commit()
        return is_valid

    @property
    def password_expired(self) -> bool:
        if not self.password_changed_at:
            return False
        return (datetime.utcnow() - self.password_changed_at).days > PASSWORD_MAX_AGE_DAYS

    def has_permission(self, resource: str, action: str) -> bool:
        return (resource, action) in ROLE_PERMISSIONS.get(self.role, set())

    def to_dict(self):
        """Serializes the User object for API responses."""
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'crm': self.crm,
            'specialty': self.specialty,
            'phone': self.phone,
            'is_active': self.is_active,
            'email_verified': self.email_verified,
            'last_login': self.last_login.isoformat() if self.last_login else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    @staticmethod
    def validate_password_strength(password: str) -> bool:
        """Validates that a password meets the required complexity."""
        return (bool(password) and len(password) >= 12 and
                any(c.isupper() for c in password) and
                any(c.islower() for c in password) and
                any(c.isdigit() for c in password) and
                any(c in '!@#$%^&*()_+-=[]{}|;:,.<>?' for c in password))

    def __repr__(self):
        return f'<User {self.id}: {self.email} ({self.role})>'
