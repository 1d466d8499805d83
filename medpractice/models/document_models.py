# /medpractice/models/document_models.py
from datetime import datetime
from medpractice.extensions import db

DOCUMENT_CATEGORIES = ('exame', 'receita', 'laudo', 'atestado', 'prontuario', 'imagem', 'outro')
EXTRACTION_STATUSES = ('pending', 'processing', 'completed', 'failed')
ACCESS_LEVELS = ('public', 'private', 'confidential')


class Document(db.Model):
    """Model for storing patient document metadata and the on-disk file reference."""
    __tablename__ = 'documents'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False, index=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    # File metadata
    filename = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(1024), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    mime_type = db.Column(db.String(100), nullable=False)

    # Document details
    category = db.Column(db.String(20), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    tags = db.Column(db.JSON, default=list)
    extraction_status = db.Column(db.String(20), default='pending', index=True)
    extracted_text = db.Column(db.Text)
    is_sensitive = db.Column(db.Boolean, default=False)
    retention_period = db.Column(db.Integer)  # years
    access_level = db.Column(db.String(20), default='private')
    document_metadata = db.Column('metadata', db.JSON, default=dict)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = db.Column(db.DateTime)

    # Relationships
    patient = db.relationship('Patient', back_populates='documents')
    uploader = db.relationship('User', foreign_keys=[uploaded_by], backref='uploaded_documents')

    def to_dict(self):
        """Convert document to dictionary for API responses."""
        return {
            'id': self.id,
            'patient_id': self.patient_id,
            'patient_name': self.patient.name if self.patient else None,
            'uploaded_by': self.uploaded_by,
            'uploader_name': self.uploader.name if self.uploader else 'Unknown',
            'filename': self.filename,
            'original_name': self.original_name,
            'file_size': self.file_size,
            'file_size_formatted': self.get_file_size_formatted(),
            'mime_type': self.mime_type,
            'category': self.category,
            'title': self.title,
            'description': self.description,
            'tags': self.tags or [],
            'extraction_status': self.extraction_status,
            'is_sensitive': self.is_sensitive,
            'retention_period': self.retention_period,
            'access_level': self.access_level,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Document {self.id}: {self.original_name} for Patient {self.patient_id}>'

    @classmethod
    def active(cls):
        return cls.query.filter(cls.deleted_at.is_(None))

    @classmethod
    def search_documents(cls, patient_id=None, category=None, extraction_status=None, search_query=None):
        """Search non-deleted documents with various filters."""
        query = cls.active()

        if patient_id:
            query = query.filter(cls.patient_id == patient_id)
        if category:
            query = query.filter(cls.category == category)
        if extraction_status:
            query = query.filter(cls.extraction_status == extraction_status)
        if search_query:
            from sqlalchemy import or_
            query = query.filter(or_(
                cls.title.ilike(f'%{search_query}%'),
                cls.original_name.ilike(f'%{search_query}%'),
                cls.description.ilike(f'%{search_query}%')
            ))

        return query.order_by(cls.created_at.desc())

    def set_tags(self, tags):
        """Set tags from a list or a comma-separated string."""
        if isinstance(tags, str):
            tags = tags.split(',')
        self.tags = [tag.strip() for tag in (tags or []) if tag and tag.strip()]

    def get_file_size_formatted(self):
        """Return formatted file size string."""
        if not self.file_size:
            return 'Unknown'

        size = self.file_size
        units = ['B', 'KB', 'MB', 'GB']
        unit_index = 0

        while size >= 1024 and unit_index < len(units) - 1:
            size /= 1024
            unit_index += 1

        return f"{size:.1f} {units[unit_index]}"
