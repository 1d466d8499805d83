# /medpractice/utils/storage_util.py
import os
import uuid
import mimetypes
from flask import current_app
from werkzeug.utils import secure_filename


class LocalStorageManager:
    """Utility class for storing patient documents under UPLOAD_FOLDER."""

    def __init__(self, app=None):
        self.upload_folder = None
        if app:
            self.init_app(app)

    def init_app(self, app):
        self.upload_folder = app.config['UPLOAD_FOLDER']
        os.makedirs(self.upload_folder, exist_ok=True)

    def save_patient_document(self, file, patient_id):
        """
        Store an uploaded document on disk.

        Args:
            file: werkzeug FileStorage from the multipart request
            patient_id: ID of the patient owning the document

        Returns:
            dict: 'success' plus 'filename', 'path', 'size', 'mime_type' or 'error'
        """
        if not file or file.filename == '':
            return {'success': False, 'error': 'No file provided'}

        if not self._is_allowed_file(file.filename):
            return {'success': False, 'error': 'File type not allowed'}

        extension = self._get_file_extension(file.filename)
        stored_name = secure_filename(f"patient_{patient_id}_{uuid.uuid4().hex}{extension}")
        patient_dir = os.path.join(current_app.config.get('UPLOAD_FOLDER', self.upload_folder), 'documents', str(patient_id))
        os.makedirs(patient_dir, exist_ok=True)
        path = os.path.join(patient_dir, stored_name)

        try:
            file.save(path)
        except OSError as e:
            current_app.logger.error(f"Document storage error: {str(e)}")
            return {'success': False, 'error': 'Failed to store file'}

        mime_type = file.mimetype or mimetypes.guess_type(file.filename)[0] or 'application/octet-stream'
        current_app.logger.info(f"Stored document for patient {patient_id} at {path}")
        return {
            'success': True,
            'filename': stored_name,
            'path': path,
            'size': os.path.getsize(path),
            'mime_type': mime_type,
        }

    def delete_file(self, path):
        """Remove a stored file, returning False when it was already gone."""
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            current_app.logger.warning(f"Stored file already missing: {path}")
            return False

    def _is_allowed_file(self, filename):
        allowed = current_app.config.get('ALLOWED_EXTENSIONS', set())
        return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed

    @staticmethod
    def _get_file_extension(filename):
        if '.' in filename:
            return '.' + filename.rsplit('.', 1)[1].lower()
        return ''


storage_manager = LocalStorageManager()
