# /medpractice/utils/encryption_util.py
import hashlib
from cryptography.fernet import Fernet, InvalidToken
from flask import current_app


class Encryptor:
    """
    Encrypts and decrypts sensitive patient identifiers.
    It must be initialized with the Flask app to load the key.
    """
    def __init__(self, app=None):
        self.fernet = None
        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initializes the Fernet suite with the key from the app's config."""
        key = app.config.get('EMR_ENCRYPTION_KEY')
        if not key:
            raise ValueError("EMR_ENCRYPTION_KEY not set in the Flask application config.")

        self.fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def encrypt(self, data: str) -> str:
        """Encrypts a string."""
        if self.fernet is None:
            raise RuntimeError("Encryptor has not been initialized with an app context.")

        if not isinstance(data, str):
            data = str(data)

        return self.fernet.encrypt(data.encode('utf-8')).decode('utf-8')

    def decrypt(self, token: str) -> str | None:
        """Decrypts an encrypted token string."""
        if self.fernet is None:
            raise RuntimeError("Encryptor has not been initialized with an app context.")

        if not token:
            return None

        try:
            return self.fernet.decrypt(token.encode('utf-8')).decode('utf-8')
        except InvalidToken:
            current_app.logger.error("Decryption failed: Invalid token provided.")
            return None

    @staticmethod
    def lookup_hash(value: str) -> str:
        """Deterministic SHA-256 digest used for unique lookups on encrypted columns."""
        if not value:
            return ""
        return hashlib.sha256(value.strip().lower().encode('utf-8')).hexdigest()


# Single, uninitialized instance shared by the models and controllers.
encryptor = Encryptor()
