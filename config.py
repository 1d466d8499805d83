# /config.py
import os
import secrets
import tempfile
from datetime import timedelta
import logging
from logging.handlers import RotatingFileHandler

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _database_uri():
    """Builds the PostgreSQL URI from DATABASE_URL or the discrete DB_* variables."""
    if os.environ.get('DATABASE_URL'):
        return os.environ['DATABASE_URL']
    host = os.environ.get('DB_HOST', 'localhost')
    port = os.environ.get('DB_PORT', '5432')
    name = os.environ.get('DB_NAME', 'sistema_medico')
    user = os.environ.get('DB_USER', 'postgres')
    password = os.environ.get('DB_PASSWORD', '')
    return f'postgresql://{user}:{password}@{host}:{port}/{name}'


class Config:
    """Base configuration shared by every environment"""
    ENV_NAME = os.environ.get('APP_ENV', 'development')

    # Security
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or secrets.token_hex(32)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=8)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=7)

    # Fernet key used for patient CPF encryption
    EMR_ENCRYPTION_KEY = os.environ.get('EMR_ENCRYPTION_KEY')

    # Database
    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }
    DB_HOST = os.environ.get('DB_HOST', 'localhost')
    DB_PORT = os.environ.get('DB_PORT', '5432')
    DB_NAME = os.environ.get('DB_NAME', 'sistema_medico')
    DB_USER = os.environ.get('DB_USER', 'postgres')
    DB_PASSWORD = os.environ.get('DB_PASSWORD', '')

    # Server
    PORT = int(os.environ.get('PORT', 3001))
    APP_VERSION = os.environ.get('APP_VERSION', '1.0.0')

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT', '100 per 15 minutes')

    # CORS
    ALLOWED_ORIGINS = os.environ.get('ALLOWED_ORIGINS', 'http://localhost:3000').split(',')

    # Uploads
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER') or os.path.join(BASE_DIR, 'uploads')
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024
    ALLOWED_EXTENSIONS = {'pdf', 'jpg', 'jpeg', 'png', 'gif', 'doc', 'docx', 'txt'}

    # AWS settings are only recorded in backup metadata
    AWS_REGION = os.environ.get('AWS_REGION')
    AWS_S3_BUCKET = os.environ.get('AWS_S3_BUCKET')

    # Batch pipeline output
    LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(BASE_DIR, 'logs')
    REPORTS_DIR = os.path.join(BASE_DIR, 'reports')
    ANALYSIS_DIR = os.path.join(BASE_DIR, 'analysis')
    OPTIMIZATION_DIR = os.path.join(BASE_DIR, 'optimization')
    BACKUP_DIR = os.environ.get('BACKUP_DIR') or os.path.join(BASE_DIR, 'backups')
    DB_BACKUP_DIR = os.path.join(BASE_DIR, 'database', 'backups')
    BACKUP_SOURCE_DIRS = [
        os.path.join(BASE_DIR, 'uploads'),
        os.path.join(BASE_DIR, 'docs'),
    ]
    BACKUP_CONFIG_FILES = [
        os.path.join(BASE_DIR, '.env'),
        os.path.join(BASE_DIR, 'pyproject.toml'),
        os.path.join(BASE_DIR, 'README.md'),
    ]
    BACKUP_RETENTION = 7
    PG_DUMP_BIN = os.environ.get('PG_DUMP_BIN', 'pg_dump')
    PSQL_BIN = os.environ.get('PSQL_BIN', 'psql')

    @staticmethod
    def init_app(app):
        """Initialize application-specific configuration"""
        log_dir = app.config['LOG_DIR']
        os.makedirs(log_dir, exist_ok=True)
        os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

        if not app.debug and not app.testing:
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'app.log'), maxBytes=10240000, backupCount=10
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)
            app.logger.setLevel(logging.INFO)
            app.logger.info('Medical practice application startup')

        # Audit trail for access to patient data
        audit_logger = logging.getLogger('PATIENT_AUDIT')
        if not audit_logger.handlers:
            audit_handler = RotatingFileHandler(
                os.path.join(log_dir, 'audit.log'), maxBytes=10240000, backupCount=20
            )
            audit_handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))
            audit_logger.addHandler(audit_handler)
            audit_logger.setLevel(logging.INFO)
            audit_logger.propagate = False

        app.audit_logger = audit_logger


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    @staticmethod
    def init_app(app):
        Config.init_app(app)

        if not app.logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s'
            ))
            app.logger.addHandler(console_handler)
        app.logger.setLevel(logging.DEBUG)


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)
    EMR_ENCRYPTION_KEY = 'R1jhN1t8m2J0c3ZzS0pQd2l5b1d4cUNtVEhyRkh6dW8='

    _scratch = os.path.join(tempfile.gettempdir(), 'medpractice-tests')
    LOG_DIR = os.path.join(_scratch, 'logs')
    UPLOAD_FOLDER = os.path.join(_scratch, 'uploads')
    REPORTS_DIR = os.path.join(_scratch, 'reports')
    ANALYSIS_DIR = os.path.join(_scratch, 'analysis')
    OPTIMIZATION_DIR = os.path.join(_scratch, 'optimization')
    BACKUP_DIR = os.path.join(_scratch, 'backups')
    DB_BACKUP_DIR = os.path.join(_scratch, 'database', 'backups')
    BACKUP_SOURCE_DIRS = [os.path.join(_scratch, 'uploads')]
    BACKUP_CONFIG_FILES = []

    @staticmethod
    def init_app(app):
        Config.init_app(app)


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)

        app.logger.info('Medical practice production startup')

        if not os.environ.get('EMR_ENCRYPTION_KEY'):
            app.logger.error('EMR_ENCRYPTION_KEY not set in production!')
            raise ValueError('EMR_ENCRYPTION_KEY must be set in production')

        if not os.environ.get('JWT_SECRET_KEY'):
            app.logger.error('JWT_SECRET_KEY not set in production!')
            raise ValueError('JWT_SECRET_KEY must be set in production')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
