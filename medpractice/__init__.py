import os
from flask import Flask, jsonify
from medpractice.extensions import db, bcrypt, migrate, jwt, limiter, cors, socketio
from medpractice.utils.encryption_util import encryptor
from medpractice.utils.storage_util import storage_manager
from medpractice.utils.error_handlers import register_error_handlers
from medpractice.commands import register_commands
from config import config


def create_app(config_name=None):
    config_name = config_name or os.getenv('APP_ENV', 'default')
    config_class = config[config_name]

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize app with config (logging, directories)
    config_class.init_app(app)

    # Initialize extensions
    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)
    cors.init_app(
        app,
        origins=app.config['ALLOWED_ORIGINS'],
        supports_credentials=True,
        allow_headers=['Content-Type', 'Authorization', 'X-Requested-With'],
        methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS']
    )

    # Handlers must be declared before init_app so every app's server picks them up
    from medpractice.socket_handlers import telemedicine_handler  # noqa: F401

    # Initialize SocketIO with threading (no eventlet)
    socketio.init_app(app, cors_allowed_origins=app.config['ALLOWED_ORIGINS'], async_mode='threading')

    # Initialize custom utilities
    encryptor.init_app(app)
    storage_manager.init_app(app)

    # Make sure every model is registered before create_all / migrations
    from medpractice import models  # noqa: F401

    # Register blueprints
    from medpractice.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    # Register error handlers and commands
    register_error_handlers(app)
    register_commands(app)
    _register_jwt_callbacks()

    return app


def _register_jwt_callbacks():
    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        from medpractice.models.system_models import RevokedToken
        jti = jwt_payload['jti']
        return RevokedToken.query.filter_by(jti=jti).first() is not None

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({'error': 'Token has expired', 'message': 'Please refresh your token or login again'}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({'error': 'Invalid token', 'message': str(error)}), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({'error': 'Authorization required', 'message': 'No valid authorization header found'}), 401

    @jwt.revoked_token_loader
    def revoked_token_callback(jwt_header, jwt_payload):
        return jsonify({'error': 'Token has been revoked', 'message': 'This token has been logged out'}), 401
