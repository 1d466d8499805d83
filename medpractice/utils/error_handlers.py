# /medpractice/utils/error_handlers.py
from flask import jsonify, current_app
from sqlalchemy.exc import IntegrityError
from medpractice.extensions import db
from medpractice.utils.helpers import ValidationError


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def validation_error(error):
        db.session.rollback()
        return jsonify({'error': str(error)}), 400

    @app.errorhandler(IntegrityError)
    def integrity_error(error):
        db.session.rollback()
        current_app.logger.warning(f"Integrity error: {error.orig}")
        return jsonify({'error': 'Record conflicts with existing data'}), 409

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'error': 'Bad request'}), 400

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({'error': 'Authentication required'}), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({'error': 'Permission denied'}), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def payload_too_large(error):
        return jsonify({'error': 'File too large'}), 413

    @app.errorhandler(429)
    def rate_limited(error):
        return jsonify({'error': 'Too many requests, try again later'}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        current_app.audit_logger.error(f"Internal server error: {str(error)}")
        return jsonify({'error': 'Internal server error'}), 500
