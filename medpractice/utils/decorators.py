from functools import wraps
from flask import request, current_app, jsonify, make_response
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from sqlalchemy.exc import SQLAlchemyError
from medpractice.extensions import db
from medpractice.models.system_models import AuditLog
from medpractice.models.user_models import User


def current_user_id():
    """Integer id of the authenticated user, or None outside a JWT request."""
    try:
        identity = get_jwt_identity()
    except RuntimeError:
        return None
    return int(identity) if identity is not None else None


def get_current_user():
    user_id = current_user_id()
    return db.session.get(User, user_id) if user_id else None


def _write_audit_entry(action, resource, user_id, resource_id, success, details):
    log_entry = AuditLog(
        user_id=user_id,
        action=action,
        resource=resource,
        resource_id=str(resource_id) if resource_id is not None else None,
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent'),
        success=success,
        details=details
    )
    try:
        db.session.add(log_entry)
        db.session.commit()
    except SQLAlchemyError as db_error:
        current_app.audit_logger.error(f"Failed to log audit entry due to DB error: {db_error}")
        db.session.rollback()


def audit_log(action, resource):
    """Records access to patient data in audit_logs and the audit log file."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_id = current_user_id()
            # Route parameters name the record being touched
            resource_id = kwargs.get('id') or kwargs.get('patient_id') or kwargs.get('user_id')

            try:
                raw_response = f(*args, **kwargs)
                response = make_response(raw_response)
            except Exception as e:
                db.session.rollback()
                details = f"An error occurred: {str(e)}"
                _write_audit_entry(action, resource, user_id, resource_id, False, details)
                current_app.audit_logger.error(
                    f"Action='{action}', Resource='{resource}', UserID='{user_id}', Success='False', Details='{details}'"
                )
                raise

            success = response.status_code < 400
            details = f"Request completed. Status: {response.status_code}"

            # Registration and login only know the user once the view has run
            if user_id is None and success and response.is_json:
                body = response.get_json(silent=True) or {}
                user_id = body.get('user_id') or (body.get('user') or {}).get('id')

            _write_audit_entry(action, resource, user_id, resource_id, success, details)
            current_app.audit_logger.info(
                f"Action='{action}', Resource='{resource}', UserID='{user_id}', Success='{success}', Details='{details}'"
            )
            return response

        return decorated_function
    return decorator


def require_permission(resource, action):
    """Checks if the authenticated user has permission to perform an action on a resource."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            user = get_current_user()

            if not user or not user.is_active or user.deleted_at:
                return jsonify({'error': 'User not found or inactive'}), 403

            if not user.has_permission(resource, action):
                current_app.audit_logger.warning(
                    f"Permission denied: User {user.id} attempted {action} on {resource}"
                )
                return jsonify({'error': 'Permission denied'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
