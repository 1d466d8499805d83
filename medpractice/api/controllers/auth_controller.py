from datetime import datetime, timezone
from flask import request, jsonify, current_app
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    get_jwt
)
from medpractice.extensions import db
from medpractice.models.user_models import User, USER_ROLES
from medpractice.models.system_models import RevokedToken
from medpractice.utils.decorators import get_current_user
from medpractice.utils.helpers import is_valid_email


def _issue_tokens(user):
    # NOTE: identity must be a string; the role travels as an extra claim.
    access_token = create_access_token(identity=str(user.id), additional_claims={'role': user.role})
    refresh_token = create_refresh_token(identity=str(user.id))
    return access_token, refresh_token


def register_user():
    """Creates a staff account."""
    data = request.get_json(silent=True) or {}

    required_fields = ['name', 'email', 'password']
    if any(not data.get(field) for field in required_fields):
        return jsonify({'error': 'Missing required fields: name, email, password'}), 400

    email = data['email'].strip().lower()
    if not is_valid_email(email):
        return jsonify({'error': 'Invalid email'}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already exists'}), 409

    role = data.get('role', 'assistant')
    if role not in USER_ROLES:
        return jsonify({'error': 'Invalid role'}), 400
    if data.get('crm') and User.query.filter_by(crm=data['crm']).first():
        return jsonify({'error': 'CRM already registered'}), 409

    user = User(
        name=data['name'].strip(),
        email=email,
        role=role,
        crm=data.get('crm'),
        specialty=data.get('specialty'),
        phone=data.get('phone'),
    )
    try:
        user.set_password(data['password'])
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"User {user.id} registered with role {role}")

    access_token, refresh_token = _issue_tokens(user)
    return jsonify({
        'message': 'User created successfully',
        'user_id': user.id,
        'user': user.to_dict(),
        'access_token': access_token,
        'refresh_token': refresh_token,
    }), 201


def login_user():
    data = request.get_json(silent=True) or {}
    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password required'}), 400

    user = User.query.filter_by(email=data['email'].strip().lower()).first()
    if not user or user.deleted_at:
        return jsonify({'error': 'Invalid credentials'}), 401
    if user.is_locked:
        return jsonify({'error': 'Account locked due to multiple failed attempts'}), 423
    if not user.check_password(data['password']):
        return jsonify({'error': 'Invalid credentials'}), 401
    if not user.is_active:
        return jsonify({'error': 'Account deactivated'}), 403

    access_token, refresh_token = _issue_tokens(user)
    return jsonify({
        'access_token': access_token,
        'refresh_token': refresh_token,
        'user': user.to_dict(),
        'password_expired': user.password_expired,
    }), 200


def logout_user():
    token = get_jwt()
    revoked_token = RevokedToken(
        jti=token['jti'],
        expires_at=datetime.fromtimestamp(token['exp'], tz=timezone.utc).replace(tzinfo=None)
    )
    db.session.add(revoked_token)
    db.session.commit()
    return jsonify({'message': 'Successfully logged out'}), 200


def refresh_token():
    user = get_current_user()
    if not user or not user.is_active:
        return jsonify({'error': 'User not found or inactive'}), 403

    access_token = create_access_token(identity=str(user.id), additional_claims={'role': user.role})
    return jsonify({'access_token': access_token}), 200


def get_profile():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'User not found'}), 404
    return jsonify({'user': user.to_dict()}), 200


def update_profile():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'User not found'}), 404

    data = request.get_json(silent=True) or {}
    for field in ('name', 'specialty', 'phone'):
        if field in data:
            setattr(user, field, data[field])
    if 'crm' in data and data['crm'] != user.crm:
        if data['crm'] and User.query.filter_by(crm=data['crm']).first():
            return jsonify({'error': 'CRM already registered'}), 409
        user.crm = data['crm']

    db.session.commit()
    return jsonify({'message': 'Profile updated successfully', 'user': user.to_dict()}), 200


def change_user_password():
    user = get_current_user()
    data = request.get_json(silent=True) or {}

    if not data.get('current_password') or not data.get('new_password'):
        return jsonify({'error': 'Current and new passwords required'}), 400
    if not user.check_password(data['current_password']):
        return jsonify({'error': 'Invalid current password'}), 401

    try:
        user.set_password(data['new_password'])
        db.session.commit()
        return jsonify({'message': 'Password changed successfully'}), 200
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
