# /medpractice/socket_handlers/telemedicine_handler.py
from flask import request, current_app
from flask_socketio import emit, join_room, leave_room
from flask_jwt_extended import decode_token
from jwt.exceptions import PyJWTError
from medpractice.extensions import db, socketio
from medpractice.models.user_models import User
from medpractice.models.telemedicine_models import TelemedicineSession, TelemedicineChat, MESSAGE_TYPES


def get_user_from_token():
    """Extract user from the JWT passed as ?token= on the socket handshake."""
    token = request.args.get('token')
    if not token:
        return None
    try:
        decoded_token = decode_token(token)
    except PyJWTError as e:
        current_app.logger.warning(f"Socket token validation error: {e}")
        return None
    user = db.session.get(User, int(decoded_token['sub']))
    if not user or not user.is_active:
        return None
    return user


def _load_session(user, data):
    """Returns the telemedicine session when the user may take part in it."""
    session = db.session.get(TelemedicineSession, (data or {}).get('session_id'))
    if not session:
        emit('error', {'message': 'Session not found'})
        return None
    if not user.has_permission('telemedicine', 'read'):
        emit('error', {'message': 'You are not authorized to join this session'})
        return None
    return session


@socketio.on('connect')
def handle_connect():
    user = get_user_from_token()
    if not user:
        current_app.logger.warning(f"Rejected socket {request.sid}: missing or invalid token")
        return False

    join_room(f"user_{user.id}")
    emit('connected', {'message': 'Connected successfully', 'user_id': user.id})
    current_app.logger.info(f"User {user.id} connected with socket {request.sid}")


@socketio.on('join_session')
def handle_join_session(data):
    user = get_user_from_token()
    if not user:
        emit('error', {'message': 'Authentication required'})
        return

    session = _load_session(user, data)
    if not session:
        return

    join_room(session.room)
    if session.status == 'scheduled' and user.id != session.doctor_id:
        session.status = 'waiting'
        db.session.commit()
    emit('user_joined', {'user_id': user.id, 'name': user.name}, to=session.room)


@socketio.on('leave_session')
def handle_leave_session(data):
    user = get_user_from_token()
    if not user:
        return

    session = db.session.get(TelemedicineSession, (data or {}).get('session_id'))
    if session:
        leave_room(session.room)
        emit('user_left', {'user_id': user.id}, to=session.room)


@socketio.on('send_message')
def handle_send_message(data):
    user = get_user_from_token()
    if not user:
        emit('error', {'message': 'Authentication required'})
        return

    session = _load_session(user, data)
    if not session:
        return

    content = (data.get('message') or '').strip()
    message_type = data.get('message_type', 'text')
    if not content or message_type not in MESSAGE_TYPES:
        emit('error', {'message': 'A valid message is required'})
        return

    chat = TelemedicineChat(
        session_id=session.id,
        sender_id=user.id,
        sender_type='doctor' if user.id == session.doctor_id else 'patient',
        message_type=message_type,
    )
    chat.set_message(content)
    db.session.add(chat)
    db.session.commit()

    emit('new_message', chat.to_dict(), to=session.room)
