# /medpractice/api/routes.py
from flask import jsonify, current_app
from flask_jwt_extended import jwt_required
from . import api_bp
from medpractice.extensions import limiter
from medpractice.utils.decorators import audit_log, require_permission
from .controllers import (
    auth_controller, patient_controller, document_controller, note_controller,
    appointment_controller, prescription_controller, certificate_controller, telemedicine_controller,
    dashboard_controller
)


# --- Health ---
@api_bp.route('/health', methods=['GET'])
def health():
    return jsonify({
        'status': 'OK',
        'environment': current_app.config['ENV_NAME'],
        'version': current_app.config['APP_VERSION'],
    }), 200


# --- Authentication Endpoints ---
@api_bp.route('/auth/register', methods=['POST'])
@limiter.limit("5 per hour")
@audit_log("USER_REGISTRATION", "users")
def register():
    return auth_controller.register_user()

@api_bp.route('/auth/login', methods=['POST'])
@limiter.limit("10 per minute")
@audit_log("USER_LOGIN", "authentication")
def login():
    return auth_controller.login_user()

@api_bp.route('/auth/logout', methods=['POST'])
@jwt_required()
@audit_log("USER_LOGOUT", "authentication")
def logout():
    return auth_controller.logout_user()

@api_bp.route('/auth/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    return auth_controller.refresh_token()

@api_bp.route('/auth/profile', methods=['GET'])
@jwt_required()
def get_profile():
    return auth_controller.get_profile()

@api_bp.route('/auth/profile', methods=['PUT'])
@jwt_required()
@audit_log("UPDATE_OWN_PROFILE", "users")
def update_profile():
    return auth_controller.update_profile()

@api_bp.route('/auth/change-password', methods=['PUT'])
@jwt_required()
@audit_log("PASSWORD_CHANGE", "authentication")
def change_password():
    return auth_controller.change_user_password()


# --- Patient Endpoints ---
@api_bp.route('/patients', methods=['GET'])
@jwt_required()
@require_permission('patients', 'read')
@audit_log("VIEW_PATIENTS", "patients")
def list_patients():
    return patient_controller.list_patients()

@api_bp.route('/patients', methods=['POST'])
@jwt_required()
@require_permission('patients', 'write')
@audit_log("CREATE_PATIENT", "patients")
def create_patient():
    return patient_controller.create_patient()

@api_bp.route('/patients/<int:id>', methods=['GET'])
@jwt_required()
@require_permission('patients', 'read')
@audit_log("VIEW_PATIENT", "patients")
def get_patient(id):
    return patient_controller.get_patient(id)

@api_bp.route('/patients/<int:id>', methods=['PUT'])
@jwt_required()
@require_permission('patients', 'write')
@audit_log("UPDATE_PATIENT", "patients")
def update_patient(id):
    return patient_controller.update_patient(id)

@api_bp.route('/patients/<int:id>', methods=['DELETE'])
@jwt_required()
@require_permission('patients', 'delete')
@audit_log("DELETE_PATIENT", "patients")
def delete_patient(id):
    return patient_controller.delete_patient(id)

@api_bp.route('/patients/<int:id>/timeline', methods=['GET'])
@jwt_required()
@require_permission('patients', 'read')
@audit_log("VIEW_PATIENT_TIMELINE", "patients")
def patient_timeline(id):
    return patient_controller.get_patient_timeline(id)

@api_bp.route('/patients/<int:id>/report', methods=['GET'])
@jwt_required()
@require_permission('patients', 'read')
@audit_log("GENERATE_PATIENT_REPORT", "patients")
def patient_report(id):
    return patient_controller.generate_patient_report(id)


# --- Document Endpoints ---
@api_bp.route('/documents', methods=['GET'])
@jwt_required()
@require_permission('documents', 'read')
@audit_log("VIEW_DOCUMENTS", "documents")
def list_documents():
    return document_controller.list_documents()

@api_bp.route('/documents/upload', methods=['POST'])
@jwt_required()
@limiter.limit("30 per hour")
@require_permission('documents', 'write')
@audit_log("UPLOAD_DOCUMENT", "documents")
def upload_document():
    return document_controller.upload_document()

@api_bp.route('/documents/patient/<int:patient_id>', methods=['GET'])
@jwt_required()
@require_permission('documents', 'read')
@audit_log("VIEW_PATIENT_DOCUMENTS", "documents")
def patient_documents(patient_id):
    return document_controller.get_patient_documents(patient_id)

@api_bp.route('/documents/<int:id>', methods=['GET'])
@jwt_required()
@require_permission('documents', 'read')
@audit_log("VIEW_DOCUMENT", "documents")
def get_document(id):
    return document_controller.get_document(id)

@api_bp.route('/documents/<int:id>', methods=['PUT'])
@jwt_required()
@require_permission('documents', 'write')
@audit_log("UPDATE_DOCUMENT", "documents")
def update_document(id):
    return document_controller.update_document(id)

@api_bp.route('/documents/<int:id>', methods=['DELETE'])
@jwt_required()
@require_permission('documents', 'delete')
@audit_log("DELETE_DOCUMENT", "documents")
def delete_document(id):
    return document_controller.delete_document(id)

@api_bp.route('/documents/<int:id>/download', methods=['GET'])
@jwt_required()
@require_permission('documents', 'read')
@audit_log("DOWNLOAD_DOCUMENT", "documents")
def download_document(id):
    return document_controller.download_document(id)


# --- Clinical Note Endpoints ---
@api_bp.route('/notes', methods=['GET'])
@jwt_required()
@require_permission('notes', 'read')
@audit_log("VIEW_NOTES", "notes")
def list_notes():
    return note_controller.list_notes()

@api_bp.route('/notes/search', methods=['GET'])
@jwt_required()
@require_permission('notes', 'read')
@audit_log("SEARCH_NOTES", "notes")
def search_notes():
    return note_controller.search_notes()

@api_bp.route('/notes/patient/<int:patient_id>', methods=['GET'])
@jwt_required()
@require_permission('notes', 'read')
@audit_log("VIEW_PATIENT_NOTES", "notes")
def patient_notes(patient_id):
    return note_controller.get_patient_notes(patient_id)

@api_bp.route('/notes/author/<int:user_id>', methods=['GET'])
@jwt_required()
@require_permission('notes', 'read')
@audit_log("VIEW_AUTHOR_NOTES", "notes")
def author_notes(user_id):
    return note_controller.get_author_notes(user_id)

@api_bp.route('/notes', methods=['POST'])
@jwt_required()
@require_permission('notes', 'write')
@audit_log("CREATE_NOTE", "notes")
def create_note():
    return note_controller.create_note()

@api_bp.route('/notes/<int:id>', methods=['GET'])
@jwt_required()
@require_permission('notes', 'read')
@audit_log("VIEW_NOTE", "notes")
def get_note(id):
    return note_controller.get_note(id)

@api_bp.route('/notes/<int:id>', methods=['PUT'])
@jwt_required()
@require_permission('notes', 'write')
@audit_log("UPDATE_NOTE", "notes")
def update_note(id):
    return note_controller.update_note(id)

@api_bp.route('/notes/<int:id>', methods=['DELETE'])
@jwt_required()
@require_permission('notes', 'delete')
@audit_log("DELETE_NOTE", "notes")
def delete_note(id):
    return note_controller.delete_note(id)


# --- Appointment Endpoints ---
@api_bp.route('/appointments', methods=['GET'])
@jwt_required()
@require_permission('appointments', 'read')
def list_appointments():
    return appointment_controller.list_appointments()

@api_bp.route('/appointments/upcoming', methods=['GET'])
@jwt_required()
@require_permission('appointments', 'read')
def upcoming_appointments():
    return appointment_controller.get_upcoming_appointments()

@api_bp.route('/appointments/today', methods=['GET'])
@jwt_required()
@require_permission('appointments', 'read')
def today_appointments():
    return appointment_controller.get_today_appointments()

@api_bp.route('/appointments', methods=['POST'])
@jwt_required()
@require_permission('appointments', 'write')
@audit_log("CREATE_APPOINTMENT", "appointments")
def create_appointment():
    return appointment_controller.create_appointment()

@api_bp.route('/appointments/<int:id>', methods=['GET'])
@jwt_required()
@require_permission('appointments', 'read')
def get_appointment(id):
    return appointment_controller.get_appointment(id)

@api_bp.route('/appointments/<int:id>', methods=['PUT'])
@jwt_required()
@require_permission('appointments', 'write')
@audit_log("UPDATE_APPOINTMENT", "appointments")
def update_appointment(id):
    return appointment_controller.update_appointment(id)

@api_bp.route('/appointments/<int:id>', methods=['DELETE'])
@jwt_required()
@require_permission('appointments', 'write')
@audit_log("DELETE_APPOINTMENT", "appointments")
def delete_appointment(id):
    return appointment_controller.delete_appointment(id)

@api_bp.route('/appointments/<int:id>/cancel', methods=['POST'])
@jwt_required()
@require_permission('appointments', 'write')
@audit_log("CANCEL_APPOINTMENT", "appointments")
def cancel_appointment(id):
    return appointment_controller.cancel_appointment(id)

@api_bp.route('/appointments/<int:id>/confirm', methods=['POST'])
@jwt_required()
@require_permission('appointments', 'write')
@audit_log("CONFIRM_APPOINTMENT", "appointments")
def confirm_appointment(id):
    return appointment_controller.confirm_appointment(id)


# --- Prescription Endpoints ---
@api_bp.route('/prescriptions', methods=['POST'])
@jwt_required()
@require_permission('prescriptions', 'write')
@audit_log("CREATE_PRESCRIPTION", "prescriptions")
def create_prescription():
    return prescription_controller.create_prescription()

@api_bp.route('/prescriptions', methods=['GET'])
@jwt_required()
@require_permission('prescriptions', 'read')
def list_prescriptions():
    return prescription_controller.list_prescriptions()

@api_bp.route('/prescriptions/stats', methods=['GET'])
@jwt_required()
@require_permission('prescriptions', 'read')
def prescription_stats():
    return prescription_controller.get_prescription_stats()

@api_bp.route('/prescriptions/verify', methods=['POST'])
@limiter.limit("30 per minute")
@audit_log("VERIFY_PRESCRIPTION", "prescriptions")
def verify_prescription():
    return prescription_controller.verify_prescription()

@api_bp.route('/prescriptions/patient/<int:patient_id>', methods=['GET'])
@jwt_required()
@require_permission('prescriptions', 'read')
@audit_log("VIEW_PATIENT_PRESCRIPTIONS", "prescriptions")
def patient_prescriptions(patient_id):
    return prescription_controller.get_patient_prescriptions(patient_id)

@api_bp.route('/prescriptions/<int:id>', methods=['GET'])
@jwt_required()
@require_permission('prescriptions', 'read')
@audit_log("VIEW_PRESCRIPTION", "prescriptions")
def get_prescription(id):
    return prescription_controller.get_prescription(id)

@api_bp.route('/prescriptions/<int:id>/dispense', methods=['PUT'])
@jwt_required()
@require_permission('prescriptions', 'write')
@audit_log("DISPENSE_PRESCRIPTION", "prescriptions")
def dispense_prescription(id):
    return prescription_controller.dispense_prescription(id)

@api_bp.route('/prescriptions/<int:id>/cancel', methods=['PUT'])
@jwt_required()
@require_permission('prescriptions', 'write')
@audit_log("CANCEL_PRESCRIPTION", "prescriptions")
def cancel_prescription(id):
    return prescription_controller.cancel_prescription(id)


# --- Medical Certificate Endpoints ---
@api_bp.route('/medical-certificates', methods=['POST'])
@jwt_required()
@require_permission('certificates', 'write')
@audit_log("CREATE_CERTIFICATE", "certificates")
def create_certificate():
    return certificate_controller.create_certificate()

@api_bp.route('/medical-certificates', methods=['GET'])
@jwt_required()
@require_permission('certificates', 'read')
def list_certificates():
    return certificate_controller.list_certificates()

@api_bp.route('/medical-certificates/verify', methods=['POST'])
@limiter.limit("30 per minute")
@audit_log("VERIFY_CERTIFICATE", "certificates")
def verify_certificate():
    return certificate_controller.verify_certificate()

@api_bp.route('/medical-certificates/<int:id>', methods=['GET'])
@jwt_required()
@require_permission('certificates', 'read')
@audit_log("VIEW_CERTIFICATE", "certificates")
def get_certificate(id):
    return certificate_controller.get_certificate(id)

@api_bp.route('/medical-certificates/<int:id>/cancel', methods=['PUT'])
@jwt_required()
@require_permission('certificates', 'write')
@audit_log("CANCEL_CERTIFICATE", "certificates")
def cancel_certificate(id):
    return certificate_controller.cancel_certificate(id)


# --- Telemedicine Endpoints ---
@api_bp.route('/telemedicine/sessions', methods=['POST'])
@jwt_required()
@require_permission('telemedicine', 'write')
@audit_log("CREATE_TELEMEDICINE_SESSION", "telemedicine")
def create_session():
    return telemedicine_controller.create_session()

@api_bp.route('/telemedicine/sessions', methods=['GET'])
@jwt_required()
@require_permission('telemedicine', 'read')
def list_sessions():
    return telemedicine_controller.list_sessions()

@api_bp.route('/telemedicine/sessions/stats', methods=['GET'])
@jwt_required()
@require_permission('telemedicine', 'read')
def session_stats():
    return telemedicine_controller.get_session_stats()

@api_bp.route('/telemedicine/sessions/patient/<int:patient_id>', methods=['GET'])
@jwt_required()
@require_permission('telemedicine', 'read')
@audit_log("VIEW_PATIENT_SESSIONS", "telemedicine")
def patient_sessions(patient_id):
    return telemedicine_controller.get_patient_sessions(patient_id)

@api_bp.route('/telemedicine/sessions/<int:id>', methods=['GET'])
@jwt_required()
@require_permission('telemedicine', 'read')
def get_session(id):
    return telemedicine_controller.get_session(id)

@api_bp.route('/telemedicine/sessions/<int:id>/start', methods=['PUT'])
@jwt_required()
@require_permission('telemedicine', 'write')
@audit_log("START_TELEMEDICINE_SESSION", "telemedicine")
def start_session(id):
    return telemedicine_controller.start_session(id)

@api_bp.route('/telemedicine/sessions/<int:id>/end', methods=['PUT'])
@jwt_required()
@require_permission('telemedicine', 'write')
@audit_log("END_TELEMEDICINE_SESSION", "telemedicine")
def end_session(id):
    return telemedicine_controller.end_session(id)

@api_bp.route('/telemedicine/sessions/<int:id>/messages', methods=['POST'])
@jwt_required()
@require_permission('telemedicine', 'read')
@audit_log("SEND_TELEMEDICINE_MESSAGE", "telemedicine")
def send_message(id):
    return telemedicine_controller.send_message(id)

@api_bp.route('/telemedicine/sessions/<int:id>/messages', methods=['GET'])
@jwt_required()
@require_permission('telemedicine', 'read')
def get_messages(id):
    return telemedicine_controller.get_messages(id)

@api_bp.route('/telemedicine/sessions/<int:id>/messages/read', methods=['PUT'])
@jwt_required()
@require_permission('telemedicine', 'read')
def mark_messages_read(id):
    return telemedicine_controller.mark_messages_read(id)


# --- Dashboard Endpoints ---
@api_bp.route('/dashboard/stats', methods=['GET'])
@jwt_required()
@require_permission('dashboard', 'read')
def dashboard_stats():
    return dashboard_controller.get_dashboard_stats()

@api_bp.route('/dashboard/recent-patients', methods=['GET'])
@jwt_required()
@require_permission('dashboard', 'read')
def dashboard_recent_patients():
    return dashboard_controller.get_recent_patients()

@api_bp.route('/dashboard/recent-appointments', methods=['GET'])
@jwt_required()
@require_permission('dashboard', 'read')
def dashboard_recent_appointments():
    return dashboard_controller.get_recent_appointments()

@api_bp.route('/dashboard/documents-by-category', methods=['GET'])
@jwt_required()
@require_permission('dashboard', 'read')
def dashboard_documents_by_category():
    return dashboard_controller.get_documents_by_category()
