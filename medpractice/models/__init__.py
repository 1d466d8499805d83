from medpractice.models.user_models import User
from medpractice.models.system_models import AuditLog, RevokedToken
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.appointment_models import Appointment
from medpractice.models.note_models import Note
from medpractice.models.prescription_models import Prescription
from medpractice.models.certificate_models import MedicalCertificate
from medpractice.models.telemedicine_models import TelemedicineSession, TelemedicineChat

__all__ = [
    'User', 'AuditLog', 'RevokedToken', 'Patient', 'Document', 'Appointment',
    'Note', 'Prescription', 'MedicalCertificate', 'TelemedicineSession', 'TelemedicineChat',
]
