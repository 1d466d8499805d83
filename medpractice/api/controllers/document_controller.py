# /medpractice/api/controllers/document_controller.py
import os
from datetime import datetime
from flask import request, jsonify, current_app, send_file
from medpractice.extensions import db
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import (
    Document, DOCUMENT_CATEGORIES, EXTRACTION_STATUSES, ACCESS_LEVELS
)
from medpractice.utils.decorators import current_user_id
from medpractice.utils.helpers import paginate
from medpractice.utils.storage_util import storage_manager


def upload_document():
    """Upload a document for a patient."""
    patient_id = request.form.get('patient_id', type=int)
    category = request.form.get('category', 'outro')
    title = request.form.get('title', '').strip()

    if not patient_id:
        return jsonify({'error': 'patient_id is required'}), 400
    if category not in DOCUMENT_CATEGORIES:
        return jsonify({'error': f"category must be one of: {', '.join(DOCUMENT_CATEGORIES)}"}), 400

    patient = Patient.active().filter(Patient.id == patient_id).first()
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404

    if 'file' not in request.files:
        return jsonify({'error': 'No file provided'}), 400
    file = request.files['file']
    if file.filename == '':
        return jsonify({'error': 'No file selected'}), 400

    upload_result = storage_manager.save_patient_document(file, patient_id)
    if not upload_result['success']:
        return jsonify({'error': upload_result['error']}), 400

    try:
        document = Document(
            patient_id=patient_id,
            uploaded_by=current_user_id(),
            filename=upload_result['filename'],
            original_name=file.filename,
            file_path=upload_result['path'],
            file_size=upload_result['size'],
            mime_type=upload_result['mime_type'],
            category=category,
            title=title or file.filename,
            description=request.form.get('description'),
            is_sensitive=request.form.get('is_sensitive', 'false').lower() == 'true',
        )
        document.set_tags(request.form.get('tags', ''))
        db.session.add(document)
        db.session.commit()
    except Exception:
        db.session.rollback()
        # Clean up stored file if database save fails
        storage_manager.delete_file(upload_result['path'])
        raise

    current_app.logger.info(f"Document {document.id} uploaded for patient {patient_id}")
    return jsonify({
        'message': 'Document uploaded successfully',
        'document': document.to_dict()
    }), 201


def list_documents():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)
    extraction_status = request.args.get('extraction_status')
    if extraction_status and extraction_status not in EXTRACTION_STATUSES:
        return jsonify({'error': 'Invalid extraction_status'}), 400

    query = Document.search_documents(
        patient_id=request.args.get('patient_id', type=int),
        category=request.args.get('category'),
        extraction_status=extraction_status,
        search_query=request.args.get('search'),
    )
    documents, pagination = paginate(query, page, limit)
    return jsonify({
        'documents': [doc.to_dict() for doc in documents],
        'pagination': pagination,
    }), 200


def get_document(document_id):
    document = Document.active().filter(Document.id == document_id).first()
    if not document:
        return jsonify({'error': 'Document not found'}), 404

    data = document.to_dict()
    data['extracted_text'] = document.extracted_text
    return jsonify({'document': data}), 200


def get_patient_documents(patient_id):
    """Get all documents for a specific patient."""
    if not Patient.active().filter(Patient.id == patient_id).first():
        return jsonify({'error': 'Patient not found'}), 404

    documents = Document.search_documents(
        patient_id=patient_id, category=request.args.get('category')
    ).all()
    return jsonify({
        'documents': [doc.to_dict() for doc in documents],
        'count': len(documents)
    }), 200


def update_document(document_id):
    document = Document.active().filter(Document.id == document_id).first()
    if not document:
        return jsonify({'error': 'Document not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'category' in data and data['category'] not in DOCUMENT_CATEGORIES:
        return jsonify({'error': 'Invalid category'}), 400
    if 'extraction_status' in data and data['extraction_status'] not in EXTRACTION_STATUSES:
        return jsonify({'error': 'Invalid extraction_status'}), 400
    if 'access_level' in data and data['access_level'] not in ACCESS_LEVELS:
        return jsonify({'error': 'Invalid access_level'}), 400

    for field in ('title', 'description', 'category', 'extraction_status', 'extracted_text',
                  'is_sensitive', 'access_level', 'retention_period'):
        if field in data:
            setattr(document, field, data[field])
    if 'tags' in data:
        document.set_tags(data['tags'])

    db.session.commit()
    return jsonify({'message': 'Document updated successfully', 'document': document.to_dict()}), 200


def delete_document(document_id):
    """Soft delete; the stored file is kept until the retention cleanup."""
    document = Document.active().filter(Document.id == document_id).first()
    if not document:
        return jsonify({'error': 'Document not found'}), 404

    document.deleted_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'message': 'Document deleted successfully'}), 200


def download_document(document_id):
    document = Document.active().filter(Document.id == document_id).first()
    if not document:
        return jsonify({'error': 'Document not found'}), 404
    if not os.path.exists(document.file_path):
        current_app.logger.error(f"Stored file missing for document {document.id}: {document.file_path}")
        return jsonify({'error': 'File not found on storage'}), 404

    return send_file(
        document.file_path,
        mimetype=document.mime_type,
        as_attachment=True,
        download_name=document.original_name,
    )
