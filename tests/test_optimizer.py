import glob
import os
import time
from datetime import datetime, timedelta
import pytest
from medpractice.extensions import db
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.models.system_models import RevokedToken
from medpractice.reporting.optimizer import SystemOptimizer
from medpractice.reporting.writers import read_json
from conftest import make_document, make_note, make_patient, make_user


def _steps(report):
    return {step['type']: step for step in report['optimizations']}


def test_database_mode_cleans_temporary_data(app, tmp_path):
    now = datetime.utcnow()
    doctor = make_user('doctor')
    patient = make_patient()
    stale = make_document(patient, doctor, extraction_status='pending', created_at=now - timedelta(days=10))
    fresh = make_document(patient, doctor, extraction_status='pending')
    purged = make_note(patient, doctor, deleted_at=now - timedelta(days=40))
    kept = make_note(patient, doctor, deleted_at=now - timedelta(days=5))
    db.session.add_all([
        RevokedToken(jti='expired', expires_at=now - timedelta(hours=1)),
        RevokedToken(jti='valid', expires_at=now + timedelta(hours=1)),
    ])
    db.session.commit()
    stale_id, fresh_id, purged_id, kept_id = stale.id, fresh.id, purged.id, kept.id

    report = SystemOptimizer(output_dir=str(tmp_path)).run('database', now=now)

    cleanup = _steps(report)['cleanup']
    assert cleanup['details'] == {'stale_pending_documents': 1, 'purged_notes': 1, 'expired_tokens': 1}
    db.session.expire_all()
    assert db.session.get(Document, stale_id) is None
    assert db.session.get(Document, fresh_id) is not None
    assert db.session.get(Note, purged_id) is None
    assert db.session.get(Note, kept_id) is not None
    assert [t.jti for t in RevokedToken.query.all()] == ['valid']


def test_postgres_only_steps_are_skipped_on_sqlite(app, tmp_path):
    report = SystemOptimizer(output_dir=str(tmp_path)).run('database')

    steps = _steps(report)
    assert steps['rebuild_indexes']['status'] == 'skipped'
    assert steps['vacuum']['status'] == 'skipped'
    assert steps['statistics']['status'] == 'completed'
    assert report['errors'] == []


def test_statistics_file_and_reports(app, tmp_path):
    make_patient()
    optimizer = SystemOptimizer(output_dir=str(tmp_path))
    report = optimizer.run('database')

    stats_files = glob.glob(os.path.join(tmp_path, 'system_stats_*.json'))
    assert len(stats_files) == 1
    assert read_json(stats_files[0])['patients'] == 1

    stem = f"optimization_report_{report['timestamp']}"
    assert sorted(os.path.basename(p) for p in optimizer.output_files) == [f'{stem}.html', f'{stem}.json']


def test_old_logs_removed_and_large_uploads_listed(app, tmp_path):
    log_dir = app.config['LOG_DIR']
    old_log = os.path.join(log_dir, 'old-test.log')
    with open(old_log, 'w') as fh:
        fh.write('old')
    month_ago = time.time() - 40 * 24 * 3600
    os.utime(old_log, (month_ago, month_ago))

    upload_dir = app.config['UPLOAD_FOLDER']
    os.makedirs(os.path.join(upload_dir, 'documents', '1'), exist_ok=True)
    with open(os.path.join(upload_dir, 'documents', '1', 'big.pdf'), 'wb') as fh:
        fh.truncate(11 * 1024 * 1024)

    steps = _steps(SystemOptimizer(output_dir=str(tmp_path)).run('database'))

    assert 'old-test.log' in steps['log_cleanup']['details']['removed']
    assert not os.path.exists(old_log)
    assert [f['path'].replace(os.sep, '/') for f in steps['large_files']['details']['files']] == ['documents/1/big.pdf']


def test_performance_mode(app, tmp_path):
    optimizer = SystemOptimizer(output_dir=str(tmp_path))
    report = optimizer.run('performance')

    steps = _steps(report)
    assert steps['slow_queries']['status'] == 'skipped'
    assert steps['connections']['status'] == 'skipped'
    assert steps['memory']['status'] == 'completed'
    assert steps['memory']['details']['collected_objects'] >= 0
    assert os.path.basename(optimizer.output_files[0]).startswith('performance_report_')


def test_unknown_mode_is_rejected(app, tmp_path):
    with pytest.raises(ValueError):
        SystemOptimizer(output_dir=str(tmp_path)).run('everything')
