import gc
import glob
import os
import time
from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy import text
from medpractice.extensions import db
from medpractice.models.user_models import User
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.models.system_models import RevokedToken
from medpractice.reporting.maintenance import ADDITIONAL_INDEX_NAMES
from medpractice.reporting import statistics as stats
from medpractice.reporting.writers import ensure_dir, report_timestamp, write_json, write_html, log_outputs

OPTIMIZATION_MODES = ('database', 'performance')

INDEXES_TO_REBUILD = ADDITIONAL_INDEX_NAMES
VACUUM_TABLES = ('patients', 'documents', 'notes', 'users')
STALE_PENDING_DAYS = 7
PURGE_DELETED_NOTES_DAYS = 30
OLD_LOG_DAYS = 30
LARGE_FILE_BYTES = 10 * 1024 * 1024
SLOW_QUERY_MS = 100
IDLE_CONNECTION_LIMIT = '1 hour'


class SystemOptimizer:
    """
    Runs maintenance steps against the database and the local file system.

    Each step appends ``{'type', 'status', 'details'}`` to the report. Steps
    that only make sense on PostgreSQL are recorded as ``skipped`` elsewhere.
    """

    def __init__(self, output_dir=None):
        self.output_dir = output_dir or current_app.config['OPTIMIZATION_DIR']
        self.output_files = []
        self.logger = current_app.logger

    def run(self, mode='database', now=None):
        if mode not in OPTIMIZATION_MODES:
            raise ValueError(f'Unknown optimization mode: {mode}')

        ensure_dir(self.output_dir)
        self.now = now or datetime.utcnow()
        self.is_postgres = stats.database_dialect() == 'postgresql'

        report = {
            'timestamp': report_timestamp(self.now),
            'mode': mode,
            'title': 'Database Optimization Report' if mode == 'database' else 'Performance Report',
            'optimizations': [],
            'errors': [],
        }

        try:
            if mode == 'database':
                self.logger.info('Starting database optimization...')
                self.clean_temporary_data(report)
                self.rebuild_indexes(report)
                self.update_statistics(report)
                self.vacuum_tables(report)
                self.clean_old_logs(report)
                self.find_large_files(report)
            else:
                self.logger.info('Starting performance analysis...')
                self.analyze_slow_queries(report)
                self.collect_session_settings(report)
                self.collect_memory_usage(report)
                self.manage_connections(report)
            self.save_report(report)
        except Exception as e:
            self.logger.exception('Optimization failed')
            report['errors'].append(str(e))
            raise

        self.logger.info('Optimization finished.')
        return report

    def _record(self, report, step, status='completed', **details):
        report['optimizations'].append({'type': step, 'status': status, 'details': details})

    def _skip(self, report, step):
        self.logger.info(f'Skipping {step}: requires PostgreSQL')
        self._record(report, step, 'skipped', reason='requires PostgreSQL')

    # --- database mode ---

    def clean_temporary_data(self, report):
        self.logger.info('Cleaning temporary data...')
        stale_cutoff = self.now - timedelta(days=STALE_PENDING_DAYS)
        deleted_cutoff = self.now - timedelta(days=PURGE_DELETED_NOTES_DAYS)

        try:
            stale_documents = Document.query.filter(
                Document.extraction_status == 'pending',
                Document.created_at < stale_cutoff,
            ).delete(synchronize_session=False)
            purged_notes = Note.query.filter(
                Note.deleted_at.isnot(None),
                Note.deleted_at < deleted_cutoff,
            ).delete(synchronize_session=False)
            expired_tokens = RevokedToken.query.filter(
                RevokedToken.expires_at < self.now
            ).delete(synchronize_session=False)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        self._record(
            report, 'cleanup',
            stale_pending_documents=stale_documents,
            purged_notes=purged_notes,
            expired_tokens=expired_tokens,
        )

    def rebuild_indexes(self, report):
        if not self.is_postgres:
            self._skip(report, 'rebuild_indexes')
            return

        self.logger.info('Rebuilding indexes...')
        rebuilt, failed = [], []
        for index_name in INDEXES_TO_REBUILD:
            try:
                db.session.execute(text(f'REINDEX INDEX {index_name}'))
                db.session.commit()
                rebuilt.append(index_name)
            except Exception as e:
                db.session.rollback()
                self.logger.warning(f'Could not rebuild index {index_name}: {e}')
                failed.append(index_name)

        db.session.execute(text('ANALYZE'))
        db.session.commit()
        self._record(report, 'rebuild_indexes', rebuilt=rebuilt, failed=failed)

    def update_statistics(self, report):
        self.logger.info('Updating system statistics...')
        counts = {
            'users': User.query.filter(User.deleted_at.is_(None)).count(),
            'patients': Patient.active().count(),
            'documents': Document.active().count(),
            'notes': Note.active().count(),
            'generated_at': self.now.isoformat(),
        }
        path = write_json(
            os.path.join(self.output_dir, f'system_stats_{int(time.time() * 1000)}.json'), counts
        )
        self._record(report, 'statistics', file=path, **counts)

    def vacuum_tables(self, report):
        if not self.is_postgres:
            self._skip(report, 'vacuum')
            return

        self.logger.info('Running VACUUM ANALYZE...')
        # VACUUM cannot run inside a transaction block
        with db.engine.connect().execution_options(isolation_level='AUTOCOMMIT') as conn:
            for table in VACUUM_TABLES:
                conn.execute(text(f'VACUUM ANALYZE {table}'))
        self._record(report, 'vacuum', tables=list(VACUUM_TABLES))

    def clean_old_logs(self, report):
        self.logger.info('Removing old log files...')
        log_dir = current_app.config['LOG_DIR']
        cutoff = time.time() - OLD_LOG_DAYS * 24 * 3600
        removed = []
        for path in glob.glob(os.path.join(log_dir, '*.log')):
            if os.path.getmtime(path) < cutoff:
                os.remove(path)
                removed.append(os.path.basename(path))
        self._record(report, 'log_cleanup', removed=removed)

    def find_large_files(self, report):
        self.logger.info('Looking for large uploaded files...')
        upload_dir = current_app.config['UPLOAD_FOLDER']
        large_files = []
        for root, _dirs, files in os.walk(upload_dir):
            for name in files:
                path = os.path.join(root, name)
                size = os.path.getsize(path)
                if size > LARGE_FILE_BYTES:
                    large_files.append({'path': os.path.relpath(path, upload_dir), 'size': size})
        self._record(report, 'large_files', files=large_files)

    # --- performance mode ---

    def analyze_slow_queries(self, report):
        if not self.is_postgres:
            self._skip(report, 'slow_queries')
            return

        self.logger.info('Analyzing slow queries...')
        try:
            rows = db.session.execute(text("""
                SELECT query, calls, total_exec_time AS total_time,
                       mean_exec_time AS mean_time, rows
                FROM pg_stat_statements
                WHERE mean_exec_time > :threshold
                ORDER BY mean_exec_time DESC
                LIMIT 10
            """), {'threshold': SLOW_QUERY_MS}).mappings().all()
        except Exception as e:
            db.session.rollback()
            self.logger.warning(f'pg_stat_statements is not available: {e}')
            self._record(report, 'slow_queries', 'skipped', reason='pg_stat_statements not available')
            return

        self._record(report, 'slow_queries', queries=[
            {key: (float(value) if key in ('total_time', 'mean_time') else value) for key, value in row.items()}
            for row in rows
        ])

    def collect_session_settings(self, report):
        if not self.is_postgres:
            self._skip(report, 'session_settings')
            return

        settings = {}
        for name in ('work_mem', 'maintenance_work_mem', 'effective_cache_size', 'random_page_cost'):
            settings[name] = db.session.execute(text(f'SHOW {name}')).scalar()
        self._record(report, 'session_settings', settings=settings)

    def collect_memory_usage(self, report):
        self.logger.info('Collecting memory usage...')
        before = stats.process_info()['memory_usage']
        collected = gc.collect()
        self._record(report, 'memory', before=before, collected_objects=collected,
                     after=stats.process_info()['memory_usage'])

    def manage_connections(self, report):
        if not self.is_postgres:
            self._skip(report, 'connections')
            return

        self.logger.info('Checking database connections...')
        connections = db.session.execute(text("""
            SELECT count(*) AS total,
                   count(*) FILTER (WHERE state = 'active') AS active,
                   count(*) FILTER (WHERE state = 'idle') AS idle
            FROM pg_stat_activity
            WHERE datname = current_database()
        """)).mappings().one()
        terminated = db.session.execute(text(f"""
            SELECT pg_terminate_backend(pid)
            FROM pg_stat_activity
            WHERE datname = current_database()
              AND state = 'idle'
              AND state_change < now() - interval '{IDLE_CONNECTION_LIMIT}'
              AND pid <> pg_backend_pid()
        """)).fetchall()
        db.session.commit()
        self._record(report, 'connections', **dict(connections), terminated=len(terminated))

    def save_report(self, report):
        prefix = 'optimization_report' if report['mode'] == 'database' else 'performance_report'
        base = os.path.join(self.output_dir, f"{prefix}_{report['timestamp']}")
        self.output_files = log_outputs([
            write_json(f'{base}.json', report),
            write_html(f'{base}.html', 'optimization_report.html', report=report, generated_at=self.now),
        ])
