"""
Full system backup and restore.

A backup is a ``full_backup_<ts>`` directory holding a ``pg_dump`` of the
database, copies of the upload/docs directories, the configuration files
and a ``backup_report.json`` with SHA-256 checksums of everything above.
The directory is archived to ``full_backup_<ts>.tar.gz`` and removed; only
the newest ``BACKUP_RETENTION`` archives are kept.
"""
import hashlib
import os
import shutil
import subprocess
import tarfile
from datetime import datetime
from flask import current_app
from sqlalchemy import inspect
from medpractice.extensions import db
from medpractice.models.user_models import User
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.reporting.writers import ensure_dir, report_timestamp, write_json

ARCHIVE_PREFIX = 'full_backup_'
ARCHIVE_SUFFIX = '.tar.gz'
DUMP_FILE = 'database.sql'


class BackupError(RuntimeError):
    """Raised when a backup or restore cannot be completed."""


def file_checksum(path, chunk_size=65536):
    digest = hashlib.sha256()
    with open(path, 'rb') as fh:
        for chunk in iter(lambda: fh.read(chunk_size), b''):
            digest.update(chunk)
    return digest.hexdigest()


def generate_checksums(root):
    """Maps every file under ``root`` (path relative to root, '/' separated) to its SHA-256."""
    checksums = {}
    for dirpath, _dirs, files in os.walk(root):
        for name in sorted(files):
            path = os.path.join(dirpath, name)
            relative = os.path.relpath(path, root).replace(os.sep, '/')
            checksums[relative] = file_checksum(path)
    return checksums


def directory_size(path):
    if not os.path.isdir(path):
        return 0
    total = 0
    for dirpath, _dirs, files in os.walk(path):
        for name in files:
            total += os.path.getsize(os.path.join(dirpath, name))
    return total


def copy_directory(source, target):
    shutil.copytree(source, target, dirs_exist_ok=True)


class SystemBackup:
    def __init__(self, backup_dir=None):
        config = current_app.config
        self.backup_dir = backup_dir or config['BACKUP_DIR']
        self.retention = config.get('BACKUP_RETENTION', 7)
        self.source_dirs = list(config.get('BACKUP_SOURCE_DIRS', []))
        self.config_files = list(config.get('BACKUP_CONFIG_FILES', []))
        self.logger = current_app.logger
        self.is_running = False

    def _db_settings(self):
        config = current_app.config
        return {
            'host': config['DB_HOST'],
            'port': str(config['DB_PORT']),
            'name': config['DB_NAME'],
            'user': config['DB_USER'],
            'password': config['DB_PASSWORD'],
        }

    def _pg_env(self, settings):
        env = os.environ.copy()
        if settings['password']:
            env['PGPASSWORD'] = settings['password']
        return env

    def create_full_backup(self, now=None):
        """Creates the archive and returns its path, or None when a backup is already running."""
        if self.is_running:
            self.logger.warning('Backup is already running.')
            return None

        self.is_running = True
        self.logger.info('Starting full system backup...')
        ensure_dir(self.backup_dir)
        now = now or datetime.utcnow()
        backup_path = os.path.join(self.backup_dir, f'{ARCHIVE_PREFIX}{report_timestamp(now)}')

        try:
            os.makedirs(backup_path)
            self.backup_database(backup_path, now)
            self.backup_files(backup_path)
            self.backup_config(backup_path, now)
            self.generate_backup_report(backup_path, now)
            archive = self.compress_backup(backup_path)
            shutil.rmtree(backup_path)
            self.logger.info(f'Full backup created: {archive}')
        except Exception:
            self.logger.exception('Backup failed')
            shutil.rmtree(backup_path, ignore_errors=True)
            raise
        finally:
            self.is_running = False

        self.clean_old_backups()
        return archive

    def backup_database(self, backup_path, now):
        self.logger.info('Dumping database...')
        settings = self._db_settings()
        dump_file = os.path.join(backup_path, DUMP_FILE)
        command = [
            current_app.config['PG_DUMP_BIN'],
            '-h', settings['host'],
            '-p', settings['port'],
            '-U', settings['user'],
            '-d', settings['name'],
            '-f', dump_file,
        ]
        try:
            subprocess.run(command, env=self._pg_env(settings), check=True, capture_output=True)
        except (OSError, subprocess.CalledProcessError) as e:
            self.logger.error(f'pg_dump failed: {e}')
            raise BackupError(f'Database dump failed: {e}') from e

        write_json(os.path.join(backup_path, 'database_metadata.json'), {
            'timestamp': now.isoformat(),
            'database': settings['name'],
            'host': settings['host'],
            'port': settings['port'],
            'size': os.path.getsize(dump_file),
        })
        self.logger.info('Database dump finished.')

    def backup_files(self, backup_path):
        self.logger.info('Copying files...')
        files_dir = ensure_dir(os.path.join(backup_path, 'files'))
        for source in self.source_dirs:
            if os.path.isdir(source):
                name = os.path.basename(os.path.normpath(source))
                copy_directory(source, os.path.join(files_dir, name))
                self.logger.info(f'Directory {name} copied.')
        self.logger.info('File backup finished.')

    def backup_config(self, backup_path, now):
        self.logger.info('Copying configuration...')
        config = current_app.config
        config_dir = ensure_dir(os.path.join(backup_path, 'config'))
        for source in self.config_files:
            if os.path.isfile(source):
                shutil.copy2(source, os.path.join(config_dir, os.path.basename(source)))

        write_json(os.path.join(config_dir, 'backup_config.json'), {
            'timestamp': now.isoformat(),
            'version': config.get('APP_VERSION', '1.0.0'),
            'environment': config.get('ENV_NAME', 'development'),
            'database': {
                'host': config['DB_HOST'],
                'port': config['DB_PORT'],
                'name': config['DB_NAME'],
            },
            'server': {'port': config.get('PORT')},
            'aws': {
                'region': config.get('AWS_REGION'),
                'bucket': config.get('AWS_S3_BUCKET'),
            },
        })
        self.logger.info('Configuration backup finished.')

    def system_stats(self, now):
        return {
            'users': User.query.count(),
            'patients': Patient.query.count(),
            'documents': Document.query.count(),
            'notes': Note.query.count(),
            'timestamp': now.isoformat(),
        }

    def generate_backup_report(self, backup_path, now):
        self.logger.info('Writing backup report...')
        files_dir = os.path.join(backup_path, 'files')
        # Checksums cover everything written so far; the report itself is excluded
        report = {
            'backup_info': {
                'timestamp': now.isoformat(),
                'backup_type': 'full',
                'backup_path': backup_path,
                'version': current_app.config.get('APP_VERSION', '1.0.0'),
            },
            'system_stats': self.system_stats(now),
            'files': {
                'database': {
                    'size': os.path.getsize(os.path.join(backup_path, DUMP_FILE)),
                    'tables': sorted(inspect(db.engine).get_table_names()),
                },
                'directories': {
                    name: directory_size(os.path.join(files_dir, name))
                    for name in sorted(os.listdir(files_dir))
                },
            },
            'verification': {
                'checksums': generate_checksums(backup_path),
                'integrity': 'pending',
            },
        }
        write_json(os.path.join(backup_path, 'backup_report.json'), report)
        return report

    def compress_backup(self, backup_path):
        self.logger.info('Compressing backup...')
        archive = f'{backup_path}{ARCHIVE_SUFFIX}'
        with tarfile.open(archive, 'w:gz') as tar:
            tar.add(backup_path, arcname=os.path.basename(backup_path))
        return archive

    def list_backups(self):
        """Archives in the backup directory, newest first by modification time."""
        if not os.path.isdir(self.backup_dir):
            return []
        archives = [
            os.path.join(self.backup_dir, name) for name in os.listdir(self.backup_dir)
            if name.startswith(ARCHIVE_PREFIX) and name.endswith(ARCHIVE_SUFFIX)
        ]
        return sorted(archives, key=os.path.getmtime, reverse=True)

    def clean_old_backups(self):
        self.logger.info('Removing old backups...')
        removed = []
        try:
            for path in self.list_backups()[self.retention:]:
                os.remove(path)
                removed.append(path)
                self.logger.info(f'Backup removed: {os.path.basename(path)}')
        except OSError as e:
            self.logger.error(f'Could not clean old backups: {e}')
        self.logger.info(f'Cleanup finished. {len(removed)} backups removed.')
        return removed

    def restore_backup(self, archive):
        self.logger.info(f'Restoring backup: {archive}')
        if not os.path.isfile(archive):
            raise BackupError(f'Backup file not found: {archive}')

        extract_path = os.path.join(self.backup_dir, 'restore')
        try:
            ensure_dir(extract_path)
            with tarfile.open(archive, 'r:gz') as tar:
                tar.extractall(extract_path, filter='data')
            backup_root = self._find_backup_root(extract_path)
            self.restore_database(backup_root)
            self.restore_files(backup_root)
        except Exception:
            self.logger.exception('Restore failed')
            raise
        finally:
            shutil.rmtree(extract_path, ignore_errors=True)

        self.logger.info('Restore finished.')

    def _find_backup_root(self, extract_path):
        # Archives hold a single full_backup_<ts> directory
        for name in os.listdir(extract_path):
            candidate = os.path.join(extract_path, name)
            if os.path.isdir(candidate) and name.startswith(ARCHIVE_PREFIX):
                return candidate
        return extract_path

    def restore_database(self, backup_root):
        self.logger.info('Restoring database...')
        dump_file = os.path.join(backup_root, DUMP_FILE)
        if not os.path.isfile(dump_file):
            raise BackupError(f'Database dump missing from backup: {dump_file}')

        settings = self._db_settings()
        command = [
            current_app.config['PSQL_BIN'],
            '-h', settings['host'],
            '-p', settings['port'],
            '-U', settings['user'],
            '-d', settings['name'],
            '-f', dump_file,
        ]
        try:
            subprocess.run(command, env=self._pg_env(settings), check=True, capture_output=True)
        except (OSError, subprocess.CalledProcessError) as e:
            self.logger.error(f'psql failed: {e}')
            raise BackupError(f'Database restore failed: {e}') from e
        self.logger.info('Database restored.')

    def restore_files(self, backup_root):
        self.logger.info('Restoring files...')
        files_dir = os.path.join(backup_root, 'files')
        if not os.path.isdir(files_dir):
            return []

        restored = []
        for target in self.source_dirs:
            name = os.path.basename(os.path.normpath(target))
            source = os.path.join(files_dir, name)
            if os.path.isdir(source):
                copy_directory(source, target)
                restored.append(name)
                self.logger.info(f'Directory {name} restored.')
        return restored
