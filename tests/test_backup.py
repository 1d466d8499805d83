import os
import tarfile
import time
from datetime import datetime, timedelta
from unittest import mock
import pytest
from medpractice.reporting import backup as backup_module
from medpractice.reporting.backup import BackupError, SystemBackup, generate_checksums
from medpractice.reporting.writers import read_json
from conftest import make_patient


def _fake_pg(command, **kwargs):
    """Stands in for pg_dump/psql: writes the dump file named after -f."""
    target = command[command.index('-f') + 1]
    if os.path.basename(command[0]) == 'pg_dump':
        with open(target, 'w') as fh:
            fh.write('-- dump\nCREATE TABLE patients ();\n')
    return mock.Mock(returncode=0)


@pytest.fixture
def uploads(app):
    upload_dir = app.config['UPLOAD_FOLDER']
    os.makedirs(os.path.join(upload_dir, 'documents', '7'), exist_ok=True)
    with open(os.path.join(upload_dir, 'documents', '7', 'exam.pdf'), 'wb') as fh:
        fh.write(b'%PDF-1.4 exam')
    return upload_dir


@pytest.fixture
def pg_tools():
    with mock.patch.object(backup_module.subprocess, 'run', side_effect=_fake_pg) as run:
        yield run


def _extract(archive, tmp_path):
    target = tmp_path / 'extracted'
    with tarfile.open(archive, 'r:gz') as tar:
        tar.extractall(target, filter='data')
    (root,) = os.listdir(target)
    return os.path.join(target, root)


def test_create_full_backup(app, uploads, pg_tools, tmp_path):
    make_patient()

    archive = SystemBackup().create_full_backup()

    assert os.path.basename(archive).startswith('full_backup_')
    assert archive.endswith('.tar.gz')
    # Only the archive remains, the working directory is removed
    assert os.listdir(app.config['BACKUP_DIR']) == [os.path.basename(archive)]

    command = pg_tools.call_args.args[0]
    assert command[0] == 'pg_dump'
    assert command[command.index('-d') + 1] == app.config['DB_NAME']

    root = _extract(archive, tmp_path)
    assert os.path.isfile(os.path.join(root, 'files', 'uploads', 'documents', '7', 'exam.pdf'))
    assert read_json(os.path.join(root, 'database_metadata.json'))['database'] == app.config['DB_NAME']

    config = read_json(os.path.join(root, 'config', 'backup_config.json'))
    assert config['environment'] == app.config['ENV_NAME']
    assert set(config) >= {'database', 'server', 'aws'}

    report = read_json(os.path.join(root, 'backup_report.json'))
    assert report['system_stats']['patients'] == 1
    assert 'patients' in report['files']['database']['tables']
    checksums = report['verification']['checksums']
    assert 'files/uploads/documents/7/exam.pdf' in checksums
    assert 'database.sql' in checksums
    assert 'backup_report.json' not in checksums


def test_checksums_are_deterministic_and_local(tmp_path):
    root = tmp_path / 'tree'
    (root / 'a').mkdir(parents=True)
    (root / 'a' / 'one.txt').write_text('one')
    (root / 'two.txt').write_text('two')

    first = generate_checksums(str(root))
    assert first == generate_checksums(str(root))
    assert set(first) == {'a/one.txt', 'two.txt'}

    (root / 'two.txt').write_text('changed')
    second = generate_checksums(str(root))
    assert second['a/one.txt'] == first['a/one.txt']
    assert second['two.txt'] != first['two.txt']


def test_retention_keeps_seven_newest_by_mtime(app, tmp_path):
    backup_dir = app.config['BACKUP_DIR']
    os.makedirs(backup_dir, exist_ok=True)
    now = time.time()
    for index in range(10):
        path = os.path.join(backup_dir, f'full_backup_{index:02d}.tar.gz')
        with open(path, 'w') as fh:
            fh.write('archive')
        # Name order is the reverse of age order
        mtime = now - index * 3600
        os.utime(path, (mtime, mtime))
    unrelated = os.path.join(backup_dir, 'notes.txt')
    with open(unrelated, 'w') as fh:
        fh.write('keep me')

    removed = SystemBackup().clean_old_backups()

    assert sorted(os.path.basename(p) for p in removed) == [
        'full_backup_07.tar.gz', 'full_backup_08.tar.gz', 'full_backup_09.tar.gz'
    ]
    remaining = sorted(name for name in os.listdir(backup_dir) if name.startswith('full_backup_'))
    assert remaining == [f'full_backup_{index:02d}.tar.gz' for index in range(7)]
    assert os.path.exists(unrelated)


def test_failed_dump_removes_partial_directory(app, tmp_path):
    failing = mock.Mock(side_effect=backup_module.subprocess.CalledProcessError(1, 'pg_dump'))
    backup = SystemBackup()
    with mock.patch.object(backup_module.subprocess, 'run', failing):
        with pytest.raises(BackupError):
            backup.create_full_backup()

    assert os.listdir(app.config['BACKUP_DIR']) == []
    assert backup.is_running is False


def test_running_backup_is_not_reentered(app, pg_tools):
    backup = SystemBackup()
    backup.is_running = True

    assert backup.create_full_backup() is None
    pg_tools.assert_not_called()


def test_restore_round_trip(app, uploads, pg_tools):
    archive = SystemBackup().create_full_backup()
    exam = os.path.join(uploads, 'documents', '7', 'exam.pdf')
    os.remove(exam)

    SystemBackup().restore_backup(archive)

    assert os.path.isfile(exam)
    command = pg_tools.call_args.args[0]
    assert command[0] == 'psql'
    assert not os.path.exists(os.path.join(app.config['BACKUP_DIR'], 'restore'))


def test_restore_missing_archive(app):
    with pytest.raises(BackupError):
        SystemBackup().restore_backup('/nonexistent/full_backup_x.tar.gz')


def test_eighth_backup_removes_the_oldest(app, uploads, pg_tools):
    backup = SystemBackup()
    start = datetime(2024, 3, 1, 2, 0, 0)
    created = []
    for day in range(8):
        archive = backup.create_full_backup(now=start + timedelta(days=day))
        created.append(archive)
        # Archives made within the same second would tie on mtime
        mtime = time.time() - (8 - day) * 3600
        if day < 7:
            os.utime(archive, (mtime, mtime))

    remaining = backup.list_backups()
    assert len(remaining) == 7
    assert created[0] not in remaining
    assert not os.path.exists(created[0])
    assert sorted(remaining) == sorted(created[1:])
