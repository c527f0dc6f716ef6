"""
Shared pytest fixtures for SiteVault tests.

This module provides fixtures for:
- Flask app and test client
- Database setup with in-memory SQLite
- Admin user and authenticated client
- Seeded content tables
- Storage configurations (local directories, moto-mocked S3)
- Archive building helper
"""

import io
import json
import zipfile
from datetime import datetime

import pytest
import boto3
from moto import mock_aws

from sitevault import create_app, db as _db
from sitevault.models import User, Post, Friend, Subscription
from sitevault.auth import hash_password
from sitevault.backup.storage import StorageConfig


@pytest.fixture(scope='function')
def app(tmp_path):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database and temporary storage directories.
    """
    app = create_app('testing')

    app.config.update({
        'LOCAL_BACKUP_DIR': str(tmp_path / 'backups'),
        'LOCAL_MEDIA_DIR': str(tmp_path / 'uploads'),
    })

    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Create database with all tables.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def admin_user(db):
    """
    Create an admin user for testing authentication.

    Email: admin@example.com
    Password: Admin123
    """
    user = User(
        id='user-admin',
        email='admin@example.com',
        name='Admin',
        role='admin',
        password_hash=hash_password('Admin123')
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def auth_client(client, admin_user):
    """Test client signed in as the admin user."""
    response = client.post('/api/auth/login', json={
        'email': 'admin@example.com',
        'password': 'Admin123'
    })
    assert response.status_code == 200
    return client


@pytest.fixture(scope='function')
def sample_content(db, admin_user):
    """
    Seed content tables.

    - User: 2 (admin + reader)
    - Post: 3
    - Friend: 1 (with access token)
    - Subscription: 1 (with API key)
    """
    reader = User(
        id='user-reader',
        email='reader@example.com',
        name='Reader',
        password_hash=hash_password('Reader123'),
        created_at=datetime(2024, 1, 2, 8, 30)
    )
    db.session.add(reader)

    for i in range(1, 4):
        db.session.add(Post(
            id=f'post-{i}',
            slug=f'hello-{i}',
            title=f'Hello {i}',
            content=f'Body {i}',
            status='published',
            author_id='user-admin',
            published_at=datetime(2024, 1, i, 12, 0),
            created_at=datetime(2024, 1, i, 11, 0),
            updated_at=datetime(2024, 1, i, 11, 30)
        ))

    db.session.add(Friend(
        id='friend-1',
        name='Alice',
        access_token='secret-token',
        last_visit=datetime(2024, 2, 1, 9, 0)
    ))
    db.session.add(Subscription(
        id='sub-1',
        name='Cloud Storage',
        provider='Acme',
        price=4.99,
        api_key='sk-live-123',
        start_time=datetime(2024, 1, 1)
    ))
    db.session.commit()

    return {'users': 2, 'posts': 3}


@pytest.fixture
def local_config(tmp_path):
    """StorageConfig for local backup and media directories."""
    return StorageConfig(
        storage_type='local',
        local_backup_dir=str(tmp_path / 'backups'),
        local_media_dir=str(tmp_path / 'uploads')
    )


@pytest.fixture
def s3_config():
    """StorageConfig for the moto 'test-bucket' bucket."""
    return StorageConfig(
        storage_type='s3',
        region='us-east-1',
        access_key_id='test_access_key',
        secret_access_key='test_secret_key',
        bucket='test-bucket'
    )


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture
def make_archive():
    """
    Build archive bytes for restore tests.

    Call with manifest (None to omit manifest.json), tables and media dicts.
    """
    def _make(manifest='default', tables=None, media=None):
        if manifest == 'default':
            manifest = {
                'version': '1.0',
                'createdAt': '2024-01-15T12:00:00.000Z',
                'database': {
                    'tables': list((tables or {}).keys()),
                    'totalRecords': sum(len(r) for r in (tables or {}).values() if isinstance(r, list)),
                    'recordCounts': {k: len(v) for k, v in (tables or {}).items() if isinstance(v, list)}
                },
                'media': {
                    'totalFiles': len(media or {}),
                    'totalSize': sum(len(v) for v in (media or {}).values()),
                    'storageType': 'local'
                },
                'checksum': ''
            }

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zipf:
            if manifest is not None:
                zipf.writestr('manifest.json', json.dumps(manifest))
            for name, records in (tables or {}).items():
                payload = records if isinstance(records, str) else json.dumps(records)
                zipf.writestr(f'database/{name}.json', payload)
            for key, data in (media or {}).items():
                zipf.writestr(f'media/{key}', data)
        return buffer.getvalue()

    return _make
