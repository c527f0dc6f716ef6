import os
from datetime import timedelta


class Config:
    """Base configuration"""

    # Flask
    # Get SECRET_KEY from environment, or generate a persistent one in development
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY:
        # Try to read from persistent file in /data directory
        secret_file = '/data/.secret_key'
        if os.path.exists(secret_file):
            with open(secret_file, 'r') as f:
                SECRET_KEY = f.read().strip()
        else:
            import secrets
            SECRET_KEY = secrets.token_hex(32)

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:////data/sitevault.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session
    PERMANENT_SESSION_LIFETIME = timedelta(hours=24)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # CSRF
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = None

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'

    # Storage backend: 'local', or an S3-compatible service ('s3', 'r2', 'minio')
    STORAGE_TYPE = os.environ.get('STORAGE_TYPE') or 'local'
    S3_ENDPOINT = os.environ.get('S3_ENDPOINT')
    S3_REGION = os.environ.get('S3_REGION')
    S3_ACCESS_KEY_ID = os.environ.get('S3_ACCESS_KEY_ID')
    S3_SECRET_ACCESS_KEY = os.environ.get('S3_SECRET_ACCESS_KEY')
    S3_BUCKET = os.environ.get('S3_BUCKET')
    S3_BACKUP_PREFIX = os.environ.get('S3_BACKUP_PREFIX') or 'backups/'

    # Local storage roots
    LOCAL_BACKUP_DIR = os.environ.get('LOCAL_BACKUP_DIR') or '/data/backups'
    LOCAL_MEDIA_DIR = os.environ.get('LOCAL_MEDIA_DIR') or '/data/uploads'

    # Informational origin tag written into backup manifests
    SITE_URL = os.environ.get('SITE_URL')

    # Restore uploads are buffered in memory
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_RESTORE_UPLOAD_MB', '2048')) * 1024 * 1024

    # Scheduler
    SCHEDULER_ENABLED = True
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE') or 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "sitevault.db")}'
    LOG_DIR = os.path.join(DATA_DIR, 'logs')
    LOCAL_BACKUP_DIR = os.path.join(DATA_DIR, 'backups')
    LOCAL_MEDIA_DIR = os.path.join(DATA_DIR, 'uploads')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False

    # Production security
    SESSION_COOKIE_SECURE = os.environ.get('HTTPS_ENABLED', 'false').lower() == 'true'


class TestingConfig(Config):
    """Testing configuration (in-memory database, no background scheduler)"""
    TESTING = True
    DEBUG = False
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    WTF_CSRF_ENABLED = False
    SCHEDULER_ENABLED = False
    STORAGE_TYPE = 'local'
    SITE_URL = 'https://example.test'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
