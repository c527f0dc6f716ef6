"""
Database schema initialization for SiteVault.

Creates missing tables and seeds the operational settings row. Safe to call
from multiple Gunicorn workers at startup.
"""

import logging
from sqlalchemy import inspect
from sitevault import db

logger = logging.getLogger(__name__)


def init_database_schema(app):
    """
    Initialize database schema.

    Creates every table that does not exist yet, then makes sure the
    auto-backup settings row is present.
    """
    with app.app_context():
        inspector = inspect(db.engine)
        existing_tables = set(inspector.get_table_names())
        missing_tables = [
            name for name in db.metadata.tables
            if name not in existing_tables
        ]

        if missing_tables:
            logger.info(f"Creating missing tables: {', '.join(sorted(missing_tables))}")
            try:
                db.create_all()
                logger.info("Database schema created successfully")
            except Exception as e:
                # Another worker may have created them first
                logger.error(f"Failed to create database schema: {e}")
                db.session.rollback()

        _ensure_auto_backup_settings()


def _ensure_auto_backup_settings():
    """Insert the default AutoBackupSettings row if none exists."""
    from sitevault.models import AutoBackupSettings

    if AutoBackupSettings.query.first() is not None:
        return

    try:
        db.session.add(AutoBackupSettings())
        db.session.commit()
        logger.info("Created default auto-backup settings (disabled)")
    except Exception as e:
        logger.error(f"Failed to create default auto-backup settings: {e}")
        db.session.rollback()
