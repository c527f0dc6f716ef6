"""
Settings routes - auto-backup schedule and retention.
"""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo
from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required

from sitevault import db
from sitevault.models import AutoBackupSettings
from sitevault.backup.retention import get_next_backup_time, SCHEDULES
from sitevault import scheduler as scheduler_module


bp = Blueprint('settings', __name__, url_prefix='/api/admin/settings')
logger = logging.getLogger(__name__)

MAX_RETENTION = 365


def _serialize(settings: AutoBackupSettings) -> dict:
    next_run = None
    if settings.enabled:
        timezone = ZoneInfo(current_app.config.get('SCHEDULER_TIMEZONE', 'UTC'))
        next_run = get_next_backup_time(settings.schedule, datetime.now(timezone)).isoformat()

    return {
        'enabled': settings.enabled,
        'schedule': settings.schedule,
        'retention': settings.retention,
        'include_media': settings.include_media,
        'next_run': next_run,
        'last_run_at': settings.last_run_at.isoformat() if settings.last_run_at else None,
        'last_status': settings.last_status,
        'last_error': settings.last_error,
        'updated_at': settings.updated_at.isoformat() if settings.updated_at else None
    }


def _get_or_create_settings() -> AutoBackupSettings:
    settings = AutoBackupSettings.query.first()
    if settings is None:
        settings = AutoBackupSettings()
        db.session.add(settings)
        db.session.commit()
    return settings


@bp.route('/auto-backup', methods=['GET'])
@login_required
def get_auto_backup_settings():
    """
    Get auto-backup settings.

    Returns:
        JSON with schedule, retention, next run and last run status
    """
    return jsonify(_serialize(_get_or_create_settings()))


@bp.route('/auto-backup', methods=['PUT'])
@login_required
def update_auto_backup_settings():
    """
    Update auto-backup settings and resync the scheduler.

    Body (JSON):
        - enabled: bool
        - schedule: 'daily', 'weekly' or 'monthly'
        - retention: Number of backups to keep (1-365)
        - include_media: bool

    Returns:
        JSON with updated settings, or 400 on invalid input
    """
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({'error': 'JSON body required'}), 400

    settings = _get_or_create_settings()

    if 'schedule' in data:
        if data['schedule'] not in SCHEDULES:
            return jsonify({'error': f"Invalid schedule. Valid options: {list(SCHEDULES)}"}), 400
        settings.schedule = data['schedule']

    if 'retention' in data:
        retention = data['retention']
        if isinstance(retention, bool) or not isinstance(retention, int) or not 1 <= retention <= MAX_RETENTION:
            return jsonify({'error': f"Retention must be an integer between 1 and {MAX_RETENTION}"}), 400
        settings.retention = retention

    if 'enabled' in data:
        settings.enabled = bool(data['enabled'])

    if 'include_media' in data:
        settings.include_media = bool(data['include_media'])

    db.session.commit()
    logger.info(f"Auto-backup settings updated: {settings}")

    if scheduler_module.scheduler is not None:
        try:
            scheduler_module.sync_auto_backup()
        except Exception as e:
            logger.error(f"Failed to sync auto-backup schedule: {e}")

    return jsonify(_serialize(settings))
