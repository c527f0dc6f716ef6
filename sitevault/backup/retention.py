"""
Auto-backup with retention policy enforcement.

Runs a backup, then prunes the oldest backups beyond the configured
retention count. A failed prune never turns a successful backup into a
failed run.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .service import BackupService


logger = logging.getLogger(__name__)

SCHEDULES = ('daily', 'weekly', 'monthly')
BACKUP_HOUR = 3


class AutoBackupManager:
    """
    Creates a backup and enforces the retention count.
    """

    def __init__(self, service: BackupService):
        """
        Args:
            service: Backup service used to create, list and delete backups
        """
        self.service = service

    def run(self, schedule: str = 'daily', retention: int = 7, include_media: bool = True) -> Dict[str, Any]:
        """
        Run one auto-backup.

        Args:
            schedule: Cadence the run belongs to (informational)
            retention: Number of most recent backups to keep
            include_media: Whether to archive media blobs

        Returns:
            {'backup': BackupInfo, 'deleted_backups': [backup_id, ...]}

        Raises:
            ValueError: If retention is less than 1
            Exception: If the backup itself fails
        """
        if retention < 1:
            raise ValueError(f"Retention must be at least 1, got {retention}")

        logger.info(f"Starting {schedule} auto-backup (retention={retention}, include_media={include_media})")
        backup = self.service.create_backup(include_media=include_media)

        deleted = self.enforce_retention(retention)

        logger.info(
            f"Auto-backup complete: {backup.id}, "
            f"pruned {len(deleted)} old backup(s)"
        )
        return {
            'backup': backup,
            'deleted_backups': deleted
        }

    def enforce_retention(self, retention: int) -> list:
        """
        Delete every backup beyond the retention-th most recent.

        Returns:
            IDs of the backups that were deleted
        """
        try:
            backups = self.service.list_backups()
        except Exception as e:
            logger.error(f"Failed to list backups for retention: {e}")
            return []

        deleted = []
        for backup in backups[retention:]:
            try:
                if self.service.delete_backup(backup.id):
                    deleted.append(backup.id)
                    logger.info(f"Deleted old backup: {backup.id}")
                else:
                    logger.warning(f"Old backup not deleted (not found): {backup.id}")
            except Exception as e:
                logger.error(f"Failed to delete old backup {backup.id}: {e}")

        return deleted


def get_next_backup_time(schedule: str, now: Optional[datetime] = None) -> datetime:
    """
    Next scheduled auto-backup instant (03:00).

    - daily: today at 03:00, or tomorrow if already passed
    - weekly: next Sunday at 03:00 (today if Sunday and not yet passed)
    - monthly: the 1st at 03:00, this month if not yet passed, else next month

    Args:
        schedule: 'daily', 'weekly' or 'monthly'
        now: Reference time (default: current local time); tzinfo is kept

    Returns:
        Next backup time

    Raises:
        ValueError: If schedule is unknown
    """
    if schedule not in SCHEDULES:
        raise ValueError(f"Invalid schedule: {schedule}. Valid options: {list(SCHEDULES)}")

    if now is None:
        now = datetime.now()

    today = now.replace(hour=BACKUP_HOUR, minute=0, second=0, microsecond=0)

    if schedule == 'daily':
        candidate = today
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    if schedule == 'weekly':
        # weekday(): Monday=0 ... Sunday=6
        candidate = today + timedelta(days=(6 - now.weekday()) % 7)
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    candidate = today.replace(day=1)
    if candidate <= now:
        if candidate.month == 12:
            candidate = candidate.replace(year=candidate.year + 1, month=1)
        else:
            candidate = candidate.replace(month=candidate.month + 1)
    return candidate


def run_auto_backup() -> Optional[Dict[str, Any]]:
    """
    Run the auto-backup using the stored settings.

    Must be called inside a Flask app context. The outcome is recorded on
    the AutoBackupSettings row.

    Returns:
        Result of AutoBackupManager.run(), or None if auto-backup is disabled
        or the backup failed
    """
    from flask import current_app
    from sitevault import db
    from sitevault.models import AutoBackupSettings
    from .service import create_backup_service

    settings = AutoBackupSettings.query.first()
    if not settings or not settings.enabled:
        logger.info("Auto-backup disabled, skipping")
        return None

    manager = AutoBackupManager(create_backup_service(current_app.config))
    settings.last_run_at = datetime.utcnow()

    try:
        result = manager.run(
            schedule=settings.schedule,
            retention=settings.retention,
            include_media=settings.include_media
        )
        settings.last_status = 'success'
        settings.last_error = None
        return result
    except Exception as e:
        logger.error(f"Auto-backup failed: {e}")
        settings.last_status = 'failed'
        settings.last_error = str(e)
        return None
    finally:
        db.session.commit()
