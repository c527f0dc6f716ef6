"""
APScheduler configuration for SiteVault auto-backups.

Manages:
- The 'auto_backup' job, scheduled from AutoBackupSettings
- Start/stop of the background scheduler
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.executors.pool import ThreadPoolExecutor

from sitevault.models import AutoBackupSettings
from sitevault.backup.retention import run_auto_backup, BACKUP_HOUR, SCHEDULES


logger = logging.getLogger(__name__)

AUTO_BACKUP_JOB_ID = 'auto_backup'

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None


def build_trigger(schedule: str, timezone: str = 'UTC') -> CronTrigger:
    """
    Cron trigger for an auto-backup cadence.

    Args:
        schedule: 'daily', 'weekly' (Sunday) or 'monthly' (1st)
        timezone: Scheduler timezone

    Raises:
        ValueError: If schedule is unknown
    """
    if schedule == 'daily':
        return CronTrigger(hour=BACKUP_HOUR, minute=0, timezone=timezone)
    if schedule == 'weekly':
        return CronTrigger(day_of_week='sun', hour=BACKUP_HOUR, minute=0, timezone=timezone)
    if schedule == 'monthly':
        return CronTrigger(day=1, hour=BACKUP_HOUR, minute=0, timezone=timezone)
    raise ValueError(f"Invalid schedule: {schedule}. Valid options: {list(SCHEDULES)}")


def init_scheduler(app):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # Store Flask app reference for use in background threads
    flask_app = app

    jobstores = {
        'default': SQLAlchemyJobStore(url=app.config['SQLALCHEMY_DATABASE_URI'])
    }

    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one backup at a time
        'misfire_grace_time': 3600
    }

    scheduler = BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone=app.config.get('SCHEDULER_TIMEZONE', 'UTC')
    )

    return scheduler


def start_scheduler():
    """
    Start the APScheduler.

    Should be called after Flask app is initialized.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info(f"APScheduler started (state={scheduler.state})")
    else:
        logger.info(f"Scheduler already running (state={scheduler.state})")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def sync_auto_backup():
    """
    Synchronize the auto-backup job with AutoBackupSettings.

    Call after startup and whenever the settings change.

    Returns:
        True if the job is scheduled, False otherwise
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    settings = AutoBackupSettings.query.first()

    if settings is None or not settings.enabled:
        if scheduler.get_job(AUTO_BACKUP_JOB_ID):
            scheduler.remove_job(AUTO_BACKUP_JOB_ID)
            logger.info("Removed auto-backup job")
        return False

    timezone = flask_app.config.get('SCHEDULER_TIMEZONE', 'UTC') if flask_app else 'UTC'

    try:
        trigger = build_trigger(settings.schedule, timezone)
    except ValueError as e:
        logger.error(f"Failed to schedule auto-backup: {e}")
        return False

    scheduler.add_job(
        func=_execute_auto_backup_wrapper,
        trigger=trigger,
        id=AUTO_BACKUP_JOB_ID,
        name=f"Auto-backup ({settings.schedule})",
        replace_existing=True
    )
    logger.info(f"Scheduled auto-backup: {settings.schedule} at {BACKUP_HOUR:02d}:00 {timezone}")
    return True


def _execute_auto_backup_wrapper():
    """
    Run the auto-backup inside the stored Flask app context.
    """
    with flask_app.app_context():
        try:
            logger.info("Scheduler executing auto-backup")
            result = run_auto_backup()
            if result:
                logger.info(f"Auto-backup {result['backup'].id} completed")
        except Exception as e:
            logger.error(f"Scheduled auto-backup failed: {e}")
