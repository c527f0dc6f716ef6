"""
Unit tests for scheduler (sitevault/scheduler.py).

Tests APScheduler configuration and auto-backup job syncing.
"""

from unittest.mock import MagicMock, patch

import pytest
from apscheduler.triggers.cron import CronTrigger

from sitevault import scheduler as scheduler_module
from sitevault.models import AutoBackupSettings


class TestBuildTrigger:
    """Test cron triggers for each cadence."""

    def _fields(self, trigger):
        return {field.name: str(field) for field in trigger.fields}

    def test_daily(self):
        """Test daily runs at 03:00."""
        fields = self._fields(scheduler_module.build_trigger('daily'))

        assert fields['hour'] == '3'
        assert fields['minute'] == '0'
        assert fields['day_of_week'] == '*'

    def test_weekly(self):
        """Test weekly runs on Sunday."""
        fields = self._fields(scheduler_module.build_trigger('weekly'))

        assert fields['day_of_week'] == 'sun'
        assert fields['hour'] == '3'

    def test_monthly(self):
        """Test monthly runs on the 1st."""
        fields = self._fields(scheduler_module.build_trigger('monthly'))

        assert fields['day'] == '1'
        assert fields['hour'] == '3'

    def test_timezone(self):
        """Test the trigger uses the given timezone."""
        trigger = scheduler_module.build_trigger('daily', 'Europe/Berlin')

        assert isinstance(trigger, CronTrigger)
        assert str(trigger.timezone) == 'Europe/Berlin'

    def test_invalid(self):
        """Test unknown cadences are rejected."""
        with pytest.raises(ValueError):
            scheduler_module.build_trigger('hourly')


class TestSchedulerInitialization:
    """Test scheduler initialization."""

    def teardown_method(self):
        """Clean up after each test."""
        scheduler_module.scheduler = None
        scheduler_module.flask_app = None

    @patch('sitevault.scheduler.SQLAlchemyJobStore')
    @patch('sitevault.scheduler.BackgroundScheduler')
    def test_init_scheduler(self, mock_scheduler_class, mock_jobstore, app):
        """Test scheduler initialization."""
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        result = scheduler_module.init_scheduler(app)

        assert result == mock_scheduler
        assert scheduler_module.scheduler == mock_scheduler
        assert scheduler_module.flask_app == app

        mock_jobstore.assert_called_once_with(url=app.config['SQLALCHEMY_DATABASE_URI'])
        call_kwargs = mock_scheduler_class.call_args[1]
        assert call_kwargs['job_defaults']['max_instances'] == 1
        assert call_kwargs['job_defaults']['coalesce'] is True
        assert call_kwargs['timezone'] == 'UTC'

    @patch('sitevault.scheduler.SQLAlchemyJobStore')
    @patch('sitevault.scheduler.BackgroundScheduler')
    def test_init_scheduler_only_once(self, mock_scheduler_class, mock_jobstore, app):
        """Test scheduler is only initialized once."""
        result1 = scheduler_module.init_scheduler(app)
        result2 = scheduler_module.init_scheduler(app)

        assert result1 == result2
        mock_scheduler_class.assert_called_once()


class TestSchedulerLifecycle:
    """Test scheduler start/stop operations."""

    def setup_method(self):
        """Set up before each test."""
        self.mock_scheduler = MagicMock()
        self.mock_scheduler.running = False
        self.mock_scheduler.state = 0
        scheduler_module.scheduler = self.mock_scheduler

    def teardown_method(self):
        """Clean up after each test."""
        scheduler_module.scheduler = None
        scheduler_module.flask_app = None

    def test_start_scheduler(self):
        """Test starting the scheduler."""
        scheduler_module.start_scheduler()

        self.mock_scheduler.start.assert_called_once()

    def test_start_already_running(self):
        """Test starting a running scheduler is a no-op."""
        self.mock_scheduler.running = True

        scheduler_module.start_scheduler()

        self.mock_scheduler.start.assert_not_called()

    def test_start_uninitialized(self):
        """Test starting before init raises."""
        scheduler_module.scheduler = None

        with pytest.raises(RuntimeError):
            scheduler_module.start_scheduler()

    def test_stop_scheduler(self):
        """Test stopping a running scheduler."""
        self.mock_scheduler.running = True

        scheduler_module.stop_scheduler()

        self.mock_scheduler.shutdown.assert_called_once()


class TestSyncAutoBackup:
    """Test syncing the auto-backup job with stored settings."""

    def setup_method(self):
        self.mock_scheduler = MagicMock()
        scheduler_module.scheduler = self.mock_scheduler

    def teardown_method(self):
        scheduler_module.scheduler = None
        scheduler_module.flask_app = None

    def test_uninitialized(self, db):
        """Test syncing before init raises."""
        scheduler_module.scheduler = None

        with pytest.raises(RuntimeError):
            scheduler_module.sync_auto_backup()

    def test_enabled_adds_job(self, app, db):
        """Test enabled settings schedule the job."""
        scheduler_module.flask_app = app
        settings = AutoBackupSettings.query.first()
        settings.enabled = True
        settings.schedule = 'weekly'
        db.session.commit()

        assert scheduler_module.sync_auto_backup() is True

        self.mock_scheduler.add_job.assert_called_once()
        kwargs = self.mock_scheduler.add_job.call_args[1]
        assert kwargs['id'] == scheduler_module.AUTO_BACKUP_JOB_ID
        assert kwargs['replace_existing'] is True
        assert kwargs['func'] == scheduler_module._execute_auto_backup_wrapper
        assert isinstance(kwargs['trigger'], CronTrigger)

    def test_disabled_removes_job(self, db):
        """Test disabled settings remove an existing job."""
        self.mock_scheduler.get_job.return_value = MagicMock()

        assert scheduler_module.sync_auto_backup() is False

        self.mock_scheduler.remove_job.assert_called_once_with(scheduler_module.AUTO_BACKUP_JOB_ID)
        self.mock_scheduler.add_job.assert_not_called()

    def test_disabled_without_job(self, db):
        """Test disabled settings with no job scheduled change nothing."""
        self.mock_scheduler.get_job.return_value = None

        assert scheduler_module.sync_auto_backup() is False

        self.mock_scheduler.remove_job.assert_not_called()

    def test_invalid_schedule_not_scheduled(self, db):
        """Test a corrupt schedule value is logged and not scheduled."""
        settings = AutoBackupSettings.query.first()
        settings.enabled = True
        settings.schedule = 'hourly'
        db.session.commit()

        assert scheduler_module.sync_auto_backup() is False
        self.mock_scheduler.add_job.assert_not_called()


class TestJobExecution:
    """Test the scheduled job wrapper and job listing."""

    def teardown_method(self):
        scheduler_module.scheduler = None
        scheduler_module.flask_app = None

    def test_wrapper_runs_in_app_context(self, app):
        """Test the wrapper runs the auto-backup inside the app context."""
        scheduler_module.flask_app = app

        with patch('sitevault.scheduler.run_auto_backup') as mock_run:
            mock_run.return_value = None
            scheduler_module._execute_auto_backup_wrapper()

        mock_run.assert_called_once()

    def test_wrapper_swallows_errors(self, app):
        """Test a failing run does not propagate into the scheduler thread."""
        scheduler_module.flask_app = app

        with patch('sitevault.scheduler.run_auto_backup', side_effect=RuntimeError('boom')):
            scheduler_module._execute_auto_backup_wrapper()
