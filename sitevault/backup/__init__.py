"""
Backup module for SiteVault.

This module handles full-site backup and restore:
- Storage (S3-compatible and local)
- Database export with field redaction
- Media inventory and download
- Archive packing and validation
- Backup orchestration
- Restore preview and apply
- Auto-backup retention policy
"""

from .storage import S3Storage, LocalStorage, StorageConfig, StorageError, ConfigurationError
from .database import DatabaseExporter
from .media import MediaEnumerator
from .archive import pack_archive, ValidationError
from .service import BackupService, BackupInfo, create_backup_service
from .restore import RestoreService, RestorePreview, RestoreResult, create_restore_service
from .retention import AutoBackupManager, get_next_backup_time, run_auto_backup

__all__ = [
    'S3Storage',
    'LocalStorage',
    'StorageConfig',
    'StorageError',
    'ConfigurationError',
    'DatabaseExporter',
    'MediaEnumerator',
    'pack_archive',
    'ValidationError',
    'BackupService',
    'BackupInfo',
    'create_backup_service',
    'RestoreService',
    'RestorePreview',
    'RestoreResult',
    'create_restore_service',
    'AutoBackupManager',
    'get_next_backup_time',
    'run_auto_backup'
]
