"""
Backup service - orchestrates the complete backup workflow.

Workflow:
1. Export database tables
2. Inventory media files (optional)
3. Build the manifest
4. Pack the archive in memory
5. Compute the SHA-256 checksum
6. Upload the archive, then its checksum sidecar

Nothing is written to storage before step 6, so a failure in any earlier step
leaves no partial backup behind.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .archive import (
    BACKUP_VERSION, pack_archive, compute_checksum, generate_backup_id,
    backup_filename, checksum_filename, backup_id_from_filename,
    is_valid_backup_id, ARCHIVE_EXTENSION
)
from .database import DatabaseExporter
from .media import MediaEnumerator
from .storage import StorageConfig, ConfigurationError, create_backup_storage


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, str], None]


class BackupInfo:
    """
    Descriptor of a stored backup archive.
    """

    __slots__ = ('id', 'filename', 'size', 'created_at', 'manifest', 'checksum')

    def __init__(
        self,
        id: str,
        filename: str,
        size: int,
        created_at: datetime,
        manifest: Optional[Dict[str, Any]] = None,
        checksum: Optional[str] = None
    ):
        object.__setattr__(self, 'id', id)
        object.__setattr__(self, 'filename', filename)
        object.__setattr__(self, 'size', size)
        object.__setattr__(self, 'created_at', created_at)
        object.__setattr__(self, 'manifest', manifest)
        object.__setattr__(self, 'checksum', checksum)

    def __setattr__(self, name, value):
        raise AttributeError(f"BackupInfo is immutable (cannot set {name})")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'filename': self.filename,
            'size': self.size,
            'size_mb': round(self.size / 1024 / 1024, 2),
            'created_at': self.created_at.isoformat(),
            'manifest': self.manifest,
            'checksum': self.checksum
        }

    def __repr__(self):
        return f'<BackupInfo {self.id} size={self.size}>'


class BackupService:
    """
    Creates, lists, downloads and deletes full-site backups.
    """

    def __init__(
        self,
        config: StorageConfig,
        exporter: Optional[DatabaseExporter] = None,
        media: Optional[MediaEnumerator] = None,
        storage=None,
        site_identifier: Optional[str] = None
    ):
        """
        Args:
            config: Storage configuration
            exporter: Database exporter (default: all backup tables)
            media: Media enumerator (default: media storage for config)
            storage: Backup archive storage (default: backup storage for config)
            site_identifier: Optional origin tag written into manifests
        """
        self.config = config
        self.exporter = exporter if exporter is not None else DatabaseExporter()
        self.media = media if media is not None else MediaEnumerator(config)
        self.storage = storage if storage is not None else create_backup_storage(config)
        self.site_identifier = site_identifier

    def create_backup(
        self,
        include_media: bool = True,
        on_progress: Optional[ProgressCallback] = None
    ) -> BackupInfo:
        """
        Create a full site backup.

        Args:
            include_media: Whether to archive media blobs
            on_progress: Called with (phase, percent, message)

        Returns:
            BackupInfo of the stored archive

        Raises:
            ConfigurationError: If backup storage is not configured
            StorageError: If the archive upload fails
            Exception: Any other failure during export or packing
        """
        def progress(phase, percent, message):
            if on_progress:
                on_progress(phase, percent, message)

        missing = self.config.missing_parameters()
        if missing:
            raise ConfigurationError(
                f"Object storage not configured (missing: {', '.join(missing)})"
            )

        started_at = datetime.utcnow()
        backup_id = generate_backup_id(started_at)
        filename = backup_filename(backup_id)
        logger.info(f"Starting backup {backup_id} (include_media={include_media})")

        # Step 1: Export database
        progress('database', 0, 'Starting database export...')
        db_export = self.exporter.export_all()
        progress(
            'database', 100,
            f"Exported {db_export['total_records']} records from {len(db_export['tables'])} tables"
        )

        # Step 2: Inventory media
        media_export = {'files': [], 'total_files': 0, 'total_size': 0, 'storage_type': 'none'}
        if include_media:
            progress('media', 0, 'Listing media files...')
            media_export = self.media.list_files()
            progress('media', 100, f"Found {media_export['total_files']} media files")

        # Step 3: Manifest
        manifest = self.build_manifest(started_at, db_export, media_export)

        # Step 4: Archive
        progress('archive', 0, 'Creating archive...')
        archive = pack_archive(
            db_export['tables'],
            media_export['files'],
            manifest,
            include_media=include_media,
            download=self.media.download,
            on_progress=lambda percent: progress('archive', percent, f"Archiving... {percent}%")
        )

        # Step 5: Checksum (stored out-of-band, the embedded manifest keeps '')
        checksum = compute_checksum(archive)
        logger.info(f"Archive created: {filename} ({len(archive) / 1024 / 1024:.2f} MB, sha256 {checksum})")

        # Step 6: Upload
        progress('upload', 0, 'Uploading backup...')
        self.storage.write(filename, archive, content_type='application/zip')
        self.storage.write(
            checksum_filename(backup_id),
            f"{checksum}  {filename}\n".encode(),
            content_type='text/plain'
        )
        progress('complete', 100, 'Backup complete!')
        logger.info(f"Backup {backup_id} stored")

        final_manifest = dict(manifest, checksum=checksum)
        return BackupInfo(
            id=backup_id,
            filename=filename,
            size=len(archive),
            created_at=started_at,
            manifest=final_manifest,
            checksum=checksum
        )

    def build_manifest(
        self,
        started_at: datetime,
        db_export: Dict[str, Any],
        media_export: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Build the manifest written into the archive.

        Returns:
            Manifest dict in the archive's JSON shape
        """
        manifest = {
            'version': BACKUP_VERSION,
            'createdAt': started_at.isoformat(timespec='milliseconds') + 'Z',
        }
        if self.site_identifier:
            manifest['siteIdentifier'] = self.site_identifier

        manifest['database'] = {
            'tables': list(db_export['tables'].keys()),
            'totalRecords': sum(db_export['record_counts'].values()),
            'recordCounts': dict(db_export['record_counts'])
        }
        manifest['media'] = {
            'totalFiles': media_export['total_files'],
            'totalSize': media_export['total_size'],
            'storageType': media_export['storage_type']
        }
        manifest['checksum'] = ''
        return manifest

    def list_backups(self) -> List[BackupInfo]:
        """
        List stored backups, newest first.

        Returns:
            List of BackupInfo; empty if the backup location does not exist
            or storage is not configured
        """
        try:
            objects = self.storage.list(suffix=ARCHIVE_EXTENSION)
        except ConfigurationError as e:
            logger.warning(f"Cannot list backups: {e}")
            return []

        backups = []
        for obj in objects:
            filename = obj['key']
            if '/' in filename:
                continue
            backups.append(BackupInfo(
                id=backup_id_from_filename(filename),
                filename=filename,
                size=obj['size'],
                created_at=_naive_utc(obj['last_modified'])
            ))

        return sorted(backups, key=lambda b: (b.created_at, b.id), reverse=True)

    def download_backup(self, backup_id: str) -> Optional[bytes]:
        """
        Read a backup archive.

        Returns:
            Archive bytes, or None if not found or storage not configured
        """
        if not is_valid_backup_id(backup_id):
            return None

        try:
            return self.storage.read(backup_filename(backup_id))
        except ConfigurationError as e:
            logger.warning(f"Cannot download backup {backup_id}: {e}")
            return None

    def get_backup_checksum(self, backup_id: str) -> Optional[str]:
        """
        Stored SHA-256 checksum of a backup archive.

        Returns:
            Hex digest, or None if no checksum sidecar exists
        """
        if not is_valid_backup_id(backup_id):
            return None

        try:
            content = self.storage.read(checksum_filename(backup_id))
        except ConfigurationError:
            return None

        if not content:
            return None
        return content.decode().split()[0]

    def delete_backup(self, backup_id: str) -> bool:
        """
        Delete a backup archive and its checksum sidecar.

        Returns:
            True if the archive was deleted, False if not found or storage
            not configured
        """
        if not is_valid_backup_id(backup_id):
            return False

        try:
            deleted = self.storage.delete(backup_filename(backup_id))
            if deleted:
                self.storage.delete(checksum_filename(backup_id))
        except ConfigurationError as e:
            logger.warning(f"Cannot delete backup {backup_id}: {e}")
            return False

        if deleted:
            logger.info(f"Deleted backup {backup_id}")
        return deleted


def _naive_utc(value: datetime) -> datetime:
    """Aware timestamps from storage listings as naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def create_backup_service(app_config) -> BackupService:
    """
    Build a BackupService from a Flask config mapping.
    """
    return BackupService(
        StorageConfig.from_app_config(app_config),
        site_identifier=app_config.get('SITE_URL')
    )
