"""
Restore service - previews and applies backup archives.

Restoration is best effort and fully reported: records are upserted one at a
time and blobs written one at a time, each failure is recorded and the loop
continues. Re-applying the same archive yields the same state.
"""

import json
import logging
import zipfile
import zlib
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from sitevault import db
from .archive import (
    open_archive, read_manifest, table_entry_name, media_entries, media_key
)
from .storage import StorageConfig, create_media_storage
from .tables import BACKUP_TABLES, DATE_FIELDS, TABLE_REGISTRY


logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
    'avif': 'image/avif',
    'svg': 'image/svg+xml',
    'mp4': 'video/mp4',
    'webm': 'video/webm',
    'mov': 'video/quicktime',
}
DEFAULT_CONTENT_TYPE = 'application/octet-stream'


def guess_content_type(key: str) -> str:
    """Content type for a media key from its extension."""
    if '.' not in key.rsplit('/', 1)[-1]:
        return DEFAULT_CONTENT_TYPE
    extension = key.rsplit('.', 1)[-1].lower()
    return CONTENT_TYPES.get(extension, DEFAULT_CONTENT_TYPE)


def parse_date_fields(record: Dict[str, Any], fields: Iterable[str] = DATE_FIELDS) -> Dict[str, Any]:
    """
    Copy of record with ISO timestamp strings turned back into datetimes.

    Values that are not parseable strings are left unchanged.
    """
    processed = dict(record)
    for field in fields:
        value = processed.get(field)
        if value and isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
            except ValueError:
                continue
            if parsed.tzinfo is not None:
                parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
            processed[field] = parsed
    return processed


def record_id(record: Any):
    """
    Primary identifier of a record, or None if it is missing or unusable.
    """
    if not isinstance(record, dict):
        return None
    value = record.get('id')
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value
    return None


class RestorePreview:
    """Read-only summary of an archive."""

    def __init__(self, manifest: Dict[str, Any], tables: List[str], total_records: int,
                 total_files: int, total_size: int):
        self.manifest = manifest
        self.tables = tables
        self.total_records = total_records
        self.total_files = total_files
        self.total_size = total_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            'manifest': self.manifest,
            'database': {
                'tables': self.tables,
                'total_records': self.total_records
            },
            'media': {
                'total_files': self.total_files,
                'total_size': self.total_size
            }
        }


class RestoreResult:
    """
    Outcome of a restore, per domain: counts of what succeeded plus errors.
    """

    def __init__(self):
        self.tables_restored = 0
        self.records_restored = 0
        self.table_counts = {}
        self.database_errors = []
        self.files_restored = 0
        self.media_errors = []

    @property
    def success(self) -> bool:
        return not self.database_errors and not self.media_errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'database': {
                'tables_restored': self.tables_restored,
                'records_restored': self.records_restored,
                'table_counts': dict(self.table_counts),
                'errors': list(self.database_errors)
            },
            'media': {
                'files_restored': self.files_restored,
                'errors': list(self.media_errors)
            }
        }


class RestoreService:
    """
    Validates, previews and restores backup archives.
    """

    def __init__(
        self,
        config: StorageConfig,
        media_storage=None,
        tables: Iterable[str] = BACKUP_TABLES,
        registry: Mapping = None
    ):
        """
        Args:
            config: Storage configuration
            media_storage: Storage handler for media (default: media storage for config)
            tables: Table names restored, in order
            registry: Table accessor registry
        """
        self.config = config
        self.media_storage = media_storage if media_storage is not None else create_media_storage(config)
        self.tables = list(tables)
        self.registry = TABLE_REGISTRY if registry is None else registry

    def preview(self, data: bytes) -> RestorePreview:
        """
        Summarize an archive without touching the database or storage.

        Args:
            data: Archive bytes

        Returns:
            RestorePreview

        Raises:
            ValidationError: If the archive or its manifest is invalid
        """
        zipf = open_archive(data)
        with zipf:
            manifest = read_manifest(zipf)
            names = set(zipf.namelist())

            tables = []
            total_records = 0
            for table_name in self.tables:
                entry = table_entry_name(table_name)
                if entry not in names:
                    continue
                tables.append(table_name)
                try:
                    records = json.loads(zipf.read(entry))
                except (ValueError, zipfile.BadZipFile, zlib.error) as e:
                    logger.warning(f"Unreadable table file {entry} in preview: {e}")
                    continue
                if isinstance(records, list):
                    total_records += len(records)

            media = media_entries(zipf)

        return RestorePreview(
            manifest=manifest,
            tables=tables,
            total_records=total_records,
            total_files=len(media),
            total_size=sum(info.file_size for info in media)
        )

    def apply(
        self,
        data: bytes,
        restore_database: bool = True,
        restore_media: bool = True,
        on_progress: Optional[Callable[[str, int, str], None]] = None
    ) -> RestoreResult:
        """
        Restore an archive.

        Args:
            data: Archive bytes
            restore_database: Upsert table records
            restore_media: Write media blobs back to storage
            on_progress: Called with (phase, percent, message)

        Returns:
            RestoreResult; success is False if any record, table or file failed

        Raises:
            ValidationError: If the archive or its manifest is invalid
        """
        def progress(phase, percent, message):
            if on_progress:
                on_progress(phase, percent, message)

        result = RestoreResult()
        zipf = open_archive(data)

        with zipf:
            manifest = read_manifest(zipf)
            logger.info(
                f"Restoring backup created {manifest.get('createdAt')} "
                f"(database={restore_database}, media={restore_media})"
            )

            if restore_database:
                progress('database', 0, 'Restoring database...')
                self._restore_database(zipf, result, progress)

            if restore_media:
                progress('media', 0, 'Restoring media files...')
                self._restore_media(zipf, result, progress)

        progress('complete', 100, 'Restore complete!')
        logger.info(
            f"Restore finished: {result.records_restored} records, {result.files_restored} files, "
            f"{len(result.database_errors) + len(result.media_errors)} errors"
        )
        return result

    def _restore_database(self, zipf, result: RestoreResult, progress):
        names = set(zipf.namelist())
        total_tables = max(len(self.tables), 1)

        for index, table_name in enumerate(self.tables, start=1):
            entry = table_entry_name(table_name)
            if entry in names:
                try:
                    records = json.loads(zipf.read(entry))
                    if not isinstance(records, list):
                        raise ValueError(f"expected a JSON array, got {type(records).__name__}")
                    restored = self._restore_table(table_name, records, result)
                    result.table_counts[table_name] = restored
                    result.records_restored += restored
                    if restored:
                        result.tables_restored += 1
                except Exception as e:
                    message = f"Failed to restore {table_name}: {e}"
                    result.database_errors.append(message)
                    logger.error(message)

            progress('database', round(index / total_tables * 100), f"Restored {table_name}")

    def _restore_table(self, table_name: str, records: List[Any], result: RestoreResult) -> int:
        """
        Upsert every record of one table.

        Returns:
            Number of records restored
        """
        if not records:
            return 0

        accessor = self.registry.get(table_name)
        if accessor is None:
            raise LookupError(f"no data accessor registered for {table_name}")

        restored = 0
        for record in records:
            rid = record_id(record)
            if rid is None:
                continue

            try:
                accessor.upsert(rid, parse_date_fields(record))
                restored += 1
            except Exception as e:
                db.session.rollback()
                message = f"Failed to upsert {table_name} record {rid}: {e}"
                result.database_errors.append(message)
                logger.warning(message)

        return restored

    def _restore_media(self, zipf, result: RestoreResult, progress):
        entries = media_entries(zipf)
        total_files = len(entries)

        for index, info in enumerate(entries, start=1):
            key = media_key(info.filename)
            try:
                self.media_storage.write(key, zipf.read(info), content_type=guess_content_type(key))
                result.files_restored += 1
            except Exception as e:
                message = f"Failed to restore {info.filename}: {e}"
                result.media_errors.append(message)
                logger.error(message)

            progress('media', round(index / total_files * 100), f"Restored {index}/{total_files} files")

        if not entries:
            progress('media', 100, 'No media files to restore')


def create_restore_service(app_config) -> RestoreService:
    """
    Build a RestoreService from a Flask config mapping.
    """
    return RestoreService(StorageConfig.from_app_config(app_config))
