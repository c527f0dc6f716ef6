"""
Backup archive packing and unpacking.

Archive layout (ZIP, DEFLATE):
- manifest.json
- database/<TableName>.json   one JSON array per table
- media/<key>                 one entry per blob, key preserved verbatim
"""

import io
import re
import json
import hashlib
import logging
import zipfile
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional


logger = logging.getLogger(__name__)

BACKUP_VERSION = '1.0'
SUPPORTED_VERSIONS = frozenset({'1.0'})

MANIFEST_NAME = 'manifest.json'
DATABASE_DIR = 'database/'
MEDIA_DIR = 'media/'
ARCHIVE_EXTENSION = '.zip'
CHECKSUM_EXTENSION = '.sha256'

BACKUP_ID_PATTERN = re.compile(r'[A-Za-z0-9_-]+')


class ValidationError(Exception):
    """Raised when an archive is not a usable backup."""
    pass


def pack_archive(
    tables: Mapping[str, List[Dict[str, Any]]],
    media_files: List[Dict[str, Any]],
    manifest: Dict[str, Any],
    include_media: bool = True,
    download: Optional[Callable[[str], Optional[Dict[str, Any]]]] = None,
    on_progress: Optional[Callable[[int], None]] = None
) -> bytes:
    """
    Pack manifest, table data and media into an in-memory ZIP.

    Media files whose download fails are logged and left out of the archive.
    Progress runs 0-50 over tables and 50-100 over media when media is
    packed, otherwise 0-100 over tables.

    Args:
        tables: Records per table name
        media_files: Media inventory entries ({'key', 'size'})
        manifest: Manifest dict, written first as manifest.json
        include_media: Whether to download and pack media
        download: Callable returning {'data', 'checksum'} or None for a key
        on_progress: Called with an integer percentage

    Returns:
        Archive bytes

    Raises:
        ValueError: If include_media is set without a download callable
    """
    pack_media = include_media and bool(media_files)
    if pack_media and download is None:
        raise ValueError("A download callable is required to pack media")

    table_share = 50 if pack_media else 100
    total_tables = max(len(tables), 1)
    total_media = max(len(media_files), 1)

    buffer = io.BytesIO()

    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zipf:
        zipf.writestr(MANIFEST_NAME, json.dumps(manifest, indent=2))

        for index, (table_name, records) in enumerate(tables.items(), start=1):
            zipf.writestr(
                f"{DATABASE_DIR}{table_name}.json",
                json.dumps(records, indent=2, default=str)
            )
            _report(on_progress, round(index / total_tables * table_share))

        if pack_media:
            skipped = 0
            for index, media_file in enumerate(media_files, start=1):
                key = media_file['key']
                try:
                    result = download(key)
                except Exception as e:
                    logger.warning(f"Failed to include media file {key}: {e}")
                    result = None

                if result is not None:
                    zipf.writestr(f"{MEDIA_DIR}{key}", result['data'])
                else:
                    skipped += 1

                _report(on_progress, round(50 + index / total_media * 50))

            if skipped:
                logger.warning(f"{skipped} media file(s) could not be downloaded and were left out")
        elif not tables:
            _report(on_progress, 100)

    return buffer.getvalue()


def _report(on_progress, percent: int):
    if on_progress:
        on_progress(percent)


def open_archive(data: bytes) -> zipfile.ZipFile:
    """
    Open archive bytes for reading.

    Raises:
        ValidationError: If data is not a ZIP archive
    """
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, TypeError) as e:
        raise ValidationError(f"Invalid backup: not a ZIP archive ({e})")


def read_manifest(zipf: zipfile.ZipFile) -> Dict[str, Any]:
    """
    Read and validate manifest.json.

    Raises:
        ValidationError: If the manifest is missing, unreadable, or has an
            unsupported version
    """
    if MANIFEST_NAME not in zipf.namelist():
        raise ValidationError("Invalid backup: missing manifest.json")

    try:
        manifest = json.loads(zipf.read(MANIFEST_NAME))
    except (ValueError, zipfile.BadZipFile) as e:
        raise ValidationError(f"Invalid backup: unreadable manifest.json ({e})")

    if not isinstance(manifest, dict):
        raise ValidationError("Invalid backup: manifest.json is not an object")

    version = manifest.get('version')
    if version not in SUPPORTED_VERSIONS:
        raise ValidationError(
            f"Unsupported backup version: {version!r}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}"
        )

    return manifest


def table_entry_name(table_name: str) -> str:
    return f"{DATABASE_DIR}{table_name}.json"


def media_entries(zipf: zipfile.ZipFile) -> List[zipfile.ZipInfo]:
    """ZIP entries under media/, directories excluded."""
    return [
        info for info in zipf.infolist()
        if info.filename.startswith(MEDIA_DIR) and not info.is_dir()
    ]


def media_key(entry_name: str) -> str:
    """Original media key of an archive entry (media/ prefix stripped)."""
    return entry_name[len(MEDIA_DIR):]


def generate_backup_id(now: Optional[datetime] = None) -> str:
    """
    Generate a key-safe backup id from a UTC timestamp.

    Format: backup_{YYYY-MM-DDTHH-MM-SS-mmmZ}

    Args:
        now: Timestamp to use (default: current UTC time)
    """
    if now is None:
        now = datetime.utcnow()

    timestamp = now.strftime('%Y-%m-%dT%H:%M:%S') + f".{now.microsecond // 1000:03d}Z"
    return 'backup_' + re.sub(r'[:.]', '-', timestamp)


def backup_filename(backup_id: str) -> str:
    return f"{backup_id}{ARCHIVE_EXTENSION}"


def checksum_filename(backup_id: str) -> str:
    return f"{backup_filename(backup_id)}{CHECKSUM_EXTENSION}"


def backup_id_from_filename(filename: str) -> str:
    """
    Strip the archive extension from a filename.
    """
    if filename.endswith(ARCHIVE_EXTENSION):
        return filename[:-len(ARCHIVE_EXTENSION)]
    return filename


def is_valid_backup_id(backup_id: str) -> bool:
    return bool(backup_id) and bool(BACKUP_ID_PATTERN.fullmatch(backup_id))


def compute_checksum(data: bytes) -> str:
    """SHA-256 hex digest of archive bytes."""
    return hashlib.sha256(data).hexdigest()
