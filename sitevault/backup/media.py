"""
Media inventory and download for backups.
"""

import hashlib
import logging
from typing import Any, Dict, Optional

from .storage import StorageConfig, ConfigurationError, create_media_storage


logger = logging.getLogger(__name__)


class MediaEnumerator:
    """
    Lists and fetches media blobs from the configured media storage.
    """

    def __init__(self, config: StorageConfig, storage=None):
        """
        Args:
            config: Storage configuration
            storage: Optional storage handler (defaults to the media storage for config)
        """
        self.config = config
        self.storage = storage if storage is not None else create_media_storage(config)

    def list_files(self) -> Dict[str, Any]:
        """
        Inventory every blob in media storage.

        Listing pages through the whole bucket (or directory) before the
        totals are computed. Unconfigured object storage yields an empty
        inventory.

        Returns:
            {
                'files': [{'key': str, 'size': int}],
                'total_files': int,
                'total_size': int,
                'storage_type': str
            }
        """
        try:
            objects = self.storage.list()
        except ConfigurationError as e:
            logger.warning(f"Media storage not configured, skipping media inventory: {e}")
            objects = []

        # Backups share the bucket with media under their own prefix
        skip_prefix = self.config.backup_prefix if self.config.is_object_storage else None

        files = [
            {'key': obj['key'], 'size': obj['size']}
            for obj in objects
            if not (skip_prefix and obj['key'].startswith(skip_prefix))
        ]

        return {
            'files': files,
            'total_files': len(files),
            'total_size': sum(f['size'] for f in files),
            'storage_type': self.config.storage_type
        }

    def download(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Fetch one blob and its MD5 digest.

        Args:
            key: Media key

        Returns:
            {'data': bytes, 'checksum': str}, or None if the blob could not be fetched
        """
        try:
            data = self.storage.read(key)
        except Exception as e:
            logger.error(f"Failed to download media file {key}: {e}")
            return None

        if data is None:
            logger.warning(f"Media file not found: {key}")
            return None

        return {
            'data': data,
            'checksum': hashlib.md5(data).hexdigest()
        }
