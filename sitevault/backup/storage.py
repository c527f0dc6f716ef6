"""
Storage handlers for backup archives and media blobs.

Supports:
- S3Storage: S3-compatible object storage (AWS S3, Cloudflare R2, MinIO)
- LocalStorage: Files under a local directory

Both expose the same key-based interface (write/read/list/delete). Which one
is used is decided by StorageConfig; a single run never mixes the two.
"""

from pathlib import Path
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
import boto3
from botocore.exceptions import ClientError, BotoCoreError


OBJECT_STORAGE_TYPES = ('s3', 'r2', 'minio')


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


class ConfigurationError(StorageError):
    """Raised when the storage backend is not fully configured."""
    pass


class StorageConfig:
    """
    Explicit storage configuration shared by the backup components.

    Built once from the Flask config and passed to each component at
    construction, so the backend choice is an explicit dependency.
    """

    def __init__(
        self,
        storage_type: str = 'local',
        endpoint: Optional[str] = None,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        bucket: Optional[str] = None,
        backup_prefix: str = 'backups/',
        local_backup_dir: str = 'data/backups',
        local_media_dir: str = 'data/uploads'
    ):
        self.storage_type = (storage_type or 'local').lower()
        self.endpoint = endpoint
        self.region = region
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.bucket = bucket
        self.backup_prefix = backup_prefix
        self.local_backup_dir = local_backup_dir
        self.local_media_dir = local_media_dir

    @classmethod
    def from_app_config(cls, config) -> 'StorageConfig':
        """
        Build from a Flask config mapping.

        Args:
            config: Flask app.config (or any mapping with the same keys)
        """
        return cls(
            storage_type=config.get('STORAGE_TYPE', 'local'),
            endpoint=config.get('S3_ENDPOINT'),
            region=config.get('S3_REGION'),
            access_key_id=config.get('S3_ACCESS_KEY_ID'),
            secret_access_key=config.get('S3_SECRET_ACCESS_KEY'),
            bucket=config.get('S3_BUCKET'),
            backup_prefix=config.get('S3_BACKUP_PREFIX', 'backups/'),
            local_backup_dir=config.get('LOCAL_BACKUP_DIR', 'data/backups'),
            local_media_dir=config.get('LOCAL_MEDIA_DIR', 'data/uploads')
        )

    @property
    def is_object_storage(self) -> bool:
        return self.storage_type in OBJECT_STORAGE_TYPES

    def missing_parameters(self) -> List[str]:
        """
        Names of required object-storage parameters that are not set.

        An endpoint is required for S3-compatible services; plain AWS S3 may
        use a region instead.
        """
        if not self.is_object_storage:
            return []

        missing = []
        if not self.endpoint and not self.region:
            missing.append('endpoint')
        if not self.access_key_id:
            missing.append('access_key_id')
        if not self.secret_access_key:
            missing.append('secret_access_key')
        if not self.bucket:
            missing.append('bucket')
        return missing

    @property
    def is_configured(self) -> bool:
        return not self.missing_parameters()


class S3Storage:
    """
    Handler for S3-compatible object storage.

    Keys are stored as {prefix}{key}. Backups use the 'backups/' prefix,
    media blobs are stored verbatim (empty prefix).
    """

    def __init__(self, config: StorageConfig, prefix: str = '', page_size: int = 1000):
        """
        Initialize S3 storage handler.

        The client is created lazily; when the configuration is incomplete
        every operation raises ConfigurationError without any network call.

        Args:
            config: Storage configuration
            prefix: Key prefix for every object handled by this instance
            page_size: Max keys per list_objects_v2 page
        """
        self.config = config
        self.prefix = prefix or ''
        self.page_size = page_size
        self._client = None

    @property
    def bucket_name(self) -> Optional[str]:
        return self.config.bucket

    @property
    def s3_client(self):
        """
        boto3 S3 client.

        Raises:
            ConfigurationError: If required connection parameters are missing
            StorageError: If the client cannot be created
        """
        missing = self.config.missing_parameters()
        if missing:
            raise ConfigurationError(
                f"Object storage not configured (missing: {', '.join(missing)})"
            )

        if self._client is None:
            try:
                self._client = boto3.client(
                    's3',
                    endpoint_url=self.config.endpoint or None,
                    aws_access_key_id=self.config.access_key_id,
                    aws_secret_access_key=self.config.secret_access_key,
                    region_name=self.config.region or ('auto' if self.config.endpoint else 'us-east-1')
                )
            except Exception as e:
                raise StorageError(f"Failed to initialize S3 client: {e}")

        return self._client

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def write(self, key: str, data: bytes, content_type: Optional[str] = None):
        """
        Upload bytes under a key, overwriting any existing object.

        Args:
            key: Object key (relative to prefix)
            data: Object content
            content_type: Optional MIME type

        Raises:
            ConfigurationError: If storage is not configured
            StorageError: If upload fails
        """
        client = self.s3_client
        params = {
            'Bucket': self.bucket_name,
            'Key': self._full_key(key),
            'Body': data
        }
        if content_type:
            params['ContentType'] = content_type

        try:
            client.put_object(**params)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 upload failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 upload failed: {e}")

    def read(self, key: str) -> Optional[bytes]:
        """
        Download an object.

        Args:
            key: Object key (relative to prefix)

        Returns:
            Object content, or None if the object does not exist

        Raises:
            ConfigurationError: If storage is not configured
            StorageError: If download fails for another reason
        """
        client = self.s3_client

        try:
            response = client.get_object(
                Bucket=self.bucket_name,
                Key=self._full_key(key)
            )
            return response['Body'].read()
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code in ('NoSuchKey', '404'):
                return None
            raise StorageError(f"S3 download failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 download failed: {e}")

    def list(self, prefix: str = '', suffix: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List objects, following continuation tokens until exhausted.

        Args:
            prefix: Key prefix to filter by (relative to this handler's prefix)
            suffix: Only include keys ending with this suffix

        Returns:
            List of dicts with 'key', 'size' and 'last_modified' keys

        Raises:
            ConfigurationError: If storage is not configured
            StorageError: If listing fails
        """
        client = self.s3_client

        try:
            objects = []
            paginator = client.get_paginator('list_objects_v2')
            pages = paginator.paginate(
                Bucket=self.bucket_name,
                Prefix=self._full_key(prefix),
                PaginationConfig={'PageSize': self.page_size}
            )

            for page in pages:
                for obj in page.get('Contents', []):
                    key = obj['Key'][len(self.prefix):]
                    if not key or key.endswith('/'):
                        continue
                    if suffix and not key.endswith(suffix):
                        continue
                    objects.append({
                        'key': key,
                        'size': obj['Size'],
                        'last_modified': obj['LastModified']
                    })

            return objects

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code == 'NoSuchBucket':
                return []
            raise StorageError(f"S3 list failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 list failed: {e}")

    def delete(self, key: str) -> bool:
        """
        Delete an object.

        Args:
            key: Object key (relative to prefix)

        Returns:
            True if the object existed and was deleted, False otherwise

        Raises:
            ConfigurationError: If storage is not configured
            StorageError: If deletion fails
        """
        client = self.s3_client
        full_key = self._full_key(key)

        try:
            # delete_object succeeds for missing keys, so check first
            client.head_object(Bucket=self.bucket_name, Key=full_key)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code in ('404', 'NoSuchKey', 'NotFound'):
                return False
            raise StorageError(f"S3 delete failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 delete failed: {e}")

        try:
            client.delete_object(Bucket=self.bucket_name, Key=full_key)
            return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 delete failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 delete failed: {e}")


class LocalStorage:
    """
    Handler for files in a local directory.

    Keys are relative POSIX paths under base_path. The directory is created
    on first write, so listing a location that was never written is not an
    error.
    """

    def __init__(self, base_path: str):
        """
        Initialize local storage handler.

        Args:
            base_path: Root directory for this storage
        """
        self.base_path = Path(base_path)

    def _path_for(self, key: str) -> Path:
        """
        Resolve a key to a path, rejecting keys that escape base_path.

        Raises:
            StorageError: If the key is empty or points outside base_path
        """
        if not key or key.startswith('/'):
            raise StorageError(f"Invalid storage key: {key!r}")

        root = self.base_path.resolve()
        path = (root / key).resolve()
        if root != path and root not in path.parents:
            raise StorageError(f"Storage key escapes base directory: {key!r}")
        return path

    def write(self, key: str, data: bytes, content_type: Optional[str] = None):
        """
        Write bytes to {base_path}/{key}, creating parent directories.

        Args:
            key: Relative file path
            data: File content
            content_type: Ignored for local files

        Raises:
            StorageError: If the write fails
        """
        path = self._path_for(key)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except PermissionError as e:
            raise StorageError(f"Permission denied writing to {path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to store locally: {e}")

    def read(self, key: str) -> Optional[bytes]:
        """
        Read a file.

        Returns:
            File content, or None if the file does not exist

        Raises:
            StorageError: If the file exists but cannot be read
        """
        path = self._path_for(key)

        if not path.is_file():
            return None

        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read local file {path}: {e}")

    def list(self, prefix: str = '', suffix: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List files recursively.

        Args:
            prefix: Only include keys starting with this prefix
            suffix: Only include keys ending with this suffix

        Returns:
            List of dicts with 'key', 'size' and 'last_modified' keys

        Raises:
            StorageError: If listing fails
        """
        if not self.base_path.exists():
            return []

        try:
            files = []

            for file_path in sorted(self.base_path.rglob('*')):
                if not file_path.is_file():
                    continue

                key = file_path.relative_to(self.base_path).as_posix()
                if prefix and not key.startswith(prefix):
                    continue
                if suffix and not key.endswith(suffix):
                    continue

                stat = file_path.stat()
                files.append({
                    'key': key,
                    'size': stat.st_size,
                    'last_modified': datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
                })

            return files

        except OSError as e:
            raise StorageError(f"Failed to list local files: {e}")

    def delete(self, key: str) -> bool:
        """
        Delete a file.

        Returns:
            True if the file existed and was deleted, False otherwise

        Raises:
            StorageError: If deletion fails
        """
        path = self._path_for(key)

        if not path.is_file():
            return False

        try:
            path.unlink()
            return True
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete local file: {e}")


def create_backup_storage(config: StorageConfig):
    """
    Storage handler for backup archives.

    Args:
        config: Storage configuration

    Returns:
        S3Storage under the backup prefix, or LocalStorage in the backup dir
    """
    if config.is_object_storage:
        return S3Storage(config, prefix=config.backup_prefix)
    return LocalStorage(config.local_backup_dir)


def create_media_storage(config: StorageConfig):
    """
    Storage handler for media blobs (keys stored verbatim).

    Args:
        config: Storage configuration

    Returns:
        S3Storage with no prefix, or LocalStorage in the media dir
    """
    if config.is_object_storage:
        return S3Storage(config)
    return LocalStorage(config.local_media_dir)
