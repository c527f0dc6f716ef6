"""
Backup routes - create, list, download, delete and restore site backups.
"""

import io
import logging
from flask import Blueprint, jsonify, request, send_file, current_app
from flask_login import login_required

from sitevault.backup.service import create_backup_service
from sitevault.backup.restore import create_restore_service
from sitevault.backup.archive import ValidationError
from sitevault.backup.storage import StorageConfig


bp = Blueprint('backup', __name__, url_prefix='/api/admin/backup')
logger = logging.getLogger(__name__)


def _flag(value, default: bool) -> bool:
    """Parse a boolean from JSON or form input."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _uploaded_archive():
    """
    Bytes of the uploaded archive ('file' field), or None.
    """
    upload = request.files.get('file')
    if upload is None:
        return None
    data = upload.read()
    return data or None


@bp.route('', methods=['GET'])
@login_required
def list_backups():
    """
    List stored backups, newest first.

    Returns:
        JSON with backups and storage status
    """
    config = StorageConfig.from_app_config(current_app.config)
    service = create_backup_service(current_app.config)

    backups = service.list_backups()

    return jsonify({
        'backups': [backup.to_dict() for backup in backups],
        'total': len(backups),
        'storage': {
            'type': config.storage_type,
            'configured': config.is_configured,
            'missing': config.missing_parameters()
        }
    })


@bp.route('', methods=['POST'])
@login_required
def create_backup():
    """
    Create a backup now.

    Body (JSON):
        - include_media: Archive media files (default: true)

    Returns:
        JSON with the created backup, or 500 with the failure reason
    """
    data = request.get_json(silent=True) or {}
    include_media = _flag(data.get('include_media'), True)

    service = create_backup_service(current_app.config)

    try:
        backup = service.create_backup(include_media=include_media)
    except Exception as e:
        logger.error(f"Backup failed: {e}")
        return jsonify({'error': f"Backup failed: {e}"}), 500

    return jsonify({
        'message': 'Backup created successfully',
        'backup': backup.to_dict()
    }), 201


@bp.route('/<backup_id>', methods=['GET'])
@login_required
def download_backup(backup_id):
    """
    Download a backup archive.

    Args:
        backup_id: Backup ID

    Returns:
        ZIP file with an X-Backup-Checksum header when the checksum is known
    """
    service = create_backup_service(current_app.config)

    data = service.download_backup(backup_id)
    if data is None:
        return jsonify({'error': 'Backup not found'}), 404

    response = send_file(
        io.BytesIO(data),
        mimetype='application/zip',
        as_attachment=True,
        download_name=f"{backup_id}.zip"
    )

    checksum = service.get_backup_checksum(backup_id)
    if checksum:
        response.headers['X-Backup-Checksum'] = f"sha256={checksum}"

    return response


@bp.route('/<backup_id>', methods=['DELETE'])
@login_required
def delete_backup(backup_id):
    """
    Delete a backup archive.

    Args:
        backup_id: Backup ID

    Returns:
        JSON with success message, or 404 if not found
    """
    service = create_backup_service(current_app.config)

    if not service.delete_backup(backup_id):
        return jsonify({'error': 'Backup not found'}), 404

    return jsonify({'message': f"Backup {backup_id} deleted successfully"})


@bp.route('/restore/preview', methods=['POST'])
@login_required
def preview_restore():
    """
    Preview an uploaded archive without restoring anything.

    Form:
        - file: Backup archive

    Returns:
        JSON preview, or 400 if the archive is invalid
    """
    data = _uploaded_archive()
    if data is None:
        return jsonify({'error': 'No backup file uploaded'}), 400

    service = create_restore_service(current_app.config)

    try:
        preview = service.preview(data)
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(preview.to_dict())


@bp.route('/restore', methods=['POST'])
@login_required
def apply_restore():
    """
    Restore an uploaded archive.

    Form:
        - file: Backup archive
        - restore_database: Upsert database records (default: true)
        - restore_media: Write media files back to storage (default: true)

    Returns:
        JSON restore result (success may be false with per-item errors),
        or 400 if the archive is invalid
    """
    data = _uploaded_archive()
    if data is None:
        return jsonify({'error': 'No backup file uploaded'}), 400

    restore_database = _flag(request.form.get('restore_database'), True)
    restore_media = _flag(request.form.get('restore_media'), True)

    if not restore_database and not restore_media:
        return jsonify({'error': 'Nothing to restore'}), 400

    service = create_restore_service(current_app.config)

    try:
        result = service.apply(
            data,
            restore_database=restore_database,
            restore_media=restore_media
        )
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(result.to_dict())
