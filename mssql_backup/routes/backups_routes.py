"""
Remote backup routes - proxies the backup API's listing and download links.
"""

from flask import Blueprint, jsonify, current_app

from mssql_backup.config import load_service_config, ConfigError
from mssql_backup.backup.upload import BackupApiClient, ApiError


bp = Blueprint('backups', __name__, url_prefix='/api/backups')


def _api_client() -> BackupApiClient:
    service_config = load_service_config(current_app.config['CONFIG_PATH'])
    return BackupApiClient(service_config.api)


@bp.route('/', methods=['GET'])
def list_backups():
    """
    List backups stored by the remote API.

    Returns:
        JSON array of backup entries
    """
    try:
        client = _api_client()
    except ConfigError as e:
        return jsonify({'error': str(e)}), 400

    try:
        backups = client.list_backups()
    except ApiError as e:
        current_app.logger.error(f"Failed to fetch backups: {e}")
        return jsonify({'error': str(e)}), 502
    finally:
        client.close()

    return jsonify(backups)


@bp.route('/<int:backup_id>/download', methods=['GET'])
def download_link(backup_id):
    """
    Request a download link for a stored backup.

    Args:
        backup_id: Backup ID on the API side

    Returns:
        JSON with the download URL
    """
    try:
        client = _api_client()
    except ConfigError as e:
        return jsonify({'error': str(e)}), 400

    try:
        url = client.request_download_link(backup_id)
    except ApiError as e:
        current_app.logger.error(f"Failed to request download link: {e}")
        return jsonify({'error': str(e)}), 502
    finally:
        client.close()

    return jsonify({'url': url})
