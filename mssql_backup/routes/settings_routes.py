"""
Settings routes - view and edit the service configuration file.
"""

import logging
from flask import Blueprint, jsonify, request, current_app

from mssql_backup.config import (
    ServiceConfig,
    ConfigError,
    load_service_config,
    save_service_config
)


bp = Blueprint('settings', __name__, url_prefix='/api/settings')
logger = logging.getLogger(__name__)

# (section, key) pairs never returned by the API; GET reports a <key>_hint instead
SECRET_KEYS = [
    ('mssql', 'pass'),
    ('api', 'server_token'),
    ('api', 'auth_token'),
]


def _mask(value: str) -> str:
    # Show first 3 and last 3 characters for long secrets
    if len(value) > 6:
        return f"{value[:3]}***{value[-3:]}"
    return "***"


@bp.route('/', methods=['GET'])
def get_settings():
    """
    Get the service configuration.

    Secrets are left out; each set secret is reported as a masked
    '<key>_hint' next to where it would be.

    Returns:
        JSON with 'configured' flag and the mssql/api/backup sections
    """
    try:
        service_config = load_service_config(current_app.config['CONFIG_PATH'])
    except ConfigError as e:
        return jsonify({'configured': False, 'error': str(e)})

    data = service_config.to_dict()
    for section, key in SECRET_KEYS:
        value = data[section].pop(key, None)
        if value:
            data[section][f"{key}_hint"] = _mask(value)

    data['configured'] = True
    return jsonify(data)


@bp.route('/', methods=['PUT'])
def update_settings():
    """
    Replace the service configuration.

    Request body: same layout as the configuration file
        - mssql: host, port, user, pass, database (required), instance_name
        - api: url (required), server_token, auth_token
        - backup: temp_path (required)

    Secrets left out of the request keep their stored value; a secret sent
    as null or an empty string is cleared. '<key>_hint' fields are ignored.

    Returns:
        JSON with success message
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'JSON body is required'}), 400

    config_path = current_app.config['CONFIG_PATH']

    try:
        current = load_service_config(config_path).to_dict()
    except ConfigError:
        current = None

    for section, key in SECRET_KEYS:
        target = data.get(section)
        if not isinstance(target, dict):
            continue
        target.pop(f"{key}_hint", None)
        if key not in target and current and current[section].get(key):
            target[key] = current[section][key]

    try:
        service_config = ServiceConfig.from_dict(data)
    except ConfigError as e:
        return jsonify({'error': str(e)}), 400

    try:
        save_service_config(service_config, config_path)
    except ConfigError as e:
        logger.error(f"Failed to save settings: {e}")
        return jsonify({'error': str(e)}), 500

    logger.info(f"Service configuration saved to {config_path}")

    return jsonify({'message': 'Settings saved successfully'})
