"""
Log viewer routes.
"""

import os
from flask import Blueprint, jsonify, request, current_app

from mssql_backup.utils.log_reader import read_log_entries


bp = Blueprint('logs', __name__, url_prefix='/api/logs')


@bp.route('/', methods=['GET'])
def list_logs():
    """
    Get the most recent service log entries.

    Query params:
        - limit: Max number of entries (default: 200, max: 1000)
        - level: Only entries of this level (DEBUG/INFO/WARNING/ERROR/CRITICAL)

    Returns:
        JSON with entries (oldest first) and metadata
    """
    limit = request.args.get('limit', 200, type=int)
    level = request.args.get('level')

    # Enforce limits
    if limit > 1000:
        limit = 1000
    if limit < 1:
        limit = 1

    log_path = os.path.join(current_app.config['LOG_DIR'], current_app.config['LOG_FILENAME'])
    entries = read_log_entries(log_path, limit=limit, level=level)

    return jsonify({
        'entries': entries,
        'count': len(entries),
        'limit': limit
    })
