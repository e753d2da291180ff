"""
Backup cycle routes - manual trigger and scheduler status.
"""

from flask import Blueprint, jsonify

from mssql_backup.scheduler import (
    trigger_cycle_now,
    CycleInProgressError,
    get_last_cycle,
    get_scheduled_jobs,
    is_scheduler_running
)


bp = Blueprint('cycle', __name__, url_prefix='/api/cycle')


@bp.route('/run', methods=['POST'])
def run_cycle_now():
    """
    Trigger a backup cycle immediately.

    Returns:
        JSON with the ID of the one-time scheduler job
    """
    try:
        job_id = trigger_cycle_now()
    except CycleInProgressError as e:
        return jsonify({'error': str(e)}), 409
    except RuntimeError as e:
        return jsonify({'error': str(e)}), 503

    return jsonify({'message': 'Backup cycle triggered', 'job_id': job_id}), 202


@bp.route('/status', methods=['GET'])
def get_status():
    """
    Get scheduler state and the outcome of the most recent cycle.

    Returns:
        JSON with:
        - scheduler_status: 'running' or 'stopped'
        - last_cycle: state, timestamps and error of the last cycle (or null)
        - jobs: scheduled jobs with their next run time
    """
    return jsonify({
        'scheduler_status': 'running' if is_scheduler_running() else 'stopped',
        'last_cycle': get_last_cycle(),
        'jobs': get_scheduled_jobs()
    })
