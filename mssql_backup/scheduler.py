"""
APScheduler configuration for the MSSQL backup service.

Manages:
- The backup cycle, re-armed 24 hours after each run finishes
- The retention sweep, every 6 hours
- Manual cycle triggers
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from mssql_backup.config import load_service_config, ConfigError
from mssql_backup.backup.cycle import BackupCycle, CycleState, CycleError
from mssql_backup.backup.retention import sweep_directory, SWEEP_INTERVAL


logger = logging.getLogger(__name__)


class CycleInProgressError(Exception):
    """Raised when a manual cycle is requested while one is running."""
    pass

CYCLE_INTERVAL = timedelta(hours=24)

CYCLE_JOB_ID = 'backup_cycle'
SWEEP_JOB_ID = 'retention_sweep'

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None

# Outcome of the most recent cycle, kept in memory only
last_cycle = None

# Cycles never overlap, whether scheduled or triggered manually
_cycle_lock = threading.Lock()


def init_scheduler(app):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # Store Flask app reference for use in background threads
    flask_app = app

    executors = {
        'default': ThreadPoolExecutor(max_workers=3)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BackgroundScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone='UTC'
    )

    now = datetime.now(timezone.utc)

    # Retention sweep runs at startup, then on its own fixed interval
    scheduler.add_job(
        func=_run_sweep_job,
        trigger=IntervalTrigger(seconds=int(SWEEP_INTERVAL.total_seconds()), timezone='UTC'),
        next_run_time=now,
        id=SWEEP_JOB_ID,
        name='Retention Sweep',
        replace_existing=True
    )

    # First backup cycle runs at startup
    _schedule_next_cycle(run_date=now)

    return scheduler


def start_scheduler():
    """
    Start the APScheduler.

    Should be called after Flask app is initialized.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info(f"APScheduler started (state={scheduler.state})")

        for job in scheduler.get_jobs():
            next_run = job.next_run_time.isoformat() if job.next_run_time else 'N/A'
            logger.info(f"  - {job.id}: {job.name} (next run: {next_run})")
    else:
        logger.info(f"Scheduler already running (state={scheduler.state})")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def _schedule_next_cycle(run_date: Optional[datetime] = None):
    """
    Arm the periodic backup cycle job.

    Args:
        run_date: When to run (default: CYCLE_INTERVAL from now)
    """
    if run_date is None:
        run_date = datetime.now(timezone.utc) + CYCLE_INTERVAL

    # Unique per arming: the finished one-shot job is still being removed from the store
    scheduler.add_job(
        func=_run_scheduled_cycle,
        trigger=DateTrigger(run_date=run_date, timezone='UTC'),
        id=f"{CYCLE_JOB_ID}_{int(run_date.timestamp())}",
        name='Backup Cycle',
        replace_existing=True,
        misfire_grace_time=None  # A late cycle still runs
    )


def _load_config():
    return load_service_config(flask_app.config['CONFIG_PATH'])


def run_cycle(blocking: bool = True) -> bool:
    """
    Run one backup cycle inside the app context and record its outcome.

    Never raises: every failure is logged so that scheduling continues.

    Args:
        blocking: Wait for a cycle already in progress (periodic runs);
            manual runs pass False and are skipped instead of holding a
            worker thread

    Returns:
        False if the cycle was skipped because another one is running
    """
    if not _cycle_lock.acquire(blocking=blocking):
        logger.warning("Backup cycle already running, manual run skipped")
        return False

    try:
        _execute_cycle()
    finally:
        _cycle_lock.release()
    return True


def _execute_cycle():
    global last_cycle

    with flask_app.app_context():
        logger.info("Starting backup cycle...")

        try:
            service_config = _load_config()
        except ConfigError as e:
            logger.error(f"Backup cycle skipped: {e}")
            last_cycle = {
                'state': 'failed',
                'started_at': datetime.now(timezone.utc).isoformat(),
                'finished_at': datetime.now(timezone.utc).isoformat(),
                'error': str(e),
            }
            return

        cycle = BackupCycle(service_config)
        try:
            cycle.run()
        except CycleError:
            pass  # Already logged by the cycle
        except Exception as e:
            logger.exception(f"Backup cycle failed unexpectedly: {e}")
            cycle.state = CycleState.FAILED
            cycle.error = str(e)

        last_cycle = {
            'state': cycle.state.value if cycle.state else None,
            'started_at': cycle.started_at.isoformat() if cycle.started_at else None,
            'finished_at': cycle.finished_at.isoformat() if cycle.finished_at else None,
            'error': cycle.error,
        }


def _run_scheduled_cycle():
    """Run the periodic cycle and re-arm it once the run has finished."""
    try:
        run_cycle()
    finally:
        logger.info(f"Waiting {CYCLE_INTERVAL} until the next cycle")
        _schedule_next_cycle()


def _run_sweep_job():
    """Run the retention sweep against the configured backup directory."""
    with flask_app.app_context():
        try:
            service_config = _load_config()
            sweep_directory(service_config.backup.temp_path)
        except ConfigError as e:
            logger.error(f"Retention sweep skipped: {e}")
        except Exception as e:
            logger.exception(f"Retention sweep failed: {e}")


def trigger_cycle_now() -> str:
    """
    Manually trigger a backup cycle.

    The periodic schedule is not changed.

    Returns:
        ID of the one-time job

    Raises:
        RuntimeError: If the scheduler is not initialized
        CycleInProgressError: If a cycle is already running
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    if is_cycle_running():
        raise CycleInProgressError("A backup cycle is already running")

    now = datetime.now(timezone.utc)
    job_id = f"manual_cycle_{int(now.timestamp())}"

    # 1 second delay to avoid racing the scheduler's wakeup
    scheduler.add_job(
        func=run_cycle,
        kwargs={'blocking': False},
        trigger=DateTrigger(run_date=now + timedelta(seconds=1), timezone='UTC'),
        id=job_id,
        name='Manual Backup Cycle',
        replace_existing=True
    )

    logger.info("Manually triggered backup cycle")
    return job_id


def get_last_cycle() -> Optional[dict]:
    """Outcome of the most recent cycle in this process, if any."""
    return last_cycle


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs.

    Returns:
        List of dicts with job information
    """
    if scheduler is None:
        return []

    jobs = []

    for job in scheduler.get_jobs():
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        })

    return jobs


def is_cycle_running() -> bool:
    return _cycle_lock.locked()


def is_scheduler_running() -> bool:
    return scheduler is not None and scheduler.running
