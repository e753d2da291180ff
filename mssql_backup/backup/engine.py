"""
Backup engine - issues BACKUP and RESTORE VERIFYONLY commands.

Each operation opens its own connection so that the session state of the
backup command never carries over into verification.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from mssql_backup.config import ServiceConfig
from .connector import connect_to_database


logger = logging.getLogger(__name__)

BACKUP_EXTENSION = 'bak'


class BackupError(Exception):
    """Raised when the backup command fails."""
    pass


class VerifyError(Exception):
    """Raised when verification of a backup file fails."""
    pass


def generate_backup_filename(database: str, now: Optional[datetime] = None) -> str:
    """
    Generate backup filename with UTC timestamp.

    Args:
        database: Database name
        now: Timestamp to use (default: current UTC time)

    Returns:
        Filename like: OrdersDB_20240102_030405.bak
    """
    if now is None:
        now = datetime.now(timezone.utc)
    return f"{database}_{now.strftime('%Y%m%d_%H%M%S')}.{BACKUP_EXTENSION}"


def _quote_identifier(name: str) -> str:
    return '[' + name.replace(']', ']]') + ']'


def _quote_literal(value: str) -> str:
    return "N'" + value.replace("'", "''") + "'"


def build_backup_command(database: str, backup_path: str) -> str:
    return (
        f"BACKUP DATABASE {_quote_identifier(database)} "
        f"TO DISK = {_quote_literal(backup_path)} "
        f"WITH NOFORMAT, NOINIT, NAME = {_quote_literal(database + '-Full Database Backup')}, "
        f"SKIP, NOREWIND, NOUNLOAD, STATS = 10"
    )


def build_verify_command(backup_path: str) -> str:
    return f"RESTORE VERIFYONLY FROM DISK = {_quote_literal(backup_path)}"


def _execute(conn, command: str):
    """Run a command and drain every result set it produces."""
    cursor = conn.cursor()
    try:
        cursor.execute(command)
        while cursor.nextset():
            pass
    finally:
        cursor.close()


def perform_backup(service_config: ServiceConfig, log: Optional[logging.Logger] = None) -> Path:
    """
    Back up the configured database to a new file in the storage directory.

    Args:
        service_config: Service configuration
        log: Logger for progress messages

    Returns:
        Path to the created backup file

    Raises:
        BackupError: If the directory cannot be created, the connection fails
            or the backup command fails
    """
    log = log or logger
    database = service_config.mssql.database

    storage_dir = Path(service_config.backup.temp_path)
    backup_path = storage_dir / generate_backup_filename(database)

    try:
        storage_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise BackupError(f"Failed to create backup directory {storage_dir}: {e}") from e

    try:
        conn = connect_to_database(service_config.mssql, log)
        try:
            log.info(f"Starting backup of {database} to {backup_path}")
            _execute(conn, build_backup_command(database, str(backup_path)))
        finally:
            conn.close()
    except Exception as e:
        raise BackupError(f"Backup of {database} failed: {e}") from e

    log.info("Backup command executed")
    return backup_path


def verify_backup(service_config: ServiceConfig, backup_path, log: Optional[logging.Logger] = None) -> bool:
    """
    Verify a backup file with RESTORE VERIFYONLY over a fresh connection.

    Args:
        service_config: Service configuration
        backup_path: Path to the backup file
        log: Logger for progress messages

    Returns:
        True if the backup verified successfully

    Raises:
        VerifyError: If the connection or the verify command fails
    """
    log = log or logger

    try:
        conn = connect_to_database(service_config.mssql, log)
        try:
            log.info(f"Verifying backup {backup_path}")
            _execute(conn, build_verify_command(str(backup_path)))
        finally:
            conn.close()
    except Exception as e:
        raise VerifyError(f"Verification of {backup_path} failed: {e}") from e

    log.info("Backup verified successfully")
    return True
