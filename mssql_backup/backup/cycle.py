"""
Backup cycle - orchestrates one complete backup run.

Workflow:
1. Back up the database to a new file (backing_up)
2. Verify the file over a fresh connection (verifying)
3. Upload the file with its metadata (uploading)
4. Delete the local file (cleaning_up)

A failed verification deletes the unusable file. A failed upload keeps the
file for manual recovery; the retention sweep reclaims it later.
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from mssql_backup.config import ServiceConfig
from .engine import perform_backup, verify_backup, BackupError, VerifyError
from .upload import BackupApiClient, BackupCycleRecord


logger = logging.getLogger(__name__)


class CycleState(str, Enum):
    BACKING_UP = 'backing_up'
    VERIFYING = 'verifying'
    UPLOADING = 'uploading'
    CLEANING_UP = 'cleaning_up'
    DONE = 'done'
    FAILED = 'failed'


class CycleError(Exception):
    """Raised when a step of the backup cycle fails."""

    def __init__(self, step: str, message: str):
        super().__init__(f"Failed to {step} backup: {message}")
        self.step = step


class BackupCycle:
    """
    Runs the backup, verify, upload and cleanup steps strictly in sequence.
    """

    def __init__(
        self,
        service_config: ServiceConfig,
        api_client: Optional[BackupApiClient] = None,
        log: Optional[logging.Logger] = None
    ):
        """
        Initialize backup cycle.

        Args:
            service_config: Configuration, fixed for the duration of the cycle
            api_client: Client used for the upload (default: built from config)
            log: Logger receiving every cycle message
        """
        self.service_config = service_config
        self.log = log or logger
        self._owns_client = api_client is None
        self.api_client = api_client or BackupApiClient(service_config.api, log=self.log)
        self.state: Optional[CycleState] = None
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self.backup_path = None
        self.record: Optional[BackupCycleRecord] = None
        self.error: Optional[str] = None
        self.logs: List[str] = []

    def run(self) -> BackupCycleRecord:
        """
        Execute the cycle.

        Returns:
            BackupCycleRecord of the uploaded backup

        Raises:
            CycleError: If any step fails; .step names the failed step
        """
        self.started_at = datetime.now(timezone.utc)
        self._log(f"Starting backup cycle for database {self.service_config.mssql.database}")

        try:
            self._set_state(CycleState.BACKING_UP)
            try:
                self.backup_path = perform_backup(self.service_config, self.log)
            except BackupError as e:
                raise CycleError('perform', str(e)) from e
            self._log(f"Backup created at: {self.backup_path}")

            self._set_state(CycleState.VERIFYING)
            try:
                verify_backup(self.service_config, self.backup_path, self.log)
            except VerifyError as e:
                self._discard_backup()
                raise CycleError('verify', str(e)) from e

            completed_at = datetime.now(timezone.utc)
            self.record = BackupCycleRecord(
                started_at=self.started_at,
                completed_at=completed_at,
                backup_path=self.backup_path
            )

            self._set_state(CycleState.UPLOADING)
            try:
                self.api_client.upload(self.service_config.mssql.database, self.record)
            except Exception as e:
                self._log(f"Keeping local backup file {self.backup_path} after failed upload")
                raise CycleError('upload', str(e)) from e

            self._set_state(CycleState.CLEANING_UP)
            self._delete_uploaded_backup()

            self._set_state(CycleState.DONE)
            self._log("Backup cycle completed successfully")
            return self.record

        except CycleError as e:
            self.error = str(e)
            self._set_state(CycleState.FAILED)
            self._log(f"Backup cycle failed: {e}", level=logging.ERROR)
            raise

        finally:
            self.finished_at = datetime.now(timezone.utc)
            if self._owns_client:
                self.api_client.close()

    def _discard_backup(self):
        """Remove an unverified backup file."""
        try:
            os.remove(self.backup_path)
            self._log(f"Deleted unverified backup file {self.backup_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            self._log(f"Failed to delete unverified backup file {self.backup_path}: {e}", level=logging.ERROR)

    def _delete_uploaded_backup(self):
        """Remove the local copy of an uploaded backup; the retention sweep covers failures."""
        try:
            os.remove(self.backup_path)
            self._log(f"Local backup file {self.backup_path} deleted")
        except OSError as e:
            self._log(f"Failed to delete local backup file {self.backup_path}: {e}", level=logging.WARNING)

    def _set_state(self, state: CycleState):
        self.state = state
        self.log.debug(f"Backup cycle state: {state.value}")

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp and forward it to the logger.

        Args:
            message: Log message
            level: logging level
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        self.log.log(level, message)


def run_backup_cycle(
    service_config: ServiceConfig,
    api_client: Optional[BackupApiClient] = None,
    log: Optional[logging.Logger] = None
) -> BackupCycleRecord:
    """
    Run a single backup cycle.

    Returns:
        BackupCycleRecord of the uploaded backup

    Raises:
        CycleError: If any step fails
    """
    cycle = BackupCycle(service_config, api_client=api_client, log=log)
    return cycle.run()
