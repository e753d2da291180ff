"""
Backup module for the MSSQL backup service.

This module handles the core backup lifecycle including:
- Database connections (direct or via instance discovery)
- Backup and verification commands
- Checksums and upload to the backup API
- Cycle orchestration
- Retention sweep of the local directory
"""

from .checksum import calculate_checksum
from .connector import connect_to_database, DatabaseConnectionError
from .engine import perform_backup, verify_backup, BackupError, VerifyError
from .upload import BackupApiClient, BackupCycleRecord, ApiError, UploadError
from .retention import RetentionSweeper, sweep_directory
from .cycle import BackupCycle, CycleState, CycleError, run_backup_cycle

__all__ = [
    'calculate_checksum',
    'connect_to_database',
    'DatabaseConnectionError',
    'perform_backup',
    'verify_backup',
    'BackupError',
    'VerifyError',
    'BackupApiClient',
    'BackupCycleRecord',
    'ApiError',
    'UploadError',
    'RetentionSweeper',
    'sweep_directory',
    'BackupCycle',
    'CycleState',
    'CycleError',
    'run_backup_cycle'
]
