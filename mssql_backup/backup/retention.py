"""
Retention sweep for the local backup directory.

Backups that could not be uploaded are left in the temporary directory; the
sweeper removes every file older than the retention threshold.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional


logger = logging.getLogger(__name__)

SWEEP_INTERVAL = timedelta(hours=6)
MAX_FILE_AGE = timedelta(hours=24)


class RetentionSweeper:
    """
    Deletes files older than max_age from a single directory.

    Errors on individual files are logged and collected; they never stop the
    sweep of the remaining files.
    """

    def __init__(self, directory: str, max_age: timedelta = MAX_FILE_AGE, log: Optional[logging.Logger] = None):
        """
        Initialize retention sweeper.

        Args:
            directory: Directory holding backup files
            max_age: Files last modified longer ago than this are deleted
            log: Logger for sweep messages
        """
        self.directory = directory
        self.max_age = max_age
        self.log = log or logger

    def sweep(self) -> Dict[str, Any]:
        """
        Delete expired files.

        Returns:
            Dict with summary of the sweep:
            {
                'scanned': int,
                'deleted': int,
                'errors': List[str]
            }
        """
        summary = {
            'scanned': 0,
            'deleted': 0,
            'errors': []
        }

        if not os.path.isdir(self.directory):
            self.log.debug(f"Backup directory {self.directory} does not exist, nothing to sweep")
            return summary

        self.log.info(f"Running retention sweep on {self.directory}")

        try:
            with os.scandir(self.directory) as it:
                entries = [entry for entry in it if entry.is_file(follow_symlinks=False)]
        except OSError as e:
            error_msg = f"Failed to list {self.directory}: {e}"
            self.log.error(error_msg)
            summary['errors'].append(error_msg)
            return summary

        now = datetime.now(timezone.utc)

        for entry in entries:
            summary['scanned'] += 1
            try:
                modified = datetime.fromtimestamp(entry.stat(follow_symlinks=False).st_mtime, tz=timezone.utc)
                if now - modified <= self.max_age:
                    continue

                self.log.info(f"Deleting old backup file: {entry.path}")
                os.remove(entry.path)
                summary['deleted'] += 1

            except FileNotFoundError:
                # Already removed, e.g. by a finished backup cycle
                continue
            except OSError as e:
                error_msg = f"Failed to delete {entry.path}: {e}"
                self.log.error(error_msg)
                summary['errors'].append(error_msg)

        self.log.info(
            f"Retention sweep complete. "
            f"Scanned: {summary['scanned']}, "
            f"Deleted: {summary['deleted']}, "
            f"Errors: {len(summary['errors'])}"
        )

        return summary


def sweep_directory(directory: str, log: Optional[logging.Logger] = None) -> Dict[str, Any]:
    """
    Run one retention sweep over a directory.

    This function should be called by the scheduler every SWEEP_INTERVAL.

    Returns:
        Summary dict from RetentionSweeper.sweep()
    """
    sweeper = RetentionSweeper(directory, log=log)
    return sweeper.sweep()
