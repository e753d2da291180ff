"""
Client for the remote backup API.

Uploads backup files as a streamed multipart request with retry and
exponential backoff, and exposes the listing and download-link endpoints
used by the control surface.
"""

import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Callable, Dict, Any, List

import requests
from requests_toolbelt.multipart.encoder import MultipartEncoder
from tenacity import Retrying, RetryCallState, stop_after_attempt, wait_exponential, retry_if_result

from mssql_backup.config import ApiSettings
from .checksum import calculate_checksum


logger = logging.getLogger(__name__)

UPLOAD_PATH = '/api/backups/upload'
BACKUPS_PATH = '/api/backups'

MAX_UPLOAD_ATTEMPTS = 10
INITIAL_BACKOFF_SECONDS = 1


class ApiError(Exception):
    """Raised when a request to the backup API fails."""
    pass


class UploadError(ApiError):
    """Raised when an upload fails after all attempts."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


@dataclass
class BackupCycleRecord:
    """Metadata of one backup cycle, sent along with the backup file."""
    started_at: datetime
    completed_at: datetime
    backup_path: Path
    checksum: Optional[str] = None

    @property
    def duration_seconds(self) -> int:
        return int((self.completed_at - self.started_at).total_seconds())


class BackupApiClient:
    """
    HTTP client for the backup API.

    Authenticates with the configured bearer token; uploads identify the
    server with the server token in the multipart body.
    """

    def __init__(
        self,
        api_settings: ApiSettings,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = MAX_UPLOAD_ATTEMPTS,
        log: Optional[logging.Logger] = None
    ):
        """
        Initialize API client.

        Args:
            api_settings: API base URL and tokens
            session: requests session to use (default: new session)
            sleep: Function used to wait between upload attempts
            max_attempts: Maximum number of upload attempts
            log: Logger for progress messages
        """
        self.api_settings = api_settings
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.sleep = sleep
        self.max_attempts = max_attempts
        self.log = log or logger

    def close(self):
        """Close the HTTP session if this client created it."""
        if self._owns_session:
            self.session.close()

    def _url(self, path: str) -> str:
        return f"{self.api_settings.base_url}{path}"

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f"Bearer {self.api_settings.auth_token}",
            'Accept': 'application/json',
        }

    def upload(self, database_name: str, record: BackupCycleRecord) -> Dict[str, Any]:
        """
        Upload a backup file with its cycle metadata.

        The checksum is computed once; the file is reopened and the multipart
        body rebuilt for every attempt since a consumed stream cannot be sent
        again.

        Args:
            database_name: Name of the backed up database
            record: Cycle metadata; its checksum is filled in

        Returns:
            Decoded JSON response body of the successful attempt

        Raises:
            UploadError: If every attempt fails
            OSError: If the backup file cannot be read
        """
        backup_path = Path(record.backup_path)
        record.checksum = calculate_checksum(str(backup_path))
        self.log.info(f"Checksum of {backup_path.name}: {record.checksum}")

        fields = {
            'token': self.api_settings.server_token,
            'database_name': database_name,
            'backup_started_at': record.started_at.isoformat(),
            'backup_completed_at': record.completed_at.isoformat(),
            'duration_seconds': str(record.duration_seconds),
            'checksum_sha256': record.checksum,
        }

        # Waits double from INITIAL_BACKOFF_SECONDS with no upper bound
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=INITIAL_BACKOFF_SECONDS),
            retry=retry_if_result(lambda body: body is None),
            sleep=self.sleep,
            before=self._log_attempt,
            retry_error_callback=self._raise_exhausted
        )

        body = retrying(self._attempt_upload, backup_path, fields)
        self.log.info("Upload successful")
        return body

    def _log_attempt(self, retry_state: RetryCallState):
        self.log.info(f"Uploading backup... Attempt {retry_state.attempt_number}/{self.max_attempts}")

    def _raise_exhausted(self, retry_state: RetryCallState):
        attempts = retry_state.attempt_number
        raise UploadError(f"Upload failed after {attempts} attempts.", attempts=attempts)

    def _attempt_upload(self, backup_path: Path, fields: Dict[str, str]) -> Optional[Dict[str, Any]]:
        """
        Send one upload request.

        Returns:
            Response body if the API accepted the upload, None otherwise
        """
        with open(backup_path, 'rb') as f:
            encoder = MultipartEncoder(fields={
                **fields,
                'backup_file': (os.path.basename(backup_path), f, 'application/octet-stream'),
            })
            headers = self._headers()
            headers['Content-Type'] = encoder.content_type

            try:
                response = self.session.post(self._url(UPLOAD_PATH), data=encoder, headers=headers)
            except requests.RequestException as e:
                self.log.error(f"Upload request failed: {e}")
                return None

        if not response.ok:
            self.log.error(f"Upload failed with status: {response.status_code}")
            return None

        try:
            body = response.json()
        except ValueError:
            self.log.error(f"API returned a non-JSON response: {response.text[:200]}")
            return None

        if not isinstance(body, dict) or body.get('status') != 'ok':
            self.log.error(f"API error: {body}")
            return None

        return body

    def list_backups(self) -> List[Dict[str, Any]]:
        """
        List backups stored by the API.

        Returns:
            List of backup entries as returned by the API

        Raises:
            ApiError: If the request fails
        """
        response = self._get(BACKUPS_PATH)
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Invalid backup list response: {e}") from e

    def request_download_link(self, backup_id: int) -> str:
        """
        Request a download URL for a stored backup.

        Args:
            backup_id: ID of the backup on the API side

        Returns:
            Download URL

        Raises:
            ApiError: If the request fails or the response has no URL
        """
        response = self._get(f"{BACKUPS_PATH}/{backup_id}/download")
        try:
            url = response.json().get('url')
        except (ValueError, AttributeError) as e:
            raise ApiError(f"Invalid download link response: {e}") from e

        if not url:
            raise ApiError("Download link response has no url")
        return url

    def _get(self, path: str) -> requests.Response:
        try:
            response = self.session.get(self._url(path), headers=self._headers())
        except requests.RequestException as e:
            raise ApiError(f"Request to {path} failed: {e}") from e

        if not response.ok:
            raise ApiError(f"Request to {path} failed with status: {response.status_code}")
        return response
