"""
Connections to the SQL Server instance being backed up.

Two strategies:
- Direct: host and port are both configured, connect to that endpoint only
- Instance discovery: connect to host\\INSTANCE and let SQL Server Browser
  resolve the port, trying the configured instance name or the conventional
  default instances in order
"""

import logging
import socket
from typing import List, Optional

import pymssql

from mssql_backup.config import DatabaseSettings


logger = logging.getLogger(__name__)

# Tried in order when no instance name is configured
DEFAULT_INSTANCE_NAMES = ('MSSQLSERVER', 'SQLEXPRESS')


class DatabaseConnectionError(Exception):
    """Raised when no connection to SQL Server could be established."""

    def __init__(self, host: str, details: Optional[List[str]] = None):
        self.host = host
        self.details = details or []
        message = f"Could not connect to SQL Server on {host}"
        if self.details:
            message = f"{message}: {'; '.join(self.details)}"
        super().__init__(message)


def connect_to_database(settings: DatabaseSettings, log: Optional[logging.Logger] = None):
    """
    Open a new autocommit connection to the configured database.

    Args:
        settings: Database connection settings
        log: Logger to report connection attempts to

    Returns:
        pymssql connection

    Raises:
        DatabaseConnectionError: If every connection attempt fails
    """
    log = log or logger

    if settings.uses_direct_connection:
        log.info(f"Connecting to SQL Server at {settings.host}:{settings.port}")
        try:
            return _open_connection(settings, settings.host, port=settings.port)
        except pymssql.Error as e:
            raise DatabaseConnectionError(settings.host, [str(e)]) from e

    host = settings.host or socket.gethostname()

    if settings.instance_name:
        candidates = [settings.instance_name]
    else:
        candidates = list(DEFAULT_INSTANCE_NAMES)

    failures = []
    last_error = None

    for instance_name in candidates:
        server = f"{host}\\{instance_name}"
        log.info(f"Connecting to SQL Server instance {server}")
        try:
            return _open_connection(settings, server)
        except pymssql.Error as e:
            log.warning(f"Connection to {server} failed: {e}")
            failures.append(f"{instance_name}: {e}")
            last_error = e

    raise DatabaseConnectionError(host, failures) from last_error


def _open_connection(settings: DatabaseSettings, server: str, port: Optional[int] = None):
    connect_kwargs = {
        'server': server,
        'database': settings.database,
        'autocommit': True,
    }

    if port is not None:
        connect_kwargs['port'] = str(port)

    # Without explicit credentials the driver falls back to integrated authentication
    if settings.uses_sql_authentication:
        connect_kwargs['user'] = settings.user
        connect_kwargs['password'] = settings.password

    return pymssql.connect(**connect_kwargs)
