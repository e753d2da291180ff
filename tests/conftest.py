"""
Shared pytest fixtures for the MSSQL backup service tests.

This module provides fixtures for:
- Flask app and test client
- Service configuration objects and TOML files
- Mock fixtures for external services (SQL Server, backup API)
- Temporary backup files
"""

from unittest.mock import MagicMock, patch

import pytest

from mssql_backup import create_app
from mssql_backup.config import ServiceConfig, DatabaseSettings, ApiSettings, StorageSettings
from mssql_backup import scheduler as scheduler_module


CONFIG_TOML = """\
[mssql]
host = "db.example.com"
port = 1433
user = "backup_user"
pass = "backup_pass"
database = "OrdersDB"

[api]
url = "https://backups.example.com/"
server_token = "server-token-123"
auth_token = "auth-token-456"

[backup]
temp_path = "{temp_path}"
"""


@pytest.fixture(scope='function')
def app(tmp_path):
    """
    Create Flask app with test configuration.

    Logs and the service configuration file live in tmp_path; the scheduler
    is not started.
    """
    app = create_app('development', test_config={
        'TESTING': True,
        'CONFIG_PATH': str(tmp_path / 'config.toml'),
        'LOG_DIR': str(tmp_path / 'logs'),
    })

    yield app

    # Reset scheduler globals touched by tests
    scheduler_module.scheduler = None
    scheduler_module.flask_app = None
    scheduler_module.last_cycle = None


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture
def backup_dir(tmp_path):
    """Directory for temporary backup artifacts."""
    path = tmp_path / 'backups'
    path.mkdir()
    return path


@pytest.fixture
def service_config(backup_dir):
    """
    Service configuration with a direct database connection.

    Database: OrdersDB on db.example.com:1433
    """
    return ServiceConfig(
        mssql=DatabaseSettings(
            database='OrdersDB',
            host='db.example.com',
            port=1433,
            user='backup_user',
            password='backup_pass'
        ),
        api=ApiSettings(
            url='https://backups.example.com/',
            server_token='server-token-123',
            auth_token='auth-token-456'
        ),
        backup=StorageSettings(temp_path=str(backup_dir))
    )


@pytest.fixture
def config_file(app, backup_dir):
    """Write a complete config.toml at the app's CONFIG_PATH."""
    path = app.config['CONFIG_PATH']
    with open(path, 'w') as f:
        f.write(CONFIG_TOML.format(temp_path=backup_dir.as_posix()))
    return path


@pytest.fixture
def backup_file(backup_dir):
    """A backup artifact on disk."""
    path = backup_dir / 'OrdersDB_20240102_030405.bak'
    path.write_bytes(b'backup data' * 1000)
    return path


@pytest.fixture
def mock_connect():
    """
    Mock pymssql.connect for SQL Server connection testing.

    Returns the mock; its return_value is the connection whose cursor
    records executed commands.
    """
    with patch('mssql_backup.backup.connector.pymssql.connect') as mock_conn:
        connection = MagicMock()
        cursor = MagicMock()
        cursor.nextset.return_value = None
        connection.cursor.return_value = cursor
        mock_conn.return_value = connection

        yield mock_conn


def _make_response(status_code=200, body=None):
    """Build a mock requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    response.text = str(body)
    return response


@pytest.fixture
def make_response():
    """Factory for mock requests.Response objects."""
    return _make_response


@pytest.fixture
def mock_session():
    """Mock requests.Session for the backup API client."""
    session = MagicMock()
    session.post.return_value = _make_response(200, {'status': 'ok', 'backup_id': 42})
    return session
