"""
Unit tests for SQL Server connections (mssql_backup/backup/connector.py).

Tests direct connections, instance discovery and authentication modes.
"""

from unittest.mock import MagicMock, patch

import pymssql
import pytest

from mssql_backup.backup.connector import (
    connect_to_database,
    DatabaseConnectionError,
    DEFAULT_INSTANCE_NAMES
)
from mssql_backup.config import DatabaseSettings


class TestDirectConnection:
    """Test connections with explicit host and port."""

    def test_connects_to_host_and_port(self, mock_connect):
        """Test direct connection uses host and port."""
        settings = DatabaseSettings(database='OrdersDB', host='db.example.com', port=1433)

        conn = connect_to_database(settings)

        assert conn == mock_connect.return_value
        mock_connect.assert_called_once()
        kwargs = mock_connect.call_args[1]
        assert kwargs['server'] == 'db.example.com'
        assert kwargs['port'] == '1433'
        assert kwargs['database'] == 'OrdersDB'
        assert kwargs['autocommit'] is True

    def test_direct_ignores_instance_name(self, mock_connect):
        """Test instance name is not used when host and port are set."""
        settings = DatabaseSettings(
            database='OrdersDB',
            host='db.example.com',
            port=1444,
            instance_name='SQLEXPRESS'
        )

        connect_to_database(settings)

        mock_connect.assert_called_once()
        assert mock_connect.call_args[1]['server'] == 'db.example.com'

    def test_direct_failure_does_not_fall_back(self, mock_connect):
        """Test a failed direct connection is not followed by discovery."""
        mock_connect.side_effect = pymssql.OperationalError('connection refused')
        settings = DatabaseSettings(database='OrdersDB', host='db.example.com', port=1433)

        with pytest.raises(DatabaseConnectionError) as exc_info:
            connect_to_database(settings)

        assert mock_connect.call_count == 1
        assert exc_info.value.host == 'db.example.com'
        assert 'db.example.com' in str(exc_info.value)


class TestInstanceDiscovery:
    """Test connections resolved through instance names."""

    @patch('mssql_backup.backup.connector.socket.gethostname', return_value='WORKSTATION')
    def test_tries_default_instances_in_order(self, mock_hostname, mock_connect):
        """Test default instances are tried in order until one succeeds."""
        connection = MagicMock()
        mock_connect.side_effect = [pymssql.OperationalError('not found'), connection]
        settings = DatabaseSettings(database='OrdersDB')

        conn = connect_to_database(settings)

        assert conn == connection
        servers = [c[1]['server'] for c in mock_connect.call_args_list]
        assert servers == [f"WORKSTATION\\{name}" for name in DEFAULT_INSTANCE_NAMES]

    @patch('mssql_backup.backup.connector.socket.gethostname', return_value='WORKSTATION')
    def test_stops_at_first_success(self, mock_hostname, mock_connect):
        """Test no further instances are tried after a successful connection."""
        settings = DatabaseSettings(database='OrdersDB')

        connect_to_database(settings)

        mock_connect.assert_called_once()
        assert mock_connect.call_args[1]['server'] == 'WORKSTATION\\MSSQLSERVER'
        assert 'port' not in mock_connect.call_args[1]

    @patch('mssql_backup.backup.connector.socket.gethostname', return_value='WORKSTATION')
    def test_all_instances_fail(self, mock_hostname, mock_connect):
        """Test a single error naming the resolved host after all candidates fail."""
        mock_connect.side_effect = pymssql.OperationalError('not found')
        settings = DatabaseSettings(database='OrdersDB')

        with pytest.raises(DatabaseConnectionError) as exc_info:
            connect_to_database(settings)

        assert mock_connect.call_count == len(DEFAULT_INSTANCE_NAMES)
        assert exc_info.value.host == 'WORKSTATION'
        assert 'WORKSTATION' in str(exc_info.value)
        assert len(exc_info.value.details) == len(DEFAULT_INSTANCE_NAMES)

    def test_explicit_instance_only(self, mock_connect):
        """Test an explicit instance name is the only candidate."""
        mock_connect.side_effect = pymssql.OperationalError('not found')
        settings = DatabaseSettings(database='OrdersDB', host='db.example.com', instance_name='REPORTING')

        with pytest.raises(DatabaseConnectionError):
            connect_to_database(settings)

        mock_connect.assert_called_once()
        assert mock_connect.call_args[1]['server'] == 'db.example.com\\REPORTING'

    def test_host_without_port_uses_discovery(self, mock_connect):
        """Test a host without port is combined with instance names."""
        settings = DatabaseSettings(database='OrdersDB', host='db.example.com')

        connect_to_database(settings)

        assert mock_connect.call_args[1]['server'] == 'db.example.com\\MSSQLSERVER'

    def test_port_without_host_uses_discovery(self, mock_connect):
        """Test a port without host does not trigger a direct connection."""
        settings = DatabaseSettings(database='OrdersDB', port=1433)

        with patch('mssql_backup.backup.connector.socket.gethostname', return_value='LOCALBOX'):
            connect_to_database(settings)

        assert mock_connect.call_args[1]['server'] == 'LOCALBOX\\MSSQLSERVER'


class TestAuthentication:
    """Test SQL and integrated authentication."""

    def test_sql_authentication(self, mock_connect):
        """Test user and password are passed when both are set."""
        settings = DatabaseSettings(
            database='OrdersDB', host='db', port=1433, user='sa', password='secret'
        )

        connect_to_database(settings)

        kwargs = mock_connect.call_args[1]
        assert kwargs['user'] == 'sa'
        assert kwargs['password'] == 'secret'

    def test_integrated_authentication_without_credentials(self, mock_connect):
        """Test credentials are omitted for integrated authentication."""
        settings = DatabaseSettings(database='OrdersDB', host='db', port=1433)

        connect_to_database(settings)

        kwargs = mock_connect.call_args[1]
        assert 'user' not in kwargs
        assert 'password' not in kwargs

    def test_user_without_password_uses_integrated(self, mock_connect):
        """Test a user without password falls back to integrated authentication."""
        settings = DatabaseSettings(database='OrdersDB', host='db', port=1433, user='sa')

        connect_to_database(settings)

        assert 'user' not in mock_connect.call_args[1]
