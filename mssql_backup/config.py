import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, Any

import tomli_w


class ConfigError(Exception):
    """Raised when the service configuration is missing or invalid."""
    pass


class Config:
    """Base configuration"""

    # Service configuration file (database, API and storage settings)
    CONFIG_PATH = os.environ.get('CONFIG_PATH') or '/data/config.toml'

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'
    LOG_FILENAME = 'mssql_backup.log'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    CONFIG_PATH = os.environ.get('CONFIG_PATH') or os.path.join(BASE_DIR, 'config.toml')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}


@dataclass
class DatabaseSettings:
    """Connection target for the SQL Server instance being backed up."""
    database: str
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    instance_name: Optional[str] = None

    @property
    def uses_direct_connection(self) -> bool:
        return bool(self.host) and self.port is not None

    @property
    def uses_sql_authentication(self) -> bool:
        return bool(self.user) and bool(self.password)


@dataclass
class ApiSettings:
    """Remote backup API target."""
    url: str
    server_token: str
    auth_token: str

    @property
    def base_url(self) -> str:
        return self.url.rstrip('/')


@dataclass
class StorageSettings:
    """Local directory for temporary backup artifacts."""
    temp_path: str


@dataclass
class ServiceConfig:
    mssql: DatabaseSettings
    api: ApiSettings
    backup: StorageSettings

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServiceConfig':
        """
        Build a ServiceConfig from the TOML layout.

        Args:
            data: Dict with 'mssql', 'api' and 'backup' tables

        Returns:
            ServiceConfig instance

        Raises:
            ConfigError: If a required key is missing or a value is invalid
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a table")

        mssql = _table(data, 'mssql')
        api = _table(data, 'api')
        backup = _table(data, 'backup')

        port = mssql.get('port')
        if port is not None and port != '':
            try:
                port = int(port)
            except (TypeError, ValueError):
                raise ConfigError(f"Invalid port: {port!r}")
            if not 1 <= port <= 65535:
                raise ConfigError(f"Port out of range: {port}")
        else:
            port = None

        # Older configuration files carry a single token used for both purposes
        legacy_token = _optional_str(api.get('token'))

        database = DatabaseSettings(
            database=_required_str(mssql, 'database', 'mssql'),
            host=_optional_str(mssql.get('host')),
            port=port,
            user=_optional_str(mssql.get('user')),
            password=_optional_str(mssql.get('pass')),
            instance_name=_optional_str(mssql.get('instance_name'))
        )

        server_token = _optional_str(api.get('server_token')) or legacy_token
        auth_token = _optional_str(api.get('auth_token')) or legacy_token
        if not server_token or not auth_token:
            raise ConfigError("Missing required key: api.server_token / api.auth_token")

        return cls(
            mssql=database,
            api=ApiSettings(
                url=_required_str(api, 'url', 'api'),
                server_token=server_token,
                auth_token=auth_token
            ),
            backup=StorageSettings(temp_path=_required_str(backup, 'temp_path', 'backup'))
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the TOML layout, omitting unset optional keys."""
        mssql = {
            'host': self.mssql.host,
            'port': self.mssql.port,
            'user': self.mssql.user,
            'pass': self.mssql.password,
            'database': self.mssql.database,
            'instance_name': self.mssql.instance_name,
        }
        return {
            'mssql': {key: value for key, value in mssql.items() if value is not None},
            'api': {
                'url': self.api.url,
                'server_token': self.api.server_token,
                'auth_token': self.api.auth_token,
            },
            'backup': {
                'temp_path': self.backup.temp_path,
            },
        }


def _table(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    table = data.get(name)
    if not isinstance(table, dict):
        raise ConfigError(f"Missing configuration section: [{name}]")
    return table


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _required_str(table: Dict[str, Any], key: str, section: str) -> str:
    value = _optional_str(table.get(key))
    if not value:
        raise ConfigError(f"Missing required key: {section}.{key}")
    return value


def load_service_config(path: str) -> ServiceConfig:
    """
    Load the service configuration from a TOML file.

    Args:
        path: Path to config.toml

    Returns:
        ServiceConfig instance

    Raises:
        ConfigError: If the file is missing, unparsable or incomplete
    """
    config_file = Path(path)

    if not config_file.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(config_file, 'rb') as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file {path}: {e}") from e

    return ServiceConfig.from_dict(data)


def save_service_config(service_config: ServiceConfig, path: str):
    """
    Write the service configuration to a TOML file.

    Args:
        service_config: Configuration to persist
        path: Destination path

    Raises:
        ConfigError: If the file cannot be written
    """
    config_file = Path(path)

    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, 'wb') as f:
            tomli_w.dump(service_config.to_dict(), f)
    except OSError as e:
        raise ConfigError(f"Failed to write configuration file {path}: {e}") from e
