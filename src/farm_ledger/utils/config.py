"""
Configuration management for the Farm Ledger application.

This module handles:
- Ledger database and local outbox database locations
- Environment-specific configuration (development vs. production)
- Transaction retry limits
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    DEFAULT_MAX_TRANSACTION_ATTEMPTS,
    ENV_DATABASE_URL,
    ENV_ENVIRONMENT,
    ENV_MAX_TRANSACTION_ATTEMPTS,
    ENV_OUTBOX_DATABASE_URL,
    OUTBOX_DATABASE_FILENAME,
)

logger = logging.getLogger(__name__)


class Config:
    """
    Application configuration manager.

    Handles all configuration settings including database paths,
    environment settings and transaction limits. Database URLs can be
    overridden through FARM_LEDGER_DATABASE_URL and FARM_LEDGER_OUTBOX_URL,
    which is how a deployment points the ledger at a remote server while the
    outbox stays on the device.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_path = self._base_dir / DATABASE_FILENAME
        self._outbox_path = self._base_dir / OUTBOX_DATABASE_FILENAME

        self._database_url_override = os.environ.get(ENV_DATABASE_URL)
        self._outbox_url_override = os.environ.get(ENV_OUTBOX_DATABASE_URL)
        self._max_transaction_attempts = self._read_attempts()

        self._ensure_directories()

    def _get_project_data_dir(self) -> Path:
        """Get the project's data/ directory for development."""
        project_root = Path(__file__).parent.parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """Get the per-user application directory for production."""
        return Path.home() / ".farm_ledger"

    def _read_attempts(self) -> int:
        raw = os.environ.get(ENV_MAX_TRANSACTION_ATTEMPTS)
        if raw is None:
            return DEFAULT_MAX_TRANSACTION_ATTEMPTS
        try:
            attempts = int(raw)
        except ValueError:
            logger.warning(
                f"Ignoring invalid {ENV_MAX_TRANSACTION_ATTEMPTS}={raw!r}; "
                f"using {DEFAULT_MAX_TRANSACTION_ATTEMPTS}"
            )
            return DEFAULT_MAX_TRANSACTION_ATTEMPTS
        return max(1, attempts)

    def _ensure_directories(self):
        """Create the data directory when a file-based default is in use."""
        if self._database_url_override is None or self._outbox_url_override is None:
            self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the default ledger database file."""
        return self._database_path

    @property
    def outbox_path(self) -> Path:
        """Full path to the default local outbox database file."""
        return self._outbox_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy URL of the ledger store.

        Returns:
            Database URL string for SQLAlchemy
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def outbox_database_url(self) -> str:
        """SQLAlchemy URL of the local offline outbox."""
        if self._outbox_url_override:
            return self._outbox_url_override
        outbox_path_str = str(self._outbox_path).replace("\\", "/")
        return f"sqlite:///{outbox_path_str}"

    @property
    def max_transaction_attempts(self) -> int:
        """Attempts per consistency operation before giving up on conflicts."""
        return self._max_transaction_attempts

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if the default ledger database file exists.

        Returns:
            True if database file exists, False otherwise
        """
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument - this prevents accidental database
    switching mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    FARM_LEDGER_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_ENVIRONMENT, "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None
