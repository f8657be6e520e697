"""Shared access to the ldaplink configuration."""

from __future__ import annotations

import os
from pathlib import Path

from ..config import Config
from ..constants import CONFIG_PATH

__all__ = ["ConfigDependency", "config_dependency"]


class ConfigDependency:
    """Load the configuration once and hand it to every caller.

    The command-line interface, the Alembic environment, and the test suite
    all go through the same instance. The path comes from
    ``LDAPLINK_CONFIG_PATH`` (or the built-in default) until a command's
    ``--config-path`` option or a test replaces it.

    Loading the configuration also configures logging, so anything that
    obtains the configuration this way logs in the configured format.
    """

    def __init__(self) -> None:
        path = os.getenv("LDAPLINK_CONFIG_PATH", CONFIG_PATH)
        self._config_path = Path(path)
        self._config: Config | None = None

    async def __call__(self) -> Config:
        """Return the configuration, loading it on first use."""
        return self.config()

    @property
    def config_path(self) -> Path:
        """Path of the configuration file in use."""
        return self._config_path

    def config(self) -> Config:
        """Return the configuration, loading it on first use.

        Synchronous form of calling the object, for code that is not
        running inside an event loop such as the ``init`` command.
        """
        if self._config is None:
            self._config = self._load()
        return self._config

    def set_config_path(self, path: Path) -> None:
        """Switch to another configuration file and load it immediately.

        Parameters
        ----------
        path
            Path to the new configuration file.
        """
        self._config_path = path
        self._config = self._load()

    def _load(self) -> Config:
        config = Config.from_file(self._config_path)
        config.configure_logging()
        return config


config_dependency = ConfigDependency()
"""Process-wide source of the ldaplink configuration."""
