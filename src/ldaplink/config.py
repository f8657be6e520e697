"""Configuration for ldaplink.

ldaplink is configured by a YAML file, but secrets and deployment-specific
settings are normally injected via environment variables, which take
precedence. Only the settings with explicit ``validation_alias`` settings
support configuration via environment variable.

The LDAP server settings are separate. They are read from the ``LDAP_``
environment variables only when the stored LDAP configuration is loaded from
the environment, and are then kept in the database.
"""

from __future__ import annotations

from pathlib import Path
from typing import Self, override

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from safir.logging import LogLevel, Profile, configure_logging
from safir.pydantic import EnvAsyncPostgresDsn

from .constants import DEFAULT_USER_FILTER, RECONCILE_RETRIES

__all__ = [
    "CamelCaseSettings",
    "Config",
    "EnvFirstSettings",
    "LDAPEnvironment",
    "UserDefaults",
]


class CamelCaseSettings(BaseSettings):
    """Base class for Pydantic settings supporting camel-case.

    This base class also forbids all extra attributes.
    """

    model_config = SettingsConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )


class EnvFirstSettings(CamelCaseSettings):
    """Base class for Pydantic settings with environment overrides.

    Classes that inherit from this base class will prioritize environment
    variables over arguments to the class constructor.
    """

    @override
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Override the sources of settings.

        Deactivate :file:`.env` and secret file support. Allow environment
        variables to override init parameters, since init parameters come
        from the YAML configuration file.
        """
        return (env_settings, init_settings)


class UserDefaults(BaseModel):
    """Settings for local users created on first LDAP login."""

    model_config = ConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    balance: float = Field(
        0.0,
        title="Initial balance",
        description="Balance of newly created local users",
    )

    concurrency: int = Field(
        5,
        title="Initial concurrency limit",
        description="Concurrency limit of newly created local users",
        ge=0,
    )


class LDAPEnvironment(BaseSettings):
    """LDAP server settings from environment variables.

    Used to load the stored LDAP configuration at startup. Empty variables
    are treated as unset. If ``LDAP_SERVER_URL`` is not set, there is no
    configuration in the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="LDAP_", env_ignore_empty=True, extra="ignore"
    )

    server_url: str | None = Field(
        None,
        title="LDAP server URL",
        description="URL of the server, with scheme ``ldap`` or ``ldaps``",
    )

    bind_dn: str | None = Field(None, title="Service bind DN")

    bind_password: SecretStr | None = Field(
        None, title="Service bind password"
    )

    base_dn: str | None = Field(None, title="Search base DN")

    user_filter: str = Field(
        DEFAULT_USER_FILTER,
        title="User search filter",
        description="Filter template with one ``%s`` for the username",
    )

    enabled: bool = Field(False, title="Whether LDAP login is enabled")

    tls_enabled: bool = Field(False, title="Whether to use StartTLS")

    tls_skip_verify: bool = Field(
        False, title="Whether to skip TLS certificate verification"
    )

    @property
    def missing(self) -> list[str]:
        """Names of required environment variables that are not set."""
        required = {
            "LDAP_BIND_DN": self.bind_dn,
            "LDAP_BIND_PASSWORD": self.bind_password,
            "LDAP_BASE_DN": self.base_dn,
        }
        return [k for k, v in required.items() if not v]


class Config(EnvFirstSettings):
    """Configuration for ldaplink."""

    database_url: EnvAsyncPostgresDsn = Field(
        ...,
        title="Database DSN",
        description="DSN for the PostgreSQL database",
        validation_alias=AliasChoices("LDAPLINK_DATABASE_URL", "databaseUrl"),
    )

    database_password: SecretStr | None = Field(
        None,
        title="Database password",
        description="Password for the PostgreSQL database",
        validation_alias=AliasChoices(
            "LDAPLINK_DATABASE_PASSWORD", "databasePassword"
        ),
    )

    encryption_key: SecretStr | None = Field(
        None,
        title="LDAP encryption key",
        description=(
            "Hex-encoded 32-byte key used to encrypt the LDAP service bind"
            " password in the database. Generate one with"
            " ``ldaplink generate-key``. Required to use LDAP."
        ),
        validation_alias=AliasChoices(
            "LDAPLINK_ENCRYPTION_KEY", "LDAP_ENCRYPTION_KEY", "encryptionKey"
        ),
    )

    log_level: LogLevel = Field(
        LogLevel.INFO,
        title="Log level",
        description="Python logging level",
        validation_alias=AliasChoices("LDAPLINK_LOG_LEVEL", "logLevel"),
    )

    log_profile: Profile = Field(
        Profile.production,
        title="Logging profile",
        description="Use ``development`` for human-readable console logs",
        validation_alias=AliasChoices("LDAPLINK_LOG_PROFILE", "logProfile"),
    )

    reconcile_retries: int = Field(
        RECONCILE_RETRIES,
        title="Reconciliation retries",
        description=(
            "How many times to retry linking an LDAP user after losing a race"
            " with a concurrent login for the same new user"
        ),
        ge=0,
    )

    user_defaults: UserDefaults = Field(
        default_factory=UserDefaults,
        title="New user defaults",
        description="Settings for local users created on first LDAP login",
    )

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Construct a Config object from a configuration file.

        Parameters
        ----------
        path
            Path to the configuration file in YAML.

        Returns
        -------
        Config
            The corresponding `Config` object.
        """
        with path.open("r") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def configure_logging(self) -> None:
        """Configure logging based on the ldaplink configuration."""
        configure_logging(
            name="ldaplink",
            profile=self.log_profile,
            log_level=self.log_level,
        )
