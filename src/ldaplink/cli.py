"""Administrative command-line interface."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click
import structlog
from safir.asyncio import run_with_asyncio
from safir.click import display_help
from safir.database import create_database_engine, stamp_database

from .crypto import CredentialCipher
from .database import initialize_ldaplink_database
from .dependencies.config import config_dependency
from .exceptions import LDAPLinkError
from .factory import Factory

__all__ = [
    "authenticate",
    "generate_key",
    "help",
    "init",
    "load_config",
    "main",
]


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Administrative command-line interface for ldaplink."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic)


@main.command()
@click.argument("username")
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    help="LDAP password of the user.",
)
@click.option(
    "--config-path",
    envvar="LDAPLINK_CONFIG_PATH",
    type=click.Path(path_type=Path),
    default=None,
    help="Application configuration file.",
)
@run_with_asyncio
async def authenticate(
    username: str, *, password: str, config_path: Path | None
) -> None:
    """Authenticate a user against LDAP.

    On success, prints the linked local user (created if necessary) as JSON.
    """
    if config_path:
        config_dependency.set_config_path(config_path)
    config = await config_dependency()
    engine = create_database_engine(
        config.database_url, config.database_password
    )
    try:
        async with Factory.standalone(config, engine) as factory:
            ldap_service = factory.create_ldap_service()
            user = await ldap_service.authenticate(username, password)
    except LDAPLinkError as e:
        raise click.ClickException(f"{e.error}: {e}") from e
    finally:
        await engine.dispose()
    sys.stdout.write(user.model_dump_json(indent=2) + "\n")


@main.command()
def generate_key() -> None:
    """Generate a new key for encrypting the LDAP bind password.

    The output is a random 32-byte key encoded in hex, suitable for the
    ``LDAPLINK_ENCRYPTION_KEY`` environment variable.
    """
    sys.stdout.write(CredentialCipher.generate_key() + "\n")


@main.command()
@click.option(
    "--config-path",
    envvar="LDAPLINK_CONFIG_PATH",
    type=click.Path(path_type=Path),
    default=None,
    help="Application configuration file.",
)
@click.option(
    "--alembic-config-path",
    envvar="LDAPLINK_ALEMBIC_CONFIG_PATH",
    type=click.Path(path_type=Path),
    default=None,
    help="Alembic configuration file. If given, stamp the database.",
)
@click.option(
    "--reset", default=False, is_flag=True, help="Delete all existing data."
)
def init(
    *, config_path: Path | None, alembic_config_path: Path | None, reset: bool
) -> None:
    """Initialize the database storage.

    Also loads the LDAP configuration from the ``LDAP_*`` environment
    variables, if ``LDAP_SERVER_URL`` is set.
    """
    if config_path:
        config_dependency.set_config_path(config_path)
    config = config_dependency.config()
    logger = structlog.get_logger("ldaplink")
    logger.debug("Initializing database")
    try:
        asyncio.run(initialize_ldaplink_database(config, logger, reset=reset))
    except LDAPLinkError as e:
        raise click.ClickException(f"{e.error}: {e}") from e
    if alembic_config_path:
        stamp_database(alembic_config_path)
    logger.debug("Finished initializing database")


@main.command()
@click.option(
    "--config-path",
    envvar="LDAPLINK_CONFIG_PATH",
    type=click.Path(path_type=Path),
    default=None,
    help="Application configuration file.",
)
@run_with_asyncio
async def load_config(*, config_path: Path | None) -> None:
    """Store the LDAP configuration from environment variables.

    Overwrites any stored configuration. Does nothing if ``LDAP_SERVER_URL``
    is not set.
    """
    if config_path:
        config_dependency.set_config_path(config_path)
    config = await config_dependency()
    logger = structlog.get_logger("ldaplink")
    engine = create_database_engine(
        config.database_url, config.database_password
    )
    try:
        async with Factory.standalone(config, engine) as factory:
            config_service = factory.create_ldap_config_service()
            stored = await config_service.load_from_external_source()
    except LDAPLinkError as e:
        raise click.ClickException(f"{e.error}: {e}") from e
    finally:
        await engine.dispose()
    if stored:
        logger.info("Stored LDAP configuration", enabled=stored.enabled)
    else:
        logger.warning("LDAP_SERVER_URL not set, nothing to load")
