"""Database utility functions for ldaplink."""

from __future__ import annotations

from safir.database import create_database_engine, initialize_database
from sqlalchemy.ext.asyncio import AsyncEngine
from structlog.stdlib import BoundLogger

from .config import Config
from .factory import Factory
from .schema import SchemaBase

__all__ = ["initialize_ldaplink_database"]


async def initialize_ldaplink_database(
    config: Config,
    logger: BoundLogger,
    engine: AsyncEngine | None = None,
    *,
    reset: bool = False,
) -> None:
    """Initialize the database.

    This is the internal async implementation details of the ``init`` command,
    except for the Alembic parts. Alembic has to run outside of a running
    asyncio loop, hence this separation.

    After the schema is created, the LDAP configuration is loaded from the
    environment if ``LDAP_SERVER_URL`` is set.

    Parameters
    ----------
    config
        ldaplink configuration.
    logger
        Logger to use for status reporting.
    engine
        If given, database engine to use, which avoids the need to create
        another one.
    reset
        If set to `True`, drop all tables before creating them.
    """
    if not engine:
        engine = create_database_engine(
            config.database_url, config.database_password
        )
    await initialize_database(
        engine, logger, schema=SchemaBase.metadata, reset=reset
    )
    async with Factory.standalone(config, engine) as factory:
        config_service = factory.create_ldap_config_service()
        logger.debug("Loading LDAP configuration from environment")
        await config_service.load_from_external_source()
    await engine.dispose()
