"""Alembic environment for the ldaplink schema."""

from alembic import context
from safir.database import run_migrations_offline, run_migrations_online
from safir.logging import configure_alembic_logging

from ldaplink.dependencies.config import config_dependency
from ldaplink.schema import SchemaBase

# The database URL and password come from the ldaplink configuration, not
# from alembic.ini. Loading it also sets up structlog.
ldaplink_config = config_dependency.config()
configure_alembic_logging()

if context.is_offline_mode():
    run_migrations_offline(SchemaBase.metadata, ldaplink_config.database_url)
else:
    run_migrations_online(
        SchemaBase.metadata,
        ldaplink_config.database_url,
        ldaplink_config.database_password,
    )
