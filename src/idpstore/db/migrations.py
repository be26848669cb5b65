"""
Schema migrations for the Service Provider configuration store.

Each step is keyed by the schema version that lacked its change. Upgrading
from version ``V`` applies every step whose key is ``>= V``, in order. Steps
inspect the live schema first and only add what is missing, so running a step
against an already migrated table is a no-op.
"""

from collections.abc import Callable
from dataclasses import dataclass

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Column, Table, inspect
from sqlalchemy.engine import Connection

from idpstore.core.exceptions import InvalidSchemaVersionError
from idpstore.core.logging import get_logger
from idpstore.db.schema import (
    ATTR_TYPE_GROUP_MAPPING,
    DEFAULT_PROTOCOL,
    GROUP_MAPPING_ATTRIBUTE,
    StoreTables,
    attr_type_column,
    cert_encrypt_column,
    default_relay_state_column,
    encrypted_assertion_column,
    logout_binding_type_column,
    logout_url_column,
    protocol_type_column,
)

logger = get_logger(__name__)


def parse_version(version: str) -> tuple[int, ...]:
    """Parse a dotted version string such as ``"1.0.4"`` into a comparable tuple."""
    try:
        parts = tuple(int(part) for part in str(version).strip().split("."))
    except ValueError:
        raise InvalidSchemaVersionError(str(version)) from None
    # "1.2" and "1.2.0" are the same version
    while len(parts) > 1 and parts[-1] == 0:
        parts = parts[:-1]
    return parts


def add_missing_columns(op: Operations, table: Table, *columns: Column) -> list[str]:
    """
    Add the given columns to ``table`` unless they already exist.

    A missing table is created with its full current layout instead.

    Returns:
        Names of the columns that were added
    """
    bind = op.get_bind()
    inspector = inspect(bind)
    if not inspector.has_table(table.name):
        table.create(bind, checkfirst=True)
        logger.info(f"Created missing table {table.name}")
        return []

    existing = {column["name"] for column in inspector.get_columns(table.name)}
    added = []
    for column in columns:
        if column.name in existing:
            logger.debug(f"Column {table.name}.{column.name} already present")
            continue
        op.add_column(table.name, column)
        added.append(column.name)
    return added


# =============================================================================
# Steps
# =============================================================================


def _add_encryption_columns(op: Operations, tables: StoreTables) -> None:
    add_missing_columns(op, tables.sp, cert_encrypt_column(), encrypted_assertion_column())


def _add_relay_state_column(op: Operations, tables: StoreTables) -> None:
    add_missing_columns(op, tables.sp, default_relay_state_column())


def _add_logout_columns(op: Operations, tables: StoreTables) -> None:
    add_missing_columns(op, tables.sp, logout_url_column(), logout_binding_type_column())


def _add_attribute_type(op: Operations, tables: StoreTables) -> None:
    add_missing_columns(op, tables.attributes, attr_type_column())
    attributes = tables.attributes
    op.execute(
        attributes.update()
        .where(attributes.c.attr_name == GROUP_MAPPING_ATTRIBUTE)
        .values(attr_type=ATTR_TYPE_GROUP_MAPPING)
    )


def _add_protocol_type(op: Operations, tables: StoreTables) -> None:
    added = add_missing_columns(op, tables.sp, protocol_type_column())
    # Only rows that predate the column are backfilled; WS-Fed rows stay untouched
    if "protocol_type" in added:
        op.execute(tables.sp.update().values(protocol_type=DEFAULT_PROTOCOL))


def _create_keypair_table(op: Operations, tables: StoreTables) -> None:
    tables.keypairs.create(op.get_bind(), checkfirst=True)


@dataclass(frozen=True)
class MigrationStep:
    """One idempotent schema change."""

    version: str
    description: str
    apply: Callable[[Operations, StoreTables], None]

    def run(self, connection: Connection, tables: StoreTables) -> None:
        """Apply the step on a synchronous connection (use via ``run_sync``)."""
        context = MigrationContext.configure(connection)
        self.apply(Operations(context), tables)


MIGRATIONS: tuple[MigrationStep, ...] = (
    MigrationStep("1.0", "add encryption certificate and encrypted assertion flag", _add_encryption_columns),
    MigrationStep("1.0.2", "add default relay state", _add_relay_state_column),
    MigrationStep("1.0.4", "add logout url and logout binding type", _add_logout_columns),
    MigrationStep("1.2", "add attribute type and flag group mapping rows", _add_attribute_type),
    MigrationStep("1.3", "add protocol type and backfill SAML", _add_protocol_type),
    MigrationStep("1.4", "create key pair table", _create_keypair_table),
)


def steps_from(old_version: str) -> list[MigrationStep]:
    """Return the steps needed to upgrade from ``old_version``, in order."""
    start = parse_version(old_version)
    return [step for step in MIGRATIONS if parse_version(step.version) >= start]
