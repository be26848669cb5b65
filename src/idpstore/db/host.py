"""
Tables owned by the host application.

The store reads its schema-version marker from the host's options table and
enumerates profile attribute keys from the host's user-meta table. Neither
table is created by ``ensure_schema()``; ``create_host_tables()`` exists for
standalone deployments and tests.
"""

from dataclasses import dataclass

from sqlalchemy import BigInteger, Column, Integer, MetaData, String, Table, Text
from sqlalchemy.ext.asyncio import AsyncEngine

from idpstore.core.config import Settings
from idpstore.db.schema import table_name, table_options

OPTIONS_TABLE = "options"
USERMETA_TABLE = "usermeta"

_IdType = BigInteger().with_variant(Integer, "sqlite")


@dataclass(frozen=True)
class HostTables:
    """Host collaborator tables."""

    metadata: MetaData
    options: Table
    usermeta: Table


def build_host_tables(settings: Settings) -> HostTables:
    """Build host table definitions; both are always per-site (prefixed)."""
    metadata = MetaData()
    options = table_options(settings)

    options_table = Table(
        table_name(OPTIONS_TABLE, settings, shared=False),
        metadata,
        Column("option_id", _IdType, primary_key=True, autoincrement=True),
        Column("option_name", String(191), nullable=False, unique=True),
        Column("option_value", Text, nullable=False),
        **options,
    )

    usermeta = Table(
        table_name(USERMETA_TABLE, settings, shared=False),
        metadata,
        Column("umeta_id", _IdType, primary_key=True, autoincrement=True),
        Column("user_id", _IdType, nullable=False, index=True),
        Column("meta_key", String(255), nullable=True, index=True),
        Column("meta_value", Text, nullable=True),
        **options,
    )

    return HostTables(metadata=metadata, options=options_table, usermeta=usermeta)


async def create_host_tables(engine: AsyncEngine, tables: HostTables) -> None:
    """Create the host tables if they do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(tables.metadata.create_all, checkfirst=True)
