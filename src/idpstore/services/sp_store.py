"""
Service Provider configuration store.

Persists Service Provider records, their attribute mappings and key pairs, and
keeps the table layout at the current schema version. Every method maps onto
one or a few SQL statements; each statement runs in its own short transaction,
so multi-statement operations such as ``delete_sp`` are not atomic. Database
driver errors propagate unchanged.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel
from sqlalchemy import Table, and_, distinct, func, select, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from idpstore.core.config import CURRENT_SCHEMA_VERSION, Settings, get_settings
from idpstore.core.exceptions import (
    EmptyMatchError,
    ServiceProviderNotFoundError,
    UnknownColumnError,
)
from idpstore.core.logging import get_logger
from idpstore.db.host import HostTables, build_host_tables
from idpstore.db.migrations import parse_version, steps_from
from idpstore.db.schema import StoreTables, build_tables
from idpstore.schemas.service_provider import (
    AttributeMapping,
    KeyPair,
    ServiceProvider,
)
from idpstore.services.options import OptionStore

logger = get_logger(__name__)

Fields = Mapping[str, Any] | BaseModel


class SPConfigStore:
    """
    Data access for Service Provider configuration.

    Construct one per engine and pass it to whatever needs it:

        store = SPConfigStore(engine, settings=settings)
        await store.ensure_schema()
        sp_id = await store.insert_sp(ServiceProviderCreate(...))
    """

    def __init__(
        self,
        engine: AsyncEngine,
        options: OptionStore | None = None,
        settings: Settings | None = None,
        host_tables: HostTables | None = None,
    ) -> None:
        self.engine = engine
        self.settings = settings or get_settings()
        self.tables: StoreTables = build_tables(self.settings)
        self.host_tables = host_tables or build_host_tables(self.settings)
        self.options = options or OptionStore(engine, self.host_tables)

    # =========================================================================
    # Schema Management
    # =========================================================================

    async def schema_version(self) -> str | None:
        """Return the installed schema version, or ``None`` before first setup."""
        return await self.options.get_option(self.settings.schema_version_option)

    async def ensure_schema(self) -> list[str]:
        """
        Create or upgrade the store tables.

        A missing version marker means a fresh install: all tables are created
        and the current version is recorded. An older marker triggers
        ``migrate_from`` and the marker is bumped once every step succeeded.

        Returns:
            Versions of the migration steps that were applied
        """
        option = self.settings.schema_version_option
        old_version = await self.options.get_option(option)

        if not old_version:
            await self.create_tables()
            await self.options.update_option(option, CURRENT_SCHEMA_VERSION)
            logger.info(f"Created store tables at schema version {CURRENT_SCHEMA_VERSION}")
            return []

        old, current = parse_version(old_version), parse_version(CURRENT_SCHEMA_VERSION)
        if old > current:
            logger.warning(
                f"Installed schema version {old_version} is newer than "
                f"{CURRENT_SCHEMA_VERSION}; leaving tables untouched"
            )
            return []
        if old == current:
            return []

        applied = await self.migrate_from(old_version)
        await self.options.update_option(option, CURRENT_SCHEMA_VERSION)
        logger.info(f"Upgraded schema from {old_version} to {CURRENT_SCHEMA_VERSION}")
        return applied

    async def create_tables(self) -> None:
        """Create every store table that does not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(self.tables.metadata.create_all, checkfirst=True)

    async def create_keypair_table(self) -> None:
        """Create the key pair table if it does not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(self.tables.keypairs.create, checkfirst=True)

    async def migrate_from(self, old_version: str) -> list[str]:
        """
        Apply every migration step from ``old_version`` up to the latest.

        Each step commits on its own, so a failure leaves earlier steps applied
        and the version marker unchanged; re-running is safe.
        """
        applied = []
        for step in steps_from(old_version):
            logger.info(f"Applying migration {step.version}: {step.description}")
            async with self.engine.begin() as conn:
                await conn.run_sync(step.run, self.tables)
            applied.append(step.version)
        return applied

    # =========================================================================
    # Service Providers
    # =========================================================================

    async def list_sps(self) -> list[ServiceProvider]:
        """Return all Service Providers ordered by ID."""
        sp = self.tables.sp
        rows = await self._fetch_all(select(sp).order_by(sp.c.id))
        return [ServiceProvider.model_validate(dict(row)) for row in rows]

    async def get_sp(self, sp_id: int | str) -> ServiceProvider | None:
        """Return one Service Provider by primary key."""
        key = self._coerce_id(sp_id)
        if key is None:
            return None
        return await self._find_sp(self.tables.sp.c.id == key)

    async def count_sps(self) -> int:
        """Return the number of Service Providers."""
        async with self.engine.connect() as conn:
            result = await conn.execute(select(func.count()).select_from(self.tables.sp))
            return result.scalar_one()

    async def find_sp_by_issuer(self, issuer: str) -> ServiceProvider | None:
        return await self._find_sp(self.tables.sp.c.sp_issuer == issuer)

    async def find_sp_by_name(self, name: str) -> ServiceProvider | None:
        return await self._find_sp(self.tables.sp.c.sp_name == name)

    async def find_sp_by_acs(self, acs_url: str) -> ServiceProvider | None:
        return await self._find_sp(self.tables.sp.c.acs_url == acs_url)

    async def insert_sp(self, fields: Fields) -> int | None:
        """
        Insert a Service Provider.

        Args:
            fields: Column values, as a mapping or a ``ServiceProviderCreate``

        Returns:
            New primary key, or None if the driver did not report one
        """
        sp = self.tables.sp
        values = self._values(sp, fields)
        async with self.engine.begin() as conn:
            result = await conn.execute(sp.insert().values(**values))
        new_id = result.inserted_primary_key[0] if result.inserted_primary_key else None
        logger.info(f"Inserted Service Provider {new_id}")
        return new_id

    async def update_sp(self, fields: Fields, match: Mapping[str, Any]) -> None:
        """Update Service Providers matching ``match``; no match is not an error."""
        sp = self.tables.sp
        where = self._where(sp, match)
        values = self._values(sp, fields, partial=True)
        if not values:
            return
        async with self.engine.begin() as conn:
            await conn.execute(sp.update().where(where).values(**values))

    async def delete_sp(self, sp_match: Mapping[str, Any], attr_match: Mapping[str, Any]) -> None:
        """
        Delete Service Providers together with their dependent rows.

        Attribute mappings matching ``attr_match`` go first, then the key pairs
        of the matched Service Providers, then the Service Provider rows.
        """
        sp = self.tables.sp
        sp_where = self._where(sp, sp_match)

        await self.delete_attributes(attr_match)

        if "id" in sp_match:
            sp_ids = [sp_match["id"]]
        else:
            sp_ids = [row["id"] for row in await self._fetch_all(select(sp.c.id).where(sp_where))]
        for sp_id in sp_ids:
            await self.delete_keypair(sp_id)

        async with self.engine.begin() as conn:
            result = await conn.execute(sp.delete().where(sp_where))
        logger.info(f"Deleted {result.rowcount} Service Provider(s) matching {dict(sp_match)}")

    async def reset_all(self) -> None:
        """
        Remove every Service Provider, mapping and key pair.

        The Service Provider ID counter restarts so a re-imported configuration
        gets fresh IDs from the beginning.
        """
        tables = self.tables
        async with self.engine.begin() as conn:
            await conn.execute(tables.attributes.delete())
        async with self.engine.begin() as conn:
            await conn.execute(tables.sp.delete())
        async with self.engine.begin() as conn:
            await self._reset_identity(conn, tables.sp)
        async with self.engine.begin() as conn:
            await conn.execute(tables.keypairs.delete())
        logger.info("Reset all Service Provider configuration")

    # =========================================================================
    # Attribute Mappings
    # =========================================================================

    async def get_attributes(self, sp_id: int | str) -> list[AttributeMapping]:
        """Return the attribute mappings of one Service Provider."""
        key = self._coerce_id(sp_id)
        if key is None:
            return []
        attributes = self.tables.attributes
        query = (
            select(attributes)
            .where(attributes.c.sp_id == key)
            .order_by(attributes.c.id)
        )
        return [AttributeMapping.model_validate(dict(row)) for row in await self._fetch_all(query)]

    async def insert_attribute(self, fields: Fields) -> int | None:
        """
        Add an attribute mapping after checking that its owner exists.

        Raises:
            ServiceProviderNotFoundError: If ``sp_id`` matches no Service Provider
        """
        attributes = self.tables.attributes
        values = self._values(attributes, fields)
        sp_id = values.get("sp_id")
        if sp_id is None or await self.get_sp(sp_id) is None:
            raise ServiceProviderNotFoundError(sp_id)

        async with self.engine.begin() as conn:
            result = await conn.execute(attributes.insert().values(**values))
        return result.inserted_primary_key[0] if result.inserted_primary_key else None

    async def delete_attributes(self, match: Mapping[str, Any]) -> int:
        """Delete attribute mappings matching ``match``; returns the row count."""
        attributes = self.tables.attributes
        async with self.engine.begin() as conn:
            result = await conn.execute(attributes.delete().where(self._where(attributes, match)))
        return result.rowcount

    async def list_distinct_user_attribute_keys(self) -> list[str]:
        """Return the distinct profile attribute keys known to the host."""
        meta_key = self.host_tables.usermeta.c.meta_key
        query = select(distinct(meta_key)).where(meta_key.is_not(None)).order_by(meta_key)
        async with self.engine.connect() as conn:
            result = await conn.execute(query)
            return list(result.scalars().all())

    # =========================================================================
    # Key Pairs
    # =========================================================================

    async def get_keypair(self, sp_id: int | str) -> KeyPair | None:
        """Return the key pair stored for ``sp_id``."""
        keypairs = self.tables.keypairs
        query = select(keypairs).where(keypairs.c.client_id == str(sp_id)).limit(1)
        rows = await self._fetch_all(query)
        return KeyPair.model_validate(dict(rows[0])) if rows else None

    async def upsert_keypair(
        self,
        public_key: str,
        private_key: str,
        sp_id: int | str | None = None,
        encryption_algorithm: str | None = None,
    ) -> int | None:
        """
        Store the key pair of a Service Provider, replacing any existing one.

        Without ``sp_id`` the first Service Provider in the store is used.

        Returns:
            Affected row count, or None when the store holds no Service Provider

        Raises:
            ServiceProviderNotFoundError: If an explicit ``sp_id`` does not exist
        """
        if sp_id is None:
            sp_id = await self._first_sp_id()
            if sp_id is None:
                logger.debug("No Service Provider configured; key pair not stored")
                return None
        elif await self.get_sp(sp_id) is None:
            raise ServiceProviderNotFoundError(sp_id)

        keypairs = self.tables.keypairs
        client_id = str(sp_id)
        values: dict[str, Any] = {"public_key": public_key, "private_key": private_key}
        if encryption_algorithm:
            values["encryption_algorithm"] = encryption_algorithm

        existing = await self.get_keypair(client_id)
        async with self.engine.begin() as conn:
            if existing is None:
                result = await conn.execute(keypairs.insert().values(client_id=client_id, **values))
            else:
                result = await conn.execute(
                    keypairs.update().where(keypairs.c.client_id == client_id).values(**values)
                )
        return result.rowcount

    async def delete_keypair(self, sp_id: int | str) -> int:
        """Delete the key pair stored for ``sp_id``; returns the row count."""
        keypairs = self.tables.keypairs
        async with self.engine.begin() as conn:
            result = await conn.execute(
                keypairs.delete().where(keypairs.c.client_id == str(sp_id))
            )
        return result.rowcount

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _fetch_all(self, query) -> list[Mapping[str, Any]]:
        async with self.engine.connect() as conn:
            result = await conn.execute(query)
            return list(result.mappings().all())

    async def _find_sp(self, condition: ColumnElement[bool]) -> ServiceProvider | None:
        sp = self.tables.sp
        rows = await self._fetch_all(select(sp).where(condition).order_by(sp.c.id).limit(1))
        return ServiceProvider.model_validate(dict(rows[0])) if rows else None

    async def _first_sp_id(self) -> int | None:
        sp = self.tables.sp
        async with self.engine.connect() as conn:
            result = await conn.execute(select(sp.c.id).order_by(sp.c.id).limit(1))
            return result.scalar_one_or_none()

    @staticmethod
    def _coerce_id(sp_id: int | str) -> int | None:
        """Primary keys are integers; anything else can never match a row."""
        try:
            return int(sp_id)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _values(table: Table, fields: Fields, partial: bool = False) -> dict[str, Any]:
        """Turn ``fields`` into column values, rejecting unknown keys."""
        if isinstance(fields, BaseModel):
            values = fields.model_dump(mode="json", exclude_unset=partial)
        else:
            values = dict(fields)
        unknown = sorted(key for key in values if key not in table.c)
        if unknown:
            raise UnknownColumnError(table.name, unknown)
        return values

    @staticmethod
    def _where(table: Table, match: Mapping[str, Any]) -> ColumnElement[bool]:
        """Build an AND of equality conditions from ``match``."""
        if not match:
            raise EmptyMatchError(table.name)
        unknown = sorted(key for key in match if key not in table.c)
        if unknown:
            raise UnknownColumnError(table.name, unknown)
        return and_(
            *(
                table.c[key].is_(None) if value is None else table.c[key] == value
                for key, value in match.items()
            )
        )

    @staticmethod
    async def _reset_identity(conn: AsyncConnection, table: Table) -> None:
        """Restart the auto-increment counter of ``table`` for the current dialect."""
        dialect = conn.dialect.name
        if dialect == "sqlite":
            # Tables created without AUTOINCREMENT have no counter to reset
            has_sequence = (
                await conn.execute(
                    text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'")
                )
            ).first()
            if has_sequence is None:
                logger.debug(f"No sqlite_sequence; ids of {table.name} restart on their own")
                return
            await conn.execute(
                text("DELETE FROM sqlite_sequence WHERE name = :name"),
                {"name": table.name},
            )
        elif dialect in ("mysql", "mariadb"):
            quoted = conn.dialect.identifier_preparer.format_table(table)
            await conn.execute(text(f"ALTER TABLE {quoted} AUTO_INCREMENT = 1"))
        elif dialect == "postgresql":
            await conn.execute(
                text("SELECT setval(pg_get_serial_sequence(:name, 'id'), 1, false)"),
                {"name": table.name},
            )
        else:
            logger.debug(f"No identity reset for dialect {dialect}")
