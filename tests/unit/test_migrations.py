"""
Tests for schema versioning and migrations.

Legacy layouts are created by hand with the columns an older release had, then
upgraded through ``ensure_schema()``.
"""

import pytest
from sqlalchemy import Column, Integer, MetaData, SmallInteger, String, Table, Text, select

from idpstore.core.config import CURRENT_SCHEMA_VERSION
from idpstore.core.exceptions import InvalidSchemaVersionError
from idpstore.db.host import build_host_tables, create_host_tables
from idpstore.db.migrations import MIGRATIONS, parse_version, steps_from
from idpstore.db.session import create_engine
from idpstore.services.sp_store import SPConfigStore


def legacy_tables(store: SPConfigStore) -> MetaData:
    """Layout written by schema version 1.0: no later columns, no key pair table."""
    metadata = MetaData()
    Table(
        store.tables.sp.name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("sp_name", Text, nullable=False),
        Column("sp_issuer", Text, nullable=False),
        Column("acs_url", Text, nullable=False),
        Column("cert", Text, nullable=True),
        Column("nameid_format", Text, nullable=False),
        Column("nameid_attr", String(55), nullable=False, server_default="emailAddress"),
        Column("response_signed", SmallInteger, nullable=True),
        Column("assertion_signed", SmallInteger, nullable=True),
        Column("enable_group_mapping", SmallInteger, nullable=True),
        sqlite_autoincrement=True,
    )
    Table(
        store.tables.attributes.name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("sp_id", Integer),
        Column("attr_name", Text, nullable=False),
        Column("attr_value", Text, nullable=False),
    )
    return metadata


async def install_legacy(store: SPConfigStore, version: str) -> None:
    metadata = legacy_tables(store)
    async with store.engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        await conn.execute(
            metadata.tables[store.tables.sp.name].insert().values(
                sp_name="Legacy",
                sp_issuer="urn:legacy",
                acs_url="https://legacy.example.com/acs",
                nameid_format="urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress",
            )
        )
        await conn.execute(
            metadata.tables[store.tables.attributes.name].insert(),
            [
                {"sp_id": 1, "attr_name": "groupMapName", "attr_value": "groups"},
                {"sp_id": 1, "attr_name": "mail", "attr_value": "user_email"},
            ],
        )
    await store.options.update_option(store.settings.schema_version_option, version)


class TestVersionParsing:
    """Dotted version strings."""

    def test_parse_and_compare(self):
        assert parse_version("1.0.4") < parse_version("1.2")
        assert parse_version("1.2") == parse_version("1.2.0")
        assert parse_version(" 1.10 ") > parse_version("1.9")

    @pytest.mark.parametrize("version", ["", "abc", "1..2", "v1.0"])
    def test_invalid_versions(self, version):
        with pytest.raises(InvalidSchemaVersionError):
            parse_version(version)

    def test_steps_are_ordered(self):
        versions = [parse_version(step.version) for step in MIGRATIONS]
        assert versions == sorted(versions)
        assert parse_version(MIGRATIONS[-1].version) < parse_version(CURRENT_SCHEMA_VERSION)


class TestStepSelection:
    """Which steps run for a stored version."""

    def test_oldest_version_runs_everything(self):
        assert [s.version for s in steps_from("1.0")] == ["1.0", "1.0.2", "1.0.4", "1.2", "1.3", "1.4"]

    def test_intermediate_version_falls_through(self):
        assert [s.version for s in steps_from("1.2")] == ["1.2", "1.3", "1.4"]

    def test_unlisted_version_runs_later_steps(self):
        assert [s.version for s in steps_from("1.1")] == ["1.2", "1.3", "1.4"]

    def test_current_version_runs_nothing(self):
        assert steps_from(CURRENT_SCHEMA_VERSION) == []


class TestEnsureSchema:
    """Fresh installs and upgrades."""

    @pytest.mark.asyncio
    async def test_fresh_install_creates_tables_and_records_version(
        self, bare_store: SPConfigStore, inspect_tables
    ):
        assert await bare_store.schema_version() is None

        applied = await bare_store.ensure_schema()

        assert applied == []
        assert await bare_store.schema_version() == CURRENT_SCHEMA_VERSION
        names = await inspect_tables(bare_store.engine)
        assert {
            bare_store.tables.sp.name,
            bare_store.tables.attributes.name,
            bare_store.tables.keypairs.name,
        } <= names

    @pytest.mark.asyncio
    async def test_current_version_is_a_no_op(self, store: SPConfigStore):
        assert await store.ensure_schema() == []

    @pytest.mark.asyncio
    async def test_upgrade_from_first_release_matches_fresh_layout(
        self, bare_store: SPConfigStore, settings_factory, tmp_path, inspect_columns
    ):
        await install_legacy(bare_store, "1.0")

        applied = await bare_store.ensure_schema()

        assert applied == [step.version for step in MIGRATIONS]
        assert await bare_store.schema_version() == CURRENT_SCHEMA_VERSION

        fresh_settings = settings_factory(tmp_path / "fresh.db")
        fresh_engine = create_engine(fresh_settings)
        try:
            host = build_host_tables(fresh_settings)
            await create_host_tables(fresh_engine, host)
            fresh = SPConfigStore(fresh_engine, settings=fresh_settings, host_tables=host)
            await fresh.ensure_schema()
            for table in (fresh.tables.sp, fresh.tables.attributes, fresh.tables.keypairs):
                assert await inspect_columns(bare_store.engine, table.name) == await inspect_columns(
                    fresh_engine, table.name
                )
        finally:
            await fresh_engine.dispose()

    @pytest.mark.asyncio
    async def test_upgrade_backfills_existing_rows(self, bare_store: SPConfigStore):
        await install_legacy(bare_store, "1.0")

        await bare_store.ensure_schema()

        sp = await bare_store.get_sp(1)
        assert sp.protocol_type == "SAML"
        assert sp.logout_binding_type == "HttpRedirect"
        assert sp.cert_encrypt is None
        kinds = {a.attr_name: a.attr_type for a in await bare_store.get_attributes(1)}
        assert kinds == {"groupMapName": 1, "mail": 0}

    @pytest.mark.asyncio
    async def test_upgraded_store_accepts_key_pairs(self, bare_store: SPConfigStore):
        await install_legacy(bare_store, "1.0")
        await bare_store.ensure_schema()

        assert await bare_store.upsert_keypair("pub", "priv") == 1
        assert (await bare_store.get_keypair(1)).public_key == "pub"

    @pytest.mark.asyncio
    async def test_steps_are_idempotent(self, store: SPConfigStore):
        sp_id = await store.insert_sp(
            {
                "sp_name": "Fed",
                "sp_issuer": "urn:fed",
                "acs_url": "https://fed.example.com/wsfed",
                "nameid_format": "urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified",
                "protocol_type": "WS-Fed",
            }
        )

        # Every column already exists; replaying the chain must not fail or backfill
        applied = await store.migrate_from("1.0")

        assert len(applied) == len(MIGRATIONS)
        assert (await store.get_sp(sp_id)).protocol_type == "WS-Fed"

    @pytest.mark.asyncio
    async def test_interrupted_upgrade_can_be_rerun(self, bare_store: SPConfigStore):
        await install_legacy(bare_store, "1.0")
        await bare_store.migrate_from("1.0")

        # Version marker was never bumped, so the next start replays everything
        assert await bare_store.schema_version() == "1.0"
        assert await bare_store.ensure_schema() == [step.version for step in MIGRATIONS]

    @pytest.mark.asyncio
    async def test_newer_installed_version_is_left_alone(self, store: SPConfigStore):
        await store.options.update_option(store.settings.schema_version_option, "9.0")

        assert await store.ensure_schema() == []
        assert await store.schema_version() == "9.0"

    @pytest.mark.asyncio
    async def test_garbage_version_marker_raises(self, store: SPConfigStore):
        await store.options.update_option(store.settings.schema_version_option, "latest")

        with pytest.raises(InvalidSchemaVersionError):
            await store.ensure_schema()

    @pytest.mark.asyncio
    async def test_create_keypair_table_is_idempotent(self, store: SPConfigStore):
        await store.create_keypair_table()
        await store.create_keypair_table()

        async with store.engine.connect() as conn:
            assert (await conn.execute(select(store.tables.keypairs))).all() == []
