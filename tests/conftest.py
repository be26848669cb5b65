"""
Pytest configuration and fixtures for idpstore tests.

Every test gets its own SQLite database file, so tests never share rows.
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from idpstore.core.config import Settings
from idpstore.db.host import HostTables, build_host_tables, create_host_tables
from idpstore.db.session import create_engine
from idpstore.schemas.service_provider import ServiceProviderCreate
from idpstore.services.sp_store import SPConfigStore


def make_settings(db_path: Path, **overrides: Any) -> Settings:
    """Settings pointing at a throwaway SQLite file, ignoring any local .env."""
    values: dict[str, Any] = {
        "environment": "test",
        "database_url": f"sqlite+aiosqlite:///{db_path}",
        "table_prefix": "wp_",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_sp(**overrides: Any) -> ServiceProviderCreate:
    """Build a valid Service Provider registration."""
    values: dict[str, Any] = {
        "sp_name": "Payroll",
        "sp_issuer": "https://payroll.example.com/saml/metadata",
        "acs_url": "https://payroll.example.com/saml/acs",
        "nameid_format": "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress",
        "response_signed": 1,
        "assertion_signed": 0,
    }
    values.update(overrides)
    return ServiceProviderCreate(**values)


async def table_columns(engine: AsyncEngine, table_name: str) -> set[str]:
    """Column names of ``table_name`` as seen by the database."""
    async with engine.connect() as conn:
        return await conn.run_sync(
            lambda sync_conn: {column["name"] for column in inspect(sync_conn).get_columns(table_name)}
        )


async def table_names(engine: AsyncEngine) -> set[str]:
    async with engine.connect() as conn:
        return await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path / "idpstore.db")


@pytest_asyncio.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine per test function."""
    engine = create_engine(test_settings)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def host_tables(engine: AsyncEngine, test_settings: Settings) -> HostTables:
    """Host options and user-meta tables, created empty."""
    tables = build_host_tables(test_settings)
    await create_host_tables(engine, tables)
    return tables


@pytest_asyncio.fixture
async def bare_store(
    engine: AsyncEngine, test_settings: Settings, host_tables: HostTables
) -> SPConfigStore:
    """Store whose tables have not been created yet."""
    return SPConfigStore(engine, settings=test_settings, host_tables=host_tables)


@pytest_asyncio.fixture
async def store(bare_store: SPConfigStore) -> SPConfigStore:
    """Store with a freshly created schema."""
    await bare_store.ensure_schema()
    return bare_store


@pytest.fixture
def sp_factory():
    """Factory for valid ``ServiceProviderCreate`` payloads."""
    return make_sp


@pytest.fixture
def settings_factory():
    """Factory for isolated ``Settings`` instances."""
    return make_settings


@pytest.fixture
def inspect_columns():
    return table_columns


@pytest.fixture
def inspect_tables():
    return table_names
