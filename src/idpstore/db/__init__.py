"""Database layer for idpstore."""

from idpstore.db.host import HostTables, build_host_tables, create_host_tables
from idpstore.db.schema import StoreTables, build_tables
from idpstore.db.session import check_connection, create_engine, engine_context

__all__ = [
    "HostTables",
    "StoreTables",
    "build_host_tables",
    "build_tables",
    "check_connection",
    "create_engine",
    "create_host_tables",
    "engine_context",
]
