"""
Command line entry point for idpstore.

Usage:
    idpstore migrate            # create or upgrade the store tables
    idpstore version            # show installed and current schema version
    idpstore list               # dump configured Service Providers as JSON
"""

import argparse
import asyncio
import sys

import orjson

from idpstore.core.config import CURRENT_SCHEMA_VERSION, Settings, get_settings
from idpstore.core.logging import get_logger, setup_logging
from idpstore.db.host import create_host_tables
from idpstore.db.session import engine_context
from idpstore.services.sp_store import SPConfigStore

logger = get_logger(__name__)


async def _migrate(settings: Settings) -> int:
    async with engine_context(settings) as engine:
        store = SPConfigStore(engine, settings=settings)
        # Standalone installs have no host application providing these
        await create_host_tables(engine, store.host_tables)
        applied = await store.ensure_schema()
    if applied:
        print(f"Applied migrations: {', '.join(applied)}")
    else:
        print(f"Schema is at version {CURRENT_SCHEMA_VERSION}")
    return 0


async def _version(settings: Settings) -> int:
    async with engine_context(settings) as engine:
        installed = await SPConfigStore(engine, settings=settings).schema_version()
    print(f"installed: {installed or 'none'}")
    print(f"current:   {CURRENT_SCHEMA_VERSION}")
    return 0


async def _list(settings: Settings) -> int:
    async with engine_context(settings) as engine:
        sps = await SPConfigStore(engine, settings=settings).list_sps()
    payload = [sp.model_dump(exclude={"cert", "cert_encrypt"}) for sp in sps]
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8") + "\n")
    return 0


COMMANDS = {
    "migrate": _migrate,
    "version": _version,
    "list": _list,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idpstore",
        description="Manage the Service Provider configuration store",
    )
    parser.add_argument("command", choices=sorted(COMMANDS), help="Action to run")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    overrides = {}
    if args.database_url:
        overrides["database_url"] = args.database_url
    if args.log_level:
        overrides["log_level"] = args.log_level
    if overrides:
        settings = Settings(**{**settings.model_dump(), **overrides})

    setup_logging(settings.log_level, json_logs=settings.json_logs)
    try:
        return asyncio.run(COMMANDS[args.command](settings))
    except Exception:
        logger.exception(f"Command '{args.command}' failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
