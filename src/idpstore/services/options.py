"""Key/value access to the host application's options table."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

from idpstore.db.host import HostTables


class OptionStore:
    """Read and write named options such as the installed schema version."""

    def __init__(self, engine: AsyncEngine, tables: HostTables) -> None:
        self.engine = engine
        self.table = tables.options

    async def get_option(self, name: str, default: str | None = None) -> str | None:
        """Return the stored value for ``name``, or ``default`` if unset."""
        query = select(self.table.c.option_value).where(self.table.c.option_name == name)
        async with self.engine.connect() as conn:
            value = (await conn.execute(query)).scalar_one_or_none()
        return default if value is None else value

    async def update_option(self, name: str, value: str) -> None:
        """Insert or overwrite the option ``name``."""
        async with self.engine.begin() as conn:
            result = await conn.execute(
                self.table.update()
                .where(self.table.c.option_name == name)
                .values(option_value=value)
            )
            if result.rowcount == 0:
                await conn.execute(
                    self.table.insert().values(option_name=name, option_value=value)
                )

    async def delete_option(self, name: str) -> bool:
        """Delete the option ``name``; returns whether a row was removed."""
        async with self.engine.begin() as conn:
            result = await conn.execute(
                self.table.delete().where(self.table.c.option_name == name)
            )
        return result.rowcount > 0
