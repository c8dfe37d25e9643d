"""Базовый класс для репозиториев."""

import aiosqlite


class BaseRepository:
    """Базовый класс репозитория поверх одного соединения aiosqlite."""

    def __init__(self, conn: aiosqlite.Connection):
        """
        :param conn: Открытое соединение с базой данных.
        """
        self.conn = conn

    async def execute(self, query: str, parameters=None) -> int:
        """Выполняет изменяющий запрос и возвращает число затронутых строк."""
        async with self.conn.execute(query, parameters or ()) as cursor:
            rowcount = cursor.rowcount
        await self.conn.commit()
        return rowcount

    async def fetchone(self, query: str, parameters=None):
        async with self.conn.execute(query, parameters or ()) as cursor:
            return await cursor.fetchone()

    async def fetchall(self, query: str, parameters=None):
        async with self.conn.execute(query, parameters or ()) as cursor:
            return await cursor.fetchall()
