from pathlib import Path
from typing import Optional

from loguru import logger
import aiosqlite

from kyc_bot.database.repositories.user_repository import UserRepository
from kyc_bot.services.security_service import AESService


class DatabaseManager:
    """
    Управление базой данных SQLite и репозиториями.

    Отвечает за соединение и создание таблиц,
    а также предоставляет доступ к репозиториям.
    """

    def __init__(self, db_path: str, crypto: AESService):
        self.db_path = db_path
        self.crypto = crypto
        self.conn: Optional[aiosqlite.Connection] = None
        self.users: Optional[UserRepository] = None

    async def init_database(self) -> None:
        """Открывает соединение, выполняет SQL-скрипты и создаёт репозитории."""
        self.conn = await aiosqlite.connect(self.db_path)
        self.conn.row_factory = aiosqlite.Row
        await self.conn.execute("PRAGMA foreign_keys = ON;")
        await self._run_sql_scripts()
        self.users = UserRepository(self.conn, self.crypto)
        logger.info(f"База данных {self.db_path} и репозитории инициализированы")

    async def _run_sql_scripts(self) -> None:
        """
        Выполнение SQL-скриптов из директории sql/ в алфавитном порядке.

        Один файл содержит одно выражение.
        """
        sql_dir = Path(__file__).parent / "sql"
        scripts = sorted(sql_dir.glob("*.sql"))

        async with self.conn.cursor() as cursor:
            for script_path in scripts:
                try:
                    sql_query = script_path.read_text(encoding="utf-8").strip()
                    await cursor.execute(sql_query)
                except Exception as e:
                    logger.error(f"❌ Ошибка выполнения SQL-скрипта {script_path.name}: {e}")
                    raise

        await self.conn.commit()
        logger.info(f"Инициализация БД завершена: выполнено {len(scripts)} SQL-скриптов")

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None
            logger.info("Соединение с базой данных закрыто")
