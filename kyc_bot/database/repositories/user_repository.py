"""
Репозиторий для управления пользователями в базе данных.
"""
import base64
from datetime import datetime
from typing import Optional
from uuid import UUID

import aiosqlite

from .base import BaseRepository
from ..models.user import ConversationState, User, VerificationStatus, utcnow
from kyc_bot.exceptions import UserNotFoundError
from kyc_bot.services.security_service import AESService

USER_COLUMNS = (
    "id, telegram_id, first_name, last_name, phone_number, government_id, "
    "location_country, verification_status, conversation_state, verification_strategy, "
    "identity_doc_ref, is_reviewer, created_at, updated_at"
)


class UserRepository(BaseRepository):
    """
    CRUD над таблицей users.

    Телефон и номер документа шифруются при записи и расшифровываются при чтении.
    Отсутствие записи возвращается как None, а не как ошибка.
    """

    def __init__(self, conn: aiosqlite.Connection, crypto: AESService):
        super().__init__(conn)
        self.crypto = crypto

    def _encrypt(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return base64.b64encode(self.crypto.encrypt(value.encode("utf-8"))).decode("ascii")

    def _decrypt(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return self.crypto.decrypt(base64.b64decode(value)).decode("utf-8")

    def _row_to_user(self, row) -> User:
        data = dict(row)
        data["phone_number"] = self._decrypt(data["phone_number"])
        data["government_id"] = self._decrypt(data["government_id"])
        data["is_reviewer"] = bool(data["is_reviewer"])
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        data["updated_at"] = datetime.fromisoformat(data["updated_at"])
        return User(**data)

    def _row_params(self, user: User) -> tuple:
        return (
            user.first_name,
            user.last_name,
            self._encrypt(user.phone_number),
            self._encrypt(user.government_id),
            user.location_country,
            user.verification_status.value,
            user.conversation_state.value,
            user.verification_strategy,
            user.identity_doc_ref,
            int(user.is_reviewer),
        )

    async def create(self, user: User) -> User:
        """
        Добавляет нового пользователя.

        Повторный telegram_id нарушает UNIQUE и приводит к aiosqlite.IntegrityError.
        """
        sql = f"INSERT INTO users ({USER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
        await self.execute(
            sql,
            (
                str(user.id),
                user.telegram_id,
                *self._row_params(user),
                user.created_at.isoformat(),
                user.updated_at.isoformat(),
            ),
        )
        return user

    async def get_by_telegram_id(self, telegram_id: int) -> Optional[User]:
        sql = f"SELECT {USER_COLUMNS} FROM users WHERE telegram_id = ?"
        row = await self.fetchone(sql, (telegram_id,))
        return self._row_to_user(row) if row else None

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        sql = f"SELECT {USER_COLUMNS} FROM users WHERE id = ?"
        row = await self.fetchone(sql, (str(user_id),))
        return self._row_to_user(row) if row else None

    async def update(self, user: User) -> None:
        """
        Сохраняет все изменяемые поля пользователя.

        :raises UserNotFoundError: если записи с таким id нет.
        """
        user.updated_at = utcnow()
        sql = """
            UPDATE users SET
                first_name = ?, last_name = ?, phone_number = ?, government_id = ?,
                location_country = ?, verification_status = ?, conversation_state = ?,
                verification_strategy = ?, identity_doc_ref = ?, is_reviewer = ?,
                updated_at = ?
            WHERE id = ?
        """
        updated = await self.execute(
            sql, (*self._row_params(user), user.updated_at.isoformat(), str(user.id))
        )
        if updated == 0:
            raise UserNotFoundError(user.id)

    async def delete(self, user_id: UUID) -> None:
        await self.execute("DELETE FROM users WHERE id = ?", (str(user_id),))

    async def get_next_pending(self) -> Optional[User]:
        """Самая старая завершённая заявка в статусе pending с загруженным документом."""
        sql = f"""
            SELECT {USER_COLUMNS} FROM users
            WHERE verification_status = ? AND conversation_state = ? AND identity_doc_ref IS NOT NULL
            ORDER BY created_at ASC
            LIMIT 1
        """
        row = await self.fetchone(sql, (VerificationStatus.PENDING.value, ConversationState.NONE.value))
        return self._row_to_user(row) if row else None

    async def promote_reviewer(self, telegram_id: int) -> User:
        """Выдаёт флаг модератора, создавая запись при необходимости."""
        user = await self.get_by_telegram_id(telegram_id)
        if user is None:
            user = User(
                telegram_id=telegram_id,
                is_reviewer=True,
                conversation_state=ConversationState.NONE,
            )
            return await self.create(user)
        if not user.is_reviewer:
            user.is_reviewer = True
            await self.update(user)
        return user
