"""Интерфейсы обработчиков и набор зависимостей, который им передаётся."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from kyc_bot.database.models.updates import BotUpdate
from kyc_bot.database.models.user import User

if TYPE_CHECKING:
    from kyc_bot.config.settings import Settings
    from kyc_bot.database.repositories.user_repository import UserRepository
    from kyc_bot.services.event_bus import EventBus
    from kyc_bot.services.telegram_client import BotClient
    from kyc_bot.services.verification_queue import VerificationQueue


@dataclass
class HandlerDeps:
    """Всё, что может понадобиться обработчику при создании."""

    settings: "Settings"
    users: "UserRepository"
    client: "BotClient"
    bus: "EventBus"
    queue: Optional["VerificationQueue"] = None


class CommandHandler(ABC):
    """Обработчик команды. Вызывается до поиска пользователя в базе."""

    command: str

    @abstractmethod
    async def handle(self, update: BotUpdate) -> None: ...


class CallbackHandler(ABC):
    """Обработчик нажатия inline-кнопки с данными, начинающимися на prefix."""

    prefix: str

    @abstractmethod
    async def handle(self, update: BotUpdate, user: User) -> None: ...


class MessageHandler(ABC):
    """Единственный обработчик свободных сообщений пула."""

    @abstractmethod
    async def handle(self, update: BotUpdate, user: User) -> None: ...
