"""
Очередь документов на проверку поверх приватного Telegram-канала.

Бот заявителей публикует фото с подписью в канал, бот модераторов
получает channel_post через шину и восстанавливает событие по строке
``UserID: <uuid>`` в подписи. Любая другая реализация очереди должна
сохранить тот же контракт из двух методов.
"""
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional
from uuid import UUID

from aiogram.types import Message, Update
from loguru import logger

from kyc_bot.database.models.events import Event, VerificationEvent
from kyc_bot.database.models.updates import SendPhotoParams
from kyc_bot.database.models.user import User
from kyc_bot.exceptions import QueuePublishError
from kyc_bot.services.event_bus import TOPIC_MOD_CHANNEL_POST, EventBus
from kyc_bot.services.telegram_client import BotClient

USER_ID_PREFIX = "UserID:"

VerificationHandler = Callable[[VerificationEvent], Awaitable[None]]


class VerificationQueue(ABC):

    @abstractmethod
    async def publish(self, event: VerificationEvent) -> str:
        """Отправляет документ в очередь и возвращает непрозрачную ссылку на него."""

    @abstractmethod
    def subscribe(self, handler: VerificationHandler) -> None:
        """Регистрирует получателя будущих документов."""


def build_caption(user: User) -> str:
    """Подпись для канала-очереди: снимок анкеты, строка UserID обязательна."""
    lines = ["New User Verification", f"{USER_ID_PREFIX} {user.id}"]
    fields = (
        ("First Name", user.first_name),
        ("Last Name", user.last_name),
        ("Phone", user.phone_number),
        ("Gov ID", user.government_id),
        ("Country", user.location_country),
        ("Strategy", user.verification_strategy),
    )
    lines.extend(f"{label}: {value}" for label, value in fields if value is not None)
    return "\n".join(lines)


def parse_user_id(caption: Optional[str]) -> Optional[UUID]:
    """Достаёт UUID из строки ``UserID: <uuid>``; None, если строки нет или UUID битый."""
    if not caption:
        return None
    for line in caption.splitlines():
        line = line.strip()
        if line.startswith(USER_ID_PREFIX):
            try:
                return UUID(line[len(USER_ID_PREFIX):].strip())
            except ValueError:
                return None
    return None


class TelegramChannelQueue(VerificationQueue):
    """
    :param client: Клиент бота, который публикует в канал.
    :param channel_id: ID приватного канала-очереди.
    :param bus: Шина, куда пул модераторов публикует сырые channel_post.
    """

    def __init__(self, client: BotClient, channel_id: int, bus: EventBus):
        self.client = client
        self.channel_id = channel_id
        self.bus = bus
        self.log = logger.bind(component="telegram_queue")

    async def publish(self, event: VerificationEvent) -> str:
        try:
            message_id = await self.client.send_photo(
                SendPhotoParams(
                    chat_id=self.channel_id,
                    photo=event.file_id,
                    caption=event.caption,
                )
            )
        except Exception as e:
            self.log.error(f"Не удалось отправить документ пользователя {event.user_id} в канал: {e}")
            raise QueuePublishError(str(e)) from e

        storage_ref = str(message_id)
        self.log.info(f"📤 Документ пользователя {event.user_id} отправлен в канал, ref={storage_ref}")
        return storage_ref

    def subscribe(self, handler: VerificationHandler) -> None:
        async def on_channel_post(bus_event: Event) -> None:
            event = self._to_verification_event(bus_event.data)
            if event is not None:
                await handler(event)

        self.bus.subscribe(TOPIC_MOD_CHANNEL_POST, on_channel_post)
        self.log.info(f"Подписка на канал {self.channel_id} оформлена")

    def _to_verification_event(self, data) -> Optional[VerificationEvent]:
        post = data.channel_post if isinstance(data, Update) else data
        if not isinstance(post, Message):
            self.log.warning(f"Неожиданные данные в топике {TOPIC_MOD_CHANNEL_POST}: {type(data).__name__}")
            return None

        if post.chat.id != self.channel_id:
            self.log.warning(f"Пост из чужого канала {post.chat.id}, пропускаем")
            return None

        if not post.photo:
            self.log.warning(f"Пост {post.message_id} без фото, пропускаем")
            return None

        user_id = parse_user_id(post.caption)
        if user_id is None:
            self.log.error(f"В подписи поста {post.message_id} нет корректной строки UserID")
            return None

        return VerificationEvent(
            user_id=user_id,
            file_id=post.photo[-1].file_id,
            caption=post.caption,
            storage_ref=str(post.message_id),
        )
