"""Маршрутизатор обновлений одного пула ботов."""
from typing import TYPE_CHECKING, Dict, List, Optional

from aiogram.types import Update
from loguru import logger

from kyc_bot.database.models.events import Event
from kyc_bot.database.models.updates import BotUpdate
from kyc_bot.database.models.user import User
from kyc_bot.routing.classifier import classify_update, sender_id
from kyc_bot.routing.handlers import CallbackHandler, CommandHandler, MessageHandler
from kyc_bot.routing.registry import RegisteredHandlers
from kyc_bot.utils.locks import KeyedLock
from kyc_bot.utils.messages import MessageBuilder

if TYPE_CHECKING:
    from kyc_bot.database.repositories.user_repository import UserRepository
    from kyc_bot.services.telegram_client import BotClient

INTERNAL_ERROR_TEXT = "An internal error occurred. Please try again later."
START_PROMPT_TEXT = "Please type /start to begin."


def check_prefixes(callbacks: List[CallbackHandler]) -> None:
    """Префиксы callback-обработчиков не должны быть префиксами друг друга."""
    prefixes = [h.prefix for h in callbacks]
    for i, first in enumerate(prefixes):
        if not first:
            raise ValueError("callback prefix must not be empty")
        for second in prefixes[i + 1:]:
            if first.startswith(second) or second.startswith(first):
                raise ValueError(f"overlapping callback prefixes: '{first}' and '{second}'")


class UpdateRouter:
    """
    Маршрутизирует одно обновление к обработчику.

    Порядок: классификация, точная команда, поиск пользователя и проверка
    прав модератора, callback по префиксу, обработчик сообщений.
    Ошибки обработчиков логируются и не выходят наружу.

    :param enforce_authorization: Пропускать только пользователей с флагом модератора.
    :param serialize_events: Обрабатывать события шины от одного отправителя строго по очереди.
        Публикация в шину не ждёт подписчиков, поэтому блокировка воркера пула здесь не действует.
    """

    def __init__(
        self,
        name: str,
        users: "UserRepository",
        client: "BotClient",
        handlers: RegisteredHandlers,
        enforce_authorization: bool = False,
        serialize_events: bool = False,
    ):
        check_prefixes(handlers.callbacks)
        self.name = name
        self.users = users
        self.client = client
        self.commands: Dict[str, CommandHandler] = dict(handlers.commands)
        self.callbacks: List[CallbackHandler] = list(handlers.callbacks)
        self.message_handler: Optional[MessageHandler] = handlers.message
        self.enforce_authorization = enforce_authorization
        self._event_locks: Optional[KeyedLock] = KeyedLock() if serialize_events else None
        self.log = logger.bind(component=f"router:{name}")

    async def handle_event(self, event: Event) -> None:
        """Адаптер для подписки на шину: в data лежит aiogram.Update."""
        if not isinstance(event.data, Update):
            self.log.warning(f"В топике '{event.topic}' ожидался Update, получено {type(event.data).__name__}")
            return
        key = sender_id(event.data) if self._event_locks is not None else None
        if key is None:
            await self.handle_update(event.data)
            return
        async with self._event_locks.hold(key):
            await self.handle_update(event.data)

    async def handle_update(self, update: Update) -> None:
        bot_update = classify_update(update)
        if bot_update is None:
            self.log.warning(f"Неподдерживаемое обновление {update.update_id}, пропускаем")
            return

        ctx = f"user_id={bot_update.user_id} chat_id={bot_update.chat_id}"

        if bot_update.command is not None:
            handler = self.commands.get(bot_update.command)
            if handler is not None:
                self.log.info(f"/{bot_update.command} -> {type(handler).__name__} ({ctx})")
                try:
                    await handler.handle(bot_update)
                except Exception:
                    self.log.exception(f"Ошибка в обработчике команды /{bot_update.command} ({ctx})")
                return
            self.log.debug(f"Неизвестная команда /{bot_update.command} ({ctx}), идём дальше")

        try:
            user = await self.users.get_by_telegram_id(bot_update.user_id)
        except Exception:
            self.log.exception(f"Не удалось получить пользователя ({ctx})")
            if not self.enforce_authorization:
                await self._reply(bot_update, INTERNAL_ERROR_TEXT)
            return

        if self.enforce_authorization and (user is None or not user.is_reviewer):
            self.log.warning(f"Доступ запрещён ({ctx})")
            return

        if user is None:
            await self._reply(bot_update, START_PROMPT_TEXT)
            return

        ctx = f"{ctx} actor={user.id}"

        if bot_update.callback_data is not None:
            await self._dispatch_callback(bot_update, user, ctx)
            return

        if self.message_handler is None:
            self.log.info(f"Нет обработчика сообщений ({ctx})")
            return

        handler_name = type(self.message_handler).__name__
        self.log.info(f"Сообщение -> {handler_name}, state={user.conversation_state.value} ({ctx})")
        try:
            await self.message_handler.handle(bot_update, user)
        except Exception:
            self.log.exception(f"Ошибка в обработчике {handler_name} ({ctx})")

    async def _dispatch_callback(self, bot_update: BotUpdate, user: User, ctx: str) -> None:
        data = bot_update.callback_data
        for handler in self.callbacks:
            if data.startswith(handler.prefix):
                handler_name = type(handler).__name__
                self.log.info(f"callback '{data}' -> {handler_name} ({ctx})")
                try:
                    await handler.handle(bot_update, user)
                except Exception:
                    self.log.exception(f"Ошибка в обработчике {handler_name} ({ctx})")
                return
        self.log.warning(f"Нет обработчика для callback '{data}' ({ctx})")

    async def _reply(self, bot_update: BotUpdate, text: str) -> None:
        try:
            await self.client.send_message(MessageBuilder(bot_update.chat_id).with_text(text).plain().build())
        except Exception as e:
            self.log.error(f"Не удалось отправить ответ в чат {bot_update.chat_id}: {e}")
