"""Команда /pending: следующая необработанная заявка."""
from aiogram.enums import ParseMode
from loguru import logger

from kyc_bot.database.models.updates import BotUpdate, CopyMessageParams
from kyc_bot.handlers.moderator.forwarding import build_review_caption, review_keyboard
from kyc_bot.routing.handlers import CommandHandler, HandlerDeps
from kyc_bot.utils.messages import MessageBuilder


class PendingHandler(CommandHandler):
    """
    Пересылает модератору самую старую заявку из канала-очереди.

    Команды вызываются до общей проверки прав, поэтому флаг модератора
    проверяется здесь же и посторонним ничего не отвечается.
    """

    command = "pending"

    def __init__(self, deps: HandlerDeps):
        self.users = deps.users
        self.client = deps.client
        self.relay_chat_id = deps.settings.RELAY_CHANNEL_ID
        self.log = logger.bind(component="pending_handler")

    async def handle(self, update: BotUpdate) -> None:
        try:
            actor = await self.users.get_by_telegram_id(update.user_id)
            if actor is None or not actor.is_reviewer:
                self.log.warning(f"/pending от не-модератора {update.user_id}")
                return
            target = await self.users.get_next_pending()
        except Exception as e:
            self.log.error(f"Ошибка чтения очереди заявок: {e}")
            await self._send(update.chat_id, "An internal error occurred.")
            return

        if target is None:
            await self._send(update.chat_id, "📭 No pending applications.")
            return

        try:
            message_id = int(target.identity_doc_ref)
        except (TypeError, ValueError):
            self.log.error(f"Некорректная ссылка на документ '{target.identity_doc_ref}' у {target.id}")
            await self._send(update.chat_id, build_review_caption(target))
            return

        await self.client.copy_message(
            CopyMessageParams(
                chat_id=update.chat_id,
                from_chat_id=self.relay_chat_id,
                message_id=message_id,
                caption=build_review_caption(target),
                parse_mode=ParseMode.HTML,
                keyboard=review_keyboard(target.id, target.identity_doc_ref),
            )
        )
        self.log.info(f"Заявка {target.id} отправлена модератору {actor.telegram_id}")

    async def _send(self, chat_id: int, text: str) -> None:
        await self.client.send_message(MessageBuilder(chat_id).with_text(text).build())
