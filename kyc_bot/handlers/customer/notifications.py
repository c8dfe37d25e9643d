"""Уведомления заявителю о решении модератора."""
from uuid import UUID

from loguru import logger

from kyc_bot.database.models.events import Event
from kyc_bot.routing.handlers import HandlerDeps
from kyc_bot.services.event_bus import TOPIC_USER_APPROVED, TOPIC_USER_REJECTED
from kyc_bot.utils.messages import MessageBuilder

APPROVED_TEXT = (
    "🎉 <b>Congratulations!</b>\n\n"
    "Your identity has been verified. You now have full access."
)
REJECTED_TEXT = (
    "❌ <b>Verification rejected</b>\n\n"
    "Unfortunately we could not verify your identity. "
    "Please type /start to submit your details again."
)


class NotificationHandler:
    """Подписчик топиков user:approved и user:rejected; пишет через бота заявителей."""

    def __init__(self, deps: HandlerDeps):
        self.users = deps.users
        self.client = deps.client
        self.log = logger.bind(component="notifications")

    def subscribe(self, bus) -> None:
        bus.subscribe(TOPIC_USER_APPROVED, self.on_approved)
        bus.subscribe(TOPIC_USER_REJECTED, self.on_rejected)

    async def on_approved(self, event: Event) -> None:
        await self._notify(event.data, APPROVED_TEXT)

    async def on_rejected(self, event: Event) -> None:
        await self._notify(event.data, REJECTED_TEXT)

    async def _notify(self, user_id, text: str) -> None:
        user = await self.users.get_by_id(UUID(str(user_id)))
        if user is None:
            self.log.warning(f"Пользователь {user_id} для уведомления не найден")
            return
        await self.client.send_message(MessageBuilder(user.telegram_id).with_text(text).build())
        self.log.info(f"📨 Уведомление отправлено пользователю {user.id}")
