"""Пересылка документов из канала-очереди в канал модераторов."""
from typing import Optional
from uuid import UUID

from aiogram.enums import ParseMode
from loguru import logger

from kyc_bot.database.models.events import VerificationEvent
from kyc_bot.database.models.updates import Button, Keyboard, KeyboardKind, SendPhotoParams
from kyc_bot.database.models.user import User
from kyc_bot.routing.handlers import HandlerDeps
from kyc_bot.utils.messages import quote

APPROVE_PREFIX = "approval_accept_"
REJECT_PREFIX = "approval_reject_"
REF_SEPARATOR = ":"
CALLBACK_DATA_LIMIT = 64


def decision_data(prefix: str, user_id: UUID, storage_ref: Optional[str] = None) -> str:
    """
    'approval_accept_<uuid>:<ref>'. Ссылка на пост привязывает кнопку к конкретной подаче документа;
    если вместе с ней данные не влезают в лимит Telegram, кнопка остаётся без ссылки.
    """
    data = f"{prefix}{user_id}"
    if storage_ref:
        with_ref = f"{data}{REF_SEPARATOR}{storage_ref}"
        if len(with_ref.encode("utf-8")) <= CALLBACK_DATA_LIMIT:
            return with_ref
    return data


def review_keyboard(user_id: UUID, storage_ref: Optional[str] = None) -> Keyboard:
    return Keyboard(
        kind=KeyboardKind.INLINE,
        rows=[[
            Button(text="✅ Approve", data=decision_data(APPROVE_PREFIX, user_id, storage_ref)),
            Button(text="❌ Reject", data=decision_data(REJECT_PREFIX, user_id, storage_ref)),
        ]],
    )


def build_review_caption(user: User, storage_ref: Optional[str] = None) -> str:
    """HTML-подпись заявки для модераторов."""
    lines = [
        "🆕 <b>New verification request</b>",
        "",
        f"UserID: <code>{user.id}</code>",
        f"Telegram ID: <code>{user.telegram_id}</code>",
    ]
    fields = (
        ("First Name", user.first_name),
        ("Last Name", user.last_name),
        ("Phone", user.phone_number),
        ("Gov ID", user.government_id),
        ("Country", user.location_country),
        ("Strategy", user.verification_strategy),
    )
    lines.extend(f"{label}: {quote(value)}" for label, value in fields if value)
    ref = storage_ref or user.identity_doc_ref
    if ref:
        lines.append(f"Ref: <code>{quote(ref)}</code>")
    return "\n".join(lines)


class ForwardingHandler:
    """Получатель очереди: отправляет фото документа модераторам с кнопками решения."""

    def __init__(self, deps: HandlerDeps):
        self.users = deps.users
        self.client = deps.client
        self.review_chat_id = deps.settings.ADMIN_REVIEW_CHANNEL_ID
        self.log = logger.bind(component="forwarding")

    async def __call__(self, event: VerificationEvent) -> None:
        user = await self.users.get_by_id(event.user_id)
        if user is None:
            self.log.warning(f"Заявка для неизвестного пользователя {event.user_id}, пропускаем")
            return

        await self.client.send_photo(
            SendPhotoParams(
                chat_id=self.review_chat_id,
                photo=event.file_id,
                caption=build_review_caption(user, event.storage_ref),
                parse_mode=ParseMode.HTML,
                keyboard=review_keyboard(user.id, event.storage_ref),
            )
        )
        self.log.info(f"📨 Заявка пользователя {user.id} отправлена модераторам")
