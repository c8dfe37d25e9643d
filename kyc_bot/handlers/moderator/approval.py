"""Решение модератора по заявке: одобрить или отклонить."""
from typing import Optional, Tuple
from uuid import UUID

from aiogram.enums import ParseMode
from loguru import logger

from kyc_bot.database.models.updates import AnswerCallbackParams, BotUpdate, EditCaptionParams
from kyc_bot.database.models.user import ConversationState, User, VerificationStatus
from kyc_bot.handlers.moderator.forwarding import APPROVE_PREFIX, REF_SEPARATOR, REJECT_PREFIX, build_review_caption
from kyc_bot.routing.handlers import CallbackHandler, HandlerDeps
from kyc_bot.services.event_bus import TOPIC_USER_APPROVED, TOPIC_USER_REJECTED


def parse_decision(data: str) -> Optional[Tuple[bool, UUID, Optional[str]]]:
    """'approval_accept_<uuid>[:<ref>]' -> (True, uuid, ref); None для битых данных."""
    for prefix, approve in ((APPROVE_PREFIX, True), (REJECT_PREFIX, False)):
        if data.startswith(prefix):
            raw_id, _, ref = data[len(prefix):].partition(REF_SEPARATOR)
            try:
                return approve, UUID(raw_id), (ref or None)
            except ValueError:
                return None
    return None


class ApprovalHandler(CallbackHandler):
    """
    Решение принимается только по завершённой заявке в статусе pending,
    а кнопка со ссылкой на пост действует только для той подачи, к которой относится.
    Одобрение оставляет анкету как есть и переводит статус в approved.
    Отказ очищает анкету и возвращает заявителя к первому шагу.
    """

    prefix = "approval_"

    def __init__(self, deps: HandlerDeps):
        self.users = deps.users
        self.client = deps.client
        self.bus = deps.bus
        self.log = logger.bind(component="approval_handler")

    async def handle(self, update: BotUpdate, user: User) -> None:
        decision = parse_decision(update.callback_data)
        if decision is None:
            self.log.error(f"Некорректные данные решения '{update.callback_data}' от модератора {user.id}")
            return
        approve, target_id, ref = decision

        try:
            target = await self.users.get_by_id(target_id)
        except Exception as e:
            self.log.error(f"Не удалось загрузить заявителя {target_id}: {e}")
            await self._answer(update, "An internal error occurred.")
            return

        if target is None:
            self.log.warning(f"Заявитель {target_id} не найден")
            await self._answer(update, "User not found.")
            return

        if target.verification_status != VerificationStatus.PENDING:
            await self._answer(update, f"Already processed: {target.verification_status.value}.")
            return

        if ref is not None and ref != target.identity_doc_ref:
            self.log.warning(f"Кнопка для устаревшей подачи {ref} пользователя {target.id}")
            await self._answer(update, "Already processed: this submission is outdated.")
            return

        if target.conversation_state != ConversationState.NONE or not target.identity_doc_ref:
            self.log.warning(
                f"Заявка {target.id} не завершена (state={target.conversation_state.value}), решение отклонено"
            )
            await self._answer(update, "The application is not complete yet.")
            return

        caption = build_review_caption(target)
        draft = target.model_copy(deep=True)
        if approve:
            draft.verification_status = VerificationStatus.APPROVED
            draft.conversation_state = ConversationState.NONE
        else:
            draft.verification_status = VerificationStatus.REJECTED
            draft.reset_profile()
            draft.conversation_state = ConversationState.AWAITING_FIRST_NAME

        try:
            await self.users.update(draft)
        except Exception as e:
            self.log.error(f"Не удалось сохранить решение по {target_id}: {e}")
            await self._answer(update, "An internal error occurred.")
            return

        verdict = "APPROVED" if approve else "REJECTED"
        self.log.info(f"Модератор {user.telegram_id}: {verdict} для {target.id}")
        await self.bus.publish(TOPIC_USER_APPROVED if approve else TOPIC_USER_REJECTED, target.id)
        await self._answer(update, "Approved" if approve else "Rejected")

        mark = "✅" if approve else "❌"
        await self.client.edit_message_caption(
            EditCaptionParams(
                chat_id=update.chat_id,
                message_id=update.message_id,
                caption=f"{caption}\n\n{mark} <b>{verdict}</b> by <code>{user.telegram_id}</code>",
                parse_mode=ParseMode.HTML,
            )
        )

    async def _answer(self, update: BotUpdate, text: str) -> None:
        try:
            await self.client.answer_callback_query(
                AnswerCallbackParams(callback_query_id=update.callback_query_id, text=text)
            )
        except Exception as e:
            self.log.warning(f"Не удалось ответить на callback {update.callback_query_id}: {e}")
