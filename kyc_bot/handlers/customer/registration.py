"""Обработчик свободных сообщений заявителя: пошаговое заполнение анкеты."""
from typing import Awaitable, Callable, Dict, Optional

from loguru import logger

from kyc_bot.database.models.events import VerificationEvent
from kyc_bot.database.models.updates import BotUpdate
from kyc_bot.database.models.user import ConversationState, User, VerificationStatus
from kyc_bot.handlers.customer.prompts import prompt_for, wrong_input_prompt
from kyc_bot.routing.handlers import HandlerDeps, MessageHandler
from kyc_bot.routing.router import INTERNAL_ERROR_TEXT
from kyc_bot.services.verification_queue import build_caption
from kyc_bot.states.registration import InputKind, input_kind, step_for
from kyc_bot.utils.messages import MessageBuilder, quote
from kyc_bot.utils.validators import (
    match_country,
    validate_government_id,
    validate_name,
    validate_phone,
)

S = ConversationState

SUBMIT_ERROR_TEXT = "An error occurred while submitting your ID. Please try again."

# Применяет ввод к черновику пользователя; возвращает текст исправления или None
Applier = Callable[[BotUpdate, User], Awaitable[Optional[str]]]


class RegistrationHandler(MessageHandler):
    """
    Машина состояний регистрации.

    Для каждого шага: проверка вида ввода, валидация, изменение копии
    пользователя, сохранение и следующий вопрос. Если сохранение не удалось,
    запись в базе остаётся прежней и шаг можно повторить.
    """

    def __init__(self, deps: HandlerDeps):
        self.settings = deps.settings
        self.users = deps.users
        self.client = deps.client
        self.queue = deps.queue
        self.log = logger.bind(component="registration")
        self._appliers: Dict[ConversationState, Applier] = {
            S.AWAITING_FIRST_NAME: self._apply_first_name,
            S.AWAITING_LAST_NAME: self._apply_last_name,
            S.AWAITING_PHONE: self._apply_phone,
            S.AWAITING_GOV_ID: self._apply_gov_id,
            S.AWAITING_LOCATION: self._apply_location,
            S.AWAITING_IDENTITY_DOCUMENT: self._apply_identity_document,
        }

    async def handle(self, update: BotUpdate, user: User) -> None:
        state = user.conversation_state
        step = step_for(state)

        if step is None:
            await self._send_status(update, user)
            return

        applier = self._appliers.get(state)
        if applier is None or input_kind(update) != step.expects or step.expects == InputKind.CALLBACK:
            self.log.debug(f"Ввод не того вида в состоянии {state.value} (user {user.id})")
            await self.client.send_message(wrong_input_prompt(state, update.chat_id, self.settings, user))
            return

        draft = user.model_copy(deep=True)
        try:
            correction = await applier(update, draft)
        except Exception as e:
            self.log.error(f"Ошибка на шаге {state.value} для пользователя {user.id}: {e}")
            await self._send_text(update.chat_id, SUBMIT_ERROR_TEXT)
            return

        if correction is not None:
            params = prompt_for(state, update.chat_id, self.settings, user)
            await self.client.send_message(params.model_copy(update={"text": correction}))
            return

        draft.conversation_state = step.next_state
        try:
            await self.users.update(draft)
        except Exception as e:
            self.log.error(f"Не удалось сохранить пользователя {user.id} на шаге {state.value}: {e}")
            await self._send_text(update.chat_id, INTERNAL_ERROR_TEXT)
            return

        self.log.info(f"Пользователь {user.id}: {state.value} -> {step.next_state.value}")
        await self.client.send_message(prompt_for(step.next_state, update.chat_id, self.settings, draft))

    async def _apply_first_name(self, update: BotUpdate, draft: User) -> Optional[str]:
        ok, value = await validate_name(update.text, "first name")
        if not ok:
            return value
        draft.first_name = value
        if draft.verification_status == VerificationStatus.REJECTED:
            draft.verification_status = VerificationStatus.PENDING
        return None

    async def _apply_last_name(self, update: BotUpdate, draft: User) -> Optional[str]:
        ok, value = await validate_name(update.text, "last name")
        if not ok:
            return value
        draft.last_name = value
        return None

    async def _apply_phone(self, update: BotUpdate, draft: User) -> Optional[str]:
        if update.contact.user_id != update.user_id:
            self.log.warning(
                f"Пользователь {draft.id} прислал чужой контакт (contact user_id={update.contact.user_id})"
            )
            return "You must share your <b>own</b> contact. Please press the button again."
        ok, value = await validate_phone(update.contact.phone_number)
        if not ok:
            return value
        draft.phone_number = value
        return None

    async def _apply_gov_id(self, update: BotUpdate, draft: User) -> Optional[str]:
        ok, value = await validate_government_id(update.text)
        if not ok:
            return value
        draft.government_id = value
        return None

    async def _apply_location(self, update: BotUpdate, draft: User) -> Optional[str]:
        found = match_country(update.text, self.settings.COUNTRY_STRATEGIES)
        if found is None:
            return f"<code>{quote(update.text)}</code> is not a supported country. Please select one from the list."
        code, conf = found
        draft.location_country = code
        draft.verification_strategy = conf.strategy
        return None

    async def _apply_identity_document(self, update: BotUpdate, draft: User) -> Optional[str]:
        """Отправляет фото в очередь проверки и запоминает ссылку на пост."""
        event = VerificationEvent(
            user_id=draft.id,
            file_id=update.photo.file_id,
            caption=build_caption(draft),
        )
        draft.identity_doc_ref = await self.queue.publish(event)
        self.log.info(f"Документ пользователя {draft.id} в очереди, ref={draft.identity_doc_ref}")
        return None

    async def _send_status(self, update: BotUpdate, user: User) -> None:
        if user.verification_status == VerificationStatus.APPROVED:
            text = "✅ Your account is already verified."
        elif user.verification_status == VerificationStatus.REJECTED:
            text = "Your previous application was rejected. Type /start to register again."
        elif user.identity_doc_ref is None:
            text = "Please type /start to begin."
        else:
            text = "⏳ Your application is under review. We will notify you once a decision is made."
        await self._send_text(update.chat_id, text)

    async def _send_text(self, chat_id: int, text: str) -> None:
        await self.client.send_message(MessageBuilder(chat_id).with_text(text).build())
