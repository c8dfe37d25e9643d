"""Принятие или отклонение условий использования."""
from loguru import logger

from kyc_bot.database.models.updates import AnswerCallbackParams, BotUpdate, EditMessageParams
from kyc_bot.database.models.user import ConversationState, User
from kyc_bot.handlers.customer.prompts import POLICY_ACCEPT, POLICY_DECLINE, prompt_for
from kyc_bot.routing.handlers import CallbackHandler, HandlerDeps
from kyc_bot.routing.router import INTERNAL_ERROR_TEXT
from kyc_bot.utils.messages import MessageBuilder


class PolicyHandler(CallbackHandler):

    prefix = "policy_"

    def __init__(self, deps: HandlerDeps):
        self.settings = deps.settings
        self.users = deps.users
        self.client = deps.client
        self.log = logger.bind(component="policy_handler")

    async def handle(self, update: BotUpdate, user: User) -> None:
        data = update.callback_data
        if data not in (POLICY_ACCEPT, POLICY_DECLINE):
            self.log.warning(f"Неизвестные данные callback '{data}' от пользователя {user.id}")
            return

        if user.conversation_state != ConversationState.AWAITING_POLICY_APPROVAL:
            self.log.warning(f"Повторное нажатие '{data}' пользователем {user.id} в состоянии {user.conversation_state.value}")
            await self._answer(update, "This action is no longer available.")
            return

        draft = user.model_copy(deep=True)
        if data == POLICY_ACCEPT:
            draft.conversation_state = ConversationState.NONE
            result_text = (
                "✅ Thank you for accepting the terms.\n\n"
                "Your application is now under review. We will notify you once a decision is made."
            )
        else:
            draft.reset_profile()
            draft.conversation_state = ConversationState.AWAITING_FIRST_NAME
            result_text = "❌ You declined the terms. Your registration has been reset."

        try:
            await self.users.update(draft)
        except Exception as e:
            self.log.error(f"Не удалось сохранить решение по условиям для пользователя {user.id}: {e}")
            await self._answer(update, None)
            await self.client.send_message(MessageBuilder(update.chat_id).with_text(INTERNAL_ERROR_TEXT).build())
            return

        self.log.info(f"Пользователь {user.id}: {data}, state={draft.conversation_state.value}")
        await self._answer(update, None)
        await self.client.edit_message_text(
            EditMessageParams(chat_id=update.chat_id, message_id=update.message_id, text=result_text)
        )
        if data == POLICY_DECLINE:
            await self.client.send_message(
                prompt_for(draft.conversation_state, update.chat_id, self.settings, draft)
            )

    async def _answer(self, update: BotUpdate, text) -> None:
        try:
            await self.client.answer_callback_query(
                AnswerCallbackParams(callback_query_id=update.callback_query_id, text=text)
            )
        except Exception as e:
            self.log.warning(f"Не удалось ответить на callback {update.callback_query_id}: {e}")
