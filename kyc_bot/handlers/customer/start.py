"""Команда /start бота заявителей."""
from loguru import logger

from kyc_bot.database.models.updates import BotUpdate
from kyc_bot.database.models.user import ConversationState, User, VerificationStatus
from kyc_bot.handlers.customer.prompts import prompt_for
from kyc_bot.routing.handlers import CommandHandler, HandlerDeps
from kyc_bot.routing.router import INTERNAL_ERROR_TEXT
from kyc_bot.utils.messages import MessageBuilder, quote


class StartHandler(CommandHandler):
    """
    Начало или продолжение регистрации.

    Новый пользователь создаётся в статусе pending с первым вопросом анкеты,
    отклонённый начинает заново, одобренному показывается приветствие.
    Запись без поданной анкеты (например, созданная для модератора) тоже начинает регистрацию.
    """

    command = "start"

    def __init__(self, deps: HandlerDeps):
        self.settings = deps.settings
        self.users = deps.users
        self.client = deps.client
        self.log = logger.bind(component="start_handler")

    async def handle(self, update: BotUpdate) -> None:
        try:
            user = await self.users.get_by_telegram_id(update.user_id)
            if user is None:
                user = await self.users.create(User.new_applicant(update.user_id))
                self.log.info(f"🆕 Новый пользователь {user.id} (telegram_id={update.user_id})")
                await self._send(update.chat_id, "👋 <b>Welcome!</b>\n\nLet's verify your identity.")
                await self._send_prompt(update, user)
                return

            if user.verification_status == VerificationStatus.REJECTED:
                user.reset_profile()
                user.verification_status = VerificationStatus.PENDING
                user.conversation_state = ConversationState.AWAITING_FIRST_NAME
                await self.users.update(user)
                self.log.info(f"Пользователь {user.id} начинает регистрацию заново после отказа")
                await self._send(update.chat_id, "Let's start your registration again.")
                await self._send_prompt(update, user)
                return

            # Запись модератора из REVIEWER_IDS: анкеты ещё не было
            if (
                user.verification_status == VerificationStatus.PENDING
                and user.conversation_state == ConversationState.NONE
                and user.identity_doc_ref is None
            ):
                user.conversation_state = ConversationState.AWAITING_FIRST_NAME
                await self.users.update(user)
                self.log.info(f"Пользователь {user.id} без поданной анкеты начинает регистрацию")
                await self._send(update.chat_id, "👋 <b>Welcome!</b>\n\nLet's verify your identity.")
                await self._send_prompt(update, user)
                return
        except Exception as e:
            self.log.error(f"Ошибка /start для telegram_id={update.user_id}: {e}")
            await self._send(update.chat_id, INTERNAL_ERROR_TEXT)
            return

        if user.verification_status == VerificationStatus.APPROVED:
            name = quote(user.first_name) if user.first_name else "back"
            await self._send(update.chat_id, f"✅ Welcome {name}! Your account is verified.")
            return

        if user.conversation_state == ConversationState.NONE:
            await self._send(
                update.chat_id,
                "⏳ Your application is under review. We will notify you once a decision is made.",
            )
            return

        await self._send(update.chat_id, "Welcome back! Let's continue where you left off.")
        await self._send_prompt(update, user)

    async def _send_prompt(self, update: BotUpdate, user: User) -> None:
        params = prompt_for(user.conversation_state, update.chat_id, self.settings, user)
        if params is not None:
            await self.client.send_message(params)

    async def _send(self, chat_id: int, text: str) -> None:
        await self.client.send_message(MessageBuilder(chat_id).with_text(text).build())
