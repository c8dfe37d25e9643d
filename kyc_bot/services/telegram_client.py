"""Исходящий API Telegram поверх aiogram.Bot."""
from typing import Iterable, Optional, Protocol, Tuple, Union

from aiogram import Bot
from aiogram.types import (
    BotCommand,
    BotCommandScopeAllPrivateChats,
    InlineKeyboardButton,
    KeyboardButton,
    ReplyKeyboardRemove,
)
from aiogram.utils.keyboard import InlineKeyboardBuilder, ReplyKeyboardBuilder
from loguru import logger

from kyc_bot.database.models.updates import (
    AnswerCallbackParams,
    CopyMessageParams,
    EditCaptionParams,
    EditMessageParams,
    Keyboard,
    KeyboardKind,
    SendMessageParams,
    SendPhotoParams,
)


class BotClient(Protocol):
    """То, что обработчики используют от транспорта."""

    async def send_message(self, params: SendMessageParams) -> int: ...

    async def send_photo(self, params: SendPhotoParams) -> int: ...

    async def copy_message(self, params: CopyMessageParams) -> int: ...

    async def edit_message_text(self, params: EditMessageParams) -> None: ...

    async def edit_message_caption(self, params: EditCaptionParams) -> None: ...

    async def answer_callback_query(self, params: AnswerCallbackParams) -> None: ...


def build_markup(keyboard: Optional[Keyboard]):
    """Преобразует Keyboard в разметку aiogram."""
    if keyboard is None:
        return None

    if keyboard.kind == KeyboardKind.REMOVE:
        return ReplyKeyboardRemove()

    if keyboard.kind == KeyboardKind.INLINE:
        builder = InlineKeyboardBuilder()
        for row in keyboard.rows:
            builder.row(*[InlineKeyboardButton(text=b.text, callback_data=b.data) for b in row])
        return builder.as_markup()

    builder = ReplyKeyboardBuilder()
    for row in keyboard.rows:
        builder.row(*[KeyboardButton(text=b.text, request_contact=b.request_contact or None) for b in row])
    return builder.as_markup(resize_keyboard=True, one_time_keyboard=True)


class TelegramClient:
    """
    Тонкая обёртка над aiogram.Bot.

    Ошибки транспорта не перехватываются: решение об ответе пользователю
    принимает вызывающий обработчик.
    """

    def __init__(self, bot: Bot, name: str):
        self.bot = bot
        self.log = logger.bind(component=f"tg_client:{name}")

    async def send_message(self, params: SendMessageParams) -> int:
        message = await self.bot.send_message(
            chat_id=params.chat_id,
            text=params.text,
            parse_mode=params.parse_mode,
            reply_markup=build_markup(params.keyboard),
        )
        return message.message_id

    async def send_photo(self, params: SendPhotoParams) -> int:
        message = await self.bot.send_photo(
            chat_id=params.chat_id,
            photo=params.photo,
            caption=params.caption,
            parse_mode=params.parse_mode,
            reply_markup=build_markup(params.keyboard),
        )
        return message.message_id

    async def copy_message(self, params: CopyMessageParams) -> int:
        result = await self.bot.copy_message(
            chat_id=params.chat_id,
            from_chat_id=params.from_chat_id,
            message_id=params.message_id,
            caption=params.caption,
            parse_mode=params.parse_mode,
            reply_markup=build_markup(params.keyboard),
        )
        return result.message_id

    async def edit_message_text(self, params: EditMessageParams) -> None:
        await self.bot.edit_message_text(
            text=params.text,
            chat_id=params.chat_id,
            message_id=params.message_id,
            parse_mode=params.parse_mode,
            reply_markup=build_markup(params.keyboard),
        )

    async def edit_message_caption(self, params: EditCaptionParams) -> None:
        await self.bot.edit_message_caption(
            chat_id=params.chat_id,
            message_id=params.message_id,
            caption=params.caption,
            parse_mode=params.parse_mode,
            reply_markup=build_markup(params.keyboard),
        )

    async def answer_callback_query(self, params: AnswerCallbackParams) -> None:
        await self.bot.answer_callback_query(
            callback_query_id=params.callback_query_id,
            text=params.text,
            show_alert=params.show_alert,
        )

    async def set_menu_commands(self, commands: Iterable[Union[BotCommand, Tuple[str, str]]]) -> None:
        """Устанавливает меню команд для личных чатов."""
        bot_commands = [
            c if isinstance(c, BotCommand) else BotCommand(command=c[0], description=c[1])
            for c in commands
        ]
        await self.bot.set_my_commands(bot_commands, scope=BotCommandScopeAllPrivateChats())
        self.log.info(f"Меню команд обновлено: {[c.command for c in bot_commands]}")
