"""Меню команд ботов."""
from aiogram.exceptions import TelegramAPIError
from aiogram.types import BotCommand
from loguru import logger

from kyc_bot.services.telegram_client import TelegramClient

CUSTOMER_COMMANDS = [
    BotCommand(command="start", description="Start or continue verification"),
]

MODERATOR_COMMANDS = [
    BotCommand(command="pending", description="Review the next pending application"),
]


async def set_bot_commands(client: TelegramClient, commands) -> None:
    """
    Устанавливает команды в интерфейсе Telegram для личных чатов.

    Ошибка API не мешает запуску бота.
    """
    try:
        await client.set_menu_commands(commands)
    except TelegramAPIError as e:
        logger.error(f"Не удалось установить команды бота: {e}")
