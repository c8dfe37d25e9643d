"""
Точка входа бота KYC-верификации.

Использование:
    python -m kyc_bot.main
    kyc-bot
"""
import asyncio
import sys

from loguru import logger
from pydantic import ValidationError

from kyc_bot.app import BotApp
from kyc_bot.config.settings import get_settings
from kyc_bot.logging_setup import setup_logging


def main():
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.critical(f"❌ Ошибка конфигурации:\n{e}")
        logger.info("💡 Создайте файл .env на основе .env.example")
        sys.exit(1)

    setup_logging(settings)
    logger.info(f"🚀 Запуск бота KYC-верификации (env={settings.APP_ENV}, режим={settings.BOT_MODE})")
    logger.info("📋 Для остановки нажмите Ctrl+C")

    try:
        asyncio.run(BotApp(settings).run())
    except (KeyboardInterrupt, SystemExit):
        logger.info("✅ Бот остановлен.")
    except Exception as e:
        logger.critical(f"💥 Непредвиденная ошибка: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
