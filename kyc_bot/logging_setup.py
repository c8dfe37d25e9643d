"""Настройка loguru для всего приложения."""
import sys

from loguru import logger

from kyc_bot.config.settings import Settings


def setup_logging(settings: Settings) -> None:
    """Заменяет стандартный sink loguru на stderr и ротируемый файл."""
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)
    if settings.LOG_FILE:
        logger.add(settings.LOG_FILE, level=settings.LOG_LEVEL, rotation="10 MB", retention=1)
    logger.debug(f"Логирование настроено: level={settings.LOG_LEVEL}, file={settings.LOG_FILE}")
