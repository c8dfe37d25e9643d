"""Исключения предметной области бота."""


class KycBotError(Exception):
    """Базовое исключение приложения."""


class DecryptionError(KycBotError):
    """Шифротекст повреждён или подделан."""


class UserNotFoundError(KycBotError):
    """Запись пользователя отсутствует в базе."""

    def __init__(self, user_id):
        super().__init__(f"user {user_id} not found")
        self.user_id = user_id


class QueuePublishError(KycBotError):
    """Не удалось отправить документ в канал-очередь."""
