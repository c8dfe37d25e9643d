"""Настройки конфигурации бота KYC-верификации."""
from functools import lru_cache
from typing import Annotated, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class CountryConfig(BaseModel):
    """Страна проживания и стратегия верификации для неё."""

    title: str
    strategy: str


DEFAULT_COUNTRY_STRATEGIES = {
    "IR": CountryConfig(title="Iran", strategy="manual_review"),
    "AE": CountryConfig(title="United Arab Emirates", strategy="manual_review"),
    "TR": CountryConfig(title="Turkey", strategy="manual_review"),
    "DE": CountryConfig(title="Germany", strategy="document_check"),
}


class Settings(BaseSettings):
    """Основные настройки приложения."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # 1. Общие
    APP_ENV: str = Field(default="development", description="Окружение запуска")
    LOG_LEVEL: str = Field(default="INFO", description="Уровень логирования")
    LOG_FILE: Optional[str] = Field(default="bot.log", description="Файл логов (пусто = только stderr)")

    # 2. Настройки Telegram
    CUSTOMER_BOT_TOKEN: SecretStr = Field(..., description="Токен бота для заявителей")
    MODERATOR_BOT_TOKEN: SecretStr = Field(..., description="Токен бота для модераторов")
    RELAY_CHANNEL_ID: int = Field(..., description="ID приватного канала-очереди документов")
    ADMIN_REVIEW_CHANNEL_ID: int = Field(..., description="ID канала, куда модераторам приходят заявки")
    REVIEWER_IDS: Annotated[List[int], NoDecode] = Field(
        default_factory=list,
        description="Telegram ID модераторов (через запятую в .env)"
    )
    POLICY_URL: str = Field(
        default="https://example.com/terms",
        description="Ссылка на условия использования"
    )
    COUNTRY_STRATEGIES: Dict[str, CountryConfig] = Field(
        default_factory=lambda: dict(DEFAULT_COUNTRY_STRATEGIES),
        description="ISO-код страны -> {title, strategy} (JSON в .env)"
    )

    # 3. Режим получения обновлений
    BOT_MODE: Literal["polling", "webhook"] = Field(default="polling")
    POLLING_TIMEOUT: int = Field(default=30, description="Таймаут long-poll в секундах")
    WEBHOOK_URL: Optional[str] = Field(default=None, description="Публичный базовый URL вебхука")
    WEBHOOK_HOST: str = Field(default="0.0.0.0")
    CUSTOMER_WEBHOOK_PORT: int = Field(default=8443)
    MODERATOR_WEBHOOK_PORT: int = Field(default=8444)

    # 4. Пул обработчиков
    WORKER_POOL_SIZE: int = Field(default=5, description="Количество воркеров на пул")
    UPDATE_QUEUE_SIZE: int = Field(default=100, description="Размер очереди обновлений")
    SERIALIZE_PER_USER: bool = Field(
        default=True,
        description="Обрабатывать события одного пользователя строго по очереди"
    )
    BUS_DRAIN_TIMEOUT: float = Field(
        default=10.0,
        description="Сколько ждать завершения обработчиков шины при остановке (сек)"
    )

    # 5. Хранилище и шифрование
    DATABASE_PATH: str = Field(default="kyc_bot.db", description="Путь к файлу SQLite")
    ENCRYPTION_KEY: SecretStr = Field(..., description="Ключ AES-256 (64 hex-символа)")

    # Валидаторы
    @field_validator('REVIEWER_IDS', mode='before')
    def parse_ids(cls, value):
        if isinstance(value, str):
            return [int(x.strip()) for x in value.split(',') if x.strip()]
        if isinstance(value, int):
            return [value]
        return value

    @field_validator('ENCRYPTION_KEY')
    def check_encryption_key(cls, value: SecretStr):
        raw = value.get_secret_value()
        if len(raw) != 64:
            raise ValueError("ENCRYPTION_KEY must be a 64-character hex string")
        try:
            bytes.fromhex(raw)
        except ValueError:
            raise ValueError("ENCRYPTION_KEY must be a 64-character hex string")
        return value

    @field_validator('COUNTRY_STRATEGIES')
    def check_countries(cls, value: Dict[str, CountryConfig]):
        if not value:
            raise ValueError("COUNTRY_STRATEGIES must contain at least one country")
        return {code.upper(): conf for code, conf in value.items()}

    @model_validator(mode='after')
    def check_runtime(self):
        if self.WORKER_POOL_SIZE <= 0:
            raise ValueError("WORKER_POOL_SIZE must be > 0")
        if self.UPDATE_QUEUE_SIZE <= 0:
            raise ValueError("UPDATE_QUEUE_SIZE must be > 0")
        if self.BOT_MODE == "webhook" and not self.WEBHOOK_URL:
            raise ValueError("WEBHOOK_URL is required when BOT_MODE is 'webhook'")
        return self

    # Методы для удобства
    def get_customer_token(self) -> str:
        """Токен бота заявителей в виде строки."""
        return self.CUSTOMER_BOT_TOKEN.get_secret_value()

    def get_moderator_token(self) -> str:
        """Токен бота модераторов в виде строки."""
        return self.MODERATOR_BOT_TOKEN.get_secret_value()

    @property
    def encryption_key_bytes(self) -> bytes:
        return bytes.fromhex(self.ENCRYPTION_KEY.get_secret_value())

    @property
    def is_webhook(self) -> bool:
        return self.BOT_MODE == "webhook"

    def webhook_url_for(self, pool: str) -> str:
        """Полный URL вебхука для пула ("customer" или "moderator")."""
        return f"{self.WEBHOOK_URL.rstrip('/')}/webhook/{pool}"


@lru_cache
def get_settings() -> Settings:
    """Ленивая инициализация настроек из окружения и .env."""
    return Settings()
