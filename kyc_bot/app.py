"""Основной класс приложения: два бота, шина, очередь и пулы воркеров."""

import asyncio
import signal
from typing import List, Optional

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from loguru import logger

from kyc_bot.config.settings import Settings
from kyc_bot.database.manager import DatabaseManager
from kyc_bot.dispatcher_setup import (
    CUSTOMER_ALLOWED_UPDATES,
    MODERATOR_ALLOWED_UPDATES,
    build_customer_registry,
    build_moderator_registry,
    bus_dispatch,
)
from kyc_bot.handlers.customer.notifications import NotificationHandler
from kyc_bot.handlers.moderator.forwarding import ForwardingHandler
from kyc_bot.routing.handlers import HandlerDeps
from kyc_bot.routing.router import UpdateRouter
from kyc_bot.services.event_bus import TOPIC_MOD_CALLBACK_QUERY, TOPIC_MOD_MESSAGE, EventBus
from kyc_bot.services.security_service import AESService
from kyc_bot.services.telegram_client import TelegramClient
from kyc_bot.services.update_server import UpdateServer
from kyc_bot.services.verification_queue import TelegramChannelQueue
from kyc_bot.utils.commands import CUSTOMER_COMMANDS, MODERATOR_COMMANDS, set_bot_commands


class BotApp:
    """
    Инициализирует и связывает все компоненты: настройки, базу данных,
    ботов, шину событий, очередь документов, маршрутизаторы и пулы воркеров.

    Порядок остановки: пулы дообрабатывают очереди, шина дожидается
    своих обработчиков, затем закрываются база и сессии ботов.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.crypto: Optional[AESService] = None
        self.db_manager: Optional[DatabaseManager] = None
        self.bus: Optional[EventBus] = None
        self.customer_bot: Optional[Bot] = None
        self.moderator_bot: Optional[Bot] = None
        self.customer_client: Optional[TelegramClient] = None
        self.moderator_client: Optional[TelegramClient] = None
        self.queue: Optional[TelegramChannelQueue] = None
        self.customer_router: Optional[UpdateRouter] = None
        self.moderator_router: Optional[UpdateRouter] = None
        self.servers: List[UpdateServer] = []
        self.stop_event = asyncio.Event()

    async def _setup_database(self):
        """Ключ шифрования проверяется здесь: неверная длина фатальна."""
        self.crypto = AESService(self.settings.encryption_key_bytes)
        self.db_manager = DatabaseManager(self.settings.DATABASE_PATH, self.crypto)
        await self.db_manager.init_database()

    async def _setup_bots(self):
        defaults = DefaultBotProperties(parse_mode=ParseMode.HTML)
        self.customer_bot = Bot(token=self.settings.get_customer_token(), default=defaults)
        self.moderator_bot = Bot(token=self.settings.get_moderator_token(), default=defaults)
        self.customer_client = TelegramClient(self.customer_bot, "customer")
        self.moderator_client = TelegramClient(self.moderator_bot, "moderator")
        logger.info("Боты заявителей и модераторов настроены.")

    async def _setup_routing(self):
        """Собирает реестры, маршрутизаторы и подписки на шину."""
        self.bus = EventBus()
        self.queue = TelegramChannelQueue(self.customer_client, self.settings.RELAY_CHANNEL_ID, self.bus)

        customer_deps = HandlerDeps(
            settings=self.settings,
            users=self.db_manager.users,
            client=self.customer_client,
            bus=self.bus,
            queue=self.queue,
        )
        moderator_deps = HandlerDeps(
            settings=self.settings,
            users=self.db_manager.users,
            client=self.moderator_client,
            bus=self.bus,
            queue=self.queue,
        )

        self.customer_router = UpdateRouter(
            "customer",
            self.db_manager.users,
            self.customer_client,
            build_customer_registry().build(customer_deps),
        )
        self.moderator_router = UpdateRouter(
            "moderator",
            self.db_manager.users,
            self.moderator_client,
            build_moderator_registry().build(moderator_deps),
            enforce_authorization=True,
            serialize_events=self.settings.SERIALIZE_PER_USER,
        )

        self.bus.subscribe(TOPIC_MOD_MESSAGE, self.moderator_router.handle_event)
        self.bus.subscribe(TOPIC_MOD_CALLBACK_QUERY, self.moderator_router.handle_event)
        self.queue.subscribe(ForwardingHandler(moderator_deps))
        NotificationHandler(customer_deps).subscribe(self.bus)

        self.servers = [
            UpdateServer(
                "customer",
                self.customer_bot,
                self.customer_router.handle_update,
                self.settings,
                CUSTOMER_ALLOWED_UPDATES,
                webhook_port=self.settings.CUSTOMER_WEBHOOK_PORT,
            ),
            UpdateServer(
                "moderator",
                self.moderator_bot,
                bus_dispatch(self.bus),
                self.settings,
                MODERATOR_ALLOWED_UPDATES,
                webhook_port=self.settings.MODERATOR_WEBHOOK_PORT,
            ),
        ]
        logger.info("Маршрутизация полностью настроена.")

    async def on_startup(self):
        """Выполняется при старте: меню команд и права модераторов из настроек."""
        logger.info("Запуск ботов...")
        await set_bot_commands(self.customer_client, CUSTOMER_COMMANDS)
        await set_bot_commands(self.moderator_client, MODERATOR_COMMANDS)

        for telegram_id in self.settings.REVIEWER_IDS:
            try:
                await self.db_manager.users.promote_reviewer(telegram_id)
                logger.info(f"👮 Модератор {telegram_id} активирован")
            except Exception as e:
                logger.error(f"Не удалось назначить модератора {telegram_id}: {e}")

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Обработчик сигнала {sig.name} недоступен на этой платформе")

    def stop(self):
        if not self.stop_event.is_set():
            logger.info("Получен сигнал остановки")
            self.stop_event.set()

    async def _serve(self, server: UpdateServer):
        """Если один пул завершился, останавливаем и второй."""
        try:
            await server.serve(self.stop_event)
        finally:
            self.stop()

    async def on_shutdown(self):
        """Освобождает ресурсы в порядке, обратном зависимостям."""
        logger.info("Остановка ботов...")
        if self.bus:
            await self.bus.close(self.settings.BUS_DRAIN_TIMEOUT)
            if self.bus.unrouted_count:
                logger.warning(f"За время работы {self.bus.unrouted_count} событий шины ушли без подписчиков")
        if self.db_manager:
            await self.db_manager.close()
        for bot in (self.customer_bot, self.moderator_bot):
            if bot:
                await bot.session.close()
        logger.info("Все ресурсы освобождены. Боты остановлены.")

    async def run(self):
        """Главный метод: настройка, запуск пулов и ожидание сигнала остановки."""
        try:
            await self._setup_database()
            await self._setup_bots()
            await self._setup_routing()
            await self.on_startup()
            self._install_signal_handlers()

            await asyncio.gather(*(self._serve(server) for server in self.servers))
        except Exception as e:
            logger.critical(f"Критическая ошибка при работе бота: {e}")
            raise
        finally:
            await self.on_shutdown()
