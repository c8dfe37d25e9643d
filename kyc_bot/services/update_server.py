"""
Приём обновлений Telegram и пул воркеров.

Один цикл приёма на бота (long polling или вебхук) складывает обновления
в ограниченную очередь, N воркеров вызывают для них dispatch.
При остановке приём прекращается, а уже принятые обновления дообрабатываются.
"""
import asyncio
from typing import Awaitable, Callable, List, Optional

from aiogram import Bot
from aiogram.types import Update
from aiohttp import web
from loguru import logger

from kyc_bot.config.settings import Settings
from kyc_bot.routing.classifier import sender_id
from kyc_bot.utils.locks import KeyedLock

Dispatch = Callable[[Update], Awaitable[None]]

MAX_BACKOFF = 30.0


class UpdateServer:
    """
    :param name: Имя пула ("customer" / "moderator"), используется в логах и пути вебхука.
    :param bot: Бот, из которого читаются обновления.
    :param dispatch: Корутина, обрабатывающая одно обновление.
    :param allowed_updates: Типы обновлений, которые запрашиваются у Telegram.
    :param webhook_port: Порт aiohttp-сервера в режиме вебхука.
    """

    def __init__(
        self,
        name: str,
        bot: Bot,
        dispatch: Dispatch,
        settings: Settings,
        allowed_updates: List[str],
        webhook_port: Optional[int] = None,
    ):
        self.name = name
        self.bot = bot
        self.dispatch = dispatch
        self.settings = settings
        self.allowed_updates = allowed_updates
        self.webhook_port = webhook_port
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=settings.UPDATE_QUEUE_SIZE)
        self._user_locks: Optional[KeyedLock] = KeyedLock() if settings.SERIALIZE_PER_USER else None
        self.processed = 0
        self.runner: Optional[web.AppRunner] = None
        self.log = logger.bind(component=f"server:{name}")

    async def serve(self, stop: asyncio.Event) -> None:
        """Работает до установки stop, затем дожидается обработки очереди."""
        workers = [
            asyncio.create_task(self._worker(i), name=f"{self.name}-worker-{i}")
            for i in range(self.settings.WORKER_POOL_SIZE)
        ]
        ingest = self._run_webhook() if self.settings.is_webhook else self._poll()
        ingestion = asyncio.create_task(ingest, name=f"{self.name}-ingestion")
        stopper = asyncio.create_task(stop.wait())
        self.log.info(
            f"🚀 Пул '{self.name}' запущен: режим={self.settings.BOT_MODE}, "
            f"воркеров={len(workers)}, очередь={self.queue.maxsize}"
        )

        try:
            await asyncio.wait({ingestion, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            ingestion.cancel()
            try:
                await ingestion
            except asyncio.CancelledError:
                pass
            except Exception:
                self.log.exception(f"Цикл приёма пула '{self.name}' упал")

            self.log.info(f"Пул '{self.name}': приём остановлен, дообрабатываем {self.queue.qsize()} обновлений")
            for _ in workers:
                await self.queue.put(None)
            await asyncio.gather(*workers)
            self.log.info(f"Пул '{self.name}' остановлен, обработано {self.processed} обновлений")

    async def _worker(self, index: int) -> None:
        while True:
            update = await self.queue.get()
            try:
                if update is None:
                    return
                await self._process(update)
            finally:
                self.queue.task_done()

    async def _process(self, update: Update) -> None:
        key = sender_id(update) if self._user_locks is not None else None
        try:
            if key is None:
                await self.dispatch(update)
            else:
                async with self._user_locks.hold(key):
                    await self.dispatch(update)
        except Exception:
            self.log.exception(f"Ошибка обработки обновления {update.update_id}")
        finally:
            self.processed += 1

    async def _poll(self) -> None:
        """Long polling через getUpdates с экспоненциальной паузой при ошибках."""
        await self.bot.delete_webhook(drop_pending_updates=False)
        offset = None
        backoff = 1.0
        timeout = self.settings.POLLING_TIMEOUT
        while True:
            try:
                updates = await self.bot.get_updates(
                    offset=offset,
                    timeout=timeout,
                    allowed_updates=self.allowed_updates,
                    request_timeout=timeout + 10,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.log.error(f"Ошибка getUpdates в пуле '{self.name}': {e}, повтор через {backoff:.0f} с")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)
                continue

            backoff = 1.0
            for update in updates:
                await self.queue.put(update)
                offset = update.update_id + 1

    def build_webhook_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post(f"/webhook/{self.name}", self._on_webhook)
        return app

    async def _on_webhook(self, request: web.Request) -> web.Response:
        try:
            payload = await request.json()
            update = Update.model_validate(payload, context={"bot": self.bot})
        except Exception as e:
            self.log.warning(f"Некорректный запрос вебхука пула '{self.name}': {e}")
            return web.Response(status=400)
        await self.queue.put(update)
        return web.Response()

    async def _run_webhook(self) -> None:
        runner = web.AppRunner(self.build_webhook_app())
        await runner.setup()
        self.runner = runner
        site = web.TCPSite(runner, self.settings.WEBHOOK_HOST, self.webhook_port)
        await site.start()
        url = self.settings.webhook_url_for(self.name)
        try:
            await self.bot.set_webhook(url, allowed_updates=self.allowed_updates)
            self.log.info(f"Вебхук пула '{self.name}' слушает порт {self.webhook_port}, url={url}")
            await asyncio.Event().wait()
        finally:
            self.runner = None
            await runner.cleanup()
