"""Шина событий в памяти процесса (topic -> список обработчиков)."""
import asyncio
import threading
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Set

from loguru import logger

from kyc_bot.database.models.events import Event

EventHandler = Callable[[Event], Awaitable[None]]

# Топики модераторского пула и результатов проверки
TOPIC_MOD_CHANNEL_POST = "telegram:mod:channel_post"
TOPIC_MOD_MESSAGE = "telegram:mod:message"
TOPIC_MOD_CALLBACK_QUERY = "telegram:mod:callback_query"
TOPIC_USER_APPROVED = "user:approved"
TOPIC_USER_REJECTED = "user:rejected"


class EventBus:
    """
    Publish/subscribe без гарантий доставки.

    Каждый подписчик запускается отдельной задачей, publish не ждёт их завершения.
    Ошибка одного подписчика логируется и не влияет ни на остальных, ни на издателя.
    Запущенные задачи учитываются, чтобы при остановке можно было их дождаться.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._pending: Set[asyncio.Task] = set()
        self._closed = False
        self.unrouted_count = 0
        self.log = logger.bind(component="event_bus")

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        with self._lock:
            self._subscribers[topic].append(handler)
        self.log.info(f"Новая подписка на топик '{topic}': {_handler_name(handler)}")

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    async def publish(self, topic: str, data: Any = None) -> None:
        """Запускает всех подписчиков топика и сразу возвращает управление."""
        if self._closed:
            self.log.warning(f"Шина закрыта, событие '{topic}' отброшено")
            return

        with self._lock:
            handlers = list(self._subscribers.get(topic, ()))

        if not handlers:
            self.unrouted_count += 1
            self.log.warning(f"Нет подписчиков на топик '{topic}', событие отброшено")
            return

        event = Event(topic=topic, data=data)
        for handler in handlers:
            # Отдельная задача: отмена издателя не прерывает подписчика
            task = asyncio.create_task(self._run_handler(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _run_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except asyncio.CancelledError:
            self.log.warning(f"Обработчик {_handler_name(handler)} топика '{event.topic}' отменён")
            raise
        except Exception:
            self.log.exception(f"Ошибка в обработчике {_handler_name(handler)} топика '{event.topic}'")

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: float = None) -> bool:
        """
        Ждёт завершения всех запущенных обработчиков, включая порождённые во время ожидания.

        Возвращает False, если по таймауту остались незавершённые задачи.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._pending:
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            if remaining == 0:
                break
            await asyncio.wait(set(self._pending), timeout=remaining)
        if self._pending:
            self.log.warning(f"Не дождались {len(self._pending)} обработчиков шины")
            return False
        return True

    async def close(self, timeout: float = None) -> None:
        """
        Дожидается обработчиков, затем перестаёт принимать события и отменяет зависшие.

        Пока идёт ожидание, обработчики ещё могут публиковать производные события.
        """
        drained = await self.drain(timeout)
        self._closed = True
        if not drained:
            stuck = list(self._pending)
            for task in stuck:
                task.cancel()
            await asyncio.gather(*stuck, return_exceptions=True)
        self.log.info("Шина событий остановлена")


def _handler_name(handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)
