import asyncio

import aiohttp
import pytest
from aiohttp import test_utils

from kyc_bot.routing.classifier import sender_id
from kyc_bot.services.update_server import UpdateServer
from kyc_bot.utils.locks import KeyedLock

from helpers import callback_update, channel_post_update, make_settings, message_update


class FakePollingBot:
    """Отдаёт заранее заготовленные пачки обновлений, затем висит как long-poll."""

    def __init__(self, batches):
        self.batches = list(batches)
        self.offsets = []
        self.webhook_deleted = False

    async def delete_webhook(self, drop_pending_updates=False):
        self.webhook_deleted = True

    async def get_updates(self, offset=None, timeout=None, allowed_updates=None, request_timeout=None):
        self.offsets.append(offset)
        if self.batches:
            batch = self.batches.pop(0)
            if isinstance(batch, Exception):
                raise batch
            return batch
        await asyncio.sleep(3600)
        return []


async def run_until(server, condition, stop, timeout=2.0):
    task = asyncio.create_task(server.serve(stop))
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition() and loop.time() < deadline:
        await asyncio.sleep(0.01)
    stop.set()
    await asyncio.wait_for(task, timeout)


class TestSenderId:

    def test_message_and_callback(self):
        assert sender_id(message_update(11, text="hi")) == 11
        assert sender_id(callback_update(12, "x")) == 12

    def test_channel_post_has_no_sender(self):
        assert sender_id(channel_post_update(-100, "c")) is None


class TestUpdateServer:

    @pytest.mark.asyncio
    async def test_polling_dispatches_every_update_and_advances_offset(self):
        updates = [message_update(1, text="a"), message_update(2, text="b"), message_update(1, text="c")]
        bot = FakePollingBot([updates[:2], updates[2:]])
        seen = []

        async def dispatch(update):
            seen.append(update.update_id)

        server = UpdateServer("customer", bot, dispatch, make_settings(WORKER_POOL_SIZE=2), ["message"])
        await run_until(server, lambda: len(seen) == 3, asyncio.Event())

        assert sorted(seen) == sorted(u.update_id for u in updates)
        assert bot.webhook_deleted
        assert bot.offsets[:2] == [None, updates[1].update_id + 1]
        assert server.processed == 3

    @pytest.mark.asyncio
    async def test_stop_drains_accepted_updates(self):
        updates = [message_update(i, text="x") for i in range(1, 6)]
        bot = FakePollingBot([updates])
        release = asyncio.Event()
        done = []

        async def dispatch(update):
            await release.wait()
            done.append(update.update_id)

        server = UpdateServer("customer", bot, dispatch, make_settings(WORKER_POOL_SIZE=2), ["message"])
        stop = asyncio.Event()
        task = asyncio.create_task(server.serve(stop))
        while len(bot.offsets) < 2:
            await asyncio.sleep(0.01)

        stop.set()
        await asyncio.sleep(0.01)
        assert not task.done()
        release.set()
        await asyncio.wait_for(task, 2)

        assert len(done) == 5

    @pytest.mark.asyncio
    async def test_updates_of_one_user_are_serialized(self):
        updates = [message_update(7, text=str(i)) for i in range(4)]
        bot = FakePollingBot([updates])
        active = 0
        max_active = 0
        order = []

        async def dispatch(update):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            order.append(update.message.text)
            active -= 1

        server = UpdateServer("customer", bot, dispatch, make_settings(WORKER_POOL_SIZE=4), ["message"])
        await run_until(server, lambda: len(order) == 4, asyncio.Event())

        assert max_active == 1
        assert order == ["0", "1", "2", "3"]

    @pytest.mark.asyncio
    async def test_dispatch_error_does_not_stop_workers(self):
        updates = [message_update(1, text="boom"), message_update(2, text="ok")]
        bot = FakePollingBot([updates])
        seen = []

        async def dispatch(update):
            if update.message.text == "boom":
                raise RuntimeError("handler crashed")
            seen.append(update.message.text)

        server = UpdateServer("customer", bot, dispatch, make_settings(WORKER_POOL_SIZE=1), ["message"])
        await run_until(server, lambda: server.processed == 2, asyncio.Event())

        assert seen == ["ok"]

    @pytest.mark.asyncio
    async def test_polling_error_is_retried(self):
        update = message_update(3, text="after error")
        bot = FakePollingBot([RuntimeError("network"), [update]])
        seen = []

        async def dispatch(u):
            seen.append(u.update_id)

        server = UpdateServer("customer", bot, dispatch, make_settings(WORKER_POOL_SIZE=1), ["message"])
        await run_until(server, lambda: bool(seen), asyncio.Event(), timeout=5.0)

        assert seen == [update.update_id]
        assert bot.offsets[:2] == [None, None]


class FakeWebhookBot:

    def __init__(self):
        self.webhook_url = None
        self.allowed_updates = None

    async def set_webhook(self, url, allowed_updates=None):
        self.webhook_url = url
        self.allowed_updates = allowed_updates


def update_payload(update_id, user_id, text):
    """JSON обновления в том виде, в котором его присылает Telegram."""
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "date": 1700000000,
            "chat": {"id": user_id, "type": "private"},
            "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
            "text": text,
        },
    }


def webhook_settings(**overrides):
    return make_settings(
        BOT_MODE="webhook", WEBHOOK_URL="https://bot.example.com", WEBHOOK_HOST="127.0.0.1", **overrides
    )


class TestWebhook:

    @pytest.mark.asyncio
    async def test_valid_update_is_queued(self):
        server = UpdateServer("customer", FakeWebhookBot(), None, webhook_settings(), ["message"])

        async with test_utils.TestClient(test_utils.TestServer(server.build_webhook_app())) as http:
            response = await http.post("/webhook/customer", json=update_payload(501, 10, "hello"))

        assert response.status == 200
        queued = server.queue.get_nowait()
        assert queued.update_id == 501
        assert queued.message.text == "hello"
        assert queued.message.from_user.id == 10

    @pytest.mark.asyncio
    async def test_malformed_requests_rejected(self):
        server = UpdateServer("customer", FakeWebhookBot(), None, webhook_settings(), ["message"])

        async with test_utils.TestClient(test_utils.TestServer(server.build_webhook_app())) as http:
            not_json = await http.post("/webhook/customer", data="not json")
            not_update = await http.post("/webhook/customer", json={"foo": 1})
            other_pool = await http.post("/webhook/moderator", json=update_payload(502, 10, "hi"))

        assert not_json.status == 400
        assert not_update.status == 400
        assert other_pool.status == 404
        assert server.queue.empty()

    @pytest.mark.asyncio
    async def test_serve_in_webhook_mode_dispatches_and_drains_on_stop(self):
        bot = FakeWebhookBot()
        release = asyncio.Event()
        done = []

        async def dispatch(update):
            await release.wait()
            done.append(update.update_id)

        server = UpdateServer(
            "customer", bot, dispatch, webhook_settings(WORKER_POOL_SIZE=2), ["message"], webhook_port=0
        )
        stop = asyncio.Event()
        task = asyncio.create_task(server.serve(stop))
        for _ in range(200):
            if bot.webhook_url is not None:
                break
            await asyncio.sleep(0.01)
        assert bot.webhook_url == "https://bot.example.com/webhook/customer"
        assert bot.allowed_updates == ["message"]

        port = server.runner.addresses[0][1]
        async with aiohttp.ClientSession() as session:
            for update_id in (601, 602, 603):
                url = f"http://127.0.0.1:{port}/webhook/customer"
                async with session.post(url, json=update_payload(update_id, update_id, "x")) as response:
                    assert response.status == 200

        stop.set()
        await asyncio.sleep(0.01)
        assert not task.done()
        release.set()
        await asyncio.wait_for(task, 5)

        assert sorted(done) == [601, 602, 603]
        assert server.runner is None


class TestKeyedLock:

    @pytest.mark.asyncio
    async def test_entries_removed_after_release(self):
        locks = KeyedLock()

        async with locks.hold("a"):
            assert len(locks) == 1

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_same_key_is_exclusive_other_keys_are_not(self):
        locks = KeyedLock()
        events = []

        async def worker(key, name):
            async with locks.hold(key):
                events.append(f"{name}:in")
                await asyncio.sleep(0.01)
                events.append(f"{name}:out")

        await asyncio.gather(worker(1, "a"), worker(1, "b"), worker(2, "c"))

        assert events.index("a:out") < events.index("b:in")
        assert events.index("c:in") < events.index("a:out")
        assert len(locks) == 0
