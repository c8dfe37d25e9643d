import pytest
import pytest_asyncio

from kyc_bot.database.manager import DatabaseManager
from kyc_bot.routing.handlers import HandlerDeps
from kyc_bot.services.event_bus import EventBus
from kyc_bot.services.security_service import AESService

from helpers import TEST_KEY_HEX, FakeBotClient, FakeQueue, make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def crypto():
    return AESService(bytes.fromhex(TEST_KEY_HEX))


@pytest_asyncio.fixture
async def db(crypto):
    manager = DatabaseManager(":memory:", crypto)
    await manager.init_database()
    yield manager
    await manager.close()


@pytest.fixture
def users(db):
    return db.users


@pytest.fixture
def client():
    return FakeBotClient()


@pytest.fixture
def queue():
    return FakeQueue()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def deps(settings, users, client, bus, queue):
    return HandlerDeps(settings=settings, users=users, client=client, bus=bus, queue=queue)
