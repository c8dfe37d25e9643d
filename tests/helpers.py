import itertools
from datetime import datetime
from typing import List, Optional

from aiogram.types import CallbackQuery, Chat, Contact, Message, PhotoSize, Update
from aiogram.types import User as TgUser

from kyc_bot.config.settings import Settings
from kyc_bot.database.models.events import VerificationEvent
from kyc_bot.services.verification_queue import VerificationQueue

RELAY_CHANNEL_ID = -1001000000001
REVIEW_CHANNEL_ID = -1001000000002
TEST_KEY_HEX = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"

_ids = itertools.count(1)


def make_settings(**overrides) -> Settings:
    values = dict(
        CUSTOMER_BOT_TOKEN="111:customer",
        MODERATOR_BOT_TOKEN="222:moderator",
        RELAY_CHANNEL_ID=RELAY_CHANNEL_ID,
        ADMIN_REVIEW_CHANNEL_ID=REVIEW_CHANNEL_ID,
        ENCRYPTION_KEY=TEST_KEY_HEX,
        LOG_FILE=None,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeBotClient:
    """Записывает все исходящие вызовы; может имитировать сбой транспорта."""

    def __init__(self):
        self.messages = []
        self.photos = []
        self.copies = []
        self.text_edits = []
        self.caption_edits = []
        self.answers = []
        self.fail = False
        self._ids = itertools.count(100)

    def _next(self) -> int:
        if self.fail:
            raise RuntimeError("transport down")
        return next(self._ids)

    async def send_message(self, params):
        message_id = self._next()
        self.messages.append(params)
        return message_id

    async def send_photo(self, params):
        message_id = self._next()
        self.photos.append(params)
        return message_id

    async def copy_message(self, params):
        message_id = self._next()
        self.copies.append(params)
        return message_id

    async def edit_message_text(self, params):
        self.text_edits.append(params)

    async def edit_message_caption(self, params):
        self.caption_edits.append(params)

    async def answer_callback_query(self, params):
        self.answers.append(params)

    @property
    def last_text(self) -> Optional[str]:
        return self.messages[-1].text if self.messages else None


class FakeQueue(VerificationQueue):

    def __init__(self):
        self.published: List[VerificationEvent] = []
        self.handlers = []
        self.fail = False

    async def publish(self, event: VerificationEvent) -> str:
        if self.fail:
            raise RuntimeError("relay channel unavailable")
        self.published.append(event)
        return f"ref-{len(self.published)}"

    def subscribe(self, handler) -> None:
        self.handlers.append(handler)


def tg_user(user_id: int) -> TgUser:
    return TgUser(id=user_id, is_bot=False, first_name="Test")


def make_message(
    user_id: int,
    text: Optional[str] = None,
    contact_phone: Optional[str] = None,
    contact_user_id: Optional[int] = None,
    photo: bool = False,
    chat_id: Optional[int] = None,
    message_id: Optional[int] = None,
) -> Message:
    contact = None
    if contact_phone is not None:
        contact = Contact(phone_number=contact_phone, first_name="Test", user_id=contact_user_id)
    photos = None
    if photo:
        photos = [
            PhotoSize(file_id="small", file_unique_id="s", width=90, height=90, file_size=1000),
            PhotoSize(file_id="large", file_unique_id="l", width=1280, height=960, file_size=90000),
        ]
    return Message(
        message_id=message_id or next(_ids),
        date=datetime.now(),
        chat=Chat(id=chat_id or user_id, type="private"),
        from_user=tg_user(user_id),
        text=text,
        contact=contact,
        photo=photos,
    )


def message_update(user_id: int, **kwargs) -> Update:
    return Update(update_id=next(_ids), message=make_message(user_id, **kwargs))


def callback_update(user_id: int, data: str, chat_id: Optional[int] = None, message_id: int = 42) -> Update:
    message = Message(
        message_id=message_id,
        date=datetime.now(),
        chat=Chat(id=chat_id or user_id, type="private"),
        text="buttons",
    )
    callback = CallbackQuery(
        id=f"cb-{next(_ids)}",
        from_user=tg_user(user_id),
        chat_instance="instance",
        message=message,
        data=data,
    )
    return Update(update_id=next(_ids), callback_query=callback)


def channel_post_update(chat_id: int, caption: Optional[str], photo: bool = True, message_id: int = 777) -> Update:
    photos = None
    if photo:
        photos = [
            PhotoSize(file_id="relay-small", file_unique_id="rs", width=90, height=90),
            PhotoSize(file_id="relay-large", file_unique_id="rl", width=1280, height=960),
        ]
    post = Message(
        message_id=message_id,
        date=datetime.now(),
        chat=Chat(id=chat_id, type="channel"),
        photo=photos,
        caption=caption,
        text=None if photo else caption,
    )
    return Update(update_id=next(_ids), channel_post=post)

