"""Нормализованные входящие события и параметры исходящих запросов к Telegram."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class ContactInfo(BaseModel):
    phone_number: str
    user_id: Optional[int] = None


class PhotoInfo(BaseModel):
    file_id: str
    file_size: Optional[int] = None


class BotUpdate(BaseModel):
    """
    Каноническое представление входящего обновления.

    Заполнена ровно одна из групп: команда, данные callback-кнопки
    или свободное содержимое (текст, контакт, фото).
    """

    message_id: int
    chat_id: int
    user_id: int

    command: Optional[str] = None
    command_args: Optional[str] = None

    callback_query_id: Optional[str] = None
    callback_data: Optional[str] = None

    text: Optional[str] = None
    contact: Optional[ContactInfo] = None
    photo: Optional[PhotoInfo] = None

    @model_validator(mode='after')
    def check_exclusive(self):
        kinds = [
            self.command is not None,
            self.callback_data is not None,
            self.has_content,
        ]
        if sum(kinds) != 1:
            raise ValueError("exactly one of command, callback_data or message content must be set")
        if self.command_args is not None and self.command is None:
            raise ValueError("command_args without command")
        return self

    @property
    def has_content(self) -> bool:
        return self.text is not None or self.contact is not None or self.photo is not None

    @property
    def is_command(self) -> bool:
        return self.command is not None

    @property
    def is_callback(self) -> bool:
        return self.callback_data is not None


class KeyboardKind(str, Enum):
    INLINE = "inline"
    REPLY = "reply"
    REMOVE = "remove"


class Button(BaseModel):
    text: str
    data: Optional[str] = None
    request_contact: bool = False


class Keyboard(BaseModel):
    kind: KeyboardKind
    rows: List[List[Button]] = Field(default_factory=list)

    @classmethod
    def remove(cls) -> "Keyboard":
        return cls(kind=KeyboardKind.REMOVE)


class SendMessageParams(BaseModel):
    chat_id: int
    text: str
    parse_mode: Optional[str] = None
    keyboard: Optional[Keyboard] = None


class SendPhotoParams(BaseModel):
    chat_id: int
    photo: str
    caption: Optional[str] = None
    parse_mode: Optional[str] = None
    keyboard: Optional[Keyboard] = None


class CopyMessageParams(BaseModel):
    chat_id: int
    from_chat_id: int
    message_id: int
    caption: Optional[str] = None
    parse_mode: Optional[str] = None
    keyboard: Optional[Keyboard] = None


class EditMessageParams(BaseModel):
    chat_id: int
    message_id: int
    text: str
    parse_mode: Optional[str] = None
    keyboard: Optional[Keyboard] = None


class EditCaptionParams(BaseModel):
    chat_id: int
    message_id: int
    caption: str
    parse_mode: Optional[str] = None
    keyboard: Optional[Keyboard] = None


class AnswerCallbackParams(BaseModel):
    callback_query_id: str
    text: Optional[str] = None
    show_alert: bool = False
