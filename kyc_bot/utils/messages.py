"""Построитель исходящих сообщений."""
from typing import List, Optional, Sequence

from aiogram.enums import ParseMode
from aiogram.utils.text_decorations import html_decoration

from kyc_bot.database.models.updates import Button, Keyboard, KeyboardKind, SendMessageParams


def quote(value: Optional[str]) -> str:
    """Экранирует пользовательский ввод для HTML-разметки."""
    return html_decoration.quote(value or "")


class MessageBuilder:
    """
    Fluent-построитель SendMessageParams.

    По умолчанию текст размечен как HTML.

    Пример:
        MessageBuilder(chat_id).with_text("<b>Hi</b>").with_remove_keyboard().build()
    """

    def __init__(self, chat_id: int):
        self._chat_id = chat_id
        self._text = ""
        self._parse_mode: Optional[str] = ParseMode.HTML
        self._keyboard: Optional[Keyboard] = None

    def with_text(self, text: str) -> "MessageBuilder":
        self._text = text
        return self

    def with_parse_mode(self, parse_mode: Optional[str]) -> "MessageBuilder":
        self._parse_mode = parse_mode
        return self

    def plain(self) -> "MessageBuilder":
        """Отключает разметку."""
        return self.with_parse_mode(None)

    def with_remove_keyboard(self) -> "MessageBuilder":
        self._keyboard = Keyboard.remove()
        return self

    def with_contact_button(self, text: str) -> "MessageBuilder":
        self._keyboard = Keyboard(
            kind=KeyboardKind.REPLY,
            rows=[[Button(text=text, request_contact=True)]],
        )
        return self

    def with_inline_buttons(self, rows: List[List[Button]]) -> "MessageBuilder":
        self._keyboard = Keyboard(kind=KeyboardKind.INLINE, rows=rows)
        return self

    def with_reply_buttons(self, texts: Sequence[str], columns: int = 2) -> "MessageBuilder":
        """Сетка reply-кнопок по columns в ряд."""
        columns = max(columns, 1)
        rows = [
            [Button(text=t) for t in texts[i:i + columns]]
            for i in range(0, len(texts), columns)
        ]
        self._keyboard = Keyboard(kind=KeyboardKind.REPLY, rows=rows)
        return self

    def build(self) -> SendMessageParams:
        return SendMessageParams(
            chat_id=self._chat_id,
            text=self._text,
            parse_mode=self._parse_mode,
            keyboard=self._keyboard,
        )
