"""Нормализация входящих aiogram.Update в BotUpdate."""
from typing import Optional

from aiogram.types import CallbackQuery, Message, Update

from kyc_bot.database.models.updates import BotUpdate, ContactInfo, PhotoInfo


def sender_id(update: Update) -> Optional[int]:
    """Telegram ID автора обновления, если он есть (у постов канала его нет)."""
    for attr in ("message", "callback_query", "edited_message"):
        obj = getattr(update, attr, None)
        if obj is not None and obj.from_user is not None:
            return obj.from_user.id
    return None


def classify_update(update: Update) -> Optional[BotUpdate]:
    """
    Приводит обновление к каноническому виду.

    Порядок распознавания: callback-кнопка, затем команда, затем текст/контакт/фото.
    Возвращает None для всего, что не поддерживается.
    """
    if update.callback_query is not None:
        return _from_callback(update.callback_query)
    if update.message is not None:
        return _from_message(update.message)
    return None


def _from_callback(callback: CallbackQuery) -> Optional[BotUpdate]:
    message = callback.message
    if message is None or callback.data is None:
        return None
    return BotUpdate(
        message_id=message.message_id,
        chat_id=message.chat.id,
        user_id=callback.from_user.id,
        callback_query_id=callback.id,
        callback_data=callback.data,
    )


def parse_command(text: str):
    """'/start@my_bot args' -> ('start', 'args'); None, если это не команда."""
    if not text.startswith("/") or len(text) < 2:
        return None
    head, _, args = text[1:].partition(" ")
    command = head.split("@", 1)[0]
    if not command:
        return None
    return command, (args.strip() or None)


def _from_message(message: Message) -> Optional[BotUpdate]:
    if message.from_user is None:
        return None

    base = dict(
        message_id=message.message_id,
        chat_id=message.chat.id,
        user_id=message.from_user.id,
    )

    if message.text:
        parsed = parse_command(message.text)
        if parsed is not None:
            command, args = parsed
            return BotUpdate(**base, command=command, command_args=args)

    contact = None
    if message.contact is not None:
        contact = ContactInfo(
            phone_number=message.contact.phone_number,
            user_id=message.contact.user_id,
        )

    photo = None
    if message.photo:
        best = message.photo[-1]
        photo = PhotoInfo(file_id=best.file_id, file_size=best.file_size)

    if message.text is None and contact is None and photo is None:
        return None

    return BotUpdate(**base, text=message.text, contact=contact, photo=photo)
