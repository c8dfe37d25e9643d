"""Таблица переходов процесса регистрации."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from kyc_bot.database.models.updates import BotUpdate
from kyc_bot.database.models.user import ConversationState


class InputKind(str, Enum):
    TEXT = "text"
    CONTACT = "contact"
    PHOTO = "photo"
    CALLBACK = "callback"


def input_kind(update: BotUpdate) -> Optional[InputKind]:
    """Вид ввода пользователя; команды не считаются вводом для анкеты."""
    if update.callback_data is not None:
        return InputKind.CALLBACK
    if update.photo is not None:
        return InputKind.PHOTO
    if update.contact is not None:
        return InputKind.CONTACT
    if update.text is not None:
        return InputKind.TEXT
    return None


@dataclass(frozen=True)
class Step:
    state: ConversationState
    expects: InputKind
    next_state: ConversationState


S = ConversationState

REGISTRATION_FLOW: Dict[ConversationState, Step] = {
    step.state: step
    for step in (
        Step(S.AWAITING_FIRST_NAME, InputKind.TEXT, S.AWAITING_LAST_NAME),
        Step(S.AWAITING_LAST_NAME, InputKind.TEXT, S.AWAITING_PHONE),
        Step(S.AWAITING_PHONE, InputKind.CONTACT, S.AWAITING_GOV_ID),
        Step(S.AWAITING_GOV_ID, InputKind.TEXT, S.AWAITING_LOCATION),
        Step(S.AWAITING_LOCATION, InputKind.TEXT, S.AWAITING_IDENTITY_DOCUMENT),
        Step(S.AWAITING_IDENTITY_DOCUMENT, InputKind.PHOTO, S.AWAITING_POLICY_APPROVAL),
        # Accept ведёт в NONE, decline обрабатывается отдельно и возвращает к началу
        Step(S.AWAITING_POLICY_APPROVAL, InputKind.CALLBACK, S.NONE),
    )
}


def step_for(state: ConversationState) -> Optional[Step]:
    return REGISTRATION_FLOW.get(state)
