"""Тексты вопросов анкеты для каждого шага регистрации."""
from typing import Optional

from kyc_bot.config.settings import Settings
from kyc_bot.database.models.updates import Button, SendMessageParams
from kyc_bot.database.models.user import ConversationState, User
from kyc_bot.utils.messages import MessageBuilder, quote

S = ConversationState

POLICY_ACCEPT = "policy_accept"
POLICY_DECLINE = "policy_decline"
SHARE_PHONE_BUTTON = "Share My Phone Number"

# Подсказки при вводе не того типа (фото вместо текста и т.п.)
WRONG_INPUT_HINTS = {
    S.AWAITING_FIRST_NAME: "Please reply with your <b>First Name</b> as text.",
    S.AWAITING_LAST_NAME: "Please reply with your <b>Last Name</b> as text.",
    S.AWAITING_PHONE: "Please press the <b>Share My Phone Number</b> button to continue.",
    S.AWAITING_GOV_ID: "Please reply with your <b>Government ID</b> as text.",
    S.AWAITING_LOCATION: "Please select your <b>Country of Residence</b> from the list.",
    S.AWAITING_IDENTITY_DOCUMENT: "Please upload a <b>photo</b> of your ID, not text or a file.",
    S.AWAITING_POLICY_APPROVAL: "Please use the buttons below to <b>accept</b> or <b>decline</b> the terms.",
}


def country_titles(settings: Settings) -> list:
    return [conf.title for conf in settings.COUNTRY_STRATEGIES.values()]


def policy_buttons() -> list:
    return [[
        Button(text="✅ I Accept", data=POLICY_ACCEPT),
        Button(text="❌ I Decline", data=POLICY_DECLINE),
    ]]


def prompt_for(
    state: ConversationState, chat_id: int, settings: Settings, user: Optional[User] = None
) -> Optional[SendMessageParams]:
    """Вопрос для шага state; None, если шаг не требует ввода."""
    builder = MessageBuilder(chat_id)

    if state == S.AWAITING_FIRST_NAME:
        return builder.with_text(
            "To get verified, please reply with your <b>legal First Name</b>."
        ).with_remove_keyboard().build()

    if state == S.AWAITING_LAST_NAME:
        return builder.with_text("Thank you. Now, please reply with your <b>legal Last Name</b>.").build()

    if state == S.AWAITING_PHONE:
        return builder.with_text(
            "Thank you. Now, please share your <b>Phone Number</b> by pressing the button below."
        ).with_contact_button(SHARE_PHONE_BUTTON).build()

    if state == S.AWAITING_GOV_ID:
        return builder.with_text(
            "Thank you. Please reply with your <b>Government ID / National ID Number</b>."
        ).with_remove_keyboard().build()

    if state == S.AWAITING_LOCATION:
        name = quote(user.first_name) if user and user.first_name else "there"
        return builder.with_text(
            f"Thank you, {name}.\n\n"
            "Your registration is almost complete. "
            "Please select your <b>Country of Residence</b> from the list below."
        ).with_reply_buttons(country_titles(settings), 2).build()

    if state == S.AWAITING_IDENTITY_DOCUMENT:
        return builder.with_text(
            "Thank you. As the next step, please upload a <b>single, clear photo</b> "
            "of your Government ID or Passport.\n\n"
            "This photo will be reviewed by an admin to verify your identity."
        ).with_remove_keyboard().build()

    if state == S.AWAITING_POLICY_APPROVAL:
        return builder.with_text(
            "Please review our terms of service and privacy policy.\n\n"
            f'<a href="{quote(settings.POLICY_URL)}">Link to Policy</a>\n\n'
            "Do you accept these terms?"
        ).with_inline_buttons(policy_buttons()).build()

    return None


def wrong_input_prompt(
    state: ConversationState, chat_id: int, settings: Settings, user: Optional[User] = None
) -> Optional[SendMessageParams]:
    """Подсказка с той же клавиатурой, что и у вопроса шага."""
    params = prompt_for(state, chat_id, settings, user)
    hint = WRONG_INPUT_HINTS.get(state)
    if params is None or hint is None:
        return params
    return params.model_copy(update={"text": hint})
