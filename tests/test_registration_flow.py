from unittest.mock import AsyncMock

import pytest

from kyc_bot.database.models.user import ConversationState, User, VerificationStatus
from kyc_bot.dispatcher_setup import build_customer_registry
from kyc_bot.handlers.customer.prompts import POLICY_ACCEPT, POLICY_DECLINE
from kyc_bot.handlers.customer.registration import SUBMIT_ERROR_TEXT
from kyc_bot.routing.router import INTERNAL_ERROR_TEXT, UpdateRouter
from kyc_bot.states.registration import REGISTRATION_FLOW, InputKind

from helpers import callback_update, message_update

S = ConversationState
APPLICANT = 700


@pytest.fixture
def router(deps):
    return UpdateRouter("customer", deps.users, deps.client, build_customer_registry().build(deps))


async def send(router, telegram_id=APPLICANT, **kwargs):
    await router.handle_update(message_update(telegram_id, **kwargs))


async def state_of(users, telegram_id=APPLICANT):
    return (await users.get_by_telegram_id(telegram_id)).conversation_state


async def advance_to(router, users, state):
    """Проводит заявителя по анкете до нужного шага."""
    await send(router, text="/start")
    inputs = [
        (S.AWAITING_FIRST_NAME, dict(text="John")),
        (S.AWAITING_LAST_NAME, dict(text="Smith")),
        (S.AWAITING_PHONE, dict(contact_phone="+989121234567", contact_user_id=APPLICANT)),
        (S.AWAITING_GOV_ID, dict(text="AB12345")),
        (S.AWAITING_LOCATION, dict(text="Iran")),
        (S.AWAITING_IDENTITY_DOCUMENT, dict(photo=True)),
    ]
    for current, kwargs in inputs:
        if await state_of(users) == state:
            return
        assert await state_of(users) == current
        await send(router, **kwargs)
    assert await state_of(users) == state


class TestTransitionTable:

    def test_every_registration_state_has_a_step(self):
        for state in ConversationState:
            if state != S.NONE:
                assert state in REGISTRATION_FLOW

    def test_steps_follow_required_order(self):
        order = [S.AWAITING_FIRST_NAME]
        while order[-1] != S.NONE:
            order.append(REGISTRATION_FLOW[order[-1]].next_state)
        assert order == [
            S.AWAITING_FIRST_NAME, S.AWAITING_LAST_NAME, S.AWAITING_PHONE, S.AWAITING_GOV_ID,
            S.AWAITING_LOCATION, S.AWAITING_IDENTITY_DOCUMENT, S.AWAITING_POLICY_APPROVAL, S.NONE,
        ]

    def test_policy_step_only_accepts_callbacks(self):
        assert REGISTRATION_FLOW[S.AWAITING_POLICY_APPROVAL].expects == InputKind.CALLBACK


class TestRegistrationFlow:

    @pytest.mark.asyncio
    async def test_start_then_name_validation(self, router, users, client):
        await send(router, text="/start")
        user = await users.get_by_telegram_id(APPLICANT)
        assert user.conversation_state == S.AWAITING_FIRST_NAME
        assert user.verification_status == VerificationStatus.PENDING

        await send(router, text="J")
        assert await state_of(users) == S.AWAITING_FIRST_NAME
        assert "between 2 and 50" in client.last_text

        await send(router, text="x" * 51)
        assert await state_of(users) == S.AWAITING_FIRST_NAME

        await send(router, text="John")
        user = await users.get_by_telegram_id(APPLICANT)
        assert user.conversation_state == S.AWAITING_LAST_NAME
        assert user.first_name == "John"

    @pytest.mark.asyncio
    async def test_two_character_name_is_within_bounds(self, router, users):
        await send(router, text="/start")
        await send(router, text="Jo")
        assert await state_of(users) == S.AWAITING_LAST_NAME

    @pytest.mark.asyncio
    async def test_full_round_trip_ends_pending_with_all_fields(self, router, users, client, queue):
        await advance_to(router, users, S.AWAITING_POLICY_APPROVAL)

        assert len(queue.published) == 1
        published = queue.published[0]
        assert published.file_id == "large"
        assert "UserID: " in published.caption

        await router.handle_update(callback_update(APPLICANT, POLICY_ACCEPT))

        user = await users.get_by_telegram_id(APPLICANT)
        assert user.conversation_state == S.NONE
        assert user.verification_status == VerificationStatus.PENDING
        assert user.first_name == "John"
        assert user.last_name == "Smith"
        assert user.phone_number == "+989121234567"
        assert user.government_id == "AB12345"
        assert user.location_country == "IR"
        assert user.verification_strategy == "manual_review"
        assert user.identity_doc_ref == "ref-1"
        assert published.user_id == user.id
        assert client.text_edits

    @pytest.mark.asyncio
    async def test_foreign_contact_never_advances(self, router, users, client):
        await advance_to(router, users, S.AWAITING_PHONE)

        for _ in range(3):
            await send(router, contact_phone="+989121234567", contact_user_id=APPLICANT + 1)
            assert await state_of(users) == S.AWAITING_PHONE
            assert "own" in client.last_text

        assert (await users.get_by_telegram_id(APPLICANT)).phone_number is None

    @pytest.mark.asyncio
    async def test_invalid_phone_format_rejected(self, router, users):
        await advance_to(router, users, S.AWAITING_PHONE)

        await send(router, contact_phone="12-34", contact_user_id=APPLICANT)

        assert await state_of(users) == S.AWAITING_PHONE

    @pytest.mark.asyncio
    async def test_wrong_input_shape_reprompts(self, router, users, client):
        await advance_to(router, users, S.AWAITING_FIRST_NAME)

        await send(router, photo=True)
        assert await state_of(users) == S.AWAITING_FIRST_NAME
        assert "as text" in client.last_text

        await send(router, text="John")
        await send(router, text="Smith")
        await send(router, text="+989121234567")
        assert await state_of(users) == S.AWAITING_PHONE
        assert client.messages[-1].keyboard.rows[0][0].request_contact

    @pytest.mark.asyncio
    async def test_short_government_id_rejected(self, router, users):
        await advance_to(router, users, S.AWAITING_GOV_ID)

        await send(router, text="1234")
        assert await state_of(users) == S.AWAITING_GOV_ID

    @pytest.mark.asyncio
    async def test_unknown_country_rejected_iso_code_accepted(self, router, users, client):
        await advance_to(router, users, S.AWAITING_LOCATION)

        await send(router, text="Atlantis")
        assert await state_of(users) == S.AWAITING_LOCATION
        assert "not a supported country" in client.last_text

        await send(router, text="de")
        user = await users.get_by_telegram_id(APPLICANT)
        assert user.location_country == "DE"
        assert user.verification_strategy == "document_check"

    @pytest.mark.asyncio
    async def test_queue_failure_keeps_identity_step(self, router, users, client, queue):
        await advance_to(router, users, S.AWAITING_IDENTITY_DOCUMENT)
        queue.fail = True

        await send(router, photo=True)

        user = await users.get_by_telegram_id(APPLICANT)
        assert user.conversation_state == S.AWAITING_IDENTITY_DOCUMENT
        assert user.identity_doc_ref is None
        assert client.last_text == SUBMIT_ERROR_TEXT

    @pytest.mark.asyncio
    async def test_persistence_failure_leaves_state_unchanged(self, router, users, client):
        await advance_to(router, users, S.AWAITING_LAST_NAME)
        real_update = users.update
        users.update = AsyncMock(side_effect=OSError("disk I/O error"))

        await send(router, text="Smith")

        users.update = real_update
        user = await users.get_by_telegram_id(APPLICANT)
        assert user.conversation_state == S.AWAITING_LAST_NAME
        assert user.last_name is None
        assert client.last_text == INTERNAL_ERROR_TEXT

    @pytest.mark.asyncio
    async def test_text_at_policy_step_is_reprompted(self, router, users, client):
        await advance_to(router, users, S.AWAITING_POLICY_APPROVAL)

        await send(router, text="yes I accept")

        assert await state_of(users) == S.AWAITING_POLICY_APPROVAL
        assert "accept" in client.last_text

    @pytest.mark.asyncio
    async def test_policy_decline_resets_profile(self, router, users, client):
        await advance_to(router, users, S.AWAITING_POLICY_APPROVAL)

        await router.handle_update(callback_update(APPLICANT, POLICY_DECLINE))

        user = await users.get_by_telegram_id(APPLICANT)
        assert user.conversation_state == S.AWAITING_FIRST_NAME
        assert user.first_name is None
        assert user.phone_number is None
        assert user.identity_doc_ref is None
        assert "First Name" in client.last_text

    @pytest.mark.asyncio
    async def test_stale_policy_click_is_ignored(self, router, users, client):
        await advance_to(router, users, S.AWAITING_POLICY_APPROVAL)
        await router.handle_update(callback_update(APPLICANT, POLICY_ACCEPT))
        edits = len(client.text_edits)

        await router.handle_update(callback_update(APPLICANT, POLICY_DECLINE))

        user = await users.get_by_telegram_id(APPLICANT)
        assert user.conversation_state == S.NONE
        assert user.first_name == "John"
        assert len(client.text_edits) == edits

    @pytest.mark.asyncio
    async def test_rejected_applicant_becomes_pending_on_new_first_name(self, router, users):
        user = User.new_applicant(APPLICANT)
        user.verification_status = VerificationStatus.REJECTED
        await users.create(user)

        await send(router, text="Johnny")

        user = await users.get_by_telegram_id(APPLICANT)
        assert user.verification_status == VerificationStatus.PENDING
        assert user.conversation_state == S.AWAITING_LAST_NAME

    @pytest.mark.asyncio
    async def test_finished_applicant_gets_status_message(self, router, users, client):
        await advance_to(router, users, S.AWAITING_POLICY_APPROVAL)
        await router.handle_update(callback_update(APPLICANT, POLICY_ACCEPT))

        await send(router, text="any news?")

        assert "under review" in client.last_text
        assert await state_of(users) == S.NONE
