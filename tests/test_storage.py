import base64

import pytest

from kyc_bot.database.models.user import ConversationState, User, VerificationStatus
from kyc_bot.exceptions import DecryptionError, UserNotFoundError
from kyc_bot.services.security_service import NONCE_SIZE, AESService


class TestAESService:

    def test_round_trip(self, crypto):
        ciphertext = crypto.encrypt(b"+989121234567")

        assert ciphertext != b"+989121234567"
        assert crypto.decrypt(ciphertext) == b"+989121234567"

    def test_nonce_is_random(self, crypto):
        assert crypto.encrypt(b"same")[:NONCE_SIZE] != crypto.encrypt(b"same")[:NONCE_SIZE]

    def test_tampered_ciphertext_rejected(self, crypto):
        ciphertext = bytearray(crypto.encrypt(b"secret"))
        ciphertext[-1] ^= 0x01

        with pytest.raises(DecryptionError):
            crypto.decrypt(bytes(ciphertext))

    def test_short_ciphertext_rejected(self, crypto):
        with pytest.raises(DecryptionError):
            crypto.decrypt(b"short")

    def test_wrong_key_rejected(self, crypto):
        other = AESService(bytes(32))
        with pytest.raises(DecryptionError):
            other.decrypt(crypto.encrypt(b"secret"))

    @pytest.mark.parametrize("size", [0, 15, 24, 33])
    def test_bad_key_size(self, size):
        with pytest.raises(ValueError):
            AESService(bytes(size))


class TestUserRepository:

    @pytest.mark.asyncio
    async def test_create_and_read_back(self, users):
        user = User.new_applicant(42)
        user.phone_number = "+491701234567"
        user.government_id = "DE123456"
        await users.create(user)

        by_tg = await users.get_by_telegram_id(42)
        by_id = await users.get_by_id(user.id)

        assert by_tg.id == user.id == by_id.id
        assert by_tg.phone_number == "+491701234567"
        assert by_tg.government_id == "DE123456"
        assert by_tg.conversation_state == ConversationState.AWAITING_FIRST_NAME

    @pytest.mark.asyncio
    async def test_missing_user_is_none(self, users):
        assert await users.get_by_telegram_id(404) is None
        assert await users.get_by_id(User(telegram_id=1).id) is None

    @pytest.mark.asyncio
    async def test_sensitive_fields_encrypted_at_rest(self, users, db, crypto):
        user = User.new_applicant(43)
        user.phone_number = "+491701234567"
        await users.create(user)

        row = await users.fetchone("SELECT phone_number, government_id FROM users WHERE telegram_id = ?", (43,))

        assert row["phone_number"] != "+491701234567"
        assert crypto.decrypt(base64.b64decode(row["phone_number"])) == b"+491701234567"
        assert row["government_id"] is None

    @pytest.mark.asyncio
    async def test_update_persists_fields(self, users):
        user = await users.create(User.new_applicant(44))
        created_at = user.updated_at
        user.first_name = "Lena"
        user.conversation_state = ConversationState.AWAITING_LAST_NAME

        await users.update(user)

        stored = await users.get_by_id(user.id)
        assert stored.first_name == "Lena"
        assert stored.conversation_state == ConversationState.AWAITING_LAST_NAME
        assert stored.updated_at >= created_at

    @pytest.mark.asyncio
    async def test_update_missing_user_raises(self, users):
        with pytest.raises(UserNotFoundError):
            await users.update(User(telegram_id=45))

    @pytest.mark.asyncio
    async def test_delete(self, users):
        user = await users.create(User.new_applicant(46))

        await users.delete(user.id)

        assert await users.get_by_id(user.id) is None

    @pytest.mark.asyncio
    async def test_next_pending_is_oldest_with_document(self, users):
        no_doc = User.new_applicant(47)
        first = User(telegram_id=48, identity_doc_ref="10", conversation_state=ConversationState.NONE)
        second = User(telegram_id=49, identity_doc_ref="11", conversation_state=ConversationState.NONE)
        decided = User(telegram_id=50, identity_doc_ref="9", verification_status=VerificationStatus.APPROVED)
        for user in (no_doc, decided, first):
            await users.create(user)
        second.created_at = second.updated_at = first.created_at.replace(year=first.created_at.year + 1)
        await users.create(second)

        assert (await users.get_next_pending()).telegram_id == 48

    @pytest.mark.asyncio
    async def test_next_pending_empty(self, users):
        assert await users.get_next_pending() is None

    @pytest.mark.asyncio
    async def test_promote_reviewer(self, users):
        created = await users.promote_reviewer(51)
        assert created.is_reviewer

        await users.create(User.new_applicant(52))
        promoted = await users.promote_reviewer(52)

        assert promoted.is_reviewer
        assert (await users.get_by_telegram_id(52)).is_reviewer
        assert (await users.promote_reviewer(51)).id == created.id
