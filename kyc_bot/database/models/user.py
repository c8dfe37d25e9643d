from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ConversationState(str, Enum):
    """Шаг регистрации, который ожидает пользователь."""

    NONE = "none"
    AWAITING_FIRST_NAME = "awaiting_first_name"
    AWAITING_LAST_NAME = "awaiting_last_name"
    AWAITING_PHONE = "awaiting_phone"
    AWAITING_GOV_ID = "awaiting_gov_id"
    AWAITING_LOCATION = "awaiting_location"
    AWAITING_IDENTITY_DOCUMENT = "awaiting_identity_document"
    AWAITING_POLICY_APPROVAL = "awaiting_policy_approval"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    """
    Pydantic-модель заявителя/модератора, соответствующая структуре в БД.

    Телефон и номер документа здесь хранятся в открытом виде,
    шифрование выполняет репозиторий.
    """

    id: UUID = Field(default_factory=uuid4)
    telegram_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    government_id: Optional[str] = None
    location_country: Optional[str] = None
    verification_status: VerificationStatus = VerificationStatus.PENDING
    conversation_state: ConversationState = ConversationState.NONE
    verification_strategy: Optional[str] = None
    identity_doc_ref: Optional[str] = None
    is_reviewer: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def new_applicant(cls, telegram_id: int) -> "User":
        """Новый пользователь, которому предстоит пройти регистрацию."""
        return cls(
            telegram_id=telegram_id,
            verification_status=VerificationStatus.PENDING,
            conversation_state=ConversationState.AWAITING_FIRST_NAME,
        )

    def reset_profile(self) -> None:
        """Очищает все анкетные данные, идентичность и флаг модератора сохраняются."""
        self.first_name = None
        self.last_name = None
        self.phone_number = None
        self.government_id = None
        self.location_country = None
        self.verification_strategy = None
        self.identity_doc_ref = None

    @property
    def is_registering(self) -> bool:
        return (
            self.verification_status == VerificationStatus.PENDING
            and self.conversation_state != ConversationState.NONE
        )
