from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class Event(BaseModel):
    """Конверт шины событий."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    topic: str
    data: Any = None


class VerificationEvent(BaseModel):
    """Документ заявителя, переданный через канал-очередь."""

    user_id: UUID
    file_id: str
    caption: str
    storage_ref: Optional[str] = None
