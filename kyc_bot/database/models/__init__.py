from .events import Event, VerificationEvent
from .updates import (
    AnswerCallbackParams,
    BotUpdate,
    Button,
    ContactInfo,
    CopyMessageParams,
    EditCaptionParams,
    EditMessageParams,
    Keyboard,
    KeyboardKind,
    PhotoInfo,
    SendMessageParams,
    SendPhotoParams,
)
from .user import ConversationState, User, VerificationStatus
