from propchat.conversation.lifecycle import (
    CompletionVerdict,
    ResponseLifecycle,
    ResponseState,
    SessionState,
)
from propchat.conversation.metadata import IdentityConflictError
from propchat.conversation.transcript import ItemStatus, Role, TranscriptItem, TranscriptLog
from propchat.conversation.ui_hints import UiHint, UiHintTracker

__all__ = [
    "CompletionVerdict", "ResponseLifecycle", "ResponseState", "SessionState",
    "IdentityConflictError",
    "ItemStatus", "Role", "TranscriptItem", "TranscriptLog",
    "UiHint", "UiHintTracker",
]
