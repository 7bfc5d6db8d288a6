from enum import Enum
from typing import Optional

from pydantic import BaseModel

from clipshelf.models.clipitem import ClipContent, Suggestion


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_SUGGESTION = "awaiting_suggestion"
    READY = "ready"
    SAVED = "saved"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        return self in (SessionState.AWAITING_SUGGESTION, SessionState.READY)


class SessionSnapshot(BaseModel):
    """Read-only view of a capture session handed to the UI."""

    session_id: str
    state: SessionState
    content: ClipContent
    suggestion: Optional[Suggestion] = None
    suggestion_failed: bool = False
    user_category: str = ""
    effective_category: Optional[str] = None
    can_save: bool = False
    item_id: Optional[str] = None
