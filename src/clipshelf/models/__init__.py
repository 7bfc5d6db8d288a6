from clipshelf.models.clipitem import (
    DEFAULT_CATEGORY,
    ClipContent,
    ClipItem,
    ImageContent,
    Suggestion,
    TextContent,
    new_item_id,
    normalize_tags,
)
from clipshelf.models.session import SessionSnapshot, SessionState

__all__ = [
    'DEFAULT_CATEGORY',
    'ClipContent',
    'ClipItem',
    'ImageContent',
    'SessionSnapshot',
    'SessionState',
    'Suggestion',
    'TextContent',
    'new_item_id',
    'normalize_tags',
]
