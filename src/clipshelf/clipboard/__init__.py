"""
Cross-platform clipboard access.

Platform readers share the ``ClipboardReader`` interface and produce
``TextContent`` or ``ImageContent``.
"""

from clipshelf.clipboard.base import ClipboardReader, image_content_from_bytes, image_content_from_pil
from clipshelf.clipboard.factory import get_clipboard_class, get_clipboard_reader

__all__ = [
    'ClipboardReader',
    'get_clipboard_class',
    'get_clipboard_reader',
    'image_content_from_bytes',
    'image_content_from_pil',
]
