from typing import Optional

from AppKit import (
    NSPasteboard,
    NSPasteboardTypePNG,
    NSPasteboardTypeString,
    NSPasteboardTypeTIFF,
)
from Foundation import NSData

from clipshelf.clipboard.base import ClipboardReader, image_content_from_bytes
from clipshelf.models import ClipContent, ImageContent, TextContent


class MacOSClipboard(ClipboardReader):

    def __init__(self) -> None:
        self._last_change_count: Optional[int] = None
        self._last_content: Optional[ClipContent] = None

    def _read(self) -> Optional[ClipContent]:
        pasteboard = NSPasteboard.generalPasteboard()

        # changeCount only moves on writes, so an unchanged pasteboard is
        # answered from the cached content.
        change_count = pasteboard.changeCount()
        if change_count == self._last_change_count:
            return self._last_content

        content = self._read_pasteboard(pasteboard)
        self._last_change_count = change_count
        self._last_content = content
        return content

    def _read_pasteboard(self, pasteboard) -> Optional[ClipContent]:
        types = pasteboard.types() or []

        if NSPasteboardTypeString in types:
            text = pasteboard.stringForType_(NSPasteboardTypeString)
            content = self._text_or_none(str(text) if text is not None else None)
            if content is not None:
                return content

        for pb_type in (NSPasteboardTypePNG, NSPasteboardTypeTIFF):
            if pb_type in types:
                data = pasteboard.dataForType_(pb_type)
                if data:
                    return image_content_from_bytes(bytes(data))

        return None

    def _write(self, content: ClipContent) -> bool:
        pasteboard = NSPasteboard.generalPasteboard()
        pasteboard.clearContents()
        if isinstance(content, TextContent):
            return bool(pasteboard.setString_forType_(content.plain, NSPasteboardTypeString))
        if isinstance(content, ImageContent):
            data = NSData.dataWithBytes_length_(content.data, len(content.data))
            return bool(pasteboard.setData_forType_(data, NSPasteboardTypePNG))
        return False
