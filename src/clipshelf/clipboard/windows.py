import io
import time
from typing import Optional

import win32clipboard as wc
import win32con
from PIL import Image, ImageGrab

from clipshelf.clipboard.base import ClipboardReader, image_content_from_pil
from clipshelf.errors import ClipboardReadError
from clipshelf.models import ClipContent, ImageContent, TextContent


class WindowsClipboard(ClipboardReader):
    """Windows clipboard via pywin32, images through Pillow's ImageGrab."""

    _OPEN_ATTEMPTS = 3

    def _open(self) -> None:
        # Another process may hold the clipboard for a few milliseconds.
        for _ in range(self._OPEN_ATTEMPTS):
            try:
                wc.OpenClipboard()
                return
            except Exception:
                time.sleep(0.05)
        raise ClipboardReadError("Clipboard is locked by another process")

    def _read(self) -> Optional[ClipContent]:
        self._open()
        try:
            if wc.IsClipboardFormatAvailable(win32con.CF_UNICODETEXT):
                text = wc.GetClipboardData(win32con.CF_UNICODETEXT)
                content = self._text_or_none(text)
                if content is not None:
                    return content
        finally:
            wc.CloseClipboard()

        image = ImageGrab.grabclipboard()
        # A list means files were copied, which is not a clip variant.
        if isinstance(image, Image.Image):
            return image_content_from_pil(image)
        return None

    def _write(self, content: ClipContent) -> bool:
        self._open()
        try:
            wc.EmptyClipboard()
            if isinstance(content, TextContent):
                wc.SetClipboardData(win32con.CF_UNICODETEXT, content.plain)
                return True
            if isinstance(content, ImageContent):
                with Image.open(io.BytesIO(content.data)) as image:
                    output = io.BytesIO()
                    image.convert("RGB").save(output, format="BMP")
                # CF_DIB is a BMP without its 14 byte file header.
                wc.SetClipboardData(win32con.CF_DIB, output.getvalue()[14:])
                return True
            return False
        finally:
            wc.CloseClipboard()
