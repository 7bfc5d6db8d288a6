import io
import logging
from abc import ABC, abstractmethod
from typing import Optional

from PIL import Image

from clipshelf.errors import ClipboardReadError
from clipshelf.models import ClipContent, ImageContent, TextContent

logger = logging.getLogger(__name__)


def image_content_from_pil(image: Image.Image) -> ImageContent:
    output = io.BytesIO()
    image.save(output, format="PNG")
    return ImageContent(data=output.getvalue(), width=image.width, height=image.height)


def image_content_from_bytes(data: bytes) -> ImageContent:
    """Normalise any image format Pillow understands to PNG."""
    with Image.open(io.BytesIO(data)) as image:
        image.load()
        if image.format == "PNG":
            return ImageContent(data=data, width=image.width, height=image.height)
        return image_content_from_pil(image)


class ClipboardReader(ABC):
    """Access to the system clipboard.

    Subclasses implement ``_read``/``_write``. ``read`` turns any failure into
    ``ClipboardReadError``. ``write`` reports failure as ``False``.
    """

    @abstractmethod
    def _read(self) -> Optional[ClipContent]:
        pass

    @abstractmethod
    def _write(self, content: ClipContent) -> bool:
        pass

    def read(self) -> Optional[ClipContent]:
        try:
            return self._read()
        except ClipboardReadError:
            raise
        except Exception as exc:
            raise ClipboardReadError(f"{type(self).__name__}: {exc}") from exc

    def write(self, content: ClipContent) -> bool:
        try:
            return self._write(content)
        except Exception:
            logger.exception("Failed to write %s content to clipboard", content.kind)
            return False

    @staticmethod
    def _text_or_none(text: Optional[str]) -> Optional[TextContent]:
        if not text:
            return None
        return TextContent(plain=text)
