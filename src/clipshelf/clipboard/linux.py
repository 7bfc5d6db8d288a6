import logging
import os
import shutil
import subprocess
from typing import Callable, List, Optional

from clipshelf.clipboard.base import ClipboardReader, image_content_from_bytes
from clipshelf.errors import ClipboardReadError
from clipshelf.models import ClipContent, ImageContent, TextContent

logger = logging.getLogger(__name__)


class LinuxClipboard(ClipboardReader):
    _IMAGE_TARGETS = (
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/bmp",
        "image/webp",
    )
    _TEXT_TARGETS = (
        "text/plain;charset=utf-8",
        "text/plain;charset=utf8",
        "utf8_string",
        "text/plain",
        "string",
    )
    _TIMEOUT = 1.5

    def _read(self) -> Optional[ClipContent]:
        if self._use_wayland():
            types = self._parse_type_list(self._run_command(["wl-paste", "--list-types"]))

            def reader(target: str) -> Optional[bytes]:
                command = ["wl-paste", "--type", target]
                if target.lower().startswith("text/"):
                    command.append("--no-newline")
                return self._run_command(command)

            return self._extract_from_types(types, reader)

        if shutil.which("xclip"):
            types = self._parse_type_list(
                self._run_command(["xclip", "-selection", "clipboard", "-t", "TARGETS", "-o"])
            )

            def reader(target: str) -> Optional[bytes]:
                return self._run_command(["xclip", "-selection", "clipboard", "-t", target, "-o"])

            return self._extract_from_types(types, reader)

        raise ClipboardReadError("Neither wl-paste nor xclip is available")

    def _use_wayland(self) -> bool:
        return bool(os.environ.get("WAYLAND_DISPLAY")) and shutil.which("wl-paste") is not None

    def _extract_from_types(
        self,
        types: List[str],
        reader: Callable[[str], Optional[bytes]],
    ) -> Optional[ClipContent]:
        if not types:
            return None

        available = {target.lower(): target for target in types}

        for target in self._TEXT_TARGETS:
            if target in available:
                data = reader(available[target])
                if data:
                    return self._text_or_none(self._decode_text(data))

        for target in self._IMAGE_TARGETS:
            if target in available:
                data = reader(available[target])
                if data:
                    return image_content_from_bytes(data)

        return None

    @staticmethod
    def _decode_text(data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Clipboard text is not valid UTF-8, replacing bad bytes")
            return data.decode("utf-8", errors="replace")

    def _parse_type_list(self, data: Optional[bytes]) -> List[str]:
        if not data:
            return []
        text = data.decode("utf-8", errors="ignore")
        return [line.strip() for line in text.splitlines() if line.strip()]

    def _run_command(self, command: List[str], stdin: Optional[bytes] = None) -> Optional[bytes]:
        try:
            result = subprocess.run(
                command,
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                timeout=self._TIMEOUT,
            )
            return result.stdout
        except subprocess.CalledProcessError:
            # wl-paste and xclip exit non-zero on an empty clipboard
            return None
        except (subprocess.TimeoutExpired, FileNotFoundError) as exc:
            raise ClipboardReadError(f"{command[0]} failed: {exc}") from exc

    def _write(self, content: ClipContent) -> bool:
        if isinstance(content, TextContent):
            payload, mime = content.plain.encode("utf-8"), "text/plain;charset=utf-8"
        elif isinstance(content, ImageContent):
            payload, mime = content.data, "image/png"
        else:
            return False

        if shutil.which("wl-copy") and os.environ.get("WAYLAND_DISPLAY"):
            command = ["wl-copy", "--type", mime]
        elif shutil.which("xclip"):
            command = ["xclip", "-selection", "clipboard", "-t", mime]
        else:
            return False

        subprocess.run(command, input=payload, check=True, timeout=2.0)
        return True
