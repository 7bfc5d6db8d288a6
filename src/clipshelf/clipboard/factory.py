"""
Platform-specific clipboard factory.

Returns the clipboard reader implementation for the current platform.
"""

import platform
from typing import Type

from clipshelf.clipboard.base import ClipboardReader


def get_clipboard_class() -> Type[ClipboardReader]:
    """
    Get the ClipboardReader implementation for the current platform.

    Raises:
        NotImplementedError: If the current platform is not supported
    """
    system = platform.system()

    if system == "Windows":
        from clipshelf.clipboard.windows import WindowsClipboard
        return WindowsClipboard
    elif system == "Linux":
        from clipshelf.clipboard.linux import LinuxClipboard
        return LinuxClipboard
    elif system == "Darwin":
        from clipshelf.clipboard.macos import MacOSClipboard
        return MacOSClipboard
    else:
        raise NotImplementedError(f"Platform '{system}' is not supported")


def get_clipboard_reader() -> ClipboardReader:
    clipboard_class = get_clipboard_class()
    return clipboard_class()
