"""Global hotkey parsing and registration.

Bindings use the ``Modifier+Modifier+Key`` form, e.g.
``CommandOrControl+Shift+S``. They are validated here and handed to the
``keyboard`` library in its own syntax (``ctrl+shift+s``).
"""

import logging
import platform
import string
import threading
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, Optional, Protocol

from clipshelf.errors import InvalidHotkeyError

logger = logging.getLogger(__name__)

_MODIFIER_ORDER = ("ctrl", "alt", "shift", "command")

_SPECIAL_KEYS = {
    "SPACE": "space",
    "ENTER": "enter",
    "RETURN": "enter",
    "ESCAPE": "esc",
    "ESC": "esc",
    "TAB": "tab",
}


def _is_macos() -> bool:
    return platform.system() == "Darwin"


def _modifier(token: str) -> Optional[str]:
    name = token.lower()
    if name in ("commandorcontrol", "cmdorctrl"):
        return "command" if _is_macos() else "ctrl"
    if name in ("control", "ctrl"):
        return "ctrl"
    if name in ("shift",):
        return "shift"
    if name in ("alt", "option"):
        return "alt"
    if name in ("meta", "cmd", "command", "super", "win"):
        return "command" if _is_macos() else "windows"
    return None


def _key(token: str) -> Optional[str]:
    upper = token.upper()
    if len(upper) == 1 and (upper in string.ascii_uppercase or upper in string.digits):
        return upper.lower()
    if upper.startswith("F") and upper[1:].isdigit() and 1 <= int(upper[1:]) <= 12:
        return upper.lower()
    return _SPECIAL_KEYS.get(upper)


@dataclass(frozen=True)
class Hotkey:
    binding: str
    modifiers: FrozenSet[str]
    key: str

    def to_keyboard(self) -> str:
        ordered = [m for m in _MODIFIER_ORDER if m in self.modifiers]
        ordered += sorted(m for m in self.modifiers if m not in _MODIFIER_ORDER)
        return "+".join(ordered + [self.key])


def parse_hotkey(binding: str) -> Hotkey:
    """Validate ``binding``. Raises ``InvalidHotkeyError``."""
    if not binding or not binding.strip():
        raise InvalidHotkeyError(binding, "empty binding")

    modifiers = set()
    key: Optional[str] = None
    for raw in binding.split("+"):
        token = raw.strip()
        if not token:
            raise InvalidHotkeyError(binding, "empty key segment")

        modifier = _modifier(token)
        if modifier is not None:
            modifiers.add(modifier)
            continue

        parsed = _key(token)
        if parsed is None:
            raise InvalidHotkeyError(binding, f"unsupported key {token!r}")
        if key is not None:
            raise InvalidHotkeyError(binding, "more than one non-modifier key")
        key = parsed

    if key is None:
        raise InvalidHotkeyError(binding, "no key specified")
    if not modifiers:
        raise InvalidHotkeyError(binding, "a global hotkey needs at least one modifier")

    return Hotkey(binding=binding.strip(), modifiers=frozenset(modifiers), key=key)


@dataclass(frozen=True)
class HotkeyCheck:
    ok: bool
    binding: str
    error: Optional[str] = None


def check_hotkey(binding: str) -> HotkeyCheck:
    try:
        hotkey = parse_hotkey(binding)
    except InvalidHotkeyError as exc:
        return HotkeyCheck(ok=False, binding=binding, error=exc.reason)
    return HotkeyCheck(ok=True, binding=hotkey.binding)


class HotkeyBackend(Protocol):
    def add(self, combo: str, callback: Callable[[], None]) -> Any:
        ...

    def remove(self, handle: Any) -> None:
        ...

    def send(self, combo: str) -> None:
        ...


class KeyboardBackend:
    """Global hooks through the ``keyboard`` package (root needed on Linux)."""

    def __init__(self) -> None:
        import keyboard

        self._keyboard = keyboard

    def add(self, combo: str, callback: Callable[[], None]) -> Any:
        return self._keyboard.add_hotkey(combo, callback, suppress=False)

    def remove(self, handle: Any) -> None:
        self._keyboard.remove_hotkey(handle)

    def send(self, combo: str) -> None:
        self._keyboard.send(combo)


class HotkeyService:

    def __init__(
        self,
        on_trigger: Callable[[], None],
        backend: Optional[HotkeyBackend] = None,
    ) -> None:
        self._on_trigger = on_trigger
        self._backend = backend
        self._lock = threading.Lock()
        self._handle: Any = None
        self.current: Optional[Hotkey] = None

    @property
    def backend(self) -> HotkeyBackend:
        if self._backend is None:
            self._backend = KeyboardBackend()
        return self._backend

    def test(self, binding: str) -> Hotkey:
        return parse_hotkey(binding)

    def register(self, binding: str) -> Hotkey:
        """Replace the active hotkey with ``binding``."""
        hotkey = parse_hotkey(binding)
        with self._lock:
            try:
                backend = self.backend
                if self._handle is not None:
                    backend.remove(self._handle)
                    self._handle = None
                self._handle = backend.add(hotkey.to_keyboard(), self._fire)
            except InvalidHotkeyError:
                raise
            except Exception as exc:
                raise InvalidHotkeyError(binding, f"could not register: {exc}") from exc
            self.current = hotkey

        logger.info("Global hotkey registered: %s (%s)", hotkey.binding, hotkey.to_keyboard())
        return hotkey

    def unregister(self) -> None:
        with self._lock:
            if self._handle is None:
                return
            try:
                self.backend.remove(self._handle)
            except Exception:
                logger.warning("Failed to remove hotkey %s", self.current.binding if self.current else "?")
            self._handle = None
            self.current = None

    def simulate_copy(self) -> None:
        """Press the platform copy chord so the current selection is copied."""
        combo = "command+c" if _is_macos() else "ctrl+c"
        try:
            self.backend.send(combo)
        except Exception as exc:
            logger.warning("Could not simulate copy: %s", exc)

    def _fire(self) -> None:
        try:
            self._on_trigger()
        except Exception:
            logger.exception("Hotkey handler failed")
