import sys
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

import pytest

# ensure src is importable
REPO_ROOT = Path(__file__).resolve().parent.parent
SRC = REPO_ROOT / "src"
sys.path.insert(0, str(SRC))

from clipshelf.app import ClipShelfApp  # noqa: E402
from clipshelf.clipboard import ClipboardReader  # noqa: E402
from clipshelf.config import AppConfig  # noqa: E402
from clipshelf.errors import ClassificationError  # noqa: E402
from clipshelf.models import ClipContent, Suggestion, TextContent  # noqa: E402
from clipshelf.services import NotificationBus, StoreService  # noqa: E402


class FakeClipboard(ClipboardReader):
    """In-memory clipboard. ``fail`` makes reads raise like a busy clipboard."""

    def __init__(self, content: Optional[ClipContent] = None) -> None:
        self.content = content
        self.fail = False
        self.reads = 0
        self.writes: List[ClipContent] = []

    def set_text(self, text: str) -> None:
        self.content = TextContent(plain=text)

    def _read(self) -> Optional[ClipContent]:
        self.reads += 1
        if self.fail:
            raise RuntimeError("clipboard is locked by another process")
        return self.content

    def _write(self, content: ClipContent) -> bool:
        self.writes.append(content)
        self.content = content
        return True


class FakeClassifier:
    """Returns a fixed suggestion, raises ``error`` or waits on ``gate`` first."""

    def __init__(
        self,
        suggestion: Optional[Suggestion] = None,
        error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.suggestion = suggestion or Suggestion(category="notes", tags=["greeting"])
        self.error = error
        self.gate = gate
        self.calls: List[ClipContent] = []
        self.api_keys: List[Optional[str]] = []

    def configure(self, api_key: Optional[str]) -> None:
        self.api_keys.append(api_key)

    def classify(self, content: ClipContent) -> Suggestion:
        self.calls.append(content)
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        if self.error is not None:
            raise self.error
        return self.suggestion


class FakeHotkeyBackend:

    def __init__(self, fail_on_add: bool = False) -> None:
        self.fail_on_add = fail_on_add
        self.registered = {}
        self.sent: List[str] = []
        self._next = 0

    def add(self, combo: str, callback: Callable[[], None]):
        if self.fail_on_add:
            raise OSError("hotkey already taken by another application")
        self._next += 1
        self.registered[self._next] = (combo, callback)
        return self._next

    def remove(self, handle) -> None:
        self.registered.pop(handle, None)

    def send(self, combo: str) -> None:
        self.sent.append(combo)

    def press(self) -> None:
        for _, callback in list(self.registered.values()):
            callback()


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def bus():
    return NotificationBus()


@pytest.fixture
def store(bus):
    service = StoreService(bus=bus)
    yield service
    service.close()


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def hotkey_backend():
    return FakeHotkeyBackend()


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        data_dir=tmp_path,
        db_path=tmp_path / "clipshelf.db",
        poll_interval=0.01,
        session_timeout=0,
        simulate_copy=False,
        enrichment_workers=2,
    )


@pytest.fixture
def make_app(config, clipboard, classifier, hotkey_backend):
    created = []

    def factory(**overrides):
        app = ClipShelfApp(
            overrides.pop("config", config),
            reader=overrides.pop("reader", clipboard),
            classifier=overrides.pop("classifier", classifier),
            hotkey_backend=overrides.pop("hotkey_backend", hotkey_backend),
        )
        created.append(app)
        return app

    yield factory

    for app in created:
        if app.running:
            app.stop()
        else:
            app.__exit__(None, None, None)


@pytest.fixture
def unreachable_classifier():
    return FakeClassifier(error=ClassificationError("Classification request failed: connection refused"))
