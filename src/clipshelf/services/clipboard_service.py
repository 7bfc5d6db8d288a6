"""Clipboard watcher for ClipShelf.

Polls the platform clipboard reader on a background thread and hands every
new, distinct clipboard content to ``on_capture``. Callbacks run on a
single dispatcher thread so a slow consumer never delays the next poll.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from clipshelf.clipboard import ClipboardReader, get_clipboard_reader
from clipshelf.errors import ClipboardReadError
from clipshelf.models import ClipContent

logger = logging.getLogger(__name__)


class ClipboardService:
    """Watches the clipboard and emits de-duplicated capture events."""

    def __init__(
        self,
        on_capture: Optional[Callable[[ClipContent], None]] = None,
        reader: Optional[ClipboardReader] = None,
        poll_interval: float = 0.25,
        capture_initial: bool = False,
        auto_register: bool = False,
    ) -> None:
        """Initialise the service.

        Args:
            on_capture: Callback receiving each newly captured content.
            reader: Clipboard reader, defaults to the current platform's.
            poll_interval: Seconds between clipboard checks.
            capture_initial: Emit whatever is on the clipboard at start.
                Otherwise it is only recorded as seen.
            auto_register: When ``True`` polling starts immediately.
        """
        self._on_capture = on_capture or self._default_handler
        self._reader = reader
        self.poll_interval = poll_interval
        self.capture_initial = capture_initial
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self._dispatcher: Optional[ThreadPoolExecutor] = None
        self._is_running = False
        self._last_key: Optional[str] = None
        self._has_polled = False
        self._holds = 0

        if auto_register:
            self.start()

    @property
    def reader(self) -> ClipboardReader:
        if self._reader is None:
            self._reader = get_clipboard_reader()
        return self._reader

    @property
    def is_running(self) -> bool:
        return self._is_running

    # ---------------------------------------------------------------------
    # Lifecycle management
    # ---------------------------------------------------------------------
    def start(self) -> None:
        with self._lock:
            if self._is_running:
                logger.debug("ClipboardService already running")
                return

            logger.info("Starting clipboard watcher (interval=%ss)", self.poll_interval)
            self._stop_event.clear()
            self._is_running = True
            self._dispatcher = ThreadPoolExecutor(max_workers=1, thread_name_prefix="clipshelf-capture")
            self._poll_thread = threading.Thread(
                target=self._poll_loop, name="clipshelf-watcher", daemon=True)
            self._poll_thread.start()

    def stop(self) -> None:
        with self._lock:
            if not self._is_running:
                return

            logger.info("Stopping clipboard watcher")
            self._is_running = False
            self._stop_event.set()

        # join outside the lock, the loop takes it on every tick
        if self._poll_thread is not None:
            self._poll_thread.join(timeout=max(1.0, self.poll_interval * 4))
            self._poll_thread = None

        if self._dispatcher is not None:
            # captures already handed off still get persisted
            self._dispatcher.shutdown(wait=True)
            self._dispatcher = None

    def run_forever(self) -> None:
        try:
            if not self._is_running:
                self.start()

            while not self._stop_event.wait(timeout=self.poll_interval):
                continue
        except KeyboardInterrupt:
            logger.info("Clipboard watcher interrupted by user")
        finally:
            self.stop()

    # ---------------------------------------------------------------------
    # Dedup state
    # ---------------------------------------------------------------------
    def mark_seen(self, content: Optional[ClipContent]) -> None:
        """Record ``content`` as the last observed clipboard value."""
        if content is None:
            return
        with self._lock:
            self._last_key = content.dedup_key()
            self._has_polled = True

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Suspend capture emission while the caller touches the clipboard."""
        with self._lock:
            self._holds += 1
        try:
            yield
        finally:
            with self._lock:
                self._holds -= 1

    def poll_once(self) -> Optional[ClipContent]:
        """Run one clipboard check. Returns the content if it was emitted."""
        with self._lock:
            if self._holds:
                return None

        try:
            content = self.reader.read()
        except ClipboardReadError as exc:
            logger.warning("Skipping clipboard check: %s", exc)
            return None

        if content is None:
            with self._lock:
                # an empty clipboard is the initial state too
                self._has_polled = True
            return None

        key = content.dedup_key()
        with self._lock:
            if self._holds or key == self._last_key:
                return None
            first_poll = not self._has_polled
            self._has_polled = True
            self._last_key = key

        if first_poll and not self.capture_initial:
            logger.debug("Initial clipboard content recorded as seen")
            return None

        with self._lock:
            # a hold taken since the read suppresses this capture
            if self._holds or self._stop_event.is_set():
                return None
            dispatcher = self._dispatcher
            if dispatcher is not None:
                self._dispatch(dispatcher, content)

        logger.info("Clipboard copied: %s", content.kind)
        logger.debug("Captured preview: %r", content.preview())
        if dispatcher is None:
            self._deliver(content)
        return content

    def _dispatch(self, dispatcher: ThreadPoolExecutor, content: ClipContent) -> None:
        try:
            dispatcher.submit(self._deliver, content)
        except RuntimeError:
            logger.debug("Dispatcher shut down, dropping capture")

    def _deliver(self, content: ClipContent) -> None:
        try:
            self._on_capture(content)
        except Exception:
            logger.exception("Error while calling on_capture")

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Unexpected error in clipboard poll")

            self._stop_event.wait(self.poll_interval)

    @staticmethod
    def _default_handler(content: ClipContent) -> None:
        logger.info("Clipboard captured | kind=%s | preview=%r", content.kind, content.preview())

    # ---------------------------------------------------------------------
    # Context manager helpers
    # ---------------------------------------------------------------------
    def __enter__(self) -> "ClipboardService":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
