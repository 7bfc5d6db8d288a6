"""ClipShelf application: wires the pipeline and exposes its commands."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional

from clipshelf.clipboard import ClipboardReader
from clipshelf.config import DEFAULT_HOTKEY, DEFAULT_SETTINGS, AppConfig, to_bool
from clipshelf.errors import ClipboardReadError, ClipShelfError, InvalidHotkeyError, ItemNotFoundError, StoreIOError
from clipshelf.llm import CATEGORIES, Classifier, OpenAIClassifier
from clipshelf.models import (
    DEFAULT_CATEGORY,
    ClipContent,
    ClipItem,
    ImageContent,
    SessionSnapshot,
    Suggestion,
)
from clipshelf.services.capture_session import CaptureSessionManager
from clipshelf.services.clipboard_service import ClipboardService
from clipshelf.services.enrichment_service import EnrichmentService
from clipshelf.services.hotkey_service import HotkeyBackend, HotkeyCheck, HotkeyService, check_hotkey
from clipshelf.services.notification_service import NotificationBus
from clipshelf.services.store_service import StoreService
from clipshelf.utils.file_manager import FileManager

logger = logging.getLogger(__name__)

COPY_SETTLE_DELAY = 0.12
READ_ATTEMPTS = 5
READ_RETRY_DELAY = 0.05


class ClipShelfApp:

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        reader: Optional[ClipboardReader] = None,
        classifier: Optional[Classifier] = None,
        hotkey_backend: Optional[HotkeyBackend] = None,
        store: Optional[StoreService] = None,
    ) -> None:
        self.config = config or AppConfig.from_env()
        self.store = store or StoreService(db_path=self.config.database_path)
        self.bus: NotificationBus = self.store.bus

        settings = self.store.initialize_settings(DEFAULT_SETTINGS)
        api_key = settings.get("llm_api_key") or self.config.openai_api_key
        if not api_key:
            logger.warning("No LLM API key configured, clips will keep the default category")

        self.classifier = classifier or OpenAIClassifier(api_key=api_key, model=self.config.openai_model)
        self.enrichment = EnrichmentService(
            self.classifier, self.store, self.bus, max_workers=self.config.enrichment_workers
        )
        self.sessions = CaptureSessionManager(
            self.store, self.enrichment, self.bus, timeout=self.config.session_timeout
        )
        self.clipboard_service = ClipboardService(
            on_capture=self._on_clipboard_change,
            reader=reader,
            poll_interval=self.config.poll_interval,
            capture_initial=self.config.capture_initial,
        )
        self.hotkeys = HotkeyService(on_trigger=self._on_hotkey, backend=hotkey_backend)
        self.files = FileManager(self.config.exports_dir)
        self._hotkey_executor: Optional[ThreadPoolExecutor] = None
        self.running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, register_hotkey: bool = True) -> None:
        if self.running:
            return

        logger.info("Starting ClipShelf (db=%s)", self.store.manager.db_path)
        self.running = True
        self._hotkey_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="clipshelf-hotkey")
        self.clipboard_service.start()

        if register_hotkey:
            binding = self.store.get_setting("global_hotkey") or DEFAULT_HOTKEY
            try:
                self.hotkeys.register(binding)
            except InvalidHotkeyError as e:
                logger.warning("Global hotkey unavailable, only automatic capture is active: %s", e)

    def stop(self) -> None:
        if not self.running:
            return

        self.running = False
        self.hotkeys.unregister()
        self.clipboard_service.stop()
        if self._hotkey_executor is not None:
            self._hotkey_executor.shutdown(wait=True)
            self._hotkey_executor = None
        self.sessions.close()
        self.enrichment.shutdown(wait=True)
        self.store.close()
        logger.info("ClipShelf stopped")

    def run_forever(self, register_hotkey: bool = True) -> None:
        self.start(register_hotkey=register_hotkey)

        try:
            while self.running:
                time.sleep(1.0)
        except KeyboardInterrupt:
            logger.info("Stopping...")
        finally:
            self.stop()

    def __enter__(self) -> "ClipShelfApp":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.running:
            self.stop()
        else:
            self.sessions.close()
            self.enrichment.shutdown(wait=True)
            self.store.close()

    # ------------------------------------------------------------------
    # Capture paths
    # ------------------------------------------------------------------
    def _on_clipboard_change(self, content: ClipContent) -> None:
        if not to_bool(self.store.get_setting("auto_capture"), default=True):
            logger.debug("Automatic capture disabled, ignoring %s", content.kind)
            return
        try:
            self.save_item(content)
        except StoreIOError as e:
            logger.error("Automatic save failed: %s", e)

    def _on_hotkey(self) -> None:
        executor = self._hotkey_executor
        if executor is None:
            return
        # keep the keyboard hook thread free
        executor.submit(self._trigger_from_hotkey)

    def _trigger_from_hotkey(self) -> None:
        try:
            self.trigger_capture()
        except ClipShelfError as e:
            logger.error("Hotkey capture failed: %s", e)

    def trigger_capture(self) -> Optional[SessionSnapshot]:
        """Copy the selection, read the clipboard and open a capture session."""
        with self.clipboard_service.hold():
            if self.config.simulate_copy:
                self.hotkeys.simulate_copy()
                time.sleep(COPY_SETTLE_DELAY)
            content = self._read_clipboard_with_retry()
            self.clipboard_service.mark_seen(content)

        if content is None:
            logger.info("Nothing captured (no selection or copy failed)")
            return None
        return self.sessions.open(content)

    def _read_clipboard_with_retry(self) -> Optional[ClipContent]:
        # Some apps fill the clipboard in steps. Wait until the size settles.
        last: Optional[ClipContent] = None
        for attempt in range(READ_ATTEMPTS):
            try:
                content = self.clipboard_service.reader.read()
            except ClipboardReadError as e:
                logger.debug("Clipboard read attempt %d failed: %s", attempt + 1, e)
                content = None

            if content is not None:
                if last is not None and last.size() == content.size():
                    return content
                last = content

            time.sleep(READ_RETRY_DELAY)
        return last

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def save_item(self, content: ClipContent, category: Optional[str] = None) -> str:
        """Persist ``content`` now and enrich it in the background.

        A category given here is the user's choice and survives enrichment.
        """
        chosen = category.strip() if category and category.strip() else None
        item = ClipItem(content=content, category=chosen or DEFAULT_CATEGORY)
        item_id = self.store.create_item(item)
        self.enrichment.enrich_item(item_id, content, preserve_category=chosen is not None)
        return item_id

    def delete_item(self, item_id: str) -> bool:
        return self.store.delete_item(item_id)

    def list_items(self, category: Optional[str] = None, query: Optional[str] = None) -> List[ClipItem]:
        return self.store.list_items(category=category, query=query)

    def get_item(self, item_id: str) -> ClipItem:
        item = self.store.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def categories(self) -> List[str]:
        known = list(CATEGORIES)
        for category in self.store.categories():
            if category not in known:
                known.append(category)
        return known

    def get_setting(self, key: str) -> Optional[str]:
        return self.store.get_setting(key)

    def set_setting(self, key: str, value: Optional[str]) -> None:
        if key == "global_hotkey":
            self.register_hotkey(value or "")
            return

        self.store.set_setting(key, value)
        if key == "llm_api_key":
            configure = getattr(self.classifier, "configure", None)
            if configure is not None:
                configure(value)

    def get_all_settings(self) -> Dict[str, Optional[str]]:
        return self.store.get_all_settings()

    def register_hotkey(self, binding: str) -> str:
        hotkey = self.hotkeys.test(binding)
        self.store.set_setting("global_hotkey", hotkey.binding)
        self.hotkeys.register(hotkey.binding)
        return hotkey.binding

    def test_hotkey(self, binding: str) -> HotkeyCheck:
        return check_hotkey(binding)

    def request_enrichment(self, content: ClipContent) -> Suggestion:
        return self.enrichment.suggest(content)

    def session_state(self) -> Optional[SessionSnapshot]:
        return self.sessions.current()

    def set_session_category(self, text: str) -> SessionSnapshot:
        return self.sessions.set_category(text)

    def confirm_session(self, category: Optional[str] = None) -> str:
        return self.sessions.confirm(category)

    def cancel_session(self) -> SessionSnapshot:
        return self.sessions.cancel()

    def copy_to_clipboard(self, item_id: str) -> bool:
        item = self.get_item(item_id)
        with self.clipboard_service.hold():
            copied = self.clipboard_service.reader.write(item.content)
            if copied:
                # our own write must not come back as a new capture
                self.clipboard_service.mark_seen(item.content)
        if copied:
            logger.info("Copied %s item %s to clipboard", item.kind, item_id)
        return copied

    def export_image(self, item_id: str, file_name: Optional[str] = None) -> Path:
        item = self.get_item(item_id)
        if not isinstance(item.content, ImageContent):
            raise ClipShelfError(f"Item {item_id} is not an image")
        try:
            return self.files.save_file(item.content.data, file_name or self.files.default_image_name())
        except OSError as e:
            raise StoreIOError(f"Failed to export image {item_id}: {e}") from e

    def health(self) -> Dict[str, object]:
        report = self.store.manager.health_check()
        report["watcher_running"] = self.clipboard_service.is_running
        report["hotkey"] = self.hotkeys.current.binding if self.hotkeys.current else None
        report["llm_configured"] = bool(getattr(self.classifier, "has_api_key", True))
        return report
