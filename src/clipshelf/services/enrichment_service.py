import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from clipshelf.errors import ClassificationError, StoreIOError
from clipshelf.llm.classifier import Classifier
from clipshelf.models import ClipContent, Suggestion
from clipshelf.services.notification_service import ENRICHMENT_FAILED, NotificationBus
from clipshelf.services.store_service import StoreService

logger = logging.getLogger(__name__)

SuggestionCallback = Callable[[Optional[Suggestion], Optional[ClassificationError]], None]


class EnrichmentService:
    """Runs classification off the capture path and writes results back.

    A failed classification never fails a capture: the item keeps whatever
    category it was saved with and an ``enrichment-failed`` event is
    published instead.
    """

    def __init__(
        self,
        classifier: Classifier,
        store: StoreService,
        bus: Optional[NotificationBus] = None,
        max_workers: int = 4,
    ) -> None:
        self.classifier = classifier
        self.store = store
        self.bus = bus or store.bus
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="clipshelf-enrich")
        self._lock = threading.Lock()
        self._closed = False

    def suggest(self, content: ClipContent) -> Suggestion:
        """Classify synchronously. Raises ``ClassificationError``."""
        return self.classifier.classify(content)

    def request_suggestion(self, content: ClipContent, callback: SuggestionCallback) -> Future:
        """Classify in the background and hand the outcome to ``callback``.

        The returned future completes after ``callback`` has run. After
        shutdown the callback runs at once with a ``ClassificationError``.
        """
        future = self._submit(self._run_suggestion, content, callback)
        if future.done() and future.exception() is not None:
            self._invoke(callback, None, ClassificationError(str(future.exception())))
        return future

    def enrich_item(self, item_id: str, content: ClipContent, preserve_category: bool = False) -> Future:
        """Classify a persisted item and update it in place.

        The future resolves to ``True`` when derived fields were written.
        """
        return self._submit(self._run_enrichment, item_id, content, preserve_category)

    def _submit(self, fn, *args) -> Future:
        with self._lock:
            if self._closed:
                future: Future = Future()
                future.set_exception(RuntimeError("Enrichment service is shut down"))
                return future
            return self._executor.submit(fn, *args)

    def _classify(self, content: ClipContent) -> Suggestion:
        try:
            return self.classifier.classify(content)
        except ClassificationError:
            raise
        except Exception as exc:
            # Unexpected classifier bugs degrade the same way service errors do.
            raise ClassificationError(f"Classifier crashed: {exc}") from exc

    def _run_suggestion(self, content: ClipContent, callback: SuggestionCallback) -> Optional[Suggestion]:
        try:
            suggestion = self._classify(content)
        except ClassificationError as exc:
            logger.warning("Suggestion request failed: %s", exc)
            self._invoke(callback, None, exc)
            return None

        self._invoke(callback, suggestion, None)
        return suggestion

    @staticmethod
    def _invoke(callback: SuggestionCallback, suggestion: Optional[Suggestion],
                error: Optional[ClassificationError]) -> None:
        try:
            callback(suggestion, error)
        except Exception:
            logger.exception("Suggestion callback failed")

    def _run_enrichment(self, item_id: str, content: ClipContent, preserve_category: bool) -> bool:
        try:
            suggestion = self._classify(content)
        except ClassificationError as exc:
            logger.warning("Enrichment failed for %s: %s", item_id, exc)
            self.bus.publish(ENRICHMENT_FAILED, item_id, error=exc.message)
            return False

        category = None if preserve_category else suggestion.category
        try:
            applied = self.store.update_enrichment(item_id, category, suggestion.tags, suggestion.summary)
        except StoreIOError as exc:
            logger.error("Could not store enrichment for %s: %s", item_id, exc)
            return False
        if applied:
            logger.info("Enriched %s: category=%s tags=%s", item_id, category or "(kept)", suggestion.tags)
        return applied

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait)
