"""Hotkey-triggered capture sessions.

A session goes ``idle -> awaiting_suggestion -> ready -> saved | cancelled``.
The toolbar opens at once while the suggestion is computed in the
background. User edits and the suggestion may arrive in either order. A
value the user typed always wins, otherwise the suggestion is used.
"""

import logging
import threading
from datetime import datetime
from functools import partial
from typing import Dict, Optional

from ulid import ULID

from clipshelf.errors import ClassificationError, SessionStateError, StoreIOError
from clipshelf.models import (
    DEFAULT_CATEGORY,
    ClipContent,
    ClipItem,
    SessionSnapshot,
    SessionState,
    Suggestion,
)
from clipshelf.services.enrichment_service import EnrichmentService
from clipshelf.services.notification_service import (
    ENRICHMENT_FAILED,
    SESSION_CLOSED,
    SESSION_OPENED,
    SUGGESTION_READY,
    NotificationBus,
)
from clipshelf.services.store_service import StoreService

logger = logging.getLogger(__name__)


class _Session:

    def __init__(self, content: ClipContent) -> None:
        self.session_id = f"s_{ULID.from_datetime(datetime.now())}"
        self.content = content
        self.state = SessionState.AWAITING_SUGGESTION
        self.suggestion: Optional[Suggestion] = None
        self.suggestion_failed = False
        self.user_category = ""
        self.item_id: Optional[str] = None
        self.timer: Optional[threading.Timer] = None

    @property
    def effective_category(self) -> Optional[str]:
        typed = self.user_category.strip()
        if typed:
            return typed
        if self.suggestion is not None:
            return self.suggestion.category
        return None

    @property
    def can_save(self) -> bool:
        # never let an accidental accelerator submit the unset default
        return self.state.is_open and self.effective_category is not None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            state=self.state,
            content=self.content,
            suggestion=self.suggestion,
            suggestion_failed=self.suggestion_failed,
            user_category=self.user_category,
            effective_category=self.effective_category,
            can_save=self.can_save,
            item_id=self.item_id,
        )


class CaptureSessionManager:
    """Owns the single active capture session."""

    def __init__(
        self,
        store: StoreService,
        enrichment: EnrichmentService,
        bus: Optional[NotificationBus] = None,
        fallback_category: str = DEFAULT_CATEGORY,
        timeout: Optional[float] = 30.0,
    ) -> None:
        self.store = store
        self.enrichment = enrichment
        self.bus = bus or store.bus
        self.fallback_category = fallback_category
        self.timeout = timeout if timeout and timeout > 0 else None
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._current: Optional[_Session] = None
        # sessions whose suggestion request is still in flight
        self._pending: Dict[str, _Session] = {}

    # ---------------------------------------------------------------------
    # Commands
    # ---------------------------------------------------------------------
    def open(self, content: ClipContent) -> SessionSnapshot:
        with self._lock:
            previous = self._current
            if previous is not None and previous.state.is_open:
                self._close(previous, SessionState.CANCELLED, reason="superseded")

            session = _Session(content)
            self._current = session
            self._pending[session.session_id] = session
            if self.timeout is not None:
                session.timer = threading.Timer(self.timeout, self._on_timeout, args=(session.session_id,))
                session.timer.daemon = True
                session.timer.start()

            self.bus.publish(SESSION_OPENED, session_id=session.session_id, kind=content.kind)
            snapshot = session.snapshot()
            self._changed.notify_all()

        logger.info("Capture session %s opened for %s", session.session_id, content.kind)
        self.enrichment.request_suggestion(content, partial(self._on_suggestion, session.session_id))
        return snapshot

    def set_category(self, text: str) -> SessionSnapshot:
        with self._lock:
            session = self._require_open()
            session.user_category = text
            return session.snapshot()

    def confirm(self, category: Optional[str] = None) -> str:
        """Persist the open session's content and close it. Returns the item id."""
        with self._lock:
            session = self._require_open()
            if category is not None:
                session.user_category = category
            if not session.can_save:
                raise SessionStateError("Nothing to save yet: no suggestion and no category entered")
            return self._save(session)

    def cancel(self) -> SessionSnapshot:
        with self._lock:
            session = self._require_open()
            self._close(session, SessionState.CANCELLED, reason="cancelled")
            logger.info("Capture session %s cancelled", session.session_id)
            return session.snapshot()

    def current(self) -> Optional[SessionSnapshot]:
        with self._lock:
            if self._current is None:
                return None
            return self._current.snapshot()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the current session stops awaiting its suggestion."""
        with self._changed:
            return self._changed.wait_for(
                lambda: self._current is None or self._current.state != SessionState.AWAITING_SUGGESTION,
                timeout=timeout,
            )

    def close(self) -> None:
        with self._lock:
            session = self._current
            if session is not None and session.state.is_open:
                self._close(session, SessionState.CANCELLED, reason="shutdown")

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------
    def _require_open(self) -> _Session:
        session = self._current
        if session is None or not session.state.is_open:
            raise SessionStateError("No capture session is open")
        return session

    def _close(self, session: _Session, state: SessionState, reason: str) -> None:
        session.state = state
        session.cancel_timer()
        self.bus.publish(
            SESSION_CLOSED,
            session.item_id,
            session_id=session.session_id,
            outcome=state.value,
            reason=reason,
        )
        self._changed.notify_all()

    def _save(self, session: _Session) -> str:
        category = session.effective_category or self.fallback_category
        suggestion = None if session.suggestion_failed else session.suggestion
        item = ClipItem(
            content=session.content,
            category=category,
            tags=suggestion.tags if suggestion else [],
            summary=suggestion.summary if suggestion else None,
        )

        previous_state = session.state
        session.state = SessionState.SAVED
        try:
            item_id = self.store.create_item(item)
        except StoreIOError:
            session.state = previous_state
            raise

        session.item_id = item_id
        self._close(session, SessionState.SAVED, reason="confirmed")
        logger.info("Capture session %s saved as %s (category=%s)", session.session_id, item_id, category)
        return item_id

    def _on_suggestion(self, session_id: str, suggestion: Optional[Suggestion],
                       error: Optional[ClassificationError]) -> None:
        late_item: Optional[str] = None
        with self._lock:
            session = self._pending.pop(session_id, None)
            if session is None:
                return

            if session.state == SessionState.CANCELLED:
                logger.debug("Discarding suggestion for closed session %s", session_id)
                return

            if session.state == SessionState.SAVED:
                if suggestion is not None:
                    late_item = session.item_id
            else:
                if suggestion is None:
                    session.suggestion = Suggestion(category=self.fallback_category)
                    session.suggestion_failed = True
                    self.bus.publish(
                        ENRICHMENT_FAILED,
                        session_id=session_id,
                        error=error.message if error else "no suggestion",
                    )
                else:
                    session.suggestion = suggestion
                session.state = SessionState.READY
                self.bus.publish(
                    SUGGESTION_READY,
                    session_id=session_id,
                    suggestion=session.suggestion.model_dump(),
                    prefill=None if session.user_category.strip() else session.suggestion.category,
                    failed=session.suggestion_failed,
                )
                self._changed.notify_all()

        if late_item is not None and suggestion is not None:
            # saved before the suggestion arrived: keep the user's category
            try:
                self.store.update_enrichment(late_item, None, suggestion.tags, suggestion.summary)
            except StoreIOError as exc:
                logger.error("Could not apply late suggestion to %s: %s", late_item, exc)

    def _on_timeout(self, session_id: str) -> None:
        with self._lock:
            session = self._current
            if session is None or session.session_id != session_id or not session.state.is_open:
                return
            logger.info("Capture session %s timed out, saving automatically", session_id)
            try:
                self._save(session)
            except StoreIOError as exc:
                logger.error("Automatic save for session %s failed: %s", session_id, exc)
