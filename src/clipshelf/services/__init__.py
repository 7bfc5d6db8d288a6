"""Service layer for ClipShelf."""

from clipshelf.services.capture_session import CaptureSessionManager
from clipshelf.services.clipboard_service import ClipboardService
from clipshelf.services.enrichment_service import EnrichmentService
from clipshelf.services.hotkey_service import HotkeyService, parse_hotkey
from clipshelf.services.notification_service import Event, NotificationBus
from clipshelf.services.store_service import StoreService

__all__ = [
    "CaptureSessionManager",
    "ClipboardService",
    "EnrichmentService",
    "Event",
    "HotkeyService",
    "NotificationBus",
    "StoreService",
    "parse_hotkey",
]
