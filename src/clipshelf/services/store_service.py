from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from clipshelf.database.sqlite_manager import MEMORY_PATH, SQLiteManager
from clipshelf.models import ClipItem, normalize_tags
from clipshelf.services.notification_service import (
    ITEM_CREATED,
    ITEM_DELETED,
    ITEM_UPDATED,
    NotificationBus,
)

logger = logging.getLogger(__name__)


class StoreService:
    """Single source of truth for clip items and settings.

    Every mutation runs under one writer lock and publishes its event before
    releasing it, so listeners observe events in commit order. Reads go
    straight to the manager and never wait on the writer.
    """

    def __init__(
        self,
        manager: Optional[SQLiteManager] = None,
        bus: Optional[NotificationBus] = None,
        *,
        db_path: Union[str, Path] = MEMORY_PATH,
    ) -> None:
        self.manager = manager or SQLiteManager(db_path)
        self.bus = bus or NotificationBus()
        self._write_lock = threading.Lock()
        self._last_created_at: Optional[datetime] = self.manager.latest_created_at()

    # ---------------------------------------------------------------------
    # Items
    # ---------------------------------------------------------------------
    def create_item(self, item: ClipItem) -> str:
        with self._write_lock:
            created_at = item.created_at
            if self._last_created_at is not None and created_at < self._last_created_at:
                created_at = self._last_created_at
            if created_at != item.created_at:
                item = item.model_copy(update={"created_at": created_at})

            item_id = self.manager.insert_item(item)
            self._last_created_at = created_at
            self.bus.publish(ITEM_CREATED, item_id, kind=item.kind, category=item.category)

        logger.info("Saved %s item %s (category=%s)", item.kind, item_id, item.category)
        return item_id

    def update_enrichment(
        self,
        item_id: str,
        category: Optional[str],
        tags: Iterable[str],
        summary: Optional[str],
    ) -> bool:
        """Apply derived fields in place. ``category=None`` keeps the current one."""
        with self._write_lock:
            applied = self.manager.update_enrichment(item_id, category, normalize_tags(tags), summary)
            if applied:
                self.bus.publish(ITEM_UPDATED, item_id, category=category)

        if not applied:
            logger.debug("Enrichment for %s skipped, item no longer exists", item_id)
        return applied

    def delete_item(self, item_id: str) -> bool:
        with self._write_lock:
            removed = self.manager.delete_item(item_id)
            if removed:
                self.bus.publish(ITEM_DELETED, item_id)

        if removed:
            logger.info("Deleted item %s", item_id)
        return removed

    def get_item(self, item_id: str) -> Optional[ClipItem]:
        return self.manager.get_item(item_id)

    def list_items(self, category: Optional[str] = None, query: Optional[str] = None) -> List[ClipItem]:
        return self.manager.list_items(category=category, query=query)

    def categories(self) -> List[str]:
        return self.manager.get_categories()

    # ---------------------------------------------------------------------
    # Settings
    # ---------------------------------------------------------------------
    def initialize_settings(self, defaults: Mapping[str, str]) -> Dict[str, Optional[str]]:
        with self._write_lock:
            for key, value in defaults.items():
                if not self.manager.has_setting(key):
                    self.manager.set_setting(key, value)
                    logger.info("Set default for %s: %s", key, value)
        return self.manager.get_all_settings()

    def get_setting(self, key: str) -> Optional[str]:
        return self.manager.get_setting(key)

    def set_setting(self, key: str, value: Optional[str]) -> None:
        with self._write_lock:
            self.manager.set_setting(key, value)

    def get_all_settings(self) -> Dict[str, Optional[str]]:
        return self.manager.get_all_settings()

    def close(self) -> None:
        self.manager.close()

    def __enter__(self) -> "StoreService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
