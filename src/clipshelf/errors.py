"""Exception hierarchy for ClipShelf."""


class ClipShelfError(Exception):
    """Base class for all ClipShelf errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ClipboardReadError(ClipShelfError):
    """The system clipboard could not be read. Transient, the tick is skipped."""


class ClassificationError(ClipShelfError):
    """The classification service failed or returned something unusable."""


class StoreIOError(ClipShelfError):
    """A store operation failed. Fatal to that operation only."""


class InvalidHotkeyError(ClipShelfError):
    """A hotkey binding could not be parsed or registered."""

    def __init__(self, binding: str, reason: str) -> None:
        self.binding = binding
        self.reason = reason
        super().__init__(f"Invalid hotkey {binding!r}: {reason}")


class SessionStateError(ClipShelfError):
    """A capture session command arrived in a state that does not allow it."""


class ItemNotFoundError(ClipShelfError):
    """A command referenced an item id that is not stored."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found")
