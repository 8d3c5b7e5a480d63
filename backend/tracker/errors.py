from __future__ import annotations


class SyncError(Exception):
    """Base class for recoverable errors raised while handling a client event."""


class PermissionDenied(SyncError):
    """A restricted participant asked for a DM-only mutation. Never reported back."""


class UnknownPage(SyncError):
    def __init__(self, page: object) -> None:
        super().__init__(f"unknown page: {page!r}")
        self.page = page


class NoHistoryError(SyncError):
    def __init__(self, page: str, direction: str) -> None:
        what = "undo" if direction == "undo" else "redo"
        super().__init__(f"Nothing to {what} on the {page} page")
        self.page = page
        self.direction = direction
