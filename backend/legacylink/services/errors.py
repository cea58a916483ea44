"""Error types raised by the release engine services."""

from __future__ import annotations

# purpose: shared error taxonomy for trustee, grant, sweep, and conflict services
# status: active


class LegacyLinkError(RuntimeError):
    """Base error for release engine flows."""


class InvalidState(LegacyLinkError):
    """Raised when a record is not in the state an operation requires."""


class NotFound(LegacyLinkError):
    """Raised when a referenced owner, trustee, item, asset, or grant is missing."""


class SweepUnitError(LegacyLinkError):
    """Raised when one owner's sweep unit fails and has been rolled back."""

    def __init__(self, owner_id, message: str) -> None:
        super().__init__(f"owner {owner_id}: {message}")
        self.owner_id = owner_id


class PersistenceError(SweepUnitError):
    """Raised when a storage call fails inside one owner's sweep unit."""


class NotificationDeliveryError(LegacyLinkError):
    """Raised when the notifier cannot deliver a trustee message."""


class DuplicateGrantError(AssertionError):
    """Raised when a second grant is created for the same item and trustee."""
