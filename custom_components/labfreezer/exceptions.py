"""Exception taxonomy for the LabFreezer integration.

Defines a small hierarchy of exceptions used across the repository, the
storage backends, services and the WebSocket API. These extend Home
Assistant's HomeAssistantError to ensure consistent behavior when surfaced
through the platform.

All exceptions accept a human-readable message. ``str(exception)`` returns the
message unchanged.
"""

from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class LabFreezerError(HomeAssistantError):
    """Base exception for LabFreezer-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(LabFreezerError):
    """Raised when input payloads fail validation or violate invariants."""


class NotFoundError(LabFreezerError):
    """Raised when a requested box or sample does not exist."""


class CapacityError(LabFreezerError):
    """Raised when a box has no free position left."""


class StoreError(LabFreezerError):
    """Raised when a durable store read or write fails.

    The reason is opaque to the inventory core and kept on ``reason``.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
