"""Typed failures raised by the player ingestion core.

Routes and tests match on the message prefixes below, so every user-visible
message is built from these constants.
"""

from __future__ import annotations

INVALID_USERNAME = "Invalid username."
INVALID_PLAYER_ID = "Invalid player id."
NOT_TRACKED_SUFFIX = "is not being tracked yet."
UPDATE_FAILED_PREFIX = "Failed to update:"
IMPORTED_TOO_SOON = "Imported too soon"
HISCORES_NOT_FOUND = "Failed to load hiscores: Invalid username"
HISCORES_UNAVAILABLE = "Failed to load hiscores: Service is unavailable"
HISTORY_UNAVAILABLE = "Failed to load history from CML."
USERNAME_LENGTH_VALIDATION = "Validation error: Username must be between 1 and 12 characters"
USERNAME_CHARSET_VALIDATION = "Validation error: Username contains invalid characters"


class PlayerError(Exception):
    """Base class for every failure the core reports to its callers."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidFormat(PlayerError):
    """Malformed, empty or oversized input caught before any I/O."""


class ValidationFailure(PlayerError):
    """Storage-level constraint violation (the fast pre-check was bypassed)."""

    status_code = 500


class NotFound(PlayerError):
    """The requested player does not exist in the directory."""


class NotTracked(NotFound):
    """An operation that needs a tracked player was called for an unknown one."""


class PlayerNotFound(PlayerError):
    """The hiscores provider has no record of the account."""


class UpstreamUnavailable(PlayerError):
    """Transport or provider fault while talking to an upstream service."""

    status_code = 500


class HistoryUnavailable(UpstreamUnavailable):
    """The history provider could not be reached or returned garbage."""


class TooSoon(PlayerError):
    """Cooldown window for the operation has not elapsed yet."""


class ImportTooSoon(TooSoon):
    pass


class UpdateFailure(PlayerError):
    """Envelope for any failure in the tracking pipeline.

    The inner cause's message is preserved after the "Failed to update:"
    prefix; the wrapped exception is available as ``cause``.
    """

    def __init__(self, cause: PlayerError) -> None:
        super().__init__(f"{UPDATE_FAILED_PREFIX} {cause.message}")
        self.cause = cause


def not_tracked_message(subject: str) -> str:
    return f"{subject} {NOT_TRACKED_SUFFIX}"
