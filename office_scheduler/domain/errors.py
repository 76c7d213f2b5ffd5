"""Errors raised by the event service.

Callers branch on the exception type; the message is safe to show to users.
"""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for every rejected scheduling operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidEventError(SchedulerError):
    """The submitted event data is malformed (e.g. end before start)."""


class NotOwnerError(SchedulerError):
    """The acting user does not own the event."""


class NotFoundError(SchedulerError):
    """An event, occurrence or user does not exist."""


class ConflictError(SchedulerError):
    """The operation conflicts with the current state of an occurrence."""


class OccurrenceCancelledError(ConflictError):
    def __init__(self) -> None:
        super().__init__("This occurrence has been cancelled.")


class AlreadySignedUpError(ConflictError):
    def __init__(self) -> None:
        super().__init__("You are already signed up for this occurrence.")


class OccurrenceFullError(ConflictError):
    def __init__(self) -> None:
        super().__init__("This occurrence is full.")


class NotSignedUpError(ConflictError):
    def __init__(self) -> None:
        super().__init__("You are not signed up for this occurrence.")


class OccurrenceNotCancelledError(ConflictError):
    def __init__(self) -> None:
        super().__init__("This occurrence is not cancelled.")
