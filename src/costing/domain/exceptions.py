"""Domain-level exceptions.

All rejected inputs and store conflicts are expressed as subclasses of
DomainException so the CLI layer can catch them uniformly and display
user-friendly messages.  Reconciliation mismatches are *not* exceptions;
they are reported as data.
"""


class DomainException(Exception):
    """Base class for all domain errors."""


class ValidationError(DomainException):
    """A movement or value was rejected before any computation."""


class EntityNotFoundError(DomainException):
    """A requested entity does not exist."""


class ConcurrentAppendError(DomainException):
    """Another writer appended to the same key first.

    Raised by the event store when the key's latest event is no longer
    the one the new snapshot was computed from.
    """

    def __init__(self, key, expected_previous_id, actual_latest_id) -> None:
        super().__init__(
            f"Concurrent append on {key}: expected latest event "
            f"{expected_previous_id!r}, found {actual_latest_id!r}"
        )
        self.key = key
        self.expected_previous_id = expected_previous_id
        self.actual_latest_id = actual_latest_id
