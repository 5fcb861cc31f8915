"""Exception hierarchy shared by the stores, stages, and orchestrator."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure categories a stage can report.

    The orchestrator's self-healing dispatch matches over exactly these
    values.
    """

    TRANSIENT = "transient"  # timeouts, rate limits, provider hiccups
    TOO_COMPLEX = "too_complex"  # input too large or too complex in one pass
    FORMAT = "format"  # unparseable or malformed output
    INPUT = "input"  # missing required input; never healed
    UNKNOWN = "unknown"


_KEYWORDS: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (ErrorKind.TRANSIENT, ("timeout", "rate limit")),
    (ErrorKind.TOO_COMPLEX, ("complex", "too large")),
    (ErrorKind.FORMAT, ("format", "syntax")),
)


def classify_error(message: str | None) -> ErrorKind:
    """Map a free-text error message onto an ErrorKind.

    Used for failures that did not carry an explicit kind. Checks run in
    order, so "timeout while parsing syntax" is TRANSIENT.
    """
    text = (message or "").lower()
    for kind, needles in _KEYWORDS:
        if any(needle in text for needle in needles):
            return kind
    return ErrorKind.UNKNOWN


class LegacyBridgeError(Exception):
    """Base class for all errors raised by this package."""


class InputError(LegacyBridgeError):
    """A required input field is missing. Never retried."""

    kind = ErrorKind.INPUT


# -- Store errors ---------------------------------------------------------------


class StoreError(LegacyBridgeError):
    """Base class for vector index and relationship graph failures."""


class DimensionMismatchError(StoreError):
    """A vector's length does not match the index dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector must be of length {expected}, got {actual}")


class EndpointNotFoundError(StoreError):
    """An edge references a node id that is not in the graph."""

    def __init__(self, from_id: str, to_id: str) -> None:
        self.from_id = from_id
        self.to_id = to_id
        super().__init__(f"Source or target node not found: {from_id} -> {to_id}")


class PartialWriteError(StoreError):
    """One half of a two-store write succeeded and the other failed.

    The successful half is left in place. ``written`` names it
    (``"vector"`` or ``"graph"``).
    """

    def __init__(self, entity_id: str, written: str, cause: BaseException) -> None:
        self.entity_id = entity_id
        self.written = written
        super().__init__(
            f"Entity '{entity_id}' only partially stored ({written} written): {cause}"
        )


# -- Pipeline errors --------------------------------------------------------------


class GenerationError(LegacyBridgeError):
    """The content-generation or embedding provider failed."""

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.kind = kind or classify_error(message)


class StageError(LegacyBridgeError):
    """A stage could not produce a usable result."""

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.kind = kind or classify_error(message)
