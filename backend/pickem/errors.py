"""Storage error classification shared by repositories, services, and the API.

Storage failures are classified once, where they are raised, into a small
closed set of kinds. Callers pattern-match on the kind instead of inspecting
driver error codes or message text.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError


@dataclass(frozen=True, slots=True)
class NotFound:
    resource: str = "resource"


@dataclass(frozen=True, slots=True)
class Conflict:
    detail: str = "conflict"


@dataclass(frozen=True, slots=True)
class Forbidden:
    reason: str


@dataclass(frozen=True, slots=True)
class Unexpected:
    message: str


StoreErrorKind = NotFound | Conflict | Forbidden | Unexpected


class StoreError(Exception):
    """Raised at the storage boundary with an already classified kind."""

    def __init__(self, kind: StoreErrorKind, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(message or describe(kind))


class SettlementError(RuntimeError):
    """Fatal settlement failure: unsettled matches could not even be listed."""


_UNIQUE_MARKERS = ("unique", "duplicate key", "23505")
_FOREIGN_KEY_MARKERS = ("foreign key", "23503")


def classify_db_error(exc: BaseException, *, resource: str = "resource") -> StoreErrorKind:
    """Map a SQLAlchemy exception onto a storage error kind."""

    if isinstance(exc, StoreError):
        return exc.kind
    if isinstance(exc, NoResultFound):
        return NotFound(resource)
    if isinstance(exc, IntegrityError):
        original = str(getattr(exc, "orig", exc)).lower()
        sqlstate = getattr(getattr(exc, "orig", None), "sqlstate", None)
        if sqlstate == "23505" or any(marker in original for marker in _UNIQUE_MARKERS):
            return Conflict(f"{resource} already exists")
        if sqlstate == "23503" or any(marker in original for marker in _FOREIGN_KEY_MARKERS):
            return NotFound(resource)
        return Unexpected(str(exc.orig) if exc.orig is not None else str(exc))
    if isinstance(exc, SQLAlchemyError):
        return Unexpected(str(exc))
    return Unexpected(f"{type(exc).__name__}: {exc}")


def describe(kind: StoreErrorKind) -> str:
    match kind:
        case NotFound(resource=resource):
            return f"{resource} not found"
        case Conflict(detail=detail):
            return detail
        case Forbidden(reason=reason):
            return f"forbidden: {reason}"
        case Unexpected(message=message):
            return message
    return "unknown storage error"


def http_status_for(kind: StoreErrorKind) -> int:
    match kind:
        case NotFound():
            return 404
        case Conflict():
            return 409
        case Forbidden():
            return 403
    return 500


__all__ = [
    "Conflict",
    "Forbidden",
    "NotFound",
    "SettlementError",
    "StoreError",
    "StoreErrorKind",
    "Unexpected",
    "classify_db_error",
    "describe",
    "http_status_for",
]
