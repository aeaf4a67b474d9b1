from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from roadtrack.core.errors import ConflictError, ForeignKeyViolationError, MovementError

_UNIQUE_SQLSTATE = "23505"
_FOREIGN_KEY_SQLSTATE = "23503"


def integrity_error_kind(exc: IntegrityError) -> str | None:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == _UNIQUE_SQLSTATE:
        return "duplicate"
    if sqlstate == _FOREIGN_KEY_SQLSTATE:
        return "foreign_key"

    message = str(orig).lower()
    if "unique constraint" in message or "duplicate key" in message or "duplicate entry" in message:
        return "duplicate"
    if "foreign key" in message:
        return "foreign_key"
    return None


def classify_integrity_error(exc: IntegrityError, *, context: str) -> MovementError | None:
    """Map a store-level integrity failure onto the error taxonomy, or ``None`` if unknown."""
    kind = integrity_error_kind(exc)
    if kind == "duplicate":
        return ConflictError(f"{context} already exists")
    if kind == "foreign_key":
        return ForeignKeyViolationError(f"{context} references a record that does not exist")
    return None
