"""
Storage Error Classification
============================
Maps driver exceptions onto the engine's storage taxonomy.
"""

from typing import Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, TimeoutError

from authlife_core.errors import DuplicateKey, StorageError, TransientStorageError

# PostgreSQL SQLSTATE codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
INSUFFICIENT_PRIVILEGE = "42501"  # RLS denial while the account row is not yet visible
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
LOCK_NOT_AVAILABLE = "55P03"

TRANSIENT_SQLSTATES = {
    FOREIGN_KEY_VIOLATION,
    INSUFFICIENT_PRIVILEGE,
    SERIALIZATION_FAILURE,
    DEADLOCK_DETECTED,
    LOCK_NOT_AVAILABLE,
}


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    return None


def is_unique_violation(exc: BaseException) -> bool:
    if not isinstance(exc, IntegrityError):
        return False
    if _sqlstate(exc) == UNIQUE_VIOLATION:
        return True
    message = str(exc.orig).lower()
    return (
        "unique constraint" in message
        or "duplicate key" in message
        or "already exists" in message
    )


def classify_storage_error(exc: BaseException) -> StorageError:
    """
    Classify a SQLAlchemy/driver exception.

    Unknown integrity failures are treated as transient: the one case the
    engine expects (a referenced row not yet committed) heals on retry.
    """
    if isinstance(exc, StorageError):
        return exc

    if is_unique_violation(exc):
        return DuplicateKey(str(exc.orig), original=exc)

    if isinstance(exc, (OperationalError, TimeoutError)):
        return TransientStorageError(str(exc), original=exc)

    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return TransientStorageError("Connection invalidated", original=exc)
        state = _sqlstate(exc)
        if state in TRANSIENT_SQLSTATES or isinstance(exc, IntegrityError):
            return TransientStorageError(str(exc.orig), original=exc)
        message = str(exc.orig).lower()
        if "row-level security" in message or "permission denied" in message:
            return TransientStorageError(str(exc.orig), original=exc)

    return StorageError(str(exc), code="STORAGE_ERROR", original=exc)
