"""Exception taxonomy for local operations and sync.

Local operations (grading, editing, deck CRUD, import) raise
``ValidationError`` or ``PersistenceError`` to their caller. ``SyncError`` is
raised by the remote/auth collaborators and is caught by the sync engine,
which turns it into a status change instead of propagating it.
"""


class MemoryAppError(Exception):
    """Base class for all application errors."""


class ValidationError(MemoryAppError):
    """Missing or invalid input; the operation was aborted without changing state."""


class NotFoundError(ValidationError):
    """The referenced card or deck does not exist (or is a tombstone)."""


class PersistenceError(MemoryAppError):
    """A local store operation failed; the write may not have happened."""


class SyncError(MemoryAppError):
    """Network, auth or remote failure during push, pull or sign-in."""
