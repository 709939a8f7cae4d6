"""Exceptions raised by the archive store."""


class ArchiveError(Exception):
    """Base exception for all archive store errors."""

    def __init__(self, message: str, *args, **kwargs):
        self.message = message
        super().__init__(message, *args, **kwargs)


class NotFoundError(ArchiveError):
    """Raised when a record or canonical storage unit does not exist."""

    pass


class CorruptError(ArchiveError):
    """Raised when a stored record or a payload archive cannot be decoded."""

    pass


class StorageIOError(ArchiveError):
    """Raised when the underlying device or database fails."""

    pass


class InvalidQueryError(ArchiveError):
    """Raised when a search query cannot be parsed."""

    pass


class LinkConflictError(ArchiveError):
    """Raised when an alias path is occupied by something else.

    Attributes:
        conflicts: Alias paths that could not be created
    """

    def __init__(self, message: str, conflicts: list | None = None, *args, **kwargs):
        self.conflicts = conflicts or []
        super().__init__(message, *args, **kwargs)


class NetworkError(ArchiveError):
    """Raised when payload or metadata retrieval fails."""

    pass
