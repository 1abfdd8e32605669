class SessionError(Exception):
    """Base exception for all session-related errors."""


class PageNotFoundError(SessionError):
    """Raised when a page id or path is not part of the session."""


class PageFileNotFoundError(SessionError):
    """Raised when a page file to be added does not exist."""


class EmptyPageError(SessionError):
    """Raised when a page file to be added is zero bytes (it is deleted)."""


class PageOutsideOutputDirError(SessionError):
    """Raised when a page file does not live under the scan output directory."""


class InvalidPageOrderError(SessionError):
    """Raised when a reorder request is not a permutation of the session's pages."""
