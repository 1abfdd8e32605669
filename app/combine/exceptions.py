class CombineError(Exception):
    """Raised when session pages cannot be combined into one document."""
