class UploadError(Exception):
    """Raised when a document cannot be delivered to the document backend."""
