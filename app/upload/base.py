from abc import ABC, abstractmethod
from pathlib import Path


class BaseUploader(ABC):
    """Contract for document backends that accept combined scans."""

    @abstractmethod
    def upload(self, path: Path) -> str:
        """Send one document file upstream.

        Returns:
            Backend reference for the accepted document (e.g. a task id).

        Raises:
            UploadError: on any failure.
        """

    def close(self) -> None:
        """Release any underlying connections."""
