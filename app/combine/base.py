from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from app.files.cleanup import discard_file
from app.files.naming import combined_filename, utc_now
from app.logging.logger import Log
from app.sessions.models import PageRecord, Session


class BaseCombiner(ABC):
    """Contract for all page combination strategies."""

    def __init__(self, output_dir: Path, clock: Callable[[], datetime] = utc_now) -> None:
        self._output_dir = output_dir
        self._clock = clock

    @abstractmethod
    def combine(self, session: Session) -> Path:
        """Merge the session's pages, in page order, into one document.

        The inputs are never deleted.

        Args:
            session: Session whose pages are combined.

        Returns:
            Path of the combined document inside the output directory.

        Raises:
            CombineError: if no page could be combined or the merge failed.
        """

    def _existing_pages(self, session: Session) -> list[PageRecord]:
        pages = []
        for page in session.pages:
            if not page.filepath.exists():
                Log.warning(f"Skipping missing file {page.filename}")
                continue
            pages.append(page)
        return pages

    def _output_path(self, session: Session, input_count: int) -> Path:
        return self._output_dir / combined_filename(session.id, self._clock(), input_count)

    @staticmethod
    def _discard_output(path: Path) -> None:
        discard_file(path, "partial combined output")
