from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from app.combine.base import BaseCombiner
from app.combine.exceptions import CombineError
from app.files.naming import utc_now
from app.logging.logger import Log
from app.sessions.models import Session
from app.shell.exceptions import CommandError
from app.shell.runner import CommandRunner

MERGE_TIMEOUT_SECONDS = 60


class Img2PdfCombiner(BaseCombiner):
    """Wraps the session's image pages into one PDF with the img2pdf tool."""

    def __init__(
        self,
        output_dir: Path,
        runner: CommandRunner,
        img2pdf_binary: str = "img2pdf",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(output_dir, clock)
        self._runner = runner
        self._binary = img2pdf_binary

    def combine(self, session: Session) -> Path:
        pages = self._existing_pages(session)
        if not pages:
            raise CombineError("No valid TIFF files to combine")

        Log.info(f"Combining {len(pages)} pages from \"{session.name}\" (format: tiff)...")
        output_path = self._output_path(session, input_count=len(pages))
        args = [self._binary, *(str(page.filepath) for page in pages), "-o", str(output_path)]
        try:
            self._runner.run(args, timeout=MERGE_TIMEOUT_SECONDS)
        except CommandError as exc:
            self._discard_output(output_path)
            raise CombineError(f"Failed to combine TIFF pages into PDF: {exc}") from exc

        if not output_path.exists() or output_path.stat().st_size == 0:
            self._discard_output(output_path)
            raise CombineError("Failed to combine TIFF pages into PDF: no output produced")

        Log.info(f"Successfully combined {len(pages)} pages into PDF using img2pdf")
        return output_path
