from pathlib import Path

import pymupdf

from app.combine.base import BaseCombiner
from app.combine.exceptions import CombineError
from app.logging.logger import Log
from app.sessions.models import Session


class PyMuPdfCombiner(BaseCombiner):
    """Appends every page of every session PDF into one PDF using PyMuPDF."""

    def combine(self, session: Session) -> Path:
        pages = self._existing_pages(session)
        if not pages:
            raise CombineError("No valid PDF pages to combine")

        Log.info(f"Combining {len(pages)} pages from \"{session.name}\" (format: pdf)...")
        output_path = self._output_path(session, input_count=len(pages))
        try:
            with pymupdf.open() as combined:  # type: ignore[no-untyped-call]
                for page in pages:
                    with pymupdf.open(str(page.filepath)) as source:  # type: ignore[no-untyped-call]
                        combined.insert_pdf(source)
                if combined.page_count == 0:
                    raise CombineError("Combined document has no pages")
                combined.save(str(output_path))
        except CombineError:
            self._discard_output(output_path)
            raise
        except Exception as exc:
            self._discard_output(output_path)
            raise CombineError(f"Failed to combine PDF pages: {exc}") from exc

        Log.info(f"Successfully combined {len(pages)} pages using PyMuPDF")
        return output_path
