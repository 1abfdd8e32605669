import io
from datetime import datetime, timezone
from pathlib import Path

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from app.sessions.models import PageRecord, Session

FIXED_NOW = datetime(2026, 10, 18, 5, 20, 0, 123000, tzinfo=timezone.utc)


def _pdf_bytes(*texts: str) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for text in texts:
        c.drawString(72, 720, text)
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with known text content."""
    return _pdf_bytes("Hello PDF World")


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with known text on each page."""
    return _pdf_bytes("Page one content", "Page two content")


@pytest.fixture()
def scan_dir(tmp_path: Path) -> Path:
    """An empty scan output directory."""
    directory = tmp_path / "scans"
    directory.mkdir()
    return directory


@pytest.fixture()
def write_pdf_page(scan_dir: Path):  # type: ignore[no-untyped-def]
    """Write a single-page PDF named ``name`` into the scan directory."""

    def _write(name: str, text: str = "page") -> Path:
        path = scan_dir / name
        path.write_bytes(_pdf_bytes(text))
        return path

    return _write


@pytest.fixture()
def make_session():  # type: ignore[no-untyped-def]
    """Build a Session whose pages point at the given files, in order."""

    def _make(session_id: str, paths: list[Path]) -> Session:
        pages = [
            PageRecord(
                id=f"page-{number}",
                filename=path.name,
                filepath=path,
                captured_at=FIXED_NOW,
                size_bytes=path.stat().st_size if path.exists() else 0,
                page_number=number,
            )
            for number, path in enumerate(paths, start=1)
        ]
        return Session(
            id=session_id, name="Test Document", created=FIXED_NOW, modified=FIXED_NOW, pages=pages
        )

    return _make
