from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path

DEFAULT_SESSION_ID = "default"
DEFAULT_SESSION_NAME = "Current Document"


@dataclass(frozen=True)
class PageRecord:
    """One captured page file belonging to a session."""

    id: str
    filename: str
    filepath: Path
    captured_at: datetime
    size_bytes: int
    page_number: int

    def renumbered(self, page_number: int) -> "PageRecord":
        if self.page_number == page_number:
            return self
        return replace(self, page_number=page_number)


@dataclass
class Session:
    """An ordered working set of pages awaiting combination and upload."""

    id: str
    name: str
    created: datetime
    modified: datetime
    pages: list[PageRecord] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def total_bytes(self) -> int:
        return sum(page.size_bytes for page in self.pages)

    def snapshot(self) -> "Session":
        return replace(self, pages=list(self.pages))


def format_file_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"
