from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from app.sessions.models import PageRecord, Session

INDEX_FORMAT = 1


def _is_plain_name(filename: str) -> bool:
    return filename not in ("", ".", "..") and Path(filename).name == filename


class IndexedPage(BaseModel):
    """A page as saved in the index; the file lives in the output directory."""

    id: str
    filename: str
    captured_at: datetime
    size_bytes: int = Field(ge=0)


class IndexedSession(BaseModel):
    id: str
    name: str
    created: datetime
    modified: datetime
    pages: list[IndexedPage] = Field(default_factory=list)


class SessionIndex(BaseModel):
    """Everything about sessions the directory listing cannot tell: ids, membership, order."""

    format: Literal[1] = INDEX_FORMAT
    version: int = Field(default=0, ge=0)
    sessions: list[IndexedSession] = Field(default_factory=list)

    @classmethod
    def from_sessions(cls, sessions: list[Session], version: int) -> "SessionIndex":
        return cls(
            version=version,
            sessions=[
                IndexedSession(
                    id=session.id,
                    name=session.name,
                    created=session.created,
                    modified=session.modified,
                    pages=[
                        IndexedPage(
                            id=page.id,
                            filename=page.filename,
                            captured_at=page.captured_at,
                            size_bytes=page.size_bytes,
                        )
                        for page in session.pages
                    ],
                )
                for session in sessions
            ],
        )

    def to_sessions(self, root: Path) -> list[Session]:
        """Rebuild sessions with page paths under ``root``.

        Entries whose filename is not a plain name inside ``root`` are dropped.
        """
        sessions = []
        for saved in self.sessions:
            pages = [
                PageRecord(
                    id=page.id,
                    filename=page.filename,
                    filepath=root / page.filename,
                    captured_at=page.captured_at,
                    size_bytes=page.size_bytes,
                    page_number=number,
                )
                for number, page in enumerate(
                    (p for p in saved.pages if _is_plain_name(p.filename)), start=1
                )
            ]
            sessions.append(
                Session(
                    id=saved.id,
                    name=saved.name,
                    created=saved.created,
                    modified=saved.modified,
                    pages=pages,
                )
            )
        return sessions
