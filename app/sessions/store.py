import re
import threading
import uuid
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from os import stat_result
from pathlib import Path

from app.files.cleanup import discard_file
from app.files.naming import SESSION_INDEX_FILENAME, is_scan_artifact, utc_now
from app.files.state_file import read_state, write_state
from app.logging.logger import Log
from app.sessions.exceptions import (
    EmptyPageError,
    InvalidPageOrderError,
    PageFileNotFoundError,
    PageNotFoundError,
    PageOutsideOutputDirError,
    SessionError,
)
from app.sessions.index import SessionIndex
from app.sessions.models import DEFAULT_SESSION_ID, DEFAULT_SESSION_NAME, PageRecord, Session


def _new_page_id() -> str:
    return uuid.uuid4().hex


def _mtime(stats: stat_result) -> datetime:
    return datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc)


def _natural_key(name: str) -> tuple[str | int, ...]:
    # "p2" sorts before "p10"
    return tuple(int(part) if part.isdigit() else part for part in re.split(r"(\d+)", name))


class SessionStore:
    """Document sessions backed by the scan output directory.

    The directory is the source of truth for which pages exist. What the
    filesystem cannot carry (page ids, session membership and page order) is
    kept in an index file in the same directory, loaded on construction and
    saved whenever ``version`` moves, so it survives between processes.

    Every operation first synchronises the index with the directory:

    - pages whose file disappeared are dropped,
    - zero-byte page files are deleted and dropped,
    - a file claimed by more than one session stays with the first,
    - recognised scan artifacts not claimed by any session are adopted into
      the default session in modification-time order,
    - page numbers are rewritten to ``1..N``.

    All access is serialised by one lock per store, i.e. per output directory.
    """

    def __init__(
        self,
        output_dir: Path,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_page_id,
    ) -> None:
        self._root = output_dir.resolve()
        self._index_path = self._root / SESSION_INDEX_FILENAME
        self._clock = clock
        self._new_id = id_factory
        self._sessions: dict[str, Session] = {}
        self._lock = threading.RLock()
        self._version = 0
        self._load()
        self._saved_version = self._version

    @property
    def output_dir(self) -> Path:
        return self._root

    @property
    def index_path(self) -> Path:
        return self._index_path

    @property
    def version(self) -> int:
        """Increases every time the index changes. Saved with the index."""
        with self._lock:
            return self._version

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold the lock over sync, the operation and saving any change."""
        with self._lock:
            self._sync()
            try:
                yield
            finally:
                self._persist()

    def list_sessions(self) -> list[Session]:
        with self._locked():
            return [session.snapshot() for session in self._sessions.values()]

    def get(self, session_id: str) -> Session:
        """Return the session, materialising it if it was never seen."""
        with self._locked():
            return self._session(session_id).snapshot()

    def find_page(self, session_id: str, page_ref: str | Path) -> PageRecord | None:
        with self._locked():
            return self._find_page(self._session(session_id), page_ref)

    def create(self, name: str | None = None) -> Session:
        """Start an ad hoc named session."""
        with self._locked():
            now = self._clock()
            session = self._session(
                self._new_id(), name or f"Document {now:%Y-%m-%d %H:%M:%S}"
            )
            self._touch(session)
            return session.snapshot()

    def add_page(self, session_id: str, filepath: Path | str) -> PageRecord:
        """Append a page file to the session.

        A file already owned by another session moves to this one.

        Raises:
            PageOutsideOutputDirError: if the file is not under the output directory.
            PageFileNotFoundError: if the file does not exist.
            EmptyPageError: if the file is zero bytes (it is deleted).
        """
        with self._locked():
            session = self._session(session_id)
            path = self._resolve_page_path(filepath)
            try:
                stats = path.stat()
            except FileNotFoundError as exc:
                raise PageFileNotFoundError(f"Page file not found: {path}") from exc
            if stats.st_size == 0:
                discard_file(path, "zero-byte scan file when adding to session")
                raise EmptyPageError(f"Page file is empty: {path.name}")

            owner, existing = self._find_owner(path)
            if owner is session and existing is not None:
                return existing
            if owner is not None and existing is not None:
                owner.pages.remove(existing)
                self._renumber(owner)
                self._touch(owner)
                record = existing.renumbered(len(session.pages) + 1)
            else:
                record = PageRecord(
                    id=self._new_id(),
                    filename=path.name,
                    filepath=path,
                    captured_at=_mtime(stats),
                    size_bytes=stats.st_size,
                    page_number=len(session.pages) + 1,
                )
            session.pages.append(record)
            self._touch(session)
            Log.info(f"Page added to session {session.id}: {record.filename}")
            return record

    def remove_page(self, session_id: str, page_ref: str | Path) -> PageRecord:
        """Delete a page (by id, falling back to file path) and its file.

        Raises:
            PageNotFoundError: if neither an id nor a path matches.
        """
        with self._locked():
            session = self._session(session_id)
            page = self._find_page(session, page_ref)
            if page is None:
                raise PageNotFoundError(f"Page {page_ref} not found")
            try:
                page.filepath.unlink(missing_ok=True)
            except OSError as exc:
                raise SessionError(f"Could not delete {page.filename}: {exc}") from exc
            session.pages.remove(page)
            self._renumber(session)
            self._touch(session)
            Log.info(f"Removed page {page.filename} from session {session.id}")
            return page

    def clear(self, session_id: str) -> int:
        """Delete every page file of the session; return how many were deleted."""
        with self._locked():
            session = self._session(session_id)
            deleted = 0
            for page in session.pages:
                try:
                    page.filepath.unlink()
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    Log.warning(f"Could not delete {page.filename}: {exc}")
                    continue
                deleted += 1
            session.pages = []
            self._touch(session)
            Log.info(f"Cleared {deleted} pages from session \"{session.name}\"")
            return deleted

    def clear_all(self) -> int:
        with self._locked():
            total = sum(self.clear(session_id) for session_id in list(self._sessions))
            self._sessions.clear()
            self._session(DEFAULT_SESSION_ID)
            self._version += 1
            return total

    def reorder(self, session_id: str, ordered_ids: Sequence[str]) -> Session:
        """Put the session's pages in the given order.

        Nothing changes unless ``ordered_ids`` lists every page exactly once.

        Raises:
            PageNotFoundError: if any id is not in the session.
            InvalidPageOrderError: if ids are missing or repeated.
        """
        with self._locked():
            session = self._session(session_id)
            by_id = {page.id: page for page in session.pages}
            for page_id in ordered_ids:
                if page_id not in by_id:
                    raise PageNotFoundError(f"Page {page_id} not found")
            if len(ordered_ids) != len(by_id) or len(set(ordered_ids)) != len(ordered_ids):
                raise InvalidPageOrderError(
                    "Reorder must list every page of the session exactly once"
                )
            session.pages = [by_id[page_id] for page_id in ordered_ids]
            self._renumber(session)
            self._touch(session)
            return session.snapshot()

    def _session(self, session_id: str, name: str | None = None) -> Session:
        if not session_id:
            raise SessionError("Session id is required")
        session = self._sessions.get(session_id)
        if session is None:
            now = self._clock()
            if name is None:
                name = (
                    DEFAULT_SESSION_NAME
                    if session_id == DEFAULT_SESSION_ID
                    else f"Document {session_id}"
                )
            session = Session(id=session_id, name=name, created=now, modified=now)
            self._sessions[session_id] = session
        return session

    def _touch(self, session: Session) -> None:
        session.modified = self._clock()
        self._version += 1

    def _load(self) -> None:
        index = read_state(self._index_path, SessionIndex)
        if index is None:
            return
        for session in index.to_sessions(self._root):
            self._sessions[session.id] = session
        self._version = index.version
        Log.debug(f"Loaded {len(self._sessions)} session(s) from {self._index_path.name}")

    def _persist(self) -> None:
        if self._version == self._saved_version:
            return
        index = SessionIndex.from_sessions(list(self._sessions.values()), self._version)
        if write_state(self._index_path, index):
            self._saved_version = self._version

    def _resolve_page_path(self, filepath: Path | str) -> Path:
        path = Path(filepath).resolve()
        if not path.is_relative_to(self._root):
            raise PageOutsideOutputDirError(
                f"Page file {path} is not inside the scan output directory {self._root}"
            )
        return path

    def _find_owner(self, path: Path) -> tuple[Session | None, PageRecord | None]:
        for session in self._sessions.values():
            for page in session.pages:
                if page.filepath == path:
                    return session, page
        return None, None

    def _find_page(self, session: Session, page_ref: str | Path) -> PageRecord | None:
        ref = str(page_ref)
        for page in session.pages:
            if page.id == ref:
                return page
        path = Path(ref).resolve()
        for page in session.pages:
            if page.filepath == path:
                return page
        return None

    def _renumber(self, session: Session) -> bool:
        renumbered = [page.renumbered(i) for i, page in enumerate(session.pages, start=1)]
        changed = any(new is not old for new, old in zip(renumbered, session.pages))
        session.pages = renumbered
        return changed

    def _sync(self) -> None:
        default = self._session(DEFAULT_SESSION_ID)
        claimed: set[Path] = set()
        changed: set[str] = set()

        for session in self._sessions.values():
            kept: list[PageRecord] = []
            for page in session.pages:
                if page.filepath in claimed:
                    Log.warning(f"Page {page.filename} already belongs to another session")
                    continue
                if self._page_is_valid(page):
                    kept.append(page)
                    claimed.add(page.filepath)
            if len(kept) != len(session.pages):
                session.pages = kept
                changed.add(session.id)

        adopted = self._discover(claimed)
        if adopted:
            start = len(default.pages)
            default.pages.extend(
                PageRecord(
                    id=self._new_id(),
                    filename=path.name,
                    filepath=path,
                    captured_at=_mtime(stats),
                    size_bytes=stats.st_size,
                    page_number=start + offset,
                )
                for offset, (path, stats) in enumerate(adopted, start=1)
            )
            changed.add(default.id)

        for session in self._sessions.values():
            if self._renumber(session):
                changed.add(session.id)
        for session_id in changed:
            self._touch(self._sessions[session_id])

    def _page_is_valid(self, page: PageRecord) -> bool:
        try:
            size = page.filepath.stat().st_size
        except OSError:
            Log.warning(f"Page file missing, dropping from session: {page.filename}")
            return False
        if size == 0:
            discard_file(page.filepath, "zero-byte scan file during session load")
            return False
        return True

    def _discover(self, claimed: set[Path]) -> list[tuple[Path, stat_result]]:
        """Unclaimed, non-empty scan artifacts sorted by modification time."""
        if not self._root.is_dir():
            return []
        found: list[tuple[Path, stat_result]] = []
        try:
            entries = list(self._root.iterdir())
        except OSError as exc:
            Log.error(f"Error loading sessions: {exc}")
            return []
        for entry in entries:
            if entry in claimed or not is_scan_artifact(entry):
                continue
            try:
                stats = entry.stat()
            except OSError:
                continue
            if not entry.is_file():
                continue
            if stats.st_size == 0:
                discard_file(entry, "zero-byte scan file during session load")
                continue
            found.append((entry, stats))
        found.sort(key=lambda item: (item[1].st_mtime, _natural_key(item[0].name)))
        return found
