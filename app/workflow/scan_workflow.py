import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from app.combine.base import BaseCombiner
from app.combine.exceptions import CombineError
from app.combine.factory import CombinerFactory
from app.config.settings import Settings
from app.files.cleanup import discard_file
from app.files.naming import SCANNER_STATE_FILENAME
from app.logging.logger import Log
from app.scanner.exceptions import ScannerError
from app.scanner.executor import ScanExecutor
from app.scanner.models import DetectionResult, DeviceTestResult, Diagnostics, FixResult
from app.scanner.registry import ScannerRegistry
from app.sessions.exceptions import SessionError
from app.sessions.models import DEFAULT_SESSION_ID, Session
from app.sessions.store import SessionStore
from app.shell.exceptions import CommandError
from app.shell.runner import CommandRunner
from app.upload.base import BaseUploader
from app.upload.exceptions import UploadError
from app.upload.paperless_uploader import PaperlessUploader


@dataclass
class OperationResult:
    """Outcome of a user-facing operation with a human-readable message."""

    success: bool
    message: str
    details: dict[str, object] = field(default_factory=dict)


class ScanWorkflow:
    """Orchestrates scanning, session editing, combining and uploading.

    Scan and combine/upload operations write to the shared output directory
    and are serialised by one lock.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ScannerRegistry,
        executor: ScanExecutor,
        store: SessionStore,
        uploader: BaseUploader,
        make_combiner: Callable[[], BaseCombiner],
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._executor = executor
        self._store = store
        self._uploader = uploader
        self._make_combiner = make_combiner
        self._operation_lock = threading.Lock()

    def scan_page(self, session_id: str = DEFAULT_SESSION_ID) -> OperationResult:
        """Scan page(s) and add them to the session."""
        with self._operation_lock:
            try:
                scan = self._executor.scan()
            except ScannerError as exc:
                Log.error(f"Page scan error: {exc}")
                return OperationResult(False, str(exc))

            added: list[str] = []
            errors: list[str] = []
            for path in scan.files:
                try:
                    record = self._store.add_page(session_id, path)
                except SessionError as exc:
                    Log.warning(f"Page scanned but failed to add to session: {exc}")
                    errors.append(str(exc))
                    continue
                added.append(record.id)

        if len(scan.files) > 1:
            message = (
                f"{len(added)} pages scanned (duplex). "
                "Use 'combine-upload' to merge and upload."
            )
        else:
            message = "Page scanned and added to document session."
        Log.info(message)
        return OperationResult(
            success=bool(added),
            message=message if added else "; ".join(errors),
            details={
                "device": scan.device,
                "files": [str(path) for path in scan.files],
                "page_ids": added,
                "errors": errors,
                "recovered": scan.recovered,
            },
        )

    def combine_and_upload(self, session_id: str = DEFAULT_SESSION_ID) -> OperationResult:
        """Combine the session into one document, upload it and clear the session."""
        with self._operation_lock:
            try:
                session = self._store.get(session_id)
            except SessionError as exc:
                return OperationResult(False, str(exc))
            if not session.pages:
                return OperationResult(False, "No pages to upload")
            upload_errors = self._settings.upload_errors()
            if upload_errors:
                return OperationResult(False, "; ".join(upload_errors))

            try:
                combined = self._make_combiner().combine(session)
            except CombineError as exc:
                Log.error(f"Combine and upload error: {exc}")
                return OperationResult(False, str(exc))

            try:
                task_id = self._uploader.upload(combined)
            except UploadError as exc:
                Log.error(f"Combine and upload error: {exc}")
                return OperationResult(False, str(exc))
            finally:
                discard_file(combined)

            deleted = self._store.clear(session_id)

        message = f"Combined {session.page_count} pages, uploaded, and cleaned up!"
        Log.info(message)
        return OperationResult(True, message, {"task_id": task_id, "deleted": deleted})

    def upload_selected(self, session_id: str, page_refs: Sequence[str]) -> OperationResult:
        """Upload individual pages and drop each uploaded page from the session."""
        uploaded = 0
        with self._operation_lock:
            for ref in page_refs:
                try:
                    page = self._store.find_page(session_id, ref)
                except SessionError as exc:
                    return OperationResult(False, str(exc))
                if page is None:
                    Log.warning(f"Failed to upload {Path(ref).name}: page not found")
                    continue
                try:
                    self._uploader.upload(page.filepath)
                    self._store.remove_page(session_id, page.id)
                except (UploadError, SessionError) as exc:
                    Log.warning(f"Failed to upload {page.filename}: {exc}")
                    continue
                uploaded += 1

        message = f"Upload selected complete: {uploaded}/{len(page_refs)} page(s) uploaded"
        Log.info(message)
        return OperationResult(
            success=uploaded == len(page_refs) and uploaded > 0,
            message=message,
            details={"uploaded": uploaded, "requested": len(page_refs)},
        )

    def detect_scanners(self) -> DetectionResult:
        return self._registry.detect()

    def diagnose(self) -> Diagnostics:
        return self._registry.diagnose()

    def fix_scanner(self) -> FixResult:
        return self._registry.attempt_fix()

    def test_scanner(self, device: str | None = None) -> DeviceTestResult:
        return self._registry.test_device(device)

    def scanner_options(self, device: str) -> OperationResult:
        try:
            options = self._registry.scan_options(device)
        except CommandError as exc:
            return OperationResult(False, f"Failed to fetch scanner options: {exc}")
        return OperationResult(True, f"Options for {device}", {"options": options})

    def list_sessions(self) -> list[Session]:
        return self._store.list_sessions()

    def get_session(self, session_id: str = DEFAULT_SESSION_ID) -> Session:
        return self._store.get(session_id)

    def create_session(self, name: str | None = None) -> Session:
        return self._store.create(name)

    def add_page(self, session_id: str, filepath: str) -> OperationResult:
        try:
            record = self._store.add_page(session_id, filepath)
        except SessionError as exc:
            return OperationResult(False, str(exc))
        return OperationResult(True, f"Added page {record.page_number}", {"page_id": record.id})

    def delete_pages(self, session_id: str, page_refs: Sequence[str]) -> OperationResult:
        deleted = 0
        errors: list[str] = []
        for ref in page_refs:
            try:
                self._store.remove_page(session_id, ref)
            except SessionError as exc:
                errors.append(str(exc))
                continue
            deleted += 1
        return OperationResult(
            success=not errors,
            message=f"Deleted {deleted} page(s)",
            details={"deleted": deleted, "errors": errors},
        )

    def reorder_pages(self, session_id: str, page_ids: Sequence[str]) -> OperationResult:
        try:
            session = self._store.reorder(session_id, page_ids)
        except SessionError as exc:
            return OperationResult(False, str(exc))
        return OperationResult(True, f"Reordered {session.page_count} page(s)")

    def clear_session(self, session_id: str = DEFAULT_SESSION_ID) -> OperationResult:
        try:
            deleted = self._store.clear(session_id)
        except SessionError as exc:
            return OperationResult(False, str(exc))
        return OperationResult(True, f"Cleared {deleted} page(s)", {"deleted": deleted})

    def clear_all_sessions(self) -> OperationResult:
        deleted = self._store.clear_all()
        return OperationResult(True, f"Cleared {deleted} page(s)", {"deleted": deleted})

    def close(self) -> None:
        self._uploader.close()


def build_workflow(settings: Settings) -> ScanWorkflow:
    """Build a ScanWorkflow with all required adapters."""
    runner = CommandRunner()
    registry = ScannerRegistry(
        runner,
        scanimage_binary=settings.scanimage_binary,
        state_path=settings.scan_output_dir / SCANNER_STATE_FILENAME,
    )
    executor = ScanExecutor(settings, registry, runner)
    store = SessionStore(settings.scan_output_dir)
    uploader = PaperlessUploader.from_settings(settings)
    return ScanWorkflow(
        settings=settings,
        registry=registry,
        executor=executor,
        store=store,
        uploader=uploader,
        make_combiner=lambda: CombinerFactory.create(settings, runner),
    )
