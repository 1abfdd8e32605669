from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

from app.combine.exceptions import CombineError
from app.config.settings import Settings
from app.scanner.exceptions import DetectionError
from app.scanner.executor import ScanResult
from app.sessions.exceptions import EmptyPageError, InvalidPageOrderError, PageNotFoundError
from app.sessions.models import PageRecord, Session
from app.shell.exceptions import CommandFailedError
from app.upload.exceptions import UploadError
from app.workflow.scan_workflow import ScanWorkflow

NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def _page(number: int, path: Path) -> PageRecord:
    return PageRecord(
        id=f"p{number}",
        filename=path.name,
        filepath=path,
        captured_at=NOW,
        size_bytes=4,
        page_number=number,
    )


def _session(*paths: Path, session_id: str = "default") -> Session:
    pages = [_page(n, p) for n, p in enumerate(paths, start=1)]
    return Session(id=session_id, name="Current Document", created=NOW, modified=NOW, pages=pages)


def _make_workflow(
    token: str = "secret",
) -> tuple[ScanWorkflow, MagicMock, MagicMock, MagicMock, MagicMock, MagicMock]:
    settings = Settings(_env_file=None, paperless_api_token=token)  # type: ignore[call-arg]
    registry = MagicMock()
    executor = MagicMock()
    store = MagicMock()
    uploader = MagicMock()
    combiner = MagicMock()
    workflow = ScanWorkflow(
        settings=settings,
        registry=registry,
        executor=executor,
        store=store,
        uploader=uploader,
        make_combiner=lambda: combiner,
    )
    return workflow, registry, executor, store, uploader, combiner


class TestScanPage:
    def test_adds_scanned_file_to_session(self, tmp_path: Path) -> None:
        workflow, _registry, executor, store, _uploader, _combiner = _make_workflow()
        path = tmp_path / "scan-1.tiff"
        executor.scan.return_value = ScanResult(files=[path], device="epson2:1")
        store.add_page.return_value = _page(1, path)

        result = workflow.scan_page("invoices")

        assert result.success is True
        assert result.message == "Page scanned and added to document session."
        store.add_page.assert_called_once_with("invoices", path)
        assert result.details["page_ids"] == ["p1"]

    def test_duplex_adds_every_side_in_order(self, tmp_path: Path) -> None:
        workflow, _registry, executor, store, _uploader, _combiner = _make_workflow()
        files = [tmp_path / "scan-T-p1.tiff", tmp_path / "scan-T-p2.tiff"]
        executor.scan.return_value = ScanResult(files=files, device="fujitsu:1")
        store.add_page.side_effect = [_page(1, files[0]), _page(2, files[1])]

        result = workflow.scan_page()

        assert result.success is True
        assert result.message.startswith("2 pages scanned (duplex).")
        assert [c.args[1] for c in store.add_page.call_args_list] == files

    def test_scanner_failure_is_reported(self) -> None:
        workflow, _registry, executor, store, _uploader, _combiner = _make_workflow()
        executor.scan.side_effect = DetectionError("Scanner not available: No scanners detected.")

        result = workflow.scan_page()

        assert result.success is False
        assert result.message == "Scanner not available: No scanners detected."
        store.add_page.assert_not_called()

    def test_rejected_page_is_reported(self, tmp_path: Path) -> None:
        workflow, _registry, executor, store, _uploader, _combiner = _make_workflow()
        executor.scan.return_value = ScanResult(files=[tmp_path / "scan-1.tiff"], device="d")
        store.add_page.side_effect = EmptyPageError("Page file is empty: scan-1.tiff")

        result = workflow.scan_page()

        assert result.success is False
        assert result.message == "Page file is empty: scan-1.tiff"


class TestCombineAndUpload:
    def test_happy_path_uploads_then_clears(self, tmp_path: Path) -> None:
        workflow, _registry, _executor, store, uploader, combiner = _make_workflow()
        session = _session(tmp_path / "scan-1.tiff", tmp_path / "scan-2.tiff")
        store.get.return_value = session
        combined = tmp_path / "combined-default.pdf"
        combined.write_bytes(b"%PDF")
        combiner.combine.return_value = combined
        uploader.upload.return_value = "task-1"
        store.clear.return_value = 2

        result = workflow.combine_and_upload()

        assert result.success is True
        assert result.message == "Combined 2 pages, uploaded, and cleaned up!"
        assert result.details == {"task_id": "task-1", "deleted": 2}
        combiner.combine.assert_called_once_with(session)
        uploader.upload.assert_called_once_with(combined)
        store.clear.assert_called_once_with("default")
        assert not combined.exists()

    def test_empty_session(self) -> None:
        workflow, _registry, _executor, store, uploader, combiner = _make_workflow()
        store.get.return_value = _session()

        result = workflow.combine_and_upload()

        assert result.success is False
        assert result.message == "No pages to upload"
        combiner.combine.assert_not_called()
        uploader.upload.assert_not_called()

    def test_missing_token_blocks_upload(self, tmp_path: Path) -> None:
        workflow, _registry, _executor, store, _uploader, combiner = _make_workflow(token="")
        store.get.return_value = _session(tmp_path / "scan-1.tiff")

        result = workflow.combine_and_upload()

        assert result.success is False
        assert result.message == "Paperless API Token is required"
        combiner.combine.assert_not_called()

    def test_combine_failure_keeps_pages(self, tmp_path: Path) -> None:
        workflow, _registry, _executor, store, uploader, combiner = _make_workflow()
        store.get.return_value = _session(tmp_path / "scan-1.png")
        combiner.combine.side_effect = CombineError("No valid TIFF files to combine")

        result = workflow.combine_and_upload()

        assert result.success is False
        assert result.message == "No valid TIFF files to combine"
        uploader.upload.assert_not_called()
        store.clear.assert_not_called()

    def test_upload_failure_keeps_pages_and_discards_combined(self, tmp_path: Path) -> None:
        workflow, _registry, _executor, store, uploader, combiner = _make_workflow()
        store.get.return_value = _session(tmp_path / "scan-1.tiff")
        combined = tmp_path / "default.pdf"
        combined.write_bytes(b"%PDF")
        combiner.combine.return_value = combined
        uploader.upload.side_effect = UploadError("Paperless upload network error: refused")

        result = workflow.combine_and_upload()

        assert result.success is False
        assert "refused" in result.message
        store.clear.assert_not_called()
        assert not combined.exists()


class TestUploadSelected:
    def test_uploads_and_removes_each_page(self, tmp_path: Path) -> None:
        workflow, _registry, _executor, store, uploader, _combiner = _make_workflow()
        pages = {"p1": _page(1, tmp_path / "scan-1.tiff"), "p2": _page(2, tmp_path / "scan-2.tiff")}
        store.find_page.side_effect = lambda _sid, ref: pages.get(ref)

        result = workflow.upload_selected("default", ["p1", "p2"])

        assert result.success is True
        assert result.message == "Upload selected complete: 2/2 page(s) uploaded"
        assert uploader.upload.call_count == 2
        assert [c.args[1] for c in store.remove_page.call_args_list] == ["p1", "p2"]

    def test_partial_failure_continues(self, tmp_path: Path) -> None:
        workflow, _registry, _executor, store, uploader, _combiner = _make_workflow()
        pages = {"p1": _page(1, tmp_path / "scan-1.tiff"), "p2": _page(2, tmp_path / "scan-2.tiff")}
        store.find_page.side_effect = lambda _sid, ref: pages.get(ref)
        uploader.upload.side_effect = [UploadError("401 Invalid token."), "task-2"]

        result = workflow.upload_selected("default", ["p1", "p2", "ghost"])

        assert result.success is False
        assert result.message == "Upload selected complete: 1/3 page(s) uploaded"
        store.remove_page.assert_called_once_with("default", "p2")


class TestSessionOperations:
    def test_reorder_reports_store_error(self) -> None:
        workflow, _registry, _executor, store, _uploader, _combiner = _make_workflow()
        store.reorder.side_effect = InvalidPageOrderError("Reorder must list every page")

        result = workflow.reorder_pages("default", ["p1"])

        assert result.success is False
        assert result.message == "Reorder must list every page"

    def test_delete_pages_collects_errors(self) -> None:
        workflow, _registry, _executor, store, _uploader, _combiner = _make_workflow()
        store.remove_page.side_effect = [None, PageNotFoundError("Page ghost not found")]

        result = workflow.delete_pages("default", ["p1", "ghost"])

        assert result.success is False
        assert result.details == {"deleted": 1, "errors": ["Page ghost not found"]}

    def test_clear_session(self) -> None:
        workflow, _registry, _executor, store, _uploader, _combiner = _make_workflow()
        store.clear.return_value = 3

        result = workflow.clear_session("default")

        assert result.success is True
        assert result.message == "Cleared 3 page(s)"

    def test_scanner_options_failure(self) -> None:
        workflow, registry, _executor, _store, _uploader, _combiner = _make_workflow()
        registry.scan_options.side_effect = CommandFailedError(["scanimage"], 1, "", "invalid")

        result = workflow.scanner_options("bogus")

        assert result.success is False
        assert result.message.startswith("Failed to fetch scanner options:")

    def test_close_releases_uploader(self) -> None:
        workflow, _registry, _executor, _store, uploader, _combiner = _make_workflow()

        workflow.close()

        uploader.close.assert_called_once()
