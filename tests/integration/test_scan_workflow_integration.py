from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import httpx
import pymupdf
import pytest

from app.combine.factory import CombinerFactory
from app.config.settings import Settings
from app.files.naming import SESSION_INDEX_FILENAME
from app.scanner.executor import ScanExecutor
from app.scanner.registry import NO_SANE_DEVICES_ERROR, ScannerRegistry
from app.sessions.models import DEFAULT_SESSION_ID
from app.sessions.store import SessionStore
from app.shell.runner import CommandRunner
from app.upload.paperless_uploader import PaperlessUploader
from app.workflow.scan_workflow import ScanWorkflow


class _Paperless:
    """Records uploads posted through an httpx mock transport."""

    def __init__(self) -> None:
        self.bodies: list[bytes] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(request.read())
        return httpx.Response(200, text=f'"task-{len(self.bodies)}"')


def _build(
    scan_dir: Path,
    scanner_binary: Path,
    clock: Callable[[], datetime],
    paperless: _Paperless,
    **overrides: object,
) -> tuple[ScanWorkflow, SessionStore]:
    settings = Settings(  # type: ignore[call-arg]
        _env_file=None,
        scan_output_dir=scan_dir,
        scanimage_binary=str(scanner_binary),
        output_format="pdf",
        paperless_api_token="secret",
        **overrides,
    )
    runner = CommandRunner()
    registry = ScannerRegistry(
        runner,
        scanimage_binary=settings.scanimage_binary,
        clock=clock,
        sleep=lambda _seconds: None,
        platform="test",
    )
    store = SessionStore(scan_dir, clock=clock)
    uploader = PaperlessUploader(
        post_document_url=settings.paperless_post_document_url,
        api_token=settings.paperless_api_token,
        timeout_seconds=5,
        transport=httpx.MockTransport(paperless),
    )
    workflow = ScanWorkflow(
        settings=settings,
        registry=registry,
        executor=ScanExecutor(settings, registry, runner, clock=clock),
        store=store,
        uploader=uploader,
        make_combiner=lambda: CombinerFactory.create(settings, runner),
    )
    return workflow, store


@pytest.mark.integration
class TestScanToPaperless:
    def test_scan_combine_and_upload(  # type: ignore[no-untyped-def]
        self, scan_dir: Path, fake_scanner, ticking_clock
    ) -> None:
        paperless = _Paperless()
        workflow, store = _build(scan_dir, fake_scanner.binary, ticking_clock, paperless)

        first = workflow.scan_page()
        second = workflow.scan_page()

        assert first.success is True
        assert second.success is True
        assert store.get(DEFAULT_SESSION_ID).page_count == 2
        assert fake_scanner.calls()[0] == "-L"

        result = workflow.combine_and_upload()

        assert result.success is True
        assert result.message == "Combined 2 pages, uploaded, and cleaned up!"
        assert result.details["task_id"] == "task-1"
        assert result.details["deleted"] == 2
        assert len(paperless.bodies) == 1
        assert b"%PDF" in paperless.bodies[0]
        assert [p.name for p in scan_dir.iterdir()] == [SESSION_INDEX_FILENAME]
        workflow.close()

    def test_duplex_batch_pages_join_session_in_order(  # type: ignore[no-untyped-def]
        self, scan_dir: Path, fake_scanner, ticking_clock
    ) -> None:
        workflow, store = _build(
            scan_dir, fake_scanner.binary, ticking_clock, _Paperless(), duplex=True
        )

        result = workflow.scan_page("invoices")

        assert result.success is True
        session = store.get("invoices")
        assert [p.filename.rsplit("-p", 1)[1] for p in session.pages] == [
            "1.pdf",
            "2.pdf",
            "3.pdf",
        ]
        assert [p.page_number for p in session.pages] == [1, 2, 3]

    def test_recovers_when_scanner_drops_off(  # type: ignore[no-untyped-def]
        self, scan_dir: Path, fake_scanner, ticking_clock
    ) -> None:
        fake_scanner.set_mode("flaky")
        workflow, store = _build(scan_dir, fake_scanner.binary, ticking_clock, _Paperless())

        result = workflow.scan_page()

        assert result.success is True
        assert result.details["recovered"] is True
        assert store.get(DEFAULT_SESSION_ID).page_count == 1

    def test_missing_scanner_is_reported(  # type: ignore[no-untyped-def]
        self, scan_dir: Path, fake_scanner, ticking_clock
    ) -> None:
        fake_scanner.set_mode("nodevice")
        workflow, _store = _build(scan_dir, fake_scanner.binary, ticking_clock, _Paperless())

        detection = workflow.detect_scanners()
        result = workflow.scan_page()

        assert detection.error == NO_SANE_DEVICES_ERROR
        assert result.success is False
        assert result.message == f"Scanner not available: {NO_SANE_DEVICES_ERROR}"
        assert list(scan_dir.iterdir()) == []

    def test_empty_capture_leaves_no_files(  # type: ignore[no-untyped-def]
        self, scan_dir: Path, fake_scanner, ticking_clock
    ) -> None:
        fake_scanner.set_mode("empty")
        workflow, _store = _build(scan_dir, fake_scanner.binary, ticking_clock, _Paperless())

        result = workflow.scan_page()

        assert result.success is False
        assert result.message == "Scan failed - empty file created"
        assert list(scan_dir.iterdir()) == []

    def test_new_store_keeps_scanned_sessions(  # type: ignore[no-untyped-def]
        self, scan_dir: Path, fake_scanner, ticking_clock
    ) -> None:
        workflow, store = _build(scan_dir, fake_scanner.binary, ticking_clock, _Paperless())
        workflow.scan_page("invoices")
        workflow.scan_page("invoices")
        page_ids = [p.id for p in store.get("invoices").pages]

        reloaded = SessionStore(scan_dir)

        assert [p.id for p in reloaded.get("invoices").pages] == page_ids
        assert reloaded.get(DEFAULT_SESSION_ID).page_count == 0

    def test_new_store_without_index_adopts_existing_scans(  # type: ignore[no-untyped-def]
        self, scan_dir: Path, fake_scanner, ticking_clock
    ) -> None:
        workflow, _store = _build(scan_dir, fake_scanner.binary, ticking_clock, _Paperless())
        workflow.scan_page("invoices")
        workflow.scan_page("invoices")
        (scan_dir / SESSION_INDEX_FILENAME).unlink()

        reloaded = SessionStore(scan_dir).get(DEFAULT_SESSION_ID)

        assert reloaded.page_count == 2
        assert [p.page_number for p in reloaded.pages] == [1, 2]

    def test_scanner_options_from_help(  # type: ignore[no-untyped-def]
        self, scan_dir: Path, fake_scanner, ticking_clock
    ) -> None:
        workflow, _store = _build(scan_dir, fake_scanner.binary, ticking_clock, _Paperless())

        result = workflow.scanner_options("fake:usb:001:002")

        assert result.success is True
        options = result.details["options"]
        assert options.modes == ["Gray", "Color"]  # type: ignore[attr-defined]
        assert options.resolutions == [75, 150, 300]  # type: ignore[attr-defined]


@pytest.mark.integration
class TestCombinedPdf:
    def test_combined_pdf_has_one_page_per_scan(  # type: ignore[no-untyped-def]
        self, scan_dir: Path, fake_scanner, ticking_clock
    ) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, scan_output_dir=scan_dir, output_format="pdf"
        )
        workflow, store = _build(scan_dir, fake_scanner.binary, ticking_clock, _Paperless())
        for _ in range(3):
            workflow.scan_page()

        combiner = CombinerFactory.create(settings, CommandRunner())
        output = combiner.combine(store.get(DEFAULT_SESSION_ID))

        with pymupdf.open(str(output)) as doc:  # type: ignore[no-untyped-call]
            assert doc.page_count == 3
        assert output.name.startswith("combined-default-")
