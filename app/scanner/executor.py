import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from app.config.settings import Settings
from app.files.cleanup import discard_file
from app.files.naming import (
    TEMP_SUFFIX,
    batch_page_index,
    batch_prefix,
    scan_filename,
    utc_now,
)
from app.logging.logger import Log
from app.scanner.exceptions import (
    DetectionError,
    DeviceUnavailableError,
    EmptyCaptureError,
    ScanFailedError,
    ScannerError,
)
from app.scanner.models import ScannerDescriptor
from app.scanner.registry import NO_DEVICE_SIGNATURE, ScannerRegistry
from app.shell.exceptions import CommandError
from app.shell.runner import CommandRunner


class ScanState(StrEnum):
    IDLE = "idle"
    RESOLVING_DEVICE = "resolving_device"
    CAPTURING = "capturing"
    RECOVERING = "recovering"
    FINALIZING = "finalizing"
    FAILED = "failed"


@dataclass(frozen=True)
class ScanRequest:
    """Parameters for one scanimage invocation."""

    device: str
    output_format: str
    resolution: int
    source: str = ""
    page_width: float = 0
    page_height: float = 0
    swskip: int = 0
    duplex: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, device: str) -> "ScanRequest":
        return cls(
            device=device,
            output_format=settings.output_format,
            resolution=settings.scan_resolution,
            source=settings.scan_source.strip(),
            page_width=settings.page_width,
            page_height=settings.page_height,
            swskip=settings.swskip,
            duplex=settings.duplex,
        )

    def command(self, scanimage_binary: str) -> list[str]:
        args = [
            scanimage_binary,
            f"--device-name={self.device}",
            f"--format={self.output_format}",
            f"--resolution={self.resolution}",
        ]
        if self.source:
            args.append(f"--source={self.source}")
        if self.page_width > 0:
            args.append(f"--page-width={self.page_width:g}")
        if self.page_height > 0:
            args.append(f"--page-height={self.page_height:g}")
        if self.swskip > 0:
            args.append(f"--swskip={self.swskip}")
        return args


@dataclass
class ScanResult:
    files: list[Path]
    device: str
    descriptor: ScannerDescriptor | None = None
    recovered: bool = False
    states: list[ScanState] = field(default_factory=list)


class ScanExecutor:
    """Runs one scan request from device resolution to final files on disk.

    Single-sided captures are written to a temp file and renamed into place,
    so a finished ``scan-*`` file is never partial. Duplex captures run as one
    scanimage batch producing one file per side.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ScannerRegistry,
        runner: CommandRunner,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._runner = runner
        self._clock = clock
        self.state = ScanState.IDLE
        self._history: list[ScanState] = []

    @property
    def output_dir(self) -> Path:
        return self._settings.scan_output_dir

    def scan(self) -> ScanResult:
        """Capture page(s) and return the final file paths in page order.

        Raises:
            DetectionError: if no device could be resolved.
            ScanFailedError: if the capture failed, including after recovery.
        """
        self._history = []
        try:
            self._transition(ScanState.RESOLVING_DEVICE)
            device, descriptor = self._resolve_device()
            request = ScanRequest.from_settings(self._settings, device)
            self._ensure_output_dir()
            files, recovered = self._capture_with_recovery(request)
        except ScannerError:
            self._transition(ScanState.FAILED)
            raise

        self._transition(ScanState.FINALIZING)
        if descriptor is not None:
            self._registry.mark_success(descriptor)
        result = ScanResult(
            files=files,
            device=device,
            descriptor=descriptor,
            recovered=recovered,
            states=list(self._history),
        )
        self._transition(ScanState.IDLE)
        return result

    def _transition(self, state: ScanState) -> None:
        self.state = state
        self._history.append(state)
        Log.debug(f"Scan state: {state}")

    def _ensure_output_dir(self) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ScanFailedError(f"Scan output directory unavailable: {exc}") from exc

    def _resolve_device(self) -> tuple[str, ScannerDescriptor | None]:
        configured = self._settings.scanner_device.strip()
        if configured:
            Log.info(f"Using configured scanner device: {configured}")
            return configured, None

        detection = self._registry.detect()
        if not detection.devices:
            error = detection.error or "No scanners found"
            Log.error(f"Scanner detection failed: {error}")
            raise DetectionError(f"Scanner not available: {error}")
        descriptor = detection.devices[0]
        return descriptor.device, descriptor

    def _capture_with_recovery(self, request: ScanRequest) -> tuple[list[Path], bool]:
        self._transition(ScanState.CAPTURING)
        try:
            return self._capture(request), False
        except DeviceUnavailableError as exc:
            Log.warning(f"{exc}. Attempting to fix scanner issues...")
            self._transition(ScanState.RECOVERING)
            fix = self._registry.attempt_fix()
            if not fix.success:
                Log.error(f"Scanner fix failed: {fix.message}")
                raise ScanFailedError(f"Scanner not available: {fix.message}") from exc

        Log.info("Scanner fix successful, retrying scan...")
        self._transition(ScanState.CAPTURING)
        try:
            return self._capture(request), True
        except ScanFailedError as exc:
            Log.error(f"Page scan failed even after fix attempt: {exc}")
            raise ScanFailedError(f"Scan failed after fix attempt: {exc}") from exc

    def _capture(self, request: ScanRequest) -> list[Path]:
        if request.duplex:
            return self._capture_duplex(request)
        return [self._capture_single(request)]

    def _capture_single(self, request: ScanRequest) -> Path:
        final_path = self.output_dir / scan_filename(self._clock(), request.output_format)
        temp_path = final_path.with_name(final_path.name + TEMP_SUFFIX)
        Log.info(f"Starting page scan with device: {request.device}...")
        completed = False
        try:
            self._runner.run(
                request.command(self._settings.scanimage_binary),
                timeout=self._settings.single_scan_timeout_seconds,
                stdout_path=temp_path,
            )
            if not temp_path.exists():
                raise EmptyCaptureError("Scan failed - no file was created")
            if temp_path.stat().st_size == 0:
                raise EmptyCaptureError("Scan failed - empty file created")
            os.replace(temp_path, final_path)
            completed = True
        except CommandError as exc:
            raise self._classify(exc) from exc
        except OSError as exc:
            raise ScanFailedError(f"Scan failed: {exc}") from exc
        finally:
            if not completed:
                discard_file(temp_path, "temp file left by failed scan")

        Log.info(f"Page scan complete: {final_path.name}")
        return final_path

    def _capture_duplex(self, request: ScanRequest) -> list[Path]:
        prefix = batch_prefix(self._clock())
        extension = request.output_format
        pattern = self.output_dir / f"{prefix}%d.{extension}"
        args = request.command(self._settings.scanimage_binary) + [f"--batch={pattern}"]
        Log.info(f"Starting duplex batch scan with device: {request.device}...")
        completed = False
        try:
            self._runner.run(args, timeout=self._settings.duplex_scan_timeout_seconds)
            files = self._collect_batch(prefix, extension)
            if not files:
                raise EmptyCaptureError("Duplex scan failed - no files were created")
            completed = True
        except CommandError as exc:
            raise self._classify(exc, "Duplex scan failed") from exc
        except OSError as exc:
            raise ScanFailedError(f"Duplex scan failed: {exc}") from exc
        finally:
            if not completed:
                self._discard_batch(prefix, extension)

        Log.info(f"Duplex batch scan complete: {len(files)} page(s) captured")
        return files

    def _batch_files(self, prefix: str, extension: str) -> list[tuple[int, Path]]:
        """Batch outputs as (page index, path), sorted by numeric index."""
        found: list[tuple[int, Path]] = []
        for entry in self.output_dir.iterdir():
            index = batch_page_index(entry.name, prefix, extension)
            if index is not None:
                found.append((index, entry))
        found.sort(key=lambda item: item[0])
        return found

    def _collect_batch(self, prefix: str, extension: str) -> list[Path]:
        files: list[Path] = []
        for _, path in self._batch_files(prefix, extension):
            if path.stat().st_size > 0:
                files.append(path)
                Log.info(f"Batch page: {path.name}")
            else:
                discard_file(path, "empty batch page")
        return files

    def _discard_batch(self, prefix: str, extension: str) -> None:
        try:
            leftovers = self._batch_files(prefix, extension)
        except OSError as exc:
            Log.warning(f"Could not list batch files for cleanup: {exc}")
            return
        for _, path in leftovers:
            discard_file(path, "partial batch file")

    def _classify(self, exc: CommandError, context: str = "Scan failed") -> ScanFailedError:
        message = f"{context}: {exc}"
        if NO_DEVICE_SIGNATURE in str(exc):
            return DeviceUnavailableError(message)
        Log.error(message)
        return ScanFailedError(message)
