import shutil
import sys
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from app.files.naming import utc_now
from app.files.state_file import read_state, write_state
from app.logging.logger import Log
from app.scanner.listing_parser import NO_SCANNERS_MESSAGE, parse_device_listing
from app.scanner.models import (
    DetectionResult,
    DeviceTestResult,
    Diagnostics,
    FixResult,
    ParsedDevice,
    ProbeResult,
    ScanOptions,
    ScannerDescriptor,
)
from app.scanner.options_parser import parse_scan_options
from app.scanner.state import CachedScannerState
from app.shell.exceptions import CommandError, CommandNotFoundError
from app.shell.runner import CommandRunner

CACHE_FRESHNESS = timedelta(hours=1)
DETECT_TIMEOUT_SECONDS = 5
PROBE_TIMEOUT_SECONDS = 10
FIX_TIMEOUT_SECONDS = 30
REENUMERATION_DELAY_SECONDS = 2.0

NO_DEVICE_SIGNATURE = "no SANE devices found"

NOT_INSTALLED_ERROR = (
    "SANE tools not installed. Install with: sudo apt-get install sane-utils (Linux) "
    "or brew install sane-backends (macOS)"
)
NO_SANE_DEVICES_ERROR = "No SANE devices found. Check scanner connection, power, and permissions."
NO_SCANNERS_ERROR = "No scanners detected. Make sure your scanner is connected and powered on."
NO_OUTPUT_ERROR = "No output from scanner detection. Check if SANE is properly configured."


class ScannerRegistry:
    """Discovers scanners and remembers the last one that produced a scan.

    The cached descriptor is only trusted for fallback while its last
    confirmed scan is younger than ``CACHE_FRESHNESS``. With a ``state_path``
    the cache and its timestamp are saved there and reloaded on construction.
    """

    def __init__(
        self,
        runner: CommandRunner,
        scanimage_binary: str = "scanimage",
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        platform: str = sys.platform,
        state_path: Path | None = None,
    ) -> None:
        self._runner = runner
        self._scanimage = scanimage_binary
        self._clock = clock
        self._sleep = sleep
        self._platform = platform
        self._cached: ScannerDescriptor | None = None
        self._last_success: datetime | None = None
        self._state_path = state_path
        self._load_state()

    def cached_scanner(self) -> ScannerDescriptor | None:
        """Return the cached descriptor if it scanned successfully within the hour."""
        if self._cached is None or self._last_success is None:
            return None
        if self._clock() - self._last_success < CACHE_FRESHNESS:
            return self._cached
        return None

    def mark_success(self, descriptor: ScannerDescriptor) -> None:
        self._cached = descriptor
        self._last_success = self._clock()
        self._save_state()
        Log.info(f"Cached scanner: {descriptor.label} ({descriptor.device})")

    def detect(self) -> DetectionResult:
        """List attached scanners, falling back to a fresh cache on failure."""
        Log.info("Detecting scanners...")
        try:
            result = self._runner.run([self._scanimage, "-L"], timeout=DETECT_TIMEOUT_SECONDS)
        except CommandNotFoundError as exc:
            return self._fallback(NOT_INSTALLED_ERROR, str(exc))
        except CommandError as exc:
            message = str(exc)
            if NO_DEVICE_SIGNATURE in message:
                return self._fallback(NO_SANE_DEVICES_ERROR, message)
            return self._fallback(f"Scanner detection failed: {message}", message)

        if NO_SCANNERS_MESSAGE in result.stdout or NO_SCANNERS_MESSAGE in result.stderr:
            return self._fallback(NO_SCANNERS_ERROR, "no scanners identified")
        if not result.stdout.strip():
            return self._fallback(NO_OUTPUT_ERROR, "empty output")

        lines = parse_device_listing(result.stdout)
        Log.info(f"Scanner detection output: {len(lines)} lines")
        devices: list[ScannerDescriptor] = []
        for line in lines:
            if isinstance(line, ParsedDevice):
                devices.append(line.descriptor)
                Log.info(f"Parsed scanner: {line.descriptor.label} ({line.descriptor.device})")
            else:
                Log.warning(f"Could not parse scanner line: {line.raw}")

        if not devices:
            raw = " | ".join(line.raw for line in lines)
            return self._fallback(
                f"Could not parse scanner information. Raw output: {raw}", "nothing parsed"
            )

        # Appearing in a listing does not refresh the freshness timer.
        self._cached = devices[0]
        self._save_state()
        Log.info(
            f"Found {len(devices)} scanner(s): {', '.join(d.label for d in devices)}"
        )
        return DetectionResult(devices=devices)

    def _fallback(self, error: str, reason: str) -> DetectionResult:
        cached = self.cached_scanner()
        if cached is not None:
            Log.info(f"Detection failed ({reason}), using cached scanner: {cached.label}")
            return DetectionResult(devices=[cached], from_cache=True)
        Log.warning(f"Scanner detection failed: {error}")
        return DetectionResult(devices=[], error=error)

    def _load_state(self) -> None:
        if self._state_path is None:
            return
        state = read_state(self._state_path, CachedScannerState)
        if state is None:
            return
        self._cached = state.descriptor()
        self._last_success = state.last_success
        Log.debug(f"Loaded cached scanner: {self._cached.label} ({self._cached.device})")

    def _save_state(self) -> None:
        if self._state_path is None or self._cached is None:
            return
        write_state(self._state_path, CachedScannerState.capture(self._cached, self._last_success))

    def test_device(self, device: str | None = None) -> DeviceTestResult:
        """Query a device's option list without scanning."""
        Log.info("Testing scanner connection...")
        if not device:
            detection = self.detect()
            if not detection.devices:
                return DeviceTestResult(
                    success=False,
                    error=detection.error or "No scanners available for testing",
                )
            device = detection.devices[0].device

        try:
            result = self._runner.run(
                [self._scanimage, f"--device-name={device}", "--help"],
                timeout=PROBE_TIMEOUT_SECONDS,
            )
        except CommandError as exc:
            Log.warning(f"Scanner test failed: {exc}")
            return DeviceTestResult(success=False, device=device, error=f"Scanner test failed: {exc}")

        if "invalid" in result.stderr:
            return DeviceTestResult(
                success=False,
                device=device,
                error=f"Scanner test failed: Invalid device {device}",
            )
        Log.info(f"Scanner test successful for device: {device}")
        return DeviceTestResult(success=True, device=device, help_output=result.stdout)

    def scan_options(self, device: str) -> ScanOptions:
        """Return the sources, modes and resolutions a device supports.

        Raises:
            CommandError: if the device cannot be queried.
        """
        result = self._runner.run(
            [self._scanimage, f"--device-name={device}", "--help"],
            timeout=PROBE_TIMEOUT_SECONDS,
        )
        return parse_scan_options(device, result.stdout)

    def diagnose(self) -> Diagnostics:
        """Collect toolchain facts. Each probe fails independently."""
        diagnostics = Diagnostics()
        suggestions = diagnostics.suggestions

        path_probe = self._probe_scanimage_path()
        diagnostics.probes.append(path_probe)
        if not path_probe.ok:
            suggestions.append(
                "Install SANE tools: sudo apt-get install sane-utils (Linux) "
                "or brew install sane-backends (macOS)"
            )

        diagnostics.probes.append(self._probe("sane_version", [self._scanimage, "--version"]))

        if self._platform.startswith("linux"):
            groups_probe = self._probe("user_groups", ["groups"])
            diagnostics.probes.append(groups_probe)
            groups = (groups_probe.value or "").split()
            if groups_probe.ok and "scanner" not in groups and "lp" not in groups:
                suggestions.append("Add user to scanner group: sudo usermod -a -G scanner $USER")
                suggestions.append("Then log out and log back in for changes to take effect")

        diagnostics.probes.append(self._probe_usb())

        suggestions.append("Ensure scanner is powered on and connected via USB")
        suggestions.append("Try unplugging and reconnecting the scanner")
        suggestions.append("Check if scanner works with other software")
        if self._platform == "darwin":
            suggestions.append(
                "On macOS, you might need to install additional drivers from the scanner manufacturer"
            )
        return diagnostics

    def _probe_scanimage_path(self) -> ProbeResult:
        path = shutil.which(self._scanimage)
        if path is None:
            return ProbeResult("scanimage_path", error=f"{self._scanimage} not found on PATH")
        return ProbeResult("scanimage_path", value=path)

    def _probe(self, name: str, args: list[str]) -> ProbeResult:
        try:
            result = self._runner.run(args, timeout=PROBE_TIMEOUT_SECONDS)
        except CommandError as exc:
            return ProbeResult(name, error=str(exc))
        return ProbeResult(name, value=result.stdout.strip())

    def _probe_usb(self) -> ProbeResult:
        errors: list[str] = []
        for args in (["lsusb"], ["system_profiler", "SPUSBDataType"]):
            probe = self._probe("usb_info", args)
            if probe.ok:
                return probe
            errors.append(probe.error or "")
        return ProbeResult("usb_info", error="; ".join(errors) or "USB info not available")

    def attempt_fix(self) -> FixResult:
        """Try to recover a scanner that stopped enumerating, then detect again."""
        Log.info("Attempting to fix scanner issues...")
        if self._platform.startswith("linux"):
            self._remediate("Restarted SANE daemon", [["sudo", "-n", "systemctl", "restart", "saned"]])
            self._remediate(
                "Reloaded USB printer modules",
                [["sudo", "-n", "modprobe", "-r", "usblp"], ["sudo", "-n", "modprobe", "usblp"]],
            )

        self._sleep(REENUMERATION_DELAY_SECONDS)

        detection = self.detect()
        if detection.devices:
            return FixResult(
                success=True,
                message=(
                    f"Successfully detected {len(detection.devices)} scanner(s) after fix attempt"
                ),
                devices=detection.devices,
            )
        return FixResult(
            success=False,
            message=(
                "Fix attempt completed, but no scanners detected. "
                "Manual intervention may be required."
            ),
        )

    def _remediate(self, description: str, commands: list[list[str]]) -> bool:
        for args in commands:
            try:
                self._runner.run(args, timeout=FIX_TIMEOUT_SECONDS)
            except CommandError as exc:
                Log.debug(f"Remediation step skipped ({' '.join(args)}): {exc}")
                return False
        Log.info(description)
        return True
