class ScannerError(Exception):
    """Base exception for all scanner-related errors."""


class DetectionError(ScannerError):
    """Raised when no scanner device can be resolved for a scan."""


class ScanFailedError(ScannerError):
    """Raised when a capture attempt fails."""


class DeviceUnavailableError(ScanFailedError):
    """Raised when the capture reports that no SANE device was found."""


class EmptyCaptureError(ScanFailedError):
    """Raised when a capture produced a missing or zero-byte file."""
