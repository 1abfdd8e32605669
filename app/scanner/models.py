from dataclasses import dataclass, field
from enum import StrEnum


class ScannerKind(StrEnum):
    FLATBED = "flatbed"
    SHEET_FED = "sheet-fed"
    MULTI_FUNCTION = "multi-function"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ScannerDescriptor:
    """A scanner as reported by the device listing. Identity is ``device``."""

    device: str
    vendor: str = field(default="Unknown", compare=False)
    model: str = field(default="Unknown", compare=False)
    kind: ScannerKind = field(default=ScannerKind.UNKNOWN, compare=False)
    available: bool = field(default=True, compare=False)

    @property
    def label(self) -> str:
        return f"{self.vendor} {self.model}"


@dataclass(frozen=True)
class ParsedDevice:
    descriptor: ScannerDescriptor
    raw: str


@dataclass(frozen=True)
class UnrecognizedLine:
    raw: str


ListingLine = ParsedDevice | UnrecognizedLine


@dataclass
class DetectionResult:
    devices: list[ScannerDescriptor] = field(default_factory=list)
    error: str | None = None
    from_cache: bool = False


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one diagnostic probe; ``value`` is None when it failed."""

    name: str
    value: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.value is not None


@dataclass
class Diagnostics:
    probes: list[ProbeResult] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def facts(self) -> dict[str, str | None]:
        return {probe.name: probe.value for probe in self.probes}


@dataclass
class FixResult:
    success: bool
    message: str
    devices: list[ScannerDescriptor] = field(default_factory=list)


@dataclass
class DeviceTestResult:
    success: bool
    device: str | None = None
    error: str | None = None
    help_output: str = ""


@dataclass
class ResolutionRange:
    min: int
    max: int


@dataclass
class ScanOptions:
    """Capabilities advertised by ``scanimage --help`` for one device."""

    device: str
    resolutions: list[int] = field(default_factory=list)
    resolution_range: ResolutionRange | None = None
    modes: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    formats: list[str] = field(
        default_factory=lambda: ["pdf", "pnm", "tiff", "png", "jpeg"]
    )
