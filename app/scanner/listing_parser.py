"""Parser for ``scanimage -L`` output.

Known line shapes::

    device `epson2:libusb:001:004' is a Epson PerfectionV19 flatbed scanner
    device `pixma:04A91757' is a CANON Canon PIXMA MG5200 multi-function peripheral
    device `escl:https://192.168.1.20:443' is a HP ENVY 6000 series eSCL scanner

Anything else is returned as an ``UnrecognizedLine`` so callers can log it.
"""

import re

from app.scanner.models import (
    ListingLine,
    ParsedDevice,
    ScannerDescriptor,
    ScannerKind,
    UnrecognizedLine,
)

NO_SCANNERS_MESSAGE = "No scanners were identified"

_DEVICE_LINE = re.compile(
    r"^device\s+`(?P<device>[^'`]+)['`]?\s+is\s+(?:an?\s+)?(?P<description>.+)$",
    re.IGNORECASE,
)

_TRAILING_TYPE_WORDS = frozenset(
    {"scanner", "peripheral", "flatbed", "multi-function", "sheet-fed", "document", "feeder"}
)


def classify_kind(description: str) -> ScannerKind:
    lowered = description.lower()
    if "flatbed" in lowered:
        return ScannerKind.FLATBED
    if "sheet" in lowered or "feeder" in lowered:
        return ScannerKind.SHEET_FED
    if "multi-function" in lowered:
        return ScannerKind.MULTI_FUNCTION
    return ScannerKind.UNKNOWN


def split_vendor_model(description: str) -> tuple[str, str]:
    """Split a description into (vendor, model).

    A repeated vendor token ("CANON Canon ...") is dropped before the model is
    taken from the remaining tokens.
    """
    tokens = description.split()
    while len(tokens) > 1 and tokens[-1].lower() in _TRAILING_TYPE_WORDS:
        tokens.pop()
    if not tokens:
        return "Unknown", "Unknown"
    vendor = tokens[0]
    rest = tokens[1:]
    if rest and rest[0].lower() == vendor.lower():
        rest = rest[1:]
    return vendor, " ".join(rest) or vendor


def parse_device_line(line: str) -> ListingLine:
    stripped = line.strip()
    match = _DEVICE_LINE.match(stripped)
    if match is None:
        return UnrecognizedLine(raw=stripped)
    description = match.group("description").strip()
    vendor, model = split_vendor_model(description)
    descriptor = ScannerDescriptor(
        device=match.group("device").strip(),
        vendor=vendor,
        model=model,
        kind=classify_kind(description),
    )
    return ParsedDevice(descriptor=descriptor, raw=stripped)


def parse_device_listing(output: str) -> list[ListingLine]:
    """Parse every non-blank line of a device listing."""
    return [parse_device_line(line) for line in output.splitlines() if line.strip()]
