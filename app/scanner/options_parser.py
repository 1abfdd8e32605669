import re

from app.scanner.models import ResolutionRange, ScanOptions

COMMON_RESOLUTIONS = (50, 75, 100, 150, 200, 300, 400, 600)

# --source ADF Front|ADF Back|ADF Duplex [ADF Front]
_SOURCE = re.compile(r"--source\s+([\w\s|]+?)\s*\[")
# --mode Lineart|Halftone|Gray|Color [Lineart]
_MODE = re.compile(r"--mode\s+([\w|]+)\s*\[")
# --resolution 50..600dpi (in steps of 1) [600]
_RESOLUTION_RANGE = re.compile(r"--resolution\s+(\d+)\.\.(\d+)dpi")
# --resolution 75|150|300|600dpi [300]
_RESOLUTION_LIST = re.compile(r"--resolution\s+(\d+(?:\|\d+)+)")


def _split_choices(raw: str) -> list[str]:
    return [choice.strip() for choice in raw.split("|") if choice.strip()]


def parse_scan_options(device: str, help_output: str) -> ScanOptions:
    """Extract sources, modes and resolutions from ``scanimage --help``."""
    options = ScanOptions(device=device)

    source = _SOURCE.search(help_output)
    if source:
        options.sources = _split_choices(source.group(1))

    mode = _MODE.search(help_output)
    if mode:
        options.modes = _split_choices(mode.group(1))

    resolution_range = _RESOLUTION_RANGE.search(help_output)
    resolution_list = _RESOLUTION_LIST.search(help_output)
    if resolution_range:
        low, high = int(resolution_range.group(1)), int(resolution_range.group(2))
        options.resolution_range = ResolutionRange(min=low, max=high)
        options.resolutions = [r for r in COMMON_RESOLUTIONS if low <= r <= high]
    elif resolution_list:
        options.resolutions = [int(value) for value in resolution_list.group(1).split("|")]

    return options
