from datetime import datetime, timezone
from pathlib import Path

SCAN_PREFIX = "scan-"
SCAN_EXTENSIONS = (".pdf", ".tiff", ".png", ".jpeg", ".jpg")
TEMP_SUFFIX = ".tmp"
SESSION_INDEX_FILENAME = ".scan-bridge-sessions.json"
SCANNER_STATE_FILENAME = ".scan-bridge-scanner.json"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def filename_timestamp(moment: datetime) -> str:
    """ISO 8601 UTC timestamp with ':' and '.' replaced by '-'.

    2026-10-18T05:20:00.123Z becomes 2026-10-18T05-20-00-123Z.
    """
    moment = moment.astimezone(timezone.utc)
    iso = moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def scan_filename(moment: datetime, extension: str) -> str:
    return f"{SCAN_PREFIX}{filename_timestamp(moment)}.{extension}"


def batch_prefix(moment: datetime) -> str:
    """Filename prefix shared by every side of one duplex batch."""
    return f"{SCAN_PREFIX}{filename_timestamp(moment)}-p"


def combined_filename(session_id: str, moment: datetime, input_count: int) -> str:
    prefix = f"combined-{session_id}" if input_count > 1 else session_id
    return f"{prefix}-{filename_timestamp(moment)}.pdf"


def is_scan_artifact(path: Path) -> bool:
    """True for files named like a finished scan page."""
    return path.name.startswith(SCAN_PREFIX) and path.suffix.lower() in SCAN_EXTENSIONS


def batch_page_index(filename: str, prefix: str, extension: str) -> int | None:
    """Return the page index embedded in a batch filename, if it has one."""
    suffix = f".{extension}"
    if not filename.startswith(prefix) or not filename.endswith(suffix):
        return None
    index = filename[len(prefix):-len(suffix)]
    return int(index) if index.isdigit() else None
