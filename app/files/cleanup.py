from pathlib import Path

from app.logging.logger import Log


def discard_file(path: Path, reason: str = "") -> bool:
    """Delete ``path`` if present. Never raises.

    Returns True when a file was actually removed.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        Log.warning(f"Could not remove {path.name}: {exc}")
        return False
    if reason:
        Log.info(f"Removed {reason}: {path.name}")
    return True
