"""JSON state files kept next to the scans.

State survives between ``scan-bridge`` invocations in small pydantic-validated
documents. A missing or unreadable file means "no saved state"; it never
stops the command that wanted to read it.
"""

import os
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from app.files.cleanup import discard_file
from app.files.naming import TEMP_SUFFIX
from app.logging.logger import Log

StateT = TypeVar("StateT", bound=BaseModel)


def read_state(path: Path, model: type[StateT]) -> StateT | None:
    """Load ``path`` as ``model``; None when absent, unreadable or invalid."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        Log.warning(f"Could not read {path.name}: {exc}")
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        Log.warning(f"Ignoring invalid state file {path.name} ({exc.error_count()} error(s))")
        return None


def write_state(path: Path, state: BaseModel) -> bool:
    """Replace ``path`` with ``state`` atomically. Returns False if it could not be saved."""
    temp_path = path.with_name(path.name + TEMP_SUFFIX)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        os.replace(temp_path, path)
    except OSError as exc:
        Log.error(f"Could not save {path.name}: {exc}")
        discard_file(temp_path)
        return False
    return True
