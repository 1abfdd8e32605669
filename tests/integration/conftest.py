import itertools
import stat
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

_FAKE_SCANIMAGE = r"""#!/bin/sh
here=$(dirname "$0")
mode=$(cat "$here/mode")
echo "$*" >> "$here/calls.log"

if [ "$mode" = "nodevice" ]; then
    echo "scanimage: no SANE devices found" >&2
    exit 1
fi

pattern=""
for arg in "$@"; do
    case "$arg" in
        -L)
            echo "device \`fake:usb:001:002' is a Acme Model7 flatbed scanner"
            exit 0
            ;;
        --help)
            echo "    --mode Gray|Color [Color]"
            echo "    --resolution 75|150|300dpi [300]"
            exit 0
            ;;
        --batch=*)
            pattern=${arg#--batch=}
            ;;
    esac
done

if [ "$mode" = "flaky" ]; then
    echo "ok" > "$here/mode"
    echo "scanimage: no SANE devices found" >&2
    exit 1
fi

if [ -n "$pattern" ]; then
    i=1
    while [ "$i" -le 3 ]; do
        cp "$here/page.pdf" "$(printf "$pattern" "$i")"
        i=$((i + 1))
    done
    exit 0
fi

if [ "$mode" = "empty" ]; then
    exit 0
fi
cat "$here/page.pdf"
"""


@dataclass
class FakeScanner:
    """A shell-script stand-in for scanimage that replays a fixed PDF page."""

    binary: Path

    def set_mode(self, mode: str) -> None:
        (self.binary.parent / "mode").write_text(f"{mode}\n")

    def calls(self) -> list[str]:
        log = self.binary.parent / "calls.log"
        return log.read_text().splitlines() if log.exists() else []


@pytest.fixture()
def fake_scanner(tmp_path: Path, sample_pdf_bytes: bytes) -> FakeScanner:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    binary = bin_dir / "scanimage"
    binary.write_text(_FAKE_SCANIMAGE)
    binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    (bin_dir / "page.pdf").write_bytes(sample_pdf_bytes)
    scanner = FakeScanner(binary=binary)
    scanner.set_mode("ok")
    return scanner


@pytest.fixture()
def ticking_clock() -> Callable[[], datetime]:
    """A clock that advances one second per call so filenames never collide."""
    start = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
    ticks = itertools.count()
    return lambda: start + timedelta(seconds=next(ticks))
