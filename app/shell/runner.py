import subprocess
from dataclasses import dataclass
from pathlib import Path

from app.logging.logger import Log
from app.shell.exceptions import CommandFailedError, CommandNotFoundError, CommandTimeoutError


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a successfully completed command."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str


def _decode(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class CommandRunner:
    """Runs external commands with a bounded timeout.

    Every scanner, merge and remediation command goes through here so that
    tests can substitute a single collaborator.
    """

    def run(
        self,
        args: list[str],
        *,
        timeout: float | None = None,
        stdout_path: Path | None = None,
    ) -> CommandResult:
        """Run ``args`` and return its captured output.

        Args:
            args: Executable followed by its arguments.
            timeout: Seconds before the process is killed.
            stdout_path: When set, stdout is written to this file instead of
                being captured.

        Raises:
            CommandNotFoundError: if the executable does not exist.
            CommandTimeoutError: if the timeout expires.
            CommandFailedError: if the command exits non-zero.
        """
        Log.debug(f"Executing: {' '.join(args)}")
        if stdout_path is not None:
            with open(stdout_path, "wb") as sink:
                return self._execute(args, timeout, stdout=sink)
        return self._execute(args, timeout, stdout=subprocess.PIPE)

    def _execute(self, args: list[str], timeout: float | None, stdout: object) -> CommandResult:
        try:
            completed = subprocess.run(
                args,
                stdout=stdout,  # type: ignore[arg-type]
                stderr=subprocess.PIPE,
                timeout=timeout,
                check=True,
            )
        except FileNotFoundError as exc:
            raise CommandNotFoundError(f"{args[0]}: command not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeoutError(
                f"Command timed out after {timeout}s: {' '.join(args)}"
            ) from exc
        except subprocess.CalledProcessError as exc:
            raise CommandFailedError(
                args, exc.returncode, _decode(exc.stdout), _decode(exc.stderr)
            ) from exc
        return CommandResult(
            args=args,
            returncode=completed.returncode,
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
        )
