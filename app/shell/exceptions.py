class CommandError(Exception):
    """Base exception for external command failures."""


class CommandNotFoundError(CommandError):
    """Raised when the command executable cannot be found."""


class CommandTimeoutError(CommandError):
    """Raised when the command exceeds its timeout."""


class CommandFailedError(CommandError):
    """Raised when the command exits with a non-zero status."""

    def __init__(self, args: list[str], returncode: int, stdout: str, stderr: str) -> None:
        self.args_list = args
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip() or "no output"
        super().__init__(f"Command failed: {' '.join(args)} (exit {returncode}): {detail}")
