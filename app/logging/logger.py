import logging
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TextIO

LogListener = Callable[[str], None]

_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


class _ListenerHandler(logging.Handler):
    """Fans formatted records out to live log stream listeners."""

    def __init__(self) -> None:
        super().__init__()
        self.listeners: list[LogListener] = []
        self.setFormatter(logging.Formatter(_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        if not self.listeners:
            return
        message = self.format(record)
        for listener in list(self.listeners):
            try:
                listener(message)
            except Exception:
                self.handleError(record)


class Log:
    """Centralized logging with structured format."""

    _logger: logging.Logger = logging.getLogger("scanbridge")
    _stream = _ListenerHandler()
    _logger.addHandler(_stream)

    @classmethod
    def configure(cls, log_level: str, stream: TextIO | None = None, console: bool = True) -> None:
        """Configure the logger with the specified level and a stream handler (stdout by default).

        With ``console=False`` only the level is set; messages reach listeners alone.
        """
        cls._logger.setLevel(log_level.upper())
        if not console:
            return
        if not any(isinstance(h, logging.StreamHandler) for h in cls._logger.handlers):
            handler = logging.StreamHandler(stream or sys.stdout)
            handler.setFormatter(logging.Formatter(_FORMAT))
            cls._logger.addHandler(handler)

    @classmethod
    @contextmanager
    def listen(cls, listener: LogListener) -> Iterator[None]:
        """Stream every log message to ``listener`` until the block exits."""
        cls._stream.listeners.append(listener)
        try:
            yield
        finally:
            cls._stream.listeners.remove(listener)

    @classmethod
    def info(cls, message: str, **kwargs: object) -> None:
        """Log an info message."""
        cls._logger.info(message, extra=kwargs)

    @classmethod
    def error(cls, message: str, **kwargs: object) -> None:
        """Log an error message."""
        cls._logger.error(message, extra=kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: object) -> None:
        """Log a warning message."""
        cls._logger.warning(message, extra=kwargs)

    @classmethod
    def debug(cls, message: str, **kwargs: object) -> None:
        """Log a debug message."""
        cls._logger.debug(message, extra=kwargs)
