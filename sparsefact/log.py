"""Process-wide log sink for the factorisation.

Nothing is written until a logger is installed with Log.set_options.
"""

from __future__ import annotations

import logging
from typing import Optional


class Log:
    """Static logging front-end: printf-style formatting into a logger."""

    _logger: Optional[logging.Logger] = None

    def __new__(cls, *args, **kwargs):
        raise TypeError("Log is used through its class methods only")

    @classmethod
    def set_options(cls, logger: Optional[logging.Logger]) -> None:
        """Install the logger to write to, or None to silence output."""
        cls._logger = logger

    @classmethod
    def _emit(cls, level: int, fmt: str, args: tuple) -> None:
        if cls._logger is None:
            return
        message = fmt % args if args else fmt
        cls._logger.log(level, message.strip("\n"))

    @classmethod
    def printf(cls, fmt: str, *args) -> None:
        """Log an informational message."""
        cls._emit(logging.INFO, fmt, args)

    @classmethod
    def printw(cls, fmt: str, *args) -> None:
        """Log a warning."""
        cls._emit(logging.WARNING, fmt, args)

    @classmethod
    def printe(cls, fmt: str, *args) -> None:
        """Log an error."""
        cls._emit(logging.ERROR, fmt, args)