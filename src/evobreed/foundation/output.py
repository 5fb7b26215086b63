"""
Run-level error and warning log.

Setup code records recoverable problems here instead of raising, so a run
reports every configuration mistake at once before aborting.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .exceptions import ConfigurationError, SetupError


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


class ErrorLog:
    """Accumulates recoverable errors and warnings for one run."""

    def __init__(self) -> None:
        self._errors: list[str] = []
        self._warnings: list[str] = []
        self._warned_once: set[str] = set()
        self._lock = threading.Lock()

    @staticmethod
    def _with_param(message: str, param: str | None) -> str:
        return f"{message} (parameter: {param})" if param else message

    def error(self, message: str, param: str | None = None) -> None:
        text = self._with_param(message, param)
        with self._lock:
            self._errors.append(text)
        _logger().error(text)

    def warning(self, message: str, param: str | None = None) -> None:
        text = self._with_param(message, param)
        with self._lock:
            self._warnings.append(text)
        _logger().warning(text)

    def warn_once(self, message: str) -> None:
        with self._lock:
            if message in self._warned_once:
                return
            self._warned_once.add(message)
        self.warning(message)

    @property
    def errors(self) -> list[str]:
        with self._lock:
            return list(self._errors)

    @property
    def warnings(self) -> list[str]:
        with self._lock:
            return list(self._warnings)

    def has_errors(self) -> bool:
        with self._lock:
            return bool(self._errors)

    @contextmanager
    def collect(self, component: str | None = None) -> Iterator[None]:
        """
        Record a ConfigurationError raised inside the block as a recoverable error.

        The rest of the block is skipped, but setup of other components goes on.
        """
        try:
            yield
        except SetupError as exc:
            for err in exc.errors:
                self.error(err)
        except ConfigurationError as exc:
            prefix = f"[{component}] " if component else ""
            self.error(prefix + exc.message)

    def exit_if_errors(self) -> None:
        """Raise SetupError carrying every recorded error, if there are any."""
        errors = self.errors
        if errors:
            raise SetupError(errors)


__all__ = ["ErrorLog"]
