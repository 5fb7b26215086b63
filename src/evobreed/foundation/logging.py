from __future__ import annotations

import logging

_FORMAT = "%(levelname)-7s %(threadName)s %(name)s: %(message)s"


def configure_evobreed_logging(*, level: int | str = logging.INFO, show_threads: bool = False) -> logging.Logger:
    """
    Attach a console handler to the ``evobreed`` logger.

    Opt-in only; library modules never call ``logging.basicConfig()``. Nothing
    is attached when the application already configured the root logger or
    the ``evobreed`` logger, but the level is still applied.

    Args:
        level: Logging level or its name (``"DEBUG"``, ``"INFO"``...).
        show_threads: Prefix records with level, worker thread and module.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown logging level: {level!r}")
        level = resolved
    package_logger = logging.getLogger("evobreed")
    package_logger.setLevel(level)
    if logging.getLogger().handlers or package_logger.handlers:
        return package_logger

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT if show_threads else "%(message)s"))
    package_logger.addHandler(handler)
    package_logger.propagate = False
    return package_logger


__all__ = ["configure_evobreed_logging"]
