"""
Hierarchical run parameters with typed getters.

Keys are dotted paths (``pop.subpop.0.size``). Every getter accepts an optional
``fallback`` key, which components use for their default base: the primary key
wins, otherwise the fallback is consulted, otherwise the default applies.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from typing import Any

from .exceptions import InvalidParameterError, MissingParameterError
from .registry import Registry

_MISSING: Any = object()

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def push(base: str | None, *parts: object) -> str:
    """Join a parameter base with further path components."""
    tail = ".".join(str(p) for p in parts)
    if not base:
        return tail
    return f"{base}.{tail}" if tail else base


def _flatten(values: Mapping[str, Any], prefix: str, out: dict[str, Any]) -> None:
    for key, value in values.items():
        full = push(prefix, key)
        if isinstance(value, Mapping):
            _flatten(value, full, out)
        else:
            out[full] = value


class Parameters:
    """
    In-memory parameter store.

    Accepts flat dotted keys, nested mappings or a mix of both:

        Parameters({"seed": 4, "pop": {"subpops": 1, "subpop.0.size": 50}})
    """

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = {}
        if values:
            _flatten(values, "", self._values)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def update(self, values: Mapping[str, Any]) -> None:
        _flatten(values, "", self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)

    def _lookup(self, key: str, fallback: str | None) -> tuple[str | None, Any]:
        if key in self._values:
            return key, self._values[key]
        if fallback is not None and fallback in self._values:
            return fallback, self._values[fallback]
        return None, _MISSING

    def exists(self, key: str, fallback: str | None = None) -> bool:
        found, _ = self._lookup(key, fallback)
        return found is not None

    def _require(self, key: str, fallback: str | None) -> tuple[str, Any]:
        found, raw = self._lookup(key, fallback)
        if found is None:
            raise MissingParameterError(key, fallback)
        return found, raw

    @staticmethod
    def _check_range(key: str, value: float, min_value: float | None, max_value: float | None) -> None:
        if min_value is not None and value < min_value:
            raise InvalidParameterError(key, value, f"a value >= {min_value}")
        if max_value is not None and value > max_value:
            raise InvalidParameterError(key, value, f"a value <= {max_value}")

    def get_string(self, key: str, default: Any = _MISSING, fallback: str | None = None) -> str:
        if default is not _MISSING and not self.exists(key, fallback):
            return default
        _, raw = self._require(key, fallback)
        return str(raw).strip()

    def get_int(
        self,
        key: str,
        default: Any = _MISSING,
        fallback: str | None = None,
        *,
        min_value: int | None = None,
        max_value: int | None = None,
    ) -> int:
        if default is not _MISSING and not self.exists(key, fallback):
            return default
        found, raw = self._require(key, fallback)
        if isinstance(raw, bool):
            raise InvalidParameterError(found, raw, "an integer")
        if isinstance(raw, float):
            if not raw.is_integer():
                raise InvalidParameterError(found, raw, "an integer")
            value = int(raw)
        else:
            try:
                value = int(str(raw).strip())
            except ValueError:
                raise InvalidParameterError(found, raw, "an integer") from None
        self._check_range(found, value, min_value, max_value)
        return value

    def get_double(
        self,
        key: str,
        default: Any = _MISSING,
        fallback: str | None = None,
        *,
        min_value: float | None = None,
        max_value: float | None = None,
    ) -> float:
        if default is not _MISSING and not self.exists(key, fallback):
            return default
        found, raw = self._require(key, fallback)
        if isinstance(raw, bool):
            raise InvalidParameterError(found, raw, "a real number")
        try:
            value = float(raw) if isinstance(raw, (int, float)) else float(str(raw).strip())
        except ValueError:
            raise InvalidParameterError(found, raw, "a real number") from None
        if math.isnan(value):
            raise InvalidParameterError(found, raw, "a real number")
        self._check_range(found, value, min_value, max_value)
        return value

    def get_boolean(self, key: str, default: Any = _MISSING, fallback: str | None = None) -> bool:
        if default is not _MISSING and not self.exists(key, fallback):
            return default
        found, raw = self._require(key, fallback)
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise InvalidParameterError(found, raw, "a boolean")

    def get_named_instance(
        self,
        key: str,
        registry: Registry[Any],
        default: str | None = None,
        fallback: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Resolve ``key`` to a registered constructor and call it."""
        name = self.get_string(key, default if default is not None else _MISSING, fallback)
        factory = registry.get(name)
        return factory(**kwargs)


__all__ = ["Parameters", "push"]
