"""
Component registries.

Map configuration names to constructors so setup code resolves evaluators,
breeders, pipelines, selection methods, species, fitness types, problems and
statistics without hard-coded conditionals. Built-ins are registered the first
time a registry is requested; user code adds its own entries with
``get_problem_registry().register("my-problem", MyProblem)``.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

from evobreed.foundation.registry import Registry

_REGISTRY_LABELS = {
    "evaluator": "evaluator",
    "breeder": "breeder",
    "source": "breeding source",
    "species": "species",
    "fitness": "fitness",
    "problem": "problem",
    "statistics": "statistics",
}

_REGISTRIES: dict[str, Registry[Any]] = {}
_LOCK = threading.RLock()


def _get_registry(kind: str) -> Registry[Callable[..., Any]]:
    with _LOCK:
        if not _REGISTRIES:
            for name, label in _REGISTRY_LABELS.items():
                _REGISTRIES[name] = Registry(label)
            from .builtins import register_builtins

            register_builtins(_REGISTRIES)
        return _REGISTRIES[kind]


def get_evaluator_registry() -> Registry[Callable[..., Any]]:
    return _get_registry("evaluator")


def get_breeder_registry() -> Registry[Callable[..., Any]]:
    return _get_registry("breeder")


def get_source_registry() -> Registry[Callable[..., Any]]:
    """Breeding pipelines and selection methods share one namespace."""
    return _get_registry("source")


def get_species_registry() -> Registry[Callable[..., Any]]:
    return _get_registry("species")


def get_fitness_registry() -> Registry[Callable[..., Any]]:
    return _get_registry("fitness")


def get_problem_registry() -> Registry[Callable[..., Any]]:
    return _get_registry("problem")


def get_statistics_registry() -> Registry[Callable[..., Any]]:
    return _get_registry("statistics")


__all__ = [
    "get_evaluator_registry",
    "get_breeder_registry",
    "get_source_registry",
    "get_species_registry",
    "get_fitness_registry",
    "get_problem_registry",
    "get_statistics_registry",
]
