"""
Breeding pipelines: interior nodes of the breeding graph.

A pipeline declares a fixed arity (``num_sources``) or ``DYNAMIC_SOURCES``.
Sources are read from ``<base>.source.<i>``; the literal ``same`` reuses the
previous source object. Arity problems are recorded as setup errors so that
they surface together before generation 0.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from evobreed.engine.registry import get_source_registry
from evobreed.foundation.parameters import push
from evobreed.foundation.random import random_bool

from .selection import SelectionMethod
from .source import BreedingSource

if TYPE_CHECKING:
    from evobreed.core.individual import Individual
    from evobreed.engine.state import EvolutionState

DYNAMIC_SOURCES = -1
SAME = "same"


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


class BreedingPipeline(BreedingSource):
    """
    Base class of pipelines.

    Sources can be wired programmatically (``CrossoverPipeline([a, b])``) or
    from parameters during ``setup``; either way the connected count is
    validated against ``num_sources``.
    """

    num_sources: int = 1
    default_base = "pipe"

    def __init__(self, sources: Sequence[BreedingSource] | None = None) -> None:
        super().__init__()
        self.sources: list[BreedingSource] = list(sources) if sources is not None else []
        self._wired = sources is not None

    def expected_sources(self, state: EvolutionState, base: str) -> int:
        if self.num_sources != DYNAMIC_SOURCES:
            return self.num_sources
        key = push(base, "num-sources")
        fallback = push(self.default_base, "num-sources")
        if not state.parameters.exists(key, fallback) and self._wired:
            return len(self.sources)
        return state.parameters.get_int(key, fallback=fallback, min_value=1)

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        expected = 0
        with state.output.collect(base):
            expected = self.expected_sources(state, base)
        if self._wired:
            self._setup_wired(state, base, expected)
        else:
            self._setup_from_parameters(state, base, expected)

    def _setup_wired(self, state: EvolutionState, base: str, expected: int) -> None:
        if len(self.sources) != expected:
            state.output.error(
                f"{self.name} takes exactly {expected} source(s) but {len(self.sources)} are connected",
                push(base, "source"),
            )
        configured: set[int] = set()
        for i, source in enumerate(self.sources):
            if id(source) in configured:
                continue
            configured.add(id(source))
            source.setup(state, push(base, "source", i))

    def _setup_from_parameters(self, state: EvolutionState, base: str, expected: int) -> None:
        params = state.parameters
        registry = get_source_registry()
        default = self.default_base
        sources: list[BreedingSource | None] = []
        for i in range(expected):
            key = push(base, "source", i)
            fallback = push(default, "source", i)
            source: BreedingSource | None = None
            with state.output.collect(base):
                if not params.exists(key, fallback):
                    state.output.error(f"{self.name} is missing source {i} of {expected}", key)
                elif params.get_string(key, fallback=fallback).lower() == SAME:
                    if i == 0 or sources[i - 1] is None:
                        state.output.error("Source 0 cannot be 'same'", key)
                    else:
                        source = sources[i - 1]
                else:
                    source = params.get_named_instance(key, registry, fallback=fallback)
                    source.setup(state, key)
            sources.append(source)
        surplus = push(base, "source", expected)
        if expected > 0 and params.exists(surplus):
            state.output.error(f"{self.name} takes exactly {expected} source(s); extra source configured", surplus)
        self.sources = [s for s in sources if s is not None]
        self._wired = True
        _logger().debug("%s at %s wired with %d source(s).", self.name, base, len(self.sources))

    def typical_inds_produced(self) -> int:
        return self.min_child_production()

    def min_child_production(self) -> int:
        return min((s.typical_inds_produced() for s in self.sources), default=1)

    def max_child_production(self) -> int:
        return max((s.typical_inds_produced() for s in self.sources), default=1)

    def produces(self, state: EvolutionState, subpopulation: int, thread: int) -> bool:
        return super().produces(state, subpopulation, thread) and all(
            s.produces(state, subpopulation, thread) for s in self.sources
        )

    def check_produces(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        super().check_produces(state, subpopulation, thread)
        for source in self.sources:
            source.check_produces(state, subpopulation, thread)

    def prepare_to_produce(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        for source in self._distinct_sources():
            source.prepare_to_produce(state, subpopulation, thread)

    def finish_producing(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        for source in self._distinct_sources():
            source.finish_producing(state, subpopulation, thread)

    def _distinct_sources(self) -> list[BreedingSource]:
        seen: set[int] = set()
        out = []
        for source in self.sources:
            if id(source) not in seen:
                seen.add(id(source))
                out.append(source)
        return out

    def pull(
        self,
        source_index: int,
        min_n: int,
        max_n: int,
        subpopulation: int,
        inds: list[Individual],
        state: EvolutionState,
        thread: int,
    ) -> int:
        """
        Produce from one source, deep-duplicating whatever came straight out
        of a selection method so that callers own every appended individual.
        """
        source = self.sources[source_index]
        start = len(inds)
        n = source.produce(min_n, max_n, subpopulation, inds, state, thread)
        if isinstance(source, SelectionMethod):
            for q in range(start, start + n):
                inds[q] = inds[q].deep_duplicate()
        return n

    def should_apply(self, state: EvolutionState, thread: int) -> bool:
        return random_bool(state.random[thread], self.likelihood)

    def __repr__(self) -> str:
        return f"{self.name}(likelihood={self.likelihood}, sources={self.sources!r})"


__all__ = ["BreedingPipeline", "DYNAMIC_SOURCES", "SAME"]
