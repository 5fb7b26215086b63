"""
Built-in breeding pipelines.

Every pipeline owns the individuals it appends: anything obtained from a
selection method is deep-duplicated by ``BreedingPipeline.pull`` before a
genome is touched, so parents in the current population are never changed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Sequence

import numpy as np

from evobreed.foundation.exceptions import GenomeKindError
from evobreed.foundation.parameters import push

from . import vector_ops
from .pipeline import DYNAMIC_SOURCES, BreedingPipeline
from .source import BreedingSource

if TYPE_CHECKING:
    from evobreed.core.individual import Individual
    from evobreed.engine.state import EvolutionState

VECTOR_ENCODINGS = ("bit", "real", "integer")


def _require_vector(operator: str, ind: Individual) -> np.ndarray:
    genome = ind.genome
    if not isinstance(genome, np.ndarray) or genome.ndim != 1:
        raise GenomeKindError(operator, "vector", ind.encoding)
    return genome


class ReproductionPipeline(BreedingPipeline):
    """Passes individuals through unchanged; copies keep their evaluated flag."""

    num_sources = 1
    default_base = "reproduce"

    def typical_inds_produced(self) -> int:
        return self.sources[0].typical_inds_produced() if self.sources else 1

    def produce(
        self,
        min_n: int,
        max_n: int,
        subpopulation: int,
        inds: list[Individual],
        state: EvolutionState,
        thread: int,
    ) -> int:
        return self.pull(0, min_n, max_n, subpopulation, inds, state, thread)


class MutationPipeline(BreedingPipeline):
    """
    Per-gene mutation of vector genomes.

    Parameters:
        mutation: ``bit-flip`` | ``gaussian`` | ``reset`` | ``auto`` (by encoding)
        per-gene: gene mutation probability (default 1 / genome length)
        sigma: standard deviation of gaussian noise
    """

    num_sources = 1
    default_base = "mutate"
    accepted_encodings = VECTOR_ENCODINGS
    KINDS = ("auto", "bit-flip", "gaussian", "reset")

    def __init__(
        self,
        sources: Sequence[BreedingSource] | None = None,
        mutation: str = "auto",
        per_gene: float | None = None,
        sigma: float = 0.1,
    ) -> None:
        super().__init__(sources)
        self.mutation = mutation
        self.per_gene = per_gene
        self.sigma = float(sigma)

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        params = state.parameters
        default = self.default_base
        key = push(base, "mutation")
        with state.output.collect(base):
            kind = params.get_string(key, self.mutation, push(default, "mutation")).lower()
            if kind not in self.KINDS:
                state.output.error(f"Unknown mutation '{kind}'; expected one of {', '.join(self.KINDS)}", key)
            else:
                self.mutation = kind
        key = push(base, "per-gene")
        with state.output.collect(base):
            if params.exists(key, push(default, "per-gene")):
                self.per_gene = params.get_double(key, fallback=push(default, "per-gene"), min_value=0.0, max_value=1.0)
        with state.output.collect(base):
            self.sigma = params.get_double(push(base, "sigma"), self.sigma, push(default, "sigma"), min_value=0.0)

    def typical_inds_produced(self) -> int:
        return self.sources[0].typical_inds_produced() if self.sources else 1

    def _kind_for(self, ind: Individual) -> str:
        if self.mutation != "auto":
            return self.mutation
        return {"bit": "bit-flip", "real": "gaussian"}.get(ind.encoding, "reset")

    def mutate(self, ind: Individual, rng: np.random.Generator) -> bool:
        genome = _require_vector(self.name, ind)
        prob = self.per_gene if self.per_gene is not None else 1.0 / max(1, genome.shape[0])
        kind = self._kind_for(ind)
        species = ind.species
        lower = getattr(species, "min_gene", 0.0)
        upper = getattr(species, "max_gene", 1.0)
        if kind == "bit-flip":
            if ind.encoding != "bit":
                raise GenomeKindError(f"{self.name}(bit-flip)", "bit", ind.encoding)
            return vector_ops.bit_flip_mutation(genome, prob, rng)
        if kind == "gaussian":
            if ind.encoding == "bit":
                raise GenomeKindError(f"{self.name}(gaussian)", "real|integer", ind.encoding)
            before = genome.copy()
            vector_ops.gaussian_mutation(genome, prob, self.sigma, rng)
            if hasattr(species, "clamp"):
                species.clamp(genome)
            else:
                genome[...] = np.clip(genome, lower, upper)
            return not np.array_equal(genome, before)
        return vector_ops.reset_mutation(genome, prob, lower, upper, rng)

    def produce(
        self,
        min_n: int,
        max_n: int,
        subpopulation: int,
        inds: list[Individual],
        state: EvolutionState,
        thread: int,
    ) -> int:
        start = len(inds)
        n = self.pull(0, min_n, max_n, subpopulation, inds, state, thread)
        if not self.should_apply(state, thread):
            return n
        rng = state.random[thread]
        for q in range(start, start + n):
            if self.mutate(inds[q], rng):
                inds[q].evaluated = False
        return n


CrossoverKernel = Callable[[np.ndarray, np.ndarray, np.random.Generator], bool]


class CrossoverPipeline(BreedingPipeline):
    """
    Two-parent crossover of equally long vector genomes.

    Parameters:
        type: ``one`` | ``two`` | ``any`` (uniform, p=0.5) | ``any-prob``
        crossover-prob: per-gene swap probability for ``any-prob``
        toss: keep only the first child
    """

    num_sources = 2
    default_base = "xover"
    accepted_encodings = VECTOR_ENCODINGS
    TYPES = ("one", "two", "any", "any-prob")

    def __init__(
        self,
        sources: Sequence[BreedingSource] | None = None,
        crossover_type: str = "one",
        crossover_prob: float = 0.5,
        toss: bool = False,
    ) -> None:
        super().__init__(sources)
        self.crossover_type = crossover_type
        self.crossover_prob = float(crossover_prob)
        self.toss = bool(toss)

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        params = state.parameters
        default = self.default_base
        key = push(base, "type")
        with state.output.collect(base):
            kind = params.get_string(key, self.crossover_type, push(default, "type")).lower()
            if kind not in self.TYPES:
                state.output.error(f"Unknown crossover type '{kind}'; expected one of {', '.join(self.TYPES)}", key)
            else:
                self.crossover_type = kind
        with state.output.collect(base):
            self.crossover_prob = params.get_double(
                push(base, "crossover-prob"), self.crossover_prob, push(default, "crossover-prob"),
                min_value=0.0, max_value=1.0,
            )
        with state.output.collect(base):
            self.toss = params.get_boolean(push(base, "toss"), self.toss, push(default, "toss"))

    def typical_inds_produced(self) -> int:
        return 1 if self.toss else 2

    def kernel(self) -> CrossoverKernel:
        if self.crossover_type == "two":
            return vector_ops.two_point_crossover
        if self.crossover_type == "any":
            return vector_ops.uniform_crossover
        if self.crossover_type == "any-prob":
            prob = self.crossover_prob
            return lambda a, b, rng: vector_ops.uniform_crossover(a, b, rng, prob)
        return vector_ops.one_point_crossover

    def _parents(self, subpopulation: int, state: EvolutionState, thread: int) -> list[Individual]:
        parents: list[Individual] = []
        if self.sources[0] is self.sources[1]:
            self.pull(0, 2, 2, subpopulation, parents, state, thread)
        else:
            self.pull(0, 1, 1, subpopulation, parents, state, thread)
            self.pull(1, 1, 1, subpopulation, parents, state, thread)
        return parents

    def produce(
        self,
        min_n: int,
        max_n: int,
        subpopulation: int,
        inds: list[Individual],
        state: EvolutionState,
        thread: int,
    ) -> int:
        n = min(max(self.typical_inds_produced(), min_n), max_n)
        rng = state.random[thread]
        kernel = self.kernel()
        made = 0
        while made < n:
            a, b = self._parents(subpopulation, state, thread)[:2]
            if self.should_apply(state, thread):
                ga, gb = _require_vector(self.name, a), _require_vector(self.name, b)
                if ga.shape != gb.shape:
                    raise GenomeKindError(
                        self.name, f"vector of length {ga.shape[0]}", f"vector of length {gb.shape[0]}"
                    )
                if kernel(ga, gb, rng):
                    a.evaluated = False
                    b.evaluated = False
            inds.append(a)
            made += 1
            if made < n and not self.toss:
                inds.append(b)
                made += 1
        return n


class MultiBreedingPipeline(BreedingPipeline):
    """
    Delegates each call to one source chosen by its normalised likelihood.

    The sources' likelihoods act as weights here, not as apply probabilities.
    """

    num_sources = DYNAMIC_SOURCES
    default_base = "multi"

    def __init__(self, sources: Sequence[BreedingSource] | None = None) -> None:
        super().__init__(sources)
        self._weights: np.ndarray | None = None

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        if not self.sources:
            return
        weights = np.array([s.likelihood for s in self.sources], dtype=float)
        if weights.sum() <= 0.0:
            state.output.error(
                "At least one source of a multi pipeline needs a positive likelihood", push(base, "source")
            )
            return
        self._weights = weights / weights.sum()

    def typical_inds_produced(self) -> int:
        return self.max_child_production()

    def produce(
        self,
        min_n: int,
        max_n: int,
        subpopulation: int,
        inds: list[Individual],
        state: EvolutionState,
        thread: int,
    ) -> int:
        n = min(max(self.typical_inds_produced(), min_n), max_n)
        weights = self._weights
        if weights is None:
            weights = np.full(len(self.sources), 1.0 / len(self.sources))
        s = int(state.random[thread].choice(len(self.sources), p=weights))
        return self.pull(s, n, n, subpopulation, inds, state, thread)


class ForceBreedingPipeline(BreedingPipeline):
    """Forces ``num-inds`` individuals per call (within the caller's bounds)."""

    num_sources = 1
    default_base = "force"

    def __init__(self, sources: Sequence[BreedingSource] | None = None, num_inds: int = 1) -> None:
        super().__init__(sources)
        self.num_inds = int(num_inds)

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        with state.output.collect(base):
            self.num_inds = state.parameters.get_int(
                push(base, "num-inds"), self.num_inds, push(self.default_base, "num-inds"), min_value=1
            )

    def typical_inds_produced(self) -> int:
        return self.num_inds

    def produce(
        self,
        min_n: int,
        max_n: int,
        subpopulation: int,
        inds: list[Individual],
        state: EvolutionState,
        thread: int,
    ) -> int:
        n = min(max(self.num_inds, min_n), max_n)
        total = 0
        while total < n:
            total += self.pull(0, 1, n - total, subpopulation, inds, state, thread)
        return total


class GenerationSwitchPipeline(BreedingPipeline):
    """Uses source 0 before generation ``switch-at`` and source 1 from then on."""

    num_sources = 2
    default_base = "generation-switch"

    def __init__(self, sources: Sequence[BreedingSource] | None = None, switch_at: int = 0) -> None:
        super().__init__(sources)
        self.switch_at = int(switch_at)

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        with state.output.collect(base):
            self.switch_at = state.parameters.get_int(
                push(base, "switch-at"), self.switch_at, push(self.default_base, "switch-at"), min_value=0
            )

    def typical_inds_produced(self) -> int:
        return self.max_child_production()

    def produce(
        self,
        min_n: int,
        max_n: int,
        subpopulation: int,
        inds: list[Individual],
        state: EvolutionState,
        thread: int,
    ) -> int:
        s = 0 if state.generation < self.switch_at else 1
        return self.pull(s, min_n, max_n, subpopulation, inds, state, thread)


__all__ = [
    "ReproductionPipeline",
    "MutationPipeline",
    "CrossoverPipeline",
    "MultiBreedingPipeline",
    "ForceBreedingPipeline",
    "GenerationSwitchPipeline",
]
