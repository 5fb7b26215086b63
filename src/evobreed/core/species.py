"""
Species: the genome encoding shared by a subpopulation.

A species owns the fitness prototype cloned into every new individual and the
prototype of the subpopulation's breeding pipeline.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

import numpy as np

from evobreed.engine.registry import get_fitness_registry, get_source_registry
from evobreed.foundation.parameters import push

from .fitness import Fitness, SimpleFitness
from .individual import Individual

if TYPE_CHECKING:
    from evobreed.engine.breeding.source import BreedingSource
    from evobreed.engine.state import EvolutionState

GenomeFactory = Callable[[np.random.Generator], Any]


class Species:
    """
    Generic species for user-defined genomes.

    Args:
        genome_factory: Callable drawing a fresh genome from a random generator.
        encoding: Compatibility tag checked by operators.
        fitness: Fitness prototype (defaults to SimpleFitness).
        pipeline: Breeding pipeline prototype.
    """

    default_base = "species"
    encoding = "any"

    def __init__(
        self,
        genome_factory: GenomeFactory | None = None,
        *,
        encoding: str | None = None,
        fitness: Fitness | None = None,
        pipeline: BreedingSource | None = None,
    ) -> None:
        self.genome_factory = genome_factory
        if encoding is not None:
            self.encoding = encoding
        self.fitness_prototype = fitness if fitness is not None else SimpleFitness()
        self.pipeline = pipeline

    def setup(self, state: EvolutionState, base: str) -> None:
        params = state.parameters
        default = self.default_base
        with state.output.collect(base):
            fitness_key = push(base, "fitness")
            if params.exists(fitness_key, push(default, "fitness")):
                self.fitness_prototype = params.get_named_instance(
                    fitness_key, get_fitness_registry(), fallback=push(default, "fitness")
                )
            self.fitness_prototype.setup(state, fitness_key)
        with state.output.collect(base):
            pipe_key = push(base, "pipe")
            if self.pipeline is None or params.exists(pipe_key, push(default, "pipe")):
                self.pipeline = params.get_named_instance(
                    pipe_key, get_source_registry(), fallback=push(default, "pipe")
                )
            self.pipeline.setup(state, pipe_key)
        if self.genome_factory is None and type(self).new_genome is Species.new_genome:
            state.output.error(
                f"{type(self).__name__} has no genome factory; use a vector species or pass genome_factory",
                base,
            )

    def new_genome(self, rng: np.random.Generator) -> Any:
        if self.genome_factory is None:
            raise NotImplementedError(f"{type(self).__name__} has no genome factory")
        return self.genome_factory(rng)

    def new_individual(self, state: EvolutionState, thread: int) -> Individual:
        genome = self.new_genome(state.random[thread])
        return Individual(genome, self.fitness_prototype.clone(), evaluated=False, species=self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(encoding={self.encoding!r})"


class VectorSpecies(Species):
    """
    Fixed-length numpy vectors of bits, reals or integers.

    Parameters (under the species base, falling back to ``vector``):
        encoding: ``bit`` | ``real`` | ``integer``
        genome-size: vector length (>= 1)
        min-gene / max-gene: gene bounds for real and integer vectors
    """

    default_base = "vector"
    ENCODINGS = ("bit", "real", "integer")

    def __init__(
        self,
        encoding: str = "real",
        genome_size: int = 1,
        min_gene: float = 0.0,
        max_gene: float = 1.0,
        *,
        fitness: Fitness | None = None,
        pipeline: BreedingSource | None = None,
    ) -> None:
        super().__init__(encoding=encoding, fitness=fitness, pipeline=pipeline)
        self.genome_size = int(genome_size)
        self.min_gene = float(min_gene)
        self.max_gene = float(max_gene)

    def setup(self, state: EvolutionState, base: str) -> None:
        params = state.parameters
        default = self.default_base
        with state.output.collect(base):
            encoding = params.get_string(push(base, "encoding"), self.encoding, push(default, "encoding")).lower()
            if encoding not in self.ENCODINGS:
                state.output.error(
                    f"Unknown vector encoding '{encoding}'; expected one of {', '.join(self.ENCODINGS)}",
                    push(base, "encoding"),
                )
            else:
                self.encoding = encoding
        with state.output.collect(base):
            self.genome_size = params.get_int(
                push(base, "genome-size"), fallback=push(default, "genome-size"), min_value=1
            )
        with state.output.collect(base):
            self.min_gene = params.get_double(push(base, "min-gene"), self.min_gene, push(default, "min-gene"))
            self.max_gene = params.get_double(push(base, "max-gene"), self.max_gene, push(default, "max-gene"))
            if self.encoding != "bit" and self.max_gene < self.min_gene:
                state.output.error("max-gene must not be smaller than min-gene", push(base, "max-gene"))
        super().setup(state, base)

    @property
    def dtype(self) -> np.dtype:
        return np.dtype({"bit": bool, "real": float, "integer": np.int64}[self.encoding])

    def new_genome(self, rng: np.random.Generator) -> np.ndarray:
        n = self.genome_size
        if self.encoding == "bit":
            return rng.random(n) < 0.5
        if self.encoding == "integer":
            return rng.integers(int(self.min_gene), int(self.max_gene) + 1, size=n, dtype=np.int64)
        return rng.uniform(self.min_gene, self.max_gene, size=n)

    def clamp(self, genome: np.ndarray) -> np.ndarray:
        """Clip genes into [min_gene, max_gene] in place; bit vectors are left alone."""
        if self.encoding == "integer":
            np.clip(genome, int(self.min_gene), int(self.max_gene), out=genome)
        elif self.encoding == "real":
            np.clip(genome, self.min_gene, self.max_gene, out=genome)
        return genome


__all__ = ["Species", "VectorSpecies", "GenomeFactory"]
