"""
A single candidate solution: an opaque genome, a fitness and an evaluated flag.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

import numpy as np

from .fitness import Fitness

if TYPE_CHECKING:
    from .species import Species


def copy_genome(genome: Any) -> Any:
    """Independent copy of a genome; arrays are copied without going through deepcopy."""
    if isinstance(genome, np.ndarray):
        return genome.copy()
    return copy.deepcopy(genome)


class Individual:
    """
    One member of a subpopulation.

    Duplication depth is explicit:
        - ``shallow_duplicate`` shares the genome (read-only use);
        - ``deep_duplicate`` copies the genome and must be used before any
          in-place genome change.
    Both clone the fitness, which is owned exclusively by one individual.
    """

    __slots__ = ("genome", "fitness", "evaluated", "species")

    def __init__(
        self,
        genome: Any,
        fitness: Fitness,
        evaluated: bool = False,
        species: Species | None = None,
    ) -> None:
        self.genome = genome
        self.fitness = fitness
        self.evaluated = evaluated
        self.species = species

    @property
    def encoding(self) -> str:
        if self.species is not None:
            return self.species.encoding
        if isinstance(self.genome, np.ndarray):
            return {"b": "bit", "f": "real", "i": "integer", "u": "integer"}.get(self.genome.dtype.kind, "any")
        return type(self.genome).__name__

    def shallow_duplicate(self) -> Individual:
        return Individual(self.genome, self.fitness.clone(), self.evaluated, self.species)

    def deep_duplicate(self) -> Individual:
        return Individual(copy_genome(self.genome), self.fitness.clone(), self.evaluated, self.species)

    def genome_equals(self, other: Individual) -> bool:
        a, b = self.genome, other.genome
        if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
            return bool(np.array_equal(a, b))
        return bool(a == b)

    def genome_key(self) -> Any:
        """Hashable view of the genome, used to detect duplicates."""
        if isinstance(self.genome, np.ndarray):
            return (self.genome.dtype.str, self.genome.shape, self.genome.tobytes())
        try:
            hash(self.genome)
        except TypeError:
            return repr(self.genome)
        return self.genome

    def size(self) -> int:
        try:
            return len(self.genome)
        except TypeError:
            return 1

    def __repr__(self) -> str:
        state = "evaluated" if self.evaluated else "unevaluated"
        return f"Individual({self.genome!r}, {self.fitness.describe()}, {state})"


__all__ = ["Individual", "copy_genome"]
