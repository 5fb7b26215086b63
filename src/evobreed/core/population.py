"""
Subpopulations and the population that groups them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterator, Sequence

from evobreed.engine.registry import get_species_registry
from evobreed.foundation.parameters import push

from .individual import Individual
from .species import Species

if TYPE_CHECKING:
    from evobreed.engine.state import EvolutionState


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


class Subpopulation:
    """
    Ordered individuals sharing one species.

    ``size`` is the configured number of individuals and stays fixed for the
    run; ``individuals`` may transiently hold more (NSGA-II parent+child union).
    """

    default_base = "subpop"

    def __init__(
        self,
        species: Species | None = None,
        size: int = 0,
        individuals: Sequence[Individual] | None = None,
        duplicate_retries: int = 0,
    ) -> None:
        self.species = species
        self.size = int(size)
        self.individuals: list[Individual] = list(individuals) if individuals is not None else []
        self.duplicate_retries = int(duplicate_retries)

    def setup(self, state: EvolutionState, base: str) -> None:
        params = state.parameters
        default = self.default_base
        with state.output.collect(base):
            self.size = params.get_int(push(base, "size"), fallback=push(default, "size"), min_value=1)
        with state.output.collect(base):
            self.duplicate_retries = params.get_int(
                push(base, "duplicate-retries"), 0, push(default, "duplicate-retries"), min_value=0
            )
        species_key = push(base, "species")
        with state.output.collect(base):
            if self.species is None or params.exists(species_key, push(default, "species")):
                self.species = params.get_named_instance(
                    species_key, get_species_registry(), fallback=push(default, "species")
                )
        if self.species is not None:
            self.species.setup(state, species_key)

    def empty_clone(self) -> Subpopulation:
        """Same species and size, no individuals."""
        return Subpopulation(self.species, self.size, None, self.duplicate_retries)

    def populate(self, state: EvolutionState, thread: int) -> None:
        """
        Fill up to ``size`` with fresh individuals.

        Up to ``duplicate_retries`` extra draws are spent replacing an
        individual whose genome already exists in the subpopulation.
        """
        seen = {ind.genome_key() for ind in self.individuals}
        while len(self.individuals) < self.size:
            ind = self.species.new_individual(state, thread)
            for _ in range(self.duplicate_retries):
                if ind.genome_key() not in seen:
                    break
                ind = self.species.new_individual(state, thread)
            seen.add(ind.genome_key())
            self.individuals.append(ind)

    def __len__(self) -> int:
        return len(self.individuals)

    def __iter__(self) -> Iterator[Individual]:
        return iter(self.individuals)

    def __getitem__(self, index: int) -> Individual:
        return self.individuals[index]

    def __repr__(self) -> str:
        return f"Subpopulation(species={self.species!r}, size={self.size}, individuals={len(self.individuals)})"


class Population:
    """Ordered subpopulations evolved together; the count is fixed for a run."""

    default_base = "pop"

    def __init__(self, subpops: Sequence[Subpopulation] | None = None) -> None:
        self.subpops: list[Subpopulation] = list(subpops) if subpops is not None else []

    def setup(self, state: EvolutionState, base: str = "pop") -> None:
        params = state.parameters
        count = 0
        with state.output.collect(base):
            count = params.get_int(push(base, "subpops"), min_value=1)
        self.subpops = []
        for i in range(count):
            subpop = Subpopulation()
            subpop.setup(state, push(base, "subpop", i))
            self.subpops.append(subpop)
        _logger().debug("Population set up with %d subpopulation(s).", count)

    def empty_clone(self) -> Population:
        return Population([s.empty_clone() for s in self.subpops])

    def populate(self, state: EvolutionState, thread: int = 0) -> None:
        for subpop in self.subpops:
            subpop.populate(state, thread)

    def __len__(self) -> int:
        return len(self.subpops)

    def __iter__(self) -> Iterator[Subpopulation]:
        return iter(self.subpops)

    def __getitem__(self, index: int) -> Subpopulation:
        return self.subpops[index]

    def __repr__(self) -> str:
        return f"Population({self.subpops!r})"


__all__ = ["Subpopulation", "Population"]
