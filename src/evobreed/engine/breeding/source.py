"""
Common base of breeding pipelines and selection methods.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from evobreed.foundation.exceptions import GenomeKindError
from evobreed.foundation.parameters import push

if TYPE_CHECKING:
    from evobreed.core.individual import Individual
    from evobreed.engine.state import EvolutionState


class BreedingSource:
    """
    A node of the breeding graph.

    ``produce(min_n, max_n, subpop, inds, state, thread)`` appends between
    ``min_n`` and ``max_n`` individuals to ``inds`` and returns how many it
    appended.

    Attributes:
        likelihood: Probability in [0, 1] that the node applies its operation.
        accepted_encodings: Genome encodings the node can handle; None means any.
    """

    default_base = "source"
    accepted_encodings: tuple[str, ...] | None = None

    def __init__(self) -> None:
        self.likelihood = 1.0
        self.base = self.default_base

    @property
    def name(self) -> str:
        return type(self).__name__

    def setup(self, state: EvolutionState, base: str) -> None:
        self.base = base
        key = push(base, "likelihood")
        with state.output.collect(base):
            likelihood = state.parameters.get_double(key, 1.0, push(self.default_base, "likelihood"))
            if not 0.0 <= likelihood <= 1.0:
                state.output.error(f"Likelihood must be within [0, 1], got {likelihood}", key)
            else:
                self.likelihood = likelihood

    def typical_inds_produced(self) -> int:
        return 1

    def produces(self, state: EvolutionState, subpopulation: int, thread: int) -> bool:
        """True when this node can breed the subpopulation's genome encoding."""
        if self.accepted_encodings is None:
            return True
        species = state.population[subpopulation].species
        return species is not None and species.encoding in self.accepted_encodings

    def check_produces(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        if not self.produces(state, subpopulation, thread):
            species = state.population[subpopulation].species
            actual = species.encoding if species is not None else "none"
            expected = "|".join(self.accepted_encodings or ("any",))
            raise GenomeKindError(self.name, expected, actual)

    def prepare_to_produce(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        pass

    def finish_producing(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        pass

    def produce(
        self,
        min_n: int,
        max_n: int,
        subpopulation: int,
        inds: list[Individual],
        state: EvolutionState,
        thread: int,
    ) -> int:
        raise NotImplementedError

    def clone(self) -> BreedingSource:
        """Deep copy of the node and everything upstream; shared ('same') sources stay shared."""
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        return f"{self.name}(likelihood={self.likelihood})"


__all__ = ["BreedingSource"]
