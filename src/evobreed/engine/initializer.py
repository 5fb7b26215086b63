from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .state import EvolutionState


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


class SimpleInitializer:
    """Sets up the population from ``pop.*`` parameters and fills it with random individuals."""

    def setup(self, state: EvolutionState, base: str = "pop") -> None:
        state.population.setup(state, base)

    def initial_population(self, state: EvolutionState) -> None:
        state.population.populate(state, thread=0)
        _logger().debug("Initial population: %s", [len(s) for s in state.population])


__all__ = ["SimpleInitializer"]
