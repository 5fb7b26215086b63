from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from evobreed.engine.multiobjective.ranking import MultiObjectiveRanker
from evobreed.foundation.parameters import push

from .evaluator import SimpleEvaluator

if TYPE_CHECKING:
    from evobreed.engine.state import EvolutionState


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


class NSGA2Evaluator(SimpleEvaluator):
    """
    Evaluates, then truncates every subpopulation to an NSGA-II archive of its
    configured size.

    After breeding a subpopulation holds the children followed by the parents;
    the archive keeps whole fronts in rank order and cuts the last front by
    sparsity.

    Parameters:
        sparsity: ``declared`` (objective bounds) | ``observed`` (front range)
    """

    def __init__(self, *args: Any, ranker: MultiObjectiveRanker | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.ranker = ranker if ranker is not None else MultiObjectiveRanker()

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        key = push(base, "sparsity")
        with state.output.collect(base):
            fallback = push(self.default_base, "sparsity")
            mode = state.parameters.get_string(key, self.ranker.normalization, fallback).lower()
            if mode not in MultiObjectiveRanker.NORMALIZATIONS:
                state.output.error(
                    f"Unknown sparsity normalization '{mode}'; expected one of "
                    f"{', '.join(MultiObjectiveRanker.NORMALIZATIONS)}",
                    key,
                )
            else:
                self.ranker = MultiObjectiveRanker(mode)

    def evaluate_population(self, state: EvolutionState) -> None:
        super().evaluate_population(state)
        for i, subpop in enumerate(state.population):
            archive = self.ranker.build_archive(subpop.individuals, subpop.size, i)
            subpop.individuals = archive
            _logger().debug("Subpopulation %d archived to %d individual(s).", i, len(archive))


__all__ = ["NSGA2Evaluator"]
