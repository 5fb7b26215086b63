"""
Per-generation statistics and observers.

Statistics summarize every subpopulation after evaluation and notify
registered observers. Observers follow the same three-event lifecycle as the
run itself: ``on_start``, ``on_generation`` and ``on_end``.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, Sequence, runtime_checkable

import numpy as np

from evobreed.core.fitness import MultiObjectiveFitness
from evobreed.core.individual import Individual
from evobreed.foundation.parameters import push

from .multiobjective.ranking import MultiObjectiveRanker

if TYPE_CHECKING:
    from .state import EvolutionState, RunResult


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


@dataclass
class SubpopulationRecord:
    size: int
    evaluated: int
    best: float | None = None
    mean: float | None = None
    worst: float | None = None
    front_size: int | None = None
    front: np.ndarray | None = None


@dataclass
class GenerationRecord:
    generation: int
    subpops: list[SubpopulationRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "subpops": [
                {k: (v.tolist() if isinstance(v, np.ndarray) else v) for k, v in vars(s).items()}
                for s in self.subpops
            ],
        }


@runtime_checkable
class StatisticsObserver(Protocol):
    """Receives run lifecycle events from a Statistics instance."""

    def on_start(self, state: EvolutionState) -> None: ...

    def on_generation(self, record: GenerationRecord) -> None: ...

    def on_end(self, result: RunResult) -> None: ...


def best_and_worst(inds: Sequence[Individual]) -> tuple[Individual | None, Individual | None]:
    """Best and worst individual by ``better_than``; earlier individuals win ties."""
    best = worst = None
    for ind in inds:
        if best is None or ind.fitness.better_than(best.fitness):
            best = ind
        if worst is None or worst.fitness.better_than(ind.fitness):
            worst = ind
    return best, worst


def best_first(inds: Sequence[Individual]) -> list[Individual]:
    """Stable sort by fitness, best first."""
    return sorted(inds, key=functools.cmp_to_key(lambda a, b: a.fitness.compare_to(b.fitness)))


class Statistics:
    """Base class: keeps observers and ignores every event."""

    default_base = "stat"

    def __init__(self) -> None:
        self.observers: list[StatisticsObserver] = []
        self.records: list[GenerationRecord] = []
        self.best_of_run: list[Individual | None] = []

    def setup(self, state: EvolutionState, base: str) -> None:
        pass

    def add_observer(self, observer: StatisticsObserver) -> None:
        self.observers.append(observer)

    def on_start(self, state: EvolutionState) -> None:
        for obs in self.observers:
            obs.on_start(state)

    def post_evaluation(self, state: EvolutionState) -> None:
        pass

    def on_end(self, state: EvolutionState, result: RunResult) -> None:
        for obs in self.observers:
            obs.on_end(result)


class SimpleStatistics(Statistics):
    """
    Records best, mean and worst ``Fitness.value`` of evaluated individuals
    per subpopulation and tracks the best individual of the run.
    """

    def __init__(self) -> None:
        super().__init__()
        self.log_every = 1

    def setup(self, state: EvolutionState, base: str) -> None:
        with state.output.collect(base):
            self.log_every = state.parameters.get_int(
                push(base, "log-every"), 1, push(self.default_base, "log-every"), min_value=0
            )

    def on_start(self, state: EvolutionState) -> None:
        self.records = []
        self.best_of_run = [None] * len(state.population)
        super().on_start(state)

    def summarize(self, state: EvolutionState, index: int) -> SubpopulationRecord:
        subpop = state.population[index]
        evaluated = [ind for ind in subpop if ind.evaluated]
        record = SubpopulationRecord(size=len(subpop), evaluated=len(evaluated))
        if not evaluated:
            return record
        values = np.array([ind.fitness.value for ind in evaluated], dtype=float)
        best, worst = best_and_worst(evaluated)
        record.best = best.fitness.value
        record.worst = worst.fitness.value
        record.mean = float(np.mean(values))
        current = self.best_of_run[index]
        if current is None:
            self.best_of_run[index] = best.deep_duplicate()
        elif isinstance(current.fitness, MultiObjectiveFitness):
            # rank and sparsity only order one generation; the run-best changes on Pareto dominance
            dominators = (ind for ind in best_first(evaluated) if ind.fitness.pareto_dominates(current.fitness))
            challenger = next(dominators, None)
            if challenger is not None:
                self.best_of_run[index] = challenger.deep_duplicate()
        elif best.fitness.better_than(current.fitness):
            self.best_of_run[index] = best.deep_duplicate()
        return record

    def post_evaluation(self, state: EvolutionState) -> None:
        if len(self.best_of_run) != len(state.population):
            self.best_of_run = [None] * len(state.population)
        record = GenerationRecord(state.generation, [self.summarize(state, i) for i in range(len(state.population))])
        self.records.append(record)
        if self.log_every and state.generation % self.log_every == 0:
            for i, sub in enumerate(record.subpops):
                _logger().info(
                    "Generation %d subpop %d: best=%s mean=%s worst=%s (%d/%d evaluated)",
                    state.generation, i, sub.best, sub.mean, sub.worst, sub.evaluated, sub.size,
                )
        for obs in self.observers:
            obs.on_generation(record)


class MultiObjectiveStatistics(SimpleStatistics):
    """Adds the size and objective vectors of the first non-dominated front."""

    def summarize(self, state: EvolutionState, index: int) -> SubpopulationRecord:
        record = super().summarize(state, index)
        evaluated = [ind for ind in state.population[index] if ind.evaluated]
        if evaluated and all(isinstance(ind.fitness, MultiObjectiveFitness) for ind in evaluated):
            front = MultiObjectiveRanker.first_front(evaluated, index)
            record.front_size = len(front)
            record.front = np.vstack([ind.fitness.objectives for ind in front])
        return record


__all__ = [
    "SubpopulationRecord",
    "GenerationRecord",
    "StatisticsObserver",
    "Statistics",
    "SimpleStatistics",
    "MultiObjectiveStatistics",
    "best_and_worst",
    "best_first",
]
