"""
Fitness values attached to individuals.

Three variants are provided:
    - SimpleFitness: one scalar, maximized by default;
    - MultiObjectiveFitness: a vector of objectives compared by Pareto dominance;
    - NSGA2Fitness: adds the rank/sparsity pair written by the NSGA-II ranker.

Every fitness can also carry coevolution *trials*: the best trial is kept at
index 0 and ``context`` holds the co-participants that produced it.
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

import numpy as np

from evobreed.foundation.exceptions import FitnessTypeError
from evobreed.foundation.parameters import push

if TYPE_CHECKING:
    from evobreed.engine.state import EvolutionState

    from .individual import Individual


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


class Fitness(ABC):
    """Base class of all fitness variants."""

    maximize_trials: bool = True

    default_base = "fitness"

    def __init__(self) -> None:
        self.trials: list[float] | None = None
        self.context: list[Individual | None] | None = None
        self._lock = threading.Lock()

    def setup(self, state: EvolutionState, base: str) -> None:
        """Read prototype parameters; the configured instance is cloned for every individual."""

    # ------------------------------------------------------------------
    # Comparison contract
    # ------------------------------------------------------------------
    @property
    @abstractmethod
    def value(self) -> float:
        """Scalar summary used for statistics and median ordering."""

    def is_ideal(self) -> bool:
        return False

    @abstractmethod
    def better_than(self, other: Fitness) -> bool:
        """True when self is strictly fitter than ``other``."""

    @abstractmethod
    def equivalent_to(self, other: Fitness) -> bool: ...

    def compare_to(self, other: Fitness) -> int:
        """Return -1 if self is better, 1 if other is better, else 0."""
        if self.better_than(other):
            return -1
        if other.better_than(self):
            return 1
        return 0

    def _check_same_kind(self, other: Fitness) -> None:
        if not isinstance(other, type(self)) and not isinstance(self, type(other)):
            raise FitnessTypeError(
                f"Cannot compare {type(self).__name__} with {type(other).__name__}.",
                "Use the same fitness type for every individual of a subpopulation",
            )

    # ------------------------------------------------------------------
    # Trials and context
    # ------------------------------------------------------------------
    def trial_better(self, a: float, b: float) -> bool:
        return a > b if self.maximize_trials else a < b

    def best_trial(self) -> float | None:
        if not self.trials:
            return None
        return self.trials[0]

    def reset_trials(self) -> None:
        with self._lock:
            self.trials = []
            self.context = None

    def record_trial(
        self,
        trial: float,
        group: Sequence[Individual] | None = None,
        index: int | None = None,
    ) -> bool:
        """
        Append one trial outcome, keeping the best trial at index 0.

        The context is replaced by ``group`` only when the list was empty or
        ``trial`` is strictly better than the current best. Returns True when
        the trial became the new best.
        """
        trial = float(trial)
        with self._lock:
            if self.trials is None:
                self.trials = []
            if not self.trials or self.trial_better(trial, self.trials[0]):
                if self.trials:
                    self.trials.append(self.trials[0])
                    self.trials[0] = trial
                else:
                    self.trials.append(trial)
                if group is not None and index is not None:
                    self._set_context_locked(group, index)
                return True
            self.trials.append(trial)
            return False

    def set_context(self, group: Sequence[Individual], index: int) -> None:
        with self._lock:
            self._set_context_locked(group, index)

    def _set_context_locked(self, group: Sequence[Individual], index: int) -> None:
        context: list[Individual | None] = []
        for i, ind in enumerate(group):
            if i == index:
                context.append(None)
                continue
            dup = ind.deep_duplicate()
            dup.fitness.context = None
            context.append(dup)
        self.context = context

    def context_is_better_than(self, other: Fitness) -> bool:
        mine, theirs = self.best_trial(), other.best_trial()
        if mine is None:
            return False
        if theirs is None:
            return True
        return self.trial_better(mine, theirs)

    def merge(self, other: Fitness) -> None:
        """Fold the trials of ``other`` into this fitness."""
        if other.trials is None:
            return
        adopt = other.context_is_better_than(self)
        with self._lock:
            mine = list(self.trials or [])
            theirs = list(other.trials)
            if adopt or not mine:
                self.trials = theirs + mine
                self.context = list(other.context) if other.context is not None else None
            else:
                self.trials = mine + theirs

    # ------------------------------------------------------------------
    # Multi-test evaluation
    # ------------------------------------------------------------------
    def set_to_best_of(self, fitnesses: Sequence[Fitness]) -> None:
        best = fitnesses[0]
        for f in fitnesses[1:]:
            if f.better_than(best):
                best = f
        self._assign_from(best)

    @abstractmethod
    def set_to_mean_of(self, fitnesses: Sequence[Fitness]) -> None: ...

    def set_to_median_of(self, fitnesses: Sequence[Fitness]) -> None:
        ordered = sorted(fitnesses, key=lambda f: f.value)
        self._assign_from(ordered[len(ordered) // 2])

    @abstractmethod
    def _assign_from(self, other: Fitness) -> None: ...

    # ------------------------------------------------------------------
    def clone(self) -> Fitness:
        dup = copy.copy(self)
        dup._lock = threading.Lock()
        dup.trials = list(self.trials) if self.trials is not None else None
        dup.context = list(self.context) if self.context is not None else None
        return dup

    def __getstate__(self) -> dict[str, Any]:
        state = self.__dict__.copy()
        state.pop("_lock", None)
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__dict__.update(state)
        self._lock = threading.Lock()

    def describe(self) -> str:
        return f"{self.value}"


class SimpleFitness(Fitness):
    """Single scalar fitness."""

    def __init__(self, value: float = 0.0, is_ideal: bool = False, maximize: bool = True) -> None:
        super().__init__()
        self._value = float(value)
        self._is_ideal = bool(is_ideal)
        self.maximize = bool(maximize)
        self.maximize_trials = self.maximize

    def setup(self, state: EvolutionState, base: str) -> None:
        params = state.parameters
        self.maximize = params.get_boolean(push(base, "maximize"), True, push(self.default_base, "maximize"))
        self.maximize_trials = self.maximize

    @property
    def value(self) -> float:
        return self._value

    def set_fitness(self, value: float, is_ideal: bool = False) -> None:
        value = float(value)
        if not np.isfinite(value):
            _logger().warning("Non-finite fitness %r replaced by the worst representable value.", value)
            value = -np.finfo(float).max if self.maximize else np.finfo(float).max
        self._value = value
        self._is_ideal = bool(is_ideal)

    def is_ideal(self) -> bool:
        return self._is_ideal

    def better_than(self, other: Fitness) -> bool:
        self._check_same_kind(other)
        if self.maximize:
            return self._value > other.value
        return self._value < other.value

    def equivalent_to(self, other: Fitness) -> bool:
        self._check_same_kind(other)
        return self._value == other.value

    def set_to_mean_of(self, fitnesses: Sequence[Fitness]) -> None:
        values = [f.value for f in fitnesses]
        self._value = float(np.mean(values))
        self._is_ideal = all(f.is_ideal() for f in fitnesses)

    def _assign_from(self, other: Fitness) -> None:
        if not isinstance(other, SimpleFitness):
            raise FitnessTypeError(f"Expected SimpleFitness, got {type(other).__name__}.")
        self._value = other._value
        self._is_ideal = other._is_ideal

    def __repr__(self) -> str:
        return f"SimpleFitness(value={self._value!r}, is_ideal={self._is_ideal})"


class MultiObjectiveFitness(Fitness):
    """
    Vector of objectives compared by Pareto dominance.

    Args:
        num_objectives: Number of objectives.
        maximize: One flag for all objectives, or one flag per objective.
        min_objectives: Lower bound(s); also the worst value of maximized objectives.
        max_objectives: Upper bound(s); also the worst value of minimized objectives.
    """

    def __init__(
        self,
        num_objectives: int = 2,
        maximize: bool | Sequence[bool] = True,
        min_objectives: float | Sequence[float] = 0.0,
        max_objectives: float | Sequence[float] = 1.0,
    ) -> None:
        super().__init__()
        if num_objectives < 1:
            raise FitnessTypeError("num_objectives must be >= 1.")
        self.num_objectives = int(num_objectives)
        self.maximize = np.broadcast_to(np.asarray(maximize, dtype=bool), (num_objectives,)).copy()
        self.min_objectives = np.broadcast_to(np.asarray(min_objectives, dtype=float), (num_objectives,)).copy()
        self.max_objectives = np.broadcast_to(np.asarray(max_objectives, dtype=float), (num_objectives,)).copy()
        if np.any(self.max_objectives <= self.min_objectives):
            raise FitnessTypeError("Every max_objectives bound must exceed its min_objectives bound.")
        self.objectives: np.ndarray | None = None

    def setup(self, state: EvolutionState, base: str) -> None:
        """
        Read ``num-objectives`` and per-objective ``maximize``, ``min-objective``
        and ``max-objective``; ``<name>.i`` overrides ``<name>`` for objective i.
        """
        params = state.parameters
        default = self.default_base
        n = params.get_int(
            push(base, "num-objectives"), self.num_objectives, push(default, "num-objectives"), min_value=1
        )
        maximize = params.get_boolean(push(base, "maximize"), True, push(default, "maximize"))
        lo = params.get_double(push(base, "min-objective"), 0.0, push(default, "min-objective"))
        hi = params.get_double(push(base, "max-objective"), 1.0, push(default, "max-objective"))
        self.num_objectives = n
        self.maximize = np.empty(n, dtype=bool)
        self.min_objectives = np.empty(n, dtype=float)
        self.max_objectives = np.empty(n, dtype=float)
        for i in range(n):
            self.maximize[i] = params.get_boolean(push(base, "maximize", i), maximize, push(default, "maximize", i))
            self.min_objectives[i] = params.get_double(
                push(base, "min-objective", i), lo, push(default, "min-objective", i)
            )
            self.max_objectives[i] = params.get_double(
                push(base, "max-objective", i), hi, push(default, "max-objective", i)
            )
            if self.max_objectives[i] <= self.min_objectives[i]:
                state.output.error(
                    f"max-objective {i} must be greater than min-objective {i}",
                    push(base, "max-objective", i),
                )
        self.objectives = None

    @property
    def value(self) -> float:
        if self.objectives is None:
            return float("nan")
        return float(np.max(self.objectives))

    def worst_objectives(self) -> np.ndarray:
        return np.where(self.maximize, self.min_objectives, self.max_objectives)

    def set_objectives(self, values: Sequence[float] | np.ndarray) -> None:
        arr = np.array(values, dtype=float).reshape(-1)
        if arr.shape[0] != self.num_objectives:
            raise FitnessTypeError(
                f"Expected {self.num_objectives} objectives, got {arr.shape[0]}.",
                "Match the problem's output to the fitness 'num-objectives' parameter",
            )
        bad = ~np.isfinite(arr)
        if np.any(bad):
            _logger().warning("Non-finite objective values replaced by the worst bound: %s", arr)
            arr[bad] = self.worst_objectives()[bad]
        self.objectives = arr

    def oriented(self) -> np.ndarray:
        """Objectives with every column turned into a maximization."""
        if self.objectives is None:
            raise FitnessTypeError("Objectives have not been set.")
        return np.where(self.maximize, self.objectives, -self.objectives)

    def _check_compatible(self, other: Fitness) -> MultiObjectiveFitness:
        if not isinstance(other, MultiObjectiveFitness):
            raise FitnessTypeError(f"Cannot compare {type(self).__name__} with {type(other).__name__}.")
        if other.num_objectives != self.num_objectives:
            raise FitnessTypeError(
                f"Objective counts differ ({self.num_objectives} vs {other.num_objectives})."
            )
        if not np.array_equal(other.maximize, self.maximize):
            raise FitnessTypeError("Objective directions differ between fitnesses.")
        return other

    def pareto_dominates(self, other: Fitness) -> bool:
        other = self._check_compatible(other)
        a, b = self.oriented(), other.oriented()
        return bool(np.all(a >= b) and np.any(a > b))

    def better_than(self, other: Fitness) -> bool:
        return self.pareto_dominates(other)

    def equivalent_to(self, other: Fitness) -> bool:
        other = self._check_compatible(other)
        return not self.pareto_dominates(other) and not other.pareto_dominates(self)

    def sum_squared_objective_distance(self, other: MultiObjectiveFitness) -> float:
        other = self._check_compatible(other)
        diff = self.objectives - other.objectives
        return float(np.sum(diff * diff))

    def manhattan_objective_distance(self, other: MultiObjectiveFitness) -> float:
        other = self._check_compatible(other)
        return float(np.sum(np.abs(self.objectives - other.objectives)))

    def set_to_mean_of(self, fitnesses: Sequence[Fitness]) -> None:
        stacked = np.vstack([self._check_compatible(f).objectives for f in fitnesses])
        self.objectives = stacked.mean(axis=0)

    def set_to_median_of(self, fitnesses: Sequence[Fitness]) -> None:
        stacked = np.vstack([self._check_compatible(f).objectives for f in fitnesses])
        self.objectives = np.median(stacked, axis=0)

    def _assign_from(self, other: Fitness) -> None:
        other = self._check_compatible(other)
        self.objectives = None if other.objectives is None else other.objectives.copy()

    def clone(self) -> MultiObjectiveFitness:
        dup = super().clone()
        if self.objectives is not None:
            dup.objectives = self.objectives.copy()
        return dup

    def describe(self) -> str:
        return "[" + " ".join(f"{v:g}" for v in (self.objectives if self.objectives is not None else [])) + "]"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(objectives={self.objectives!r})"


class NSGA2Fitness(MultiObjectiveFitness):
    """
    Multi-objective fitness carrying NSGA-II rank and sparsity.

    ``rank`` and ``sparsity`` stay None until a ranking pass writes them; until
    then comparisons fall back to Pareto dominance on the raw objectives.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.rank: int | None = None
        self.sparsity: float | None = None

    @property
    def is_ranked(self) -> bool:
        return self.rank is not None and self.sparsity is not None

    def clear_ranking(self) -> None:
        self.rank = None
        self.sparsity = None

    def better_than(self, other: Fitness) -> bool:
        other = self._check_compatible(other)
        if isinstance(other, NSGA2Fitness) and self.is_ranked and other.is_ranked:
            if self.rank != other.rank:
                return self.rank < other.rank
            return self.sparsity > other.sparsity
        return self.pareto_dominates(other)

    def equivalent_to(self, other: Fitness) -> bool:
        other = self._check_compatible(other)
        if isinstance(other, NSGA2Fitness) and self.is_ranked and other.is_ranked:
            return self.rank == other.rank and self.sparsity == other.sparsity
        return super().equivalent_to(other)

    def set_objectives(self, values: Sequence[float] | np.ndarray) -> None:
        super().set_objectives(values)
        self.clear_ranking()

    def describe(self) -> str:
        return f"{super().describe()} rank={self.rank} sparsity={self.sparsity}"


__all__ = ["Fitness", "SimpleFitness", "MultiObjectiveFitness", "NSGA2Fitness"]
