"""
Selection methods: leaves of the breeding graph.

Selection methods return *references* into the current subpopulation. Any
pipeline that changes an individual obtained from a selection method must
deep-duplicate it first (see BreedingPipeline.pull).
"""

from __future__ import annotations

import functools
import math
from typing import TYPE_CHECKING, Sequence

import numpy as np

from evobreed.core.fitness import NSGA2Fitness, SimpleFitness
from evobreed.foundation.exceptions import FatalError
from evobreed.foundation.parameters import push

from .source import BreedingSource

if TYPE_CHECKING:
    from evobreed.core.individual import Individual
    from evobreed.engine.state import EvolutionState


def _oriented_values(inds: Sequence[Individual]) -> np.ndarray:
    """Fitness values turned so that higher is better."""
    values = np.array([ind.fitness.value for ind in inds], dtype=float)
    if inds and isinstance(inds[0].fitness, SimpleFitness) and not inds[0].fitness.maximize:
        values = -values
    return values


def _nonnegative_values(inds: Sequence[Individual], method: str) -> np.ndarray:
    values = np.array([ind.fitness.value for ind in inds], dtype=float)
    if np.any(values < 0) or not np.all(np.isfinite(values)):
        raise FatalError(
            f"{method} requires finite, non-negative fitness values.",
            "Use tournament selection, or shift the problem's fitness to be >= 0",
        )
    return values


class SelectionMethod(BreedingSource):
    """Picks one individual index at a time from the current subpopulation."""

    default_base = "select"

    def produce_index(self, subpopulation: int, state: EvolutionState, thread: int) -> int:
        raise NotImplementedError

    def produce(
        self,
        min_n: int,
        max_n: int,
        subpopulation: int,
        inds: list[Individual],
        state: EvolutionState,
        thread: int,
    ) -> int:
        n = min(max(1, min_n), max_n)
        members = state.population[subpopulation].individuals
        for _ in range(n):
            inds.append(members[self.produce_index(subpopulation, state, thread)])
        return n


class RandomSelection(SelectionMethod):
    """Uniform random pick."""

    default_base = "random"

    def produce_index(self, subpopulation: int, state: EvolutionState, thread: int) -> int:
        return int(state.random[thread].integers(len(state.population[subpopulation])))


class TournamentSelection(SelectionMethod):
    """
    k-way tournament with replacement.

    ``size`` may be fractional: with size 2.3 a tournament has 3 contestants
    with probability 0.3 and 2 otherwise. Ties keep the first contestant drawn.
    """

    default_base = "tournament"

    def __init__(self, size: float = 2.0, pick_worst: bool = False) -> None:
        super().__init__()
        if size < 1.0:
            raise ValueError("Tournament size must be >= 1.")
        self.size = float(size)
        self.pick_worst = bool(pick_worst)

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        params = state.parameters
        with state.output.collect(base):
            self.size = params.get_double(push(base, "size"), self.size, push(self.default_base, "size"), min_value=1.0)
        with state.output.collect(base):
            self.pick_worst = params.get_boolean(
                push(base, "pick-worst"), self.pick_worst, push(self.default_base, "pick-worst")
            )

    def tournament_size(self, rng: np.random.Generator) -> int:
        whole = int(math.floor(self.size))
        fraction = self.size - whole
        if fraction > 0.0 and rng.random() < fraction:
            return whole + 1
        return whole

    def produce_index(self, subpopulation: int, state: EvolutionState, thread: int) -> int:
        members = state.population[subpopulation].individuals
        rng = state.random[thread]
        n = len(members)
        size = self.tournament_size(rng)
        best = int(rng.integers(n))
        for _ in range(size - 1):
            j = int(rng.integers(n))
            if self.pick_worst:
                if members[best].fitness.better_than(members[j].fitness):
                    best = j
            elif members[j].fitness.better_than(members[best].fitness):
                best = j
        return best


class FitnessProportionateSelection(SelectionMethod):
    """Roulette-wheel selection on non-negative ``Fitness.value``."""

    default_base = "fitness-proportionate"

    def __init__(self) -> None:
        super().__init__()
        self._cumulative: np.ndarray | None = None

    def prepare_to_produce(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        values = _nonnegative_values(state.population[subpopulation].individuals, type(self).__name__)
        self._cumulative = np.cumsum(values)

    def finish_producing(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        self._cumulative = None

    def produce_index(self, subpopulation: int, state: EvolutionState, thread: int) -> int:
        if self._cumulative is None:
            self.prepare_to_produce(state, subpopulation, thread)
        cumulative = self._cumulative
        rng = state.random[thread]
        total = cumulative[-1]
        if total <= 0.0:
            return int(rng.integers(cumulative.shape[0]))
        idx = int(np.searchsorted(cumulative, rng.random() * total, side="right"))
        return min(idx, cumulative.shape[0] - 1)


class SUSSelection(SelectionMethod):
    """
    Stochastic universal sampling.

    One random offset places evenly spaced pointers over the cumulative fitness
    of the (optionally shuffled) subpopulation; every produce call advances to
    the next pointer.
    """

    default_base = "sus"

    def __init__(self, shuffle: bool = True) -> None:
        super().__init__()
        self.shuffle = shuffle
        self._order: np.ndarray | None = None
        self._cumulative: np.ndarray | None = None
        self._step = 0.0
        self._pointer = 0.0
        self._last = 0

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        with state.output.collect(base):
            self.shuffle = state.parameters.get_boolean(
                push(base, "shuffle"), self.shuffle, push(self.default_base, "shuffle")
            )

    def prepare_to_produce(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        members = state.population[subpopulation].individuals
        values = _nonnegative_values(members, type(self).__name__)
        rng = state.random[thread]
        order = np.arange(len(members))
        if self.shuffle:
            rng.shuffle(order)
        self._order = order
        self._cumulative = np.cumsum(values[order])
        self._step = self._cumulative[-1] / len(members)
        self._pointer = rng.random() * self._step
        self._last = 0

    def finish_producing(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        self._order = None
        self._cumulative = None

    def produce_index(self, subpopulation: int, state: EvolutionState, thread: int) -> int:
        if self._cumulative is None:
            self.prepare_to_produce(state, subpopulation, thread)
        cumulative, order = self._cumulative, self._order
        if self._step <= 0.0:
            return int(order[state.random[thread].integers(order.shape[0])])
        if self._pointer >= cumulative[-1]:
            self._pointer -= cumulative[-1]
            self._last = 0
        while self._last < cumulative.shape[0] - 1 and cumulative[self._last] <= self._pointer:
            self._last += 1
        self._pointer += self._step
        return int(order[self._last])


class BoltzmannSelection(SelectionMethod):
    """
    Softmax selection over fitness values.

        p_i = exp(f_i / T) / sum_j exp(f_j / T)
    """

    default_base = "boltzmann"

    def __init__(self, temperature: float = 1.0) -> None:
        super().__init__()
        self.temperature = float(temperature)
        self._probs: np.ndarray | None = None

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        key = push(base, "temperature")
        with state.output.collect(base):
            temperature = state.parameters.get_double(key, self.temperature, push(self.default_base, "temperature"))
            if temperature <= 0.0:
                state.output.error("Temperature must be positive", key)
            else:
                self.temperature = temperature

    def prepare_to_produce(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        f = _oriented_values(state.population[subpopulation].individuals)
        # Numerically stable softmax
        exp_f = np.exp((f - f.max()) / self.temperature)
        self._probs = exp_f / exp_f.sum()

    def finish_producing(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        self._probs = None

    def produce_index(self, subpopulation: int, state: EvolutionState, thread: int) -> int:
        if self._probs is None:
            self.prepare_to_produce(state, subpopulation, thread)
        return int(state.random[thread].choice(self._probs.shape[0], p=self._probs))


class BestSelection(SelectionMethod):
    """
    Truncation selection.

    Keeps the best ``n`` (or ``n-fraction`` of the subpopulation), or the worst
    with ``pick-worst``, and runs a tournament of ``size`` among them. Without
    ``n`` the pool is the first non-dominated front: rank 0 for ranked NSGA-II
    fitness, otherwise every individual nobody is better than.
    """

    default_base = "best"

    def __init__(
        self, n: int | None = None, n_fraction: float | None = None, pick_worst: bool = False, size: float = 1.0
    ) -> None:
        super().__init__()
        self.n = n
        self.n_fraction = n_fraction
        self.pick_worst = pick_worst
        self.size = float(size)
        self._pool: list[int] | None = None
        self._tournament = TournamentSelection(self.size)

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        params = state.parameters
        default = self.default_base
        has_n = params.exists(push(base, "n"), push(default, "n"))
        has_fraction = params.exists(push(base, "n-fraction"), push(default, "n-fraction"))
        if has_n and has_fraction:
            state.output.error("Set either n or n-fraction, not both", push(base, "n"))
        with state.output.collect(base):
            if has_n:
                self.n = params.get_int(push(base, "n"), fallback=push(default, "n"), min_value=1)
            elif has_fraction:
                fraction = params.get_double(push(base, "n-fraction"), fallback=push(default, "n-fraction"))
                if not 0.0 < fraction <= 1.0:
                    state.output.error("n-fraction must be within (0, 1]", push(base, "n-fraction"))
                else:
                    self.n_fraction = fraction
        with state.output.collect(base):
            self.pick_worst = params.get_boolean(push(base, "pick-worst"), self.pick_worst, push(default, "pick-worst"))
            self.size = params.get_double(push(base, "size"), self.size, push(default, "size"), min_value=1.0)
        self._tournament = TournamentSelection(self.size)

    def _front_pool(self, members: Sequence[Individual]) -> list[int]:
        if all(isinstance(m.fitness, NSGA2Fitness) and m.fitness.is_ranked for m in members):
            return [i for i, m in enumerate(members) if m.fitness.rank == 0]
        pool = []
        for i, a in enumerate(members):
            if not any(b.fitness.better_than(a.fitness) for j, b in enumerate(members) if j != i):
                pool.append(i)
        return pool

    def prepare_to_produce(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        members = state.population[subpopulation].individuals
        if self.n is None and self.n_fraction is None:
            self._pool = self._front_pool(members)
            return
        count = self.n if self.n is not None else max(1, int(self.n_fraction * len(members)))
        count = min(count, len(members))
        cmp = functools.cmp_to_key(lambda a, b: members[a].fitness.compare_to(members[b].fitness))
        ordered = sorted(range(len(members)), key=cmp)
        self._pool = ordered[-count:][::-1] if self.pick_worst else ordered[:count]

    def finish_producing(self, state: EvolutionState, subpopulation: int, thread: int) -> None:
        self._pool = None

    def produce_index(self, subpopulation: int, state: EvolutionState, thread: int) -> int:
        if self._pool is None:
            self.prepare_to_produce(state, subpopulation, thread)
        pool = self._pool
        members = state.population[subpopulation].individuals
        rng = state.random[thread]
        size = self._tournament.tournament_size(rng)
        best = pool[int(rng.integers(len(pool)))]
        for _ in range(size - 1):
            j = pool[int(rng.integers(len(pool)))]
            if self.pick_worst:
                if members[best].fitness.better_than(members[j].fitness):
                    best = j
            elif members[j].fitness.better_than(members[best].fitness):
                best = j
        return best


__all__ = [
    "SelectionMethod",
    "RandomSelection",
    "TournamentSelection",
    "FitnessProportionateSelection",
    "SUSSelection",
    "BoltzmannSelection",
    "BestSelection",
]
