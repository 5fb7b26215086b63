"""
Competitive (single-population) coevolution.

Individuals of subpopulation 0 play against each other through a
GroupedProblem. Styles:

    single-elim-tournament  pairwise knockout rounds on one thread; trials count victories
    round-robin             everybody plays everybody once
    rand-1-way              each individual meets ``group-size`` random opponents;
                            only the individual itself is updated
    rand-2-way              like rand-1-way, but opponents are updated too while
                            they still need games (or always with ``over-eval``)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

import numpy as np

from evobreed.core.problem import GroupedProblem
from evobreed.foundation.exceptions import FatalError
from evobreed.foundation.parameters import push

from .evaluator import Evaluator, partition

if TYPE_CHECKING:
    from evobreed.core.individual import Individual
    from evobreed.engine.state import EvolutionState


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


def _victories(ind: Individual) -> float:
    return float(sum(ind.fitness.trials or ()))


class CompetitiveEvaluator(Evaluator):
    """Evaluates subpopulation 0 by competition between its members."""

    problem_kind = GroupedProblem
    STYLES = ("single-elim-tournament", "round-robin", "rand-1-way", "rand-2-way")

    def __init__(
        self,
        problem: GroupedProblem | None = None,
        style: str = "round-robin",
        group_size: int = 1,
        over_eval: bool = False,
    ) -> None:
        super().__init__(problem)
        self.style = style
        self.group_size = group_size
        self.over_eval = over_eval

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        params = state.parameters
        default = self.default_base
        key = push(base, "style")
        with state.output.collect(base):
            style = params.get_string(key, fallback=push(default, "style")).lower()
            if style not in self.STYLES:
                state.output.error(
                    f"Unknown competition style '{style}'; expected one of {', '.join(self.STYLES)}", key
                )
            else:
                self.style = style
        if self.style in ("rand-1-way", "rand-2-way"):
            with state.output.collect(base):
                self.group_size = params.get_int(
                    push(base, "group-size"), fallback=push(default, "group-size"), min_value=1
                )
        with state.output.collect(base):
            self.over_eval = params.get_boolean(push(base, "over-eval"), self.over_eval, push(default, "over-eval"))

    @staticmethod
    def randomize_order(state: EvolutionState, individuals: list[Individual]) -> None:
        """Shuffle in place with the thread-0 random stream."""
        order = state.random[0].permutation(len(individuals))
        individuals[:] = [individuals[i] for i in order]

    def evaluate_population(self, state: EvolutionState) -> None:
        population = state.population
        individuals = population[0].individuals
        if len(individuals) < 2:
            raise FatalError("Competitive evaluation needs at least two individuals in subpopulation 0.")
        self.randomize_order(state, individuals)
        assess = [True] * len(population)
        single = self.style == "single-elim-tournament"
        prob: GroupedProblem = self.problem.clone()
        prob.preprocess_population(state, population, assess, single)
        if single:
            games = state.run_workers(lambda t: self.single_elimination(state, individuals, prob), 1, "evaluation")
        else:
            threads = state.config.eval_threads
            plan = partition(len(individuals), threads)
            chunk_eval = {
                "round-robin": self.round_robin_chunk,
                "rand-1-way": self.random_one_way_chunk,
                "rand-2-way": self.random_two_way_chunk,
            }[self.style]

            def work(thread: int) -> int:
                p = prob.clone()
                p.prepare_to_evaluate(state, thread)
                played = chunk_eval(state, plan[thread], individuals, p, thread)
                p.finish_evaluating(state, thread)
                return played

            games = state.run_workers(work, threads, "evaluation")
        prob.postprocess_population(state, population, assess, single)
        self.num_evaluations += sum(games)
        _logger().debug("Generation %d: %d competition(s) played.", state.generation, sum(games))

    def single_elimination(self, state: EvolutionState, individuals: Sequence[Individual], prob: GroupedProblem) -> int:
        tourn = list(individuals)
        rng = state.random[0]
        updates = [True, True]
        subpops = [0, 0]
        played = 0
        n = len(tourn)
        while n > 1:
            for x in range(n // 2):
                a, b = tourn[x], tourn[n - x - 1]
                before_a, before_b = _victories(a), _victories(b)
                prob.evaluate(state, [a, b], updates, True, subpops, 0)
                played += 1
                gain_a = _victories(a) - before_a
                gain_b = _victories(b) - before_b
                if gain_b > gain_a or (gain_b == gain_a and rng.random() < 0.5):
                    tourn[x], tourn[n - x - 1] = b, a
            n = 1 + n // 2 if n % 2 else n // 2
        return played

    def round_robin_chunk(
        self,
        state: EvolutionState,
        chunk: Sequence[int],
        individuals: Sequence[Individual],
        prob: GroupedProblem,
        thread: int,
    ) -> int:
        updates = [True, True]
        subpops = [0, 0]
        played = 0
        for x in chunk:
            for y in range(x + 1, len(individuals)):
                prob.evaluate(state, [individuals[x], individuals[y]], updates, False, subpops, thread)
                played += 1
        return played

    def random_one_way_chunk(
        self,
        state: EvolutionState,
        chunk: Sequence[int],
        individuals: Sequence[Individual],
        prob: GroupedProblem,
        thread: int,
    ) -> int:
        rng = state.random[thread]
        n = len(individuals)
        updates = [True, False]
        subpops = [0, 0]
        count = min(self.group_size, n - 1)
        if count < self.group_size:
            state.output.warn_once(f"group-size {self.group_size} exceeds the {n - 1} available opponents")
        played = 0
        for x in chunk:
            others = np.delete(np.arange(n), x)
            for y in rng.choice(others, size=count, replace=False):
                prob.evaluate(state, [individuals[x], individuals[int(y)]], updates, False, subpops, thread)
                played += 1
        return played

    def random_two_way_chunk(
        self,
        state: EvolutionState,
        chunk: Sequence[int],
        individuals: Sequence[Individual],
        prob: GroupedProblem,
        thread: int,
    ) -> int:
        rng = state.random[thread]
        n = len(individuals)
        met = np.zeros(n, dtype=int)
        subpops = [0, 0]
        played = 0

        def play(x: int, y: int) -> None:
            nonlocal played
            update_y = bool(met[y] < self.group_size or self.over_eval)
            prob.evaluate(state, [individuals[x], individuals[y]], [True, update_y], False, subpops, thread)
            played += 1
            met[x] += 1
            if update_y:
                met[y] += 1

        for x in chunk:
            later = n - x - 1
            need = self.group_size - met[x]
            if need <= 0:
                continue
            if later <= need:
                opponents = range(x + 1, n)
            else:
                opponents = (x + 1 + rng.choice(later, size=need, replace=False)).tolist()
            for y in opponents:
                play(x, int(y))
            while met[x] < self.group_size:
                y = int(rng.integers(x)) if x > 0 else 1 + int(rng.integers(n - 1))
                play(x, y)
        return played


__all__ = ["CompetitiveEvaluator"]
