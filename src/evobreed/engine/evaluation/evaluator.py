"""
Population evaluation.

``SimpleEvaluator`` collects every individual whose ``evaluated`` flag is
False, splits that work deterministically across the evaluation threads and
evaluates each chunk with the thread's own problem clone. Results are written
back only after every thread joined without error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from evobreed.core.fitness import Fitness
from evobreed.core.problem import Problem, SimpleProblem
from evobreed.engine.registry import get_problem_registry
from evobreed.foundation.parameters import push

if TYPE_CHECKING:
    from evobreed.core.individual import Individual
    from evobreed.engine.state import EvolutionState


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


def partition(n: int, threads: int, chunk_size: int | None = None) -> list[list[int]]:
    """
    Split ``range(n)`` across ``threads``.

    Without ``chunk_size`` every thread gets one contiguous slice of
    ``n // threads`` items and the first ``n % threads`` slices one more.
    With ``chunk_size`` consecutive chunks are dealt round-robin.
    """
    plan: list[list[int]] = [[] for _ in range(threads)]
    if chunk_size is None:
        base, slop = divmod(n, threads)
        start = 0
        for t in range(threads):
            count = base + (1 if t < slop else 0)
            plan[t] = list(range(start, start + count))
            start += count
        return plan
    for k, start in enumerate(range(0, n, chunk_size)):
        plan[k % threads].extend(range(start, min(start + chunk_size, n)))
    return plan


class Evaluator:
    """Base evaluator: owns the problem prototype."""

    default_base = "eval"
    problem_kind: type[Problem] = Problem

    def __init__(self, problem: Problem | None = None) -> None:
        self.problem = problem
        self.num_evaluations = 0

    def setup(self, state: EvolutionState, base: str) -> None:
        key = push(base, "problem")
        with state.output.collect(base):
            if self.problem is None:
                self.problem = state.parameters.get_named_instance(key, get_problem_registry())
        if self.problem is None:
            return
        if not isinstance(self.problem, self.problem_kind):
            state.output.error(
                f"{type(self).__name__} needs a {self.problem_kind.__name__}, got {type(self.problem).__name__}", key
            )
            return
        with state.output.collect(key):
            self.problem.setup(state, key)

    def evaluate_population(self, state: EvolutionState) -> None:
        raise NotImplementedError

    def run_complete(self, state: EvolutionState) -> str | None:
        """A message when the run may stop early, else None."""
        return None


class SimpleEvaluator(Evaluator):
    """
    Evaluates every unevaluated individual with a SimpleProblem.

    Parameters:
        num-tests: evaluations per individual (>= 1), combined by ``merge``
        merge: ``mean`` | ``median`` | ``best``
        chunk-size: ``auto`` or a positive integer
        clone-problem: clone the problem per thread (false needs one thread)
    """

    problem_kind = SimpleProblem
    MERGES = ("mean", "median", "best")

    def __init__(
        self,
        problem: Problem | None = None,
        num_tests: int = 1,
        merge: str = "mean",
        chunk_size: int | None = None,
        clone_problem: bool = True,
    ) -> None:
        super().__init__(problem)
        self.num_tests = num_tests
        self.merge = merge
        self.chunk_size = chunk_size
        self.clone_problem = clone_problem

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        params = state.parameters
        default = self.default_base
        with state.output.collect(base):
            self.num_tests = params.get_int(
                push(base, "num-tests"), self.num_tests, push(default, "num-tests"), min_value=1
            )
        key = push(base, "merge")
        with state.output.collect(base):
            merge = params.get_string(key, self.merge, push(default, "merge")).lower()
            if merge not in self.MERGES:
                state.output.error(f"Unknown merge '{merge}'; expected one of {', '.join(self.MERGES)}", key)
            else:
                self.merge = merge
        key = push(base, "chunk-size")
        with state.output.collect(base):
            raw = params.get_string(key, "auto", push(default, "chunk-size"))
            if raw.lower() == "auto":
                self.chunk_size = None
            else:
                self.chunk_size = params.get_int(key, fallback=push(default, "chunk-size"), min_value=1)
        key = push(base, "clone-problem")
        with state.output.collect(base):
            self.clone_problem = params.get_boolean(key, self.clone_problem, push(default, "clone-problem"))
            if not self.clone_problem and state.config.eval_threads > 1:
                state.output.error("clone-problem may only be false with a single evaluation thread", key)

    def _merge(self, fitnesses: list[Fitness]) -> Fitness:
        merged = fitnesses[0].clone()
        if self.merge == "best":
            merged.set_to_best_of(fitnesses)
        elif self.merge == "median":
            merged.set_to_median_of(fitnesses)
        else:
            merged.set_to_mean_of(fitnesses)
        return merged

    def evaluate_individual(
        self,
        problem: SimpleProblem,
        ind: Individual,
        subpopulation: int,
        state: EvolutionState,
        thread: int,
    ) -> tuple[Fitness, bool]:
        """Evaluate a shallow duplicate of ``ind``; the original is untouched."""
        fitnesses = []
        evaluated = True
        for _ in range(self.num_tests):
            trial = ind.shallow_duplicate()
            trial.evaluated = False
            problem.evaluate(state, trial, subpopulation, thread)
            if not trial.evaluated:
                state.output.warn_once(f"{type(problem).__name__}.evaluate() did not set evaluated=True")
                evaluated = False
            fitnesses.append(trial.fitness)
        if len(fitnesses) == 1:
            return fitnesses[0], evaluated
        return self._merge(fitnesses), evaluated

    def _pending(self, state: EvolutionState) -> list[tuple[int, int]]:
        return [
            (s, i)
            for s, subpop in enumerate(state.population)
            for i, ind in enumerate(subpop)
            if not ind.evaluated
        ]

    def evaluate_population(self, state: EvolutionState) -> None:
        pending = self._pending(state)
        if not pending:
            _logger().debug("Generation %d: nothing to evaluate.", state.generation)
            return
        threads = state.config.eval_threads
        plan = partition(len(pending), threads, self.chunk_size)
        population = state.population

        def work(thread: int) -> list[tuple[int, int, Fitness, bool]]:
            problem = self.problem.clone() if self.clone_problem else self.problem
            problem.prepare_to_evaluate(state, thread)
            out = []
            for k in plan[thread]:
                s, i = pending[k]
                fitness, evaluated = self.evaluate_individual(problem, population[s][i], s, state, thread)
                out.append((s, i, fitness, evaluated))
            problem.finish_evaluating(state, thread)
            return out

        results = state.run_workers(work, threads, "evaluation")
        for chunk in results:
            for s, i, fitness, evaluated in chunk:
                ind = population[s][i]
                ind.fitness = fitness
                ind.evaluated = evaluated
        self.num_evaluations += len(pending) * self.num_tests
        _logger().debug("Generation %d: evaluated %d individual(s).", state.generation, len(pending))

    def run_complete(self, state: EvolutionState) -> str | None:
        for s, subpop in enumerate(state.population):
            for i, ind in enumerate(subpop):
                if ind.evaluated and ind.fitness.is_ideal():
                    return f"ideal individual found (subpopulation {s}, index {i})"
        return None


__all__ = ["partition", "Evaluator", "SimpleEvaluator"]