"""
Multi-population (cooperative or competitive) coevolution.

Every individual of every assessed subpopulation is evaluated in groups made
of one collaborator per subpopulation. Collaborators come from four pools:

    num-elites     best individuals of the previous assessment
    num-current    individuals selected from the current population
    num-prev       individuals selected from the previous generation
    num-shuffled   a random permutation of each other subpopulation

Evaluation runs on a single thread using the thread-0 random stream.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Iterator, Sequence

from evobreed.core.population import Population, Subpopulation
from evobreed.core.problem import GroupedProblem
from evobreed.engine.breeding.selection import SelectionMethod
from evobreed.engine.registry import get_source_registry
from evobreed.engine.statistics import best_first
from evobreed.foundation.exceptions import FatalError
from evobreed.foundation.parameters import push

from .evaluator import Evaluator

if TYPE_CHECKING:
    from evobreed.core.individual import Individual
    from evobreed.engine.state import EvolutionState


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


@contextlib.contextmanager
def _viewing(state: EvolutionState, population: Population) -> Iterator[None]:
    """Temporarily expose ``population`` as ``state.population`` to selection methods."""
    current = state.population
    state.population = population
    try:
        yield
    finally:
        state.population = current


class MultiPopCoevolutionaryEvaluator(Evaluator):
    """Evaluates each subpopulation against collaborators drawn from the others."""

    problem_kind = GroupedProblem

    def __init__(
        self,
        problem: GroupedProblem | None = None,
        num_elites: int = 0,
        num_current: int = 0,
        num_prev: int = 0,
        num_shuffled: int = 0,
    ) -> None:
        super().__init__(problem)
        self.num_elites = num_elites
        self.num_current = num_current
        self.num_prev = num_prev
        self.num_shuffled = num_shuffled
        self.select_current: list[SelectionMethod | None] = []
        self.select_prev: list[SelectionMethod | None] = []
        self.elites: list[list[Individual]] = []
        self.previous_population: Population | None = None

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        params = state.parameters
        default = self.default_base
        for name in ("num-elites", "num-current", "num-prev", "num-shuffled"):
            attr = name.replace("-", "_")
            with state.output.collect(base):
                value = params.get_int(push(base, name), getattr(self, attr), push(default, name), min_value=0)
                setattr(self, attr, value)
        if self.num_elites + self.num_current + self.num_prev + self.num_shuffled <= 0:
            state.output.error(
                "At least one of num-elites, num-current, num-prev or num-shuffled must be positive", base
            )
        count = len(state.population)
        self.select_current = [None] * count
        self.select_prev = [None] * count
        for i in range(count):
            if self.num_current > 0:
                self.select_current[i] = self._selection_for(state, base, i, "select-current")
            if self.num_prev > 0:
                self.select_prev[i] = self._selection_for(state, base, i, "select-prev")
        self.elites = [[] for _ in range(count)]
        self.previous_population = None

    def _selection_for(self, state: EvolutionState, base: str, subpop: int, name: str) -> SelectionMethod | None:
        key = push(base, "subpop", subpop, name)
        fallback = push(base, name)
        method = None
        with state.output.collect(base):
            method = state.parameters.get_named_instance(key, get_source_registry(), fallback=fallback)
            if not isinstance(method, SelectionMethod):
                state.output.error(f"{name} must name a selection method, got {type(method).__name__}", key)
                return None
            method.setup(state, key if state.parameters.exists(key) else fallback)
        return method

    def should_evaluate_subpop(self, state: EvolutionState, subpop: int) -> bool:
        """Subpopulations the breeder leaves alone this generation keep their fitness."""
        check = getattr(state.breeder, "should_breed_subpop", None)
        return True if check is None else bool(check(state, subpop))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def evaluate_population(self, state: EvolutionState) -> None:
        count = len(state.population)
        # every subpopulation is assessed once at generation 0
        post = [state.generation == 0 or self.should_evaluate_subpop(state, i) for i in range(count)]
        self.before_coevolutionary_evaluation(state)
        prob: GroupedProblem = self.problem.clone()
        prob.prepare_to_evaluate(state, 0)
        prob.preprocess_population(state, state.population, post, False)
        played = self.perform_coevolutionary_evaluation(state, prob, post)
        prob.postprocess_population(state, state.population, post, False)
        prob.finish_evaluating(state, 0)
        self.after_coevolutionary_evaluation(state, post)
        self.num_evaluations += played
        _logger().debug("Generation %d: %d group evaluation(s).", state.generation, played)

    def before_coevolutionary_evaluation(self, state: EvolutionState) -> None:
        population = state.population
        if len(self.elites) != len(population):
            self.elites = [[] for _ in range(len(population))]
        if state.generation == 0 and self.num_elites > 0:
            for i, subpop in enumerate(population):
                if len(subpop) < self.num_elites:
                    raise FatalError(
                        f"num-elites ({self.num_elites}) exceeds the size of subpopulation {i} ({len(subpop)})."
                    )
                self.elites[i] = [ind.deep_duplicate() for ind in subpop.individuals[: self.num_elites]]
        if self.num_shuffled > 0:
            sizes = {len(subpop) for subpop in population}
            if len(sizes) > 1:
                raise FatalError(
                    "Shuffled collaborators need subpopulations of equal size.",
                    "Set the same pop.subpop.<i>.size everywhere or use num-shuffled = 0",
                )

    def perform_coevolutionary_evaluation(
        self, state: EvolutionState, prob: GroupedProblem, assess: Sequence[bool]
    ) -> int:
        population = state.population
        count = len(population)
        rng = state.random[0]
        subpops = list(range(count))
        played = 0
        group: list[Individual | None] = [None] * count
        update = [False] * count

        def play() -> None:
            nonlocal played
            prob.evaluate(state, list(group), update, False, subpops, 0)
            played += 1

        self._prepare_selection(state)
        for j in range(count):
            if not assess[j]:
                continue
            for ind in population[j]:
                group[j] = ind
                update[:] = [k == j for k in range(count)]

                for e in range(self.num_elites):
                    for k in range(count):
                        if k != j:
                            group[k] = self.elites[k][e]
                    play()

                for _ in range(self.num_current):
                    for k in range(count):
                        if k != j:
                            group[k] = self.produce_current(self.select_current[k], k, state)
                    play()

                for _ in range(self.num_prev):
                    for k in range(count):
                        if k != j:
                            group[k] = self.produce_previous(self.select_prev[k], k, state)
                    play()
        self._finish_selection(state)

        if self.num_shuffled > 0:
            size = len(population[0])
            for _ in range(self.num_shuffled):
                orders = [rng.permutation(size) for _ in range(count)]
                for x in range(size):
                    members = [population[k][int(orders[k][x])] for k in range(count)]
                    flags = list(assess)
                    prob.evaluate(state, members, flags, False, subpops, 0)
                    played += 1
        return played

    def _prepare_selection(self, state: EvolutionState) -> None:
        for k, method in enumerate(self.select_current):
            if method is not None:
                method.prepare_to_produce(state, k, 0)
        if self.previous_population is not None:
            with _viewing(state, self.previous_population):
                for k, method in enumerate(self.select_prev):
                    if method is not None:
                        method.prepare_to_produce(state, k, 0)

    def _finish_selection(self, state: EvolutionState) -> None:
        for k, method in enumerate(self.select_current):
            if method is not None:
                method.finish_producing(state, k, 0)
        if self.previous_population is not None:
            with _viewing(state, self.previous_population):
                for k, method in enumerate(self.select_prev):
                    if method is not None:
                        method.finish_producing(state, k, 0)

    def produce_current(self, method: SelectionMethod, subpop: int, state: EvolutionState) -> Individual:
        return state.population[subpop][method.produce_index(subpop, state, 0)]

    def produce_previous(self, method: SelectionMethod, subpop: int, state: EvolutionState) -> Individual:
        """From the previous generation; uniformly at random from the current one at generation 0."""
        if self.previous_population is None:
            members = state.population[subpop]
            return members[int(state.random[0].integers(len(members)))]
        with _viewing(state, self.previous_population):
            index = method.produce_index(subpop, state, 0)
        return self.previous_population[subpop][index]

    def after_coevolutionary_evaluation(self, state: EvolutionState, assessed: Sequence[bool]) -> None:
        population = state.population
        if self.num_elites > 0:
            for i, subpop in enumerate(population):
                if assessed[i]:
                    self.elites[i] = [ind.deep_duplicate() for ind in best_first(subpop.individuals)[: self.num_elites]]
        if self.num_prev > 0:
            self.previous_population = Population(
                [
                    Subpopulation(subpop.species, subpop.size, [ind.deep_duplicate() for ind in subpop])
                    for subpop in population
                ]
            )


__all__ = ["MultiPopCoevolutionaryEvaluator"]
