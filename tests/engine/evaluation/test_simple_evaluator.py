from __future__ import annotations

from collections import Counter

import pytest

from conftest import CountingProblem, MaxOnes, SumGame, bit_params
from evobreed.engine.evaluation.evaluator import partition
from evobreed.engine.state import EvolutionState
from evobreed.foundation.exceptions import EvaluationError, SetupError


class ExplodingProblem(MaxOnes):
    def __init__(self, explode_on: int) -> None:
        self.explode_on = explode_on

    def evaluate(self, state, ind, subpopulation, thread):
        if thread == self.explode_on:
            raise RuntimeError("simulated evaluation failure")
        super().evaluate(state, ind, subpopulation, thread)


def _ready_state(problem, **overrides) -> EvolutionState:
    state = EvolutionState(bit_params(**overrides), problem=problem)
    state.setup()
    state.initializer.initial_population(state)
    return state


def test_partition_gives_slop_to_first_threads():
    assert partition(10, 3) == [[0, 1, 2, 3], [4, 5, 6], [7, 8, 9]]
    assert partition(2, 4) == [[0], [1], [], []]


def test_partition_with_chunks_deals_round_robin():
    assert partition(7, 2, chunk_size=2) == [[0, 1, 4, 5], [2, 3, 6]]


def test_every_individual_is_evaluated_once():
    counter: list[int] = []
    state = _ready_state(CountingProblem(counter), evalthreads=3)
    state.evaluator.evaluate_population(state)
    assert len(counter) == 20
    assert Counter(counter) == {0: 7, 1: 7, 2: 6}
    assert all(ind.evaluated for ind in state.population[0])
    state.evaluator.evaluate_population(state)
    assert len(counter) == 20


def test_fitness_matches_problem():
    state = _ready_state(MaxOnes(), evalthreads=2, **{"eval.chunk-size": 3})
    state.evaluator.evaluate_population(state)
    for ind in state.population[0]:
        assert ind.fitness.value == float(ind.genome.sum())


def test_multiple_tests_are_merged():
    counter: list[int] = []
    state = _ready_state(CountingProblem(counter), **{"eval.num-tests": 3, "eval.merge": "median"})
    state.evaluator.evaluate_population(state)
    assert len(counter) == 60
    assert state.evaluator.num_evaluations == 60


def test_failed_thread_discards_the_whole_generation():
    state = _ready_state(ExplodingProblem(explode_on=2), evalthreads=3)
    with pytest.raises(EvaluationError) as info:
        state.evaluator.evaluate_population(state)
    assert info.value.details["thread"] == 2
    assert isinstance(state.first_error, RuntimeError)
    assert not any(ind.evaluated for ind in state.population[0])
    state.close()


def test_shared_problem_needs_a_single_thread():
    state = EvolutionState(bit_params(evalthreads=2, **{"eval.clone-problem": False}), problem=MaxOnes())
    with pytest.raises(SetupError):
        state.setup()


def test_problem_kind_must_match_evaluator():
    state = EvolutionState(bit_params(), problem=SumGame())
    with pytest.raises(SetupError) as info:
        state.setup()
    assert any("needs a SimpleProblem" in e for e in info.value.errors)


def test_unknown_merge_is_reported():
    state = EvolutionState(bit_params(**{"eval.merge": "geometric"}), problem=MaxOnes())
    with pytest.raises(SetupError):
        state.setup()


def test_problem_from_registry():
    from evobreed.engine.registry import get_problem_registry

    registry = get_problem_registry()
    if "test-max-ones" not in registry:
        registry.register("test-max-ones", MaxOnes)
    state = EvolutionState(bit_params(**{"eval.problem": "test-max-ones"}))
    state.setup()
    assert isinstance(state.evaluator.problem, MaxOnes)


def test_run_complete_reports_ideal_individual():
    state = _ready_state(MaxOnes())
    state.evaluator.evaluate_population(state)
    ind = state.population[0][4]
    ind.fitness.set_fitness(16, is_ideal=True)
    assert "index 4" in state.evaluator.run_complete(state)
