from __future__ import annotations

import numpy as np
import pytest

from conftest import MaxOnes, bit_params
from evobreed.engine.breeding.source import BreedingSource
from evobreed.engine.state import EvolutionState
from evobreed.foundation.exceptions import BreedingError, SetupError


def _evaluated_state(**overrides) -> EvolutionState:
    state = EvolutionState(bit_params(**overrides), problem=MaxOnes())
    state.setup()
    state.initializer.initial_population(state)
    state.evaluator.evaluate_population(state)
    return state


def _values(subpop):
    return sorted((ind.fitness.value for ind in subpop), reverse=True)


class NothingSource(BreedingSource):
    def produce(self, min_n, max_n, subpopulation, inds, state, thread):
        return 0


def test_elites_are_copied_to_the_tail():
    state = _evaluated_state(**{"breed.elite.0": 2})
    best_two = _values(state.population[0])[:2]
    new = state.breeder.breed(state)
    assert len(new[0]) == 20
    tail = new[0].individuals[-2:]
    assert [ind.fitness.value for ind in tail] == best_two
    assert all(ind.evaluated for ind in tail)
    assert all(all(ind is not old for old in state.population[0]) for ind in tail)


def test_reevaluated_elites_are_marked_unevaluated():
    state = _evaluated_state(**{"breed.elite": 1, "breed.reevaluate-elites": True})
    new = state.breeder.breed(state)
    assert not new[0].individuals[-1].evaluated


def test_elite_fraction_is_floored():
    state = _evaluated_state(**{"breed.elite-fraction.0": 0.26})
    assert state.breeder.num_elites(state, 0) == 5


def test_elite_and_fraction_are_mutually_exclusive():
    state = EvolutionState(bit_params(**{"breed.elite.0": 1, "breed.elite-fraction.0": 0.1}), problem=MaxOnes())
    with pytest.raises(SetupError) as info:
        state.setup()
    assert any("mutually exclusive" in e for e in info.value.errors)


def test_reduce_by_stops_at_minimum_size():
    state = _evaluated_state(**{"breed.reduce-by.0": 5, "breed.minimum-size.0": 12})
    state.population = state.breeder.breed(state)
    assert len(state.population[0]) == 15
    state.evaluator.evaluate_population(state)
    state.population = state.breeder.breed(state)
    assert len(state.population[0]) == 12


def test_minimum_size_below_two_is_rejected():
    state = EvolutionState(bit_params(**{"breed.reduce-by": 1, "breed.minimum-size": 1}), problem=MaxOnes())
    with pytest.raises(SetupError):
        state.setup()


def test_sequential_breeding_needs_two_subpopulations():
    state = EvolutionState(bit_params(**{"breed.sequential": True}), problem=MaxOnes())
    with pytest.raises(SetupError) as info:
        state.setup()
    assert any("at least two subpopulations" in e for e in info.value.errors)


def test_sequential_breeding_leaves_other_subpopulations_alone():
    params = bit_params(**{"pop.subpops": 2, "breed.sequential": True})
    for key in [k for k in params if k.startswith("pop.subpop.0.")]:
        params[key.replace("pop.subpop.0.", "pop.subpop.1.", 1)] = params[key]
    state = EvolutionState(params, problem=MaxOnes())
    state.setup()
    state.initializer.initial_population(state)
    state.evaluator.evaluate_population(state)
    old = list(state.population[1].individuals)
    new = state.breeder.breed(state)
    assert all(a is b for a, b in zip(new[1].individuals, old))
    assert any(a is not b for a, b in zip(new[0].individuals, state.population[0].individuals))


def test_multi_threaded_breeding_is_reproducible():
    def bred_genomes():
        state = _evaluated_state(breedthreads=3)
        return [ind.genome.copy() for ind in state.breeder.breed(state)[0]]

    first, second = bred_genomes(), bred_genomes()
    assert len(first) == 20
    for a, b in zip(first, second):
        np.testing.assert_array_equal(a, b)


def test_production_contract_violation_is_fatal():
    state = _evaluated_state()
    state.population[0].species.pipeline = NothingSource()
    with pytest.raises(BreedingError):
        state.breeder.breed(state)


def test_nsga2_breeder_rejects_elitism():
    state = EvolutionState(bit_params(breed="nsga2", **{"breed.elite.0": 1}), problem=MaxOnes())
    with pytest.raises(SetupError) as info:
        state.setup()
    assert any("elitism" in e for e in info.value.errors)


def test_nsga2_breeder_appends_parents():
    state = _evaluated_state(breed="nsga2")
    parents = list(state.population[0].individuals)
    new = state.breeder.breed(state)
    assert len(new[0]) == 40
    assert new[0].size == 20
    assert all(a is b for a, b in zip(new[0].individuals[20:], parents))
