from __future__ import annotations

from typing import Any

import numpy as np
import pytest

from evobreed.core.fitness import NSGA2Fitness, SimpleFitness
from evobreed.core.individual import Individual
from evobreed.core.population import Population, Subpopulation
from evobreed.core.problem import GroupedProblem, SimpleProblem
from evobreed.core.species import VectorSpecies
from evobreed.engine.state import EvolutionState


class MaxOnes(SimpleProblem):
    """Fitness is the number of set bits; ideal when every bit is set."""

    def evaluate(self, state, ind, subpopulation, thread):
        ones = int(np.count_nonzero(ind.genome))
        ind.fitness.set_fitness(ones, is_ideal=ones == ind.genome.size)
        ind.evaluated = True


class CountingProblem(MaxOnes):
    """MaxOnes that remembers how many individuals its clones evaluated."""

    def __init__(self, counter: list[int]) -> None:
        self.counter = counter

    def clone(self):
        return CountingProblem(self.counter)

    def evaluate(self, state, ind, subpopulation, thread):
        self.counter.append(thread)
        super().evaluate(state, ind, subpopulation, thread)


class TwoObjectives(SimpleProblem):
    """Minimize (x0, 1 - x0) on real vectors in [0, 1]: every point is Pareto optimal."""

    def evaluate(self, state, ind, subpopulation, thread):
        x = float(ind.genome[0])
        ind.fitness.set_objectives([x, 1.0 - x])
        ind.evaluated = True


class SumGame(GroupedProblem):
    """The member with the larger genome sum wins (1), the other loses (0)."""

    def evaluate(self, state, group, update_fitness, count_victories_only, subpops, thread):
        scores = [float(np.sum(ind.genome)) for ind in group]
        best = max(scores)
        for i, ind in enumerate(group):
            if update_fitness[i]:
                ind.fitness.record_trial(1.0 if scores[i] == best else 0.0, group, i)


class TeamSum(GroupedProblem):
    """Cooperative problem: every member scores the team's total genome sum."""

    def evaluate(self, state, group, update_fitness, count_victories_only, subpops, thread):
        total = float(sum(np.sum(ind.genome) for ind in group))
        for i, ind in enumerate(group):
            if update_fitness[i]:
                ind.fitness.record_trial(total, group, i)


def bit_params(**overrides: Any) -> dict[str, Any]:
    params: dict[str, Any] = {
        "seed": 11,
        "generations": 5,
        "pop.subpops": 1,
        "pop.subpop.0.size": 20,
        "pop.subpop.0.species": "bit-vector",
        "pop.subpop.0.species.genome-size": 16,
        "pop.subpop.0.species.pipe": "mutate",
        "pop.subpop.0.species.pipe.source.0": "xover",
        "pop.subpop.0.species.pipe.source.0.source.0": "tournament",
        "pop.subpop.0.species.pipe.source.0.source.1": "same",
    }
    params.update(overrides)
    return params


def scalar_individual(value: float, genome: Any = None, maximize: bool = True) -> Individual:
    fitness = SimpleFitness(maximize=maximize)
    fitness.set_fitness(value)
    if genome is None:
        genome = np.array([value])
    return Individual(genome, fitness, evaluated=True)


def objective_individual(objectives, maximize=False) -> Individual:
    fitness = NSGA2Fitness(num_objectives=len(objectives), maximize=maximize, min_objectives=0.0, max_objectives=5.0)
    fitness.set_objectives(objectives)
    return Individual(np.asarray(objectives, dtype=float), fitness, evaluated=True)


def state_with(individuals, params: dict[str, Any] | None = None, species=None) -> EvolutionState:
    """A state whose single subpopulation holds ``individuals``; no setup is run."""
    species = species if species is not None else VectorSpecies("real", genome_size=1)
    subpop = Subpopulation(species, len(individuals), individuals)
    return EvolutionState(params or {"seed": 3}, population=Population([subpop]))


@pytest.fixture
def max_ones() -> MaxOnes:
    return MaxOnes()
