"""
Problem contracts implemented by user domains.

Evaluators clone the configured problem once per evaluation thread, so a
problem may keep mutable scratch state between calls.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

import numpy as np

from evobreed.foundation.exceptions import FitnessTypeError

from .fitness import SimpleFitness

if TYPE_CHECKING:
    from evobreed.engine.state import EvolutionState

    from .individual import Individual
    from .population import Population


class Problem:
    """Common base: setup, per-thread cloning and the per-thread evaluation bracket."""

    def setup(self, state: EvolutionState, base: str) -> None:
        pass

    def clone(self) -> Problem:
        return copy.deepcopy(self)

    def prepare_to_evaluate(self, state: EvolutionState, thread: int) -> None:
        """Called on a thread's clone before its chunk is evaluated."""

    def finish_evaluating(self, state: EvolutionState, thread: int) -> None:
        """Called on a thread's clone after its chunk was evaluated."""


class SimpleProblem(Problem, ABC):
    """Evaluates one individual at a time."""

    @abstractmethod
    def evaluate(self, state: EvolutionState, ind: Individual, subpopulation: int, thread: int) -> None:
        """Assign ``ind.fitness`` and set ``ind.evaluated = True``."""


class GroupedProblem(Problem, ABC):
    """
    Evaluates groups of individuals jointly (coevolution).

    A generation's grouped evaluation is bracketed by ``preprocess_population``
    and ``postprocess_population``. ``evaluate`` only records trials; the final
    fitness is assigned in ``postprocess_population``.

    Attributes:
        trial_reduction: ``"best"`` keeps the best trial, ``"mean"`` averages them.
    """

    trial_reduction = "best"

    def preprocess_population(
        self,
        state: EvolutionState,
        population: Population,
        prepare_for_assessment: Sequence[bool],
        count_victories_only: bool,
    ) -> None:
        """Reset the trial lists of every subpopulation flagged for assessment."""
        for flag, subpop in zip(prepare_for_assessment, population.subpops):
            if flag:
                for ind in subpop:
                    ind.fitness.reset_trials()

    @abstractmethod
    def evaluate(
        self,
        state: EvolutionState,
        group: Sequence[Individual],
        update_fitness: Sequence[bool],
        count_victories_only: bool,
        subpops: Sequence[int],
        thread: int,
    ) -> None:
        """
        Play one group and record a trial for each flagged participant.

        Implementations call ``group[i].fitness.record_trial(score, group, i)``
        for every ``i`` with ``update_fitness[i]``.
        """

    def postprocess_population(
        self,
        state: EvolutionState,
        population: Population,
        assess_fitness: Sequence[bool],
        count_victories_only: bool,
    ) -> int:
        """
        Reduce accumulated trials to a final fitness and mark individuals evaluated.

        With ``count_victories_only`` the fitness is the number of victories
        (the sum of the trials).

        Returns the number of individuals assessed.
        """
        assessed = 0
        for flag, subpop in zip(assess_fitness, population.subpops):
            if not flag:
                continue
            for ind in subpop:
                trials = ind.fitness.trials
                if not trials:
                    continue
                fitness = ind.fitness
                if not isinstance(fitness, SimpleFitness):
                    raise FitnessTypeError(
                        f"Grouped evaluation needs SimpleFitness, got {type(fitness).__name__}.",
                        "Override postprocess_population for other fitness types",
                    )
                if count_victories_only:
                    fitness.set_fitness(float(np.sum(trials)), fitness.is_ideal())
                elif self.trial_reduction == "mean":
                    fitness.set_fitness(float(np.mean(trials)), fitness.is_ideal())
                else:
                    fitness.set_fitness(trials[0], fitness.is_ideal())
                ind.evaluated = True
                assessed += 1
        return assessed


__all__ = ["Problem", "SimpleProblem", "GroupedProblem"]
