"""
Breeders turn the evaluated population into the next generation.

``SimpleBreeder`` fills each subpopulation with children produced by a
per-thread clone of the species pipeline, then appends elites. Each breeding
thread owns one contiguous slice of the children; the remainder of an uneven
split goes to the lowest thread indices.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from evobreed.core.population import Population, Subpopulation
from evobreed.engine.evaluation.evaluator import partition
from evobreed.engine.statistics import best_first
from evobreed.foundation.exceptions import BreedingError
from evobreed.foundation.parameters import push

from .selection import SelectionMethod

if TYPE_CHECKING:
    from evobreed.core.individual import Individual
    from evobreed.engine.state import EvolutionState


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


class Breeder:
    default_base = "breed"

    def setup(self, state: EvolutionState, base: str) -> None:
        pass

    def should_breed_subpop(self, state: EvolutionState, subpop: int) -> bool:
        return True

    def breed(self, state: EvolutionState) -> Population:
        raise NotImplementedError


class SimpleBreeder(Breeder):
    """
    Generational breeder with optional elitism.

    Parameters (``<i>`` is a subpopulation index; the unindexed key applies to all):
        elite.<i>               number of elites copied unchanged
        elite-fraction.<i>      elites as a fraction of the subpopulation
        reevaluate-elites.<i>   mark copied elites unevaluated
        sequential              breed one subpopulation per generation, in turn
        reduce-by.<i>           shrink the subpopulation by this much per generation
        minimum-size.<i>        floor for ``reduce-by`` (>= 2)
    """

    def __init__(
        self,
        elite: int | None = None,
        elite_fraction: float | None = None,
        reevaluate_elites: bool = False,
        sequential: bool = False,
        reduce_by: int = 0,
        minimum_size: int = 2,
    ) -> None:
        self._elite_default = elite
        self._elite_fraction_default = elite_fraction
        self._reevaluate_default = reevaluate_elites
        self.sequential = sequential
        self._reduce_by_default = reduce_by
        self._minimum_size_default = minimum_size
        self.elite: list[int | None] = []
        self.elite_fraction: list[float | None] = []
        self.reevaluate_elites: list[bool] = []
        self.reduce_by: list[int] = []
        self.minimum_size: list[int] = []

    def setup(self, state: EvolutionState, base: str) -> None:
        params = state.parameters
        count = len(state.population)
        self.elite = [self._elite_default] * count
        self.elite_fraction = [self._elite_fraction_default] * count
        self.reevaluate_elites = [self._reevaluate_default] * count
        self.reduce_by = [self._reduce_by_default] * count
        self.minimum_size = [self._minimum_size_default] * count

        for i in range(count):
            elite_key = push(base, "elite", i)
            fraction_key = push(base, "elite-fraction", i)
            with state.output.collect(base):
                has_elite = params.exists(elite_key, push(base, "elite"))
                has_fraction = params.exists(fraction_key, push(base, "elite-fraction"))
                if has_elite and has_fraction:
                    state.output.error("elite and elite-fraction are mutually exclusive", elite_key)
                elif has_elite:
                    self.elite[i] = params.get_int(elite_key, fallback=push(base, "elite"), min_value=0)
                    self.elite_fraction[i] = None
                elif has_fraction:
                    self.elite_fraction[i] = params.get_double(
                        fraction_key, fallback=push(base, "elite-fraction"), min_value=0.0, max_value=1.0
                    )
                    self.elite[i] = None
            with state.output.collect(base):
                self.reevaluate_elites[i] = params.get_boolean(
                    push(base, "reevaluate-elites", i), self.reevaluate_elites[i], push(base, "reevaluate-elites")
                )
            with state.output.collect(base):
                self.reduce_by[i] = params.get_int(
                    push(base, "reduce-by", i), self.reduce_by[i], push(base, "reduce-by"), min_value=0
                )
            if self.reduce_by[i] > 0:
                key = push(base, "minimum-size", i)
                with state.output.collect(base):
                    self.minimum_size[i] = params.get_int(key, self.minimum_size[i], push(base, "minimum-size"))
                    if self.minimum_size[i] < 2:
                        state.output.error(f"minimum-size must be at least 2, got {self.minimum_size[i]}", key)

        with state.output.collect(base):
            self.sequential = params.get_boolean(push(base, "sequential"), self.sequential)
            if self.sequential and count < 2:
                state.output.error("Sequential breeding needs at least two subpopulations", push(base, "sequential"))

    def should_breed_subpop(self, state: EvolutionState, subpop: int) -> bool:
        if not self.sequential:
            return True
        return state.generation % len(state.population) == subpop

    def subpop_length(self, state: EvolutionState, subpop: int) -> int:
        """Size of the next generation's subpopulation."""
        old = len(state.population[subpop])
        if not self.should_breed_subpop(state, subpop) or self.reduce_by[subpop] <= 0:
            return old
        return max(old - self.reduce_by[subpop], self.minimum_size[subpop])

    def num_elites(self, state: EvolutionState, subpop: int) -> int:
        size = len(state.population[subpop])
        if self.elite[subpop] is not None:
            elites = self.elite[subpop]
            if elites > size:
                raise BreedingError(
                    f"Subpopulation {subpop} asks for {elites} elites but holds only {size} individuals."
                )
            return elites
        if self.elite_fraction[subpop] is not None:
            return max(int(math.floor(size * self.elite_fraction[subpop])), 0)
        return 0

    def breed(self, state: EvolutionState) -> Population:
        population = state.population
        bred = [i for i in range(len(population)) if self.should_breed_subpop(state, i)]
        elites: dict[int, list[Individual]] = {}
        children: dict[int, int] = {}
        for i in bred:
            length = self.subpop_length(state, i)
            n_elites = self.num_elites(state, i)
            if n_elites > length:
                raise BreedingError(
                    f"Subpopulation {i} keeps {n_elites} elites but its next size is only {length}."
                )
            elites[i] = self.load_elites(state, i, n_elites)
            children[i] = length - n_elites

        threads = state.config.breed_threads
        plans = {i: partition(children[i], threads) for i in bred}

        def work(thread: int) -> dict[int, list[Individual]]:
            return {i: self.breed_slice(state, i, len(plans[i][thread]), thread) for i in bred}

        results = state.run_workers(work, threads, "breeding")

        subpops = []
        for i, old in enumerate(population):
            if i not in elites:
                subpops.append(Subpopulation(old.species, old.size, old.individuals, old.duplicate_retries))
                continue
            individuals = [ind for chunk in results for ind in chunk[i]]
            individuals.extend(elites[i])
            subpops.append(Subpopulation(old.species, len(individuals), individuals, old.duplicate_retries))
            _logger().debug(
                "Subpopulation %d bred: %d child(ren), %d elite(s).", i, children[i], len(elites[i])
            )
        return Population(subpops)

    def load_elites(self, state: EvolutionState, subpop: int, count: int) -> list[Individual]:
        if count <= 0:
            return []
        reevaluate = self.reevaluate_elites[subpop]
        out = []
        for ind in best_first(state.population[subpop].individuals)[:count]:
            elite = ind.deep_duplicate()
            if reevaluate:
                elite.evaluated = False
            out.append(elite)
        return out

    def breed_slice(self, state: EvolutionState, subpop: int, count: int, thread: int) -> list[Individual]:
        """Produce exactly ``count`` children with this thread's own pipeline clone."""
        inds: list[Individual] = []
        if count <= 0:
            return inds
        prototype = state.population[subpop].species.pipeline
        pipe = prototype.clone()
        pipe.check_produces(state, subpop, thread)
        pipe.prepare_to_produce(state, subpop, thread)
        while len(inds) < count:
            remaining = count - len(inds)
            before = len(inds)
            n = pipe.produce(1, remaining, subpop, inds, state, thread)
            if n < 1 or n > remaining or len(inds) - before != n:
                raise BreedingError(
                    f"{pipe.name} broke the production contract: asked for 1..{remaining}, "
                    f"reported {n}, appended {len(inds) - before}."
                )
        pipe.finish_producing(state, subpop, thread)
        if isinstance(pipe, SelectionMethod):
            inds = [ind.deep_duplicate() for ind in inds]
        return inds


class NSGA2Breeder(SimpleBreeder):
    """
    Breeds a full set of children and keeps the parents behind them.

    The NSGA-II evaluator later cuts the union back to the archive size, so
    elitism, size reduction and sequential breeding are rejected.
    """

    def setup(self, state: EvolutionState, base: str) -> None:
        super().setup(state, base)
        for i in range(len(state.population)):
            if self.elite[i] is not None or self.elite_fraction[i] is not None:
                state.output.error("NSGA-II breeding does not use elitism", push(base, "elite", i))
            if self.reduce_by[i] > 0:
                state.output.error("NSGA-II breeding does not support reduce-by", push(base, "reduce-by", i))
        if self.sequential:
            state.output.error("NSGA-II breeding does not support sequential breeding", push(base, "sequential"))

    def breed(self, state: EvolutionState) -> Population:
        old = state.population
        new = super().breed(state)
        for i, subpop in enumerate(new):
            archive = old[i]
            if self.reevaluate_elites[i]:
                parents = [ind.deep_duplicate() for ind in archive]
                for ind in parents:
                    ind.evaluated = False
            else:
                parents = list(archive.individuals)
            subpop.individuals = subpop.individuals + parents
            subpop.size = archive.size
        return new


__all__ = ["Breeder", "SimpleBreeder", "NSGA2Breeder"]
