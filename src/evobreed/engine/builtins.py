"""Built-in component registrations."""

from __future__ import annotations

from functools import partial
from typing import Any

from evobreed.core.fitness import MultiObjectiveFitness, NSGA2Fitness, SimpleFitness
from evobreed.core.species import Species, VectorSpecies
from evobreed.foundation.registry import Registry

from .breeding.breeder import NSGA2Breeder, SimpleBreeder
from .breeding.operators import (
    CrossoverPipeline,
    ForceBreedingPipeline,
    GenerationSwitchPipeline,
    MultiBreedingPipeline,
    MutationPipeline,
    ReproductionPipeline,
)
from .breeding.selection import (
    BestSelection,
    BoltzmannSelection,
    FitnessProportionateSelection,
    RandomSelection,
    SUSSelection,
    TournamentSelection,
)
from .evaluation.competitive import CompetitiveEvaluator
from .evaluation.evaluator import SimpleEvaluator
from .evaluation.multipop import MultiPopCoevolutionaryEvaluator
from .evaluation.nsga2 import NSGA2Evaluator
from .statistics import MultiObjectiveStatistics, SimpleStatistics


def register_builtins(registries: dict[str, Registry[Any]]) -> None:
    evaluators = registries["evaluator"]
    evaluators.register("simple", SimpleEvaluator)
    evaluators.register("nsga2", NSGA2Evaluator)
    evaluators.register("competitive", CompetitiveEvaluator)
    evaluators.register("multipop", MultiPopCoevolutionaryEvaluator)

    breeders = registries["breeder"]
    breeders.register("simple", SimpleBreeder)
    breeders.register("nsga2", NSGA2Breeder)

    sources = registries["source"]
    sources.register("reproduce", ReproductionPipeline)
    sources.register("mutate", MutationPipeline)
    sources.register("xover", CrossoverPipeline)
    sources.register("crossover", CrossoverPipeline)
    sources.register("multi", MultiBreedingPipeline)
    sources.register("force", ForceBreedingPipeline)
    sources.register("generation-switch", GenerationSwitchPipeline)
    sources.register("tournament", TournamentSelection)
    sources.register("fitness-proportionate", FitnessProportionateSelection)
    sources.register("roulette", FitnessProportionateSelection)
    sources.register("sus", SUSSelection)
    sources.register("boltzmann", BoltzmannSelection)
    sources.register("best", BestSelection)
    sources.register("truncation", BestSelection)
    sources.register("random", RandomSelection)

    species = registries["species"]
    species.register("species", Species)
    species.register("vector", VectorSpecies)
    species.register("bit-vector", partial(VectorSpecies, encoding="bit"))
    species.register("real-vector", partial(VectorSpecies, encoding="real"))
    species.register("integer-vector", partial(VectorSpecies, encoding="integer"))

    fitness = registries["fitness"]
    fitness.register("simple", SimpleFitness)
    fitness.register("multiobjective", MultiObjectiveFitness)
    fitness.register("nsga2", NSGA2Fitness)

    statistics = registries["statistics"]
    statistics.register("simple", SimpleStatistics)
    statistics.register("multiobjective", MultiObjectiveStatistics)


__all__ = ["register_builtins"]
