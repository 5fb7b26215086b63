"""
evobreed: a parameter-driven evolutionary computation engine.

Typical use::

    from evobreed import GroupedProblem, SimpleProblem, run_evolution

    result = run_evolution(params, problem=MyProblem())
"""

from .core.fitness import Fitness, MultiObjectiveFitness, NSGA2Fitness, SimpleFitness
from .core.individual import Individual
from .core.population import Population, Subpopulation
from .core.problem import GroupedProblem, Problem, SimpleProblem
from .core.species import Species, VectorSpecies
from .engine.breeding.breeder import Breeder, NSGA2Breeder, SimpleBreeder
from .engine.breeding.pipeline import BreedingPipeline
from .engine.breeding.selection import SelectionMethod
from .engine.breeding.source import BreedingSource
from .engine.evaluation.evaluator import Evaluator, SimpleEvaluator
from .engine.registry import (
    get_breeder_registry,
    get_evaluator_registry,
    get_fitness_registry,
    get_problem_registry,
    get_source_registry,
    get_species_registry,
    get_statistics_registry,
)
from .engine.state import EvolutionState, RunConfig, RunResult, run_evolution
from .engine.statistics import GenerationRecord, Statistics, StatisticsObserver
from .foundation.exceptions import (
    BreedingError,
    ConfigurationError,
    EvaluationError,
    EvoBreedError,
    FatalError,
    SetupError,
)
from .foundation.logging import configure_evobreed_logging
from .foundation.parameters import Parameters

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Fitness",
    "SimpleFitness",
    "MultiObjectiveFitness",
    "NSGA2Fitness",
    "Individual",
    "Population",
    "Subpopulation",
    "Problem",
    "SimpleProblem",
    "GroupedProblem",
    "Species",
    "VectorSpecies",
    "Breeder",
    "SimpleBreeder",
    "NSGA2Breeder",
    "BreedingSource",
    "BreedingPipeline",
    "SelectionMethod",
    "Evaluator",
    "SimpleEvaluator",
    "get_breeder_registry",
    "get_evaluator_registry",
    "get_fitness_registry",
    "get_problem_registry",
    "get_source_registry",
    "get_species_registry",
    "get_statistics_registry",
    "EvolutionState",
    "RunConfig",
    "RunResult",
    "run_evolution",
    "GenerationRecord",
    "Statistics",
    "StatisticsObserver",
    "EvoBreedError",
    "ConfigurationError",
    "SetupError",
    "FatalError",
    "EvaluationError",
    "BreedingError",
    "configure_evobreed_logging",
    "Parameters",
]
