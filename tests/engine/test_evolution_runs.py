from __future__ import annotations

import logging

import numpy as np
import pytest

from conftest import MaxOnes, TwoObjectives, bit_params
from evobreed import configure_evobreed_logging, run_evolution
from evobreed.engine.statistics import SimpleStatistics


class FailingProblem(MaxOnes):
    def evaluate(self, state, ind, subpopulation, thread):
        raise ZeroDivisionError("broken fitness function")


class RecordingObserver:
    def __init__(self) -> None:
        self.events: list[str] = []
        self.generations: list[int] = []

    def on_start(self, state) -> None:
        self.events.append("start")

    def on_generation(self, record) -> None:
        self.generations.append(record.generation)

    def on_end(self, result) -> None:
        self.events.append(f"end:{result.status}")


def test_small_max_ones_reaches_the_ideal():
    params = bit_params(generations=30, **{"pop.subpop.0.species.genome-size": 4})
    result = run_evolution(params, problem=MaxOnes())
    assert result.status == "success"
    assert result.success
    assert result.best_of_run[0].fitness.value == 4


def test_elitism_never_loses_the_best():
    params = bit_params(generations=15, **{"breed.elite.0": 1, "quit-on-run-complete": False})
    result = run_evolution(params, problem=MaxOnes())
    assert result.status == "failure"
    assert len(result.records) == 15
    bests = [record.subpops[0].best for record in result.records]
    assert all(b >= a for a, b in zip(bests, bests[1:]))


def _run_genomes(**overrides):
    params = bit_params(generations=6, **{"quit-on-run-complete": False}, **overrides)
    result = run_evolution(params, problem=MaxOnes())
    return [ind.genome.copy() for ind in result.population[0]], [r.subpops[0].mean for r in result.records]


def test_same_seed_gives_the_same_run():
    genomes_a, means_a = _run_genomes(breedthreads=2)
    genomes_b, means_b = _run_genomes(breedthreads=2)
    assert means_a == means_b
    for a, b in zip(genomes_a, genomes_b):
        np.testing.assert_array_equal(a, b)


def test_evaluation_threads_do_not_change_the_run():
    genomes_a, means_a = _run_genomes(evalthreads=1, breedthreads=2)
    genomes_b, means_b = _run_genomes(evalthreads=4, breedthreads=2)
    assert means_a == means_b
    for a, b in zip(genomes_a, genomes_b):
        np.testing.assert_array_equal(a, b)


def test_setup_errors_are_reported_together():
    params = bit_params(generations=0)
    del params["pop.subpops"]
    result = run_evolution(params, problem=MaxOnes())
    assert result.status == "setup_error"
    assert len(result.errors) >= 2
    assert any("pop.subpops" in e for e in result.errors)


def test_species_without_genome_factory_is_a_setup_error():
    params = bit_params(**{"pop.subpop.0.species": "species", "pop.subpop.0.species.pipe": "tournament"})
    result = run_evolution(params, problem=MaxOnes())
    assert result.status == "setup_error"
    assert any("has no genome factory" in e and "pop.subpop.0.species" in e for e in result.errors)


def test_failing_problem_aborts_the_run():
    result = run_evolution(bit_params(evalthreads=2), problem=FailingProblem())
    assert result.status == "fatal"
    assert any("ZeroDivisionError" in e for e in result.errors)


def _nsga2_params(**overrides):
    params = {
        "seed": 5,
        "generations": 8,
        "quit-on-run-complete": False,
        "pop.subpops": 1,
        "pop.subpop.0.size": 20,
        "pop.subpop.0.species": "real-vector",
        "pop.subpop.0.species.genome-size": 2,
        "pop.subpop.0.species.fitness": "nsga2",
        "pop.subpop.0.species.fitness.num-objectives": 2,
        "pop.subpop.0.species.fitness.maximize": False,
        "pop.subpop.0.species.pipe": "mutate",
        "pop.subpop.0.species.pipe.source.0": "xover",
        "pop.subpop.0.species.pipe.source.0.source.0": "tournament",
        "pop.subpop.0.species.pipe.source.0.source.1": "same",
        "eval": "nsga2",
        "breed": "nsga2",
        "stat": "multiobjective",
    }
    params.update(overrides)
    return params


def test_nsga2_run_keeps_the_archive_size():
    result = run_evolution(_nsga2_params(), problem=TwoObjectives())
    assert result.status == "failure"
    assert len(result.population[0]) == 20
    for record in result.records:
        assert record.subpops[0].size == 20
        assert record.subpops[0].front_size == 20
        assert record.subpops[0].front.shape == (20, 2)


def _nsga2_archive(**overrides):
    result = run_evolution(_nsga2_params(**overrides), problem=TwoObjectives())
    assert result.status == "failure"
    return [(ind.fitness.rank, ind.fitness.sparsity, ind.genome.copy()) for ind in result.population[0]]


def test_threaded_nsga2_run_is_reproducible():
    first = _nsga2_archive(evalthreads=2, breedthreads=2)
    second = _nsga2_archive(evalthreads=2, breedthreads=2)
    assert len(first) == len(second) == 20
    for (rank_a, sparsity_a, genome_a), (rank_b, sparsity_b, genome_b) in zip(first, second):
        assert rank_a == rank_b
        assert sparsity_a == sparsity_b
        np.testing.assert_array_equal(genome_a, genome_b)


def test_nsga2_archive_does_not_depend_on_evaluation_threads():
    single = _nsga2_archive(evalthreads=1, breedthreads=2)
    threaded = _nsga2_archive(evalthreads=3, breedthreads=2)
    for (_, _, genome_a), (_, _, genome_b) in zip(single, threaded):
        np.testing.assert_array_equal(genome_a, genome_b)


def test_observers_follow_the_run_lifecycle():
    stats = SimpleStatistics()
    observer = RecordingObserver()
    stats.add_observer(observer)
    params = bit_params(generations=4, **{"quit-on-run-complete": False})
    run_evolution(params, problem=MaxOnes(), statistics=stats)
    assert observer.events == ["start", "end:failure"]
    assert observer.generations == [0, 1, 2, 3]


def test_configure_logging_resolves_level_names():
    package_logger = logging.getLogger("evobreed")
    previous = package_logger.level
    try:
        logger = configure_evobreed_logging(level="debug")
        assert logger is package_logger
        assert logger.level == logging.DEBUG
        with pytest.raises(ValueError):
            configure_evobreed_logging(level="chatty")
    finally:
        package_logger.setLevel(previous)


def test_run_logs_setup_and_generations(caplog):
    caplog.set_level(logging.INFO, logger="evobreed")
    run_evolution(bit_params(generations=2, **{"quit-on-run-complete": False}), problem=MaxOnes())
    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("Setup complete") for m in messages)
    assert any(m.startswith("Generation 1 subpop 0") for m in messages)


def test_run_configuration_is_logged_at_debug(caplog):
    caplog.set_level(logging.DEBUG, logger="evobreed")
    params = bit_params(generations=2, breedthreads=2, **{"quit-on-run-complete": False})
    run_evolution(params, problem=MaxOnes())
    messages = [r.getMessage() for r in caplog.records if r.msg == "Run configuration: %s"]
    expected = {"seed": 11, "generations": 2, "eval_threads": 1, "breed_threads": 2, "quit_on_run_complete": False}
    assert messages == [f"Run configuration: {expected}"]
