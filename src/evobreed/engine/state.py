"""
Run context and generational driver.

``EvolutionState`` owns the population, the per-thread random streams, the
components and a fixed worker pool. ``run()`` never exits the process: it
returns a ``RunResult`` describing how the run ended.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Literal, Mapping, TypeVar

from evobreed.core.individual import Individual
from evobreed.core.population import Population
from evobreed.foundation.exceptions import (
    BreedingError,
    EvaluationError,
    EvoBreedError,
    FatalError,
    SetupError,
)
from evobreed.foundation.output import ErrorLog
from evobreed.foundation.parameters import Parameters
from evobreed.foundation.random import spawn_generators

from .registry import get_breeder_registry, get_evaluator_registry, get_statistics_registry

if TYPE_CHECKING:
    from evobreed.core.problem import Problem

    from .breeding.breeder import Breeder
    from .evaluation.evaluator import Evaluator
    from .initializer import SimpleInitializer
    from .statistics import GenerationRecord, Statistics

T = TypeVar("T")

RunStatus = Literal["success", "failure", "setup_error", "fatal"]


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


@dataclass
class RunConfig:
    """Run-level settings read from the top-level parameters."""

    seed: int | None = 0
    generations: int = 50
    eval_threads: int = 1
    breed_threads: int = 1
    quit_on_run_complete: bool = True

    @classmethod
    def from_parameters(cls, params: Parameters, output: ErrorLog) -> RunConfig:
        cfg = cls()
        with output.collect("run"):
            if params.exists("seed"):
                cfg.seed = params.get_int("seed", min_value=0)
        with output.collect("run"):
            cfg.generations = params.get_int("generations", cfg.generations, min_value=1)
        with output.collect("run"):
            cfg.eval_threads = params.get_int("evalthreads", cfg.eval_threads, min_value=1)
        with output.collect("run"):
            cfg.breed_threads = params.get_int("breedthreads", cfg.breed_threads, min_value=1)
        with output.collect("run"):
            cfg.quit_on_run_complete = params.get_boolean("quit-on-run-complete", cfg.quit_on_run_complete)
        return cfg

    @property
    def threads(self) -> int:
        return max(self.eval_threads, self.breed_threads)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RunResult:
    """Outcome of one run."""

    status: RunStatus
    generation: int = 0
    population: Population | None = None
    best_of_run: list[Individual | None] = field(default_factory=list)
    records: list[GenerationRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "success"


class EvolutionState:
    """
    Process-wide context of one run.

    Args:
        parameters: Run parameters (a ``Parameters`` or a plain mapping).
        problem: Problem prototype; overrides ``eval.problem``.
        evaluator / breeder / statistics: Component instances overriding the
            ``eval`` / ``breed`` / ``stat`` parameters.
        population: A ready population; skips ``pop`` setup and initialization.
    """

    def __init__(
        self,
        parameters: Parameters | Mapping[str, Any] | None = None,
        *,
        problem: Problem | None = None,
        evaluator: Evaluator | None = None,
        breeder: Breeder | None = None,
        statistics: Statistics | None = None,
        population: Population | None = None,
    ) -> None:
        if isinstance(parameters, Parameters):
            self.parameters = parameters
        else:
            self.parameters = Parameters(parameters)
        self.output = ErrorLog()
        self.config = RunConfig.from_parameters(self.parameters, self.output)
        self.random = spawn_generators(self.config.seed, self.config.threads)
        self.generation = 0
        self.population: Population = population if population is not None else Population()
        self._population_given = population is not None
        self.problem = problem
        self.evaluator = evaluator
        self.breeder = breeder
        self.statistics = statistics
        self.initializer: SimpleInitializer | None = None
        self.first_error: BaseException | None = None
        self._executor: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def setup(self) -> None:
        """
        Build and validate every component.

        Raises:
            SetupError: carrying every recoverable error recorded during setup.
        """
        from .initializer import SimpleInitializer

        self.initializer = SimpleInitializer()
        if not self._population_given:
            self.initializer.setup(self, "pop")

        params = self.parameters
        with self.output.collect("breed"):
            if self.breeder is None:
                self.breeder = params.get_named_instance("breed", get_breeder_registry(), default="simple")
        if self.breeder is not None:
            self.breeder.setup(self, "breed")

        with self.output.collect("eval"):
            if self.evaluator is None:
                self.evaluator = params.get_named_instance("eval", get_evaluator_registry(), default="simple")
        if self.evaluator is not None:
            if self.problem is not None and self.evaluator.problem is None:
                self.evaluator.problem = self.problem
            self.evaluator.setup(self, "eval")

        with self.output.collect("stat"):
            if self.statistics is None:
                self.statistics = params.get_named_instance("stat", get_statistics_registry(), default="simple")
        if self.statistics is not None:
            self.statistics.setup(self, "stat")

        self.output.exit_if_errors()
        _logger().info(
            "Setup complete: %d subpopulation(s), %d eval thread(s), %d breed thread(s).",
            len(self.population),
            self.config.eval_threads,
            self.config.breed_threads,
        )
        _logger().debug("Run configuration: %s", self.config.to_dict())

    # ------------------------------------------------------------------
    # Worker pool
    # ------------------------------------------------------------------
    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.config.threads, thread_name_prefix="evobreed")
        return self._executor

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> EvolutionState:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _as_fatal(self, phase: str, thread: int, exc: BaseException) -> FatalError:
        if isinstance(exc, FatalError):
            return exc
        message = f"Thread {thread} failed during {phase}: {type(exc).__name__}: {exc}"
        if phase == "evaluation":
            return EvaluationError(message, thread=thread)
        return BreedingError(message)

    def run_workers(self, task: Callable[[int], T], threads: int, phase: str) -> list[T]:
        """
        Run ``task(thread)`` for every thread index and join them all.

        If any task failed, ``first_error`` is set, every result is discarded
        and the failure of the lowest thread index is raised as a FatalError.
        """
        if threads <= 1:
            try:
                return [task(0)]
            except Exception as exc:
                self.first_error = exc
                fatal = self._as_fatal(phase, 0, exc)
                if fatal is exc:
                    raise
                raise fatal from exc

        futures = [self.executor.submit(task, t) for t in range(threads)]
        wait(futures)
        for t, fut in enumerate(futures):
            exc = fut.exception()
            if exc is not None:
                self.first_error = exc
                _logger().error("Thread %d failed during %s; discarding partial results.", t, phase)
                fatal = self._as_fatal(phase, t, exc)
                if fatal is exc:
                    raise exc
                raise fatal from exc
        return [fut.result() for fut in futures]

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------
    def _result(self, status: RunStatus, errors: list[str] | None = None) -> RunResult:
        stats = self.statistics
        return RunResult(
            status=status,
            generation=self.generation,
            population=self.population,
            best_of_run=list(getattr(stats, "best_of_run", [])),
            records=list(getattr(stats, "records", [])),
            errors=errors or [],
        )

    def run(self) -> RunResult:
        """Set up, initialize and evolve until a run-complete condition or the last generation."""
        try:
            self.setup()
        except SetupError as exc:
            return RunResult(status="setup_error", errors=list(exc.errors))

        status: RunStatus = "failure"
        errors: list[str] = []
        try:
            if not self._population_given:
                self.initializer.initial_population(self)
            self.statistics.on_start(self)
            while True:
                self.evaluator.evaluate_population(self)
                self.statistics.post_evaluation(self)
                if self.config.quit_on_run_complete:
                    message = self.evaluator.run_complete(self)
                    if message:
                        _logger().info("Run complete at generation %d: %s", self.generation, message)
                        status = "success"
                        break
                if self.generation >= self.config.generations - 1:
                    break
                self.population = self.breeder.breed(self)
                self.generation += 1
        except EvoBreedError as exc:
            _logger().error("Run aborted at generation %d: %s", self.generation, exc.message)
            status = "fatal"
            errors = [exc.message]
        finally:
            self.close()
        result = self._result(status, errors)
        self.statistics.on_end(self, result)
        return result


def run_evolution(
    parameters: Parameters | Mapping[str, Any],
    *,
    problem: Problem | None = None,
    **components: Any,
) -> RunResult:
    """
    Convenience driver: build an ``EvolutionState`` and run it.

    Example:
        result = run_evolution(params, problem=MaxOnes())
        if result.success:
            best = result.best_of_run[0]
    """
    state = EvolutionState(parameters, problem=problem, **components)
    return state.run()


__all__ = ["RunConfig", "RunResult", "EvolutionState", "run_evolution"]
