"""
NSGA-II ranking: non-dominated sorting, sparsity and archive truncation.

The kernels operate on an objective matrix F of shape (N, M) in which every
column is minimized; the ranker builds that matrix from the individuals'
fitnesses, negating maximized objectives.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from evobreed.core.fitness import MultiObjectiveFitness, NSGA2Fitness
from evobreed.core.individual import Individual
from evobreed.foundation.exceptions import FitnessMissingError, FitnessTypeError


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


def dominance_matrix(F: np.ndarray) -> np.ndarray:
    """``D[i, j]`` is True when row i Pareto-dominates row j (every column minimized)."""
    no_worse = np.all(F[:, None, :] <= F[None, :, :], axis=2)
    better = np.any(F[:, None, :] < F[None, :, :], axis=2)
    return no_worse & better


def non_dominated_sort(F: np.ndarray) -> tuple[list[list[int]], np.ndarray]:
    """
    Peel the objective matrix into Pareto fronts.

    Each pass takes the rows that no remaining row dominates, so front k only
    holds rows dominated by some row of front k - 1.

    Args:
        F: objective matrix (N, M), every column minimized.
    Returns:
        fronts: ascending row indices per front, best front first.
        rank: front index of every row.
    """
    n = F.shape[0]
    rank = np.full(n, -1, dtype=int)
    if n == 0:
        return [], rank
    dominates = dominance_matrix(F)
    remaining = np.ones(n, dtype=bool)
    fronts: list[list[int]] = []
    while remaining.any():
        beaten = dominates[remaining].any(axis=0)
        front = np.flatnonzero(remaining & ~beaten)
        rank[front] = len(fronts)
        fronts.append(front.tolist())
        remaining[front] = False
    return fronts, rank


def crowding_distance(
    values: np.ndarray,
    fronts: Sequence[Sequence[int]],
    lower: np.ndarray | None = None,
    upper: np.ndarray | None = None,
) -> np.ndarray:
    """
    Per-front sparsity.

    Boundary members of every objective get inf; interior members accumulate
    (next - prev) / (upper - lower) over objectives. Without bounds the
    observed front range is used, and objectives with zero range add nothing.
    """
    N = values.shape[0]
    sparsity = np.zeros(N)

    for front in fronts:
        if len(front) == 0:
            continue
        front_arr = np.asarray(front, dtype=int)
        if front_arr.size == 1:
            sparsity[front_arr[0]] = np.inf
            continue

        fvals = values[front_arr]  # shape (k, n_obj)
        n_obj = fvals.shape[1]
        d = np.zeros(front_arr.size, dtype=float)

        for m in range(n_obj):
            order = np.argsort(fvals[:, m], kind="mergesort")
            sorted_vals = fvals[order, m]

            d[order[0]] = np.inf
            d[order[-1]] = np.inf

            if lower is not None and upper is not None:
                span = float(upper[m] - lower[m])
            else:
                span = sorted_vals[-1] - sorted_vals[0]
            if span <= 0.0:
                continue

            contrib = np.zeros_like(sorted_vals)
            contrib[1:-1] = (sorted_vals[2:] - sorted_vals[:-2]) / span
            d[order[1:-1]] += contrib[1:-1]

        sparsity[front_arr] = d

    return sparsity


def select_by_rank_and_sparsity(fronts: Sequence[Sequence[int]], sparsity: np.ndarray, size: int) -> np.ndarray:
    """
    Fill whole fronts in rank order; the first front that does not fit is
    sorted by descending sparsity (ties keep front order) and truncated.
    """
    selected: list[int] = []
    for front in fronts:
        if len(front) == 0:
            continue
        front_arr = np.asarray(front, dtype=int)
        if len(selected) + front_arr.size <= size:
            selected.extend(front_arr.tolist())
            if len(selected) == size:
                break
        else:
            rem = size - len(selected)
            order = np.argsort(-sparsity[front_arr], kind="mergesort")
            selected.extend(front_arr[order[:rem]].tolist())
            break
    return np.array(selected, dtype=int)


class MultiObjectiveRanker:
    """
    Ranks individuals with NSGA-II fitness and truncates unions to an archive.

    Args:
        normalization: ``"declared"`` divides sparsity gaps by each objective's
            declared [min, max] bounds; ``"observed"`` uses the front's range.
    """

    NORMALIZATIONS = ("declared", "observed")

    def __init__(self, normalization: str = "declared") -> None:
        if normalization not in self.NORMALIZATIONS:
            raise ValueError(f"normalization must be one of {self.NORMALIZATIONS}")
        self.normalization = normalization

    @staticmethod
    def objective_matrix(inds: Sequence[Individual], subpopulation: int = 0) -> tuple[np.ndarray, np.ndarray]:
        """
        Return (F, raw): F is minimization-oriented, raw holds the objectives as stored.

        Raises:
            FitnessMissingError: an individual has not been evaluated.
            FitnessTypeError: a fitness is not multi-objective or shapes differ.
        """
        rows = []
        first: MultiObjectiveFitness | None = None
        for i, ind in enumerate(inds):
            fit = ind.fitness
            if not isinstance(fit, MultiObjectiveFitness):
                raise FitnessTypeError(
                    f"Individual {i} of subpopulation {subpopulation} has {type(fit).__name__}; "
                    "multi-objective ranking needs MultiObjectiveFitness."
                )
            if not ind.evaluated or fit.objectives is None:
                raise FitnessMissingError(subpopulation, i)
            if first is None:
                first = fit
            elif fit.num_objectives != first.num_objectives or not np.array_equal(fit.maximize, first.maximize):
                raise FitnessTypeError(f"Individual {i} of subpopulation {subpopulation} has incompatible objectives.")
            rows.append(fit.objectives)
        if first is None:
            return np.empty((0, 0)), np.empty((0, 0))
        raw = np.vstack(rows).astype(float)
        F = np.where(first.maximize, -raw, raw)
        return F, raw

    def rank(self, inds: Sequence[Individual], subpopulation: int = 0) -> tuple[list[list[int]], np.ndarray]:
        """Write rank and sparsity into every individual's NSGA2Fitness; return (fronts, sparsity)."""
        for i, ind in enumerate(inds):
            if not isinstance(ind.fitness, NSGA2Fitness):
                raise FitnessTypeError(
                    f"Individual {i} of subpopulation {subpopulation} has {type(ind.fitness).__name__}; "
                    "NSGA-II ranking needs NSGA2Fitness."
                )
        F, raw = self.objective_matrix(inds, subpopulation)
        if F.shape[0] == 0:
            return [], np.empty(0)
        fronts, ranks = non_dominated_sort(F)
        if self.normalization == "declared":
            fit = inds[0].fitness
            sparsity = crowding_distance(raw, fronts, fit.min_objectives, fit.max_objectives)
        else:
            sparsity = crowding_distance(raw, fronts)
        for ind, r, s in zip(inds, ranks, sparsity):
            ind.fitness.rank = int(r)
            ind.fitness.sparsity = float(s)
        return fronts, sparsity

    def build_archive(self, inds: Sequence[Individual], size: int, subpopulation: int = 0) -> list[Individual]:
        """Rank ``inds`` and keep the best ``size`` of them, front by front."""
        if size < 1:
            raise ValueError("Archive size must be >= 1")
        fronts, sparsity = self.rank(inds, subpopulation)
        chosen = select_by_rank_and_sparsity(fronts, sparsity, size)
        _logger().debug(
            "Subpopulation %d: %d front(s), archive %d of %d.", subpopulation, len(fronts), chosen.size, len(inds)
        )
        return [inds[i] for i in chosen]

    @staticmethod
    def first_front(inds: Sequence[Individual], subpopulation: int = 0) -> list[Individual]:
        """Non-dominated members of ``inds`` by raw objectives."""
        F, _ = MultiObjectiveRanker.objective_matrix(inds, subpopulation)
        if F.shape[0] == 0:
            return []
        fronts, _ = non_dominated_sort(F)
        return [inds[i] for i in fronts[0]]


__all__ = [
    "dominance_matrix",
    "non_dominated_sort",
    "crowding_distance",
    "select_by_rank_and_sparsity",
    "MultiObjectiveRanker",
]
