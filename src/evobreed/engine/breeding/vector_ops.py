"""
Variation kernels on 1-D numpy genomes.

Crossover kernels work in place on a pair of equally long vectors and return
True when either child changed. Mutation kernels work in place on one vector
and return True when a gene changed.
"""

from __future__ import annotations

import numpy as np


def _check_pair(a: np.ndarray, b: np.ndarray) -> int:
    if a.shape != b.shape or a.ndim != 1:
        raise ValueError("Crossover needs two 1-D genomes of equal length.")
    return a.shape[0]


def _swap(a: np.ndarray, b: np.ndarray, mask: np.ndarray | slice) -> bool:
    changed = bool(np.any(a[mask] != b[mask]))
    tmp = a[mask].copy()
    a[mask] = b[mask]
    b[mask] = tmp
    return changed


def one_point_crossover(a: np.ndarray, b: np.ndarray, rng: np.random.Generator) -> bool:
    """Swap the tails after one cut point in [1, D)."""
    D = _check_pair(a, b)
    if D < 2:
        return False
    cut = int(rng.integers(1, D))
    return _swap(a, b, slice(cut, D))


def two_point_crossover(a: np.ndarray, b: np.ndarray, rng: np.random.Generator) -> bool:
    """Swap the segment between two cut points."""
    D = _check_pair(a, b)
    if D < 2:
        return False
    cuts = rng.integers(0, D, size=2)
    lo, hi = int(cuts.min()), int(cuts.max())
    hi = min(max(hi, lo + 1), D)
    return _swap(a, b, slice(lo, hi))


def uniform_crossover(a: np.ndarray, b: np.ndarray, rng: np.random.Generator, prob: float = 0.5) -> bool:
    """Swap every gene independently with probability ``prob``."""
    D = _check_pair(a, b)
    mask = rng.random(D) < prob
    if not np.any(mask):
        return False
    return _swap(a, b, mask)


def bit_flip_mutation(x: np.ndarray, prob: float, rng: np.random.Generator) -> bool:
    """Flip each bit with probability ``prob``."""
    if x.size == 0 or prob <= 0.0:
        return False
    mask = rng.random(x.shape) < prob
    if not np.any(mask):
        return False
    if x.dtype == bool:
        x[mask] = ~x[mask]
    else:
        x[mask] = 1 - x[mask]
    return True


def gaussian_mutation(
    x: np.ndarray,
    prob: float,
    sigma: float,
    rng: np.random.Generator,
) -> bool:
    """Add N(0, sigma) noise to each gene with probability ``prob``; the caller clamps to bounds."""
    if x.size == 0 or prob <= 0.0:
        return False
    mask = rng.random(x.shape) < prob
    if not np.any(mask):
        return False
    before = x[mask].copy()
    noise = rng.normal(0.0, sigma, size=int(mask.sum()))
    if np.issubdtype(x.dtype, np.integer):
        noise = np.rint(noise).astype(x.dtype)
    x[mask] = x[mask] + noise
    return bool(np.any(x[mask] != before))


def reset_mutation(
    x: np.ndarray,
    prob: float,
    lower: float,
    upper: float,
    rng: np.random.Generator,
) -> bool:
    """Redraw each gene uniformly within bounds with probability ``prob``."""
    if x.size == 0 or prob <= 0.0:
        return False
    mask = rng.random(x.shape) < prob
    count = int(mask.sum())
    if count == 0:
        return False
    before = x[mask].copy()
    if x.dtype == bool:
        x[mask] = rng.random(count) < 0.5
    elif np.issubdtype(x.dtype, np.integer):
        x[mask] = rng.integers(int(lower), int(upper) + 1, size=count)
    else:
        x[mask] = rng.uniform(lower, upper, size=count)
    return bool(np.any(x[mask] != before))


__all__ = [
    "one_point_crossover",
    "two_point_crossover",
    "uniform_crossover",
    "bit_flip_mutation",
    "gaussian_mutation",
    "reset_mutation",
]
