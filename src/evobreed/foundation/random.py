"""
Per-thread random streams.

Every worker thread owns one ``numpy.random.Generator``. Streams are spawned
from a single ``SeedSequence`` built from the run seed, so stream ``i`` depends
only on the seed and ``i`` and never on scheduling.
"""

from __future__ import annotations

import numpy as np


def spawn_generators(seed: int | None, count: int) -> list[np.random.Generator]:
    """Create ``count`` independent generators derived from ``seed``."""
    if count < 1:
        raise ValueError("count must be >= 1")
    root = np.random.SeedSequence(seed)
    return [np.random.default_rng(child) for child in root.spawn(count)]


def random_bool(rng: np.random.Generator, probability: float) -> bool:
    """Bernoulli draw that never consumes the stream for 0 or 1."""
    if probability >= 1.0:
        return True
    if probability <= 0.0:
        return False
    return bool(rng.random() < probability)


__all__ = ["spawn_generators", "random_bool"]
