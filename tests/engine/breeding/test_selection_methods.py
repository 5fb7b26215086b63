from __future__ import annotations

from collections import Counter

import numpy as np
import pytest

from conftest import objective_individual, scalar_individual, state_with
from evobreed.engine.breeding.selection import (
    BestSelection,
    BoltzmannSelection,
    FitnessProportionateSelection,
    RandomSelection,
    SUSSelection,
    TournamentSelection,
)
from evobreed.foundation.exceptions import FatalError


def _draw(method, state, n):
    method.prepare_to_produce(state, 0, 0)
    picks = [method.produce_index(0, state, 0) for _ in range(n)]
    method.finish_producing(state, 0, 0)
    return Counter(picks)


def test_tournament_of_size_one_is_uniform():
    state = state_with([scalar_individual(v) for v in (1.0, 2.0, 3.0, 4.0)])
    counts = _draw(TournamentSelection(size=1.0), state, 8000)
    for i in range(4):
        assert counts[i] == pytest.approx(2000, rel=0.1)


def test_large_tournament_finds_the_best():
    state = state_with([scalar_individual(v) for v in (1.0, 9.0, 3.0, 4.0)])
    counts = _draw(TournamentSelection(size=40.0), state, 200)
    assert counts.most_common(1)[0][0] == 1
    worst = _draw(TournamentSelection(size=40.0, pick_worst=True), state, 200)
    assert worst.most_common(1)[0][0] == 0


def test_fractional_tournament_size():
    rng = np.random.default_rng(0)
    sizes = Counter(TournamentSelection(size=2.25).tournament_size(rng) for _ in range(4000))
    assert set(sizes) == {2, 3}
    assert sizes[3] / 4000 == pytest.approx(0.25, abs=0.03)


def test_produce_returns_references_into_the_subpopulation():
    inds = [scalar_individual(v) for v in (1.0, 2.0)]
    state = state_with(inds)
    out = []
    n = RandomSelection().produce(3, 5, 0, out, state, 0)
    assert n == 3
    assert all(any(o is i for i in inds) for o in out)


def test_fitness_proportionate_follows_values():
    state = state_with([scalar_individual(v) for v in (0.0, 1.0, 3.0)])
    counts = _draw(FitnessProportionateSelection(), state, 8000)
    assert counts[0] == 0
    assert counts[2] / counts[1] == pytest.approx(3.0, rel=0.15)


def test_fitness_proportionate_rejects_negative_values():
    state = state_with([scalar_individual(v) for v in (-1.0, 2.0)])
    with pytest.raises(FatalError):
        FitnessProportionateSelection().prepare_to_produce(state, 0, 0)


def test_sus_spreads_picks_by_expected_count():
    state = state_with([scalar_individual(v) for v in (1.0, 1.0, 2.0)])
    for _ in range(20):
        counts = _draw(SUSSelection(), state, 3)
        # expected count 1.5: SUS gives either 1 or 2, never 0 or 3
        assert 1 <= counts[2] <= 2
        assert sum(counts.values()) == 3


def test_boltzmann_temperature_controls_pressure():
    state = state_with([scalar_individual(v) for v in (0.0, 1.0)])
    cold = _draw(BoltzmannSelection(temperature=0.05), state, 500)
    hot = _draw(BoltzmannSelection(temperature=100.0), state, 4000)
    assert cold[1] > 490
    assert hot[0] == pytest.approx(2000, rel=0.1)


def test_best_selection_restricts_to_top_n():
    state = state_with([scalar_individual(v) for v in (5.0, 1.0, 9.0, 3.0)])
    counts = _draw(BestSelection(n=2), state, 400)
    assert set(counts) == {0, 2}


def test_best_selection_defaults_to_first_front():
    inds = [objective_individual(v) for v in ([1, 4], [4, 1], [4, 4])]
    state = state_with(inds)
    counts = _draw(BestSelection(), state, 200)
    assert set(counts) == {0, 1}
