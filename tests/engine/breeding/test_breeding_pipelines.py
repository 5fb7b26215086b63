from __future__ import annotations

import numpy as np
import pytest

from conftest import state_with
from evobreed.core.fitness import SimpleFitness
from evobreed.core.individual import Individual
from evobreed.core.species import VectorSpecies
from evobreed.engine.breeding import vector_ops
from evobreed.engine.breeding.operators import (
    CrossoverPipeline,
    ForceBreedingPipeline,
    GenerationSwitchPipeline,
    MultiBreedingPipeline,
    MutationPipeline,
    ReproductionPipeline,
)
from evobreed.engine.breeding.selection import RandomSelection, TournamentSelection
from evobreed.foundation.exceptions import GenomeKindError


def _bit_state(n=6, size=8, params=None):
    species = VectorSpecies("bit", genome_size=size)
    rng = np.random.default_rng(1)
    inds = []
    for _ in range(n):
        fit = SimpleFitness()
        fit.set_fitness(1.0)
        inds.append(Individual(rng.random(size) < 0.5, fit, evaluated=True, species=species))
    return state_with(inds, params, species=species)


def test_crossover_with_one_source_is_a_setup_error():
    state = _bit_state()
    pipe = CrossoverPipeline([TournamentSelection()])
    pipe.setup(state, "pop.subpop.0.species.pipe")
    assert any("exactly 2 source(s)" in err for err in state.output.errors)


def test_missing_source_and_leading_same_are_reported_together():
    state = _bit_state(params={"p.source.0": "same", "q.source.0": "tournament"})
    CrossoverPipeline().setup(state, "p")
    CrossoverPipeline().setup(state, "q")
    errors = state.output.errors
    assert any("cannot be 'same'" in e for e in errors)
    assert any("missing source 1" in e for e in errors)


def test_surplus_source_is_reported():
    state = _bit_state(params={"p.source.0": "tournament", "p.source.1": "random"})
    MutationPipeline().setup(state, "p")
    assert any("extra source" in e for e in state.output.errors)


def test_same_source_is_shared_and_survives_cloning():
    state = _bit_state(params={"p.source.0": "tournament", "p.source.1": "same", "p.source.0.size": 3})
    pipe = CrossoverPipeline()
    pipe.setup(state, "p")
    assert not state.output.errors
    assert pipe.sources[0] is pipe.sources[1]
    assert pipe.sources[0].size == 3.0
    clone = pipe.clone()
    assert clone.sources[0] is clone.sources[1]
    assert clone.sources[0] is not pipe.sources[0]


def test_likelihood_out_of_range_is_an_error():
    state = _bit_state(params={"p.likelihood": 1.5, "p.source.0": "random"})
    ReproductionPipeline().setup(state, "p")
    assert any("Likelihood" in e for e in state.output.errors)


def test_mutation_never_touches_parents():
    state = _bit_state()
    parents = [ind.genome.copy() for ind in state.population[0]]
    pipe = MutationPipeline([RandomSelection()], mutation="bit-flip", per_gene=1.0)
    out = []
    n = pipe.produce(4, 4, 0, out, state, 0)
    assert n == 4 and len(out) == 4
    for ind, genome in zip(state.population[0], parents):
        np.testing.assert_array_equal(ind.genome, genome)
    for child in out:
        assert not child.evaluated
        assert all(child is not p for p in state.population[0])


def test_reproduction_keeps_evaluated_flag():
    state = _bit_state()
    out = []
    ReproductionPipeline([RandomSelection()]).produce(2, 2, 0, out, state, 0)
    assert all(child.evaluated for child in out)


def test_crossover_produces_two_children_and_toss_keeps_one():
    state = _bit_state()
    out = []
    assert CrossoverPipeline([RandomSelection(), RandomSelection()], "two").produce(1, 10, 0, out, state, 0) == 2
    assert len(out) == 2
    tossed = []
    assert CrossoverPipeline([RandomSelection(), RandomSelection()], toss=True).produce(1, 10, 0, tossed, state, 0) == 1


def test_mutation_rejects_mismatched_genomes():
    species = VectorSpecies("bit", genome_size=1)
    ind = Individual(["not", "a", "vector"], SimpleFitness(), evaluated=True, species=species)
    state = state_with([ind], species=species)
    with pytest.raises(GenomeKindError):
        MutationPipeline([RandomSelection()]).produce(1, 1, 0, [], state, 0)


def test_check_produces_walks_the_graph():
    species = VectorSpecies("real", genome_size=2)
    species.encoding = "tree"
    state = state_with([Individual(np.zeros(2), SimpleFitness(), species=species)], species=species)
    pipe = ReproductionPipeline([MutationPipeline([RandomSelection()])])
    assert not pipe.produces(state, 0, 0)
    with pytest.raises(GenomeKindError):
        pipe.check_produces(state, 0, 0)


def test_force_and_generation_switch_pipelines():
    state = _bit_state()
    out = []
    forced = ForceBreedingPipeline([ReproductionPipeline([RandomSelection()])], num_inds=3)
    assert forced.produce(1, 5, 0, out, state, 0) == 3
    switch = GenerationSwitchPipeline(
        [ReproductionPipeline([RandomSelection()]), MutationPipeline([RandomSelection()], per_gene=1.0)], switch_at=1
    )
    kept = []
    switch.produce(1, 1, 0, kept, state, 0)
    assert kept[0].evaluated
    state.generation = 1
    mutated = []
    switch.produce(1, 1, 0, mutated, state, 0)
    assert not mutated[0].evaluated


def test_multi_pipeline_uses_likelihoods_as_weights():
    state = _bit_state()
    always = ReproductionPipeline([RandomSelection()])
    never = MutationPipeline([RandomSelection()], per_gene=1.0)
    multi = MultiBreedingPipeline([always, never])
    state.parameters.set("m.source.1.likelihood", 0.0)
    multi.setup(state, "m")
    assert not state.output.errors
    for _ in range(20):
        out = []
        multi.produce(1, 1, 0, out, state, 0)
        assert out[0].evaluated


def test_vector_crossover_kernels_swap_genes_in_place():
    rng = np.random.default_rng(3)
    a = np.zeros(10, dtype=bool)
    b = np.ones(10, dtype=bool)
    vector_ops.one_point_crossover(a, b, rng)
    assert (a.sum() + b.sum()) == 10
    assert np.all(a ^ b)


def test_gaussian_kernel_leaves_clamping_to_the_caller():
    rng = np.random.default_rng(4)
    x = np.full(50, 0.5)
    assert vector_ops.gaussian_mutation(x, 1.0, 10.0, rng)
    assert np.any((x < 0.0) | (x > 1.0))


@pytest.mark.parametrize("encoding, start", [("real", 0.5), ("integer", 2)])
def test_gaussian_mutation_is_clamped_by_the_species(encoding, start):
    species = VectorSpecies(encoding, genome_size=50, min_gene=0.0, max_gene=4.0)
    ind = Individual(np.full(50, start, dtype=species.dtype), SimpleFitness(), evaluated=True, species=species)
    pipe = MutationPipeline(mutation="gaussian", per_gene=1.0, sigma=10.0)
    assert pipe.mutate(ind, np.random.default_rng(4))
    assert ind.genome.dtype == species.dtype
    assert np.all((ind.genome >= 0) & (ind.genome <= 4))
    assert np.any(ind.genome == 0) and np.any(ind.genome == 4)


def test_species_clamp_leaves_bit_vectors_alone():
    genome = np.array([True, False, True])
    np.testing.assert_array_equal(VectorSpecies("bit", genome_size=3).clamp(genome), [True, False, True])
    real = VectorSpecies("real", genome_size=3, min_gene=-1.0, max_gene=1.0)
    np.testing.assert_array_equal(real.clamp(np.array([-3.0, 0.25, 7.0])), [-1.0, 0.25, 1.0])
