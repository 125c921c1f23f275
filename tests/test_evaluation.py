"""
Tests for validation indices, algorithm ranking and trimming.
"""

import numpy as np
import pandas as pd
import pytest
from sklearn.cluster import KMeans

from diceclust import ConsensusConfig, DegenerateTrim, InvalidConfig, UnresolvedMissingData
from diceclust.ensemble import EnsembleGenerator, EnsembleImputer
from diceclust.evaluation import (
    INDEX_REGISTRY,
    TrimmedEnsemble,
    allocate_copies,
    calinski_harabasz_scoring,
    compute_index_table,
    davies_bouldin_scoring,
    external_indices,
    pac,
    rank_algorithms,
    register_index,
    silhouette_scoring,
    trim_ensemble,
    trim_rank_sums,
)


@pytest.fixture
def score_table():
    return pd.DataFrame(
        {'pac': [0.1, 0.2, 0.3, 0.4], 'chi': [400.0, 300.0, 200.0, 100.0]},
        index=pd.Index(['a', 'b', 'c', 'd'], name='algorithm')
    )


# ------------------------------------------------------------------
# indices
# ------------------------------------------------------------------


def test_pac_of_crisp_matrix_is_zero():
    M = np.array([
        [1, 1, 0, 0],
        [1, 1, 0, 0],
        [0, 0, 1, 1],
        [0, 0, 1, 1],
    ], dtype=float)
    assert pac(M) == 0.0


def test_pac_of_ambiguous_matrix_is_one():
    M = np.full((5, 5), 0.5)
    np.fill_diagonal(M, 1.0)
    assert pac(M) == 1.0


def test_pac_bounds_and_nan_entries():
    M = np.array([
        [1.0, 0.05, 0.5],
        [0.05, 1.0, np.nan],
        [0.5, np.nan, 1.0],
    ])
    assert pac(M) == 1.0
    assert pac(M, lower=0.1, upper=0.9) == 0.5
    with pytest.raises(ValueError):
        pac(M, lower=0.5, upper=0.5)


def test_pac_without_defined_pairs_is_nan():
    M = np.array([[1.0, np.nan], [np.nan, 1.0]])
    assert np.isnan(pac(M))


def test_partition_scores(blobs):
    X, y = blobs

    assert calinski_harabasz_scoring(X, y) > 100
    assert silhouette_scoring(X, y) > 0.8
    assert davies_bouldin_scoring(X, y) < 0.5


def test_partition_scores_of_degenerate_partitions(blobs):
    X, _ = blobs
    single = np.zeros(len(X), dtype=int)

    assert np.isnan(calinski_harabasz_scoring(X, single))
    assert np.isnan(silhouette_scoring(X, single))
    assert np.isnan(davies_bouldin_scoring(X, np.arange(len(X))))


def test_registry_directions():
    assert INDEX_REGISTRY['pac'].direction == 'lower'
    assert INDEX_REGISTRY['chi'].direction == 'higher'
    assert INDEX_REGISTRY['silhouette'].higher_is_better
    assert not INDEX_REGISTRY['davies_bouldin'].higher_is_better


def test_register_index():
    index = register_index('neg_chi', lambda X, labels: -calinski_harabasz_scoring(X, labels), 'lower')
    try:
        assert INDEX_REGISTRY['neg_chi'] is index
        assert ConsensusConfig(indices=['neg_chi']).indices == ['neg_chi']
        with pytest.raises(ValueError):
            register_index('bad', pac, 'sideways')
    finally:
        del INDEX_REGISTRY['neg_chi']


# ------------------------------------------------------------------
# ranking and trimming
# ------------------------------------------------------------------


def test_rank_algorithms_uses_directions(score_table):
    ranks = rank_algorithms(score_table)

    np.testing.assert_array_equal(ranks['pac'], [1, 2, 3, 4])
    np.testing.assert_array_equal(ranks['chi'], [1, 2, 3, 4])
    np.testing.assert_array_equal(ranks['rank_sum'], [2, 4, 6, 8])


def test_rank_ties_are_averaged_and_nan_ranked_last():
    table = pd.DataFrame({'pac': [0.1, 0.1, 0.3], 'chi': [np.nan, 5.0, 3.0]}, index=['x', 'y', 'z'])

    ranks = rank_algorithms(table)

    np.testing.assert_array_equal(ranks['pac'], [1.5, 1.5, 3])
    np.testing.assert_array_equal(ranks['chi'], [3, 1, 2])


def test_rank_requires_k_for_multiindex(score_table):
    table = score_table.copy()
    table.index = pd.MultiIndex.from_tuples([(a, 2) for a in table.index], names=['algorithm', 'k'])

    with pytest.raises(ValueError):
        rank_algorithms(table)
    with pytest.raises(ValueError):
        rank_algorithms(table, 3)
    assert list(rank_algorithms(table, 2).index) == ['a', 'b', 'c', 'd']


def test_only_worst_rank_sum_is_trimmed():
    kept, removed, threshold, degenerate = trim_rank_sums(
        pd.Series([2, 5, 7, 9], index=['a', 'b', 'c', 'd']), quantile=0.75
    )

    assert kept == ['a', 'b', 'c']
    assert removed == ['d']
    assert threshold == pytest.approx(7.5)
    assert not degenerate


def test_degenerate_trim_keeps_everything():
    with pytest.warns(DegenerateTrim):
        kept, removed, _, degenerate = trim_rank_sums(pd.Series([2, 4], index=['a', 'b']), quantile=0.75)

    assert kept == ['a', 'b']
    assert removed == []
    assert degenerate


def test_invalid_quantile():
    with pytest.raises(InvalidConfig):
        trim_rank_sums(pd.Series([1, 2]), quantile=1.5)


def test_copies_by_largest_remainder():
    assert allocate_copies({'A': 0.8, 'B': 0.2}, 5) == {'A': 4, 'B': 1}


def test_copy_ties_go_to_smallest_identifier():
    copies = allocate_copies({'c': 1, 'a': 1, 'b': 1}, 100)
    assert copies == {'c': 33, 'a': 34, 'b': 33}
    assert sum(copies.values()) == 100


def test_copy_ties_order_integer_identifiers_numerically():
    copies = allocate_copies({i: 1.0 for i in range(12)}, 100)

    assert sum(copies.values()) == 100
    assert [copies[i] for i in range(4)] == [9, 9, 9, 9]
    assert [copies[i] for i in range(4, 12)] == [8] * 8


def test_copy_ties_with_mixed_identifier_types():
    copies = allocate_copies({'b': 1, 1: 1, 'a': 1}, 4)
    assert copies == {1: 2, 'a': 1, 'b': 1}


def test_invalid_copy_totals():
    with pytest.raises(InvalidConfig):
        allocate_copies({'a': 1}, 0)
    with pytest.raises(InvalidConfig):
        allocate_copies({'a': 1}, 101)
    with pytest.raises(ValueError):
        allocate_copies({'a': 0, 'b': 0}, 10)
    with pytest.raises(ValueError):
        allocate_copies({'a': -1, 'b': 2}, 10)


def test_trim_ensemble_uniform(score_table):
    trimmed = trim_ensemble(score_table, quantile=0.75, total_copies=10)

    assert isinstance(trimmed, TrimmedEnsemble)
    assert trimmed.kept == ['a', 'b', 'c']
    assert trimmed.removed == ['d']
    assert trimmed.weights == pytest.approx({'a': 1 / 3, 'b': 1 / 3, 'c': 1 / 3})
    assert trimmed.copies == {'a': 4, 'b': 3, 'c': 3}
    assert trimmed.total_copies == 10


def test_trim_ensemble_reweighed(score_table):
    trimmed = trim_ensemble(score_table, quantile=0.75, reweigh=True, total_copies=100)

    assert trimmed.weights == pytest.approx({'a': 8 / 18, 'b': 6 / 18, 'c': 4 / 18})
    assert sum(trimmed.weights.values()) == pytest.approx(1.0)
    assert trimmed.copies == {'a': 45, 'b': 33, 'c': 22}


def test_trimmed_summary_frame(score_table):
    frame = trim_ensemble(score_table, total_copies=10).to_frame()

    assert list(frame['kept']) == [True, True, True, False]
    assert frame.loc['d', 'copies'] == 0


def test_trimmed_consensus_matrix(small_store):
    table = pd.DataFrame({'pac': [0.1, 0.2]}, index=['a', 'b'])
    trimmed = trim_ensemble(table, quantile=1.0, total_copies=4)
    assert trimmed.copies == {'a': 2, 'b': 2}

    M = trimmed.consensus_matrix(small_store, k=2).get_consensus_matrix()
    # samples 2 and 4: 'a' never together in two columns, 'b' together once
    assert M[2, 4] == pytest.approx(1 / 3)


# ------------------------------------------------------------------
# index table
# ------------------------------------------------------------------


def test_compute_index_table(blobs):
    X, _ = blobs
    config = ConsensusConfig(ks=[2, 3], reps=5, seed=0, indices=['pac', 'chi', 'silhouette'])
    store = EnsembleGenerator.from_config(
        {'km': KMeans(n_clusters=2, n_init=10), 'first': lambda X, k: np.argsort(np.argsort(X[:, 0])) % k},
        config
    ).fit_transform(X)
    store = EnsembleImputer.from_config(config).transform(store, X)

    table = compute_index_table(X, store, config)

    assert list(table.columns) == ['pac', 'chi', 'silhouette']
    assert list(table.index) == [('km', 2), ('first', 2), ('km', 3), ('first', 3)]
    assert table.attrs['directions'] == {'pac': 'lower', 'chi': 'higher', 'silhouette': 'higher'}
    assert table['pac'].between(0, 1).all()
    assert table.loc[('km', 3), 'pac'] == 0.0
    assert table.loc[('km', 3), 'silhouette'] > table.loc[('first', 3), 'silhouette']

    with pytest.warns(DegenerateTrim):
        trimmed = trim_ensemble(table, 3, quantile=0.75)
    assert trimmed.kept == ['km', 'first']
    assert trimmed.degenerate


def test_compute_index_table_with_undefined_pairs(small_store):
    X = np.arange(12, dtype=float).reshape(6, 2)

    with pytest.warns(UnresolvedMissingData):
        table = compute_index_table(X, small_store, ConsensusConfig(ks=[2]))

    assert table['chi'].isna().all()
    assert table['pac'].notna().all()


def test_compute_index_table_checks_rows(small_store):
    with pytest.raises(ValueError):
        compute_index_table(np.zeros((3, 2)), small_store, ConsensusConfig(ks=[2]))
    with pytest.raises(ValueError):
        compute_index_table(np.zeros((6, 2)), small_store, ConsensusConfig(ks=[3]))


# ------------------------------------------------------------------
# external indices
# ------------------------------------------------------------------


def test_external_indices_of_permuted_partition():
    reference = np.array([0, 0, 1, 1, 2, 2])
    labels = np.array([5, 5, 3, 3, 4, 4])

    scores = external_indices(labels, reference)

    assert scores['accuracy'] == 1.0
    assert scores['ari'] == pytest.approx(1.0)
    assert scores['nmi'] == pytest.approx(1.0)


def test_external_indices_of_partial_agreement():
    scores = external_indices([1, 1, 1, 2], [0, 0, 1, 1])
    assert scores['accuracy'] == 0.75
    assert scores['ari'] < 1.0
