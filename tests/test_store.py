"""
Tests for the ensemble label store.
"""

import numpy as np
import pytest
from joblib import Parallel, delayed

from diceclust import ClusteringJobWarning, ShapeMismatch
from diceclust.ensemble import MISSING, CellState, EnsembleStore, LabelSlice


def test_cells_start_pending_or_excluded():
    store = EnsembleStore(4, [[0, 1, 2]], ['a'], [2])

    assert store.get(0, 0, 'a', 2) == (CellState.PENDING, MISSING)
    assert store.get(3, 0, 'a', 2) == (CellState.EXCLUDED, MISSING)
    assert store.pending_jobs() == [(0, 'a', 2)]


def test_excluded_cells_remain_missing(small_store):
    state, label = small_store.get(5, 0, 'a', 2)
    assert state == CellState.EXCLUDED
    assert label is MISSING

    state, label = small_store.get(0, 1, 'b', 2)
    assert state == CellState.EXCLUDED
    assert label is MISSING


def test_recorded_labels_are_readable(small_store):
    assert small_store.get(0, 0, 'a', 2) == (CellState.KNOWN, 0)
    assert small_store.get(4, 1, 'a', 2) == (CellState.KNOWN, 7)
    assert small_store.get(5, 1, 'b', 2) == (CellState.KNOWN, 1)


def test_explicit_missing_is_failed_and_logged(small_store):
    assert small_store.get(2, 1, 'b', 2) == (CellState.FAILED, MISSING)
    assert len(small_store.failures) == 1
    failure = small_store.failures[0]
    assert (failure['replicate'], failure['algorithm'], failure['k']) == (1, 'b', 2)
    assert failure['n_failed'] == 1


def test_nan_and_none_mark_missing():
    store = EnsembleStore(3, [[0, 1, 2]], ['a', 'b'], [2])
    with pytest.warns(ClusteringJobWarning):
        assert store.record(0, 'a', 2, [0, np.nan, 1]) == 1
    with pytest.warns(ClusteringJobWarning):
        assert store.record(0, 'b', 2, [None, 1, 1]) == 1

    assert store.get(1, 0, 'a', 2)[0] == CellState.FAILED
    assert store.get(0, 0, 'b', 2)[0] == CellState.FAILED


def test_labels_outside_mask_raise():
    store = EnsembleStore(4, [[0, 1, 2]], ['a'], [2])
    with pytest.raises(ShapeMismatch):
        store.record(0, 'a', 2, {0: 1, 1: 1, 2: 0, 3: 0})


def test_omitted_samples_raise():
    store = EnsembleStore(4, [[0, 1, 2]], ['a'], [2])
    with pytest.raises(ShapeMismatch):
        store.record(0, 'a', 2, {0: 1, 1: 1})


def test_wrong_length_raises():
    store = EnsembleStore(4, [[0, 1, 2]], ['a'], [2])
    with pytest.raises(ShapeMismatch):
        store.record(0, 'a', 2, [0, 1, 1, 0])


def test_non_integer_labels_raise():
    store = EnsembleStore(3, [[0, 1, 2]], ['a'], [2])
    with pytest.raises(ShapeMismatch):
        store.record(0, 'a', 2, [0, 1.5, 1])


def test_non_numeric_labels_raise():
    store = EnsembleStore(3, [[0, 1, 2]], ['a'], [2])
    with pytest.raises(ShapeMismatch):
        store.record(0, 'a', 2, ['x', 'y', 'x'])
    with pytest.raises(ShapeMismatch):
        store.record(0, 'a', 2, {'first': 0, 1: 0, 2: 1})
    assert store.pending_jobs() == [(0, 'a', 2)]


def test_get_checks_sample_range(small_store):
    with pytest.raises(ValueError):
        small_store.get(-1, 0, 'a', 2)
    with pytest.raises(ValueError):
        small_store.get(6, 0, 'a', 2)


def test_record_is_insert_once(small_store):
    with pytest.raises(ValueError):
        small_store.record(0, 'a', 2, [0, 0, 0, 1, 1])


def test_unknown_key_raises(small_store):
    with pytest.raises(ValueError):
        small_store.record(0, 'c', 2, [0, 0, 0, 1, 1])
    with pytest.raises(ValueError):
        small_store.record(2, 'a', 2, [0, 0, 0, 1, 1])


def test_mark_failed_fails_whole_mask():
    store = EnsembleStore(4, [[0, 2, 3]], ['a'], [2])
    with pytest.warns(ClusteringJobWarning):
        assert store.mark_failed(0, 'a', 2, reason='did not converge') == 3

    label_slice = store.get_slice('a', 2)
    assert label_slice.count_states()['FAILED'] == 3
    assert label_slice.count_states()['EXCLUDED'] == 1
    assert store.failures[0]['reason'] == 'did not converge'


def test_pending_to_failed():
    store = EnsembleStore(3, [[0, 1], [1, 2]], ['a'], [2, 3])
    store.record(0, 'a', 2, [0, 1])
    with pytest.warns(ClusteringJobWarning):
        assert store.pending_to_failed() == 3
    assert store.pending_jobs() == []


def test_to_array_layout(small_store):
    E = small_store.to_array()

    assert E.shape == (6, 2, 2, 1)
    assert E[0, 0, 0, 0] == 0
    assert E[4, 1, 0, 0] == 7
    assert np.isnan(E[5, 0, 0, 0])
    assert np.isnan(E[2, 1, 1, 0])
    assert small_store.state_array()[2, 1, 1, 0] == CellState.FAILED


def test_missing_report(small_store):
    report = small_store.missing_report()

    row = report.loc[(1, 'b', 2)]
    assert row['KNOWN'] == 4
    assert row['FAILED'] == 1
    assert row['EXCLUDED'] == 1
    assert report.loc[(0, 'a', 2), 'PENDING'] == 0
    assert len(report) == 4


def test_get_slice_is_a_copy(small_store):
    label_slice = small_store.get_slice('a', 2)
    label_slice.labels[:] = 99
    assert small_store.get(0, 0, 'a', 2) == (CellState.KNOWN, 0)


def test_update_slice_rejects_changes_to_known_cells(small_store):
    label_slice = small_store.get_slice('b', 2)
    label_slice.labels[0, 0] = 5
    with pytest.raises(ValueError):
        small_store.update_slice('b', 2, label_slice)


def test_update_slice_only_allows_imputed(small_store):
    label_slice = small_store.get_slice('b', 2)
    label_slice.states[1, 2] = CellState.KNOWN
    with pytest.raises(ValueError):
        small_store.update_slice('b', 2, label_slice)

    label_slice.states[1, 2] = CellState.IMPUTED
    label_slice.labels[1, 2] = 1
    small_store.update_slice('b', 2, label_slice)
    assert small_store.get(2, 1, 'b', 2) == (CellState.IMPUTED, 1)


def test_label_slice_helpers(small_store):
    label_slice = small_store.get_slice('b', 2)

    assert isinstance(label_slice, LabelSlice)
    assert label_slice.shape == (2, 6)
    assert label_slice.n_missing == 3
    assert not label_slice.is_dense
    assert np.isnan(label_slice.to_float()[1, 2])


def test_from_array():
    E = np.full((4, 2, 1, 1), np.nan)
    E[[0, 1, 2], 0, 0, 0] = [0, 0, 1]
    E[[1, 2, 3], 1, 0, 0] = [1, 0, 0]

    store = EnsembleStore.from_array(E, algorithms=['a'], ks=[2])

    np.testing.assert_array_equal(store.masks[0], [0, 1, 2])
    np.testing.assert_array_equal(store.masks[1], [1, 2, 3])
    np.testing.assert_array_equal(store.to_array(), E)
    assert store.pending_jobs() == []


def test_concurrent_records_on_disjoint_keys():
    masks = [np.arange(10)] * 8
    store = EnsembleStore(10, masks, ['a', 'b'], [2, 3])
    keys = [(r, a, k) for r in range(8) for a in ['a', 'b'] for k in [2, 3]]

    Parallel(n_jobs=4, prefer='threads')(
        delayed(store.record)(r, a, k, np.arange(10) % k) for r, a, k in keys
    )

    assert store.pending_jobs() == []
    assert not np.isnan(store.to_array()).any()


def test_copy_is_independent(small_store):
    copied = small_store.copy()
    label_slice = copied.get_slice('b', 2)
    label_slice.states[1, 2] = CellState.IMPUTED
    copied.update_slice('b', 2, label_slice)

    assert small_store.get(2, 1, 'b', 2)[0] == CellState.FAILED
    assert copied.get(2, 1, 'b', 2)[0] == CellState.IMPUTED
