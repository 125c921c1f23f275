"""
Pytest configuration and shared fixtures.

This file is automatically discovered by pytest and provides fixtures
available to all test modules.
"""

import numpy as np
import pytest
from sklearn.datasets import make_blobs

from diceclust.ensemble import MISSING, EnsembleStore


@pytest.fixture
def blobs():
    """Three well separated Gaussian blobs, 60 samples in 2D."""
    X, y = make_blobs(n_samples=60, centers=[[0, 0], [10, 10], [-10, 10]],
                      cluster_std=0.5, random_state=0)
    return X, y


@pytest.fixture
def small_store():
    """
    Store over 6 samples with two replicates, algorithms 'a' and 'b', k=2.

    Replicate 0 includes samples 0-4, replicate 1 includes samples 1-5.
    Algorithm 'a' separates {0, 1, 2} from {3, 4, 5} in both replicates.
    Algorithm 'b' fails on sample 2 in replicate 1.
    """
    store = EnsembleStore(6, [[0, 1, 2, 3, 4], [1, 2, 3, 4, 5]], ['a', 'b'], [2])
    store.record(0, 'a', 2, [0, 0, 0, 1, 1])
    store.record(1, 'a', 2, [5, 5, 7, 7, 7])
    store.record(0, 'b', 2, [1, 1, 0, 0, 0])
    with pytest.warns(UserWarning):
        store.record(1, 'b', 2, {1: 0, 2: MISSING, 3: 1, 4: 1, 5: 1})
    return store


@pytest.fixture
def two_groups():
    """Feature matrix of two tight groups of four samples each."""
    rng = np.random.RandomState(0)
    X = np.vstack([rng.normal(0, 0.1, (4, 2)), rng.normal(5, 0.1, (4, 2))])
    return X
