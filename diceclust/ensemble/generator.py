"""
Generation of clustering ensembles.

Runs every clustering plugin on every subsampling replicate at every candidate
cluster count and records the results in an EnsembleStore.
"""

import numpy as np
from typing import Any, Dict, Hashable, Optional, Sequence, Tuple, Union
from collections.abc import Mapping
from joblib import Parallel, delayed
from sklearn.utils import check_random_state
from tqdm import tqdm

from ..clustering.estimators import EstimatorClusterer, as_clusterer
from ..config import ConsensusConfig
from ..exceptions import ClusteringJobFailure, InvalidConfig, ShapeMismatch
from ..resampling.subsampler import SubsampleSplitter
from .store import EnsembleStore

__all__ = ['EnsembleGenerator']


class EnsembleGenerator:
    """
    Clustering ensemble generator with subsampling.

    Every (replicate, algorithm, k) job is independent: it reads the rows of X
    selected by the replicate's inclusion mask and writes a single slice of the
    store. Jobs run in a thread pool. A job that raises or returns labels that
    do not fit its mask is recorded as missing and the run continues.

    Features:
    - Accepts callables (X_subset, k) -> labels and scikit-learn estimators
    - Deterministic masks and per-job seeds from random_state
    - Per-job failure isolation with ClusteringJobWarning reports
    """

    def __init__(
        self,
        algorithms: Union[Dict[Hashable, Any], Sequence[Any]],
        ks: Sequence[int] = (2, 3, 4),
        splitter: Optional[Any] = None,
        p_item: float = 0.8,
        reps: int = 10,
        random_state: Optional[int] = None,
        n_jobs: Optional[int] = None,
        verbose: bool = False
    ):
        """
        Initialize the EnsembleGenerator.

        Parameters:
        -----------
        algorithms : Dict[Hashable, Any] or Sequence[Any]
            Clustering plugins keyed by algorithm identifier. A sequence is
            keyed by position. Each plugin is a callable (X_subset, k) -> labels
            or an estimator with a cluster-count parameter.
        ks : Sequence[int], default=(2, 3, 4)
            Candidate cluster counts.
        splitter : Any, optional
            Object with sample(n_samples) -> masks. Defaults to a
            SubsampleSplitter built from p_item, reps and random_state.
        p_item : float, default=0.8
            Fraction of samples per replicate for the default splitter.
        reps : int, default=10
            Number of replicates for the default splitter.
        random_state : int, optional
            Seed for the default splitter and the per-job seeds.
        n_jobs : int, optional
            Number of worker threads (joblib convention, -1 for all cores).
        verbose : bool, default=False
            Whether to show a progress bar.
        """
        if not isinstance(algorithms, Mapping):
            algorithms = {i: algorithm for i, algorithm in enumerate(algorithms)}
        if len(algorithms) == 0:
            raise InvalidConfig("At least one clustering algorithm is required")
        ks = [int(k) for k in ks]
        if not ks or any(k < 2 for k in ks) or len(set(ks)) != len(ks):
            raise InvalidConfig(f"ks must be distinct integers >= 2, got {ks}")

        self.algorithms = {name: as_clusterer(algorithm) for name, algorithm in algorithms.items()}
        self.ks = ks
        self.random_state = random_state
        self.splitter = splitter if splitter is not None else SubsampleSplitter(
            p_item=p_item, n_splits=reps, random_state=random_state
        )
        self.n_jobs = n_jobs
        self.verbose = verbose

        self.store_ = None
        self.masks_ = None
        self.failures_ = []
        self.is_fitted_ = False

    @classmethod
    def from_config(
        cls,
        algorithms: Union[Dict[Hashable, Any], Sequence[Any]],
        config: ConsensusConfig
    ) -> 'EnsembleGenerator':
        """Build a generator from a ConsensusConfig, restricted to config.algorithms if set."""
        if config.algorithms is not None:
            if not isinstance(algorithms, Mapping):
                raise InvalidConfig("config.algorithms requires algorithms keyed by identifier")
            unknown = [name for name in config.algorithms if name not in algorithms]
            if unknown:
                raise InvalidConfig(f"Configured algorithms have no plugin: {unknown}")
            algorithms = {name: algorithms[name] for name in config.algorithms}

        return cls(
            algorithms,
            ks=config.ks,
            p_item=config.p_item,
            reps=config.reps,
            random_state=config.seed,
            n_jobs=config.n_jobs,
            verbose=config.verbose
        )

    def fit(self, X: np.ndarray) -> 'EnsembleGenerator':
        """
        Run all clustering jobs on X.

        Parameters:
        -----------
        X : np.ndarray
            Data matrix of shape (n_samples, n_features).

        Returns:
        --------
        self : EnsembleGenerator
            Returns self with store_ populated.
        """
        X = np.asarray(X)
        n_samples = X.shape[0]

        self.masks_ = self.splitter.sample(n_samples)
        store = EnsembleStore(n_samples, self.masks_, list(self.algorithms), self.ks)
        self.failures_ = []

        jobs = [
            (r, name, k)
            for r in range(len(self.masks_))
            for name in self.algorithms
            for k in self.ks
        ]
        rng = check_random_state(self.random_state)
        seeds = rng.randint(0, np.iinfo(np.int32).max, size=len(jobs))

        results = Parallel(n_jobs=self.n_jobs, prefer='threads', return_as='generator')(
            delayed(self._run_job)(X, store, key, int(seed)) for key, seed in zip(jobs, seeds)
        )
        results = tqdm(results, total=len(jobs), desc='Clustering jobs', unit='job', disable=not self.verbose)
        self.failures_ = [failure for failure in results if failure is not None]

        self.store_ = store
        self.is_fitted_ = True
        return self

    def fit_transform(self, X: np.ndarray) -> EnsembleStore:
        """Run all clustering jobs and return the populated store."""
        return self.fit(X).store_

    def _run_job(
        self,
        X: np.ndarray,
        store: EnsembleStore,
        key: Tuple[int, Hashable, int],
        seed: int
    ) -> Optional[ClusteringJobFailure]:
        """Run one clustering job and record it. Returns the failure, if any."""
        replicate, name, k = key
        mask = store.masks[replicate]
        clusterer = self.algorithms[name]

        try:
            if isinstance(clusterer, EstimatorClusterer):
                labels = clusterer(X[mask], k, random_state=seed)
            else:
                labels = clusterer(X[mask], k)
        except Exception as e:
            failure = ClusteringJobFailure(key, e)
            store.mark_failed(replicate, name, k, reason=str(failure))
            return failure

        try:
            store.record(replicate, name, k, labels)
        except ShapeMismatch as e:
            failure = ClusteringJobFailure(key, e)
            store.mark_failed(replicate, name, k, reason=str(failure))
            return failure

        return None

    def get_store(self) -> EnsembleStore:
        if not self.is_fitted_:
            raise ValueError("Ensemble has not been generated yet. Call fit() first.")
        return self.store_

    def __repr__(self) -> str:
        """String representation of the EnsembleGenerator."""
        return (f"EnsembleGenerator(algorithms={list(self.algorithms)}, ks={self.ks}, "
                f"splitter={self.splitter!r}, n_jobs={self.n_jobs}, fitted={self.is_fitted_})")
