"""
Imputation of missing ensemble labels.

Missing cells of a single (algorithm, k) slice are filled in two stages:
a nearest-neighbor vote among samples labelled in the same replicate, then a
per-sample majority vote across replicates. Slices never share information.
"""

import warnings
from typing import Dict, Hashable, List, Optional, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..config import ConsensusConfig
from ..exceptions import ShapeMismatch, UnresolvedMissingData
from ..utils import majority_label
from .store import CellState, EnsembleStore, LabelSlice

__all__ = ['EnsembleImputer', 'ImputationReport']


class ImputationReport:
    """Outcome of imputing one slice."""

    def __init__(
        self,
        algorithm: Optional[Hashable],
        k: Optional[int],
        n_missing: int,
        n_neighbor_imputed: int,
        n_majority_imputed: int,
        unresolved: List[Tuple[int, int]]
    ):
        self.algorithm = algorithm
        self.k = k
        self.n_missing = n_missing
        self.n_neighbor_imputed = n_neighbor_imputed
        self.n_majority_imputed = n_majority_imputed
        # (sample, replicate) cells still without a label
        self.unresolved = unresolved

    @property
    def n_imputed(self) -> int:
        return self.n_neighbor_imputed + self.n_majority_imputed

    @property
    def n_unresolved(self) -> int:
        return len(self.unresolved)

    @property
    def unresolved_samples(self) -> List[int]:
        return sorted(set(sample for sample, _ in self.unresolved))

    def to_dict(self) -> Dict[str, object]:
        return {
            'algorithm': self.algorithm,
            'k': self.k,
            'n_missing': self.n_missing,
            'n_neighbor_imputed': self.n_neighbor_imputed,
            'n_majority_imputed': self.n_majority_imputed,
            'n_unresolved': self.n_unresolved,
        }

    def __repr__(self) -> str:
        return (f"ImputationReport(algorithm={self.algorithm!r}, k={self.k}, n_missing={self.n_missing}, "
                f"n_neighbor_imputed={self.n_neighbor_imputed}, "
                f"n_majority_imputed={self.n_majority_imputed}, n_unresolved={self.n_unresolved})")


class EnsembleImputer:
    """
    Two-stage imputer for ensemble label slices.

    Stage 1 (neighbor vote): a missing cell (s, r) takes the majority label of
    the n_neighbors samples closest to s in the feature matrix among those
    labelled in replicate r. Ties go to the smallest label. When fewer than
    min_known_neighbors samples are labelled in r the cell is left missing.

    Stage 2 (majority fallback): cells still missing take the most frequent
    label of the same sample across the other replicates of the slice (ties to
    the smallest label). Samples without any label in the slice stay missing
    and are reported.
    """

    def __init__(
        self,
        n_neighbors: int = 5,
        min_known_neighbors: int = 1,
        metric: str = 'euclidean'
    ):
        """
        Initialize the EnsembleImputer.

        Parameters:
        -----------
        n_neighbors : int, default=5
            Number of neighbors voting for a missing label.
        min_known_neighbors : int, default=1
            Minimum number of labelled samples in a replicate for a neighbor vote.
        metric : str, default='euclidean'
            Distance metric on the feature matrix.
        """
        if n_neighbors < 1:
            raise ValueError(f"n_neighbors must be >= 1, got {n_neighbors}")
        if not (1 <= min_known_neighbors <= n_neighbors):
            raise ValueError(
                f"min_known_neighbors must be in [1, n_neighbors], got {min_known_neighbors}"
            )
        self.n_neighbors = int(n_neighbors)
        self.min_known_neighbors = int(min_known_neighbors)
        self.metric = metric

        self.reports_ = {}

    @classmethod
    def from_config(cls, config: ConsensusConfig) -> 'EnsembleImputer':
        return cls(n_neighbors=config.n_neighbors, min_known_neighbors=config.min_known_neighbors)

    def impute_slice(self, label_slice: LabelSlice, X: np.ndarray) -> Tuple[LabelSlice, ImputationReport]:
        """
        Fill the missing cells of one slice.

        Parameters:
        -----------
        label_slice : LabelSlice
            Replicate x sample labels of one (algorithm, k).
        X : np.ndarray
            Original feature matrix of shape (n_samples, n_features).

        Returns:
        --------
        Tuple[LabelSlice, ImputationReport]
            The imputed copy of the slice and what happened to its missing cells.
        """
        X = np.asarray(X)
        if X.shape[0] != label_slice.n_samples:
            raise ShapeMismatch(
                f"X has {X.shape[0]} rows but the slice covers {label_slice.n_samples} samples"
            )

        result = label_slice.copy()
        observed = label_slice.known
        n_missing = int(np.sum(~observed))
        if n_missing == 0:
            return result, ImputationReport(label_slice.algorithm, label_slice.k, 0, 0, 0, [])

        n_neighbor = self._neighbor_vote(label_slice, observed, X, result)
        n_majority = self._majority_fallback(result)

        unresolved_rs = np.argwhere(~result.known)
        unresolved = [(int(s), int(r)) for r, s in unresolved_rs]
        unresolved.sort()

        report = ImputationReport(label_slice.algorithm, label_slice.k, n_missing,
                                  n_neighbor, n_majority, unresolved)
        return result, report

    def _neighbor_vote(
        self,
        label_slice: LabelSlice,
        observed: np.ndarray,
        X: np.ndarray,
        result: LabelSlice
    ) -> int:
        """Stage 1. Votes use only labels observed before imputation."""
        n_imputed = 0
        for r in range(label_slice.n_reps):
            labelled = np.where(observed[r])[0]
            missing = np.where(~observed[r])[0]
            if missing.size == 0 or labelled.size < self.min_known_neighbors:
                continue

            n_neighbors = min(self.n_neighbors, labelled.size)
            nn = NearestNeighbors(n_neighbors=n_neighbors, metric=self.metric)
            nn.fit(X[labelled])
            _, indices = nn.kneighbors(X[missing])

            neighbor_labels = label_slice.labels[r, labelled][indices]
            for sample, votes in zip(missing, neighbor_labels):
                result.labels[r, sample] = majority_label(votes)
                result.states[r, sample] = CellState.IMPUTED
                n_imputed += 1

        return n_imputed

    def _majority_fallback(self, result: LabelSlice) -> int:
        """Stage 2, applied in place to cells still missing after stage 1."""
        n_imputed = 0
        known = result.known
        for sample in np.where(~known.all(axis=0))[0]:
            values = result.labels[known[:, sample], sample]
            label = majority_label(values)
            if label is None:
                continue
            for r in np.where(~known[:, sample])[0]:
                result.labels[r, sample] = label
                result.states[r, sample] = CellState.IMPUTED
                n_imputed += 1
        return n_imputed

    def transform(self, store: EnsembleStore, X: np.ndarray) -> EnsembleStore:
        """
        Impute every slice of a store.

        Parameters:
        -----------
        store : EnsembleStore
            Store with missing cells. It is left unchanged.
        X : np.ndarray
            Original feature matrix of shape (n_samples, n_features).

        Returns:
        --------
        EnsembleStore
            An imputed copy of the store. Per-slice reports are kept in reports_.
        """
        imputed = store.copy()
        self.reports_ = {}

        for key, label_slice in store.iter_slices():
            new_slice, report = self.impute_slice(label_slice, X)
            if report.n_imputed:
                imputed.update_slice(key[0], key[1], new_slice)
            self.reports_[key] = report

        unresolved = {key: report for key, report in self.reports_.items() if report.n_unresolved}
        if unresolved:
            details = ", ".join(
                f"(algorithm={a!r}, k={k}): samples {report.unresolved_samples[:10]}"
                for (a, k), report in unresolved.items()
            )
            warnings.warn(
                f"Missing labels remain after imputation in {len(unresolved)} slices: {details}",
                UnresolvedMissingData
            )

        return imputed

    def fit_transform(self, store: EnsembleStore, X: np.ndarray) -> EnsembleStore:
        return self.transform(store, X)

    def __repr__(self) -> str:
        return (f"EnsembleImputer(n_neighbors={self.n_neighbors}, "
                f"min_known_neighbors={self.min_known_neighbors}, metric='{self.metric}')")
