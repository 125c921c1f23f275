"""
Consensus matrices from partial, repeated clustering evidence.

Entry (i, j) is the fraction of label columns in which samples i and j fall in
the same cluster, counted only over the columns where both samples have a
label. Pairs never labelled together are NaN, never 0.
"""

import numpy as np
from typing import Dict, Hashable, List, Optional, Sequence, Tuple, Union
from joblib import Parallel, delayed

from ..exceptions import ShapeMismatch
from ..ensemble.store import EnsembleStore, LabelSlice
from ..utils import get_membership

__all__ = ['ConsensusMatrix', 'consensus_matrix', 'slice_columns']


def _as_columns(
    labels: Union[np.ndarray, LabelSlice, Sequence[LabelSlice]],
    known: Optional[np.ndarray]
) -> Tuple[np.ndarray, np.ndarray]:
    """Normalise the accepted label inputs to (labels, known) arrays of shape (n_columns, n_samples)."""
    if isinstance(labels, LabelSlice):
        labels = [labels]
    if isinstance(labels, (list, tuple)) and labels and isinstance(labels[0], LabelSlice):
        if known is not None:
            raise ValueError("known must not be given together with LabelSlice inputs")
        known = np.vstack([s.known for s in labels])
        labels = np.vstack([s.labels for s in labels])
        return labels, known

    labels = np.asarray(labels, dtype=float)
    if labels.ndim == 1:
        labels = labels.reshape(1, -1)
    if labels.ndim != 2:
        raise ShapeMismatch(f"Label columns must form a 2D array, got shape {labels.shape}")

    if known is None:
        known = ~np.isnan(labels)
    else:
        known = np.asarray(known, dtype=bool)
        if known.shape != labels.shape:
            raise ShapeMismatch(f"known has shape {known.shape}, labels have shape {labels.shape}")
        known = known & ~np.isnan(labels)

    labels = np.where(known, labels, 0).astype(np.int64)
    return labels, known


def _accumulate(labels: np.ndarray, known: np.ndarray, copies: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Weighted agreement and joint-observation counts for a block of columns."""
    n_samples = labels.shape[1]
    agree = np.zeros((n_samples, n_samples))
    for column, observed, weight in zip(labels, known, copies):
        if weight == 0 or not np.any(observed):
            continue
        H = get_membership(column, observed)
        agree += weight * (H @ H.T)

    K = known.astype(float)
    counts = (K.T * copies) @ K
    return agree, counts


class ConsensusMatrix:
    """
    Consensus (co-clustering) matrix over a set of label columns.

    Each column is one clustering run (one replicate of one algorithm at one
    k). Column weights replicate a column's evidence without copying it,
    which is how reweighed ensembles are combined.

    Features:
    - Exact NaN handling for pairs never observed together
    - Diagonal fixed to 1, symmetric by construction
    - Optional block-parallel reduction over columns
    """

    def __init__(self, n_jobs: Optional[int] = None, block_size: int = 64):
        """
        Initialize the ConsensusMatrix.

        Parameters:
        -----------
        n_jobs : int, optional
            Number of worker threads summing column blocks.
        block_size : int, default=64
            Number of columns per block.
        """
        if block_size < 1:
            raise ValueError(f"block_size must be >= 1, got {block_size}")
        self.n_jobs = n_jobs
        self.block_size = block_size

        self.consensus_ = None
        self.pair_counts_ = None
        self.is_fitted_ = False

    def fit(
        self,
        labels: Union[np.ndarray, LabelSlice, Sequence[LabelSlice]],
        known: Optional[np.ndarray] = None,
        copies: Optional[Sequence[float]] = None
    ) -> 'ConsensusMatrix':
        """
        Compute the consensus matrix.

        Parameters:
        -----------
        labels : np.ndarray, LabelSlice or list of LabelSlice
            Label columns of shape (n_columns, n_samples). NaN marks missing
            labels in float arrays.
        known : np.ndarray, optional
            Boolean mask of labelled cells with the same shape as labels.
        copies : Sequence[float], optional
            Non-negative weight (copy count) per column. Defaults to 1.

        Returns:
        --------
        self : ConsensusMatrix
            Returns self for method chaining.
        """
        labels, known = _as_columns(labels, known)
        n_columns, n_samples = labels.shape

        if copies is None:
            copies = np.ones(n_columns)
        else:
            copies = np.asarray(copies, dtype=float)
            if copies.shape != (n_columns,):
                raise ShapeMismatch(f"Expected {n_columns} column weights, got shape {copies.shape}")
            if np.any(copies < 0):
                raise ValueError("Column weights must be non-negative")

        blocks = [slice(start, start + self.block_size) for start in range(0, n_columns, self.block_size)]
        if self.n_jobs is None or self.n_jobs == 1 or len(blocks) < 2:
            partials = [_accumulate(labels[b], known[b], copies[b]) for b in blocks]
        else:
            partials = Parallel(n_jobs=self.n_jobs, prefer='threads')(
                delayed(_accumulate)(labels[b], known[b], copies[b]) for b in blocks
            )

        agree = np.zeros((n_samples, n_samples))
        counts = np.zeros((n_samples, n_samples))
        for block_agree, block_counts in partials:
            agree += block_agree
            counts += block_counts

        with np.errstate(divide='ignore', invalid='ignore'):
            consensus = np.where(counts > 0, agree / np.where(counts > 0, counts, 1), np.nan)
        np.fill_diagonal(consensus, 1.0)

        self.consensus_ = consensus
        self.pair_counts_ = counts
        self.is_fitted_ = True
        return self

    def fit_transform(
        self,
        labels: Union[np.ndarray, LabelSlice, Sequence[LabelSlice]],
        known: Optional[np.ndarray] = None,
        copies: Optional[Sequence[float]] = None
    ) -> np.ndarray:
        """Compute the consensus matrix and return it."""
        return self.fit(labels, known, copies).consensus_

    def _check_fitted(self):
        if not self.is_fitted_:
            raise ValueError("Consensus matrix has not been fitted yet. Call fit() first.")

    def get_consensus_matrix(self) -> np.ndarray:
        """The consensus matrix, entries in [0, 1] or NaN."""
        self._check_fitted()
        return self.consensus_

    def get_distance_matrix(self) -> np.ndarray:
        """1 - consensus, with NaN kept for undefined pairs and 0 on the diagonal."""
        self._check_fitted()
        return 1.0 - self.consensus_

    def undefined_pairs(self) -> np.ndarray:
        """Pairs (i, j), i < j, that were never labelled in the same column."""
        self._check_fitted()
        i, j = np.where(np.triu(np.isnan(self.consensus_), k=1))
        return np.column_stack([i, j])

    def has_undefined(self) -> bool:
        self._check_fitted()
        return bool(np.isnan(self.consensus_).any())

    def __repr__(self) -> str:
        """String representation of the ConsensusMatrix."""
        if not self.is_fitted_:
            return f"ConsensusMatrix(n_jobs={self.n_jobs}, fitted=False)"
        return (f"ConsensusMatrix(n_samples={self.consensus_.shape[0]}, "
                f"n_undefined_pairs={len(self.undefined_pairs())}, fitted=True)")


def slice_columns(
    store: EnsembleStore,
    k: int,
    algorithms: Optional[Sequence[Hashable]] = None
) -> Tuple[np.ndarray, np.ndarray, List[Hashable]]:
    """
    Stack the label columns of several algorithms at one k.

    Returns:
    --------
    Tuple[np.ndarray, np.ndarray, List[Hashable]]
        labels and known arrays of shape (n_columns, n_samples), and the
        algorithm owning each column.
    """
    if k not in store.ks:
        raise ValueError(f"k={k} is not part of the store (ks={store.ks})")
    algorithms = store.algorithms if algorithms is None else list(algorithms)
    if not algorithms:
        raise ValueError("At least one algorithm is required")

    labels, known, owners = [], [], []
    for algorithm in algorithms:
        label_slice = store.get_slice(algorithm, k)
        labels.append(label_slice.labels)
        known.append(label_slice.known)
        owners.extend([algorithm] * label_slice.n_reps)
    return np.vstack(labels), np.vstack(known), owners


def consensus_matrix(
    store: EnsembleStore,
    k: int,
    algorithms: Optional[Union[Hashable, Sequence[Hashable]]] = None,
    copies: Optional[Dict[Hashable, float]] = None,
    n_jobs: Optional[int] = None
) -> ConsensusMatrix:
    """
    Consensus matrix of one algorithm, or of several algorithms combined, at one k.

    Parameters:
    -----------
    store : EnsembleStore
        Label store, usually after imputation.
    k : int
        Cluster count.
    algorithms : Hashable or Sequence[Hashable], optional
        A single algorithm identifier, a list of them, or None for all.
    copies : Dict[Hashable, float], optional
        Copy count per algorithm, applied to each of its columns.
    n_jobs : int, optional
        Number of worker threads.

    Returns:
    --------
    ConsensusMatrix
        Fitted consensus matrix.
    """
    if algorithms is not None and not isinstance(algorithms, (list, tuple)):
        algorithms = [algorithms]
    labels, known, owners = slice_columns(store, k, algorithms)

    column_copies = None
    if copies is not None:
        column_copies = np.array([copies.get(owner, 0) for owner in owners], dtype=float)

    return ConsensusMatrix(n_jobs=n_jobs).fit(labels, known, column_copies)
