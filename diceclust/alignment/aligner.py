"""
Alignment of two partitions by solving the label assignment problem.

Cluster labels of two partitions are arbitrary symbols, so they can only be
compared after finding the column permutation of their confusion matrix that
maximizes its trace.
"""

import numpy as np
import pandas as pd
from typing import Any, List, Tuple, Union
from scipy.optimize import linear_sum_assignment

from ..exceptions import ShapeMismatch

__all__ = ['LabelAlignment', 'align_labels', 'align_confusion', 'relabel_to_reference', 'lexicographic_assignment']


def lexicographic_assignment(weights: np.ndarray) -> np.ndarray:
    """
    Maximum-weight assignment with ties resolved toward the identity.

    Among all row-to-column assignments with maximal total weight, returns
    the lexicographically smallest one.

    Parameters
    ----------
    weights : np.ndarray
        Square weight matrix.

    Returns
    -------
    np.ndarray
        perm such that row i is assigned to column perm[i].
    """
    weights = np.asarray(weights, dtype=float)
    m = weights.shape[0]
    if weights.shape != (m, m):
        raise ValueError(f"Weight matrix must be square, got shape {weights.shape}")
    if m == 0:
        return np.zeros(0, dtype=int)

    rows, cols = linear_sum_assignment(weights, maximize=True)
    remaining = weights[rows, cols].sum()
    tol = 1e-9 * max(1.0, abs(remaining))

    if abs(np.trace(weights) - remaining) <= tol:
        return np.arange(m)

    perm = np.empty(m, dtype=int)
    free = list(range(m))
    for i in range(m):
        for j in free:
            rest_cols = [c for c in free if c != j]
            value = weights[i, j]
            if rest_cols:
                sub = weights[np.ix_(range(i + 1, m), rest_cols)]
                sub_rows, sub_cols = linear_sum_assignment(sub, maximize=True)
                value += sub[sub_rows, sub_cols].sum()
            if abs(value - remaining) <= tol:
                perm[i] = j
                free.remove(j)
                remaining -= weights[i, j]
                break
        else:
            raise RuntimeError("No optimal assignment found; weight matrix contains non-finite values")

    return perm


class LabelAlignment:
    """
    Result of aligning a source partition to a target partition.

    Attributes
    ----------
    confusion : np.ndarray
        Padded square contingency matrix, rows = target labels,
        columns = source labels, in sorted label order.
    aligned_confusion : np.ndarray
        confusion with its columns permuted to maximize the trace.
    permutation : np.ndarray
        Column order: row i of the aligned matrix uses column permutation[i].
    target_labels : list
        Row labels; padded rows carry fresh dummy labels.
    source_labels : list
        Column labels; padded columns are None.
    mapping : Dict[Any, Any]
        Source label -> target label. Source labels without a partner map to
        the dummy labels of padded rows.
    """

    def __init__(
        self,
        confusion: np.ndarray,
        permutation: np.ndarray,
        target_labels: List[Any],
        source_labels: List[Any],
        n_target_labels: int,
        n_source_labels: int
    ):
        self.confusion = confusion
        self.permutation = permutation
        self.aligned_confusion = confusion[:, permutation]
        self.target_labels = target_labels
        self.source_labels = source_labels
        self.n_target_labels = n_target_labels
        self.n_source_labels = n_source_labels

        self.mapping = {}
        for row, column in enumerate(permutation):
            if column < n_source_labels:
                self.mapping[source_labels[column]] = target_labels[row]

    @property
    def trace(self) -> float:
        return float(np.trace(self.aligned_confusion))

    @property
    def n_samples(self) -> int:
        return int(self.confusion.sum())

    @property
    def accuracy(self) -> float:
        """Fraction of samples on the diagonal of the aligned confusion matrix."""
        return self.trace / self.n_samples if self.n_samples else float('nan')

    @property
    def unmatched_source_labels(self) -> List[Any]:
        """Source labels mapped onto dummy target labels."""
        return [s for s, t in self.mapping.items() if t in self.target_labels[self.n_target_labels:]]

    def relabel(self, labels: Union[np.ndarray, List[Any]]) -> np.ndarray:
        """Translate source labels into the target alphabet."""
        labels = np.asarray(labels)
        unknown = set(np.unique(labels).tolist()) - set(self.mapping)
        if unknown:
            raise ValueError(f"Labels not seen during alignment: {sorted(unknown)}")
        return np.array([self.mapping[label] for label in labels.tolist()])

    def to_frame(self, aligned: bool = True) -> pd.DataFrame:
        """Confusion matrix as a DataFrame, rows = target labels, columns = source labels."""
        if aligned:
            columns = [self.source_labels[j] for j in self.permutation]
            values = self.aligned_confusion
        else:
            columns = self.source_labels
            values = self.confusion
        frame = pd.DataFrame(values, index=pd.Index(self.target_labels, name='target'),
                             columns=pd.Index(columns, name='source'))
        return frame

    def __repr__(self) -> str:
        return (f"LabelAlignment(n_target_labels={self.n_target_labels}, "
                f"n_source_labels={self.n_source_labels}, trace={self.trace:g}, "
                f"accuracy={self.accuracy:.3f})")


def _dummy_labels(existing: List[Any], n: int) -> List[Any]:
    """Fresh labels that do not collide with existing ones."""
    if all(isinstance(label, (int, float, np.integer, np.floating)) for label in existing):
        start = (int(np.floor(max(existing))) + 1) if existing else 0
        return [int(start + i) for i in range(n)]
    return [f"unmatched_{i}" for i in range(n)]


def align_labels(
    source: Union[np.ndarray, List[Any]],
    target: Union[np.ndarray, List[Any]]
) -> LabelAlignment:
    """
    Align the labels of a source partition to a target partition.

    Builds the target x source contingency matrix, pads it with zero rows or
    columns to a square, and finds the column permutation maximizing the
    trace. Ties between optimal permutations go to the one closest to the
    identity (lexicographically smallest row-to-column mapping).

    Parameters
    ----------
    source : array-like of shape (n_samples,)
        Labels to be permuted, e.g. consensus classes.
    target : array-like of shape (n_samples,)
        Reference labels, e.g. ground truth.

    Returns
    -------
    LabelAlignment
        Confusion matrices, permutation and label mapping.
    """
    source = np.asarray(source)
    target = np.asarray(target)
    if source.ndim != 1 or target.ndim != 1 or source.shape != target.shape:
        raise ShapeMismatch(
            f"Both partitions must be 1D over the same samples, got shapes {source.shape} and {target.shape}"
        )
    if source.size == 0:
        raise ValueError("Cannot align empty partitions")
    if pd.isna(source).any() or pd.isna(target).any():
        raise ValueError("Partitions must not contain missing labels")

    df = pd.crosstab(pd.Series(target, name='target'), pd.Series(source, name='source'))
    target_labels = [label.item() if hasattr(label, 'item') else label for label in df.index]
    source_labels = [label.item() if hasattr(label, 'item') else label for label in df.columns]
    k_target, k_source = len(target_labels), len(source_labels)
    size = max(k_target, k_source)

    confusion = np.zeros((size, size))
    confusion[:k_target, :k_source] = df.values

    permutation = lexicographic_assignment(confusion)

    padded_target = target_labels + _dummy_labels(target_labels, size - k_target)
    padded_source = source_labels + [None] * (size - k_source)

    return LabelAlignment(confusion, permutation, padded_target, padded_source, k_target, k_source)


def align_confusion(confusion: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Permute the columns of a confusion matrix to maximize its trace.

    Parameters
    ----------
    confusion : np.ndarray
        Confusion matrix of shape (k1, k2); zero-padded to a square when k1 != k2.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        The padded, column-permuted matrix and the permutation.
    """
    confusion = np.asarray(confusion, dtype=float)
    if confusion.ndim != 2:
        raise ShapeMismatch(f"Confusion matrix must be 2D, got shape {confusion.shape}")
    size = max(confusion.shape)
    padded = np.zeros((size, size))
    padded[:confusion.shape[0], :confusion.shape[1]] = confusion
    permutation = lexicographic_assignment(padded)
    return padded[:, permutation], permutation


def relabel_to_reference(
    reference: Union[np.ndarray, List[Any]],
    labels: Union[np.ndarray, List[Any]]
) -> np.ndarray:
    """
    Relabels a partition so its clusters carry the labels of the best-matching reference clusters.

    Parameters:
    ----------
    reference : array-like
        Reference partition.
    labels : array-like
        Partition to relabel.

    Returns:
    -------
    np.ndarray
        labels translated into the reference alphabet.
    """
    return align_labels(labels, reference).relabel(labels)
