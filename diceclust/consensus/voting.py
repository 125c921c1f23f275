import numpy as np
from typing import Optional, Union

from ..alignment.aligner import align_labels
from ..exceptions import ShapeMismatch
from ..utils import majority_label

__all__ = ['majority_vote_consensus']


def majority_vote_consensus(
    labels: np.ndarray,
    reference: Optional[Union[np.ndarray, list]] = None
) -> np.ndarray:
    """
    Majority vote over label columns after aligning each one to a reference.

    Labels of different clustering runs are arbitrary symbols, so every column
    is first relabelled into the reference alphabet with the assignment
    solver. Only then are labels compared across columns.

    Parameters
    ----------
    labels : np.ndarray
        Label columns of shape (n_columns, n_samples); NaN marks missing labels.
    reference : array-like, optional
        Reference partition of length n_samples. Defaults to the first column
        without missing labels.

    Returns
    -------
    np.ndarray
        Voted label per sample (ties go to the smallest label), NaN for
        samples without any label.
    """
    labels = np.asarray(labels, dtype=float)
    if labels.ndim != 2:
        raise ShapeMismatch(f"Label columns must form a 2D array, got shape {labels.shape}")
    n_columns, n_samples = labels.shape

    if reference is None:
        complete = np.where(~np.isnan(labels).any(axis=1))[0]
        if complete.size == 0:
            raise ValueError("No complete label column to use as reference; pass reference explicitly")
        reference = labels[complete[0]]
    reference = np.asarray(reference)
    if reference.shape != (n_samples,):
        raise ShapeMismatch(f"Reference must have length {n_samples}, got shape {reference.shape}")

    aligned = np.full_like(labels, np.nan)
    for c in range(n_columns):
        observed = ~np.isnan(labels[c])
        if not np.any(observed):
            continue
        column = labels[c, observed].astype(np.int64)
        alignment = align_labels(column, reference[observed])
        aligned[c, observed] = alignment.relabel(column)

    votes = np.full(n_samples, np.nan)
    for s in range(n_samples):
        values = aligned[~np.isnan(aligned[:, s]), s]
        label = majority_label(values)
        if label is not None:
            votes[s] = label
    return votes
