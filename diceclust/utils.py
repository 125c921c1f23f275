import numpy as np
from typing import List, Optional, Sequence, Union

__all__ = ['canonical_relabel', 'get_membership', 'majority_label']


def canonical_relabel(labels: Union[np.ndarray, List[int]], start: int = 1) -> np.ndarray:
    """
    Relabels a partition with consecutive integers in order of first appearance.

    Parameters:
    ----------
    labels : Union[np.ndarray, List[int]]
        Arbitrary cluster labels.
    start : int, default=1
        First label of the new numbering.

    Returns:
    -------
    np.ndarray
        Labels start, start+1, ... such that the first sample is in cluster start.
    """
    labels = np.asarray(labels)
    _, first_index, inverse = np.unique(labels, return_index=True, return_inverse=True)
    order = np.argsort(first_index, kind='stable')
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))
    return rank[inverse.ravel()] + start


def get_membership(labels: Union[np.ndarray, List[int]], known: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Gets the membership (one-hot) matrix from a label array.

    Parameters:
    ----------
    labels : Union[np.ndarray, List[int]]
        Membership array of length n.
    known : np.ndarray, optional
        Boolean mask of length n. Rows of samples that are not known are all zero.

    Returns:
    -------
    np.ndarray
        Membership matrix of shape (n, n_clusters).
    """
    labels = np.asarray(labels)
    if known is None:
        known = np.ones(len(labels), dtype=bool)
    matrix = np.zeros([len(labels), 0])
    if not np.any(known):
        return matrix

    _, inverse = np.unique(labels[known], return_inverse=True)
    matrix = np.zeros([len(labels), inverse.max() + 1])
    matrix[np.where(known)[0], inverse.ravel()] = 1

    return matrix


def majority_label(values: Sequence[int]) -> Optional[int]:
    """Most frequent value, ties broken by the smallest value. None if empty."""
    values = np.asarray(values)
    if values.size == 0:
        return None
    unique, counts = np.unique(values, return_counts=True)
    # np.unique sorts, so argmax picks the smallest label among ties
    return unique[np.argmax(counts)].item()
