import numpy as np
from typing import Union
from scipy.cluster.hierarchy import linkage, cut_tree
from scipy.spatial.distance import squareform

from ..config import VALID_LINKAGES
from ..exceptions import InvalidK
from ..utils import canonical_relabel
from .matrix import ConsensusMatrix

__all__ = ['consensus_class', 'consensus_linkage']


def _as_dense(matrix: Union[np.ndarray, ConsensusMatrix]) -> np.ndarray:
    if isinstance(matrix, ConsensusMatrix):
        matrix = matrix.get_consensus_matrix()
    matrix = np.asarray(matrix, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"Consensus matrix must be square, got shape {matrix.shape}")
    return matrix


def consensus_linkage(
    matrix: Union[np.ndarray, ConsensusMatrix],
    linkage_method: str = 'average'
) -> np.ndarray:
    """
    Hierarchical clustering of a consensus matrix.

    Parameters
    ----------
    matrix : np.ndarray or ConsensusMatrix
        Consensus matrix without undefined entries.
    linkage_method : str, default='average'
        Method for computing the linkage. Options: 'average', 'complete',
        'single', 'weighted', 'ward'. Centroid and median linkage are not
        offered since their dendrograms cannot always be cut into k groups.

    Returns
    -------
    np.ndarray
        Linkage matrix of 1 - consensus.
    """
    if linkage_method not in VALID_LINKAGES:
        raise ValueError(f"Unknown linkage_method: {linkage_method}. Available options: {VALID_LINKAGES}")
    consensus = _as_dense(matrix)

    undefined = np.argwhere(np.triu(np.isnan(consensus), k=1))
    if undefined.size:
        pairs = [tuple(int(v) for v in pair) for pair in undefined[:10]]
        raise InvalidK(
            f"Consensus matrix has {len(undefined)} undefined pairs (never labelled together), "
            f"e.g. {pairs}. Impute or exclude missing labels before extracting consensus classes."
        )

    # Ensure matrix is symmetric and valid
    distance = 1.0 - consensus
    distance = np.clip((distance + distance.T) / 2, 0.0, 1.0)
    np.fill_diagonal(distance, 0.0)

    return linkage(squareform(distance, checks=False), method=linkage_method)


def consensus_class(
    matrix: Union[np.ndarray, ConsensusMatrix],
    k: int,
    linkage_method: str = 'average'
) -> np.ndarray:
    """
    Extract k consensus classes from a consensus matrix.

    Treats 1 - consensus as a dissimilarity, builds the dendrogram and cuts it
    into exactly k groups.

    Parameters
    ----------
    matrix : np.ndarray or ConsensusMatrix
        Consensus matrix of shape (n_samples, n_samples).
    k : int
        Number of classes, 2 <= k < n_samples.
    linkage_method : str, default='average'
        Linkage used to build the dendrogram.

    Returns
    -------
    np.ndarray
        Labels 1..k, numbered in order of first appearance.

    Raises
    ------
    InvalidK
        If k is out of range or the matrix has undefined entries.
    """
    consensus = _as_dense(matrix)
    n_samples = consensus.shape[0]
    if int(k) != k or not (2 <= k < n_samples):
        raise InvalidK(f"k must be an integer in [2, {n_samples}), got {k}")

    linkage_matrix = consensus_linkage(consensus, linkage_method)
    groups = cut_tree(linkage_matrix, n_clusters=int(k)).ravel()
    n_groups = len(np.unique(groups))
    if n_groups != k:
        raise InvalidK(f"Dendrogram cut with '{linkage_method}' linkage gave {n_groups} groups instead of {k}")

    return canonical_relabel(groups, start=1)
