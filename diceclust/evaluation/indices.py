import warnings
import numpy as np
from typing import Callable, Dict, Union
from sklearn.metrics import silhouette_score, calinski_harabasz_score, davies_bouldin_score

from ..consensus.matrix import ConsensusMatrix

__all__ = [
    'ValidationIndex',
    'INDEX_REGISTRY',
    'HIGHER_IS_BETTER',
    'LOWER_IS_BETTER',
    'pac',
    'calinski_harabasz_scoring',
    'silhouette_scoring',
    'davies_bouldin_scoring',
    'register_index',
]

HIGHER_IS_BETTER = 'higher'
LOWER_IS_BETTER = 'lower'


def pac(
    matrix: Union[np.ndarray, ConsensusMatrix],
    lower: float = 0.0,
    upper: float = 1.0
) -> float:
    """
    Proportion of ambiguous clustering (PAC) of a consensus matrix.

    Fraction of off-diagonal entries strictly between lower and upper.
    Undefined (NaN) entries are left out of both counts. Lower is better.

    Parameters:
    -----------
    matrix : np.ndarray or ConsensusMatrix
        Consensus matrix of shape (n_samples, n_samples).
    lower, upper : float, default=0.0, 1.0
        Bounds of the ambiguous interval.

    Returns:
    --------
    float
        PAC in [0, 1], NaN if no off-diagonal entry is defined.
    """
    if isinstance(matrix, ConsensusMatrix):
        matrix = matrix.get_consensus_matrix()
    matrix = np.asarray(matrix, dtype=float)
    if not (lower < upper):
        raise ValueError(f"PAC bounds must satisfy lower < upper, got ({lower}, {upper})")

    entries = matrix[np.triu_indices_from(matrix, k=1)]
    entries = entries[~np.isnan(entries)]
    if entries.size == 0:
        return float('nan')

    return float(np.mean((entries > lower) & (entries < upper)))


def _partition_score(score: Callable, X: np.ndarray, labels: np.ndarray) -> float:
    """Score a partition, NaN when it has fewer than 2 or as many clusters as samples."""
    labels = np.asarray(labels)
    n_clusters = len(np.unique(labels))
    if n_clusters < 2 or n_clusters >= len(labels):
        return float('nan')
    return float(score(X, labels))


def calinski_harabasz_scoring(X: np.ndarray, labels: np.ndarray) -> float:
    """
    Calculate the Calinski-Harabasz (pseudo-F) score of a partition.

    Ratio of between-cluster to within-cluster dispersion, higher is better.
    Partitions whose clusters all collapse to single points have no
    within-cluster dispersion and score NaN.

    Parameters:
    X : array-like, shape (n_samples, n_features)
        The input samples.
    labels : array-like
        The assigned clusters per sample.

    Returns:
    float
        Calinski-Harabasz score.
    """
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', RuntimeWarning)
        score = _partition_score(calinski_harabasz_score, X, labels)
    return score if np.isfinite(score) else float('nan')


def silhouette_scoring(X: np.ndarray, labels: np.ndarray) -> float:
    """Mean silhouette coefficient of a partition, higher is better."""
    return _partition_score(silhouette_score, X, labels)


def davies_bouldin_scoring(X: np.ndarray, labels: np.ndarray) -> float:
    """Davies-Bouldin score of a partition, lower is better."""
    return _partition_score(davies_bouldin_score, X, labels)


class ValidationIndex:
    """
    An internal validation index tagged with its direction.

    kind is 'matrix' for indices computed on a consensus matrix and
    'partition' for indices computed on the feature matrix with consensus
    class labels.
    """

    def __init__(self, name: str, func: Callable, direction: str, kind: str):
        if direction not in (HIGHER_IS_BETTER, LOWER_IS_BETTER):
            raise ValueError(f"direction must be '{HIGHER_IS_BETTER}' or '{LOWER_IS_BETTER}', got {direction}")
        if kind not in ('matrix', 'partition'):
            raise ValueError(f"kind must be 'matrix' or 'partition', got {kind}")
        self.name = name
        self.func = func
        self.direction = direction
        self.kind = kind

    @property
    def higher_is_better(self) -> bool:
        return self.direction == HIGHER_IS_BETTER

    def __repr__(self) -> str:
        return f"ValidationIndex(name='{self.name}', direction='{self.direction}', kind='{self.kind}')"


INDEX_REGISTRY: Dict[str, ValidationIndex] = {}


def register_index(name: str, func: Callable, direction: str, kind: str = 'partition') -> ValidationIndex:
    """
    Register an additional validation index.

    Matrix indices are called as func(consensus_matrix, lower=..., upper=...)
    and partition indices as func(X, labels).
    """
    index = ValidationIndex(name, func, direction, kind)
    INDEX_REGISTRY[name] = index
    return index


register_index('pac', pac, LOWER_IS_BETTER, kind='matrix')
register_index('chi', calinski_harabasz_scoring, HIGHER_IS_BETTER)
register_index('silhouette', silhouette_scoring, HIGHER_IS_BETTER)
register_index('davies_bouldin', davies_bouldin_scoring, LOWER_IS_BETTER)
