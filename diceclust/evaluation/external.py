import numpy as np
from typing import Any, Dict, List, Union
from sklearn.metrics import adjusted_rand_score, normalized_mutual_info_score

from ..alignment.aligner import align_labels

__all__ = ['external_indices']


def external_indices(
    labels: Union[np.ndarray, List[Any]],
    reference: Union[np.ndarray, List[Any]]
) -> Dict[str, float]:
    """
    Compare a partition with reference labels.

    Parameters:
    -----------
    labels : array-like of shape (n_samples,)
        Partition to evaluate, e.g. consensus classes.
    reference : array-like of shape (n_samples,)
        Reference partition, e.g. known classes.

    Returns:
    --------
    Dict[str, float]
        'accuracy': fraction of samples on the diagonal of the aligned
        confusion matrix, 'ari': adjusted Rand index, 'nmi': normalized
        mutual information.
    """
    alignment = align_labels(labels, reference)
    labels = np.asarray(labels)
    reference = np.asarray(reference)

    return {
        'accuracy': alignment.accuracy,
        'ari': float(adjusted_rand_score(reference, labels)),
        'nmi': float(normalized_mutual_info_score(reference, labels)),
    }
