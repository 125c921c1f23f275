"""
Evaluation of consensus results.

This module provides:
- Internal validation indices (PAC, Calinski-Harabasz, silhouette, Davies-Bouldin)
- Index tables, algorithm ranking, trimming and reweighing
- External comparison against reference labels
"""

from .indices import (
    ValidationIndex, INDEX_REGISTRY, HIGHER_IS_BETTER, LOWER_IS_BETTER, register_index,
    pac, calinski_harabasz_scoring, silhouette_scoring, davies_bouldin_scoring
)
from .trimming import (
    TrimmedEnsemble, compute_index_table, rank_algorithms, trim_rank_sums,
    allocate_copies, trim_ensemble
)
from .external import external_indices

__all__ = [
    'ValidationIndex',
    'INDEX_REGISTRY',
    'HIGHER_IS_BETTER',
    'LOWER_IS_BETTER',
    'register_index',
    'pac',
    'calinski_harabasz_scoring',
    'silhouette_scoring',
    'davies_bouldin_scoring',
    'TrimmedEnsemble',
    'compute_index_table',
    'rank_algorithms',
    'trim_rank_sums',
    'allocate_copies',
    'trim_ensemble',
    'external_indices',
]
