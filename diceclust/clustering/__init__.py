"""
Clustering module for diceclust.

This module provides the clustering plugin interface used to generate the
ensemble, with adapters for scikit-learn style estimators.
"""

from .estimators import EstimatorClusterer, as_clusterer, default_algorithms

__all__ = [
    'EstimatorClusterer',
    'as_clusterer',
    'default_algorithms',
]
