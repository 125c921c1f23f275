"""
Resampling module for diceclust.

This module provides deterministic subsampling of observations into replicates.
"""

from .subsampler import SubsampleSplitter, subsample_size

__all__ = [
    'SubsampleSplitter',
    'subsample_size'
]
