"""
Consensus module for diceclust.

This module computes consensus matrices from ensemble label columns and
extracts consensus classes from them.
"""

from .matrix import ConsensusMatrix, consensus_matrix, slice_columns
from .classes import consensus_class, consensus_linkage
from .voting import majority_vote_consensus

__all__ = [
    'ConsensusMatrix',
    'consensus_matrix',
    'slice_columns',
    'consensus_class',
    'consensus_linkage',
    'majority_vote_consensus',
]
