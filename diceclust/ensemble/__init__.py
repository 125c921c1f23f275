"""
Ensemble module for diceclust.

This module provides the four-dimensional label store, the parallel
generation of clustering ensembles and the imputation of missing labels.
"""

from .store import MISSING, CellState, LabelSlice, EnsembleStore
from .generator import EnsembleGenerator
from .imputation import EnsembleImputer, ImputationReport

__all__ = [
    'MISSING',
    'CellState',
    'LabelSlice',
    'EnsembleStore',
    'EnsembleGenerator',
    'EnsembleImputer',
    'ImputationReport',
]
