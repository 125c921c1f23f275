"""
DiceClust: Package for consensus clustering from diverse clustering ensembles.

DiceClust subsamples a feature matrix, runs several clustering algorithms at
several candidate cluster counts, and fuses the resulting label sets into
consensus matrices, consensus classes, per-algorithm quality rankings and a
trimmed, reweighed final ensemble.

Individual modules can be imported directly:
    from diceclust.resampling import SubsampleSplitter
    from diceclust.ensemble import EnsembleStore, EnsembleGenerator, EnsembleImputer
    from diceclust.consensus import ConsensusMatrix, consensus_class
    from diceclust.evaluation import compute_index_table, trim_ensemble
    from diceclust.alignment import align_labels
"""

__version__ = "0.0.1"

from .config import ConsensusConfig
from .exceptions import (
    DiceclustError,
    InvalidConfig,
    ShapeMismatch,
    ClusteringJobFailure,
    InvalidK,
    DiceclustWarning,
    UnresolvedMissingData,
    DegenerateTrim,
    ClusteringJobWarning,
)

__all__ = [
    'ConsensusConfig',
    'DiceclustError',
    'InvalidConfig',
    'ShapeMismatch',
    'ClusteringJobFailure',
    'InvalidK',
    'DiceclustWarning',
    'UnresolvedMissingData',
    'DegenerateTrim',
    'ClusteringJobWarning',
]
