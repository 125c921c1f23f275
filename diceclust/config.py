"""
Configuration for consensus clustering runs.

All defaults live here and are passed explicitly to every component, so no
component reads process-wide state.
"""

from typing import Any, Dict, Optional, Sequence, Union

from .exceptions import InvalidConfig

__all__ = ['ConsensusConfig', 'VALID_LINKAGES', 'MAX_TOTAL_COPIES']

VALID_LINKAGES = ['single', 'complete', 'average', 'weighted', 'ward']
MAX_TOTAL_COPIES = 100


class ConsensusConfig:
    """
    Parameters shared by the resampling, imputation, consensus and evaluation steps.

    Construction validates every parameter and raises InvalidConfig before any
    work begins.
    """

    def __init__(
        self,
        ks: Union[int, Sequence[int]] = (2, 3, 4),
        p_item: float = 0.8,
        reps: int = 10,
        algorithms: Optional[Sequence[str]] = None,
        seed: Optional[int] = None,
        pac_lower: float = 0.0,
        pac_upper: float = 1.0,
        trim_quantile: float = 0.75,
        total_copies: int = MAX_TOTAL_COPIES,
        reweigh: bool = False,
        n_neighbors: int = 5,
        min_known_neighbors: int = 1,
        linkage_method: str = 'average',
        indices: Sequence[str] = ('pac', 'chi'),
        n_jobs: Optional[int] = None,
        verbose: bool = False
    ):
        """
        Initialize the ConsensusConfig.

        Parameters:
        -----------
        ks : int or Sequence[int], default=(2, 3, 4)
            Candidate cluster counts, each >= 2.
        p_item : float, default=0.8
            Fraction of samples drawn into each replicate, in (0, 1].
        reps : int, default=10
            Number of subsampling replicates.
        algorithms : Sequence[str], optional
            Identifiers of the clustering algorithms to invoke. None means
            whatever the caller registers with the generator.
        seed : int, optional
            Random seed used for subsampling.
        pac_lower, pac_upper : float, default=0.0, 1.0
            Bounds of the ambiguous interval used by PAC.
        trim_quantile : float, default=0.75
            Quantile of summed ranks above which algorithms are trimmed.
        total_copies : int, default=100
            Number of replicated label column sets in the trimmed ensemble (1..100).
        reweigh : bool, default=False
            Whether kept algorithms are weighted by their rank scores instead of uniformly.
        n_neighbors : int, default=5
            Number of nearest neighbors voting in imputation.
        min_known_neighbors : int, default=1
            Minimum number of labelled neighbors required for a neighbor vote.
        linkage_method : str, default='average'
            Linkage used for consensus class extraction.
        indices : Sequence[str], default=('pac', 'chi')
            Internal validation indices used for ranking.
        n_jobs : int, optional
            Number of parallel workers for clustering jobs and consensus blocks.
        verbose : bool, default=False
            Whether to display progress information.
        """
        if isinstance(ks, (int,)) and not isinstance(ks, bool):
            ks = [ks]
        self.ks = sorted(set(int(k) for k in ks))
        self.p_item = p_item
        self.reps = reps
        self.algorithms = list(algorithms) if algorithms is not None else None
        self.seed = seed
        self.pac_lower = pac_lower
        self.pac_upper = pac_upper
        self.trim_quantile = trim_quantile
        self.total_copies = total_copies
        self.reweigh = bool(reweigh)
        self.n_neighbors = n_neighbors
        self.min_known_neighbors = min_known_neighbors
        self.linkage_method = linkage_method
        self.indices = list(indices)
        self.n_jobs = n_jobs
        self.verbose = bool(verbose)

        self.validate()

    def validate(self):
        """Check every parameter, raising InvalidConfig on the first problem."""
        if not self.ks:
            raise InvalidConfig("ks must contain at least one cluster count")
        if any(k < 2 for k in self.ks):
            raise InvalidConfig(f"All cluster counts must be >= 2, got {self.ks}")
        if not (0 < self.p_item <= 1.0):
            raise InvalidConfig(f"p_item must be in (0, 1], got {self.p_item}")
        if int(self.reps) != self.reps or self.reps < 1:
            raise InvalidConfig(f"reps must be a positive integer, got {self.reps}")
        if self.algorithms is not None and len(set(self.algorithms)) != len(self.algorithms):
            raise InvalidConfig(f"Algorithm identifiers must be unique, got {self.algorithms}")
        if not (0.0 <= self.pac_lower < self.pac_upper <= 1.0):
            raise InvalidConfig(
                f"PAC bounds must satisfy 0 <= lower < upper <= 1, got ({self.pac_lower}, {self.pac_upper})"
            )
        if not (0.0 <= self.trim_quantile <= 1.0):
            raise InvalidConfig(f"trim_quantile must be in [0, 1], got {self.trim_quantile}")
        if int(self.total_copies) != self.total_copies or not (1 <= self.total_copies <= MAX_TOTAL_COPIES):
            raise InvalidConfig(
                f"total_copies must be an integer in [1, {MAX_TOTAL_COPIES}], got {self.total_copies}"
            )
        if int(self.n_neighbors) != self.n_neighbors or self.n_neighbors < 1:
            raise InvalidConfig(f"n_neighbors must be a positive integer, got {self.n_neighbors}")
        if int(self.min_known_neighbors) != self.min_known_neighbors or self.min_known_neighbors < 1:
            raise InvalidConfig(
                f"min_known_neighbors must be a positive integer, got {self.min_known_neighbors}"
            )
        if self.min_known_neighbors > self.n_neighbors:
            raise InvalidConfig(
                f"min_known_neighbors ({self.min_known_neighbors}) cannot exceed "
                f"n_neighbors ({self.n_neighbors})"
            )
        if self.linkage_method not in VALID_LINKAGES:
            raise InvalidConfig(
                f"Unknown linkage_method: {self.linkage_method}. Available options: {VALID_LINKAGES}"
            )

        # Deferred import: the index registry lives in the evaluation package.
        from .evaluation.indices import INDEX_REGISTRY
        unknown = [name for name in self.indices if name not in INDEX_REGISTRY]
        if not self.indices or unknown:
            raise InvalidConfig(
                f"Unknown validation indices: {unknown}. Available options: {sorted(INDEX_REGISTRY)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Return the configuration as a plain dictionary."""
        return {
            'ks': list(self.ks),
            'p_item': self.p_item,
            'reps': self.reps,
            'algorithms': None if self.algorithms is None else list(self.algorithms),
            'seed': self.seed,
            'pac_lower': self.pac_lower,
            'pac_upper': self.pac_upper,
            'trim_quantile': self.trim_quantile,
            'total_copies': self.total_copies,
            'reweigh': self.reweigh,
            'n_neighbors': self.n_neighbors,
            'min_known_neighbors': self.min_known_neighbors,
            'linkage_method': self.linkage_method,
            'indices': list(self.indices),
            'n_jobs': self.n_jobs,
            'verbose': self.verbose,
        }

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> 'ConsensusConfig':
        """Build a configuration from a dictionary, rejecting unknown keys."""
        known = set(cls().to_dict())
        unknown = sorted(set(params) - known)
        if unknown:
            raise InvalidConfig(f"Unknown configuration keys: {unknown}")
        return cls(**params)

    def replace(self, **changes) -> 'ConsensusConfig':
        """Return a new validated configuration with some parameters changed."""
        params = self.to_dict()
        params.update(changes)
        return self.from_dict(params)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ConsensusConfig):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        """String representation of the ConsensusConfig."""
        return (f"ConsensusConfig(ks={self.ks}, p_item={self.p_item}, reps={self.reps}, "
                f"seed={self.seed}, trim_quantile={self.trim_quantile}, "
                f"total_copies={self.total_copies}, reweigh={self.reweigh})")
