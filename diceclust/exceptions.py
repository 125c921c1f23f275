"""
Errors and warning categories raised by diceclust.

Configuration and shape problems are exceptions. Conditions that should not
abort a batch analysis (unresolved missing data, degenerate trimming, failed
clustering jobs) are emitted as warnings and recorded on the returned results.
"""

from typing import Any, Optional, Tuple


class DiceclustError(Exception):
    """Base class for all diceclust errors."""


class InvalidConfig(DiceclustError, ValueError):
    """Malformed resampling, k, quantile or other configuration parameters."""


class ShapeMismatch(DiceclustError, ValueError):
    """A label vector does not match the inclusion mask of its replicate."""


class InvalidK(DiceclustError, ValueError):
    """Requested cluster count is outside [2, n) or cannot be extracted."""


class ClusteringJobFailure(DiceclustError):
    """
    A clustering job for one (replicate, algorithm, k) key failed.

    Parameters:
    -----------
    key : Tuple[int, Any, int]
        The (replicate, algorithm, k) triple of the failed job.
    cause : Exception, optional
        The exception raised by the clustering algorithm.
    """

    def __init__(self, key: Tuple[int, Any, int], cause: Optional[BaseException] = None):
        self.key = key
        self.cause = cause
        replicate, algorithm, k = key
        message = f"Clustering job failed for replicate={replicate}, algorithm={algorithm!r}, k={k}"
        if cause is not None:
            message += f": {type(cause).__name__}: {cause}"
        super().__init__(message)


class DiceclustWarning(UserWarning):
    """Base class for diceclust warnings."""


class UnresolvedMissingData(DiceclustWarning):
    """Missing labels remain after imputation and are needed downstream."""


class DegenerateTrim(DiceclustWarning):
    """Trimming would leave fewer than two algorithms and was skipped."""


class ClusteringJobWarning(DiceclustWarning):
    """A clustering job failed and its slice was recorded as missing."""
