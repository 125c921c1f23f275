import numpy as np
from typing import Iterator, List, Optional, Tuple, Union
from sklearn.utils import check_random_state

from ..exceptions import InvalidConfig


def subsample_size(n_samples: int, p_item: float) -> int:
    """Number of samples drawn per replicate: p_item * n_samples rounded half up, at least 1."""
    return max(1, int(np.floor(p_item * n_samples + 0.5)))


class SubsampleSplitter:
    """
    SubsampleSplitter class for drawing replicate inclusion masks.

    Each replicate is a subset of round(p_item * n) observations drawn without
    replacement. The same random_state always reproduces identical masks, which
    downstream comparisons between runs rely on.

    The class also follows the scikit-learn splitter protocol (split and
    get_n_splits), yielding the included observations as the train indices and
    the excluded ones as the test indices.
    """

    def __init__(
        self,
        p_item: float = 0.8,
        n_splits: int = 10,
        random_state: Optional[Union[int, np.random.RandomState]] = None
    ):
        """
        Initialize the SubsampleSplitter.

        Parameters:
        -----------
        p_item : float, default=0.8
            Fraction of observations included in each replicate (0 < p_item <= 1).
        n_splits : int, default=10
            Number of replicates.
        random_state : int or RandomState, optional
            Seed for reproducible masks.
        """
        if not (0 < p_item <= 1.0):
            raise InvalidConfig(f"p_item must be between 0 and 1, got {p_item}")
        if int(n_splits) != n_splits or n_splits < 1:
            raise InvalidConfig(f"n_splits must be a positive integer, got {n_splits}")

        self.p_item = p_item
        self.n_splits = int(n_splits)
        self.random_state = random_state

    def sample(self, n_samples: int) -> List[np.ndarray]:
        """
        Draw the inclusion masks for all replicates.

        Parameters:
        -----------
        n_samples : int
            Total number of observations.

        Returns:
        --------
        List[np.ndarray]
            One sorted array of included observation indices per replicate.

        Raises:
        -------
        InvalidConfig
            If fewer than two observations are given.
        """
        if n_samples < 2:
            raise InvalidConfig(f"At least 2 samples are required, got {n_samples}")

        # Integer seeds restart the stream on every call so masks are reproducible
        rng = check_random_state(self.random_state)
        size = subsample_size(n_samples, self.p_item)

        masks = []
        for _ in range(self.n_splits):
            if size == n_samples:
                idx = np.arange(n_samples)
            else:
                idx = np.sort(rng.choice(n_samples, size=size, replace=False))
            masks.append(idx)

        return masks

    def split(self, X, y=None, groups=None) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        """
        Generate (included, excluded) index pairs for every replicate.

        Parameters:
        -----------
        X : array-like of shape (n_samples, n_features)
            Data to split; only its length is used.
        """
        n_samples = X.shape[0] if hasattr(X, 'shape') else len(X)
        all_idx = np.arange(n_samples)
        for mask in self.sample(n_samples):
            yield mask, np.setdiff1d(all_idx, mask, assume_unique=True)

    def get_n_splits(self, X=None, y=None, groups=None) -> int:
        """Number of replicates."""
        return self.n_splits

    def __repr__(self) -> str:
        """String representation of the SubsampleSplitter object."""
        return f"SubsampleSplitter(p_item={self.p_item}, n_splits={self.n_splits}, random_state={self.random_state})"
