"""
Clustering plugins.

A plugin is any callable taking (X_subset, k) and returning one label per
row of X_subset (or a mapping from row position to label). The ensemble never
branches on which algorithm it runs; identifiers are only storage keys.
"""

import numpy as np
from typing import Any, Callable, Dict, Optional, Union
from sklearn.base import clone
from sklearn.cluster import AgglomerativeClustering, KMeans, SpectralClustering
from sklearn.mixture import GaussianMixture

__all__ = ['EstimatorClusterer', 'as_clusterer', 'default_algorithms']

Clusterer = Callable[[np.ndarray, int], Any]


class EstimatorClusterer:
    """
    Adapter turning a scikit-learn style estimator into a clustering plugin.

    Each call clones the estimator, sets its cluster-count parameter to k and
    runs fit_predict (or fit followed by predict) on the data subset.
    """

    def __init__(
        self,
        estimator: Any,
        k_param: Optional[str] = None,
        random_state_param: Optional[str] = 'random_state'
    ):
        """
        Initialize the EstimatorClusterer.

        Parameters:
        -----------
        estimator : Any
            Unfitted estimator with fit_predict(X) or fit(X) and predict(X).
        k_param : str, optional
            Name of the parameter holding the cluster count. Detected from
            'n_clusters' and 'n_components' when None.
        random_state_param : str, optional, default='random_state'
            Parameter receiving the per-job seed, when the estimator has it.
        """
        if not (hasattr(estimator, 'fit_predict') or
                (hasattr(estimator, 'fit') and hasattr(estimator, 'predict'))):
            raise ValueError(
                f"Estimator {estimator!r} must implement fit_predict(X) or fit(X) and predict(X)."
            )

        params = estimator.get_params() if hasattr(estimator, 'get_params') else {}
        if k_param is None:
            for candidate in ('n_clusters', 'n_components'):
                if candidate in params:
                    k_param = candidate
                    break
            else:
                raise ValueError(
                    f"Could not detect the cluster-count parameter of {estimator!r}; pass k_param explicitly."
                )
        elif params and k_param not in params:
            raise ValueError(f"Estimator {estimator!r} has no parameter '{k_param}'")

        self.estimator = estimator
        self.k_param = k_param
        self.random_state_param = random_state_param if random_state_param in params else None

    def __call__(self, X: np.ndarray, k: int, random_state: Optional[int] = None) -> np.ndarray:
        model = clone(self.estimator)
        params = {self.k_param: k}
        if random_state is not None and self.random_state_param is not None:
            params[self.random_state_param] = random_state
        model.set_params(**params)

        if hasattr(model, 'fit_predict'):
            return np.asarray(model.fit_predict(X))
        return np.asarray(model.fit(X).predict(X))

    def __repr__(self) -> str:
        return f"EstimatorClusterer({self.estimator!r}, k_param='{self.k_param}')"


def as_clusterer(algorithm: Union[Clusterer, Any]) -> Clusterer:
    """Wrap estimators with EstimatorClusterer; plain callables pass through."""
    if isinstance(algorithm, EstimatorClusterer):
        return algorithm
    if hasattr(algorithm, 'get_params') and (hasattr(algorithm, 'fit_predict') or hasattr(algorithm, 'fit')):
        return EstimatorClusterer(algorithm)
    if callable(algorithm):
        return algorithm
    raise ValueError(
        f"Algorithm {algorithm!r} is neither a callable (X, k) -> labels nor a clustering estimator."
    )


def default_algorithms(random_state: Optional[int] = 0) -> Dict[str, EstimatorClusterer]:
    """
    A small set of scikit-learn clustering plugins.

    Returns:
    --------
    Dict[str, EstimatorClusterer]
        'km' k-means, 'hc' average-linkage agglomerative, 'ward' Ward
        agglomerative, 'sc' spectral clustering, 'gmm' Gaussian mixture.
    """
    return {
        'km': EstimatorClusterer(KMeans(n_clusters=2, n_init=10, random_state=random_state)),
        'hc': EstimatorClusterer(AgglomerativeClustering(n_clusters=2, linkage='average')),
        'ward': EstimatorClusterer(AgglomerativeClustering(n_clusters=2, linkage='ward')),
        'sc': EstimatorClusterer(SpectralClustering(n_clusters=2, affinity='nearest_neighbors',
                                                    n_neighbors=10, random_state=random_state)),
        'gmm': EstimatorClusterer(GaussianMixture(n_components=2, random_state=random_state)),
    }
