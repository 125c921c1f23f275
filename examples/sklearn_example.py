from sklearn.datasets import make_blobs
from sklearn.cluster import KMeans, AgglomerativeClustering
from sklearn.mixture import GaussianMixture
import numpy as np

from diceclust import ConsensusConfig
from diceclust.ensemble import EnsembleGenerator, EnsembleImputer
from diceclust.consensus import consensus_class, majority_vote_consensus
from diceclust.evaluation import compute_index_table, trim_ensemble, external_indices
from diceclust.alignment import align_labels

# Set random seed for reproducibility
np.random.seed(42)

X, y = make_blobs(n_samples=300, n_features=2, centers=4, cluster_std=0.60, random_state=0)
# Add random noise in N additional dimensions
N = 0  # Number of additional noisy dimensions
if N > 0:
    rng = np.random.RandomState(42)
    X = np.hstack([X, rng.normal(size=(X.shape[0], N))])

config = ConsensusConfig(
    ks=[3, 4, 5],
    p_item=0.8,
    reps=20,
    seed=42,
    indices=['pac', 'chi', 'silhouette'],
    reweigh=True,
    n_jobs=4,
    verbose=True
)


def first_axis_bins(X_subset, k):
    """A deliberately weak algorithm: equal-frequency bins along the first feature."""
    edges = np.quantile(X_subset[:, 0], np.linspace(0, 1, k + 1)[1:-1])
    return np.searchsorted(edges, X_subset[:, 0])


algorithms = {
    'km': KMeans(n_clusters=2, n_init=10),
    'hc': AgglomerativeClustering(n_clusters=2, linkage='average'),
    'gmm': GaussianMixture(n_components=2),
    'bins': first_axis_bins,
}

# Cluster every subsample with every algorithm at every k
generator = EnsembleGenerator.from_config(algorithms, config)
store = generator.fit_transform(X)
print(store)
print(store.missing_report().sum())

# Fill the cells of samples left out of a replicate
imputer = EnsembleImputer.from_config(config)
store = imputer.transform(store, X)

# Score and rank the algorithms
table = compute_index_table(X, store, config)
print(table)

k = 4
trimmed = trim_ensemble(table, k, quantile=config.trim_quantile,
                        reweigh=config.reweigh, total_copies=config.total_copies)
print(trimmed)
print(trimmed.to_frame())

# Final consensus over the kept algorithms
matrix = trimmed.consensus_matrix(store)
labels = consensus_class(matrix, k, linkage_method=config.linkage_method)

alignment = align_labels(labels, y)
print(alignment.to_frame())
print(external_indices(labels, y))

# Alternative consensus by voting over aligned label columns
columns = np.vstack([store.get_slice(a, k).to_float() for a in trimmed.kept])
votes = majority_vote_consensus(columns, reference=labels)
print(external_indices(votes.astype(int), y))
