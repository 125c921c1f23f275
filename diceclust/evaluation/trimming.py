"""
Ranking, trimming and reweighing of the algorithms of an ensemble.

Every algorithm is scored per k with internal validation indices computed on
its own consensus matrix and consensus classes. Algorithms are ranked per
index, rank sums above a quantile are trimmed, and the survivors receive
weights that are turned into integer copy counts.
"""

import warnings
from typing import Dict, Hashable, List, Mapping, Optional, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from ..config import ConsensusConfig, MAX_TOTAL_COPIES
from ..consensus.classes import consensus_class
from ..consensus.matrix import ConsensusMatrix, consensus_matrix
from ..ensemble.store import EnsembleStore
from ..exceptions import DegenerateTrim, InvalidConfig, UnresolvedMissingData
from .indices import INDEX_REGISTRY, HIGHER_IS_BETTER

__all__ = [
    'TrimmedEnsemble',
    'compute_index_table',
    'rank_algorithms',
    'trim_rank_sums',
    'allocate_copies',
    'trim_ensemble',
]


def compute_index_table(
    X: np.ndarray,
    store: EnsembleStore,
    config: Optional[ConsensusConfig] = None
) -> pd.DataFrame:
    """
    Compute validation indices for every (algorithm, k) of a store.

    For each algorithm and k, the algorithm's own consensus matrix is built,
    cut into k consensus classes and scored.

    Parameters:
    -----------
    X : np.ndarray
        Original feature matrix of shape (n_samples, n_features).
    store : EnsembleStore
        Label store, usually after imputation.
    config : ConsensusConfig, optional
        Provides the indices, PAC bounds, linkage method and ks to evaluate.

    Returns:
    --------
    pd.DataFrame
        One row per (algorithm, k), one column per index. Index directions
        are stored in attrs['directions'].
    """
    config = config if config is not None else ConsensusConfig()
    X = np.asarray(X)
    if X.shape[0] != store.n_samples:
        raise ValueError(f"X has {X.shape[0]} rows but the store covers {store.n_samples} samples")

    ks = [k for k in store.ks if k in config.ks]
    if not ks:
        raise ValueError(f"None of the configured ks {config.ks} are part of the store (ks={store.ks})")

    indices = [INDEX_REGISTRY[name] for name in config.indices]
    rows = {}
    incomplete = []

    jobs = [(algorithm, k) for k in ks for algorithm in store.algorithms]
    for algorithm, k in tqdm(jobs, desc="Scoring algorithms", disable=not config.verbose):
        matrix = consensus_matrix(store, k, [algorithm], n_jobs=config.n_jobs)
        complete = not matrix.has_undefined()
        if not complete:
            incomplete.append((algorithm, k))

        classes = None
        if complete and any(index.kind == 'partition' for index in indices):
            classes = consensus_class(matrix, k, linkage_method=config.linkage_method)

        scores = {}
        for index in indices:
            if index.kind == 'matrix':
                scores[index.name] = index.func(matrix, lower=config.pac_lower, upper=config.pac_upper)
            elif classes is None:
                scores[index.name] = np.nan
            else:
                scores[index.name] = index.func(X, classes)
        rows[(algorithm, k)] = scores

    if incomplete:
        warnings.warn(
            f"Consensus matrices with undefined pairs for {incomplete}; "
            f"partition indices are NaN for these algorithms",
            UnresolvedMissingData
        )

    table = pd.DataFrame.from_dict(rows, orient='index', columns=[index.name for index in indices])
    table.index = pd.MultiIndex.from_tuples(list(rows), names=['algorithm', 'k'])
    table.attrs['directions'] = {index.name: index.direction for index in indices}
    return table


def _directions(table: pd.DataFrame) -> Dict[str, str]:
    directions = dict(table.attrs.get('directions', {}))
    for column in table.columns:
        if column not in directions:
            if column not in INDEX_REGISTRY:
                raise ValueError(f"No direction known for index '{column}'")
            directions[column] = INDEX_REGISTRY[column].direction
    return directions


def rank_algorithms(table: pd.DataFrame, k: Optional[int] = None) -> pd.DataFrame:
    """
    Rank algorithms per index at one k.

    Rank 1 is the best value in the index's direction, ties share the
    average rank and NaN scores are ranked last.

    Parameters:
    -----------
    table : pd.DataFrame
        Index table from compute_index_table, or a table indexed by
        algorithm only (then k is ignored).
    k : int, optional
        Cluster count selecting the rows of a (algorithm, k) table.

    Returns:
    --------
    pd.DataFrame
        One row per algorithm, one rank column per index and a 'rank_sum'
        column.
    """
    directions = _directions(table)
    if isinstance(table.index, pd.MultiIndex):
        if k is None:
            raise ValueError("k is required to rank a table indexed by (algorithm, k)")
        if k not in table.index.get_level_values('k'):
            raise ValueError(f"k={k} is not part of the index table")
        scores = table.xs(k, level='k')
    else:
        scores = table

    ranks = pd.DataFrame(index=scores.index)
    for column in scores.columns:
        ranks[column] = scores[column].rank(
            method='average',
            ascending=directions[column] != HIGHER_IS_BETTER,
            na_option='bottom'
        )
    ranks['rank_sum'] = ranks[list(scores.columns)].sum(axis=1)
    return ranks


def trim_rank_sums(rank_sums: pd.Series, quantile: float = 0.75):
    """
    Split algorithms into kept and removed by their rank sums.

    Algorithms whose rank sum is strictly above the quantile of all rank sums
    (linear interpolation) are removed. When fewer than two algorithms would
    remain nothing is removed and the result is flagged degenerate.

    Returns:
    --------
    Tuple[List, List, float, bool]
        kept, removed, threshold and the degenerate flag.
    """
    if not (0.0 <= quantile <= 1.0):
        raise InvalidConfig(f"quantile must be in [0, 1], got {quantile}")
    rank_sums = pd.Series(rank_sums, dtype=float)
    if rank_sums.empty:
        raise ValueError("No algorithms to trim")

    threshold = float(np.quantile(rank_sums.values, quantile))
    kept = [a for a, value in rank_sums.items() if value <= threshold]
    removed = [a for a, value in rank_sums.items() if value > threshold]

    degenerate = False
    if removed and len(kept) < 2:
        degenerate = True
        warnings.warn(
            f"Trimming at quantile {quantile} would keep {len(kept)} algorithm(s) "
            f"out of {len(rank_sums)}; keeping all of them",
            DegenerateTrim
        )
        kept, removed = list(rank_sums.index), []
    elif len(rank_sums) < 2:
        degenerate = True

    return kept, removed, threshold, degenerate


def allocate_copies(
    weights: Union[Mapping[Hashable, float], pd.Series],
    total: int = MAX_TOTAL_COPIES
) -> Dict[Hashable, int]:
    """
    Turn weights into integer copy counts summing exactly to total.

    Largest-remainder allocation: every algorithm gets the floor of its
    quota, the leftover copies go to the largest fractional parts, ties to
    the smallest algorithm identifier.

    Parameters:
    -----------
    weights : Mapping or pd.Series
        Non-negative weight per algorithm.
    total : int, default=100
        Number of copies, 1 <= total <= 100.

    Returns:
    --------
    Dict[Hashable, int]
        Copy count per algorithm.
    """
    if int(total) != total or not (1 <= total <= MAX_TOTAL_COPIES):
        raise InvalidConfig(f"total copies must be an integer in [1, {MAX_TOTAL_COPIES}], got {total}")
    weights = pd.Series(weights, dtype=float)
    if weights.empty:
        raise ValueError("No weights to allocate")
    if (weights < 0).any() or not np.isfinite(weights.values).all():
        raise ValueError("Weights must be finite and non-negative")
    if weights.sum() <= 0:
        raise ValueError("Weights must not all be zero")

    quotas = weights / weights.sum() * int(total)
    copies = np.floor(quotas + 1e-9).astype(int)
    fractions = (quotas - copies).clip(lower=0).round(9)

    leftover = int(total) - int(copies.sum())
    try:
        by_identifier = sorted(weights.index)
    except TypeError:
        # mixed identifier types only order by their string form
        by_identifier = sorted(weights.index, key=str)
    position = {algorithm: i for i, algorithm in enumerate(by_identifier)}
    order = sorted(weights.index, key=lambda a: (-fractions[a], position[a]))
    for algorithm in order[:leftover]:
        copies[algorithm] += 1

    return {algorithm: int(copies[algorithm]) for algorithm in weights.index}


class TrimmedEnsemble:
    """
    Algorithms kept after trimming at one k, with their weights and copy counts.

    Attributes:
    -----------
    k : int
        Cluster count the ranking was done at.
    kept, removed : List[Hashable]
        Algorithm identifiers.
    weights : Dict[Hashable, float]
        Weight per kept algorithm, summing to 1.
    copies : Dict[Hashable, int]
        Copy count per kept algorithm, summing to total_copies.
    ranks : pd.DataFrame
        Rank table the decision was based on.
    threshold : float
        Rank-sum quantile used as cut.
    degenerate : bool
        True when trimming was skipped because too few algorithms remained.
    """

    def __init__(
        self,
        k: int,
        kept: List[Hashable],
        removed: List[Hashable],
        weights: Dict[Hashable, float],
        copies: Dict[Hashable, int],
        ranks: pd.DataFrame,
        threshold: float,
        degenerate: bool = False
    ):
        self.k = k
        self.kept = kept
        self.removed = removed
        self.weights = weights
        self.copies = copies
        self.ranks = ranks
        self.threshold = threshold
        self.degenerate = degenerate

    @property
    def total_copies(self) -> int:
        return int(sum(self.copies.values()))

    def consensus_matrix(
        self,
        store: EnsembleStore,
        k: Optional[int] = None,
        n_jobs: Optional[int] = None
    ) -> ConsensusMatrix:
        """Combined consensus matrix of the kept algorithms, each weighted by its copy count."""
        k = self.k if k is None else k
        return consensus_matrix(store, k, list(self.kept), copies=self.copies, n_jobs=n_jobs)

    def to_frame(self) -> pd.DataFrame:
        """Per-algorithm summary: rank sum, kept flag, weight and copies."""
        frame = pd.DataFrame(index=self.ranks.index)
        frame['rank_sum'] = self.ranks['rank_sum']
        frame['kept'] = [a in self.kept for a in frame.index]
        frame['weight'] = [self.weights.get(a, 0.0) for a in frame.index]
        frame['copies'] = [self.copies.get(a, 0) for a in frame.index]
        return frame

    def __repr__(self) -> str:
        return (f"TrimmedEnsemble(k={self.k}, kept={self.kept}, removed={self.removed}, "
                f"copies={self.copies}, degenerate={self.degenerate})")


def trim_ensemble(
    table: pd.DataFrame,
    k: Optional[int] = None,
    quantile: float = 0.75,
    reweigh: bool = False,
    total_copies: int = MAX_TOTAL_COPIES
) -> TrimmedEnsemble:
    """
    Trim the worst-ranked algorithms and weight the rest.

    Parameters:
    -----------
    table : pd.DataFrame
        Index table from compute_index_table.
    k : int, optional
        Cluster count to rank at. Required for (algorithm, k) tables.
    quantile : float, default=0.75
        Algorithms with a rank sum above this quantile are removed.
    reweigh : bool, default=False
        Weight kept algorithms by their inverted ranks instead of uniformly.
    total_copies : int, default=100
        Number of copies distributed over the kept algorithms.

    Returns:
    --------
    TrimmedEnsemble
        Kept and removed algorithms, weights and copy counts.
    """
    ranks = rank_algorithms(table, k)
    kept, removed, threshold, degenerate = trim_rank_sums(ranks['rank_sum'], quantile)

    if reweigh:
        n_algorithms = len(ranks)
        index_ranks = ranks.drop(columns='rank_sum')
        scores = (n_algorithms + 1 - index_ranks.loc[kept]).sum(axis=1)
        if scores.sum() <= 0:
            scores = pd.Series(1.0, index=kept)
    else:
        scores = pd.Series(1.0, index=kept)
    scores = scores / scores.sum()

    weights = {algorithm: float(scores[algorithm]) for algorithm in kept}
    copies = allocate_copies(scores, total_copies)

    return TrimmedEnsemble(k, kept, removed, weights, copies, ranks, threshold, degenerate)
