"""
Label store for clustering ensembles.

The store holds one label per (sample, replicate, algorithm, k) cell. Every
cell carries a CellState next to its label so that samples excluded from a
replicate by design are never confused with samples a clustering algorithm
failed to label.
"""

import threading
import warnings
from collections.abc import Mapping
from enum import IntEnum
from typing import Any, Dict, Hashable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..exceptions import ShapeMismatch, ClusteringJobWarning

__all__ = ['MISSING', 'CellState', 'LabelSlice', 'EnsembleStore']


class _MissingType:
    """Sentinel marking a cell without a cluster label."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'MISSING'

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_MissingType, ())


MISSING = _MissingType()


def is_missing(value: Any) -> bool:
    """True for MISSING, None and float NaN."""
    if value is MISSING or value is None:
        return True
    try:
        return bool(np.isnan(value))
    except (TypeError, ValueError):
        return False


class CellState(IntEnum):
    """State of one ensemble cell."""

    KNOWN = 0
    IMPUTED = 1
    EXCLUDED = 2
    FAILED = 3
    PENDING = 4


_LABELLED = (CellState.KNOWN, CellState.IMPUTED)


class LabelSlice:
    """
    Replicate x sample labels of one (algorithm, k) combination.

    Labels at cells that are not KNOWN or IMPUTED carry no meaning; the
    states array is authoritative.
    """

    def __init__(
        self,
        labels: np.ndarray,
        states: np.ndarray,
        algorithm: Optional[Hashable] = None,
        k: Optional[int] = None
    ):
        labels = np.asarray(labels, dtype=np.int64)
        states = np.asarray(states, dtype=np.int8)
        if labels.shape != states.shape or labels.ndim != 2:
            raise ShapeMismatch(
                f"labels and states must be 2D arrays of equal shape, got {labels.shape} and {states.shape}"
            )
        self.labels = labels
        self.states = states
        self.algorithm = algorithm
        self.k = k

    @property
    def shape(self) -> Tuple[int, int]:
        return self.labels.shape

    @property
    def n_reps(self) -> int:
        return self.labels.shape[0]

    @property
    def n_samples(self) -> int:
        return self.labels.shape[1]

    @property
    def known(self) -> np.ndarray:
        """Boolean mask of cells with a label (observed or imputed)."""
        return np.isin(self.states, _LABELLED)

    @property
    def n_missing(self) -> int:
        return int(np.sum(~self.known))

    @property
    def is_dense(self) -> bool:
        return self.n_missing == 0

    def to_float(self) -> np.ndarray:
        """Labels as floats with NaN at every unlabelled cell."""
        out = self.labels.astype(float)
        out[~self.known] = np.nan
        return out

    def count_states(self) -> Dict[str, int]:
        return {state.name: int(np.sum(self.states == state)) for state in CellState}

    def copy(self) -> 'LabelSlice':
        return LabelSlice(self.labels.copy(), self.states.copy(), self.algorithm, self.k)

    def __eq__(self, other) -> bool:
        if not isinstance(other, LabelSlice):
            return NotImplemented
        if self.shape != other.shape or not np.array_equal(self.states, other.states):
            return False
        known = self.known
        return bool(np.array_equal(self.labels[known], other.labels[known]))

    def __repr__(self) -> str:
        return (f"LabelSlice(algorithm={self.algorithm!r}, k={self.k}, "
                f"n_reps={self.n_reps}, n_samples={self.n_samples}, n_missing={self.n_missing})")


class EnsembleStore:
    """
    Four-dimensional label store indexed by (sample, replicate, algorithm, k).

    Cells outside a replicate's inclusion mask start EXCLUDED, cells inside it
    start PENDING until a clustering result is recorded. Each
    (replicate, algorithm, k) triple may be recorded exactly once, which makes
    concurrent record calls for distinct triples safe.

    Features:
    - record results as mappings or as arrays aligned with the inclusion mask
    - explicit MISSING markers for samples an algorithm failed to label
    - per-slice read access and dense 4D export
    - missing-data reporting per (replicate, algorithm, k)
    """

    def __init__(
        self,
        n_samples: int,
        masks: Sequence[Union[np.ndarray, Sequence[int]]],
        algorithms: Sequence[Hashable],
        ks: Sequence[int]
    ):
        """
        Initialize the EnsembleStore.

        Parameters:
        -----------
        n_samples : int
            Number of samples in the full data set.
        masks : Sequence[array-like]
            Inclusion mask (included sample indices) of every replicate.
        algorithms : Sequence[Hashable]
            Algorithm identifiers.
        ks : Sequence[int]
            Candidate cluster counts.
        """
        if len(set(algorithms)) != len(algorithms):
            raise ValueError(f"Algorithm identifiers must be unique, got {list(algorithms)}")
        if len(set(ks)) != len(ks):
            raise ValueError(f"Cluster counts must be unique, got {list(ks)}")
        if len(masks) < 1:
            raise ValueError("At least one replicate mask is required")

        self.n_samples = int(n_samples)
        self.masks = []
        for r, mask in enumerate(masks):
            mask = np.unique(np.asarray(mask, dtype=np.int64))
            if mask.size and (mask[0] < 0 or mask[-1] >= self.n_samples):
                raise ShapeMismatch(f"Mask of replicate {r} contains sample ids outside [0, {self.n_samples})")
            self.masks.append(mask)
        self.algorithms = list(algorithms)
        self.ks = list(ks)

        initial_states = np.full((self.n_reps, self.n_samples), CellState.EXCLUDED, dtype=np.int8)
        for r, mask in enumerate(self.masks):
            initial_states[r, mask] = CellState.PENDING

        self._slices = {
            (algorithm, k): LabelSlice(
                np.zeros((self.n_reps, self.n_samples), dtype=np.int64),
                initial_states.copy(),
                algorithm,
                k
            )
            for algorithm in self.algorithms
            for k in self.ks
        }
        self._recorded = set()
        self._lock = threading.Lock()
        self.failures = []

    @property
    def n_reps(self) -> int:
        return len(self.masks)

    def _check_key(self, replicate: int, algorithm: Hashable, k: int):
        if not (0 <= replicate < self.n_reps):
            raise ValueError(f"Replicate {replicate} out of range [0, {self.n_reps})")
        if (algorithm, k) not in self._slices:
            raise ValueError(f"Unknown (algorithm, k) combination: ({algorithm!r}, {k})")

    def _parse_labels(self, replicate: int, labels: Any) -> Tuple[np.ndarray, np.ndarray]:
        """Turn a mapping or a mask-aligned array into (values, missing) arrays in mask order."""
        mask = self.masks[replicate]

        if isinstance(labels, Mapping):
            try:
                labels = {int(s): v for s, v in labels.items()}
            except (TypeError, ValueError) as e:
                raise ShapeMismatch(f"Label keys for replicate {replicate} must be sample ids: {e}") from e
            keys = np.array(sorted(labels), dtype=np.int64)
            outside = np.setdiff1d(keys, mask)
            if outside.size:
                raise ShapeMismatch(
                    f"Labels for replicate {replicate} cover samples outside its inclusion mask: "
                    f"{outside[:10].tolist()}"
                )
            absent = np.setdiff1d(mask, keys)
            if absent.size:
                raise ShapeMismatch(
                    f"Labels for replicate {replicate} omit {absent.size} included samples without "
                    f"marking them MISSING: {absent[:10].tolist()}"
                )
            values = [labels[s] for s in mask.tolist()]
        else:
            values = list(np.asarray(labels, dtype=object).ravel())
            if len(values) != len(mask):
                raise ShapeMismatch(
                    f"Got {len(values)} labels for replicate {replicate}, "
                    f"but its inclusion mask has {len(mask)} samples"
                )

        missing = np.array([is_missing(v) for v in values], dtype=bool)
        parsed = np.zeros(len(values), dtype=np.int64)
        for i, value in enumerate(values):
            if missing[i]:
                continue
            try:
                integral = not isinstance(value, (bool, np.bool_)) and float(value).is_integer()
            except (TypeError, ValueError):
                integral = False
            if not integral:
                raise ShapeMismatch(f"Cluster labels must be integers, got {value!r}")
            parsed[i] = int(value)

        return parsed, missing

    def record(self, replicate: int, algorithm: Hashable, k: int, labels: Any) -> int:
        """
        Record the labels of one clustering job.

        Parameters:
        -----------
        replicate : int
            Replicate index.
        algorithm : Hashable
            Algorithm identifier.
        k : int
            Target cluster count of the job.
        labels : Mapping or array-like
            Either a mapping from sample id to label covering exactly the
            replicate's inclusion mask, or an array aligned with the mask order.
            MISSING, None or NaN mark samples the algorithm could not label.

        Returns:
        --------
        int
            Number of cells recorded as FAILED because they were marked missing.

        Raises:
        -------
        ShapeMismatch
            If the labels do not match the inclusion mask.
        ValueError
            If the triple has already been recorded.
        """
        self._check_key(replicate, algorithm, k)
        values, missing = self._parse_labels(replicate, labels)
        mask = self.masks[replicate]

        with self._lock:
            key = (replicate, algorithm, k)
            if key in self._recorded:
                raise ValueError(f"Labels for {key} have already been recorded")
            self._recorded.add(key)

            label_slice = self._slices[(algorithm, k)]
            label_slice.labels[replicate, mask] = values
            label_slice.states[replicate, mask] = np.where(missing, CellState.FAILED, CellState.KNOWN)

            n_failed = int(missing.sum())
            if n_failed:
                self.failures.append({
                    'replicate': replicate,
                    'algorithm': algorithm,
                    'k': k,
                    'n_failed': n_failed,
                    'reason': 'no label produced for some included samples'
                })

        if n_failed:
            warnings.warn(
                f"Algorithm {algorithm!r} produced no label for {n_failed} samples "
                f"in replicate {replicate} at k={k}",
                ClusteringJobWarning
            )
        return n_failed

    def mark_failed(self, replicate: int, algorithm: Hashable, k: int, reason: str = '') -> int:
        """
        Record a whole clustering job as failed.

        Every included sample of the replicate becomes FAILED for this
        (algorithm, k). Returns the number of failed cells.
        """
        self._check_key(replicate, algorithm, k)
        mask = self.masks[replicate]

        with self._lock:
            key = (replicate, algorithm, k)
            if key in self._recorded:
                raise ValueError(f"Labels for {key} have already been recorded")
            self._recorded.add(key)

            self._slices[(algorithm, k)].states[replicate, mask] = CellState.FAILED
            self.failures.append({
                'replicate': replicate,
                'algorithm': algorithm,
                'k': k,
                'n_failed': int(mask.size),
                'reason': reason
            })

        warnings.warn(
            f"Clustering job (replicate={replicate}, algorithm={algorithm!r}, k={k}) "
            f"recorded as missing: {reason}",
            ClusteringJobWarning
        )
        return int(mask.size)

    def is_recorded(self, replicate: int, algorithm: Hashable, k: int) -> bool:
        return (replicate, algorithm, k) in self._recorded

    def pending_jobs(self) -> List[Tuple[int, Hashable, int]]:
        """All (replicate, algorithm, k) triples not recorded yet."""
        return [
            (r, algorithm, k)
            for algorithm in self.algorithms
            for k in self.ks
            for r in range(self.n_reps)
            if (r, algorithm, k) not in self._recorded
        ]

    def pending_to_failed(self, reason: str = 'job was not recorded') -> int:
        """Mark every unrecorded job as failed, e.g. after cancelling a run."""
        pending = self.pending_jobs()
        for r, algorithm, k in pending:
            self.mark_failed(r, algorithm, k, reason)
        return len(pending)

    def get(self, sample: int, replicate: int, algorithm: Hashable, k: int) -> Tuple[CellState, Any]:
        """
        Read one cell.

        Returns:
        --------
        Tuple[CellState, Any]
            The cell state and its label, or MISSING when the cell has no label.
        """
        self._check_key(replicate, algorithm, k)
        if not (0 <= sample < self.n_samples):
            raise ValueError(f"Sample {sample} out of range [0, {self.n_samples})")
        label_slice = self._slices[(algorithm, k)]
        state = CellState(int(label_slice.states[replicate, sample]))
        if state in _LABELLED:
            return state, int(label_slice.labels[replicate, sample])
        return state, MISSING

    def get_slice(self, algorithm: Hashable, k: int) -> LabelSlice:
        """Replicate x sample labels of one (algorithm, k) combination (a copy)."""
        if (algorithm, k) not in self._slices:
            raise ValueError(f"Unknown (algorithm, k) combination: ({algorithm!r}, {k})")
        return self._slices[(algorithm, k)].copy()

    def iter_slices(self, k: Optional[int] = None) -> Iterator[Tuple[Tuple[Hashable, int], LabelSlice]]:
        """Iterate over ((algorithm, k), slice) pairs, optionally for a single k."""
        for algorithm in self.algorithms:
            for k_ in self.ks:
                if k is None or k_ == k:
                    yield (algorithm, k_), self.get_slice(algorithm, k_)

    def update_slice(self, algorithm: Hashable, k: int, new_slice: LabelSlice):
        """
        Replace a slice with an imputed version of itself.

        Only unlabelled cells may change, and only to IMPUTED.

        Raises:
        -------
        ShapeMismatch
            If the new slice has a different shape.
        ValueError
            If the new slice alters cells that already had a label.
        """
        current = self._slices.get((algorithm, k))
        if current is None:
            raise ValueError(f"Unknown (algorithm, k) combination: ({algorithm!r}, {k})")
        if new_slice.shape != current.shape:
            raise ShapeMismatch(f"Slice shape {new_slice.shape} does not match store shape {current.shape}")

        labelled = current.known
        if not (np.array_equal(new_slice.states[labelled], current.states[labelled])
                and np.array_equal(new_slice.labels[labelled], current.labels[labelled])):
            raise ValueError("Imputation may not modify cells that already have a label")
        changed = ~labelled & (new_slice.states != current.states)
        if np.any(new_slice.states[changed] != CellState.IMPUTED):
            raise ValueError("Unlabelled cells may only change to IMPUTED")

        with self._lock:
            self._slices[(algorithm, k)] = LabelSlice(
                new_slice.labels.copy(), new_slice.states.copy(), algorithm, k
            )

    def to_array(self) -> np.ndarray:
        """
        Dense label array of shape (n_samples, n_reps, n_algorithms, n_ks).

        Unlabelled cells are NaN; algorithms and ks follow the store's order.
        """
        E = np.full((self.n_samples, self.n_reps, len(self.algorithms), len(self.ks)), np.nan)
        for a, algorithm in enumerate(self.algorithms):
            for j, k in enumerate(self.ks):
                E[:, :, a, j] = self._slices[(algorithm, k)].to_float().T
        return E

    def state_array(self) -> np.ndarray:
        """CellState codes with the same layout as to_array()."""
        S = np.empty((self.n_samples, self.n_reps, len(self.algorithms), len(self.ks)), dtype=np.int8)
        for a, algorithm in enumerate(self.algorithms):
            for j, k in enumerate(self.ks):
                S[:, :, a, j] = self._slices[(algorithm, k)].states.T
        return S

    def missing_report(self) -> pd.DataFrame:
        """
        Counts of cell states per (replicate, algorithm, k).

        Returns:
        --------
        pd.DataFrame
            One row per triple with a column per CellState name.
        """
        rows = []
        for algorithm in self.algorithms:
            for k in self.ks:
                states = self._slices[(algorithm, k)].states
                for r in range(self.n_reps):
                    row = {'replicate': r, 'algorithm': algorithm, 'k': k}
                    for state in CellState:
                        row[state.name] = int(np.sum(states[r] == state))
                    rows.append(row)
        return pd.DataFrame(rows).set_index(['replicate', 'algorithm', 'k'])

    def copy(self) -> 'EnsembleStore':
        """Independent copy of the store, including recorded keys and failures."""
        new = EnsembleStore(self.n_samples, self.masks, self.algorithms, self.ks)
        new._slices = {key: value.copy() for key, value in self._slices.items()}
        new._recorded = set(self._recorded)
        new.failures = [dict(failure) for failure in self.failures]
        return new

    @classmethod
    def from_array(
        cls,
        E: np.ndarray,
        algorithms: Optional[Sequence[Hashable]] = None,
        ks: Optional[Sequence[int]] = None
    ) -> 'EnsembleStore':
        """
        Build a store from a dense (n_samples, n_reps, n_algorithms, n_ks) array.

        A sample belongs to a replicate's mask when it has at least one
        non-NaN label in that replicate; NaN cells inside a mask are FAILED.
        """
        E = np.asarray(E, dtype=float)
        if E.ndim != 4:
            raise ShapeMismatch(f"Expected a 4D array, got shape {E.shape}")
        n_samples, n_reps, n_algorithms, n_ks = E.shape
        algorithms = list(algorithms) if algorithms is not None else list(range(n_algorithms))
        ks = list(ks) if ks is not None else list(range(2, 2 + n_ks))
        if len(algorithms) != n_algorithms or len(ks) != n_ks:
            raise ShapeMismatch("algorithms and ks must match the array's last two dimensions")

        observed = ~np.isnan(E)
        masks = [np.where(observed[:, r].any(axis=(1, 2)))[0] for r in range(n_reps)]
        store = cls(n_samples, masks, algorithms, ks)
        for a, algorithm in enumerate(algorithms):
            for j, k in enumerate(ks):
                for r, mask in enumerate(masks):
                    column = E[mask, r, a, j]
                    if np.all(np.isnan(column)):
                        store._recorded.add((r, algorithm, k))
                        store._slices[(algorithm, k)].states[r, mask] = CellState.FAILED
                    else:
                        store.record(r, algorithm, k, [MISSING if np.isnan(v) else int(v) for v in column])
        return store

    def __repr__(self) -> str:
        """String representation of the EnsembleStore."""
        return (f"EnsembleStore(n_samples={self.n_samples}, n_reps={self.n_reps}, "
                f"algorithms={self.algorithms}, ks={self.ks}, "
                f"recorded={len(self._recorded)}/{self.n_reps * len(self._slices)})")
