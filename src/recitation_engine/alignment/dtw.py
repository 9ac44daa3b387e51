"""Dynamic Time Warping between two feature sequences.

Cost and step matrices are allocated per call, so a single aligner can be
shared between threads. Sentinel results instead of exceptions:

- empty input            -> DTWResult(inf, [])
- dimension mismatch     -> DTWResult(inf, [])
- end cell outside band  -> DTWResult(inf, [])
"""

from __future__ import annotations

import enum
import logging
import math
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import numpy as np
from scipy.spatial.distance import cdist

from recitation_engine.audio.features import FeatureSequence
from recitation_engine.errors import ConfigurationError, OperationCancelled

logger = logging.getLogger(__name__)

DISTANCE_METRICS = ("euclidean", "manhattan")
_CDIST_METRIC = {"euclidean": "euclidean", "manhattan": "cityblock"}

SequenceLike = Union[FeatureSequence, np.ndarray, list]
PathPoint = Tuple[int, int]


class Step(enum.IntEnum):
    """Predecessor direction stored per cost-matrix cell."""

    DIAGONAL = 0  # (i-1, j-1)
    HORIZONTAL = 1  # (i, j-1)
    VERTICAL = 2  # (i-1, j)


@dataclass(frozen=True)
class DTWResult:
    """Cumulative distance and warping path [(index_a, index_b), ...]."""

    distance: float
    path: List[PathPoint] = field(default_factory=list)

    @property
    def is_comparable(self) -> bool:
        """False for the +inf sentinel (empty input, dimension mismatch, band too narrow)."""
        return math.isfinite(self.distance)

    @property
    def normalized_distance(self) -> float:
        """distance / len(path); inf when there is no path."""
        if not self.path:
            return math.inf
        return self.distance / len(self.path)


@dataclass(frozen=True)
class AlignmentConfig:
    """DTW options."""

    distance_metric: str = "euclidean"
    bandwidth: Optional[int] = None  # Sakoe-Chiba half-width in frames

    def __post_init__(self) -> None:
        _check_options(self.distance_metric, self.bandwidth)


def _check_options(metric: str, bandwidth: Optional[int]) -> None:
    if metric not in DISTANCE_METRICS:
        raise ConfigurationError(f"distance_metric must be one of {DISTANCE_METRICS}, got {metric!r}")
    if bandwidth is not None and bandwidth < 0:
        raise ConfigurationError(f"bandwidth must be >= 0, got {bandwidth}")


def as_feature_matrix(seq: SequenceLike) -> np.ndarray:
    """Convert a FeatureSequence or array-like to (n_frames, dimension) float64."""
    if isinstance(seq, FeatureSequence):
        return seq.to_matrix()
    arr = np.asarray(seq, dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, arr.shape[1] if arr.ndim == 2 else 0))
    if arr.ndim == 1:
        return arr.reshape(-1, 1)
    if arr.ndim != 2:
        raise ValueError(f"expected a 2-D feature matrix, got shape {arr.shape}")
    return arr


def local_cost_matrix(a: np.ndarray, b: np.ndarray, metric: str = "euclidean") -> np.ndarray:
    """Pairwise frame distances, shape (len(a), len(b))."""
    _check_options(metric, None)
    return cdist(a, b, metric=_CDIST_METRIC[metric])


def align(
    seq_a: SequenceLike,
    seq_b: SequenceLike,
    metric: str = "euclidean",
    bandwidth: Optional[int] = None,
    cancel: Optional[threading.Event] = None,
) -> DTWResult:
    """Minimal-cost monotonic alignment of seq_a against seq_b.

    Args:
        seq_a: Query features (FeatureSequence or (n, d) array).
        seq_b: Reference features (FeatureSequence or (m, d) array).
        metric: "euclidean" or "manhattan".
        bandwidth: Optional Sakoe-Chiba half-width w; row i only visits
            j in [max(1, i-w), min(m, i+w)].
        cancel: Optional event, checked once per row; raises OperationCancelled.

    Returns:
        DTWResult with the cumulative distance and the chronological path
        from (0, 0) to (n-1, m-1). Ties prefer diagonal, then horizontal,
        then vertical.
    """
    _check_options(metric, bandwidth)
    a = as_feature_matrix(seq_a)
    b = as_feature_matrix(seq_b)
    n, m = len(a), len(b)
    if n == 0 or m == 0:
        logger.debug("DTW on empty sequence (n=%d, m=%d)", n, m)
        return DTWResult(math.inf, [])
    if a.shape[1] != b.shape[1]:
        logger.warning("DTW dimension mismatch: %d vs %d", a.shape[1], b.shape[1])
        return DTWResult(math.inf, [])

    local = local_cost_matrix(a, b, metric).tolist()
    inf = math.inf
    cost = [[inf] * (m + 1) for _ in range(n + 1)]
    steps = [[-1] * (m + 1) for _ in range(n + 1)]
    cost[0][0] = 0.0

    for i in range(1, n + 1):
        if cancel is not None and cancel.is_set():
            raise OperationCancelled(f"DTW cancelled at row {i} of {n}")
        if bandwidth is None:
            j_start, j_end = 1, m
        else:
            j_start, j_end = max(1, i - bandwidth), min(m, i + bandwidth)
        prev_row = cost[i - 1]
        row = cost[i]
        step_row = steps[i]
        local_row = local[i - 1]
        for j in range(j_start, j_end + 1):
            match = prev_row[j - 1]
            insertion = row[j - 1]
            deletion = prev_row[j]
            if match <= insertion and match <= deletion:
                best, step = match, Step.DIAGONAL
            elif insertion <= deletion:
                best, step = insertion, Step.HORIZONTAL
            else:
                best, step = deletion, Step.VERTICAL
            row[j] = local_row[j - 1] + best
            step_row[j] = step

    distance = cost[n][m]
    if math.isinf(distance):
        logger.warning("DTW end cell unreachable within bandwidth=%s (n=%d, m=%d)", bandwidth, n, m)
        return DTWResult(math.inf, [])

    path: List[PathPoint] = []
    i, j = n, m
    while i > 0 and j > 0:
        path.append((i - 1, j - 1))
        step = steps[i][j]
        if step == Step.DIAGONAL:
            i -= 1
            j -= 1
        elif step == Step.HORIZONTAL:
            j -= 1
        else:
            i -= 1
    path.reverse()

    logger.debug("DTW cost=%.4f, path_len=%d", distance, len(path))
    return DTWResult(distance, path)


def compute_normalized_distance(
    seq_a: SequenceLike,
    seq_b: SequenceLike,
    metric: str = "euclidean",
    bandwidth: Optional[int] = None,
) -> float:
    """DTW distance divided by path length (inf for the sentinel result)."""
    return align(seq_a, seq_b, metric=metric, bandwidth=bandwidth).normalized_distance


class DTWAligner:
    """Aligner bound to one AlignmentConfig.

    Interface:
      aligner = DTWAligner(AlignmentConfig(distance_metric="manhattan", bandwidth=20))
      result = aligner.align(query_features, reference_features)
      result.distance, result.path, result.normalized_distance
    """

    def __init__(self, config: Optional[AlignmentConfig] = None):
        self.config = config or AlignmentConfig()

    def align(
        self,
        seq_a: SequenceLike,
        seq_b: SequenceLike,
        cancel: Optional[threading.Event] = None,
    ) -> DTWResult:
        return align(
            seq_a,
            seq_b,
            metric=self.config.distance_metric,
            bandwidth=self.config.bandwidth,
            cancel=cancel,
        )

    def normalized_distance(self, seq_a: SequenceLike, seq_b: SequenceLike) -> float:
        return self.align(seq_a, seq_b).normalized_distance
