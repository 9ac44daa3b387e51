"""Sequence alignment (DTW) between feature sequences."""

from recitation_engine.alignment.dtw import (
    AlignmentConfig,
    DTWAligner,
    DTWResult,
    Step,
    align,
    compute_normalized_distance,
)

__all__ = [
    "AlignmentConfig",
    "DTWAligner",
    "DTWResult",
    "Step",
    "align",
    "compute_normalized_distance",
]
