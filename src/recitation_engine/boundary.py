"""Flat-buffer numeric API for embedding behind a narrow boundary.

Every sequence crosses as a contiguous 1-D buffer plus an explicit
(length, dimension) pair, validated against the buffer size. Results are
freshly allocated numpy arrays owned by the caller; dropping the last
reference releases them, so no separate free call exists.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np

from recitation_engine.alignment.dtw import align
from recitation_engine.audio.config import AudioConfig
from recitation_engine.audio.features import FeatureExtractor
from recitation_engine.decoder.hmm import HMMModel, forward, viterbi
from recitation_engine.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Scalars per row of process_audio_features, after the MFCCs
ROW_SCALARS = ("energy", "zero_crossing_rate", "spectral_centroid", "pitch")


def _view(buffer, length: int, dimension: int, name: str, dtype=np.float64) -> np.ndarray:
    """Reshape the first length*dimension items of buffer to (length, dimension)."""
    if length < 0 or dimension <= 0:
        raise ConfigurationError(f"{name}: invalid shape ({length}, {dimension})")
    flat = np.asarray(buffer, dtype=dtype).ravel()
    need = length * dimension
    if flat.size < need:
        raise ConfigurationError(f"{name}: buffer holds {flat.size} items, shape needs {need}")
    return flat[:need].reshape(length, dimension)


def process_audio_features(
    audio_data: np.ndarray,
    data_len: int,
    sample_rate: float,
    frame_size: int,
    num_coeffs: int = 13,
) -> np.ndarray:
    """Extract features with hop = frame_size // 2, flattened row by row.

    Each row is [*mfcc, energy, zcr, spectral_centroid, pitch]; the row
    width is num_coeffs + 4.
    """
    samples = _view(audio_data, data_len, 1, "audio_data").ravel()
    config = AudioConfig(
        sample_rate=int(sample_rate),
        frame_size=frame_size,
        hop_size=max(1, frame_size // 2),
        mfcc_coefficients=num_coeffs,
    )
    features = FeatureExtractor(config).extract(samples)
    if len(features) == 0:
        return np.zeros(0)
    rows = [
        np.concatenate([v.mfcc, [getattr(v, name) for name in ROW_SCALARS]])
        for v in features
    ]
    return np.concatenate(rows)


def extract_mfcc(
    frame: np.ndarray,
    frame_len: int,
    sample_rate: float,
    num_coeffs: int = 13,
) -> np.ndarray:
    """MFCCs of one raw (not yet windowed) frame, Hamming-windowed here."""
    samples = _view(frame, frame_len, 1, "frame").ravel()
    config = AudioConfig(
        sample_rate=int(sample_rate),
        frame_size=frame_len,
        hop_size=frame_len,
        mfcc_coefficients=num_coeffs,
    )
    extractor = FeatureExtractor(config)
    return np.array(extractor.extract_frame(extractor.window_frame(samples)).mfcc)


def compute_dtw_distance(
    seq1: np.ndarray,
    seq1_len: int,
    feature_dim1: int,
    seq2: np.ndarray,
    seq2_len: int,
    feature_dim2: int,
    metric: str = "euclidean",
    bandwidth: Optional[int] = None,
) -> float:
    """Cumulative DTW distance; inf for mismatched dimensions or empty input."""
    if feature_dim1 != feature_dim2:
        logger.warning("DTW dimension mismatch at boundary: %d vs %d", feature_dim1, feature_dim2)
        return math.inf
    a = _view(seq1, seq1_len, feature_dim1, "seq1")
    b = _view(seq2, seq2_len, feature_dim2, "seq2")
    return align(a, b, metric=metric, bandwidth=bandwidth).distance


def compute_normalized_dtw(
    seq1: np.ndarray,
    seq1_len: int,
    feature_dim1: int,
    seq2: np.ndarray,
    seq2_len: int,
    feature_dim2: int,
    metric: str = "euclidean",
    bandwidth: Optional[int] = None,
) -> float:
    """DTW distance divided by warping path length."""
    if feature_dim1 != feature_dim2:
        return math.inf
    a = _view(seq1, seq1_len, feature_dim1, "seq1")
    b = _view(seq2, seq2_len, feature_dim2, "seq2")
    return align(a, b, metric=metric, bandwidth=bandwidth).normalized_distance


def _model_from_buffers(
    transitions: np.ndarray,
    emissions: np.ndarray,
    initial_probs: np.ndarray,
    num_states: int,
    num_symbols: int,
) -> HMMModel:
    if num_states <= 0 or num_symbols <= 0:
        raise ConfigurationError("num_states and num_symbols must be > 0")
    return HMMModel(
        transition_matrix=_view(transitions, num_states, num_states, "transitions"),
        emission_matrix=_view(emissions, num_states, num_symbols, "emissions"),
        initial_distribution=_view(initial_probs, num_states, 1, "initial_probs").ravel(),
    )


def viterbi_decode(
    observations: np.ndarray,
    obs_len: int,
    transitions: np.ndarray,
    emissions: np.ndarray,
    initial_probs: np.ndarray,
    num_states: int,
    num_symbols: int = 256,
) -> np.ndarray:
    """Most probable state path as an int64 buffer of length obs_len."""
    obs = _view(observations, obs_len, 1, "observations", dtype=np.int64).ravel()
    model = _model_from_buffers(transitions, emissions, initial_probs, num_states, num_symbols)
    return np.asarray(viterbi(obs, model).state_path, dtype=np.int64)


def forward_algorithm(
    observations: np.ndarray,
    obs_len: int,
    transitions: np.ndarray,
    emissions: np.ndarray,
    initial_probs: np.ndarray,
    num_states: int,
    num_symbols: int = 256,
) -> float:
    """Total sequence log-likelihood."""
    obs = _view(observations, obs_len, 1, "observations", dtype=np.int64).ravel()
    model = _model_from_buffers(transitions, emissions, initial_probs, num_states, num_symbols)
    return forward(obs, model).total_log_likelihood
