"""Frame extraction: pre-emphasis, overlapping windows, window functions."""

from typing import Iterator, Optional

import numpy as np

from recitation_engine.audio.config import WINDOW_TYPES
from recitation_engine.errors import ConfigurationError


def window(window_type: str, size: int) -> np.ndarray:
    """Build a symmetric window of `size` points.

    hamming:  0.54 - 0.46 cos(2 pi i / (N-1))
    hann:     0.5 (1 - cos(2 pi i / (N-1)))
    blackman: 0.42 - 0.5 cos(2 pi i / (N-1)) + 0.08 cos(4 pi i / (N-1))
    """
    if size <= 0:
        raise ConfigurationError(f"window size must be > 0, got {size}")
    if window_type not in WINDOW_TYPES:
        raise ConfigurationError(f"unknown window type {window_type!r}")
    if size == 1:
        return np.ones(1)
    phase = 2 * np.pi * np.arange(size) / (size - 1)
    if window_type == "hamming":
        return 0.54 - 0.46 * np.cos(phase)
    if window_type == "hann":
        return 0.5 * (1 - np.cos(phase))
    return 0.42 - 0.5 * np.cos(phase) + 0.08 * np.cos(2 * phase)


def apply_pre_emphasis(samples: np.ndarray, coeff: Optional[float]) -> np.ndarray:
    """Apply first-order pre-emphasis filter y[n]=x[n]-a*x[n-1]."""
    x = np.asarray(samples, dtype=np.float64)
    if x.size == 0 or coeff is None or coeff <= 0.0:
        return x
    return np.append(x[0], x[1:] - coeff * x[:-1])


def _check_sizes(frame_size: int, hop_size: int) -> None:
    if frame_size <= 0:
        raise ConfigurationError(f"frame_size must be > 0, got {frame_size}")
    if hop_size <= 0:
        raise ConfigurationError(f"hop_size must be > 0, got {hop_size}")


def frame_count(n_samples: int, frame_size: int, hop_size: int) -> int:
    """Number of complete frames: floor((n - frame_size) / hop_size) + 1."""
    _check_sizes(frame_size, hop_size)
    if n_samples < frame_size:
        return 0
    return (n_samples - frame_size) // hop_size + 1


def iter_frames(
    samples: np.ndarray,
    frame_size: int,
    hop_size: int,
    window_type: str = "hamming",
) -> Iterator[np.ndarray]:
    """Lazily yield windowed frames; each yielded array is a fresh copy."""
    x = np.asarray(samples, dtype=np.float64)
    n = frame_count(len(x), frame_size, hop_size)
    w = window(window_type, frame_size)
    for k in range(n):
        start = k * hop_size
        yield x[start : start + frame_size] * w


def extract_frames(
    samples: np.ndarray,
    frame_size: int,
    hop_size: int,
    window_type: str = "hamming",
) -> np.ndarray:
    """Segment samples into overlapping windowed frames.

    Args:
        samples: Mono PCM samples.
        frame_size: Samples per frame.
        hop_size: Samples between frame starts.
        window_type: "hamming", "hann" or "blackman".

    Returns:
        Array of shape (n_frames, frame_size). n_frames is 0 when the
        input is shorter than one frame.
    """
    x = np.asarray(samples, dtype=np.float64)
    n = frame_count(len(x), frame_size, hop_size)
    w = window(window_type, frame_size)
    if n == 0:
        return np.zeros((0, frame_size))
    starts = np.arange(n)[:, None] * hop_size
    frames = x[starts + np.arange(frame_size)[None, :]]
    return frames * w
