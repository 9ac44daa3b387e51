"""Feature extraction: MFCC, energy, ZCR, spectral centroid/rolloff, pitch."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union, overload

import numpy as np

from recitation_engine.audio.config import SCALAR_FEATURES, AudioConfig
from recitation_engine.audio.frames import apply_pre_emphasis, extract_frames, window
from recitation_engine.audio.spectrum import bin_frequencies, magnitude_spectrum

logger = logging.getLogger(__name__)

# Floor applied to mel filter energies before the log
LOG_ENERGY_FLOOR = 1e-10


@dataclass(frozen=True, eq=False)
class FeatureVector:
    """Descriptors of one frame. `timestamp` and `duration` are in seconds."""

    mfcc: np.ndarray
    energy: float
    zero_crossing_rate: float
    spectral_centroid: float
    spectral_rolloff: float
    pitch: float
    timestamp: float = 0.0
    duration: float = 0.0

    def as_array(self) -> np.ndarray:
        """[*mfcc, energy, zcr, centroid, rolloff, pitch]."""
        scalars = [getattr(self, name) for name in SCALAR_FEATURES]
        return np.concatenate([self.mfcc, np.asarray(scalars, dtype=np.float64)])

    @property
    def dimension(self) -> int:
        return len(self.mfcc) + len(SCALAR_FEATURES)


class FeatureSequence:
    """Time-ordered, immutable sequence of FeatureVectors for one recording."""

    def __init__(self, vectors: Iterable[FeatureVector] = ()):
        self._vectors: Tuple[FeatureVector, ...] = tuple(vectors)

    def __len__(self) -> int:
        return len(self._vectors)

    def __iter__(self) -> Iterator[FeatureVector]:
        return iter(self._vectors)

    @overload
    def __getitem__(self, index: int) -> FeatureVector: ...

    @overload
    def __getitem__(self, index: slice) -> "FeatureSequence": ...

    def __getitem__(self, index: Union[int, slice]):
        if isinstance(index, slice):
            return FeatureSequence(self._vectors[index])
        return self._vectors[index]

    def __repr__(self) -> str:
        return f"FeatureSequence(len={len(self)}, dimension={self.dimension})"

    @property
    def dimension(self) -> int:
        """Feature dimensionality (0 for an empty sequence)."""
        return self._vectors[0].dimension if self._vectors else 0

    @property
    def timestamps(self) -> np.ndarray:
        return np.array([v.timestamp for v in self._vectors], dtype=np.float64)

    @property
    def durations(self) -> np.ndarray:
        return np.array([v.duration for v in self._vectors], dtype=np.float64)

    def column(self, name: str) -> np.ndarray:
        """One scalar feature over time, e.g. column("pitch")."""
        if name not in SCALAR_FEATURES:
            raise KeyError(name)
        return np.array([getattr(v, name) for v in self._vectors], dtype=np.float64)

    def mfcc_matrix(self) -> np.ndarray:
        """MFCCs as (n_frames, n_coefficients)."""
        if not self._vectors:
            return np.zeros((0, 0))
        return np.vstack([v.mfcc for v in self._vectors])

    def to_matrix(self) -> np.ndarray:
        """Full feature vectors as (n_frames, dimension)."""
        if not self._vectors:
            return np.zeros((0, 0))
        return np.vstack([v.as_array() for v in self._vectors])


def energy(frame: np.ndarray) -> float:
    """Root-mean-square amplitude."""
    x = np.asarray(frame, dtype=np.float64)
    if x.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(x * x)))


def zero_crossing_rate(frame: np.ndarray) -> float:
    """Sign changes between adjacent samples divided by the frame length.

    Zero counts as positive, so a constant-sign frame has rate 0.
    """
    x = np.asarray(frame, dtype=np.float64)
    if x.size < 2:
        return 0.0
    positive = x >= 0
    crossings = np.count_nonzero(positive[1:] != positive[:-1])
    return crossings / x.size


def spectral_centroid(spectrum: np.ndarray, sample_rate: float) -> float:
    """Magnitude-weighted mean frequency; 0 for a silent spectrum."""
    mag = np.asarray(spectrum, dtype=np.float64)
    total = mag.sum()
    if total <= 0:
        return 0.0
    freqs = bin_frequencies(len(mag), sample_rate)
    return float(np.dot(freqs, mag) / total)


def spectral_rolloff(
    spectrum: np.ndarray,
    sample_rate: float,
    rolloff_percent: float = 0.85,
) -> float:
    """Frequency of the first bin where cumulative magnitude reaches the threshold.

    Returns the Nyquist frequency when the threshold is never reached.
    """
    mag = np.asarray(spectrum, dtype=np.float64)
    n = len(mag)
    if n == 0:
        return sample_rate / 2
    threshold = mag.sum() * rolloff_percent
    reached = np.nonzero(np.cumsum(mag) >= threshold)[0]
    if reached.size == 0:
        return sample_rate / 2
    return float(reached[0] * sample_rate / (2 * n))


def estimate_pitch(
    frame: np.ndarray,
    sample_rate: float,
    min_hz: float = 80.0,
    max_hz: float = 800.0,
) -> float:
    """Autocorrelation pitch estimate in Hz, 0 when no positive peak exists.

    Lags are searched in [floor(sr/max_hz), floor(sr/min_hz)], restricted
    to lags shorter than the frame. Ties go to the shortest lag.
    """
    x = np.asarray(frame, dtype=np.float64)
    n = x.size
    min_lag = max(1, int(np.floor(sample_rate / max_hz)))
    max_lag = min(int(np.floor(sample_rate / min_hz)), n - 1)
    if n == 0 or max_lag < min_lag:
        return 0.0
    ac = np.correlate(x, x, mode="full")[n - 1 :]
    window_ac = ac[min_lag : max_lag + 1]
    best = int(np.argmax(window_ac))
    if not window_ac[best] > 0.0:
        return 0.0
    return float(sample_rate / (min_lag + best))


def hz_to_mel(hz):
    return 2595 * np.log10(1 + hz / 700)


def mel_to_hz(mel):
    return 700 * (10 ** (mel / 2595) - 1)


def mel_filterbank(n_filters: int, n_bins: int, sample_rate: float) -> np.ndarray:
    """Build triangular mel filterbank over a magnitude spectrum of n_bins.

    Vertices are uniform in mel between 0 Hz and Nyquist; vertex bins are
    floor(hz * n_bins / nyquist). Bins at or past n_bins are dropped.

    Returns:
        (n_filters, n_bins) weight matrix.
    """
    nyquist = sample_rate / 2
    mel_min = hz_to_mel(0.0)
    mel_max = hz_to_mel(nyquist)
    mel_points = mel_min + (mel_max - mel_min) * np.arange(n_filters + 2) / (n_filters + 1)
    hz_points = mel_to_hz(mel_points)
    bin_points = np.floor(hz_points * n_bins / nyquist).astype(int)

    filters = np.zeros((n_filters, n_bins))
    for i in range(n_filters):
        left, center, right = bin_points[i], bin_points[i + 1], bin_points[i + 2]
        rising = np.arange(left, min(center, n_bins))
        if rising.size:
            filters[i, rising] = (rising - left) / (center - left)
        falling = np.arange(center, min(right, n_bins))
        if falling.size:
            filters[i, falling] = (right - falling) / (right - center)
    return filters


def dct_ii(values: np.ndarray) -> np.ndarray:
    """Unnormalized DCT-II: X[k] = sum_n x[n] cos(pi k (n + 0.5) / N)."""
    x = np.asarray(values, dtype=np.float64)
    n = x.size
    k = np.arange(n)[:, None]
    basis = np.cos(np.pi * k * (np.arange(n)[None, :] + 0.5) / n)
    return basis @ x


def mfcc(
    spectrum: np.ndarray,
    filterbank: np.ndarray,
    n_coefficients: int = 13,
) -> np.ndarray:
    """MFCCs: filterbank energies -> log(max(e, 1e-10)) -> DCT-II -> first K."""
    energies = filterbank @ np.asarray(spectrum, dtype=np.float64)
    log_energies = np.log(np.maximum(energies, LOG_ENERGY_FLOOR))
    return dct_ii(log_energies)[:n_coefficients]


class FeatureExtractor:
    """Turn PCM samples into a FeatureSequence.

    The window and mel filterbank are built once per configuration and
    never mutated, so one extractor can serve concurrent callers.
    """

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()
        self._window = window(self.config.window_type, self.config.frame_size)
        self._window.setflags(write=False)
        self._mel_filters = mel_filterbank(
            self.config.n_mel_filters,
            self.config.frame_size // 2,
            float(self.config.sample_rate),
        )
        self._mel_filters.setflags(write=False)

    @property
    def window_values(self) -> np.ndarray:
        return self._window

    @property
    def mel_filters(self) -> np.ndarray:
        return self._mel_filters

    def extract_frame(self, frame: np.ndarray, timestamp: float = 0.0) -> FeatureVector:
        """Compute all descriptors of one already-windowed frame."""
        cfg = self.config
        x = np.asarray(frame, dtype=np.float64)
        spec = magnitude_spectrum(x)
        coeffs = mfcc(spec, self._mel_filters, cfg.mfcc_coefficients)
        coeffs.setflags(write=False)
        return FeatureVector(
            mfcc=coeffs,
            energy=energy(x),
            zero_crossing_rate=zero_crossing_rate(x),
            spectral_centroid=spectral_centroid(spec, cfg.sample_rate),
            spectral_rolloff=spectral_rolloff(spec, cfg.sample_rate, cfg.rolloff_percent),
            pitch=estimate_pitch(x, cfg.sample_rate, cfg.min_pitch_hz, cfg.max_pitch_hz),
            timestamp=timestamp,
            duration=cfg.hop_duration_sec,
        )

    def window_frame(self, samples: np.ndarray) -> np.ndarray:
        """Multiply one raw frame_size slice by the configured window."""
        x = np.asarray(samples, dtype=np.float64)
        if x.size != self.config.frame_size:
            raise ValueError(f"expected {self.config.frame_size} samples, got {x.size}")
        return x * self._window

    def frames(self, samples: np.ndarray) -> np.ndarray:
        """Pre-emphasized, windowed frames of shape (n_frames, frame_size)."""
        cfg = self.config
        emphasized = apply_pre_emphasis(samples, cfg.pre_emphasis)
        return extract_frames(emphasized, cfg.frame_size, cfg.hop_size, cfg.window_type)

    def extract(self, samples: np.ndarray) -> FeatureSequence:
        """Extract features from raw audio (batch)."""
        frames = self.frames(samples)
        hop_sec = self.config.hop_duration_sec
        vectors: List[FeatureVector] = [
            self.extract_frame(frame, timestamp=k * hop_sec)
            for k, frame in enumerate(frames)
        ]
        logger.debug("extracted %d frames x %d features", len(vectors), self.config.feature_dimension)
        return FeatureSequence(vectors)


def extract_features(
    samples: Sequence[float],
    sample_rate: int,
    config: Optional[AudioConfig] = None,
) -> FeatureSequence:
    """One-shot extraction; `sample_rate` overrides the config's."""
    base = config or AudioConfig()
    if base.sample_rate != sample_rate:
        base = replace(base, sample_rate=sample_rate)
    return FeatureExtractor(base).extract(np.asarray(samples, dtype=np.float64))
