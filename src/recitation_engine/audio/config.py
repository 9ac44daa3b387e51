"""Centralized audio and feature extraction configuration.

Encoding standards:
- Audio: mono PCM float, 44.1 kHz by default
- Frames: 2048-sample window / 512-sample hop, Hamming by default
- Features: 13 MFCCs from a 26-filter mel bank, plus energy, ZCR,
  spectral centroid, spectral rolloff (85%) and autocorrelation pitch
"""

from dataclasses import dataclass
from typing import Optional

from recitation_engine.errors import ConfigurationError

WINDOW_TYPES = ("hamming", "hann", "blackman")

# Scalars appended after the MFCCs in FeatureVector.as_array()
SCALAR_FEATURES = (
    "energy",
    "zero_crossing_rate",
    "spectral_centroid",
    "spectral_rolloff",
    "pitch",
)


@dataclass(frozen=True)
class AudioConfig:
    """Audio recording and feature extraction configuration."""

    # Recording
    sample_rate: int = 44_100
    channels: int = 1  # mono
    dtype: str = "float32"

    # Framing
    frame_size: int = 2048
    hop_size: int = 512
    window_type: str = "hamming"
    pre_emphasis: Optional[float] = None

    # MFCC
    mfcc_coefficients: int = 13
    n_mel_filters: int = 26

    # Spectral shape / pitch
    rolloff_percent: float = 0.85
    min_pitch_hz: float = 80.0
    max_pitch_hz: float = 800.0

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ConfigurationError(f"sample_rate must be > 0, got {self.sample_rate}")
        if self.frame_size <= 0:
            raise ConfigurationError(f"frame_size must be > 0, got {self.frame_size}")
        if self.hop_size <= 0:
            raise ConfigurationError(f"hop_size must be > 0, got {self.hop_size}")
        if self.hop_size > self.frame_size:
            raise ConfigurationError(
                f"hop_size ({self.hop_size}) must not exceed frame_size ({self.frame_size})"
            )
        if self.window_type not in WINDOW_TYPES:
            raise ConfigurationError(
                f"window_type must be one of {WINDOW_TYPES}, got {self.window_type!r}"
            )
        if self.mfcc_coefficients <= 0 or self.n_mel_filters <= 0:
            raise ConfigurationError("mfcc_coefficients and n_mel_filters must be > 0")
        if self.mfcc_coefficients > self.n_mel_filters:
            raise ConfigurationError(
                f"mfcc_coefficients ({self.mfcc_coefficients}) cannot exceed "
                f"n_mel_filters ({self.n_mel_filters})"
            )
        if not 0.0 < self.rolloff_percent <= 1.0:
            raise ConfigurationError(f"rolloff_percent must be in (0, 1], got {self.rolloff_percent}")
        if not 0.0 < self.min_pitch_hz < self.max_pitch_hz:
            raise ConfigurationError("pitch range must satisfy 0 < min_pitch_hz < max_pitch_hz")

    @property
    def buffer_size(self) -> int:
        """Alias for frame_size (the name used by the audio-callback side)."""
        return self.frame_size

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2

    @property
    def hop_duration_sec(self) -> float:
        """Wall-clock budget of one streaming hop."""
        return self.hop_size / self.sample_rate

    @property
    def frames_per_second(self) -> float:
        """Number of feature frames per second."""
        return self.sample_rate / self.hop_size

    @property
    def bin_width_hz(self) -> float:
        """Frequency resolution of one magnitude-spectrum bin."""
        return self.sample_rate / self.frame_size

    @property
    def feature_dimension(self) -> int:
        """Length of FeatureVector.as_array()."""
        return self.mfcc_coefficients + len(SCALAR_FEATURES)
