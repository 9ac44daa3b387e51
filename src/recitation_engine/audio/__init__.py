"""Audio framing, spectral analysis and feature extraction modules."""

from recitation_engine.audio.buffer import RingBuffer
from recitation_engine.audio.collector import AudioCollector, load_wav
from recitation_engine.audio.config import AudioConfig
from recitation_engine.audio.features import (
    FeatureExtractor,
    FeatureSequence,
    FeatureVector,
    extract_features,
)
from recitation_engine.audio.frames import extract_frames, iter_frames, window
from recitation_engine.audio.spectrum import magnitude_spectrum

__all__ = [
    "AudioCollector",
    "AudioConfig",
    "FeatureExtractor",
    "FeatureSequence",
    "FeatureVector",
    "RingBuffer",
    "extract_features",
    "extract_frames",
    "iter_frames",
    "load_wav",
    "magnitude_spectrum",
    "window",
]
