"""Recitation analysis engine - framing, spectra, features, DTW, HMM, streaming."""

from recitation_engine.alignment import AlignmentConfig, DTWResult, align
from recitation_engine.audio import AudioConfig, FeatureExtractor, FeatureSequence, FeatureVector
from recitation_engine.decoder import HMMDecoder, HMMModel
from recitation_engine.engine import AnalysisEngine, RecitationEngine
from recitation_engine.errors import ConfigurationError, OperationCancelled

__all__ = [
    "AlignmentConfig",
    "AnalysisEngine",
    "AudioConfig",
    "ConfigurationError",
    "DTWResult",
    "FeatureExtractor",
    "FeatureSequence",
    "FeatureVector",
    "HMMDecoder",
    "HMMModel",
    "OperationCancelled",
    "RecitationEngine",
    "align",
]
