"""Single analysis interface: extract features, align, decode.

Alternate backends (a compiled DTW, a GPU feature extractor) plug in by
implementing AnalysisEngine; RecitationEngine is the reference one.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from recitation_engine.alignment.dtw import AlignmentConfig, DTWAligner, DTWResult, SequenceLike
from recitation_engine.audio.config import AudioConfig
from recitation_engine.audio.features import FeatureExtractor, FeatureSequence
from recitation_engine.decoder.hmm import HMMModel, ViterbiResult, likelihood, viterbi
from recitation_engine.decoder.quantize import quantize_observations

logger = logging.getLogger(__name__)


@runtime_checkable
class AnalysisEngine(Protocol):
    """What the scoring layer consumes."""

    def extract_features(self, samples: np.ndarray) -> FeatureSequence: ...

    def align(self, query: SequenceLike, reference: SequenceLike) -> DTWResult: ...

    def decode(self, observations: Sequence[int], model: HMMModel) -> ViterbiResult: ...


class RecitationEngine:
    """Reference AnalysisEngine built from the feature extractor, DTW and HMM decoder.

    Holds configuration and read-only tables only; every call allocates its
    own scratch state.
    """

    def __init__(
        self,
        audio_config: Optional[AudioConfig] = None,
        alignment_config: Optional[AlignmentConfig] = None,
    ):
        self.audio_config = audio_config or AudioConfig()
        self.alignment_config = alignment_config or AlignmentConfig()
        self.extractor = FeatureExtractor(self.audio_config)
        self.aligner = DTWAligner(self.alignment_config)

    def extract_features(self, samples: np.ndarray) -> FeatureSequence:
        return self.extractor.extract(samples)

    def align(
        self,
        query: SequenceLike,
        reference: SequenceLike,
        cancel: Optional[threading.Event] = None,
    ) -> DTWResult:
        return self.aligner.align(query, reference, cancel=cancel)

    def align_mfcc(self, query: FeatureSequence, reference: FeatureSequence) -> DTWResult:
        """Align on MFCCs only, leaving out the unscaled scalar features."""
        return self.align(query.mfcc_matrix(), reference.mfcc_matrix())

    def decode(
        self,
        observations: Sequence[int],
        model: HMMModel,
        cancel: Optional[threading.Event] = None,
    ) -> ViterbiResult:
        return viterbi(observations, model, cancel=cancel)

    def likelihood(
        self,
        observations: Sequence[int],
        model: HMMModel,
        cancel: Optional[threading.Event] = None,
    ) -> float:
        return likelihood(observations, model, cancel=cancel)

    def observations_for(self, features: FeatureSequence, num_symbols: int = 256) -> np.ndarray:
        """Quantize MFCC[0] of every frame into [0, num_symbols)."""
        if len(features) == 0:
            return np.zeros(0, dtype=np.int64)
        symbols = quantize_observations(features.mfcc_matrix()[:, 0], num_symbols=num_symbols)
        logger.debug("quantized %d frames into symbols [%d, %d]", len(symbols), symbols.min(), symbols.max())
        return symbols
