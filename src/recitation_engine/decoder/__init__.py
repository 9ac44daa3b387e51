"""HMM decoder over quantized observation sequences."""

from recitation_engine.decoder.hmm import (
    BackwardResult,
    ForwardResult,
    HMMDecoder,
    HMMModel,
    ViterbiResult,
    backward,
    forward,
    gaussian_emissions,
    likelihood,
    log_add,
    viterbi,
)
from recitation_engine.decoder.quantize import quantize_observations

__all__ = [
    "BackwardResult",
    "ForwardResult",
    "HMMDecoder",
    "HMMModel",
    "ViterbiResult",
    "backward",
    "forward",
    "gaussian_emissions",
    "likelihood",
    "log_add",
    "quantize_observations",
    "viterbi",
]
