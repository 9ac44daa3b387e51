"""Map continuous feature tracks onto discrete HMM observation symbols."""

from typing import Sequence

import numpy as np

from recitation_engine.errors import ConfigurationError

# MFCC[0] of typical speech frames sits roughly in [-30, 34]; with these
# defaults that range spans the 256 symbols.
DEFAULT_OFFSET = 30.0
DEFAULT_SCALE = 4.0


def quantize_observations(
    values: Sequence[float],
    num_symbols: int = 256,
    offset: float = DEFAULT_OFFSET,
    scale: float = DEFAULT_SCALE,
) -> np.ndarray:
    """Quantize to clip(round((v + offset) * scale), 0, num_symbols - 1).

    Halves round up. Non-finite inputs map to symbol 0.

    Returns:
        int64 array of symbols, same length as values.
    """
    if num_symbols <= 0:
        raise ConfigurationError(f"num_symbols must be > 0, got {num_symbols}")
    v = np.asarray(values, dtype=np.float64)
    v = np.where(np.isfinite(v), v, -offset)
    symbols = np.floor((v + offset) * scale + 0.5)
    return np.clip(symbols, 0, num_symbols - 1).astype(np.int64)
