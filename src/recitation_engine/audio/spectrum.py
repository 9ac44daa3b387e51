"""Spectral analysis: magnitude spectrum of one frame."""

import numpy as np
import scipy.fft


def magnitude_spectrum(frame: np.ndarray) -> np.ndarray:
    """Magnitude of the DFT for the first len(frame)//2 bins.

    scipy.fft runs radix-2 for power-of-two lengths and a mixed-radix /
    Bluestein transform otherwise; both agree with the direct DFT.
    """
    x = np.asarray(frame, dtype=np.float64)
    n = len(x)
    if n == 0:
        return np.zeros(0)
    return np.abs(scipy.fft.fft(x))[: n // 2]


def dft_magnitude(frame: np.ndarray) -> np.ndarray:
    """Direct O(N^2) DFT magnitude, reference for magnitude_spectrum."""
    x = np.asarray(frame, dtype=np.float64)
    n = len(x)
    k = np.arange(n // 2)[:, None]
    j = np.arange(n)[None, :]
    angle = -2 * np.pi * k * j / n
    real = (x * np.cos(angle)).sum(axis=1)
    imag = (x * np.sin(angle)).sum(axis=1)
    return np.sqrt(real * real + imag * imag)


def bin_frequencies(n_bins: int, sample_rate: float) -> np.ndarray:
    """Center frequency of each magnitude bin: i * sr / (2 * n_bins)."""
    if n_bins <= 0:
        return np.zeros(0)
    return np.arange(n_bins) * sample_rate / (2 * n_bins)
