"""Unit tests and toy example for frame extraction and window functions."""

from __future__ import annotations

import unittest

import numpy as np

from recitation_engine.audio.config import AudioConfig
from recitation_engine.audio.frames import (
    apply_pre_emphasis,
    extract_frames,
    frame_count,
    iter_frames,
    window,
)
from recitation_engine.errors import ConfigurationError


class TestWindow(unittest.TestCase):
    """Tests for window()."""

    def test_hamming_formula(self) -> None:
        """Hamming matches 0.54 - 0.46 cos(2 pi i / (N-1))."""
        n = 16
        i = np.arange(n)
        expected = 0.54 - 0.46 * np.cos(2 * np.pi * i / (n - 1))
        np.testing.assert_allclose(window("hamming", n), expected)
        self.assertAlmostEqual(window("hamming", n)[0], 0.08)

    def test_hann_endpoints_zero(self) -> None:
        """Hann is zero at both ends and 1 at the center of an odd window."""
        w = window("hann", 9)
        self.assertAlmostEqual(w[0], 0.0)
        self.assertAlmostEqual(w[-1], 0.0)
        self.assertAlmostEqual(w[4], 1.0)

    def test_blackman_formula(self) -> None:
        """Blackman matches its three-term cosine formula."""
        n = 32
        i = np.arange(n)
        expected = (
            0.42
            - 0.5 * np.cos(2 * np.pi * i / (n - 1))
            + 0.08 * np.cos(4 * np.pi * i / (n - 1))
        )
        np.testing.assert_allclose(window("blackman", n), expected)

    def test_empty_window_rejected(self) -> None:
        """A window of size 0 is a configuration error."""
        with self.assertRaises(ConfigurationError):
            window("hamming", 0)

    def test_unknown_window_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            window("kaiser", 16)

    def test_single_point_window(self) -> None:
        np.testing.assert_array_equal(window("hann", 1), [1.0])


class TestExtractFrames(unittest.TestCase):
    """Tests for extract_frames / iter_frames / frame_count."""

    def test_frame_count_formula(self) -> None:
        """floor((n - frame) / hop) + 1 frames."""
        self.assertEqual(frame_count(10, 4, 3), 3)
        self.assertEqual(frame_count(4, 4, 1), 1)
        self.assertEqual(frame_count(3, 4, 1), 0)
        self.assertEqual(frame_count(44_100, 2048, 512), (44_100 - 2048) // 512 + 1)

    def test_frames_are_windowed_slices(self) -> None:
        """Each row equals the sample window times the window function."""
        samples = np.arange(10, dtype=np.float64)
        frames = extract_frames(samples, 4, 3, "hann")
        self.assertEqual(frames.shape, (3, 4))
        w = window("hann", 4)
        for k in range(3):
            np.testing.assert_allclose(frames[k], samples[3 * k : 3 * k + 4] * w)

    def test_lazy_matches_eager(self) -> None:
        """iter_frames yields exactly the rows of extract_frames."""
        rng = np.random.default_rng(0)
        samples = rng.standard_normal(1000)
        eager = extract_frames(samples, 128, 50, "blackman")
        lazy = np.array(list(iter_frames(samples, 128, 50, "blackman")))
        np.testing.assert_array_equal(eager, lazy)

    def test_short_input_gives_no_frames(self) -> None:
        frames = extract_frames(np.zeros(10), 16, 4)
        self.assertEqual(frames.shape, (0, 16))

    def test_non_positive_sizes_rejected(self) -> None:
        """frame_size <= 0 or hop_size <= 0 raise ConfigurationError."""
        with self.assertRaises(ConfigurationError):
            extract_frames(np.zeros(10), 0, 1)
        with self.assertRaises(ConfigurationError):
            extract_frames(np.zeros(10), 4, 0)
        with self.assertRaises(ConfigurationError):
            frame_count(10, -1, 2)

    def test_input_not_modified(self) -> None:
        samples = np.ones(64)
        extract_frames(samples, 32, 16)
        np.testing.assert_array_equal(samples, np.ones(64))


class TestPreEmphasis(unittest.TestCase):
    """Tests for apply_pre_emphasis."""

    def test_first_order_filter(self) -> None:
        y = apply_pre_emphasis(np.array([1.0, 2.0, 3.0]), 0.5)
        np.testing.assert_allclose(y, [1.0, 1.5, 2.0])

    def test_disabled(self) -> None:
        x = np.array([1.0, -1.0, 2.0])
        np.testing.assert_array_equal(apply_pre_emphasis(x, None), x)
        np.testing.assert_array_equal(apply_pre_emphasis(x, 0.0), x)


class TestAudioConfig(unittest.TestCase):
    """Validation of AudioConfig."""

    def test_defaults(self) -> None:
        cfg = AudioConfig()
        self.assertEqual(cfg.buffer_size, 2048)
        self.assertEqual(cfg.hop_size, 512)
        self.assertEqual(cfg.mfcc_coefficients, 13)
        self.assertEqual(cfg.feature_dimension, 18)
        self.assertAlmostEqual(cfg.hop_duration_sec * 1000, 11.61, places=2)

    def test_hop_larger_than_frame_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            AudioConfig(frame_size=256, hop_size=512)

    def test_bad_values_rejected(self) -> None:
        for kwargs in (
            {"frame_size": 0},
            {"hop_size": 0},
            {"window_type": "triangle"},
            {"mfcc_coefficients": 0},
            {"mfcc_coefficients": 30},
            {"rolloff_percent": 0.0},
            {"sample_rate": 0},
        ):
            with self.subTest(**kwargs):
                with self.assertRaises(ConfigurationError):
                    AudioConfig(**kwargs)


def run_toy_example() -> None:
    """Toy: frame a short ramp and print the windowed frames."""
    print("=== Toy example: frame extraction ===\n")
    samples = np.arange(12, dtype=np.float64)
    for name in ("hamming", "hann", "blackman"):
        frames = extract_frames(samples, 6, 3, name)
        print(f"{name:8} -> {frames.shape[0]} frames, first: {np.round(frames[0], 3)}")
    print("\nDone.")


if __name__ == "__main__":
    run_toy_example()
    print("\n--- Running unit tests ---")
    unittest.main(argv=[""], exit=False, verbosity=2)
