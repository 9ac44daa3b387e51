"""Unit tests and toy example for the RecitationEngine facade."""

from __future__ import annotations

import math
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from recitation_engine import (
    AlignmentConfig,
    AnalysisEngine,
    AudioConfig,
    HMMModel,
    OperationCancelled,
    RecitationEngine,
)
from recitation_engine.decoder import gaussian_emissions


def _tone(freq: float, sample_rate: int = 8000, seconds: float = 0.5) -> np.ndarray:
    t = np.arange(int(sample_rate * seconds)) / sample_rate
    return 0.5 * np.sin(2 * np.pi * freq * t)


class TestRecitationEngine(unittest.TestCase):
    """End-to-end extract -> align -> decode."""

    def setUp(self) -> None:
        self.engine = RecitationEngine(
            AudioConfig(sample_rate=8000, frame_size=256, hop_size=128),
            AlignmentConfig(distance_metric="euclidean"),
        )

    def test_is_analysis_engine(self) -> None:
        self.assertIsInstance(self.engine, AnalysisEngine)

    def test_same_recording_aligns_at_zero(self) -> None:
        features = self.engine.extract_features(_tone(220.0))
        self.assertEqual(self.engine.align(features, features).distance, 0.0)
        self.assertEqual(self.engine.align_mfcc(features, features).distance, 0.0)

    def test_closer_tone_aligns_closer(self) -> None:
        reference = self.engine.extract_features(_tone(220.0))
        near = self.engine.extract_features(_tone(230.0))
        far = self.engine.extract_features(_tone(1000.0))
        self.assertLess(
            self.engine.align_mfcc(near, reference).distance,
            self.engine.align_mfcc(far, reference).distance,
        )

    def test_observations_and_decode(self) -> None:
        features = self.engine.extract_features(_tone(220.0))
        obs = self.engine.observations_for(features)
        self.assertEqual(len(obs), len(features))
        self.assertTrue(np.all((obs >= 0) & (obs < 256)))

        model = HMMModel.left_to_right(3, gaussian_emissions(3, 256))
        result = self.engine.decode(obs, model)
        self.assertEqual(len(result.state_path), len(obs))
        self.assertLessEqual(result.path_log_probability, self.engine.likelihood(obs, model) + 1e-12)

    def test_empty_features(self) -> None:
        features = self.engine.extract_features(np.zeros(10))
        self.assertEqual(len(self.engine.observations_for(features)), 0)
        self.assertTrue(math.isinf(self.engine.align(features, features).distance))

    def test_cancel(self) -> None:
        features = self.engine.extract_features(_tone(220.0))
        cancel = threading.Event()
        cancel.set()
        with self.assertRaises(OperationCancelled):
            self.engine.align(features, features, cancel=cancel)

    def test_concurrent_calls_match_serial(self) -> None:
        """One engine shared by several threads gives the serial results."""
        tones = [_tone(f) for f in (200.0, 300.0, 400.0, 500.0)]
        reference = self.engine.extract_features(_tone(250.0))
        serial = [self.engine.align_mfcc(self.engine.extract_features(x), reference).distance for x in tones]
        with ThreadPoolExecutor(max_workers=4) as pool:
            parallel = list(
                pool.map(lambda x: self.engine.align_mfcc(self.engine.extract_features(x), reference).distance, tones)
            )
        self.assertEqual(serial, parallel)


def run_toy_example() -> None:
    """Toy: compare two tones against a reference tone."""
    print("=== Toy example: RecitationEngine ===\n")
    engine = RecitationEngine(AudioConfig(sample_rate=8000, frame_size=256, hop_size=128))
    reference = engine.extract_features(_tone(220.0))
    for freq in (220.0, 230.0, 440.0):
        result = engine.align_mfcc(engine.extract_features(_tone(freq)), reference)
        print(f"{freq:6.1f} Hz vs 220 Hz: normalized DTW = {result.normalized_distance:.3f}")
    print("\nDone.")


if __name__ == "__main__":
    run_toy_example()
    print("\n--- Running unit tests ---")
    unittest.main(argv=[""], exit=False, verbosity=2)
