"""Unit tests and toy example for the streaming feature pipeline."""

from __future__ import annotations

import unittest
from typing import List
from unittest import mock

import numpy as np

from recitation_engine.audio import AudioConfig, FeatureExtractor
from recitation_engine.audio.features import FeatureVector
from recitation_engine.pipeline import StreamingConfig, StreamingFeatureExtractor, StreamingPipeline


def _fake_audio_stream(
    total_samples: int,
    chunk_sizes: List[int],
    seed: int = 42,
) -> List[np.ndarray]:
    """Split a random signal into chunks cycling through chunk_sizes."""
    rng = np.random.default_rng(seed)
    audio = rng.standard_normal(total_samples) * 0.1
    chunks = []
    pos = 0
    k = 0
    while pos < total_samples:
        size = chunk_sizes[k % len(chunk_sizes)]
        chunks.append(audio[pos : pos + size])
        pos += size
        k += 1
    return chunks


class TestStreamingFeatureExtractor(unittest.TestCase):
    """Streaming output reproduces batch extraction."""

    def setUp(self) -> None:
        self.config = AudioConfig(sample_rate=8000, frame_size=256, hop_size=64)

    def _assert_same(self, streamed: List[FeatureVector], batch) -> None:
        self.assertEqual(len(streamed), len(batch))
        for s, b in zip(streamed, batch):
            self.assertAlmostEqual(s.timestamp, b.timestamp)
            np.testing.assert_allclose(s.as_array(), b.as_array(), rtol=1e-12, atol=1e-12)

    def test_matches_batch(self) -> None:
        chunks = _fake_audio_stream(4000, [100, 37, 300, 64])
        streamer = StreamingFeatureExtractor(self.config)
        streamed = [v for chunk in chunks for v in streamer.push(chunk)]
        batch = FeatureExtractor(self.config).extract(np.concatenate(chunks))
        self._assert_same(streamed, batch)

    def test_matches_batch_with_pre_emphasis(self) -> None:
        config = AudioConfig(sample_rate=8000, frame_size=256, hop_size=64, pre_emphasis=0.97)
        chunks = _fake_audio_stream(3000, [1, 129, 500])
        streamer = StreamingFeatureExtractor(config)
        streamed = [v for chunk in chunks for v in streamer.push(chunk)]
        batch = FeatureExtractor(config).extract(np.concatenate(chunks))
        self._assert_same(streamed, batch)

    def test_nothing_before_first_frame(self) -> None:
        streamer = StreamingFeatureExtractor(self.config)
        self.assertEqual(streamer.push(np.zeros(255)), [])
        self.assertEqual(len(streamer.push(np.zeros(1))), 1)
        self.assertEqual(streamer.push(np.zeros(63)), [])
        self.assertEqual(len(streamer.push(np.zeros(1))), 1)
        self.assertEqual(streamer.hop_index, 2)
        self.assertEqual(streamer.samples_seen, 320)

    def test_one_vector_per_hop_in_large_chunk(self) -> None:
        streamer = StreamingFeatureExtractor(self.config)
        vectors = streamer.push(np.zeros(256 + 64 * 10))
        self.assertEqual(len(vectors), 11)
        np.testing.assert_allclose(
            [v.timestamp for v in vectors],
            np.arange(11) * self.config.hop_duration_sec,
        )

    def test_empty_chunk(self) -> None:
        streamer = StreamingFeatureExtractor(self.config)
        self.assertEqual(streamer.push(np.zeros(0)), [])
        self.assertEqual(streamer.samples_seen, 0)

    def test_reset(self) -> None:
        streamer = StreamingFeatureExtractor(self.config)
        streamer.push(np.ones(1000))
        streamer.reset()
        self.assertEqual(streamer.hop_index, 0)
        self.assertEqual(streamer.samples_seen, 0)
        self.assertEqual(streamer.push(np.ones(255)), [])

    def test_callback(self) -> None:
        seen: List[FeatureVector] = []
        streamer = StreamingFeatureExtractor(self.config, on_features=seen.append)
        out = streamer.push(np.zeros(512))
        self.assertEqual(len(seen), len(out))
        self.assertGreater(len(out), 0)

    def test_overrun_warning(self) -> None:
        """A hop slower than hop_size / sample_rate is logged, not dropped."""
        streamer = StreamingFeatureExtractor(self.config)
        with mock.patch(
            "recitation_engine.pipeline.streaming_loop.time.perf_counter",
            side_effect=[0.0, 1.0],
        ):
            with self.assertLogs("recitation_engine.pipeline.streaming_loop", level="WARNING") as logs:
                vectors = streamer.push(np.zeros(256))
        self.assertEqual(len(vectors), 1)
        self.assertIn("budget", logs.output[0])


class TestStreamingPipeline(unittest.TestCase):
    """Tests for StreamingPipeline over in-memory blocks."""

    def setUp(self) -> None:
        self.audio_config = AudioConfig(sample_rate=8000, frame_size=256, hop_size=128)

    def test_run_collects_history(self) -> None:
        received: List[FeatureVector] = []
        pipeline = StreamingPipeline(audio_config=self.audio_config, on_features=received.append)
        chunks = _fake_audio_stream(2048, [128])
        pipeline.run(iter(chunks))
        collected = pipeline.collected()
        self.assertEqual(len(collected), (2048 - 256) // 128 + 1)
        self.assertEqual(len(received), len(collected))
        self.assertTrue(np.all(np.diff(collected.timestamps) > 0))

    def test_run_for_n_vectors(self) -> None:
        pipeline = StreamingPipeline(audio_config=self.audio_config)
        chunks = _fake_audio_stream(8000, [128])
        out = pipeline.run_for_n_vectors(5, iter(chunks))
        self.assertGreaterEqual(len(out), 5)
        self.assertLess(len(out), 8)

    def test_stop(self) -> None:
        pipeline = StreamingPipeline(audio_config=self.audio_config)

        def blocks():
            for chunk in _fake_audio_stream(8000, [128]):
                yield chunk
                pipeline.stop()

        pipeline.run(blocks())
        self.assertEqual(pipeline.streamer.samples_seen, 128)

    def test_keep_history_off(self) -> None:
        pipeline = StreamingPipeline(
            config=StreamingConfig(keep_history=False),
            audio_config=self.audio_config,
        )
        pipeline.run(iter(_fake_audio_stream(2048, [256])))
        self.assertEqual(len(pipeline.collected()), 0)
        self.assertGreater(pipeline.streamer.hop_index, 0)

    def test_reset(self) -> None:
        pipeline = StreamingPipeline(audio_config=self.audio_config)
        pipeline.run(iter(_fake_audio_stream(2048, [256])))
        pipeline.reset()
        self.assertEqual(len(pipeline.collected()), 0)
        self.assertEqual(pipeline.streamer.hop_index, 0)


def run_toy_example() -> None:
    """Toy: stream a tone in uneven blocks and print each hop's features."""
    print("=== Toy example: streaming features ===\n")
    config = AudioConfig(sample_rate=8000, frame_size=512, hop_size=256)
    t = np.arange(4000) / 8000
    audio = np.sin(2 * np.pi * 220 * t)
    blocks = [audio[i : i + 300] for i in range(0, len(audio), 300)]

    def on_features(v: FeatureVector) -> None:
        print(f"t={v.timestamp:.3f}s energy={v.energy:.3f} pitch={v.pitch:6.1f} Hz")

    pipeline = StreamingPipeline(audio_config=config, on_features=on_features)
    pipeline.run(iter(blocks))
    print(f"\n{len(pipeline.collected())} vectors collected")
    print("\nDone.")


if __name__ == "__main__":
    run_toy_example()
    print("\n--- Running unit tests ---")
    unittest.main(argv=[""], exit=False, verbosity=2)
