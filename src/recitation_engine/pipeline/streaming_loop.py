"""Streaming feature loop: audio blocks -> ring buffer -> one FeatureVector per hop.

A hop boundary is every write position p with p >= frame_size and
(p - frame_size) % hop_size == 0. At each boundary the frame_size samples
ending at p are windowed and analysed once, and the vector is stamped
hop_index * hop_size / sample_rate, so the stream reproduces batch
extraction frame for frame. Alignment and decoding are not run here;
callers do that later on the accumulated sequence.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

import numpy as np

from recitation_engine.audio import AudioCollector, FeatureExtractor
from recitation_engine.audio.buffer import RingBuffer
from recitation_engine.audio.config import AudioConfig
from recitation_engine.audio.features import FeatureSequence, FeatureVector

logger = logging.getLogger(__name__)

FeatureCallback = Callable[[FeatureVector], None]


@dataclass
class StreamingConfig:
    """Streaming loop parameters."""

    block_size: Optional[int] = None  # microphone block; default hop_size
    warn_on_overrun: bool = True
    keep_history: bool = True


class StreamingFeatureExtractor:
    """Incremental extractor fed with arbitrary-sized sample blocks.

    Interface:
      streamer = StreamingFeatureExtractor(AudioConfig(sample_rate=16_000))
      for block in blocks:
          for vector in streamer.push(block):
              ...
    """

    def __init__(
        self,
        config: Optional[AudioConfig] = None,
        extractor: Optional[FeatureExtractor] = None,
        on_features: Optional[FeatureCallback] = None,
        warn_on_overrun: bool = True,
    ):
        self.config = config or (extractor.config if extractor is not None else AudioConfig())
        self.extractor = extractor or FeatureExtractor(self.config)
        self.on_features = on_features
        self.warn_on_overrun = warn_on_overrun
        self._ring = RingBuffer(self.config.frame_size, dtype=np.float64)
        self.reset()

    def reset(self) -> None:
        """Forget buffered audio and restart hop numbering."""
        self._ring.clear()
        self._samples_seen = 0
        self._next_boundary = self.config.frame_size
        self._hop_index = 0
        self._last_raw: Optional[float] = None

    @property
    def hop_index(self) -> int:
        """Index of the next vector to be emitted."""
        return self._hop_index

    @property
    def samples_seen(self) -> int:
        return self._samples_seen

    def _emphasize(self, x: np.ndarray) -> np.ndarray:
        coeff = self.config.pre_emphasis
        if x.size == 0 or coeff is None or coeff <= 0.0:
            return x
        y = np.empty_like(x)
        y[0] = x[0] if self._last_raw is None else x[0] - coeff * self._last_raw
        y[1:] = x[1:] - coeff * x[:-1]
        self._last_raw = float(x[-1])
        return y

    def push(self, chunk: np.ndarray) -> List[FeatureVector]:
        """Append samples; return the vectors for every hop boundary crossed."""
        x = self._emphasize(np.asarray(chunk, dtype=np.float64).ravel())
        emitted: List[FeatureVector] = []
        pos = 0
        while pos < x.size:
            take = min(self._next_boundary - self._samples_seen, x.size - pos)
            self._ring.push(x[pos : pos + take])
            pos += take
            self._samples_seen += take
            if self._samples_seen == self._next_boundary:
                emitted.append(self._emit())
                self._next_boundary += self.config.hop_size
        return emitted

    def _emit(self) -> FeatureVector:
        started = time.perf_counter()
        frame = self.extractor.window_frame(self._ring.get_all())
        timestamp = self._hop_index * self.config.hop_duration_sec
        vector = self.extractor.extract_frame(frame, timestamp=timestamp)
        self._hop_index += 1

        elapsed = time.perf_counter() - started
        if self.warn_on_overrun and elapsed > self.config.hop_duration_sec:
            logger.warning(
                "hop %d took %.2f ms, budget %.2f ms",
                self._hop_index - 1,
                elapsed * 1000,
                self.config.hop_duration_sec * 1000,
            )
        if self.on_features is not None:
            self.on_features(vector)
        return vector


class StreamingPipeline:
    """Runs the streaming extractor over an audio iterator or the microphone.

    Interface:
      pipeline = StreamingPipeline(audio_config=AudioConfig(), on_features=print)
      pipeline.run(iter(blocks))        # or pipeline.run() for live input
      features = pipeline.collected()   # FeatureSequence so far
    """

    def __init__(
        self,
        config: Optional[StreamingConfig] = None,
        audio_config: Optional[AudioConfig] = None,
        extractor: Optional[FeatureExtractor] = None,
        on_features: Optional[FeatureCallback] = None,
        audio_collector: Optional[AudioCollector] = None,
    ):
        self.streaming_config = config or StreamingConfig()
        self.audio_config = audio_config or AudioConfig()
        self.on_features = on_features or (lambda v: None)
        self.audio_collector = audio_collector or AudioCollector(self.audio_config)
        self.streamer = StreamingFeatureExtractor(
            config=self.audio_config,
            extractor=extractor,
            warn_on_overrun=self.streaming_config.warn_on_overrun,
        )
        self._history: List[FeatureVector] = []
        self._stopped = False

    def stop(self) -> None:
        """Signal the run loop to exit (checked each block)."""
        self._stopped = True

    def collected(self) -> FeatureSequence:
        """Vectors emitted so far, in time order."""
        return FeatureSequence(self._history)

    def reset(self) -> None:
        self.streamer.reset()
        self._history.clear()

    def _process_block(self, block: np.ndarray) -> List[FeatureVector]:
        vectors = self.streamer.push(block)
        for v in vectors:
            if self.streaming_config.keep_history:
                self._history.append(v)
            self.on_features(v)
        return vectors

    def _blocks(self, audio_iterator: Optional[Iterator[np.ndarray]], device: Optional[int]) -> Iterator[np.ndarray]:
        if audio_iterator is not None:
            return audio_iterator
        return self.audio_collector.record_stream(
            device=device,
            block_size=self.streaming_config.block_size,
        )

    def run(
        self,
        audio_iterator: Optional[Iterator[np.ndarray]] = None,
        device: Optional[int] = None,
    ) -> None:
        """Run until stopped or the iterator is exhausted.

        Args:
            audio_iterator: Source of sample blocks of any size. If None,
                read the microphone through audio_collector.
            device: Microphone device index (ignored with audio_iterator).
        """
        self._stopped = False
        for block in self._blocks(audio_iterator, device):
            if self._stopped:
                break
            self._process_block(block)

    def run_for_n_vectors(
        self,
        n: int,
        audio_iterator: Iterator[np.ndarray],
    ) -> List[FeatureVector]:
        """Consume blocks until at least n vectors were emitted; used for tests."""
        self._stopped = False
        out: List[FeatureVector] = []
        for block in audio_iterator:
            if len(out) >= n or self._stopped:
                break
            out.extend(self._process_block(block))
        return out
