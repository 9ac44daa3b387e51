"""Mono PCM capture and WAV loading for the analysis pipeline."""

import logging
import queue
from typing import Iterator, Optional, Tuple

import numpy as np

try:
    import sounddevice as sd
except ImportError:
    sd = None  # type: ignore

from recitation_engine.audio.config import AudioConfig

logger = logging.getLogger(__name__)


def load_wav(path: str) -> Tuple[np.ndarray, int]:
    """Read a WAV file as mono float64 in [-1, 1].

    Returns:
        (samples, sample_rate)
    """
    import scipy.io.wavfile as wavfile

    sr, audio = wavfile.read(str(path))
    if audio.dtype == np.int16:
        audio = audio.astype(np.float64) / 32768.0
    elif audio.dtype == np.int32:
        audio = audio.astype(np.float64) / 2147483648.0
    elif audio.dtype == np.uint8:
        audio = (audio.astype(np.float64) - 128.0) / 128.0
    else:
        audio = audio.astype(np.float64)
    if audio.ndim > 1:
        audio = audio.mean(axis=1)
    logger.debug("loaded %s: %d samples at %d Hz", path, len(audio), sr)
    return audio, int(sr)


class AudioCollector:
    """Records mono PCM in batch or streaming mode through sounddevice."""

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()

    def record_chunk(
        self,
        duration_sec: float,
        device: Optional[int] = None,
    ) -> np.ndarray:
        """Record a single chunk of audio.

        Args:
            duration_sec: Recording duration in seconds.
            device: Input device index (None = default).

        Returns:
            Mono float32 array, shape (n_samples,), normalized [-1, 1].
        """
        if sd is None:
            raise ImportError("sounddevice is required for recording. pip install sounddevice")

        samples = int(duration_sec * self.config.sample_rate)
        rec = sd.rec(
            samples,
            samplerate=self.config.sample_rate,
            channels=self.config.channels,
            dtype=self.config.dtype,
            device=device,
        )
        sd.wait()
        return rec.squeeze()

    def record_stream(
        self,
        device: Optional[int] = None,
        block_size: Optional[int] = None,
    ) -> Iterator[np.ndarray]:
        """Stream audio blocks continuously.

        The audio callback only copies and enqueues; feature extraction runs
        on the consuming side so it never blocks the audio thread.

        Args:
            device: Input device index (None = default).
            block_size: Samples per yielded block (default: hop_size).

        Yields:
            Mono float32 blocks, shape (n_samples,).
        """
        if sd is None:
            raise ImportError("sounddevice is required for recording. pip install sounddevice")

        blocksize = block_size or self.config.hop_size
        q: queue.Queue[np.ndarray] = queue.Queue()

        def callback(indata: np.ndarray, _frames: int, _time: object, status: object) -> None:
            if status:
                logger.warning("input stream status: %s", status)
            q.put(indata.copy().squeeze())

        with sd.InputStream(
            samplerate=self.config.sample_rate,
            channels=self.config.channels,
            dtype=self.config.dtype,
            blocksize=blocksize,
            device=device,
            callback=callback,
        ):
            while True:
                yield q.get()
