"""Fixed-size sample ring used by the streaming extractor."""

import numpy as np


class RingBuffer:
    """Fixed-size ring buffer for continuous streaming audio."""

    def __init__(self, size: int, dtype: type = np.float64):
        if size <= 0:
            raise ValueError(f"size must be > 0, got {size}")
        self.size = size
        self.dtype = dtype
        self._data = np.zeros(size, dtype=dtype)
        self._write_idx = 0
        self._count = 0

    def __len__(self) -> int:
        return self._count

    @property
    def is_full(self) -> bool:
        return self._count == self.size

    def push(self, chunk: np.ndarray) -> None:
        """Append a chunk; older data is overwritten."""
        chunk = np.asarray(chunk)
        n = len(chunk)
        if n == 0:
            return
        if n >= self.size:
            self._data[:] = chunk[-self.size :].astype(self.dtype)
            self._write_idx = 0
            self._count = self.size
            return
        start = self._write_idx
        end = start + n
        if end <= self.size:
            self._data[start:end] = chunk.astype(self.dtype)
        else:
            head = self.size - start
            self._data[start:] = chunk[:head].astype(self.dtype)
            self._data[: end - self.size] = chunk[head:].astype(self.dtype)
        self._write_idx = end % self.size
        self._count = min(self._count + n, self.size)

    def get_all(self) -> np.ndarray:
        """Return all buffered data in chronological order."""
        if self._count == 0:
            return np.array([], dtype=self.dtype)
        if self._count < self.size:
            return self._data[: self._count].copy()
        return np.roll(self._data, -self._write_idx).copy()

    def clear(self) -> None:
        """Reset buffer."""
        self._write_idx = 0
        self._count = 0
