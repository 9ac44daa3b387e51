"""Streaming feature extraction on a hop cadence."""

from recitation_engine.pipeline.streaming_loop import (
    StreamingConfig,
    StreamingFeatureExtractor,
    StreamingPipeline,
)

__all__ = ["StreamingConfig", "StreamingFeatureExtractor", "StreamingPipeline"]
