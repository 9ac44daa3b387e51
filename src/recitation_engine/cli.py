"""CLI for feature extraction, alignment and decoding of WAV recordings."""

import argparse
import logging
import sys
from pathlib import Path

from recitation_engine.alignment import AlignmentConfig
from recitation_engine.audio import AudioCollector, AudioConfig, load_wav
from recitation_engine.audio.config import WINDOW_TYPES
from recitation_engine.decoder import HMMModel, gaussian_emissions
from recitation_engine.engine import RecitationEngine
from recitation_engine.errors import ConfigurationError
from recitation_engine.pipeline import StreamingConfig, StreamingPipeline


def _audio_config(args: argparse.Namespace, sample_rate: int) -> AudioConfig:
    return AudioConfig(
        sample_rate=sample_rate,
        frame_size=args.frame_size,
        hop_size=args.hop_size,
        mfcc_coefficients=args.mfcc,
        window_type=args.window,
        pre_emphasis=args.pre_emphasis,
    )


def _load(path: Path, args: argparse.Namespace):
    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        sys.exit(1)
    samples, sr = load_wav(str(path))
    return samples, _audio_config(args, sr)


def cmd_features(args: argparse.Namespace) -> None:
    samples, config = _load(args.wav, args)
    features = RecitationEngine(config).extract_features(samples)
    print(f"Extracted {len(features)} frames x {config.feature_dimension} features")
    if len(features) == 0:
        return
    for name in ("energy", "zero_crossing_rate", "spectral_centroid", "spectral_rolloff", "pitch"):
        col = features.column(name)
        print(f"  {name:20} mean={col.mean():10.4f}  min={col.min():10.4f}  max={col.max():10.4f}")
    print(f"Sample frame MFCC (first 5): {features[0].mfcc[:5]}")


def cmd_align(args: argparse.Namespace) -> None:
    ref_samples, ref_config = _load(args.reference, args)
    query_samples, query_config = _load(args.query, args)
    if ref_config.sample_rate != query_config.sample_rate:
        print(
            f"Sample rates differ ({ref_config.sample_rate} vs {query_config.sample_rate} Hz). Resample first.",
            file=sys.stderr,
        )
        sys.exit(1)
    engine = RecitationEngine(
        ref_config,
        AlignmentConfig(distance_metric=args.metric, bandwidth=args.bandwidth),
    )
    reference = engine.extract_features(ref_samples)
    query = engine.extract_features(query_samples)
    result = engine.align_mfcc(query, reference) if args.mfcc_only else engine.align(query, reference)
    if not result.is_comparable:
        print("Not comparable (empty input, dimension mismatch or band too narrow)")
        return
    print(f"Frames: query={len(query)} reference={len(reference)}")
    print(f"DTW distance:        {result.distance:.4f}")
    print(f"Normalized distance: {result.normalized_distance:.4f}")
    print(f"Path length:         {len(result.path)}")


def cmd_decode(args: argparse.Namespace) -> None:
    samples, config = _load(args.wav, args)
    engine = RecitationEngine(config)
    features = engine.extract_features(samples)
    observations = engine.observations_for(features, num_symbols=args.symbols)
    model = HMMModel.left_to_right(
        args.states,
        gaussian_emissions(args.states, args.symbols),
        self_loop=args.self_loop,
    )
    viterbi = engine.decode(observations, model)
    total = engine.likelihood(observations, model)
    print(f"Observations: {len(observations)}")
    print(f"Viterbi log-probability: {viterbi.path_log_probability:.4f}")
    print(f"Forward log-likelihood:  {total:.4f}")
    if viterbi.state_path:
        changes = [0] + [t for t in range(1, len(viterbi.state_path)) if viterbi.state_path[t] != viterbi.state_path[t - 1]]
        for t in changes:
            print(f"  t={features[t].timestamp:7.3f}s -> state {viterbi.state_path[t]}")


def cmd_stream(args: argparse.Namespace) -> None:
    config = _audio_config(args, args.sample_rate)

    def on_features(v) -> None:
        print(
            f"t={v.timestamp:7.3f}s energy={v.energy:.4f} pitch={v.pitch:7.1f} Hz "
            f"centroid={v.spectral_centroid:8.1f} Hz"
        )

    pipeline = StreamingPipeline(
        config=StreamingConfig(keep_history=False),
        audio_config=config,
        on_features=on_features,
        audio_collector=AudioCollector(config),
    )
    print(f"Streaming from microphone (mono {config.sample_rate} Hz), Ctrl+C to stop...")
    try:
        pipeline.run(device=args.device)
    except KeyboardInterrupt:
        pipeline.stop()
        print("\nStopped.")


def cmd_list_devices(_args: argparse.Namespace) -> None:
    try:
        import sounddevice as sd
        print(sd.query_devices())
    except ImportError:
        print("sounddevice not installed: pip install sounddevice", file=sys.stderr)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    defaults = AudioConfig()
    parser = argparse.ArgumentParser(description="Recitation feature extraction, DTW alignment and HMM decoding")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--frame-size", type=int, default=defaults.frame_size, help="Frame size in samples (default: 2048)")
    parser.add_argument("--hop-size", type=int, default=defaults.hop_size, help="Hop size in samples (default: 512)")
    parser.add_argument("--mfcc", type=int, default=defaults.mfcc_coefficients, help="MFCC coefficients (default: 13)")
    parser.add_argument("--window", choices=WINDOW_TYPES, default=defaults.window_type, help="Window function")
    parser.add_argument("--pre-emphasis", type=float, default=None, help="Pre-emphasis coefficient (e.g. 0.97)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("features", help="Extract and summarize features of a WAV file")
    p.add_argument("wav", type=Path)
    p.set_defaults(func=cmd_features)

    p = sub.add_parser("align", help="DTW-align a query recording against a reference")
    p.add_argument("reference", type=Path)
    p.add_argument("query", type=Path)
    p.add_argument("--metric", choices=("euclidean", "manhattan"), default="euclidean")
    p.add_argument("--bandwidth", type=int, default=None, help="Sakoe-Chiba half-width in frames")
    p.add_argument("--mfcc-only", action="store_true", help="Align on MFCCs only")
    p.set_defaults(func=cmd_align)

    p = sub.add_parser("decode", help="Viterbi/Forward scores of quantized MFCC[0] under a left-to-right HMM")
    p.add_argument("wav", type=Path)
    p.add_argument("--states", type=int, default=4)
    p.add_argument("--symbols", type=int, default=256)
    p.add_argument("--self-loop", type=float, default=0.5)
    p.set_defaults(func=cmd_decode)

    p = sub.add_parser("stream", help="Print one feature line per hop from the microphone")
    p.add_argument("--sample-rate", type=int, default=defaults.sample_rate)
    p.add_argument("--device", type=int, default=None, help="Input device index (see list-devices)")
    p.set_defaults(func=cmd_stream)

    p = sub.add_parser("list-devices", help="List available audio input devices")
    p.set_defaults(func=cmd_list_devices)
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        args.func(args)
    except ConfigurationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
