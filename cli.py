# cli.py

import argparse
import json
import logging
import sys

from config import SystemConfig
from core.errors import FingerprintError
from core.fingerprint_engine import FingerprintEngine
from core.fingerprint_store import create_store
from utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_engine(args) -> FingerprintEngine:
    """Create the engine and its cache backend from config plus CLI overrides"""
    config = args.config_obj
    store = create_store(config.cache)
    return FingerprintEngine.from_config(config, store)


def write_output(path: str, data):
    with open(path, 'w') as f:
        json.dump(data, f, indent=2)
    print(f"\nResults saved to: {path}")


def check_command(args):
    """Check a video against its cached fingerprint"""
    print(f"Starting fingerprint process for video: {args.video}")

    engine = build_engine(args)
    try:
        result = engine.check(args.video)
    finally:
        engine.store.close()

    if result.is_duplicate:
        print(f"Duplicate video detected (similarity: {result.similarity:.2%})")
    elif result.cache_hit:
        print(f"Video changed since last check (similarity: {result.similarity:.2%})")
    else:
        print(f"New video processed and fingerprints saved ({result.frame_count} frames)")

    if args.output:
        write_output(args.output, result.to_dict())

    return 0


def generate_command(args):
    """Generate and store a fingerprint"""
    print(f"Generating fingerprint for: {args.video}")

    engine = build_engine(args)
    try:
        hashes = engine.generate_fingerprint(args.video)
    finally:
        engine.store.close()

    print(f"Stored {len(hashes)} frame hashes under {engine.cache_key(args.video)}")
    return 0


def compare_command(args):
    """Compare two videos directly without touching the cache"""
    print(f"Comparing {args.reference} with {args.candidate}")

    engine = build_engine(args)
    try:
        similarity = engine.compare_videos(args.reference, args.candidate)
    finally:
        engine.store.close()

    verdict = "duplicate" if engine.is_duplicate_score(similarity) else "different"
    print(f"Similarity: {similarity:.2%} ({verdict})")

    if args.output:
        write_output(args.output, {
            'reference': args.reference,
            'candidate': args.candidate,
            'similarity': similarity,
            'is_duplicate': engine.is_duplicate_score(similarity),
        })

    return 0


def invalidate_command(args):
    """Clear cached fingerprints matching a pattern"""
    engine = build_engine(args)
    try:
        removed = engine.invalidate(args.pattern)
    finally:
        engine.store.close()

    print(f"Removed {removed} cached fingerprints")
    return 0


def load_config(args) -> SystemConfig:
    """Load YAML config and apply command-line overrides"""
    config = SystemConfig.load(args.config)

    if args.backend:
        config.cache.backend = args.backend
    if args.interval:
        config.sampling.interval_seconds = args.interval
    if args.strategy:
        config.similarity.strategy = args.strategy
    if args.quick:
        config.quick_check_frames = args.quick
    if args.workers:
        config.n_workers = args.workers
    if args.no_progress:
        config.show_progress = False

    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Video fingerprinting and near-duplicate detection"
    )
    parser.add_argument('-c', '--config', default='config.yaml',
                        help='Path to YAML configuration file')
    parser.add_argument('--backend', choices=['redis', 'memory'],
                        help='Fingerprint cache backend')
    parser.add_argument('--interval', type=float,
                        help='Seconds of playback between sampled frames')
    parser.add_argument('--strategy', choices=['positional', 'string'],
                        help='Fingerprint comparison strategy')
    parser.add_argument('--quick', type=int, metavar='N',
                        help='Compare only the first N sampled frames on a cache hit')
    parser.add_argument('-w', '--workers', type=int,
                        help='Number of hashing threads')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable progress bars')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Duplicate check command
    check_parser = subparsers.add_parser('check', help='Check a video for duplicates')
    check_parser.add_argument('video', help='Path to video')
    check_parser.add_argument('-o', '--output', help='Output JSON file for the result')
    check_parser.set_defaults(func=check_command)

    # Generate command
    generate_parser = subparsers.add_parser('generate', help='Generate and cache a fingerprint')
    generate_parser.add_argument('video', help='Path to video')
    generate_parser.set_defaults(func=generate_command)

    # Compare command
    compare_parser = subparsers.add_parser('compare', help='Compare two videos')
    compare_parser.add_argument('reference', help='Reference video')
    compare_parser.add_argument('candidate', help='Candidate video')
    compare_parser.add_argument('-o', '--output', help='Output JSON file for the result')
    compare_parser.set_defaults(func=compare_command)

    # Invalidate command
    invalidate_parser = subparsers.add_parser('invalidate', help='Clear cached fingerprints')
    invalidate_parser.add_argument('-p', '--pattern', default=None,
                                   help='Key pattern to remove (default: all video keys)')
    invalidate_parser.set_defaults(func=invalidate_command)

    return parser


def main_cli(argv=None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    args.config_obj = load_config(args)
    setup_logging(args.config_obj.log_level, args.config_obj.log_dir)

    try:
        return args.func(args)
    except FingerprintError as e:
        logger.error("Error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main_cli())
