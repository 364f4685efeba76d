"""Command-line interface for mewt."""

import argparse
import logging
import sys
from typing import List, Optional


def _add_config_args(parser):
    """Add --config, --trace, --trace-output args to a parser."""
    parser.add_argument(
        "--config", type=str, metavar="PATH",
        help="Path to engine config YAML file"
    )
    parser.add_argument("--trace", choices=["off", "minimal", "normal", "verbose"], default=None)
    parser.add_argument("--trace-output", type=str, help="Output file for trace records (JSONL)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mewt",
        description="mewt - Visual and acoustic cat presence engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mewt info                                   # Emotion table and default config
  mewt info --config mewt.yaml                # Effective config from file
  mewt classify meow.wav                      # Emotion of a WAV recording
  mewt classify --features 0.01 800 0.2 1e-8 1e-5
  mewt replay session.jsonl                   # Replay detections, print host records
  mewt replay session.jsonl --trace minimal   # ... with transition traces on stderr
""",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # info command
    info_parser = subparsers.add_parser(
        "info",
        help="Show emotion rules and configuration",
        description="Display emotion categories, the rule table and the effective engine config.",
    )
    info_parser.add_argument("--rules", action="store_true", help="Show every rule's conditions")
    info_parser.add_argument("--config", type=str, metavar="PATH", help="Path to engine config YAML file")

    # classify command
    classify_parser = subparsers.add_parser(
        "classify",
        help="Classify the emotion of an audio clip",
        description="Extract acoustic features from a WAV file (or take them as numbers) and classify.",
    )
    classify_parser.add_argument("path", nargs="?", help="Path to a PCM WAV file")
    classify_parser.add_argument(
        "--features", type=float, nargs=5,
        metavar=("ZCR", "CENTROID", "ROLLOFF", "ENERGY", "RMS"),
        help="Classify explicit raw feature values instead of a file",
    )
    classify_parser.add_argument(
        "--all", action="store_true", dest="show_all",
        help="Show every rule that matched, not only the best",
    )
    classify_parser.add_argument(
        "--min-confidence", type=float, default=0.5,
        help="Drop results at or below this confidence (default: 0.5)",
    )

    # replay command
    replay_parser = subparsers.add_parser(
        "replay",
        help="Replay recorded detections through an engine",
        description="Feed timestamped detection records (JSONL) to an engine on a simulated clock "
                    "and print each host notification record as a JSON line.",
    )
    replay_parser.add_argument("path", help="Path to a JSONL detection log")
    replay_parser.add_argument(
        "--tail-sec", type=float, default=None,
        help="Extra simulated seconds after the last record (default: debounce + interval)",
    )
    replay_parser.add_argument("--stats", action="store_true", help="Print engine statistics at the end")
    _add_config_args(replay_parser)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "verbose", False):
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO)

    from mewt.cli import commands

    if args.command == "info":
        return commands.run_info(args)

    elif args.command == "classify":
        return commands.run_classify(args)

    elif args.command == "replay":
        return commands.run_replay(args)

    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
