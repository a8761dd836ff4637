"""
analit - Audio Analysis CLI

This module provides the command-line interface for analit.
It can be invoked as 'analit' from anywhere after installation.

Example usage:
    # Full analysis, report written to out.log
    analit full path/to/audio.wav
    analit full --report md -o report.md path/to/audio.wav

    # Compare two files
    analit compare --report md -o diff.md a.wav b.wav

    # Split at silences of 1.5s or longer
    analit split --min-silence 1.5 --trim 0.1 path/to/audio.wav
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from analit import __version__
from analit.core.diff import compare
from analit.core.engine import AnalysisEngine, create_analysis_engine
from analit.core.result_writer import create_renderer, write_report
from analit.core.segmenter import SilenceSplitter
from analit.providers.toolchain import resolve_toolchain
from analit.utils.config import AnalysisConfig, BPM_ENGINES, ConfigManager, load_config
from analit.utils.errors import AudioAnalysisError, ConfigurationError
from analit.utils.logging import get_logger, setup_logging

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _common_options() -> argparse.ArgumentParser:
    """Options shared by every subcommand; unset options keep the configured value."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-o", "--output", default=None, help="Report output path")
    common.add_argument(
        "--report",
        choices=["txt", "json", "md"],
        default=None,
        help="Report format"
    )
    common.add_argument("--ffmpeg", default=None, help="Path to ffmpeg")
    common.add_argument("--ffprobe", default=None, help="Path to ffprobe")
    common.add_argument("--aubio", default=None, help="Path to aubio (tempo/onset/pitch/key)")
    common.add_argument(
        "--bpm-engine",
        choices=list(BPM_ENGINES),
        default=None,
        help="Tempo engine"
    )
    common.add_argument("--bands", default=None, help='Band list in Hz, e.g. "20-60,60-120"')
    common.add_argument(
        "--no-bands",
        action="store_true",
        help="Disable band loudness"
    )
    common.add_argument(
        "--no-ebur128",
        action="store_true",
        help="Disable EBU R128 loudness and true peak"
    )
    common.add_argument(
        "--astats-window",
        type=float,
        default=None,
        help="astats RMS window in seconds (0 = filter default)"
    )
    common.add_argument(
        "--silence-threshold",
        type=float,
        default=None,
        help="Silence threshold in dBFS"
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its full/compare/split subcommands."""
    parser = argparse.ArgumentParser(
        prog="analit",
        description="Analyze audio files with ffmpeg, ffprobe and aubio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  analit full audio.wav
  analit full --report json -o audio.json audio.wav
  analit compare --report md -o diff.md a.wav b.wav
  analit split --min-silence 1.5 audio.wav
        """
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"analit {__version__}"
    )

    common = _common_options()
    subparsers = parser.add_subparsers(dest="command", required=True)

    full = subparsers.add_parser("full", parents=[common], help="Analyze one file and write a report")
    full.add_argument("input", type=Path, help="Audio file to analyze")

    cmp = subparsers.add_parser("compare", parents=[common], help="Compare two files")
    cmp.add_argument("input_a", type=Path, help="First audio file (A)")
    cmp.add_argument("input_b", type=Path, help="Second audio file (B)")

    split = subparsers.add_parser("split", parents=[common], help="Split a file at its silences")
    split.add_argument("input", type=Path, help="Audio file to split")
    split.add_argument(
        "--min-silence",
        type=float,
        default=None,
        help="Shortest silence (seconds) that separates two parts"
    )
    split.add_argument(
        "--trim",
        type=float,
        default=None,
        help="Seconds trimmed from both ends of every part"
    )

    return parser


def config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate the command line options that were given into a config dict."""
    overrides: Dict[str, Any] = {}

    def put(key: str, value: Any) -> None:
        section, name = key.split('.')
        overrides.setdefault(section, {})[name] = value

    if args.output is not None:
        put("output.path", args.output)
    if args.report is not None:
        put("output.format", args.report)
    if args.ffmpeg is not None:
        put("tools.ffmpeg", args.ffmpeg)
    if args.ffprobe is not None:
        put("tools.ffprobe", args.ffprobe)
    if args.aubio is not None:
        put("tools.aubio", args.aubio)
    if args.bpm_engine is not None:
        put("analysis.bpm_engine", args.bpm_engine)
    if args.bands is not None:
        put("analysis.bands", args.bands)
    if args.no_bands:
        put("analysis.use_bands", False)
    if args.no_ebur128:
        put("analysis.use_loudness", False)
    if args.astats_window is not None:
        put("analysis.stats_window", args.astats_window)
    if args.silence_threshold is not None:
        put("analysis.silence_threshold_db", args.silence_threshold)
    if getattr(args, "min_silence", None) is not None:
        put("split.min_silence", args.min_silence)
    if getattr(args, "trim", None) is not None:
        put("split.trim", args.trim)

    return overrides


def build_config(args: argparse.Namespace) -> ConfigManager:
    """Defaults, then the config file, then the command line."""
    config_path = str(args.config) if args.config else None
    manager = ConfigManager(load_config(config_path))
    manager.merge(config_overrides(args))
    return manager


def run_full(engine: AnalysisEngine, config: AnalysisConfig, input_path: Path) -> int:
    """Analyze one file and write its report."""
    analysis = engine.analyze(input_path)
    renderer = create_renderer(config.report_format)
    out = write_report(renderer.render_analysis(analysis), config.output_path)
    print(analysis.get_summary())
    print(f"[+] wrote {out}")
    return EXIT_OK


def run_compare(
    engine: AnalysisEngine,
    config: AnalysisConfig,
    input_a: Path,
    input_b: Path,
) -> int:
    """Analyze two files and write the diff report."""
    analysis_a = engine.analyze(input_a)
    analysis_b = engine.analyze(input_b)
    diff = compare(analysis_a, analysis_b)
    renderer = create_renderer(config.report_format)
    out = write_report(renderer.render_diff(diff), config.output_path)
    print(f"[+] wrote {out}")
    return EXIT_OK


def run_split(engine: AnalysisEngine, config: AnalysisConfig, input_path: Path) -> int:
    """Analyze one file and cut it into the parts between its silences."""
    analysis = engine.analyze(input_path)
    splitter = SilenceSplitter(engine.provider)
    written = splitter.split(
        input_path, analysis, config.split_min_silence, config.split_trim
    )
    if not written:
        print("[=] nothing to split")
    for path in written:
        print(f"[+] wrote {path}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for analit."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        manager = build_config(args)
        config = AnalysisConfig.from_dict(manager.to_dict())
    except ConfigurationError as e:
        print(f"analit: configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    # Setup logging
    logging_config = manager.get_section("logging")
    log_level = "DEBUG" if args.verbose else logging_config.get("level", "INFO")
    setup_logging(
        level=log_level,
        log_format=logging_config.get("format", "text"),
        log_file=logging_config.get("file"),
        colored=True,
        console_enabled=True
    )
    logger = get_logger("cli")

    try:
        config = resolve_toolchain(config)

        with create_analysis_engine(config) as engine:
            if args.command == "full":
                return run_full(engine, config, args.input)
            if args.command == "compare":
                return run_compare(engine, config, args.input_a, args.input_b)
            return run_split(engine, config, args.input)

    except AudioAnalysisError as e:
        logger.error(str(e))
        if args.verbose:
            import traceback
            traceback.print_exc()
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
