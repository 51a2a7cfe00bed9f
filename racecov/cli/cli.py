"""Command-line interface for racecov."""

import argparse
import logging
import sys

from racecov import __version__
from racecov.cli.usage import add_analyze_parser, add_annotations_parser
from racecov.monitoring import AgentLogger, LogLevel
from racecov.utils import AnalysisError


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="racecov",
        description="Thread-modular data race detection over usage points",
        epilog="""Examples:
  racecov analyze program.json
  racecov analyze program.json -f json -o report.json --show-usages
  racecov annotations thread_test01.c --program thread_test01.json"""
    )

    # Logging and utility
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Increase verbosity")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress all output except results")
    parser.add_argument("--log-file", help="Write logs to file")
    parser.add_argument("--version", action="version", version=f"racecov {__version__}")

    subparsers = parser.add_subparsers(dest='command', help='Available commands')
    add_analyze_parser(subparsers)
    add_annotations_parser(subparsers)
    return parser


def setup_logging(args) -> AgentLogger:
    """Setup logging based on command line arguments."""
    level = LogLevel.OFF if args.quiet else (LogLevel.DEBUG if args.verbose > 0 else LogLevel.INFO)
    logger = AgentLogger(level=level, log_file=args.log_file)
    if level != LogLevel.OFF and not logger.logger.handlers:
        logging.basicConfig(format="%(levelname)s: %(message)s", stream=sys.stderr)
    return logger


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, 'func'):
        parser.print_help()
        return 1

    logger = setup_logging(args)
    try:
        return args.func(args, logger)
    except KeyboardInterrupt:
        logger.log("Analysis interrupted by user", level=LogLevel.ERROR)
        return 130
    except (AnalysisError, FileNotFoundError, ValueError) as e:
        logger.log(f"Error: {e}", level=LogLevel.ERROR)
        if args.verbose > 1:
            import traceback
            logger.log(traceback.format_exc(), level=LogLevel.ERROR)
        return 1


def cli_main():
    """Synchronous entry point for CLI."""
    try:
        return main()
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(cli_main())
