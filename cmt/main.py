"""Main entry point for the crimson metrics tool."""
import argparse
import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from cmt.commands import get, plot, query, watch
from cmt.config import load_config
from cmt.errors import CmtError


def build_formatter(log_format: str) -> logging.Formatter:
    """Formatter for ``text`` or ``json`` log output."""
    if log_format == "json":
        return JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
        )
    return logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(build_formatter(log_format))
    logging.basicConfig(level=level, handlers=[handler])

    # Reduce noise from some libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cmt",
        description="crimson metrics tool - sample, store and analyze OSD metrics"
    )
    parser.add_argument("--config", "-c", help="Path to configuration YAML file")
    parser.add_argument("--log-level", help="Override the configured log level")

    commands = parser.add_subparsers(dest="command", required=True)

    get_parser = commands.add_parser("get", help="observe the metric")
    get_parser.add_argument("path", help="admin socket path")
    get_parser.add_argument("pattern", help="metric name or regex")

    watch_parser = commands.add_parser("watch", help="watch and store metrics")
    watch_parser.add_argument("paths", nargs="*", help="admin socket paths")
    watch_parser.add_argument(
        "--interval", "-i", type=int, help="sampling interval in seconds (default 15)"
    )
    watch_parser.add_argument("--output", "-o", help="snapshot file (default ./data)")

    query_parser = commands.add_parser("query", help="print stored series")
    query_parser.add_argument("file", help="data file produced by the watch command")
    query_parser.add_argument("pattern", nargs="?", help="metric regex; list keys when omitted")

    plot_parser = commands.add_parser("plot", help="compute a derived ratio")
    plot_parser.add_argument("file", help="data file produced by the watch command")
    plot_parser.add_argument(
        "name", help="trans_conflict_ratio or trans_conflict_ratio_detailed"
    )

    return parser


def main(argv=None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        config.global_.log_level = args.log_level
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    try:
        if args.command == "get":
            get(args.path, args.pattern, config=config)
        elif args.command == "watch":
            if args.output:
                config.watch.snapshot_path = args.output
            if not args.paths and not config.watch.targets:
                logger.error("No admin sockets to watch")
                return 1
            watch(args.paths, args.interval, config=config)
        elif args.command == "query":
            query(args.file, args.pattern)
        elif args.command == "plot":
            plot(args.file, args.name)
    except (CmtError, ValueError) as e:
        logger.error(f"error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
