"""Command-line entry point: collect configured metrics and push them once."""
import argparse
import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from remotepush.config import load_config
from remotepush.engine import PushEngine
from remotepush.errors import PushError


TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_formatter(log_format: str) -> logging.Formatter:
    """Formatter for the configured log format ("text" or "json")."""
    if log_format == "json":
        return JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt=DATE_FORMAT,
            rename_fields={"asctime": "time", "levelname": "level", "name": "logger"},
        )
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter(log_format))

    logging.basicConfig(level=level, handlers=[handler])

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Push metrics to a Prometheus remote-write endpoint"
    )
    parser.add_argument(
        "--config",
        "-c",
        required=True,
        help="Path to configuration YAML file"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Collect and encode, but do not send anything"
    )
    parser.add_argument(
        "--log-level",
        help="Override the configured log level"
    )
    return parser


def main(argv=None) -> int:
    """Main function. Returns the process exit status."""
    args = build_parser().parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(args.log_level or config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Remote write: {config.remote_write.url} (job={config.remote_write.job}, "
                f"instance={config.remote_write.instance})")

    try:
        engine = PushEngine(config)
        result = engine.run(dry_run=args.dry_run)
    except PushError as e:
        logger.error(f"Push failed: {e.kind}: {e}")
        print(f"{e.kind}: {e}", file=sys.stderr)
        return 1

    print(result.summary())
    return 0


if __name__ == "__main__":
    sys.exit(main())
