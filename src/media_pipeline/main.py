"""Main module for the media pipeline CLI."""

import sys
import json
import base64
import argparse
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import TypeAdapter, ValidationError

from . import __version__
from .core import MediaPipelineError, is_client_error, load_config, setup_logger
from .core.factories import TAGGERS, LoggerFactory, MediaStoreFactory
from .core.image_utils import read_geotag
from .core.services import MediaStore


def _iso_datetime(value: str) -> datetime:
    try:
        return TypeAdapter(datetime).validate_python(value)
    except ValidationError as exc:
        raise argparse.ArgumentTypeError(
            f"invalid ISO-8601 timestamp: {value!r}"
        ) from exc


def build_parser() -> argparse.ArgumentParser:
    """Build the ``media-pipeline`` argument parser."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="media-pipeline",
        description="Media Pipeline - geotagged photo ingestion and resizing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest a photo taken facing east of north
  media-pipeline ingest --id abc123 --file photo.jpg \\
                        --lon 30 --lat -30 --heading 8 \\
                        --created-at 2023-01-01T00:00:00Z

  # Predict the URLs of every configured size
  media-pipeline urls --id abc123

  # Show version
  media-pipeline version
        """,
    )

    subparsers: argparse._SubParsersAction = parser.add_subparsers(
        dest="command", help="Available commands"
    )

    ingest_parser = subparsers.add_parser(
        "ingest", help="Store, geotag and resize one photo"
    )
    ingest_parser.add_argument("--id", required=True, help="Media identifier")
    ingest_parser.add_argument(
        "--file", required=True, type=Path, help="Image file to ingest"
    )
    ingest_parser.add_argument("--lon", required=True, type=float, help="Longitude")
    ingest_parser.add_argument("--lat", required=True, type=float, help="Latitude")
    ingest_parser.add_argument(
        "--heading", required=True, type=float, help="Camera bearing in degrees"
    )
    ingest_parser.add_argument(
        "--created-at",
        required=True,
        type=_iso_datetime,
        help="Capture time (ISO-8601)",
    )
    ingest_parser.add_argument(
        "--tagger",
        default="exiftool",
        choices=list(TAGGERS),
        help="Metadata writer to use (default: exiftool)",
    )
    ingest_parser.add_argument(
        "--timeout", type=float, default=None, help="Overall deadline in seconds"
    )

    urls_parser = subparsers.add_parser("urls", help="Print public URLs of a photo")
    urls_parser.add_argument("--id", required=True, help="Media identifier")
    urls_parser.add_argument("--size", default=None, help="Single size id")

    inspect_parser = subparsers.add_parser(
        "inspect", help="Print the geotag embedded in an image file"
    )
    inspect_parser.add_argument("--file", required=True, type=Path, help="Image file")

    reset_parser = subparsers.add_parser(
        "reset-store", help="Delete every file in the media store"
    )
    reset_parser.add_argument(
        "--yes", action="store_true", help="Confirm the destructive reset"
    )

    for sub in (ingest_parser, urls_parser, reset_parser):
        sub.add_argument("--config", default=None, help="JSON configuration file")
        sub.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers.add_parser("version", help="Show version information")
    return parser


def _create_store(args: argparse.Namespace, tagger: str = "exiftool") -> MediaStore:
    logger = LoggerFactory.create_logger(level="DEBUG" if args.debug else None)
    return MediaStoreFactory.create_store(
        config=load_config(args.config), logger=logger, tagger=tagger
    )


def _print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


def run_ingest(args: argparse.Namespace) -> int:
    store = _create_store(args, tagger=args.tagger)
    payload = base64.b64encode(args.file.read_bytes()).decode("ascii")
    geo = {
        "lon": args.lon,
        "lat": args.lat,
        "heading": args.heading,
        "createdAt": args.created_at,
    }
    result = store.ingest(args.id, payload, geo, timeout=args.timeout)
    _print_json(result.model_dump())
    return 0


def run_urls(args: argparse.Namespace) -> int:
    store = _create_store(args)
    if args.size:
        _print_json({args.size: store.url_for(args.id, args.size)})
    else:
        _print_json(store.all_urls_for(args.id))
    return 0


def run_reset(args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to reset the media store without --yes", file=sys.stderr)
        return 1
    store = _create_store(args)
    store.reset_store()
    return 0


def run_inspect(args: argparse.Namespace) -> int:
    _print_json(read_geotag(args.file))
    return 0


COMMANDS = {
    "ingest": run_ingest,
    "urls": run_urls,
    "inspect": run_inspect,
    "reset-store": run_reset,
}


def main(argv: Optional[list] = None) -> None:
    """
    Entry point for the ``media-pipeline`` command-line interface.

    Pipeline failures exit with status 1, or 2 when the input itself was
    rejected (undecodable payload or malformed arguments).
    """
    parser = build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    if args.command in COMMANDS:
        # stdout carries command output only.
        logger = setup_logger(
            level="DEBUG" if getattr(args, "debug", False) else None,
            stream=sys.stderr,
        )
        try:
            status = COMMANDS[args.command](args)
        except MediaPipelineError as exc:
            logger.error(f"{args.command} failed: {exc}")
            status = 2 if is_client_error(exc) else 1
        except OSError as exc:
            logger.error(f"{args.command} failed: {exc}")
            status = 1
        sys.exit(status)

    elif args.command == "version":
        print("Media Pipeline CLI")
        print(f"Version {__version__}")
        print("Geotagged photo ingestion with resized derivatives")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
