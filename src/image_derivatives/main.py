"""Main module for the image derivatives CLI."""

import sys
import argparse

from . import __version__
from .core.catalog import load_catalog
from .core.exceptions import DerivativesPipelineError
from .core.factories import PipelineFactory
from .core.logging_config import setup_logger
from .core.models import ObjectCreatedNotification, PipelineConfig


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="image-derivatives",
        description="Image Derivatives - resized JPEG versions of images stored in S3",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Render and publish every version of one uploaded image
  image-derivatives process --bucket my-uploads --key uploads/2024/photo_001.jpg

  # Publish into another bucket, with a custom catalog
  image-derivatives process --bucket my-uploads --key photo_001.jpg \\
                            --dest-bucket my-cdn --catalog ./versions.json

  # List the versions that would be produced
  image-derivatives versions
        """,
    )

    subparsers: argparse._SubParsersAction = parser.add_subparsers(
        dest="command", help="Available commands"
    )

    process_parser: argparse.ArgumentParser = subparsers.add_parser(
        "process", help="Generate and publish every version of one S3 object"
    )
    process_parser.add_argument("--bucket", required=True, help="Source S3 bucket")
    process_parser.add_argument("--key", required=True, help="Source object key")
    process_parser.add_argument(
        "--catalog", default=None, help="Version catalog JSON (default: packaged catalog)"
    )
    process_parser.add_argument(
        "--dest-bucket", default=None, help="Destination bucket (default: source bucket)"
    )
    process_parser.add_argument(
        "--tmp-dir", default=None, help="Directory for per-invocation working files"
    )
    process_parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )

    versions_parser: argparse.ArgumentParser = subparsers.add_parser(
        "versions", help="List the versions of the catalog"
    )
    versions_parser.add_argument(
        "--catalog", default=None, help="Version catalog JSON (default: packaged catalog)"
    )

    subparsers.add_parser("version", help="Show version information")
    return parser


def run_process(args: argparse.Namespace) -> int:
    logger = setup_logger(level="DEBUG" if args.debug else None)
    try:
        config = PipelineConfig.from_env(
            catalog_path=args.catalog,
            dest_bucket=args.dest_bucket,
            tmp_dir=args.tmp_dir,
            debug=args.debug,
        )
        handler = PipelineFactory.create_handler(config=config)
        result = handler.handle_notification(
            ObjectCreatedNotification(bucket=args.bucket, key=args.key)
        )
    except DerivativesPipelineError as e:
        logger.error(f"Processing s3://{args.bucket}/{args.key} failed: {e}")
        return 1

    if result.skipped:
        print(f"Skipped {args.key}: {result.reason}")
        return 0

    print(f"Quality: {result.quality:.2f}")
    for key in result.dest_keys:
        print(f"s3://{result.bucket}/{key}")
    print(f"Published {len(result.dest_keys)} versions in {result.duration:.2f}s")
    return 0


def run_versions(args: argparse.Namespace) -> int:
    try:
        catalog = load_catalog(args.catalog)
    except DerivativesPipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for spec in catalog.versions:
        height = spec.height if spec.height is not None else "auto"
        print(f"{spec.name:<12} {spec.width}x{height}")
    return 0


def main() -> None:
    """
    Entry point for the command-line interface (CLI) of the derivatives pipeline.

    "process" runs one invocation against real S3 for a single object,
    "versions" prints the catalog and "version" prints the package version.
    """
    parser = build_parser()
    args: argparse.Namespace = parser.parse_args()

    if args.command == "process":
        sys.exit(run_process(args))

    elif args.command == "versions":
        sys.exit(run_versions(args))

    elif args.command == "version":
        print("Image Derivatives CLI")
        print(f"Version {__version__}")
        print("Resized JPEG versions of images stored in S3")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
