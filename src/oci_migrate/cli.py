#!/usr/bin/env python3
"""
Migrate tagged OCI compute instances to a new image.

Instances opt in with the freeform tag ``migrate-enabled=enabled``; running
instances also need ``migrate-if-running=enabled``. Progress and outcome are
written back to each instance as ``migrate-status``/``migrate-message``/
``migrate-timestamp`` tags.
"""

import argparse
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import yaml
from rich.console import Console
from rich.logging import RichHandler

from .client import OCIClient
from .context import RunContext
from .exceptions import ConfigNotFoundError, MigrationError, SelectionError
from .gateway import ComputeGateway, OCIComputeGateway
from .models import ENABLED_VALUE, TAG_ENABLED, MigrationConfig
from .orchestrator import MigrationOrchestrator, resolve_image_id
from .utils.config import load_migration_settings, merge_settings
from .utils.display import (
    display_error,
    display_instances,
    display_plan,
    display_report,
    display_run_header,
)

console = Console()
logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Configure standard logging with rich handler."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    # The SDK logs every request at DEBUG; keep it quiet unless asked.
    logging.getLogger("oci").setLevel(logging.DEBUG if verbose else logging.WARNING)


def parse_tag(value: str) -> Tuple[str, str]:
    """Parse ``KEY=VALUE`` for argparse."""
    key, sep, tag_value = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{value}'")
    return key, tag_value


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--compartment-id",
        help="Compartment to search (defaults to the tenancy root compartment).",
    )
    parser.add_argument("--region", help="OCI region (defaults to the profile's region).")
    parser.add_argument("--profile", help="OCI config profile name (default: DEFAULT).")
    parser.add_argument(
        "--oci-config-file",
        dest="config_file",
        help="Path to the OCI config file (default: ~/.oci/config).",
    )
    parser.add_argument(
        "--settings",
        dest="settings_file",
        help="YAML file with a 'migration' section providing defaults for these options.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Set up and parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="oci-migrate",
        description="Replace tagged OCI compute instances with instances of a new image.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  oci-migrate migrate --new-image ocid1.image.oc1..example --dry-run
  oci-migrate migrate --new-image-tag release=2024.06 --max-workers 4
  oci-migrate migrate --new-image ocid1.image.oc1..example --instance-id ocid1.instance.oc1..example
  oci-migrate status
  oci-migrate tag-image --image-id ocid1.image.oc1..example --tag release=2024.06
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser("migrate", help="Migrate eligible instances to a new image.")
    _add_common_arguments(migrate)
    image = migrate.add_mutually_exclusive_group(required=True)
    image.add_argument("--new-image", help="OCID of the image to migrate to.")
    image.add_argument(
        "--new-image-tag",
        type=parse_tag,
        metavar="KEY=VALUE",
        help="Resolve the target image by freeform tag.",
    )
    migrate.add_argument(
        "--enabled-value",
        help=f"Value of the {TAG_ENABLED} tag that opts an instance in (default: {ENABLED_VALUE}).",
    )
    migrate.add_argument(
        "--instance-id",
        help="Migrate only this instance, bypassing the tag query.",
    )
    migrate.add_argument("--max-workers", type=int, help="Concurrent migrations (default: 8).")
    migrate.add_argument(
        "--wait-timeout",
        type=float,
        help="Seconds to wait for an instance to start or stop (default: 300).",
    )
    migrate.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between state checks while waiting (default: 10).",
    )
    migrate.add_argument(
        "--timeout",
        type=float,
        help="Overall deadline for the run in seconds (default: none).",
    )
    migrate.add_argument(
        "--dry-run",
        action="store_true",
        help="Show which instances would be migrated without changing anything.",
    )
    migrate.set_defaults(handler=run_migrate)

    status = subparsers.add_parser("status", help="Show the migration status of tagged instances.")
    _add_common_arguments(status)
    status.add_argument(
        "--enabled-value",
        help=f"Value of the {TAG_ENABLED} tag to list (default: {ENABLED_VALUE}).",
    )
    status.set_defaults(handler=run_status)

    tag_image = subparsers.add_parser("tag-image", help="Add a freeform tag to an image.")
    _add_common_arguments(tag_image)
    tag_image.add_argument("--image-id", required=True, help="OCID of the image to tag.")
    tag_image.add_argument(
        "--tag",
        type=parse_tag,
        required=True,
        action="append",
        metavar="KEY=VALUE",
        help="Tag to set; may be repeated.",
    )
    tag_image.set_defaults(handler=run_tag_image)

    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Dict[str, Any]:
    """Combine the optional settings file with command line values."""
    file_settings: Dict[str, Any] = {}
    if args.settings_file:
        file_settings = load_migration_settings(args.settings_file)

    overrides = {
        key: getattr(args, key, None)
        for key in (
            "compartment_id",
            "region",
            "profile",
            "config_file",
            "enabled_value",
            "instance_id",
            "max_workers",
            "wait_timeout",
            "poll_interval",
            "timeout",
        )
    }
    return merge_settings(file_settings, **overrides)


def build_gateway(settings: Dict[str, Any]) -> OCIComputeGateway:
    """Authenticate once up front and return a gateway for the target compartment.

    The first client serves the calling thread; worker threads build their own.
    """

    def client_factory() -> OCIClient:
        return OCIClient(
            region=settings.get("region"),
            profile_name=settings.get("profile") or "DEFAULT",
            config_file=settings.get("config_file"),
        )

    first_client = client_factory()
    compartment_id = settings.get("compartment_id") or first_client.oci_config["tenancy"]
    logger.debug("Using compartment %s in region %s", compartment_id, first_client.region)
    return OCIComputeGateway(client_factory, compartment_id, client=first_client)


def run_migrate(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    with build_gateway(settings) as gateway:
        return _migrate(args, settings, gateway)


def _migrate(
    args: argparse.Namespace, settings: Dict[str, Any], gateway: ComputeGateway
) -> int:
    ctx = RunContext(timeout=settings.get("timeout"))

    new_image_id = args.new_image
    if args.new_image_tag:
        tag_key, tag_value = args.new_image_tag
        new_image_id = resolve_image_id(gateway, ctx, tag_key, tag_value)
        console.print(f"[dim]Resolved {tag_key}={tag_value} to image {new_image_id}[/dim]")

    config_values = {
        key: settings[key]
        for key in (
            "compartment_id",
            "enabled_value",
            "instance_id",
            "max_workers",
            "wait_timeout",
            "poll_interval",
            "timeout",
        )
        if settings.get(key) is not None
    }
    config = MigrationConfig(
        new_image_id=new_image_id,
        dry_run=args.dry_run,
        **config_values,
    )

    display_run_header(config)
    report = MigrationOrchestrator(gateway, config).migrate(ctx)

    if report.dry_run:
        display_plan(report)
    display_report(report)

    # Per-instance failures are reported through tags and the table only.
    return 0


def run_status(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    enabled_value = settings.get("enabled_value") or ENABLED_VALUE
    with build_gateway(settings) as gateway:
        instances = gateway.describe_instances_by_tag(RunContext(), TAG_ENABLED, enabled_value)
    display_instances(instances)
    return 0


def run_tag_image(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    tags = dict(args.tag)
    with build_gateway(settings) as gateway:
        gateway.tag_image(RunContext(), args.image_id, tags)
    console.print(f"[green]✓ Tagged image {args.image_id}[/green]")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_arguments(argv)
    configure_logging(verbose=args.verbose)

    try:
        settings = load_settings(args)
        return args.handler(args, settings)
    except SelectionError as exc:
        display_error(f"Selection failed: {exc}")
        return 1
    except (ConfigNotFoundError, FileNotFoundError, yaml.YAMLError, ValueError) as exc:
        display_error(f"Configuration Error: {exc}")
        return 1
    except (MigrationError, RuntimeError) as exc:
        display_error(f"Error: {exc}")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Migration interrupted by user.[/yellow]")
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
