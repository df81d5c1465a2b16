"""CLI entry point: export, columns."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys

from scripts.extattrs.config import load_config
from scripts.extattrs.exporter import export_extension_attributes
from scripts.extattrs.logging_config import configure_logging
from scripts.extattrs.projector import output_fields

logger = logging.getLogger("extattrs.cli")


def cmd_export(args: argparse.Namespace) -> None:
    """Fetch extension attributes and print them or write a CSV."""
    try:
        config = load_config(args.tenant_id)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)
    if not config.tenant_id:
        logger.error("No tenant given; pass --tenant-id or set TENANT_ID")
        sys.exit(2)
    if args.output_dir:
        config = dataclasses.replace(config, output_dir=args.output_dir)

    try:
        result = export_extension_attributes(
            config.tenant_id,
            all_users=args.all,
            user=args.user,
            include_guest_info=args.guest_info,
            write_to_file=args.output_file,
            config=config,
        )
    except ValueError as exc:
        logger.error("Invalid arguments: %s", exc)
        sys.exit(2)

    if result.output_path:
        print(result.output_path)
    elif not args.output_file:
        print(json.dumps(result.records, indent=2))

    if not result.ok:
        logger.warning("Export incomplete: %s", result.message)
        sys.exit(1)


def cmd_columns(args: argparse.Namespace) -> None:
    """Show the CSV header for the selected mode."""
    print(",".join(output_fields(args.guest_info)))


def main() -> None:
    """Main CLI entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    parser = argparse.ArgumentParser(
        prog="extattrs",
        description="Export directory users' extension attributes from Microsoft Graph",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # export command
    export_parser = subparsers.add_parser("export", help="Fetch extension attributes")
    export_parser.add_argument(
        "--tenant-id", "-t",
        help="Directory tenant ID or domain (default: TENANT_ID env var)",
    )
    target = export_parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--all", "-a",
        action="store_true",
        help="Export every user in the tenant",
    )
    target.add_argument(
        "--user", "-u",
        help="Export one user by object ID or user principal name",
    )
    export_parser.add_argument(
        "--guest-info", "-g",
        action="store_true",
        help="Include userType, createdDateTime, externalUserState and creationType",
    )
    export_parser.add_argument(
        "--output-file", "-o",
        action="store_true",
        help="Write a dated CSV instead of printing JSON",
    )
    export_parser.add_argument(
        "--output-dir",
        help="Directory for the CSV (default: OUTPUT_DIR env var or cwd)",
    )
    export_parser.set_defaults(func=cmd_export)

    # columns command
    columns_parser = subparsers.add_parser("columns", help="Show the output columns")
    columns_parser.add_argument(
        "--guest-info", "-g",
        action="store_true",
        help="Include the guest-info columns",
    )
    columns_parser.set_defaults(func=cmd_columns)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
