"""CLI commands for zendesk-archive-gateway.

- validate-config: load and validate instance settings
- dump-config: print settings as JSON with secrets redacted
- validate-tenants: run the tenant validator over a tenants.json document
- show-deprecated: list deprecated environment variables in use
"""
from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping
from pathlib import Path

from zendesk_archive_gateway.config.env_aliases import deprecated_in_use
from zendesk_archive_gateway.config.load import load_settings
from zendesk_archive_gateway.config.redact import redact_settings_dict
from zendesk_archive_gateway.config.validate import ConfigValidationError
from zendesk_archive_gateway.domain.tenant_validate import (
    TenantConfigError,
    parse_tenant_config,
    validate_tenant_config,
)


def cmd_validate_config(args: argparse.Namespace) -> int:
    """Validate configuration and exit with appropriate code.

    Exit codes:
        0: Configuration is valid
        1: Configuration is invalid
        2: Configuration file not found (when CONFIG_PATH is set)
    """
    try:
        settings = load_settings()
    except ConfigValidationError as e:
        if any(issue.path == "CONFIG_PATH" for issue in e.issues):
            print(f"✗ Configuration file not found: {e}", file=sys.stderr)
            return 2
        print(f"✗ {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"✗ Configuration is invalid: {e}", file=sys.stderr)
        return 1

    print("✓ Configuration is valid")
    print(f"  - Tenants backend: {settings.tenants.backend}")
    if settings.tenants.backend == "file":
        print(f"  - Tenants file: {settings.tenants.file}")
    print(f"  - Audit backend: {settings.audit.backend}")
    print(f"  - Audit query enabled: {settings.audit.secret is not None}")
    print(f"  - Metrics enabled: {settings.observability.metrics_enabled}")
    return 0


def cmd_dump_config(args: argparse.Namespace) -> int:
    """Dump current configuration as JSON (with secrets redacted)."""
    try:
        settings = load_settings()
    except Exception as e:
        print(f"✗ Failed to load configuration: {e}", file=sys.stderr)
        return 1
    redacted = redact_settings_dict(settings.model_dump(mode="json"))
    print(json.dumps(redacted, indent=2, default=str))
    return 0


def _tenants_path(args: argparse.Namespace) -> Path:
    if args.file:
        return Path(args.file)
    return load_settings().tenants.file


def cmd_validate_tenants(args: argparse.Namespace) -> int:
    """Validate every entry of a tenants document.

    Exit codes:
        0: All tenants are valid
        1: At least one tenant is invalid
        2: The document could not be read
    """
    try:
        path = _tenants_path(args)
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"✗ Unable to read tenants document: {e}", file=sys.stderr)
        return 2

    entries = document.get("tenants") if isinstance(document, Mapping) else None
    if not isinstance(entries, list):
        print('✗ Tenants document must be an object with a "tenants" list', file=sys.stderr)
        return 2

    failures = 0
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            print(f"✗ tenants[{index}]: entry is not an object")
            failures += 1
            continue
        try:
            config = parse_tenant_config(entry)
            validate_tenant_config(config)
        except TenantConfigError as e:
            print(f"✗ tenants[{index}]: {e}")
            failures += 1
            continue
        endpoints = ", ".join(sorted(config.endpoints))
        print(f"✓ {config.label} (brand {config.brand_id}; endpoints: {endpoints})")

    print()
    print(f"{len(entries) - failures}/{len(entries)} tenants valid")
    return 1 if failures else 0


def cmd_show_deprecated(args: argparse.Namespace) -> int:
    """Show deprecated environment variables that are in use."""
    found = deprecated_in_use()
    if not found:
        print("No deprecated environment variables in use.")
        return 0

    print("Deprecated environment variables detected:")
    print()
    for old_name, new_name, needs_migration in found:
        status = "⚠️  NEEDS MIGRATION" if needs_migration else "ℹ️  Has canonical override"
        print(f"  {old_name} → {new_name} {status}")

    print()
    print("These variables will be removed in a future version.")
    print("Please migrate to the canonical names.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zendesk-archive-gateway",
        description="Zendesk archive gateway CLI utilities",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    validate_parser = subparsers.add_parser(
        "validate-config",
        help="Validate configuration and exit",
    )
    validate_parser.set_defaults(func=cmd_validate_config)

    dump_parser = subparsers.add_parser(
        "dump-config",
        help="Dump configuration as JSON (secrets redacted)",
    )
    dump_parser.set_defaults(func=cmd_dump_config)

    tenants_parser = subparsers.add_parser(
        "validate-tenants",
        help="Validate a tenants.json document",
    )
    tenants_parser.add_argument(
        "--file",
        default=None,
        help="Path to the tenants document (default: tenants.file from settings)",
    )
    tenants_parser.set_defaults(func=cmd_validate_tenants)

    deprecated_parser = subparsers.add_parser(
        "show-deprecated",
        help="Show deprecated environment variables in use",
    )
    deprecated_parser.set_defaults(func=cmd_show_deprecated)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
