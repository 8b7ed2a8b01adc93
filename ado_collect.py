#!/usr/bin/env python3
"""
Azure DevOps Inventory Collector.

Collects a read-only inventory of one or more Azure DevOps organizations:
projects, repositories, pipelines, wikis, boards, work items, test plans,
dashboards and artifact feeds, plus (unless --basic) agents, service
endpoints, release pipelines, variable groups, teams, extensions and pull
requests. Prints a grouped report per organization and optionally exports
it to CSV, Excel or Markdown.
"""
import argparse
import getpass
import logging
import sys
from typing import Callable, List, Optional

import yaml  # type: ignore[import-untyped]

from ado_inventory import constants
from ado_inventory.config import (
    ConfigError,
    TOKEN_ENV_VAR,
    build_collector_config,
    generate_sample_config,
    load_config,
)
from ado_inventory.credentials import (
    Credential,
    CredentialPrompter,
    credentials_from_config,
    default_probe,
)
from ado_inventory.exporters import build_base_path, export_inventory
from ado_inventory.inventory import collect_organizations
from ado_inventory.report import print_inventory_report
from ado_inventory.utils import get_file_timestamp, setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Azure DevOps Inventory Collector',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  # One organization, token from the environment
  export {TOKEN_ENV_VAR}="your-personal-access-token"
  python3 ado_collect.py --organizations contoso

  # Several organizations, Excel export
  python3 ado_collect.py --organizations contoso,fabrikam --export-format Excel

  # Enter organizations and tokens interactively
  python3 ado_collect.py --interactive --export-format Markdown

  # Basic resource types only, four threads per resource type
  python3 ado_collect.py --organizations contoso --basic --parallel 4

  # Use a config file (see --generate-config)
  python3 ado_collect.py --config ado-inventory.yaml

Security Note:
  Tokens are never accepted as command-line arguments. Use {TOKEN_ENV_VAR},
  ${{VAR}} substitution in the config file, or --interactive.
  The token needs read access to every area being inventoried.
"""
    )

    # Basic options
    parser.add_argument('--config', '-c', help='Path to YAML config file')
    parser.add_argument('--generate-config', action='store_true',
                        help='Generate a sample config file and exit')
    parser.add_argument('--organizations', '-o',
                        help='Comma-separated list of organization names')
    parser.add_argument('--interactive', '-i', action='store_true',
                        help='Prompt for organizations and tokens')
    parser.add_argument('--api-version',
                        help=f'REST API version (default: {constants.DEFAULT_API_VERSION})')

    # Output options
    parser.add_argument('--export-format', type=str.strip,
                        help='Export format: None, CSV, Excel or Markdown (default: None)')
    parser.add_argument('--export-path',
                        help=f'Export path prefix (default: {constants.DEFAULT_EXPORT_PATH})')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')
    parser.add_argument('--log-dir', help='Also write a log file to this directory')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable the progress display')

    # Collection options
    parser.add_argument('--work-item-limit', type=int, metavar='N',
                        help=f'Most recently changed work items per project '
                             f'(default: {constants.DEFAULT_WORK_ITEM_LIMIT})')
    parser.add_argument('--pull-request-top', type=int, metavar='N',
                        help=f'Pull requests per repository and status '
                             f'(default: {constants.DEFAULT_PULL_REQUEST_TOP})')
    parser.add_argument('--timeout', type=float, metavar='SECONDS',
                        help=f'Per-request timeout (default: {constants.DEFAULT_TIMEOUT_SECONDS:g})')
    parser.add_argument('--retry-attempts', type=int, metavar='N',
                        help='Attempts per request on connection errors (default: 1, no retry)')
    parser.add_argument('--parallel', type=int, metavar='N',
                        help='Threads used per resource type (default: 1, serial)')
    parser.add_argument('--basic', action='store_true',
                        help='Collect only the basic resource types')

    return parser


def main(
    argv: Optional[List[str]] = None,
    input_fn: Callable[[str], str] = input,
    secret_fn: Callable[[str], str] = getpass.getpass,
) -> int:
    args = build_parser().parse_args(argv)

    # Handle --generate-config
    if args.generate_config:
        print(generate_sample_config())
        return 0

    setup_logging(args.log_level or 'INFO')

    # Load configuration from file/env/args
    try:
        config = build_collector_config(load_config(args))
    except (ConfigError, FileNotFoundError, yaml.YAMLError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    setup_logging(config.log_level, output_dir=config.log_dir)

    credentials: List[Credential] = []
    if not args.interactive:
        credentials = credentials_from_config(config)
    if not credentials:
        if not args.interactive:
            print("No organizations configured. Enter one now, or press Ctrl+C to exit.")
            print(f"(Use --organizations with {TOKEN_ENV_VAR}, or --config, to skip this step.)\n")
        prompter = CredentialPrompter(default_probe(config), input_fn=input_fn, secret_fn=secret_fn)
        credentials = prompter.acquire()
    if not credentials:
        print("No organizations to inventory. Exiting.")
        return 0

    inventories = collect_organizations(credentials, config, show_progress=not args.no_progress)

    for inventory in inventories:
        print_inventory_report(inventory)

    if config.export_format == constants.EXPORT_FORMAT_NONE:
        return 0

    timestamp = get_file_timestamp()
    for inventory in inventories:
        base_path = build_base_path(config.export_path, inventory.organization, timestamp)
        written = export_inventory(inventory, base_path, config.export_format)
        for path in written:
            print(f"Exported: {path}")
        if not written:
            print(f"Nothing exported for {inventory.organization}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
