"""
Azure DevOps inventory collector library.
"""
from . import constants
from .client import AdoClient, AdoRequestError, build_url, get_auth_header
from .config import CollectorConfig, ConfigError, build_collector_config, load_config
from .credentials import Credential, CredentialPrompter, credentials_from_config
from .exporters import (
    OPENPYXL_AVAILABLE,
    build_base_path,
    export_csv,
    export_excel,
    export_inventory,
    export_markdown,
    render_markdown,
)
from .inventory import collect_inventory, collect_organizations, fold_results
from .models import RECORD_TYPES, FetchResult, OrganizationInventory
from .report import print_inventory_report, render_inventory
from .utils import get_file_timestamp, setup_logging

__all__ = [
    'constants',
    # Transport
    'AdoClient',
    'AdoRequestError',
    'build_url',
    'get_auth_header',
    # Configuration
    'CollectorConfig',
    'ConfigError',
    'build_collector_config',
    'load_config',
    # Credentials
    'Credential',
    'CredentialPrompter',
    'credentials_from_config',
    # Models
    'RECORD_TYPES',
    'FetchResult',
    'OrganizationInventory',
    # Aggregation
    'collect_inventory',
    'collect_organizations',
    'fold_results',
    # Output
    'render_inventory',
    'print_inventory_report',
    'OPENPYXL_AVAILABLE',
    'build_base_path',
    'export_inventory',
    'export_csv',
    'export_excel',
    'export_markdown',
    'render_markdown',
    # Utils
    'get_file_timestamp',
    'setup_logging',
]
