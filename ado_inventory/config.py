"""
Azure DevOps Inventory - Configuration Management

Supports loading configuration from:
1. YAML config file (--config)
2. Environment variables (ADO_*)
3. Command-line arguments (highest priority)

Config file example:
```yaml
api_version: "7.1"
export_format: Markdown
export_path: "./reports/ado-inventory"

organizations:
  - name: contoso
    token: ${ADO_PAT_CONTOSO}   # env var substitution
  - name: fabrikam              # falls back to ADO_PAT
```
"""
import logging
import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml  # type: ignore[import-untyped]

from . import constants

logger = logging.getLogger(__name__)


# Default config file locations (checked in order)
DEFAULT_CONFIG_PATHS = [
    './ado-inventory.yaml',
    './ado-inventory.yml',
    '~/.ado-inventory/config.yaml',
    '~/.ado-inventory/config.yml',
]

# Environment variable holding the PAT used for organizations without their own token
TOKEN_ENV_VAR = 'ADO_PAT'

# Mapping from config keys to env vars
ENV_VAR_MAPPING = {
    'organizations': 'ADO_ORGANIZATIONS',
    'api_version': 'ADO_API_VERSION',
    'export_format': 'ADO_EXPORT_FORMAT',
    'export_path': 'ADO_EXPORT_PATH',
    'log_level': 'ADO_LOG_LEVEL',
    'log_dir': 'ADO_LOG_DIR',
    'work_item_limit': 'ADO_WORK_ITEM_LIMIT',
    'pull_request_top': 'ADO_PULL_REQUEST_TOP',
    'timeout': 'ADO_TIMEOUT',
    'retry_attempts': 'ADO_RETRY_ATTEMPTS',
    'parallel_workers': 'ADO_PARALLEL_WORKERS',
    'include_extended': 'ADO_INCLUDE_EXTENDED',
}

_INT_KEYS = ('work_item_limit', 'pull_request_top', 'retry_attempts', 'parallel_workers')
_FLOAT_KEYS = ('timeout',)
_BOOL_KEYS = ('include_extended',)


class ConfigError(ValueError):
    """Raised when a configuration value is invalid."""


def _substitute_env_vars(value: Any) -> Any:
    """Substitute ${ENV_VAR} patterns in string values."""
    if isinstance(value, str):
        # Pattern: ${VAR_NAME} or ${VAR_NAME:-default}
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replace(match):
            var_name = match.group(1)
            default = match.group(2) or ''
            return os.environ.get(var_name, default)

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _split_list(value: str) -> List[str]:
    return [v.strip() for v in value.split(',') if v.strip()]


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML file."""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    # Config files may hold tokens; warn if readable by others
    file_mode = path.stat().st_mode
    if file_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} has loose permissions. "
                       f"Consider: chmod 600 {config_path}")

    logger.info(f"Loading config from {path}")

    with open(path, encoding='utf-8') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    return _substitute_env_vars(config)


def find_default_config() -> Optional[str]:
    """Find a config file in default locations."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded = Path(path).expanduser()
        if expanded.exists():
            return str(expanded)
    return None


def load_env_config() -> Dict[str, Any]:
    """Load configuration from environment variables."""
    config: Dict[str, Any] = {}

    for config_key, env_var in ENV_VAR_MAPPING.items():
        value = os.environ.get(env_var)
        if value is None or value == '':
            continue
        if config_key == 'organizations':
            config[config_key] = _split_list(value)
        elif config_key in _BOOL_KEYS:
            config[config_key] = value.lower() in ('true', '1', 'yes')
        else:
            config[config_key] = value

    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Merge multiple config dicts. Later configs override earlier ones."""
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = merge_configs(result[key], value)
            elif value is not None:
                result[key] = value

    return result


def args_to_config(args) -> Dict[str, Any]:
    """Convert argparse args to config dict format."""
    config: Dict[str, Any] = {}

    arg_mapping = {
        'organizations': 'organizations',
        'api_version': 'api_version',
        'export_format': 'export_format',
        'export_path': 'export_path',
        'log_level': 'log_level',
        'log_dir': 'log_dir',
        'work_item_limit': 'work_item_limit',
        'pull_request_top': 'pull_request_top',
        'timeout': 'timeout',
        'retry_attempts': 'retry_attempts',
        'parallel': 'parallel_workers',
    }

    for arg_name, config_key in arg_mapping.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            if arg_name == 'organizations' and isinstance(value, str):
                value = _split_list(value)
            config[config_key] = value

    if getattr(args, 'basic', False):
        config['include_extended'] = False

    return config


def load_config(args) -> Dict[str, Any]:
    """
    Load configuration from all sources and merge them.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file (--config or default location)
    3. Environment variables

    Returns merged config dict.
    """
    configs = []

    env_config = load_env_config()
    if env_config:
        logger.debug("Loaded config from environment variables")
        configs.append(env_config)

    config_path = getattr(args, 'config', None)
    if config_path:
        configs.append(load_config_file(config_path))
    else:
        default_config = find_default_config()
        if default_config:
            logger.info(f"Found default config file: {default_config}")
            configs.append(load_config_file(default_config))

    configs.append(args_to_config(args))

    return merge_configs(*configs)


# =============================================================================
# Typed Configuration
# =============================================================================

@dataclass(frozen=True)
class CollectorConfig:
    """Settings threaded explicitly through every fetcher call."""
    api_version: str = constants.DEFAULT_API_VERSION
    timeout: float = constants.DEFAULT_TIMEOUT_SECONDS
    retry_attempts: int = constants.DEFAULT_RETRY_ATTEMPTS
    work_item_limit: int = constants.DEFAULT_WORK_ITEM_LIMIT
    pull_request_top: int = constants.DEFAULT_PULL_REQUEST_TOP
    parallel_workers: int = constants.DEFAULT_PARALLEL_WORKERS
    include_extended: bool = True
    export_format: str = constants.EXPORT_FORMAT_NONE
    export_path: str = constants.DEFAULT_EXPORT_PATH
    log_level: str = 'INFO'
    log_dir: Optional[str] = None
    organizations: Tuple[Tuple[str, Optional[str]], ...] = field(default_factory=tuple)

    def version_for(self, resource_type: str) -> str:
        """API version string for a resource type (adds preview suffix where needed)."""
        return f"{self.api_version}{constants.API_VERSION_SUFFIXES.get(resource_type, '')}"


def normalize_export_format(value: Optional[str]) -> str:
    """Map a user-supplied export format onto its canonical spelling."""
    if value is None or value == '':
        return constants.EXPORT_FORMAT_NONE
    for fmt in constants.EXPORT_FORMATS:
        if fmt.lower() == str(value).lower():
            return fmt
    raise ConfigError(
        f"Unknown export format '{value}'. Choose one of: {', '.join(constants.EXPORT_FORMATS)}"
    )


def _parse_organizations(value: Any) -> Tuple[Tuple[str, Optional[str]], ...]:
    """Accept a list of names, a list of {name, token} maps, or a comma-separated string."""
    if not value:
        return ()
    if isinstance(value, str):
        value = _split_list(value)
    if not isinstance(value, list):
        raise ConfigError("organizations must be a list")

    parsed = []
    for entry in value:
        if isinstance(entry, str):
            name, token = entry.strip(), None
        elif isinstance(entry, dict):
            name = str(entry.get('name') or '').strip()
            token = entry.get('token') or None
        else:
            raise ConfigError(f"Invalid organization entry: {entry!r}")
        if not name:
            raise ConfigError("Organization entries need a non-empty name")
        parsed.append((name, token))
    return tuple(parsed)


def _positive(key: str, value: Any, cast) -> Any:
    try:
        result = cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be a number, got {value!r}") from e
    if result <= 0:
        raise ConfigError(f"{key} must be greater than zero, got {value!r}")
    return result


def build_collector_config(merged: Dict[str, Any]) -> CollectorConfig:
    """Validate a merged config dict and freeze it into a CollectorConfig."""
    kwargs: Dict[str, Any] = {}

    for key in _INT_KEYS:
        if merged.get(key) is not None:
            kwargs[key] = _positive(key, merged[key], int)
    for key in _FLOAT_KEYS:
        if merged.get(key) is not None:
            kwargs[key] = _positive(key, merged[key], float)
    for key in _BOOL_KEYS:
        if merged.get(key) is not None:
            value = merged[key]
            if isinstance(value, str):
                value = value.lower() in ('true', '1', 'yes')
            kwargs[key] = bool(value)

    for key in ('api_version', 'export_path', 'log_level', 'log_dir'):
        if merged.get(key):
            kwargs[key] = str(merged[key])

    kwargs['export_format'] = normalize_export_format(merged.get('export_format'))
    kwargs['organizations'] = _parse_organizations(merged.get('organizations'))

    return CollectorConfig(**kwargs)


def generate_sample_config() -> str:
    """Generate a sample config file content."""
    return '''# Azure DevOps Inventory Configuration
#
# Environment variable substitution supported:
#   ${VAR_NAME}           - required env var
#   ${VAR_NAME:-default}  - env var with default value

# Organizations to inventory. Tokens should come from environment variables;
# organizations without a token use ADO_PAT.
organizations:
  - name: my-organization
    token: ${ADO_PAT_MY_ORGANIZATION}
  # - other-organization

# Default REST API version (preview endpoints append their own suffix)
api_version: "7.1"

# Export format: None, CSV, Excel, Markdown
export_format: None

# Export path prefix; timestamp and organization name are appended
export_path: "./ado_inventory_output/ado-inventory"

# Logging level: DEBUG, INFO, WARNING, ERROR
log_level: INFO

# Write a log file to this directory (optional)
# log_dir: ./logs

# Most recently changed work items fetched per project
work_item_limit: 100

# Pull requests fetched per repository and status (active, completed)
pull_request_top: 100

# Per-request timeout in seconds
timeout: 30

# Attempts per request on connection errors (1 = no retry)
retry_attempts: 1

# Threads used for per-project requests (1 = serial)
parallel_workers: 1

# Include agents, service endpoints, release pipelines, variable groups,
# teams, extensions and pull requests
include_extended: true
'''
