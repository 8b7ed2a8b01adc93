"""
Inventory aggregation for one Azure DevOps organization.

Projects are fetched first and gate every project-scoped collector. The
organization-scoped collectors run whatever the project step returned.
Failed scope units are folded into empty contributions plus warnings.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from . import constants
from .client import AdoClient
from .config import CollectorConfig
from .fetchers import (
    ORGANIZATION_COLLECTORS,
    PROJECT_COLLECTORS,
    fetch_projects,
    run_scope,
)
from .models import FetchResult, OrganizationInventory, inventory_attribute
from .utils import ProgressTracker

logger = logging.getLogger(__name__)

Collector = Callable[[AdoClient, CollectorConfig, str, Sequence[str]], List[FetchResult]]


def fold_results(results: Sequence[FetchResult]) -> Tuple[List[Any], List[str]]:
    """
    Concatenate the records of successful results in scope-unit order and
    collect the reasons of failed ones.
    """
    records: List[Any] = []
    warnings: List[str] = []
    for result in results:
        if result.ok:
            records.extend(result.records)
        else:
            warnings.append(result.error or f"{result.resource_type}: {result.scope} failed")
    return records, warnings


def enabled_resource_types(config: CollectorConfig) -> List[str]:
    """Resource types collected under this configuration, in presentation order."""
    return [
        rt for rt in constants.RESOURCE_TYPES
        if config.include_extended or rt not in constants.EXTENDED_TYPES
    ]


def collect_inventory(
    client: AdoClient,
    organization: str,
    config: Optional[CollectorConfig] = None,
    tracker: Optional[ProgressTracker] = None,
) -> OrganizationInventory:
    """
    Build the inventory of one organization.

    Never raises for platform failures: every list reflects the scope units
    that succeeded, and inventory.warnings lists the ones that did not.
    """
    config = config or client.config
    enabled = enabled_resource_types(config)
    lists: Dict[str, List[Any]] = {}
    warnings: List[str] = []

    def _record(resource_type: str, results: Sequence[FetchResult]) -> None:
        records, failed = fold_results(results)
        lists[inventory_attribute(resource_type)] = records
        warnings.extend(failed)
        if tracker:
            tracker.add_resources(len(records), len(failed))
        label = constants.RESOURCE_LABELS[resource_type]
        logger.info(f"Found {len(records)} {label} in {organization}")

    # 1. Projects
    if tracker:
        tracker.update_task("Collecting Projects...")
    projects_result = run_scope(constants.RESOURCE_PROJECTS, organization, "organization",
                                fetch_projects, client, config, organization)
    _record(constants.RESOURCE_PROJECTS, [projects_result])
    project_names = [p.name for p in lists['projects']]

    # 2. Project-scoped types
    for resource_type, collector in PROJECT_COLLECTORS.items():
        if resource_type not in enabled:
            continue
        if not project_names:
            lists[inventory_attribute(resource_type)] = []
            continue
        if tracker:
            tracker.update_task(f"Collecting {constants.RESOURCE_LABELS[resource_type]}...")
        _record(resource_type, collector(client, config, organization, project_names))

    # 3. Organization-scoped types
    for resource_type, collector in ORGANIZATION_COLLECTORS.items():
        if resource_type not in enabled:
            continue
        if tracker:
            tracker.update_task(f"Collecting {constants.RESOURCE_LABELS[resource_type]}...")
        _record(resource_type, collector(client, config, organization, project_names))

    if warnings:
        logger.warning(f"{organization}: {len(warnings)} scope unit(s) could not be collected")

    return OrganizationInventory(organization=organization, warnings=warnings, **lists)


def collect_organizations(
    credentials: Sequence[Any],
    config: CollectorConfig,
    client_factory: Callable[[str, CollectorConfig], AdoClient] = AdoClient,
    show_progress: bool = True,
) -> List[OrganizationInventory]:
    """
    Collect every organization in turn.

    credentials are objects with organization and token attributes.
    """
    inventories: List[OrganizationInventory] = []
    with ProgressTracker("Azure DevOps", total_organizations=len(credentials),
                         show_progress=show_progress) as tracker:
        for credential in credentials:
            tracker.start_organization(credential.organization)
            client = client_factory(credential.token, config)
            inventories.append(collect_inventory(client, credential.organization, config, tracker))
            tracker.complete_organization()
    return inventories
