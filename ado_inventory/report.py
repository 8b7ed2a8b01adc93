"""
Console report for an organization inventory.

render_inventory() returns the grouped text report; print_inventory_report()
writes it to stdout followed by a rich summary table.
"""
from typing import Any, Callable, Dict, List, Optional, Tuple

from rich.console import Console
from rich.table import Table

from . import constants
from .models import OrganizationInventory


def group_by(records: List[Any], key: Callable[[Any], Any]) -> List[Tuple[Any, List[Any]]]:
    """Group records by key, keeping groups in order of first appearance."""
    groups: Dict[Any, List[Any]] = {}
    for record in records:
        groups.setdefault(key(record), []).append(record)
    return list(groups.items())


def _flag(value: bool, yes: str, no: str) -> str:
    return yes if value else no


def _or(value: Any, default: str = "n/a") -> Any:
    return default if value in (None, "") else value


def _branch(ref: Optional[str]) -> str:
    if not ref:
        return "n/a"
    return ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref


# One example line per record, by resource type
LINE_FORMATTERS: Dict[str, Callable[[Any], str]] = {
    constants.RESOURCE_PROJECTS:
        lambda p: f"{p.name} ({_or(p.state)}, {_or(p.visibility)})",
    constants.RESOURCE_REPOSITORIES:
        lambda r: f"{r.name} (default branch: {_branch(r.default_branch)}, {r.size:,} bytes"
                  f"{', disabled' if r.is_disabled else ''})",
    constants.RESOURCE_PIPELINES:
        lambda p: f"{p.name} (folder: {_or(p.folder)})",
    constants.RESOURCE_WIKIS:
        lambda w: f"{w.name} ({_or(w.wiki_type)})",
    constants.RESOURCE_BOARDS:
        lambda b: b.name,
    constants.RESOURCE_WORK_ITEMS:
        lambda w: f"#{w.id} [{_or(w.work_item_type)}] {_or(w.title, '')} ({_or(w.state)})",
    constants.RESOURCE_TEST_PLANS:
        lambda t: f"{t.name} ({_or(t.state)})",
    constants.RESOURCE_DASHBOARDS:
        lambda d: d.name,
    constants.RESOURCE_ARTIFACT_FEEDS:
        lambda f: f"{f.name} (upstream sources: {f.upstream_source_count})",
    constants.RESOURCE_AGENTS:
        lambda a: f"{a.name} {_or(a.version, '')} ({_or(a.status)}, "
                  f"{_flag(a.enabled, 'enabled', 'disabled')})",
    constants.RESOURCE_SERVICE_ENDPOINTS:
        lambda s: f"{s.name} ({_or(s.endpoint_type)}{', shared' if s.is_shared else ''})",
    constants.RESOURCE_RELEASE_PIPELINES:
        lambda r: f"{r.name} (path: {_or(r.path)})",
    constants.RESOURCE_VARIABLE_GROUPS:
        lambda v: f"{v.name} ({v.variable_count} variables)",
    constants.RESOURCE_TEAMS:
        lambda t: f"{t.name} ({_or(t.member_count, 'unknown')} members)",
    constants.RESOURCE_EXTENSIONS:
        lambda e: f"{e.name} {_or(e.version, '')} by {_or(e.publisher_name)}",
    constants.RESOURCE_PULL_REQUESTS:
        lambda p: f"!{p.id} {_or(p.title, '')} ({p.repository}: "
                  f"{_branch(p.source_branch)} -> {_branch(p.target_branch)})",
}

# Grouping key per resource type; types not listed render as one flat list
GROUP_KEYS: Dict[str, Tuple[str, Callable[[Any], Any]]] = {
    constants.RESOURCE_AGENTS: ("Pool", lambda a: a.pool_name),
}


def _section_header(title: str) -> List[str]:
    return ["", title, "-" * len(title)]


def _render_group(lines: List[str], records: List[Any], fmt: Callable[[Any], str],
                  limit: Optional[int], indent: str) -> None:
    shown = records if limit is None else records[:limit]
    for record in shown:
        lines.append(f"{indent}- {fmt(record).rstrip()}")
    hidden = len(records) - len(shown)
    if hidden > 0:
        lines.append(f"{indent}... +{hidden} more")


def render_section(resource_type: str, records: List[Any]) -> List[str]:
    """Render one resource type: header, grouped examples and total."""
    label = constants.RESOURCE_LABELS[resource_type]
    lines = _section_header(label)

    if not records:
        lines.append(f"  No {label.lower()} found")
        return lines

    fmt = LINE_FORMATTERS[resource_type]
    limit = constants.REPORT_EXAMPLE_LIMITS.get(resource_type)

    if resource_type == constants.RESOURCE_PULL_REQUESTS:
        for status, by_status in group_by(records, lambda p: p.status):
            lines.append(f"  Status: {_or(status, 'unknown')} ({len(by_status)})")
            for project, by_project in group_by(by_status, lambda p: p.project):
                lines.append(f"    Project: {project} ({len(by_project)})")
                _render_group(lines, by_project, fmt, limit, indent="      ")
    elif resource_type in GROUP_KEYS:
        title, key = GROUP_KEYS[resource_type]
        for value, group in group_by(records, key):
            lines.append(f"  {title}: {value} ({len(group)})")
            _render_group(lines, group, fmt, limit, indent="    ")
    elif hasattr(records[0], 'project'):
        for project, group in group_by(records, lambda r: r.project):
            lines.append(f"  Project: {project} ({len(group)})")
            _render_group(lines, group, fmt, limit, indent="    ")
    else:
        _render_group(lines, records, fmt, limit, indent="  ")

    lines.append(f"  Total {label}: {len(records)}")
    return lines


def render_inventory(inventory: OrganizationInventory) -> str:
    """Render the full console report for one organization."""
    title = f"Azure DevOps Inventory: {inventory.organization}"
    lines = ["=" * 60, title, "=" * 60]
    for resource_type in constants.RESOURCE_TYPES:
        lines.extend(render_section(resource_type, inventory.records(resource_type)))
    lines.append("")
    return "\n".join(lines)


def build_summary_table(inventory: OrganizationInventory) -> Table:
    """Count per resource type as a rich table."""
    table = Table(title=f"{inventory.organization} Summary")
    table.add_column("Resource Type", style="cyan")
    table.add_column("Count", style="green", justify="right")
    for resource_type, count in inventory.counts().items():
        table.add_row(constants.RESOURCE_LABELS[resource_type], f"{count:,}")
    table.add_row("Total", f"{inventory.total_records:,}", style="bold")
    if inventory.warnings:
        table.add_row("Warnings", str(len(inventory.warnings)), style="yellow")
    return table


def print_inventory_report(inventory: OrganizationInventory, console: Optional[Console] = None) -> str:
    """Print the report and summary table to stdout; returns the report text."""
    console = console or Console()
    text = render_inventory(inventory)
    console.print(text, markup=False, highlight=False)
    console.print(build_summary_table(inventory))
    if inventory.warnings:
        console.print(f"Collection warnings ({len(inventory.warnings)}):", style="yellow")
        for warning in inventory.warnings:
            console.print(f"  - {warning}", markup=False, highlight=False)
    return text
