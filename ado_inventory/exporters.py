"""
Exporters for organization inventories.

- CSV:      one file per non-empty resource type, {base}-{ResourceType}.csv
- Excel:    one worksheet per non-empty resource type in {base}.xlsx
            (falls back to CSV when openpyxl is not installed)
- Markdown: one report at {base}.md with a summary table and a curated
            table per non-empty resource type

Export failures are logged and skipped; they never abort a run.
"""
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from . import constants
from .models import RECORD_TYPES, OrganizationInventory, column_name
from .utils import atomic_write, ensure_parent_dir, get_timestamp, write_csv, write_text

try:
    from openpyxl import Workbook  # type: ignore[import-not-found]
    from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE  # type: ignore[import-not-found]
    from openpyxl.styles import Alignment, Border, Font, PatternFill, Side  # type: ignore[import-not-found]
    from openpyxl.utils import get_column_letter  # type: ignore[import-not-found]
    OPENPYXL_AVAILABLE = True
except ImportError:
    OPENPYXL_AVAILABLE = False

logger = logging.getLogger(__name__)


def _non_empty(inventory: OrganizationInventory) -> List[Tuple[str, List[Any]]]:
    return [
        (rt, inventory.records(rt))
        for rt in constants.RESOURCE_TYPES
        if inventory.records(rt)
    ]


def _prepare_output_dir(base_path: str) -> bool:
    try:
        ensure_parent_dir(base_path)
    except OSError as e:
        logger.warning(f"Could not create output directory for {base_path}: {e}")
        return False
    return True


def build_base_path(prefix: str, organization: str, timestamp: str) -> str:
    """{prefix}-{timestamp}-{organization}, the stem shared by all artifacts."""
    return f"{prefix}-{timestamp}-{organization}"


# =============================================================================
# CSV
# =============================================================================

def export_csv(inventory: OrganizationInventory, base_path: str) -> List[str]:
    """Write one CSV per non-empty resource type; returns the written paths."""
    if not _prepare_output_dir(base_path):
        return []

    written = []
    for resource_type, records in _non_empty(inventory):
        path = f"{base_path}-{resource_type}.csv"
        try:
            write_csv([r.to_row() for r in records], path,
                      fieldnames=RECORD_TYPES[resource_type].columns())
        except OSError as e:
            logger.warning(f"Failed to write {path}: {e}")
            continue
        written.append(path)
    return written


# =============================================================================
# Excel
# =============================================================================

# Column widths by exported column name; others use a default
EXCEL_COLUMN_WIDTHS = {
    'Organization': 18, 'Project': 22, 'Name': 32, 'Id': 38, 'Title': 50,
    'Description': 45, 'Url': 60, 'WebUrl': 60, 'RemoteUrl': 60,
    'Repository': 28, 'PoolName': 22, 'SourceBranch': 30, 'TargetBranch': 30,
}


def _excel_value(value: Any) -> Any:
    if value is None or isinstance(value, (int, float, bool)):
        return value
    # Control characters are not allowed in worksheet XML
    return ILLEGAL_CHARACTERS_RE.sub("", str(value))


def create_resource_sheet(wb: Any, resource_type: str, records: List[Any]) -> None:
    """Create one worksheet holding every record of a resource type."""
    header_fill = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
    thin_border = Border(
        left=Side(style='thin'), right=Side(style='thin'),
        top=Side(style='thin'), bottom=Side(style='thin')
    )
    header_font = Font(name="Calibri", size=11, bold=True, color="FFFFFF")

    # Sheet titles are limited to 31 characters
    ws = wb.create_sheet(resource_type[:31])
    columns = RECORD_TYPES[resource_type].columns()

    for col, name in enumerate(columns, 1):
        cell = ws.cell(row=1, column=col, value=name)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal='center')
        cell.border = thin_border

    row = 2
    for record in records:
        values = record.to_row()
        for col, name in enumerate(columns, 1):
            cell = ws.cell(row=row, column=col, value=_excel_value(values[name]))
            if isinstance(cell.value, str):
                # Text such as "=1+1" stays text, never a formula
                cell.data_type = 's'
            cell.border = thin_border
        row += 1

    ws.auto_filter.ref = f"A1:{get_column_letter(len(columns))}{row - 1}"
    ws.freeze_panes = "A2"
    for col, name in enumerate(columns, 1):
        ws.column_dimensions[get_column_letter(col)].width = EXCEL_COLUMN_WIDTHS.get(name, 16)


def export_excel(inventory: OrganizationInventory, base_path: str) -> List[str]:
    """Write a multi-sheet workbook; falls back to CSV without openpyxl."""
    if not OPENPYXL_AVAILABLE:
        logger.warning("openpyxl not installed. Falling back to CSV export. "
                       "Install with: pip install openpyxl")
        return export_csv(inventory, base_path)

    sections = _non_empty(inventory)
    if not sections:
        logger.info(f"Nothing to export for {inventory.organization}")
        return []
    if not _prepare_output_dir(base_path):
        return []

    wb = Workbook()
    wb.remove(wb.active)
    for resource_type, records in sections:
        try:
            create_resource_sheet(wb, resource_type, records)
        except Exception as e:
            logger.warning(f"Skipping {resource_type} sheet for {inventory.organization}: {e}")
            if resource_type[:31] in wb.sheetnames:
                wb.remove(wb[resource_type[:31]])

    if not wb.sheetnames:
        logger.warning(f"No worksheets could be built for {inventory.organization}")
        return []

    path = f"{base_path}.xlsx"
    try:
        atomic_write(path, wb.save)
    except OSError as e:
        logger.warning(f"Failed to write {path}: {e}")
        return []
    logger.info(f"Wrote {path}")
    return [path]


# =============================================================================
# Markdown
# =============================================================================

def escape_markdown_cell(value: Any) -> str:
    """Make a value safe for a Markdown table cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    text = str(value).replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    return text.replace("|", "\\|").strip()


# Curated columns per resource type (attribute names)
MARKDOWN_COLUMNS: Dict[str, Sequence[str]] = {
    constants.RESOURCE_PROJECTS: ('name', 'state', 'visibility', 'description', 'last_update_time'),
    constants.RESOURCE_REPOSITORIES: ('project', 'name', 'default_branch', 'size', 'is_disabled'),
    constants.RESOURCE_PIPELINES: ('project', 'name', 'folder', 'revision'),
    constants.RESOURCE_WIKIS: ('project', 'name', 'wiki_type', 'mapped_path'),
    constants.RESOURCE_BOARDS: ('project', 'name'),
    constants.RESOURCE_WORK_ITEMS: ('project', 'id', 'work_item_type', 'title', 'state',
                                    'assigned_to', 'changed_date'),
    constants.RESOURCE_TEST_PLANS: ('project', 'name', 'state', 'owner', 'iteration'),
    constants.RESOURCE_DASHBOARDS: ('project', 'name', 'description'),
    constants.RESOURCE_ARTIFACT_FEEDS: ('name', 'description', 'upstream_enabled',
                                        'upstream_source_count'),
    constants.RESOURCE_AGENTS: ('pool_name', 'name', 'version', 'status', 'enabled',
                                'os_description'),
    constants.RESOURCE_SERVICE_ENDPOINTS: ('project', 'name', 'endpoint_type',
                                           'authorization_scheme', 'is_shared', 'is_ready'),
    constants.RESOURCE_RELEASE_PIPELINES: ('project', 'name', 'path', 'created_by', 'modified_on'),
    constants.RESOURCE_VARIABLE_GROUPS: ('project', 'name', 'group_type', 'variable_count',
                                         'modified_on'),
    constants.RESOURCE_TEAMS: ('project', 'name', 'member_count', 'description'),
    constants.RESOURCE_EXTENSIONS: ('name', 'publisher_name', 'version', 'last_published'),
    constants.RESOURCE_PULL_REQUESTS: ('project', 'repository', 'id', 'title', 'status',
                                       'created_by', 'creation_date'),
}

# Row limits and their ordering, by resource type
MARKDOWN_LIMITS: Dict[str, Tuple[int, Callable[[Any], Any]]] = {
    constants.RESOURCE_PULL_REQUESTS: (
        constants.MARKDOWN_PULL_REQUEST_LIMIT,
        lambda pr: pr.creation_date or "",
    ),
}


def markdown_table(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> List[str]:
    lines = [
        "| " + " | ".join(escape_markdown_cell(h) for h in headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    for row in rows:
        lines.append("| " + " | ".join(escape_markdown_cell(v) for v in row) + " |")
    return lines


def render_markdown_section(resource_type: str, records: List[Any]) -> List[str]:
    """Heading plus table for one resource type, truncated where a limit applies."""
    label = constants.RESOURCE_LABELS[resource_type]
    attributes = MARKDOWN_COLUMNS[resource_type]
    shown = records
    note: Optional[str] = None

    if resource_type in MARKDOWN_LIMITS:
        limit, sort_key = MARKDOWN_LIMITS[resource_type]
        shown = sorted(records, key=sort_key, reverse=True)[:limit]
        if len(records) > limit:
            note = f"_Showing {len(shown)} of {len(records)} {label.lower()}, most recent first._"

    lines = [f"## {label}", ""]
    rows = [[getattr(r, a) for a in attributes] for r in shown]
    lines.extend(markdown_table([column_name(a) for a in attributes], rows))
    if note:
        lines.extend(["", note])
    lines.append("")
    return lines


def render_markdown(inventory: OrganizationInventory, generated_at: Optional[str] = None) -> str:
    """Full Markdown document for one organization."""
    lines = [
        f"# Azure DevOps Inventory: {escape_markdown_cell(inventory.organization)}",
        "",
        f"Generated: {generated_at or get_timestamp()}",
        "",
        "## Summary",
        "",
    ]
    lines.extend(markdown_table(
        ["Resource Type", "Count"],
        [[constants.RESOURCE_LABELS[rt], count] for rt, count in inventory.counts().items()],
    ))
    lines.append("")
    if inventory.warnings:
        lines.append(f"_{len(inventory.warnings)} scope unit(s) could not be collected; "
                     f"see the collection log._")
        lines.append("")

    for resource_type, records in _non_empty(inventory):
        lines.extend(render_markdown_section(resource_type, records))
    return "\n".join(lines)


def export_markdown(inventory: OrganizationInventory, base_path: str) -> List[str]:
    """Write the Markdown report; returns the written path."""
    if not _prepare_output_dir(base_path):
        return []
    path = f"{base_path}.md"
    try:
        write_text(render_markdown(inventory), path)
    except OSError as e:
        logger.warning(f"Failed to write {path}: {e}")
        return []
    return [path]


EXPORTERS: Dict[str, Callable[[OrganizationInventory, str], List[str]]] = {
    constants.EXPORT_FORMAT_CSV: export_csv,
    constants.EXPORT_FORMAT_EXCEL: export_excel,
    constants.EXPORT_FORMAT_MARKDOWN: export_markdown,
}


def export_inventory(inventory: OrganizationInventory, base_path: str, fmt: str) -> List[str]:
    """
    Export an inventory in the requested format.

    Returns the list of written artifact paths (empty for format None).
    """
    for name, exporter in EXPORTERS.items():
        if name.lower() == str(fmt).lower():
            written = exporter(inventory, base_path)
            for path in written:
                logger.debug(f"Exported {os.path.basename(path)}")
            return written
    if str(fmt).lower() == constants.EXPORT_FORMAT_NONE.lower():
        return []
    raise ValueError(f"Unknown export format: {fmt}")
