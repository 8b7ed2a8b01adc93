"""
Tests for ado_inventory/exporters.py.

Covers:
- artifact naming
- CSV export round trip
- Excel workbook contents and the CSV fallback without openpyxl
- Markdown rendering, escaping and pull request truncation
- export_inventory format dispatch
"""
import csv
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ado_inventory import constants, exporters
from ado_inventory.exporters import (
    OPENPYXL_AVAILABLE,
    build_base_path,
    escape_markdown_cell,
    export_csv,
    export_excel,
    export_inventory,
    export_markdown,
    render_markdown,
)
from ado_inventory.models import (
    Agent,
    OrganizationInventory,
    Project,
    PullRequest,
    Repository,
    WorkItem,
)


@pytest.fixture
def inventory():
    """Inventory with projects, repositories and agents only."""
    return OrganizationInventory(
        organization="contoso",
        projects=[
            Project(organization="contoso", name="Web", id="p1", state="wellFormed",
                    visibility="private", description="Public | site"),
            Project(organization="contoso", name="Ops", id="p2"),
        ],
        repositories=[
            Repository(organization="contoso", project="Web", name="site", id="r1",
                       default_branch="refs/heads/main", size=2048, is_disabled=True),
        ],
        agents=[
            Agent(organization="contoso", pool_name="Default", pool_id=1, name="build-01", id=7,
                  version="3.232.0", status="online", enabled=True),
        ],
    )


def make_pull_requests(count):
    return [
        PullRequest(organization="contoso", project="Web", repository="site", id=i,
                    title=f"PR {i}", status="completed",
                    creation_date=f"2024-01-01T{i // 60:02d}:{i % 60:02d}:00Z")
        for i in range(count)
    ]


def csv_expected(record):
    return {k: "" if v is None else str(v) for k, v in record.to_row().items()}


def suffixes(paths, base_path):
    return sorted(p[len(base_path):] for p in paths)


# =============================================================================
# Naming
# =============================================================================

class TestBuildBasePath:
    """Tests for build_base_path."""

    def test_prefix_timestamp_organization(self):
        assert build_base_path("./out/ado-inventory", "contoso", "20240501-101500") == \
            "./out/ado-inventory-20240501-101500-contoso"


# =============================================================================
# CSV
# =============================================================================

class TestExportCsv:
    """Tests for export_csv."""

    def test_one_file_per_non_empty_type(self, inventory, tmp_path):
        base = str(tmp_path / "out" / "inv-20240501-101500-contoso")
        written = export_csv(inventory, base)

        assert suffixes(written, base) == ["-Agents.csv", "-Projects.csv", "-Repositories.csv"]
        assert all(os.path.exists(p) for p in written)

    def test_round_trip(self, inventory, tmp_path):
        base = str(tmp_path / "inv")
        export_csv(inventory, base)

        with open(f"{base}-Projects.csv", newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            assert reader.fieldnames == Project.columns()
            rows = list(reader)

        assert rows == [csv_expected(p) for p in inventory.projects]

    def test_booleans_and_numbers(self, inventory, tmp_path):
        base = str(tmp_path / "inv")
        export_csv(inventory, base)

        with open(f"{base}-Repositories.csv", newline="", encoding="utf-8") as f:
            row = next(csv.DictReader(f))
        assert row["IsDisabled"] == "True"
        assert row["Size"] == "2048"

    def test_empty_inventory_writes_nothing(self, tmp_path):
        base = str(tmp_path / "inv")
        assert export_csv(OrganizationInventory(organization="contoso"), base) == []
        assert os.listdir(tmp_path) == []


# =============================================================================
# Excel
# =============================================================================

class TestExportExcel:
    """Tests for export_excel."""

    @pytest.mark.skipif(not OPENPYXL_AVAILABLE, reason="openpyxl not installed")
    def test_one_sheet_per_non_empty_type(self, inventory, tmp_path):
        from openpyxl import load_workbook

        base = str(tmp_path / "inv")
        written = export_excel(inventory, base)

        assert written == [f"{base}.xlsx"]
        wb = load_workbook(written[0])
        assert wb.sheetnames == ["Projects", "Repositories", "Agents"]

        ws = wb["Repositories"]
        header = [cell.value for cell in ws[1]]
        assert header == Repository.columns()
        values = dict(zip(header, [cell.value for cell in ws[2]]))
        assert values["Name"] == "site"
        assert values["Size"] == 2048
        assert values["IsDisabled"] is True
        assert ws.freeze_panes == "A2"
        assert ws.max_row == 2

    @pytest.mark.skipif(not OPENPYXL_AVAILABLE, reason="openpyxl not installed")
    def test_header_styling(self, inventory, tmp_path):
        from openpyxl import load_workbook

        written = export_excel(inventory, str(tmp_path / "inv"))
        cell = load_workbook(written[0])["Projects"]["A1"]
        assert cell.font.bold
        assert cell.fill.start_color.rgb.endswith("1F4E79")

    @pytest.mark.skipif(not OPENPYXL_AVAILABLE, reason="openpyxl not installed")
    def test_control_characters_are_stripped(self, tmp_path):
        from openpyxl import load_workbook

        inventory = OrganizationInventory(
            organization="contoso",
            work_items=[WorkItem(organization="contoso", project="Web", id=1,
                                 title="bad\x0btitle\x1b")],
        )
        written = export_excel(inventory, str(tmp_path / "inv"))

        ws = load_workbook(written[0])["WorkItems"]
        values = dict(zip([c.value for c in ws[1]], [c.value for c in ws[2]]))
        assert values["Title"] == "badtitle"

    @pytest.mark.skipif(not OPENPYXL_AVAILABLE, reason="openpyxl not installed")
    def test_formula_like_text_stays_text(self, tmp_path):
        from openpyxl import load_workbook

        inventory = OrganizationInventory(
            organization="contoso",
            work_items=[WorkItem(organization="contoso", project="Web", id=1, title="=1+1")],
        )
        written = export_excel(inventory, str(tmp_path / "inv"))

        ws = load_workbook(written[0])["WorkItems"]
        header = [c.value for c in ws[1]]
        cell = ws.cell(row=2, column=header.index("Title") + 1)
        assert cell.value == "=1+1"
        assert cell.data_type == 's'

    @pytest.mark.skipif(not OPENPYXL_AVAILABLE, reason="openpyxl not installed")
    def test_failing_sheet_is_skipped(self, inventory, tmp_path, monkeypatch, caplog):
        from openpyxl import load_workbook

        original = exporters.create_resource_sheet

        def flaky_sheet(wb, resource_type, records):
            if resource_type == constants.RESOURCE_REPOSITORIES:
                wb.create_sheet(resource_type)
                raise ValueError("cannot render")
            original(wb, resource_type, records)

        monkeypatch.setattr(exporters, "create_resource_sheet", flaky_sheet)
        written = export_excel(inventory, str(tmp_path / "inv"))

        assert load_workbook(written[0]).sheetnames == ["Projects", "Agents"]
        assert "Skipping Repositories sheet for contoso: cannot render" in caplog.text

    def test_empty_inventory_writes_nothing(self, tmp_path):
        assert export_excel(OrganizationInventory(organization="contoso"), str(tmp_path / "inv")) == []
        assert os.listdir(tmp_path) == []

    def test_fallback_matches_csv_export(self, inventory, tmp_path, monkeypatch, caplog):
        monkeypatch.setattr(exporters, "OPENPYXL_AVAILABLE", False)

        excel_base = str(tmp_path / "excel" / "inv")
        csv_base = str(tmp_path / "csv" / "inv")
        fallback = export_excel(inventory, excel_base)
        direct = export_csv(inventory, csv_base)

        assert suffixes(fallback, excel_base) == suffixes(direct, csv_base)
        assert not os.path.exists(f"{excel_base}.xlsx")
        assert "Falling back to CSV" in caplog.text
        for suffix in suffixes(direct, csv_base):
            with open(excel_base + suffix, encoding="utf-8") as a, \
                    open(csv_base + suffix, encoding="utf-8") as b:
                assert a.read() == b.read()


# =============================================================================
# Markdown
# =============================================================================

class TestEscapeMarkdownCell:
    """Tests for escape_markdown_cell."""

    def test_pipes_and_newlines(self):
        assert escape_markdown_cell("a|b\nc") == "a\\|b c"

    def test_none_and_booleans(self):
        assert escape_markdown_cell(None) == ""
        assert escape_markdown_cell(True) == "Yes"
        assert escape_markdown_cell(False) == "No"

    def test_numbers(self):
        assert escape_markdown_cell(42) == "42"


class TestRenderMarkdown:
    """Tests for render_markdown."""

    def test_summary_and_sections(self, inventory):
        text = render_markdown(inventory, generated_at="2024-05-01T10:15:00Z")

        assert text.startswith("# Azure DevOps Inventory: contoso")
        assert "Generated: 2024-05-01T10:15:00Z" in text
        assert "| Repositories | 1 |" in text
        assert "| Work Items | 0 |" in text
        assert "## Repositories" in text
        assert "## Work Items" not in text

    def test_cells_are_escaped(self, inventory):
        text = render_markdown(inventory, generated_at="now")
        assert "Public \\| site" in text
        assert "| Web | site | refs/heads/main | 2048 | Yes |" in text

    def test_pull_requests_truncated_to_thirty(self):
        inventory = OrganizationInventory(organization="contoso",
                                          pull_requests=make_pull_requests(45))
        text = render_markdown(inventory, generated_at="now")

        section = text.split("## Pull Requests", 1)[1]
        rows = [line for line in section.splitlines() if line.startswith("| Web |")]
        assert len(rows) == 30
        assert rows[0].startswith("| Web | site | 44 |")
        assert "_Showing 30 of 45 pull requests, most recent first._" in section
        assert "| Pull Requests | 45 |" in text

    def test_few_pull_requests_not_truncated(self):
        inventory = OrganizationInventory(organization="contoso",
                                          pull_requests=make_pull_requests(3))
        text = render_markdown(inventory, generated_at="now")
        assert "_Showing" not in text
        assert text.index("| Web | site | 2 |") < text.index("| Web | site | 0 |")

    def test_warnings_are_noted(self, inventory):
        noted = OrganizationInventory(organization="contoso", warnings=["HTTP 403"])
        assert "could not be collected" in render_markdown(noted, generated_at="now")
        assert "could not be collected" not in render_markdown(inventory, generated_at="now")

    def test_export_markdown_writes_file(self, inventory, tmp_path):
        base = str(tmp_path / "inv")
        written = export_markdown(inventory, base)
        assert written == [f"{base}.md"]
        with open(written[0], encoding="utf-8") as f:
            assert f.read().startswith("# Azure DevOps Inventory: contoso")


# =============================================================================
# Dispatch
# =============================================================================

class TestExportInventory:
    """Tests for export_inventory."""

    def test_none_writes_nothing(self, inventory, tmp_path):
        assert export_inventory(inventory, str(tmp_path / "inv"), constants.EXPORT_FORMAT_NONE) == []
        assert os.listdir(tmp_path) == []

    def test_case_insensitive(self, inventory, tmp_path):
        base = str(tmp_path / "inv")
        assert export_inventory(inventory, base, "markdown") == [f"{base}.md"]

    def test_unknown_format(self, inventory, tmp_path):
        with pytest.raises(ValueError):
            export_inventory(inventory, str(tmp_path / "inv"), "Word")
