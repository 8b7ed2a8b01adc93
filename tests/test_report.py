"""
Tests for ado_inventory/report.py.

Covers:
- empty sections
- grouping by project, pool and status
- example limits with "+K more"
- totals and section order
- rich summary table
"""
import io
import os
import sys

from rich.console import Console

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ado_inventory import constants
from ado_inventory.models import (
    Agent,
    OrganizationInventory,
    Project,
    PullRequest,
    Repository,
    WorkItem,
)
from ado_inventory.report import (
    build_summary_table,
    group_by,
    print_inventory_report,
    render_inventory,
    render_section,
)


def make_work_items(project, count):
    return [WorkItem(organization="contoso", project=project, id=i, title=f"Item {i}",
                     work_item_type="Task", state="New")
            for i in range(1, count + 1)]


class TestGroupBy:
    """Tests for group_by."""

    def test_first_appearance_order(self):
        groups = group_by(["b1", "a1", "b2"], key=lambda s: s[0])
        assert groups == [("b", ["b1", "b2"]), ("a", ["a1"])]


class TestRenderSection:
    """Tests for render_section."""

    def test_empty_section(self):
        lines = render_section(constants.RESOURCE_PROJECTS, [])
        assert "  No projects found" in lines
        assert not any(line.startswith("  Total") for line in lines)

    def test_empty_multiword_label(self):
        assert "  No work items found" in render_section(constants.RESOURCE_WORK_ITEMS, [])

    def test_grouped_by_project(self):
        repos = [
            Repository(organization="contoso", project="Web", name="site", id="r1",
                       default_branch="refs/heads/main", size=2048),
            Repository(organization="contoso", project="Ops", name="infra", id="r2"),
            Repository(organization="contoso", project="Web", name="api", id="r3"),
        ]
        lines = render_section(constants.RESOURCE_REPOSITORIES, repos)

        assert lines.index("  Project: Web (2)") < lines.index("  Project: Ops (1)")
        assert "    - site (default branch: main, 2,048 bytes)" in lines
        assert "  Total Repositories: 3" in lines

    def test_work_item_examples_limited_per_project(self):
        lines = render_section(constants.RESOURCE_WORK_ITEMS, make_work_items("Web", 13))

        examples = [line for line in lines if line.startswith("    - #")]
        assert len(examples) == 10
        assert "    ... +3 more" in lines
        assert "  Total Work Items: 13" in lines

    def test_agents_grouped_by_pool(self):
        agents = [
            Agent(organization="contoso", pool_name="Default", pool_id=1, name="a1", id=1,
                  status="online", enabled=True),
            Agent(organization="contoso", pool_name="Hosted", pool_id=2, name="a2", id=2,
                  status="offline", enabled=False),
        ]
        lines = render_section(constants.RESOURCE_AGENTS, agents)
        assert "  Pool: Default (1)" in lines
        assert "  Pool: Hosted (1)" in lines
        assert any("disabled" in line for line in lines)

    def test_pull_requests_grouped_by_status_then_project(self):
        prs = [
            PullRequest(organization="contoso", project="Web", repository="site", id=i,
                        title=f"PR {i}", status="active")
            for i in range(1, 8)
        ] + [
            PullRequest(organization="contoso", project="Ops", repository="infra", id=20,
                        title="Done", status="completed"),
        ]
        lines = render_section(constants.RESOURCE_PULL_REQUESTS, prs)

        assert "  Status: active (7)" in lines
        assert "    Project: Web (7)" in lines
        assert "      ... +2 more" in lines
        assert "  Status: completed (1)" in lines
        assert "  Total Pull Requests: 8" in lines

    def test_organization_types_render_flat(self):
        projects = [Project(organization="contoso", name="Web", id="p1", state="wellFormed",
                            visibility="private")]
        lines = render_section(constants.RESOURCE_PROJECTS, projects)
        assert "  - Web (wellFormed, private)" in lines


class TestRenderInventory:
    """Tests for render_inventory."""

    def test_all_sections_in_order(self):
        text = render_inventory(OrganizationInventory(organization="contoso"))

        assert "Azure DevOps Inventory: contoso" in text
        positions = [text.index(f"\n{constants.RESOURCE_LABELS[rt]}\n")
                     for rt in constants.RESOURCE_TYPES]
        assert positions == sorted(positions)
        assert text.count("No ") == len(constants.RESOURCE_TYPES)

    def test_print_report_and_summary(self):
        inventory = OrganizationInventory(
            organization="contoso",
            projects=[Project(organization="contoso", name="Web", id="p1")],
            work_items=make_work_items("Web", 2),
            warnings=["Failed to collect Wikis for project 'Web' in contoso: HTTP 403: Forbidden"],
        )
        buffer = io.StringIO()
        console = Console(file=buffer, width=120, color_system=None)

        text = print_inventory_report(inventory, console=console)

        output = buffer.getvalue()
        assert "Azure DevOps Inventory: contoso" in text
        assert "Azure DevOps Inventory: contoso" in output
        assert "  Total Work Items: 2" in output
        assert "contoso Summary" in output
        assert "Warnings" in output
        assert "  - Failed to collect Wikis for project 'Web' in contoso: HTTP 403: Forbidden" in output

    def test_summary_table_rows(self):
        table = build_summary_table(OrganizationInventory(organization="contoso"))
        assert table.row_count == len(constants.RESOURCE_TYPES) + 1
