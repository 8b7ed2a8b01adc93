"""
Constants for the Azure DevOps inventory collector.

This module defines all magic strings and numbers used across the codebase
to prevent typos, ensure consistency, and make maintenance easier.
"""

# =============================================================================
# Service Hosts
# =============================================================================

HOST_MAIN = "dev.azure.com"
HOST_RELEASE = "vsrm.dev.azure.com"
HOST_EXTENSIONS = "extmgmt.dev.azure.com"
HOST_FEEDS = "feeds.dev.azure.com"

# =============================================================================
# Default Configuration Values
# =============================================================================

DEFAULT_API_VERSION = "7.1"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRY_ATTEMPTS = 1
DEFAULT_PARALLEL_WORKERS = 1
DEFAULT_WORK_ITEM_LIMIT = 100
DEFAULT_PULL_REQUEST_TOP = 100
DEFAULT_EXPORT_PATH = "./ado_inventory_output/ado-inventory"

# Platform limit for ids per work item detail request
WORK_ITEM_BATCH_SIZE = 200

PULL_REQUEST_STATUSES = ("active", "completed")

WORK_ITEM_FIELDS = (
    "System.Id",
    "System.Title",
    "System.WorkItemType",
    "System.State",
    "System.AssignedTo",
    "System.CreatedDate",
    "System.ChangedDate",
    "System.AreaPath",
    "System.IterationPath",
)

# =============================================================================
# Resource Types (presentation order)
# =============================================================================

RESOURCE_PROJECTS = "Projects"
RESOURCE_REPOSITORIES = "Repositories"
RESOURCE_PIPELINES = "Pipelines"
RESOURCE_WIKIS = "Wikis"
RESOURCE_BOARDS = "Boards"
RESOURCE_WORK_ITEMS = "WorkItems"
RESOURCE_TEST_PLANS = "TestPlans"
RESOURCE_DASHBOARDS = "Dashboards"
RESOURCE_ARTIFACT_FEEDS = "ArtifactFeeds"
RESOURCE_AGENTS = "Agents"
RESOURCE_SERVICE_ENDPOINTS = "ServiceEndpoints"
RESOURCE_RELEASE_PIPELINES = "ReleasePipelines"
RESOURCE_VARIABLE_GROUPS = "VariableGroups"
RESOURCE_TEAMS = "Teams"
RESOURCE_EXTENSIONS = "Extensions"
RESOURCE_PULL_REQUESTS = "PullRequests"

RESOURCE_TYPES = (
    RESOURCE_PROJECTS,
    RESOURCE_REPOSITORIES,
    RESOURCE_PIPELINES,
    RESOURCE_WIKIS,
    RESOURCE_BOARDS,
    RESOURCE_WORK_ITEMS,
    RESOURCE_TEST_PLANS,
    RESOURCE_DASHBOARDS,
    RESOURCE_ARTIFACT_FEEDS,
    RESOURCE_AGENTS,
    RESOURCE_SERVICE_ENDPOINTS,
    RESOURCE_RELEASE_PIPELINES,
    RESOURCE_VARIABLE_GROUPS,
    RESOURCE_TEAMS,
    RESOURCE_EXTENSIONS,
    RESOURCE_PULL_REQUESTS,
)

ORGANIZATION_SCOPED_TYPES = frozenset({
    RESOURCE_PROJECTS,
    RESOURCE_ARTIFACT_FEEDS,
    RESOURCE_AGENTS,
    RESOURCE_EXTENSIONS,
})

EXTENDED_TYPES = frozenset({
    RESOURCE_AGENTS,
    RESOURCE_SERVICE_ENDPOINTS,
    RESOURCE_RELEASE_PIPELINES,
    RESOURCE_VARIABLE_GROUPS,
    RESOURCE_TEAMS,
    RESOURCE_EXTENSIONS,
    RESOURCE_PULL_REQUESTS,
})

# Human-readable labels used in reports
RESOURCE_LABELS = {
    RESOURCE_PROJECTS: "Projects",
    RESOURCE_REPOSITORIES: "Repositories",
    RESOURCE_PIPELINES: "Pipelines",
    RESOURCE_WIKIS: "Wikis",
    RESOURCE_BOARDS: "Boards",
    RESOURCE_WORK_ITEMS: "Work Items",
    RESOURCE_TEST_PLANS: "Test Plans",
    RESOURCE_DASHBOARDS: "Dashboards",
    RESOURCE_ARTIFACT_FEEDS: "Artifact Feeds",
    RESOURCE_AGENTS: "Agents",
    RESOURCE_SERVICE_ENDPOINTS: "Service Endpoints",
    RESOURCE_RELEASE_PIPELINES: "Release Pipelines",
    RESOURCE_VARIABLE_GROUPS: "Variable Groups",
    RESOURCE_TEAMS: "Teams",
    RESOURCE_EXTENSIONS: "Extensions",
    RESOURCE_PULL_REQUESTS: "Pull Requests",
}

# API version suffixes for endpoints only available as previews
API_VERSION_SUFFIXES = {
    RESOURCE_DASHBOARDS: "-preview.3",
}

# =============================================================================
# Report / Export Limits
# =============================================================================

REPORT_EXAMPLE_LIMITS = {
    RESOURCE_WORK_ITEMS: 10,
    RESOURCE_PULL_REQUESTS: 5,
}

MARKDOWN_PULL_REQUEST_LIMIT = 30

EXPORT_FORMAT_NONE = "None"
EXPORT_FORMAT_CSV = "CSV"
EXPORT_FORMAT_EXCEL = "Excel"
EXPORT_FORMAT_MARKDOWN = "Markdown"

EXPORT_FORMATS = (
    EXPORT_FORMAT_NONE,
    EXPORT_FORMAT_CSV,
    EXPORT_FORMAT_EXCEL,
    EXPORT_FORMAT_MARKDOWN,
)

# Sortable timestamp used in artifact filenames (yyyyMMdd-HHmmss)
FILE_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
