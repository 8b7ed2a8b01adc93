"""
Data models for the Azure DevOps inventory collector.

Every record is a flat, frozen dataclass. Relationships between records are
expressed only through the shared ``project`` name so that each record can be
written to a CSV row or worksheet without nesting.
"""
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from . import constants


def column_name(attribute: str) -> str:
    """Exported column name for a dataclass attribute (pool_name -> PoolName)."""
    return "".join(part[:1].upper() + part[1:] for part in attribute.split("_"))


class Record:
    """Mixin shared by all inventory records."""

    @classmethod
    def columns(cls) -> List[str]:
        """Column names in field order."""
        return [column_name(f.name) for f in fields(cls)]  # type: ignore[arg-type]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)  # type: ignore[call-overload]

    def to_row(self) -> Dict[str, Any]:
        """Convert to an ordered row keyed by exported column name."""
        return {column_name(f.name): getattr(self, f.name) for f in fields(self)}  # type: ignore[arg-type]


# =============================================================================
# Organization-level Records
# =============================================================================

@dataclass(frozen=True)
class Project(Record):
    organization: str
    name: str
    id: str
    description: Optional[str] = None
    state: Optional[str] = None
    visibility: Optional[str] = None
    url: Optional[str] = None
    last_update_time: Optional[str] = None


@dataclass(frozen=True)
class ArtifactFeed(Record):
    organization: str
    name: str
    id: str
    description: Optional[str] = None
    upstream_enabled: bool = False
    upstream_source_count: int = 0
    url: Optional[str] = None


@dataclass(frozen=True)
class Agent(Record):
    """Build/release agent, annotated with its parent pool."""
    organization: str
    pool_name: str
    pool_id: int
    name: str
    id: int
    version: Optional[str] = None
    status: Optional[str] = None
    enabled: bool = False
    os_description: Optional[str] = None
    created_on: Optional[str] = None


@dataclass(frozen=True)
class Extension(Record):
    organization: str
    name: str
    extension_id: str
    publisher_name: Optional[str] = None
    publisher_id: Optional[str] = None
    version: Optional[str] = None
    last_published: Optional[str] = None
    flags: Optional[str] = None


# =============================================================================
# Project-level Records
# =============================================================================

@dataclass(frozen=True)
class Repository(Record):
    organization: str
    project: str
    name: str
    id: str
    default_branch: Optional[str] = None
    size: int = 0
    remote_url: Optional[str] = None
    web_url: Optional[str] = None
    is_disabled: bool = False
    is_fork: bool = False


@dataclass(frozen=True)
class Pipeline(Record):
    organization: str
    project: str
    name: str
    id: int
    folder: Optional[str] = None
    revision: Optional[int] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class Wiki(Record):
    organization: str
    project: str
    name: str
    id: str
    wiki_type: Optional[str] = None
    mapped_path: Optional[str] = None
    repository_id: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class Board(Record):
    organization: str
    project: str
    name: str
    id: str
    url: Optional[str] = None


@dataclass(frozen=True)
class WorkItem(Record):
    organization: str
    project: str
    id: int
    title: Optional[str] = None
    work_item_type: Optional[str] = None
    state: Optional[str] = None
    assigned_to: Optional[str] = None
    created_date: Optional[str] = None
    changed_date: Optional[str] = None
    area_path: Optional[str] = None
    iteration_path: Optional[str] = None


@dataclass(frozen=True)
class TestPlan(Record):
    __test__ = False  # not a pytest test class

    organization: str
    project: str
    name: str
    id: int
    state: Optional[str] = None
    area_path: Optional[str] = None
    iteration: Optional[str] = None
    owner: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


@dataclass(frozen=True)
class Dashboard(Record):
    organization: str
    project: str
    name: str
    id: str
    description: Optional[str] = None
    dashboard_scope: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class ServiceEndpoint(Record):
    organization: str
    project: str
    name: str
    id: str
    endpoint_type: Optional[str] = None
    url: Optional[str] = None
    owner: Optional[str] = None
    authorization_scheme: Optional[str] = None
    is_shared: bool = False
    is_ready: bool = False


@dataclass(frozen=True)
class ReleasePipeline(Record):
    organization: str
    project: str
    name: str
    id: int
    path: Optional[str] = None
    created_by: Optional[str] = None
    created_on: Optional[str] = None
    modified_on: Optional[str] = None
    release_name_format: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class VariableGroup(Record):
    organization: str
    project: str
    name: str
    id: int
    group_type: Optional[str] = None
    description: Optional[str] = None
    variable_count: int = 0
    created_by: Optional[str] = None
    modified_on: Optional[str] = None


@dataclass(frozen=True)
class Team(Record):
    """Project team; member_count is None when the member lookup failed."""
    organization: str
    project: str
    name: str
    id: str
    description: Optional[str] = None
    member_count: Optional[int] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class PullRequest(Record):
    organization: str
    project: str
    repository: str
    id: int
    title: Optional[str] = None
    status: Optional[str] = None
    created_by: Optional[str] = None
    creation_date: Optional[str] = None
    closed_date: Optional[str] = None
    source_branch: Optional[str] = None
    target_branch: Optional[str] = None
    is_draft: bool = False
    url: Optional[str] = None


RECORD_TYPES = {
    constants.RESOURCE_PROJECTS: Project,
    constants.RESOURCE_REPOSITORIES: Repository,
    constants.RESOURCE_PIPELINES: Pipeline,
    constants.RESOURCE_WIKIS: Wiki,
    constants.RESOURCE_BOARDS: Board,
    constants.RESOURCE_WORK_ITEMS: WorkItem,
    constants.RESOURCE_TEST_PLANS: TestPlan,
    constants.RESOURCE_DASHBOARDS: Dashboard,
    constants.RESOURCE_ARTIFACT_FEEDS: ArtifactFeed,
    constants.RESOURCE_AGENTS: Agent,
    constants.RESOURCE_SERVICE_ENDPOINTS: ServiceEndpoint,
    constants.RESOURCE_RELEASE_PIPELINES: ReleasePipeline,
    constants.RESOURCE_VARIABLE_GROUPS: VariableGroup,
    constants.RESOURCE_TEAMS: Team,
    constants.RESOURCE_EXTENSIONS: Extension,
    constants.RESOURCE_PULL_REQUESTS: PullRequest,
}


# =============================================================================
# Fetch Results and the Aggregate
# =============================================================================

@dataclass(frozen=True)
class FetchResult:
    """
    Outcome of fetching one scope unit (one project, pool or repository).

    A failed result carries no records and the reason it failed.
    """
    resource_type: str
    scope: str
    records: List[Any] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, resource_type: str, scope: str, error: str) -> "FetchResult":
        return cls(resource_type=resource_type, scope=scope, records=[], error=error)


@dataclass(frozen=True)
class OrganizationInventory:
    """All resource lists collected for one organization in one run."""
    organization: str
    projects: List[Project] = field(default_factory=list)
    repositories: List[Repository] = field(default_factory=list)
    pipelines: List[Pipeline] = field(default_factory=list)
    wikis: List[Wiki] = field(default_factory=list)
    boards: List[Board] = field(default_factory=list)
    work_items: List[WorkItem] = field(default_factory=list)
    test_plans: List[TestPlan] = field(default_factory=list)
    dashboards: List[Dashboard] = field(default_factory=list)
    artifact_feeds: List[ArtifactFeed] = field(default_factory=list)
    agents: List[Agent] = field(default_factory=list)
    service_endpoints: List[ServiceEndpoint] = field(default_factory=list)
    release_pipelines: List[ReleasePipeline] = field(default_factory=list)
    variable_groups: List[VariableGroup] = field(default_factory=list)
    teams: List[Team] = field(default_factory=list)
    extensions: List[Extension] = field(default_factory=list)
    pull_requests: List[PullRequest] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def project_names(self) -> List[str]:
        return [p.name for p in self.projects]

    def records(self, resource_type: str) -> List[Any]:
        """Records for a resource type name such as 'PullRequests'."""
        return getattr(self, inventory_attribute(resource_type))

    def counts(self) -> Dict[str, int]:
        """Record count per resource type, in presentation order."""
        return {rt: len(self.records(rt)) for rt in constants.RESOURCE_TYPES}

    @property
    def total_records(self) -> int:
        return sum(self.counts().values())


def inventory_attribute(resource_type: str) -> str:
    """Attribute name on OrganizationInventory for a resource type (WorkItems -> work_items)."""
    if resource_type not in RECORD_TYPES:
        raise KeyError(f"Unknown resource type: {resource_type}")
    out = []
    for i, ch in enumerate(resource_type):
        if ch.isupper() and i:
            out.append("_")
        out.append(ch.lower())
    return "".join(out)
