"""
Resource fetchers for the Azure DevOps inventory collector.

Each resource type has:
- a decode function turning one raw JSON object into a flat record
- a fetch function covering one scope unit (the organization, one project,
  one agent pool or one repository) that raises on failure
- a collect function that runs every scope unit through run_scope() and
  returns one FetchResult per unit

run_scope() is the failure boundary: a failed unit is logged as a warning and
returned as an empty, failed FetchResult. Nothing above this module ever sees
an exception from the platform.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from . import constants
from .client import AdoClient, AdoRequestError, build_url, quote_segment
from .config import CollectorConfig
from .models import (
    Agent,
    ArtifactFeed,
    Board,
    Dashboard,
    Extension,
    FetchResult,
    Pipeline,
    Project,
    PullRequest,
    ReleasePipeline,
    Repository,
    ServiceEndpoint,
    Team,
    TestPlan,
    VariableGroup,
    WorkItem,
    Wiki,
)

logger = logging.getLogger(__name__)

# Raised by decoders when a payload does not have the expected shape
DECODE_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


# =============================================================================
# Payload Helpers
# =============================================================================

def value_list(payload: Any, key: str = 'value') -> List[Dict[str, Any]]:
    """
    Return the collection field of a list response.

    An absent or null collection is an empty list; anything that is not a
    JSON object with a list there is malformed.
    """
    if payload is None:
        return []
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    items = payload.get(key)
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValueError(f"'{key}' is not a list")
    return items


def identity_name(raw: Any) -> Optional[str]:
    """Display name of an identity reference ({displayName, uniqueName, ...})."""
    if not raw:
        return None
    if isinstance(raw, dict):
        return raw.get('displayName') or raw.get('uniqueName')
    return str(raw)


def _list(
    client: AdoClient,
    config: CollectorConfig,
    resource_type: str,
    organization: str,
    path: str,
    project: Optional[str] = None,
    host: str = constants.HOST_MAIN,
    params: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    url = build_url(organization, path, config.version_for(resource_type),
                    project=project, host=host, params=params)
    return value_list(client.get_json(url))


# =============================================================================
# Failure Isolation
# =============================================================================

def run_scope(
    resource_type: str,
    organization: str,
    scope: str,
    fetch_fn: Callable[..., List[Any]],
    *args: Any,
) -> FetchResult:
    """
    Run one scope unit and convert any platform or decode failure into a
    failed FetchResult with zero records.
    """
    try:
        records = fetch_fn(*args)
    except AdoRequestError as e:
        reason = str(e)
    except DECODE_ERRORS as e:
        reason = f"malformed payload: {type(e).__name__}: {e}"
    else:
        return FetchResult(resource_type=resource_type, scope=scope, records=list(records))

    label = constants.RESOURCE_LABELS.get(resource_type, resource_type)
    message = f"Failed to collect {label} for {scope} in {organization}: {reason}"
    logger.warning(message)
    return FetchResult.failure(resource_type, scope, message)


def map_scopes(config: CollectorConfig, fn: Callable[[Any], Any], items: Sequence[Any]) -> List[Any]:
    """
    Apply fn to every scope unit, serially or on a thread pool.

    Results keep the order of items regardless of completion order.
    """
    if config.parallel_workers <= 1 or len(items) <= 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=config.parallel_workers) as executor:
        return list(executor.map(fn, items))


def _flatten(groups: Iterable[List[FetchResult]]) -> List[FetchResult]:
    return [result for group in groups for result in group]


def project_scope(project: str) -> str:
    return f"project '{project}'"


# =============================================================================
# Decoders
# =============================================================================

def decode_project(raw: Dict[str, Any], organization: str) -> Project:
    return Project(
        organization=organization,
        name=raw['name'],
        id=raw['id'],
        description=raw.get('description'),
        state=raw.get('state'),
        visibility=raw.get('visibility'),
        url=raw.get('url'),
        last_update_time=raw.get('lastUpdateTime'),
    )


def decode_repository(raw: Dict[str, Any], organization: str, project: str) -> Repository:
    return Repository(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        default_branch=raw.get('defaultBranch'),
        size=int(raw.get('size') or 0),
        remote_url=raw.get('remoteUrl'),
        web_url=raw.get('webUrl'),
        is_disabled=bool(raw.get('isDisabled', False)),
        is_fork=bool(raw.get('isFork', False)),
    )


def decode_pipeline(raw: Dict[str, Any], organization: str, project: str) -> Pipeline:
    return Pipeline(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        folder=raw.get('folder'),
        revision=raw.get('revision'),
        url=raw.get('url'),
    )


def decode_wiki(raw: Dict[str, Any], organization: str, project: str) -> Wiki:
    return Wiki(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        wiki_type=raw.get('type'),
        mapped_path=raw.get('mappedPath'),
        repository_id=raw.get('repositoryId'),
        url=raw.get('url'),
    )


def decode_board(raw: Dict[str, Any], organization: str, project: str) -> Board:
    return Board(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        url=raw.get('url'),
    )


def decode_work_item(raw: Dict[str, Any], organization: str, project: str) -> WorkItem:
    item_fields = raw.get('fields') or {}
    return WorkItem(
        organization=organization,
        project=project,
        id=int(raw['id']),
        title=item_fields.get('System.Title'),
        work_item_type=item_fields.get('System.WorkItemType'),
        state=item_fields.get('System.State'),
        assigned_to=identity_name(item_fields.get('System.AssignedTo')),
        created_date=item_fields.get('System.CreatedDate'),
        changed_date=item_fields.get('System.ChangedDate'),
        area_path=item_fields.get('System.AreaPath'),
        iteration_path=item_fields.get('System.IterationPath'),
    )


def decode_test_plan(raw: Dict[str, Any], organization: str, project: str) -> TestPlan:
    return TestPlan(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        state=raw.get('state'),
        area_path=raw.get('areaPath'),
        iteration=raw.get('iteration'),
        owner=identity_name(raw.get('owner')),
        start_date=raw.get('startDate'),
        end_date=raw.get('endDate'),
    )


def decode_dashboard(raw: Dict[str, Any], organization: str, project: str) -> Dashboard:
    return Dashboard(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        description=raw.get('description'),
        dashboard_scope=raw.get('dashboardScope'),
        url=raw.get('url'),
    )


def decode_artifact_feed(raw: Dict[str, Any], organization: str) -> ArtifactFeed:
    upstream_sources = raw.get('upstreamSources') or []
    return ArtifactFeed(
        organization=organization,
        name=raw['name'],
        id=raw['id'],
        description=raw.get('description'),
        upstream_enabled=bool(raw.get('upstreamEnabled', False)),
        upstream_source_count=len(upstream_sources),
        url=raw.get('url'),
    )


def decode_agent(raw: Dict[str, Any], organization: str, pool: Dict[str, Any]) -> Agent:
    return Agent(
        organization=organization,
        pool_name=pool['name'],
        pool_id=pool['id'],
        name=raw['name'],
        id=raw['id'],
        version=raw.get('version'),
        status=raw.get('status'),
        enabled=bool(raw.get('enabled', False)),
        os_description=raw.get('osDescription'),
        created_on=raw.get('createdOn'),
    )


def decode_service_endpoint(raw: Dict[str, Any], organization: str, project: str) -> ServiceEndpoint:
    authorization = raw.get('authorization') or {}
    return ServiceEndpoint(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        endpoint_type=raw.get('type'),
        url=raw.get('url'),
        owner=raw.get('owner'),
        authorization_scheme=authorization.get('scheme'),
        is_shared=bool(raw.get('isShared', False)),
        is_ready=bool(raw.get('isReady', False)),
    )


def decode_release_pipeline(raw: Dict[str, Any], organization: str, project: str) -> ReleasePipeline:
    return ReleasePipeline(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        path=raw.get('path'),
        created_by=identity_name(raw.get('createdBy')),
        created_on=raw.get('createdOn'),
        modified_on=raw.get('modifiedOn'),
        release_name_format=raw.get('releaseNameFormat'),
        url=raw.get('url'),
    )


def decode_variable_group(raw: Dict[str, Any], organization: str, project: str) -> VariableGroup:
    variables = raw.get('variables') or {}
    return VariableGroup(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        group_type=raw.get('type'),
        description=raw.get('description'),
        variable_count=len(variables),
        created_by=identity_name(raw.get('createdBy')),
        modified_on=raw.get('modifiedOn'),
    )


def decode_team(raw: Dict[str, Any], organization: str, project: str,
                member_count: Optional[int] = None) -> Team:
    return Team(
        organization=organization,
        project=project,
        name=raw['name'],
        id=raw['id'],
        description=raw.get('description'),
        member_count=member_count,
        url=raw.get('url'),
    )


def decode_extension(raw: Dict[str, Any], organization: str) -> Extension:
    return Extension(
        organization=organization,
        name=raw.get('extensionName') or raw['extensionId'],
        extension_id=raw['extensionId'],
        publisher_name=raw.get('publisherName'),
        publisher_id=raw.get('publisherId'),
        version=raw.get('version'),
        last_published=raw.get('lastPublished'),
        flags=raw.get('flags'),
    )


def decode_pull_request(raw: Dict[str, Any], organization: str, project: str,
                        repository: str) -> PullRequest:
    return PullRequest(
        organization=organization,
        project=project,
        repository=repository,
        id=int(raw['pullRequestId']),
        title=raw.get('title'),
        status=raw.get('status'),
        created_by=identity_name(raw.get('createdBy')),
        creation_date=raw.get('creationDate'),
        closed_date=raw.get('closedDate'),
        source_branch=raw.get('sourceRefName'),
        target_branch=raw.get('targetRefName'),
        is_draft=bool(raw.get('isDraft', False)),
        url=raw.get('url'),
    )


# =============================================================================
# Organization-scoped Fetchers
# =============================================================================

def fetch_projects(client: AdoClient, config: CollectorConfig, organization: str) -> List[Project]:
    items = _list(client, config, constants.RESOURCE_PROJECTS, organization, "_apis/projects")
    return [decode_project(raw, organization) for raw in items]


def fetch_artifact_feeds(client: AdoClient, config: CollectorConfig, organization: str) -> List[ArtifactFeed]:
    items = _list(client, config, constants.RESOURCE_ARTIFACT_FEEDS, organization,
                  "_apis/packaging/feeds", host=constants.HOST_FEEDS)
    return [decode_artifact_feed(raw, organization) for raw in items]


def fetch_extensions(client: AdoClient, config: CollectorConfig, organization: str) -> List[Extension]:
    items = _list(client, config, constants.RESOURCE_EXTENSIONS, organization,
                  "_apis/extensionmanagement/installedextensions", host=constants.HOST_EXTENSIONS)
    return [decode_extension(raw, organization) for raw in items]


def fetch_agent_pools(client: AdoClient, config: CollectorConfig, organization: str) -> List[Dict[str, Any]]:
    pools = _list(client, config, constants.RESOURCE_AGENTS, organization,
                  "_apis/distributedtask/pools")
    for pool in pools:
        if 'id' not in pool or 'name' not in pool:
            raise ValueError(f"agent pool without id or name: {pool!r}")
    return pools


def fetch_pool_agents(client: AdoClient, config: CollectorConfig, organization: str,
                      pool: Dict[str, Any]) -> List[Agent]:
    items = _list(client, config, constants.RESOURCE_AGENTS, organization,
                  f"_apis/distributedtask/pools/{quote_segment(pool['id'])}/agents")
    return [decode_agent(raw, organization, pool) for raw in items]


# =============================================================================
# Project-scoped Fetchers
# =============================================================================

def fetch_repositories(client: AdoClient, config: CollectorConfig, organization: str,
                       project: str) -> List[Repository]:
    items = _list(client, config, constants.RESOURCE_REPOSITORIES, organization,
                  "_apis/git/repositories", project=project)
    return [decode_repository(raw, organization, project) for raw in items]


def fetch_pipelines(client: AdoClient, config: CollectorConfig, organization: str,
                    project: str) -> List[Pipeline]:
    items = _list(client, config, constants.RESOURCE_PIPELINES, organization,
                  "_apis/pipelines", project=project)
    return [decode_pipeline(raw, organization, project) for raw in items]


def fetch_wikis(client: AdoClient, config: CollectorConfig, organization: str,
                project: str) -> List[Wiki]:
    items = _list(client, config, constants.RESOURCE_WIKIS, organization,
                  "_apis/wiki/wikis", project=project)
    return [decode_wiki(raw, organization, project) for raw in items]


def fetch_boards(client: AdoClient, config: CollectorConfig, organization: str,
                 project: str) -> List[Board]:
    items = _list(client, config, constants.RESOURCE_BOARDS, organization,
                  "_apis/work/boards", project=project)
    return [decode_board(raw, organization, project) for raw in items]


def fetch_test_plans(client: AdoClient, config: CollectorConfig, organization: str,
                     project: str) -> List[TestPlan]:
    items = _list(client, config, constants.RESOURCE_TEST_PLANS, organization,
                  "_apis/testplan/plans", project=project)
    return [decode_test_plan(raw, organization, project) for raw in items]


def fetch_dashboards(client: AdoClient, config: CollectorConfig, organization: str,
                     project: str) -> List[Dashboard]:
    items = _list(client, config, constants.RESOURCE_DASHBOARDS, organization,
                  "_apis/dashboard/dashboards", project=project)
    return [decode_dashboard(raw, organization, project) for raw in items]


def fetch_service_endpoints(client: AdoClient, config: CollectorConfig, organization: str,
                            project: str) -> List[ServiceEndpoint]:
    items = _list(client, config, constants.RESOURCE_SERVICE_ENDPOINTS, organization,
                  "_apis/serviceendpoint/endpoints", project=project)
    return [decode_service_endpoint(raw, organization, project) for raw in items]


def fetch_release_pipelines(client: AdoClient, config: CollectorConfig, organization: str,
                            project: str) -> List[ReleasePipeline]:
    items = _list(client, config, constants.RESOURCE_RELEASE_PIPELINES, organization,
                  "_apis/release/definitions", project=project, host=constants.HOST_RELEASE)
    return [decode_release_pipeline(raw, organization, project) for raw in items]


def fetch_variable_groups(client: AdoClient, config: CollectorConfig, organization: str,
                          project: str) -> List[VariableGroup]:
    items = _list(client, config, constants.RESOURCE_VARIABLE_GROUPS, organization,
                  "_apis/distributedtask/variablegroups", project=project)
    return [decode_variable_group(raw, organization, project) for raw in items]


def fetch_team_member_count(client: AdoClient, config: CollectorConfig, organization: str,
                            project: str, team_id: str) -> int:
    members = _list(client, config, constants.RESOURCE_TEAMS, organization,
                    f"_apis/projects/{quote_segment(project)}/teams/{quote_segment(team_id)}/members")
    return len(members)


def fetch_teams(client: AdoClient, config: CollectorConfig, organization: str,
                project: str) -> List[Team]:
    """Teams of a project; a failed member lookup leaves member_count as None."""
    items = _list(client, config, constants.RESOURCE_TEAMS, organization,
                  f"_apis/projects/{quote_segment(project)}/teams")
    teams = []
    for raw in items:
        member_count: Optional[int] = None
        try:
            member_count = fetch_team_member_count(client, config, organization, project, raw['id'])
        except AdoRequestError as e:
            logger.warning(f"Failed to count members of team '{raw.get('name')}' "
                           f"in project '{project}' ({organization}): {e}")
        except DECODE_ERRORS as e:
            logger.warning(f"Unexpected member list for team '{raw.get('name')}' "
                           f"in project '{project}' ({organization}): {e}")
        teams.append(decode_team(raw, organization, project, member_count))
    return teams


def query_work_item_ids(client: AdoClient, config: CollectorConfig, organization: str,
                        project: str, limit: int) -> List[int]:
    """Ids of the most recently changed work items in a project, newest first."""
    url = build_url(organization, "_apis/wit/wiql",
                    config.version_for(constants.RESOURCE_WORK_ITEMS),
                    project=project, params={"$top": limit})
    query = (
        "SELECT [System.Id] FROM WorkItems "
        "WHERE [System.TeamProject] = @project "
        "ORDER BY [System.ChangedDate] DESC"
    )
    payload = client.post_json(url, {"query": query})
    ids = [int(item['id']) for item in value_list(payload, key='workItems')]
    return ids[:limit]


def fetch_work_item_details(client: AdoClient, config: CollectorConfig, organization: str,
                            project: str, ids: Sequence[int]) -> List[WorkItem]:
    """Fetch work item fields in batches of at most WORK_ITEM_BATCH_SIZE ids."""
    items: List[WorkItem] = []
    batch_size = constants.WORK_ITEM_BATCH_SIZE
    for start in range(0, len(ids), batch_size):
        batch = ids[start:start + batch_size]
        raw_items = _list(
            client, config, constants.RESOURCE_WORK_ITEMS, organization, "_apis/wit/workitems",
            project=project,
            params={
                "ids": ",".join(str(i) for i in batch),
                "fields": ",".join(constants.WORK_ITEM_FIELDS),
            },
        )
        items.extend(decode_work_item(raw, organization, project) for raw in raw_items)
    return items


def fetch_work_items(client: AdoClient, config: CollectorConfig, organization: str,
                     project: str) -> List[WorkItem]:
    ids = query_work_item_ids(client, config, organization, project, config.work_item_limit)
    if not ids:
        return []
    return fetch_work_item_details(client, config, organization, project, ids)


def fetch_repository_pull_requests(client: AdoClient, config: CollectorConfig, organization: str,
                                   project: str, repository: Repository) -> List[PullRequest]:
    """Active and completed pull requests of one repository."""
    pull_requests: List[PullRequest] = []
    seen = set()
    path = f"_apis/git/repositories/{quote_segment(repository.id)}/pullrequests"
    for status in constants.PULL_REQUEST_STATUSES:
        items = _list(client, config, constants.RESOURCE_PULL_REQUESTS, organization, path,
                      project=project,
                      params={"searchCriteria.status": status, "$top": config.pull_request_top})
        for raw in items:
            pr = decode_pull_request(raw, organization, project, repository.name)
            if pr.id in seen:
                continue
            seen.add(pr.id)
            pull_requests.append(pr)
    return pull_requests


# =============================================================================
# Collectors (one FetchResult per scope unit)
# =============================================================================

def collect_organization_scoped(resource_type: str, fetch_fn: Callable[..., List[Any]]):
    """Build a collector that runs fetch_fn once for the organization."""
    def collector(client: AdoClient, config: CollectorConfig, organization: str,
                  projects: Sequence[str]) -> List[FetchResult]:
        return [run_scope(resource_type, organization, "organization", fetch_fn,
                          client, config, organization)]
    collector.__name__ = f"collect_{fetch_fn.__name__[len('fetch_'):]}"
    return collector


def collect_project_scoped(resource_type: str, fetch_fn: Callable[..., List[Any]]):
    """Build a collector that runs fetch_fn once per project name."""
    def collector(client: AdoClient, config: CollectorConfig, organization: str,
                  projects: Sequence[str]) -> List[FetchResult]:
        def one(project: str) -> FetchResult:
            return run_scope(resource_type, organization, project_scope(project), fetch_fn,
                             client, config, organization, project)
        return map_scopes(config, one, projects)
    collector.__name__ = f"collect_{fetch_fn.__name__[len('fetch_'):]}"
    return collector


def collect_agents(client: AdoClient, config: CollectorConfig, organization: str,
                   projects: Sequence[str]) -> List[FetchResult]:
    """Agents of every pool; each pool is its own scope unit."""
    rt = constants.RESOURCE_AGENTS
    pools_result = run_scope(rt, organization, "agent pools", fetch_agent_pools,
                             client, config, organization)
    if not pools_result.ok:
        return [pools_result]

    def one(pool: Dict[str, Any]) -> FetchResult:
        return run_scope(rt, organization, f"pool '{pool['name']}'", fetch_pool_agents,
                         client, config, organization, pool)
    return map_scopes(config, one, pools_result.records)


def collect_pull_requests(client: AdoClient, config: CollectorConfig, organization: str,
                          projects: Sequence[str]) -> List[FetchResult]:
    """Pull requests per repository, per project; each repository is its own scope unit."""
    rt = constants.RESOURCE_PULL_REQUESTS

    def one_project(project: str) -> List[FetchResult]:
        repos_result = run_scope(rt, organization, project_scope(project), fetch_repositories,
                                 client, config, organization, project)
        if not repos_result.ok:
            return [repos_result]
        return [
            run_scope(rt, organization, f"repository '{project}/{repo.name}'",
                      fetch_repository_pull_requests, client, config, organization, project, repo)
            for repo in repos_result.records
        ]

    return _flatten(map_scopes(config, one_project, projects))


collect_repositories = collect_project_scoped(constants.RESOURCE_REPOSITORIES, fetch_repositories)
collect_pipelines = collect_project_scoped(constants.RESOURCE_PIPELINES, fetch_pipelines)
collect_wikis = collect_project_scoped(constants.RESOURCE_WIKIS, fetch_wikis)
collect_boards = collect_project_scoped(constants.RESOURCE_BOARDS, fetch_boards)
collect_work_items = collect_project_scoped(constants.RESOURCE_WORK_ITEMS, fetch_work_items)
collect_test_plans = collect_project_scoped(constants.RESOURCE_TEST_PLANS, fetch_test_plans)
collect_dashboards = collect_project_scoped(constants.RESOURCE_DASHBOARDS, fetch_dashboards)
collect_service_endpoints = collect_project_scoped(constants.RESOURCE_SERVICE_ENDPOINTS,
                                                   fetch_service_endpoints)
collect_release_pipelines = collect_project_scoped(constants.RESOURCE_RELEASE_PIPELINES,
                                                   fetch_release_pipelines)
collect_variable_groups = collect_project_scoped(constants.RESOURCE_VARIABLE_GROUPS,
                                                 fetch_variable_groups)
collect_teams = collect_project_scoped(constants.RESOURCE_TEAMS, fetch_teams)
collect_artifact_feeds = collect_organization_scoped(constants.RESOURCE_ARTIFACT_FEEDS,
                                                     fetch_artifact_feeds)
collect_extensions = collect_organization_scoped(constants.RESOURCE_EXTENSIONS, fetch_extensions)


# Collectors that depend on the project list, in fetch order
PROJECT_COLLECTORS = {
    constants.RESOURCE_REPOSITORIES: collect_repositories,
    constants.RESOURCE_PIPELINES: collect_pipelines,
    constants.RESOURCE_WIKIS: collect_wikis,
    constants.RESOURCE_BOARDS: collect_boards,
    constants.RESOURCE_WORK_ITEMS: collect_work_items,
    constants.RESOURCE_TEST_PLANS: collect_test_plans,
    constants.RESOURCE_DASHBOARDS: collect_dashboards,
    constants.RESOURCE_SERVICE_ENDPOINTS: collect_service_endpoints,
    constants.RESOURCE_RELEASE_PIPELINES: collect_release_pipelines,
    constants.RESOURCE_VARIABLE_GROUPS: collect_variable_groups,
    constants.RESOURCE_TEAMS: collect_teams,
    constants.RESOURCE_PULL_REQUESTS: collect_pull_requests,
}

# Collectors that run regardless of the project list
ORGANIZATION_COLLECTORS = {
    constants.RESOURCE_ARTIFACT_FEEDS: collect_artifact_feeds,
    constants.RESOURCE_AGENTS: collect_agents,
    constants.RESOURCE_EXTENSIONS: collect_extensions,
}
