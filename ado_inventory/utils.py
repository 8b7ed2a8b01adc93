"""
Utility functions for the Azure DevOps inventory collector.

Logging Level Standards:
------------------------
- ERROR: Failures that stop the run
         "Invalid configuration: work_item_limit must be greater than zero"
- WARNING: Partial failures (one project, pool or repository)
           "Failed to collect Repositories for project 'Web' in contoso: {e}"
- INFO: Progress messages, resource counts
        "Found 42 Repositories in contoso"
- DEBUG: Per-request details
         "GET https://dev.azure.com/contoso/_apis/projects?api-version=7.1"
"""
import csv
import logging
import os
import re
import sys
import tempfile
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, TypeVar

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .constants import FILE_TIMESTAMP_FORMAT

logger = logging.getLogger(__name__)

# Type variable for generic function decorator
F = TypeVar('F', bound=Callable[..., Any])


def retry_with_backoff(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 60,
    exceptions: tuple = (Exception,)
) -> Callable[[F], F]:
    """
    Retry a callable on the given exception types, backing off exponentially.

    max_attempts counts the first call, so 1 disables retrying. The last
    exception is re-raised once attempts run out.

    Example:
        @retry_with_backoff(max_attempts=3, exceptions=(requests.ConnectionError,))
        def list_projects():
            ...
    """
    def decorator(func: F) -> F:
        return retry(
            stop=stop_after_attempt(max(1, max_attempts)),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )(func)  # type: ignore[return-value]
    return decorator


# =============================================================================
# Progress Tracking
# =============================================================================

class ProgressTracker:
    """
    Per-organization progress on stderr.

    Uses a rich progress bar on a terminal and plain lines otherwise, so
    piped report output stays clean.

    Usage:
        with ProgressTracker("Azure DevOps", total_organizations=2) as tracker:
            for org in organizations:
                tracker.start_organization(org)
                tracker.update_task("Collecting Repositories...")
                tracker.add_resources(12)
                tracker.complete_organization()
    """

    def __init__(self, label: str, total_organizations: int = 0, show_progress: bool = True):
        self.label = label
        self.total_organizations = total_organizations
        self.show_progress = show_progress and sys.stderr.isatty()

        self.completed_organizations = 0
        self.total_resources = 0
        self.total_warnings = 0
        self.current_organization = ""
        self.current_task = ""

        self._console: Optional[Console] = None
        self._progress: Optional[Progress] = None
        self._main_task: Optional[TaskID] = None

    def __enter__(self):
        if self.show_progress:
            self._console = Console(stderr=True)
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )
            self._main_task = self._progress.add_task(
                f"{self.label} Collection", total=self.total_organizations or 1
            )
            self._progress.start()
        else:
            print(f"\n{'='*60}", file=sys.stderr)
            print(f"{self.label} Collection Starting", file=sys.stderr)
            print(f"{'='*60}", file=sys.stderr)
            if self.total_organizations:
                print(f"Organizations: {self.total_organizations}\n", file=sys.stderr)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._progress is not None:
            self._progress.stop()
            self._print_summary_rich()
        else:
            self._print_summary_plain()
        return False

    def start_organization(self, organization: str):
        """Mark the start of processing an organization."""
        self.current_organization = organization
        if self._progress is not None and self._main_task is not None:
            self._progress.update(self._main_task, description=f"{self.label} [{organization}]")
        else:
            print(f"[{organization}] Starting collection...", file=sys.stderr)

    def update_task(self, task_description: str):
        """Update the current task being performed."""
        self.current_task = task_description
        if self._progress is not None and self._main_task is not None:
            org_info = f"[{self.current_organization}] " if self.current_organization else ""
            self._progress.update(self._main_task, description=f"{self.label} {org_info}{task_description}")

    def add_resources(self, count: int, warnings: int = 0):
        """Add discovered resources to the running total."""
        self.total_resources += count
        self.total_warnings += warnings

    def complete_organization(self):
        """Mark an organization as complete."""
        self.completed_organizations += 1
        if self._progress is not None and self._main_task is not None:
            self._progress.update(self._main_task, advance=1)
        else:
            print(f"[{self.current_organization}] Complete - Running total: "
                  f"{self.total_resources:,} resources", file=sys.stderr)

    def _print_summary_rich(self):
        """Print a formatted summary using rich."""
        table = Table(title=f"{self.label} Collection Summary", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Organizations", str(self.completed_organizations))
        table.add_row("Total Resources", f"{self.total_resources:,}")
        table.add_row("Warnings", str(self.total_warnings))

        assert self._console is not None
        self._console.print(Panel(table))

    def _print_summary_plain(self):
        """Print a plain text summary."""
        print(f"\n{'='*60}", file=sys.stderr)
        print(f"{self.label} Collection Complete", file=sys.stderr)
        print(f"{'='*60}", file=sys.stderr)
        print(f"  Organizations:   {self.completed_organizations}", file=sys.stderr)
        print(f"  Total Resources: {self.total_resources:,}", file=sys.stderr)
        print(f"  Warnings:        {self.total_warnings}", file=sys.stderr)
        print(file=sys.stderr)


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def get_file_timestamp(now: Optional[datetime] = None) -> str:
    """Sortable local timestamp for artifact filenames (yyyyMMdd-HHmmss)."""
    return (now or datetime.now()).strftime(FILE_TIMESTAMP_FORMAT)


def mask_token(token: str) -> str:
    """
    Mask a personal access token for display.

    Example: abcd1234efgh5678 -> abcd...5678
    """
    if not token:
        return token
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"


# =============================================================================
# Log Redaction
# =============================================================================

# Secrets registered at runtime (tokens entered by the user or read from config)
_KNOWN_SECRETS: Set[str] = set()

_LOG_REDACT_PATTERNS = [
    # Basic authorization header values
    (re.compile(r'(Basic\s+)[A-Za-z0-9+/=]{8,}'), r'\1***'),
    # Classic 52-character PATs (base32 alphabet)
    (re.compile(r'\b[a-z2-7]{52}\b'), '***'),
]


def register_secret(secret: str) -> None:
    """Register a secret value so it is masked in every log record."""
    if secret:
        _KNOWN_SECRETS.add(secret)


def redact_log_message(message: str) -> str:
    """Redact tokens and authorization values from a log message."""
    if not message:
        return message

    for secret in _KNOWN_SECRETS:
        if secret in message:
            message = message.replace(secret, mask_token(secret))

    for pattern, replacement in _LOG_REDACT_PATTERNS:
        message = pattern.sub(replacement, message)

    return message


class RedactingFilter(logging.Filter):
    """Logging filter that redacts personal access tokens from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive data from the log record message."""
        if record.msg:
            record.msg = redact_log_message(str(record.msg))
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: redact_log_message(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            else:
                record.args = tuple(
                    redact_log_message(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )
        return True


def setup_logging(level: str = "INFO", output_dir: Optional[str] = None) -> logging.Logger:
    """
    Send log records to stderr and, with output_dir, to a timestamped file.

    Both handlers redact tokens. Calling again replaces earlier handlers.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    # Console handler (stderr, keeps stdout for the report)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(RedactingFilter())
    root_logger.addHandler(console_handler)

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        log_file = os.path.join(output_dir, f"ado_inventory_{get_file_timestamp()}.log")

        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(RedactingFilter())
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to: {log_file}")

    return logging.getLogger(__name__)


# =============================================================================
# File Output
# =============================================================================

def ensure_parent_dir(filepath: str) -> None:
    """Create the directory holding filepath if it does not exist."""
    parent = os.path.dirname(os.path.abspath(filepath))
    os.makedirs(parent, exist_ok=True)


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def atomic_write(filepath: str, write_fn: Callable[[str], None]) -> None:
    """
    Write a file via a temporary sibling that is moved into place.

    write_fn receives the temporary path. On any failure the temporary file
    is removed and the destination is left untouched.
    """
    ensure_parent_dir(filepath)
    directory = os.path.dirname(os.path.abspath(filepath))
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    os.close(fd)
    try:
        write_fn(tmp_path)
        # mkstemp creates 0600; give the result the usual umask mode
        os.chmod(tmp_path, 0o666 & ~_current_umask())
        os.replace(tmp_path, filepath)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def write_csv(data: List[Dict], filepath: str, fieldnames: Optional[List[str]] = None) -> None:
    """Write data to CSV file."""
    if not data:
        return

    if not fieldnames:
        fieldnames = list(data[0].keys())

    def _write(path: str) -> None:
        with open(path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(data)

    atomic_write(filepath, _write)
    logger.info(f"Wrote {filepath}")


def write_text(content: str, filepath: str) -> None:
    """Write a text file."""
    def _write(path: str) -> None:
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)

    atomic_write(filepath, _write)
    logger.info(f"Wrote {filepath}")
