"""Result types for repository synchronization."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional


class SyncStatus(Enum):
    """Terminal outcome of one repository's synchronization."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class BranchAction(Enum):
    """What the branch reconciler did with a single branch."""
    CREATED = "created"          # New local tracking branch from a remote branch
    UPDATED = "updated"          # Tracking branch checked out and pulled
    UP_TO_DATE = "up_to_date"    # Tracking branch already at (or ahead of) upstream
    SKIPPED = "skipped"          # Rejected by the branch matcher
    UNTOUCHED = "untouched"      # Local branch with no tracked remote
    FAILED = "failed"


@dataclass
class SyncResultError:
    """A single error message attached to a SyncResult."""
    message: str


@dataclass
class BranchOutcome:
    """Outcome of reconciling one branch."""
    name: str
    action: BranchAction
    message: str = ""

    @property
    def success(self) -> bool:
        return self.action != BranchAction.FAILED


@dataclass
class SyncResult:
    """
    Outcome of one repository's synchronization attempt.

    A default-constructed result is successful and carries no errors. Adding
    an error through add_error() marks it failed; a result with errors is
    never successful.
    """
    is_successful: bool = True
    errors: List[SyncResultError] = field(default_factory=list)
    remote_url: Optional[str] = None
    local_path: Optional[str] = None
    status: Optional[SyncStatus] = None
    attempts: int = 0
    branches: List[BranchOutcome] = field(default_factory=list)

    def __post_init__(self):
        if self.errors:
            self.is_successful = False
        if self.status is None:
            self.status = SyncStatus.SUCCEEDED if self.is_successful else SyncStatus.FAILED

    def add_error(self, message: str) -> None:
        """Record an error and mark the result failed."""
        self.errors.append(SyncResultError(message=message))
        self.is_successful = False
        self.status = SyncStatus.FAILED

    def extend(self, other: "SyncResult") -> None:
        """Merge another result (branches and errors) into this one."""
        self.branches.extend(other.branches)
        for error in other.errors:
            self.add_error(error.message)
        if not other.is_successful and not other.errors:
            self.is_successful = False
            self.status = SyncStatus.FAILED

    @property
    def skipped(self) -> bool:
        return self.status == SyncStatus.SKIPPED

    @property
    def messages(self) -> List[str]:
        return [error.message for error in self.errors]


def make_successful(remote_url: Optional[str] = None, local_path: Optional[str] = None) -> SyncResult:
    """Create a successful SyncResult."""
    return SyncResult(remote_url=remote_url, local_path=local_path)


def make_failure(
    messages: Iterable[str],
    remote_url: Optional[str] = None,
    local_path: Optional[str] = None,
    attempts: int = 0
) -> SyncResult:
    """
    Create a failed SyncResult from one or more error messages.

    Args:
        messages: Error messages, in the order they occurred
        remote_url: Remote URL of the repository
        local_path: Local working copy path
        attempts: Number of attempts made

    Returns:
        SyncResult with is_successful=False
    """
    if isinstance(messages, str):
        messages = [messages]
    result = SyncResult(remote_url=remote_url, local_path=local_path, attempts=attempts)
    for message in messages:
        result.add_error(message)
    if not result.errors:
        result.add_error("Synchronization failed")
    return result


def make_skipped(reason: str, remote_url: Optional[str] = None, local_path: Optional[str] = None) -> SyncResult:
    """Create a result for a target that was never started (e.g. cancelled)."""
    return SyncResult(
        is_successful=False,
        errors=[],
        remote_url=remote_url,
        local_path=local_path,
        status=SyncStatus.SKIPPED,
        branches=[BranchOutcome(name="*", action=BranchAction.SKIPPED, message=reason)]
    )


@dataclass
class SyncSummary:
    """Human-facing summary of an orchestration run."""
    total: int
    succeeded: int
    failed: int
    skipped: int
    failures: List[str] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0 and self.skipped == 0

    def format(self) -> str:
        lines = [
            f"Synchronized {self.total} repositories: "
            f"{self.succeeded} succeeded, {self.failed} failed, {self.skipped} skipped"
        ]
        for failure in self.failures:
            lines.append(f"  - {failure}")
        return "\n".join(lines)


def summarize_results(results: Iterable[SyncResult]) -> SyncSummary:
    """Count succeeded, failed and skipped results and collect failure messages."""
    results = list(results)
    failures = []
    for result in results:
        if result.status == SyncStatus.FAILED:
            detail = "; ".join(result.messages) or "unknown error"
            failures.append(f"{result.remote_url or result.local_path}: {detail}")

    return SyncSummary(
        total=len(results),
        succeeded=sum(1 for r in results if r.status == SyncStatus.SUCCEEDED),
        failed=sum(1 for r in results if r.status == SyncStatus.FAILED),
        skipped=sum(1 for r in results if r.status == SyncStatus.SKIPPED),
        failures=failures
    )
