"""Per-repository clone-or-reconcile state machine."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from git import Repo

from .branches import BranchMatcher, BranchReconciler
from .engine import GitEngine
from .error_recovery import ErrorClassifier, describe_error
from .performance_logger import PerformanceLogger, get_performance_logger
from .utils import SyncResult, SyncStatus


class SyncState(Enum):
    """States a repository passes through during one synchronization."""
    UNSYNCED = "unsynced"
    CLONING = "cloning"
    RECONCILING = "reconciling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncTarget:
    """A remote repository and the local directory it is mirrored into."""
    remote_url: str
    local_path: str


class RepositorySynchronizer:
    """
    Drives one repository through clone-or-reconcile.

    UNSYNCED -> CLONING when the local path is not a repository, otherwise
    UNSYNCED -> RECONCILING. Transient clone and fetch failures are retried
    through the ErrorClassifier (bounded, exponential backoff); permanent
    ones fail at once. Every call yields exactly one SyncResult and never
    raises.
    """

    def __init__(
        self,
        engine: GitEngine,
        reconciler: Optional[BranchReconciler] = None,
        classifier: Optional[ErrorClassifier] = None,
        perf_logger: Optional[PerformanceLogger] = None
    ):
        self.engine = engine
        self.reconciler = reconciler or BranchReconciler(engine)
        self.classifier = classifier or ErrorClassifier()
        self.perf_logger = perf_logger or get_performance_logger()
        self.logger = logging.getLogger('scsync.git_sync.repository_sync')

    def sync(self, target: SyncTarget, matcher: Optional[BranchMatcher] = None) -> SyncResult:
        """
        Synchronize a single target.

        Args:
            target: Remote URL and local path
            matcher: Branch selection; None means every branch

        Returns:
            SyncResult with status SUCCEEDED or FAILED
        """
        matcher = matcher or BranchMatcher()
        result = SyncResult(remote_url=target.remote_url, local_path=target.local_path)
        state = SyncState.UNSYNCED
        repo: Optional[Repo] = None

        try:
            if self.engine.is_local_repository(target.local_path):
                self.logger.info(f"{target.local_path} is already a repository. Attempting to update.")
                state = self._transition(target, state, SyncState.RECONCILING)
                repo = self.engine.open_repository(target.local_path)
            else:
                state = self._transition(target, state, SyncState.CLONING)
                repo = self._clone(target, result)
                if repo is None:
                    state = self._transition(target, state, SyncState.FAILED)
                    return result
                state = self._transition(target, state, SyncState.RECONCILING)

            self._reconcile(target, repo, matcher, result)

        except Exception as e:
            message = f"Unexpected error synchronizing {target.remote_url}: {describe_error(e)}"
            self.logger.error(message, exc_info=True)
            result.add_error(message)

        finally:
            if repo is not None:
                repo.close()

        final = SyncState.SUCCEEDED if result.is_successful else SyncState.FAILED
        self._transition(target, state, final)
        result.status = SyncStatus.SUCCEEDED if result.is_successful else SyncStatus.FAILED
        return result

    def _clone(self, target: SyncTarget, result: SyncResult) -> Optional[Repo]:
        self.logger.info(f"Cloning {target.remote_url} into {target.local_path}...")

        with self.perf_logger.time_operation("clone", {"remote_url": target.remote_url}):
            outcome = self.classifier.execute_with_retry(
                lambda: self.engine.clone_remote(target.remote_url, target.local_path),
                f"clone {target.remote_url}"
            )

        result.attempts += outcome.attempts
        if not outcome.success:
            result.add_error(f"Clone failed ({outcome.category.value}): {outcome.message}")
            return None
        return outcome.value

    def _reconcile(self, target: SyncTarget, repo: Repo, matcher: BranchMatcher, result: SyncResult) -> None:
        with self.perf_logger.time_operation("reconcile", {"local_path": target.local_path}):
            outcome = self.classifier.execute_with_retry(
                lambda: self.reconciler.reconcile(repo, matcher),
                f"reconcile {target.local_path}"
            )

        result.attempts += outcome.attempts
        if not outcome.success:
            result.add_error(f"Reconciliation failed ({outcome.category.value}): {outcome.message}")
            return
        result.extend(outcome.value)

    def _transition(self, target: SyncTarget, current: SyncState, new: SyncState) -> SyncState:
        self.logger.debug(f"{target.local_path}: {current.value} -> {new.value}")
        return new
