"""Branch selection and reconciliation for local working copies."""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from git import Repo
from git.refs.head import Head
from git.refs.remote import RemoteReference

from ..errors import ConfigurationError
from .engine import GitEngine
from .error_recovery import describe_error
from .utils import BranchAction, BranchOutcome, SyncResult


class BranchMatcher:
    """
    Case-insensitive regular expressions selecting which branches take part
    in a sync. Patterns are searched (not anchored) in the branch's
    local-equivalent name, e.g. 'feature/x' for 'origin/feature/x'.

    Both an unset (None) and an empty pattern list leave selection
    unrestricted. The matcher remembers which of the two it was built from.
    """

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        self.patterns: Optional[List[str]] = None if patterns is None else list(patterns)
        try:
            self._compiled = [re.compile(p, re.IGNORECASE) for p in self.patterns or []]
        except re.error as e:
            raise ConfigurationError(f"Invalid branch matcher {e.pattern!r}: {e}")

    @property
    def is_configured(self) -> bool:
        return self.patterns is not None

    @property
    def is_restricted(self) -> bool:
        return bool(self._compiled)

    def matches(self, branch_name: str) -> bool:
        if not self._compiled:
            return True
        return any(regex.search(branch_name) for regex in self._compiled)

    def describe(self) -> str:
        if self.patterns is None:
            return "all branches (no matchers configured)"
        if not self.patterns:
            return "all branches (empty matcher list)"
        return ", ".join(self.patterns)


class BranchState(Enum):
    """Relationship between a branch name and its local/remote refs."""
    REMOTE_ONLY = "remote_only"
    LOCAL_TRACKING_EXISTS = "local_tracking_exists"
    LOCAL_ONLY_NO_REMOTE = "local_only_no_remote"


@dataclass
class BranchPlan:
    """Partition of a repository's branches for one reconciliation pass."""
    untracked_remote: List[RemoteReference] = field(default_factory=list)
    tracking: List[Head] = field(default_factory=list)
    local_only: List[Head] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    states: Dict[str, BranchState] = field(default_factory=dict)


class BranchReconciler:
    """
    Brings local branches in line with their remote counterparts.

    One pass fetches every remote, partitions branches with plan(), then
    creates missing tracking branches and pulls existing ones. Branch
    operations are strictly sequential. A failing branch is recorded in the
    result and the pass moves on to the next one.

    Pull policy: fast-forward when possible, otherwise merge preferring the
    remote version of every conflicting file. Working trees are treated as
    mirrors, so local edits always lose.
    """

    def __init__(self, engine: GitEngine):
        self.engine = engine
        self.logger = logging.getLogger('scsync.git_sync.branches')

    def reconcile(self, repo: Repo, matcher: BranchMatcher) -> SyncResult:
        """
        Run one reconciliation pass.

        Fetch failures propagate so the caller can classify and retry them;
        per-branch failures are collected in the returned SyncResult.
        """
        self.engine.fetch_all_remotes(repo)

        plan = self.plan(repo, matcher)
        return self.apply(repo, plan, matcher)

    def plan(self, repo: Repo, matcher: BranchMatcher) -> BranchPlan:
        """Partition local heads and remote-tracking refs, in ref path order."""
        plan = BranchPlan()

        remote_refs = sorted(
            (ref for remote in repo.remotes for ref in remote.refs if ref.remote_head != "HEAD"),
            key=lambda ref: ref.path
        )
        filtered_paths = set()
        for ref in remote_refs:
            if matcher.matches(ref.remote_head):
                filtered_paths.add(ref.path)
            else:
                plan.skipped.append(ref.name)

        filtered_names = {ref.remote_head for ref in remote_refs if ref.path in filtered_paths}
        tracked_paths = set()
        for head in sorted(repo.heads, key=lambda h: h.name):
            upstream = head.tracking_branch()
            if upstream is not None and upstream.path in filtered_paths:
                plan.tracking.append(head)
                plan.states[head.name] = BranchState.LOCAL_TRACKING_EXISTS
                tracked_paths.add(upstream.path)
            elif matcher.matches(head.name) and head.name not in filtered_names:
                plan.local_only.append(head)
                plan.states[head.name] = BranchState.LOCAL_ONLY_NO_REMOTE

        for ref in remote_refs:
            if ref.path in filtered_paths and ref.path not in tracked_paths:
                plan.untracked_remote.append(ref)
                plan.states.setdefault(ref.remote_head, BranchState.REMOTE_ONLY)

        return plan

    def apply(self, repo: Repo, plan: BranchPlan, matcher: BranchMatcher) -> SyncResult:
        result = SyncResult(local_path=repo.working_tree_dir)

        for name in plan.skipped:
            self.logger.debug(f"Skipping {name}: does not match branch matchers")
            result.branches.append(BranchOutcome(name, BranchAction.SKIPPED, "does not match branch matchers"))

        self.logger.info(
            f"Found {len(plan.untracked_remote) + len(plan.tracking)} branches in "
            f"{repo.working_tree_dir} matching {matcher.describe()}..."
        )

        local_names = {head.name for head in repo.heads}
        count = len(plan.untracked_remote)
        for index, ref in enumerate(plan.untracked_remote, 1):
            name = ref.remote_head
            if name in local_names:
                message = f"local branch '{name}' exists but does not track {ref.name}; left untouched"
                self.logger.warning(f"{repo.working_tree_dir}: {message}")
                result.branches.append(BranchOutcome(name, BranchAction.UNTOUCHED, message))
                continue

            self.logger.info(f"Checking out [{index}/{count}] {ref.name} as new branch '{name}'...")
            try:
                self.engine.create_tracking_branch(repo, ref)
                local_names.add(name)
                result.branches.append(BranchOutcome(name, BranchAction.CREATED, f"tracking {ref.name}"))
            except Exception as e:
                self._record_failure(result, name, f"Failed to create branch '{name}' from {ref.name}", e)

        count = len(plan.tracking)
        for index, head in enumerate(plan.tracking, 1):
            try:
                status = self.engine.upstream_status(repo, head)
                if status in ("equal", "ahead"):
                    self.logger.debug(f"Branch '{head.name}' is up to date ({status})")
                    result.branches.append(BranchOutcome(head.name, BranchAction.UP_TO_DATE, status))
                    continue

                self.logger.info(f"Pulling [{index}/{count}] '{head.name}' ({status})...")
                self.engine.force_checkout(head)
                mode = self.engine.pull(repo, head)
                result.branches.append(
                    BranchOutcome(head.name, BranchAction.UPDATED, f"{mode} to {head.commit.hexsha[:8]}")
                )
            except Exception as e:
                self._record_failure(result, head.name, f"Failed to update branch '{head.name}'", e)

        for head in plan.local_only:
            message = "no tracked remote branch; left untouched"
            self.logger.warning(f"{repo.working_tree_dir}: branch '{head.name}' has {message}")
            result.branches.append(BranchOutcome(head.name, BranchAction.UNTOUCHED, message))

        return result

    def _record_failure(self, result: SyncResult, name: str, context: str, error: Exception) -> None:
        message = f"{context}: {describe_error(error)}"
        self.logger.error(message)
        result.add_error(message)
        result.branches.append(BranchOutcome(name, BranchAction.FAILED, message))
