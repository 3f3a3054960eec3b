"""Git engine adapter built on GitPython."""

import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from git import Repo, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, RemoteProgress
from git.exc import UnsafeProtocolError
from git.refs.head import Head
from git.refs.remote import RemoteReference

from ..errors import CloneError
from .error_recovery import describe_error


SUPPORTED_PROTOCOLS = ("http", "https", "ssh", "git", "file")

_SCHEME_PATTERN = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*)://")

# Resets any configured helper, then answers from the environment
_CREDENTIAL_HELPER = (
    '!f() { test "$1" = get || exit 0; '
    'echo "username=${SCSYNC_GIT_USERNAME}"; '
    'echo "password=${SCSYNC_GIT_PASSWORD}"; }; f'
)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class UserInfo:
    """Credentials for git network operations plus the identity used for merge commits."""
    username: str
    email: str
    password: str = field(default="", repr=False)


class CloneProgress(RemoteProgress):
    """Logs clone progress at most once every `interval` seconds."""

    _STAGES = {
        RemoteProgress.COUNTING: "Counting objects",
        RemoteProgress.COMPRESSING: "Compressing objects",
        RemoteProgress.WRITING: "Writing objects",
        RemoteProgress.RECEIVING: "Receiving objects",
        RemoteProgress.RESOLVING: "Resolving deltas",
        RemoteProgress.FINDING_SOURCES: "Finding sources",
        RemoteProgress.CHECKING_OUT: "Checking out files",
    }

    def __init__(self, remote_url: str, interval: float = 5.0, clock: Callable[[], float] = time.monotonic):
        super().__init__()
        self.remote_url = remote_url
        self.interval = interval
        self._clock = clock
        self._last_report: Optional[float] = None
        self.reports = 0
        self.logger = logging.getLogger('scsync.git_sync.engine')

    def update(self, op_code, cur_count, max_count=None, message=''):
        now = self._clock()
        if self._last_report is not None and now - self._last_report < self.interval:
            return
        self._last_report = now
        self.reports += 1

        stage = self._STAGES.get(op_code & RemoteProgress.OP_MASK, "Transferring")
        if max_count:
            progress = f"{int(cur_count or 0)}/{int(max_count)} ({(cur_count or 0) / max_count:.0%})"
        else:
            progress = f"{int(cur_count or 0)}"
        suffix = f" {message.strip()}" if message and message.strip() else ""
        self.logger.info(f"Cloning {self.remote_url}: {stage} {progress}{suffix}")


def check_url_protocol(remote_url: str) -> None:
    """Raise CloneError when the URL uses a scheme git cannot clone from."""
    match = _SCHEME_PATTERN.match(remote_url or "")
    if match and match.group(1).lower() not in SUPPORTED_PROTOCOLS:
        raise CloneError(f"unsupported URL protocol '{match.group(1)}'", remote_url)


class GitEngine:
    """
    Thin capability layer over GitPython.

    Owns no orchestration logic: it answers whether a path is a repository,
    clones, fetches, and performs the individual branch operations the
    branch reconciler asks for. Credentials are handed to git through an
    environment-only credential helper so they never reach .git/config.
    """

    def __init__(
        self,
        user_info: Optional[UserInfo] = None,
        operation_timeout: float = 600.0,
        progress_interval: float = 5.0,
        low_speed_time: int = 60
    ):
        """
        Initialize the engine.

        Args:
            user_info: Credentials and commit identity; None for anonymous access
            operation_timeout: Seconds before fetch and pull are killed
            progress_interval: Minimum seconds between clone progress log lines
            low_speed_time: Seconds of stalled transfer before a clone aborts
        """
        self.user_info = user_info
        self.operation_timeout = operation_timeout
        self.progress_interval = progress_interval
        self.low_speed_time = low_speed_time
        self.logger = logging.getLogger('scsync.git_sync.engine')

    def git_environment(self) -> Dict[str, str]:
        """Environment variables passed to every git invocation."""
        env = {"GIT_TERMINAL_PROMPT": "0"}

        name = "scsync"
        email = "scsync@localhost"
        if self.user_info is not None:
            name = self.user_info.username or name
            email = self.user_info.email or email

            if self.user_info.username:
                env.update({
                    "GIT_CONFIG_COUNT": "2",
                    "GIT_CONFIG_KEY_0": "credential.helper",
                    "GIT_CONFIG_VALUE_0": "",
                    "GIT_CONFIG_KEY_1": "credential.helper",
                    "GIT_CONFIG_VALUE_1": _CREDENTIAL_HELPER,
                    "SCSYNC_GIT_USERNAME": self.user_info.username,
                    "SCSYNC_GIT_PASSWORD": self.user_info.password,
                })

        env.update({
            "GIT_AUTHOR_NAME": name,
            "GIT_AUTHOR_EMAIL": email,
            "GIT_COMMITTER_NAME": name,
            "GIT_COMMITTER_EMAIL": email,
        })
        return env

    def is_local_repository(self, path: PathLike) -> bool:
        """Return True iff `path` is a git working directory; never raises for missing paths."""
        try:
            repo = Repo(str(path))
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False

        try:
            return not repo.bare
        finally:
            repo.close()

    def open_repository(self, path: PathLike) -> Repo:
        """Open a local repository with the engine's git environment applied."""
        repo = Repo(str(path))
        repo.git.update_environment(**self.git_environment())
        return repo

    def clone_remote(self, remote_url: str, local_path: PathLike) -> Repo:
        """
        Clone `remote_url` into `local_path`.

        Progress is logged through CloneProgress. Any failure is raised as
        CloneError; deciding whether to retry is up to the caller.

        Returns:
            The open, freshly cloned repository
        """
        check_url_protocol(remote_url)

        env = self.git_environment()
        env.update({
            "GIT_HTTP_LOW_SPEED_LIMIT": "1000",
            "GIT_HTTP_LOW_SPEED_TIME": str(int(self.low_speed_time)),
        })

        try:
            Path(local_path).parent.mkdir(parents=True, exist_ok=True)
            repo = Repo.clone_from(
                remote_url,
                str(local_path),
                progress=CloneProgress(remote_url, self.progress_interval),
                env=env
            )
        except UnsafeProtocolError as e:
            raise CloneError(f"unsupported URL protocol: {e}", remote_url) from e
        except GitCommandError as e:
            raise CloneError(describe_error(e), remote_url) from e
        except OSError as e:
            raise CloneError(f"Cannot prepare clone directory {local_path}: {e}", remote_url) from e

        repo.git.update_environment(**self.git_environment())
        return repo

    def fetch_all_remotes(self, repo: Repo) -> None:
        """Update remote-tracking refs for every configured remote without touching the working tree."""
        for remote in repo.remotes:
            self.logger.debug(f"Fetching remote '{remote.name}' in {repo.working_tree_dir}")
            remote.fetch(kill_after_timeout=self.operation_timeout)

    def create_tracking_branch(self, repo: Repo, remote_ref: RemoteReference) -> Head:
        """Create a local branch at the remote tip, track it, and force-checkout it."""
        head = repo.create_head(remote_ref.remote_head, remote_ref)
        head.set_tracking_branch(remote_ref)
        head.checkout(force=True)
        return head

    def force_checkout(self, head: Head) -> None:
        """Check out `head`, discarding local modifications."""
        head.checkout(force=True)

    def upstream_status(self, repo: Repo, head: Head) -> str:
        """
        Compare a tracking branch with its upstream.

        Returns:
            'equal', 'ahead', 'behind' or 'diverged'
        """
        upstream = head.tracking_branch()
        local_commit = head.commit
        remote_commit = upstream.commit

        if local_commit == remote_commit:
            return "equal"
        if repo.is_ancestor(remote_commit, local_commit):
            return "ahead"
        if repo.is_ancestor(local_commit, remote_commit):
            return "behind"
        return "diverged"

    def pull(self, repo: Repo, head: Head) -> str:
        """
        Merge the already fetched upstream into the checked out `head`.

        Fast-forwards when possible. Otherwise merges with `-X theirs`, so
        content conflicts resolve to the incoming (remote) version. Conflicts
        `-X theirs` leaves behind (modify/delete, rename) are resolved path by
        path in favour of the remote side and committed. A merge that cannot
        be resolved is aborted, leaving the repository valid, and the
        GitCommandError is re-raised.

        Returns:
            'fast-forward' or 'merge'
        """
        upstream = head.tracking_branch()

        if repo.is_ancestor(head.commit, upstream.commit):
            repo.git.merge(upstream.name, ff_only=True)
            return "fast-forward"

        try:
            repo.git.merge(upstream.name, X="theirs", no_edit=True)
        except GitCommandError as merge_error:
            try:
                resolved = self._resolve_conflicts_with_remote(repo)
            except GitCommandError:
                self._abort_merge(repo)
                raise
            if not resolved:
                self._abort_merge(repo)
                raise merge_error
        return "merge"

    def _resolve_conflicts_with_remote(self, repo: Repo) -> bool:
        """
        Settle every unmerged path of an in-progress merge with the remote
        side and commit the merge.

        A path with a stage 3 entry takes the remote content; a path without
        one was deleted remotely and is removed.

        Returns:
            False when the index holds no unmerged paths, True once committed
        """
        unmerged = repo.index.unmerged_blobs()
        if not unmerged:
            return False

        for path, entries in unmerged.items():
            if any(stage == 3 for stage, _ in entries):
                repo.git.checkout("--theirs", "--", path)
                repo.git.add("--", path)
            else:
                repo.git.rm("--force", "--", path)

        repo.git.commit("--no-edit")
        self.logger.warning(
            f"Resolved {len(unmerged)} conflicting paths in {repo.working_tree_dir} "
            f"with the remote version: {', '.join(sorted(unmerged))}"
        )
        return True

    def _abort_merge(self, repo: Repo) -> None:
        try:
            repo.git.merge("--abort")
        except GitCommandError as e:
            self.logger.debug(f"No merge to abort in {repo.working_tree_dir}: {describe_error(e)}")
