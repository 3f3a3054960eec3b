#!/usr/bin/env python3
"""
Integration tests for branch reconciliation against real git repositories.

Every test builds a bare "origin" repository plus a seed working copy used
to push commits to it, then clones origin through the GitEngine and runs
the BranchReconciler on the clone.
"""

import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path

# Add the project root to the path so we can import scsync modules
import sys
sys.path.insert(0, str(Path(__file__).parent))

from scsync.git_sync.branches import BranchMatcher, BranchReconciler, BranchState
from scsync.git_sync.engine import GitEngine, UserInfo
from scsync.git_sync.error_recovery import ErrorClassifier
from scsync.git_sync.repository_sync import RepositorySynchronizer, SyncTarget
from scsync.git_sync.utils import BranchAction, SyncStatus


DEFAULT_MATCHERS = ["^develop", "^master", "^release"]


def git(*args, cwd: Path) -> str:
    """Run a git command with a fixed identity and return its stdout."""
    result = subprocess.run(
        ["git", "-c", "user.name=Test User", "-c", "user.email=test@example.com", *args],
        cwd=cwd, capture_output=True, check=True, text=True
    )
    return result.stdout.strip()


def commit_file(repo_dir: Path, name: str, content: str, message: str) -> str:
    (repo_dir / name).write_text(content, encoding="utf-8")
    git("add", name, cwd=repo_dir)
    git("commit", "-m", message, cwd=repo_dir)
    return git("rev-parse", "HEAD", cwd=repo_dir)


def create_origin(base_dir: Path, branches) -> tuple:
    """Create a bare origin with a 'main' branch plus `branches`, pushed from a seed clone."""
    origin = base_dir / "origin.git"
    seed = base_dir / "seed"
    origin.mkdir()
    seed.mkdir()

    git("init", "--bare", cwd=origin)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=origin)

    git("init", cwd=seed)
    git("checkout", "-b", "main", cwd=seed)
    git("remote", "add", "origin", str(origin), cwd=seed)
    commit_file(seed, "README.md", "# Test Repository\n", "Initial commit")
    git("push", "origin", "main", cwd=seed)

    for branch in branches:
        git("checkout", "-b", branch, "main", cwd=seed)
        commit_file(seed, "file.txt", f"{branch}\n", f"Work on {branch}")
        git("push", "origin", branch, cwd=seed)

    git("checkout", "main", cwd=seed)
    return origin, seed


def push_change(seed: Path, branch: str, name: str, content: str) -> str:
    git("checkout", branch, cwd=seed)
    sha = commit_file(seed, name, content, f"Update {name} on {branch}")
    git("push", "origin", branch, cwd=seed)
    git("checkout", "main", cwd=seed)
    return sha


class TestBranchReconciliation(unittest.TestCase):
    """Branch reconciler behaviour on real repositories."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.origin, self.seed = create_origin(
            self.temp_dir, ["develop", "release/1.0", "feature/x"]
        )
        self.local_dir = self.temp_dir / "clones" / "test_repo"

        self.engine = GitEngine(UserInfo("tester", "tester@example.com"))
        self.reconciler = BranchReconciler(self.engine)
        self.repos = []

    def tearDown(self):
        for repo in self.repos:
            repo.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def clone(self):
        repo = self.engine.clone_remote(str(self.origin), self.local_dir)
        self.repos.append(repo)
        return repo

    def reopen(self):
        repo = self.engine.open_repository(self.local_dir)
        self.repos.append(repo)
        return repo

    def actions(self, result):
        return {outcome.name: outcome.action for outcome in result.branches}

    def test_creates_tracking_branches_for_matching_remote_branches(self):
        """Remote branches matching the matchers become local tracking branches."""
        repo = self.clone()

        result = self.reconciler.reconcile(repo, BranchMatcher(DEFAULT_MATCHERS))

        self.assertTrue(result.is_successful, result.messages)
        local = {head.name for head in repo.heads}
        self.assertIn("develop", local)
        self.assertIn("release/1.0", local)
        self.assertNotIn("feature/x", local)

        self.assertEqual(repo.heads["develop"].tracking_branch().name, "origin/develop")
        self.assertEqual(repo.heads["release/1.0"].tracking_branch().name, "origin/release/1.0")
        self.assertEqual(
            repo.heads["develop"].commit.hexsha,
            git("rev-parse", "refs/heads/develop", cwd=self.origin)
        )

        actions = self.actions(result)
        self.assertEqual(actions["develop"], BranchAction.CREATED)
        self.assertEqual(actions["release/1.0"], BranchAction.CREATED)
        self.assertEqual(actions["origin/feature/x"], BranchAction.SKIPPED)
        self.assertEqual(actions["origin/main"], BranchAction.SKIPPED)

    def test_unrestricted_matcher_takes_every_branch(self):
        """Both an unset and an empty matcher list select every branch."""
        for patterns in (None, []):
            with self.subTest(patterns=patterns):
                shutil.rmtree(self.local_dir, ignore_errors=True)
                repo = self.clone()

                result = self.reconciler.reconcile(repo, BranchMatcher(patterns))

                self.assertTrue(result.is_successful, result.messages)
                self.assertEqual(
                    {head.name for head in repo.heads},
                    {"main", "develop", "release/1.0", "feature/x"}
                )
                self.assertNotIn(BranchAction.SKIPPED, self.actions(result).values())
                repo.close()

    def test_plan_partitions_branches(self):
        repo = self.clone()
        git("checkout", "-b", "develop-local", cwd=self.local_dir)

        plan = self.reconciler.plan(repo, BranchMatcher(DEFAULT_MATCHERS))

        self.assertEqual([ref.remote_head for ref in plan.untracked_remote], ["develop", "release/1.0"])
        self.assertEqual([head.name for head in plan.local_only], ["develop-local"])
        self.assertEqual(plan.tracking, [])
        self.assertEqual(plan.states["develop"], BranchState.REMOTE_ONLY)
        self.assertEqual(plan.states["develop-local"], BranchState.LOCAL_ONLY_NO_REMOTE)
        self.assertNotIn("HEAD", plan.states)

    def test_second_pass_is_idempotent(self):
        """Reconciling an up-to-date clone changes nothing."""
        repo = self.clone()
        self.reconciler.reconcile(repo, BranchMatcher(DEFAULT_MATCHERS))
        before = {head.name: head.commit.hexsha for head in repo.heads}

        result = self.reconciler.reconcile(self.reopen(), BranchMatcher(DEFAULT_MATCHERS))

        self.assertTrue(result.is_successful, result.messages)
        after = {head.name: head.commit.hexsha for head in self.reopen().heads}
        self.assertEqual(before, after)

        actions = self.actions(result)
        self.assertEqual(actions["develop"], BranchAction.UP_TO_DATE)
        self.assertEqual(actions["release/1.0"], BranchAction.UP_TO_DATE)
        self.assertNotIn(BranchAction.CREATED, actions.values())
        self.assertNotIn(BranchAction.UPDATED, actions.values())

    def test_fast_forwards_behind_branch(self):
        repo = self.clone()
        self.reconciler.reconcile(repo, BranchMatcher(DEFAULT_MATCHERS))

        new_sha = push_change(self.seed, "develop", "feature.txt", "new feature\n")
        result = self.reconciler.reconcile(self.reopen(), BranchMatcher(DEFAULT_MATCHERS))

        self.assertTrue(result.is_successful, result.messages)
        self.assertEqual(self.actions(result)["develop"], BranchAction.UPDATED)
        self.assertEqual(self.reopen().heads["develop"].commit.hexsha, new_sha)

    def test_diverged_branch_prefers_remote_changes(self):
        """Conflicting local edits lose to the remote version."""
        repo = self.clone()
        self.reconciler.reconcile(repo, BranchMatcher(DEFAULT_MATCHERS))

        git("checkout", "develop", cwd=self.local_dir)
        commit_file(self.local_dir, "file.txt", "local edit\n", "Local change")
        remote_sha = push_change(self.seed, "develop", "file.txt", "remote edit\n")

        result = self.reconciler.reconcile(self.reopen(), BranchMatcher(DEFAULT_MATCHERS))

        self.assertTrue(result.is_successful, result.messages)
        self.assertEqual(self.actions(result)["develop"], BranchAction.UPDATED)
        self.assertEqual((self.local_dir / "file.txt").read_text(encoding="utf-8"), "remote edit\n")

        head = self.reopen().heads["develop"]
        self.assertEqual(len(head.commit.parents), 2)
        self.assertIn(remote_sha, [parent.hexsha for parent in head.commit.parents])

    def test_remote_deletion_wins_over_local_edit(self):
        """A file deleted remotely is removed even when it was edited locally."""
        repo = self.clone()
        self.reconciler.reconcile(repo, BranchMatcher(DEFAULT_MATCHERS))

        git("checkout", "develop", cwd=self.local_dir)
        commit_file(self.local_dir, "file.txt", "local edit\n", "Local change")

        git("checkout", "develop", cwd=self.seed)
        git("rm", "file.txt", cwd=self.seed)
        git("commit", "-m", "Remove file.txt", cwd=self.seed)
        remote_sha = git("rev-parse", "HEAD", cwd=self.seed)
        git("push", "origin", "develop", cwd=self.seed)
        git("checkout", "main", cwd=self.seed)

        result = self.reconciler.reconcile(self.reopen(), BranchMatcher(DEFAULT_MATCHERS))

        self.assertTrue(result.is_successful, result.messages)
        self.assertEqual(self.actions(result)["develop"], BranchAction.UPDATED)
        self.assertFalse((self.local_dir / "file.txt").exists())

        repo = self.reopen()
        head = repo.heads["develop"]
        self.assertEqual(len(head.commit.parents), 2)
        self.assertIn(remote_sha, [parent.hexsha for parent in head.commit.parents])
        self.assertFalse(repo.is_dirty(untracked_files=True))
        self.assertEqual(repo.index.unmerged_blobs(), {})

    def test_remote_edit_wins_over_local_deletion(self):
        repo = self.clone()
        self.reconciler.reconcile(repo, BranchMatcher(DEFAULT_MATCHERS))

        git("checkout", "develop", cwd=self.local_dir)
        git("rm", "file.txt", cwd=self.local_dir)
        git("commit", "-m", "Local removal", cwd=self.local_dir)
        push_change(self.seed, "develop", "file.txt", "remote edit\n")

        result = self.reconciler.reconcile(self.reopen(), BranchMatcher(DEFAULT_MATCHERS))

        self.assertTrue(result.is_successful, result.messages)
        self.assertEqual(self.actions(result)["develop"], BranchAction.UPDATED)
        self.assertEqual((self.local_dir / "file.txt").read_text(encoding="utf-8"), "remote edit\n")
        self.assertEqual(len(self.reopen().heads["develop"].commit.parents), 2)

    def test_local_only_branch_left_untouched(self):
        repo = self.clone()
        git("checkout", "-b", "develop-local", cwd=self.local_dir)
        local_sha = commit_file(self.local_dir, "notes.txt", "mine\n", "Local only work")

        with self.assertLogs('scsync.git_sync.branches', level='WARNING') as logs:
            result = self.reconciler.reconcile(repo, BranchMatcher(DEFAULT_MATCHERS))

        self.assertTrue(result.is_successful, result.messages)
        self.assertEqual(self.actions(result)["develop-local"], BranchAction.UNTOUCHED)
        self.assertEqual(self.reopen().heads["develop-local"].commit.hexsha, local_sha)
        self.assertTrue(any("develop-local" in line for line in logs.output))

    def test_same_name_local_branch_without_tracking_left_alone(self):
        repo = self.clone()
        git("branch", "develop", "main", cwd=self.local_dir)
        main_sha = repo.heads["main"].commit.hexsha

        result = self.reconciler.reconcile(self.reopen(), BranchMatcher(DEFAULT_MATCHERS))

        self.assertTrue(result.is_successful, result.messages)
        self.assertEqual(self.actions(result)["develop"], BranchAction.UNTOUCHED)
        self.assertEqual(len([o for o in result.branches if o.name == "develop"]), 1)
        develop = self.reopen().heads["develop"]
        self.assertEqual(develop.commit.hexsha, main_sha)
        self.assertIsNone(develop.tracking_branch())

        plan = self.reconciler.plan(self.reopen(), BranchMatcher(DEFAULT_MATCHERS))
        self.assertNotIn("develop", [head.name for head in plan.local_only])
        self.assertEqual(plan.states["develop"], BranchState.REMOTE_ONLY)


class TestRepositorySyncIntegration(unittest.TestCase):
    """Clone-or-reconcile through RepositorySynchronizer on real repositories."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.origin, self.seed = create_origin(self.temp_dir, ["develop", "master"])
        self.local_dir = self.temp_dir / "clones" / "nested" / "test_repo"

        engine = GitEngine(UserInfo("tester", "tester@example.com"))
        self.synchronizer = RepositorySynchronizer(
            engine, classifier=ErrorClassifier(max_attempts=2, retry_delay=0, sleep=lambda s: None)
        )
        self.target = SyncTarget(remote_url=str(self.origin), local_path=str(self.local_dir))

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_clone_then_update(self):
        first = self.synchronizer.sync(self.target, BranchMatcher(DEFAULT_MATCHERS))

        self.assertEqual(first.status, SyncStatus.SUCCEEDED, first.messages)
        self.assertTrue((self.local_dir / ".git").is_dir())
        self.assertTrue(self.synchronizer.engine.is_local_repository(self.local_dir))
        self.assertEqual(first.attempts, 2)  # one clone plus one reconcile

        second = self.synchronizer.sync(self.target, BranchMatcher(DEFAULT_MATCHERS))

        self.assertEqual(second.status, SyncStatus.SUCCEEDED, second.messages)
        actions = {outcome.name: outcome.action for outcome in second.branches}
        self.assertEqual(actions["develop"], BranchAction.UP_TO_DATE)
        self.assertEqual(actions["master"], BranchAction.UP_TO_DATE)

    def test_missing_remote_fails_without_raising(self):
        target = SyncTarget(remote_url=str(self.temp_dir / "does-not-exist.git"), local_path=str(self.local_dir))

        result = self.synchronizer.sync(target)

        self.assertFalse(result.is_successful)
        self.assertEqual(result.status, SyncStatus.FAILED)
        self.assertTrue(result.messages[0].startswith("Clone failed"))


def run_tests():
    """Run all branch reconciliation tests."""
    print("Running Branch Reconciliation Tests")
    print("=" * 60)

    loader = unittest.TestLoader()
    test_suite = unittest.TestSuite([
        loader.loadTestsFromTestCase(TestBranchReconciliation),
        loader.loadTestsFromTestCase(TestRepositorySyncIntegration),
    ])

    runner = unittest.TextTestRunner(verbosity=2, stream=sys.stdout)
    result = runner.run(test_suite)

    success = len(result.failures) == 0 and len(result.errors) == 0
    print(f"\nOverall result: {'PASS' if success else 'FAIL'}")
    return success


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)
