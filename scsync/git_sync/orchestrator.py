"""Bounded-parallel synchronization of many repositories."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional

from .branches import BranchMatcher
from .repository_sync import RepositorySynchronizer, SyncTarget
from .utils import SyncResult, make_failure, make_skipped, summarize_results


DEFAULT_MAX_CONCURRENCY = 10


class SyncOrchestrator:
    """
    Runs a RepositorySynchronizer over many targets with bounded parallelism.

    At most `max_concurrency` repositories synchronize at once. A slot is
    taken from a bounded semaphore before a target is submitted to the
    worker pool and released by the worker when it finishes, whatever the
    outcome. Cancellation only stops targets that have not started yet.
    """

    def __init__(self, synchronizer: RepositorySynchronizer, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self.synchronizer = synchronizer
        self.max_concurrency = max_concurrency
        self.logger = logging.getLogger('scsync.git_sync.orchestrator')

    def schedule(self, targets: List[SyncTarget]) -> List[int]:
        """
        Return target indices in execution order: existing local repositories
        first, then targets that need a clone. Order is otherwise preserved.
        """
        needs_clone = [
            not self.synchronizer.engine.is_local_repository(target.local_path)
            for target in targets
        ]
        return sorted(range(len(targets)), key=lambda index: needs_clone[index])

    def sync_all(
        self,
        targets: Iterable[SyncTarget],
        matcher: Optional[BranchMatcher] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[SyncResult]:
        """
        Synchronize every target and wait for all of them.

        Args:
            targets: Remote URL / local path pairs
            matcher: Branch selection passed to every synchronizer
            cancel_event: Set it to stop targets that have not started

        Returns:
            One SyncResult per target, in the order the targets were given.
            Targets that never started have status SKIPPED.
        """
        targets = list(targets)
        cancel_event = cancel_event or threading.Event()
        results: List[Optional[SyncResult]] = [None] * len(targets)
        results_lock = threading.Lock()
        semaphore = threading.BoundedSemaphore(self.max_concurrency)
        total = len(targets)

        def store(index: int, result: SyncResult) -> None:
            with results_lock:
                results[index] = result

        def worker(position: int, index: int) -> None:
            target = targets[index]
            try:
                if cancel_event.is_set():
                    store(index, make_skipped("cancelled before start", target.remote_url, target.local_path))
                    return

                self.logger.info(f"Ensuring sync [{position}/{total}] repository {target.remote_url}...")
                store(index, self.synchronizer.sync(target, matcher))
            except Exception as e:
                self.logger.error(f"Synchronizing {target.remote_url} raised: {e}", exc_info=True)
                store(index, make_failure(f"Unexpected error: {e}", target.remote_url, target.local_path))
            finally:
                semaphore.release()

        order = self.schedule(targets)
        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="scsync") as executor:
            for position, index in enumerate(order, 1):
                if not self._acquire(semaphore, cancel_event):
                    self.logger.warning(f"Cancellation requested; {total - position + 1} repositories not started")
                    break
                try:
                    executor.submit(worker, position, index)
                except RuntimeError:
                    semaphore.release()
                    raise

        for index, target in enumerate(targets):
            if results[index] is None:
                results[index] = make_skipped("cancelled before start", target.remote_url, target.local_path)

        summary = summarize_results(results)
        self.logger.info(
            f"Synchronization finished: {summary.succeeded} succeeded, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        return results

    def _acquire(self, semaphore: threading.BoundedSemaphore, cancel_event: threading.Event) -> bool:
        """Wait for a free slot; False if cancellation was requested first."""
        while True:
            if cancel_event.is_set():
                return False
            if semaphore.acquire(timeout=0.1):
                if cancel_event.is_set():
                    semaphore.release()
                    return False
                return True

