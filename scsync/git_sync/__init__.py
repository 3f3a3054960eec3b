"""Repository synchronization engine for scsync."""

from .engine import GitEngine, UserInfo, CloneProgress, check_url_protocol
from .branches import BranchMatcher, BranchReconciler, BranchState, BranchPlan
from .repository_sync import RepositorySynchronizer, SyncState, SyncTarget
from .orchestrator import SyncOrchestrator, DEFAULT_MAX_CONCURRENCY
from .error_recovery import ErrorClassifier, RetryOutcome
from .error_types import ErrorCategory
from .utils import (
    SyncResult, SyncResultError, SyncStatus, SyncSummary, BranchAction, BranchOutcome,
    make_successful, make_failure, make_skipped, summarize_results
)

__all__ = [
    'GitEngine',
    'UserInfo',
    'CloneProgress',
    'check_url_protocol',
    'BranchMatcher',
    'BranchReconciler',
    'BranchState',
    'BranchPlan',
    'RepositorySynchronizer',
    'SyncState',
    'SyncTarget',
    'SyncOrchestrator',
    'DEFAULT_MAX_CONCURRENCY',
    'ErrorClassifier',
    'RetryOutcome',
    'ErrorCategory',
    'SyncResult',
    'SyncResultError',
    'SyncStatus',
    'SyncSummary',
    'BranchAction',
    'BranchOutcome',
    'make_successful',
    'make_failure',
    'make_skipped',
    'summarize_results'
]
