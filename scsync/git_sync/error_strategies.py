"""Error recovery strategies for repository synchronization."""

from typing import Dict
from .error_types import ErrorCategory, ErrorResolution, RecoveryAction


def build_error_strategies(max_attempts: int, retry_delay: float) -> Dict[ErrorCategory, ErrorResolution]:
    """Build recovery strategies for each error category."""
    return {
        ErrorCategory.TRANSIENT: ErrorResolution(
            category=ErrorCategory.TRANSIENT,
            action=RecoveryAction.RETRY,
            user_message="Network failure while talking to the remote",
            retry_delay=retry_delay,
            max_retries=max(max_attempts - 1, 0)
        ),

        ErrorCategory.PERMANENT: ErrorResolution(
            category=ErrorCategory.PERMANENT,
            action=RecoveryAction.ABORT,
            user_message="Remote cannot be synchronized with the current settings",
            max_retries=0
        ),

        ErrorCategory.FATAL: ErrorResolution(
            category=ErrorCategory.FATAL,
            action=RecoveryAction.PROPAGATE,
            user_message="Unexpected git failure",
            max_retries=0
        ),
    }


def build_error_patterns() -> Dict[str, ErrorCategory]:
    """Build mapping of lower-case error message fragments to categories."""
    return {
        # Permanent errors
        "unsupported url protocol": ErrorCategory.PERMANENT,
        "unable to find remote helper": ErrorCategory.PERMANENT,

        # Network errors
        "failed to send request": ErrorCategory.TRANSIENT,
        "could not resolve host": ErrorCategory.TRANSIENT,
        "connection timed out": ErrorCategory.TRANSIENT,
        "operation timed out": ErrorCategory.TRANSIENT,
        "connection reset": ErrorCategory.TRANSIENT,
        "failed to connect": ErrorCategory.TRANSIENT,
        "the remote end hung up unexpectedly": ErrorCategory.TRANSIENT,
        "early eof": ErrorCategory.TRANSIENT,
    }
