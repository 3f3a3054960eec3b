"""Error types and categorization for repository synchronization."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Categories of git engine errors for appropriate handling."""
    TRANSIENT = "transient"    # Network blip; the same operation may succeed again
    PERMANENT = "permanent"    # Will never succeed with these parameters
    FATAL = "fatal"            # Unclassified; fails this repository only


class RecoveryAction(Enum):
    """Types of recovery actions that can be taken."""
    RETRY = "retry"
    ABORT = "abort"
    PROPAGATE = "propagate"


@dataclass
class ErrorResolution:
    """Information about how to react to a category of error."""
    category: ErrorCategory
    action: RecoveryAction
    user_message: str
    retry_delay: Optional[float] = None
    max_retries: int = 0
