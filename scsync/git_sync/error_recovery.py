"""Error classification and bounded retry for git engine operations."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from git import GitCommandError

from ..errors import CloneError
from .error_types import ErrorCategory, ErrorResolution, RecoveryAction
from .error_strategies import build_error_strategies, build_error_patterns


@dataclass
class RetryOutcome:
    """Result of running an operation through ErrorClassifier.execute_with_retry()."""
    success: bool
    attempts: int
    value: Any = None
    category: Optional[ErrorCategory] = None
    error: Optional[BaseException] = None
    message: str = ""


def describe_error(error: BaseException) -> str:
    """Return the most useful one-line description of an engine error."""
    if isinstance(error, CloneError):
        return error.reason
    if isinstance(error, GitCommandError):
        stderr = _command_output(error.stderr, "stderr:")
        if stderr:
            return stderr
        for line in _command_output(error.stdout, "stdout:").splitlines():
            if line.strip():
                return line.strip()
        return str(error)
    return str(error) or error.__class__.__name__


def _command_output(output, label: str) -> str:
    # GitCommandError stores streams as "\n  stderr: '...'"
    text = (output or "").strip()
    if text.startswith(label):
        text = text[len(label):].strip()
    return text.strip("'\" \n")


class ErrorClassifier:
    """
    Classifies engine errors as transient, permanent or fatal and retries
    transient ones a bounded number of times with exponential backoff.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the classifier.

        Args:
            max_attempts: Total attempts for a transient failure (first try included)
            retry_delay: Base delay in seconds; doubled after every failed attempt
            sleep: Function used to wait between attempts
        """
        self.max_attempts = max(max_attempts, 1)
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.logger = logging.getLogger('scsync.git_sync.error_recovery')

        self._error_patterns = build_error_patterns()
        self._recovery_strategies = build_error_strategies(self.max_attempts, retry_delay)

    def categorize_error(self, error_message: str) -> ErrorCategory:
        """
        Categorize an error based on a case-insensitive substring match.

        Args:
            error_message: The error message to categorize

        Returns:
            ErrorCategory enum value; FATAL when nothing matches
        """
        if not error_message:
            return ErrorCategory.FATAL

        error_lower = error_message.lower()
        for pattern, category in self._error_patterns.items():
            if pattern in error_lower:
                self.logger.debug(f"Categorized error as {category.value}: pattern '{pattern}' found")
                return category

        return ErrorCategory.FATAL

    def resolve(self, category: ErrorCategory) -> ErrorResolution:
        return self._recovery_strategies[category]

    def execute_with_retry(self, operation_func: Callable[[], Any], operation: str) -> RetryOutcome:
        """
        Run an engine operation, retrying transient failures.

        Permanent and fatal failures return immediately. Transient failures
        are retried until max_attempts is reached, sleeping
        retry_delay * 2 ** (attempt - 1) seconds between attempts.

        Args:
            operation_func: Zero-argument callable performing the operation
            operation: Description of the operation for logging

        Returns:
            RetryOutcome describing the final attempt
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.logger.debug(f"Executing {operation} (attempt {attempt}/{self.max_attempts})")
                value = operation_func()
                if attempt > 1:
                    self.logger.info(f"{operation} succeeded on attempt {attempt}")
                return RetryOutcome(success=True, attempts=attempt, value=value)

            except Exception as e:
                message = describe_error(e)
                category = self.categorize_error(message)
                resolution = self.resolve(category)

                if resolution.action != RecoveryAction.RETRY:
                    log = self.logger.warning if category == ErrorCategory.PERMANENT else self.logger.error
                    log(f"{operation} failed ({category.value}, not retried): {message}")
                    return RetryOutcome(
                        success=False, attempts=attempt, category=category, error=e, message=message
                    )

                if attempt == self.max_attempts:
                    self.logger.error(f"{operation} failed after {attempt} attempts: {message}")
                    return RetryOutcome(
                        success=False, attempts=attempt, category=category, error=e, message=message
                    )

                delay = self.retry_delay * (2 ** (attempt - 1))
                self.logger.warning(
                    f"{operation} failed (attempt {attempt}/{self.max_attempts}): {message}... "
                    f"retrying in {delay:.1f}s"
                )
                self._sleep(delay)

        # Unreachable: the loop always returns
        return RetryOutcome(success=False, attempts=self.max_attempts, message=f"{operation} failed")
