"""Configuration management for scsync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()  # Load .env file if it exists


DEFAULT_BRANCH_MATCHERS = ["^develop", "^master", "^release"]


@dataclass
class Config:
    """Configuration class for scsync with validation and defaults."""

    # Synchronization
    max_concurrency: int = 10
    retry_attempts: int = 3
    retry_delay: float = 1.0
    operation_timeout: float = 600.0
    progress_interval: float = 5.0

    # Selection
    path_template: Optional[str] = None
    branch_matchers: Optional[List[str]] = field(default_factory=lambda: list(DEFAULT_BRANCH_MATCHERS))
    repository_matchers: Optional[List[str]] = None

    # Providers
    http_timeout: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_file: Path = field(default_factory=lambda: Path("Logs") / "log.txt")
    enable_file_logging: bool = True
    silent: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.log_file, str):
            self.log_file = Path(self.log_file)

        # Validate log level
        self.log_level = self.log_level.upper()
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_log_levels:
            raise ConfigurationError(f"Invalid log level: {self.log_level}. Must be one of {valid_log_levels}")

        if self.max_concurrency <= 0:
            raise ConfigurationError("max_concurrency must be positive")

        # At least one attempt is always made
        if self.retry_attempts < 1:
            raise ConfigurationError("retry_attempts must be at least 1")

        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay must be non-negative")

        if self.operation_timeout <= 0:
            raise ConfigurationError("operation_timeout must be positive")

        if self.progress_interval < 0:
            raise ConfigurationError("progress_interval must be non-negative")

        if self.http_timeout <= 0:
            raise ConfigurationError("http_timeout must be positive")


def _parse_list(value: Optional[str]) -> Optional[List[str]]:
    """Split a comma separated environment value, keeping None distinct from ''."""
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_configuration() -> Config:
    """Load configuration from environment variables with sensible defaults."""
    try:
        branch_matchers = _parse_list(os.getenv("SCSYNC_BRANCH_MATCHERS"))
        if branch_matchers is None:
            branch_matchers = list(DEFAULT_BRANCH_MATCHERS)

        return Config(
            max_concurrency=int(os.getenv("SCSYNC_MAX_CONCURRENCY", "10")),
            retry_attempts=int(os.getenv("SCSYNC_RETRY_ATTEMPTS", "3")),
            retry_delay=float(os.getenv("SCSYNC_RETRY_DELAY", "1.0")),
            operation_timeout=float(os.getenv("SCSYNC_OPERATION_TIMEOUT", "600")),
            progress_interval=float(os.getenv("SCSYNC_PROGRESS_INTERVAL", "5.0")),
            path_template=os.getenv("SCSYNC_PATH_TEMPLATE") or None,
            branch_matchers=branch_matchers,
            repository_matchers=_parse_list(os.getenv("SCSYNC_REPOSITORY_MATCHERS")),
            http_timeout=float(os.getenv("SCSYNC_HTTP_TIMEOUT", "60")),
            log_level=os.getenv("SCSYNC_LOG_LEVEL", "INFO"),
            log_file=Path(os.getenv("SCSYNC_LOG_FILE", str(Path("Logs") / "log.txt"))),
            enable_file_logging=_parse_bool(os.getenv("SCSYNC_ENABLE_FILE_LOGGING", "true")),
            silent=_parse_bool(os.getenv("SCSYNC_SILENT", "false")),
        )
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Configuration error: {e}")


def validate_configuration(config: Config) -> List[str]:
    """Validate configuration and return any warnings."""
    warnings = []

    if config.max_concurrency > 32:
        warnings.append(
            f"WARNING: max_concurrency={config.max_concurrency} may overload the remote service"
        )

    if config.retry_attempts > 10:
        warnings.append(f"WARNING: retry_attempts={config.retry_attempts} may delay failure reporting")

    if config.branch_matchers is not None and not config.branch_matchers:
        warnings.append("WARNING: empty branch matcher list; every branch will be synchronized")

    if config.enable_file_logging:
        try:
            config.log_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            warnings.append(f"WARNING: Cannot create log directory {config.log_file.parent}: {e}")

    if config.path_template and "{Slug}" not in config.path_template:
        warnings.append(
            "WARNING: path template has no {Slug} placeholder; repositories may share a directory"
        )

    return warnings
