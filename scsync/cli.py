"""Command-line entry point for scsync."""

import argparse
import dataclasses
import getpass
import logging
import logging.handlers
import signal
import sys
import threading
from typing import List, Optional

from . import __version__
from .config import Config, load_configuration, validate_configuration
from .errors import ConfigurationError, ProviderError
from .git_sync import (
    BranchMatcher, ErrorClassifier, GitEngine, RepositorySynchronizer, SyncOrchestrator, UserInfo,
    summarize_results
)
from .git_sync.performance_logger import get_performance_logger
from .providers import BitbucketCloudProvider, BitbucketServerProvider, GithubProvider, SourceControlProvider


EXIT_OK = 0
EXIT_SYNC_FAILED = 1
EXIT_USAGE = 2

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(config: Config) -> None:
    """Configure the 'scsync' logger hierarchy: console plus an optional daily log file."""
    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    logger = logging.getLogger('scsync')
    logger.setLevel(getattr(logging, config.log_level))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    # Silent keeps errors on the console
    console.setLevel(logging.ERROR if config.silent else logging.NOTSET)
    logger.addHandler(console)

    if config.enable_file_logging:
        try:
            config.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.TimedRotatingFileHandler(
                config.log_file, when="midnight", backupCount=31, encoding="utf-8"
            )
        except OSError as e:
            logger.error(f"Cannot open log file {config.log_file}: {e}")
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scsync",
        description="Clone and update every repository of a source-control account"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--path-template", help="Template for the local directory of each repository")
    common.add_argument(
        "--repository-matchers", nargs="+", metavar="REGEX",
        help="Only sync repositories whose name matches one of these expressions"
    )
    common.add_argument(
        "--branch-matchers", nargs="*", metavar="REGEX",
        help="Only sync branches matching one of these expressions (default: ^develop ^master ^release)"
    )
    common.add_argument("--all-branches", action="store_true", help="Sync every branch")
    common.add_argument("--max-concurrency", type=int, help="Repositories synchronized in parallel (default: 10)")
    common.add_argument("--retry-attempts", type=int, help="Attempts for transient network failures (default: 3)")
    common.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], type=str.upper)
    common.add_argument("--no-log-file", action="store_true", help="Disable logging to Logs/log.txt")
    common.add_argument("--silent", action="store_true", help="Only log errors to the console")

    sub = parser.add_subparsers(dest="provider", required=True)

    p_github = sub.add_parser("github", parents=[common], help="Sync your GitHub repositories")
    p_github.add_argument("--username", help="GitHub username")
    p_github.add_argument("--email", help="Email used for merge commits")
    p_github.add_argument("--access-token", help="Personal access token (scopes: repo, read:org)")

    p_server = sub.add_parser("bitbucket-server", parents=[common], help="Sync your Bitbucket Server repositories")
    p_server.add_argument("--server", help="Bitbucket Server base URL")
    p_server.add_argument("--username", help="Bitbucket Server username")
    p_server.add_argument("--email", help="Email used for merge commits")
    p_server.add_argument("--password", help="Bitbucket Server password")

    p_cloud = sub.add_parser("bitbucket-cloud", parents=[common], help="Sync your Bitbucket Cloud repositories")
    p_cloud.add_argument("--account", help="Bitbucket Cloud account or workspace")
    p_cloud.add_argument("--username", help="Bitbucket Cloud username")
    p_cloud.add_argument("--email", help="Email used for merge commits")
    p_cloud.add_argument("--password", help="Bitbucket Cloud app password")

    return parser


def _prompt(args: argparse.Namespace, name: str, label: str, secret: bool = False) -> str:
    value = getattr(args, name, None)
    while not value:
        value = getpass.getpass(f"{label}: ") if secret else input(f"{label}: ").strip()
    setattr(args, name, value)
    return value


def apply_arguments(config: Config, args: argparse.Namespace) -> Config:
    """Overlay command-line options on the environment configuration."""
    overrides = {}
    if args.path_template:
        overrides["path_template"] = args.path_template
    if args.repository_matchers is not None:
        overrides["repository_matchers"] = args.repository_matchers
    if args.all_branches:
        overrides["branch_matchers"] = None
    elif args.branch_matchers is not None:
        overrides["branch_matchers"] = args.branch_matchers
    if args.max_concurrency is not None:
        overrides["max_concurrency"] = args.max_concurrency
    if args.retry_attempts is not None:
        overrides["retry_attempts"] = args.retry_attempts
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.no_log_file:
        overrides["enable_file_logging"] = False
    if args.silent:
        overrides["silent"] = True

    # replace() re-runs validation
    return dataclasses.replace(config, **overrides)


def create_provider(args: argparse.Namespace, config: Config) -> SourceControlProvider:
    """Prompt for missing values and build the provider named on the command line."""
    if args.provider == "github":
        username = _prompt(args, "username", "GitHub username")
        _prompt(args, "email", "Email")
        token = _prompt(args, "access_token", "Access token", secret=True)
        return GithubProvider(username, token, timeout=config.http_timeout)

    if args.provider == "bitbucket-server":
        server = _prompt(args, "server", "Bitbucket Server URL")
        username = _prompt(args, "username", "Username")
        _prompt(args, "email", "Email")
        password = _prompt(args, "password", "Password", secret=True)
        return BitbucketServerProvider(server, username, password, timeout=config.http_timeout)

    if args.provider == "bitbucket-cloud":
        account = _prompt(args, "account", "Bitbucket Cloud account")
        username = _prompt(args, "username", "Username")
        _prompt(args, "email", "Email")
        password = _prompt(args, "password", "App password", secret=True)
        return BitbucketCloudProvider(account, username, password, timeout=config.http_timeout)

    raise ConfigurationError(f"Unknown provider: {args.provider}")


def user_info_from_args(args: argparse.Namespace) -> UserInfo:
    secret = getattr(args, "access_token", None) or getattr(args, "password", None) or ""
    return UserInfo(username=args.username, email=args.email, password=secret)


def run(args: argparse.Namespace, config: Config) -> int:
    """Discover repositories and synchronize them. Returns the process exit code."""
    logger = logging.getLogger('scsync.cli')
    perf_logger = get_performance_logger()

    provider = create_provider(args, config)
    matcher = BranchMatcher(config.branch_matchers)

    with perf_logger.time_operation("total", log_level=logging.INFO):
        with perf_logger.time_operation("fetch repositories", log_level=logging.INFO):
            repositories = provider.fetch_repositories(config.repository_matchers)

        targets = provider.build_sync_targets(repositories, config.path_template)

        engine = GitEngine(
            user_info_from_args(args),
            operation_timeout=config.operation_timeout,
            progress_interval=config.progress_interval
        )
        synchronizer = RepositorySynchronizer(
            engine,
            classifier=ErrorClassifier(config.retry_attempts, config.retry_delay),
            perf_logger=perf_logger
        )
        orchestrator = SyncOrchestrator(synchronizer, config.max_concurrency)

        cancel_event = threading.Event()

        def request_cancel(signum, frame):
            logger.warning("Interrupt received; finishing in-flight repositories and skipping the rest")
            cancel_event.set()

        previous_handler = signal.signal(signal.SIGINT, request_cancel)
        try:
            results = orchestrator.sync_all(targets, matcher, cancel_event)
        finally:
            signal.signal(signal.SIGINT, previous_handler)

    perf_logger.log_performance_summary()

    summary = summarize_results(results)
    print(summary.format())
    return EXIT_OK if summary.failed == 0 else EXIT_SYNC_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the scsync command."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_arguments(load_configuration(), args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(config)
    logger = logging.getLogger('scsync.cli')
    for warning in validate_configuration(config):
        logger.warning(warning)

    try:
        return run(args, config)
    except (ConfigurationError, ProviderError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return EXIT_SYNC_FAILED


if __name__ == "__main__":
    sys.exit(main())
