"""Common provider behaviour: HTTP access, filtering and path resolution."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from ..errors import ConfigurationError, ProviderError
from ..git_sync.repository_sync import SyncTarget
from ..templates import render_path_template


USER_AGENT = "scsync/1.0"


@dataclass(frozen=True)
class RepositoryDescriptor:
    """A repository as reported by a provider."""
    name: str
    slug: str
    namespace: str
    remote_url: str


def filter_repositories_by_matchers(
    repositories: Iterable[RepositoryDescriptor],
    matchers: Optional[Iterable[str]]
) -> List[RepositoryDescriptor]:
    """
    Keep repositories whose name matches at least one matcher.

    Matchers are case-insensitive regular expressions searched anywhere in
    the name. None or an empty list keeps everything.
    """
    repositories = list(repositories)
    patterns = list(matchers or [])
    if not patterns:
        return repositories

    try:
        compiled = [re.compile(p, re.IGNORECASE) for p in patterns]
    except re.error as e:
        raise ConfigurationError(f"Invalid repository matcher {e.pattern!r}: {e}")

    return [repo for repo in repositories if any(regex.search(repo.name) for regex in compiled)]


class SourceControlProvider:
    """
    Base class for providers.

    Subclasses set the provider name/type and default path template and
    implement list_repositories(). Requests go through a shared
    requests.Session; HTTP and decoding failures surface as ProviderError.
    """

    provider_name = ""
    provider_type = ""
    default_path_template = ""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60.0):
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = USER_AGENT
        self.timeout = timeout
        self.logger = logging.getLogger(f'scsync.providers.{self.__class__.__name__.lower()}')

    def list_repositories(self) -> List[RepositoryDescriptor]:
        raise NotImplementedError

    def fetch_repositories(self, matchers: Optional[Iterable[str]] = None) -> List[RepositoryDescriptor]:
        """List every repository visible to the account, filtered by name matchers."""
        matchers = None if matchers is None else list(matchers)
        try:
            repositories = self.list_repositories()
        except (KeyError, TypeError) as e:
            raise ProviderError(f"Unexpected {self.provider_label} response: missing or malformed field {e}") from e
        self.logger.debug(f"Found {len(repositories)} repositories")

        repositories = filter_repositories_by_matchers(repositories, matchers)
        self.logger.info(
            f"Found {len(repositories)} repositories matching 1 of the following matchers {matchers or []}..."
        )
        return repositories

    def template_variables(self, repository: RepositoryDescriptor) -> Dict[str, str]:
        return {
            "ProviderName": self.provider_name,
            "ProviderType": self.provider_type,
            "Namespace": repository.namespace.lower(),
            "Slug": repository.slug.lower(),
        }

    def get_repository_absolute_path(
        self,
        repository: RepositoryDescriptor,
        path_template: Optional[str] = None
    ) -> str:
        template = path_template or self.default_path_template
        return render_path_template(template, self.template_variables(repository))

    def build_sync_targets(
        self,
        repositories: Iterable[RepositoryDescriptor],
        path_template: Optional[str] = None
    ) -> List[SyncTarget]:
        """Pair each repository's clone URL with its local directory."""
        return [
            SyncTarget(
                remote_url=repo.remote_url,
                local_path=self.get_repository_absolute_path(repo, path_template)
            )
            for repo in repositories
        ]

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise ProviderError(f"{self.provider_label} API request failed ({status}): {url}", status, url) from e
        except requests.RequestException as e:
            raise ProviderError(f"{self.provider_label} API request failed: {e}", url=url) from e
        return response

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._get(url, params)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.provider_label} returned invalid JSON: {url}", response.status_code, url) from e

    @property
    def provider_label(self) -> str:
        return " ".join(part for part in (self.provider_name, self.provider_type) if part) or "provider"

    @staticmethod
    def _clone_href(links: Dict[str, Any], name: str) -> Optional[str]:
        for link in links.get("clone", []):
            if link.get("name", "").lower() == name:
                return link.get("href")
        return None
