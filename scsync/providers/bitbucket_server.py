"""Bitbucket Server (Data Center) provider."""

from typing import Any, Dict, Iterator, List, Optional

import requests

from ..errors import ProviderError
from .base import RepositoryDescriptor, SourceControlProvider


REST_API_SUFFIX = "/rest/api/1.0"
PAGE_LIMIT = 100


class BitbucketServerProvider(SourceControlProvider):
    """Lists every repository of every project visible on a Bitbucket Server."""

    provider_name = "bitbucket"
    provider_type = "server"
    default_path_template = "./source/{ProviderName}/{ProviderType}/{Namespace}/{Slug}"

    def __init__(
        self,
        server_url: str,
        username: str,
        password: str,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0
    ):
        super().__init__(session, timeout)
        self.server_url = server_url.rstrip("/")
        self.username = username
        self.session.auth = (username, password)

    def list_repositories(self) -> List[RepositoryDescriptor]:
        self.logger.debug(f"Getting projects for username {self.username}...")
        projects = list(self._paged(f"{self.server_url}{REST_API_SUFFIX}/projects"))
        self.logger.debug(f"Found {len(projects)} projects...")

        repositories = []
        for project in projects:
            key = project["key"]
            self.logger.debug(f"Getting repositories for project {project.get('name', key)}")
            url = f"{self.server_url}{REST_API_SUFFIX}/projects/{key}/repos"
            for item in self._paged(url):
                href = self._clone_href(item.get("links", {}), "http")
                if not href:
                    self.logger.warning(f"Repository {item.get('slug')} in project {key} has no http clone link")
                    continue
                repositories.append(RepositoryDescriptor(
                    name=item["name"],
                    slug=item["slug"],
                    namespace=key,
                    remote_url=href
                ))

        return repositories

    def _paged(self, url: str) -> Iterator[Dict[str, Any]]:
        """Yield values across isLastPage / nextPageStart pagination."""
        start = 0
        while True:
            data = self._get_json(url, {"limit": PAGE_LIMIT, "start": start})
            if not isinstance(data, dict) or "values" not in data:
                raise ProviderError(f"Unexpected Bitbucket Server response for {url}", url=url)

            yield from data["values"]

            if data.get("isLastPage", True):
                break
            start = data.get("nextPageStart", start + len(data["values"]))
