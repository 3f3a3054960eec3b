"""GitHub provider."""

from typing import List, Optional

import requests

from ..errors import ProviderError
from .base import RepositoryDescriptor, SourceControlProvider


GITHUB_API_URL = "https://api.github.com"


class GithubProvider(SourceControlProvider):
    """Lists the repositories of the authenticated GitHub user."""

    provider_name = "github"
    provider_type = ""
    default_path_template = "./repos/{ProviderName}/{Namespace}/{Slug}"

    def __init__(
        self,
        username: str,
        access_token: str,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
        api_url: str = GITHUB_API_URL
    ):
        super().__init__(session, timeout)
        self.username = username
        self.api_url = api_url.rstrip("/")
        self.session.headers.update({
            "Authorization": f"token {access_token}",
            "Accept": "application/vnd.github.v3+json",
        })

    def list_repositories(self) -> List[RepositoryDescriptor]:
        self.logger.debug(f"Getting repositories for username {self.username}...")

        repositories = []
        url = f"{self.api_url}/user/repos"
        params = {"per_page": 100}
        while url:
            response = self._get(url, params)
            try:
                page = response.json()
            except ValueError as e:
                raise ProviderError(f"GitHub returned invalid JSON: {url}", response.status_code, url) from e
            if not isinstance(page, list):
                raise ProviderError(f"Unexpected GitHub response for {url}", response.status_code, url)

            for item in page:
                repositories.append(RepositoryDescriptor(
                    name=item["name"],
                    slug=item["name"],
                    namespace=item["owner"]["login"],
                    remote_url=item["clone_url"]
                ))

            # The next link already carries the query string
            url = response.links.get("next", {}).get("url")
            params = None

        return repositories
