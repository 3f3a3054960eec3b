"""Bitbucket Cloud provider."""

from typing import Dict, List, Optional

import requests

from ..errors import ProviderError
from .base import RepositoryDescriptor, SourceControlProvider


BITBUCKET_CLOUD_API_URL = "https://api.bitbucket.org/2.0"


class BitbucketCloudProvider(SourceControlProvider):
    """Lists the repositories owned by a Bitbucket Cloud account or workspace."""

    provider_name = "bitbucket"
    provider_type = "cloud"
    default_path_template = "./source/{ProviderName}/{ProviderType}/{AccountUsername}/{Namespace}/{Slug}"

    def __init__(
        self,
        account: str,
        username: str,
        password: str,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
        api_url: str = BITBUCKET_CLOUD_API_URL
    ):
        super().__init__(session, timeout)
        self.account = account
        self.api_url = api_url.rstrip("/")
        self.session.auth = (username, password)

    def list_repositories(self) -> List[RepositoryDescriptor]:
        self.logger.debug(f"Getting repositories for username {self.account}")

        repositories = []
        url = f"{self.api_url}/repositories/{self.account}"
        params = {"pagelen": 100}
        while url:
            data = self._get_json(url, params)
            if not isinstance(data, dict) or "values" not in data:
                raise ProviderError(f"Unexpected Bitbucket Cloud response for {url}", url=url)

            for item in data["values"]:
                href = self._clone_href(item.get("links", {}), "https")
                if not href:
                    self.logger.warning(f"Repository {item.get('slug')} has no https clone link")
                    continue
                project = item.get("project") or {}
                repositories.append(RepositoryDescriptor(
                    name=item["name"],
                    slug=item["slug"],
                    namespace=project.get("key", self.account),
                    remote_url=href
                ))

            url = data.get("next")
            params = None

        self.logger.debug(f"Found {len(repositories)} repositories for username {self.account}")
        return repositories

    def template_variables(self, repository: RepositoryDescriptor) -> Dict[str, str]:
        variables = super().template_variables(repository)
        variables["AccountUsername"] = self.account
        return variables
