"""Source-control providers that discover repositories to synchronize."""

from .base import RepositoryDescriptor, SourceControlProvider, filter_repositories_by_matchers
from .github import GithubProvider
from .bitbucket_server import BitbucketServerProvider
from .bitbucket_cloud import BitbucketCloudProvider

__all__ = [
    'RepositoryDescriptor',
    'SourceControlProvider',
    'filter_repositories_by_matchers',
    'GithubProvider',
    'BitbucketServerProvider',
    'BitbucketCloudProvider'
]
