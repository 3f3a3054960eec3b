"""
Source Control Syncer (scsync) - keeps a fleet of local git clones in sync.

Repositories are discovered from hosted source-control providers (GitHub,
Bitbucket Server, Bitbucket Cloud), cloned when missing, and their branches
reconciled with the remote when a clone already exists.
"""

__version__ = "1.0.0"
__author__ = "scsync Team"
__description__ = "Source Control Syncer - mirror hosted repositories into local working copies"

from .cli import main

__all__ = ["main"]
