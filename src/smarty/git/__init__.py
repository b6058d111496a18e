"""Git operations on the managed working directory.

This package provides:
- GitClient: async wrapper around the git command-line tool
- RepositorySynchronizer: resets the checkout to the remote baseline
- RepositoryBootstrapper: first-time clone and readiness marker
"""

from src.smarty.git.bootstrap import RepositoryBootstrapper, is_repository_ready
from src.smarty.git.client import GitClient
from src.smarty.git.synchronizer import RepositorySynchronizer

__all__ = [
    "GitClient",
    "RepositoryBootstrapper",
    "RepositorySynchronizer",
    "is_repository_ready",
]
