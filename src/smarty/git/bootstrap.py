"""First-time provisioning of the managed checkout.

When a clone URL is configured and the working directory has no
checkout yet, the service clones the repository, sets the commit
identity, points the remote at the clone URL, and finally writes a
readiness marker inside the git metadata directory. Until the marker
exists the change-request endpoint answers 503.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from src.smarty.git.client import GitClient

logger = logging.getLogger(__name__)

READY_MARKER_NAME = "smarty-ready"
CLONE_TIMEOUT_SECONDS = 600


def is_repository_ready(repo_path: Path, require_marker: bool = False) -> bool:
    """Check whether the managed checkout can accept work.

    Args:
        repo_path: Working directory of the managed repository.
        require_marker: When True, only the readiness marker written by
            the bootstrapper counts; otherwise a ``.git`` directory is
            enough.

    Returns:
        True if the initial checkout has completed.
    """
    git_dir = Path(repo_path) / ".git"
    if (git_dir / READY_MARKER_NAME).exists():
        return True
    if require_marker:
        return False
    return git_dir.is_dir()


@dataclass
class BootstrapConfig:
    """Configuration for the first-time clone.

    Attributes:
        repo_path: Directory the repository is cloned into.
        clone_url: Authenticated clone URL.
        remote: Remote name to configure.
        user_name: Commit author name for the agent.
        user_email: Commit author email for the agent.
    """

    repo_path: Path
    clone_url: str
    remote: str = "origin"
    user_name: str = "Claude Agent"
    user_email: str = "claude-agent@example.com"


class RepositoryBootstrapper:
    """Clones and configures the managed repository on startup."""

    def __init__(self, config: BootstrapConfig, git_path: str = "git"):
        self.config = config
        self.git_path = git_path

    @property
    def marker_path(self) -> Path:
        return self.config.repo_path / ".git" / READY_MARKER_NAME

    async def bootstrap(self) -> None:
        """Clone if needed, configure git, and write the readiness marker.

        Raises:
            GitCommandError: If clone or configuration fails.
        """
        repo_path = self.config.repo_path

        if (repo_path / ".git").is_dir():
            logger.info(
                "Repository already exists",
                extra={"repo_path": str(repo_path)},
            )
        else:
            await self._clone()

        git = GitClient(repo_path, remote=self.config.remote, git_path=self.git_path)
        await git.set_config("user.name", self.config.user_name)
        await git.set_config("user.email", self.config.user_email)
        await git.set_remote_url(self.config.clone_url)

        self.marker_path.touch()
        logger.info("Repository ready", extra={"repo_path": str(repo_path)})

    async def _clone(self) -> None:
        repo_path = self.config.repo_path
        repo_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(
            "Cloning repository",
            extra={"repo_path": str(repo_path)},
        )

        parent = GitClient(repo_path.parent, git_path=self.git_path)
        await parent.run(
            "clone",
            self.config.clone_url,
            str(repo_path),
            timeout=CLONE_TIMEOUT_SECONDS,
        )


def create_bootstrapper(
    repo_path: Path,
    clone_url: Optional[str],
    remote: str,
    user_name: str,
    user_email: str,
) -> Optional[RepositoryBootstrapper]:
    """Build a bootstrapper, or None when no clone URL is configured."""
    if not clone_url:
        return None
    return RepositoryBootstrapper(
        BootstrapConfig(
            repo_path=Path(repo_path),
            clone_url=clone_url,
            remote=remote,
            user_name=user_name,
            user_email=user_email,
        )
    )
