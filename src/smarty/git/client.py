"""Async git command runner for the managed working directory.

Each git invocation runs as an asyncio subprocess inside the working
directory so the event loop is never blocked. A non-zero exit status or
a failure to start git raises GitCommandError carrying the captured
standard error.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from src.smarty.errors import GitCommandError

logger = logging.getLogger(__name__)


class GitClient:
    """Runs git commands in a fixed working directory.

    Attributes:
        working_directory: The checkout every command runs in.
        remote: Name of the remote to fetch from and push to.
        git_path: git executable.
    """

    def __init__(
        self,
        working_directory: Path,
        remote: str = "origin",
        git_path: str = "git",
    ):
        self.working_directory = Path(working_directory)
        self.remote = remote
        self.git_path = git_path

    async def run(self, *args: str, timeout: Optional[float] = None) -> str:
        """Run ``git <args>`` and return its stripped standard output.

        Args:
            *args: Arguments passed to git.
            timeout: Optional limit in seconds for the command.

        Returns:
            Standard output with surrounding whitespace removed.

        Raises:
            GitCommandError: If git exits non-zero, times out, or cannot start.
        """
        command = list(args)
        logger.debug("Running git command", extra={"git_args": command})

        try:
            process = await asyncio.create_subprocess_exec(
                self.git_path,
                *command,
                cwd=str(self.working_directory),
                env=self._environment(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise GitCommandError(command, -1, f"Failed to execute git: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            raise GitCommandError(
                command, -1, f"Timed out after {timeout}s"
            ) from exc

        if process.returncode != 0:
            raise GitCommandError(
                command,
                process.returncode,
                stderr.decode("utf-8", errors="replace"),
            )

        return stdout.decode("utf-8", errors="replace").strip()

    def _environment(self) -> dict[str, str]:
        """Build the subprocess environment; git must never prompt."""
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    async def fetch(self) -> None:
        await self.run("fetch", self.remote)

    async def checkout(self, branch: str) -> None:
        await self.run("checkout", branch)

    async def reset_hard(self, ref: str) -> None:
        await self.run("reset", "--hard", ref)

    async def create_branch(self, branch: str) -> None:
        """Create ``branch`` from HEAD and switch to it."""
        await self.run("checkout", "-b", branch)

    async def current_branch(self) -> str:
        return await self.run("rev-parse", "--abbrev-ref", "HEAD")

    async def count_commits_between(self, base: str, head: str) -> int:
        """Count commits reachable from ``head`` but not from ``base``."""
        output = await self.run("rev-list", "--count", f"{base}..{head}")
        try:
            return int(output)
        except ValueError as exc:
            raise GitCommandError(
                ["rev-list", "--count", f"{base}..{head}"],
                0,
                f"Unexpected rev-list output: {output!r}",
            ) from exc

    async def push(self, branch: str) -> None:
        """Push ``branch`` to the remote and set its upstream."""
        await self.run("push", "-u", self.remote, branch)

    async def set_config(self, key: str, value: str) -> None:
        await self.run("config", key, value)

    async def set_remote_url(self, url: str) -> None:
        await self.run("remote", "set-url", self.remote, url)
