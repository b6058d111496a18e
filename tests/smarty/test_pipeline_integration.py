"""End-to-end tests against real git repositories.

Each test gets a bare "remote", a working clone that the service
manages, and a stub ``claude`` executable. The stub inspects the prompt
and either commits a file, does nothing, fails, or wanders off the
pipeline branch, so every pipeline outcome runs through real git. Pull
requests go to an in-memory forge.
"""

import asyncio
import base64
import os
import shutil
import stat
import subprocess
from pathlib import Path
from typing import List

import pytest
from fastapi.testclient import TestClient

from src.smarty.config import AgentSettings
from src.smarty.forge.base import CreatedPullRequest, PullRequestForge, PullRequestSpec
from src.smarty.git.bootstrap import (
    READY_MARKER_NAME,
    RepositoryBootstrapper,
    BootstrapConfig,
    is_repository_ready,
)
from src.smarty.git.client import GitClient
from src.smarty.git.synchronizer import RepositorySynchronizer
from src.smarty.main import create_app

pytestmark = pytest.mark.skipif(
    shutil.which("git") is None or os.name == "nt",
    reason="requires git and a POSIX shell",
)

STUB_AGENT = """#!/bin/sh
for prompt; do :; done
case "$prompt" in
  *noop*)
    echo "nothing to change"
    ;;
  *explode*)
    echo "model unavailable" >&2
    exit 3
    ;;
  *wander*)
    git checkout -q master
    echo stray > stray.txt
    git add stray.txt
    git commit -q -m "Stray commit"
    ;;
  *attach*)
    ls .claude-attachments > ../attachments-seen.txt
    echo mocked > mocked.txt
    git add -A
    git commit -q -m "Match the mock"
    ;;
  *)
    echo "<svg/>" > health-icon.svg
    git add health-icon.svg
    git commit -q -m "Add health icon"
    ;;
esac
"""


def run_async(coro):
    return asyncio.run(coro)


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def _configure_identity(repo: Path) -> None:
    git(repo, "config", "user.name", "Test Agent")
    git(repo, "config", "user.email", "agent@example.com")


def _remote_branches(remote: Path) -> List[str]:
    output = git(remote, "for-each-ref", "--format=%(refname:short)", "refs/heads")
    return output.splitlines()


class RecordingForge(PullRequestForge):
    """In-memory forge that records every pull request it opens."""

    name = "recording"

    def __init__(self):
        self.specs: List[PullRequestSpec] = []

    async def create_pull_request(self, spec: PullRequestSpec) -> CreatedPullRequest:
        self.specs.append(spec)
        number = len(self.specs)
        return CreatedPullRequest(
            url=f"https://forge.example/acme/web/pull/{number}", number=number
        )


@pytest.fixture
def remote(tmp_path):
    """Bare repository with one commit on master."""
    bare = tmp_path / "remote.git"
    bare.mkdir()
    git(bare, "init", "-q", "--bare")
    git(bare, "symbolic-ref", "HEAD", "refs/heads/master")

    seed = tmp_path / "seed"
    seed.mkdir()
    git(seed, "init", "-q")
    git(seed, "symbolic-ref", "HEAD", "refs/heads/master")
    _configure_identity(seed)
    (seed / "README.md").write_text("# web\n")
    git(seed, "add", "README.md")
    git(seed, "commit", "-q", "-m", "Initial commit")
    git(seed, "remote", "add", "origin", str(bare))
    git(seed, "push", "-q", "origin", "master")
    return bare


@pytest.fixture
def work(tmp_path, remote):
    """Managed working copy cloned from the remote."""
    working_copy = tmp_path / "work"
    git(tmp_path, "clone", "-q", str(remote), str(working_copy))
    _configure_identity(working_copy)
    return working_copy


@pytest.fixture
def agent_script(tmp_path):
    script = tmp_path / "bin" / "claude"
    script.parent.mkdir()
    script.write_text(STUB_AGENT)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def forge():
    return RecordingForge()


@pytest.fixture
def client(work, agent_script, forge):
    settings = AgentSettings(
        repo_path=str(work),
        forge="gh-cli",
        claude_path=str(agent_script),
    )
    app = create_app(settings=settings)
    app.state.orchestrator.publisher.forge = forge
    return TestClient(app)


class TestChangeRequestFlow:
    def test_commit_is_pushed_and_pr_opened(self, client, remote, forge):
        response = client.post("/", json={"request": "Add a health icon"})

        assert response.status_code == 200
        body = response.json()
        branch = body["branch"]
        assert branch.startswith("claude/add-a-health-icon-")
        assert branch.rsplit("-", 1)[1].isdigit()
        assert body["pr"] == "https://forge.example/acme/web/pull/1"

        assert branch in _remote_branches(remote)
        files = git(remote, "ls-tree", "-r", "--name-only", branch).splitlines()
        assert "health-icon.svg" in files

        spec = forge.specs[0]
        assert spec.head_branch == branch
        assert spec.base_branch == "master"
        assert spec.title == "Add a health icon"

    def test_no_commits_is_400_and_nothing_pushed(self, client, remote, forge):
        response = client.post("/", json={"request": "noop please"})

        assert response.status_code == 400
        assert response.json() == {"error": "No changes were committed by Claude Code"}
        assert _remote_branches(remote) == ["master"]
        assert forge.specs == []

    def test_agent_failure_is_500_and_nothing_pushed(self, client, remote, forge):
        response = client.post("/", json={"request": "explode"})

        assert response.status_code == 500
        error = response.json()["error"]
        assert "exited with code 3" in error
        assert "model unavailable" in error
        assert _remote_branches(remote) == ["master"]
        assert forge.specs == []

    def test_leaving_pipeline_branch_blocks_push(self, client, remote, forge):
        master_before = git(remote, "rev-parse", "master")

        response = client.post("/", json={"request": "wander around"})

        assert response.status_code == 500
        assert "Safety check failed" in response.json()["error"]
        assert _remote_branches(remote) == ["master"]
        assert git(remote, "rev-parse", "master") == master_before
        assert forge.specs == []

    def test_next_run_starts_from_clean_baseline(self, client, remote, work):
        client.post("/", json={"request": "wander around"})

        response = client.post("/", json={"request": "Add a health icon"})

        assert response.status_code == 200
        files = git(
            remote, "ls-tree", "-r", "--name-only", response.json()["branch"]
        ).splitlines()
        assert "stray.txt" not in files

    def test_attachments_visible_but_never_committed(
        self, client, remote, work, tmp_path
    ):
        image = base64.b64encode(b"\x89PNG fake").decode()

        response = client.post(
            "/",
            json={
                "request": "attach the mock",
                "images": [{"name": "mock.png", "data": image}],
            },
        )

        assert response.status_code == 200
        seen = (tmp_path / "attachments-seen.txt").read_text().split()
        assert seen == ["1-mock.png"]
        assert not (work / ".claude-attachments").exists()
        files = git(
            remote, "ls-tree", "-r", "--name-only", response.json()["branch"]
        ).splitlines()
        assert "mocked.txt" in files
        assert not any(name.startswith(".claude-attachments") for name in files)


class TestSynchronizer:
    def test_sync_discards_local_state_and_follows_remote(self, tmp_path, remote, work):
        other = tmp_path / "other"
        git(tmp_path, "clone", "-q", str(remote), str(other))
        _configure_identity(other)
        (other / "CHANGELOG.md").write_text("upstream\n")
        git(other, "add", "CHANGELOG.md")
        git(other, "commit", "-q", "-m", "Upstream change")
        git(other, "push", "-q", "origin", "master")

        git(work, "checkout", "-q", "-b", "claude/leftover-1")
        (work / "README.md").write_text("local edit\n")

        run_async(RepositorySynchronizer(GitClient(work), "master").sync())

        assert git(work, "rev-parse", "--abbrev-ref", "HEAD") == "master"
        assert git(work, "rev-parse", "HEAD") == git(remote, "rev-parse", "master")
        assert (work / "README.md").read_text() == "# web\n"

    def test_commit_count_against_baseline(self, work):
        client = GitClient(work)
        git(work, "checkout", "-q", "-b", "claude/count-1")
        (work / "a.txt").write_text("a\n")
        git(work, "add", "a.txt")
        git(work, "commit", "-q", "-m", "a")

        count = run_async(client.count_commits_between("master", "claude/count-1"))

        assert count == 1


class TestBootstrap:
    def test_clone_configures_and_marks_ready(self, tmp_path, remote):
        target = tmp_path / "checkouts" / "web"
        bootstrapper = RepositoryBootstrapper(
            BootstrapConfig(
                repo_path=target,
                clone_url=str(remote),
                user_name="Smarty Agent",
                user_email="smarty@example.com",
            )
        )

        assert not is_repository_ready(target, require_marker=True)
        run_async(bootstrapper.bootstrap())

        assert (target / ".git" / READY_MARKER_NAME).exists()
        assert is_repository_ready(target, require_marker=True)
        assert git(target, "config", "user.name") == "Smarty Agent"
        assert git(target, "remote", "get-url", "origin") == str(remote)

    def test_existing_checkout_is_not_recloned(self, tmp_path, remote, work):
        (work / "untracked.txt").write_text("keep me\n")
        bootstrapper = RepositoryBootstrapper(
            BootstrapConfig(repo_path=work, clone_url=str(remote))
        )

        run_async(bootstrapper.bootstrap())

        assert (work / "untracked.txt").exists()
        assert is_repository_ready(work, require_marker=True)
