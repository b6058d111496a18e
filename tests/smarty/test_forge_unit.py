"""Unit tests for the forge backends.

HTTP forges are exercised against httpx.MockTransport; the gh CLI
forge against a mocked subprocess.
"""

import asyncio
import base64
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.smarty.config import AgentSettings
from src.smarty.forge import (
    BitbucketForge,
    ForgeAPIError,
    GhCliForge,
    GitHubForge,
    PullRequestSpec,
    create_forge,
)


def run_async(coro):
    return asyncio.run(coro)


PR_SPEC = PullRequestSpec(
    title="Add a health icon",
    body="## Description\n\nAdd a health icon",
    head_branch="claude/add-a-health-icon-1700000000000",
    base_branch="master",
)


def _recording_transport(status_code, payload, captured):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


def _text_transport(status_code, text):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text=text)

    return httpx.MockTransport(handler)


class TestGitHubForge:
    def test_creates_pull_request(self):
        captured = []
        forge = GitHubForge(
            token="ghp_secret",
            owner="acme",
            repo="web",
            transport=_recording_transport(
                201,
                {"number": 7, "html_url": "https://github.com/acme/web/pull/7"},
                captured,
            ),
        )

        result = run_async(forge.create_pull_request(PR_SPEC))

        assert result.url == "https://github.com/acme/web/pull/7"
        assert result.number == 7
        request = captured[0]
        assert request.method == "POST"
        assert request.url.path == "/repos/acme/web/pulls"
        assert request.headers["Authorization"] == "Bearer ghp_secret"
        assert json.loads(request.content) == {
            "title": PR_SPEC.title,
            "body": PR_SPEC.body,
            "head": PR_SPEC.head_branch,
            "base": "master",
        }

    def test_error_response_raises_with_body(self):
        forge = GitHubForge(
            token="t",
            owner="acme",
            repo="web",
            transport=_recording_transport(
                422, {"message": "Validation Failed"}, []
            ),
        )

        with pytest.raises(ForgeAPIError) as exc_info:
            run_async(forge.create_pull_request(PR_SPEC))

        assert exc_info.value.status_code == 422
        assert "Validation Failed" in str(exc_info.value)

    def test_missing_url_raises(self):
        forge = GitHubForge(
            token="t",
            owner="acme",
            repo="web",
            transport=_recording_transport(201, {"number": 7}, []),
        )

        with pytest.raises(ForgeAPIError):
            run_async(forge.create_pull_request(PR_SPEC))

    def test_non_json_success_raises_with_body(self):
        forge = GitHubForge(
            token="t",
            owner="acme",
            repo="web",
            transport=_text_transport(201, "<html>ok</html>"),
        )

        with pytest.raises(ForgeAPIError) as exc_info:
            run_async(forge.create_pull_request(PR_SPEC))

        assert exc_info.value.status_code == 201
        assert exc_info.value.response_body == "<html>ok</html>"

    def test_json_array_success_raises(self):
        forge = GitHubForge(
            token="t",
            owner="acme",
            repo="web",
            transport=_recording_transport(201, [{"html_url": "x"}], []),
        )

        with pytest.raises(ForgeAPIError):
            run_async(forge.create_pull_request(PR_SPEC))

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        forge = GitHubForge(
            token="t",
            owner="acme",
            repo="web",
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(ForgeAPIError):
            run_async(forge.create_pull_request(PR_SPEC))

    def test_request_is_not_retried(self):
        captured = []
        forge = GitHubForge(
            token="t",
            owner="acme",
            repo="web",
            transport=_recording_transport(502, {"message": "Bad gateway"}, captured),
        )

        with pytest.raises(ForgeAPIError):
            run_async(forge.create_pull_request(PR_SPEC))

        assert len(captured) == 1


class TestBitbucketForge:
    def test_creates_pull_request(self):
        captured = []
        forge = BitbucketForge(
            username="dev@example.com",
            api_token="bb-token",
            workspace="acme",
            repo="web",
            transport=_recording_transport(
                201,
                {
                    "id": 12,
                    "links": {
                        "html": {
                            "href": "https://bitbucket.org/acme/web/pull-requests/12"
                        }
                    },
                },
                captured,
            ),
        )

        result = run_async(forge.create_pull_request(PR_SPEC))

        assert result.url == "https://bitbucket.org/acme/web/pull-requests/12"
        assert result.number == 12
        request = captured[0]
        assert request.url.path == "/2.0/repositories/acme/web/pullrequests"
        expected_auth = base64.b64encode(b"dev@example.com:bb-token").decode()
        assert request.headers["Authorization"] == f"Basic {expected_auth}"
        body = json.loads(request.content)
        assert body["source"] == {"branch": {"name": PR_SPEC.head_branch}}
        assert body["destination"] == {"branch": {"name": "master"}}
        assert body["description"] == PR_SPEC.body
        assert body["close_source_branch"] is True

    def test_error_response_raises(self):
        forge = BitbucketForge(
            username="u",
            api_token="t",
            workspace="acme",
            repo="web",
            transport=_recording_transport(
                400, {"error": {"message": "There are no changes"}}, []
            ),
        )

        with pytest.raises(ForgeAPIError) as exc_info:
            run_async(forge.create_pull_request(PR_SPEC))

        assert exc_info.value.status_code == 400

    def test_non_json_success_raises(self):
        forge = BitbucketForge(
            username="u",
            api_token="t",
            workspace="acme",
            repo="web",
            transport=_text_transport(201, "created"),
        )

        with pytest.raises(ForgeAPIError) as exc_info:
            run_async(forge.create_pull_request(PR_SPEC))

        assert exc_info.value.response_body == "created"

    def test_malformed_links_raise(self):
        forge = BitbucketForge(
            username="u",
            api_token="t",
            workspace="acme",
            repo="web",
            transport=_recording_transport(201, {"id": 12, "links": ["html"]}, []),
        )

        with pytest.raises(ForgeAPIError):
            run_async(forge.create_pull_request(PR_SPEC))


class TestGhCliForge:
    def _process(self, returncode=0, stdout=b"", stderr=b""):
        process = AsyncMock()
        process.returncode = returncode
        process.kill = MagicMock()
        process.communicate = AsyncMock(return_value=(stdout, stderr))
        return process

    def test_returns_printed_url(self, tmp_path):
        forge = GhCliForge(working_directory=tmp_path)
        process = self._process(
            stdout=b"Creating pull request...\nhttps://github.com/acme/web/pull/3\n"
        )

        with patch(
            "asyncio.create_subprocess_exec", return_value=process
        ) as mock_exec:
            result = run_async(forge.create_pull_request(PR_SPEC))

        assert result.url == "https://github.com/acme/web/pull/3"
        args = mock_exec.call_args.args
        assert args[:3] == ("gh", "pr", "create")
        assert args[args.index("--head") + 1] == PR_SPEC.head_branch
        assert args[args.index("--base") + 1] == "master"
        assert mock_exec.call_args.kwargs["cwd"] == str(tmp_path)

    def test_nonzero_exit_raises(self, tmp_path):
        forge = GhCliForge(working_directory=tmp_path)
        process = self._process(returncode=1, stderr=b"not logged in")

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(ForgeAPIError) as exc_info:
                run_async(forge.create_pull_request(PR_SPEC))

        assert "not logged in" in str(exc_info.value)

    def test_missing_binary_raises(self, tmp_path):
        forge = GhCliForge(working_directory=tmp_path, gh_path="/missing/gh")

        with patch(
            "asyncio.create_subprocess_exec", side_effect=FileNotFoundError("gh")
        ):
            with pytest.raises(ForgeAPIError):
                run_async(forge.create_pull_request(PR_SPEC))


class TestCreateForge:
    def _settings(self, **overrides):
        values = {"repo_path": "/srv/repo", "forge": "gh-cli"}
        values.update(overrides)
        return AgentSettings(**values)

    def test_github(self):
        forge = create_forge(
            self._settings(
                forge="github",
                github_token="t",
                github_owner="acme",
                github_repo="web",
            )
        )
        assert isinstance(forge, GitHubForge)
        assert forge.owner == "acme"

    def test_bitbucket_prefers_email(self):
        forge = create_forge(
            self._settings(
                forge="bitbucket",
                bb_username="devuser",
                bb_email="dev@example.com",
                bb_api_token="t",
                bb_workspace="acme",
                bb_repo="web",
            )
        )
        assert isinstance(forge, BitbucketForge)
        assert forge.username == "dev@example.com"

    def test_gh_cli(self):
        forge = create_forge(self._settings())
        assert isinstance(forge, GhCliForge)
        assert forge.working_directory == Path("/srv/repo")
