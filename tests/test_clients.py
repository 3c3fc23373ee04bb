"""Tests for the tracker, platform and mail clients."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from issue_sync.clients import (
    ChallengePlatformClient,
    EmailService,
    GitHubTracker,
    GitLabTracker,
    get_tracker,
)
from issue_sync.config import Settings
from issue_sync.errors import NotFoundError, RemoteOperationError
from issue_sync.models import RepositoryPayload


def _response(json_body=None, status_code=200, text=""):
    response = MagicMock()
    response.json.return_value = json_body
    response.text = text
    if status_code >= 400:
        response.status_code = status_code
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            text, request=MagicMock(), response=response
        )
    else:
        response.raise_for_status = MagicMock()
    return response


@pytest.fixture
def http():
    """Patch httpx.AsyncClient; yields the client mock."""
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = AsyncMock()
        mock_client.request.return_value = _response({})
        mock_client.__aenter__.return_value = mock_client
        mock_client.__aexit__.return_value = None
        mock_client_class.return_value = mock_client
        yield mock_client


@pytest.fixture
def repository():
    return RepositoryPayload(id=1, name="repo", full_name="owner/repo")


class TestGetTracker:
    def test_selects_by_provider(self, copilot, repository, settings):
        assert isinstance(get_tracker("github", copilot, repository, settings), GitHubTracker)
        assert isinstance(get_tracker("gitlab", copilot, repository, settings), GitLabTracker)

    def test_unknown_provider(self, copilot, repository, settings):
        with pytest.raises(NotFoundError):
            get_tracker("bitbucket", copilot, repository, settings)

    def test_repository_urls(self, settings):
        assert GitHubTracker.repository_url(settings, "o/r") == "https://github.com/o/r"
        assert GitLabTracker.repository_url(settings, "o/r") == "https://gitlab.com/o/r"


class TestGitHubTracker:
    """Tests for the GitHub REST calls."""

    @pytest.fixture
    def github(self, copilot, repository, settings):
        return GitHubTracker(copilot, repository, settings)

    @pytest.mark.asyncio
    async def test_create_comment(self, github, http):
        await github.create_comment(7, "hello")

        http.request.assert_awaited_once()
        args, kwargs = http.request.call_args
        assert args == ("POST", "https://api.github.com/repos/owner/repo/issues/7/comments")
        assert kwargs["json"] == {"body": "hello"}
        assert kwargs["headers"]["Authorization"] == "token t"

    @pytest.mark.asyncio
    async def test_add_labels_replaces_set(self, github, http):
        await github.add_labels(7, ["a", "b"])

        args, kwargs = http.request.call_args
        assert args == ("PATCH", "https://api.github.com/repos/owner/repo/issues/7")
        assert kwargs["json"] == {"labels": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_user_lookups(self, github, http):
        http.request.return_value = _response({"login": "alice", "id": 99})

        assert await github.get_username_by_id(99) == "alice"
        assert http.request.call_args[0][1] == "https://api.github.com/user/99"
        assert await github.get_user_id_by_login("alice") == 99
        assert http.request.call_args[0][1] == "https://api.github.com/users/alice"

    @pytest.mark.asyncio
    async def test_reopen(self, github, http):
        await github.reopen_issue(7)
        assert http.request.call_args[1]["json"] == {"state": "open"}

    @pytest.mark.asyncio
    async def test_mark_as_paid(self, github, http):
        await github.mark_as_paid(7, 1001, ["tcx_Assigned"])

        calls = http.request.call_args_list
        assert calls[0][1]["json"] == {"labels": ["tcx_Assigned", "tcx_Paid"]}
        assert calls[1][1]["json"] == {
            "body": "Payment task has been updated: https://tc.test/challenges/1001"
        }

    @pytest.mark.asyncio
    async def test_http_error_is_converted(self, github, http):
        http.request.return_value = _response(status_code=404, text="Not Found")

        with pytest.raises(RemoteOperationError) as exc_info:
            await github.create_comment(7, "hello")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Failed to create comment. Not Found"
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_transport_error_is_converted(self, github, http):
        http.request.side_effect = httpx.ConnectError("refused")

        with pytest.raises(RemoteOperationError) as exc_info:
            await github.create_comment(7, "hello")

        assert exc_info.value.status_code == 502


class TestGitLabTracker:
    """Tests for the GitLab REST calls."""

    @pytest.fixture
    def gitlab(self, copilot, repository, settings):
        return GitLabTracker(copilot, repository, settings)

    @pytest.mark.asyncio
    async def test_comment_is_a_note(self, gitlab, http):
        await gitlab.create_comment(7, "hello")

        args, kwargs = http.request.call_args
        assert args == ("POST", "https://gitlab.com/api/v4/projects/1/issues/7/notes")
        assert kwargs["headers"]["Authorization"] == "Bearer t"

    @pytest.mark.asyncio
    async def test_labels_are_comma_joined(self, gitlab, http):
        await gitlab.add_labels(7, ["a", "b"])

        args, kwargs = http.request.call_args
        assert args == ("PUT", "https://gitlab.com/api/v4/projects/1/issues/7")
        assert kwargs["json"] == {"labels": "a,b"}

    @pytest.mark.asyncio
    async def test_assign_resolves_login(self, gitlab, http):
        http.request.side_effect = [_response([{"id": 99}]), _response({})]

        await gitlab.assign_user(7, "alice")

        lookup, edit = http.request.call_args_list
        assert lookup[1]["params"] == {"username": "alice"}
        assert edit[1]["json"] == {"assignee_ids": [99]}

    @pytest.mark.asyncio
    async def test_unknown_login(self, gitlab, http):
        http.request.return_value = _response([])

        with pytest.raises(NotFoundError):
            await gitlab.get_user_id_by_login("ghost")

    @pytest.mark.asyncio
    async def test_remove_assign_clears_assignees(self, gitlab, http):
        await gitlab.remove_assign(7, 99, "alice")
        assert http.request.call_args[1]["json"] == {"assignee_ids": [0]}

    @pytest.mark.asyncio
    async def test_reopen(self, gitlab, http):
        await gitlab.reopen_issue(7)
        assert http.request.call_args[1]["json"] == {"state_event": "reopen"}


class TestChallengePlatformClient:
    """Tests for the v3 challenge API."""

    @pytest.fixture
    def platform(self):
        return ChallengePlatformClient(
            Settings(tc_api_url="https://api.tc.test/v3", tc_api_token="tok")
        )

    @pytest.mark.asyncio
    async def test_create_challenge_merges_template(self, platform, http):
        http.request.return_value = _response({"result": {"content": {"id": 1001}}})

        challenge_id = await platform.create_challenge(
            {"name": "Fix typo", "prizes": [100], "projectId": 3003}
        )

        assert challenge_id == 1001
        args, kwargs = http.request.call_args
        assert args == ("POST", "https://api.tc.test/v3/challenges")
        param = kwargs["json"]["param"]
        assert param["subTrack"] == "FIRST_2_FINISH"
        assert param["name"] == "Fix typo"
        assert param["registrationEndsAt"] == param["submissionEndsAt"]
        assert kwargs["headers"]["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_create_challenge_without_id(self, platform, http):
        http.request.return_value = _response({"result": {"content": {}}})

        with pytest.raises(RemoteOperationError):
            await platform.create_challenge({"name": "x"})

    @pytest.mark.asyncio
    async def test_close_challenge_sends_winner(self, platform, http):
        await platform.close_challenge(1001, 42)

        args, kwargs = http.request.call_args
        assert args == ("POST", "https://api.tc.test/v3/challenges/1001/close")
        assert kwargs["params"] == {"winnerId": 42}

    @pytest.mark.asyncio
    async def test_existing_resource_is_not_an_error(self, platform, http):
        http.request.return_value = _response(
            status_code=400, text="User 42 with role 1 already exists"
        )

        await platform.assign_user_as_registrant(42, 1001)

        assert http.request.call_args[1]["json"]["roleId"] == 1

    @pytest.mark.asyncio
    async def test_other_resource_errors_raise(self, platform, http):
        http.request.return_value = _response(status_code=400, text="Bad phase")

        with pytest.raises(RemoteOperationError):
            await platform.add_resource(1001, platform.resource(14, 7))

    @pytest.mark.asyncio
    async def test_member_id(self, platform, http):
        http.request.return_value = _response({"result": {"content": {"userId": 42}}})

        assert await platform.get_member_id("alice_tc") == 42
        assert http.request.call_args[0][1] == "https://api.tc.test/v3/members/alice_tc"

    @pytest.mark.asyncio
    async def test_missing_billing_account(self, platform, http):
        http.request.return_value = _response(
            {"result": {"content": {"billingAccountIds": []}}}
        )

        with pytest.raises(NotFoundError) as exc_info:
            await platform.get_billing_account_id(3003)

        assert exc_info.value.message == (
            "There is no billing account id associated with project 3003"
        )


class TestEmailService:
    @pytest.mark.asyncio
    async def test_skipped_without_relay(self, make_event, http):
        service = EmailService(Settings())

        assert await service.send_new_bid_email(make_event("comment.created"), 100) is False
        http.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sends_bid_mail(self, make_event, http):
        service = EmailService(
            Settings(
                email_service_url="https://mail.test/send",
                issue_bid_email_receiver="ops@example.com",
            )
        )

        sent = await service.send_new_bid_email(
            make_event("comment.created", comment="/bid $100"), 100
        )

        assert sent is True
        args, kwargs = http.request.call_args
        assert args == ("POST", "https://mail.test/send")
        assert kwargs["json"]["to"] == "ops@example.com"
        assert "$100" in kwargs["json"]["body"]
