"""Shared fixtures for the issue sync tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from langgraph.store.memory import InMemoryStore

from issue_sync.clients.topcoder import ChallengePlatformClient
from issue_sync.config import Settings
from issue_sync.issue_service import IssueService
from issue_sync.models import (
    Copilot,
    IssueRecord,
    IssueStatus,
    ParsedIssue,
    Project,
    UserMapping,
    parse_event,
)
from issue_sync.parsers import parse_prizes
from issue_sync.scheduler import TaskScheduler
from issue_sync.state import EventContext, EventOutcome
from issue_sync.store import RecordStore
from issue_sync.users import UserMappingService

NUMBER = 7
REPOSITORY_ID = 1
CHALLENGE_ID = 1001
WINNER_ID = 42
COPILOT_MEMBER_ID = 14001
BILLING_ACCOUNT_ID = 77
TC_DIRECT_ID = 3003


def build_event(
    kind="issue.created",
    title="[$100] Fix typo",
    body="",
    labels=None,
    assignees=None,
    assignee=None,
    comment=None,
    provider="github",
    **extra,
):
    """Build a validated event payload for one issue in owner/repo."""
    data = {
        "issue": {
            "number": NUMBER,
            "title": title,
            "body": body,
            "labels": labels or [],
            "assignees": [{"id": user_id} for user_id in assignees or []],
            "owner": {"id": 1},
        },
        "repository": {"id": REPOSITORY_ID, "name": "repo", "full_name": "owner/repo"},
    }
    if assignee is not None:
        data["assignee"] = {"id": assignee}
    if comment is not None:
        data["comment"] = {"id": 500, "body": comment, "user": {"id": 99}}
    return parse_event({"event": kind, "provider": provider, "data": data, **extra})


def build_issue(event, assignee=None) -> ParsedIssue:
    prizes, title = parse_prizes(event.data.issue.title)
    return ParsedIssue(
        number=event.data.issue.number,
        title=title,
        body=event.data.issue.body,
        provider=event.provider,
        repository_id=event.data.repository.id,
        labels=list(event.data.issue.labels),
        prizes=prizes,
        assignee=assignee,
    )


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def make_issue():
    return build_issue


@pytest.fixture
def settings():
    return Settings(tc_url="https://tc.test")


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def records(memory_store):
    return RecordStore(memory_store)


@pytest.fixture
def seed(memory_store):
    """Write records straight into the backing store."""

    def _seed(*items):
        for item in items:
            memory_store.put(type(item).namespace, item.id, item.model_dump(mode="json"))
        return items[0] if len(items) == 1 else items

    return _seed


@pytest.fixture
def project():
    return Project(
        title="repo",
        repo_url="https://github.com/owner/repo",
        tc_direct_id=TC_DIRECT_ID,
        copilot="copilot_tc",
    )


@pytest.fixture
def alice():
    return UserMapping(
        topcoder_username="alice_tc", github_username="alice", github_user_id=99
    )


@pytest.fixture
def synced_record():
    return IssueRecord(
        number=NUMBER,
        provider="github",
        repository_id=REPOSITORY_ID,
        title="Fix typo",
        prizes=[100],
        challenge_id=CHALLENGE_ID,
        status=IssueStatus.CHALLENGE_CREATION_SUCCESSFUL,
    )


@pytest.fixture
def copilot():
    return Copilot(topcoder_username="copilot_tc", username="copilot", access_token="t")


@pytest.fixture
def challenges():
    mock = AsyncMock()
    mock.resource = ChallengePlatformClient.resource
    mock.create_challenge.return_value = CHALLENGE_ID
    mock.get_billing_account_id.return_value = BILLING_ACCOUNT_ID
    mock.get_member_id.side_effect = lambda handle: {
        "alice_tc": WINNER_ID,
        "copilot_tc": COPILOT_MEMBER_ID,
    }[handle]
    return mock


@pytest.fixture
def tracker():
    mock = AsyncMock()
    mock.reports_initial_assignees = False
    mock.get_username_by_id.return_value = "alice"
    mock.get_user_id_by_login.return_value = 99
    return mock


@pytest.fixture
def emails():
    return AsyncMock()


@pytest.fixture
def scheduler():
    return MagicMock(spec=TaskScheduler)


@pytest.fixture
def service(records, challenges, emails, scheduler, settings):
    return IssueService(
        records=records,
        challenges=challenges,
        users=UserMappingService(records),
        emails=emails,
        scheduler=scheduler,
        settings=settings,
    )


@pytest.fixture
def make_context(copilot, tracker):
    def _make(event):
        return EventContext(
            event=event,
            copilot=copilot,
            tracker=tracker,
            outcome=EventOutcome.for_event(event),
        )

    return _make
