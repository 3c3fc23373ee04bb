"""Issue tracker clients.

A tracker client is bound once per event to the copilot's credentials and
the event's repository, so handlers never branch on the provider. GitHub
addresses repositories by ``full_name`` and users by login; GitLab addresses
projects by numeric id and users by id, resolving logins internally.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

from ..config import Settings, get_settings
from ..errors import NotFoundError
from ..models import Copilot, RepositoryPayload
from .http import send

logger = logging.getLogger(__name__)


class TrackerClient(ABC):
    """Issue operations against one repository, acting as the copilot."""

    provider: str = ""
    # Whether issue-creation payloads carry assignees that must be synced
    # without a separate assignment event.
    reports_initial_assignees: bool = False

    def __init__(
        self,
        copilot: Copilot,
        repository: RepositoryPayload,
        settings: Optional[Settings] = None,
    ):
        self.copilot = copilot
        self.repository = repository
        self.settings = settings or get_settings()

    @classmethod
    @abstractmethod
    def repository_url(cls, settings: Settings, full_name: str) -> str:
        """URL a project is registered under for this provider."""

    @property
    @abstractmethod
    def api_url(self) -> str:
        ...

    @property
    @abstractmethod
    def headers(self) -> Dict[str, str]:
        ...

    async def _send(self, method: str, path: str, operation: str, **kwargs):
        return await send(
            method,
            f"{self.api_url}{path}",
            operation=operation,
            headers=self.headers,
            timeout=self.settings.http_timeout,
            **kwargs,
        )

    @abstractmethod
    async def create_comment(self, number: int, body: str) -> None:
        ...

    @abstractmethod
    async def add_labels(self, number: int, labels: List[str]) -> None:
        """Replace the issue's label set."""

    @abstractmethod
    async def assign_user(self, number: int, login: str) -> None:
        ...

    @abstractmethod
    async def remove_assign(self, number: int, user_id: int, login: str) -> None:
        ...

    @abstractmethod
    async def get_username_by_id(self, user_id: int) -> str:
        ...

    @abstractmethod
    async def get_user_id_by_login(self, login: str) -> int:
        ...

    @abstractmethod
    async def update_issue_title(self, number: int, title: str) -> None:
        ...

    @abstractmethod
    async def reopen_issue(self, number: int) -> None:
        ...

    async def mark_as_paid(
        self, number: int, challenge_id, labels: List[str]
    ) -> None:
        """Label the issue as paid and link the settled contest."""
        paid_labels = [label for label in labels if label != self.settings.paid_label]
        paid_labels.append(self.settings.paid_label)
        await self.add_labels(number, paid_labels)
        contest_url = self.settings.challenge_url(challenge_id)
        await self.create_comment(
            number, f"Payment task has been updated: {contest_url}"
        )
        logger.debug(f"Issue {number} is marked as paid")


class GitHubTracker(TrackerClient):
    provider = "github"
    reports_initial_assignees = False

    @classmethod
    def repository_url(cls, settings: Settings, full_name: str) -> str:
        return f"https://github.com/{full_name}"

    @property
    def api_url(self) -> str:
        return self.settings.github_api_url.rstrip("/")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"token {self.copilot.access_token}",
            "Accept": "application/vnd.github+json",
        }

    @property
    def _issue_path(self) -> str:
        return f"/repos/{self.repository.full_name}/issues"

    async def create_comment(self, number: int, body: str) -> None:
        await self._send(
            "POST",
            f"{self._issue_path}/{number}/comments",
            "Failed to create comment.",
            json={"body": body},
        )

    async def add_labels(self, number: int, labels: List[str]) -> None:
        await self._send(
            "PATCH",
            f"{self._issue_path}/{number}",
            "Failed to update labels.",
            json={"labels": labels},
        )

    async def assign_user(self, number: int, login: str) -> None:
        await self._send(
            "POST",
            f"{self._issue_path}/{number}/assignees",
            "Failed to assign user.",
            json={"assignees": [login]},
        )

    async def remove_assign(self, number: int, user_id: int, login: str) -> None:
        await self._send(
            "DELETE",
            f"{self._issue_path}/{number}/assignees",
            "Failed to remove assignee.",
            json={"assignees": [login]},
        )

    async def get_username_by_id(self, user_id: int) -> str:
        response = await self._send(
            "GET", f"/user/{user_id}", "Failed to get user by id."
        )
        return response.json()["login"]

    async def get_user_id_by_login(self, login: str) -> int:
        response = await self._send(
            "GET", f"/users/{login}", "Failed to get user by login."
        )
        return response.json()["id"]

    async def update_issue_title(self, number: int, title: str) -> None:
        await self._send(
            "PATCH",
            f"{self._issue_path}/{number}",
            "Failed to update issue.",
            json={"title": title},
        )

    async def reopen_issue(self, number: int) -> None:
        await self._send(
            "PATCH",
            f"{self._issue_path}/{number}",
            "Failed to reopen issue.",
            json={"state": "open"},
        )


class GitLabTracker(TrackerClient):
    provider = "gitlab"
    reports_initial_assignees = True

    @classmethod
    def repository_url(cls, settings: Settings, full_name: str) -> str:
        return f"{settings.gitlab_api_base_url.rstrip('/')}/{full_name}"

    @property
    def api_url(self) -> str:
        return f"{self.settings.gitlab_api_base_url.rstrip('/')}/api/v4"

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.copilot.access_token}"}

    @property
    def _issue_path(self) -> str:
        return f"/projects/{self.repository.id}/issues"

    async def _edit_issue(self, number: int, changes: dict, operation: str) -> None:
        await self._send(
            "PUT", f"{self._issue_path}/{number}", operation, json=changes
        )

    async def create_comment(self, number: int, body: str) -> None:
        await self._send(
            "POST",
            f"{self._issue_path}/{number}/notes",
            "Failed to create comment.",
            json={"body": body},
        )

    async def add_labels(self, number: int, labels: List[str]) -> None:
        await self._edit_issue(
            number, {"labels": ",".join(labels)}, "Failed to update labels."
        )

    async def assign_user(self, number: int, login: str) -> None:
        user_id = await self.get_user_id_by_login(login)
        await self._edit_issue(
            number, {"assignee_ids": [user_id]}, "Failed to assign user."
        )

    async def remove_assign(self, number: int, user_id: int, login: str) -> None:
        # assignee_ids=[0] clears every assignee
        await self._edit_issue(
            number, {"assignee_ids": [0]}, "Failed to remove assignee."
        )

    async def get_username_by_id(self, user_id: int) -> str:
        response = await self._send(
            "GET", f"/users/{user_id}", "Failed to get user by id."
        )
        return response.json()["username"]

    async def get_user_id_by_login(self, login: str) -> int:
        response = await self._send(
            "GET",
            "/users",
            "Failed to get user by login.",
            params={"username": login},
        )
        users = response.json()
        if not users:
            raise NotFoundError(f"GitLab user {login} not found")
        return users[0]["id"]

    async def update_issue_title(self, number: int, title: str) -> None:
        await self._edit_issue(number, {"title": title}, "Failed to update issue.")

    async def reopen_issue(self, number: int) -> None:
        await self._edit_issue(
            number, {"state_event": "reopen"}, "Failed to reopen issue."
        )


TRACKERS: Dict[str, Type[TrackerClient]] = {
    "github": GitHubTracker,
    "gitlab": GitLabTracker,
}


def tracker_class(provider: str) -> Type[TrackerClient]:
    try:
        return TRACKERS[provider]
    except KeyError:
        raise NotFoundError(f"Unsupported provider: {provider}") from None


def get_tracker(
    provider: str,
    copilot: Copilot,
    repository: RepositoryPayload,
    settings: Optional[Settings] = None,
) -> TrackerClient:
    """Select and bind the tracker implementation for one event."""
    return tracker_class(provider)(copilot, repository, settings)
