"""Client for the challenge platform (Topcoder v3 API).

Responses use the v3 envelope ``{"result": {"status": ..., "content": ...}}``.
Authentication is a static bearer token from ``TC_API_TOKEN``.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from ..config import Settings, get_settings
from ..errors import NotFoundError, RemoteOperationError
from ..models import utcnow
from .http import send

logger = logging.getLogger(__name__)

REGISTRANT_ROLE_ID = 1
COPILOT_ROLE_ID = 14


def _content(response) -> Any:
    body = response.json() or {}
    return (body.get("result") or {}).get("content")


class ChallengePlatformClient:
    """Create, update and settle platform challenges."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.tc_api_url.rstrip("/")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.tc_api_token}",
            "Content-Type": "application/json",
        }

    async def _send(self, method: str, path: str, operation: str, **kwargs):
        return await send(
            method,
            f"{self.base_url}{path}",
            operation=operation,
            headers=self.headers,
            timeout=self.settings.http_timeout,
            **kwargs,
        )

    async def create_challenge(self, challenge: Dict[str, Any]) -> int:
        """Create a draft challenge and return its id.

        ``challenge`` is merged over the new-challenge template, after the
        registration and submission window.
        """
        start = utcnow()
        end = start + timedelta(days=self.settings.new_challenge_duration_in_days)
        param = {
            **self.settings.new_challenge_template,
            "registrationStartDate": start.isoformat(),
            "registrationStartsAt": start.isoformat(),
            "registrationEndsAt": end.isoformat(),
            "submissionEndsAt": end.isoformat(),
            **challenge,
        }
        response = await self._send(
            "POST",
            "/challenges",
            "Failed to create challenge.",
            json={"param": param},
        )
        content = _content(response) or {}
        challenge_id = content.get("id")
        if challenge_id is None:
            raise RemoteOperationError(
                "Failed to create challenge: no id in response",
                operation="create_challenge",
            )
        logger.info(f"Created challenge {challenge_id}")
        return challenge_id

    async def update_challenge(self, challenge_id, patch: Dict[str, Any]) -> None:
        logger.debug(f"Updating challenge {challenge_id} with {patch}")
        await self._send(
            "PUT",
            f"/challenges/{challenge_id}",
            "Failed to update challenge.",
            json={"param": patch},
        )

    async def activate_challenge(self, challenge_id) -> None:
        logger.debug(f"Activating challenge {challenge_id}")
        await self._send(
            "POST",
            f"/challenges/{challenge_id}/activate",
            "Failed to activate challenge.",
        )
        logger.debug(f"Challenge {challenge_id} is activated successfully.")

    async def close_challenge(self, challenge_id, winner_id) -> None:
        logger.debug(f"Closing challenge {challenge_id}")
        await self._send(
            "POST",
            f"/challenges/{challenge_id}/close",
            "Failed to close challenge.",
            params={"winnerId": winner_id},
        )
        logger.debug(f"Challenge {challenge_id} is closed successfully.")

    async def cancel_challenge(self, challenge_id) -> None:
        logger.debug(f"Cancelling challenge {challenge_id}")
        await self._send(
            "POST",
            f"/challenges/{challenge_id}/cancel",
            "Failed to cancel challenge.",
        )
        logger.debug(f"Challenge {challenge_id} is cancelled successfully.")

    async def add_resource(self, challenge_id, resource: Dict[str, Any]) -> None:
        """Add a resource (registrant, copilot) to a challenge.

        Adding a resource that is already present is not an error.
        """
        logger.debug(f"adding resource to challenge {challenge_id}")
        already_exists = (
            f"User {resource.get('resourceUserId')} with role "
            f"{resource.get('roleId')} already exists"
        )
        try:
            await self._send(
                "POST",
                f"/challenges/{challenge_id}/resources",
                "Failed to add resource to the challenge.",
                json=resource,
            )
        except RemoteOperationError as e:
            if already_exists in e.message:
                logger.debug(f"resource already on challenge {challenge_id}")
                return
            raise
        logger.debug(f"resource is added to challenge {challenge_id} successfully.")

    async def remove_resource(self, challenge_id, resource: Dict[str, Any]) -> None:
        logger.debug(f"removing resource from challenge {challenge_id}")
        await self._send(
            "DELETE",
            f"/challenges/{challenge_id}/resources",
            "Failed to remove resource from the challenge.",
            json=resource,
        )

    async def assign_user_as_registrant(self, user_id, challenge_id) -> None:
        await self.add_resource(challenge_id, self.resource(REGISTRANT_ROLE_ID, user_id))

    async def get_member_id(self, handle: str) -> int:
        response = await self._send(
            "GET", f"/members/{handle}", "Failed to get topcoder member id."
        )
        user_id = (_content(response) or {}).get("userId")
        if user_id is None:
            raise NotFoundError(f"No platform member with handle {handle}")
        return user_id

    async def get_billing_account_id(self, project_id) -> int:
        logger.debug(f"Getting project billing detail {project_id}")
        response = await self._send(
            "GET",
            f"/direct/projects/{project_id}",
            "Failed to get billing detail for the project.",
        )
        account_ids = (_content(response) or {}).get("billingAccountIds") or []
        if not account_ids:
            raise NotFoundError(
                f"There is no billing account id associated with project {project_id}"
            )
        return account_ids[0]

    @staticmethod
    def resource(role_id: int, user_id) -> Dict[str, Any]:
        return {
            "roleId": role_id,
            "resourceUserId": user_id,
            "phaseId": 0,
            "addNotification": True,
            "addForumWatch": True,
        }
