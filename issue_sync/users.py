"""Identity lookups: tracker user -> platform handle, repository -> copilot."""

import logging
from typing import Optional

from .errors import NotFoundError
from .models import Copilot, Project, TrackerUser, UserMapping
from .store import RecordStore

logger = logging.getLogger(__name__)


class UserMappingService:
    """Resolve identities from the records kept in the record store."""

    def __init__(self, records: RecordStore):
        self.records = records

    async def get_tc_username(
        self, provider: str, tracker_user_id: int
    ) -> Optional[UserMapping]:
        """Get the platform mapping of a tracker user, or None if unmapped."""
        if tracker_user_id is None:
            return None
        mapping = await self.records.scan_one(
            UserMapping, {f"{provider}_user_id": tracker_user_id}
        )
        if mapping is None or not mapping.topcoder_username:
            logger.debug(f"No platform mapping for {provider} user {tracker_user_id}")
            return None
        return mapping

    async def get_project(self, repo_url: str) -> Optional[Project]:
        return await self.records.scan_one(Project, {"repo_url": repo_url})

    async def get_repository_copilot(self, provider: str, repo_url: str) -> Copilot:
        """Resolve the copilot acting on a repository.

        Raises:
            NotFoundError: At the first missing link (project, mapping,
                tracker credentials).
        """
        project = await self.get_project(repo_url)
        if project is None:
            raise NotFoundError(f"There is no project associated with {repo_url}")

        mapping = await self.records.scan_one(
            UserMapping, {"topcoder_username": project.copilot}
        )
        username = getattr(mapping, f"{provider}_username", None) if mapping else None
        if not username:
            raise NotFoundError(
                f"Copilot {project.copilot} has no {provider} account mapping"
            )

        tracker_user = await self.records.scan_one(
            TrackerUser, {"provider": provider, "username": username}
        )
        if tracker_user is None:
            raise NotFoundError(
                f"Copilot {project.copilot} has no {provider} credentials"
            )

        return Copilot(
            topcoder_username=project.copilot,
            username=tracker_user.username,
            user_id=tracker_user.user_id,
            access_token=tracker_user.access_token,
        )
