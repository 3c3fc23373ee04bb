"""Outbound clients: issue trackers, challenge platform, mail relay."""

from .notifications import EmailService
from .topcoder import COPILOT_ROLE_ID, REGISTRANT_ROLE_ID, ChallengePlatformClient
from .trackers import GitHubTracker, GitLabTracker, TrackerClient, get_tracker

__all__ = [
    "ChallengePlatformClient",
    "COPILOT_ROLE_ID",
    "EmailService",
    "GitHubTracker",
    "GitLabTracker",
    "REGISTRANT_ROLE_ID",
    "TrackerClient",
    "get_tracker",
]
