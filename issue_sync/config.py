"""Runtime configuration read from environment variables."""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass
class Settings:
    """Service settings.

    Defaults match a development setup; production overrides everything
    through the environment (see ``from_env``).
    """

    tc_url: str = "https://www.topcoder.com"
    tc_api_url: str = "https://api.topcoder.com/v3"
    tc_api_token: str = ""
    github_api_url: str = "https://api.github.com"
    gitlab_api_base_url: str = "https://gitlab.com"

    open_for_pickup_label: str = "tcx_OpenForPickup"
    not_ready_label: str = "tcx_NotReady"
    assigned_label: str = "tcx_Assigned"
    fix_accepted_label: str = "tcx_FixAccepted"
    paid_label: str = "tcx_Paid"

    # Seconds
    cancel_challenge_interval: float = 180.0
    retry_interval: float = 60.0
    http_timeout: float = 30.0

    retry_count: int = 3
    new_challenge_duration_in_days: int = 5

    email_service_url: str = ""
    issue_bid_email_receiver: str = ""
    database_url: Optional[str] = None

    new_challenge_template: dict = field(
        default_factory=lambda: {
            "subTrack": "FIRST_2_FINISH",
            "reviewType": "INTERNAL",
            "technologies": [],
            "platforms": [],
        }
    )

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        defaults = cls()
        return cls(
            tc_url=os.environ.get("TC_URL", defaults.tc_url),
            tc_api_url=os.environ.get("TC_API_URL", defaults.tc_api_url),
            tc_api_token=os.environ.get("TC_API_TOKEN", ""),
            github_api_url=os.environ.get("GITHUB_API_URL", defaults.github_api_url),
            gitlab_api_base_url=os.environ.get(
                "GITLAB_API_BASE_URL", defaults.gitlab_api_base_url
            ),
            open_for_pickup_label=os.environ.get(
                "OPEN_FOR_PICKUP_ISSUE_LABEL", defaults.open_for_pickup_label
            ),
            not_ready_label=os.environ.get(
                "NOT_READY_ISSUE_LABEL", defaults.not_ready_label
            ),
            assigned_label=os.environ.get(
                "ASSIGNED_ISSUE_LABEL", defaults.assigned_label
            ),
            fix_accepted_label=os.environ.get(
                "FIX_ACCEPTED_ISSUE_LABEL", defaults.fix_accepted_label
            ),
            paid_label=os.environ.get("PAID_ISSUE_LABEL", defaults.paid_label),
            cancel_challenge_interval=_env_float(
                "CANCEL_CHALLENGE_INTERVAL", defaults.cancel_challenge_interval
            ),
            retry_interval=_env_float("RETRY_INTERVAL", defaults.retry_interval),
            http_timeout=_env_float("HTTP_TIMEOUT", defaults.http_timeout),
            retry_count=_env_int("RETRY_COUNT", defaults.retry_count),
            new_challenge_duration_in_days=_env_int(
                "NEW_CHALLENGE_DURATION_IN_DAYS",
                defaults.new_challenge_duration_in_days,
            ),
            email_service_url=os.environ.get("EMAIL_SERVICE_URL", ""),
            issue_bid_email_receiver=os.environ.get("ISSUE_BID_EMAIL_RECEIVER", ""),
            database_url=os.environ.get("DATABASE_URL") or None,
        )

    def challenge_url(self, challenge_id) -> str:
        """Public contest link for a challenge id."""
        return f"{self.tc_url}/challenges/{challenge_id}"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
