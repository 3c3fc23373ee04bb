"""E-mail notifications through the mail relay."""

import logging
from typing import Optional

from ..config import Settings, get_settings
from ..models import IssueEvent
from .http import send

logger = logging.getLogger(__name__)


class EmailService:
    """Send notification mails via EMAIL_SERVICE_URL."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def send_new_bid_email(self, event: IssueEvent, amount: int) -> bool:
        """Notify the bid receiver about a new bid on an issue.

        Returns:
            False when no relay is configured and the mail was skipped.
        """
        if not self.settings.email_service_url or not self.settings.issue_bid_email_receiver:
            logger.warning("Mail relay not configured - skipping bid notification")
            return False

        issue = event.data.issue
        repository = event.data.repository
        bidder = event.data.comment.user.id if event.data.comment and event.data.comment.user else None
        await send(
            "POST",
            self.settings.email_service_url,
            operation="Failed to send bid email.",
            timeout=self.settings.http_timeout,
            json={
                "to": self.settings.issue_bid_email_receiver,
                "subject": f"New bid on {repository.full_name}#{issue.number}",
                "body": (
                    f"A new bid of ${amount} was placed on issue #{issue.number} "
                    f"({issue.title}) in {repository.full_name} by user {bidder}."
                ),
            },
        )
        logger.info(f"Bid email sent for {repository.full_name}#{issue.number}")
        return True
