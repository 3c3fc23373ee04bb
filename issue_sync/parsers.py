"""Prize and comment command parsing."""

import logging
import re
from typing import List, Tuple

from .errors import ParseError
from .models import ParsedComment

logger = logging.getLogger(__name__)

# A $<digits> token counts only while a closing bracket follows it.
PRIZE_PATTERN = re.compile(r"\$([0-9]+)(?=.*\])")
PRIZE_TAG_PATTERN = re.compile(r"^(\[.*\])")

BID_COMMAND = re.compile(r"/bid")
BID_PATTERN = re.compile(r"/bid[ \t]+\$([0-9]+)")
ACCEPT_BID_COMMAND = re.compile(r"/accept_bid")
ACCEPT_BID_PATTERN = re.compile(r"/accept_bid[ \t]+@([^\s]+)[ \t]+\$([0-9]+)")


def parse_prizes(title: str) -> Tuple[List[int], str]:
    """Extract bracketed prizes from an issue title.

    Args:
        title: Issue title, e.g. ``"[$500][$300] Fix bug"``

    Returns:
        ``(prizes, display_title)``, e.g. ``([500, 300], "Fix bug")``

    Raises:
        ParseError: If the title carries no prize.
    """
    matches = PRIZE_PATTERN.findall(title)
    if not matches:
        raise ParseError(f"Cannot parse prize from title: {title}")

    prizes = [int(amount) for amount in matches]
    display_title = PRIZE_TAG_PATTERN.sub("", title).strip()
    return prizes, display_title


def parse_comment(body: str) -> ParsedComment:
    """Parse ``/bid`` and ``/accept_bid`` commands out of a comment body.

    Both commands are independent; a comment may carry either, both or none.

    Raises:
        ParseError: If a command is present but malformed.
    """
    body = body or ""
    parsed = ParsedComment()

    if BID_COMMAND.search(body):
        match = BID_PATTERN.search(body)
        if not match:
            raise ParseError(f"Cannot parse bid amount from comment: '{body}'")
        parsed.is_bid = True
        parsed.bid_amount = int(match.group(1))

    if ACCEPT_BID_COMMAND.search(body):
        match = ACCEPT_BID_PATTERN.search(body)
        if not match:
            raise ParseError("Accept bid command is not valid")
        parsed.is_accept_bid = True
        parsed.assigned_user = match.group(1)
        parsed.accepted_bid_amount = int(match.group(2))
        logger.debug(f"parsed dollar amount out as {parsed.accepted_bid_amount}")

    return parsed
