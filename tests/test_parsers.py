"""Tests for prize and comment parsing."""

import pytest

from issue_sync.errors import ParseError
from issue_sync.parsers import parse_comment, parse_prizes


class TestParsePrizes:
    """Tests for bracketed prize extraction."""

    def test_multiple_prizes(self):
        prizes, title = parse_prizes("[$500][$300] Fix bug")
        assert prizes == [500, 300]
        assert title == "Fix bug"

    def test_single_prize(self):
        prizes, title = parse_prizes("[$100] Fix typo")
        assert prizes == [100]
        assert title == "Fix typo"

    def test_amount_after_last_bracket_is_ignored(self):
        """Only amounts followed by a closing bracket count."""
        prizes, title = parse_prizes("[$100] costs $40 to fix")
        assert prizes == [100]
        assert title == "costs $40 to fix"

    def test_zero_prize(self):
        prizes, _ = parse_prizes("[$0] Chore")
        assert prizes == [0]

    @pytest.mark.parametrize("title", ["Fix bug", "[100] Fix bug", "Fix $5 bug"])
    def test_missing_prize_raises(self, title):
        with pytest.raises(ParseError) as exc_info:
            parse_prizes(title)
        assert exc_info.value.message == f"Cannot parse prize from title: {title}"
        assert exc_info.value.status_code == 400


class TestParseComment:
    """Tests for /bid and /accept_bid commands."""

    def test_bid(self):
        parsed = parse_comment("/bid $150")
        assert parsed.is_bid is True
        assert parsed.bid_amount == 150
        assert parsed.is_accept_bid is False

    def test_bid_inside_text(self):
        parsed = parse_comment("I can do this.\n/bid $75\nThanks")
        assert parsed.bid_amount == 75

    def test_accept_bid(self):
        parsed = parse_comment("/accept_bid @alice $200")
        assert parsed.is_accept_bid is True
        assert parsed.assigned_user == "alice"
        assert parsed.accepted_bid_amount == 200
        assert parsed.is_bid is False

    def test_plain_comment(self):
        parsed = parse_comment("Thanks for the report")
        assert parsed.is_bid is False
        assert parsed.is_accept_bid is False

    def test_empty_comment(self):
        parsed = parse_comment("")
        assert parsed.is_bid is False

    def test_bid_without_amount_raises(self):
        with pytest.raises(ParseError) as exc_info:
            parse_comment("/bid soon")
        assert exc_info.value.message == "Cannot parse bid amount from comment: '/bid soon'"

    @pytest.mark.parametrize(
        "body", ["/accept_bid @alice", "/accept_bid alice $200", "/accept_bid $200"]
    )
    def test_malformed_accept_bid_raises(self, body):
        with pytest.raises(ParseError, match="Accept bid command is not valid"):
            parse_comment(body)
