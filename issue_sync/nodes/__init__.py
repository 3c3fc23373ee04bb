"""Graph node implementations."""

from .handlers import (
    issue_assigned,
    issue_closed,
    issue_comment,
    issue_created,
    issue_label_updated,
    issue_unassigned,
    issue_updated,
    route_event,
)
from .normalize import get_service, normalize_event

__all__ = [
    "get_service",
    "normalize_event",
    "route_event",
    "issue_created",
    "issue_updated",
    "issue_closed",
    "issue_comment",
    "issue_assigned",
    "issue_unassigned",
    "issue_label_updated",
]
