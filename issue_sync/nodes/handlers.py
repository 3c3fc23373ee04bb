"""Handler nodes - one per event kind, each delegating to the IssueService."""

from typing import Literal

from langchain_core.runnables import RunnableConfig

from ..state import SyncState
from .normalize import get_service

Route = Literal[
    "issue_created",
    "issue_updated",
    "issue_closed",
    "issue_comment",
    "issue_assigned",
    "issue_unassigned",
    "issue_label_updated",
    "skip",
]

ROUTES = {
    "issue.created": "issue_created",
    "issue.updated": "issue_updated",
    "issue.closed": "issue_closed",
    "comment.created": "issue_comment",
    "comment.updated": "issue_comment",
    "issue.assigned": "issue_assigned",
    "issue.unassigned": "issue_unassigned",
    "issue.labelUpdated": "issue_label_updated",
}


def route_event(state: SyncState) -> Route:
    """Routing function - pick the handler node for the event kind."""
    if state.get("context") is None or state.get("issue") is None:
        return "skip"
    return ROUTES.get(state["event"].event, "skip")


async def issue_created(state: SyncState, config: RunnableConfig) -> SyncState:
    await get_service(config).handle_issue_created(state["context"], state["issue"])
    return state


async def issue_updated(state: SyncState, config: RunnableConfig) -> SyncState:
    await get_service(config).handle_issue_updated(state["context"], state["issue"])
    return state


async def issue_closed(state: SyncState, config: RunnableConfig) -> SyncState:
    """Settle payment for a closed issue.

    The outcome's payment flag is what a redelivered event carries forward.
    """
    await get_service(config).handle_issue_closed(state["context"], state["issue"])
    return state


async def issue_comment(state: SyncState, config: RunnableConfig) -> SyncState:
    await get_service(config).handle_issue_comment(state["context"], state["issue"])
    return state


async def issue_assigned(state: SyncState, config: RunnableConfig) -> SyncState:
    await get_service(config).handle_issue_assigned(state["context"], state["issue"])
    return state


async def issue_unassigned(state: SyncState, config: RunnableConfig) -> SyncState:
    await get_service(config).handle_issue_unassigned(
        state["context"], state["issue"]
    )
    return state


async def issue_label_updated(state: SyncState, config: RunnableConfig) -> SyncState:
    await get_service(config).handle_issue_label_updated(
        state["context"], state["issue"]
    )
    return state
