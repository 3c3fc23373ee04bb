"""Normalize node - turns a raw event into a parsed issue and its context."""

import logging

from langchain_core.runnables import RunnableConfig
from markdown_it import MarkdownIt

from ..clients.trackers import tracker_class
from ..errors import IssueSyncError
from ..models import ParsedIssue
from ..parsers import parse_prizes
from ..state import EventContext, SyncState

logger = logging.getLogger(__name__)

md = MarkdownIt("commonmark").enable(["table", "strikethrough"])


def get_service(config: RunnableConfig):
    """The IssueService the graph was invoked with."""
    service = (config or {}).get("configurable", {}).get("service")
    if service is None:
        raise RuntimeError("Graph invoked without an IssueService in config")
    return service


async def normalize_event(state: SyncState, config: RunnableConfig) -> SyncState:
    """Resolve the copilot, parse prizes and render the body.

    Failures here leave no trace on the tracker: the copilot may be the
    missing piece. Retryable errors reschedule the event until RETRY_COUNT
    is reached, anything else marks the outcome failed.
    """
    service = get_service(config)
    settings = service.settings
    event = state["event"]
    outcome = state["outcome"]
    repository = event.data.repository

    try:
        repo_url = tracker_class(event.provider).repository_url(
            settings, repository.full_name
        )
        copilot = await service.users.get_repository_copilot(event.provider, repo_url)
        project = await service.users.get_project(repo_url)

        prizes, title = parse_prizes(event.data.issue.title)
        tracker = service.tracker_factory(event.provider, copilot, repository, settings)

        assignee = None
        if event.first_assignee_id:
            assignee = await tracker.get_username_by_id(event.first_assignee_id)
    except IssueSyncError as e:
        log_extra = {"event": event.event, "provider": event.provider}
        where = f"{repository.full_name}#{event.data.issue.number}"
        if e.retryable and outcome.retry_count < settings.retry_count:
            logger.warning(
                f"Rescheduling {event.event} for {where}: {e.message}", extra=log_extra
            )
            outcome.reschedule(e.message)
        else:
            logger.error(
                f"Cannot normalize {event.event} for {where}: {e.message}",
                extra=log_extra,
            )
            outcome.fail(e.message)
        return {**state, "issue": None, "context": None}

    issue = ParsedIssue(
        number=event.data.issue.number,
        title=title,
        body=md.render(event.data.issue.body or ""),
        provider=event.provider,
        repository_id=repository.id,
        project_id=project.id if project else None,
        labels=list(event.data.issue.labels),
        prizes=prizes,
        assignee=assignee,
    )
    context = EventContext(
        event=event, copilot=copilot, tracker=tracker, outcome=outcome
    )
    return {**state, "issue": issue, "context": context}
