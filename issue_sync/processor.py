"""Event processing entry point.

Validates a payload, runs it through the dispatch graph and, when a handler
asked for it, schedules a redelivery after RETRY_INTERVAL. The redelivered
event carries the outcome's retry count and payment flag forward.
"""

import logging
from typing import Optional

from .graph import get_graph
from .issue_service import IssueService
from .models import IssueEvent, generate_id, parse_event
from .scheduler import TaskScheduler
from .state import EventOutcome

logger = logging.getLogger(__name__)


class EventProcessor:
    """Run issue events through the graph and handle redelivery."""

    def __init__(
        self,
        service: IssueService,
        graph=None,
        scheduler: Optional[TaskScheduler] = None,
    ):
        self.service = service
        self.graph = graph if graph is not None else get_graph()
        self.scheduler = scheduler or service.scheduler

    async def process(self, payload) -> EventOutcome:
        """Process one event.

        Raises:
            ValidationError: If the payload is not a valid event.
        """
        event = parse_event(payload)
        outcome = EventOutcome.for_event(event)
        issue = event.data.issue
        logger.info(
            f"Processing {event.event} for {event.data.repository.full_name}#{issue.number}",
            extra={
                "event": event.event,
                "provider": event.provider,
                "retry_count": event.retry_count,
            },
        )

        result = await self.graph.ainvoke(
            {"event": event, "outcome": outcome, "issue": None, "context": None},
            config={"configurable": {"service": self.service}},
        )
        outcome = result["outcome"]

        if outcome.status == "rescheduled":
            self.reschedule(event, outcome)

        logger.info(
            f"Finished {event.event} for issue {issue.number}: {outcome.status}",
            extra={"event": event.event, "status": outcome.status},
        )
        return outcome

    def reschedule(self, event: IssueEvent, outcome: EventOutcome) -> str:
        """Queue a redelivery of ``event``; returns the task name."""
        redelivery = event.model_copy(
            update={
                "retry_count": outcome.retry_count,
                "payment_successful": outcome.payment_successful,
            }
        )
        name = (
            f"retry:{event.event}:{event.provider}:{event.data.repository.id}:"
            f"{event.data.issue.number}:{generate_id()[:8]}"
        )
        delay = self.service.settings.retry_interval
        self.scheduler.schedule(name, delay, lambda: self.process(redelivery))
        logger.info(
            f"Scheduled retry {outcome.retry_count} of {event.event} in {delay}s"
        )
        return name
