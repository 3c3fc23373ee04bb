"""State carried through the event dispatch graph."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Literal, Optional, TypedDict

from pydantic import BaseModel, Field

from .models import Copilot, IssueEvent, ParsedIssue

if TYPE_CHECKING:
    from .clients.trackers import TrackerClient

OutcomeStatus = Literal["processed", "ignored", "rescheduled", "failed"]


class EventOutcome(BaseModel):
    """Result of processing one event.

    ``payment_successful`` is sticky: it starts from the event's flag and can
    only be raised, never cleared, so a redelivered close event skips payment.
    """

    event: str
    status: OutcomeStatus = "processed"
    payment_successful: bool = False
    retry_count: int = 0
    errors: List[str] = Field(default_factory=list)
    commented: bool = Field(default=False, exclude=True)

    @classmethod
    def for_event(cls, event: IssueEvent) -> "EventOutcome":
        return cls(
            event=event.event,
            payment_successful=event.payment_successful,
            retry_count=event.retry_count,
        )

    def mark_payment_successful(self) -> None:
        self.payment_successful = True

    def ignore(self) -> None:
        if self.status == "processed":
            self.status = "ignored"

    def reschedule(self, reason: str) -> None:
        # One redelivery per event, however many steps failed transiently.
        if self.status != "rescheduled":
            self.status = "rescheduled"
            self.retry_count += 1
        self.errors.append(reason)

    def fail(self, reason: str) -> None:
        self.status = "failed"
        self.errors.append(reason)


@dataclass
class EventContext:
    """Per-event collaborators: the copilot identity and the bound tracker."""

    event: IssueEvent
    copilot: Copilot
    tracker: "TrackerClient"
    outcome: EventOutcome


class SyncState(TypedDict):
    """State for the event dispatch graph."""

    event: IssueEvent
    outcome: EventOutcome

    # Filled in by the normalize node
    issue: Optional[ParsedIssue]
    context: Optional[EventContext]
