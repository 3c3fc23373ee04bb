"""Pydantic models for inbound events, persisted records and derived views."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

EventKind = Literal[
    "issue.created",
    "issue.updated",
    "issue.closed",
    "comment.created",
    "comment.updated",
    "issue.assigned",
    "issue.unassigned",
    "issue.labelUpdated",
]

Provider = Literal["github", "gitlab"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# Inbound event
# =============================================================================


class UserRef(BaseModel):
    id: int


class AssigneeRef(BaseModel):
    id: Optional[int] = None


class IssuePayload(BaseModel):
    number: int
    title: str
    body: str = ""
    labels: List[str] = Field(default_factory=list)
    assignees: List[UserRef] = Field(default_factory=list)
    owner: Optional[UserRef] = None

    @field_validator("body", mode="before")
    @classmethod
    def _none_body(cls, value):
        return "" if value is None else value


class RepositoryPayload(BaseModel):
    id: int
    name: str
    full_name: str


class CommentPayload(BaseModel):
    id: int
    body: str = ""
    user: Optional[UserRef] = None

    @field_validator("body", mode="before")
    @classmethod
    def _none_body(cls, value):
        return "" if value is None else value


class EventData(BaseModel):
    issue: IssuePayload
    repository: RepositoryPayload
    comment: Optional[CommentPayload] = None
    assignee: Optional[AssigneeRef] = None
    labels: Optional[List[str]] = None


class IssueEvent(BaseModel):
    """An issue-tracker event as delivered to the service."""

    model_config = ConfigDict(populate_by_name=True)

    event: EventKind
    provider: Provider
    data: EventData
    retry_count: int = Field(default=0, alias="retryCount")
    payment_successful: bool = Field(default=False, alias="paymentSuccessful")

    @property
    def first_assignee_id(self) -> Optional[int]:
        assignees = self.data.issue.assignees
        if assignees and assignees[0].id:
            return assignees[0].id
        return None


def parse_event(payload) -> IssueEvent:
    """Validate a raw payload into an ``IssueEvent``.

    Raises:
        ValidationError: If the payload does not match the event shape.
    """
    if isinstance(payload, IssueEvent):
        return payload
    try:
        return IssueEvent.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid event: {e}") from e


# =============================================================================
# Persisted records
# =============================================================================


class IssueStatus(str, Enum):
    CHALLENGE_CREATION_PENDING = "challenge_creation_pending"
    CHALLENGE_CREATION_SUCCESSFUL = "challenge_creation_successful"
    CHALLENGE_CREATION_FAILED = "challenge_creation_failed"


class Record(BaseModel):
    """Base for everything kept in the record store."""

    namespace: ClassVar[Tuple[str, ...]] = ()

    id: str = Field(default_factory=generate_id)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class IssueRecord(Record):
    """Mapping between a tracker issue and its platform challenge."""

    namespace: ClassVar[Tuple[str, ...]] = ("issues",)
    key_fields: ClassVar[Tuple[str, ...]] = ("number", "provider", "repository_id")

    number: int
    provider: Provider
    repository_id: int
    title: str
    body: str = ""
    prizes: List[int] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)
    assignee: Optional[str] = None
    assigned_at: Optional[datetime] = None
    challenge_id: Optional[int] = None
    status: IssueStatus = IssueStatus.CHALLENGE_CREATION_PENDING
    project_id: Optional[str] = None


class Project(Record):
    """Repository registered for synchronization."""

    namespace: ClassVar[Tuple[str, ...]] = ("projects",)

    title: str
    repo_url: str
    tc_direct_id: int
    copilot: str
    archived: bool = False


class UserMapping(Record):
    """Links a platform handle to the user's tracker accounts."""

    namespace: ClassVar[Tuple[str, ...]] = ("user_mappings",)

    topcoder_username: str
    github_username: Optional[str] = None
    github_user_id: Optional[int] = None
    gitlab_username: Optional[str] = None
    gitlab_user_id: Optional[int] = None


class TrackerUser(Record):
    """Tracker credentials of a copilot."""

    namespace: ClassVar[Tuple[str, ...]] = ("tracker_users",)

    provider: Provider
    username: str
    user_id: Optional[int] = None
    access_token: str


# =============================================================================
# Derived views
# =============================================================================


class Copilot(BaseModel):
    """The repository's operator identity, resolved once per event."""

    topcoder_username: str
    username: str
    user_id: Optional[int] = None
    access_token: str


class ParsedIssue(BaseModel):
    number: int
    title: str
    body: str = ""
    provider: Provider
    repository_id: int
    project_id: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    prizes: List[int] = Field(default_factory=list)
    assignee: Optional[str] = None

    @property
    def key(self) -> dict:
        return {
            "number": self.number,
            "provider": self.provider,
            "repository_id": self.repository_id,
        }

    @property
    def primary_prize(self) -> Optional[int]:
        return self.prizes[0] if self.prizes else None


class ParsedComment(BaseModel):
    is_bid: bool = False
    bid_amount: Optional[int] = None
    is_accept_bid: bool = False
    assigned_user: Optional[str] = None
    accepted_bid_amount: Optional[int] = None
