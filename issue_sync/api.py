"""FastAPI endpoints for event intake and record administration.

This module provides REST endpoints to:
- Deliver issue-tracker events for processing
- Inspect the issue <-> challenge mapping
- Seed projects, user mappings and copilot credentials
- List pending deferred tasks
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Body, FastAPI, HTTPException
from pydantic import BaseModel

from .clients import ChallengePlatformClient, EmailService
from .config import get_settings
from .errors import IssueSyncError, ValidationError
from .issue_service import IssueService
from .models import IssueRecord, Project, TrackerUser, UserMapping
from .processor import EventProcessor
from .scheduler import TaskScheduler
from .state import EventOutcome
from .store import RecordStore
from .users import UserMappingService

logger = logging.getLogger(__name__)


# Processor instance (initialized lazily)
_processor: Optional[EventProcessor] = None


def _get_processor() -> EventProcessor:
    """Get or create the EventProcessor and its collaborators."""
    global _processor
    if _processor is None:
        settings = get_settings()
        records = RecordStore()
        service = IssueService(
            records=records,
            challenges=ChallengePlatformClient(settings),
            users=UserMappingService(records),
            emails=EmailService(settings),
            scheduler=TaskScheduler(),
            settings=settings,
        )
        _processor = EventProcessor(service)
    return _processor


def _get_records() -> RecordStore:
    return _get_processor().service.records


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _processor is not None:
        await _processor.scheduler.shutdown()


# FastAPI app
app = FastAPI(
    title="Issue Sync API",
    description="Issue tracker to challenge platform synchronization",
    version="1.0.0",
    lifespan=lifespan,
)


# Request/Response models
class ProjectRequest(BaseModel):
    """Register a repository for synchronization."""

    title: str
    repo_url: str
    tc_direct_id: int
    copilot: str
    archived: bool = False


class UserMappingRequest(BaseModel):
    """Link a platform handle to tracker accounts."""

    topcoder_username: str
    github_username: Optional[str] = None
    github_user_id: Optional[int] = None
    gitlab_username: Optional[str] = None
    gitlab_user_id: Optional[int] = None


class TrackerUserRequest(BaseModel):
    """Tracker credentials of a copilot."""

    provider: str
    username: str
    user_id: Optional[int] = None
    access_token: str


class ScheduledTasks(BaseModel):
    pending: List[str]


async def _upsert(model, key: dict, values: dict):
    """Overwrite the record matching ``key``, or create it."""
    records = _get_records()
    existing = await records.scan_one(model, key)
    if existing is None:
        return await records.put(model(**values))
    return await records.update(model, existing.id, values)


# Endpoints
@app.post("/api/events", response_model=EventOutcome)
async def receive_event(payload: dict = Body(...)):
    """Process one issue-tracker event and return its outcome.

    Handler failures are part of the outcome; only an invalid payload is
    rejected.
    """
    try:
        return await _get_processor().process(payload)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)


@app.get(
    "/api/issues/{provider}/{repository_id}/{number}", response_model=IssueRecord
)
async def get_issue(provider: str, repository_id: int, number: int):
    """Get the challenge mapping of an issue."""
    record = await _get_records().scan_one(
        IssueRecord,
        {"provider": provider, "repository_id": repository_id, "number": number},
    )
    if record is None:
        raise HTTPException(status_code=404, detail="Issue not found")
    return record


@app.put("/api/projects", response_model=Project)
async def put_project(request: ProjectRequest):
    """Register or update a project, keyed by repository URL."""
    try:
        return await _upsert(
            Project, {"repo_url": request.repo_url}, request.model_dump()
        )
    except IssueSyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@app.put("/api/user-mappings", response_model=UserMapping)
async def put_user_mapping(request: UserMappingRequest):
    """Register or update a user mapping, keyed by platform handle."""
    try:
        return await _upsert(
            UserMapping,
            {"topcoder_username": request.topcoder_username},
            request.model_dump(),
        )
    except IssueSyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@app.put("/api/tracker-users", response_model=TrackerUser)
async def put_tracker_user(request: TrackerUserRequest):
    """Register or update copilot credentials, keyed by provider and username."""
    if request.provider not in ("github", "gitlab"):
        raise HTTPException(
            status_code=422, detail=f"Unsupported provider: {request.provider}"
        )
    try:
        return await _upsert(
            TrackerUser,
            {"provider": request.provider, "username": request.username},
            request.model_dump(),
        )
    except IssueSyncError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@app.get("/api/scheduled", response_model=ScheduledTasks)
async def list_scheduled():
    """List names of pending deferred tasks (retries, cancellations)."""
    return ScheduledTasks(pending=_get_processor().scheduler.pending())


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "issue-sync"}
