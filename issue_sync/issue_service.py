"""Reconciliation of issue events with platform challenges.

One handler per event kind. Each handler reads the local issue record, drives
the challenge platform and the issue tracker, and writes the record back.
There is no transaction spanning these systems, so every handler:

- catches failures at its own boundary and hands them to ``report_failure``
  (reschedule when retryable, otherwise comment the error on the issue),
- leaves the record in its last consistent state,
- never clears the sticky payment flag on the event outcome.
"""

import logging
from typing import List, Optional

from .clients.notifications import EmailService
from .clients.topcoder import (
    COPILOT_ROLE_ID,
    REGISTRANT_ROLE_ID,
    ChallengePlatformClient,
)
from .clients.trackers import get_tracker, tracker_class
from .config import Settings, get_settings
from .decisions import decide_assignment, decide_close, decide_payment, should_cancel
from .errors import (
    ChallengeCreationError,
    DuplicateIssueError,
    IssueSyncError,
    NotFoundError,
    TransientDependencyError,
)
from .models import IssueRecord, IssueStatus, ParsedIssue, Project, utcnow
from .parsers import parse_comment
from .scheduler import TaskScheduler
from .state import EventContext
from .store import RecordStore
from .users import UserMappingService

logger = logging.getLogger(__name__)


def _with_label(labels: List[str], label: str, *removed: str) -> List[str]:
    """Labels minus ``removed``, with ``label`` appended once."""
    kept = [item for item in labels if item not in removed and item != label]
    return [*kept, label]


class IssueService:
    """Issue-event handlers and the record-consistency helpers they share."""

    def __init__(
        self,
        records: RecordStore,
        challenges: ChallengePlatformClient,
        users: UserMappingService,
        emails: EmailService,
        scheduler: TaskScheduler,
        settings: Optional[Settings] = None,
        tracker_factory=get_tracker,
    ):
        self.records = records
        self.challenges = challenges
        self.users = users
        self.emails = emails
        self.scheduler = scheduler
        self.settings = settings or get_settings()
        self.tracker_factory = tracker_factory

    # ==========================================
    # Shared helpers
    # ==========================================

    def contest_url(self, challenge_id) -> str:
        return self.settings.challenge_url(challenge_id)

    async def get_project(self, ctx: EventContext) -> Optional[Project]:
        repo_url = tracker_class(ctx.event.provider).repository_url(
            self.settings, ctx.event.data.repository.full_name
        )
        return await self.users.get_project(repo_url)

    async def report_failure(
        self,
        ctx: EventContext,
        issue: ParsedIssue,
        error: Exception,
        retry: bool = True,
    ) -> None:
        """Record a handler failure on the outcome and stop the event.

        Retryable errors reschedule the event until RETRY_COUNT is reached.
        Anything else is terminal and commented on the issue once. With
        ``retry=False`` every error is terminal.
        """
        outcome = ctx.outcome
        message = getattr(error, "message", None) or str(error)
        log_extra = {
            "event": ctx.event.event,
            "provider": ctx.event.provider,
            "issue": issue.number,
            "retry_count": outcome.retry_count,
        }

        if (
            retry
            and isinstance(error, IssueSyncError)
            and error.retryable
            and outcome.status != "failed"
            and outcome.retry_count < self.settings.retry_count
        ):
            logger.warning(
                f"Rescheduling {ctx.event.event} for issue {issue.number}: {message}",
                extra=log_extra,
            )
            outcome.reschedule(message)
            return

        if isinstance(error, IssueSyncError):
            status_code = error.status_code
            logger.error(
                f"Failed to process {ctx.event.event} for issue {issue.number}: {message}",
                extra=log_extra,
            )
        else:
            status_code = 500
            logger.exception(
                f"Unexpected error in {ctx.event.event} for issue {issue.number}",
                extra=log_extra,
            )
        outcome.fail(message)
        if outcome.commented:
            return

        comment = f"[{status_code}]: {message}"
        if ctx.event.event == "issue.closed" and not outcome.payment_successful:
            comment = f"Payment failed: {comment}"
        outcome.commented = True
        try:
            await ctx.tracker.create_comment(issue.number, comment)
        except IssueSyncError as e:
            logger.error(f"Could not comment failure on issue {issue.number}: {e}")

    async def _post_comment(
        self, ctx: EventContext, issue: ParsedIssue, body: str
    ) -> None:
        try:
            await ctx.tracker.create_comment(issue.number, body)
        except Exception as e:
            await self.report_failure(ctx, issue, e)

    async def ensure_challenge_exists(
        self, ctx: EventContext, issue: ParsedIssue
    ) -> IssueRecord:
        """Return the issue's record, creating the challenge on first sight.

        Raises:
            TransientDependencyError: Creation is in flight for this issue.
            ChallengeCreationError: Creation ran but left no record.
        """
        record = await self.records.scan_one(IssueRecord, issue.key)

        if record and record.status == IssueStatus.CHALLENGE_CREATION_PENDING:
            raise TransientDependencyError(
                f"Challenge for the updated issue {issue.number} is creating, "
                "rescheduling this event"
            )
        if record and record.status == IssueStatus.CHALLENGE_CREATION_FAILED:
            logger.debug(f"Removing stale failed record for issue {issue.number}")
            await self.records.remove(IssueRecord, issue.key)
            record = None

        if record is None:
            # An assignment event syncs its own assignee once the record exists.
            await self.create_issue(
                ctx, issue, sync_assignee=ctx.event.event != "issue.assigned"
            )
            record = await self.records.scan_one(IssueRecord, issue.key)
            if record is None:
                raise ChallengeCreationError(
                    f"Challenge creation failed for issue {issue.number}"
                )
        return record

    async def rollback_assignee(
        self,
        ctx: EventContext,
        assignee_user_id: int,
        issue: ParsedIssue,
        reopen: bool = False,
        comment: Optional[str] = None,
    ) -> None:
        """Undo a tracker assignment the platform cannot honour."""
        tracker = ctx.tracker
        username = await tracker.get_username_by_id(assignee_user_id)

        if not comment:
            comment = f"@{username}, please sign-up with Topcoder X tool"

        await tracker.create_comment(issue.number, comment)
        await tracker.remove_assign(issue.number, assignee_user_id, username)
        if reopen:
            await tracker.reopen_issue(issue.number)
        logger.debug(f"Rolled back assignment of {username} on issue {issue.number}")

    def schedule_cancellation(self, challenge_id) -> None:
        """Cancel the challenge after CANCEL_CHALLENGE_INTERVAL, in background."""

        async def cancel():
            await self.challenges.cancel_challenge(challenge_id)
            logger.debug(f"The challenge {challenge_id} is deleted")

        logger.debug(f"The associated challenge {challenge_id} is scheduled for cancel")
        self.scheduler.schedule(
            f"cancel-challenge:{challenge_id}",
            self.settings.cancel_challenge_interval,
            cancel,
        )

    # ==========================================
    # Issue created
    # ==========================================

    async def create_issue(
        self, ctx: EventContext, issue: ParsedIssue, sync_assignee: bool = True
    ) -> Optional[IssueRecord]:
        """Create the challenge for an issue and persist the mapping.

        Platform failures are reported and return None after the pending
        record is removed.

        Raises:
            NotFoundError: No project is registered for the repository.
            DuplicateIssueError: A record already exists for the issue.
        """
        project = await self.get_project(ctx)
        if project is None:
            raise NotFoundError("There is no project associated with this repository")

        existing = await self.records.scan_one(IssueRecord, issue.key)
        if existing is not None:
            raise DuplicateIssueError(
                f"Issue {issue.number} is already in {existing.status.value}"
            )

        record = await self.records.create(
            IssueRecord(
                **issue.model_dump(
                    include={
                        "number",
                        "provider",
                        "repository_id",
                        "title",
                        "body",
                        "prizes",
                        "labels",
                        "assignee",
                        "project_id",
                    }
                ),
                status=IssueStatus.CHALLENGE_CREATION_PENDING,
            ),
            unique=IssueRecord.key_fields,
        )
        logger.debug(
            f"existing project was found with id {project.tc_direct_id} "
            f"for repository {ctx.event.data.repository.full_name}"
        )

        try:
            challenge_id = await self.challenges.create_challenge(
                {
                    "name": issue.title,
                    "projectId": project.tc_direct_id,
                    "detailedRequirements": issue.body,
                    "prizes": issue.prizes,
                    "task": True,
                }
            )
            record = await self.records.update(
                IssueRecord,
                record.id,
                {
                    "challenge_id": challenge_id,
                    "status": IssueStatus.CHALLENGE_CREATION_SUCCESSFUL,
                },
            )
        except Exception as e:
            await self.records.remove(IssueRecord, issue.key)
            await self.report_failure(ctx, issue, e)
            return None

        await self._post_comment(
            ctx,
            issue,
            f"Contest {self.contest_url(record.challenge_id)} has been created for this ticket.",
        )

        initial_assignee = ctx.event.first_assignee_id
        if sync_assignee and ctx.tracker.reports_initial_assignees and initial_assignee:
            await self.handle_issue_assigned(ctx, issue, initial_assignee)

        logger.debug(
            f"new challenge created with id {record.challenge_id} for issue {issue.number}"
        )
        return record

    async def handle_issue_created(self, ctx: EventContext, issue: ParsedIssue) -> None:
        try:
            await self.create_issue(ctx, issue)
        except Exception as e:
            await self.report_failure(ctx, issue, e)

    # ==========================================
    # Issue updated
    # ==========================================

    async def handle_issue_updated(self, ctx: EventContext, issue: ParsedIssue) -> None:
        try:
            record = await self.ensure_challenge_exists(ctx, issue)

            if (
                record.title == issue.title
                and record.body == issue.body
                and len(record.prizes) == len(issue.prizes)
                and record.prizes[:1] == issue.prizes[:1]
            ):
                logger.debug(f"nothing changed for issue {issue.number}")
                ctx.outcome.ignore()
                return

            await self.challenges.update_challenge(
                record.challenge_id,
                {
                    "name": issue.title,
                    "detailedRequirements": issue.body,
                    "prizes": issue.prizes,
                },
            )
            record = await self.records.update(
                IssueRecord,
                record.id,
                {
                    "title": issue.title,
                    "body": issue.body,
                    "prizes": issue.prizes,
                    "labels": issue.labels,
                    "assignee": issue.assignee,
                },
            )
        except Exception as e:
            await self.report_failure(ctx, issue, e)
            return

        await self._post_comment(
            ctx,
            issue,
            f"Contest {self.contest_url(record.challenge_id)} has been updated - "
            "the new changes has been updated for this ticket.",
        )
        logger.debug(f"updated challenge {record.challenge_id} for issue {issue.number}")

    # ==========================================
    # Issue assigned / unassigned
    # ==========================================

    async def handle_issue_assigned(
        self,
        ctx: EventContext,
        issue: ParsedIssue,
        assignee_user_id: Optional[int] = None,
    ) -> None:
        event = ctx.event
        if assignee_user_id is None and event.data.assignee:
            assignee_user_id = event.data.assignee.id
        if assignee_user_id is None:
            logger.debug(f"Assignment event for issue {issue.number} has no assignee")
            ctx.outcome.ignore()
            return

        logger.debug(f"Looking up TC handle of git user: {assignee_user_id}")
        mapping = await self.users.get_tc_username(event.provider, assignee_user_id)
        if mapping is None:
            try:
                await self.rollback_assignee(ctx, assignee_user_id, issue)
            except Exception as e:
                await self.report_failure(ctx, issue, e)
            return

        settings = self.settings
        tracker = ctx.tracker
        handle = mapping.topcoder_username
        try:
            record = await self.ensure_challenge_exists(ctx, issue)

            labels = list(issue.labels)
            action = decide_assignment(
                has_open_for_pickup=settings.open_for_pickup_label in labels,
                has_not_ready=settings.not_ready_label in labels,
                had_assignee=bool(issue.assignee),
            )
            not_ready_comment = (
                "This ticket isn't quite ready to be worked on yet. "
                f"Please wait until it has the {settings.open_for_pickup_label} label"
            )

            if action == "mark_not_ready":
                logger.debug(f"Adding label {settings.not_ready_label}")
                await tracker.add_labels(
                    issue.number, _with_label(labels, settings.not_ready_label)
                )
                await self.rollback_assignee(
                    ctx, assignee_user_id, issue, comment=not_ready_comment
                )
                return

            if action in ("revert_unassigned", "revert_not_ready"):
                logger.debug("Does not have Open for pickup but has assignee, remain labels")
                await tracker.add_labels(issue.number, labels)
                if action == "revert_unassigned":
                    comment = (
                        f"Contest {self.contest_url(record.challenge_id)} has been "
                        f"updated - {handle} has been unassigned."
                    )
                else:
                    comment = not_ready_comment
                await self.rollback_assignee(ctx, assignee_user_id, issue, comment=comment)
                return

            logger.debug(f"Getting the topcoder member ID for member name: {handle}")
            member_id = await self.challenges.get_member_id(handle)
            logger.debug(f"Assigning user to challenge: {handle}")
            await self.challenges.assign_user_as_registrant(member_id, record.challenge_id)

            assignee = issue.assignee or await tracker.get_username_by_id(assignee_user_id)
            record = await self.records.update(
                IssueRecord,
                record.id,
                {"assignee": assignee, "assigned_at": utcnow()},
            )
            await tracker.add_labels(
                issue.number,
                _with_label(
                    labels, settings.assigned_label, settings.open_for_pickup_label
                ),
            )
        except Exception as e:
            await self.report_failure(ctx, issue, e)
            return

        await self._post_comment(
            ctx,
            issue,
            f"Contest {self.contest_url(record.challenge_id)} has been updated - "
            f"it has been assigned to {handle}.",
        )
        logger.debug(f"Member {handle} is assigned to challenge with id {record.challenge_id}")

    async def handle_issue_unassigned(
        self, ctx: EventContext, issue: ParsedIssue
    ) -> None:
        try:
            record = await self.ensure_challenge_exists(ctx, issue)
        except Exception as e:
            await self.report_failure(ctx, issue, e)
            return

        tracker = ctx.tracker
        try:
            if record.assignee:
                assignee_user_id = await tracker.get_user_id_by_login(record.assignee)
                logger.debug(f"Looking up TC handle of git user: {assignee_user_id}")
                mapping = await self.users.get_tc_username(
                    ctx.event.provider, assignee_user_id
                )
                if mapping is not None:
                    handle = mapping.topcoder_username
                    logger.debug(f"Getting the topcoder member ID for member name: {handle}")
                    member_id = await self.challenges.get_member_id(handle)
                    logger.debug(f"un-assigning user from challenge: {handle}")
                    await self.challenges.remove_resource(
                        record.challenge_id,
                        {"roleId": REGISTRANT_ROLE_ID, "resourceUserId": member_id},
                    )
                    await tracker.create_comment(
                        issue.number,
                        f"Contest {self.contest_url(record.challenge_id)} has been "
                        f"updated - {handle} has been unassigned.",
                    )
                    await tracker.add_labels(
                        issue.number,
                        _with_label(
                            issue.labels,
                            self.settings.open_for_pickup_label,
                            self.settings.assigned_label,
                        ),
                    )
                    logger.debug(
                        f"Member {handle} is unassigned from challenge "
                        f"with id {record.challenge_id}"
                    )
        except Exception as e:
            await self.report_failure(ctx, issue, e)

        await self.records.update(
            IssueRecord, record.id, {"assignee": None, "assigned_at": None}
        )

    # ==========================================
    # Labels and comments
    # ==========================================

    async def handle_issue_label_updated(
        self, ctx: EventContext, issue: ParsedIssue
    ) -> None:
        try:
            record = await self.ensure_challenge_exists(ctx, issue)
            await self.records.update(IssueRecord, record.id, {"labels": issue.labels})
        except Exception as e:
            await self.report_failure(ctx, issue, e)

    async def handle_issue_comment(self, ctx: EventContext, issue: ParsedIssue) -> None:
        event = ctx.event
        body = event.data.comment.body if event.data.comment else ""
        try:
            parsed = parse_comment(body)
            if not (parsed.is_bid or parsed.is_accept_bid):
                ctx.outcome.ignore()
                return

            if parsed.is_bid:
                logger.debug(f"New bid is received with amount {parsed.bid_amount}.")
                await self.emails.send_new_bid_email(event, parsed.bid_amount)

            if parsed.is_accept_bid:
                logger.debug(
                    f"Bid by {parsed.assigned_user} is accepted with amount "
                    f"{parsed.accepted_bid_amount}"
                )
                new_title = f"[${parsed.accepted_bid_amount}] {issue.title}"
                logger.debug(
                    f"updating issue: {event.data.repository.name}/{issue.number}"
                )
                await ctx.tracker.update_issue_title(issue.number, new_title)
                logger.debug(
                    f"assigning user, {parsed.assigned_user} to issue: "
                    f"{event.data.repository.name}/{issue.number}"
                )
                await ctx.tracker.assign_user(issue.number, parsed.assigned_user)
        except Exception as e:
            await self.report_failure(ctx, issue, e)

    # ==========================================
    # Issue closed
    # ==========================================

    async def handle_issue_closed(self, ctx: EventContext, issue: ParsedIssue) -> None:
        outcome = ctx.outcome
        if outcome.payment_successful:
            logger.debug(f"Payment for issue {issue.number} already succeeded")
            outcome.ignore()
            return

        event = ctx.event
        settings = self.settings
        tracker = ctx.tracker
        try:
            record = await self.ensure_challenge_exists(ctx, issue)

            event_labels = event.data.issue.labels
            has_fix_accepted = settings.fix_accepted_label in event_labels
            if not has_fix_accepted:
                logger.debug(
                    f"This issue {issue.number} is closed without fix accepted label."
                )
                await tracker.create_comment(
                    issue.number,
                    "This ticket was not processed for payment. If you would like "
                    "to process it for payment, please reopen it, add the ```"
                    f"{settings.fix_accepted_label}``` label, and then close it again",
                )
            cancel = should_cancel(has_fix_accepted, issue.primary_prize)

            assignee_user_id = None
            if event.data.assignee and event.data.assignee.id:
                assignee_user_id = event.data.assignee.id
            else:
                assignee_user_id = event.first_assignee_id

            gate = decide_close(
                has_assignee=assignee_user_id is not None,
                has_paid_label=settings.paid_label in event_labels,
            )
            if gate == "ignore_unassigned":
                logger.debug(
                    f"This issue {issue.number} doesn't have assignee so ignoring this event."
                )
                outcome.ignore()
                return
            if gate == "ignore_paid":
                logger.debug(
                    f"This issue {issue.number} is already paid with challenge "
                    f"{record.challenge_id}"
                )
                outcome.ignore()
                return

            logger.debug(f"Looking up TC handle of git user: {assignee_user_id}")
            mapping = await self.users.get_tc_username(event.provider, assignee_user_id)
            action = decide_payment(assignee_mapped=mapping is not None, cancel=cancel)
            if action == "rollback":
                await self.rollback_assignee(ctx, assignee_user_id, issue, reopen=True)
                return

            project = await self.get_project(ctx)
            if project is None:
                raise NotFoundError("There is no project associated with this repository")

            logger.debug(
                f"Getting the billing account ID for project ID: {project.tc_direct_id}"
            )
            account_id = await self.challenges.get_billing_account_id(project.tc_direct_id)

            # Prizes must be sent again after the billing account is set,
            # otherwise activation is rejected.
            logger.debug(f"assigning the billing account id {account_id} to challenge")
            await self.challenges.update_challenge(
                record.challenge_id,
                {"billingAccountId": account_id, "prizes": issue.prizes},
            )

            handle = mapping.topcoder_username
            logger.debug(f"Getting the topcoder member ID for member name: {handle}")
            winner_id = await self.challenges.get_member_id(handle)
            logger.debug(
                "Getting the topcoder member ID for copilot name: "
                f"{ctx.copilot.topcoder_username}"
            )
            copilot_id = await self.challenges.get_member_id(ctx.copilot.topcoder_username)

            await self.challenges.add_resource(
                record.challenge_id,
                self.challenges.resource(COPILOT_ROLE_ID, copilot_id),
            )
            await self.challenges.assign_user_as_registrant(winner_id, record.challenge_id)
            await self.challenges.activate_challenge(record.challenge_id)

            if action == "cancel":
                self.schedule_cancellation(record.challenge_id)
                return

            logger.debug(f"close challenge with winner {handle}({winner_id})")
            await self.challenges.close_challenge(record.challenge_id, winner_id)
            outcome.mark_payment_successful()
        except Exception as e:
            await self.report_failure(ctx, issue, e)
            return

        try:
            logger.debug("update issue as paid")
            labels = _with_label(
                record.labels, settings.assigned_label, settings.open_for_pickup_label
            )
            record = await self.records.update(IssueRecord, record.id, {"labels": labels})
            await tracker.mark_as_paid(issue.number, record.challenge_id, record.labels)
        except Exception as e:
            # A redelivery would skip this step once payment is recorded.
            await self.report_failure(ctx, issue, e, retry=False)
