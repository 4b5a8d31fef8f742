"""
Notification dispatch for the review workflow.

Every notification is a row in ``notifications``; the unique
(recipient, related id, type) constraint makes re-dispatch idempotent, so
delivery can be retried freely after a transient failure.
"""
import logging
import time
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import (
    Notification,
    ReviewEvent,
    Submission,
    SubmissionKind,
    SubmissionStatus,
    UserRole,
)
from .store import SubmissionStore

logger = logging.getLogger(__name__)

# (kind, status) -> (notification type, message template)
NOTIFICATION_COPY = {
    (SubmissionKind.ARTIFACT, SubmissionStatus.PENDING): (
        "artifact-submitted",
        "{submitter} submitted an artifact for review.",
    ),
    (SubmissionKind.ARTIFACT, SubmissionStatus.ACCEPTED): (
        "artifact-accepted",
        "Your artifact submission has been accepted.",
    ),
    (SubmissionKind.ARTIFACT, SubmissionStatus.REJECTED): (
        "artifact-rejected",
        "Your artifact submission has been rejected. Reason: {reason}",
    ),
    (SubmissionKind.CURATOR_APPLICATION, SubmissionStatus.PENDING): (
        "curator_application-submitted",
        "{submitter} has submitted a curator application.",
    ),
    (SubmissionKind.CURATOR_APPLICATION, SubmissionStatus.ACCEPTED): (
        "curator_application-accepted",
        "Your curator application has been approved.",
    ),
    (SubmissionKind.CURATOR_APPLICATION, SubmissionStatus.REJECTED): (
        "curator_application-rejected",
        "Your curator application has been rejected. Reason: {reason}",
    ),
}


def notification_type(kind: str, status: str) -> str:
    return NOTIFICATION_COPY[(kind, status)][0]


class NotificationDispatcher:
    def __init__(
        self,
        db: Session,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.max_attempts = max_attempts or settings.notify_max_attempts
        self.backoff_seconds = (
            settings.notify_backoff_seconds
            if backoff_seconds is None
            else backoff_seconds
        )
        self.backoff_max_seconds = (
            settings.notify_backoff_max_seconds
            if backoff_max_seconds is None
            else backoff_max_seconds
        )
        self._sleep = sleep

    def notify(self, event: ReviewEvent) -> Optional[Notification]:
        """Tell the submitter about a decision. Returns None if delivery
        failed after every retry."""
        submission = event.submission
        return self._deliver(
            recipient_id=submission.submitter_id,
            source_id=event.reviewer_id,
            submission=submission,
            status=event.to_status,
            reason=event.reason,
        )

    def notify_submitted(self, submission: Submission) -> List[Notification]:
        """Tell every professor that a new submission is waiting."""
        delivered = []
        for reviewer in SubmissionStore(self.db).users_with_role(
            UserRole.PROFESSOR
        ):
            notification = self._deliver(
                recipient_id=reviewer.user_id,
                source_id=submission.submitter_id,
                submission=submission,
                status=SubmissionStatus.PENDING,
            )
            if notification is not None:
                delivered.append(notification)
        return delivered

    def redeliver_missing(self) -> int:
        """Dispatch every review outcome whose notification never landed."""
        redelivered = 0
        events = self.db.query(ReviewEvent).order_by(ReviewEvent.event_id).all()
        for event in events:
            if self._find_for_event(event) is not None:
                continue
            if self.notify(event) is not None:
                redelivered += 1
        logger.info("redelivered %d review notifications", redelivered)
        return redelivered

    def _find(self, recipient_id, related_id, type_) -> Optional[Notification]:
        return (
            self.db.query(Notification)
            .filter(
                Notification.recipient_id == recipient_id,
                Notification.related_id == related_id,
                Notification.notification_type == type_,
            )
            .first()
        )

    def _find_for_event(self, event: ReviewEvent) -> Optional[Notification]:
        return self._find(
            event.submission.submitter_id,
            str(event.submission_id),
            notification_type(event.kind, event.to_status),
        )

    def _deliver(
        self,
        recipient_id: int,
        source_id: Optional[int],
        submission: Submission,
        status: str,
        reason: Optional[str] = None,
    ) -> Optional[Notification]:
        kind = submission.kind
        type_, template = NOTIFICATION_COPY[(kind, status)]
        related_id = str(submission.submission_id)
        submission_id = submission.submission_id
        message = template.format(
            submitter=submission.submitter.username, reason=reason or ""
        )

        for attempt in range(1, self.max_attempts + 1):
            try:
                existing = self._find(recipient_id, related_id, type_)
                if existing is not None:
                    return existing
                notification = Notification(
                    recipient_id=recipient_id,
                    source_id=source_id,
                    related_id=related_id,
                    related_type=kind,
                    notification_type=type_,
                    message=message,
                    is_read=False,
                )
                self.db.add(notification)
                self.db.commit()
                return notification
            except IntegrityError:
                # a concurrent dispatch stored it first
                self.db.rollback()
                return self._find(recipient_id, related_id, type_)
            except SQLAlchemyError as exc:
                self.db.rollback()
                if attempt == self.max_attempts:
                    logger.error(
                        "giving up on %s notification for submission %s "
                        "to user %s after %d attempts: %s",
                        type_,
                        submission_id,
                        recipient_id,
                        attempt,
                        exc,
                    )
                    return None
                delay = min(
                    self.backoff_seconds * 2 ** (attempt - 1),
                    self.backoff_max_seconds,
                )
                logger.warning(
                    "dispatch of %s for submission %s failed (attempt %d), "
                    "retrying in %.2fs",
                    type_,
                    submission_id,
                    attempt,
                    delay,
                )
                self._sleep(delay)
        return None
