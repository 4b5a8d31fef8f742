import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import (
    AlreadyDecidedError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from ..models.models import (
    ReviewEvent,
    Submission,
    SubmissionKind,
    SubmissionStatus,
    User,
    UserRole,
)
from .eligibility import EligibilityResolver
from .notifications import NotificationDispatcher
from .store import SubmissionStore, translate_timeouts

logger = logging.getLogger(__name__)

# legal transitions; terminal states have none
TRANSITIONS = {
    SubmissionStatus.PENDING: frozenset(
        {SubmissionStatus.ACCEPTED, SubmissionStatus.REJECTED}
    ),
    SubmissionStatus.ACCEPTED: frozenset(),
    SubmissionStatus.REJECTED: frozenset(),
}


class ReviewStateMachine:
    """Applies accept/reject decisions to pending submissions.

    Two compare-and-set steps keep concurrent reviewers apart: the
    assignment claim, then the status change itself. Whoever loses either
    one gets AlreadyDecidedError and the losing decision is dropped, never
    retried.
    """

    def __init__(
        self,
        db: Session,
        store: Optional[SubmissionStore] = None,
        eligibility: Optional[EligibilityResolver] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.store = store or SubmissionStore(db)
        self.eligibility = eligibility or EligibilityResolver(self.store)
        self.dispatcher = dispatcher or NotificationDispatcher(db)

    def accept(self, reviewer_id: int, submission_id: int, reason=None):
        return self.decide(
            reviewer_id, submission_id, SubmissionStatus.ACCEPTED, reason
        )

    def reject(self, reviewer_id: int, submission_id: int, reason=None):
        return self.decide(
            reviewer_id, submission_id, SubmissionStatus.REJECTED, reason
        )

    def decide(
        self,
        reviewer_id: int,
        submission_id: int,
        outcome: str,
        reason: Optional[str] = None,
    ) -> Submission:
        if outcome not in SubmissionStatus.TERMINAL:
            raise ValidationError(f"Unknown review outcome: {outcome!r}")

        submission = self.store.get(submission_id)
        if submission is None:
            raise NotFoundError()
        if outcome not in TRANSITIONS[submission.status]:
            raise InvalidTransitionError()

        reviewer = self.store.get_user(reviewer_id)
        if reviewer is None or not self.eligibility.can_review(
            reviewer, submission
        ):
            raise ForbiddenError()
        self._claim(submission, reviewer)

        reason = self._check_reason(outcome, reason)

        try:
            with translate_timeouts(self.db):
                kind = submission.kind
                self.store.compare_and_set_status(
                    submission_id,
                    SubmissionStatus.PENDING,
                    outcome,
                    {
                        "decided_at": func.now(),
                        "decided_by": reviewer_id,
                        "rejection_reason": reason,
                    },
                )
                event = self.store.append(
                    ReviewEvent(
                        submission_id=submission_id,
                        kind=kind,
                        from_status=SubmissionStatus.PENDING,
                        to_status=outcome,
                        reviewer_id=reviewer_id,
                        reason=reason,
                    )
                )
                self._apply_effects(submission, outcome)
                self.db.commit()
        except (ConflictError, IntegrityError) as exc:
            self.db.rollback()
            logger.warning(
                "reviewer %s lost decision race on submission %s: %s",
                reviewer_id,
                submission_id,
                exc,
            )
            raise AlreadyDecidedError() from exc

        logger.info(
            "submission %s (%s) %s by reviewer %s",
            submission_id,
            kind,
            outcome,
            reviewer_id,
        )
        # the decision is committed and must not be reported as failed;
        # an undelivered notification is picked up by reconcile
        try:
            self.dispatcher.notify(event)
        except (SQLAlchemyError, StoreUnavailableError) as exc:
            self.db.rollback()
            logger.error(
                "notification for submission %s not dispatched: %s",
                submission_id,
                exc,
            )
        return submission

    def _claim(self, submission: Submission, reviewer: User) -> None:
        with translate_timeouts(self.db):
            assigned = self.eligibility.assign(submission, reviewer)
            if assigned != reviewer.user_id:
                self.db.rollback()
                raise AlreadyDecidedError()
            self.db.commit()

    @staticmethod
    def _check_reason(outcome: str, reason: Optional[str]) -> Optional[str]:
        reason = (reason or "").strip() or None
        if outcome == SubmissionStatus.REJECTED and reason is None:
            raise ValidationError("Rejection reason is required.")
        if outcome == SubmissionStatus.ACCEPTED and reason is not None:
            raise ValidationError("An accepted submission takes no reason.")
        return reason

    def _apply_effects(self, submission: Submission, outcome: str) -> None:
        if (
            submission.kind == SubmissionKind.CURATOR_APPLICATION
            and outcome == SubmissionStatus.ACCEPTED
        ):
            applicant = self.store.get_user(submission.submitter_id)
            if applicant.role == UserRole.VISITOR:
                applicant.role = UserRole.CURATOR
                logger.info("user %s promoted to curator", applicant.user_id)
