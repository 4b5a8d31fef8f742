import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import ForbiddenError, StoreUnavailableError, ValidationError
from ..models.models import (
    SubmissionKind,
    SubmissionStatus,
    User,
    UserRole,
)
from ..schemas.submission import (
    ArtifactPayload,
    CuratorApplicationPayload,
    SubmissionCreated,
)
from .notifications import NotificationDispatcher
from .store import SubmissionStore, translate_timeouts

logger = logging.getLogger(__name__)


class SubmissionIntake:
    """Creates pending submissions and tells reviewers about them."""

    def __init__(self, db: Session, dispatcher=None):
        self.db = db
        self.store = SubmissionStore(db)
        self.dispatcher = dispatcher or NotificationDispatcher(db)

    def submit_artifact(
        self, curator: User, payload: ArtifactPayload
    ) -> SubmissionCreated:
        if curator.role != UserRole.CURATOR:
            raise ForbiddenError("Only curators can upload artifacts.")
        return self._create(SubmissionKind.ARTIFACT, curator, payload)

    def apply_for_curator(
        self, applicant: User, payload: CuratorApplicationPayload
    ) -> SubmissionCreated:
        if applicant.role != UserRole.VISITOR:
            raise ForbiddenError("Only visitors can apply to become curators.")
        previous = self.store.latest_for_submitter(
            SubmissionKind.CURATOR_APPLICATION, applicant.user_id
        )
        if previous is not None and previous.status != SubmissionStatus.REJECTED:
            raise ValidationError("You have already submitted an application.")
        return self._create(
            SubmissionKind.CURATOR_APPLICATION, applicant, payload
        )

    def _create(self, kind, submitter, payload) -> SubmissionCreated:
        with translate_timeouts(self.db):
            submission = self.store.create(
                kind, submitter.user_id, payload.model_dump()
            )
            # read back while the transaction is open so the reply never
            # needs the database after commit
            created = SubmissionCreated.model_validate(submission)
            self.db.commit()
        logger.info(
            "user %s submitted %s %s",
            submitter.user_id,
            kind,
            created.submission_id,
        )
        try:
            self.dispatcher.notify_submitted(submission)
        except (SQLAlchemyError, StoreUnavailableError) as exc:
            self.db.rollback()
            logger.error(
                "reviewers not notified of submission %s: %s",
                created.submission_id,
                exc,
            )
        return created
