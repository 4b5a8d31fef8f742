import logging
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, selectinload

from ..errors import ConflictError, StoreUnavailableError
from ..models.models import (
    ArtifactDetails,
    CuratorApplicationDetails,
    ReviewEvent,
    Submission,
    SubmissionKind,
    SubmissionStatus,
    User,
)

logger = logging.getLogger(__name__)

DECISION_FIELDS = frozenset({"decided_at", "decided_by", "rejection_reason"})


@contextmanager
def translate_timeouts(db: Session):
    """Turn a database timeout into a retryable StoreUnavailableError."""
    try:
        yield
    except OperationalError as exc:
        db.rollback()
        logger.warning("store call failed: %s", exc.orig)
        raise StoreUnavailableError() from exc


def _like_pattern(term: str) -> str:
    escaped = (
        term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped.lower()}%"


class SubmissionStore:
    """Data access for submissions and their review events.

    Nothing here commits: the caller owns the transaction. The only status
    mutator is ``compare_and_set_status``.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, submission_id: int) -> Optional[Submission]:
        with translate_timeouts(self.db):
            return self.db.get(Submission, submission_id)

    def get_user(self, user_id: int) -> Optional[User]:
        with translate_timeouts(self.db):
            return self.db.get(User, user_id)

    def users_with_role(self, role: str) -> List[User]:
        with translate_timeouts(self.db):
            return (
                self.db.query(User)
                .filter(User.role == role)
                .order_by(User.user_id)
                .all()
            )

    def create(self, kind: str, submitter_id: int, payload: dict) -> Submission:
        submission = Submission(
            kind=kind,
            status=SubmissionStatus.PENDING,
            submitter_id=submitter_id,
        )
        if kind == SubmissionKind.ARTIFACT:
            submission.artifact = ArtifactDetails(**payload)
        else:
            submission.application = CuratorApplicationDetails(**payload)
        with translate_timeouts(self.db):
            self.db.add(submission)
            self.db.flush()
        return submission

    def latest_for_submitter(
        self, kind: str, submitter_id: int
    ) -> Optional[Submission]:
        with translate_timeouts(self.db):
            return (
                self.db.query(Submission)
                .filter(
                    Submission.kind == kind,
                    Submission.submitter_id == submitter_id,
                )
                .order_by(
                    Submission.submitted_at.desc(),
                    Submission.submission_id.desc(),
                )
                .first()
            )

    def _filtered(self, kind: Optional[str], search: Optional[str]):
        query = (
            self.db.query(Submission)
            .join(User, User.user_id == Submission.submitter_id)
            .outerjoin(
                ArtifactDetails,
                ArtifactDetails.submission_id == Submission.submission_id,
            )
            .outerjoin(
                CuratorApplicationDetails,
                CuratorApplicationDetails.submission_id
                == Submission.submission_id,
            )
        )
        if kind:
            query = query.filter(Submission.kind == kind)

        term = (search or "").strip()
        if term:
            pattern = _like_pattern(term)
            query = query.filter(
                or_(
                    func.lower(ArtifactDetails.title).like(
                        pattern, escape="\\"
                    ),
                    func.lower(CuratorApplicationDetails.full_name).like(
                        pattern, escape="\\"
                    ),
                    func.lower(User.username).like(pattern, escape="\\"),
                    func.lower(User.email).like(pattern, escape="\\"),
                )
            )
        return query

    def list(
        self,
        kind: Optional[str],
        status: Optional[str],
        search: Optional[str],
        page: int,
        size: int,
    ) -> Tuple[List[Submission], int]:
        """Return one page of matching submissions and the total match count."""
        query = self._filtered(kind, search)
        if status:
            query = query.filter(Submission.status == status)

        with translate_timeouts(self.db):
            total = query.count()
            items = (
                query.options(
                    selectinload(Submission.submitter),
                    selectinload(Submission.assigned_reviewer),
                    selectinload(Submission.artifact),
                    selectinload(Submission.application),
                )
                .order_by(
                    Submission.submitted_at.desc(),
                    Submission.submission_id.desc(),
                )
                .offset(page * size)
                .limit(size)
                .all()
            )
        return items, total

    def count_by_status(
        self, kind: Optional[str], search: Optional[str]
    ) -> Dict[str, int]:
        counts = {status: 0 for status in SubmissionStatus.ALL}
        query = self._filtered(kind, search).with_entities(
            Submission.status, func.count(Submission.submission_id)
        )
        with translate_timeouts(self.db):
            rows = query.group_by(Submission.status).all()
        for status, count in rows:
            counts[status] = count
        return counts

    def count_decided_by(self, kind: str, reviewer_id: int) -> Dict[str, int]:
        counts = {status: 0 for status in SubmissionStatus.TERMINAL}
        with translate_timeouts(self.db):
            rows = (
                self.db.query(
                    Submission.status, func.count(Submission.submission_id)
                )
                .filter(
                    Submission.kind == kind,
                    Submission.decided_by == reviewer_id,
                )
                .group_by(Submission.status)
                .all()
            )
        for status, count in rows:
            counts[status] = count
        return counts

    def append(self, event: ReviewEvent) -> ReviewEvent:
        with translate_timeouts(self.db):
            self.db.add(event)
            self.db.flush()
        return event

    def events(
        self,
        reviewer_id: Optional[int],
        status: Optional[str],
        page: int,
        size: int,
    ) -> Tuple[List[ReviewEvent], int]:
        query = self.db.query(ReviewEvent)
        if reviewer_id is not None:
            query = query.filter(ReviewEvent.reviewer_id == reviewer_id)
        if status:
            query = query.filter(ReviewEvent.to_status == status)
        with translate_timeouts(self.db):
            total = query.count()
            items = (
                query.options(
                    selectinload(ReviewEvent.reviewer),
                    selectinload(ReviewEvent.submission).selectinload(
                        Submission.submitter
                    ),
                    selectinload(ReviewEvent.submission).selectinload(
                        Submission.artifact
                    ),
                    selectinload(ReviewEvent.submission).selectinload(
                        Submission.application
                    ),
                )
                .order_by(
                    ReviewEvent.occurred_at.desc(), ReviewEvent.event_id.desc()
                )
                .offset(page * size)
                .limit(size)
                .all()
            )
        return items, total

    def compare_and_set_status(
        self,
        submission_id: int,
        expected_status: str,
        new_status: str,
        fields: dict,
    ) -> None:
        """Atomically move ``expected_status`` to ``new_status``.

        Raises ConflictError if the row no longer holds ``expected_status``.
        """
        unknown = set(fields) - DECISION_FIELDS
        if unknown:
            raise ValueError(f"not a decision field: {sorted(unknown)}")

        stmt = (
            update(Submission)
            .where(
                Submission.submission_id == submission_id,
                Submission.status == expected_status,
            )
            .values(status=new_status, **fields)
            .execution_options(synchronize_session=False)
        )
        with translate_timeouts(self.db):
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                actual = self.db.execute(
                    select(Submission.status).where(
                        Submission.submission_id == submission_id
                    )
                ).scalar_one_or_none()
                raise ConflictError(submission_id, expected_status, actual)
        # rows loaded before the update are stale now
        self.db.expire_all()

    def compare_and_set_assignment(
        self, submission_id: int, reviewer_id: int
    ) -> bool:
        """Bind ``reviewer_id`` to a pending, unassigned submission.

        Succeeds as a no-op when the reviewer already holds the assignment.
        """
        stmt = (
            update(Submission)
            .where(
                Submission.submission_id == submission_id,
                Submission.status == SubmissionStatus.PENDING,
                or_(
                    Submission.assigned_reviewer_id.is_(None),
                    Submission.assigned_reviewer_id == reviewer_id,
                ),
            )
            .values(assigned_reviewer_id=reviewer_id)
            .execution_options(synchronize_session=False)
        )
        with translate_timeouts(self.db):
            result = self.db.execute(stmt)
        self.db.expire_all()
        return result.rowcount == 1
