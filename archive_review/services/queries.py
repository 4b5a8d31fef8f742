from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundError, ValidationError
from ..models.models import (
    ReviewEvent,
    Submission,
    SubmissionKind,
    SubmissionStatus,
    User,
)
from ..schemas.review import (
    DecisionItem,
    DecisionPage,
    ReviewStats,
    StatusCounts,
)
from ..schemas.submission import (
    ArtifactPayload,
    CuratorApplicationPayload,
    SubmissionDetailResponse,
    SubmissionPage,
    SubmissionResponse,
)
from .eligibility import EligibilityResolver
from .store import SubmissionStore

ALL_STATUSES = "all"


def parse_kind(kind: Optional[str]) -> Optional[str]:
    if kind in (None, "", ALL_STATUSES):
        return None
    if kind not in SubmissionKind.ALL:
        raise ValidationError(f"Unknown submission kind: {kind!r}")
    return kind


def parse_status(status: Optional[str]) -> Optional[str]:
    if status is None or status.lower() in ("", ALL_STATUSES):
        return None
    status = status.lower()
    if status not in SubmissionStatus.ALL:
        raise ValidationError(f"Unknown status: {status!r}")
    return status


def parse_page(page: Optional[int], size: Optional[int]) -> Tuple[int, int]:
    page = page or 0
    if page < 0:
        raise ValidationError("page must not be negative")
    if size is None:
        size = settings.default_page_size
    if size < 1:
        raise ValidationError("size must be positive")
    return page, min(size, settings.max_page_size)


class ReviewQueryService:
    """Read side of the review workflow: pages, counts, decision feeds.

    Every call goes to the store; status membership is never cached, so a
    decision shows up in the next listing.
    """

    def __init__(
        self,
        db: Session,
        store: Optional[SubmissionStore] = None,
        eligibility: Optional[EligibilityResolver] = None,
    ):
        self.store = store or SubmissionStore(db)
        self.eligibility = eligibility or EligibilityResolver(self.store)

    def _row(self, submission: Submission, viewer: Optional[User]):
        reviewer = submission.assigned_reviewer
        return SubmissionResponse(
            submission_id=submission.submission_id,
            kind=submission.kind,
            status=submission.status,
            title=submission.title,
            submitter_id=submission.submitter_id,
            submitter_name=submission.submitter.username,
            submitted_at=submission.submitted_at,
            assigned_reviewer_id=submission.assigned_reviewer_id,
            assigned_reviewer_name=reviewer.username if reviewer else None,
            decided_at=submission.decided_at,
            decided_by=submission.decided_by,
            rejection_reason=submission.rejection_reason,
            can_review=self.eligibility.can_review(viewer, submission),
        )

    def list_by_status(
        self,
        viewer: Optional[User],
        kind: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: Optional[int] = 0,
        size: Optional[int] = None,
    ) -> SubmissionPage:
        kind = parse_kind(kind)
        status = parse_status(status)
        page, size = parse_page(page, size)
        items, total = self.store.list(kind, status, search, page, size)
        return SubmissionPage(
            items=[self._row(item, viewer) for item in items],
            total=total,
            page=page,
            size=size,
        )

    def counts_by_status(
        self, kind: Optional[str] = None, search: Optional[str] = None
    ) -> StatusCounts:
        counts = self.store.count_by_status(parse_kind(kind), search)
        return StatusCounts(total=sum(counts.values()), **counts)

    def get_detail(
        self, viewer: Optional[User], submission_id: int
    ) -> SubmissionDetailResponse:
        submission = self.store.get(submission_id)
        if submission is None:
            raise NotFoundError()
        detail = SubmissionDetailResponse(
            **self._row(submission, viewer).model_dump()
        )
        if submission.kind == SubmissionKind.ARTIFACT:
            detail.artifact = ArtifactPayload.model_validate(
                submission.artifact
            )
        else:
            detail.application = CuratorApplicationPayload.model_validate(
                submission.application
            )
        return detail

    def recent_decisions(
        self,
        reviewer_id: Optional[int] = None,
        status: Optional[str] = None,
        page: Optional[int] = 0,
        size: Optional[int] = None,
    ) -> DecisionPage:
        status = parse_status(status)
        if status == SubmissionStatus.PENDING:
            raise ValidationError("Decisions are accepted or rejected only")
        page, size = parse_page(page, size)
        events, total = self.store.events(reviewer_id, status, page, size)
        return DecisionPage(
            items=[self._decision(event) for event in events],
            total=total,
            page=page,
            size=size,
        )

    @staticmethod
    def _decision(event: ReviewEvent) -> DecisionItem:
        submission = event.submission
        return DecisionItem(
            event_id=event.event_id,
            submission_id=event.submission_id,
            kind=event.kind,
            title=submission.title,
            status=event.to_status,
            reviewer_id=event.reviewer_id,
            reviewer_name=event.reviewer.username,
            submitter_name=submission.submitter.username,
            reason=event.reason,
            occurred_at=event.occurred_at,
        )

    def review_stats(self, reviewer_id: int) -> ReviewStats:
        """Pending counts are global; decided counts are this reviewer's."""
        stats = {}
        for kind in SubmissionKind.ALL:
            pending = self.store.count_by_status(kind, None)[
                SubmissionStatus.PENDING
            ]
            decided = self.store.count_decided_by(kind, reviewer_id)
            stats[kind] = StatusCounts(
                pending=pending,
                accepted=decided[SubmissionStatus.ACCEPTED],
                rejected=decided[SubmissionStatus.REJECTED],
                total=sum(decided.values()),
            )
        return ReviewStats(**stats)
