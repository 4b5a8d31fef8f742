import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ..dependencies import (
    get_current_user,
    get_query_service,
    get_review_machine,
    require_role,
)
from ..errors import StoreUnavailableError
from ..models.models import SubmissionStatus, User, UserRole
from ..schemas.review import DecisionPage, ReviewStats, StatusCounts
from ..schemas.submission import (
    DecisionRequest,
    SubmissionDetailResponse,
    SubmissionPage,
    SubmissionResponse,
)
from ..services.queries import ReviewQueryService
from ..services.review import ReviewStateMachine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/review-submissions", tags=["Review"])


def _decision_reply(queries, viewer, submission_id, outcome):
    try:
        return queries.get_detail(viewer, submission_id)
    except (SQLAlchemyError, StoreUnavailableError) as exc:
        # the decision is already stored, so reply with what is known
        logger.warning(
            "could not reload submission %s after decision: %s",
            submission_id,
            exc,
        )
        return JSONResponse(
            content={
                "submission_id": submission_id,
                "status": outcome,
                "detail": "Decision recorded.",
            }
        )


@router.get("", response_model=SubmissionPage)
def list_review_submissions(
    kind: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 0,
    size: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    queries: ReviewQueryService = Depends(get_query_service),
):
    """One page of submissions for a status tab"""
    return queries.list_by_status(
        current_user, kind, status, search, page, size
    )


@router.get("/counts", response_model=StatusCounts)
def count_review_submissions(
    kind: Optional[str] = None,
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    queries: ReviewQueryService = Depends(get_query_service),
):
    """Tab badges; takes the same search as the listing"""
    return queries.counts_by_status(kind, search)


@router.get("/decisions", response_model=DecisionPage)
def list_recent_decisions(
    status: Optional[str] = None,
    mine: bool = True,
    page: int = 0,
    size: Optional[int] = None,
    current_user: User = Depends(require_role(UserRole.PROFESSOR)),
    queries: ReviewQueryService = Depends(get_query_service),
):
    """Most recent accept/reject decisions, newest first"""
    reviewer_id = current_user.user_id if mine else None
    return queries.recent_decisions(reviewer_id, status, page, size)


@router.get("/stats", response_model=ReviewStats)
def get_review_stats(
    current_user: User = Depends(require_role(UserRole.PROFESSOR)),
    queries: ReviewQueryService = Depends(get_query_service),
):
    return queries.review_stats(current_user.user_id)


@router.get("/{submission_id}", response_model=SubmissionDetailResponse)
def get_review_submission(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    queries: ReviewQueryService = Depends(get_query_service),
):
    return queries.get_detail(current_user, submission_id)


@router.post("/{submission_id}/accept", response_model=SubmissionResponse)
def accept_submission(
    submission_id: int,
    body: Optional[DecisionRequest] = None,
    current_user: User = Depends(get_current_user),
    machine: ReviewStateMachine = Depends(get_review_machine),
    queries: ReviewQueryService = Depends(get_query_service),
):
    """Accept a pending submission"""
    reason = body.reason if body else None
    machine.accept(current_user.user_id, submission_id, reason)
    return _decision_reply(
        queries, current_user, submission_id, SubmissionStatus.ACCEPTED
    )


@router.post("/{submission_id}/reject", response_model=SubmissionResponse)
def reject_submission(
    submission_id: int,
    body: Optional[DecisionRequest] = None,
    current_user: User = Depends(get_current_user),
    machine: ReviewStateMachine = Depends(get_review_machine),
    queries: ReviewQueryService = Depends(get_query_service),
):
    """Reject a pending submission; a reason is required"""
    reason = body.reason if body else None
    machine.reject(current_user.user_id, submission_id, reason)
    return _decision_reply(
        queries, current_user, submission_id, SubmissionStatus.REJECTED
    )
