import logging
from typing import Dict, FrozenSet, Optional

from ..models.models import (
    Submission,
    SubmissionKind,
    SubmissionStatus,
    User,
    UserRole,
)
from .store import SubmissionStore

logger = logging.getLogger(__name__)

# roles allowed to decide each kind of submission
REVIEW_AUTHORITY: Dict[str, FrozenSet[str]] = {
    SubmissionKind.ARTIFACT: frozenset({UserRole.PROFESSOR}),
    SubmissionKind.CURATOR_APPLICATION: frozenset({UserRole.PROFESSOR}),
}


class AssignmentPolicy:
    """Decides who becomes the assigned reviewer of a submission."""

    def assign(
        self, store: SubmissionStore, submission: Submission, reviewer: User
    ) -> Optional[int]:
        raise NotImplementedError


class FirstToDecidePolicy(AssignmentPolicy):
    """The first reviewer to open a submission for decision keeps it."""

    def assign(self, store, submission, reviewer):
        if store.compare_and_set_assignment(
            submission.submission_id, reviewer.user_id
        ):
            return reviewer.user_id
        return None


class EligibilityResolver:
    def __init__(
        self,
        store: SubmissionStore,
        policy: Optional[AssignmentPolicy] = None,
        authority: Optional[Dict[str, FrozenSet[str]]] = None,
    ):
        self.store = store
        self.policy = policy or FirstToDecidePolicy()
        self.authority = authority or REVIEW_AUTHORITY

    def has_authority(self, reviewer: User, kind: str) -> bool:
        return reviewer.role in self.authority.get(kind, frozenset())

    def can_review(self, reviewer: Optional[User], submission: Submission) -> bool:
        """Whether ``reviewer`` may accept or reject ``submission`` right now."""
        if reviewer is None or not self.has_authority(reviewer, submission.kind):
            return False
        if submission.status != SubmissionStatus.PENDING:
            return False
        return submission.assigned_reviewer_id in (None, reviewer.user_id)

    def assign(self, submission: Submission, reviewer: User) -> Optional[int]:
        """Return the reviewer id now holding the assignment, or None if the
        assignment went to someone else first."""
        assigned = self.policy.assign(self.store, submission, reviewer)
        if assigned is None:
            logger.warning(
                "reviewer %s lost assignment of submission %s",
                reviewer.user_id,
                submission.submission_id,
            )
        return assigned
