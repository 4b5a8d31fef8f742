from fastapi import APIRouter, Depends

from ..dependencies import get_intake, require_role
from ..models.models import User, UserRole
from ..schemas.submission import (
    ArtifactPayload,
    CuratorApplicationPayload,
    SubmissionCreated,
)
from ..services.intake import SubmissionIntake

router = APIRouter(tags=["Submissions"])


@router.post(
    "/artifact-submissions",
    response_model=SubmissionCreated,
    status_code=201,
)
def create_artifact_submission(
    payload: ArtifactPayload,
    current_user: User = Depends(require_role(UserRole.CURATOR)),
    intake: SubmissionIntake = Depends(get_intake),
):
    """Upload an artifact for professor review"""
    return intake.submit_artifact(current_user, payload)


@router.post(
    "/curator-applications",
    response_model=SubmissionCreated,
    status_code=201,
)
def create_curator_application(
    payload: CuratorApplicationPayload,
    current_user: User = Depends(require_role(UserRole.VISITOR)),
    intake: SubmissionIntake = Depends(get_intake),
):
    """Apply to become a curator"""
    return intake.apply_for_curator(current_user, payload)
