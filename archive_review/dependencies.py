from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional

from .database import get_db
from .models.models import User
from .services.intake import SubmissionIntake
from .services.notifications import NotificationDispatcher
from .services.queries import ReviewQueryService
from .services.review import ReviewStateMachine
from .services.store import translate_timeouts


def get_current_user(
    x_user_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the caller from the id the gateway puts in X-User-Id"""
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Login required",
        )
    with translate_timeouts(db):
        user = db.get(User, x_user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )
    return user


def require_role(*roles: str):
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not allowed for your role",
            )
        return current_user

    return checker


def get_dispatcher(db: Session = Depends(get_db)) -> NotificationDispatcher:
    return NotificationDispatcher(db)


def get_review_machine(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ReviewStateMachine:
    return ReviewStateMachine(db, dispatcher=dispatcher)


def get_query_service(db: Session = Depends(get_db)) -> ReviewQueryService:
    return ReviewQueryService(db)


def get_intake(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> SubmissionIntake:
    return SubmissionIntake(db, dispatcher=dispatcher)
