import logging
import threading

import pytest

from archive_review.errors import (
    AlreadyDecidedError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from archive_review.models.models import (
    Notification,
    ReviewEvent,
    SubmissionStatus,
    User,
    UserRole,
)
from archive_review.services.eligibility import EligibilityResolver
from archive_review.services.notifications import NotificationDispatcher
from archive_review.services.queries import ReviewQueryService
from archive_review.services.review import ReviewStateMachine
from archive_review.services.store import SubmissionStore


def _notifications_for(db, user_id):
    return db.query(Notification).filter(
        Notification.recipient_id == user_id
    ).all()


def test_accept_records_decision_event_and_notification(
    db, users, make_artifact
):
    submission_id = make_artifact()
    machine = ReviewStateMachine(db)

    submission = machine.accept(users["p1"], submission_id)

    assert submission.status == SubmissionStatus.ACCEPTED
    assert submission.decided_by == users["p1"]
    assert submission.decided_at is not None
    assert submission.assigned_reviewer_id == users["p1"]
    assert submission.rejection_reason is None

    events = db.query(ReviewEvent).all()
    assert len(events) == 1
    assert events[0].from_status == SubmissionStatus.PENDING
    assert events[0].to_status == SubmissionStatus.ACCEPTED
    assert events[0].reviewer_id == users["p1"]

    notifications = _notifications_for(db, users["carl"])
    assert len(notifications) == 1
    assert notifications[0].notification_type == "artifact-accepted"
    assert notifications[0].related_id == str(submission_id)
    assert notifications[0].source_id == users["p1"]


def test_reject_keeps_reason(db, users, make_artifact):
    submission_id = make_artifact()
    submission = ReviewStateMachine(db).reject(
        users["p1"], submission_id, "  low quality  "
    )

    assert submission.status == SubmissionStatus.REJECTED
    assert submission.rejection_reason == "low quality"
    notification = _notifications_for(db, users["carl"])[0]
    assert notification.notification_type == "artifact-rejected"
    assert "low quality" in notification.message


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_without_reason_fails(db, users, make_artifact, reason):
    submission_id = make_artifact()
    with pytest.raises(ValidationError):
        ReviewStateMachine(db).reject(users["p1"], submission_id, reason)
    assert SubmissionStore(db).get(submission_id).status == "pending"


def test_accept_with_reason_fails(db, users, make_artifact):
    submission_id = make_artifact()
    with pytest.raises(ValidationError):
        ReviewStateMachine(db).accept(users["p1"], submission_id, "anything")
    assert db.query(ReviewEvent).count() == 0


def test_unknown_outcome_fails(db, users, make_artifact):
    with pytest.raises(ValidationError):
        ReviewStateMachine(db).decide(users["p1"], make_artifact(), "withdrawn")


def test_unknown_submission_fails(db, users):
    with pytest.raises(NotFoundError):
        ReviewStateMachine(db).accept(users["p1"], 4242)


@pytest.mark.parametrize("name", ["vera", "carl", "ada"])
def test_non_professor_is_forbidden(db, users, make_artifact, name):
    with pytest.raises(ForbiddenError):
        ReviewStateMachine(db).accept(users[name], make_artifact())


def test_terminal_submission_never_changes_again(db, users, make_artifact):
    submission_id = make_artifact()
    machine = ReviewStateMachine(db)
    machine.reject(users["p1"], submission_id, "wrong category")

    with pytest.raises(InvalidTransitionError):
        machine.accept(users["p1"], submission_id)
    with pytest.raises(InvalidTransitionError):
        machine.reject(users["p2"], submission_id, "another reason")

    submission = SubmissionStore(db).get(submission_id)
    assert submission.status == SubmissionStatus.REJECTED
    assert submission.rejection_reason == "wrong category"
    assert db.query(ReviewEvent).count() == 1
    assert len(_notifications_for(db, users["carl"])) == 1


def test_assignment_blocks_second_reviewer(db, users, make_artifact):
    submission_id = make_artifact()
    machine = ReviewStateMachine(db)

    # p1 opens it for decision but sends no reason, so only the claim sticks
    with pytest.raises(ValidationError):
        machine.reject(users["p1"], submission_id, "")
    assert SubmissionStore(db).get(submission_id).assigned_reviewer_id == users["p1"]

    with pytest.raises(ForbiddenError):
        machine.accept(users["p2"], submission_id)

    submission = machine.reject(users["p1"], submission_id, "duplicate")
    assert submission.status == SubmissionStatus.REJECTED


def test_accepted_application_promotes_visitor(db, users, make_application):
    submission_id = make_application()
    ReviewStateMachine(db).accept(users["p2"], submission_id)

    applicant = db.get(User, users["vera"])
    db.refresh(applicant)
    assert applicant.role == UserRole.CURATOR
    notification = _notifications_for(db, users["vera"])[0]
    assert notification.notification_type == "curator_application-accepted"


def test_rejected_application_keeps_visitor_role(db, users, make_application):
    submission_id = make_application()
    ReviewStateMachine(db).reject(users["p2"], submission_id, "no portfolio")
    assert db.get(User, users["vera"]).role == UserRole.VISITOR


def test_dispatch_failure_does_not_undo_decision(db, users, make_artifact):
    class BrokenDispatcher(NotificationDispatcher):
        def notify(self, event):
            return None

    submission_id = make_artifact()
    machine = ReviewStateMachine(db, dispatcher=BrokenDispatcher(db))
    machine.accept(users["p1"], submission_id)

    assert SubmissionStore(db).get(submission_id).status == "accepted"
    assert _notifications_for(db, users["carl"]) == []
    assert NotificationDispatcher(db).redeliver_missing() == 1
    assert len(_notifications_for(db, users["carl"])) == 1


def test_concurrent_decisions_have_one_winner(
    db, session_factory, users, make_artifact
):
    submission_id = make_artifact()
    pending_before = ReviewQueryService(db).counts_by_status("artifact").pending
    db.commit()
    barrier = threading.Barrier(2, timeout=10)

    class RacingResolver(EligibilityResolver):
        # both reviewers pass the eligibility check before either claims
        def can_review(self, reviewer, submission):
            allowed = super().can_review(reviewer, submission)
            barrier.wait()
            return allowed

    outcomes = {}

    def decide(name, outcome, reason):
        session = session_factory()
        try:
            store = SubmissionStore(session)
            machine = ReviewStateMachine(
                session, store=store, eligibility=RacingResolver(store)
            )
            machine.decide(users[name], submission_id, outcome, reason)
            outcomes[name] = outcome
        except Exception as exc:
            outcomes[name] = exc
        finally:
            session.close()

    threads = [
        threading.Thread(
            target=decide, args=("p1", SubmissionStatus.ACCEPTED, None)
        ),
        threading.Thread(
            target=decide,
            args=("p2", SubmissionStatus.REJECTED, "low quality"),
        ),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    winners = [v for v in outcomes.values() if isinstance(v, str)]
    losers = [v for v in outcomes.values() if isinstance(v, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], AlreadyDecidedError)

    db.expire_all()
    submission = SubmissionStore(db).get(submission_id)
    assert submission.status == winners[0]
    counts = ReviewQueryService(db).counts_by_status("artifact")
    assert counts.pending == pending_before - 1

    notifications = _notifications_for(db, users["carl"])
    assert len(notifications) == 1
    assert notifications[0].notification_type == f"artifact-{winners[0]}"
    assert db.query(ReviewEvent).count() == 1


def test_locked_store_during_dispatch_keeps_decision(
    db, users, make_artifact, lock_database, caplog
):
    class LockedDuringDispatch(NotificationDispatcher):
        def notify(self, event):
            lock_database()
            return super().notify(event)

    submission_id = make_artifact()
    machine = ReviewStateMachine(db, dispatcher=LockedDuringDispatch(db))

    with caplog.at_level(logging.ERROR):
        machine.accept(users["p1"], submission_id)

    assert "not dispatched" in caplog.text
    assert SubmissionStore(db).get(submission_id).status == "accepted"
    assert _notifications_for(db, users["carl"]) == []
    assert NotificationDispatcher(db).redeliver_missing() == 1


def test_raising_dispatcher_does_not_fail_decision(db, users, make_artifact):
    class UnavailableDispatcher(NotificationDispatcher):
        def notify(self, event):
            raise StoreUnavailableError()

    submission_id = make_artifact()
    machine = ReviewStateMachine(db, dispatcher=UnavailableDispatcher(db))
    submission = machine.reject(users["p2"], submission_id, "wrong period")

    assert submission.status == SubmissionStatus.REJECTED
    with pytest.raises(InvalidTransitionError):
        machine.accept(users["p2"], submission_id)
