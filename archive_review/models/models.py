from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from ..database import Base


class SubmissionKind:
    ARTIFACT = "artifact"
    CURATOR_APPLICATION = "curator_application"

    ALL = (ARTIFACT, CURATOR_APPLICATION)


class SubmissionStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    ALL = (PENDING, ACCEPTED, REJECTED)
    TERMINAL = (ACCEPTED, REJECTED)


class UserRole:
    VISITOR = "visitor"
    CURATOR = "curator"
    PROFESSOR = "professor"
    ADMIN = "admin"

    ALL = (VISITOR, CURATOR, PROFESSOR, ADMIN)


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.VISITOR)
    created_at = Column(DateTime, server_default=func.now())

    submissions = relationship(
        "Submission",
        back_populates="submitter",
        foreign_keys="Submission.submitter_id",
    )


class Submission(Base):
    """Common fields of a reviewable unit; the kind payload lives in a
    one-to-one detail table."""

    __tablename__ = "submissions"

    submission_id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(32), nullable=False, index=True)
    status = Column(
        String(16),
        nullable=False,
        default=SubmissionStatus.PENDING,
        index=True,
    )
    submitter_id = Column(
        Integer, ForeignKey("users.user_id"), nullable=False
    )
    submitted_at = Column(DateTime, nullable=False, server_default=func.now())
    assigned_reviewer_id = Column(
        Integer, ForeignKey("users.user_id"), nullable=True
    )
    decided_at = Column(DateTime, nullable=True)
    decided_by = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    submitter = relationship(
        "User", back_populates="submissions", foreign_keys=[submitter_id]
    )
    assigned_reviewer = relationship(
        "User", foreign_keys=[assigned_reviewer_id]
    )
    decider = relationship("User", foreign_keys=[decided_by])
    artifact = relationship(
        "ArtifactDetails", back_populates="submission", uselist=False
    )
    application = relationship(
        "CuratorApplicationDetails",
        back_populates="submission",
        uselist=False,
    )

    __table_args__ = (
        CheckConstraint(
            "kind IN ('artifact', 'curator_application')",
            name="ck_submission_kind",
        ),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')",
            name="ck_submission_status",
        ),
        CheckConstraint(
            "(status = 'pending' AND decided_at IS NULL) OR "
            "(status <> 'pending' AND decided_at IS NOT NULL)",
            name="ck_submission_decided_at",
        ),
        CheckConstraint(
            "(status = 'rejected' AND rejection_reason IS NOT NULL) OR "
            "(status <> 'rejected' AND rejection_reason IS NULL)",
            name="ck_submission_rejection_reason",
        ),
    )

    @property
    def payload(self):
        if self.kind == SubmissionKind.ARTIFACT:
            return self.artifact
        return self.application

    @property
    def title(self):
        payload = self.payload
        if payload is None:
            return None
        if self.kind == SubmissionKind.ARTIFACT:
            return payload.title
        return payload.full_name


class ArtifactDetails(Base):
    __tablename__ = "artifact_details"

    submission_id = Column(
        Integer, ForeignKey("submissions.submission_id"), primary_key=True
    )
    title = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(100))
    culture = Column(String(100))
    period = Column(String(100))
    medium = Column(String(100))
    artist_name = Column(String(255))
    location = Column(String(255))
    tags = Column(JSON, nullable=False, default=list)
    image_urls = Column(JSON, nullable=False, default=list)

    submission = relationship("Submission", back_populates="artifact")


class CuratorApplicationDetails(Base):
    __tablename__ = "curator_application_details"

    submission_id = Column(
        Integer, ForeignKey("submissions.submission_id"), primary_key=True
    )
    full_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date)
    education = Column(String(400))
    certification = Column(String(400))
    certification_path = Column(String(255))
    experience = Column(String(400))
    portfolio_link = Column(String(400))
    motivation = Column(String(400))

    submission = relationship("Submission", back_populates="application")


class ReviewEvent(Base):
    """Append-only record of a completed transition."""

    __tablename__ = "review_events"

    event_id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(
        Integer,
        ForeignKey("submissions.submission_id"),
        nullable=False,
        unique=True,
    )
    kind = Column(String(32), nullable=False)
    from_status = Column(String(16), nullable=False)
    to_status = Column(String(16), nullable=False)
    reviewer_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    reason = Column(Text, nullable=True)
    occurred_at = Column(
        DateTime, nullable=False, index=True, server_default=func.now()
    )

    submission = relationship("Submission")
    reviewer = relationship("User")


class Notification(Base):
    __tablename__ = "notifications"

    notification_id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(
        Integer, ForeignKey("users.user_id"), nullable=False, index=True
    )
    source_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    related_id = Column(String(64), nullable=False)
    related_type = Column(String(50), nullable=False)
    notification_type = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    recipient = relationship("User", foreign_keys=[recipient_id])
    source = relationship("User", foreign_keys=[source_id])

    __table_args__ = (
        UniqueConstraint(
            "recipient_id",
            "related_id",
            "notification_type",
            name="unique_recipient_related_type",
        ),
    )
