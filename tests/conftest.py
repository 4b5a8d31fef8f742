import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from archive_review.database import build_engine, get_db, init_db
from archive_review.main import app
from archive_review.models.models import SubmissionKind, User, UserRole
from archive_review.services.store import SubmissionStore


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'review.db'}", timeout=5.0)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def lock_database(engine):
    """Call to make the next ``times`` statements fail as a locked database"""
    remaining = {"n": 0}

    def fail_statement(conn, cursor, statement, parameters, context, many):
        if remaining["n"]:
            remaining["n"] -= 1
            raise OperationalError(
                statement, parameters, Exception("database is locked")
            )

    event.listen(engine, "before_cursor_execute", fail_statement)

    def lock(times=1):
        remaining["n"] = times

    yield lock
    event.remove(engine, "before_cursor_execute", fail_statement)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def users(db):
    """user ids keyed by a short name"""
    people = [
        ("vera", UserRole.VISITOR),
        ("walt", UserRole.VISITOR),
        ("carl", UserRole.CURATOR),
        ("p1", UserRole.PROFESSOR),
        ("p2", UserRole.PROFESSOR),
        ("ada", UserRole.ADMIN),
    ]
    ids = {}
    for name, role in people:
        user = User(username=name, email=f"{name}@archive.test", role=role)
        db.add(user)
        db.flush()
        ids[name] = user.user_id
    db.commit()
    return ids


@pytest.fixture
def make_artifact(db, users):
    def make(title="Bronze mask", submitter="carl", **extra):
        submission = SubmissionStore(db).create(
            SubmissionKind.ARTIFACT,
            users[submitter],
            {"title": title, "tags": [], "image_urls": [], **extra},
        )
        db.commit()
        return submission.submission_id

    return make


@pytest.fixture
def make_application(db, users):
    def make(full_name="Vera Lang", submitter="vera", **extra):
        submission = SubmissionStore(db).create(
            SubmissionKind.CURATOR_APPLICATION,
            users[submitter],
            {"full_name": full_name, **extra},
        )
        db.commit()
        return submission.submission_id

    return make


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers(users):
    """X-User-Id headers keyed like ``users``"""
    return {name: {"X-User-Id": str(user_id)} for name, user_id in users.items()}
