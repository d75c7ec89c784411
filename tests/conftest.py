import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from datetime import timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.core.database import Base
from app.core import timer
from app.core.config import settings
from app.core.constants import RoleEnum, SessionStatusEnum
from app.models.exam import Exam
from app.models.question import Question
from app.models.exam_session import ExamSession
from app.schemas.user import UserContext
from app.utils import deps as deps_utils
from app.utils.events import event_bus
import main
from fastapi.testclient import TestClient
from tests.helpers.factories import (
    T0, FrozenClock, INSTRUCTOR_ID, OTHER_INSTRUCTOR_ID, STUDENT_ID, OTHER_STUDENT_ID, auth_headers, default_questions,
)

test_db_url = settings.TEST_DATABASE_URL or "sqlite:///./test.db"

@pytest.fixture(scope="session")
def database_engine():
    if test_db_url.startswith("sqlite"):
        engine = create_engine(test_db_url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(test_db_url)
    yield engine
    engine.dispose()
    if test_db_url.startswith("sqlite") and os.path.exists("./test.db"):
        os.remove("./test.db")

@pytest.fixture(scope="function")
def db_session(database_engine):
    Base.metadata.drop_all(bind=database_engine)
    Base.metadata.create_all(bind=database_engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=database_engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()

@pytest.fixture(autouse=True)
def _reset_event_bus():
    event_bus.clear()
    yield
    event_bus.clear()

@pytest.fixture
def clock(monkeypatch):
    frozen = FrozenClock(T0)
    monkeypatch.setattr(timer, "utcnow", frozen)
    return frozen

@pytest.fixture(scope="function")
def client(db_session, clock):
    main.app.dependency_overrides[deps_utils.get_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_transactional_db] = lambda: db_session
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()

@pytest.fixture
def instructor_headers():
    return auth_headers(INSTRUCTOR_ID, RoleEnum.INSTRUCTOR)

@pytest.fixture
def other_instructor_headers():
    return auth_headers(OTHER_INSTRUCTOR_ID, RoleEnum.INSTRUCTOR)

@pytest.fixture
def student_headers():
    return auth_headers(STUDENT_ID, RoleEnum.STUDENT)

@pytest.fixture
def other_student_headers():
    return auth_headers(OTHER_STUDENT_ID, RoleEnum.STUDENT)

@pytest.fixture
def instructor_context():
    return UserContext(user_id=INSTRUCTOR_ID, role=RoleEnum.INSTRUCTOR)

@pytest.fixture
def student_context():
    return UserContext(user_id=STUDENT_ID, role=RoleEnum.STUDENT)

@pytest.fixture
def other_student_context():
    return UserContext(user_id=OTHER_STUDENT_ID, role=RoleEnum.STUDENT)

@pytest.fixture
def exam_factory(db_session):
    def _exam_factory(duration_minutes: int = 30, passing_score: float = 50.0, questions=None, shuffle_questions=False):
        exam = Exam(
            title="Term Test",
            duration_minutes=duration_minutes,
            passing_score=passing_score,
            shuffle_questions=shuffle_questions,
            created_by=INSTRUCTOR_ID,
        )
        for question_data in (questions if questions is not None else default_questions()):
            exam.questions.append(Question(**question_data))
        db_session.add(exam)
        db_session.commit()
        db_session.refresh(exam)
        return exam
    return _exam_factory

@pytest.fixture
def session_factory(db_session, clock):
    counter = {"n": 0}

    def _session_factory(exam, **overrides):
        counter["n"] += 1
        values = {
            "exam_id": exam.id,
            "instructor_id": INSTRUCTOR_ID,
            "name": "Morning sitting",
            "session_code": f"{100000 + counter['n']}",
            "starts_at": clock.now - timedelta(hours=1),
            "ends_at": clock.now + timedelta(hours=4),
            "status": SessionStatusEnum.ACTIVE,
            "max_students": 50,
        }
        values.update(overrides)
        session = ExamSession(**values)
        db_session.add(session)
        db_session.commit()
        db_session.refresh(session)
        return session
    return _session_factory

@pytest.fixture
def exam(exam_factory):
    return exam_factory()

@pytest.fixture
def exam_session(session_factory, exam):
    return session_factory(exam)
