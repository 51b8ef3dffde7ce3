"""
Shared fixtures: an in-memory SQLite database, an in-memory record store
with failure injection, and a FastAPI TestClient wired to the test database.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("COMMIT_BACKOFF_SECONDS", "0")

import datetime as dt

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from assessment_batches.database import Base, get_db
from assessment_batches.errors import RecordNotFoundError, StaleRecordError, StoreError
from assessment_batches.models import Coach, DefinedSkill, SkillAssessment, Student
from assessment_batches.schemas import AssessmentRecord, SkillScore
from assessment_batches.services.edit_session import registry
from assessment_batches.store import RecordStore

SPRING_DATE = dt.date(2024, 3, 1)


def make_record(record_id, title="Spring Eval", date=SPRING_DATE,
                skills=(("tumbling", 8, 10),), status="normal", coach_id="coach-1",
                student_id=None, student_name=None, assessing_coach_name="Dana Levi",
                responsible_coach_name="Maya Cohen"):
    skill_list = [SkillScore(name=name, score=score, max_score=max_score)
                  for name, score, max_score in skills]
    return AssessmentRecord(
        id=record_id,
        student_id=student_id or "student-{}".format(record_id),
        coach_id=coach_id,
        title=title,
        date=date,
        status=status,
        skills=skill_list,
        total_score=sum(score for _, score, _ in skills),
        student_name=student_name or "Student {}".format(record_id),
        assessing_coach_name=assessing_coach_name,
        responsible_coach_name=responsible_coach_name,
    )


class FakeStore(RecordStore):
    """Dictionary-backed store without transactions; failures are injected per id or title."""

    supports_transactions = False

    def __init__(self, records=()):
        self.records = {r.id: r.model_copy(deep=True) for r in records}
        self.update_failures = {}
        self.delete_failures = set()
        self.update_calls = []
        self.delete_calls = []

    def query_records(self, record_filter):
        found = []
        for record in sorted(self.records.values(), key=lambda r: r.id):
            if record_filter.id is not None and record.id != record_filter.id:
                continue
            if record_filter.title is not None and record.title != record_filter.title:
                continue
            if record_filter.date is not None and record.date != record_filter.date:
                continue
            if (record_filter.assessing_coach_id is not None
                    and record.coach_id != record_filter.assessing_coach_id):
                continue
            if record_filter.student_id is not None and record.student_id != record_filter.student_id:
                continue
            found.append(record.model_copy(deep=True))
        return found

    def update_record(self, record_id, fields, expected_version=None):
        self.update_calls.append(record_id)
        remaining = self.update_failures.get(record_id, 0)
        if remaining:
            self.update_failures[record_id] = remaining - 1
            raise StoreError("connection reset")
        record = self.records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        if expected_version is not None and record.version != expected_version:
            raise StaleRecordError(record_id, expected_version, record.version)
        if "skills" in fields:
            record.skills = [SkillScore(**s) for s in fields["skills"]]
        if "total_score" in fields:
            record.total_score = fields["total_score"]
        record.version += 1
        return record.version

    def delete_records(self, record_filter):
        self.delete_calls.append((record_filter.title, record_filter.date))
        if record_filter.title in self.delete_failures:
            raise StoreError("delete failed for {}".format(record_filter.title))
        doomed = [r.id for r in self.query_records(record_filter)]
        for record_id in doomed:
            del self.records[record_id]
        return len(doomed)


@pytest.fixture
def spring_records():
    return [
        make_record("r1", skills=(("tumbling", 8, 10),)),
        make_record("r2", skills=(("tumbling", 6, 10),)),
    ]


@pytest.fixture
def fake_store(spring_records):
    return FakeStore(spring_records)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def seeded_db(db_session):
    """Two coaches, two students and a two-record 'Spring Eval' batch plus one other batch."""
    head = Coach(id="coach-1", full_name="Dana Levi", role="Head Coach")
    assigned = Coach(id="coach-2", full_name="Maya Cohen", role="coach")
    db_session.add_all([head, assigned])
    db_session.add_all([
        Student(id="student-1", full_name="Noa Bar", coach_id="coach-2"),
        Student(id="student-2", full_name="Lior Katz", coach_id="coach-2"),
    ])
    db_session.add_all([
        DefinedSkill(name="balance", max_score=5),
        DefinedSkill(name="tumbling", max_score=10),
    ])
    db_session.add_all([
        SkillAssessment(id="a1", student_id="student-1", coach_id="coach-1", title="Spring Eval",
                        date=SPRING_DATE, status="normal",
                        skills='[{"name": "tumbling", "score": 8, "max_score": 10}]', total_score=8),
        SkillAssessment(id="a2", student_id="student-2", coach_id="coach-1", title="Spring Eval",
                        date=SPRING_DATE, status="normal",
                        skills='[{"name": "tumbling", "score": 6, "max_score": 10}]', total_score=6),
        SkillAssessment(id="a3", student_id="student-1", coach_id="coach-2", title="Winter Check",
                        date=dt.date(2024, 1, 15), status="absent",
                        skills='[{"name": "tumbling", "score": 4, "max_score": 10}]', total_score=4),
    ])
    db_session.commit()
    return db_session


@pytest.fixture
def client(seeded_db):
    from assessment_batches.main import app

    def override_get_db():
        yield seeded_db

    app.dependency_overrides[get_db] = override_get_db
    registry.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    registry.clear()


ADMIN = {"X-User-Role": "admin"}
