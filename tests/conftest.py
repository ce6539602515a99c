import itertools
import os
from dataclasses import replace
from datetime import timedelta
from threading import Lock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-with-enough-length-for-hs256')
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('RATE_LIMIT_ENABLED', 'false')

from backend.core.errors import DuplicateError  # noqa: E402
from backend.core.rate_limit import reset_all  # noqa: E402
from backend.core.timeutil import utc_now  # noqa: E402
from backend.database import Base, build_engine, get_db, init_db  # noqa: E402
from backend.domain import (  # noqa: E402
    ROLE_ADMIN,
    ROLE_USER,
    SORT_OLDEST,
    SORT_UPVOTES,
    Identity,
    QuestionRecord,
    UpvoteResult,
    UserRecord,
)
from backend.main import app  # noqa: E402
from backend.models.user import User  # noqa: E402
from backend.repositories.base import QuestionRepository, UserRepository  # noqa: E402


class FakeUserRepository(UserRepository):
    def __init__(self):
        self.users: dict[int, UserRecord] = {}
        self._ids = itertools.count(1)

    def get(self, user_id):
        return self.users.get(user_id)

    def find_by_email(self, email):
        return next((user for user in self.users.values() if user.email == email), None)

    def add(self, name, email, password_hash, role):
        if self.find_by_email(email) is not None:
            raise DuplicateError('User already exists')
        user = UserRecord(
            id=next(self._ids),
            name=name,
            email=email,
            password_hash=password_hash,
            role=role,
            created_at=utc_now(),
        )
        self.users[user.id] = user
        return user


class FakeQuestionRepository(QuestionRepository):
    def __init__(self):
        self.questions: dict[int, QuestionRecord] = {}
        self._ids = itertools.count(1)
        self._lock = Lock()
        self._epoch = utc_now()

    def add(self, question_text, company, topic, role, difficulty, submitted_by):
        question_id = next(self._ids)
        created_at = self._epoch + timedelta(seconds=question_id)
        question = QuestionRecord(
            id=question_id,
            question_text=question_text,
            company=company,
            topic=topic,
            role=role,
            difficulty=difficulty,
            submitted_by=submitted_by,
            created_at=created_at,
            updated_at=created_at,
        )
        self.questions[question_id] = question
        return question

    def get(self, question_id):
        return self.questions.get(question_id)

    def update(self, question_id, fields):
        if question_id not in self.questions:
            return None
        self.questions[question_id] = replace(self.questions[question_id], **fields)
        return self.questions[question_id]

    def delete(self, question_id):
        return self.questions.pop(question_id, None) is not None

    def toggle_upvote(self, question_id, user_id):
        with self._lock:
            question = self.questions.get(question_id)
            if question is None:
                return None

            if user_id in question.upvoted_by:
                upvoted_by = question.upvoted_by - {user_id}
                was_added = False
            else:
                upvoted_by = question.upvoted_by | {user_id}
                was_added = True

            question = replace(question, upvoted_by=upvoted_by, upvotes=len(upvoted_by))
            self.questions[question_id] = question
            return UpvoteResult(question=question, was_added=was_added)

    def query(self, spec, sort, offset, limit):
        items = [
            question
            for question in self.questions.values()
            if all(getattr(question, name) == value for name, value in spec.equality_terms().items())
            and (spec.created_from is None or question.created_at >= spec.created_from)
            and (spec.created_to is None or question.created_at <= spec.created_to)
        ]
        if sort == SORT_OLDEST:
            items.sort(key=lambda question: (question.created_at, question.id))
        elif sort == SORT_UPVOTES:
            items.sort(key=lambda question: (question.upvotes, question.created_at, question.id), reverse=True)
        else:
            items.sort(key=lambda question: (question.created_at, question.id), reverse=True)
        return items[offset:offset + limit], len(items)

    def search(self, term):
        needle = term.lower()
        matches = [
            question
            for question in self.questions.values()
            if needle in question.question_text.lower()
            or needle in question.company.lower()
            or needle in question.topic.lower()
        ]
        return sorted(matches, key=lambda question: (question.created_at, question.id), reverse=True)

    def distinct(self, field_name):
        return sorted({getattr(question, field_name) for question in self.questions.values()})


def make_identity(user_id: int = 1, role: str = ROLE_USER) -> Identity:
    return Identity(id=user_id, name=f'User {user_id}', email=f'user{user_id}@example.com', role=role)


@pytest.fixture
def fake_users() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def fake_questions() -> FakeQuestionRepository:
    return FakeQuestionRepository()


@pytest.fixture
def engine():
    test_engine = build_engine('sqlite://', poolclass=StaticPool)
    init_db(test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture
def db_session(engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    reset_all()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        reset_all()


@pytest.fixture
def register_user(client):
    def _register(name: str = 'Alice', email: str = 'alice@example.com', password: str = 'secret123'):
        response = client.post('/api/auth/register', json={'name': name, 'email': email, 'password': password})
        assert response.status_code == 201, response.text
        body = response.json()
        return body['data'], body['token']

    return _register


@pytest.fixture
def promote_to_admin(engine):
    def _promote(user_id: int) -> None:
        with engine.begin() as connection:
            connection.execute(update(User).where(User.id == user_id).values(role=ROLE_ADMIN))

    return _promote


def auth_header(token: str) -> dict[str, str]:
    return {'Authorization': f'Bearer {token}'}
