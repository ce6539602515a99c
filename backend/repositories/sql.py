"""SQLAlchemy-backed stores."""

import logging
from contextlib import contextmanager
from typing import Any

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import ConflictError, DuplicateError, UnavailableError
from backend.core.timeutil import utc_now
from backend.domain import (
    CATEGORY_FIELDS,
    SORT_LATEST,
    SORT_OLDEST,
    SORT_UPVOTES,
    QuestionFilter,
    QuestionRecord,
    UpvoteResult,
    UserRecord,
)
from backend.models.question import Question, QuestionUpvote
from backend.models.user import User
from backend.repositories.base import QuestionRepository, UserRepository

logger = logging.getLogger(__name__)

SORT_ORDERING = {
    SORT_LATEST: (Question.created_at.desc(), Question.id.desc()),
    SORT_OLDEST: (Question.created_at.asc(), Question.id.asc()),
    SORT_UPVOTES: (Question.upvotes.desc(), Question.created_at.desc(), Question.id.desc()),
}


def to_user_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        name=user.name,
        email=user.email,
        password_hash=user.hashed_password,
        role=user.role,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def to_question_record(question: Question) -> QuestionRecord:
    return QuestionRecord(
        id=question.id,
        question_text=question.question_text,
        company=question.company,
        topic=question.topic,
        role=question.role,
        difficulty=question.difficulty,
        submitted_by=question.submitted_by,
        submitter_name=question.submitter.name if question.submitter is not None else None,
        upvotes=question.upvotes,
        upvoted_by=frozenset(row.user_id for row in question.upvote_rows),
        created_at=question.created_at,
        updated_at=question.updated_at,
    )


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@contextmanager
def store_errors(db: Session):
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Store operation failed: %s", exc.__class__.__name__)
        raise UnavailableError() from exc


class SqlUserRepository(UserRepository):
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> UserRecord | None:
        with store_errors(self.db):
            user = self.db.get(User, user_id)
        return to_user_record(user) if user is not None else None

    def find_by_email(self, email: str) -> UserRecord | None:
        with store_errors(self.db):
            user = self.db.scalars(select(User).where(User.email == email)).first()
        return to_user_record(user) if user is not None else None

    def add(self, name: str, email: str, password_hash: str, role: str) -> UserRecord:
        user = User(name=name, email=email, hashed_password=password_hash, role=role)

        with store_errors(self.db):
            self.db.add(user)
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise DuplicateError("User already exists") from exc
            self.db.refresh(user)

        return to_user_record(user)


class SqlQuestionRepository(QuestionRepository):
    def __init__(self, db: Session, retry_limit: int | None = None):
        self.db = db
        self.retry_limit = retry_limit if retry_limit is not None else config.UPVOTE_RETRY_LIMIT

    def add(
        self,
        question_text: str,
        company: str,
        topic: str,
        role: str,
        difficulty: str,
        submitted_by: int | None,
    ) -> QuestionRecord:
        question = Question(
            question_text=question_text,
            company=company,
            topic=topic,
            role=role,
            difficulty=difficulty,
            submitted_by=submitted_by,
            upvotes=0,
        )

        with store_errors(self.db):
            self.db.add(question)
            self.db.commit()
            self.db.refresh(question)
            return to_question_record(question)

    def get(self, question_id: int) -> QuestionRecord | None:
        with store_errors(self.db):
            question = self.db.get(Question, question_id)
            return to_question_record(question) if question is not None else None

    def update(self, question_id: int, fields: dict[str, Any]) -> QuestionRecord | None:
        with store_errors(self.db):
            question = self.db.get(Question, question_id)
            if question is None:
                return None

            for name, value in fields.items():
                setattr(question, name, value)

            self.db.commit()
            self.db.refresh(question)
            return to_question_record(question)

    def delete(self, question_id: int) -> bool:
        with store_errors(self.db):
            question = self.db.get(Question, question_id)
            if question is None:
                return False

            self.db.delete(question)
            self.db.commit()
            return True

    def toggle_upvote(self, question_id: int, user_id: int) -> UpvoteResult | None:
        for attempt in range(1, self.retry_limit + 1):
            try:
                was_added = self._toggle_once(question_id, user_id)
            except IntegrityError:
                # Another request inserted the same vote first; re-read and flip again.
                self.db.rollback()
                logger.info(
                    "Upvote race on question %s by user %s (attempt %s/%s)",
                    question_id,
                    user_id,
                    attempt,
                    self.retry_limit,
                )
                continue
            except SQLAlchemyError as exc:
                self.db.rollback()
                raise UnavailableError() from exc

            if was_added is None:
                self.db.rollback()
                return None

            with store_errors(self.db):
                self.db.commit()
                question = self.db.get(Question, question_id)
                if question is None:
                    return None
                return UpvoteResult(question=to_question_record(question), was_added=was_added)

        logger.warning("Upvote on question %s gave up after %s attempts", question_id, self.retry_limit)
        raise ConflictError("Could not record the upvote, please retry")

    def _toggle_once(self, question_id: int, user_id: int) -> bool | None:
        locked = self.db.execute(
            select(Question.id).where(Question.id == question_id).with_for_update()
        ).first()
        if locked is None:
            return None

        removed = self.db.execute(
            delete(QuestionUpvote).where(
                QuestionUpvote.question_id == question_id,
                QuestionUpvote.user_id == user_id,
            )
        ).rowcount

        if removed:
            delta = -1
        else:
            self.db.execute(
                insert(QuestionUpvote).values(question_id=question_id, user_id=user_id, created_at=utc_now())
            )
            delta = 1

        self.db.execute(
            update(Question)
            .where(Question.id == question_id)
            .values(upvotes=Question.upvotes + delta, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return delta > 0

    def query(
        self,
        spec: QuestionFilter,
        sort: str,
        offset: int,
        limit: int,
    ) -> tuple[list[QuestionRecord], int]:
        conditions = [getattr(Question, name) == value for name, value in spec.equality_terms().items()]
        if spec.created_from is not None:
            conditions.append(Question.created_at >= spec.created_from)
        if spec.created_to is not None:
            conditions.append(Question.created_at <= spec.created_to)

        with store_errors(self.db):
            total = self.db.scalar(select(func.count()).select_from(Question).where(*conditions))
            questions = self.db.scalars(
                select(Question)
                .where(*conditions)
                .order_by(*SORT_ORDERING.get(sort, SORT_ORDERING[SORT_LATEST]))
                .offset(offset)
                .limit(limit)
            ).all()
            return [to_question_record(question) for question in questions], total or 0

    def search(self, term: str) -> list[QuestionRecord]:
        pattern = f"%{escape_like(term)}%"

        with store_errors(self.db):
            questions = self.db.scalars(
                select(Question)
                .where(
                    or_(
                        Question.question_text.ilike(pattern, escape="\\"),
                        Question.company.ilike(pattern, escape="\\"),
                        Question.topic.ilike(pattern, escape="\\"),
                    )
                )
                .order_by(*SORT_ORDERING[SORT_LATEST])
            ).all()
            return [to_question_record(question) for question in questions]

    def distinct(self, field_name: str) -> list[str]:
        if field_name not in CATEGORY_FIELDS:
            raise ValueError(f"Unsupported category field: {field_name}")

        column = getattr(Question, field_name)
        with store_errors(self.db):
            return list(self.db.scalars(select(column).distinct().order_by(column)).all())
