"""Question lifecycle: submission, browsing, ownership-checked edits, upvotes."""

import logging
from typing import Any

from backend.core import config
from backend.core.errors import BadRequestError, NotFoundError
from backend.domain import (
    CATEGORY_FIELDS,
    EDITABLE_QUESTION_FIELDS,
    SORT_LATEST,
    SORT_OPTIONS,
    Identity,
    QuestionFilter,
    QuestionPage,
    QuestionRecord,
    UpvoteResult,
)
from backend.repositories.base import QuestionRepository
from backend.services.policy import ensure_can_mutate

logger = logging.getLogger(__name__)

QUESTION_NOT_FOUND = "Question not found"


class QuestionService:
    def __init__(self, questions: QuestionRepository, max_page_size: int | None = None):
        self.questions = questions
        self.max_page_size = max_page_size if max_page_size is not None else config.MAX_PAGE_SIZE

    def create(
        self,
        actor: Identity,
        question_text: str,
        company: str,
        topic: str,
        role: str,
        difficulty: str,
        anonymous: bool = False,
    ) -> QuestionRecord:
        question = self.questions.add(
            question_text=question_text,
            company=company,
            topic=topic,
            role=role,
            difficulty=difficulty,
            submitted_by=None if anonymous else actor.id,
        )
        logger.info("Question %s submitted (anonymous=%s)", question.id, anonymous)
        return question

    def list_questions(
        self,
        spec: QuestionFilter | None = None,
        sort: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> QuestionPage:
        # Unrecognised sort keys fall back to newest first.
        if sort not in SORT_OPTIONS:
            sort = SORT_LATEST
        page_size = page_size if page_size is not None else config.DEFAULT_PAGE_SIZE

        if page < 1:
            raise BadRequestError("Page must be a positive integer")
        if page_size < 1 or page_size > self.max_page_size:
            raise BadRequestError(f"Limit must be between 1 and {self.max_page_size}")

        spec = spec or QuestionFilter()
        if spec.created_from and spec.created_to and spec.created_from > spec.created_to:
            raise BadRequestError("fromDate must not be after toDate")

        items, total = self.questions.query(spec, sort, offset=(page - 1) * page_size, limit=page_size)
        return QuestionPage(items=items, total_count=total, page=page, page_size=page_size)

    def search(self, term: str | None) -> list[QuestionRecord]:
        if term is None or not term.strip():
            raise BadRequestError("Search query is required")
        return self.questions.search(term.strip())

    def get(self, question_id: int) -> QuestionRecord:
        question = self.questions.get(question_id)
        if question is None:
            raise NotFoundError(QUESTION_NOT_FOUND)
        return question

    def update(self, question_id: int, actor: Identity, changes: dict[str, Any]) -> QuestionRecord:
        question = self.get(question_id)
        ensure_can_mutate(question, actor, "update")

        fields = {
            name: value
            for name, value in changes.items()
            if name in EDITABLE_QUESTION_FIELDS and value is not None
        }
        if not fields:
            return question

        updated = self.questions.update(question_id, fields)
        if updated is None:
            raise NotFoundError(QUESTION_NOT_FOUND)

        logger.info("Question %s updated by user %s: %s", question_id, actor.id, sorted(fields))
        return updated

    def delete(self, question_id: int, actor: Identity) -> None:
        question = self.get(question_id)
        ensure_can_mutate(question, actor, "delete")

        if not self.questions.delete(question_id):
            raise NotFoundError(QUESTION_NOT_FOUND)
        logger.info("Question %s deleted by user %s", question_id, actor.id)

    def toggle_upvote(self, question_id: int, actor_id: int) -> UpvoteResult:
        result = self.questions.toggle_upvote(question_id, actor_id)
        if result is None:
            raise NotFoundError(QUESTION_NOT_FOUND)
        return result

    def get_upvotes(self, question_id: int) -> int:
        return self.get(question_id).upvotes

    def categories(self) -> dict[str, list[str]]:
        return {field_name: self.questions.distinct(field_name) for field_name in CATEGORY_FIELDS}
