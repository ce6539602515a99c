from abc import ABC, abstractmethod
from typing import Any

from backend.domain import QuestionFilter, QuestionRecord, UpvoteResult, UserRecord


class UserRepository(ABC):
    """
    Credential store used by registration, login and the auth gate.
    """

    @abstractmethod
    def get(self, user_id: int) -> UserRecord | None:
        pass

    @abstractmethod
    def find_by_email(self, email: str) -> UserRecord | None:
        pass

    @abstractmethod
    def add(self, name: str, email: str, password_hash: str, role: str) -> UserRecord:
        """Persist a new user. Raises DuplicateError if the email is taken."""
        pass


class QuestionRepository(ABC):
    """
    Question store. Implementations must keep ``upvotes`` equal to the size
    of ``upvoted_by`` for every question.
    """

    @abstractmethod
    def add(
        self,
        question_text: str,
        company: str,
        topic: str,
        role: str,
        difficulty: str,
        submitted_by: int | None,
    ) -> QuestionRecord:
        pass

    @abstractmethod
    def get(self, question_id: int) -> QuestionRecord | None:
        pass

    @abstractmethod
    def update(self, question_id: int, fields: dict[str, Any]) -> QuestionRecord | None:
        """Apply ``fields`` and return the stored question, or None if it is gone."""
        pass

    @abstractmethod
    def delete(self, question_id: int) -> bool:
        pass

    @abstractmethod
    def toggle_upvote(self, question_id: int, user_id: int) -> UpvoteResult | None:
        """Flip one user's vote as a single atomic unit.

        Returns None when the question does not exist. Raises ConflictError
        when concurrent writers keep winning and the retry budget runs out.
        """
        pass

    @abstractmethod
    def query(
        self,
        spec: QuestionFilter,
        sort: str,
        offset: int,
        limit: int,
    ) -> tuple[list[QuestionRecord], int]:
        """Return one window of the filtered, sorted questions and the filtered total."""
        pass

    @abstractmethod
    def search(self, term: str) -> list[QuestionRecord]:
        """Case-insensitive substring match on text, company or topic; newest first."""
        pass

    @abstractmethod
    def distinct(self, field_name: str) -> list[str]:
        pass
