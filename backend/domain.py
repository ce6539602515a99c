"""Plain records passed between the services and the storage adapters."""

from dataclasses import dataclass, field
from datetime import datetime

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

DIFFICULTIES = ("Easy", "Medium", "Hard")

SORT_LATEST = "latest"
SORT_OLDEST = "oldest"
SORT_UPVOTES = "upvotes"
SORT_OPTIONS = (SORT_LATEST, SORT_OLDEST, SORT_UPVOTES)

# Fields a question owner (or an admin) may change after submission.
EDITABLE_QUESTION_FIELDS = ("question_text", "topic", "difficulty")

CATEGORY_FIELDS = ("topic", "company", "role")


@dataclass(frozen=True)
class UserRecord:
    id: int
    name: str
    email: str
    password_hash: str
    role: str = ROLE_USER
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def identity(self) -> "Identity":
        return Identity(id=self.id, name=self.name, email=self.email, role=self.role, created_at=self.created_at)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller. Never carries the password hash."""

    id: int
    name: str
    email: str
    role: str
    created_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class QuestionRecord:
    id: int
    question_text: str
    company: str
    topic: str
    role: str
    difficulty: str
    submitted_by: int | None = None
    submitter_name: str | None = None
    upvotes: int = 0
    upvoted_by: frozenset[int] = field(default_factory=frozenset)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class QuestionFilter:
    """Declarative constraints for listing questions.

    Equality on the category fields, and an inclusive range on the creation
    time. ``None`` means "no constraint".
    """

    company: str | None = None
    topic: str | None = None
    role: str | None = None
    difficulty: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    def equality_terms(self) -> dict[str, str]:
        terms = {
            "company": self.company,
            "topic": self.topic,
            "role": self.role,
            "difficulty": self.difficulty,
        }
        return {name: value for name, value in terms.items() if value is not None}


@dataclass(frozen=True)
class QuestionPage:
    items: list[QuestionRecord]
    total_count: int
    page: int
    page_size: int

    @property
    def page_count(self) -> int:
        return -(-self.total_count // self.page_size)


@dataclass(frozen=True)
class UpvoteResult:
    question: QuestionRecord
    was_added: bool
