from backend.core.errors import ForbiddenError
from backend.domain import Identity, QuestionRecord


def can_mutate(question: QuestionRecord, actor: Identity) -> bool:
    """Admins may change any question; everyone else only questions they own.

    Anonymous questions have no owner, so only the admin branch applies to them.
    """
    if actor.is_admin:
        return True
    return question.submitted_by is not None and question.submitted_by == actor.id


def ensure_can_mutate(question: QuestionRecord, actor: Identity, action: str) -> None:
    if not can_mutate(question, actor):
        raise ForbiddenError(f"Not authorized to {action} this question")
