from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from backend.auth.dependencies import get_question_repository, require_roles
from backend.core import config
from backend.core.errors import BadRequestError
from backend.core.rate_limit import strict_limiter
from backend.core.timeutil import as_utc, to_naive_utc
from backend.domain import (
    DIFFICULTIES,
    ROLE_ADMIN,
    ROLE_USER,
    SORT_LATEST,
    Identity,
    QuestionFilter,
    QuestionRecord,
)
from backend.repositories.base import QuestionRepository
from backend.services.question_service import QuestionService

router = APIRouter(tags=['questions'])

MIN_QUESTION_LENGTH = 10

member = require_roles(ROLE_USER, ROLE_ADMIN)


def normalize_difficulty(value: str) -> str:
    normalized = value.strip().capitalize()
    if normalized not in DIFFICULTIES:
        raise ValueError(f"Difficulty must be {', '.join(DIFFICULTIES[:-1])}, or {DIFFICULTIES[-1]}")
    return normalized


def _required_text(value: str, label: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f'{label} is required')
    return normalized


def _question_text(value: str) -> str:
    normalized = _required_text(value, 'Question text')
    if len(normalized) < MIN_QUESTION_LENGTH:
        raise ValueError(f'Question must be at least {MIN_QUESTION_LENGTH} characters')
    return normalized


class CreateQuestionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_text: str = Field(alias='questionText')
    company: str
    topic: str
    role: str
    difficulty: str
    anonymous: bool = False

    @field_validator('question_text')
    @classmethod
    def validate_question_text(cls, value: str) -> str:
        return _question_text(value)

    @field_validator('company', 'topic', 'role')
    @classmethod
    def validate_category(cls, value: str, info: ValidationInfo) -> str:
        return _required_text(value, info.field_name.capitalize())

    @field_validator('difficulty')
    @classmethod
    def validate_difficulty(cls, value: str) -> str:
        return normalize_difficulty(value)


class UpdateQuestionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_text: str | None = Field(default=None, alias='questionText')
    topic: str | None = None
    difficulty: str | None = None

    @field_validator('question_text')
    @classmethod
    def validate_question_text(cls, value: str | None) -> str | None:
        return None if value is None else _question_text(value)

    @field_validator('topic')
    @classmethod
    def validate_topic(cls, value: str | None) -> str | None:
        return None if value is None else _required_text(value, 'Topic')

    @field_validator('difficulty')
    @classmethod
    def validate_difficulty(cls, value: str | None) -> str | None:
        return None if value is None else normalize_difficulty(value)


class SubmitterResponse(BaseModel):
    id: int
    name: str | None = None


class QuestionResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    question_text: str
    company: str
    topic: str
    role: str
    difficulty: str
    submitted_by: SubmitterResponse | None = None
    upvotes: int
    upvoted_by: list[int]
    created_at: datetime | None = None
    updated_at: datetime | None = None


def serialize_question(question: QuestionRecord) -> dict:
    submitter = None
    if question.submitted_by is not None:
        submitter = SubmitterResponse(id=question.submitted_by, name=question.submitter_name)

    return QuestionResponse(
        id=question.id,
        question_text=question.question_text,
        company=question.company,
        topic=question.topic,
        role=question.role,
        difficulty=question.difficulty,
        submitted_by=submitter,
        upvotes=question.upvotes,
        upvoted_by=sorted(question.upvoted_by),
        created_at=as_utc(question.created_at),
        updated_at=as_utc(question.updated_at),
    ).model_dump(by_alias=True, mode='json')


def parse_date_param(value: str | None, name: str, end_of_day: bool = False) -> datetime | None:
    if value is None or not value.strip():
        return None

    raw = value.strip()
    try:
        if len(raw) == 10:
            day = date.fromisoformat(raw)
            return datetime.combine(day, time.max if end_of_day else time.min)
        return to_naive_utc(datetime.fromisoformat(raw.replace('Z', '+00:00')))
    except ValueError as exc:
        raise BadRequestError(
            f'{name} must be an ISO date (YYYY-MM-DD) or datetime',
            errors=[{'field': name, 'message': 'Invalid date'}],
        ) from exc


def _optional_filter(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


def _difficulty_filter(value: str | None) -> str | None:
    value = _optional_filter(value)
    if value is None:
        return None
    # Unknown levels stay as plain equality terms and simply match nothing.
    try:
        return normalize_difficulty(value)
    except ValueError:
        return value


def get_question_service(questions: QuestionRepository = Depends(get_question_repository)) -> QuestionService:
    return QuestionService(questions)


@router.get('/search')
def search_questions(
    q: str | None = Query(default=None),
    service: QuestionService = Depends(get_question_service),
):
    questions = service.search(q)
    return {
        'success': True,
        'message': 'Questions fetched successfully' if questions else 'No questions found',
        'count': len(questions),
        'data': [serialize_question(question) for question in questions],
    }


@router.get('')
def list_questions(
    company: str | None = Query(default=None),
    topic: str | None = Query(default=None),
    role: str | None = Query(default=None),
    difficulty: str | None = Query(default=None),
    sort: str = Query(default=SORT_LATEST),
    from_date: str | None = Query(default=None, alias='fromDate'),
    to_date: str | None = Query(default=None, alias='toDate'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    service: QuestionService = Depends(get_question_service),
):
    spec = QuestionFilter(
        company=_optional_filter(company),
        topic=_optional_filter(topic),
        role=_optional_filter(role),
        difficulty=_difficulty_filter(difficulty),
        created_from=parse_date_param(from_date, 'fromDate'),
        created_to=parse_date_param(to_date, 'toDate', end_of_day=True),
    )
    result = service.list_questions(spec, sort=sort.strip().lower(), page=page, page_size=limit)

    return {
        'success': True,
        'count': result.total_count,
        'page': result.page,
        'pages': result.page_count,
        'data': [serialize_question(question) for question in result.items],
    }


@router.post('', status_code=status.HTTP_201_CREATED)
def create_question(
    data: CreateQuestionRequest,
    current_user: Identity = Depends(member),
    service: QuestionService = Depends(get_question_service),
):
    question = service.create(
        current_user,
        question_text=data.question_text,
        company=data.company,
        topic=data.topic,
        role=data.role,
        difficulty=data.difficulty,
        anonymous=data.anonymous,
    )
    return {
        'success': True,
        'message': 'Question created successfully',
        'data': serialize_question(question),
    }


@router.get('/{question_id}')
def get_question(question_id: int, service: QuestionService = Depends(get_question_service)):
    return {
        'success': True,
        'message': 'Question fetched successfully',
        'data': serialize_question(service.get(question_id)),
    }


@router.put('/{question_id}', dependencies=[Depends(strict_limiter)])
def update_question(
    question_id: int,
    data: UpdateQuestionRequest,
    current_user: Identity = Depends(member),
    service: QuestionService = Depends(get_question_service),
):
    question = service.update(question_id, current_user, data.model_dump(exclude_none=True))
    return {
        'success': True,
        'message': 'Question updated successfully',
        'data': serialize_question(question),
    }


@router.delete('/{question_id}', dependencies=[Depends(strict_limiter)])
def delete_question(
    question_id: int,
    current_user: Identity = Depends(member),
    service: QuestionService = Depends(get_question_service),
):
    service.delete(question_id, current_user)
    return {'success': True, 'message': 'Question deleted'}


@router.post('/{question_id}/upvote')
def upvote_question(
    question_id: int,
    current_user: Identity = Depends(member),
    service: QuestionService = Depends(get_question_service),
):
    result = service.toggle_upvote(question_id, current_user.id)
    return {
        'success': True,
        'message': 'Question upvoted' if result.was_added else 'Upvote removed',
        'upvotes': result.question.upvotes,
        'upvoted': result.was_added,
    }


@router.get('/{question_id}/upvotes')
def get_question_upvotes(question_id: int, service: QuestionService = Depends(get_question_service)):
    return {
        'success': True,
        'message': 'Upvotes fetched successfully',
        'upvotes': service.get_upvotes(question_id),
    }
