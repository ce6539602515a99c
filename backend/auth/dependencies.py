import logging
from typing import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth.jwt_handler import TokenError, TokenService, default_token_service
from backend.auth.passwords import BcryptHasher, Hasher
from backend.core.errors import ForbiddenError, UnauthenticatedError
from backend.database import get_db
from backend.domain import Identity
from backend.repositories.base import QuestionRepository, UserRepository
from backend.repositories.sql import SqlQuestionRepository, SqlUserRepository

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

_hasher = BcryptHasher()


class NoCredential(UnauthenticatedError):
    pass


class InvalidCredential(UnauthenticatedError):
    pass


class UnknownSubject(UnauthenticatedError):
    pass


def get_token_service() -> TokenService:
    return default_token_service


def get_hasher() -> Hasher:
    return _hasher


def get_user_repository(db: Session = Depends(get_db)) -> UserRepository:
    return SqlUserRepository(db)


def get_question_repository(db: Session = Depends(get_db)) -> QuestionRepository:
    return SqlQuestionRepository(db)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    tokens: TokenService = Depends(get_token_service),
    users: UserRepository = Depends(get_user_repository),
) -> Identity:
    # Every failure below carries the same client-facing message; only the log says which.
    if credentials is None or not credentials.credentials:
        logger.info("Rejected %s: no credential", request.url.path)
        raise NoCredential()

    try:
        claims = tokens.verify(credentials.credentials)
    except TokenError as exc:
        logger.warning("Rejected %s: %s (%s)", request.url.path, exc.__class__.__name__, exc)
        raise InvalidCredential() from exc

    user = users.get(claims.user_id)
    if user is None:
        logger.warning("Rejected %s: token subject %s no longer exists", request.url.path, claims.user_id)
        raise UnknownSubject()

    identity = user.identity()
    request.state.user = identity
    return identity


def require_roles(*roles: str) -> Callable[..., Identity]:
    allowed = frozenset(roles)

    def _guard(user: Identity = Depends(get_current_user)) -> Identity:
        if user.role not in allowed:
            raise ForbiddenError(f"Role {user.role} is not authorized to access this route")
        return user

    return _guard
