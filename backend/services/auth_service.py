import logging

from backend.auth.jwt_handler import TokenService
from backend.auth.passwords import Hasher
from backend.core.errors import DuplicateError, UnauthenticatedError
from backend.domain import ROLE_USER, UserRecord
from backend.repositories.base import UserRepository

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(self, users: UserRepository, hasher: Hasher, tokens: TokenService):
        self.users = users
        self.hasher = hasher
        self.tokens = tokens

    def register(self, name: str, email: str, password: str) -> tuple[UserRecord, str]:
        email = normalize_email(email)
        if self.users.find_by_email(email) is not None:
            raise DuplicateError("User already exists")

        user = self.users.add(
            name=name.strip(),
            email=email,
            password_hash=self.hasher.hash(password),
            role=ROLE_USER,
        )
        logger.info("Registered user %s", user.id)
        return user, self.tokens.issue(user.id, user.role)

    def login(self, email: str, password: str) -> tuple[UserRecord, str]:
        user = self.users.find_by_email(normalize_email(email))
        if user is None or not self.hasher.verify(password, user.password_hash):
            logger.info("Failed login attempt")
            raise UnauthenticatedError("Invalid credentials")

        return user, self.tokens.issue(user.id, user.role)
