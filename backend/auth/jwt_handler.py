from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt

from backend.core import config


class TokenError(Exception):
    """Token could not be accepted. Never shown to clients as-is."""


class InvalidToken(TokenError):
    pass


class ExpiredToken(TokenError):
    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str


class Signer(ABC):
    @abstractmethod
    def sign(self, payload: dict[str, Any]) -> str:
        pass

    @abstractmethod
    def verify(self, token: str) -> dict[str, Any]:
        """Return the payload, or raise InvalidToken / ExpiredToken."""
        pass


class JwtSigner(Signer):
    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def sign(self, payload: dict[str, Any]) -> str:
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredToken("token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(str(exc)) from exc


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    def __init__(
        self,
        signer: Signer,
        lifetime: timedelta | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.signer = signer
        self.lifetime = lifetime if lifetime is not None else timedelta(minutes=config.JWT_EXPIRES_MINUTES)
        self.clock = clock

    def issue(self, user_id: int, role: str) -> str:
        issued_at = self.clock()
        payload = {
            "sub": str(user_id),
            "role": role,
            "iat": issued_at,
            "exp": issued_at + self.lifetime,
        }
        return self.signer.sign(payload)

    def verify(self, token: str) -> TokenClaims:
        payload = self.signer.verify(token)

        subject = payload.get("sub")
        role = payload.get("role")
        if not isinstance(subject, str) or not subject.isdigit():
            raise InvalidToken("malformed subject")
        if not isinstance(role, str) or not role:
            raise InvalidToken("missing role")

        return TokenClaims(user_id=int(subject), role=role)


default_token_service = TokenService(JwtSigner(config.JWT_SECRET_KEY, config.JWT_ALGORITHM))
