from abc import ABC, abstractmethod

import bcrypt

from backend.core import config

# bcrypt only looks at the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


class Hasher(ABC):
    @abstractmethod
    def hash(self, password: str) -> str:
        pass

    @abstractmethod
    def verify(self, password: str, password_hash: str) -> bool:
        pass


class BcryptHasher(Hasher):
    def __init__(self, rounds: int | None = None):
        self.rounds = rounds or config.BCRYPT_ROUNDS

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt"""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash"""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False
