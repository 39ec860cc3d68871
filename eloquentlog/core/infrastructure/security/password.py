"""Password hashing."""

import base64
import hashlib
from dataclasses import dataclass

import bcrypt

from eloquentlog.core.config import Settings, settings

MIN_ROUNDS = 4
MAX_ROUNDS = 31


@dataclass(frozen=True)
class PasswordVaultConfig:
    """Immutable hashing configuration."""

    rounds: int = 12

    @classmethod
    def from_settings(cls, config: Settings) -> "PasswordVaultConfig":
        return cls(rounds=config.PASSWORD_HASH_ROUNDS)


class PasswordVault:
    """Hashes and verifies user passwords with bcrypt.

    bcrypt only looks at the first 72 bytes of its input, so the plaintext is
    reduced to a base64 SHA-256 digest first. Every byte of the password then
    contributes to the hash.
    """

    def __init__(self, config: PasswordVaultConfig | None = None):
        self._config = config or PasswordVaultConfig()
        if not MIN_ROUNDS <= self._config.rounds <= MAX_ROUNDS:
            raise ValueError(
                f"bcrypt rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}"
            )

    @staticmethod
    def _prepare(plaintext: str) -> bytes:
        digest = hashlib.sha256(plaintext.encode("utf-8")).digest()
        return base64.b64encode(digest)

    def hash(self, plaintext: str) -> str:
        """Hash ``plaintext`` with a fresh salt."""
        salt = bcrypt.gensalt(rounds=self._config.rounds)
        return bcrypt.hashpw(self._prepare(plaintext), salt).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Check ``plaintext`` against a stored hash.

        A hash that bcrypt cannot parse never verifies.
        """
        try:
            return bcrypt.checkpw(self._prepare(plaintext), hashed.encode("utf-8"))
        except ValueError:
            return False


def get_password_vault() -> PasswordVault:
    """Get a password vault configured from settings."""
    return PasswordVault(PasswordVaultConfig.from_settings(settings))
