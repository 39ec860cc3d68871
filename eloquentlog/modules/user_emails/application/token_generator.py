"""Identification token generation."""

import math
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from eloquentlog.core.config import Settings, settings
from eloquentlog.core.domain.base_entity import utc_now

TOKEN_ALPHABET = string.ascii_letters + string.digits
MIN_ENTROPY_BITS = 128


@dataclass(frozen=True)
class GeneratedToken:
    token: str
    expires_at: datetime


class IdentificationTokenGenerator:
    """Produces unguessable, fixed-length identification tokens.

    Tokens are drawn from ``secrets`` over an alphanumeric alphabet, so the
    entropy is ``length * log2(62)`` bits. Collisions are not checked for.
    """

    def __init__(
        self,
        length: int = 128,
        validity: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ):
        if length * math.log2(len(TOKEN_ALPHABET)) < MIN_ENTROPY_BITS:
            raise ValueError(
                f"token length {length} gives less than {MIN_ENTROPY_BITS} bits"
            )
        if validity <= timedelta(0):
            raise ValueError("token validity must be positive")
        self.length = length
        self.validity = validity
        self._clock = clock

    @classmethod
    def from_settings(
        cls, config: Settings, clock: Callable[[], datetime] = utc_now
    ) -> "IdentificationTokenGenerator":
        return cls(
            length=config.IDENTIFICATION_TOKEN_LENGTH,
            validity=timedelta(hours=config.IDENTIFICATION_TOKEN_EXPIRE_HOURS),
            clock=clock,
        )

    def generate(self) -> GeneratedToken:
        token = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(self.length))
        return GeneratedToken(token=token, expires_at=self._clock() + self.validity)


def get_identification_token_generator() -> IdentificationTokenGenerator:
    return IdentificationTokenGenerator.from_settings(settings)
