"""Identification token generator tests."""

import math
from datetime import UTC, datetime, timedelta

import pytest

from eloquentlog.modules.user_emails.application.token_generator import (
    MIN_ENTROPY_BITS,
    TOKEN_ALPHABET,
    IdentificationTokenGenerator,
)


def _fixed_clock():
    return datetime(2026, 1, 6, 9, 0, tzinfo=UTC)


class TestIdentificationTokenGenerator:
    def test_token_has_fixed_length_and_alphabet(self):
        generator = IdentificationTokenGenerator(length=128, clock=_fixed_clock)

        generated = generator.generate()

        assert len(generated.token) == 128
        assert set(generated.token) <= set(TOKEN_ALPHABET)

    def test_expiry_is_now_plus_validity(self):
        generator = IdentificationTokenGenerator(
            validity=timedelta(hours=24), clock=_fixed_clock
        )

        generated = generator.generate()

        assert generated.expires_at == _fixed_clock() + timedelta(hours=24)

    def test_tokens_differ(self):
        generator = IdentificationTokenGenerator()

        tokens = {generator.generate().token for _ in range(50)}

        assert len(tokens) == 50

    def test_rejects_length_below_entropy_floor(self):
        too_short = math.ceil(MIN_ENTROPY_BITS / math.log2(len(TOKEN_ALPHABET))) - 1

        with pytest.raises(ValueError):
            IdentificationTokenGenerator(length=too_short)

    def test_minimum_length_is_accepted(self):
        shortest = math.ceil(MIN_ENTROPY_BITS / math.log2(len(TOKEN_ALPHABET)))

        assert len(IdentificationTokenGenerator(length=shortest).generate().token) == shortest

    def test_rejects_non_positive_validity(self):
        with pytest.raises(ValueError):
            IdentificationTokenGenerator(validity=timedelta(0))

    def test_from_settings(self, test_settings):
        generator = IdentificationTokenGenerator.from_settings(
            test_settings, clock=_fixed_clock
        )

        assert generator.length == test_settings.IDENTIFICATION_TOKEN_LENGTH
        assert generator.validity == timedelta(
            hours=test_settings.IDENTIFICATION_TOKEN_EXPIRE_HOURS
        )
