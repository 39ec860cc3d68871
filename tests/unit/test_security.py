"""Session token and password vault tests."""

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from eloquentlog.core.infrastructure.security.jwt import (
    MalformedSessionTokenError,
    SessionTokenAuthority,
    SessionTokenConfig,
    SessionTokenErrorKind,
    SessionTokenExpiredError,
    SessionTokenSignatureInvalidError,
)
from eloquentlog.core.infrastructure.security.password import (
    PasswordVault,
    PasswordVaultConfig,
)

SECRET = "test-secret-key-for-testing-only"


@pytest.fixture
def authority() -> SessionTokenAuthority:
    return SessionTokenAuthority(
        SessionTokenConfig(secret=SECRET, issuer="eloquentlog-test")
    )


@pytest.fixture(scope="module")
def vault() -> PasswordVault:
    # 最低 cost，加快测试
    return PasswordVault(PasswordVaultConfig(rounds=4))


class TestSessionTokenAuthority:
    def test_round_trip_returns_claims(self, authority):
        claims = {"role": "admin", "scopes": ["read", "write"]}

        token = authority.issue(42, claims, timedelta(minutes=5))
        payload = authority.verify(token)

        assert payload.user_id == "42"
        assert payload.claims == claims
        assert payload.expires_at > datetime.now(UTC)

    def test_default_ttl_applies(self, authority):
        payload = authority.verify(authority.issue("u-1"))

        assert payload.claims == {}
        assert payload.expires_at - payload.issued_at == timedelta(days=1)

    def test_expired_token(self, authority):
        issued_at = datetime.now(UTC) - timedelta(hours=2)
        token = authority.issue("u-1", {"a": 1}, timedelta(hours=1), now=issued_at)

        with pytest.raises(SessionTokenExpiredError) as exc_info:
            authority.verify(token)
        assert exc_info.value.kind == SessionTokenErrorKind.EXPIRED

    def test_signature_from_other_secret(self, authority):
        other = SessionTokenAuthority(
            SessionTokenConfig(secret="another-secret-key-long-enough-for-hs256", issuer="eloquentlog-test")
        )
        token = other.issue("u-1", {}, timedelta(minutes=5))

        with pytest.raises(SessionTokenSignatureInvalidError) as exc_info:
            authority.verify(token)
        assert exc_info.value.kind == SessionTokenErrorKind.SIGNATURE_INVALID

    def test_tampered_payload_fails_signature(self, authority):
        header, payload, signature = authority.issue("u-1", {}, timedelta(minutes=5)).split(".")
        forged_payload = jwt.encode(
            {"sub": "admin", "iss": "eloquentlog-test", "iat": 0, "exp": 4102444800},
            "forged-secret-key-long-enough-for-hs256",
            algorithm="HS256",
        ).split(".")[1]

        with pytest.raises(SessionTokenSignatureInvalidError):
            authority.verify(f"{header}.{forged_payload}.{signature}")

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c", "a.b"])
    def test_malformed(self, authority, token):
        with pytest.raises(MalformedSessionTokenError) as exc_info:
            authority.verify(token)
        assert exc_info.value.kind == SessionTokenErrorKind.MALFORMED

    def test_wrong_issuer_is_malformed(self, authority):
        other = SessionTokenAuthority(SessionTokenConfig(secret=SECRET, issuer="someone-else"))

        with pytest.raises(MalformedSessionTokenError):
            authority.verify(other.issue("u-1", {}, timedelta(minutes=5)))

    def test_missing_subject_is_malformed(self, authority):
        now = datetime.now(UTC)
        token = jwt.encode(
            {"iss": "eloquentlog-test", "iat": now, "exp": now + timedelta(minutes=5)},
            SECRET,
            algorithm="HS256",
        )

        with pytest.raises(MalformedSessionTokenError):
            authority.verify(token)

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            SessionTokenAuthority(SessionTokenConfig(secret="", issuer="x"))

    def test_config_from_settings(self, test_settings):
        config = SessionTokenConfig.from_settings(test_settings)

        assert config.secret == test_settings.SECRET_KEY
        assert config.default_ttl == timedelta(
            minutes=test_settings.SESSION_TOKEN_EXPIRE_MINUTES
        )


class TestPasswordVault:
    @pytest.mark.parametrize(
        "password",
        [
            "password",
            "",
            " ",
            "correct horse battery staple",
            "密码安全测试",
            "a" * 72 + "tail-beyond-bcrypt-limit",
            "!@#$%^&*()_+-=[]{}|;':\",./<>?`~",
        ],
    )
    def test_hash_then_verify(self, vault, password):
        hashed = vault.hash(password)

        assert hashed != password
        assert vault.verify(password, hashed)

    def test_wrong_password(self, vault):
        hashed = vault.hash("password")

        assert not vault.verify("Password", hashed)
        assert not vault.verify("password ", hashed)

    def test_long_passwords_differ_after_72_bytes(self, vault):
        prefix = "x" * 72
        hashed = vault.hash(prefix + "one")

        assert not vault.verify(prefix + "two", hashed)

    def test_salted(self, vault):
        assert vault.hash("same") != vault.hash("same")

    def test_cost_factor_is_encoded(self, vault):
        assert vault.hash("password").startswith("$2b$04$")

    def test_unparseable_hash_never_verifies(self, vault):
        assert not vault.verify("password", "not-a-bcrypt-hash")

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_rejects_out_of_range_rounds(self, rounds):
        with pytest.raises(ValueError):
            PasswordVault(PasswordVaultConfig(rounds=rounds))
