"""Tests for token signing, verification and bearer extraction."""

import base64
import json
import time
from datetime import timedelta

import jwt
import pytest

from tokengate.core.errors import (
    ConfigurationError,
    HeaderMismatchError,
    InvalidHeaderFormatError,
    InvalidSignatureError,
    IssuerNotAllowedError,
    MalformedTokenError,
    MissingIssuerError,
    MissingKeyIdError,
    TokenExpiredError,
    UnknownKeyIdError,
)
from tokengate.crypto.codec import (
    decode_header,
    extract_bearer_token,
    sign_token,
    verify_token,
)
from tokengate.crypto.secret_store import SecretStore
from tokengate.crypto.types import HeaderClaims, SignOptions, VerifyConstraints

HOUR = timedelta(hours=1)


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _sign(store: SecretStore, kid: str = "k1", **kwargs: object) -> str:
    options = SignOptions(**kwargs)  # type: ignore[arg-type]
    return sign_token({"sub": "user-1"}, store.secrets[kid], kid, HOUR, options)


class TestSignToken:
    """Tests for token signing."""

    def test_creates_three_segments(self, secret_store: SecretStore) -> None:
        token = _sign(secret_store)
        assert token.count(".") == 2

    def test_header_has_kid_and_alg(self, secret_store: SecretStore) -> None:
        token = _sign(secret_store, kid="k2", algorithm="HS384")
        header = jwt.get_unverified_header(token)
        assert header["kid"] == "k2"
        assert header["alg"] == "HS384"

    def test_embeds_standard_claims(self, secret_store: SecretStore) -> None:
        token = _sign(secret_store, issuer="svc-a", audience="api")
        claims = jwt.decode(token, options={"verify_signature": False})
        assert claims["iss"] == "svc-a"
        assert claims["aud"] == "api"
        assert claims["exp"] - claims["iat"] == int(HOUR.total_seconds())

    def test_writes_header_claims(self, secret_store: SecretStore) -> None:
        claims = HeaderClaims(typ="at+jwt", cty="json", env="prod")
        token = _sign(secret_store, header_claims=claims)
        header = jwt.get_unverified_header(token)
        assert header["typ"] == "at+jwt"
        assert header["cty"] == "json"
        assert header["env"] == "prod"

    def test_unsupported_algorithm_is_configuration_error(
        self, secret_store: SecretStore
    ) -> None:
        with pytest.raises(ConfigurationError):
            _sign(secret_store, algorithm="HS999")


class TestVerifyToken:
    """Tests for the verification pipeline."""

    def test_round_trip(self, secret_store: SecretStore) -> None:
        token = sign_token(
            {"sub": "user-1", "role": "admin"}, secret_store.secrets["k1"], "k1", HOUR
        )
        claims = verify_token(token, secret_store)
        assert claims["sub"] == "user-1"
        assert claims["role"] == "admin"
        assert "exp" in claims
        assert "iat" in claims

    @pytest.mark.parametrize("claims", [{"sub": 123}, {"jti": 5}, {"sub": ["a", "b"]}])
    def test_non_string_sub_and_jti_round_trip(
        self, secret_store: SecretStore, claims: dict[str, object]
    ) -> None:
        token = sign_token(claims, secret_store.secrets["k1"], "k1", HOUR)
        decoded = verify_token(token, secret_store)
        for name, value in claims.items():
            assert decoded[name] == value

    def test_caller_iat_is_kept(self, secret_store: SecretStore) -> None:
        issued = int(time.time()) - 600
        token = sign_token(
            {"sub": "x", "iat": issued}, secret_store.secrets["k1"], "k1", HOUR
        )
        claims = verify_token(token, secret_store)
        assert claims["iat"] == issued
        assert claims["exp"] == issued + int(HOUR.total_seconds())

    def test_caller_iat_counts_toward_expiry(self, secret_store: SecretStore) -> None:
        issued = int(time.time()) - 7200
        token = sign_token(
            {"sub": "x", "iat": issued}, secret_store.secrets["k1"], "k1", HOUR
        )
        with pytest.raises(TokenExpiredError):
            verify_token(token, secret_store)

    @pytest.mark.parametrize("iat", ["yesterday", True, None])
    def test_non_numeric_iat_rejected_at_signing(
        self, secret_store: SecretStore, iat: object
    ) -> None:
        with pytest.raises(ValueError, match="iat"):
            sign_token({"iat": iat}, secret_store.secrets["k1"], "k1", HOUR)

    @pytest.mark.parametrize("token", ["abc", "a.b", "a.b.c.d", "a..c", ".b.c"])
    def test_wrong_segment_count_is_malformed(
        self, secret_store: SecretStore, token: str
    ) -> None:
        with pytest.raises(MalformedTokenError):
            verify_token(token, secret_store)

    def test_undecodable_header_is_malformed(self, secret_store: SecretStore) -> None:
        token = f"{_b64(b'not json')}.e30.sig"
        with pytest.raises(MalformedTokenError):
            verify_token(token, secret_store)

    def test_non_object_header_is_malformed(self, secret_store: SecretStore) -> None:
        with pytest.raises(MalformedTokenError):
            decode_header(f"{_b64(b'[1, 2]')}.e30.sig")

    def test_missing_kid(self, secret_store: SecretStore) -> None:
        token = jwt.encode({"sub": "x"}, secret_store.secrets["k1"], algorithm="HS256")
        with pytest.raises(MissingKeyIdError):
            verify_token(token, secret_store)

    def test_unknown_kid(self, secret_store: SecretStore) -> None:
        token = sign_token({"sub": "x"}, "some-other-secret-" * 4, "k9", HOUR)
        with pytest.raises(UnknownKeyIdError) as exc_info:
            verify_token(token, secret_store)
        assert exc_info.value.kid == "k9"

    def test_wrong_secret_is_invalid_signature(
        self, secret_store: SecretStore
    ) -> None:
        token = sign_token({"sub": "x"}, secret_store.secrets["k2"], "k1", HOUR)
        with pytest.raises(InvalidSignatureError):
            verify_token(token, secret_store)

    def test_tampered_payload_is_invalid_signature(
        self, secret_store: SecretStore
    ) -> None:
        header, _, signature = _sign(secret_store).split(".")
        forged = _b64(json.dumps({"sub": "admin", "exp": 9999999999}).encode())
        with pytest.raises(InvalidSignatureError):
            verify_token(f"{header}.{forged}.{signature}", secret_store)

    def test_disallowed_algorithm_is_invalid_signature(
        self, secret_store: SecretStore
    ) -> None:
        token = _sign(secret_store, algorithm="HS384")
        with pytest.raises(InvalidSignatureError):
            verify_token(token, secret_store, VerifyConstraints(algorithms=("HS256",)))

    def test_zero_lifetime_is_expired(self, secret_store: SecretStore) -> None:
        token = sign_token(
            {"sub": "x"}, secret_store.secrets["k1"], "k1", timedelta(0)
        )
        with pytest.raises(TokenExpiredError) as exc_info:
            verify_token(token, secret_store)
        assert exc_info.value.expired_at.tzinfo is not None
        assert "Token expired at" in exc_info.value.describe(True)
        assert exc_info.value.describe(False) == "Token has expired"

    def test_long_lifetime_verifies(self, secret_store: SecretStore) -> None:
        token = sign_token(
            {"sub": "x"}, secret_store.secrets["k1"], "k1", timedelta(days=30)
        )
        assert verify_token(token, secret_store)["sub"] == "x"


class TestKeyRotation:
    """Tokens verify by kid, independent of the default key."""

    def test_old_key_still_verifies_after_default_changes(
        self, secret_store: SecretStore
    ) -> None:
        token = _sign(secret_store, kid="k1")
        rotated = SecretStore(secret_store.secrets, "k2")
        assert verify_token(token, rotated)["sub"] == "user-1"

    def test_removed_key_is_unknown(self, secret_store: SecretStore) -> None:
        token = _sign(secret_store, kid="k1")
        pruned = SecretStore({"k2": secret_store.secrets["k2"]}, "k2")
        with pytest.raises(UnknownKeyIdError):
            verify_token(token, pruned)


class TestIssuerGating:
    """Tests for the issuer allow-list."""

    ALLOWED = VerifyConstraints(allowed_issuers=("svc-a",))

    def test_allowed_issuer_passes(self, secret_store: SecretStore) -> None:
        token = _sign(secret_store, issuer="svc-a")
        assert verify_token(token, secret_store, self.ALLOWED)["iss"] == "svc-a"

    def test_other_issuer_rejected(self, secret_store: SecretStore) -> None:
        token = _sign(secret_store, issuer="svc-b")
        with pytest.raises(IssuerNotAllowedError) as exc_info:
            verify_token(token, secret_store, self.ALLOWED)
        assert exc_info.value.issuer == "svc-b"

    def test_missing_issuer_rejected(self, secret_store: SecretStore) -> None:
        token = _sign(secret_store)
        with pytest.raises(MissingIssuerError):
            verify_token(token, secret_store, self.ALLOWED)

    def test_no_allow_list_accepts_any(self, secret_store: SecretStore) -> None:
        verify_token(_sign(secret_store, issuer="svc-b"), secret_store)
        verify_token(_sign(secret_store), secret_store)


class TestHeaderClaimEnforcement:
    """Tests for expected JWT header claims."""

    def test_mismatch_rejected(self, secret_store: SecretStore) -> None:
        token = _sign(secret_store, header_claims=HeaderClaims(env="prod"))
        expected = VerifyConstraints(header_claims=HeaderClaims(env="staging"))
        with pytest.raises(HeaderMismatchError) as exc_info:
            verify_token(token, secret_store, expected)
        assert exc_info.value.field == "env"
        assert exc_info.value.actual == "prod"

    def test_exact_match_passes(self, secret_store: SecretStore) -> None:
        claims = HeaderClaims(typ="at+jwt", env="prod")
        token = _sign(secret_store, header_claims=claims)
        verify_token(token, secret_store, VerifyConstraints(header_claims=claims))

    def test_missing_field_rejected(self, secret_store: SecretStore) -> None:
        token = _sign(secret_store)
        expected = VerifyConstraints(header_claims=HeaderClaims(cty="json"))
        with pytest.raises(HeaderMismatchError) as exc_info:
            verify_token(token, secret_store, expected)
        assert "got \"undefined\"" in exc_info.value.describe(True)
        assert exc_info.value.describe(False) == "Invalid JWT header cty"

    @pytest.mark.parametrize(
        ("signed", "expected"), [(True, 1), (1, True), (1.0, 1), ("1", 1)]
    )
    def test_values_must_match_type(
        self, secret_store: SecretStore, signed: object, expected: object
    ) -> None:
        token = _sign(secret_store, header_claims=HeaderClaims(v=signed))
        constraints = VerifyConstraints(header_claims=HeaderClaims(v=expected))
        with pytest.raises(HeaderMismatchError) as exc_info:
            verify_token(token, secret_store, constraints)
        assert exc_info.value.field == "v"

    def test_checked_before_key_lookup(self, secret_store: SecretStore) -> None:
        token = sign_token({"sub": "x"}, "unregistered-secret-" * 4, "k9", HOUR)
        expected = VerifyConstraints(header_claims=HeaderClaims(typ="at+jwt"))
        with pytest.raises(HeaderMismatchError):
            verify_token(token, secret_store, expected)


class TestExtractBearerToken:
    """Tests for Bearer prefix stripping."""

    def test_strips_prefix(self) -> None:
        assert extract_bearer_token("Bearer abc.def.ghi", "authorization") == "abc.def.ghi"

    def test_prefix_is_case_insensitive(self) -> None:
        assert extract_bearer_token("bEaReR abc", "authorization") == "abc"

    def test_first_list_value_used(self) -> None:
        assert extract_bearer_token(["Bearer one", "Bearer two"], "x-token") == "one"

    @pytest.mark.parametrize("debug", [False, True])
    def test_missing_header_is_absent(self, debug: bool) -> None:
        assert extract_bearer_token(None, "authorization", debug) is None
        assert extract_bearer_token("", "authorization", debug) is None
        assert extract_bearer_token([], "authorization", debug) is None

    @pytest.mark.parametrize(
        "value",
        ["Token abc", "Bearer", "Bearer a b", "abc", "Bearer abc\n", " Bearer abc"],
    )
    def test_wrong_format_is_absent(self, value: str) -> None:
        assert extract_bearer_token(value, "authorization") is None

    def test_wrong_format_raises_in_debug(self) -> None:
        with pytest.raises(InvalidHeaderFormatError) as exc_info:
            extract_bearer_token("Token abc", "authorization", debug=True)
        assert exc_info.value.header_name == "authorization"
        assert "Bearer <token>" in exc_info.value.describe(True)
