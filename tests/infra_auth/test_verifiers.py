"""Tests for identity-token and app-attestation token verification."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import jwt
import pytest

from ianua.foundation.domain.principal import TokenStatus
from ianua.infra.auth.settings import AuthSettings
from ianua.infra.auth.verifiers import (
    build_token_verifiers,
    check_app_check_token,
    check_auth_token,
    check_tokens,
    extract_bearer_token,
    unsafe_decode_token,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from ianua.infra.auth.verifiers import TokenVerifiers


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.unit
class TestExtractBearerToken:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc", "abc"),
            ("BEARER abc", "abc"),
            ("Basic dXNlcjpwYXNz", None),
            ("Bearerabc", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract(self, value: str | None, expected: str | None) -> None:
        assert extract_bearer_token(value) == expected


@pytest.mark.unit
class TestUnsafeDecodeToken:
    def test_returns_claims_without_checking_signature(self, foreign_key) -> None:
        token = jwt.encode({"sub": "u1", "x": 1}, foreign_key, algorithm="RS256")
        assert unsafe_decode_token(token) == {"sub": "u1", "x": 1}

    def test_missing_subject_is_rejected(self, foreign_key) -> None:
        token = jwt.encode({"x": 1}, foreign_key, algorithm="RS256")
        with pytest.raises(jwt.InvalidTokenError):
            unsafe_decode_token(token)

    def test_garbage_is_rejected(self) -> None:
        with pytest.raises(jwt.InvalidTokenError):
            unsafe_decode_token("not-a-jwt")


@pytest.mark.unit
class TestIdTokenVerifier:
    @pytest.mark.asyncio(loop_scope="function")
    async def test_missing_header(self, token_verifiers: TokenVerifiers) -> None:
        status, principal = await check_auth_token({}, token_verifiers.id_token)
        assert status is TokenStatus.MISSING
        assert principal is None

    @pytest.mark.asyncio(loop_scope="function")
    async def test_valid_token(
        self, token_verifiers: TokenVerifiers, make_id_token: Callable[..., str]
    ) -> None:
        status, principal = await check_auth_token(
            _bearer(make_id_token()), token_verifiers.id_token
        )
        assert status is TokenStatus.VALID
        assert principal is not None
        assert principal.uid == "user-123"
        assert principal.claims["email"] == "user@example.com"

    @pytest.mark.asyncio(loop_scope="function")
    async def test_lowercase_scheme_accepted(
        self, token_verifiers: TokenVerifiers, make_id_token: Callable[..., str]
    ) -> None:
        headers = {"authorization": f"bearer {make_id_token()}"}
        status, _ = await check_auth_token(headers, token_verifiers.id_token)
        assert status is TokenStatus.VALID

    @pytest.mark.asyncio(loop_scope="function")
    async def test_non_bearer_scheme_is_invalid(self, token_verifiers: TokenVerifiers) -> None:
        headers = {"Authorization": "Basic dXNlcjpwYXNz"}
        status, _ = await check_auth_token(headers, token_verifiers.id_token)
        assert status is TokenStatus.INVALID

    @pytest.mark.asyncio(loop_scope="function")
    @pytest.mark.parametrize(
        "overrides",
        [
            {"aud": "other-project"},
            {"iss": "https://securetoken.google.com/other-project"},
            {"exp": int(time.time()) - 60},
            {"sub": ""},
            {"sub": "x" * 129},
        ],
        ids=["audience", "issuer", "expired", "empty-subject", "long-subject"],
    )
    async def test_claim_failures_are_invalid(
        self,
        token_verifiers: TokenVerifiers,
        make_id_token: Callable[..., str],
        overrides: dict[str, object],
    ) -> None:
        status, principal = await check_auth_token(
            _bearer(make_id_token(**overrides)), token_verifiers.id_token
        )
        assert status is TokenStatus.INVALID
        assert principal is None

    @pytest.mark.asyncio(loop_scope="function")
    async def test_wrong_signing_key_is_invalid(
        self, token_verifiers: TokenVerifiers, make_id_token: Callable[..., str], foreign_key
    ) -> None:
        token = make_id_token(key=foreign_key)
        status, _ = await check_auth_token(_bearer(token), token_verifiers.id_token)
        assert status is TokenStatus.INVALID

    @pytest.mark.asyncio(loop_scope="function")
    async def test_unknown_kid_is_invalid(
        self, token_verifiers: TokenVerifiers, make_id_token: Callable[..., str]
    ) -> None:
        token = make_id_token(kid="retired-key")
        status, _ = await check_auth_token(_bearer(token), token_verifiers.id_token)
        assert status is TokenStatus.INVALID

    @pytest.mark.asyncio(loop_scope="function")
    async def test_key_server_outage_is_invalid(
        self, token_verifiers: TokenVerifiers, make_id_token: Callable[..., str], key_server
    ) -> None:
        key_server.status_code = 500
        status, _ = await check_auth_token(_bearer(make_id_token()), token_verifiers.id_token)
        assert status is TokenStatus.INVALID

    @pytest.mark.asyncio(loop_scope="function")
    async def test_skip_verification_parses_foreign_token(
        self, token_verifiers: TokenVerifiers, make_id_token: Callable[..., str], foreign_key
    ) -> None:
        token = make_id_token(key=foreign_key, sub="debug-user")
        status, principal = await check_auth_token(
            _bearer(token), token_verifiers.id_token, skip_verification=True
        )
        assert status is TokenStatus.VALID
        assert principal is not None
        assert principal.uid == "debug-user"

    @pytest.mark.asyncio(loop_scope="function")
    async def test_skip_verification_still_rejects_garbage(
        self, token_verifiers: TokenVerifiers
    ) -> None:
        status, _ = await check_auth_token(
            _bearer("garbage"), token_verifiers.id_token, skip_verification=True
        )
        assert status is TokenStatus.INVALID


@pytest.mark.unit
class TestAppCheckTokenVerifier:
    @pytest.mark.asyncio(loop_scope="function")
    async def test_valid_token(
        self, token_verifiers: TokenVerifiers, make_app_check_token: Callable[..., str]
    ) -> None:
        headers = {"X-Firebase-AppCheck": make_app_check_token()}
        status, principal = await check_app_check_token(headers, token_verifiers.app_check)
        assert status is TokenStatus.VALID
        assert principal is not None
        assert principal.app_id == "1:123456789:web:abcdef"

    @pytest.mark.asyncio(loop_scope="function")
    async def test_project_id_audience_alone_is_accepted(
        self, token_verifiers: TokenVerifiers, make_app_check_token: Callable[..., str]
    ) -> None:
        headers = {"X-Firebase-AppCheck": make_app_check_token(aud=["projects/demo-project"])}
        status, _ = await check_app_check_token(headers, token_verifiers.app_check)
        assert status is TokenStatus.VALID

    @pytest.mark.asyncio(loop_scope="function")
    async def test_wrong_audience_is_invalid(
        self, token_verifiers: TokenVerifiers, make_app_check_token: Callable[..., str]
    ) -> None:
        headers = {"X-Firebase-AppCheck": make_app_check_token(aud=["projects/999"])}
        status, _ = await check_app_check_token(headers, token_verifiers.app_check)
        assert status is TokenStatus.INVALID

    @pytest.mark.asyncio(loop_scope="function")
    async def test_wrong_issuer_is_invalid(
        self, token_verifiers: TokenVerifiers, make_app_check_token: Callable[..., str]
    ) -> None:
        token = make_app_check_token(iss="https://firebaseappcheck.googleapis.com/999")
        status, _ = await check_app_check_token(
            {"X-Firebase-AppCheck": token}, token_verifiers.app_check
        )
        assert status is TokenStatus.INVALID

    @pytest.mark.asyncio(loop_scope="function")
    async def test_empty_header_is_missing(self, token_verifiers: TokenVerifiers) -> None:
        status, _ = await check_app_check_token(
            {"X-Firebase-AppCheck": ""}, token_verifiers.app_check
        )
        assert status is TokenStatus.MISSING


@pytest.mark.unit
class TestCheckTokens:
    @pytest.mark.asyncio(loop_scope="function")
    async def test_both_missing(self, token_verifiers: TokenVerifiers) -> None:
        result = await check_tokens({}, token_verifiers, skip_verification=False)
        assert result.auth is TokenStatus.MISSING
        assert result.app is TokenStatus.MISSING
        assert not result.any_invalid

    @pytest.mark.asyncio(loop_scope="function")
    async def test_both_valid(
        self,
        token_verifiers: TokenVerifiers,
        make_id_token: Callable[..., str],
        make_app_check_token: Callable[..., str],
    ) -> None:
        headers = {**_bearer(make_id_token()), "X-Firebase-AppCheck": make_app_check_token()}
        result = await check_tokens(headers, token_verifiers, skip_verification=False)
        assert (result.auth, result.app) == (TokenStatus.VALID, TokenStatus.VALID)
        assert result.auth_principal is not None
        assert result.app_principal is not None

    @pytest.mark.asyncio(loop_scope="function")
    async def test_rejection_logged_once_with_both_outcomes(
        self, token_verifiers: TokenVerifiers, caplog: pytest.LogCaptureFixture
    ) -> None:
        headers = {**_bearer("garbage"), "X-Firebase-AppCheck": "garbage"}
        with caplog.at_level(logging.WARNING, logger="ianua.infra.auth.verifiers"):
            result = await check_tokens(headers, token_verifiers, skip_verification=False)

        assert result.any_invalid
        records = [r for r in caplog.records if r.getMessage() == "callable_request_verification_failed"]
        assert len(records) == 1
        assert records[0].verifications == {"auth": "INVALID", "app": "INVALID"}
        assert records[0].detail == "AppCheck token was rejected. Auth token was rejected."

    @pytest.mark.asyncio(loop_scope="function")
    async def test_unconfigured_project_rejects_presented_token(
        self, make_id_token: Callable[..., str]
    ) -> None:
        verifiers = build_token_verifiers(AuthSettings(project_id="", project_number=""))
        try:
            result = await check_tokens(
                _bearer(make_id_token()), verifiers, skip_verification=False
            )
        finally:
            await verifiers.aclose()
        assert result.auth is TokenStatus.INVALID
        assert result.app is TokenStatus.MISSING
