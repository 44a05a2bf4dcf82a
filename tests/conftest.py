"""Shared fixtures: signing keys, a mock key server, and token factories."""

from __future__ import annotations

import datetime
import json
import logging
import time
from collections import Counter
from contextlib import ExitStack
from typing import TYPE_CHECKING, Any

import httpx
import jwt
import pytest
import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient
from jwt.algorithms import RSAAlgorithm

from ianua.infra.auth.debug import get_debug_settings
from ianua.infra.auth.settings import AuthSettings, get_auth_settings
from ianua.infra.auth.verifiers import build_token_verifiers, set_token_verifiers
from ianua.infra.fastapi.app_factory import create_app
from ianua.infra.observability.logging import get_logging_settings

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

    from ianua.infra.auth.verifiers import TokenVerifiers

PROJECT_ID = "demo-project"
PROJECT_NUMBER = "123456789"
ID_TOKEN_KID = "id-key-1"
APP_CHECK_KID = "app-key-1"


def _generate_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _certificate_pem(key: rsa.RSAPrivateKey) -> str:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "securetoken.test")])
    now = datetime.datetime.now(datetime.UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def _jwk(key: rsa.RSAPrivateKey, kid: str) -> dict[str, Any]:
    jwk = json.loads(RSAAlgorithm.to_jwk(key.public_key()))
    jwk.update({"kid": kid, "alg": "RS256", "use": "sig"})
    return jwk


@pytest.fixture(scope="session")
def signing_key() -> rsa.RSAPrivateKey:
    return _generate_key()


@pytest.fixture(scope="session")
def foreign_key() -> rsa.RSAPrivateKey:
    """A key the key server never publishes."""
    return _generate_key()


class KeyServer:
    """httpx mock transport handler publishing both key sets."""

    def __init__(self, documents: Mapping[str, Any]) -> None:
        self.documents = dict(documents)
        self.calls: Counter[str] = Counter()
        self.status_code = 200
        self.cache_control = "public, max-age=3600"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls[url] += 1
        if self.status_code != 200:
            return httpx.Response(self.status_code)
        if url not in self.documents:
            return httpx.Response(404)
        return httpx.Response(
            200,
            json=self.documents[url],
            headers={"Cache-Control": self.cache_control},
        )

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


@pytest.fixture()
def auth_settings() -> AuthSettings:
    return AuthSettings(project_id=PROJECT_ID, project_number=PROJECT_NUMBER)


@pytest.fixture()
def key_server(signing_key: rsa.RSAPrivateKey, auth_settings: AuthSettings) -> KeyServer:
    return KeyServer(
        {
            auth_settings.id_token_certs_url: {ID_TOKEN_KID: _certificate_pem(signing_key)},
            auth_settings.app_check_jwks_url: {"keys": [_jwk(signing_key, APP_CHECK_KID)]},
        }
    )


@pytest.fixture()
def token_verifiers(auth_settings: AuthSettings, key_server: KeyServer) -> TokenVerifiers:
    client = httpx.AsyncClient(transport=httpx.MockTransport(key_server))
    return build_token_verifiers(auth_settings, http_client=client)


@pytest.fixture()
def make_id_token(signing_key: rsa.RSAPrivateKey) -> Callable[..., str]:
    """Sign an identity token; keyword arguments override claims."""

    def _make(
        *,
        key: rsa.RSAPrivateKey | None = None,
        kid: str = ID_TOKEN_KID,
        **overrides: Any,
    ) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": f"https://securetoken.google.com/{PROJECT_ID}",
            "aud": PROJECT_ID,
            "sub": "user-123",
            "iat": now,
            "exp": now + 3600,
            "email": "user@example.com",
        }
        claims.update(overrides)
        return jwt.encode(claims, key or signing_key, algorithm="RS256", headers={"kid": kid})

    return _make


@pytest.fixture()
def make_app_check_token(signing_key: rsa.RSAPrivateKey) -> Callable[..., str]:
    """Sign an app-attestation token; keyword arguments override claims."""

    def _make(
        *,
        key: rsa.RSAPrivateKey | None = None,
        kid: str = APP_CHECK_KID,
        **overrides: Any,
    ) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": f"https://firebaseappcheck.googleapis.com/{PROJECT_NUMBER}",
            "aud": [f"projects/{PROJECT_NUMBER}", f"projects/{PROJECT_ID}"],
            "sub": "1:123456789:web:abcdef",
            "iat": now,
            "exp": now + 3600,
        }
        claims.update(overrides)
        return jwt.encode(claims, key or signing_key, algorithm="RS256", headers={"kid": kid})

    return _make


@pytest.fixture(autouse=True)
def _reset_process_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate cached settings, process-wide verifiers, log context and root log handlers."""
    for name in ("ENVIRONMENT", "IANUA_DEBUG_MODE", "IANUA_DEBUG_FEATURES", "IANUA_EMULATOR"):
        monkeypatch.delenv(name, raising=False)
    for name in ("AUTH_PROJECT_ID", "AUTH_PROJECT_NUMBER"):
        monkeypatch.delenv(name, raising=False)
    get_auth_settings.cache_clear()
    get_debug_settings.cache_clear()
    get_logging_settings.cache_clear()
    set_token_verifiers(None)
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    root_handlers, root_level = list(root.handlers), root.level
    yield
    root.handlers[:] = root_handlers
    root.setLevel(root_level)
    get_auth_settings.cache_clear()
    get_debug_settings.cache_clear()
    get_logging_settings.cache_clear()
    set_token_verifiers(None)
    structlog.contextvars.clear_contextvars()


@pytest.fixture()
def serve(token_verifiers: TokenVerifiers) -> Iterator[Callable[..., TestClient]]:
    """Start an app serving ``functions`` with lifespan hooks executed.

    The verifiers built by the auth lifespan are replaced with ones backed
    by the mock key server.
    """
    with ExitStack() as stack:

        def _serve(functions: Mapping[str, Any], **kwargs: Any) -> TestClient:
            app = create_app(functions, discover_functions=False, **kwargs)
            client = stack.enter_context(TestClient(app, raise_server_exceptions=False))
            app.state.token_verifiers = token_verifiers
            return client

        yield _serve
