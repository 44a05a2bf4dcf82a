"""Ianua Infra Auth -- key-set caching and bearer-token verification.

Provides the signing-key cache, identity-token and app-attestation token
verifiers, debug-feature resolution, and the auth lifespan hook.
"""

from ianua.infra.auth.debug import (
    DebugFeature,
    DebugSettings,
    get_debug_settings,
    is_emulated,
    resolve_debug_feature,
)
from ianua.infra.auth.key_cache import KeySetCache, KeySetFetchError, KeySetFormat
from ianua.infra.auth.lifespan import lifespan_contribution
from ianua.infra.auth.settings import AuthSettings, get_auth_settings
from ianua.infra.auth.verifiers import (
    APP_CHECK_HEADER,
    AUTHORIZATION_HEADER,
    INSTANCE_ID_HEADER,
    AppCheckTokenVerifier,
    IdTokenVerifier,
    TokenVerifier,
    TokenVerifiers,
    build_token_verifiers,
    check_app_check_token,
    check_auth_token,
    check_tokens,
    extract_bearer_token,
    get_token_verifiers,
    set_token_verifiers,
    unsafe_decode_token,
)

__all__ = [
    "APP_CHECK_HEADER",
    "AUTHORIZATION_HEADER",
    "INSTANCE_ID_HEADER",
    "AppCheckTokenVerifier",
    "AuthSettings",
    "DebugFeature",
    "DebugSettings",
    "IdTokenVerifier",
    "KeySetCache",
    "KeySetFetchError",
    "KeySetFormat",
    "TokenVerifier",
    "TokenVerifiers",
    "build_token_verifiers",
    "check_app_check_token",
    "check_auth_token",
    "check_tokens",
    "extract_bearer_token",
    "get_auth_settings",
    "get_debug_settings",
    "get_token_verifiers",
    "is_emulated",
    "lifespan_contribution",
    "resolve_debug_feature",
    "set_token_verifiers",
    "unsafe_decode_token",
]
