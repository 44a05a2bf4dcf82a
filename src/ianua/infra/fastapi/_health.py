"""Health endpoint listing mounted functions and key-set cache state."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz(request: Request) -> dict[str, Any]:
    """Report the mounted functions and whether signing keys are cached.

    Key sets are fetched lazily, so a cold cache is reported but is not
    treated as unhealthy.
    """
    state = request.app.state
    verifiers = getattr(state, "token_verifiers", None)
    key_sets: dict[str, str] = {}
    if verifiers is not None:
        for name, verifier in (("id_token", verifiers.id_token), ("app_check", verifiers.app_check)):
            if not verifier.is_configured():
                key_sets[name] = "disabled"
            else:
                key_sets[name] = "warm" if verifier.key_cache.is_fresh() else "cold"
    return {
        "status": "ok",
        "functions": sorted(getattr(state, "functions", {})),
        "keySets": key_sets,
    }
