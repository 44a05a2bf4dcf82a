"""Gateway App application factory.

Demonstrates the consumer pattern: pass your functions, the framework
wires token verification, CORS, error handling, trace correlation and
the health endpoint.

Usage::

    from examples.gateway_app.app import create_gateway_app

    app = create_gateway_app()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ianua.infra.fastapi import AppSettings, create_app

from .functions import FUNCTIONS

if TYPE_CHECKING:
    from fastapi import FastAPI


def create_gateway_app(*, discover_functions: bool = False) -> FastAPI:
    """Create the example gateway.

    Args:
        discover_functions: Also mount functions contributed by installed
            packages. Off by default so the example serves only its own.
    """
    return create_app(
        FUNCTIONS,
        settings=AppSettings(title="Gateway App", version="0.1.0"),
        discover_functions=discover_functions,
    )
