"""Gateway App -- minimal example serving callable and task functions.

Defines a handful of functions with the ``on_call`` family of decorators
and serves them with ``create_app()``; token verification, CORS, logging
and the health endpoint come from the installed ianua packages.

Modules:
    functions: Callable and task-dispatch functions
    app:       Application factory (create_gateway_app)
"""

from .app import create_gateway_app
from .functions import FUNCTIONS

__all__ = ["FUNCTIONS", "create_gateway_app"]
