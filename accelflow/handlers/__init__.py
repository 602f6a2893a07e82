"""
Handlers package - Handler registry and built-in node handlers.
"""

from accelflow.handlers.registry import (
    Handler,
    HandlerRegistry,
    NodeInputs,
    get_handler,
    handler_registry,
    register_handler,
)

# Import builtin handlers to register them
import accelflow.handlers.builtin  # noqa: F401,E402

__all__ = [
    "Handler",
    "HandlerRegistry",
    "NodeInputs",
    "get_handler",
    "handler_registry",
    "register_handler",
]
