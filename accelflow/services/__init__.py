"""
Services package - External capabilities consumed by node handlers.
"""

from accelflow.services.capabilities import (
    Completion,
    HttpResponse,
    RetrievedChunk,
    SearchResult,
    Services,
    build_services,
)

__all__ = [
    "Completion",
    "HttpResponse",
    "RetrievedChunk",
    "SearchResult",
    "Services",
    "build_services",
]
