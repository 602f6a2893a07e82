"""
Exceptions raised by the workflow engine and its collaborators.
"""

from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""


class DefinitionError(WorkflowError):
    """
    A workflow definition is structurally invalid.

    Raised before any node runs. ``code`` names the violated rule
    (``cycle``, ``dangling_edge``, ``ambiguous_entry`` ...) and
    ``node_ids`` lists the nodes involved, if any.
    """

    def __init__(self, code: str, message: str, node_ids: Optional[List[str]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.node_ids = list(node_ids or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "node_ids": self.node_ids,
        }


class HandlerError(WorkflowError):
    """A node handler could not produce a result."""


class ProviderError(HandlerError):
    """The LLM or retrieval provider failed (quota, timeout, network)."""


class NetworkError(HandlerError):
    """An outbound HTTP call failed before a response was received."""


class PersistenceError(WorkflowError):
    """Writing an execution record failed."""
