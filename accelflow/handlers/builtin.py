"""
Built-in Node Handlers.

One handler per NodeType. Handlers are pure with respect to the run:
they read their config and inputs, call external capabilities only
through ``services``, and either return a NodeResult or raise. The
executor turns any exception into a failed node.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from accelflow.engine.context import NodeResult
from accelflow.engine.definition import NodeType
from accelflow.engine.templating import render_mapping, render_template, render_url, resolve_path, stringify
from accelflow.errors import HandlerError
from accelflow.handlers.registry import NodeInputs, register_handler
from accelflow.services.capabilities import Services


logger = logging.getLogger(__name__)


def _first(config: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present config key; the builder uses camelCase."""
    for key in keys:
        if key in config and config[key] is not None:
            return config[key]
    return default


# ============================================================
# Input / Output
# ============================================================

@register_handler(NodeType.INPUT, description="Seeds the workflow with the run input")
async def handle_input(config: Dict[str, Any], inputs: NodeInputs, services: Services) -> NodeResult:
    return NodeResult.succeeded(inputs.run_input)


@register_handler(
    NodeType.OUTPUT,
    description="Marks the final result, optionally formatted with a template",
    config_keys=["format_template"],
)
async def handle_output(config: Dict[str, Any], inputs: NodeInputs, services: Services) -> NodeResult:
    template = _first(config, "format_template", "formatTemplate")
    if template:
        return NodeResult.succeeded(render_template(template, **inputs.template_vars()))
    return NodeResult.succeeded(inputs.value)


# ============================================================
# Prompt (LLM call)
# ============================================================

@register_handler(
    NodeType.PROMPT,
    description="Calls the LLM with a templated prompt",
    config_keys=["prompt", "system_prompt", "model", "max_tokens", "temperature"],
)
async def handle_prompt(config: Dict[str, Any], inputs: NodeInputs, services: Services) -> NodeResult:
    """
    Render the prompt template and ask the LLM.

    Missing placeholders render as empty strings rather than failing.
    Provider errors propagate to the executor.
    """
    template = _first(config, "prompt", "template", "userPromptTemplate", default="{{input}}")
    prompt = render_template(template, **inputs.template_vars())

    system = _first(config, "system_prompt", "systemPrompt")
    max_tokens = _first(config, "max_tokens", "maxTokens")
    temperature = _first(config, "temperature")

    completion = await services.llm.complete(
        prompt,
        system=render_template(system, **inputs.template_vars()) if system else None,
        model=_first(config, "model"),
        max_tokens=int(max_tokens) if max_tokens is not None else None,
        temperature=float(temperature) if temperature is not None else None,
    )

    return NodeResult.succeeded(
        completion.text,
        tokens_used=completion.tokens_used,
        cost=completion.cost,
        metadata=dict(completion.metadata),
    )


# ============================================================
# HTTP request
# ============================================================

_BODYLESS_METHODS = {"GET", "HEAD"}


@register_handler(
    NodeType.HTTP_REQUEST,
    description="Calls an external HTTP endpoint and returns the response body",
    config_keys=["method", "url", "headers", "body", "timeout", "allow_error_status"],
)
async def handle_http_request(config: Dict[str, Any], inputs: NodeInputs, services: Services) -> NodeResult:
    """
    Issue an HTTP request built from the node config.

    ``url``, ``headers`` and ``body`` are templates; values rendered into
    the URL query string are encoded. A response status of
    400 or above fails the node unless ``allow_error_status`` is set.
    """
    method = str(_first(config, "method", default="GET")).upper()
    url = render_url(_first(config, "url", default=""), **inputs.template_vars()).strip()
    if not url:
        raise HandlerError("HTTP request node requires a 'url'")

    headers = _first(config, "headers", default={})
    if isinstance(headers, str):
        try:
            headers = json.loads(headers) if headers.strip() else {}
        except ValueError:
            raise HandlerError("HTTP request 'headers' must be a JSON object")
    if not isinstance(headers, dict):
        raise HandlerError("HTTP request 'headers' must be an object")

    body = None
    body_template = _first(config, "body")
    if body_template is not None and method not in _BODYLESS_METHODS:
        body = render_template(body_template, **inputs.template_vars())

    timeout = _first(config, "timeout")
    response = await services.http.fetch(
        method,
        url,
        body=body,
        headers=render_mapping(headers, **inputs.template_vars()),
        timeout=float(timeout) if timeout is not None else None,
    )

    if response.status >= 400 and not _first(config, "allow_error_status", default=False):
        raise HandlerError(f"{method} {url} returned HTTP {response.status}")

    return NodeResult.succeeded(
        response.body,
        metadata={"status": response.status, "method": method, "url": url},
    )


# ============================================================
# Condition
# ============================================================

def _as_number(value: Any, operator: str) -> float:
    try:
        return float(stringify(value).strip())
    except ValueError:
        raise HandlerError(f"Operator '{operator}' needs a number, got {stringify(value)[:50]!r}")


def _normalize(value: Any) -> str:
    return stringify(value).strip().lower()


def evaluate_predicate(predicate: Dict[str, Any], value: Any) -> bool:
    """
    Evaluate one predicate against a value.

    Supported operators: equals, not_equals, contains, not_contains,
    greater_than, less_than, length_gt, length_lt. String comparisons
    ignore case and surrounding whitespace.

    Raises:
        HandlerError: Unknown operator or a non-numeric comparison
    """
    operator = _first(predicate, "operator", "conditionType")
    expected = _first(predicate, "value", "conditionValue", default="")

    field_path = predicate.get("field")
    if field_path:
        value = resolve_path(value, str(field_path).split("."))

    if operator == "equals":
        return _normalize(value) == _normalize(expected)
    if operator == "not_equals":
        return _normalize(value) != _normalize(expected)
    if operator == "contains":
        return _normalize(expected) in _normalize(value)
    if operator == "not_contains":
        return _normalize(expected) not in _normalize(value)
    if operator == "greater_than":
        return _as_number(value, operator) > _as_number(expected, operator)
    if operator == "less_than":
        return _as_number(value, operator) < _as_number(expected, operator)
    if operator == "length_gt":
        return len(stringify(value)) > _as_number(expected, operator)
    if operator == "length_lt":
        return len(stringify(value)) < _as_number(expected, operator)

    raise HandlerError(f"Unknown condition operator: {operator!r}")


@register_handler(
    NodeType.CONDITION,
    description="Chooses an outgoing branch by evaluating a predicate",
    config_keys=["predicate", "operator", "value", "field", "cases", "default"],
)
async def handle_condition(config: Dict[str, Any], inputs: NodeInputs, services: Services) -> NodeResult:
    """
    Pick the branch to follow.

    With ``cases`` the first matching case's ``branch`` wins, falling back
    to ``default``. Otherwise the single predicate selects "true" or
    "false". The input passes through unchanged.
    """
    value = inputs.value
    cases: Optional[List[Dict[str, Any]]] = config.get("cases")

    if cases:
        branch = str(config.get("default", "default"))
        for case in cases:
            if evaluate_predicate(case, value):
                branch = str(case.get("branch"))
                break
    else:
        predicate = config.get("predicate", config)
        if not isinstance(predicate, dict):
            raise HandlerError("Condition 'predicate' must be an object")
        branch = "true" if evaluate_predicate(predicate, value) else "false"

    logger.debug(f"Condition selected branch '{branch}'")
    return NodeResult.succeeded(value, branch=branch, metadata={"branch": branch})


# ============================================================
# Transform
# ============================================================

@register_handler(
    NodeType.TRANSFORM,
    description="Applies a deterministic transform (template, extract_json, combine, split)",
    config_keys=["operation", "template", "path", "separator", "delimiter"],
)
async def handle_transform(config: Dict[str, Any], inputs: NodeInputs, services: Services) -> NodeResult:
    operation = _first(config, "operation", "transformType", default="template")
    # The builder keeps the operation argument in a single "config" field
    argument = config.get("config")

    if operation == "template":
        template = _first(config, "template", default=argument if argument is not None else "{{input}}")
        return NodeResult.succeeded(render_template(template, **inputs.template_vars()))

    if operation == "extract_json":
        path = _first(config, "path", default=argument or "")
        source = inputs.value
        if isinstance(source, str):
            try:
                source = json.loads(source)
            except ValueError as e:
                raise HandlerError(f"Input is not valid JSON: {e}")
        parts = [p for p in str(path).split(".") if p]
        extracted = resolve_path(source, parts)
        return NodeResult.succeeded("" if extracted is None else extracted)

    if operation == "combine":
        separator = _first(config, "separator", default=argument or "\n")
        values = inputs.upstream.values() if inputs.upstream else [inputs.run_input]
        return NodeResult.succeeded(separator.join(stringify(v) for v in values))

    if operation == "split":
        delimiter = _first(config, "delimiter") or argument or "\n"
        parts = [p.strip() for p in inputs.text.split(delimiter) if p.strip()]
        return NodeResult.succeeded("\n".join(f"{i}. {p}" for i, p in enumerate(parts, 1)))

    raise HandlerError(f"Unknown transform operation: {operation!r}")


# ============================================================
# RAG query
# ============================================================

@register_handler(
    NodeType.RAG_QUERY,
    description="Searches the user's documents and returns the relevant chunks",
    config_keys=["query", "top_k", "min_relevance"],
)
async def handle_rag_query(config: Dict[str, Any], inputs: NodeInputs, services: Services) -> NodeResult:
    template = _first(config, "query", "queryTemplate", default="{{input}}")
    query = render_template(template, **inputs.template_vars())
    top_k = int(_first(config, "top_k", "topK", default=5))
    min_relevance = float(_first(config, "min_relevance", "minRelevance", default=0.5))

    chunks = await services.retriever.search(inputs.user_id, query, top_k)
    relevant = [c for c in chunks if c.relevance_score >= min_relevance]

    if not relevant:
        return NodeResult.succeeded(
            "No relevant documents found.",
            metadata={"query": query, "total_results": 0},
        )

    output = "\n\n---\n\n".join(
        f"[{i}] (relevance: {c.relevance_score:.2f})\n{c.content}"
        for i, c in enumerate(relevant, 1)
    )
    return NodeResult.succeeded(output, metadata={"query": query, "total_results": len(relevant)})


# ============================================================
# Web search
# ============================================================

@register_handler(
    NodeType.WEB_SEARCH,
    description="Searches the web and returns titled results",
    config_keys=["query", "max_results"],
)
async def handle_web_search(config: Dict[str, Any], inputs: NodeInputs, services: Services) -> NodeResult:
    template = _first(config, "query", "queryTemplate", default="{{input}}")
    query = render_template(template, **inputs.template_vars())
    max_results = int(_first(config, "max_results", "maxResults", default=5))

    results = await services.web_search.search(query, max_results)

    if not results:
        return NodeResult.succeeded(
            "No search results found.",
            metadata={"query": query, "total_results": 0},
        )

    output = "\n\n---\n\n".join(
        f"[{i}] {r.title}\n{r.url}\n{r.content}"
        for i, r in enumerate(results, 1)
    )
    return NodeResult.succeeded(output, metadata={"query": query, "total_results": len(results)})
