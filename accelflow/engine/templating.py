"""Template rendering for node configs: {{input}}, {{upstream.<id>}}, {{workflow.input}}."""

from typing import Any, Callable, Dict, Mapping, Optional
import json
import re
from urllib.parse import quote_plus

# Matches {{input}}, {{upstream.node-1}}, {{upstream.node-1.field.0}}
_TEMPLATE_RE = re.compile(r"\{\{\s*(.+?)\s*\}\}")


def resolve_path(value: Any, parts: list) -> Any:
    """Walk a dotted path into dicts, lists and JSON strings."""
    current = value
    for part in parts:
        if isinstance(current, str):
            try:
                current = json.loads(current)
            except ValueError:
                return None
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            idx = int(part)
            current = current[idx] if idx < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def stringify(value: Any) -> str:
    """Render a node value as text; structured values become JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def render_template(
    template: Any,
    input_value: Any = "",
    upstream: Optional[Mapping[str, Any]] = None,
    run_input: Any = "",
    quote: Optional[Callable[[str], str]] = None,
) -> str:
    """
    Substitute placeholders in ``template``.

    Unknown or missing placeholders render as an empty string. ``quote``,
    if given, is applied to every substituted value (e.g. URL encoding).
    """
    if template is None:
        return ""
    if not isinstance(template, str):
        return stringify(template)

    upstream = upstream or {}

    def lookup(path: str) -> Any:
        head, _, rest = path.partition(".")
        if head == "input" and not rest:
            return input_value
        if head == "workflow" and rest == "input":
            return run_input
        if head == "upstream" and rest:
            # Node ids may themselves contain dots; prefer the longest match
            parts = rest.split(".")
            for cut in range(len(parts), 0, -1):
                node_id = ".".join(parts[:cut])
                if node_id in upstream:
                    return resolve_path(upstream[node_id], parts[cut:])
        return None

    def replacer(match: "re.Match") -> str:
        value = stringify(lookup(match.group(1)))
        return quote(value) if quote and value else value

    return _TEMPLATE_RE.sub(replacer, template)


def render_mapping(data: Mapping[str, Any], **kwargs: Any) -> Dict[str, str]:
    """Render every value of a flat mapping (e.g. HTTP headers)."""
    return {str(key): render_template(value, **kwargs) for key, value in data.items()}


def render_url(template: Any, **kwargs: Any) -> str:
    """
    Render a URL template.

    Values substituted into the query string are form-encoded, so ``&``,
    ``#`` and spaces in the input stay inside their parameter. The part
    before ``?`` is rendered as-is and may hold a whole upstream URL.
    """
    if not isinstance(template, str):
        return render_template(template, **kwargs)
    base, sep, query = template.partition("?")
    rendered = render_template(base, **kwargs)
    if sep:
        rendered += sep + render_template(query, quote=quote_plus, **kwargs)
    return rendered
