"""
Tests for templating and the built-in node handlers.
"""

from types import SimpleNamespace

import anthropic
import httpx
import pytest

from accelflow.engine.context import NodeStatus
from accelflow.engine.definition import NodeType
from accelflow.engine.templating import render_template, render_url, resolve_path, stringify
from accelflow.errors import HandlerError, NetworkError, ProviderError
from accelflow.handlers import NodeInputs, get_handler, handler_registry
from accelflow.handlers.builtin import (
    evaluate_predicate,
    handle_condition,
    handle_http_request,
    handle_output,
    handle_prompt,
    handle_rag_query,
    handle_transform,
    handle_web_search,
)
from accelflow.services.capabilities import (
    AnthropicLLMClient,
    HttpResponse,
    RetrievedChunk,
    SearchResult,
    Services,
    calculate_cost,
)

from conftest import StubHttp, StubRetriever, StubSearcher


# ============================================================
# Templating Tests
# ============================================================

class TestTemplating:
    """Tests for placeholder substitution."""

    def test_input_placeholder(self):
        assert render_template("Say: {{input}}", input_value="hello") == "Say: hello"
        assert render_template("{{ input }}!", input_value="x") == "x!"

    def test_upstream_placeholder(self):
        upstream = {"node-1": "alpha", "node-2": {"answer": {"items": ["a", "b"]}}}
        assert render_template("{{upstream.node-1}}", upstream=upstream) == "alpha"
        assert render_template("{{upstream.node-2.answer.items.1}}", upstream=upstream) == "b"
        assert render_template("{{upstream.node-2.answer}}", upstream=upstream) == '{"items": ["a", "b"]}'

    def test_upstream_json_string_path(self):
        upstream = {"http": '{"status": "ok"}'}
        assert render_template("{{upstream.http.status}}", upstream=upstream) == "ok"

    def test_dotted_node_id_prefers_longest_match(self):
        upstream = {"a": {"b": "short"}, "a.b": "long"}
        assert render_template("{{upstream.a.b}}", upstream=upstream) == "long"

    def test_workflow_input_placeholder(self):
        assert render_template("Q: {{workflow.input}}", input_value="ctx", run_input="why") == "Q: why"

    def test_missing_placeholders_render_empty(self):
        """Unknown placeholders are not an error."""
        assert render_template("[{{upstream.ghost}}]", upstream={}) == "[]"
        assert render_template("[{{nothing}}]") == "[]"
        assert render_template("[{{upstream.a.missing}}]", upstream={"a": {"b": 1}}) == "[]"

    def test_node_id_with_spaces(self):
        assert render_template("x={{upstream.my node}}", upstream={"my node": "V"}) == "x=V"

    def test_malformed_placeholder_renders_empty(self):
        rendered = render_template("x={{upstream.my node}} y={{ nope! }}", upstream={"my node": "V"})
        assert rendered == "x=V y="

    def test_render_url_encodes_query_values(self):
        url = render_url(
            "https://en.wikipedia.org/w/api.php?srsearch={{input}}&format=json",
            input_value="R&D budgets #2024",
        )
        assert url == "https://en.wikipedia.org/w/api.php?srsearch=R%26D+budgets+%232024&format=json"

    def test_render_url_leaves_base_untouched(self):
        upstream = {"link": "https://api.example.com/v1/items"}
        assert render_url("{{upstream.link}}", upstream=upstream) == "https://api.example.com/v1/items"
        assert render_url("{{upstream.link}}?q=a b", upstream=upstream) == "https://api.example.com/v1/items?q=a b"

    def test_non_string_template(self):
        assert render_template(None) == ""
        assert render_template({"a": 1}) == '{"a": 1}'

    def test_stringify_and_resolve_path(self):
        assert stringify(None) == ""
        assert stringify(3) == "3"
        assert stringify(["x"]) == '["x"]'
        assert resolve_path({"a": [{"b": 2}]}, ["a", "0", "b"]) == 2
        assert resolve_path("not json", ["a"]) is None
        assert resolve_path([1], ["5"]) is None


# ============================================================
# Registry Tests
# ============================================================

class TestHandlerRegistry:
    """Tests for the built-in handler table."""

    def test_every_node_type_has_a_handler(self):
        for node_type in NodeType:
            assert node_type in handler_registry
            assert get_handler(node_type).node_type == node_type

    def test_list_handlers(self):
        handlers = handler_registry.list_handlers()
        assert len(handlers) == len(NodeType)
        prompt = next(h for h in handlers if h["type"] == "prompt")
        assert "prompt" in prompt["config_keys"]
        assert prompt["description"]

    def test_duplicate_registration_rejected(self):
        with pytest.raises(ValueError):
            handler_registry.add(handle_output, NodeType.OUTPUT)

    def test_node_inputs_value(self):
        assert NodeInputs(run_input="r").value == "r"
        assert NodeInputs(run_input="r", upstream={"a": {"k": 1}}).value == {"k": 1}
        assert NodeInputs(upstream={"a": "one", "b": "", "c": "two"}).value == "one\n\ntwo"
        assert NodeInputs(upstream={"a": {"k": 1}}).text == '{"k": 1}'


# ============================================================
# Prompt Tests
# ============================================================

class TestPromptHandler:

    @pytest.mark.asyncio
    async def test_prompt_renders_and_reports_usage(self, services, llm):
        config = {
            "prompt": "Summarize {{input}} about {{workflow.input}}",
            "system_prompt": "Be brief",
            "model": "claude-haiku-4-5",
            "max_tokens": "256",
            "temperature": 0.2,
        }
        inputs = NodeInputs(run_input="cats", upstream={"search": "results"})
        result = await handle_prompt(config, inputs, services)

        assert result.output == "hi"
        assert result.tokens_used == 12
        assert result.cost == pytest.approx(0.001)
        assert llm.calls[0] == {
            "prompt": "Summarize results about cats",
            "system": "Be brief",
            "model": "claude-haiku-4-5",
            "max_tokens": 256,
            "temperature": 0.2,
        }

    @pytest.mark.asyncio
    async def test_builder_prompt_keys(self, services, llm):
        config = {"userPromptTemplate": "U: {{input}}", "systemPrompt": "S", "maxTokens": 10}
        await handle_prompt(config, NodeInputs(run_input="x"), services)

        assert llm.calls[0]["prompt"] == "U: x"
        assert llm.calls[0]["system"] == "S"
        assert llm.calls[0]["max_tokens"] == 10

    @pytest.mark.asyncio
    async def test_default_prompt_is_input(self, services, llm):
        await handle_prompt({}, NodeInputs(run_input="plain"), services)
        assert llm.calls[0]["prompt"] == "plain"


# ============================================================
# HTTP Request Tests
# ============================================================

class TestHttpRequestHandler:

    @pytest.mark.asyncio
    async def test_get_request(self, services, http):
        config = {"url": "https://api.example.com/search?q={{input}}", "headers": {"X-Q": "{{input}}"}}
        result = await handle_http_request(config, NodeInputs(run_input="rag"), services)

        assert result.output == '{"ok": true}'
        assert result.metadata["status"] == 200
        assert http.calls[0] == {
            "method": "GET",
            "url": "https://api.example.com/search?q=rag",
            "body": None,
            "headers": {"X-Q": "rag"},
        }

    @pytest.mark.asyncio
    async def test_query_values_are_url_encoded(self, services, http):
        config = {"url": "https://api.example.com/search?q={{input}}&limit=3"}
        await handle_http_request(config, NodeInputs(run_input="R&D budgets #2024"), services)

        assert http.calls[0]["url"] == "https://api.example.com/search?q=R%26D+budgets+%232024&limit=3"

    @pytest.mark.asyncio
    async def test_post_with_body_and_json_headers(self, services, http):
        config = {
            "method": "post",
            "url": "https://api.example.com",
            "headers": '{"Content-Type": "application/json"}',
            "body": '{"text": "{{input}}"}',
        }
        await handle_http_request(config, NodeInputs(run_input="hi"), services)

        assert http.calls[0]["method"] == "POST"
        assert http.calls[0]["body"] == '{"text": "hi"}'
        assert http.calls[0]["headers"] == {"Content-Type": "application/json"}

    @pytest.mark.asyncio
    async def test_missing_url(self, services):
        with pytest.raises(HandlerError):
            await handle_http_request({}, NodeInputs(), services)

    @pytest.mark.asyncio
    async def test_bad_headers(self, services):
        with pytest.raises(HandlerError):
            await handle_http_request({"url": "https://x", "headers": "{not json"}, NodeInputs(), services)

    @pytest.mark.asyncio
    async def test_error_status_fails(self):
        services = Services(http=StubHttp(HttpResponse(status=503, body="down")))
        with pytest.raises(HandlerError) as exc_info:
            await handle_http_request({"url": "https://x"}, NodeInputs(), services)
        assert "503" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_status_allowed(self):
        services = Services(http=StubHttp(HttpResponse(status=404, body="missing")))
        config = {"url": "https://x", "allow_error_status": True}
        result = await handle_http_request(config, NodeInputs(), services)

        assert result.output == "missing"
        assert result.metadata["status"] == 404

    @pytest.mark.asyncio
    async def test_network_error_propagates(self):
        services = Services(http=StubHttp(error=NetworkError("timeout")))
        with pytest.raises(NetworkError):
            await handle_http_request({"url": "https://x"}, NodeInputs(), services)


# ============================================================
# Condition Tests
# ============================================================

class TestCondition:

    @pytest.mark.parametrize("operator,expected,value,outcome", [
        ("equals", "Yes", " yes ", True),
        ("equals", "yes", "no", False),
        ("not_equals", "yes", "no", True),
        ("contains", "NEGATIVE", "Sentiment: negative", True),
        ("not_contains", "No relevant documents", "[1] doc", True),
        ("greater_than", "5", "10", True),
        ("greater_than", 5, "2.5", False),
        ("less_than", "5", " 3 ", True),
        ("length_gt", 3, "abcd", True),
        ("length_lt", 3, "abcd", False),
    ])
    def test_operators(self, operator, expected, value, outcome):
        assert evaluate_predicate({"operator": operator, "value": expected}, value) is outcome

    def test_field_path(self):
        predicate = {"operator": "greater_than", "value": 0.5, "field": "scores.0"}
        assert evaluate_predicate(predicate, '{"scores": [0.9]}') is True

    def test_builder_predicate_keys(self):
        assert evaluate_predicate({"conditionType": "contains", "conditionValue": "x"}, "xyz") is True

    def test_non_numeric_comparison(self):
        with pytest.raises(HandlerError):
            evaluate_predicate({"operator": "greater_than", "value": "5"}, "many")

    def test_unknown_operator(self):
        with pytest.raises(HandlerError):
            evaluate_predicate({"operator": "matches", "value": "x"}, "x")

    @pytest.mark.asyncio
    async def test_condition_passes_input_through(self, services):
        config = {"predicate": {"operator": "contains", "value": "ok"}}
        result = await handle_condition(config, NodeInputs(upstream={"a": "all ok"}), services)

        assert result.branch == "true"
        assert result.output == "all ok"
        assert result.status == NodeStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_flat_predicate_config(self, services):
        config = {"operator": "equals", "value": "b"}
        result = await handle_condition(config, NodeInputs(run_input="a"), services)
        assert result.branch == "false"

    @pytest.mark.asyncio
    async def test_cases_fall_back_to_default(self, services):
        config = {"cases": [{"operator": "equals", "value": "x", "branch": "ex"}]}
        result = await handle_condition(config, NodeInputs(run_input="y"), services)
        assert result.branch == "default"


# ============================================================
# Transform Tests
# ============================================================

class TestTransform:

    @pytest.mark.asyncio
    async def test_template(self, services):
        config = {"operation": "template", "template": "{{upstream.a}} + {{upstream.b}}"}
        result = await handle_transform(config, NodeInputs(upstream={"a": "1", "b": "2"}), services)
        assert result.output == "1 + 2"

    @pytest.mark.asyncio
    async def test_builder_transform_config(self, services):
        config = {"transformType": "template", "config": "<{{input}}>"}
        result = await handle_transform(config, NodeInputs(run_input="x"), services)
        assert result.output == "<x>"

    @pytest.mark.asyncio
    async def test_extract_json(self, services):
        config = {"operation": "extract_json", "path": "query.search.0.title"}
        body = '{"query": {"search": [{"title": "Graph"}]}}'
        result = await handle_transform(config, NodeInputs(upstream={"http": body}), services)
        assert result.output == "Graph"

    @pytest.mark.asyncio
    async def test_extract_json_missing_path(self, services):
        config = {"operation": "extract_json", "path": "nope"}
        result = await handle_transform(config, NodeInputs(run_input='{"a": 1}'), services)
        assert result.output == ""

    @pytest.mark.asyncio
    async def test_extract_json_invalid(self, services):
        with pytest.raises(HandlerError):
            await handle_transform({"operation": "extract_json"}, NodeInputs(run_input="{oops"), services)

    @pytest.mark.asyncio
    async def test_combine(self, services):
        config = {"operation": "combine", "separator": " | "}
        result = await handle_transform(config, NodeInputs(upstream={"a": "x", "b": "y"}), services)
        assert result.output == "x | y"

    @pytest.mark.asyncio
    async def test_split(self, services):
        config = {"operation": "split", "delimiter": ","}
        result = await handle_transform(config, NodeInputs(run_input="a, b,,c"), services)
        assert result.output == "1. a\n2. b\n3. c"

    @pytest.mark.asyncio
    async def test_split_empty_delimiter_uses_newlines(self, services):
        config = {"operation": "split", "delimiter": ""}
        result = await handle_transform(config, NodeInputs(run_input="a\nb"), services)
        assert result.output == "1. a\n2. b"

    @pytest.mark.asyncio
    async def test_unknown_operation(self, services):
        with pytest.raises(HandlerError):
            await handle_transform({"operation": "sort"}, NodeInputs(), services)


# ============================================================
# RAG Query / Output Tests
# ============================================================

class TestRagQuery:

    @pytest.mark.asyncio
    async def test_filters_by_relevance(self):
        retriever = StubRetriever([
            RetrievedChunk(content="Workflows are DAGs.", relevance_score=0.91),
            RetrievedChunk(content="Unrelated.", relevance_score=0.2),
        ])
        config = {"query": "About {{input}}", "min_relevance": 0.5}
        result = await handle_rag_query(config, NodeInputs(run_input="graphs"), Services(retriever=retriever))

        assert retriever.queries == ["About graphs"]
        assert result.output == "[1] (relevance: 0.91)\nWorkflows are DAGs."
        assert result.metadata["total_results"] == 1

    @pytest.mark.asyncio
    async def test_no_relevant_documents(self, services):
        result = await handle_rag_query({}, NodeInputs(run_input="q"), services)
        assert result.output == "No relevant documents found."


class TestWebSearch:

    @pytest.mark.asyncio
    async def test_formats_results(self):
        searcher = StubSearcher([
            SearchResult(title="Graph theory", url="https://example.com/graphs", content="Nodes and edges."),
            SearchResult(title="DAGs", url="https://example.com/dags"),
        ])
        config = {"queryTemplate": "{{input}} basics", "maxResults": 2}
        result = await handle_web_search(config, NodeInputs(run_input="graphs"), Services(web_search=searcher))

        assert searcher.queries == ["graphs basics"]
        assert result.output == (
            "[1] Graph theory\nhttps://example.com/graphs\nNodes and edges."
            "\n\n---\n\n"
            "[2] DAGs\nhttps://example.com/dags\n"
        )
        assert result.metadata == {"query": "graphs basics", "total_results": 2}

    @pytest.mark.asyncio
    async def test_max_results_limits_search(self):
        searcher = StubSearcher([SearchResult(title=str(i), url="u") for i in range(5)])
        result = await handle_web_search({"max_results": 1}, NodeInputs(run_input="q"), Services(web_search=searcher))
        assert result.metadata["total_results"] == 1

    @pytest.mark.asyncio
    async def test_no_results(self, services, searcher):
        result = await handle_web_search({}, NodeInputs(run_input="nothing"), services)

        assert searcher.queries == ["nothing"]
        assert result.output == "No search results found."
        assert result.metadata["total_results"] == 0

    @pytest.mark.asyncio
    async def test_unconfigured_search_fails(self):
        with pytest.raises(ProviderError):
            await handle_web_search({}, NodeInputs(run_input="q"), Services())


class TestOutput:

    @pytest.mark.asyncio
    async def test_passthrough(self, services):
        result = await handle_output({}, NodeInputs(upstream={"a": {"k": 1}}), services)
        assert result.output == {"k": 1}

    @pytest.mark.asyncio
    async def test_format_template(self, services):
        config = {"formatTemplate": "Answer: {{input}}"}
        result = await handle_output(config, NodeInputs(upstream={"a": "42"}), services)
        assert result.output == "Answer: 42"



# ============================================================
# Anthropic Client Tests
# ============================================================

class FakeMessages:
    """Stands in for ``AsyncAnthropic().messages``."""

    def __init__(self, message=None, error=None):
        self.message = message
        self.error = error
        self.requests = []

    async def create(self, **request):
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.message


def anthropic_message(*texts, input_tokens=100, output_tokens=20):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=t) for t in texts],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


class TestAnthropicLLMClient:

    @pytest.mark.asyncio
    async def test_completion_usage_and_cost(self):
        messages = FakeMessages(anthropic_message("Hello", " there"))
        client = AnthropicLLMClient(client=SimpleNamespace(messages=messages))

        completion = await client.complete("Hi", system="Be brief", temperature=0.3)

        assert completion.text == "Hello there"
        assert completion.tokens_used == 120
        assert completion.cost == pytest.approx(calculate_cost("claude-haiku-4-5", 100, 20))
        assert completion.metadata["input_tokens"] == 100
        assert messages.requests[0] == {
            "model": "claude-haiku-4-5",
            "max_tokens": 1024,
            "messages": [{"role": "user", "content": "Hi"}],
            "system": "Be brief",
            "temperature": 0.3,
        }

    @pytest.mark.asyncio
    async def test_optional_fields_omitted(self):
        messages = FakeMessages(anthropic_message("ok"))
        client = AnthropicLLMClient(client=SimpleNamespace(messages=messages), default_model="claude-sonnet-4-5")

        await client.complete("Hi", max_tokens=64)

        assert messages.requests[0] == {
            "model": "claude-sonnet-4-5",
            "max_tokens": 64,
            "messages": [{"role": "user", "content": "Hi"}],
        }

    @pytest.mark.asyncio
    async def test_api_error_becomes_provider_error(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        messages = FakeMessages(error=anthropic.APIConnectionError(request=request))
        client = AnthropicLLMClient(client=SimpleNamespace(messages=messages))

        with pytest.raises(ProviderError):
            await client.complete("Hi")

    def test_cost_per_model(self):
        assert calculate_cost("claude-sonnet-4-5", 1000, 1000) == pytest.approx(0.018)
        assert calculate_cost("unknown-model", 1000, 0) == pytest.approx(0.001)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
