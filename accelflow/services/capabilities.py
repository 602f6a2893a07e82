"""
External Capabilities used by node handlers.

Handlers never talk to the network directly; they receive a ``Services``
bundle holding an LLM client, an HTTP client, a document retriever and a
web search client.
Tests pass stubs, the application builds real clients from settings.
"""

from typing import Any, Dict, List, Optional, Protocol, Tuple
from dataclasses import dataclass, field
import logging

import anthropic
import httpx

from accelflow.errors import NetworkError, ProviderError


logger = logging.getLogger(__name__)


@dataclass
class Completion:
    """Text returned by the LLM plus its usage accounting."""
    text: str
    tokens_used: int = 0
    cost: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HttpResponse:
    """A received HTTP response."""
    status: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class RetrievedChunk:
    """A document chunk returned by the retriever."""
    content: str
    relevance_score: float
    document_id: Optional[str] = None


@dataclass
class SearchResult:
    """A web search hit."""
    title: str
    url: str
    content: str = ""


class LLMClient(Protocol):
    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        ...


class HttpClient(Protocol):
    async def fetch(
        self,
        method: str,
        url: str,
        body: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        ...


class Retriever(Protocol):
    async def search(self, user_id: str, query: str, top_k: int) -> List[RetrievedChunk]:
        ...


class WebSearcher(Protocol):
    async def search(self, query: str, max_results: int) -> List[SearchResult]:
        ...


# ============================================================
# HTTP
# ============================================================

class HttpxClient:
    """HTTP capability backed by httpx."""

    def __init__(self, default_timeout: float = 30.0):
        self.default_timeout = default_timeout

    async def fetch(
        self,
        method: str,
        url: str,
        body: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        timeout = timeout if timeout is not None else self.default_timeout
        logger.info(f"HTTP {method} {url}")
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.request(
                    method,
                    url,
                    content=body.encode("utf-8") if body is not None else None,
                    headers=headers,
                )
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

        return HttpResponse(
            status=response.status_code,
            body=response.text,
            headers=dict(response.headers),
        )


# ============================================================
# LLM
# ============================================================

class UnconfiguredLLMClient:
    """Used when no LLM gateway is configured; every call fails."""

    async def complete(self, prompt: str, **options: Any) -> Completion:
        raise ProviderError("LLM provider not configured")


class GatewayLLMClient:
    """
    LLM capability served by the internal completion gateway.

    The gateway accepts ``{prompt, system, model, max_tokens, temperature}``
    and answers ``{text, tokens_used, cost}``; provider selection and
    pricing live behind it.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.url = url
        self.token = token
        self.default_model = default_model
        self.timeout = timeout

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        payload: Dict[str, Any] = {
            "prompt": prompt,
            "system": system,
            "model": model or self.default_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    json={k: v for k, v in payload.items() if v is not None},
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"LLM gateway returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"LLM gateway request failed: {e}") from e

        return Completion(
            text=str(data.get("text", "")),
            tokens_used=int(data.get("tokens_used", 0)),
            cost=float(data.get("cost", 0.0)),
            metadata={"model": data.get("model", payload["model"])},
        )


# USD per 1K tokens (input, output)
MODEL_PRICING: Dict[str, Tuple[float, float]] = {
    "claude-haiku-4-5": (0.001, 0.005),
    "claude-sonnet-4-5": (0.003, 0.015),
    "claude-3-5-sonnet-20241022": (0.003, 0.015),
    "claude-3-haiku-20240307": (0.00025, 0.00125),
}


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Cost of one call; unknown models are priced like the default model."""
    input_price, output_price = MODEL_PRICING.get(model, MODEL_PRICING["claude-haiku-4-5"])
    return (input_tokens / 1000) * input_price + (output_tokens / 1000) * output_price


class AnthropicLLMClient:
    """LLM capability calling the Anthropic Messages API directly."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "claude-haiku-4-5",
        default_max_tokens: int = 1024,
        client: Optional[Any] = None,
    ):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self.default_model = default_model
        self.default_max_tokens = default_max_tokens

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        model = model or self.default_model
        request: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens or self.default_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system
        if temperature is not None:
            request["temperature"] = temperature

        try:
            message = await self.client.messages.create(**request)
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic request failed: {e}") from e

        text = "".join(block.text for block in message.content if block.type == "text")
        input_tokens = message.usage.input_tokens
        output_tokens = message.usage.output_tokens
        return Completion(
            text=text,
            tokens_used=input_tokens + output_tokens,
            cost=calculate_cost(model, input_tokens, output_tokens),
            metadata={"model": model, "input_tokens": input_tokens, "output_tokens": output_tokens},
        )


# ============================================================
# Retrieval
# ============================================================

class UnconfiguredRetriever:
    """Used when no retrieval service is configured; every search fails."""

    async def search(self, user_id: str, query: str, top_k: int) -> List[RetrievedChunk]:
        raise ProviderError("Document retrieval not configured")


class GatewayRetriever:
    """Hybrid document search served by the RAG service."""

    def __init__(self, url: str, token: Optional[str] = None, timeout: float = 30.0):
        self.url = url
        self.token = token
        self.timeout = timeout

    async def search(self, user_id: str, query: str, top_k: int) -> List[RetrievedChunk]:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    json={"user_id": user_id, "query": query, "top_k": top_k},
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"Retrieval service returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Retrieval request failed: {e}") from e

        return [
            RetrievedChunk(
                content=str(item.get("content", "")),
                relevance_score=float(item.get("relevance_score", 0.0)),
                document_id=item.get("document_id"),
            )
            for item in data.get("results", [])
        ]


# ============================================================
# Web search
# ============================================================

class UnconfiguredWebSearcher:
    """Used when no search API key is configured; every search fails."""

    async def search(self, query: str, max_results: int) -> List[SearchResult]:
        raise ProviderError("Web search not configured")


class TavilySearcher:
    """Web search through the Tavily search API."""

    SEARCH_URL = "https://api.tavily.com/search"

    def __init__(self, api_key: str, timeout: float = 30.0):
        self.api_key = api_key
        self.timeout = timeout

    async def search(self, query: str, max_results: int) -> List[SearchResult]:
        payload = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": "basic",
            "max_results": max_results,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.SEARCH_URL, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"Search API returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Search request failed: {e}") from e

        return [
            SearchResult(
                title=str(item.get("title", "")),
                url=str(item.get("url", "")),
                content=str(item.get("content", "")),
            )
            for item in data.get("results", [])
        ]


# ============================================================
# Bundle
# ============================================================

@dataclass
class Services:
    """The external capabilities available to node handlers."""
    llm: LLMClient = field(default_factory=UnconfiguredLLMClient)
    http: HttpClient = field(default_factory=HttpxClient)
    retriever: Retriever = field(default_factory=UnconfiguredRetriever)
    web_search: WebSearcher = field(default_factory=UnconfiguredWebSearcher)


def build_services(settings) -> Services:
    """
    Build the capability bundle from application settings.

    The LLM gateway wins over a direct Anthropic key when both are set.
    """
    if settings.LLM_GATEWAY_URL:
        llm: LLMClient = GatewayLLMClient(
            settings.LLM_GATEWAY_URL,
            token=settings.LLM_GATEWAY_TOKEN,
            default_model=settings.DEFAULT_LLM_MODEL,
        )
    elif settings.ANTHROPIC_API_KEY:
        llm = AnthropicLLMClient(
            settings.ANTHROPIC_API_KEY,
            default_model=settings.DEFAULT_LLM_MODEL,
        )
    else:
        logger.warning("Neither LLM_GATEWAY_URL nor ANTHROPIC_API_KEY set; prompt nodes will fail")
        llm = UnconfiguredLLMClient()

    if settings.RETRIEVAL_URL:
        retriever: Retriever = GatewayRetriever(
            settings.RETRIEVAL_URL,
            token=settings.LLM_GATEWAY_TOKEN,
        )
    else:
        retriever = UnconfiguredRetriever()

    if settings.TAVILY_API_KEY:
        web_search: WebSearcher = TavilySearcher(
            settings.TAVILY_API_KEY,
            timeout=settings.HTTP_NODE_TIMEOUT,
        )
    else:
        web_search = UnconfiguredWebSearcher()

    return Services(
        llm=llm,
        http=HttpxClient(default_timeout=settings.HTTP_NODE_TIMEOUT),
        retriever=retriever,
        web_search=web_search,
    )
