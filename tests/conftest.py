"""
Shared fixtures: stub capabilities so no test touches the network.
"""

import pytest
from typing import Dict, List, Optional

from accelflow.errors import NetworkError, ProviderError
from accelflow.services.capabilities import (
    Completion,
    HttpResponse,
    RetrievedChunk,
    SearchResult,
    Services,
)


class StubLLM:
    """Returns canned completions in order and records every prompt."""

    def __init__(self, *completions: Completion, error: Optional[Exception] = None):
        self.completions = list(completions) or [Completion(text="hi", tokens_used=12, cost=0.001)]
        self.error = error
        self.calls: List[Dict] = []

    async def complete(self, prompt, *, system=None, model=None, max_tokens=None, temperature=None):
        self.calls.append({
            "prompt": prompt,
            "system": system,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if self.error:
            raise self.error
        index = min(len(self.calls) - 1, len(self.completions) - 1)
        return self.completions[index]


class StubHttp:
    """Answers every request with one response, or raises."""

    def __init__(self, response: Optional[HttpResponse] = None, error: Optional[Exception] = None):
        self.response = response or HttpResponse(status=200, body='{"ok": true}')
        self.error = error
        self.calls: List[Dict] = []

    async def fetch(self, method, url, body=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "body": body, "headers": headers})
        if self.error:
            raise self.error
        return self.response


class StubRetriever:
    def __init__(self, chunks: Optional[List[RetrievedChunk]] = None):
        self.chunks = chunks or []
        self.queries: List[str] = []

    async def search(self, user_id, query, top_k):
        self.queries.append(query)
        return self.chunks[:top_k]


class StubSearcher:
    def __init__(self, results: Optional[List[SearchResult]] = None):
        self.results = results or []
        self.queries: List[str] = []

    async def search(self, query, max_results):
        self.queries.append(query)
        return self.results[:max_results]


@pytest.fixture
def llm():
    return StubLLM()


@pytest.fixture
def http():
    return StubHttp()


@pytest.fixture
def retriever():
    return StubRetriever()


@pytest.fixture
def searcher():
    return StubSearcher()


@pytest.fixture
def services(llm, http, retriever, searcher):
    return Services(llm=llm, http=http, retriever=retriever, web_search=searcher)


@pytest.fixture
def failing_services():
    """LLM and HTTP both fail the way real providers do."""
    return Services(
        llm=StubLLM(error=ProviderError("rate limited")),
        http=StubHttp(error=NetworkError("connection refused")),
        retriever=StubRetriever(),
    )
