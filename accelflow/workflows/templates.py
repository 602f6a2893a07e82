"""
Built-in Workflow Templates.

Starter workflows shown in the builder. They are registered in storage at
startup as templates, readable and runnable by every user:

1. Research Summarizer - search, extract, summarize (linear)
2. Document Q&A with Fallback - answer from documents, else from the web
3. Content Review Pipeline - route content by sentiment
"""

from typing import Any, Dict, List
import logging

from accelflow.engine.definition import parse_definition


logger = logging.getLogger(__name__)


TEMPLATE_OWNER = "system"

SEARCH_URL = "https://en.wikipedia.org/w/api.php?action=query&list=search&format=json&srlimit=5&srsearch={{input}}"


WORKFLOW_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "tpl-research-summarizer",
        "name": "Research Summarizer",
        "description": "Search the web for a topic and get an AI-generated summary.",
        "definition": {
            "nodes": [
                {"id": "input-1", "type": "input", "label": "Topic"},
                {
                    "id": "search-1",
                    "type": "http_request",
                    "label": "Search Web",
                    "config": {"method": "GET", "url": SEARCH_URL},
                },
                {
                    "id": "extract-1",
                    "type": "transform",
                    "label": "Extract Results",
                    "config": {"operation": "extract_json", "path": "query.search"},
                },
                {
                    "id": "llm-1",
                    "type": "prompt",
                    "label": "Summarize Results",
                    "config": {
                        "system_prompt": "You are a research assistant. Summarize search "
                                         "results into a clear, well-organized brief.",
                        "prompt": "Topic: {{workflow.input}}\n\nSummarize the following search "
                                  "results into a concise research brief:\n\n{{input}}",
                        "max_tokens": 1024,
                        "temperature": 0.7,
                    },
                },
                {"id": "output-1", "type": "output", "label": "Summary"},
            ],
            "edges": [
                {"source": "input-1", "target": "search-1"},
                {"source": "search-1", "target": "extract-1"},
                {"source": "extract-1", "target": "llm-1"},
                {"source": "llm-1", "target": "output-1"},
            ],
        },
    },
    {
        "id": "tpl-doc-qa-fallback",
        "name": "Document Q&A with Fallback",
        "description": "Search your documents first. If nothing relevant is found, "
                       "fall back to a web search.",
        "definition": {
            "nodes": [
                {"id": "input-1", "type": "input", "label": "Question"},
                {
                    "id": "rag-1",
                    "type": "rag_query",
                    "label": "Search Documents",
                    "config": {"query": "{{input}}", "top_k": 5, "min_relevance": 0.6},
                },
                {
                    "id": "cond-1",
                    "type": "condition",
                    "label": "Has Results?",
                    "config": {
                        "predicate": {
                            "operator": "not_contains",
                            "value": "No relevant documents found",
                        },
                    },
                },
                {
                    "id": "llm-doc",
                    "type": "prompt",
                    "label": "Answer from Docs",
                    "config": {
                        "system_prompt": "Answer the question using only the provided document context.",
                        "prompt": "Question: {{workflow.input}}\n\nContext:\n{{input}}\n\n"
                                  "Answer the question based on this context.",
                    },
                },
                {
                    "id": "web-fallback",
                    "type": "http_request",
                    "label": "Web Fallback",
                    "config": {
                        "method": "GET",
                        "url": SEARCH_URL.replace("{{input}}", "{{workflow.input}}"),
                    },
                },
                {
                    "id": "llm-web",
                    "type": "prompt",
                    "label": "Answer from Web",
                    "config": {
                        "system_prompt": "Answer the question using the web search results provided.",
                        "prompt": "Question: {{workflow.input}}\n\nWeb results:\n{{input}}\n\n"
                                  "Answer the question based on these results.",
                    },
                },
                {"id": "output-1", "type": "output", "label": "Answer"},
                {"id": "output-2", "type": "output", "label": "Web Answer"},
            ],
            "edges": [
                {"source": "input-1", "target": "rag-1"},
                {"source": "rag-1", "target": "cond-1"},
                {"source": "cond-1", "target": "llm-doc", "condition": "true"},
                {"source": "cond-1", "target": "web-fallback", "condition": "false"},
                {"source": "llm-doc", "target": "output-1"},
                {"source": "web-fallback", "target": "llm-web"},
                {"source": "llm-web", "target": "output-2"},
            ],
        },
    },
    {
        "id": "tpl-content-review",
        "name": "Content Review Pipeline",
        "description": "Analyze content sentiment, then route negative content to a "
                       "drafted response and log the rest.",
        "definition": {
            "nodes": [
                {"id": "input-1", "type": "input", "label": "Content"},
                {
                    "id": "llm-sentiment",
                    "type": "prompt",
                    "label": "Analyze Sentiment",
                    "config": {
                        "system_prompt": "Analyze the sentiment of the following text. Respond with "
                                         'ONLY one word: "positive", "negative", or "neutral".',
                        "prompt": "{{input}}",
                        "max_tokens": 10,
                    },
                },
                {
                    "id": "cond-1",
                    "type": "condition",
                    "label": "Is Negative?",
                    "config": {"predicate": {"operator": "contains", "value": "negative"}},
                },
                {
                    "id": "llm-response",
                    "type": "prompt",
                    "label": "Draft Response",
                    "config": {
                        "system_prompt": "Draft a professional, empathetic response to address "
                                         "the negative feedback.",
                        "prompt": "The following content received negative sentiment. "
                                  "Draft a response:\n\n{{workflow.input}}",
                    },
                },
                {
                    "id": "transform-log",
                    "type": "transform",
                    "label": "Log Positive",
                    "config": {
                        "operation": "template",
                        "template": "Content reviewed: Sentiment is {{input}}. No action needed."
                                    "\n\nOriginal: {{workflow.input}}",
                    },
                },
                {"id": "output-neg", "type": "output", "label": "Response Draft"},
                {"id": "output-pos", "type": "output", "label": "Review Log"},
            ],
            "edges": [
                {"source": "input-1", "target": "llm-sentiment"},
                {"source": "llm-sentiment", "target": "cond-1"},
                {"source": "cond-1", "target": "llm-response", "condition": "true"},
                {"source": "cond-1", "target": "transform-log", "condition": "false"},
                {"source": "llm-response", "target": "output-neg"},
                {"source": "transform-log", "target": "output-pos"},
            ],
        },
    },
]


async def register_workflow_templates() -> int:
    """
    Register the built-in templates in storage.

    Each definition is validated first, so a broken template fails
    startup instead of its first run.

    Returns:
        Number of templates registered
    """
    from accelflow.storage.memory import workflow_storage

    for template in WORKFLOW_TEMPLATES:
        parse_definition(template["definition"])
        await workflow_storage.save(
            workflow_id=template["id"],
            user_id=TEMPLATE_OWNER,
            name=template["name"],
            definition=template["definition"],
            description=template["description"],
            is_template=True,
        )

    logger.info(f"Registered {len(WORKFLOW_TEMPLATES)} workflow templates")
    return len(WORKFLOW_TEMPLATES)
