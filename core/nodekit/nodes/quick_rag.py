"""
Quick RAG - answer a query against a URL or a block of raw text.

Pipeline: fetch (URLs go through the r.jina.ai reader) → split into
overlapping chunks → embed chunks and query with OpenAI embeddings →
return the top matches by cosine similarity.

Pricing is per processed token: ``ceil(len(text) / 4)`` tokens at
CREDITS_PER_1M_TOKENS. A direct run replaces the declared cost with that
price; each agent call adds its own price to the meter.
"""

from __future__ import annotations

import math
from typing import Any

import httpx
from pydantic import BaseModel, Field

from nodekit.jobs import http_client
from nodekit.node import (
    CreditTransaction,
    Environment,
    ExecutableNode,
    ExecutionContext,
    FieldSpec,
    InvocationMode,
    ParameterSpec,
    Port,
    ResultPayload,
)

MAX_CHARS = 200_000
CREDITS_PER_1M_TOKENS = 100
CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200
TOP_K = 5

READER_URL = "https://r.jina.ai/"
EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"
EMBEDDING_MODEL = "text-embedding-3-small"


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def token_cost(char_count: int) -> int:
    tokens = math.ceil(char_count / 4)
    return math.ceil(tokens * CREDITS_PER_1M_TOKENS / 1e6)


def split_text(text: str, size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> list[str]:
    """Fixed-size windows with overlap; blank chunks are dropped."""
    step = max(1, size - overlap)
    chunks = []
    for start in range(0, len(text), step):
        chunk = text[start : start + size].strip()
        if chunk:
            chunks.append(chunk)
        if start + size >= len(text):
            break
    return chunks


def cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class QuickRagArgs(BaseModel):
    url: str = Field(description="The URL to read")
    question: str = Field(description="What to find in the URL")


class QuickRag(ExecutableNode):
    type = "quick_rag"
    title = "Quick RAG"
    category = "processing"
    description = "Instantly process text or a URL to answer a specific query. (Max 200k characters)"
    credit = 10
    inputs = [
        Port(name="Flow", type="Flow", desc="The flow of the workflow"),
        Port(name="Source", type="Text", desc="URL to scrape or Raw Text to analyze"),
        Port(name="Query", type="Text", desc="The question you want to ask about this source"),
    ]
    outputs = [
        Port(name="Flow", type="Flow", desc="The Flow to trigger"),
        Port(name="Context", type="Text", desc="Retrieved Context (The relevant parts of the text)"),
        Port(name="Tool", type="Tool", desc="The tool version of this node"),
    ]
    fields = [
        FieldSpec(name="Source", type="TextArea", desc="URL or Text content", value=""),
        FieldSpec(name="Query", type="Text", desc="What do you want to find?", value=""),
    ]
    difficulty = "medium"
    tags = ["rag", "scraping", "search", "memory", "ai"]

    parameters = [
        ParameterSpec(name="Source", required=True, tool_arg="url"),
        ParameterSpec(name="Query", required=True, tool_arg="question"),
    ]

    tool_name = "quickRag"
    tool_description = "Read a website URL and find specific information within it."
    tool_args = QuickRagArgs

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__()
        self.transport = transport

    def estimate_usage(self, dynamic, static, environment: Environment | None = None) -> int | None:
        source = str(self.resolver.resolve_all(dynamic, static).get("Source") or "")
        length = MAX_CHARS if is_url(source) else min(len(source), MAX_CHARS)
        return max(1, token_cost(length))

    async def fetch(self, client: httpx.AsyncClient, url: str) -> str:
        response = await client.get(f"{READER_URL}{url}")
        response.raise_for_status()
        return response.text

    async def embed(self, client: httpx.AsyncClient, api_key: str, texts: list[str]) -> list[list[float]]:
        response = await client.post(
            EMBEDDINGS_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            json={"model": EMBEDDING_MODEL, "input": texts},
        )
        response.raise_for_status()
        data = sorted(response.json()["data"], key=lambda item: item["index"])
        return [item["embedding"] for item in data]

    async def retrieve(self, client: httpx.AsyncClient, api_key: str, text: str, query: str) -> str:
        chunks = split_text(text)
        vectors = await self.embed(client, api_key, [query, *chunks])
        query_vector, chunk_vectors = vectors[0], vectors[1:]
        ranked = sorted(
            zip(chunks, chunk_vectors, strict=True),
            key=lambda pair: cosine(query_vector, pair[1]),
            reverse=True,
        )
        return "\n\n---\n\n".join(chunk for chunk, _ in ranked[:TOP_K])

    async def run(self, ctx: ExecutionContext, credits: CreditTransaction) -> dict[str, Any]:
        api_key = ctx.secret("OPENAI_API_KEY")
        source = str(ctx.param("Source"))
        query = str(ctx.param("Query"))

        async with http_client(self.transport) as client:
            text = await self.fetch(client, source) if is_url(source) else source
            if not text.strip():
                raise ValueError("Source content is empty")
            if len(text) > MAX_CHARS:
                raise ValueError(
                    f"Input too large: {len(text)} characters, limit is {MAX_CHARS}. "
                    "Summarize or use a shorter source."
                )

            ctx.logger.info(f'Searching for: "{query}"')
            context = await self.retrieve(client, api_key, text, query)

        cost = token_cost(len(text))
        if ctx.mode is InvocationMode.DELEGATED:
            credits.charge(cost)
        else:
            credits.set(max(1, cost))
        ctx.logger.success(f"Context retrieved, {math.ceil(len(text) / 4)} tokens processed")
        return {"Context": context}

    def tool_text(self, payload: ResultPayload) -> str:
        return payload.outputs.get("Context") or ""
