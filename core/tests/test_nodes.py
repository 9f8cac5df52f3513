"""Tests for the built-in node library."""

from __future__ import annotations

import json

import httpx
import pytest

from nodekit.node import CreditMeter, Environment, ToolCapability
from nodekit.node.signals import CREDITS, ERROR_DETAIL, FLOW, TERMINATE, TOOL
from nodekit.nodes import NODE_TYPES, get_node
from nodekit.nodes.flux_image_gen import FluxBackend, FluxImageGen, parse_resolution
from nodekit.nodes.if_condition import IfCondition
from nodekit.nodes.quick_rag import QuickRag, split_text, token_cost
from nodekit.nodes.terminate_node import TerminateNode
from nodekit.nodes.video_gen import VideoGen, clamp_duration, price
from nodekit.nodes.widget_trigger import DEFAULT_INTRO, WidgetTrigger

FLUX_ENV = Environment(secrets={"FLUX_API_KEY": "flux-key"})
POLL_URL = "https://api.bfl.ai/v1/get_result?id=abc"


def flux_handler(statuses: list[dict], seen: list[httpx.Request]):
    remaining = iter(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"id": "abc", "polling_url": POLL_URL})
        return httpx.Response(200, json=next(remaining))

    return handler


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_all_nodes_registered(self):
        assert set(NODE_TYPES) == {
            "flux_image_gen",
            "video_gen",
            "quick_rag",
            "if_condition",
            "terminate_node",
            "widget_trigger",
        }

    def test_get_node(self):
        assert isinstance(get_node("if_condition"), IfCondition)

    def test_unknown_node(self):
        with pytest.raises(KeyError):
            get_node("missing")

    @pytest.mark.parametrize("node_type", sorted(NODE_TYPES))
    def test_descriptors_are_valid(self, node_type):
        config = NODE_TYPES[node_type].get_config()
        assert config.type == node_type
        assert config.title


# ---------------------------------------------------------------------------
# Flux
# ---------------------------------------------------------------------------


class TestFluxImageGen:
    @pytest.mark.asyncio
    async def test_generates_image(self, fake_sleep):
        seen: list[httpx.Request] = []
        transport = httpx.MockTransport(
            flux_handler(
                [{"status": "Pending"}, {"status": "Ready", "result": {"sample": "https://img/1.jpg"}}],
                seen,
            )
        )
        node = FluxImageGen(transport=transport, sleep=fake_sleep)

        result = await node.invoke(
            [{"name": "Prompt", "value": "A cat"}],
            [{"name": "Resolution", "value": "1600x800"}],
            FLUX_ENV,
        )

        assert result["Image URL"] == "https://img/1.jpg"
        assert result[FLOW] is True
        assert result["Success"] is True
        assert result[CREDITS] == 65
        body = json.loads(seen[0].content)
        assert (body["width"], body["height"], body["seed"]) == (1600, 800, 42)
        assert seen[0].headers["x-key"] == "flux-key"
        assert str(seen[1].url) == POLL_URL
        assert fake_sleep.calls == [3.0]

    @pytest.mark.asyncio
    async def test_default_resolution_is_1280x720(self, fake_sleep):
        seen: list[httpx.Request] = []
        transport = httpx.MockTransport(
            flux_handler([{"status": "Ready", "result": {"sample": "https://img/1.jpg"}}], seen)
        )
        node = FluxImageGen(transport=transport, sleep=fake_sleep)

        await node.invoke([{"name": "Prompt", "value": "A cat"}], [], FLUX_ENV)

        body = json.loads(seen[0].content)
        assert (body["width"], body["height"]) == (1280, 720)
        schema = node.create_tool(FLUX_ENV, CreditMeter(0)).describe().parameters
        assert schema["properties"]["resolution"]["enum"] == ["1280x720", "1600x800", "1920x1080"]
        assert schema["properties"]["resolution"]["default"] == "1280x720"

    @pytest.mark.asyncio
    async def test_missing_prompt_returns_tool(self):
        result = await FluxImageGen().invoke([], [], FLUX_ENV)

        assert result["Image URL"] is None
        assert isinstance(result[TOOL], ToolCapability)
        assert result[TOOL].name == "fluxImageGenerator"
        assert result[CREDITS] == 0

    @pytest.mark.asyncio
    async def test_timeout_after_twenty_polls(self, fake_sleep):
        seen: list[httpx.Request] = []
        transport = httpx.MockTransport(flux_handler([{"status": "Pending"}] * 25, seen))
        node = FluxImageGen(transport=transport, sleep=fake_sleep)

        result = await node.invoke([{"name": "Prompt", "value": "A cat"}], [], FLUX_ENV)

        assert result["Error"] is True
        assert result[CREDITS] == 0
        assert result[ERROR_DETAIL]["reason"] == "timeout"
        assert len(seen) == 21
        assert len(fake_sleep.calls) == 19

    @pytest.mark.asyncio
    async def test_vendor_failure(self, fake_sleep):
        seen: list[httpx.Request] = []
        transport = httpx.MockTransport(flux_handler([{"status": "Failed"}], seen))
        node = FluxImageGen(transport=transport, sleep=fake_sleep)

        result = await node.invoke([{"name": "Prompt", "value": "A cat"}], [], FLUX_ENV)

        assert result[ERROR_DETAIL]["reason"] == "vendor_failed"

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        result = await FluxImageGen().invoke([{"name": "Prompt", "value": "A cat"}], [], Environment())
        assert result["Error"] is True
        assert "FLUX_API_KEY" in result[ERROR_DETAIL]["message"]

    @pytest.mark.asyncio
    async def test_tool_call(self, fake_sleep):
        seen: list[httpx.Request] = []
        transport = httpx.MockTransport(
            flux_handler([{"status": "Ready", "result": {"sample": "https://img/2.jpg"}}], seen)
        )
        node = FluxImageGen(transport=transport, sleep=fake_sleep)
        payload = await node.invoke([], [], FLUX_ENV)

        text, credits = await payload[TOOL].invoke({"prompt": "A dog", "seed": 7})

        assert json.loads(text) == {"imageUrl": "https://img/2.jpg"}
        assert credits == 0
        assert json.loads(seen[0].content)["seed"] == 7

    def test_classify(self):
        backend = FluxBackend("k", httpx.AsyncClient())
        assert backend.classify({"status": "Pending"}).terminal is False
        assert backend.classify({"status": "Ready", "result": {}}).terminal is True

    @pytest.mark.parametrize(
        "value,expected",
        [("1920x1080", (1920, 1080)), ("bogus", (1024, 768)), (None, (1024, 768))],
    )
    def test_parse_resolution(self, value, expected):
        assert parse_resolution(value) == expected


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------


VEO_ENV = Environment(secrets={"VEO_PROJECT_ID": "proj", "VEO_ACCESS_TOKEN": "tok"})


class TestVideoGen:
    def test_pricing(self):
        assert price("Veo3", 8, True) == 4000
        assert price("Veo3", 8, False) == 2667
        assert price("Veo2", 6, False) == 2004
        assert price("Veo2", 20, False) == 334 * 8
        assert clamp_duration("x") == 8

    def test_estimate_usage(self):
        node = VideoGen()
        assert node.estimate_usage([], []) == 4000
        static = [{"name": "Model", "value": "Veo2"}, {"name": "Duration", "value": 5}]
        assert node.estimate_usage([], static) == 1670
        assert node.estimate_usage([{"name": "Generate Audio", "value": False}], []) == 2667

    @pytest.mark.asyncio
    async def test_generates_video_and_sets_price(self, fake_sleep, clock):
        seen: list[httpx.Request] = []
        polls = iter([{"done": False}, {"done": True, "response": {"videos": [{"gcsUri": "gs://b/v.mp4"}]}}])

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith(":predictLongRunning"):
                return httpx.Response(200, json={"name": "projects/proj/operations/op-1"})
            return httpx.Response(200, json=next(polls))

        node = VideoGen(transport=httpx.MockTransport(handler), sleep=fake_sleep, clock=clock)
        result = await node.invoke(
            [{"name": "Prompt", "value": "A sunrise"}],
            [{"name": "Model", "value": "Veo2"}, {"name": "Duration", "value": 6}],
            VEO_ENV,
        )

        assert result["Video Link"] == "gs://b/v.mp4"
        assert result[CREDITS] == 334 * 6
        assert "veo-2.0-generate-001" in str(seen[0].url)
        assert seen[0].headers["Authorization"] == "Bearer tok"
        assert json.loads(seen[1].content) == {"operationName": "projects/proj/operations/op-1"}
        assert fake_sleep.calls == [10.0]

    @pytest.mark.asyncio
    async def test_deadline_timeout(self, fake_sleep, clock, monkeypatch):
        monkeypatch.setenv("NODEKIT_POLL_TIMEOUT", "25")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith(":predictLongRunning"):
                return httpx.Response(200, json={"name": "op"})
            return httpx.Response(200, json={"done": False})

        node = VideoGen(transport=httpx.MockTransport(handler), sleep=fake_sleep, clock=clock)
        result = await node.invoke([{"name": "Prompt", "value": "x"}], [], VEO_ENV)

        assert result[ERROR_DETAIL]["reason"] == "timeout"
        assert result[CREDITS] == 0
        assert fake_sleep.calls == [10.0, 10.0, 5.0]

    @pytest.mark.asyncio
    async def test_missing_prompt_returns_tool(self):
        result = await VideoGen().invoke([], [], Environment())

        assert result["Video Link"] is None
        assert result[FLOW] is False
        assert isinstance(result[TOOL], ToolCapability)
        assert result[TOOL].name == "veoVideoGenerator"
        assert result[CREDITS] == 0

    @pytest.mark.asyncio
    async def test_tool_call_adds_price(self, fake_sleep, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith(":predictLongRunning"):
                return httpx.Response(200, json={"name": "op"})
            return httpx.Response(
                200, json={"done": True, "response": {"videos": [{"gcsUri": "gs://b/t.mp4"}]}}
            )

        node = VideoGen(transport=httpx.MockTransport(handler), sleep=fake_sleep, clock=clock)
        payload = await node.invoke([], [], VEO_ENV)

        text, credits = await payload[TOOL].invoke(
            {"prompt": "A wave", "model": "Veo2", "duration": 5}
        )

        assert json.loads(text) == {"videoUrl": "gs://b/t.mp4"}
        assert credits == 334 * 5

    @pytest.mark.asyncio
    async def test_tool_rejects_out_of_range_duration(self):
        payload = await VideoGen().invoke([], [], VEO_ENV)

        text, credits = await payload[TOOL].invoke({"prompt": "A wave", "duration": 30})

        assert "error" in json.loads(text)
        assert credits == 0

    @pytest.mark.asyncio
    async def test_unknown_model(self):
        result = await VideoGen().invoke(
            [{"name": "Prompt", "value": "x"}], [{"name": "Model", "value": "Veo9"}], VEO_ENV
        )
        assert result["Error"] is True
        assert "Veo9" in result[ERROR_DETAIL]["message"]


# ---------------------------------------------------------------------------
# Quick RAG
# ---------------------------------------------------------------------------


def rag_handler(page: str, seen: list[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.host == "r.jina.ai":
            return httpx.Response(200, text=page)
        texts = json.loads(request.content)["input"]
        # Query first; chunks mentioning "pricing" point the same way as the query
        data = [
            {"index": i, "embedding": [1.0, 0.0] if "pricing" in t else [0.0, 1.0]}
            for i, t in enumerate(texts)
        ]
        return httpx.Response(200, json={"data": data})

    return handler


RAG_ENV = Environment(secrets={"OPENAI_API_KEY": "sk-test"})


class TestQuickRag:
    def test_token_cost(self):
        assert token_cost(4_000_000) == 100
        assert token_cost(100) == 1
        assert token_cost(0) == 0

    def test_split_text_overlaps(self):
        chunks = split_text("a" * 2500, size=1000, overlap=200)
        assert [len(c) for c in chunks] == [1000, 1000, 900]

    def test_estimate_usage(self):
        node = QuickRag()
        assert node.estimate_usage([{"name": "Source", "value": "https://x"}], []) == 5
        assert node.estimate_usage([{"name": "Source", "value": "short"}], []) == 1

    @pytest.mark.asyncio
    async def test_raw_text_source(self):
        seen: list[httpx.Request] = []
        text = "pricing is 10 dollars. " + "filler " * 400
        node = QuickRag(transport=httpx.MockTransport(rag_handler("", seen)))

        result = await node.invoke(
            [{"name": "Source", "value": text}, {"name": "Query", "value": "pricing?"}], [], RAG_ENV
        )

        assert result["Context"].startswith("pricing is 10 dollars")
        assert result[CREDITS] == 1
        assert all(r.url.host == "api.openai.com" for r in seen)
        assert seen[0].headers["Authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_url_source_fetched_through_reader(self):
        seen: list[httpx.Request] = []
        node = QuickRag(transport=httpx.MockTransport(rag_handler("pricing page", seen)))

        result = await node.invoke(
            [{"name": "Source", "value": "https://example.com"}],
            [{"name": "Query", "value": "pricing"}],
            RAG_ENV,
        )

        assert result["Context"] == "pricing page"
        assert str(seen[0].url) == "https://r.jina.ai/https://example.com"

    @pytest.mark.asyncio
    async def test_oversized_source_fails(self):
        node = QuickRag(transport=httpx.MockTransport(rag_handler("", [])))
        result = await node.invoke(
            [{"name": "Source", "value": "x" * 200_001}, {"name": "Query", "value": "q"}], [], RAG_ENV
        )
        assert result["Error"] is True
        assert result[CREDITS] == 0

    @pytest.mark.asyncio
    async def test_missing_query_returns_tool(self):
        result = await QuickRag().invoke([{"name": "Source", "value": "text"}], [], RAG_ENV)
        assert result[TOOL].name == "quickRag"
        assert result[CREDITS] == 0

    @pytest.mark.asyncio
    async def test_tool_call_adds_token_cost(self):
        seen: list[httpx.Request] = []
        page = "pricing " * 1000
        node = QuickRag(transport=httpx.MockTransport(rag_handler(page, seen)))
        capability = node.create_tool(RAG_ENV, CreditMeter(10))

        text, credits = await capability.invoke({"url": "https://example.com", "question": "pricing"})

        assert "pricing" in text
        assert credits == 10 + token_cost(len(page))


# ---------------------------------------------------------------------------
# Flow control
# ---------------------------------------------------------------------------


class TestIfCondition:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "a,op,b,expected",
        [
            (1, "==", 1, True),
            ("10", ">", "9", True),
            ("apple", "<", "banana", True),
            (3, "!=", 3, False),
            (2, "<=", 2, True),
        ],
    )
    async def test_comparisons(self, a, op, b, expected):
        result = await IfCondition().invoke(
            [{"name": "Input 1", "value": a}, {"name": "Input 2", "value": b}],
            [{"name": "Condition", "value": op}],
        )
        assert result["Result"] is expected
        assert result["True"] is expected
        assert result["False"] is (not expected)
        assert FLOW not in result
        assert "Success" not in result

    @pytest.mark.asyncio
    async def test_missing_input(self):
        result = await IfCondition().invoke([{"name": "Input 1", "value": 1}], [])
        assert result["Result"] is None
        assert "True" not in result
        assert result[TOOL] is None
        assert result[CREDITS] == 0
        assert IfCondition.tool_name is None

    @pytest.mark.asyncio
    async def test_unknown_condition(self):
        result = await IfCondition().invoke(
            [{"name": "Input 1", "value": 1}, {"name": "Input 2", "value": 1}],
            [{"name": "Condition", "value": "~="}],
        )
        assert "~=" in result[ERROR_DETAIL]["message"]


class TestTerminateNode:
    @pytest.mark.asyncio
    async def test_terminates(self):
        result = await TerminateNode().invoke([{"name": "Reason", "value": "done"}], [])
        assert result[TERMINATE] is True
        assert result[CREDITS] == 0
        assert FLOW not in result


class TestWidgetTrigger:
    @pytest.mark.asyncio
    async def test_init_handshake(self):
        env = Environment(metadata={"widgetPayload": {"init": True}})
        result = await WidgetTrigger().invoke([], [{"name": "Company Name", "value": "Acme"}], env)

        assert result[FLOW] is False
        assert result[TERMINATE] is True
        assert result["intro"] == DEFAULT_INTRO
        assert result["companyName"] == "Acme"
        assert result["Message"] == ""

    @pytest.mark.asyncio
    async def test_message_continues_flow(self):
        env = Environment(metadata={"widgetPayload": {"Message": "Hi there"}})
        result = await WidgetTrigger().invoke([], [], env)

        assert result[FLOW] is True
        assert result["Message"] == "Hi there"
        assert TERMINATE not in result
        assert result[CREDITS] == 0
