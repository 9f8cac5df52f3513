"""
Flux Image Gen - text-to-image through the Black Forest Labs API.

Submit returns a ``polling_url``; the status body reports ``Ready`` with
``result.sample`` (the image URL), ``Failed``/``Error``, or anything else
while the job is still running.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from nodekit.jobs import (
    AsyncJobOrchestrator,
    AttemptBudget,
    Failed,
    HttpJobBackend,
    Pending,
    PollOutcome,
    Ready,
    http_client,
)
from nodekit.node import (
    CreditTransaction,
    ExecutableNode,
    ExecutionContext,
    FailureReason,
    FieldSpec,
    Port,
    ResultPayload,
)

FLUX_SUBMIT_URL = "https://api.bfl.ai/v1/flux-dev"
POLL_INTERVAL = 3.0
MAX_ATTEMPTS = 20
RESOLUTIONS = ["1024x768", "1600x800", "1920x1080"]
DEFAULT_RESOLUTION = "1280x720"
DEFAULT_SEED = 42


def parse_resolution(value: Any) -> tuple[int, int]:
    """'1600x800' -> (1600, 800); anything unparseable falls back to 1024x768."""
    if isinstance(value, str):
        parts = value.lower().split("x")
        if len(parts) == 2 and all(p.strip().isdigit() for p in parts):
            return int(parts[0]), int(parts[1])
    return 1024, 768


class FluxBackend(HttpJobBackend):
    """BFL submit/poll endpoints, authenticated with the ``x-key`` header."""

    def __init__(self, api_key: str, client: httpx.AsyncClient):
        super().__init__(client, headers={"x-key": api_key})

    def submit_url(self, request: dict[str, Any]) -> str:
        return FLUX_SUBMIT_URL

    def extract_token(self, data: dict[str, Any]) -> str | None:
        return data.get("polling_url")

    def classify(self, data: dict[str, Any]) -> PollOutcome:
        status = data.get("status")
        if status == "Ready":
            sample = (data.get("result") or {}).get("sample")
            if not sample:
                return Failed(FailureReason.VENDOR_FAILED, "Job ready but no image returned")
            return Ready(sample)
        if status in ("Failed", "Error", "Content Moderated", "Request Moderated"):
            return Failed(FailureReason.VENDOR_FAILED, f"Flux generation status: {status}")
        return Pending(detail=status)


class FluxImageArgs(BaseModel):
    prompt: str = Field(description="The detailed text description of the image to generate.")
    resolution: Literal["1280x720", "1600x800", "1920x1080"] = Field(
        default=DEFAULT_RESOLUTION, description="The resolution of the output image."
    )
    seed: int = Field(default=DEFAULT_SEED, description="The random seed for generation.")


class FluxImageGen(ExecutableNode):
    type = "flux_image_gen"
    title = "Flux Image Gen"
    category = "GenAI"
    description = "Generate images using Flux AI."
    credit = 65
    inputs = [
        Port(name="Flow", type="Flow", desc="The flow of the workflow"),
        Port(name="Prompt", type="Text", desc="The image description"),
        Port(name="Seed", type="Number", desc="Random seed for generation"),
    ]
    outputs = [
        Port(name="Flow", type="Flow", desc="The Flow to trigger"),
        Port(name="Image URL", type="Text", desc="The generated image URL"),
        Port(name="Tool", type="Tool", desc="The tool version of this node"),
    ]
    fields = [
        FieldSpec(name="Prompt", type="Text", desc="The image description", value="A futuristic city..."),
        FieldSpec(
            name="Resolution",
            type="select",
            desc="Image resolution",
            value=RESOLUTIONS[0],
            options=RESOLUTIONS,
        ),
        FieldSpec(name="Seed", type="Number", desc="Random seed (optional)", value=DEFAULT_SEED),
    ]
    difficulty = "medium"
    tags = ["image", "flux", "ai", "generation"]

    defaults = {"Resolution": DEFAULT_RESOLUTION, "Seed": DEFAULT_SEED}
    required = frozenset({"Prompt"})

    tool_name = "fluxImageGenerator"
    tool_description = (
        "Generates an image using Flux AI based on a text prompt. "
        "Returns a URL to the generated image."
    )
    tool_args = FluxImageArgs

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__()
        self.transport = transport
        self.sleep = sleep

    def build_request(self, ctx: ExecutionContext) -> dict[str, Any]:
        width, height = parse_resolution(ctx.param("Resolution"))
        try:
            seed = int(ctx.param("Seed", DEFAULT_SEED))
        except (TypeError, ValueError):
            seed = DEFAULT_SEED
        return {
            "prompt": ctx.param("Prompt"),
            "width": width,
            "height": height,
            "steps": 28,
            "prompt_upsampling": False,
            "seed": seed,
            "guidance": 5,
            "safety_tolerance": 2,
            "output_format": "jpeg",
        }

    def orchestrator(self, backend: FluxBackend) -> AsyncJobOrchestrator:
        return AsyncJobOrchestrator(
            backend,
            budget=AttemptBudget(MAX_ATTEMPTS),
            poll_interval=POLL_INTERVAL,
            sleep=self.sleep,
            name="flux",
        )

    async def run(self, ctx: ExecutionContext, credits: CreditTransaction) -> ResultPayload:
        api_key = ctx.secret("FLUX_API_KEY")
        request = self.build_request(ctx)
        ctx.logger.info(f"Requesting generation: {request['width']}x{request['height']}")

        async with http_client(self.transport) as client:
            job = await self.orchestrator(FluxBackend(api_key, client)).run(request)

        image_url = job.unwrap()
        ctx.logger.success("Image ready")
        return ResultPayload(outputs={"Image URL": image_url})

    def tool_text(self, payload: ResultPayload) -> str:
        return json.dumps({"imageUrl": payload.outputs.get("Image URL")})
