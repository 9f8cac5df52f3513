"""
Video Gen - Google Veo long-running video generation on Vertex AI.

The job is bounded by wall-clock time rather than attempts: rendering takes
minutes and the vendor gives no progress signal. Pricing depends on the model,
the duration and whether audio is generated, so the meter is replaced with
the final price once the request is known. A delegated call adds that price
to the running total instead.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from nodekit.config import get_poll_timeout_seconds
from nodekit.jobs import (
    AsyncJobOrchestrator,
    DeadlineBudget,
    Failed,
    HttpJobBackend,
    JobHandle,
    Pending,
    PollOutcome,
    Ready,
    http_client,
)
from nodekit.node import (
    CreditTransaction,
    Environment,
    ExecutableNode,
    ExecutionContext,
    FailureReason,
    FieldSpec,
    InvocationMode,
    Port,
    ResultPayload,
)

POLL_INTERVAL = 10.0
DEFAULT_DEADLINE = 30 * 60.0

MODELS = {
    "Veo3": "veo-3.0-generate-preview",
    "Veo2": "veo-2.0-generate-001",
}

VEO3_AUDIO_PRICE = 4000
VEO3_SILENT_PRICE = 2667
VEO2_PRICE_PER_SECOND = 334


def clamp_duration(value: Any) -> int:
    """Veo2 accepts 5 to 8 seconds."""
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        seconds = 8
    return max(5, min(seconds, 8))


def price(model: str, duration: Any, audio: bool) -> int:
    if model == "Veo3":
        return VEO3_AUDIO_PRICE if audio else VEO3_SILENT_PRICE
    return VEO2_PRICE_PER_SECOND * clamp_duration(duration)


class VeoBackend(HttpJobBackend):
    """``predictLongRunning`` submit, ``fetchPredictOperation`` status (both POST)."""

    poll_method = "POST"

    def __init__(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        project_id: str,
        model_id: str,
        location: str = "us-central1",
        endpoint: str | None = None,
    ):
        super().__init__(client, headers={"Authorization": f"Bearer {access_token}"})
        host = endpoint or f"{location}-aiplatform.googleapis.com"
        self.model_url = (
            f"https://{host}/v1/projects/{project_id}/locations/{location}"
            f"/publishers/google/models/{model_id}"
        )

    def submit_url(self, request: dict[str, Any]) -> str:
        return f"{self.model_url}:predictLongRunning"

    def extract_token(self, data: dict[str, Any]) -> str | None:
        return data.get("name")

    def poll_url(self, handle: JobHandle) -> str:
        return f"{self.model_url}:fetchPredictOperation"

    def build_poll_body(self, handle: JobHandle) -> dict[str, str]:
        return {"operationName": handle.token}

    def classify(self, data: dict[str, Any]) -> PollOutcome:
        if not data.get("done"):
            return Pending()
        if data.get("error"):
            return Failed(FailureReason.VENDOR_FAILED, f"Veo operation failed: {data['error']}")

        videos = (data.get("response") or {}).get("videos") or []
        if videos:
            video = videos[0]
            if video.get("gcsUri"):
                return Ready(video["gcsUri"])
            if video.get("bytesBase64Encoded"):
                return Ready(f"data:video/mp4;base64,{video['bytesBase64Encoded']}")
        return Failed(FailureReason.VENDOR_FAILED, "Veo operation done, but no video in response")


class VideoGenArgs(BaseModel):
    prompt: str = Field(description="Description of the video to generate.")
    model: Literal["Veo3", "Veo2"] = Field(default="Veo3", description="Veo model to use.")
    duration: int = Field(
        default=8, ge=5, le=8, description="Length in seconds (Veo2 only; Veo3 is always 8)."
    )
    generate_audio: bool = Field(default=True, description="Generate audio (Veo3 only).")


class VideoGen(ExecutableNode):
    type = "video_gen"
    title = "Veo AI Video"
    category = "GenAI"
    description = "Generate AI videos using Google Veo"
    credit = VEO3_SILENT_PRICE
    inputs = [
        Port(name="Flow", type="Flow", desc="The flow of the workflow"),
        Port(name="Prompt", type="Text", desc="Video generation prompt"),
        Port(name="Negative Prompt", type="Text", desc="Negative video generation prompt"),
        Port(name="Duration", type="Number", desc="Duration of the video (only applicable for Veo2)"),
        Port(name="Generate Audio", type="Boolean", desc="Generate audio along with video"),
    ]
    outputs = [
        Port(name="Flow", type="Flow", desc="The Flow to trigger"),
        Port(name="Video Link", type="Text", desc="Link to the generated video"),
        Port(name="Tool", type="Tool", desc="The tool version of this node"),
    ]
    fields = [
        FieldSpec(name="Prompt", type="TextArea", desc="Video generation prompt", value="Enter text here..."),
        FieldSpec(
            name="Negative Prompt",
            type="TextArea",
            desc="Negative video generation prompt",
            value="Enter text here...",
        ),
        FieldSpec(
            name="Duration",
            type="Slider",
            desc="Duration of the video (only applicable for Veo2)",
            value=6,
            min=5,
            max=8,
            step=1,
        ),
        FieldSpec(name="Model", type="select", desc="Model to use", value="Veo3", options=list(MODELS)),
        FieldSpec(name="Ratio", type="select", desc="Aspect ratio of the video", value="16:9", options=["16:9", "9:16"]),
        FieldSpec(name="Generate Audio", type="CheckBox", desc="Generate audio along with video", value=True),
        FieldSpec(
            name="Person",
            type="select",
            desc="Should people be generated in the video",
            value="Allow adults",
            options=["Allow adults", "Dont allow"],
        ),
        FieldSpec(name="Storage URI", type="Text", desc="gs:// prefix to write the video to (optional)"),
    ]
    difficulty = "medium"
    tags = ["veo", "google", "ai", "video"]

    defaults = {
        "Duration": 8,
        "Model": "Veo3",
        "Ratio": "16:9",
        "Generate Audio": True,
        "Person": "Allow adults",
        "Negative Prompt": "",
    }
    required = frozenset({"Prompt"})

    tool_name = "veoVideoGenerator"
    tool_description = (
        "Generates a short video with Google Veo from a text prompt. "
        "Returns a link to the generated video."
    )
    tool_args = VideoGenArgs

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] | None = None,
    ):
        super().__init__()
        self.transport = transport
        self.sleep = sleep
        self.clock = clock

    def estimate_usage(self, dynamic, static, environment: Environment | None = None) -> int | None:
        values = self.resolver.resolve_all(dynamic, static)
        return price(values["Model"], values["Duration"], bool(values["Generate Audio"]))

    def build_request(self, ctx: ExecutionContext) -> dict[str, Any]:
        model = ctx.param("Model")
        audio = bool(ctx.param("Generate Audio"))
        duration = clamp_duration(ctx.param("Duration"))
        ratio = ctx.param("Ratio")
        if model == "Veo3":
            duration, ratio = 8, "16:9"
        else:
            audio = False

        parameters = {
            "aspectRatio": ratio,
            "sampleCount": 1,
            "durationSeconds": duration,
            "personGeneration": "allow_adult" if ctx.param("Person") == "Allow adults" else "dont_allow",
            "addWatermark": True,
            "includeRaiReason": True,
            "generateAudio": audio,
            "negativePrompt": ctx.param("Negative Prompt", ""),
        }
        if ctx.param("Storage URI"):
            parameters["storageUri"] = ctx.param("Storage URI")
        return {"instances": [{"prompt": ctx.param("Prompt")}], "parameters": parameters}

    def orchestrator(self, backend: VeoBackend) -> AsyncJobOrchestrator:
        options: dict[str, Any] = {}
        if self.clock is not None:
            options["clock"] = self.clock
        return AsyncJobOrchestrator(
            backend,
            budget=DeadlineBudget(get_poll_timeout_seconds() or DEFAULT_DEADLINE),
            poll_interval=POLL_INTERVAL,
            sleep=self.sleep,
            name="veo",
            **options,
        )

    async def run(self, ctx: ExecutionContext, credits: CreditTransaction) -> ResultPayload:
        model = ctx.param("Model")
        if model not in MODELS:
            raise ValueError(f"Unknown model selected: {model}")

        project_id = ctx.secret("VEO_PROJECT_ID")
        access_token = ctx.secret("VEO_ACCESS_TOKEN")
        request = self.build_request(ctx)
        parameters = request["parameters"]
        cost = price(model, parameters["durationSeconds"], parameters["generateAudio"])
        if ctx.mode is InvocationMode.DELEGATED:
            credits.charge(cost)
        else:
            credits.set(cost)

        async with http_client(self.transport) as client:
            backend = VeoBackend(
                client,
                access_token=access_token,
                project_id=project_id,
                model_id=MODELS[model],
                location=ctx.secret("VEO_LOCATION_ID", required=False) or "us-central1",
                endpoint=ctx.secret("VEO_API_ENDPOINT", required=False),
            )
            ctx.logger.info(f"Sending {model} generation request")
            job = await self.orchestrator(backend).run(request)

        link = job.unwrap()
        ctx.logger.success(f"Video ready after {job.attempts} poll(s)")
        return ResultPayload(outputs={"Video Link": link})

    def tool_text(self, payload: ResultPayload) -> str:
        return json.dumps({"videoUrl": payload.outputs.get("Video Link")})
