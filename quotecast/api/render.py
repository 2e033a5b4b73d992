from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from quotecast.api.deps import RenderCtx
from quotecast.render.job_spec import validate_render_request
from quotecast.schemas.render import (
    QueueStatus,
    RenderRequest,
    RenderResultResponse,
    RenderStatusResponse,
    TelemetryEventResponse,
)

router = APIRouter()


@router.post(
    "/render",
    response_model=RenderResultResponse,
    responses={200: {"content": {"video/mp4": {}}, "description": "Video stream or stored video"}},
)
async def render_video(
    payload: RenderRequest,
    ctx: RenderCtx,
    persist: bool | None = Query(default=None),
) -> Response:
    """Render a quote video.

    Streams the mp4 by default. With persist=true (query or body) the video
    is uploaded and a JSON document with its public URL is returned; repeated
    identical requests are served from the artifact cache.
    """
    spec = validate_render_request(payload, persist_query=persist)
    outcome = await ctx.pipeline.run(spec)

    if outcome.response is not None:
        return outcome.response

    result = RenderResultResponse.model_validate(outcome.to_dict())
    return JSONResponse(content=result.model_dump(exclude_none=True))


@router.get("/render/status", response_model=RenderStatusResponse)
async def render_status(ctx: RenderCtx) -> RenderStatusResponse:
    recent = ctx.telemetry.recent(ctx.settings.telemetry_window)
    return RenderStatusResponse(
        queue=QueueStatus(**ctx.gate.status()),
        recent_telemetry=[TelemetryEventResponse.model_validate(e.to_dict()) for e in recent],
    )


@router.get("/render/metrics", response_class=PlainTextResponse)
async def render_metrics(ctx: RenderCtx) -> PlainTextResponse:
    body = ctx.telemetry.render_prometheus(queue=ctx.gate.status())
    return PlainTextResponse(body, media_type="text/plain; version=0.0.4")
