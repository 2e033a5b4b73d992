"""Quote video render pipeline.

One call to RenderPipeline.run() takes a validated JobSpecification through:

hash -> cache lookup -> asset fetch -> concurrency slot -> filter graph ->
encoder -> delivery -> metadata

Every stage transition is recorded in telemetry. The job workspace is removed
on every exit path except a successful stream, where the response owns it.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from starlette.responses import FileResponse

from quotecast.exceptions import QuoteCastError, RenderFailedError, StorageNotConfiguredError
from quotecast.render.executor import FFmpegExecutor
from quotecast.render.filter_graph import build_ffmpeg_args, compile_filter_graph
from quotecast.render.job_spec import JobSpecification, compute_job_hash
from quotecast.render.workspace import JobWorkspace
from quotecast.services.artifact_cache import ArtifactCache
from quotecast.services.asset_fetcher import UnsplashAssetFetcher
from quotecast.services.concurrency_gate import ConcurrencyGate
from quotecast.services.delivery import RenderedVideo, ResultDeliverer
from quotecast.services.metadata_recorder import MetadataRecorder
from quotecast.services.telemetry import TelemetryRecorder

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 1)


@dataclass
class RenderOutcome:
    """Result of a job: a public URL (persist) or a streaming response."""

    job_hash: str
    cached: bool
    size_bytes: int
    duration_s: float
    url: str | None = None
    photographer: str | None = None
    response: FileResponse | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "cached": self.cached,
            "url": self.url,
            "hash": self.job_hash,
            "size": self.size_bytes,
            "duration": self.duration_s,
            "photographer": self.photographer,
        }


class RenderPipeline:
    def __init__(
        self,
        *,
        gate: ConcurrencyGate,
        cache: ArtifactCache,
        fetcher: UnsplashAssetFetcher,
        executor: FFmpegExecutor,
        deliverer: ResultDeliverer,
        metadata: MetadataRecorder,
        telemetry: TelemetryRecorder,
        temp_root: str | Path,
        font_dir: str | Path,
        fps: int = 30,
        strict_persist: bool = False,
    ):
        self.gate = gate
        self.cache = cache
        self.fetcher = fetcher
        self.executor = executor
        self.deliverer = deliverer
        self.metadata = metadata
        self.telemetry = telemetry
        self.temp_root = Path(temp_root)
        self.font_dir = font_dir
        self.fps = fps
        self.strict_persist = strict_persist

    async def run(self, spec: JobSpecification) -> RenderOutcome:
        job_hash = compute_job_hash(spec)
        started = time.monotonic()
        tag = job_hash[:12]
        self.telemetry.record(
            "job_started",
            {"hash": tag, "asset_id": spec.asset_id, "persist": spec.persist},
        )
        try:
            outcome = await self._run(spec, job_hash, tag)
        except QuoteCastError as e:
            logger.warning(f"[RENDER] Job {tag} failed: {e.code}: {e.message}")
            self.telemetry.record(
                "job_error", {"hash": tag, "error": e.code}, duration_ms=_elapsed_ms(started)
            )
            raise
        except Exception:
            logger.exception(f"[RENDER] Job {tag} failed unexpectedly")
            self.telemetry.record(
                "job_error", {"hash": tag, "error": "INTERNAL_ERROR"}, duration_ms=_elapsed_ms(started)
            )
            raise

        self.telemetry.record(
            "job_complete",
            {"hash": tag, "cached": outcome.cached, "mode": "stream" if outcome.response else "persist"},
            duration_ms=_elapsed_ms(started),
        )
        return outcome

    async def _run(self, spec: JobSpecification, job_hash: str, tag: str) -> RenderOutcome:
        persist = spec.persist
        degraded = False
        if persist and not self.deliverer.can_persist:
            if self.strict_persist:
                raise StorageNotConfiguredError()
            logger.warning(f"[RENDER] Job {tag}: persist requested without storage, streaming instead")
            persist = False
            degraded = True

        if persist:
            cached = await self.cache.lookup(job_hash)
            if cached is not None:
                self.telemetry.record("cache_hit", {"hash": tag})
                return RenderOutcome(
                    job_hash=job_hash,
                    cached=True,
                    size_bytes=cached.size_bytes,
                    duration_s=cached.duration_s,
                    url=cached.public_url,
                    photographer=cached.photographer,
                )

        with JobWorkspace(self.temp_root, job_hash) as workspace:
            self.telemetry.record("asset_fetch_start", {"hash": tag, "asset_id": spec.asset_id})
            fetch_start = time.monotonic()
            asset = await self.fetcher.fetch(
                spec.asset_id, workspace.image_path, spec.width, spec.height
            )
            self.telemetry.record(
                "asset_fetch_complete", {"hash": tag}, duration_ms=_elapsed_ms(fetch_start)
            )

            if self.gate.would_wait():
                self.telemetry.record("semaphore_wait", {"hash": tag, **self.gate.status()})
            wait_start = time.monotonic()
            acquired = False
            try:
                async with self.gate.slot():
                    acquired = True
                    self.telemetry.record(
                        "semaphore_acquired", {"hash": tag}, duration_ms=_elapsed_ms(wait_start)
                    )
                    rendered = await self._encode(spec, job_hash, tag, workspace, asset.photographer)
                    if persist:
                        return await self._persist(spec, rendered, tag, workspace)
                    if not degraded:
                        # a degraded job shares its hash with real persist jobs
                        await self._record_metadata(spec, rendered, None)
                    response = self.deliverer.stream(rendered, workspace.cleanup, degraded=degraded)
                    workspace.detach()
                    return RenderOutcome(
                        job_hash=job_hash,
                        cached=False,
                        size_bytes=rendered.size_bytes,
                        duration_s=rendered.duration_s,
                        photographer=rendered.photographer,
                        response=response,
                    )
            finally:
                if acquired:
                    self.telemetry.record("semaphore_released", {"hash": tag, **self.gate.status()})

    async def _encode(
        self,
        spec: JobSpecification,
        job_hash: str,
        tag: str,
        workspace: JobWorkspace,
        photographer: str | None,
    ) -> RenderedVideo:
        graph = compile_filter_graph(spec, fps=self.fps, font_dir=self.font_dir)
        args = build_ffmpeg_args(
            graph, workspace.image_path, workspace.output_path, spec.duration_s, self.fps
        )
        self.telemetry.record("render_start", {"hash": tag, "stages": graph.stage_names})
        result = await self.executor.run(args)
        self.telemetry.record("render_complete", {"hash": tag}, duration_ms=round(result.elapsed_ms, 1))

        output = workspace.output_path
        size_bytes = output.stat().st_size if output.exists() else 0
        if size_bytes == 0:
            raise RenderFailedError("Encoder produced no output", stderr_tail=result.stderr_tail)

        return RenderedVideo(
            job_hash=job_hash,
            path=output,
            size_bytes=size_bytes,
            duration_s=float(spec.duration_s),
            photographer=photographer,
        )

    async def _persist(
        self, spec: JobSpecification, rendered: RenderedVideo, tag: str, workspace: JobWorkspace
    ) -> RenderOutcome:
        self.telemetry.record("upload_start", {"hash": tag, "size": rendered.size_bytes})
        upload_start = time.monotonic()
        url = await self.deliverer.persist(rendered)
        self.telemetry.record("upload_complete", {"hash": tag}, duration_ms=_elapsed_ms(upload_start))
        workspace.cleanup()

        await self._record_metadata(spec, rendered, url)
        return RenderOutcome(
            job_hash=rendered.job_hash,
            cached=False,
            size_bytes=rendered.size_bytes,
            duration_s=rendered.duration_s,
            url=url,
            photographer=rendered.photographer,
        )

    async def _record_metadata(
        self, spec: JobSpecification, rendered: RenderedVideo, url: str | None
    ) -> None:
        artifact = await self.metadata.record(
            spec,
            rendered.job_hash,
            rendered.size_bytes,
            rendered.duration_s,
            url,
            rendered.photographer,
        )
        if artifact is not None:
            self.telemetry.record("metadata_saved", {"hash": rendered.job_hash[:12]})
