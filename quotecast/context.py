"""Process-wide render context.

Built once in the application lifespan and stored on app.state. Tests build
their own contexts with fakes in place of the network, database and encoder.
"""

import logging
from dataclasses import dataclass

from quotecast.config import Settings
from quotecast.render.executor import FFmpegExecutor
from quotecast.render.pipeline import RenderPipeline
from quotecast.services.artifact_cache import ArtifactCache
from quotecast.services.artifact_repository import ArtifactRepository
from quotecast.services.asset_fetcher import UnsplashAssetFetcher
from quotecast.services.concurrency_gate import ConcurrencyGate
from quotecast.services.delivery import ResultDeliverer
from quotecast.services.metadata_recorder import MetadataRecorder
from quotecast.services.storage_service import StorageService, create_storage_service
from quotecast.services.telemetry import TelemetryRecorder

logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class RenderContext:
    settings: Settings
    gate: ConcurrencyGate
    telemetry: TelemetryRecorder
    repository: ArtifactRepository
    storage: StorageService | None
    fetcher: UnsplashAssetFetcher
    executor: FFmpegExecutor
    pipeline: RenderPipeline

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        repository: ArtifactRepository,
        storage: StorageService | None | object = _UNSET,
        fetcher: UnsplashAssetFetcher | None = None,
        executor: FFmpegExecutor | None = None,
    ) -> "RenderContext":
        if storage is _UNSET:
            storage = create_storage_service(settings)
        if storage is None:
            logger.warning("No durable storage configured; persist requests will be streamed")

        gate = ConcurrencyGate(settings.max_concurrent_jobs)
        telemetry = TelemetryRecorder(settings.telemetry_capacity)
        fetcher = fetcher or UnsplashAssetFetcher(
            settings.unsplash_access_key,
            api_base=settings.unsplash_api_base,
            timeout_s=settings.unsplash_timeout_s,
        )
        executor = executor or FFmpegExecutor(
            settings.ffmpeg_path,
            timeout_s=settings.render_timeout_s,
            stderr_tail_bytes=settings.render_stderr_tail_bytes,
        )
        cache = ArtifactCache(repository)
        pipeline = RenderPipeline(
            gate=gate,
            cache=cache,
            fetcher=fetcher,
            executor=executor,
            deliverer=ResultDeliverer(storage),
            metadata=MetadataRecorder(cache),
            telemetry=telemetry,
            temp_root=settings.temp_root,
            font_dir=settings.font_dir,
            fps=settings.render_fps,
            strict_persist=settings.strict_persist,
        )
        return cls(
            settings=settings,
            gate=gate,
            telemetry=telemetry,
            repository=repository,
            storage=storage,
            fetcher=fetcher,
            executor=executor,
            pipeline=pipeline,
        )

    async def aclose(self) -> None:
        await self.fetcher.aclose()
