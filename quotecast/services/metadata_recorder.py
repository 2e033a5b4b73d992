import logging

from quotecast.exceptions import MetadataPersistError
from quotecast.models.video_artifact import VideoArtifact
from quotecast.render.job_spec import JobSpecification
from quotecast.services.artifact_cache import ArtifactCache

logger = logging.getLogger(__name__)


class MetadataRecorder:
    """Writes a VideoArtifact after a successful render.

    Writes go through the artifact cache so later lookups see them.
    Failures never fail the job: the video has already been produced.
    """

    def __init__(self, cache: ArtifactCache):
        self.cache = cache

    async def record(
        self,
        spec: JobSpecification,
        job_hash: str,
        size_bytes: int,
        duration_s: float,
        public_url: str | None,
        photographer: str | None = None,
    ) -> VideoArtifact | None:
        artifact = VideoArtifact(
            hash=job_hash,
            asset_id=spec.asset_id,
            input_snapshot=spec.input_snapshot(),
            size_bytes=size_bytes,
            duration_s=duration_s,
            public_url=public_url,
            persist=spec.persist,
            photographer=photographer,
        )
        try:
            return await self.cache.record(artifact)
        except Exception as e:
            error = MetadataPersistError(f"Failed to persist metadata for {job_hash[:12]}: {e}")
            logger.error(f"[METADATA] {error.code}: {error.message}")
            return None
