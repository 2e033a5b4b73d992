import logging

from sqlalchemy.exc import SQLAlchemyError

from quotecast.models.video_artifact import VideoArtifact
from quotecast.services.artifact_repository import ArtifactRepository

logger = logging.getLogger(__name__)


class ArtifactCache:
    """Hash-addressed lookup of previously persisted videos.

    A store that cannot be reached behaves like an empty cache.
    """

    def __init__(self, repository: ArtifactRepository):
        self.repository = repository

    async def lookup(self, job_hash: str) -> VideoArtifact | None:
        try:
            artifact = await self.repository.get_by_hash(job_hash)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"[CACHE] Lookup failed for {job_hash[:12]}, treating as miss: {e}")
            return None
        if artifact is None or not artifact.public_url:
            return None
        return artifact

    async def record(self, artifact: VideoArtifact) -> VideoArtifact:
        return await self.repository.insert(artifact)
