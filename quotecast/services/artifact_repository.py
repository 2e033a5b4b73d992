"""Storage of VideoArtifact rows.

Two backends share the same interface: SQLAlchemy (production) and an
in-memory dict used when no database is wanted, e.g. in tests.
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quotecast.models.video_artifact import VideoArtifact

logger = logging.getLogger(__name__)


class ArtifactRepository:
    async def get_by_hash(self, job_hash: str) -> VideoArtifact | None:
        raise NotImplementedError

    async def insert(self, artifact: VideoArtifact) -> VideoArtifact:
        """Insert unless the hash exists. Returns the stored row.

        The first writer wins, except that a row without a public URL is
        upgraded in place by a later write that has one.
        """
        raise NotImplementedError


def _needs_upgrade(existing: VideoArtifact, artifact: VideoArtifact) -> bool:
    return not existing.public_url and bool(artifact.public_url)


def _upgrade(existing: VideoArtifact, artifact: VideoArtifact) -> None:
    existing.public_url = artifact.public_url
    existing.size_bytes = artifact.size_bytes
    existing.duration_s = artifact.duration_s
    existing.persist = artifact.persist
    existing.photographer = artifact.photographer


class SQLAlchemyArtifactRepository(ArtifactRepository):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get_by_hash(self, job_hash: str) -> VideoArtifact | None:
        async with self.session_maker() as session:
            return await self._get(session, job_hash)

    async def _get(self, session: AsyncSession, job_hash: str) -> VideoArtifact | None:
        result = await session.execute(
            select(VideoArtifact).where(VideoArtifact.hash == job_hash)
        )
        return result.scalar_one_or_none()

    async def insert(self, artifact: VideoArtifact) -> VideoArtifact:
        async with self.session_maker() as session:
            existing = await self._get(session, artifact.hash)
            if existing is not None:
                if not _needs_upgrade(existing, artifact):
                    return existing
                _upgrade(existing, artifact)
                await session.commit()
                logger.info(f"Artifact {artifact.hash[:12]} upgraded with public URL")
                return existing

            session.add(artifact)
            try:
                await session.commit()
            except IntegrityError:
                # Lost the race against a concurrent identical job
                await session.rollback()
                logger.debug(f"Artifact {artifact.hash[:12]} inserted concurrently")
                existing = await self._get(session, artifact.hash)
                if existing is None:
                    raise
                if _needs_upgrade(existing, artifact):
                    _upgrade(existing, artifact)
                    await session.commit()
                return existing
            return artifact


class InMemoryArtifactRepository(ArtifactRepository):
    def __init__(self) -> None:
        self._items: dict[str, VideoArtifact] = {}
        self._lock = asyncio.Lock()

    async def get_by_hash(self, job_hash: str) -> VideoArtifact | None:
        return self._items.get(job_hash)

    async def insert(self, artifact: VideoArtifact) -> VideoArtifact:
        async with self._lock:
            existing = self._items.get(artifact.hash)
            if existing is None:
                self._items[artifact.hash] = artifact
                return artifact
            if _needs_upgrade(existing, artifact):
                _upgrade(existing, artifact)
            return existing

    def __len__(self) -> int:
        return len(self._items)
