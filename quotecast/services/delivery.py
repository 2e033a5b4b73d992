"""Hand a rendered video to the caller: streamed body or durable URL."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

from starlette.background import BackgroundTask
from starlette.responses import FileResponse
from starlette.types import Receive, Scope, Send

from quotecast.exceptions import StorageFailureError
from quotecast.services.storage_service import StorageService

logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPE = "video/mp4"


@dataclass
class RenderedVideo:
    job_hash: str
    path: Path
    size_bytes: int
    duration_s: float
    photographer: str | None = None


class TempFileResponse(FileResponse):
    """FileResponse that runs its cleanup even if the client disconnects."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        background, self.background = self.background, None
        try:
            await super().__call__(scope, receive, send)
        finally:
            if background is not None:
                await background()


def storage_key_for(job_hash: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"videos/{now:%Y-%m-%d}/{job_hash}.mp4"


class ResultDeliverer:
    def __init__(self, storage: StorageService | None):
        self.storage = storage

    @property
    def can_persist(self) -> bool:
        return self.storage is not None

    def stream(
        self,
        rendered: RenderedVideo,
        cleanup: Callable[[], None],
        *,
        degraded: bool = False,
    ) -> FileResponse:
        headers = {
            "Content-Disposition": f'inline; filename="quotecast-{rendered.job_hash}.mp4"',
            "X-Video-Hash": rendered.job_hash,
        }
        if rendered.photographer:
            headers["X-Photographer"] = quote(rendered.photographer)
        if degraded:
            headers["X-Delivery-Degraded"] = "stream"
        return TempFileResponse(
            rendered.path,
            media_type=VIDEO_CONTENT_TYPE,
            headers=headers,
            background=BackgroundTask(cleanup),
        )

    async def persist(self, rendered: RenderedVideo) -> str:
        """Upload the video and return its public URL.

        Raises:
            StorageFailureError: upload did not complete
        """
        if self.storage is None:
            raise StorageFailureError("No durable storage configured")
        storage_key = storage_key_for(rendered.job_hash)
        try:
            url = await self.storage.upload_file(
                str(rendered.path), storage_key, content_type=VIDEO_CONTENT_TYPE
            )
        except Exception as e:
            logger.error(f"[UPLOAD] Upload of {storage_key} failed: {e}")
            raise StorageFailureError(f"Failed to upload video: {e}") from e
        logger.info(f"[UPLOAD] Stored {rendered.size_bytes} bytes at {storage_key}")
        return url
