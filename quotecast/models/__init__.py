from quotecast.models.base import Base
from quotecast.models.video_artifact import VideoArtifact

__all__ = [
    "Base",
    "VideoArtifact",
]
