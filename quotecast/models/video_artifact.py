from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from quotecast.models.base import Base, TimestampMixin, UUIDMixin


class VideoArtifact(Base, UUIDMixin, TimestampMixin):
    """A rendered video, keyed by the hash of its job specification.

    Rows are written once and never updated.
    """

    __tablename__ = "video_artifacts"

    hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    asset_id: Mapped[str] = mapped_column(String(50), nullable=False)

    # text (capped), template, preset, duration and style as validated
    input_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration_s: Mapped[float] = mapped_column(Float, nullable=False)
    public_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    persist: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    photographer: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<VideoArtifact {self.hash[:12]} ({self.size_bytes} bytes)>"
