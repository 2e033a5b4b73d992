from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class StyleRequest(BaseModel):
    """Raw style parameters as sent by the editor.

    Types are deliberately loose; clamping and defaulting happen in the
    validator so that out-of-range values degrade instead of failing.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    font_family: Any = Field(default=None, validation_alias=AliasChoices("fontFamily", "font_family"))
    font_size: Any = Field(default=None, validation_alias=AliasChoices("fontSize", "font_size"))
    text_color: Any = Field(default=None, validation_alias=AliasChoices("textColor", "fontColor", "text_color"))
    overlay_opacity: Any = Field(
        default=None, validation_alias=AliasChoices("overlayOpacity", "overlay_opacity")
    )
    overlay_style: Any = Field(default=None, validation_alias=AliasChoices("overlayStyle", "overlay_style"))
    gradient_direction: Any = Field(
        default=None, validation_alias=AliasChoices("gradientDirection", "gradient_direction")
    )
    brightness: Any = Field(
        default=None, validation_alias=AliasChoices("brightness", "backgroundBrightness")
    )
    blur: Any = Field(default=None, validation_alias=AliasChoices("blur", "backgroundBlur"))
    zoom: Any = None
    zoom_start: Any = Field(default=None, validation_alias=AliasChoices("zoomStart", "zoom_start"))
    zoom_end: Any = Field(default=None, validation_alias=AliasChoices("zoomEnd", "zoom_end"))
    fade_text: Any = Field(default=None, validation_alias=AliasChoices("fadeText", "fade_text"))
    fade_duration: Any = Field(
        default=None, validation_alias=AliasChoices("fadeDuration", "fade_duration")
    )
    wrap_width: Any = Field(default=None, validation_alias=AliasChoices("wrapWidth", "wrap_width"))


class RenderRequest(BaseModel):
    """Body of POST /render."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    asset_id: Any = Field(
        default=None, validation_alias=AliasChoices("assetId", "unsplashId", "asset_id")
    )
    text: Any = Field(default=None, validation_alias=AliasChoices("text", "wrappedText", "quote"))
    template: Any = None
    preset: Any = None
    duration: Any = None
    style: StyleRequest | None = Field(
        default=None, validation_alias=AliasChoices("style", "styleParams")
    )
    persist: Any = None


class RenderResultResponse(BaseModel):
    """Persist-mode response."""

    success: bool = True
    cached: bool
    url: str
    hash: str
    size: int
    duration: float
    photographer: str | None = None


class QueueStatus(BaseModel):
    running: int
    queued: int
    max: int


class TelemetryEventResponse(BaseModel):
    event: str
    timestamp: datetime
    duration_ms: float | None = None
    metadata: dict[str, Any] | None = None


class RenderStatusResponse(BaseModel):
    status: str = "ok"
    queue: QueueStatus
    recent_telemetry: list[TelemetryEventResponse]


class ErrorInfo(BaseModel):
    error: str
    message: str
    retryable: bool = False
    suggested_fix: str | None = None
    details: dict[str, Any] | None = None
