"""FFmpeg filter graph compilation for quote videos.

The graph is a single linear chain over the looped background image:

    [0:v] scale/crop -> zoom -> brightness -> blur -> overlay
          -> format -> drawtext -> fade [sN]

Optional stages are skipped entirely, so labels stay contiguous.
"""

from dataclasses import dataclass, field
from pathlib import Path

from quotecast.render.job_spec import JobSpecification
from quotecast.render.text_renderer import (
    escape_drawtext_text,
    escape_filter_args,
    resolve_font_arg,
    rgba_to_ffmpeg,
    text_x_expr,
    wrap_text,
)

TEXT_MARGIN_X = 60
TEXT_MARGIN_Y = 80
GRADIENT_BANDS = 8

# template -> (horizontal alignment, drawtext y expression)
TEMPLATE_LAYOUTS: dict[str, tuple[str, str]] = {
    "center": ("center", "(h-text_h)/2"),
    "bottom": ("center", f"h-text_h-{TEXT_MARGIN_Y}"),
    "top-left": ("left", str(TEXT_MARGIN_Y)),
    "bottom-right": ("right", f"h-text_h-{TEXT_MARGIN_Y}"),
}


def _fmt(value: float, digits: int = 6) -> str:
    """Fixed-point number without trailing zeros (no exponent notation)."""
    text = f"{value:.{digits}f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


@dataclass
class FilterStage:
    name: str
    expression: str
    input_label: str = ""
    output_label: str = ""

    def render(self) -> str:
        return f"{self.input_label}{self.expression}{self.output_label}"


@dataclass
class CompiledFilterGraph:
    stages: list[FilterStage]
    filter_complex: str
    output_label: str
    escaped_text: str

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]


@dataclass
class FilterGraphBuilder:
    """Chains filter stages, assigning [s0], [s1], ... labels by index."""

    input_label: str = "[0:v]"
    stages: list[FilterStage] = field(default_factory=list)

    @property
    def current_label(self) -> str:
        if self.stages:
            return self.stages[-1].output_label
        return self.input_label

    def add(self, name: str, expression: str) -> "FilterGraphBuilder":
        stage = FilterStage(
            name=name,
            expression=expression,
            input_label=self.current_label,
            output_label=f"[s{len(self.stages)}]",
        )
        self.stages.append(stage)
        return self

    def build(self) -> str:
        return ";".join(stage.render() for stage in self.stages)


# =============================================================================
# Stage expressions
# =============================================================================


def _scale_crop(width: int, height: int) -> str:
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=increase,"
        f"crop={width}:{height}"
    )


def _zoompan(spec: JobSpecification, fps: int) -> str | None:
    style = spec.style
    if not style.zoom or style.zoom_start == style.zoom_end:
        return None
    frames = spec.duration_s * fps
    delta = (style.zoom_start - style.zoom_end) / frames
    return (
        f"zoompan=z='{_fmt(style.zoom_start)}-on*{_fmt(delta, 9)}':d={frames}"
        f":x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)'"
        f":s={spec.width}x{spec.height}:fps={fps}"
    )


def _brightness(brightness: float) -> str | None:
    if brightness == 1.0:
        return None
    return f"eq=brightness={_fmt(brightness - 1, 3)}"


def _blur(blur: float) -> str | None:
    if blur <= 0:
        return None
    radius = max(1, round(blur / 2))
    return f"boxblur={radius}:{radius}"


def _gradient_bands(width: int, height: int, opacity: float, direction: str) -> str:
    vertical = direction in ("top-bottom", "bottom-top")
    extent = height if vertical else width
    band = extent // GRADIENT_BANDS
    boxes = []
    for i in range(GRADIENT_BANDS):
        # transparent at the start edge, full opacity at the end edge
        step = i if direction in ("top-bottom", "left-right") else GRADIENT_BANDS - 1 - i
        alpha = opacity * (step + 0.5) / GRADIENT_BANDS
        offset = i * band
        size = extent - offset if i == GRADIENT_BANDS - 1 else band
        if vertical:
            geometry = f"x=0:y={offset}:w=iw:h={size}"
        else:
            geometry = f"x={offset}:y=0:w={size}:h=ih"
        boxes.append(f"drawbox={geometry}:color=black@{_fmt(alpha, 3)}:t=fill")
    return ",".join(boxes)


def _overlay(spec: JobSpecification) -> str | None:
    style = spec.style
    if style.overlay_opacity <= 0:
        return None
    if style.overlay_style == "gradient":
        return _gradient_bands(
            spec.width, spec.height, style.overlay_opacity, style.gradient_direction
        )
    return f"drawbox=x=0:y=0:w=iw:h=ih:color=black@{_fmt(style.overlay_opacity, 3)}:t=fill"


def _drawtext(spec: JobSpecification, escaped_text: str, font_dir: str | Path) -> str:
    style = spec.style
    alignment, y_expr = TEMPLATE_LAYOUTS.get(spec.template, TEMPLATE_LAYOUTS["center"])
    options = (
        f"text='{escaped_text}'"
        f":{resolve_font_arg(style.font_family, font_dir)}"
        f":fontsize={style.font_size}"
        f":fontcolor={rgba_to_ffmpeg(style.text_color)}"
        f":x={text_x_expr(alignment, TEXT_MARGIN_X)}:y={y_expr}"
        f":line_spacing={round(style.font_size * 0.3)}"
        f":shadowcolor=black@0.5:shadowx=2:shadowy=2"
    )
    return f"drawtext={escape_filter_args(options)}"


def compile_filter_graph(
    spec: JobSpecification,
    *,
    fps: int,
    font_dir: str | Path,
) -> CompiledFilterGraph:
    """Compile a job specification into a filter_complex graph."""
    escaped_text = escape_drawtext_text(wrap_text(spec.text, spec.style.wrap_width))

    builder = FilterGraphBuilder()
    builder.add("scale", _scale_crop(spec.width, spec.height))

    optional_stages = (
        ("zoom", _zoompan(spec, fps)),
        ("brightness", _brightness(spec.style.brightness)),
        ("blur", _blur(spec.style.blur)),
        ("overlay", _overlay(spec)),
    )
    for name, expression in optional_stages:
        if expression is not None:
            builder.add(name, expression)

    builder.add("format", "format=yuv420p")
    builder.add("drawtext", _drawtext(spec, escaped_text, font_dir))

    if spec.style.fade_text:
        builder.add("fade", f"fade=t=in:st=0:d={_fmt(spec.style.fade_duration, 2)}")

    return CompiledFilterGraph(
        stages=builder.stages,
        filter_complex=builder.build(),
        output_label=builder.current_label,
        escaped_text=escaped_text,
    )


def build_ffmpeg_args(
    graph: CompiledFilterGraph,
    image_path: str | Path,
    output_path: str | Path,
    duration_s: int,
    fps: int,
) -> list[str]:
    """Encoder arguments (without the binary itself)."""
    return [
        "-loop", "1",
        "-i", str(image_path),
        "-filter_complex", graph.filter_complex,
        "-map", graph.output_label,
        "-c:v", "libx264",
        "-t", str(duration_s),
        "-r", str(fps),
        "-pix_fmt", "yuv420p",
        "-movflags", "+faststart",
        "-preset", "veryfast",
        "-crf", "23",
        "-an",
        "-y", str(output_path),
    ]
