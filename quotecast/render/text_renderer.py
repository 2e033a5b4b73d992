"""Text handling for the drawtext layer.

Features:
- Word wrapping of quote text to a maximum line width
- drawtext escaping and its inverse for previews
- Color conversion from CSS notation to FFmpeg hex+alpha
- Font resolution (bundled font file, else a system font by family name)
"""

import re
from dataclasses import dataclass
from pathlib import Path

MAX_TEXT_LENGTH = 500

# Control characters except TAB (\x09) and LF (\x0A)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

_FILTERGRAPH_SPECIAL = re.compile(r"[\\'\[\],;]")

_HEX_COLOR = re.compile(r"^#([0-9A-Fa-f]{6})$")
_SHORT_HEX_COLOR = re.compile(r"^#([0-9A-Fa-f]{3})$")
_RGBA_COLOR = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*([\d.]+)\s*)?\)$"
)


@dataclass(frozen=True)
class FontSpec:
    """A bundled font file plus the system font used when the file is missing."""

    file_name: str
    system_fallback: str


# font family -> (bundled file, system fallback)
FONT_TABLE: dict[str, FontSpec] = {
    "Syne": FontSpec("Syne-Bold.ttf", "Arial"),
    "Inter": FontSpec("Inter-Regular.ttf", "Segoe UI"),
    "Inter Bold": FontSpec("Inter-Bold.ttf", "Segoe UI"),
    "Manrope": FontSpec("Manrope-Regular.ttf", "Segoe UI"),
    "Playfair Display": FontSpec("PlayfairDisplay-Regular.ttf", "Times New Roman"),
    "Montserrat": FontSpec("Montserrat-Regular.ttf", "Verdana"),
    "Roboto": FontSpec("Roboto-Regular.ttf", "Arial"),
}
DEFAULT_SYSTEM_FONT = "Arial"


def normalize_text(text: str) -> str:
    """Normalize newlines and strip control characters."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _CONTROL_CHARS.sub("", text)


def wrap_text(text: str, max_chars_per_line: int = 45) -> str:
    """Greedy word wrap. Existing line breaks are kept as paragraph breaks."""
    lines: list[str] = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = words[0]
        for word in words[1:]:
            if len(current) + 1 + len(word) <= max_chars_per_line:
                current = f"{current} {word}"
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return "\n".join(lines)


def escape_drawtext_text(text: str) -> str:
    """Escape text for the quoted value of drawtext=text='...'.

    Two layers are covered here. drawtext's own expansion reads a backslash
    as "next character is literal" and "%" as the start of a %{...}
    sequence, so "\\", "%" and ":" get a backslash. The option parser ends a
    quoted value at "'", so a quote becomes '\\'' (close, escaped quote,
    reopen). Backslashes go first so later replacements are not doubled.
    Line breaks stay as LF characters, which drawtext renders as new lines.

    The filtergraph layer is handled by escape_filter_args() on the whole
    option string.
    """
    escaped = normalize_text(text)[:MAX_TEXT_LENGTH]
    escaped = escaped.replace("\\", "\\\\")
    escaped = escaped.replace("'", "'\\''")
    escaped = escaped.replace("%", "\\%")
    escaped = escaped.replace(":", "\\:")
    return escaped


def escape_filter_args(args: str) -> str:
    """Escape a filter's option string for one filtergraph parse.

    The graph parser strips one level of backslashes and quotes and stops at
    "[", "]", "," and ";", so each of those is backslash-escaped.
    """
    return _FILTERGRAPH_SPECIAL.sub(lambda m: "\\" + m.group(0), args)


def unescape_for_preview(escaped: str) -> str:
    """Inverse of escape_drawtext_text: the text as the viewer will see it.

    Single pass, so an escaped backslash followed by "n" stays a backslash
    and a letter.
    """
    out: list[str] = []
    i = 0
    length = len(escaped)
    while i < length:
        if escaped.startswith("'\\''", i):
            out.append("'")
            i += 4
        elif escaped[i] == "\\" and i + 1 < length:
            out.append(escaped[i + 1])
            i += 2
        else:
            out.append(escaped[i])
            i += 1
    return "".join(out)


def count_display_chars(escaped: str) -> int:
    """Number of characters the viewer will see for an escaped string."""
    return len(unescape_for_preview(escaped))


def parse_color(value: str) -> tuple[int, int, int, float] | None:
    """Parse #RRGGBB, #RGB, rgb() or rgba() into (r, g, b, alpha)."""
    value = value.strip()
    match = _HEX_COLOR.match(value)
    if match:
        hex_value = match.group(1)
        return (int(hex_value[0:2], 16), int(hex_value[2:4], 16), int(hex_value[4:6], 16), 1.0)
    match = _SHORT_HEX_COLOR.match(value)
    if match:
        r, g, b = (int(c * 2, 16) for c in match.group(1))
        return (r, g, b, 1.0)
    match = _RGBA_COLOR.match(value)
    if match:
        r, g, b = (int(match.group(i)) for i in (1, 2, 3))
        if max(r, g, b) > 255:
            return None
        alpha = float(match.group(4)) if match.group(4) is not None else 1.0
        return (r, g, b, min(max(alpha, 0.0), 1.0))
    return None


def format_rgba(r: int, g: int, b: int, alpha: float) -> str:
    return f"rgba({r},{g},{b},{alpha:g})"


def rgba_to_ffmpeg(color: str) -> str:
    """Convert a CSS color to FFmpeg's 0xRRGGBB@A notation. Unparseable means white."""
    parsed = parse_color(color)
    if parsed is None:
        return "0xFFFFFF@1"
    r, g, b, alpha = parsed
    return f"0x{r:02X}{g:02X}{b:02X}@{alpha:g}"


def resolve_font_arg(font_family: str, font_dir: str | Path) -> str:
    """Return the drawtext font option for a family.

    Uses fontfile= when the bundled file exists, otherwise font= with the
    system fallback name.
    """
    spec = FONT_TABLE.get(font_family)
    if spec is not None:
        font_path = Path(font_dir) / spec.file_name
        if font_path.exists():
            return f"fontfile='{font_path.as_posix()}'"
        return f"font='{spec.system_fallback}'"
    return f"font='{DEFAULT_SYSTEM_FONT}'"


def text_x_expr(alignment: str, margin: int) -> str:
    """Horizontal drawtext position for an alignment."""
    if alignment == "left":
        return str(margin)
    if alignment == "right":
        return f"w-text_w-{margin}"
    return "(w-text_w)/2"
