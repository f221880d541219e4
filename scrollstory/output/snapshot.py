"""PNG snapshot of the in-memory scene graph at the current clock time.

Shows a frame mid-animation as well as a settled one: partially revealed
paths are cut at their dash offset and group opacity is honoured by
skipping fully transparent groups.
"""

import logging
import math
import re
from pathlib import Path

from PIL import Image, ImageColor, ImageDraw, ImageFont

from scrollstory.paths import parse_path, polyline_length
from scrollstory.surface import MemorySurface

logger = logging.getLogger(__name__)

_FONT_REGULAR = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"
_FONT_BOLD = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"

BG = (255, 255, 255)
TEXT = (36, 41, 47)
AXIS = (87, 96, 106)

_TRANSLATE_RE = re.compile(r"translate\(\s*([-\d.e]+)[ ,]+([-\d.e]+)\s*\)")


def _font(size: int, bold: bool = False) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype(_FONT_BOLD if bold else _FONT_REGULAR, size)
    except OSError:
        return ImageFont.load_default()


def _color(value: str | None) -> tuple[int, int, int] | None:
    if not value or value == "none":
        return None
    try:
        return ImageColor.getrgb(value)[:3]
    except ValueError:
        logger.debug("Unparseable colour %r", value)
        return TEXT


def _offset(transform: str | None) -> tuple[float, float]:
    if not transform:
        return (0.0, 0.0)
    m = _TRANSLATE_RE.search(transform)
    if not m:
        return (0.0, 0.0)
    return (float(m.group(1)), float(m.group(2)))


def _truncate(points: list[tuple[float, float]], length: float) -> list[tuple[float, float]]:
    """First ``length`` pixels of a polyline."""
    if length <= 0:
        return []
    out = [points[0]]
    remaining = length
    for (x1, y1), (x2, y2) in zip(points, points[1:]):
        seg = math.hypot(x2 - x1, y2 - y1)
        if seg >= remaining:
            f = remaining / seg if seg else 0
            out.append((x1 + (x2 - x1) * f, y1 + (y2 - y1) * f))
            return out
        out.append((x2, y2))
        remaining -= seg
    return out


def _draw_path(draw: ImageDraw.ImageDraw, attrs: dict, ox: float, oy: float) -> None:
    polylines = [[(x + ox, y + oy) for x, y in p] for p in parse_path(attrs.get("d", ""))]
    if not polylines:
        return
    fill = _color(attrs.get("fill"))
    if fill is not None:
        for pts in polylines:
            if len(pts) >= 3:
                draw.polygon(pts, fill=fill)
        return

    stroke = _color(attrs.get("stroke")) or TEXT
    width = max(1, round(float(attrs.get("stroke-width", 1))))
    offset = float(attrs.get("stroke-dashoffset", 0) or 0)
    for pts in polylines:
        if offset > 0:
            pts = _truncate(pts, polyline_length(pts) - offset)
        if len(pts) >= 2:
            draw.line(pts, fill=stroke, width=width, joint="curve")


def _text(draw: ImageDraw.ImageDraw, xy: tuple[float, float], text: str, font, fill, anchor: str) -> None:
    # Bitmap fonts have no anchor support
    if isinstance(font, ImageFont.FreeTypeFont):
        draw.text(xy, text, font=font, fill=fill, anchor=anchor)
    else:
        draw.text(xy, text, font=font, fill=fill)


def _draw_text(draw: ImageDraw.ImageDraw, attrs: dict, ox: float, oy: float) -> None:
    tx, ty = _offset(attrs.get("transform"))
    x = float(attrs.get("x", 0)) + ox + tx
    y = float(attrs.get("y", 0)) + oy + ty
    anchor = {"middle": "ms", "end": "rs"}.get(attrs.get("text-anchor", "start"), "ls")
    bold = "chart-title" in str(attrs.get("class", ""))
    font = _font(16 if bold else 12, bold=bold)
    lines = attrs.get("lines") or [str(attrs.get("text", ""))]
    step = float(attrs.get("line-height", 16))
    for i, line in enumerate(lines):
        _text(draw, (x, y + i * step), line, font, TEXT, anchor)


def _draw_axis(draw: ImageDraw.ImageDraw, attrs: dict, ox: float, oy: float) -> None:
    r0, r1 = attrs.get("range", (0, 0))
    font = _font(11)
    if attrs.get("orient") == "bottom":
        draw.line([(ox + r0, oy), (ox + r1, oy)], fill=AXIS)
        for pos, label in attrs.get("ticks", []):
            draw.line([(ox + pos, oy), (ox + pos, oy + 6)], fill=AXIS)
            _text(draw, (ox + pos, oy + 9), label, font, AXIS, "mt")
    else:
        draw.line([(ox, oy + r0), (ox, oy + r1)], fill=AXIS)
        for pos, label in attrs.get("ticks", []):
            draw.line([(ox - 6, oy + pos), (ox, oy + pos)], fill=AXIS)
            _text(draw, (ox - 9, oy + pos), label, font, AXIS, "rm")


def _draw_node(draw: ImageDraw.ImageDraw, surface: MemorySurface, node_id: str, ox: float, oy: float) -> None:
    node = surface.node(node_id)
    attrs = node.attrs
    if float(attrs.get("opacity", 1) or 0) <= 0:
        return

    if node.kind == "text":
        _draw_text(draw, attrs, ox, oy)
        return
    if node.kind == "path":
        _draw_path(draw, attrs, ox, oy)
        return
    if node.kind == "line":
        draw.line(
            [(ox + float(attrs.get("x1", 0)), oy + float(attrs.get("y1", 0))),
             (ox + float(attrs.get("x2", 0)), oy + float(attrs.get("y2", 0)))],
            fill=_color(attrs.get("stroke")) or AXIS,
        )
        return
    if node.kind == "circle":
        cx, cy, r = ox + float(attrs.get("cx", 0)), oy + float(attrs.get("cy", 0)), float(attrs.get("r", 0))
        draw.ellipse((cx - r, cy - r, cx + r, cy + r), outline=TEXT)
        return

    dx, dy = _offset(attrs.get("transform"))
    if node.kind == "axis":
        _draw_axis(draw, attrs, ox + dx, oy + dy)
    for child in node.children:
        _draw_node(draw, surface, child, ox + dx, oy + dy)


def render_png(surface: MemorySurface, output_path: Path, root: str | None = None) -> Path:
    """Draw the scene graph under ``root`` (default: everything) to a PNG file."""
    top = surface.node(MemorySurface.ROOT)
    width = int(top.attrs.get("width") or 800)
    height = int(top.attrs.get("height") or 600)
    img = Image.new("RGB", (width, height), BG)
    draw = ImageDraw.Draw(img)
    for child in ([root] if root else surface.children(MemorySurface.ROOT)):
        _draw_node(draw, surface, child, 0.0, 0.0)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    img.save(output_path, "PNG")
    logger.info("Snapshot: %s (%dx%d, t=%.0fms)", output_path, width, height, surface.now)
    return output_path
