"""Path builders: series polylines, pointer annotations, donut arcs."""

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from scrollstory.models import Annotation, DataRow
from scrollstory.scales import LinearScale, TimeScale

logger = logging.getLogger(__name__)

TAU = 2 * math.pi
_EPSILON = 1e-9


def _fmt(v: float) -> str:
    out = f"{v:.3f}".rstrip("0").rstrip(".")
    return "0" if out in ("-0", "") else out


# --- Series polylines ---


def path_points(
    rows: Sequence[DataRow], scale_x: TimeScale, scale_y: LinearScale,
) -> list[tuple[float, float]]:
    return [(scale_x(r.Date), scale_y(r.Close)) for r in rows]


def line_path(rows: Sequence[DataRow], scale_x: TimeScale, scale_y: LinearScale) -> str:
    """SVG path data for a polyline through rows. Empty rows give an empty path."""
    points = path_points(rows, scale_x, scale_y)
    if not points:
        return ""
    head, *tail = points
    parts = [f"M{_fmt(head[0])},{_fmt(head[1])}"]
    parts.extend(f"L{_fmt(x)},{_fmt(y)}" for x, y in tail)
    return "".join(parts)


_COMMAND_RE = re.compile(r"([MLAZmlaz])([^MLAZmlaz]*)")
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?(?:e-?\d+)?")


def parse_path(d: str, arc_steps: int = 24) -> list[list[tuple[float, float]]]:
    """Split path data into polylines (one per subpath).

    Understands M, L, A and Z in absolute coordinates. Arcs are sampled
    around the local origin, which is where every arc built here is centred.
    """
    subpaths: list[list[tuple[float, float]]] = []
    current: list[tuple[float, float]] = []
    for cmd, args in _COMMAND_RE.findall(d or ""):
        nums = [float(n) for n in _NUMBER_RE.findall(args)]
        cmd = cmd.upper()
        if cmd == "M":
            if current:
                subpaths.append(current)
            current = [(nums[0], nums[1])]
            # Implicit lineto for extra coordinate pairs
            current.extend((nums[i], nums[i + 1]) for i in range(2, len(nums) - 1, 2))
        elif cmd == "L":
            current.extend((nums[i], nums[i + 1]) for i in range(0, len(nums) - 1, 2))
        elif cmd == "A" and current and len(nums) >= 7:
            radius = nums[0]
            sweep = nums[4]
            x1, y1 = current[-1]
            x2, y2 = nums[5], nums[6]
            a1 = math.atan2(y1, x1)
            a2 = math.atan2(y2, x2)
            delta = a2 - a1
            if sweep and delta < 0:
                delta += TAU
            elif not sweep and delta > 0:
                delta -= TAU
            for i in range(1, arc_steps + 1):
                a = a1 + delta * i / arc_steps
                current.append((radius * math.cos(a), radius * math.sin(a)))
        elif cmd == "Z" and current:
            current.append(current[0])
    if current:
        subpaths.append(current)
    return subpaths


def polyline_length(points: Sequence[tuple[float, float]]) -> float:
    return sum(
        math.hypot(x2 - x1, y2 - y1)
        for (x1, y1), (x2, y2) in zip(points, points[1:])
    )


def path_length(d: str) -> float:
    return sum(polyline_length(p) for p in parse_path(d))


# --- Pointer annotations ---


@dataclass(frozen=True)
class AnnotationLayout:
    """Pixel layout of an annotation relative to its projected anchor."""
    x: float
    y: float
    line_end: tuple[float, float]
    text_origin: tuple[float, float]
    text_anchor: str
    line_height: float
    lines: list[str]

    @property
    def transform(self) -> str:
        return translate(self.x, self.y)


def translate(x: float, y: float) -> str:
    return f"translate({_fmt(x)},{_fmt(y)})"


def anchor_pixel(annotation: Annotation, scale_x: TimeScale, scale_y: LinearScale) -> tuple[float, float]:
    return (scale_x(annotation.anchor_x), scale_y(annotation.anchor_y))


def annotation_layout(
    annotation: Annotation,
    scale_x: TimeScale,
    scale_y: LinearScale,
    line_height: float = 16,
) -> AnnotationLayout:
    """Lay out mark, leader line and text block for an annotation.

    Top placements run the leader upward and stack the text so its last line
    sits on the leader end; bottom placements run it downward with the first
    line just below. Left placements mirror horizontally and right-align text.
    """
    x, y = anchor_pixel(annotation, scale_x, scale_y)
    placement = annotation.placement
    dx = -annotation.offset_x if placement.is_left else annotation.offset_x
    dy = -annotation.offset_y if placement.is_top else annotation.offset_y

    n = len(annotation.text_lines)
    if placement.is_top:
        text_y = dy - (n - 1) * line_height - 4
    else:
        text_y = dy + line_height
    text_x = dx + (-4 if placement.is_left else 4)

    return AnnotationLayout(
        x=x,
        y=y,
        line_end=(dx, dy),
        text_origin=(text_x, text_y),
        text_anchor="end" if placement.is_left else "start",
        line_height=line_height,
        lines=list(annotation.text_lines),
    )


# --- Donut / proportion chart ---


@dataclass
class PieSlice:
    index: int
    value: float
    start_angle: float
    end_angle: float


def pie_layout(values: Sequence[float]) -> list[PieSlice]:
    """Angles for each value, largest first clockwise from 12 o'clock.

    Slices come back in input order. Negative values count as zero.
    """
    clean = [max(0.0, float(v)) for v in values]
    total = sum(clean)
    order = sorted(range(len(clean)), key=lambda i: clean[i], reverse=True)
    slices: dict[int, PieSlice] = {}
    angle = 0.0
    for i in order:
        span = (clean[i] / total * TAU) if total > 0 else 0.0
        slices[i] = PieSlice(index=i, value=clean[i], start_angle=angle, end_angle=angle + span)
        angle += span
    return [slices[i] for i in range(len(clean))]


def _polar(r: float, a: float) -> tuple[float, float]:
    # 0 rad points up; angles grow clockwise
    return (r * math.sin(a), -r * math.cos(a))


def arc_path(inner: float, outer: float, start: float, end: float) -> str:
    """Annular sector between two angles, centred on the origin."""
    span = end - start
    if span <= _EPSILON:
        return ""
    if span >= TAU - _EPSILON:
        # A full ring cannot be one arc command; draw it as two halves
        mid = start + math.pi
        return arc_path(inner, outer, start, mid) + arc_path(inner, outer, mid, start + TAU)

    large = 1 if span > math.pi else 0
    ox0, oy0 = _polar(outer, start)
    ox1, oy1 = _polar(outer, end)
    parts = [
        f"M{_fmt(ox0)},{_fmt(oy0)}",
        f"A{_fmt(outer)},{_fmt(outer)},0,{large},1,{_fmt(ox1)},{_fmt(oy1)}",
    ]
    if inner > 0:
        ix1, iy1 = _polar(inner, end)
        ix0, iy0 = _polar(inner, start)
        parts.append(f"L{_fmt(ix1)},{_fmt(iy1)}")
        parts.append(f"A{_fmt(inner)},{_fmt(inner)},0,{large},0,{_fmt(ix0)},{_fmt(iy0)}")
    else:
        parts.append("L0,0")
    parts.append("Z")
    return "".join(parts)


def arc_centroid(inner: float, outer: float, start: float, end: float) -> tuple[float, float]:
    return _polar((inner + outer) / 2, (start + end) / 2)


def sweep_arc(piece: PieSlice, inner: float, outer: float, sweep_angle: float) -> str:
    """Path of a slice as seen while a clockwise sweep reaches ``sweep_angle``.

    Hidden until the sweep passes the slice's start angle, then grows up to
    its own end angle.
    """
    if sweep_angle < piece.start_angle:
        return ""
    return arc_path(inner, outer, piece.start_angle, min(sweep_angle, piece.end_angle))
