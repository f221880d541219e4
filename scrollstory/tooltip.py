"""Nearest-point hit-testing and the tooltip panel / vertical rule.

Hit-testing is pure: pointer position in, ``TooltipUpdate`` out. Applying an
update to a surface is a separate step.
"""

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from scrollstory.config import TooltipConfig
from scrollstory.geometry import ChartGeometry
from scrollstory.models import DataRow, TooltipUpdate
from scrollstory.scales import LinearScale, format_day
from scrollstory.surface import RenderSurface

logger = logging.getLogger(__name__)


def nearest_index(pointer_x: float, subset_length: int, plot_width: float, margin_left: float) -> int:
    """Index of the row under a pointer, assuming evenly spaced samples.

    Not a true inverse of the time scale: the plot is cut into equal
    segments, one per row. Always within ``[0, subset_length - 1]``.
    """
    if subset_length <= 0:
        return 0
    segment = plot_width / subset_length
    if segment <= 0:
        return 0
    # Half-up rounding so ties move right
    raw = math.floor((pointer_x - margin_left - segment / 2) / segment + 0.5)
    return max(0, min(subset_length - 1, raw))


def series_row_index(closest: int, reference_length: int, series_length: int) -> int | None:
    """Row of a shorter series aligned to ``closest`` in the reference series.

    Series are aligned at their ends. None when the series had not started yet.
    """
    idx = closest - (reference_length - series_length)
    if idx < 0 or idx >= series_length:
        return None
    return idx


def format_close(value: float) -> str:
    return f"${value:,.2f}"


def line_tooltip(
    chart_id: str,
    pointer_x: float,
    rows: Sequence[DataRow],
    geometry: ChartGeometry,
    scale_y: LinearScale,
    config: TooltipConfig,
) -> TooltipUpdate | None:
    """Tooltip for a single series. None when there is nothing to point at."""
    if not rows:
        return None
    idx = nearest_index(pointer_x, len(rows), geometry.plot_width, geometry.margin_left)
    row = rows[idx]
    logger.debug("Hit-test %s x=%.1f -> %d (%s)", chart_id, pointer_x, idx, row.Date)
    return TooltipUpdate(
        chart_id=chart_id,
        index=idx,
        lines=[format_day(row.Date), f"Close: {format_close(row.Close)}"],
        panel_x=pointer_x + config.panel_offset_x,
        panel_y=scale_y(row.Close) + config.panel_offset_y,
        rule_x=pointer_x,
        rule_y1=geometry.margin_top,
        rule_y2=geometry.height - geometry.margin_bottom,
    )


def multi_series_tooltip(
    chart_id: str,
    pointer_x: float,
    reference_key: str,
    series: Mapping[str, Sequence[DataRow]],
    active: Mapping[str, bool],
    geometry: ChartGeometry,
    config: TooltipConfig,
) -> TooltipUpdate | None:
    """Tooltip listing every active series at the hovered date.

    The reference series (the longest history) drives the hit-test. Series
    that had not started trading at that date contribute no line.
    """
    reference = series.get(reference_key) or []
    if not reference:
        return None
    idx = nearest_index(pointer_x, len(reference), geometry.plot_width, geometry.margin_left)
    lines = [format_day(reference[idx].Date)]
    for key, rows in series.items():
        if not active.get(key, False):
            continue
        row_idx = series_row_index(idx, len(reference), len(rows))
        if row_idx is None:
            continue
        lines.append(f"{key}: {format_close(rows[row_idx].Close)}")
    return TooltipUpdate(
        chart_id=chart_id,
        index=idx,
        lines=lines,
        panel_x=pointer_x + config.panel_offset_x,
        panel_y=geometry.margin_top + config.panel_offset_y,
        rule_x=pointer_x,
        rule_y1=geometry.margin_top,
        rule_y2=geometry.height - geometry.margin_bottom,
    )


# --- Surface side ---


@dataclass
class TooltipState:
    panel_id: str | None = None
    rule_id: str | None = None

    @property
    def visible(self) -> bool:
        return self.panel_id is not None


def apply_tooltip_update(
    surface: RenderSurface,
    parent: str,
    state: TooltipState,
    update: TooltipUpdate,
    config: TooltipConfig,
) -> None:
    """Create the panel and rule on first use, reposition them afterwards."""
    if state.rule_id is None or not surface.exists(state.rule_id):
        state.rule_id = surface.create_node("line", parent, **{"class": "tooltip-rule", "stroke": config.rule_stroke})
    surface.set_attr(state.rule_id, "x1", update.rule_x)
    surface.set_attr(state.rule_id, "x2", update.rule_x)
    surface.set_attr(state.rule_id, "y1", update.rule_y1)
    surface.set_attr(state.rule_id, "y2", update.rule_y2)

    if state.panel_id is None or not surface.exists(state.panel_id):
        state.panel_id = surface.create_node("text", parent, **{"class": "tooltip"})
    surface.set_attr(state.panel_id, "x", update.panel_x)
    surface.set_attr(state.panel_id, "y", update.panel_y)
    surface.set_attr(state.panel_id, "lines", list(update.lines))


def clear_tooltip(surface: RenderSurface, state: TooltipState) -> None:
    for node_id in (state.panel_id, state.rule_id):
        if node_id is not None and surface.exists(node_id):
            surface.remove_node(node_id)
    state.panel_id = None
    state.rule_id = None
