"""Persistent chart handles.

A chart's surface nodes live only while one of its scenes is displayed
(``mount`` / ``unmount``). Its model state (phases, scales, active series)
outlives that, so returning to a chart morphs it instead of rebuilding it.
All geometry changes go through the ``TransitionCoordinator``.
"""

import abc
import logging
from collections.abc import Mapping, Sequence
from datetime import date

from scrollstory.config import Config
from scrollstory.geometry import ChartGeometry, axis_x_center, axis_y_center, color, title_center
from scrollstory.models import (
    Annotation,
    ChartKind,
    CompanyRow,
    DataRow,
    ExplorationControls,
    SeriesToggle,
    TooltipUpdate,
)
from scrollstory.paths import (
    TAU,
    anchor_pixel,
    annotation_layout,
    arc_centroid,
    arc_path,
    line_path,
    pie_layout,
    sweep_arc,
    translate,
)
from scrollstory.phases import PhaseChain, exploration_y_domain
from scrollstory.scales import LinearScale, TimeScale, format_currency, format_month
from scrollstory.surface import RenderSurface, ease_cubic, ease_linear
from scrollstory.tooltip import (
    TooltipState,
    apply_tooltip_update,
    clear_tooltip,
    line_tooltip,
    multi_series_tooltip,
)
from scrollstory.transitions import ScalePair, TransitionChain, TransitionCoordinator

logger = logging.getLogger(__name__)


class Chart(abc.ABC):
    """Base class for chart handles."""

    kind: ChartKind

    def __init__(
        self,
        chart_id: str,
        geometry: ChartGeometry,
        surface: RenderSurface,
        coordinator: TransitionCoordinator,
        config: Config,
        parent: str | None = None,
    ) -> None:
        self.chart_id = chart_id
        self.geometry = geometry
        self.surface = surface
        self.coordinator = coordinator
        self.config = config
        self.parent = parent
        self.root: str | None = None
        self.overlay: str | None = None
        self.tooltip_state = TooltipState()
        self._owned: set[str] = set()

    @property
    def mounted(self) -> bool:
        return self.root is not None and self.surface.exists(self.root)

    def _node(self, kind: str, parent: str | None = None, **attrs) -> str:
        node_id = self.surface.create_node(kind, parent or self.root, **attrs)
        self._owned.add(node_id)
        return node_id

    def _drop(self, node_id: str) -> None:
        self.coordinator.forget(node_id)
        if self.surface.exists(node_id):
            self.surface.remove_node(node_id)
        self._owned.discard(node_id)

    def mount(self, title: str = "") -> None:
        """Create the chart group and fade it in."""
        if self.mounted:
            return
        self.root = self.surface.create_node(
            "group", self.parent,
            **{"class": f"chart chart-{self.kind.value}", "data-chart": self.chart_id, "opacity": 0.0},
        )
        self._owned = {self.root}
        if title:
            self._node(
                "text",
                text=title,
                **{"class": "chart-title", "text-anchor": "middle",
                   "transform": translate(title_center(self.geometry), 30)},
            )
        self.coordinator.animate_attr(
            self.root, "opacity", 0.0, 1.0,
            duration=self.config.timing.scene_transition_ms, ease=ease_linear,
        )
        logger.debug("Mounted chart %s", self.chart_id)

    def unmount(self) -> None:
        """Tear down this chart's surface nodes; model state is kept."""
        if self.root is None:
            return
        clear_tooltip(self.surface, self.tooltip_state)
        for node_id in list(self._owned):
            self.coordinator.forget(node_id)
        if self.surface.exists(self.root):
            self.surface.remove_node(self.root)
        self.root = None
        self.overlay = None
        self._owned.clear()
        self._reset_nodes()
        logger.debug("Unmounted chart %s", self.chart_id)

    def _reset_nodes(self) -> None:
        """Forget node ids held by subclasses after an unmount."""

    def _add_overlay(self) -> None:
        g = self.geometry
        self.overlay = self._node(
            "rect",
            x=g.margin_left, y=g.margin_top, width=g.plot_width, height=g.plot_height,
            fill="none", **{"class": "pointer-overlay", "pointer-events": "all"},
        )

    # --- Tooltip ---

    def hit_test(self, pixel_x: float) -> TooltipUpdate | None:
        """Pure hit-test for a pointer x position. None means no tooltip."""
        return None

    def show_tooltip(self, update: TooltipUpdate) -> None:
        if not self.mounted:
            return
        apply_tooltip_update(self.surface, self.root, self.tooltip_state, update, self.config.tooltip)

    def hide_tooltip(self) -> None:
        clear_tooltip(self.surface, self.tooltip_state)

    # --- Axes ---

    def _add_axes(self, x_label: str, y_label: str) -> tuple[str, str]:
        g = self.geometry
        axis_x = self._node(
            "axis", orient="bottom", transform=translate(0, g.height - g.margin_bottom), ticks=[],
        )
        self._node(
            "text", axis_x, text=x_label,
            **{"class": "chart-axis-label", "text-anchor": "middle",
               "transform": translate(axis_x_center(g), 35)},
        )
        axis_y = self._node(
            "axis", orient="left", transform=translate(g.margin_left, 0), ticks=[],
        )
        self._node(
            "text", axis_y, text=y_label,
            **{"class": "chart-axis-label", "text-anchor": "middle",
               "transform": f"{translate(-60, axis_y_center(g))} rotate(-90)"},
        )
        return axis_x, axis_y


# --- Proportion chart ---


class PieChart(Chart):
    """Donut of retail net inflows per ticker with a clockwise sweep entrance."""

    kind = ChartKind.PIE

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.companies: list[CompanyRow] = []
        self._slices: list[str] = []

    def _reset_nodes(self) -> None:
        self._slices = []

    def render(self, companies: Sequence[CompanyRow], title: str = "") -> None:
        self.companies = list(companies)
        if self.mounted:
            return
        self.mount(title)
        cfg = self.config.pie_chart
        inner, outer = cfg.inner_radius, cfg.outer_radius
        g = self.geometry
        ring = self._node("group", transform=translate(g.width / 2, g.height / 2))

        layout = pie_layout([c.RetailNetFlowMillions for c in self.companies])
        duration = self.config.timing.chart_transition_ms
        for piece, company in zip(layout, self.companies):
            node = self._node(
                "path", ring, d="", fill=color(piece.index),
                **{"data-ticker": company.Ticker},
            )
            self._slices.append(node)
            self.coordinator.tween(
                node, "d",
                lambda t, p=piece: sweep_arc(p, inner, outer, t * TAU),
                arc_path(inner, outer, piece.start_angle, piece.end_angle),
                duration=duration, ease=ease_linear,
            )
            cx, cy = arc_centroid(inner, outer, piece.start_angle, piece.end_angle)
            self._node(
                "text", ring, text=company.Ticker,
                **{"text-anchor": "middle", "transform": translate(cx, cy)},
            )
        logger.info("Rendered proportion chart with %d slices", len(layout))


# --- Narrative time series ---


class LineChart(Chart):
    """Time-series chart extended phase by phase across scenes."""

    kind = ChartKind.LINE

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.chain: PhaseChain | None = None
        self.displayed: str | None = None
        self._segments: dict[str, str] = {}
        self._segment_rows: dict[str, list[DataRow]] = {}
        self._segment_scales: dict[str, ScalePair] = {}
        self._annotations: dict[tuple[str, int], tuple[str, Annotation, ScalePair]] = {}
        self._axes: tuple[str, str] | None = None
        self._axis_scales: ScalePair | None = None

    def _reset_nodes(self) -> None:
        self.displayed = None
        self._segments.clear()
        self._segment_rows.clear()
        self._segment_scales.clear()
        self._annotations.clear()
        self._axes = None
        self._axis_scales = None

    def ensure_series(self, rows: Sequence[DataRow]) -> PhaseChain:
        if self.chain is None:
            self.chain = PhaseChain(rows, self.geometry.x_range, self.geometry.y_range)
        return self.chain

    def ensure_phase(
        self,
        name: str,
        cutoff: date | None,
        y_domain: tuple[float, float] | None = None,
    ) -> None:
        if self.chain is None:
            raise ValueError(f"Chart {self.chart_id} has no series yet")
        if name not in self.chain:
            self.chain.extend(name, cutoff, y_domain)

    def segment_node(self, phase_name: str) -> str | None:
        return self._segments.get(phase_name)

    def annotation_nodes(self) -> list[str]:
        return [node for node, _, _ in self._annotations.values()]

    def show_phase(
        self,
        name: str,
        annotations: Mapping[str, Sequence[Annotation]] | None = None,
        title: str = "",
    ) -> None:
        """Morph the chart to show every phase through ``name``.

        Existing segments, axes and annotations rescale together; segments
        of new phases are revealed one after another once the rescale is
        done. Phases after ``name`` (when navigating back) are removed.
        """
        if self.chain is None:
            raise ValueError(f"Chart {self.chart_id} has no series yet")
        target = self.chain.get(name)
        to_scales = target.scales
        annotations = annotations or {}
        timing = self.config.timing

        first_mount = not self.mounted
        if first_mount:
            self.mount(title)
            self._axes = self._add_axes("Date", "Closing Price")
            self._add_overlay()
            chain = TransitionChain(timing.scene_transition_ms)
        else:
            chain = TransitionChain(0)

        visible = [p.name for p in self.chain.upto(name)]
        for phase_name in [p for p in self._segments if p not in visible]:
            self._drop(self._segments.pop(phase_name))
            self._segment_rows.pop(phase_name, None)
            self._segment_scales.pop(phase_name, None)
        for key in [k for k in self._annotations if k[0] not in visible]:
            self._drop(self._annotations.pop(key)[0])

        duration = timing.chart_transition_ms
        rescaled = False
        for phase_name, node in self._segments.items():
            from_scales = self._segment_scales[phase_name]
            if from_scales == to_scales:
                continue
            self.coordinator.rescale_path(
                node, self._segment_rows[phase_name], from_scales, to_scales, duration=duration,
            )
            self._segment_scales[phase_name] = to_scales
            rescaled = True

        for key, (node, annotation, from_scales) in list(self._annotations.items()):
            if from_scales == to_scales:
                continue
            self.coordinator.reposition(
                node,
                anchor_pixel(annotation, *from_scales),
                anchor_pixel(annotation, *to_scales),
                duration=duration,
            )
            self._annotations[key] = (node, annotation, to_scales)

        self._rescale_axes(to_scales, duration)
        if rescaled:
            chain.add(duration)

        for phase in self.chain.upto(name):
            if phase.name not in self._segments:
                self._add_segment(phase.name, to_scales, chain, first=not self._has_drawn_segment())
            for i, annotation in enumerate(annotations.get(phase.name, [])):
                if (phase.name, i) not in self._annotations:
                    self._add_annotation(phase.name, i, annotation, to_scales, chain.cursor)

        self.displayed = name
        logger.info("Chart %s showing phase %s (%d segments)", self.chart_id, name, len(self._segments))

    def _has_drawn_segment(self) -> bool:
        return any(self._segment_rows[p] for p in self._segments)

    def _add_segment(self, phase_name: str, scales: ScalePair, chain: TransitionChain, first: bool) -> None:
        rows = self.chain.segment_rows(phase_name)
        cfg = self.config.line_chart
        node = self._node(
            "path",
            d=line_path(rows, *scales),
            fill="none",
            stroke=cfg.stroke,
            **{"stroke-width": cfg.stroke_width, "data-phase": phase_name},
        )
        self._segments[phase_name] = node
        self._segment_rows[phase_name] = rows
        self._segment_scales[phase_name] = scales
        if not rows:
            logger.debug("Phase %s has no rows; no entrance", phase_name)
            return
        timing = self.config.timing
        duration = timing.entrance_ms if first else timing.segment_entrance_ms
        if self.coordinator.enter_path(node, duration=duration, delay=chain.cursor, ease=ease_cubic) is not None:
            chain.add(duration)

    def _add_annotation(
        self, phase_name: str, i: int, annotation: Annotation, scales: ScalePair, delay: float,
    ) -> None:
        layout = annotation_layout(annotation, *scales)
        group = self._node("group", transform=layout.transform, opacity=0.0, **{"class": "annotation"})
        self._node("circle", group, r=4, cx=0, cy=0, **{"class": "annotation-mark"})
        self._node(
            "line", group, x1=0, y1=0, x2=layout.line_end[0], y2=layout.line_end[1],
            **{"class": "annotation-leader"},
        )
        self._node(
            "text", group,
            x=layout.text_origin[0], y=layout.text_origin[1],
            lines=layout.lines, **{"text-anchor": layout.text_anchor, "line-height": layout.line_height},
        )
        self._annotations[(phase_name, i)] = (group, annotation, scales)
        self.coordinator.animate_attr(
            group, "opacity", 0.0, 1.0,
            duration=self.config.timing.annotation_fade_ms, delay=delay, ease=ease_linear,
        )

    def _rescale_axes(self, to_scales: ScalePair, duration: float, delay: float = 0) -> None:
        if self._axes is None:
            return
        axis_x, axis_y = self._axes
        from_x, from_y = self._axis_scales if self._axis_scales else (None, None)
        if from_x != to_scales[0]:
            self.coordinator.rescale_axis(
                axis_x, from_x, to_scales[0], format_month, duration=duration, delay=delay,
            )
        if from_y != to_scales[1]:
            self.coordinator.rescale_axis(
                axis_y, from_y, to_scales[1], format_currency, duration=duration, delay=delay,
            )
        self._axis_scales = to_scales

    def hit_test(self, pixel_x: float) -> TooltipUpdate | None:
        if self.chain is None or self.displayed is None:
            return None
        phase = self.chain.get(self.displayed)
        return line_tooltip(
            self.chart_id, pixel_x, self.chain.rows_through(self.displayed),
            self.geometry, phase.scale_y, self.config.tooltip,
        )


# --- Exploration mode ---


class ExplorationChart(Chart):
    """Multi-series overlay with per-series toggles and a shared value axis."""

    kind = ChartKind.EXPLORE

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.series: dict[str, list[DataRow]] = {}
        self.labels: dict[str, str] = {}
        self.active: dict[str, bool] = {}
        self.scale_x: TimeScale | None = None
        self.scale_y = LinearScale((0, 0), self.geometry.y_range)
        self.date_range: tuple[date | None, date | None] = (None, None)
        self._paths: dict[str, str] = {}
        self._axes: tuple[str, str] | None = None

    def _reset_nodes(self) -> None:
        self._paths.clear()
        self._axes = None

    @property
    def reference_key(self) -> str | None:
        """Key of the series with the longest history."""
        if not self.series:
            return None
        return max(self.series, key=lambda k: len(self.series[k]))

    def load(
        self,
        series: Mapping[str, Sequence[DataRow]],
        labels: Mapping[str, str] | None = None,
        active: Mapping[str, bool] | None = None,
    ) -> None:
        """Register the series once; later calls keep the user's toggles."""
        for key, rows in series.items():
            if key not in self.series:
                self.series[key] = list(rows)
                self.active[key] = True if active is None else active.get(key, False)
        if labels:
            self.labels.update(labels)
        ref = self.reference_key
        if ref and self.series[ref]:
            rows = self.series[ref]
            self.scale_x = TimeScale((rows[0].Date, rows[-1].Date), self.geometry.x_range)
        self.scale_y = LinearScale(exploration_y_domain(self.series, self.active), self.geometry.y_range)

    def controls(self) -> ExplorationControls:
        ref = self.reference_key
        return ExplorationControls(
            toggles=[
                SeriesToggle(key=k, label=self.labels.get(k, k), checked=self.active[k])
                for k in self.series
            ],
            date_options=[r.Date for r in self.series.get(ref, [])] if ref else [],
            range_start=self.date_range[0],
            range_end=self.date_range[1],
        )

    def set_date_range(self, start: date | None, end: date | None) -> None:
        """Record the date-range selectors. The plotted range is not filtered by them."""
        self.date_range = (start, end)
        logger.debug("Exploration date range set to %s..%s", start, end)

    def render(self, title: str = "") -> None:
        self.mount(title)
        if self._axes is None:
            self._axes = self._add_axes("Date", "Closing Price")
            self._add_overlay()
        if self.scale_x is None:
            return
        axis_x, axis_y = self._axes
        self.coordinator.rescale_axis(axis_x, None, self.scale_x, format_month, duration=0)
        self.coordinator.rescale_axis(axis_y, None, self.scale_y, format_currency, duration=0)
        delay = self.config.timing.scene_transition_ms
        for key in self.series:
            if self.active[key] and key not in self._paths:
                node = self._add_path(key, self.scale_y)
                self.coordinator.enter_path(
                    node, duration=self.config.timing.entrance_ms, delay=delay,
                )

    def _add_path(self, key: str, scale_y: LinearScale) -> str:
        i = list(self.series).index(key)
        node = self._node(
            "path",
            d=line_path(self.series[key], self.scale_x, scale_y),
            fill="none",
            stroke=color(i),
            **{"stroke-width": self.config.line_chart.stroke_width, "data-series": key},
        )
        self._paths[key] = node
        return node

    def set_series_active(self, key: str, is_active: bool) -> bool:
        """Show or hide a series and rescale every visible one to the new shared domain.

        Toggling a series to the state it is already in does nothing.
        Returns True if anything changed.
        """
        if key not in self.series:
            raise ValueError(f"Unknown series: {key}")
        if self.active[key] == is_active:
            logger.debug("Series %s already %s", key, "active" if is_active else "inactive")
            return False

        old_y = self.scale_y
        self.active[key] = is_active
        self.scale_y = LinearScale(exploration_y_domain(self.series, self.active), self.geometry.y_range)
        logger.info("Series %s -> %s; y domain %s", key, is_active, self.scale_y.domain)

        if not self.mounted or self.scale_x is None:
            return True

        if not is_active and key in self._paths:
            self._drop(self._paths.pop(key))
        elif is_active and key not in self._paths:
            self._add_path(key, old_y)

        # Every visible series and the value axis start together
        duration = self.config.timing.chart_transition_ms
        for k, node in self._paths.items():
            self.coordinator.rescale_path(
                node, self.series[k], (self.scale_x, old_y), (self.scale_x, self.scale_y),
                duration=duration, delay=0,
            )
        if self._axes is not None:
            self.coordinator.rescale_axis(
                self._axes[1], old_y, self.scale_y, format_currency, duration=duration, delay=0,
            )
        return True

    def path_node(self, key: str) -> str | None:
        return self._paths.get(key)

    def hit_test(self, pixel_x: float) -> TooltipUpdate | None:
        ref = self.reference_key
        if ref is None:
            return None
        return multi_series_tooltip(
            self.chart_id, pixel_x, ref, self.series, self.active, self.geometry, self.config.tooltip,
        )
