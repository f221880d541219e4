"""Tests for chart handles: donut, narrative line chart and exploration mode."""

from datetime import date

import pytest

from scrollstory.charts import ExplorationChart, LineChart, PieChart
from scrollstory.geometry import ChartGeometry
from scrollstory.models import Annotation, AnimationState, CompanyRow, Placement
from scrollstory.paths import line_path
from scrollstory.surface import MemorySurface


@pytest.fixture()
def explore(surface, coordinator, config, line_geometry, make_rows):
    chart = ExplorationChart("explore", line_geometry, surface, coordinator, config)
    chart.load(
        {
            "A": make_rows(date(2020, 1, 3), [0, 4, 10]),
            "B": make_rows(date(2020, 1, 10), [0, 5]),
        },
        labels={"A": "Alpha", "B": "Beta"},
    )
    return chart


@pytest.fixture()
def line_chart(surface, coordinator, config, line_geometry):
    return LineChart("line", line_geometry, surface, coordinator, config)


class TestExplorationChart:
    def test_initial_domain_covers_all(self, explore):
        assert explore.scale_y.domain == (0, 10)
        assert explore.reference_key == "A"

    def test_toggle_off_rescales_to_remaining(self, explore, surface):
        explore.render()
        surface.settle()
        assert explore.set_series_active("B", False)
        assert explore.scale_y.domain == (0, 10)
        assert explore.path_node("B") is None

    def test_toggle_all_off(self, explore):
        explore.set_series_active("A", False)
        explore.set_series_active("B", False)
        assert explore.scale_y.domain == (0, 0)

    def test_repeated_toggle_is_noop(self, explore):
        assert explore.set_series_active("B", False)
        assert not explore.set_series_active("B", False)

    def test_unknown_series(self, explore):
        with pytest.raises(ValueError):
            explore.set_series_active("ZZZ", True)

    def test_visible_series_rescale_together(self, explore, surface, coordinator):
        explore.render()
        surface.settle()
        explore.set_series_active("A", False)
        node = explore.path_node("B")
        anims = surface.active_animations(node)
        assert anims
        assert all(a.start == surface.now for a in anims)
        assert coordinator.state_of(node) == AnimationState.RESCALING

        surface.settle()
        assert surface.get_attr(node, "d") == line_path(explore.series["B"], explore.scale_x, explore.scale_y)

    def test_reactivated_series_enters_from_old_scale(self, explore, surface):
        explore.render()
        surface.settle()
        explore.set_series_active("B", False)
        surface.settle()
        explore.set_series_active("B", True)
        assert explore.path_node("B") is not None
        surface.settle()
        assert surface.get_attr(explore.path_node("B"), "d") == line_path(
            explore.series["B"], explore.scale_x, explore.scale_y,
        )

    def test_controls(self, explore):
        explore.set_series_active("B", False)
        explore.set_date_range(date(2020, 1, 3), date(2020, 1, 17))
        controls = explore.controls()
        assert [(t.key, t.label, t.checked) for t in controls.toggles] == [
            ("A", "Alpha", True), ("B", "Beta", False),
        ]
        assert len(controls.date_options) == 3
        assert controls.range_start == date(2020, 1, 3)

    def test_load_keeps_toggles(self, explore, make_rows):
        explore.set_series_active("B", False)
        explore.load({"B": make_rows(date(2020, 1, 10), [0, 5])})
        assert explore.active["B"] is False


class TestLineChart:
    def _rows(self, make_rows):
        return make_rows(date(2020, 1, 3), [100, 120, 90, 130, 150])

    def test_scene_change_preserves_interrupted_shape(self, line_chart, surface, make_rows):
        rows = self._rows(make_rows)
        line_chart.ensure_series(rows)
        line_chart.ensure_phase("first", rows[2].Date, (0, 200))
        line_chart.show_phase("first")

        phase = line_chart.chain.get("first")
        assert phase.scale_x.domain == (rows[0].Date, rows[2].Date)
        assert phase.scale_y.domain == (0, 200)

        # Mid-entrance of the first segment
        surface.advance(1500)
        node = line_chart.segment_node("first")
        shape = surface.get_attr(node, "d")
        assert surface.get_attr(node, "stroke-dashoffset") > 0

        line_chart.ensure_phase("second", rows[4].Date)
        line_chart.show_phase("second")
        assert surface.get_attr(node, "d") == shape
        assert surface.get_attr(node, "stroke-dashoffset") == 0

        surface.settle()
        to_scales = line_chart.chain.get("second").scales
        assert surface.get_attr(node, "d") == line_path(rows[:3], *to_scales)
        new_node = line_chart.segment_node("second")
        assert surface.get_attr(new_node, "stroke-dashoffset") == 0

    def test_new_segment_waits_for_rescale(self, line_chart, surface, make_rows, config):
        rows = self._rows(make_rows)
        line_chart.ensure_series(rows)
        line_chart.ensure_phase("first", rows[2].Date, (0, 200))
        line_chart.show_phase("first")
        surface.settle()

        line_chart.ensure_phase("second", rows[4].Date)
        start = surface.now
        line_chart.show_phase("second")
        entrance = [
            a for a in surface.active_animations(line_chart.segment_node("second"))
            if a.attr == "stroke-dashoffset"
        ]
        assert [a.start - start for a in entrance] == [config.timing.chart_transition_ms]

    def test_back_navigation_drops_later_phases(self, line_chart, surface, make_rows):
        rows = self._rows(make_rows)
        line_chart.ensure_series(rows)
        line_chart.ensure_phase("first", rows[2].Date, (0, 200))
        line_chart.ensure_phase("second", rows[4].Date)
        notes = {"second": [Annotation(anchor_x=rows[3].Date, anchor_y=130, text_lines=["peak"])]}
        line_chart.show_phase("second", notes)
        later = line_chart.segment_node("second")
        assert len(line_chart.annotation_nodes()) == 1

        line_chart.show_phase("first", notes)
        assert line_chart.segment_node("second") is None
        assert not surface.exists(later)
        assert line_chart.annotation_nodes() == []

    def test_annotation_fades_in(self, line_chart, surface, make_rows):
        rows = self._rows(make_rows)
        line_chart.ensure_series(rows)
        line_chart.ensure_phase("first", rows[4].Date, (0, 200))
        notes = {"first": [Annotation(
            anchor_x=rows[4].Date, anchor_y=150, text_lines=["high"], placement=Placement.TOPLEFT,
        )]}
        line_chart.show_phase("first", notes)
        group = line_chart.annotation_nodes()[0]
        assert surface.get_attr(group, "opacity") == 0.0
        surface.settle()
        assert surface.get_attr(group, "opacity") == 1.0

    def test_hit_test_covers_displayed_phases(self, line_chart, surface, make_rows):
        rows = self._rows(make_rows)
        line_chart.ensure_series(rows)
        line_chart.ensure_phase("first", rows[2].Date, (0, 200))
        assert line_chart.hit_test(500) is None
        line_chart.show_phase("first")
        update = line_chart.hit_test(10_000)
        assert update.lines[1] == "Close: $90.00"

    def test_show_phase_needs_series(self, line_chart):
        with pytest.raises(ValueError):
            line_chart.show_phase("first")

    def test_unmount_keeps_model(self, line_chart, surface, make_rows):
        rows = self._rows(make_rows)
        line_chart.ensure_series(rows)
        line_chart.ensure_phase("first", rows[2].Date, (0, 200))
        line_chart.show_phase("first")
        root = line_chart.root
        line_chart.unmount()
        assert not surface.exists(root)
        assert "first" in line_chart.chain
        line_chart.show_phase("first")
        assert line_chart.mounted


class TestPieChart:
    def test_sweep_entrance(self, surface, coordinator, config):
        chart = PieChart("pie", ChartGeometry.from_config(config.canvas), surface, coordinator, config)
        companies = [
            CompanyRow(CompanyName="Tesla", Ticker="TSLA", RetailNetFlowMillions=300),
            CompanyRow(CompanyName="Apple", Ticker="AAPL", RetailNetFlowMillions=100),
        ]
        chart.render(companies)
        slices = surface.children(chart.root, "group")
        ring = slices[0]
        paths = surface.children(ring, "path")
        assert len(paths) == 2
        assert all(surface.get_attr(p, "d") == "" for p in paths)

        # A quarter of the way round only the largest slice is showing
        surface.advance(config.timing.chart_transition_ms / 4)
        assert surface.get_attr(paths[0], "d") != ""
        assert surface.get_attr(paths[1], "d") == ""

        surface.settle()
        assert all(surface.get_attr(p, "d") for p in paths)

    def test_render_twice_does_not_duplicate(self, surface, coordinator, config):
        chart = PieChart("pie", ChartGeometry.from_config(config.canvas), surface, coordinator, config)
        companies = [CompanyRow(CompanyName="Tesla", Ticker="TSLA", RetailNetFlowMillions=300)]
        chart.render(companies)
        chart.render(companies)
        assert len(surface.children(MemorySurface.ROOT)) == 1
