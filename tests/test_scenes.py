"""Tests for the scene state machine driving the retail investor story."""

import asyncio

import pytest

from scrollstory.datasets import CsvLoader, DatasetCache
from scrollstory.models import NavState, SceneStatus
from scrollstory.scenes import Scene, SceneStateMachine, StoryContext
from scrollstory.story import EXPLORATION_TICKERS, MARKET_SERIES, build_story, line_scene


def go(machine, n):
    return asyncio.run(machine.go_to_scene(n))


class TestNavigation:
    def test_first_scene(self, machine):
        assert go(machine, 1) == SceneStatus.READY
        assert machine.current == 1
        assert machine.viewed[1]
        nav = machine.nav
        assert nav.back.state == NavState.DISABLED
        assert nav.forward.state == NavState.ENABLED
        assert nav.forward.target == 2
        assert nav.numbered[0].state == NavState.CURRENT
        assert all(c.state == NavState.DISABLED for c in nav.numbered[1:])

    def test_last_scene_has_no_forward(self, machine):
        go(machine, machine.last_index)
        assert machine.nav.forward.state == NavState.DISABLED
        assert machine.nav.back.state == NavState.ENABLED

    def test_viewed_is_monotonic(self, machine):
        seen: set[int] = set()
        for n in [1, 3, 2, 7, 1, 4]:
            go(machine, n)
            seen.add(n)
            assert {i for i, v in enumerate(machine.viewed) if v} == seen

    def test_same_scene_twice_keeps_navigation(self, machine):
        go(machine, 2)
        nav = machine.nav
        go(machine, 2)
        assert machine.nav == nav
        assert machine.current == 2

    def test_viewed_scenes_become_clickable(self, machine):
        go(machine, 1)
        go(machine, 2)
        go(machine, 3)
        states = [c.state for c in machine.nav.numbered]
        assert states[:3] == [NavState.ENABLED, NavState.ENABLED, NavState.CURRENT]
        assert states[3] == NavState.DISABLED

    def test_disabled_control_does_nothing(self, machine):
        go(machine, 1)
        unseen = machine.nav.numbered[4]
        assert not asyncio.run(machine.click(unseen))
        assert machine.current == 1

    def test_forward_and_back(self, machine):
        go(machine, 1)
        assert asyncio.run(machine.forward())
        assert machine.current == 2
        assert asyncio.run(machine.back())
        assert machine.current == 1
        # Scene 1 has no back control
        assert not asyncio.run(machine.back())

    @pytest.mark.parametrize("n", [0, 8, -1])
    def test_invalid_index(self, machine, n):
        with pytest.raises(ValueError):
            go(machine, n)

    def test_text_region_follows_scene(self, machine):
        go(machine, 3)
        assert machine.text.title == "The Crash"
        assert machine.text.body


class TestRendering:
    def test_charts_swap_between_scenes(self, machine, surface):
        go(machine, 1)
        surface.settle()
        ctx = machine.context
        assert ctx.displayed_chart == "pie"

        go(machine, 2)
        assert ctx.displayed_chart == "line"
        assert not ctx.charts["pie"].mounted
        assert ctx.charts["line"].mounted

    def test_line_chart_persists_across_scenes(self, machine, surface):
        go(machine, 2)
        surface.settle()
        chart = machine.context.charts["line"]
        go(machine, 3)
        assert machine.context.charts["line"] is chart
        assert chart.displayed == "crash"
        assert chart.segment_node("bull_run") is not None

    def test_jump_ahead_builds_intermediate_phases(self, machine):
        go(machine, 6)
        chart = machine.context.charts["line"]
        assert chart.chain.names == ["bull_run", "crash", "stimulus", "peak", "reckoning"]
        assert len(chart.annotation_nodes()) == 5

    def test_advancing_preserves_interrupted_shape(self, machine, surface):
        go(machine, 2)
        surface.advance(1000)
        chart = machine.context.charts["line"]
        node = chart.segment_node("bull_run")
        shape = surface.get_attr(node, "d")
        assert surface.get_attr(node, "stroke-dashoffset") > 0

        go(machine, 3)
        assert surface.get_attr(node, "d") == shape
        assert surface.get_attr(node, "stroke-dashoffset") == 0

    def test_datasets_fetched_once(self, machine, loader):
        for n in [2, 3, 4, 2, 6]:
            go(machine, n)
        assert loader.calls.count(MARKET_SERIES) == 1

    def test_exploration_scene(self, machine, surface):
        assert go(machine, 7) == SceneStatus.READY
        surface.settle()
        chart = machine.context.charts["explore"]
        controls = chart.controls()
        assert [t.key for t in controls.toggles] == EXPLORATION_TICKERS
        assert all(t.checked for t in controls.toggles)
        assert all(chart.path_node(k) for k in EXPLORATION_TICKERS)
        assert controls.toggles[0].label == "Company TSLA"

    def test_tooltip_dispatch(self, machine, surface):
        go(machine, 6)
        surface.settle()
        ctx = machine.context
        chart = ctx.charts["line"]
        update = ctx.on_pointer_move("line", 500)
        assert update.lines[1].startswith("Close: $")
        assert chart.tooltip_state.visible

        surface.pointer_leave(chart.overlay)
        assert not chart.tooltip_state.visible

        surface.pointer_move(chart.overlay, 600, 100)
        assert chart.tooltip_state.visible

    def test_tooltip_torn_down_with_chart(self, machine, surface):
        go(machine, 6)
        ctx = machine.context
        ctx.on_pointer_move("line", 500)
        go(machine, 7)
        assert not ctx.charts["line"].tooltip_state.visible


class TestFailures:
    def test_fetch_failure_marks_scene_failed(self, config, surface, story_datasets, make_loader):
        loader = make_loader(story_datasets, fail={MARKET_SERIES})
        machine = build_story(config, surface=surface, loader=loader)

        assert go(machine, 2) == SceneStatus.FAILED
        assert not machine.interactive(2)
        assert machine.current == 2
        ctx = machine.context
        notices = [
            n for n in surface.nodes.values()
            if "notice" in str(n.attrs.get("class", ""))
        ]
        assert len(notices) == 1
        assert "unavailable" in notices[0].attrs["text"]

        # Navigation keeps working, and a later visit retries the fetch
        go(machine, 1)
        assert not any("notice" in str(n.attrs.get("class", "")) for n in surface.nodes.values())
        loader.fail.clear()
        assert go(machine, 2) == SceneStatus.READY
        assert machine.interactive(2)
        assert ctx.displayed_chart == "line"
        assert loader.calls.count(MARKET_SERIES) == 2

    def test_ragged_csv_marks_scene_failed(self, config, surface, tmp_path):
        (tmp_path / f"{MARKET_SERIES}.csv").write_text("Date,Close\n2020-01-03,1.0,extra\n")
        machine = build_story(config, surface=surface, loader=CsvLoader(tmp_path))
        assert go(machine, 2) == SceneStatus.FAILED
        assert not machine.interactive(2)
        assert not machine.context.datasets.is_cached(MARKET_SERIES)

    def test_exploration_failure_if_one_ticker_missing(self, config, surface, story_datasets, make_loader):
        loader = make_loader(story_datasets, fail={EXPLORATION_TICKERS[-1]})
        machine = build_story(config, surface=surface, loader=loader)
        assert go(machine, 7) == SceneStatus.FAILED
        assert machine.context.displayed_chart is None

    def test_stale_render_is_dropped(self, config, surface, story_datasets, make_loader):
        loader = make_loader(story_datasets, gated={MARKET_SERIES})
        machine = build_story(config, surface=surface, loader=loader)

        async def scenario():
            pending = asyncio.create_task(machine.go_to_scene(2))
            await asyncio.sleep(0)
            await machine.go_to_scene(1)
            loader.release.set()
            return await pending

        status = asyncio.run(scenario())
        assert status == SceneStatus.PENDING
        assert machine.current == 1
        assert "line" not in machine.context.charts
        assert machine.context.displayed_chart == "pie"


class TestConstruction:
    def test_needs_placeholder_and_a_scene(self, config, surface, make_loader):
        ctx = StoryContext(config, surface, DatasetCache(make_loader({})))
        with pytest.raises(ValueError):
            SceneStateMachine([Scene(index=0, title="")], ctx)

    def test_indices_must_match_positions(self, config, surface, make_loader):
        ctx = StoryContext(config, surface, DatasetCache(make_loader({})))
        with pytest.raises(ValueError):
            SceneStateMachine([Scene(index=0, title=""), Scene(index=2, title="x")], ctx)

    def test_scene_without_render_is_ready(self, config, surface, make_loader):
        ctx = StoryContext(config, surface, DatasetCache(make_loader({})))
        machine = SceneStateMachine([Scene(index=0, title=""), Scene(index=1, title="Intro")], ctx)
        assert go(machine, 1) == SceneStatus.READY

    def test_unknown_phase(self):
        with pytest.raises(ValueError):
            line_scene("nope")
