"""Tests for SVG/HTML export, PNG snapshots and the CLI."""

import asyncio
import sys

from PIL import Image

from scrollstory import cli
from scrollstory.models import SceneStatus
from scrollstory.output.snapshot import render_png
from scrollstory.output.svg_export import capture_scenes, export_story_html, render_svg
from scrollstory.surface import MemorySurface


class TestRenderSvg:
    def test_escapes_text(self):
        s = MemorySurface(200, 100)
        s.create_node("text", text="<b>&</b>", x=10, y=20)
        svg = render_svg(s)
        assert svg.startswith("<svg")
        assert "&lt;b&gt;&amp;&lt;/b&gt;" in svg
        assert 'width="200"' in svg

    def test_multiline_text_uses_tspans(self):
        s = MemorySurface(200, 100)
        s.create_node("text", lines=["one", "two"], x=5)
        svg = render_svg(s)
        assert svg.count("<tspan") == 2

    def test_axis_ticks(self):
        s = MemorySurface(200, 100)
        s.create_node("axis", orient="left", range=(90, 10), ticks=[(90, "$0"), (10, "$100")])
        svg = render_svg(s)
        assert svg.count('class="tick"') == 2
        assert "$100" in svg


class TestStoryExport:
    def test_capture_every_scene(self, config, loader):
        scenes = asyncio.run(capture_scenes(config, loader))
        assert [s.index for s in scenes] == list(range(1, 8))
        assert all(s.status == SceneStatus.READY for s in scenes)
        assert all("<path" in s.svg for s in scenes)

    def test_html_written(self, config, loader, tmp_path):
        out = export_story_html(config, tmp_path / "out" / "story.html", loader=loader)
        html = out.read_text()
        assert html.startswith("<!DOCTYPE html>")
        assert html.count('<section class="scene"') == 7
        assert "The Crash" in html
        assert "IntersectionObserver" in html

    def test_failed_scene_is_flagged(self, config, story_datasets, make_loader, tmp_path):
        loader = make_loader(story_datasets, fail={"SPY"})
        html = export_story_html(config, tmp_path / "story.html", loader=loader).read_text()
        assert html.count('data-failed="true"') == 5


class TestSnapshot:
    def test_png_mid_animation(self, machine, surface, config, tmp_path):
        asyncio.run(machine.go_to_scene(1))
        surface.advance(1000)
        out = render_png(surface, tmp_path / "scene-1.png")
        with Image.open(out) as img:
            assert img.size == (config.canvas.width, config.canvas.height)
            # Some slice has been drawn over the white background
            assert img.convert("RGB").getextrema() != ((255, 255), (255, 255), (255, 255))

    def test_png_line_chart(self, machine, surface, tmp_path):
        asyncio.run(machine.go_to_scene(4))
        surface.settle()
        out = render_png(surface, tmp_path / "scene-4.png")
        assert out.exists()


class TestCli:
    def test_scenes_listing(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["scrollstory", "scenes"])
        cli.main()
        out = capsys.readouterr().out
        assert "1: A New Generation of Retail Investors [pie]" in out
        assert "7: Explore for Yourself [explore]" in out
