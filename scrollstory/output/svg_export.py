"""Serialize the in-memory scene graph to SVG, and the whole story to one HTML page."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from scrollstory.config import Config
from scrollstory.datasets import Loader
from scrollstory.models import SceneStatus
from scrollstory.story import build_story
from scrollstory.surface import MemorySurface

logger = logging.getLogger(__name__)

# Attributes the engine keeps for itself; never written out verbatim
_INTERNAL_ATTRS = {"text", "lines", "ticks", "domain", "range", "orient", "line-height", "data-chart"}

_TAGS = {"group": "g", "path": "path", "text": "text", "line": "line", "circle": "circle", "rect": "rect"}


def _esc(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        out = f"{value:.3f}".rstrip("0").rstrip(".")
        return "0" if out in ("-0", "") else out
    return str(value)


def _attrs(attrs: dict[str, Any]) -> str:
    parts = [
        f'{k}="{_esc(_fmt(v))}"'
        for k, v in attrs.items()
        if k not in _INTERNAL_ATTRS and v is not None and v != ""
    ]
    return (" " + " ".join(parts)) if parts else ""


def _axis_svg(surface: MemorySurface, node_id: str) -> list[str]:
    attrs = surface.node(node_id).attrs
    orient = attrs.get("orient", "bottom")
    r0, r1 = attrs.get("range", (0, 0))
    out = [f'<g class="axis axis-{orient}"{_attrs({"transform": attrs.get("transform")})}>']
    if orient == "bottom":
        out.append(f'<path class="domain" stroke="currentColor" d="M{_fmt(float(r0))},0H{_fmt(float(r1))}"/>')
    else:
        out.append(f'<path class="domain" stroke="currentColor" d="M0,{_fmt(float(r0))}V{_fmt(float(r1))}"/>')
    for pos, label in attrs.get("ticks", []):
        if orient == "bottom":
            out.append(
                f'<g class="tick" transform="translate({_fmt(float(pos))},0)">'
                f'<line stroke="currentColor" y2="6"/>'
                f'<text y="9" dy="0.71em" text-anchor="middle">{_esc(label)}</text></g>'
            )
        else:
            out.append(
                f'<g class="tick" transform="translate(0,{_fmt(float(pos))})">'
                f'<line stroke="currentColor" x2="-6"/>'
                f'<text x="-9" dy="0.32em" text-anchor="end">{_esc(label)}</text></g>'
            )
    for child in surface.children(node_id):
        out.extend(_node_svg(surface, child))
    out.append("</g>")
    return out


def _node_svg(surface: MemorySurface, node_id: str) -> list[str]:
    node = surface.node(node_id)
    if node.kind == "axis":
        return _axis_svg(surface, node_id)
    tag = _TAGS.get(node.kind, "g")
    if node.kind == "text":
        lines = node.attrs.get("lines")
        if lines:
            x = node.attrs.get("x", 0)
            step = node.attrs.get("line-height", 16)
            spans = "".join(
                f'<tspan x="{_fmt(x)}" dy="{_fmt(0 if i == 0 else step)}">{_esc(line)}</tspan>'
                for i, line in enumerate(lines)
            )
            return [f"<text{_attrs(node.attrs)}>{spans}</text>"]
        return [f"<text{_attrs(node.attrs)}>{_esc(str(node.attrs.get('text', '')))}</text>"]
    if not node.children:
        return [f"<{tag}{_attrs(node.attrs)}/>"]
    out = [f"<{tag}{_attrs(node.attrs)}>"]
    for child in node.children:
        out.extend(_node_svg(surface, child))
    out.append(f"</{tag}>")
    return out


def render_svg(surface: MemorySurface, root: str | None = None) -> str:
    """SVG markup of the scene graph under ``root`` as it looks right now."""
    top = surface.node(MemorySurface.ROOT)
    width, height = top.attrs.get("width", 0), top.attrs.get("height", 0)
    body: list[str] = []
    for child in ([root] if root else surface.children(MemorySurface.ROOT)):
        body.extend(_node_svg(surface, child))
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{_fmt(width)}" height="{_fmt(height)}" '
        f'viewBox="0 0 {_fmt(width)} {_fmt(height)}" font-family="sans-serif" font-size="12">'
        + "".join(body)
        + "</svg>"
    )


# --- Story export ---


@dataclass
class CapturedScene:
    index: int
    title: str
    body: list[str]
    status: SceneStatus
    svg: str


async def capture_scenes(config: Config, loader: Loader | None = None) -> list[CapturedScene]:
    """Visit every scene in order and capture its settled end state."""
    surface = MemorySurface(config.canvas.width, config.canvas.height)
    machine = build_story(config, surface=surface, loader=loader)
    captured: list[CapturedScene] = []
    for n in range(1, machine.last_index + 1):
        status = await machine.go_to_scene(n)
        surface.settle()
        scene = machine.scenes[n]
        captured.append(CapturedScene(
            index=n, title=scene.title, body=list(scene.body), status=status,
            svg=render_svg(surface, machine.context.canvas),
        ))
        logger.info("Captured scene %d (%s)", n, status.value)
    return captured


def export_story_html(config: Config, output_path: Path, loader: Loader | None = None) -> Path:
    """Write a self-contained scrollytelling page with every scene's final frame."""
    scenes = asyncio.run(capture_scenes(config, loader))
    html = _render_html(scenes, generated_at=datetime.now().strftime("%Y-%m-%d %H:%M"))
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(html, encoding="utf-8")
    logger.info("Output: %s", output_path)
    return output_path


def _render_html(scenes: list[CapturedScene], *, generated_at: str) -> str:
    sections = []
    for s in scenes:
        # Scene prose is static markup authored with the story
        paragraphs = "".join(f"<p>{p}</p>" for p in s.body)
        failed = ' data-failed="true"' if s.status == SceneStatus.FAILED else ""
        sections.append(f"""
    <section class="scene" data-scene="{s.index}"{failed}>
      <div class="scene-number">Scene {s.index}</div>
      <h2>{_esc(s.title)}</h2>
      {paragraphs}
    </section>""")
    figures = "".join(
        f'<figure class="frame" data-scene="{s.index}">{s.svg}</figure>' for s in scenes
    )
    nav = "".join(
        f'<a href="#" class="nav-btn" data-target="{s.index}">{s.index}</a>' for s in scenes
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Scrollstory</title>
<style>
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
         background: #0d1117; color: #c9d1d9; display: flex; }}
  .text {{ width: 36%; padding: 40px 32px 60vh; }}
  .scene {{ min-height: 80vh; opacity: 0.35; transition: opacity 0.4s; }}
  .scene.active {{ opacity: 1; }}
  .scene[data-failed] h2::after {{ content: " (data unavailable)"; color: #f85149; font-size: 14px; }}
  .scene-number {{ color: #8b949e; font-size: 12px; text-transform: uppercase; letter-spacing: 1px; }}
  .scene h2 {{ color: #58a6ff; margin: 6px 0 14px; }}
  .scene p {{ line-height: 1.6; margin-bottom: 12px; }}
  .stage {{ position: sticky; top: 0; height: 100vh; width: 64%; display: flex;
            flex-direction: column; align-items: center; justify-content: center; }}
  .frame {{ display: none; background: #f6f8fa; color: #24292f; border-radius: 6px; }}
  .frame.active {{ display: block; }}
  .frame svg {{ max-width: 60vw; height: auto; }}
  .nav {{ display: flex; gap: 6px; margin-top: 12px; }}
  .nav-btn {{ color: #8b949e; border: 1px solid #30363d; border-radius: 4px; padding: 2px 10px;
              text-decoration: none; }}
  .nav-btn.current {{ color: #0d1117; background: #58a6ff; border-color: #58a6ff; }}
  .footer {{ color: #8b949e; font-size: 11px; margin-top: 8px; }}
</style>
</head>
<body>
<div class="text">
{''.join(sections)}
</div>
<div class="stage">
  {figures}
  <div class="nav">{nav}</div>
  <div class="footer">Generated {generated_at}</div>
</div>
<script>
const sections = document.querySelectorAll('.scene');
function activate(n) {{
  document.querySelectorAll('.scene, .frame, .nav-btn').forEach(el => {{
    const k = el.dataset.scene || el.dataset.target;
    el.classList.toggle(el.classList.contains('nav-btn') ? 'current' : 'active', k === String(n));
  }});
}}
const observer = new IntersectionObserver(entries => {{
  entries.forEach(e => {{ if (e.isIntersecting) activate(e.target.dataset.scene); }});
}}, {{ threshold: 0.5 }});
sections.forEach(s => observer.observe(s));
document.querySelectorAll('.nav-btn').forEach(btn => btn.addEventListener('click', ev => {{
  ev.preventDefault();
  document.querySelector(`.scene[data-scene="${{btn.dataset.target}}"]`).scrollIntoView({{ behavior: 'smooth' }});
}}));
activate(1);
</script>
</body>
</html>"""
