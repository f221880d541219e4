"""CLI entry point for the scrollstory presenter."""

import argparse
import asyncio
import logging
from pathlib import Path

from scrollstory.config import Config, load_config
from scrollstory.output.snapshot import render_png
from scrollstory.output.svg_export import export_story_html
from scrollstory.story import build_scenes, build_story
from scrollstory.surface import MemorySurface

logger = logging.getLogger(__name__)


async def _play_to(config: Config, scene: int, ms: float | None) -> MemorySurface:
    """Walk the story up to ``scene`` the way a reader would, then run the clock."""
    surface = MemorySurface(config.canvas.width, config.canvas.height)
    machine = build_story(config, surface=surface)
    for n in range(1, scene):
        await machine.go_to_scene(n)
        surface.settle()
    status = await machine.go_to_scene(scene)
    logger.info("Scene %d status: %s", scene, status.value)
    if ms is None:
        surface.settle()
    else:
        surface.advance(ms)
    return surface


def main() -> None:
    parser = argparse.ArgumentParser(description="Scrollstory presenter")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command")

    # scenes command
    scenes_parser = sub.add_parser("scenes", help="List the story's scenes")
    scenes_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    # export command
    export_parser = sub.add_parser("export", help="Write the story as a self-contained HTML page")
    export_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    export_parser.add_argument(
        "--output", type=str, default=None,
        help="Output file (default: <output_dir>/story.html)",
    )

    # snapshot command
    snapshot_parser = sub.add_parser("snapshot", help="Render one scene to PNG")
    snapshot_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    snapshot_parser.add_argument("--scene", type=int, required=True, help="Scene number (1-based)")
    snapshot_parser.add_argument(
        "--ms", type=float, default=None,
        help="Milliseconds of animation to run after entering the scene (default: until settled)",
    )
    snapshot_parser.add_argument(
        "--output", type=str, default=None,
        help="Output file (default: <output_dir>/scene-<n>.png)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(Path(args.config) if args.config else None)

    if args.command == "scenes":
        for scene in build_scenes()[1:]:
            chart = scene.chart_id or "-"
            print(f"  {scene.index}: {scene.title} [{chart}]")

    elif args.command == "export":
        output = Path(args.output) if args.output else config.resolved_output_dir / "story.html"
        path = export_story_html(config, output)
        print(f"Output: {path}")

    elif args.command == "snapshot":
        last = len(build_scenes()) - 1
        if not 1 <= args.scene <= last:
            parser.error(f"--scene must be between 1 and {last}")
        output = (
            Path(args.output) if args.output
            else config.resolved_output_dir / f"scene-{args.scene}.png"
        )
        surface = asyncio.run(_play_to(config, args.scene, args.ms))
        path = render_png(surface, output)
        print(f"Output: {path}")

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
