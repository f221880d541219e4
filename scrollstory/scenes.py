"""Scene state machine and the story context it owns.

The state machine is the only writer of ``current`` / ``viewed``. Chart
geometry is only changed through the ``TransitionCoordinator`` held by the
context. Navigation is never queued behind animations: interrupt-and-snap
makes starting a new scene safe at any point of the previous one.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from scrollstory.charts import Chart
from scrollstory.config import Config
from scrollstory.datasets import DatasetCache, DatasetFetchError
from scrollstory.models import NavControl, NavState, NavStrip, SceneStatus, TextRegion, TooltipUpdate
from scrollstory.paths import translate
from scrollstory.surface import RenderSurface
from scrollstory.transitions import TransitionCoordinator

logger = logging.getLogger(__name__)

RenderRoutine = Callable[["StoryContext", int], Awaitable[None]]


@dataclass
class Scene:
    index: int
    title: str
    body: list[str] = field(default_factory=list)
    render: RenderRoutine | None = None
    chart_id: str | None = None


class StoryContext:
    """Process-wide presenter state handed to render routines and pointer handlers."""

    def __init__(
        self,
        config: Config,
        surface: RenderSurface,
        datasets: DatasetCache,
        canvas: str | None = None,
    ) -> None:
        self.config = config
        self.surface = surface
        self.datasets = datasets
        self.coordinator = TransitionCoordinator(surface, config.timing)
        self.canvas = canvas or surface.create_node(
            "group", None,
            **{"class": "canvas", "width": config.canvas.width, "height": config.canvas.height},
        )
        self.charts: dict[str, Chart] = {}
        self.displayed_chart: str | None = None
        self.current_scene = 0
        self._notice: str | None = None

    def is_current(self, scene_index: int) -> bool:
        return self.current_scene == scene_index

    # --- Charts ---

    def chart(self, chart_id: str) -> Chart:
        if chart_id not in self.charts:
            raise ValueError(f"Unknown chart: {chart_id}")
        return self.charts[chart_id]

    def get_or_create(self, chart_id: str, factory: Callable[[], Chart]) -> Chart:
        if chart_id not in self.charts:
            self.charts[chart_id] = factory()
            logger.debug("Created chart %s", chart_id)
        return self.charts[chart_id]

    def display(self, chart_id: str) -> Chart:
        """Make ``chart_id`` the displayed chart, tearing down any other one."""
        chart = self.chart(chart_id)
        if self.displayed_chart is not None and self.displayed_chart != chart_id:
            self.release_chart()
        self.displayed_chart = chart_id
        return chart

    def release_chart(self) -> None:
        if self.displayed_chart is None:
            return
        self.charts[self.displayed_chart].unmount()
        self.displayed_chart = None

    def bind_pointer(self, chart: Chart) -> None:
        if chart.overlay is None:
            return
        chart_id = chart.chart_id
        self.surface.bind_pointer(
            chart.overlay,
            on_move=lambda x, y: self.on_pointer_move(chart_id, x),
            on_leave=lambda: self.on_pointer_leave(chart_id),
        )

    # --- Pointer dispatch ---

    def on_pointer_move(self, chart_id: str, pixel_x: float) -> TooltipUpdate | None:
        chart = self.chart(chart_id)
        update = chart.hit_test(pixel_x)
        if update is None:
            chart.hide_tooltip()
        else:
            chart.show_tooltip(update)
        return update

    def on_pointer_leave(self, chart_id: str) -> None:
        self.chart(chart_id).hide_tooltip()

    # --- Notices ---

    def show_notice(self, message: str) -> None:
        self.clear_notice()
        self._notice = self.surface.create_node(
            "text", self.canvas, text=message,
            **{"class": "notice notice-error", "text-anchor": "middle",
               "transform": translate(self.config.canvas.width / 2, self.config.canvas.height / 2)},
        )

    def clear_notice(self) -> None:
        if self._notice is not None and self.surface.exists(self._notice):
            self.surface.remove_node(self._notice)
        self._notice = None


class SceneStateMachine:
    """Tracks the current scene, the viewed set and the navigation strip."""

    def __init__(self, scenes: Sequence[Scene], context: StoryContext) -> None:
        if len(scenes) < 2:
            raise ValueError("A story needs the placeholder scene 0 plus at least one scene")
        for i, scene in enumerate(scenes):
            if scene.index != i:
                raise ValueError(f"Scene at position {i} has index {scene.index}")
        self.scenes = list(scenes)
        self.context = context
        self.current = 0
        self.previous = 0
        self.viewed = [False] * len(self.scenes)
        self.status: dict[int, SceneStatus] = {}
        self.text = TextRegion()
        self.nav = self.navigation()

    @property
    def last_index(self) -> int:
        return len(self.scenes) - 1

    def interactive(self, n: int) -> bool:
        return self.status.get(n) == SceneStatus.READY

    def navigation(self) -> NavStrip:
        cur, last = self.current, self.last_index
        back_ok = cur > 1
        # current == 0 is the unvisited placeholder, before any scene is shown
        forward_ok = 0 < cur < last
        numbered = []
        for i in range(1, last + 1):
            if i == cur:
                state = NavState.CURRENT
            elif self.viewed[i]:
                state = NavState.ENABLED
            else:
                state = NavState.DISABLED
            numbered.append(NavControl(label=str(i), target=i, state=state))
        return NavStrip(
            back=NavControl(
                label="Back",
                target=cur - 1 if back_ok else None,
                state=NavState.ENABLED if back_ok else NavState.DISABLED,
            ),
            forward=NavControl(
                label="Next",
                target=cur + 1 if forward_ok else None,
                state=NavState.ENABLED if forward_ok else NavState.DISABLED,
            ),
            numbered=numbered,
        )

    async def go_to_scene(self, n: int) -> SceneStatus:
        """Make scene ``n`` current and run its render routine.

        Raises:
            ValueError: If ``n`` is not a scene index (1-based).
        """
        if not 1 <= n <= self.last_index:
            raise ValueError(f"Invalid scene index {n} (1..{self.last_index})")

        scene = self.scenes[n]
        self.previous = self.current
        self.current = n
        self.viewed[n] = True
        self.text = TextRegion(title=scene.title, body=list(scene.body))
        self.nav = self.navigation()

        ctx = self.context
        ctx.current_scene = n
        ctx.clear_notice()
        if ctx.displayed_chart is not None and ctx.displayed_chart != scene.chart_id:
            ctx.release_chart()
        logger.info("Scene %d: %s (from %d)", n, scene.title, self.previous)

        self.status[n] = SceneStatus.PENDING
        if scene.render is None:
            self.status[n] = SceneStatus.READY
            return self.status[n]
        try:
            await scene.render(ctx, n)
        except DatasetFetchError as e:
            logger.exception("Scene %d could not load its data", n)
            self.status[n] = SceneStatus.FAILED
            if ctx.is_current(n):
                ctx.release_chart()
                ctx.show_notice(f"This chart is unavailable: {e.reason}")
            return self.status[n]

        if ctx.is_current(n):
            self.status[n] = SceneStatus.READY
        return self.status[n]

    async def click(self, control: NavControl) -> bool:
        """Follow a navigation control. Disabled and current controls do nothing."""
        if control.state != NavState.ENABLED or control.target is None:
            return False
        await self.go_to_scene(control.target)
        return True

    async def forward(self) -> bool:
        return await self.click(self.nav.forward)

    async def back(self) -> bool:
        return await self.click(self.nav.back)
