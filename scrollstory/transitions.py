"""Transition coordinator: entrance, rescale, reposition and axis animations.

Every animated node carries a state tag (idle / entering / rescaling) and the
attribute values it will hold once its current animation completes. Any new
request on a non-idle node first interrupts the running animation and snaps
the node to that end state, so a new animation always starts from a
completed geometry and stale timers never act on overwritten nodes.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from scrollstory.config import TimingConfig
from scrollstory.models import AnimationState, DataRow
from scrollstory.paths import line_path, translate
from scrollstory.scales import LinearScale, TimeScale
from scrollstory.surface import Easing, Interpolator, RenderSurface, ease_cubic, interpolate

logger = logging.getLogger(__name__)

ScalePair = tuple[TimeScale, LinearScale]


@dataclass
class AnimatedElement:
    node_id: str
    state: AnimationState = AnimationState.IDLE
    end_state: dict[str, Any] = field(default_factory=dict)
    handles: set[int] = field(default_factory=set)


class TransitionChain:
    """Additive delay cursor for animations that must run one after another."""

    def __init__(self, start: float = 0) -> None:
        self.cursor = start

    def add(self, duration: float) -> float:
        """Reserve ``duration`` ms and return the delay at which it starts."""
        delay = self.cursor
        self.cursor += duration
        return delay


class TransitionCoordinator:
    """Sole owner of animated geometry on a surface."""

    def __init__(self, surface: RenderSurface, timing: TimingConfig) -> None:
        self.surface = surface
        self.timing = timing
        self._elements: dict[str, AnimatedElement] = {}

    def state_of(self, node_id: str) -> AnimationState:
        element = self._elements.get(node_id)
        return element.state if element else AnimationState.IDLE

    def _element(self, node_id: str) -> AnimatedElement:
        if node_id not in self._elements:
            self._elements[node_id] = AnimatedElement(node_id)
        return self._elements[node_id]

    # --- Interrupt-and-snap ---

    def snap(self, node_id: str) -> bool:
        """Force a node to the end state of its in-flight animation.

        Returns True if something was interrupted.
        """
        element = self._elements.get(node_id)
        if element is None or element.state == AnimationState.IDLE:
            return False
        if self.surface.exists(node_id):
            self.surface.interrupt(node_id)
            for name, value in element.end_state.items():
                self.surface.set_attr(node_id, name, value)
        logger.debug("Snapped %s out of %s", node_id, element.state.value)
        element.state = AnimationState.IDLE
        element.handles.clear()
        return True

    def forget(self, node_id: str) -> None:
        """Snap and drop a node that is about to be removed from the surface."""
        self.snap(node_id)
        self._elements.pop(node_id, None)

    def _finish(self, node_id: str, handle: int) -> None:
        element = self._elements.get(node_id)
        if element is None or handle not in element.handles:
            return  # stale timer from an interrupted animation
        element.handles.discard(handle)
        if not element.handles:
            element.state = AnimationState.IDLE

    # --- Primitives ---

    def tween(
        self,
        node_id: str,
        attr: str,
        interpolator: Interpolator,
        end_value: Any,
        *,
        duration: float,
        delay: float = 0,
        ease: Easing = ease_cubic,
        state: AnimationState = AnimationState.RESCALING,
        on_end: Callable[[], None] | None = None,
    ) -> int:
        """Run an arbitrary attribute tween under the interrupt rule."""
        self.snap(node_id)
        return self._schedule(
            node_id, attr, interpolator, end_value,
            duration=duration, delay=delay, ease=ease, state=state, on_end=on_end,
        )

    def _schedule(
        self,
        node_id: str,
        attr: str,
        interpolator: Interpolator,
        end_value: Any,
        *,
        duration: float,
        delay: float,
        ease: Easing,
        state: AnimationState,
        on_end: Callable[[], None] | None = None,
    ) -> int:
        element = self._element(node_id)
        element.state = state
        element.end_state[attr] = end_value
        handle_box: list[int] = []

        def done() -> None:
            self._finish(node_id, handle_box[0])
            if on_end is not None:
                on_end()

        handle = self.surface.animate(
            node_id, attr, interpolator,
            duration=duration, delay=delay, ease=ease, on_end=done,
        )
        handle_box.append(handle)
        element.handles.add(handle)
        logger.debug(
            "Scheduled %s.%s (%s) duration=%s delay=%s", node_id, attr, state.value, duration, delay,
        )
        return handle

    def animate_attr(
        self,
        node_id: str,
        attr: str,
        start: Any,
        end: Any,
        *,
        duration: float,
        delay: float = 0,
        ease: Easing = ease_cubic,
    ) -> int:
        """Interrupt, apply the start value, then animate to the end value."""
        self.snap(node_id)
        self.surface.set_attr(node_id, attr, start)
        return self._schedule(
            node_id, attr, interpolate(start, end), end,
            duration=duration, delay=delay, ease=ease, state=AnimationState.RESCALING,
        )

    def enter_path(
        self,
        node_id: str,
        *,
        duration: float,
        delay: float = 0,
        ease: Easing = ease_cubic,
    ) -> float | None:
        """Left-to-right stroke reveal of a freshly laid-out path.

        The path is hidden with a dash offset equal to its own measured
        length, which is then animated to zero. Returns the measured length,
        or None when the path has no geometry (nothing is animated).
        """
        self.snap(node_id)
        if not self.surface.get_attr(node_id, "d"):
            logger.debug("Skipping entrance of empty path %s", node_id)
            return None
        length = self.surface.measure_length(node_id)
        if length <= 0:
            logger.debug("Skipping entrance of zero-length path %s", node_id)
            return None
        self.surface.set_attr(node_id, "stroke-dasharray", length)
        self.surface.set_attr(node_id, "stroke-dashoffset", length)
        self._schedule(
            node_id, "stroke-dashoffset", interpolate(length, 0.0), 0.0,
            duration=duration, delay=delay, ease=ease, state=AnimationState.ENTERING,
        )
        return length

    def rescale_path(
        self,
        node_id: str,
        rows: Sequence[DataRow],
        from_scales: ScalePair,
        to_scales: ScalePair,
        *,
        duration: float,
        delay: float = 0,
        ease: Easing = ease_cubic,
    ) -> int | None:
        """Redraw a path from one scale pair to another.

        A path still entering or rescaling is snapped first (dash offset 0,
        geometry at its previous target) so no partial state is blended.
        """
        self.snap(node_id)
        # The entrance dash pattern was sized for the old geometry
        if self.surface.get_attr(node_id, "stroke-dasharray") is not None:
            self.surface.set_attr(node_id, "stroke-dasharray", None)
        if not rows:
            self.surface.set_attr(node_id, "d", "")
            return None
        start_d = line_path(rows, *from_scales)
        end_d = line_path(rows, *to_scales)
        self.surface.set_attr(node_id, "d", start_d)
        if start_d == end_d:
            return None
        return self._schedule(
            node_id, "d", interpolate(start_d, end_d), end_d,
            duration=duration, delay=delay, ease=ease, state=AnimationState.RESCALING,
        )

    def reposition(
        self,
        node_id: str,
        from_xy: tuple[float, float],
        to_xy: tuple[float, float],
        *,
        duration: float,
        delay: float = 0,
        ease: Easing = ease_cubic,
    ) -> int | None:
        """Move a translated node (annotation group) between two pixel positions."""
        start, end = translate(*from_xy), translate(*to_xy)
        if start == end:
            self.snap(node_id)
            self.surface.set_attr(node_id, "transform", end)
            return None
        return self.animate_attr(
            node_id, "transform", start, end, duration=duration, delay=delay, ease=ease,
        )

    def rescale_axis(
        self,
        node_id: str,
        from_scale: TimeScale | LinearScale | None,
        to_scale: TimeScale | LinearScale,
        tick_format: Callable[[Any], str],
        *,
        duration: float,
        delay: float = 0,
        tick_count: int = 8,
        ease: Easing = ease_cubic,
    ) -> int | None:
        """Redraw axis ticks for a new scale.

        Ticks of the new scale slide from where the old scale put them.
        """
        values = to_scale.ticks(tick_count)
        end_ticks = [(to_scale(v), tick_format(v)) for v in values]
        self.surface.set_attr(node_id, "domain", _domain_attr(to_scale))
        self.surface.set_attr(node_id, "range", to_scale.range)
        if from_scale is None or duration <= 0:
            self.snap(node_id)
            self.surface.set_attr(node_id, "ticks", end_ticks)
            return None
        start_ticks = [(from_scale(v), tick_format(v)) for v in values]
        return self.animate_attr(
            node_id, "ticks", start_ticks, end_ticks, duration=duration, delay=delay, ease=ease,
        )


def _domain_attr(scale: TimeScale | LinearScale) -> tuple:
    d0, d1 = scale.domain
    if isinstance(d0, date):
        return (d0.isoformat(), d1.isoformat())
    return (d0, d1)
