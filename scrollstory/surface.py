"""Rendering-surface interface plus an in-memory implementation.

The engine never draws anything itself. It talks to a retained-mode
``RenderSurface`` that owns a scene graph of nodes with attributes, an
animation scheduler (duration, delay, easing, attribute interpolation) with
an interrupt operation, and pointer event delivery.

``MemorySurface`` keeps the scene graph in dictionaries and runs animations
against a virtual millisecond clock advanced explicitly with ``advance``.
It backs the exporters and the tests.
"""

import abc
import itertools
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from scrollstory.paths import path_length

logger = logging.getLogger(__name__)

Easing = Callable[[float], float]
Interpolator = Callable[[float], Any]
PointerHandler = Callable[[float, float], None]


# --- Easing ---


def ease_linear(t: float) -> float:
    return t


def ease_cubic(t: float) -> float:
    """Symmetric cubic ease-in-out."""
    t *= 2
    if t <= 1:
        return t * t * t / 2
    t -= 2
    return (t * t * t + 2) / 2


# --- Interpolation ---

_NUM_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def _interpolate_string(a: str, b: str) -> Interpolator:
    """Interpolate numbers embedded in b from the matching numbers in a.

    Text between numbers is taken from b. Numbers in b with no counterpart
    in a are held constant.
    """
    a_nums = [float(m.group()) for m in _NUM_RE.finditer(a)]
    pieces: list[str | tuple[float, float]] = []
    last = 0
    for i, m in enumerate(_NUM_RE.finditer(b)):
        pieces.append(b[last:m.start()])
        end = float(m.group())
        start = a_nums[i] if i < len(a_nums) else end
        # Unchanged numbers keep their original spelling ("1,000" stays intact)
        pieces.append(m.group() if start == end else (start, end))
        last = m.end()
    pieces.append(b[last:])

    def at(t: float) -> str:
        if t >= 1:
            return b
        out = []
        for p in pieces:
            if isinstance(p, tuple):
                v = p[0] + (p[1] - p[0]) * t
                out.append(f"{v:.3f}".rstrip("0").rstrip("."))
            else:
                out.append(p)
        return "".join(out)

    return at


def interpolate(a: Any, b: Any) -> Interpolator:
    """Interpolator from a to b for numbers, strings and (nested) sequences."""
    if isinstance(b, bool) or b is None:
        return lambda t: b
    if isinstance(b, (int, float)) and isinstance(a, (int, float)) and not isinstance(a, bool):
        return lambda t: a + (b - a) * t
    if isinstance(b, str):
        return _interpolate_string(a if isinstance(a, str) else "", b)
    if isinstance(b, (list, tuple)) and isinstance(a, (list, tuple)):
        parts = [
            interpolate(a[i], v) if i < len(a) else (lambda t, v=v: v)
            for i, v in enumerate(b)
        ]
        kind = type(b)
        return lambda t: b if t >= 1 else kind(p(t) for p in parts)
    return lambda t: b


# --- Interface ---


class RenderSurface(abc.ABC):
    """Retained-mode scene graph the engine draws into."""

    @abc.abstractmethod
    def create_node(self, kind: str, parent: str | None = None, **attrs: Any) -> str:
        """Create a node under ``parent`` (the root when None). Returns its id."""
        ...

    @abc.abstractmethod
    def remove_node(self, node_id: str) -> None:
        """Remove a node and its subtree, halting any animations on them."""
        ...

    @abc.abstractmethod
    def exists(self, node_id: str) -> bool:
        ...

    @abc.abstractmethod
    def set_attr(self, node_id: str, name: str, value: Any) -> None:
        ...

    @abc.abstractmethod
    def get_attr(self, node_id: str, name: str, default: Any = None) -> Any:
        ...

    @abc.abstractmethod
    def measure_length(self, node_id: str) -> float:
        """Total rendered length of a path node with its current geometry."""
        ...

    @abc.abstractmethod
    def animate(
        self,
        node_id: str,
        attr: str,
        interpolator: Interpolator,
        *,
        duration: float,
        delay: float = 0,
        ease: Easing = ease_cubic,
        on_end: Callable[[], None] | None = None,
    ) -> int:
        """Schedule an attribute animation. Returns a handle."""
        ...

    @abc.abstractmethod
    def interrupt(self, node_id: str) -> None:
        """Halt every animation on a node, leaving attributes at their current values.

        Interrupted animations never fire ``on_end``.
        """
        ...

    @abc.abstractmethod
    def bind_pointer(
        self,
        node_id: str,
        *,
        on_move: PointerHandler,
        on_leave: Callable[[], None],
    ) -> None:
        """Deliver pointer moves (local x, y) and exits for a node."""
        ...


# --- In-memory implementation ---


@dataclass
class Node:
    id: str
    kind: str
    parent: str | None
    attrs: dict[str, Any] = field(default_factory=dict)
    children: list[str] = field(default_factory=list)


@dataclass
class Animation:
    handle: int
    node_id: str
    attr: str
    interpolator: Interpolator
    start: float
    duration: float
    ease: Easing
    on_end: Callable[[], None] | None = None
    done: bool = False

    def progress(self, now: float) -> float:
        if self.duration <= 0:
            return 1.0
        return min(1.0, max(0.0, (now - self.start) / self.duration))


class MemorySurface(RenderSurface):
    """Scene graph in memory, animated against a virtual clock."""

    ROOT = "root"

    def __init__(self, width: float = 0, height: float = 0) -> None:
        self.now = 0.0
        self.nodes: dict[str, Node] = {
            self.ROOT: Node(id=self.ROOT, kind="svg", parent=None, attrs={"width": width, "height": height}),
        }
        self._animations: list[Animation] = []
        self._pointer: dict[str, tuple[PointerHandler, Callable[[], None]]] = {}
        self._ids = itertools.count(1)
        self._handles = itertools.count(1)

    # --- Nodes ---

    def create_node(self, kind: str, parent: str | None = None, **attrs: Any) -> str:
        parent = parent or self.ROOT
        if parent not in self.nodes:
            raise ValueError(f"Unknown parent node: {parent}")
        node_id = f"{kind}-{next(self._ids)}"
        self.nodes[node_id] = Node(id=node_id, kind=kind, parent=parent, attrs=dict(attrs))
        self.nodes[parent].children.append(node_id)
        return node_id

    def remove_node(self, node_id: str) -> None:
        node = self.nodes.get(node_id)
        if node is None or node_id == self.ROOT:
            return
        for child in list(node.children):
            self.remove_node(child)
        self._animations = [a for a in self._animations if a.node_id != node_id]
        self._pointer.pop(node_id, None)
        if node.parent in self.nodes:
            self.nodes[node.parent].children.remove(node_id)
        del self.nodes[node_id]

    def exists(self, node_id: str) -> bool:
        return node_id in self.nodes

    def node(self, node_id: str) -> Node:
        return self.nodes[node_id]

    def children(self, node_id: str, kind: str | None = None) -> list[str]:
        return [c for c in self.nodes[node_id].children if kind is None or self.nodes[c].kind == kind]

    def set_attr(self, node_id: str, name: str, value: Any) -> None:
        self.nodes[node_id].attrs[name] = value

    def get_attr(self, node_id: str, name: str, default: Any = None) -> Any:
        return self.nodes[node_id].attrs.get(name, default)

    def measure_length(self, node_id: str) -> float:
        return path_length(self.get_attr(node_id, "d", ""))

    # --- Animation ---

    def animate(
        self,
        node_id: str,
        attr: str,
        interpolator: Interpolator,
        *,
        duration: float,
        delay: float = 0,
        ease: Easing = ease_cubic,
        on_end: Callable[[], None] | None = None,
    ) -> int:
        if node_id not in self.nodes:
            raise ValueError(f"Unknown node: {node_id}")
        anim = Animation(
            handle=next(self._handles),
            node_id=node_id,
            attr=attr,
            interpolator=interpolator,
            start=self.now + delay,
            duration=duration,
            ease=ease,
            on_end=on_end,
        )
        self._animations.append(anim)
        return anim.handle

    def interrupt(self, node_id: str) -> None:
        for anim in self._animations:
            if anim.node_id != node_id or anim.done:
                continue
            if anim.start <= self.now:
                self.set_attr(node_id, anim.attr, anim.interpolator(anim.ease(anim.progress(self.now))))
            anim.done = True
        self._animations = [a for a in self._animations if not a.done]

    def active_animations(self, node_id: str | None = None) -> list[Animation]:
        return [a for a in self._animations if not a.done and (node_id is None or a.node_id == node_id)]

    def advance(self, ms: float) -> None:
        """Move the clock forward and apply every running animation."""
        self.now += ms
        for anim in list(self._animations):
            if anim.done or anim.start > self.now or anim.node_id not in self.nodes:
                continue
            t = anim.progress(self.now)
            self.set_attr(anim.node_id, anim.attr, anim.interpolator(anim.ease(t)))
            if t >= 1:
                anim.done = True
                if anim.on_end is not None:
                    anim.on_end()
        self._animations = [a for a in self._animations if not a.done]

    def settle(self, max_rounds: int = 100) -> None:
        """Run the clock until no animation is left (chained ones included)."""
        for _ in range(max_rounds):
            if not self._animations:
                return
            horizon = max(a.start + a.duration for a in self._animations)
            self.advance(max(horizon - self.now, 0))
        logger.warning("Animations still pending after %d rounds", max_rounds)

    # --- Pointer ---

    def bind_pointer(
        self,
        node_id: str,
        *,
        on_move: PointerHandler,
        on_leave: Callable[[], None],
    ) -> None:
        self._pointer[node_id] = (on_move, on_leave)

    def pointer_move(self, node_id: str, x: float, y: float = 0) -> None:
        if node_id in self._pointer:
            self._pointer[node_id][0](x, y)

    def pointer_leave(self, node_id: str) -> None:
        if node_id in self._pointer:
            self._pointer[node_id][1]()
