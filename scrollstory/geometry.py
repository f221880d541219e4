"""Anchor points for chart titles and axis labels, computed from chart margins."""

from dataclasses import dataclass

from scrollstory.config import CanvasConfig, MarginsConfig


@dataclass(frozen=True)
class ChartGeometry:
    width: float
    height: float
    margin_top: float = 0
    margin_right: float = 0
    margin_bottom: float = 0
    margin_left: float = 0

    @classmethod
    def from_config(cls, canvas: CanvasConfig, margins: MarginsConfig | None = None) -> "ChartGeometry":
        if margins is None:
            return cls(width=canvas.width, height=canvas.height)
        return cls(
            width=canvas.width,
            height=canvas.height,
            margin_top=margins.top,
            margin_right=margins.right,
            margin_bottom=margins.bottom,
            margin_left=margins.left,
        )

    @property
    def plot_width(self) -> float:
        return self.width - self.margin_left - self.margin_right

    @property
    def plot_height(self) -> float:
        return self.height - self.margin_top - self.margin_bottom

    @property
    def x_range(self) -> tuple[float, float]:
        return (self.margin_left, self.width - self.margin_right)

    @property
    def y_range(self) -> tuple[float, float]:
        """Pixel range for value axes; larger values sit higher on screen."""
        return (self.height - self.margin_bottom, self.margin_top)


def axis_x_center(g: ChartGeometry) -> float:
    """Horizontal centre of the plot area, where the x axis label goes."""
    return (g.plot_width / 2) + g.margin_left


def axis_y_center(g: ChartGeometry) -> float:
    """Vertical centre of the plot area, where the y axis label goes."""
    return (g.plot_height / 2) + g.margin_top


def title_center(g: ChartGeometry) -> float:
    return g.width / 2


def color(i: int) -> str:
    """Deterministic colour for position i; neighbouring positions stay distinct."""
    return f"hsl({((i * 139) + 210) % 360}, 100%, 75%)"
