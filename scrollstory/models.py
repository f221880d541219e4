"""Pydantic models for the scrollstory presenter."""

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChartKind(str, Enum):
    PIE = "pie"
    LINE = "line"
    EXPLORE = "explore"


class Placement(str, Enum):
    TOPLEFT = "topleft"
    TOPRIGHT = "topright"
    BOTTOMLEFT = "bottomleft"
    BOTTOMRIGHT = "bottomright"

    @property
    def is_top(self) -> bool:
        return self in (Placement.TOPLEFT, Placement.TOPRIGHT)

    @property
    def is_left(self) -> bool:
        return self in (Placement.TOPLEFT, Placement.BOTTOMLEFT)


class AnimationState(str, Enum):
    IDLE = "idle"
    ENTERING = "entering"
    RESCALING = "rescaling"


class NavState(str, Enum):
    CURRENT = "current"
    ENABLED = "enabled"
    DISABLED = "disabled"


class SceneStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


# --- Dataset rows (what comes out of the loader) ---


class DataRow(BaseModel):
    """One time sample of a price series. Unknown CSV columns are kept as extras."""
    model_config = ConfigDict(frozen=True, extra="allow")

    Date: date
    Close: float
    Ticker: str = ""


class CompanyRow(BaseModel):
    """Static lookup row for the proportion chart."""
    model_config = ConfigDict(frozen=True, extra="allow")

    CompanyName: str
    Ticker: str
    LogoFile: str = ""
    RetailNetFlowMillions: float


# --- Chart content ---


class Annotation(BaseModel):
    """Pointer annotation anchored at a domain point (date, value)."""
    model_config = ConfigDict(frozen=True)

    anchor_x: date
    anchor_y: float
    text_lines: list[str]
    offset_x: float = 40
    offset_y: float = 40
    placement: Placement = Placement.TOPRIGHT


# --- UI state ---


class NavControl(BaseModel):
    label: str
    target: int | None = None
    state: NavState = NavState.DISABLED


class NavStrip(BaseModel):
    back: NavControl
    forward: NavControl
    numbered: list[NavControl] = Field(default_factory=list)


class TextRegion(BaseModel):
    title: str = ""
    body: list[str] = Field(default_factory=list)


class TooltipUpdate(BaseModel):
    """Result of hit-testing a pointer position, ready to be applied to a surface."""
    model_config = ConfigDict(frozen=True)

    chart_id: str
    index: int
    lines: list[str]
    panel_x: float
    panel_y: float
    rule_x: float
    rule_y1: float
    rule_y2: float


class SeriesToggle(BaseModel):
    key: str
    label: str
    checked: bool


class ExplorationControls(BaseModel):
    """Checkbox and date-range selector state for exploration mode."""
    toggles: list[SeriesToggle] = Field(default_factory=list)
    date_options: list[date] = Field(default_factory=list)
    range_start: date | None = None
    range_end: date | None = None
