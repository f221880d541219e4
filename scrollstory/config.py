"""Configuration loading for the scrollstory presenter."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class CanvasConfig(BaseModel):
    width: int = 1000
    height: int = 800


class TimingConfig(BaseModel):
    scene_transition_ms: int = 500
    chart_transition_ms: int = 2000
    entrance_ms: int = 2500  # first reveal of a line chart
    segment_entrance_ms: int = 1500  # reveal of each later phase segment
    annotation_fade_ms: int = 300


class MarginsConfig(BaseModel):
    top: int = 50
    right: int = 20
    bottom: int = 50
    left: int = 80


class LineChartConfig(BaseModel):
    margins: MarginsConfig = Field(default_factory=MarginsConfig)
    stroke: str = "steelblue"
    stroke_width: float = 1.5


class PieChartConfig(BaseModel):
    inner_radius: float = 125
    outer_radius: float = 200


class TooltipConfig(BaseModel):
    panel_offset_x: float = 12
    panel_offset_y: float = 12
    rule_stroke: str = "#8b949e"


class Config(BaseModel):
    data_dir: str = "data"
    output_dir: str = "data/output"
    canvas: CanvasConfig = Field(default_factory=CanvasConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    line_chart: LineChartConfig = Field(default_factory=LineChartConfig)
    pie_chart: PieChartConfig = Field(default_factory=PieChartConfig)
    tooltip: TooltipConfig = Field(default_factory=TooltipConfig)

    @property
    def resolved_data_dir(self) -> Path:
        """Resolve data_dir relative to project root."""
        p = Path(self.data_dir)
        if p.is_absolute():
            return p
        return _project_root() / p

    @property
    def resolved_output_dir(self) -> Path:
        p = Path(self.output_dir)
        if p.is_absolute():
            return p
        return _project_root() / p


def _project_root() -> Path:
    """Return the scrollstory project root directory."""
    return Path(__file__).parent.parent


def load_config(config_path: Path | None = None) -> Config:
    """Load config from YAML file. Falls back to defaults if file missing."""
    if config_path is None:
        config_path = _project_root() / "config.yaml"

    if config_path.exists():
        raw: dict[str, Any] = yaml.safe_load(config_path.read_text()) or {}
        return Config(**raw)

    return Config()
