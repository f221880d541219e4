"""The retail investor narrative: static scene content and render routines.

Scene 1 is the proportion chart of retail inflows. Scenes 2–6 share one
line chart of the S&P 500 that gains a phase per scene. Scene 7 is the
exploration mode over the retail favourites.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date

from scrollstory.charts import ExplorationChart, LineChart, PieChart
from scrollstory.config import Config
from scrollstory.datasets import CsvLoader, DatasetCache, Loader
from scrollstory.geometry import ChartGeometry
from scrollstory.models import Annotation, CompanyRow, Placement
from scrollstory.scenes import RenderRoutine, Scene, SceneStateMachine, StoryContext
from scrollstory.surface import MemorySurface, RenderSurface

logger = logging.getLogger(__name__)

COMPANY_TABLE = "popular-retail-equities-early-2023"
MARKET_SERIES = "SPY"
EXPLORATION_TICKERS = ["TSLA", "AAPL", "AMZN", "NVDA", "GOOGL", "AMD", "MSFT", "META", "PLTR", "RIVN"]

PIE_CHART = "pie"
LINE_CHART = "line"
EXPLORE_CHART = "explore"


@dataclass(frozen=True)
class NarrativePhase:
    name: str
    cutoff: date | None
    y_domain: tuple[float, float] | None = None  # None keeps the previous y scale
    annotations: list[Annotation] = field(default_factory=list)


NARRATIVE_PHASES = [
    NarrativePhase(
        "bull_run", date(2020, 2, 21), (200, 400),
        [Annotation(
            anchor_x=date(2020, 2, 19), anchor_y=338.34,
            text_lines=["Feb 19, 2020", "Record close before the pandemic"],
            placement=Placement.TOPLEFT,
        )],
    ),
    NarrativePhase(
        "crash", date(2020, 3, 27), None,
        [Annotation(
            anchor_x=date(2020, 3, 23), anchor_y=222.95,
            text_lines=["Mar 23, 2020", "Down 34% in 33 days"],
            placement=Placement.BOTTOMRIGHT,
        )],
    ),
    NarrativePhase(
        "stimulus", date(2021, 1, 29), None,
        [Annotation(
            anchor_x=date(2021, 1, 27), anchor_y=374.41,
            text_lines=["Jan 2021", "GameStop short squeeze"],
            placement=Placement.TOPLEFT,
        )],
    ),
    NarrativePhase(
        "peak", date(2021, 12, 31), (200, 500),
        [Annotation(
            anchor_x=date(2021, 12, 29), anchor_y=477.48,
            text_lines=["Dec 29, 2021", "The market peaks"],
            placement=Placement.TOPLEFT,
        )],
    ),
    NarrativePhase(
        "reckoning", date(2022, 12, 30), None,
        [Annotation(
            anchor_x=date(2022, 10, 12), anchor_y=356.56,
            text_lines=["Oct 12, 2022", "Down 25% from the peak"],
            placement=Placement.BOTTOMLEFT,
        )],
    ),
]

PIE_TITLE = "Retail Net Inflows, Early 2023 ($M)"
LINE_TITLE = "S&P 500 (SPY) Weekly Close"
EXPLORE_TITLE = "Retail Favourites, Weekly Close"


def _line_geometry(config: Config) -> ChartGeometry:
    return ChartGeometry.from_config(config.canvas, config.line_chart.margins)


# --- Render routines ---


async def render_proportion(ctx: StoryContext, index: int) -> None:
    companies = await ctx.datasets.fetch(COMPANY_TABLE, CompanyRow)
    if not ctx.is_current(index):
        return
    chart = ctx.get_or_create(PIE_CHART, lambda: PieChart(
        PIE_CHART, ChartGeometry.from_config(ctx.config.canvas),
        ctx.surface, ctx.coordinator, ctx.config, parent=ctx.canvas,
    ))
    ctx.display(PIE_CHART)
    chart.render(companies, title=PIE_TITLE)


def line_scene(phase_name: str) -> RenderRoutine:
    """Render routine that morphs the shared line chart to ``phase_name``."""
    names = [p.name for p in NARRATIVE_PHASES]
    if phase_name not in names:
        raise ValueError(f"Unknown narrative phase: {phase_name}")
    needed = NARRATIVE_PHASES[: names.index(phase_name) + 1]
    annotations = {p.name: p.annotations for p in NARRATIVE_PHASES}

    async def render(ctx: StoryContext, index: int) -> None:
        rows = await ctx.datasets.fetch(MARKET_SERIES)
        if not ctx.is_current(index):
            return
        chart = ctx.get_or_create(LINE_CHART, lambda: LineChart(
            LINE_CHART, _line_geometry(ctx.config),
            ctx.surface, ctx.coordinator, ctx.config, parent=ctx.canvas,
        ))
        chart.ensure_series(rows)
        for phase in needed:
            chart.ensure_phase(phase.name, phase.cutoff, phase.y_domain)
        ctx.display(LINE_CHART)
        chart.show_phase(phase_name, annotations, title=LINE_TITLE)
        ctx.bind_pointer(chart)

    return render


async def render_exploration(ctx: StoryContext, index: int) -> None:
    companies, series = await asyncio.gather(
        ctx.datasets.fetch(COMPANY_TABLE, CompanyRow),
        ctx.datasets.fetch_all(EXPLORATION_TICKERS),
    )
    if not ctx.is_current(index):
        return
    chart = ctx.get_or_create(EXPLORE_CHART, lambda: ExplorationChart(
        EXPLORE_CHART, _line_geometry(ctx.config),
        ctx.surface, ctx.coordinator, ctx.config, parent=ctx.canvas,
    ))
    chart.load(series, labels={c.Ticker: c.CompanyName for c in companies})
    ctx.display(EXPLORE_CHART)
    chart.render(title=EXPLORE_TITLE)
    ctx.bind_pointer(chart)


# --- Content ---


def build_scenes() -> list[Scene]:
    return [
        Scene(index=0, title=""),
        Scene(
            index=1,
            title="A New Generation of Retail Investors",
            body=[
                "In recent years, the U.S. equity market has seen a slew of new retail (personal, "
                "non-professional) investors enter the market in numbers not seen in over two decades.",
                "After having witnessed many sectors of the market generate explosive returns, and having "
                "received thousands of dollars in \"free\" money from multiple stimulus packages, it's not "
                "difficult to see the market's attraction to new investors.",
                "Perhaps also unsurprising are retail investors' choices: the companies and funds offering the "
                "greatest returns. The graph shows retail investors' top ten stock picks in the early months of "
                "2023. Nearly all are universal household names such as Tesla, Amazon, Apple, and Google - "
                "companies with which novice investors are already quite familiar. Within the opening months of "
                "2023, retail investors had already poured over $23 billion into these equities.",
                "However, having experienced only a period of strong growth and healthy returns begs the "
                "question: <span style=\"font-weight:bold; font-style:italic;\">are these new investors "
                "prepared to weather the next inevitable market downturn?</span>",
            ],
            render=render_proportion,
            chart_id=PIE_CHART,
        ),
        Scene(
            index=2,
            title="The Longest Bull Run",
            body=[
                "By early 2020 the S&P 500 had climbed for more than a decade, the longest bull market in "
                "its history.",
                "On February 19th it closed at a record high.",
            ],
            render=line_scene("bull_run"),
            chart_id=LINE_CHART,
        ),
        Scene(
            index=3,
            title="The Crash",
            body=[
                "Within five weeks the pandemic erased a third of the market's value, the fastest fall of "
                "that size ever recorded.",
            ],
            render=line_scene("crash"),
            chart_id=LINE_CHART,
        ),
        Scene(
            index=4,
            title="Stimulus and the Retail Surge",
            body=[
                "Rate cuts and stimulus checks followed. Commission-free trading apps signed up millions of "
                "first-time investors, and by January 2021 they were coordinating short squeezes on GameStop.",
            ],
            render=line_scene("stimulus"),
            chart_id=LINE_CHART,
        ),
        Scene(
            index=5,
            title="A Market That Only Went Up",
            body=[
                "Throughout 2021 the index kept setting records, ending the year nearly double its pandemic "
                "low.",
                "For a generation of new investors this was the only market they had ever known.",
            ],
            render=line_scene("peak"),
            chart_id=LINE_CHART,
        ),
        Scene(
            index=6,
            title="The Reckoning",
            body=[
                "Then inflation arrived. As rates rose through 2022, the S&P 500 lost a quarter of its value "
                "and the most popular retail picks fared far worse.",
                "<span style=\"font-weight:bold;\">Hover over the chart to see any week's close.</span>",
            ],
            render=line_scene("reckoning"),
            chart_id=LINE_CHART,
        ),
        Scene(
            index=7,
            title="Explore for Yourself",
            body=[
                "Toggle the retail favourites below to compare their histories on a shared axis. "
                "Companies that listed later simply start later.",
            ],
            render=render_exploration,
            chart_id=EXPLORE_CHART,
        ),
    ]


def build_story(
    config: Config,
    surface: RenderSurface | None = None,
    loader: Loader | None = None,
) -> SceneStateMachine:
    """Wire the narrative to a surface and a dataset loader."""
    if surface is None:
        surface = MemorySurface(config.canvas.width, config.canvas.height)
    if loader is None:
        loader = CsvLoader(config.resolved_data_dir)
    context = StoryContext(config, surface, DatasetCache(loader))
    return SceneStateMachine(build_scenes(), context)
