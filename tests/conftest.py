"""Shared test fixtures for scrollstory tests."""

import asyncio
from datetime import date, timedelta

import pytest

from scrollstory.config import Config
from scrollstory.geometry import ChartGeometry
from scrollstory.models import CompanyRow, DataRow
from scrollstory.story import COMPANY_TABLE, EXPLORATION_TICKERS, MARKET_SERIES, build_story
from scrollstory.surface import MemorySurface
from scrollstory.transitions import TransitionCoordinator


def weekly_rows(start: date, closes: list[float], ticker: str = "") -> list[DataRow]:
    return [
        DataRow(Date=start + timedelta(weeks=i), Close=c, Ticker=ticker)
        for i, c in enumerate(closes)
    ]


class FakeLoader:
    """In-memory dataset loader that records every call.

    Names in ``fail`` raise OSError like a missing CSV. Names in ``gated``
    wait for ``release`` before answering.
    """

    def __init__(self, datasets: dict[str, list], fail=(), gated=()) -> None:
        self.datasets = datasets
        self.fail = set(fail)
        self.gated = set(gated)
        self.release = asyncio.Event()
        self.calls: list[str] = []

    async def __call__(self, name: str, model) -> list:
        self.calls.append(name)
        if name in self.gated:
            await self.release.wait()
        else:
            await asyncio.sleep(0)
        if name in self.fail or name not in self.datasets:
            raise OSError(f"No such file: {name}.csv")
        return list(self.datasets[name])


@pytest.fixture()
def config():
    return Config()


@pytest.fixture()
def surface(config):
    return MemorySurface(config.canvas.width, config.canvas.height)


@pytest.fixture()
def coordinator(surface, config):
    return TransitionCoordinator(surface, config.timing)


@pytest.fixture()
def line_geometry(config):
    return ChartGeometry.from_config(config.canvas, config.line_chart.margins)


@pytest.fixture()
def make_rows():
    """Factory for weekly DataRow series."""
    return weekly_rows


@pytest.fixture()
def story_datasets():
    """Every dataset the story asks for: ~4 years of weekly market closes,
    the company table, and one series per exploration ticker."""
    spy = weekly_rows(date(2019, 1, 4), [250 + (i % 50) * 2.5 for i in range(210)], "SPY")
    companies = [
        CompanyRow(CompanyName=f"Company {t}", Ticker=t, RetailNetFlowMillions=3000 - i * 250)
        for i, t in enumerate(EXPLORATION_TICKERS)
    ]
    datasets: dict[str, list] = {MARKET_SERIES: spy, COMPANY_TABLE: companies}
    for i, ticker in enumerate(EXPLORATION_TICKERS):
        # Later tickers list later, so histories have different lengths
        weeks = 200 - i * 10
        start = date(2019, 1, 4) + timedelta(weeks=210 - weeks)
        datasets[ticker] = weekly_rows(start, [50 + i * 10 + (k % 20) for k in range(weeks)], ticker)
    return datasets


@pytest.fixture()
def make_loader():
    """Factory for in-memory loaders."""
    return FakeLoader


@pytest.fixture()
def loader(story_datasets):
    return FakeLoader(story_datasets)


@pytest.fixture()
def machine(config, surface, loader):
    """Scene state machine over the in-memory surface and fake datasets."""
    return build_story(config, surface=surface, loader=loader)
