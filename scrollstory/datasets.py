"""Dataset loading and the per-name memo cache.

Fetches are the only suspension points of the presenter. A dataset is
fetched at most once: later requests for the same name are answered from
the cache without suspending, and concurrent requests share one fetch.
Failed fetches are not cached, so a later visit retries.
"""

import asyncio
import csv
import logging
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path

from pydantic import BaseModel

from scrollstory.models import DataRow

logger = logging.getLogger(__name__)

Loader = Callable[[str, type[BaseModel]], Awaitable[list]]


class DatasetFetchError(RuntimeError):
    """A dataset could not be loaded or parsed."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Failed to load dataset '{name}': {reason}")
        self.name = name
        self.reason = reason


def load_csv_rows(path: Path, model: type[BaseModel] = DataRow) -> list:
    """Parse a CSV file into validated rows, sorted by Date when present."""
    rows = []
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for record in reader:
            # Surplus fields land under the None key
            if None in record:
                raise ValueError(
                    f"{path.name} line {reader.line_num}: expected {len(reader.fieldnames)} fields"
                )
            rows.append(model(**record))
    if rows and hasattr(rows[0], "Date"):
        rows.sort(key=lambda r: r.Date)
    return rows


class CsvLoader:
    """Loads ``<data_dir>/<name>.csv`` off the event loop."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir

    async def __call__(self, name: str, model: type[BaseModel]) -> list:
        path = self.data_dir / f"{name}.csv"
        return await asyncio.to_thread(load_csv_rows, path, model)


class DatasetCache:
    """Name → rows memo in front of an async loader."""

    def __init__(self, loader: Loader) -> None:
        self._loader = loader
        self._data: dict[str, list] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self.fetch_count = 0

    def is_cached(self, name: str) -> bool:
        return name in self._data

    def get(self, name: str) -> list:
        """Cached rows for ``name``. Raises KeyError if never fetched."""
        return self._data[name]

    def put(self, name: str, rows: list) -> None:
        self._data[name] = list(rows)

    async def fetch(self, name: str, model: type[BaseModel] = DataRow) -> list:
        if name in self._data:
            return self._data[name]
        pending = self._pending.get(name)
        if pending is not None:
            return await pending

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._pending[name] = future
        self.fetch_count += 1
        logger.info("Fetching dataset %s", name)
        try:
            rows = await self._loader(name, model)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            # Waiters on the shared future must see the failure too
            error = DatasetFetchError(name, f"{type(e).__name__}: {e}")
            future.set_exception(error)
            # Mark retrieved so an unawaited future does not warn
            future.exception()
            raise error from e
        finally:
            self._pending.pop(name, None)

        self._data[name] = list(rows)
        future.set_result(self._data[name])
        logger.info("Loaded dataset %s (%d rows)", name, len(rows))
        return self._data[name]

    async def fetch_all(self, names: Iterable[str], model: type[BaseModel] = DataRow) -> dict[str, list]:
        """Fetch several datasets concurrently; all must succeed."""
        names = list(names)
        results = await asyncio.gather(*(self.fetch(n, model) for n in names))
        return dict(zip(names, results))
