"""Scale/phase model for the narrative time-series chart.

A phase is a named sub-period of a series with its own data slice and
(x, y) scale pair. Phases are derived one after another from strictly
increasing date cutoffs:

- the slice of a phase is ``(previous cutoff, cutoff]`` (the first phase
  takes everything up to its cutoff);
- the x domain always runs from the series start to the cutoff, so the axis
  shows the whole elapsed history;
- the y scale is either shared by reference with the previous phase or
  replaced with a fresh one fitted to a fixed value range.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date

from scrollstory.models import DataRow
from scrollstory.scales import LinearScale, TimeScale

logger = logging.getLogger(__name__)


@dataclass
class Phase:
    name: str
    date_range_end: date | None
    data_subset: list[DataRow]
    scale_x: TimeScale
    scale_y: LinearScale

    @property
    def scales(self) -> tuple[TimeScale, LinearScale]:
        return (self.scale_x, self.scale_y)

    @property
    def is_empty(self) -> bool:
        return not self.data_subset


def slice_rows(rows: Sequence[DataRow], after: date | None, through: date | None) -> list[DataRow]:
    """Rows with after < Date <= through. None leaves that side unbounded."""
    return [
        r for r in rows
        if (after is None or r.Date > after) and (through is None or r.Date <= through)
    ]


def derive_phase(
    previous: Phase | None,
    cutoff: date | None,
    full_series: Sequence[DataRow],
    *,
    name: str,
    x_range: tuple[float, float],
    y_range: tuple[float, float],
    y_domain: tuple[float, float] | None = None,
) -> Phase:
    """Derive the next phase of a series.

    Args:
        previous: Phase this one follows, or None for the first phase.
        cutoff: Inclusive end date of the new slice. None means the end of the series.
        full_series: All rows of the series, ascending by Date.
        y_domain: Fixed value range for a fresh y scale. When omitted the
            previous phase's y scale is shared as-is (the first phase fits
            ``[0, max(Close)]`` of its own rows instead).

    Raises:
        ValueError: If the cutoff does not come strictly after the previous cutoff.
    """
    after = previous.date_range_end if previous else None
    if previous is not None:
        if after is None:
            raise ValueError(f"Phase '{previous.name}' already runs to the end of the series")
        if cutoff is not None and cutoff <= after:
            raise ValueError(f"Cutoff {cutoff} for phase '{name}' must come after {after}")

    subset = slice_rows(full_series, after, cutoff)
    end = cutoff if cutoff is not None else (full_series[-1].Date if full_series else None)

    if previous is None:
        # The first phase spans exactly its own rows
        if subset:
            x_domain = (subset[0].Date, subset[-1].Date)
        elif end is not None:
            x_domain = (end, end)
        else:
            raise ValueError(f"Phase '{name}' has neither rows nor a cutoff")
    else:
        start = full_series[0].Date if full_series else previous.scale_x.domain[0]
        x_domain = (start, end if end is not None else previous.scale_x.domain[1])

    if y_domain is not None:
        scale_y = LinearScale(y_domain, y_range)
    elif previous is not None:
        scale_y = previous.scale_y
    else:
        scale_y = LinearScale((0, max((r.Close for r in subset), default=0)), y_range)

    phase = Phase(
        name=name,
        date_range_end=cutoff,
        data_subset=subset,
        scale_x=TimeScale(x_domain, x_range),
        scale_y=scale_y,
    )
    logger.debug(
        "Derived phase %s: %d rows, x=%s..%s, y=%s",
        name, len(subset), x_domain[0], x_domain[1], scale_y.domain,
    )
    return phase


class PhaseChain:
    """Ordered, lazily extended phases of one series."""

    def __init__(
        self,
        full_series: Sequence[DataRow],
        x_range: tuple[float, float],
        y_range: tuple[float, float],
    ) -> None:
        self.full_series = list(full_series)
        self.x_range = x_range
        self.y_range = y_range
        self._phases: dict[str, Phase] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._phases

    def __len__(self) -> int:
        return len(self._phases)

    @property
    def names(self) -> list[str]:
        return list(self._phases)

    @property
    def last(self) -> Phase | None:
        if not self._phases:
            return None
        return self._phases[self.names[-1]]

    def get(self, name: str) -> Phase:
        if name not in self._phases:
            raise ValueError(f"Unknown phase: {name}")
        return self._phases[name]

    def extend(
        self,
        name: str,
        cutoff: date | None,
        y_domain: tuple[float, float] | None = None,
    ) -> Phase:
        """Append a new phase after the current last one."""
        if name in self._phases:
            raise ValueError(f"Phase already exists: {name}")
        phase = derive_phase(
            self.last, cutoff, self.full_series,
            name=name, x_range=self.x_range, y_range=self.y_range, y_domain=y_domain,
        )
        self._phases[name] = phase
        return phase

    def upto(self, name: str) -> list[Phase]:
        """Phases from the first through ``name`` inclusive."""
        self.get(name)
        out = []
        for n in self.names:
            out.append(self._phases[n])
            if n == name:
                break
        return out

    def rows_through(self, name: str) -> list[DataRow]:
        """Union of all slices rendered once ``name`` is showing."""
        rows: list[DataRow] = []
        for phase in self.upto(name):
            rows.extend(phase.data_subset)
        return rows

    def segment_rows(self, name: str) -> list[DataRow]:
        """Rows drawn for one phase's segment.

        Includes the last row of the preceding non-empty phase so that
        consecutive segments join without a gap.
        """
        phases = self.upto(name)
        rows = list(phases[-1].data_subset)
        if not rows:
            return rows
        for earlier in reversed(phases[:-1]):
            if earlier.data_subset:
                return [earlier.data_subset[-1]] + rows
        return rows


# --- Exploration mode ---


def exploration_y_domain(
    datasets: Mapping[str, Sequence[DataRow]],
    active: Mapping[str, bool],
) -> tuple[float, float]:
    """Shared value domain ``[0, max(Close)]`` across every active series.

    Degrades to ``(0, 0)`` when no series is active (or all are empty).
    """
    peak = 0.0
    for key, rows in datasets.items():
        if not active.get(key, False):
            continue
        for r in rows:
            if r.Close > peak:
                peak = r.Close
    return (0.0, peak)
