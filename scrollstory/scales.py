"""Linear and time scales mapping domain values to pixels."""

import math
from datetime import date


def _tick_step(start: float, stop: float, count: int) -> float:
    step0 = abs(stop - start) / max(1, count)
    step1 = 10 ** math.floor(math.log10(step0))
    error = step0 / step1
    if error >= math.sqrt(50):
        step1 *= 10
    elif error >= math.sqrt(10):
        step1 *= 5
    elif error >= math.sqrt(2):
        step1 *= 2
    return step1


class LinearScale:
    """Continuous mapping from a numeric domain onto a pixel range."""

    def __init__(self, domain: tuple[float, float], range_: tuple[float, float]) -> None:
        self.domain = (float(domain[0]), float(domain[1]))
        self.range = (float(range_[0]), float(range_[1]))

    def __call__(self, value: float) -> float:
        d0, d1 = self.domain
        r0, r1 = self.range
        if d1 == d0:
            # Degenerate domain, e.g. [0, 0] with every series hidden
            return (r0 + r1) / 2
        return r0 + (value - d0) / (d1 - d0) * (r1 - r0)

    def invert(self, pixel: float) -> float:
        d0, d1 = self.domain
        r0, r1 = self.range
        if r1 == r0:
            return d0
        return d0 + (pixel - r0) / (r1 - r0) * (d1 - d0)

    def ticks(self, count: int = 10) -> list[float]:
        lo, hi = sorted(self.domain)
        if lo == hi:
            return [lo]
        step = _tick_step(lo, hi, count)
        first = math.ceil(lo / step)
        last = math.floor(hi / step)
        return [round(i * step, 10) for i in range(first, last + 1)]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LinearScale):
            return NotImplemented
        return self.domain == other.domain and self.range == other.range

    def __hash__(self) -> int:
        return hash((self.domain, self.range))

    def __repr__(self) -> str:
        return f"LinearScale(domain={self.domain}, range={self.range})"


# Month intervals tried in order when picking time ticks
_MONTH_STEPS = [1, 3, 6, 12, 24]


class TimeScale:
    """Maps calendar dates onto a pixel range (dates handled as ordinal days)."""

    def __init__(self, domain: tuple[date, date], range_: tuple[float, float]) -> None:
        self.domain = (domain[0], domain[1])
        self.range = (float(range_[0]), float(range_[1]))
        self._linear = LinearScale((domain[0].toordinal(), domain[1].toordinal()), range_)

    def __call__(self, value: date) -> float:
        return self._linear(value.toordinal())

    def invert(self, pixel: float) -> date:
        return date.fromordinal(round(self._linear.invert(pixel)))

    def covers(self, other: "TimeScale") -> bool:
        return self.domain[0] <= other.domain[0] and other.domain[1] <= self.domain[1]

    def ticks(self, count: int = 8) -> list[date]:
        start, end = self.domain
        if start == end:
            return [start]
        span_months = (end.year - start.year) * 12 + (end.month - start.month) + 1
        step = next((s for s in _MONTH_STEPS if span_months / s <= count), _MONTH_STEPS[-1])

        # First month boundary on or after start that is aligned to the step
        year, month = start.year, start.month
        if start.day != 1:
            month += 1
        while (month - 1) % step != 0:
            month += 1
        year += (month - 1) // 12
        month = (month - 1) % 12 + 1

        out: list[date] = []
        current = date(year, month, 1)
        while current <= end:
            out.append(current)
            month += step
            year += (month - 1) // 12
            month = (month - 1) % 12 + 1
            current = date(year, month, 1)
        return out

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeScale):
            return NotImplemented
        return self.domain == other.domain and self.range == other.range

    def __hash__(self) -> int:
        return hash((self.domain, self.range))

    def __repr__(self) -> str:
        return f"TimeScale(domain=({self.domain[0]}, {self.domain[1]}), range={self.range})"


# --- Tick formats ---


def format_currency(value: float) -> str:
    return f"${value:,.0f}"


def format_month(value: date) -> str:
    if value.month == 1:
        return str(value.year)
    return value.strftime("%b %Y")


def format_day(value: date) -> str:
    return value.strftime("%b %-d, %Y")
