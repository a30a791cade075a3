# smartwater_control/history.py
"""History request + aggregation.

Request cadence (one sequential routine, no callbacks):

    write GET_HISTORY_DATA -> settle delay -> read history buffer -> parse

The buffer decodes to comma-separated hourly samples in chronological order
(index 0 is the oldest hour). Samples are bucketed per Granularity:

    daily    1 sample per bucket,   up to 24 buckets, labels "<h>h" / ""
    weekly   24 samples per bucket, up to 7 buckets,  labels "Day <n>"
    monthly  168 samples per bucket, up to 5 buckets, labels "Week <n>"

A short final window is averaged over the samples it actually holds. All
values are rounded half-up to one decimal, as they are displayed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import List, Sequence

from .codec import parse_sample_list
from .commands import create_history_request_command
from .const import COMMAND_SINK, HISTORY_BUFFER, HISTORY_SETTLE_DELAY
from .connection import ConnectionManager
from .exception import DecodeError, NotConnected, TransportError
from .models import Bucket, Granularity, HistoryResult, SummaryStats

_LOGGER = logging.getLogger(__name__)

__all__ = ["HistoryAggregator", "aggregate", "round1", "summarize"]


_TENTH = Decimal("0.1")
# enough digits to carry any finite float (and sums of them) down to the tenth
_PRECISION = 400


def _to_decimal(value: float) -> Decimal:
    return Decimal(repr(float(value)))


def _half_up(value: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return value.quantize(_TENTH, rounding=ROUND_HALF_UP)


def _mean(values: Sequence[float]) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return sum((_to_decimal(v) for v in values), Decimal(0)) / len(values)


def round1(value: float) -> float:
    """Round half-up to one decimal (2.25 -> 2.3, unlike round())."""
    return float(_half_up(_to_decimal(value)))


def _aggregate_hourly(samples: Sequence[float]) -> List[Bucket]:
    out: List[Bucket] = []
    # walk from the most recent hour back; every other label is blanked
    for k, hour in enumerate(range(len(samples) - 1, -1, -1)):
        label = "" if k % 2 == 0 else f"{hour}h"
        out.append(Bucket(label, round1(samples[hour])))
    out.reverse()
    return out


def _aggregate_windows(samples: Sequence[float], window: int, prefix: str) -> List[Bucket]:
    n_windows = -(-len(samples) // window)
    out: List[Bucket] = []
    for w in range(n_windows - 1, -1, -1):
        chunk = samples[w * window:(w + 1) * window]
        out.append(Bucket(f"{prefix} {w + 1}", float(_half_up(_mean(chunk)))))
    out.reverse()
    return out


def aggregate(samples: Sequence[float], granularity: Granularity) -> List[Bucket]:
    """Bucket raw samples (oldest first) into a display series (oldest first)."""
    samples = list(samples)[: granularity.sample_count]
    if not samples:
        return []
    if granularity is Granularity.DAILY:
        return _aggregate_hourly(samples)
    return _aggregate_windows(samples, granularity.window, granularity.label_prefix)


def summarize(values: Sequence[float]) -> SummaryStats:
    """Total / average / peak of a finished series, always from scratch.

    The average is taken from the rounded total, so the displayed figures
    always agree with each other.
    """
    if not values:
        return SummaryStats.empty()
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        exact = [_to_decimal(v) for v in values]
        total = _half_up(sum(exact, Decimal(0)))
        average = _half_up(total / len(exact))
        peak = _half_up(max(exact))
    return SummaryStats(
        total=float(total),
        average=float(average),
        peak=float(peak),
        generated_at=date.today(),
    )


class HistoryAggregator:
    """Fetch the device's history buffer and turn it into a HistoryResult."""

    def __init__(self, manager: ConnectionManager, settle_delay: float = HISTORY_SETTLE_DELAY) -> None:
        self._manager = manager
        self.settle_delay = settle_delay

    async def _fetch_samples(self) -> List[float] | None:
        channel = self._manager.require_channel()

        try:
            await channel.write(COMMAND_SINK, create_history_request_command())
        except (NotConnected, TransportError) as ex:
            # some firmware serves the buffer without being asked
            _LOGGER.debug("%s: history request write failed: %s", channel.name, ex)

        await asyncio.sleep(self.settle_delay)

        text = await channel.read_once(HISTORY_BUFFER)
        if text is None:
            return None
        return parse_sample_list(text)

    async def request_history(self, granularity: Granularity | str) -> HistoryResult:
        """Run one history round trip; never raises for link or payload errors."""
        granularity = Granularity(granularity)
        try:
            samples = await self._fetch_samples()
        except NotConnected as ex:
            return HistoryResult.empty(granularity, error=str(ex))
        except (TransportError, DecodeError) as ex:
            _LOGGER.error("History request failed: %s", ex)
            return HistoryResult.empty(granularity, error="Failed to load history data")

        if not samples:
            _LOGGER.debug("History buffer empty")
            return HistoryResult.empty(granularity)

        series = aggregate(samples, granularity)
        stats = summarize([b.value for b in series])
        _LOGGER.debug(
            "History %s: %s sample(s) -> %s bucket(s)", granularity.value, len(samples), len(series)
        )
        return HistoryResult(granularity=granularity, series=series, stats=stats)
