from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any, ClassVar, Optional

import pandas as pd

from .. import canon, normalize, utils, validate
from ..exceptions import MalformedRow
from ..types import CanonFrame

logger = logging.getLogger(__name__)

Rows = Sequence[Mapping[str, Any]] | Sequence[Sequence[str]]


def is_record_rows(rows: Rows) -> bool:
    """Header-keyed rows (csv.DictReader style) rather than raw cell lists."""
    return bool(rows) and isinstance(rows[0], Mapping)


def has_columns(rows: Rows, *names: str) -> bool:
    return is_record_rows(rows) and all(n in rows[0] for n in names)


def reading_value(cell: object) -> float:
    """Parse one interval cell; negative corrections are malformed, not usage."""
    value = utils.parse_kwh(cell)
    if value < 0:
        raise MalformedRow(f"negative reading {cell!r}")
    return value


def block_start(ts: pd.Timestamp, period_min: int) -> pd.Timestamp:
    """Start of the `period_min` block holding ts (floored on the UTC timeline)."""
    return ts.tz_convert("UTC").floor(f"{int(period_min)}min").tz_convert(ts.tz)


def readings_frame(
    stamps: pd.DatetimeIndex | list[pd.Timestamp],
    values: list[float],
    usage_kind: Optional[list[str] | str] = None,
) -> pd.DataFrame:
    """Raw extracted readings; duplicates and gaps are the normalizer's job."""
    idx = pd.DatetimeIndex(stamps, name=canon.INDEX_NAME)
    df = pd.DataFrame({"kwh": values}, index=idx)
    if usage_kind is not None:
        df["usage_kind"] = usage_kind
    df = df[df.index.notna()]
    return df.sort_index()


class MeterParser(ABC):
    """
    One meter-export dialect.

    `is_valid` is a cheap structural sniff; `extract` turns raw rows into
    readings; `parse` funnels them through the shared normalisation steps:
    resample → trailing-year filter / year normalisation → gap fill.
    """

    name: ClassVar[str] = "meter"

    @abstractmethod
    def is_valid(self, rows: Rows) -> bool: ...

    @abstractmethod
    def extract(self, rows: Rows, period_min: int, tz: str) -> pd.DataFrame: ...

    def parse(
        self,
        rows: Rows,
        period_min: int = canon.DEFAULT_CADENCE_MIN,
        *,
        tz: str = canon.DEFAULT_TZ,
        reference: Optional[pd.Series] = None,
        year: Optional[int] = None,
    ) -> CanonFrame:
        raw = self.extract(rows, period_min, tz)
        if raw.empty:
            logger.warning("%s parser found no usable readings", self.name)
            return utils.empty_canon_frame(tz, period_min)

        series = normalize.aggregate_to_interval(raw, period_min)
        series = normalize.filter_last_year(series, year=year)
        series = normalize.pad_missing_dates(series, period_min, reference)
        validate.assert_canon(series)
        logger.info(
            "%s parser produced %d readings at %d-minute cadence",
            self.name,
            len(series),
            period_min,
        )
        return series
