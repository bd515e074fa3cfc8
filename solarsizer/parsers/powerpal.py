from __future__ import annotations
import logging

import pandas as pd

from .. import canon
from .base import MeterParser, Rows, has_columns

logger = logging.getLogger(__name__)


class PowerpalParser(MeterParser):
    """
    Per-minute log from a clip-on meter reader: `datetime_utc`, `watt_hours`
    (plus local time, cost and peak flag columns we do not need).
    """

    name = "powerpal"

    def is_valid(self, rows: Rows) -> bool:
        return has_columns(rows, "datetime_utc", "watt_hours")

    def extract(self, rows: Rows, period_min: int, tz: str) -> pd.DataFrame:
        raw = pd.DataFrame.from_records(list(rows), columns=["datetime_utc", "watt_hours"])
        ts = pd.to_datetime(raw["datetime_utc"], errors="coerce", utc=True)
        wh = pd.to_numeric(raw["watt_hours"], errors="coerce")
        ok = ts.notna() & wh.notna()
        if (~ok).any():
            logger.debug("%s: dropped %d rows", self.name, int((~ok).sum()))

        df = pd.DataFrame(
            {"kwh": wh[ok].abs().to_numpy(dtype=float) / 1000.0},
            index=pd.DatetimeIndex(ts[ok]).tz_convert(tz),
        )
        df.index.name = canon.INDEX_NAME
        return df.sort_index()
