from __future__ import annotations
import logging
import re

import pandas as pd

from .. import utils
from ..exceptions import MalformedRow
from .base import MeterParser, Rows, has_columns, reading_value, readings_frame

logger = logging.getLogger(__name__)

INTERVAL_COL = re.compile(r"^\s*(\d{2}):(\d{2})\s*-\s*\d{2}:\d{2}\s*$")


def usage_for_flag(flag: object) -> str:
    return "generation" if str(flag).strip().upper().startswith("GEN") else "consumption"


class JemenaParser(MeterParser):
    """
    Distributor portal export: one row per day, one 'HH:MM - HH:MM' column per
    interval, and a CON/GEN column saying whether the row is load or generation.
    Only consumption rows feed the consumption series.
    """

    name = "jemena"

    def is_valid(self, rows: Rows) -> bool:
        return has_columns(rows, "NMI", "CON/GEN")

    def extract(self, rows: Rows, period_min: int, tz: str) -> pd.DataFrame:
        offsets = {}
        for col in rows[0].keys():
            m = INTERVAL_COL.match(str(col))
            if m:
                offsets[col] = pd.Timedelta(hours=int(m.group(1)), minutes=int(m.group(2)))

        stamps: list[pd.Timestamp] = []
        values: list[float] = []
        dropped = 0
        for row in rows:
            if usage_for_flag(row.get("CON/GEN", "")) != "consumption":
                continue
            try:
                day = utils.parse_day(row.get("DATE"))
            except MalformedRow as exc:
                logger.debug("Skipping row: %s", exc)
                dropped += 1
                continue
            for col, offset in offsets.items():
                try:
                    value = reading_value(row.get(col))
                except MalformedRow:
                    dropped += 1
                    continue
                stamps.append(day + offset)
                values.append(value)

        if dropped:
            logger.debug("%s: dropped %d cells", self.name, dropped)
        return readings_frame(utils.localize_wall_times(stamps, tz), values, "consumption")
