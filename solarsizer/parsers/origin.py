from __future__ import annotations
import logging

import pandas as pd

from .. import utils
from ..exceptions import MalformedRow
from .base import MeterParser, Rows, block_start, has_columns, readings_frame

logger = logging.getLogger(__name__)

USAGE_TYPE = "Usage Type"
AMOUNT = "Amount Used"
FROM = "From (date/time)"
TO = "To (date/time)"


class OriginParser(MeterParser):
    """
    Interval-start / interval-end rows (retailer portal export).

    Only 'Consumption' rows are kept. Each row's usage is shared evenly across
    every target block its [from, to] span touches.
    """

    name = "origin"

    def is_valid(self, rows: Rows) -> bool:
        return has_columns(rows, USAGE_TYPE, AMOUNT)

    def extract(self, rows: Rows, period_min: int, tz: str) -> pd.DataFrame:
        block = pd.Timedelta(minutes=int(period_min))
        stamps: list[pd.Timestamp] = []
        values: list[float] = []
        dropped = 0

        for row in rows:
            if str(row.get(USAGE_TYPE, "")).strip() != "Consumption":
                continue
            try:
                amount = utils.parse_kwh(row.get(AMOUNT))
                start = utils.parse_timestamp(row.get(FROM), tz)
                end = utils.parse_timestamp(row.get(TO), tz)
            except MalformedRow as exc:
                logger.debug("Skipping row: %s", exc)
                dropped += 1
                continue
            if amount <= 0:
                dropped += 1
                continue

            first = block_start(start, period_min)
            last = block_start(end, period_min)
            n_blocks = int((last - first) // block) + 1
            if n_blocks <= 0:
                dropped += 1
                continue
            share = amount / n_blocks
            for i in range(n_blocks):
                stamps.append(first + i * block)
                values.append(share)

        if dropped:
            logger.debug("%s: dropped %d rows", self.name, dropped)
        return readings_frame(stamps, values, "consumption")
