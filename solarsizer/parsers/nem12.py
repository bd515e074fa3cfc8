from __future__ import annotations
import logging
from collections.abc import Mapping

import pandas as pd

from .. import canon, utils
from ..exceptions import MalformedRow
from .base import MeterParser, Rows, reading_value, readings_frame

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MIN = 30


def usage_for_suffix(suffix: str) -> str:
    # E1 general import, E2/E3... controlled load, B* export
    if suffix in canon.CHANNEL_MAP:
        return canon.CHANNEL_MAP[suffix]
    if suffix.startswith("E"):
        return "controlled_load_import"
    if suffix.startswith("B"):
        return "grid_export_solar"
    return "grid_import"


def _interval_length(record: list[str]) -> int:
    # 200,NMI,NMIConfig,RegisterID,NMISuffix,MDMStream,MeterSerial,UOM,IntervalLength,...
    try:
        minutes = int(record[8])
    except (IndexError, ValueError):
        return DEFAULT_INTERVAL_MIN
    if minutes <= 0 or canon.MINUTES_PER_DAY % minutes:
        return DEFAULT_INTERVAL_MIN
    return minutes


class Nem12Parser(MeterParser):
    """
    AEMO NEM12 interval file: 100 header, 200 channel, 300 daily interval data.

    Each 300 record holds one value per native interval for one day. Export
    channels (B*) are skipped; import channels sharing a timestamp are summed
    downstream.
    """

    name = "nem12"

    def is_valid(self, rows: Rows) -> bool:
        if not rows or isinstance(rows[0], Mapping):
            return False
        first = rows[0]
        return len(first) > 0 and str(first[0]).strip() == "100"

    def extract(self, rows: Rows, period_min: int, tz: str) -> pd.DataFrame:
        interval = DEFAULT_INTERVAL_MIN
        suffix = ""
        scale = 1.0
        stamps: list[pd.Timestamp] = []
        values: list[float] = []
        kinds: list[str] = []
        dropped = 0

        for record in rows:
            record = [str(c).strip() for c in record]
            if not record:
                continue
            kind = record[0]
            if kind == "200":
                interval = _interval_length(record)
                suffix = record[4].upper() if len(record) > 4 else ""
                uom = record[7].upper() if len(record) > 7 else "KWH"
                scale = 0.001 if uom == "WH" else 1.0
            elif kind == "300":
                usage = usage_for_suffix(suffix)
                if usage == "grid_export_solar":
                    continue
                try:
                    day = utils.parse_day(record[1] if len(record) > 1 else "")
                except MalformedRow as exc:
                    logger.debug("Skipping 300 record: %s", exc)
                    dropped += 1
                    continue
                step = pd.Timedelta(minutes=interval)
                for j, cell in enumerate(record[2 : 2 + canon.MINUTES_PER_DAY // interval]):
                    try:
                        value = reading_value(cell)
                    except MalformedRow:
                        dropped += 1
                        continue
                    stamps.append(day + j * step)
                    values.append(value * scale)
                    kinds.append(usage)

        if dropped:
            logger.debug("%s: dropped %d values", self.name, dropped)
        return readings_frame(utils.localize_wall_times(stamps, tz), values, kinds)
