# solarsizer/utils.py
from __future__ import annotations
import csv
import io
import math
import os
import re
import numpy as np
import pandas as pd
from zoneinfo import ZoneInfo
from datetime import time as _time
from typing import IO, Literal, Optional, cast

from . import canon
from .exceptions import MalformedRow
from .types import CanonFrame

_ISO_DATE = re.compile(r"^\s*\d{4}-\d{2}-\d{2}")


def ensure_tz_aware_index(df: pd.DataFrame, tz: str) -> pd.DataFrame:
    if df.index.name != canon.INDEX_NAME:
        raise ValueError(f"Index must be '{canon.INDEX_NAME}', got {df.index.name}")
    idx = pd.DatetimeIndex(df.index)
    if idx.tz is None:
        df = df.tz_localize(ZoneInfo(tz), nonexistent="shift_forward", ambiguous="NaT")
    else:
        df = df.tz_convert(ZoneInfo(tz))
    return df


def infer_cadence_minutes(
    idx: pd.DatetimeIndex, default: int = canon.DEFAULT_CADENCE_MIN
) -> int:
    """
    Infer cadence in minutes from a DatetimeIndex, ignoring duplicate timestamps.
    """
    ts = pd.DatetimeIndex(idx).sort_values().unique()
    if len(ts) < 2:
        return int(default)

    diffs = ts[1:] - ts[:-1]
    diffs_min = (diffs / np.timedelta64(1, "s")).to_numpy(dtype=float) / 60.0
    diffs_min = diffs_min[diffs_min > 0]
    if len(diffs_min) == 0:
        return int(default)

    rounded = np.rint(diffs_min).astype(int)
    vals, counts = np.unique(rounded, return_counts=True)
    return int(vals[np.argmax(counts)])


def safe_localize_series(ts: pd.Series, tz: str) -> pd.Series:
    s = pd.to_datetime(ts, errors="coerce")
    if getattr(s.dt, "tz", None) is None:
        return s.dt.tz_localize(
            ZoneInfo(tz), nonexistent="shift_forward", ambiguous="NaT"
        )
    return s.dt.tz_convert(ZoneInfo(tz))


def parse_timestamp(text: object, tz: str) -> pd.Timestamp:
    """
    Parse one exported date/time cell into a tz-aware Timestamp.

    - Explicit offsets (e.g. "+10:00") are honoured and converted to tz.
    - Naive values are local wall time in tz.
    - ISO dates parse year-first; anything else is read day-first (AU exports).
    """
    if text is None or (isinstance(text, float) and math.isnan(text)):
        raise MalformedRow("empty timestamp")
    s = str(text).strip()
    if not s:
        raise MalformedRow("empty timestamp")
    try:
        ts = pd.Timestamp(pd.to_datetime(s, dayfirst=not _ISO_DATE.match(s)))
    except (ValueError, TypeError, OverflowError) as exc:
        raise MalformedRow(f"unparseable timestamp {s!r}") from exc
    if pd.isna(ts):
        raise MalformedRow(f"unparseable timestamp {s!r}")
    if ts.tz is None:
        # DST folds resolve to standard time
        return ts.tz_localize(ZoneInfo(tz), nonexistent="shift_forward", ambiguous=False)
    return ts.tz_convert(ZoneInfo(tz))


def parse_kwh(text: object) -> float:
    """Parse a numeric cell; non-finite or blank values are malformed."""
    if text is None:
        raise MalformedRow("empty value")
    try:
        value = float(str(text).strip().replace(",", ""))
    except ValueError as exc:
        raise MalformedRow(f"unparseable value {text!r}") from exc
    if not math.isfinite(value):
        raise MalformedRow(f"non-finite value {text!r}")
    return value


def parse_time_str(tstr: str) -> _time:
    """Allow '24:00' → '00:00' rollover safely."""
    s = tstr.strip()
    if s == "24:00":
        return _time(0, 0)
    return pd.to_datetime(s, format="%H:%M").time()


def time_in_range(times: pd.Series, start: _time, end: _time) -> pd.Series:
    """Return mask for times within [start, end). Handles wrap-around."""
    if start < end:
        return (times >= start) & (times < end)
    elif start == end:
        # 00:00 → 24:00 and friends cover the whole day
        return pd.Series(True, index=times.index)
    else:
        # e.g. 21:00 → 05:00 next day
        return (times >= start) | (times < end)


def local_time_series(idx: pd.DatetimeIndex) -> pd.Series:
    """
    Return a Series of local wall-clock times (datetime.time) indexed by idx.
    Assumes idx is tz-aware.
    """
    if idx.tz is None:
        raise ValueError("Index must be tz-aware for local_time_series.")
    return pd.Series(idx.time, index=idx)


def day_mask(
    idx: pd.DatetimeIndex,
    days: Literal["ALL", "MF", "MS"] = "ALL",
) -> np.ndarray:
    """
    Return a boolean mask for which timestamps fall on the selected days:
      - 'ALL': all days
      - 'MF': Monday–Friday
      - 'MS': Monday–Saturday
    """
    if days == "ALL":
        return np.ones(len(idx), dtype=bool)

    dow = np.asarray(idx.dayofweek)  # Mon=0..Sun=6
    if days == "MF":
        return dow <= 4
    if days == "MS":
        return dow <= 5
    return np.ones(len(idx), dtype=bool)


def month_label(ts: pd.Series | pd.DatetimeIndex) -> pd.Series:
    """Return YYYY-MM month labels from a datetime-like Series/Index."""
    if isinstance(ts, pd.DatetimeIndex):
        return pd.Series(ts.strftime("%Y-%m"), index=ts)
    return ts.dt.strftime("%Y-%m")


def period_key(idx: pd.DatetimeIndex) -> pd.Index:
    """Year-less 'MM-DDTHH:MM' wall-clock keys used to look up reference profiles."""
    return pd.Index(pd.DatetimeIndex(idx).strftime("%m-%dT%H:%M"))


def build_canon_frame(
    idx: pd.DatetimeIndex,
    kwh: np.ndarray | pd.Series,
    *,
    cadence_min: int,
    usage_kind: Optional[str | np.ndarray | pd.Series] = None,
) -> CanonFrame:
    data = {
        canon.INDEX_NAME: idx,
        "kwh": np.asarray(kwh, dtype=float),
        "cadence_min": int(cadence_min),
    }
    if usage_kind is not None:
        data["usage_kind"] = (
            np.asarray(usage_kind) if not isinstance(usage_kind, str) else usage_kind
        )
    df = pd.DataFrame(data).set_index(canon.INDEX_NAME)
    return CanonFrame(df.sort_index())


def empty_canon_frame(
    tz: str = canon.DEFAULT_TZ, cadence_min: int = canon.DEFAULT_CADENCE_MIN
) -> CanonFrame:
    """
    Return an empty CanonFrame with the correct tz-aware index and required columns.
    """
    idx = pd.DatetimeIndex([], tz=ZoneInfo(tz), name=canon.INDEX_NAME)
    out = pd.DataFrame(
        {"kwh": pd.Series(dtype=float), "cadence_min": pd.Series(dtype=int)},
        index=idx,
    )
    out.attrs["cadence_min"] = int(cadence_min)
    return cast(CanonFrame, CanonFrame(out))


def series_cadence(df: pd.DataFrame, default: int = canon.DEFAULT_CADENCE_MIN) -> int:
    """Cadence of a canonical frame: the column if populated, else inferred."""
    if "cadence_min" in df.columns and len(df):
        return int(df["cadence_min"].iloc[0])
    if "cadence_min" in df.attrs:
        return int(df.attrs["cadence_min"])
    return infer_cadence_minutes(pd.DatetimeIndex(df.index), default)


def read_csv_rows(source: str | os.PathLike | IO[str]) -> list[list[str]]:
    """Read delimited text (path or open text buffer) into raw, ragged rows."""
    if hasattr(source, "read"):
        text = cast(IO[str], source).read()
    else:
        with open(source, newline="", encoding="utf-8-sig") as fh:
            text = fh.read()
    if isinstance(text, bytes):
        text = text.decode("utf-8-sig")
    return [row for row in csv.reader(io.StringIO(text)) if row]


def parse_day(text: object) -> pd.Timestamp:
    """Parse a calendar date cell ('2024-07-01', '01/07/2024', '20240701') to naive midnight."""
    s = "" if text is None else str(text).strip()
    if not s:
        raise MalformedRow("empty date")
    try:
        if s.isdigit() and len(s) == 8:
            ts = pd.Timestamp(pd.to_datetime(s, format="%Y%m%d"))
        else:
            ts = pd.Timestamp(pd.to_datetime(s, dayfirst=not _ISO_DATE.match(s)))
    except (ValueError, TypeError, OverflowError) as exc:
        raise MalformedRow(f"unparseable date {s!r}") from exc
    if pd.isna(ts):
        raise MalformedRow(f"unparseable date {s!r}")
    return ts.tz_localize(None).normalize() if ts.tz is not None else ts.normalize()


def localize_wall_times(stamps: list[pd.Timestamp] | pd.DatetimeIndex, tz: str) -> pd.DatetimeIndex:
    """Localize naive wall-clock stamps; times in a DST fold come back as NaT."""
    idx = pd.DatetimeIndex(stamps)
    return idx.tz_localize(ZoneInfo(tz), nonexistent="shift_forward", ambiguous="NaT")
