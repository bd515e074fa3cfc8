"""Resampling, last-year filtering and gap filling of canonical reading series."""

from __future__ import annotations
import calendar
import logging
import os
from typing import IO, Optional

import numpy as np
import pandas as pd

from . import canon, utils
from .exceptions import MalformedRow
from .types import CanonFrame

logger = logging.getLogger(__name__)


def _floor(idx: pd.DatetimeIndex, minutes: int) -> pd.DatetimeIndex:
    # Floor on the UTC timeline so DST folds never make a bucket ambiguous.
    freq = f"{int(minutes)}min"
    if idx.tz is None:
        return idx.floor(freq)
    return idx.tz_convert("UTC").floor(freq).tz_convert(idx.tz)


def collapse_duplicates(df: pd.DataFrame) -> pd.DataFrame:
    """Sum kWh of readings sharing a timestamp; keep the first usage kind."""
    if not df.index.has_duplicates:
        return df.sort_index()
    agg = {"kwh": "sum"}
    for col in ("cadence_min", "usage_kind"):
        if col in df.columns:
            agg[col] = "first"
    out = df.groupby(level=0, sort=True).agg(agg)
    out.index.name = canon.INDEX_NAME
    return out


def aggregate_to_interval(series: pd.DataFrame, period_min: int) -> CanonFrame:
    """
    Resample a reading series to `period_min`.

    - native == target: returned unchanged (cadence column stamped)
    - native finer:     kWh summed into target-aligned blocks
    - native coarser:   each value split evenly over round(native/target) blocks

    The native cadence is the dominant spacing of the input; splitting
    assumes there are no gaps at that cadence.
    """
    period_min = int(period_min)
    if series.empty:
        return utils.empty_canon_frame(
            str(getattr(series.index, "tz", None) or canon.DEFAULT_TZ), period_min
        )

    s = collapse_duplicates(series)
    idx = pd.DatetimeIndex(s.index)
    native = utils.infer_cadence_minutes(idx, default=period_min)

    if native == period_min:
        out = s.assign(cadence_min=period_min)

    elif native < period_min:
        blocks = _floor(idx, period_min)
        agg = {"kwh": "sum"}
        if "usage_kind" in s.columns:
            agg["usage_kind"] = "first"
        out = s.groupby(blocks, sort=True).agg(agg)
        out = out.assign(cadence_min=period_min)

    else:
        n = max(int(round(native / period_min)), 1)
        values = s["kwh"].to_numpy(dtype=float) / n
        offsets = pd.to_timedelta(np.tile(np.arange(n) * period_min, len(s)), unit="min")
        new_idx = idx.repeat(n) + offsets
        data = {"kwh": np.repeat(values, n), "cadence_min": period_min}
        if "usage_kind" in s.columns:
            data["usage_kind"] = np.repeat(s["usage_kind"].to_numpy(), n)
        out = pd.DataFrame(data, index=new_idx)

    out.index.name = canon.INDEX_NAME
    cols = ["kwh", "cadence_min"] + (["usage_kind"] if "usage_kind" in out.columns else [])
    return CanonFrame(out[cols].sort_index())


def filter_last_year(series: pd.DataFrame, *, year: Optional[int] = None) -> CanonFrame:
    """
    Keep readings within 365 days of the latest one and move them onto `year`.

    Month, day and wall-clock time are preserved so multi-year uploads collapse
    onto a single synthetic year. 29 February is dropped when `year` is not a
    leap year, as are wall times that do not exist in the series timezone.
    """
    if series.empty:
        return CanonFrame(series)

    idx = pd.DatetimeIndex(series.index)
    tz = idx.tz
    latest = idx.max()
    cutoff = latest - pd.Timedelta(days=canon.DAYS_PER_YEAR)
    kept = series[(idx > cutoff) & (idx <= latest)]

    if year is None:
        year = pd.Timestamp.now(tz=tz).year

    wall = pd.DatetimeIndex(kept.index)
    if tz is not None:
        dst_flags = np.array([bool(t.dst()) for t in wall], dtype=bool)
        wall = wall.tz_localize(None)
    if not calendar.isleap(year):
        keep = ~((wall.month == 2) & (wall.day == 29))
        kept, wall = kept[keep], wall[keep]
        if tz is not None:
            dst_flags = dst_flags[keep]

    moved = pd.DatetimeIndex(
        pd.to_datetime(
            pd.DataFrame(
                {
                    "year": year,
                    "month": wall.month,
                    "day": wall.day,
                    "hour": wall.hour,
                    "minute": wall.minute,
                }
            )
        )
    )
    if tz is not None:
        moved = moved.tz_localize(tz, ambiguous=dst_flags, nonexistent="NaT")

    out = kept.copy()
    out.index = moved
    out.index.name = canon.INDEX_NAME
    out = out[out.index.notna()]
    dropped = len(series) - len(out)
    if dropped:
        logger.debug("Dropped %d readings outside the trailing year", dropped)
    return CanonFrame(collapse_duplicates(out))


def _reference_ratio(series: pd.DataFrame, reference: pd.Series) -> float:
    ref_at = reference.reindex(utils.period_key(pd.DatetimeIndex(series.index)))
    overlap = ref_at.notna().to_numpy()
    sum_ref = float(ref_at[overlap].sum())
    sum_actual = float(series["kwh"].to_numpy()[overlap].sum())
    # Zero reference mass would blow up the ratio; fall back to unscaled.
    return sum_actual / sum_ref if sum_ref != 0 else 1.0


def pad_missing_dates(
    series: pd.DataFrame,
    period_min: int,
    reference: Optional[pd.Series] = None,
) -> CanonFrame:
    """
    Fill every missing period between the first and last reading.

    Missing values come from `reference` (kWh keyed 'MM-DDTHH:MM') scaled by
    sum(actual) / sum(reference) over the keys both share, which keeps the
    household's magnitude while borrowing a seasonal and diurnal shape.
    """
    if series.empty:
        return CanonFrame(series)

    idx = pd.DatetimeIndex(series.index)
    step = pd.Timedelta(minutes=int(period_min))
    first, last = idx[0], idx[-1]
    expected = int((last - first) // step) + 1
    if len(series) == expected:
        return CanonFrame(series)

    full = pd.date_range(first, last, freq=step, name=canon.INDEX_NAME)
    kwh = series["kwh"].reindex(full)
    missing = kwh.isna().to_numpy()

    if reference is None or reference.empty:
        logger.warning(
            "No reference profile supplied; %d missing periods filled with 0 kWh",
            int(missing.sum()),
        )
        imputed = np.zeros(int(missing.sum()))
    else:
        ratio = _reference_ratio(series, reference)
        imputed = (
            reference.reindex(utils.period_key(full[missing])).fillna(0.0).to_numpy()
            * ratio
        )
        logger.debug(
            "Imputed %d missing periods from reference profile (ratio %.3f)",
            int(missing.sum()),
            ratio,
        )

    values = kwh.to_numpy(dtype=float, copy=True)
    values[missing] = imputed
    out = pd.DataFrame({"kwh": values, "cadence_min": int(period_min)}, index=full)
    if "usage_kind" in series.columns:
        # imputed periods inherit the kind of the neighbouring readings
        out["usage_kind"] = series["usage_kind"].reindex(full).ffill().bfill()
    return CanonFrame(out)


def load_reference_profile(
    source: str | os.PathLike | IO[str], period_min: int = canon.DEFAULT_CADENCE_MIN
) -> pd.Series:
    """
    Read an average-usage table into a kWh Series keyed 'MM-DDTHH:MM'.

    Each line is `interval_minutes,yyyymmdd,v1,...,vN` with one value per
    native interval of that day. Rows are resampled to `period_min`; the first
    value seen for a key wins.
    """
    frames = []
    for row in utils.read_csv_rows(source):
        try:
            native = int(row[0])
            day = pd.Timestamp(pd.to_datetime(row[1].strip(), format="%Y%m%d"))
        except (ValueError, IndexError):
            continue
        if native <= 0 or canon.MINUTES_PER_DAY % native:
            continue
        slots = canon.MINUTES_PER_DAY // native
        values = []
        for cell in row[2 : 2 + slots]:
            try:
                values.append(utils.parse_kwh(cell))
            except MalformedRow:
                values.append(np.nan)
        idx = pd.date_range(day, periods=len(values), freq=f"{native}min")
        day_df = pd.DataFrame({"kwh": values}, index=idx).dropna()
        day_df.index.name = canon.INDEX_NAME
        frames.append(aggregate_to_interval(day_df, period_min))

    if not frames:
        return pd.Series(dtype=float, name="kwh")

    df = pd.concat(frames)
    keys = utils.period_key(pd.DatetimeIndex(df.index))
    out = pd.Series(df["kwh"].to_numpy(dtype=float), index=keys, name="kwh")
    return out[~out.index.duplicated(keep="first")]
