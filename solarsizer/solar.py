"""
Sun position and intraday irradiance shaping.

`sun_position` is the NOAA fractional-year approximation (equation of time,
declination, hour angle at zenith 90.833°). `distribute_irradiance` spreads
each daily irradiance total over the daylight window with a Gaussian centred
between sunrise and sunset, one canonical period at a time.
"""

from __future__ import annotations
import logging
import math
from datetime import date as _date

import numpy as np
import pandas as pd
from zoneinfo import ZoneInfo

from . import canon
from .exceptions import ConfigError, require
from .types import Location, SolarWindow

logger = logging.getLogger(__name__)

ZENITH_DEG = 90.833


def sun_position(
    day: _date | pd.Timestamp,
    latitude: float,
    longitude: float,
    hour_utc: float = 0.0,
) -> SolarWindow:
    """Sunrise, sunset and solar noon in minutes since UTC midnight of `day`."""
    doy = pd.Timestamp(day).dayofyear
    gamma = 2.0 * math.pi / 365.0 * (doy - 1 + (hour_utc - 12.0) / 24.0)

    eqtime = 229.18 * (
        0.000075
        + 0.001868 * math.cos(gamma)
        - 0.032077 * math.sin(gamma)
        - 0.014615 * math.cos(2 * gamma)
        - 0.040849 * math.sin(2 * gamma)
    )
    decl = (
        0.006918
        - 0.399912 * math.cos(gamma)
        + 0.070257 * math.sin(gamma)
        - 0.006758 * math.cos(2 * gamma)
        + 0.000907 * math.sin(2 * gamma)
        - 0.002697 * math.cos(3 * gamma)
        + 0.00148 * math.sin(3 * gamma)
    )

    lat = math.radians(latitude)
    cos_h = math.cos(math.radians(ZENITH_DEG)) / (
        math.cos(lat) * math.cos(decl)
    ) - math.tan(lat) * math.tan(decl)
    # polar day / night push the argument outside acos' domain
    ha = math.degrees(math.acos(max(-1.0, min(1.0, cos_h))))

    return SolarWindow(
        sunrise_min_utc=720.0 - 4.0 * (longitude + ha) - eqtime,
        sunset_min_utc=720.0 - 4.0 * (longitude - ha) - eqtime,
        solar_noon_min_utc=720.0 - 4.0 * longitude - eqtime,
    )


def round_daylight_window(
    sunrise: float, sunset: float, period_min: int
) -> tuple[int, int]:
    """
    Snap sunrise/sunset to period boundaries, both in the same direction.

    The endpoint nearer its own boundary picks the direction (an exact
    boundary counts as 'up'); the other endpoint follows it so the daylight
    length is kept to the period granularity.
    """
    p = int(period_min)

    def _distance(x: float) -> float:
        r = x % p
        return min(r, p - r)

    anchor = sunrise if _distance(sunrise) <= _distance(sunset) else sunset
    r = anchor % p
    round_up = r == 0 or r >= p / 2
    snap = math.ceil if round_up else math.floor
    return int(snap(sunrise / p) * p), int(snap(sunset / p) * p)


def distribute_daily_irradiance(
    value: float,
    window: SolarWindow,
    period_min: int = canon.DEFAULT_CADENCE_MIN,
    utc_offset_min: float = 0.0,
) -> np.ndarray:
    """
    Split one daily total into 1440/period_min values starting at local midnight.

    Periods before the rounded sunrise and from the rounded sunset onward are
    zero. Daylight periods share `value` in proportion to the summed Gaussian
    density (mean at the window midpoint, sd = daylight/6) of their minutes, so
    the result always sums to `value` when there is any daylight.
    """
    p = int(period_min)
    require(
        p > 0 and canon.MINUTES_PER_DAY % p == 0,
        f"period_min must divide a day evenly, got {period_min}",
        ConfigError,
    )
    out = np.zeros(canon.MINUTES_PER_DAY // p, dtype=float)

    # local midnight sits at -utc_offset on the UTC-minute axis
    rise, sset = round_daylight_window(
        window.sunrise_min_utc + utc_offset_min,
        window.sunset_min_utc + utc_offset_min,
        p,
    )
    rise = min(max(rise, 0), canon.MINUTES_PER_DAY)
    sset = min(max(sset, 0), canon.MINUTES_PER_DAY)
    daylight = sset - rise
    if daylight <= 0 or value == 0:
        return out

    minutes = np.arange(rise, sset, dtype=float)
    mean = rise + daylight / 2.0
    sd = daylight / 6.0
    pdf = np.exp(-0.5 * ((minutes - mean) / sd) ** 2) / (sd * math.sqrt(2.0 * math.pi))

    blocks = pdf.reshape(-1, p).sum(axis=1)
    out[rise // p : sset // p] = blocks / pdf.sum() * value
    return out


def distribute_irradiance(
    daily: pd.Series,
    location: Location,
    period_min: int = canon.DEFAULT_CADENCE_MIN,
    tz: str = canon.DEFAULT_TZ,
    *,
    hour_utc: float = 0.0,
) -> pd.Series:
    """
    Shape a daily irradiance Series (indexed by calendar date) into a
    contiguous intraday Series indexed by tz-aware 't_start'.

    On DST transition days the local day is shorter or longer than 1440
    minutes; trailing night periods are trimmed or zero-padded to fit.
    """
    p = int(period_min)
    zone = ZoneInfo(tz)
    if daily.empty:
        idx = pd.DatetimeIndex([], tz=zone, name=canon.INDEX_NAME)
        return pd.Series(dtype=float, index=idx, name="irradiance")

    days = pd.DatetimeIndex(pd.to_datetime(daily.index)).tz_localize(None).normalize()
    values = daily.to_numpy(dtype=float)
    keep = ~days.duplicated()
    days, values = days[keep], values[keep]
    order = np.argsort(days)
    days, values = days[order], values[order]

    chunks: list[np.ndarray] = []
    stamps: list[pd.DatetimeIndex] = []
    for day, value in zip(days, values):
        midnight = day.tz_localize(zone, nonexistent="shift_forward", ambiguous=False)
        next_midnight = (day + pd.Timedelta(days=1)).tz_localize(
            zone, nonexistent="shift_forward", ambiguous=False
        )
        offset = midnight.utcoffset().total_seconds() / 60.0
        window = sun_position(day, location.latitude, location.longitude, hour_utc)
        shaped = distribute_daily_irradiance(value, window, p, offset)

        idx = pd.date_range(midnight, next_midnight, freq=f"{p}min", inclusive="left")
        if len(idx) < len(shaped):
            shaped = shaped[: len(idx)]
        elif len(idx) > len(shaped):
            shaped = np.concatenate([shaped, np.zeros(len(idx) - len(shaped))])
        chunks.append(shaped)
        stamps.append(idx)

    index = stamps[0].append(stamps[1:])
    index.name = canon.INDEX_NAME
    return pd.Series(np.concatenate(chunks), index=index, name="irradiance")
