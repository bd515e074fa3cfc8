"""
Daily irradiance for a coordinate: live providers, a local reference dataset
and a seasonal model, tried in that order.

Provider values are brought onto one calibrated scale (kWh/m²/day times
SolarConstants.irradiance_multiplier) so every tier feeds the same
generation conversion.
"""

from __future__ import annotations
import calendar
import itertools
import json
import logging
import math
import os
import threading
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Any, Callable, ClassVar, IO, Optional

import httpx
import numpy as np
import pandas as pd

from . import canon
from .exceptions import OutOfRangeValue, UpstreamDataUnavailable, require
from .types import Location, SolarConstants

logger = logging.getLogger(__name__)

NASA_POWER_URL = "https://power.larc.nasa.gov/api/temporal/daily/point"
NASA_PARAMETER = "ALLSKY_SFC_SW_DWN"
OPEN_METEO_URL = "https://archive-api.open-meteo.com/v1/archive"
DEFAULT_TIMEOUT_S = 30.0


def trailing_year(today: Optional[date] = None) -> tuple[date, date]:
    """365 days ending PROVIDER_LAG_DAYS before today (inclusive bounds)."""
    today = today or date.today()
    end = today - timedelta(days=canon.PROVIDER_LAG_DAYS)
    start = end - timedelta(days=canon.DAYS_PER_YEAR - 1)
    return start, end


def repair_values(
    daily: pd.Series,
    fallback: float = 5.0,
    *,
    strict: bool = False,
) -> pd.Series:
    """
    Replace non-positive / non-finite values with the mean of the valid ones,
    or `fallback` when nothing is valid. In strict mode raise instead.
    """
    arr = daily.to_numpy(dtype=float, copy=True)
    invalid = ~(np.isfinite(arr) & (arr > 0))
    if not invalid.any():
        return daily.astype(float)
    if strict:
        raise OutOfRangeValue(f"{int(invalid.sum())} irradiance values are <= 0 or not finite")

    mean = float(arr[~invalid].mean()) if (~invalid).any() else float(fallback)
    logger.warning(
        "Replacing %d invalid irradiance values with %.3f", int(invalid.sum()), mean
    )
    arr[invalid] = mean
    return pd.Series(arr, index=daily.index, name=daily.name)


def _daily_series(values: pd.Series) -> pd.Series:
    out = values.sort_index().astype(float)
    out.index = pd.DatetimeIndex(out.index).normalize()
    out.index.name = "date"
    out.name = "irradiance"
    return out


class IrradianceSource(ABC):
    """
    A daily irradiance provider reached over HTTP.

    Pass an `httpx.Client` to share a connection pool (or to mock transport in
    tests); otherwise a short-lived client is opened per fetch.
    """

    name: ClassVar[str] = "source"
    url: ClassVar[str] = ""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
        constants: Optional[SolarConstants] = None,
    ):
        self._client = client
        self._timeout = timeout
        self.constants = constants or SolarConstants()

    @abstractmethod
    def params(self, location: Location, start: date, end: date) -> dict[str, Any]: ...

    @abstractmethod
    def parse_payload(self, payload: Any) -> pd.Series:
        """Raw daily values indexed by date, in the provider's own unit."""

    @property
    def scale(self) -> float:
        return self.constants.irradiance_multiplier

    def _get(self, params: dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return self._client.get(self.url, params=params)
        with httpx.Client(timeout=self._timeout) as client:
            return client.get(self.url, params=params)

    def fetch(self, location: Location, today: Optional[date] = None) -> pd.Series:
        start, end = trailing_year(today)
        logger.info(
            "Fetching %s irradiance for (%.4f, %.4f) %s..%s",
            self.name,
            location.latitude,
            location.longitude,
            start,
            end,
        )
        try:
            response = self._get(self.params(location, start, end))
        except httpx.HTTPError as exc:
            raise UpstreamDataUnavailable(f"{self.name} request failed: {exc}") from exc

        if response.status_code != 200:
            raise UpstreamDataUnavailable(
                f"{self.name} request failed: HTTP {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamDataUnavailable(f"{self.name} returned invalid JSON") from exc

        daily = self.parse_payload(payload)
        require(
            len(daily) == canon.DAYS_PER_YEAR,
            f"{self.name} did not return {canon.DAYS_PER_YEAR} daily values, "
            f"received {len(daily)}",
            UpstreamDataUnavailable,
        )
        daily = repair_values(daily, self.constants.fallback_daily_irradiance)
        return daily * self.scale


class NasaPowerSource(IrradianceSource):
    """NASA POWER daily point API, all-sky surface shortwave (kWh/m²/day)."""

    name = "nasa_power"
    url = NASA_POWER_URL

    def params(self, location: Location, start: date, end: date) -> dict[str, Any]:
        return {
            "parameters": NASA_PARAMETER,
            "community": "SB",
            "longitude": location.longitude,
            "latitude": location.latitude,
            "start": start.strftime("%Y%m%d"),
            "end": end.strftime("%Y%m%d"),
            "format": "JSON",
        }

    def parse_payload(self, payload: Any) -> pd.Series:
        try:
            values = payload["properties"]["parameter"][NASA_PARAMETER]
            series = pd.Series(
                [float(v) if v is not None else np.nan for v in values.values()],
                index=pd.to_datetime(list(values.keys()), format="%Y%m%d"),
            )
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise UpstreamDataUnavailable(f"{self.name} payload is malformed") from exc
        if series.empty:
            raise UpstreamDataUnavailable(f"No irradiance data received from {self.name}")
        return _daily_series(series)


class OpenMeteoSource(IrradianceSource):
    """Open-Meteo archive, hourly shortwave radiation (W/m²) summed per day."""

    name = "open_meteo"
    url = OPEN_METEO_URL

    @property
    def scale(self) -> float:
        # Wh/m²/day -> kWh/m²/day, then the shared calibration
        return self.constants.irradiance_multiplier / 1000.0

    def params(self, location: Location, start: date, end: date) -> dict[str, Any]:
        return {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "hourly": "shortwave_radiation",
            "timezone": "auto",
        }

    def parse_payload(self, payload: Any) -> pd.Series:
        try:
            hourly = payload["hourly"]
            times = pd.to_datetime(hourly["time"])
            values = pd.to_numeric(pd.Series(hourly["shortwave_radiation"]), errors="coerce")
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamDataUnavailable(f"{self.name} payload is malformed") from exc
        if len(times) != len(values):
            raise UpstreamDataUnavailable(f"{self.name} payload is malformed")

        values.index = pd.DatetimeIndex(times)
        daily = values.groupby(values.index.normalize()).sum(min_count=1)
        return _daily_series(daily)


def load_reference_irradiance(
    source: str | os.PathLike | IO[str],
    constants: Optional[SolarConstants] = None,
) -> pd.Series:
    """Last-known local dataset saved in the NASA POWER JSON shape."""
    constants = constants or SolarConstants()
    if hasattr(source, "read"):
        payload = json.load(source)
    else:
        with open(source, encoding="utf-8") as fh:
            payload = json.load(fh)
    daily = NasaPowerSource(constants=constants).parse_payload(payload)
    daily = repair_values(daily, constants.fallback_daily_irradiance)
    return daily * constants.irradiance_multiplier


def seasonal_fallback(
    location: Location,
    year: int,
    constants: Optional[SolarConstants] = None,
) -> pd.Series:
    """
    Deterministic sinusoid around the fallback daily value, peaking at the
    local summer solstice; the seasonal swing grows with |latitude|.
    """
    constants = constants or SolarConstants()
    days = pd.date_range(f"{year}-01-01", f"{year}-12-31", freq="D", name="date")
    peak_doy = 172 if location.latitude >= 0 else 355
    swing = min(abs(location.latitude) / 90.0, 0.6)
    phase = 2.0 * math.pi * (days.dayofyear.to_numpy() - peak_doy) / 365.0
    kwh_m2 = constants.fallback_daily_irradiance * (1.0 + swing * np.cos(phase))
    return pd.Series(
        kwh_m2 * constants.irradiance_multiplier, index=days, name="irradiance"
    )


def onto_year(daily: pd.Series, year: int) -> pd.Series:
    """
    Move daily values onto `year` by month/day: one value per calendar day,
    29 Feb dropped for non-leap years, missing days interpolated.
    """
    idx = pd.DatetimeIndex(daily.index)
    keep = np.ones(len(idx), dtype=bool)
    if not calendar.isleap(year):
        keep = ~((idx.month == 2) & (idx.day == 29))
    idx = idx[keep]
    moved = pd.to_datetime(
        pd.DataFrame({"year": year, "month": idx.month, "day": idx.day})
    )
    s = pd.Series(daily.to_numpy(dtype=float)[keep], index=pd.DatetimeIndex(moved))
    s = s[~s.index.duplicated(keep="last")].sort_index()

    full = pd.date_range(f"{year}-01-01", f"{year}-12-31", freq="D", name="date")
    out = s.reindex(full).interpolate(limit_direction="both")
    out.name = "irradiance"
    return out


def get_daily_irradiance(
    location: Location,
    *,
    source: Optional[IrradianceSource] = None,
    reference: Optional[str | os.PathLike] = None,
    year: Optional[int] = None,
    today: Optional[date] = None,
    constants: Optional[SolarConstants] = None,
) -> pd.Series:
    """
    Daily irradiance for `year`, never failing: live source, then the local
    reference dataset, then the seasonal model. The tier used is recorded in
    `.attrs["source"]`.
    """
    constants = constants or (source.constants if source is not None else SolarConstants())
    year = year or (today or date.today()).year

    daily: Optional[pd.Series] = None
    tier = "seasonal"
    if source is not None:
        try:
            daily = source.fetch(location, today=today)
            tier = source.name
        except UpstreamDataUnavailable as exc:
            logger.warning("Live irradiance unavailable, falling back: %s", exc)

    if daily is None and reference is not None:
        try:
            daily = load_reference_irradiance(reference, constants)
            tier = "reference"
        except (OSError, ValueError, UpstreamDataUnavailable) as exc:
            logger.warning("Reference irradiance unusable, falling back: %s", exc)

    if daily is None:
        logger.warning(
            "Using seasonal irradiance model for (%.4f, %.4f)",
            location.latitude,
            location.longitude,
        )
        daily = seasonal_fallback(location, year, constants)

    out = onto_year(daily, year)
    out.attrs["source"] = tier
    return out


class LatestRequestGate:
    """
    Last-request-wins ordering for irradiance fetches.

    Each `begin()` issues a token that invalidates every earlier one; a fetch
    whose token is no longer current returns None so a slow, stale response
    can never overwrite fresher state. Debouncing is left to the caller.
    """

    def __init__(self, fetch: Callable[[Location], pd.Series]):
        self._fetch = fetch
        self._tokens = itertools.count(1)
        self._latest = 0
        self._lock = threading.Lock()

    @property
    def latest(self) -> int:
        return self._latest

    def begin(self) -> int:
        with self._lock:
            token = next(self._tokens)
            self._latest = max(self._latest, token)
            return token

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._latest

    def fetch(self, location: Location) -> Optional[pd.Series]:
        token = self.begin()
        result = self._fetch(location)
        if not self.is_current(token):
            logger.info("Discarding stale irradiance response (request %d)", token)
            return None
        return result
