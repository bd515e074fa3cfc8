from __future__ import annotations
from dataclasses import replace

import pandas as pd

from . import canon, utils
from .exceptions import ConfigError, IncompatibleGranularity
from .types import CanonFrame, FlowResult, ReportingPeriod


def period_freq(period: ReportingPeriod | int, native_min: int) -> tuple[str, int]:
    """
    Resample frequency and nominal minutes for a reporting period.

    Named periods are calendar aligned (weeks start on Monday); an integer is
    a minute count that must be a multiple of the native cadence.
    """
    if isinstance(period, str):
        if period not in canon.PERIOD_FREQ:
            raise ConfigError(f"Unknown reporting period: {period!r}")
        freq, minutes = canon.PERIOD_FREQ[period], canon.PERIOD_MINUTES[period]
    else:
        minutes = int(period)
        freq = f"{minutes}min"
        if minutes >= native_min and minutes % native_min:
            raise IncompatibleGranularity(
                f"{minutes}-minute periods are not a multiple of the {native_min}-minute source"
            )
    if minutes < native_min:
        raise IncompatibleGranularity(
            f"Cannot aggregate {native_min}-minute data to finer {period!r} periods"
        )
    return freq, minutes


def _resample(frame: pd.DataFrame | pd.Series, freq: str):
    return frame.resample(freq, label="left", closed="left")


def aggregate(result: FlowResult, period: ReportingPeriod | int) -> FlowResult:
    """
    Re-bucket every flow column to a coarser reporting period.

    Energy and cost columns are summed; battery_level keeps the last level
    of each bucket. Asking for the native resolution returns `result` as is.
    """
    freq, minutes = period_freq(period, result.cadence_min)
    if minutes == result.cadence_min:
        return result

    flows = result.flows
    summed = _resample(flows[canon.SUMMABLE_FLOW_COLS], freq).sum()
    level = _resample(flows["battery_level"], freq).last().ffill().fillna(0.0)
    out = summed.assign(battery_level=level)[canon.FLOW_COLS]
    out.index.name = canon.INDEX_NAME
    return replace(
        result,
        flows=out,
        cadence_min=minutes,
        meta={**result.meta, "period": period},
    )


def resample_energy(df: CanonFrame, period: ReportingPeriod | int) -> CanonFrame:
    """Sum kWh of one canonical series to a coarser period."""
    native = utils.series_cadence(df)
    freq, minutes = period_freq(period, native)
    if minutes == native:
        return df
    kwh = _resample(df["kwh"], freq).sum()
    out = pd.DataFrame({"kwh": kwh, "cadence_min": minutes}, index=kwh.index)
    out.index.name = canon.INDEX_NAME
    return CanonFrame(out)
