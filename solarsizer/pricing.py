from __future__ import annotations
import numpy as np
import pandas as pd

from . import utils
from .types import FlowResult, SystemConfig


def peak_mask(index: pd.DatetimeIndex, config: SystemConfig) -> np.ndarray:
    """True where the local wall time falls in the configured peak window."""
    if index.tz is None:
        raise ValueError("Index must be tz-aware (e.g., Australia/Brisbane).")
    times = utils.local_time_series(index)
    start_t = utils.parse_time_str(config.peak_start)
    end_t = utils.parse_time_str(config.peak_end)
    in_window = utils.time_in_range(times, start_t, end_t).to_numpy()
    return in_window & utils.day_mask(index, config.peak_days)


def _rates(config: SystemConfig) -> tuple[float, float]:
    peak = config.peak_c_per_kwh or 0.0
    off_peak = config.off_peak_c_per_kwh
    # no off-peak tariff means a flat peak rate
    return peak, (peak if off_peak is None else off_peak)


def period_rates(index: pd.DatetimeIndex, config: SystemConfig) -> np.ndarray:
    """Import rate (c/kWh) for every period."""
    peak, off_peak = _rates(config)
    return np.where(peak_mask(index, config), peak, off_peak).astype(float)


def rate_at(ts: pd.Timestamp, config: SystemConfig) -> float:
    return float(period_rates(pd.DatetimeIndex([ts]), config)[0])


def period_cost(
    used_grid: float, exported: float, consumption: float, rate_c: float, config: SystemConfig
) -> tuple[float, float]:
    """(cost, baseline_cost) in dollars for one period."""
    cost = used_grid * rate_c / 100.0
    if config.feed_in_c_per_kwh is not None and exported > 0:
        cost -= exported * config.feed_in_c_per_kwh / 100.0
    return cost, consumption * rate_c / 100.0


def period_costs(
    index: pd.DatetimeIndex,
    used_grid: np.ndarray,
    exported: np.ndarray,
    consumption: np.ndarray,
    config: SystemConfig,
) -> tuple[np.ndarray, np.ndarray]:
    """Vectorised period_cost over a whole series."""
    rates = period_rates(index, config)
    fit = config.feed_in_c_per_kwh or 0.0
    cost = np.asarray(used_grid, dtype=float) * rates / 100.0
    cost -= np.clip(np.asarray(exported, dtype=float), 0.0, None) * fit / 100.0
    baseline = np.asarray(consumption, dtype=float) * rates / 100.0
    return cost, baseline


def monthly_costs(result: FlowResult) -> pd.DataFrame:
    """
    Monthly bill comparison:
      ['month', 'grid_kwh', 'export_kwh', 'energy_cost', 'feed_in_credit',
       'total', 'baseline_cost', 'savings']
    """
    config: SystemConfig | None = result.meta.get("config")
    fit = (config.feed_in_c_per_kwh or 0.0) if config is not None else 0.0
    flows = result.flows
    if flows.empty:
        return pd.DataFrame(
            columns=[
                "month",
                "grid_kwh",
                "export_kwh",
                "energy_cost",
                "feed_in_credit",
                "total",
                "baseline_cost",
                "savings",
            ]
        )

    bill = (
        flows[["consumption_grid", "exported_solar", "cost", "baseline_cost"]]
        .groupby(utils.month_label(pd.DatetimeIndex(flows.index)).to_numpy())
        .sum()
        .rename(columns={"consumption_grid": "grid_kwh", "exported_solar": "export_kwh"})
    )
    bill.index.name = "month"
    bill = bill.reset_index()
    bill["feed_in_credit"] = bill["export_kwh"] * (fit / 100.0) * (-1.0)
    bill["energy_cost"] = bill["cost"] - bill["feed_in_credit"]
    bill["total"] = bill["cost"]
    bill["savings"] = bill["baseline_cost"] - bill["total"]
    return bill[
        [
            "month",
            "grid_kwh",
            "export_kwh",
            "energy_cost",
            "feed_in_credit",
            "total",
            "baseline_cost",
            "savings",
        ]
    ]
