import numpy as np
import pytz
from datetime import datetime
import pandas as pd
import pytest

from solarsizer import pricing, scenario
from solarsizer.types import SystemConfig

TZ = "Australia/Brisbane"


def test_peak_window_and_days():
    idx = pd.date_range("2025-01-04", periods=48 * 2, freq="30min", tz=TZ)  # Sat, Sun
    cfg = SystemConfig(
        installation_kw=5,
        peak_c_per_kwh=40.0,
        off_peak_c_per_kwh=15.0,
        peak_start="16:00",
        peak_end="21:00",
        peak_days="MS",
    )
    rates = pricing.period_rates(idx, cfg)
    sat = rates[:48]
    sun = rates[48:]
    assert (sat[32:42] == 40.0).all()
    assert (sat[:32] == 15.0).all() and (sat[42:] == 15.0).all()
    assert (sun == 15.0).all()


def test_wrapping_window():
    idx = pd.date_range("2025-01-01", periods=48, freq="30min", tz=TZ)
    cfg = SystemConfig(
        installation_kw=5,
        peak_c_per_kwh=10.0,
        off_peak_c_per_kwh=30.0,
        peak_start="22:00",
        peak_end="06:00",
    )
    rates = pricing.period_rates(idx, cfg)
    assert rates[0] == 10.0 and rates[11] == 10.0 and rates[12] == 30.0
    assert rates[44] == 10.0


def test_missing_rates_cost_nothing():
    idx = pd.date_range("2025-01-01", periods=4, freq="30min", tz=TZ)
    cfg = SystemConfig(installation_kw=5)
    cost, baseline = pricing.period_costs(
        idx, np.ones(4), np.ones(4), np.ones(4), cfg
    )
    assert (cost == 0).all() and (baseline == 0).all()


def test_vectorised_costs_match_step(canon_consumption, canon_generation):
    cfg = SystemConfig(
        installation_kw=5,
        peak_c_per_kwh=40.0,
        off_peak_c_per_kwh=20.0,
        feed_in_c_per_kwh=7.0,
    )
    f = scenario.simulate(canon_consumption, canon_generation, cfg).flows
    cost, baseline = pricing.period_costs(
        pd.DatetimeIndex(f.index),
        f["consumption_grid"].to_numpy(),
        f["exported_solar"].to_numpy(),
        f["total_consumption"].to_numpy(),
        cfg,
    )
    assert np.allclose(cost, f["cost"])
    assert np.allclose(baseline, f["baseline_cost"])


def test_monthly_costs_table(canon_consumption, canon_generation, flat_config):
    result = scenario.simulate(canon_consumption, canon_generation, flat_config)
    bill = pricing.monthly_costs(result)
    assert bill["month"].tolist() == ["2025-01"]
    row = bill.iloc[0]
    assert row["total"] == pytest.approx(result.flows["cost"].sum())
    assert row["feed_in_credit"] == pytest.approx(-row["export_kwh"] * 0.05)
    assert row["energy_cost"] == pytest.approx(row["grid_kwh"] * 0.30)
    assert row["savings"] == pytest.approx(row["baseline_cost"] - row["total"])


def test_flat_month_with_pytz_index():
    tz = pytz.timezone("Australia/Brisbane")
    idx = pd.date_range(
        tz.localize(datetime(2025, 1, 1)), tz.localize(datetime(2025, 1, 31, 23, 30)), freq="30min"
    )
    cfg = SystemConfig(installation_kw=5, peak_c_per_kwh=30.0)
    rates = pricing.period_rates(idx, cfg)
    usage = np.full(len(idx), 0.5)
    cost, baseline = pricing.period_costs(idx, usage, np.zeros(len(idx)), usage, cfg)
    assert (rates == 30.0).all()
    assert abs(baseline.sum() - 31 * 24.0 * 0.30) < 1e-9
    assert np.allclose(cost, baseline)
