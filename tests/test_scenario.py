"""Energy flow state machine: allocation order, battery, export cap, cost."""

import numpy as np
import pandas as pd
import pytest

from solarsizer import scenario, utils
from solarsizer.exceptions import ConfigError
from solarsizer.types import Location, SimulationState, SystemConfig

TZ = "Australia/Brisbane"
NOON = pd.Timestamp("2025-01-01 12:00", tz=TZ)


def test_solar_then_grid_with_empty_battery():
    """Input:
    - consumption 5 kWh, solar 3 kWh, battery empty with 2 kWh capacity.
    Expect:
    - 3 kWh from solar, 2 kWh from grid, battery untouched.
    """
    cfg = SystemConfig(installation_kw=5, battery_kwh=2.0)
    state = SimulationState()
    flow = scenario.step(state, 5.0, 3.0, NOON, cfg)
    assert flow.consumption_solar == 3.0
    assert flow.consumption_battery == 0.0
    assert flow.consumption_grid == 2.0
    assert state.battery_level_kwh == 0.0
    assert flow.battery_level == 0.0


def test_excess_over_full_battery_hits_export_cap():
    cfg = SystemConfig(installation_kw=5, battery_kwh=2.0, daily_export_limit_kwh=5.0)
    state = SimulationState(battery_level_kwh=2.0)
    flow = scenario.step(state, 0.0, 7.0, NOON, cfg)
    assert flow.exported_solar == 5.0
    assert flow.unused_solar == 2.0
    assert state.daily_exported_kwh == 5.0
    assert state.battery_level_kwh == 2.0


def test_battery_discharges_before_grid():
    cfg = SystemConfig(installation_kw=5, battery_kwh=5.0)
    state = SimulationState(battery_level_kwh=1.5)
    flow = scenario.step(state, 2.0, 0.0, NOON, cfg)
    assert flow.consumption_battery == pytest.approx(1.5)
    assert flow.consumption_grid == pytest.approx(0.5)
    assert state.battery_level_kwh == 0.0


def test_leftover_solar_charges_battery_up_to_capacity():
    cfg = SystemConfig(installation_kw=5, battery_kwh=2.0)
    state = SimulationState(battery_level_kwh=0.5)
    flow = scenario.step(state, 1.0, 4.0, NOON, cfg)
    assert flow.charged_solar == pytest.approx(1.5)
    assert flow.exported_solar == pytest.approx(1.5)
    assert state.battery_level_kwh == pytest.approx(2.0)


def test_export_cap_resets_on_new_local_day():
    cfg = SystemConfig(installation_kw=5, daily_export_limit_kwh=5.0)
    state = SimulationState()
    first = scenario.step(state, 0.0, 3.0, NOON, cfg)
    second = scenario.step(state, 0.0, 3.0, NOON + pd.Timedelta(hours=1), cfg)
    next_day = scenario.step(state, 0.0, 3.0, NOON + pd.Timedelta(days=1), cfg)
    assert (first.exported_solar, second.exported_solar) == (3.0, 2.0)
    assert second.unused_solar == 1.0
    assert next_day.exported_solar == 3.0


def test_cost_uses_peak_window_and_feed_in():
    cfg = SystemConfig(
        installation_kw=5,
        peak_c_per_kwh=40.0,
        off_peak_c_per_kwh=20.0,
        feed_in_c_per_kwh=10.0,
        peak_start="16:00",
        peak_end="21:00",
    )
    peak = scenario.step(SimulationState(), 2.0, 0.0, NOON.replace(hour=17), cfg)
    assert peak.cost == pytest.approx(0.80)
    assert peak.baseline_cost == pytest.approx(0.80)

    day = scenario.step(SimulationState(), 1.0, 3.0, NOON, cfg)
    # no grid import, 2 kWh exported at 10c
    assert day.cost == pytest.approx(-0.20)
    assert day.baseline_cost == pytest.approx(0.20)


def test_off_peak_falls_back_to_peak_rate():
    cfg = SystemConfig(installation_kw=5, peak_c_per_kwh=30.0)
    night = scenario.step(SimulationState(), 1.0, 0.0, NOON.replace(hour=2), cfg)
    assert night.cost == pytest.approx(0.30)


def test_simulate_conserves_energy_and_bounds(canon_consumption, canon_generation):
    cfg = SystemConfig(installation_kw=6.6, battery_kwh=5.0, daily_export_limit_kwh=3.0)
    result = scenario.simulate(canon_consumption, canon_generation, cfg)
    f = result.flows

    assert np.allclose(
        f["consumption_solar"] + f["consumption_battery"] + f["consumption_grid"],
        f["total_consumption"],
        atol=1e-6,
    )
    assert np.allclose(
        f["exported_solar"] + f["unused_solar"] + f["consumption_solar"] + f["charged_solar"],
        f["generation_solar"],
        atol=1e-6,
    )
    assert (f["battery_level"] >= 0).all()
    assert (f["battery_level"] <= 5.0 + 1e-9).all()
    daily_export = f["exported_solar"].groupby(f.index.date).sum()
    assert (daily_export <= 3.0 + 1e-9).all()
    assert f["battery_level"].max() == pytest.approx(5.0)


def test_generation_identity_without_battery(canon_consumption, canon_generation, flat_config):
    f = scenario.simulate(canon_consumption, canon_generation, flat_config).flows
    assert np.allclose(
        f["exported_solar"] + f["unused_solar"] + f["consumption_solar"],
        f["generation_solar"],
        atol=1e-6,
    )


def test_short_generation_counts_as_zero(canon_consumption, canon_generation, flat_config):
    result = scenario.simulate(canon_consumption, canon_generation.iloc[:48], flat_config)
    f = result.flows
    assert len(f) == len(canon_consumption)
    assert (f["generation_solar"].iloc[48:] == 0).all()
    assert f["consumption_grid"].iloc[48:].sum() == pytest.approx(0.5 * 48 * 6)


def test_generation_only_exports_everything(canon_generation, flat_config):
    result = scenario.simulate(None, canon_generation, flat_config)
    f = result.flows
    assert not result.has_consumption
    assert f["total_consumption"].sum() == 0.0
    assert np.allclose(f["exported_solar"], f["generation_solar"])


def test_simulate_needs_some_input(flat_config):
    with pytest.raises(ConfigError):
        scenario.simulate(None, None, flat_config)


def test_runs_do_not_share_state(canon_consumption, canon_generation):
    cfg = SystemConfig(installation_kw=6.6, battery_kwh=5.0, daily_export_limit_kwh=3.0)
    a = scenario.simulate(canon_consumption, canon_generation, cfg)
    b = scenario.simulate(canon_consumption, canon_generation, cfg)
    pd.testing.assert_frame_equal(a.flows, b.flows)
    assert a.flows["battery_level"].iloc[0] == 0.0


def test_flow_result_series_is_canonical(canon_consumption, canon_generation, flat_config):
    result = scenario.simulate(canon_consumption, canon_generation, flat_config)
    grid = result.series("consumption_grid")
    assert list(grid.columns) == ["kwh", "cadence_min"]
    assert grid.index.name == "t_start"
    with pytest.raises(KeyError):
        result.series("nope")


def test_run_from_daily_irradiance(canon_consumption):
    cfg = SystemConfig(installation_kw=6.6, battery_kwh=0.0, peak_c_per_kwh=30.0)
    days = pd.date_range("2025-01-01", periods=7, freq="D")
    daily = pd.Series(80.0, index=days)
    loc = Location(latitude=-27.4698, longitude=153.0251)

    result = scenario.run(canon_consumption, daily, cfg, loc, tz=TZ)
    f = result.flows
    assert len(f) == len(canon_consumption)
    # 80/1000 * 44 m2 * 3.0 * 0.85 per day
    per_day = f["generation_solar"].groupby(f.index.date).sum()
    assert per_day.to_numpy() == pytest.approx(np.full(7, 0.08 * 44 * 3.0 * 0.85))
    night = f.between_time("00:00", "03:30")
    assert (night["generation_solar"] == 0).all()


def test_compare_sizes_scales_generation(canon_consumption):
    cfg = SystemConfig(installation_kw=3.0)
    days = pd.date_range("2025-01-01", periods=7, freq="D")
    daily = pd.Series(80.0, index=days)
    loc = Location(latitude=-27.4698, longitude=153.0251)

    results = scenario.compare_sizes(canon_consumption, daily, cfg, [3.0, 6.0], loc, tz=TZ)
    g3 = results[3.0].flows["generation_solar"].sum()
    g6 = results[6.0].flows["generation_solar"].sum()
    assert g6 == pytest.approx(2 * g3)


def test_run_rejects_naive_intraday_irradiance(canon_consumption, flat_config):
    naive = pd.Series(1.0, index=pd.date_range("2025-01-01", periods=4, freq="30min"))
    with pytest.raises(ValueError):
        scenario.run(canon_consumption, naive, flat_config)


def test_generation_on_other_cadence_is_resampled(canon_consumption, flat_config):
    idx = pd.date_range("2025-01-01", periods=48 * 7 * 6, freq="5min", tz=TZ)
    gen = utils.build_canon_frame(idx, np.full(len(idx), 0.1), cadence_min=5)
    f = scenario.simulate(canon_consumption, gen, flat_config).flows
    assert f["generation_solar"].to_numpy() == pytest.approx(np.full(len(f), 0.6))
