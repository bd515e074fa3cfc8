from __future__ import annotations
import logging
from dataclasses import asdict
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from . import canon, generation, normalize, pricing, solar, utils, validate
from .exceptions import ConfigError, require
from .types import (
    FlowResult,
    FlowStep,
    Location,
    SimulationState,
    SolarConstants,
    SystemConfig,
)

logger = logging.getLogger(__name__)


def step(
    state: SimulationState,
    consumption: float,
    solar_kwh: float,
    ts: pd.Timestamp,
    config: SystemConfig,
    *,
    rate_c_per_kwh: Optional[float] = None,
    has_consumption: bool = True,
) -> FlowStep:
    """
    Allocate one period's energy and advance `state`.

    Order: solar → load, battery → load, grid → load, solar → battery,
    then the remaining solar is exported up to the daily cap and the rest is
    unused. Without consumption data the whole generation goes to the
    export/unused split.
    """
    capacity = config.battery_kwh
    remaining_load = consumption if has_consumption else 0.0
    remaining_solar = solar_kwh
    flow = FlowStep(total_consumption=remaining_load, generation_solar=solar_kwh)

    if has_consumption:
        # 1) solar self-consumption
        flow.consumption_solar = min(remaining_load, remaining_solar)
        remaining_load -= flow.consumption_solar
        remaining_solar -= flow.consumption_solar

        # 2) battery discharge
        if capacity > 0 and state.battery_level_kwh > 0 and remaining_load > 0:
            flow.consumption_battery = min(remaining_load, state.battery_level_kwh)
            state.battery_level_kwh -= flow.consumption_battery
            remaining_load -= flow.consumption_battery

        # 3) grid import
        flow.consumption_grid = remaining_load

        # 4) charge from leftover solar
        if capacity > 0 and state.battery_level_kwh < capacity and remaining_solar > 0:
            flow.charged_solar = min(remaining_solar, capacity - state.battery_level_kwh)
            state.battery_level_kwh += flow.charged_solar
            remaining_solar -= flow.charged_solar

    # 5) export / unused split, cap resets with the local calendar day
    day = ts.date()
    if state.current_day != day:
        state.current_day = day
        state.daily_exported_kwh = 0.0

    limit = config.daily_export_limit_kwh
    if limit is None:
        flow.exported_solar = remaining_solar
    else:
        flow.exported_solar = max(0.0, min(remaining_solar, limit - state.daily_exported_kwh))
        flow.unused_solar = remaining_solar - flow.exported_solar
        state.daily_exported_kwh += flow.exported_solar

    # 6) cost
    rate = pricing.rate_at(ts, config) if rate_c_per_kwh is None else rate_c_per_kwh
    flow.cost, flow.baseline_cost = pricing.period_cost(
        flow.consumption_grid, flow.exported_solar, flow.total_consumption, rate, config
    )
    flow.battery_level = state.battery_level_kwh
    return flow


def _aligned_generation(
    generation_df: pd.DataFrame, index: pd.DatetimeIndex, cadence: int
) -> np.ndarray:
    gen = generation_df
    if utils.series_cadence(gen, cadence) != cadence:
        gen = normalize.aggregate_to_interval(gen, cadence)
    kwh = gen["kwh"].copy()
    kwh.index = pd.DatetimeIndex(kwh.index).tz_convert(index.tz)
    # missing generation counts as zero
    return kwh.reindex(index).fillna(0.0).to_numpy(dtype=float)


def simulate(
    consumption: Optional[pd.DataFrame],
    generation_df: Optional[pd.DataFrame],
    config: SystemConfig,
    *,
    tz: Optional[str] = None,
) -> FlowResult:
    """
    Run the energy flow state machine over canonical consumption and
    generation series (canon in → FlowResult out). Each call owns a fresh
    SimulationState.
    """
    has_consumption = consumption is not None and not consumption.empty
    has_generation = generation_df is not None and not generation_df.empty
    require(
        has_consumption or has_generation,
        "Need a consumption or a generation series to simulate.",
        ConfigError,
    )

    base = consumption if has_consumption else generation_df
    validate.assert_canon(base)
    idx = pd.DatetimeIndex(base.index)
    if tz is not None:
        idx = idx.tz_convert(tz)
    cadence = utils.series_cadence(base)

    load = base["kwh"].to_numpy(dtype=float) if has_consumption else np.zeros(len(idx))
    if has_generation:
        validate.assert_canon(generation_df)
        gen = _aligned_generation(generation_df, idx, cadence)
    else:
        gen = np.zeros(len(idx))

    rates = pricing.period_rates(idx, config)
    state = SimulationState()
    cols = {c: np.zeros(len(idx), dtype=float) for c in canon.FLOW_COLS}

    for i, ts in enumerate(idx):
        flow = step(
            state,
            load[i],
            gen[i],
            ts,
            config,
            rate_c_per_kwh=rates[i],
            has_consumption=has_consumption,
        )
        for name, value in asdict(flow).items():
            cols[name][i] = value

    flows = pd.DataFrame(cols, index=idx)[canon.FLOW_COLS]
    flows.index.name = canon.INDEX_NAME

    logger.debug(
        "Simulated %d periods: grid %.2f kWh, self-consumed %.2f kWh, exported %.2f kWh",
        len(idx),
        flows["consumption_grid"].sum(),
        flows["consumption_solar"].sum(),
        flows["exported_solar"].sum(),
    )
    return FlowResult(
        flows=flows,
        cadence_min=cadence,
        has_consumption=has_consumption,
        has_generation=has_generation,
        meta={"config": config},
    )


def _intraday_irradiance(
    irradiance: pd.Series,
    location: Optional[Location],
    period_min: int,
    tz: str,
) -> pd.Series:
    if location is not None:
        return solar.distribute_irradiance(irradiance, location, period_min, tz)
    if pd.DatetimeIndex(irradiance.index).tz is None:
        raise ValueError(
            "Daily irradiance needs a location; intraday irradiance must be tz-aware."
        )
    return irradiance


def run(
    consumption: Optional[pd.DataFrame],
    irradiance: pd.Series,
    config: SystemConfig,
    location: Optional[Location] = None,
    *,
    tz: str = canon.DEFAULT_TZ,
    constants: Optional[SolarConstants] = None,
) -> FlowResult:
    """
    Irradiance → generation → flows.

    `irradiance` is either daily totals (distributed with `location`) or an
    already distributed tz-aware intraday series.
    """
    period = (
        utils.series_cadence(consumption)
        if consumption is not None and not consumption.empty
        else canon.DEFAULT_CADENCE_MIN
    )
    intraday = _intraday_irradiance(irradiance, location, period, tz)
    gen = generation.irradiance_to_generation(intraday, config.installation_kw, constants)
    result = simulate(consumption, gen, config, tz=tz)
    result.meta["location"] = location
    return result


def compare_sizes(
    consumption: Optional[pd.DataFrame],
    irradiance: pd.Series,
    config: SystemConfig,
    sizes: Iterable[float],
    location: Optional[Location] = None,
    *,
    tz: str = canon.DEFAULT_TZ,
    constants: Optional[SolarConstants] = None,
) -> dict[float, FlowResult]:
    """What-if runs over installation sizes; every run gets its own state."""
    period = (
        utils.series_cadence(consumption)
        if consumption is not None and not consumption.empty
        else canon.DEFAULT_CADENCE_MIN
    )
    intraday = _intraday_irradiance(irradiance, location, period, tz)

    results: dict[float, FlowResult] = {}
    for size in sizes:
        sized = SystemConfig(**{**config.model_dump(), "installation_kw": size})
        results[float(size)] = run(
            consumption, intraday, sized, tz=tz, constants=constants
        )
    return results
