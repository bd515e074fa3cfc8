from __future__ import annotations
from typing import Dict, List, Literal, NamedTuple, Optional, TypedDict
from dataclasses import dataclass, field
from datetime import date

import pandas as pd
from pydantic import BaseModel, Field

from . import canon

UsageKind = Literal[
    "consumption",
    "generation",
    "grid_import",
    "controlled_load_import",
    "grid_export_solar",
]
DaySet = Literal["ALL", "MF", "MS"]
ReportingPeriod = Literal["minute", "hour", "day", "week", "month", "year"]

_HHMM = r"^(([01]\d|2[0-3]):[0-5]\d|24:00)$"


# Canon DataFrame
class CanonFrame(pd.DataFrame):
    """
    Strongly-typed canonical reading series.

    Expected:
      - DatetimeIndex named 't_start', tz-aware, ascending, unique
      - Columns: ['kwh', 'cadence_min'] (+ optional 'usage_kind')
    """

    @property
    def _constructor(self):
        return CanonFrame

    @property
    def kwh(self) -> pd.Series:
        return self["kwh"]

    @property
    def cadence_min(self) -> pd.Series:
        return self["cadence_min"]


## Inputs
class Location(BaseModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    model_config = {"frozen": True}


class SystemConfig(BaseModel):
    installation_kw: float = Field(ge=1.0, le=50.0)
    battery_kwh: float = Field(default=0.0, ge=0.0)
    peak_c_per_kwh: Optional[float] = Field(default=None, ge=0.0)
    off_peak_c_per_kwh: Optional[float] = Field(default=None, ge=0.0)
    feed_in_c_per_kwh: Optional[float] = Field(default=None, ge=0.0)
    daily_export_limit_kwh: Optional[float] = Field(default=None, ge=0.0)
    peak_start: str = Field(default="07:00", pattern=_HHMM)
    peak_end: str = Field(default="23:00", pattern=_HHMM)
    peak_days: DaySet = "ALL"
    model_config = {"frozen": True}


class SolarConstants(BaseModel):
    """
    Calibration constants for irradiance → kWh conversion.

    panel_efficiency is deliberately left at 3.0 (300%). It only yields
    plausible kWh figures together with irradiance_multiplier and the
    NASA POWER daily values, which are kWh/m²/day and not the Wh/m²/day the
    conversion assumes. Resolve both against verified irradiance units
    before changing either.
    """

    panel_efficiency: float = Field(default=3.0, gt=0.0)
    system_losses: float = Field(default=0.15, ge=0.0, lt=1.0)
    panel_power_density_w_per_m2: float = Field(default=150.0, gt=0.0)
    irradiance_multiplier: float = Field(default=16.0, gt=0.0)
    fallback_daily_irradiance: float = Field(default=5.0, gt=0.0)
    model_config = {"frozen": True}


## Derived
class SolarWindow(NamedTuple):
    """Minutes since UTC midnight of the requested date; may be <0 or >1440."""

    sunrise_min_utc: float
    sunset_min_utc: float
    solar_noon_min_utc: float


## Simulation
@dataclass
class SimulationState:
    """Running state of a single simulation; never shared between runs."""

    battery_level_kwh: float = 0.0
    daily_exported_kwh: float = 0.0
    current_day: Optional[date] = None


@dataclass
class FlowStep:
    total_consumption: float
    generation_solar: float
    consumption_solar: float = 0.0
    consumption_battery: float = 0.0
    consumption_grid: float = 0.0
    exported_solar: float = 0.0
    unused_solar: float = 0.0
    charged_solar: float = 0.0
    battery_level: float = 0.0
    cost: float = 0.0
    baseline_cost: float = 0.0


@dataclass
class FlowResult:
    """
    Per-period energy flows of one simulation run.

    flows: DataFrame indexed by 't_start' with canon.FLOW_COLS.
    """

    flows: pd.DataFrame
    cadence_min: int
    has_consumption: bool = True
    has_generation: bool = True
    meta: dict = field(default_factory=dict)

    def series(self, name: str) -> CanonFrame:
        """One flow column as a canonical reading series."""
        if name not in self.flows.columns:
            raise KeyError(f"Unknown flow column: {name!r}")
        out = pd.DataFrame(
            {
                "kwh": self.flows[name].astype(float),
                "cadence_min": int(self.cadence_min),
            },
            index=self.flows.index,
        )
        out.index.name = canon.INDEX_NAME
        return CanonFrame(out)

    @property
    def consumption_grid(self) -> pd.Series:
        return self.flows["consumption_grid"]

    @property
    def consumption_solar(self) -> pd.Series:
        return self.flows["consumption_solar"]

    @property
    def consumption_battery(self) -> pd.Series:
        return self.flows["consumption_battery"]

    @property
    def exported_solar(self) -> pd.Series:
        return self.flows["exported_solar"]

    @property
    def unused_solar(self) -> pd.Series:
        return self.flows["unused_solar"]

    @property
    def cost(self) -> pd.Series:
        return self.flows["cost"]


class SummaryPayload(TypedDict):
    meta: Dict[str, object]
    energy: Dict[str, float]
    self_consumption_pct: Optional[float]
    self_sufficiency_pct: Optional[float]
    surplus_days: int
    deficit_days: int
    financials: Dict[str, Optional[float]]
    months: List[Dict[str, float | str]]
