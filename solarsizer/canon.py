from __future__ import annotations
from typing import Final, Dict

INDEX_NAME: Final[str] = "t_start"
REQUIRED_COLS: Final[list[str]] = ["kwh", "cadence_min"]
OPTIONAL_COLS: Final[list[str]] = ["usage_kind"]
DEFAULT_TZ: Final[str] = "Australia/Brisbane"
DEFAULT_CADENCE_MIN: Final[int] = 30
MINUTES_PER_DAY: Final[int] = 1440
COMMON_TIMESTAMP_NAMES = ("t_start", "timestamp", "time", "ts", "datetime", "date")

# Raw NEM12 suffix/channel → usage kind
CHANNEL_MAP: Dict[str, str] = {
    "E1": "grid_import",
    "E2": "controlled_load_import",
    "B1": "grid_export_solar",
}

# Reporting period → nominal length in minutes (month/year are 30/365 days)
PERIOD_MINUTES: Dict[str, int] = {
    "minute": 1,
    "hour": 60,
    "day": 1440,
    "week": 10080,
    "month": 43200,
    "year": 525600,
}

# Reporting period → calendar-aligned pandas frequency
PERIOD_FREQ: Dict[str, str] = {
    "minute": "1min",
    "hour": "1h",
    "day": "1D",
    "week": "W-MON",
    "month": "1MS",
    "year": "1YS",
}

# Flow result columns, in display order
FLOW_COLS: Final[list[str]] = [
    "total_consumption",
    "generation_solar",
    "consumption_grid",
    "consumption_solar",
    "consumption_battery",
    "exported_solar",
    "unused_solar",
    "charged_solar",
    "battery_level",
    "cost",
    "baseline_cost",
]
# Energy columns that sum when re-bucketed; battery_level is a state, not a flow
SUMMABLE_FLOW_COLS: Final[list[str]] = [c for c in FLOW_COLS if c != "battery_level"]

# Irradiance providers lag real time by a few days
PROVIDER_LAG_DAYS: Final[int] = 5
DAYS_PER_YEAR: Final[int] = 365
