import numpy as np
import pandas as pd
import pytest

from solarsizer import utils
from solarsizer.types import SystemConfig

TZ = "Australia/Brisbane"


@pytest.fixture
def halfhour_rng():
    return pd.date_range("2025-01-01", periods=48 * 7, freq="30min", tz=TZ)


@pytest.fixture
def canon_consumption(halfhour_rng):
    # 7 days of flat 0.5 kWh per half hour
    return utils.build_canon_frame(
        halfhour_rng, np.full(len(halfhour_rng), 0.5), cadence_min=30
    )


@pytest.fixture
def canon_generation(halfhour_rng):
    # 1 kWh per half hour between 08:00 and 16:00 local, zero otherwise
    hours = halfhour_rng.hour
    kwh = np.where((hours >= 8) & (hours < 16), 1.0, 0.0)
    return utils.build_canon_frame(
        halfhour_rng, kwh, cadence_min=30, usage_kind="generation"
    )


@pytest.fixture
def flat_config():
    return SystemConfig(
        installation_kw=6.6,
        battery_kwh=0.0,
        peak_c_per_kwh=30.0,
        feed_in_c_per_kwh=5.0,
    )


@pytest.fixture
def origin_rows():
    return [
        {
            "Usage Type": "Consumption",
            "Amount Used": "1.2",
            "From (date/time)": "2024-07-01 00:00",
            "To (date/time)": "2024-07-01 00:59",
        },
        {
            "Usage Type": "Consumption",
            "Amount Used": "0.6",
            "From (date/time)": "2024-07-01 01:00",
            "To (date/time)": "2024-07-01 01:29",
        },
        {
            "Usage Type": "Generation",
            "Amount Used": "3.0",
            "From (date/time)": "2024-07-01 01:00",
            "To (date/time)": "2024-07-01 01:29",
        },
    ]


@pytest.fixture
def nem12_rows():
    values_e1 = ["0.5"] * 48
    values_b1 = ["0.2"] * 48
    return [
        ["100", "NEM12", "202407020000", "RETAIL", "DIST"],
        ["200", "Q1234567890", "E1B1", "1", "E1", "N1", "M1", "kWh", "30", ""],
        ["300", "20240701", *values_e1, "A", "", "", "20240702000000", ""],
        ["200", "Q1234567890", "E1B1", "1", "B1", "N1", "M1", "kWh", "30", ""],
        ["300", "20240701", *values_b1, "A", "", "", "20240702000000", ""],
        ["900"],
    ]


@pytest.fixture
def jemena_rows():
    con = {"NMI": "6102000000", "CON/GEN": "CON", "DATE": "01/07/2024"}
    gen = {"NMI": "6102000000", "CON/GEN": "GEN", "DATE": "01/07/2024"}
    for i in range(48):
        start = f"{i // 2:02d}:{(i % 2) * 30:02d}"
        end_min = (i + 1) * 30
        end = f"{end_min // 60 % 24:02d}:{end_min % 60:02d}"
        col = f"{start} - {end}"
        con[col] = "0.25"
        gen[col] = "1.0"
    return [con, gen]


@pytest.fixture
def powerpal_rows():
    stamps = pd.date_range("2024-06-30 14:00", periods=60, freq="1min", tz="UTC")
    return [
        {
            "datetime_utc": ts.strftime("%Y-%m-%d %H:%M:%S"),
            "datetime_local": "",
            "watt_hours": "10",
            "cost_dollars": "0.003",
            "is_peak": "false",
        }
        for ts in stamps
    ]
