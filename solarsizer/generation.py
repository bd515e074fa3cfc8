from __future__ import annotations
from typing import Optional

import numpy as np
import pandas as pd

from . import canon, utils
from .exceptions import ConfigError, require
from .types import CanonFrame, SolarConstants


def panel_area_m2(installation_kw: float, constants: SolarConstants) -> float:
    return installation_kw * 1000.0 / constants.panel_power_density_w_per_m2


def irradiance_to_generation(
    irradiance: pd.Series,
    installation_kw: float,
    constants: Optional[SolarConstants] = None,
) -> CanonFrame:
    """
    Per-period PV output (kWh) from a distributed irradiance Series.

    kWh = value/1000 × panel area × panel_efficiency × (1 − system_losses)
    """
    constants = constants or SolarConstants()
    require(
        1.0 <= installation_kw <= 50.0,
        "Installation size must be between 1kW and 50kW",
        ConfigError,
    )
    idx = pd.DatetimeIndex(irradiance.index)
    if idx.tz is None:
        raise ValueError("Index must be timezone-aware for accurate PV alignment.")

    factor = (
        panel_area_m2(installation_kw, constants)
        * constants.panel_efficiency
        * (1.0 - constants.system_losses)
    )
    values = np.nan_to_num(irradiance.to_numpy(dtype=float), nan=0.0)
    kwh = np.clip(values, 0.0, None) / 1000.0 * factor
    cadence = utils.infer_cadence_minutes(idx, default=canon.DEFAULT_CADENCE_MIN)
    return utils.build_canon_frame(idx, kwh, cadence_min=cadence, usage_kind="generation")
