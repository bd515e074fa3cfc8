from __future__ import annotations
from typing import Optional

import pandas as pd

from . import canon, pricing
from .types import FlowResult, SummaryPayload


def _pct(numerator: float, denominator: float) -> Optional[float]:
    if denominator <= 0:
        return None
    return float(min(100.0, 100.0 * numerator / denominator))


def summarise(
    result: FlowResult, installation_cost: Optional[float] = None
) -> SummaryPayload:
    """
    Headline numbers for one simulation run.

    Savings are annualised over the days covered so payback and ROI stay
    meaningful for partial years.
    """
    flows = result.flows
    idx = pd.DatetimeIndex(flows.index)
    start, end = (idx.min(), idx.max()) if len(idx) else (None, None)
    days = int(len(pd.unique(idx.date))) if len(idx) else 0

    totals = {c: float(flows[c].sum()) for c in canon.SUMMABLE_FLOW_COLS}
    generated = totals["generation_solar"]
    consumed = totals["total_consumption"]
    # battery is charged from solar only, so discharge is solar too
    solar_to_load = totals["consumption_solar"] + totals["consumption_battery"]

    surplus_days = deficit_days = 0
    if result.has_consumption and result.has_generation and len(idx):
        daily = flows[["generation_solar", "total_consumption"]].groupby(idx.date).sum()
        net = daily["generation_solar"] - daily["total_consumption"]
        surplus_days = int((net > 0).sum())
        deficit_days = int((net < 0).sum())

    cost = totals["cost"]
    baseline = totals["baseline_cost"]
    savings = baseline - cost
    annual_savings = savings * canon.DAYS_PER_YEAR / days if days else 0.0
    payback_years = roi_pct = None
    if installation_cost is not None and installation_cost > 0:
        if annual_savings > 0:
            payback_years = float(installation_cost / annual_savings)
        roi_pct = float(100.0 * annual_savings / installation_cost)

    months = pricing.monthly_costs(result)
    return {
        "meta": {
            "start": start.isoformat() if start is not None else None,
            "end": end.isoformat() if end is not None else None,
            "days": days,
            "cadence_min": int(result.cadence_min),
        },
        "energy": totals,
        "self_consumption_pct": _pct(solar_to_load, generated),
        "self_sufficiency_pct": _pct(solar_to_load, consumed),
        "surplus_days": surplus_days,
        "deficit_days": deficit_days,
        "financials": {
            "cost": cost,
            "baseline_cost": baseline,
            "savings": savings,
            "annual_savings": annual_savings,
            "installation_cost": installation_cost,
            "payback_years": payback_years,
            "roi_pct": roi_pct,
        },
        "months": months.to_dict(orient="records"),  # type: ignore[typeddict-item]
    }
