from __future__ import annotations
import pandas as pd
from typing import cast

from . import canon, exceptions


def assert_canon(df: pd.DataFrame) -> None:
    if df.index.name != canon.INDEX_NAME:
        raise exceptions.CanonError(f"Index must be '{canon.INDEX_NAME}'.")
    if not isinstance(df.index, pd.DatetimeIndex):
        raise exceptions.CanonError("Index must be a DatetimeIndex.")
    tz_index = cast(pd.DatetimeIndex, df.index)
    if tz_index.tz is None:
        raise exceptions.CanonError("Index must be tz-aware.")
    for col in canon.REQUIRED_COLS:
        if col not in df.columns:
            raise exceptions.CanonError(f"Missing required column '{col}'.")
    if not df.index.is_monotonic_increasing:
        raise exceptions.CanonError("Index must be sorted ascending.")
    if df.index.has_duplicates:
        raise exceptions.CanonError("Timestamps must be unique within a series.")
    if (df["kwh"] < 0).any():
        raise exceptions.CanonError(
            "Negative kWh values detected; energy should be non-negative."
        )
    if df["cadence_min"].nunique() > 1:
        raise exceptions.CanonError("Mixed cadence within a single series.")


def assert_contiguous(df: pd.DataFrame) -> None:
    """Consecutive readings must be exactly one cadence apart."""
    assert_canon(df)
    if len(df) < 2:
        return
    step = pd.Timedelta(minutes=int(df["cadence_min"].iloc[0]))
    gaps = pd.DatetimeIndex(df.index).to_series().diff().dropna()
    if not (gaps == step).all():
        raise exceptions.CanonError(
            f"Series has gaps or irregular spacing (expected every {step})."
        )
