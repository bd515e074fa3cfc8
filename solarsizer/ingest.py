from __future__ import annotations
import logging
import os
from typing import IO, Optional

import pandas as pd

from . import canon, normalize, parsers, utils, validate
from .parsers.nem12 import usage_for_suffix
from .types import CanonFrame

try:
    from nemreader import NEMFile
except Exception:
    NEMFile = None

logger = logging.getLogger(__name__)


def read_rows(source: str | os.PathLike | IO[str]) -> list:
    """
    Read an uploaded export into raw rows for the parser selector.

    NEM12 files (leading '100' record) come back as lists of cells; anything
    else is header-keyed dicts.
    """
    rows = utils.read_csv_rows(source)
    if not rows:
        return []
    if rows[0][0].strip() == "100":
        return rows
    header = [h.strip() for h in rows[0]]
    return [dict(zip(header, (c.strip() for c in r))) for r in rows[1:]]


def load(
    source: str | os.PathLike | IO[str],
    period_min: int = canon.DEFAULT_CADENCE_MIN,
    *,
    tz: str = canon.DEFAULT_TZ,
    reference: Optional[pd.Series] = None,
    year: Optional[int] = None,
) -> CanonFrame:
    """Sniff the export dialect and return the canonical consumption series."""
    rows = read_rows(source)
    parser = parsers.select_parser(rows)
    return parser.parse(rows, period_min, tz=tz, reference=reference, year=year)


def _normalise(
    df: pd.DataFrame,
    period_min: int,
    reference: Optional[pd.Series],
    year: Optional[int],
) -> CanonFrame:
    series = normalize.aggregate_to_interval(df, period_min)
    series = normalize.filter_last_year(series, year=year)
    series = normalize.pad_missing_dates(series, period_min, reference)
    validate.assert_canon(series)
    return series


def _auto_rename(df: pd.DataFrame) -> pd.DataFrame:
    new = df.copy()

    # 1) If index is already datetime-like, just name it t_start
    if isinstance(new.index, pd.DatetimeIndex):
        new.index.name = canon.INDEX_NAME
    else:
        # 2) Otherwise try to find a timestamp column and set as index
        cols = {c.lower(): c for c in new.columns}
        tcol = next((cols[k] for k in canon.COMMON_TIMESTAMP_NAMES if k in cols), None)
        if tcol is None:
            raise ValueError(
                "No timestamp column found and index is not datetime. "
                "Expected one of: t_start, timestamp, time, ts, datetime, date."
            )
        new = new.rename(columns={tcol: canon.INDEX_NAME}).set_index(canon.INDEX_NAME)
        new.index = pd.to_datetime(new.index)

    # 3) Standardize energy column name if needed
    if "kwh" not in new.columns:
        for candidate in ("energy", "value", "consumption"):
            if candidate in new.columns:
                new = new.rename(columns={candidate: "kwh"})
                break

    return new


def from_dataframe(
    df: pd.DataFrame,
    period_min: int = canon.DEFAULT_CADENCE_MIN,
    *,
    tz: str = canon.DEFAULT_TZ,
    reference: Optional[pd.Series] = None,
    year: Optional[int] = None,
) -> CanonFrame:
    """
    Normalise a user-provided frame to canon:
      - index: tz-aware 't_start' (naive stamps are local wall time in tz)
      - columns: kwh (non-negative), cadence_min
    """
    df = _auto_rename(df)
    if "kwh" not in df.columns:
        raise ValueError("Missing required column: kwh")

    df = df.assign(kwh=pd.to_numeric(df["kwh"], errors="coerce").abs())
    df = df[df["kwh"].notna()]
    df = utils.ensure_tz_aware_index(df.sort_index(), tz)
    df = df[df.index.notna()]

    cols = ["kwh"] + (["usage_kind"] if "usage_kind" in df.columns else [])
    return _normalise(df[cols], period_min, reference, year)


def from_nem12(
    file_like: IO[bytes] | str,
    period_min: int = canon.DEFAULT_CADENCE_MIN,
    *,
    tz: str = canon.DEFAULT_TZ,
    reference: Optional[pd.Series] = None,
    year: Optional[int] = None,
) -> CanonFrame:
    """
    Parse a NEM12 file via nemreader.NEMFile.get_data_frame() and normalise
    the import channels to a canonical consumption series.
    """
    if NEMFile is None:
        raise RuntimeError(
            "nemreader is not installed. Install nemreader to use from_nem12."
        )

    nf = NEMFile(file_like)
    raw = nf.get_data_frame()
    # columns: nmi, suffix, serno, t_start, t_end, value, quality, evt_code, evt_desc
    if raw is None or raw.empty:
        return utils.empty_canon_frame(tz, period_min)

    suffix = raw["suffix"].astype(str).str.upper()
    imports = raw[~suffix.str.startswith("B")]
    if imports.empty:
        logger.warning("NEM12 file has no import channels")
        return utils.empty_canon_frame(tz, period_min)

    df = pd.DataFrame(
        {
            "kwh": imports["value"].astype(float).abs().to_numpy(),
            "usage_kind": imports["suffix"]
            .astype(str)
            .map(usage_for_suffix)
            .to_numpy(),
        },
        index=pd.DatetimeIndex(utils.safe_localize_series(imports["t_start"], tz)),
    )
    df.index.name = canon.INDEX_NAME
    df = df[df.index.notna()]
    logger.info("Read %d NEM12 import readings", len(df))
    return _normalise(df, period_min, reference, year)
