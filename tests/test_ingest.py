import io

import numpy as np
import pandas as pd
import pytest

from solarsizer import ingest, validate
from solarsizer.exceptions import NoSuitableParser

TZ = "Australia/Brisbane"


def _csv(rows):
    return io.StringIO("\n".join(",".join(r) for r in rows) + "\n")


def test_read_rows_keys_by_header():
    buf = io.StringIO("Usage Type,Amount Used\nConsumption, 1.5 \n")
    assert ingest.read_rows(buf) == [{"Usage Type": "Consumption", "Amount Used": "1.5"}]


def test_read_rows_keeps_nem12_as_lists(nem12_rows):
    rows = ingest.read_rows(_csv(nem12_rows))
    assert rows[0][:2] == ["100", "NEM12"]
    assert rows[-1] == ["900"]


def test_load_nem12_text(nem12_rows):
    out = ingest.load(_csv(nem12_rows), 30, tz=TZ, year=2024)
    validate.assert_contiguous(out)
    assert len(out) == 48
    # the B1 export channel is ignored
    assert out["kwh"].sum() == pytest.approx(24.0)
    assert set(out["usage_kind"]) == {"grid_import"}


def test_load_origin_csv():
    buf = io.StringIO(
        "Usage Type,Amount Used,From (date/time),To (date/time)\n"
        "Consumption,1.0,2024-07-01 00:00,2024-07-01 00:29\n"
        "Consumption,2.0,2024-07-01 00:30,2024-07-01 01:29\n"
    )
    out = ingest.load(buf, 30, tz=TZ, year=2024)
    assert out["kwh"].tolist() == pytest.approx([1.0, 1.0, 1.0])


def test_load_rejects_unknown_format():
    with pytest.raises(NoSuitableParser):
        ingest.load(io.StringIO("a,b\n1,2\n"), 30, tz=TZ)


def test_from_dataframe_renames_and_localizes():
    df = pd.DataFrame(
        {
            "timestamp": pd.date_range("2024-07-01", periods=24, freq="15min"),
            "energy": np.full(24, 0.25),
        }
    )
    out = ingest.from_dataframe(df, 30, tz=TZ, year=2024)
    validate.assert_canon(out)
    assert len(out) == 12
    assert out["kwh"].tolist() == pytest.approx([0.5] * 12)
    assert str(out.index.tz) == TZ


def test_from_dataframe_requires_energy():
    df = pd.DataFrame({"timestamp": pd.date_range("2024-07-01", periods=2, freq="30min")})
    with pytest.raises(ValueError):
        ingest.from_dataframe(df, tz=TZ)


class FauxNEMFile:
    def __init__(self, file_like):
        self.file_like = file_like

    def get_data_frame(self):
        t = pd.date_range("2024-07-01", periods=4, freq="30min")
        return pd.DataFrame(
            {
                "nmi": "Q1234567890",
                "suffix": ["E1"] * 4 + ["B1"] * 4,
                "t_start": list(t) * 2,
                "value": [0.1, 0.2, 0.3, 0.4] + [9.0] * 4,
            }
        )


def test_from_nem12_uses_import_channels(monkeypatch):
    monkeypatch.setattr(ingest, "NEMFile", FauxNEMFile)
    out = ingest.from_nem12(io.BytesIO(b""), 30, tz=TZ, year=2024)
    assert out["kwh"].tolist() == pytest.approx([0.1, 0.2, 0.3, 0.4])
    assert set(out["usage_kind"]) == {"grid_import"}
    assert out.index[0] == pd.Timestamp("2024-07-01 00:00", tz=TZ)


def test_from_nem12_without_nemreader(monkeypatch):
    monkeypatch.setattr(ingest, "NEMFile", None)
    with pytest.raises(RuntimeError):
        ingest.from_nem12(io.BytesIO(b""))
