import csv
import io
import json

import numpy as np
import pytest

from eqmatch.export import (
    EXPORT_FORMATS,
    band_q,
    export_file_extension,
    q_to_octaves,
    render_export,
)


@pytest.fixture
def correction(make_profile):
    gains = np.zeros(31)
    gains[0] = 1.234
    gains[17] = -2.5
    gains[30] = 0.005
    return make_profile(gains, confidence=0.8)


def test_every_format_renders(correction):
    assert set(EXPORT_FORMATS) == {"reaper", "eqapo", "json", "txt", "csv"}
    for name in EXPORT_FORMATS:
        text = render_export(correction, name)
        assert text.endswith("\n")


def test_third_octave_q():
    # Third-octave bands have Q = 1 / (2^(1/6) - 2^(-1/6)) ~ 4.32.
    assert q_to_octaves(4.318) == pytest.approx(1.0 / 3.0, abs=1e-3)


def test_eqapo_lines(correction):
    lines = render_export(correction, "eqapo").splitlines()
    filters = [line for line in lines if line.startswith("Filter")]

    assert len(filters) == 31
    assert filters[0] == f"Filter 1: ON PK Fc 20 Hz Gain 1.23 dB Q {band_q(correction.bands[0]):.2f}"
    assert filters[17].startswith("Filter 18: ON PK Fc 1000 Hz Gain -2.50 dB Q 4.32")
    assert "Gain 0.01 dB" in filters[30] or "Gain 0.00 dB" in filters[30]


def test_text_report_keeps_band_order(correction):
    lines = render_export(correction, "txt").splitlines()

    assert lines[0] == "EQ Settings:"
    bands = lines[2:]
    assert len(bands) == 31
    assert bands[17] == "  1000 Hz:  -2.50 dB (Q: 4.32)"
    frequencies = [int(line.split("Hz")[0]) for line in bands]
    assert frequencies == sorted(frequencies)


def test_csv_columns(correction):
    rows = list(csv.reader(io.StringIO(render_export(correction, "csv"))))

    assert rows[0] == ["frequency_hz", "gain_db", "q", "bandwidth_hz", "confidence"]
    assert len(rows) == 32
    assert rows[18][0] == "1000"
    assert float(rows[18][1]) == pytest.approx(-2.5)
    assert float(rows[18][4]) == pytest.approx(0.8)


def test_json_dump(correction):
    data = json.loads(render_export(correction, "json"))

    assert len(data["bands"]) == 31
    assert data["bands"][17]["gain_db"] == pytest.approx(-2.5)
    assert data["bands"][17]["q"] == pytest.approx(4.318, abs=1e-3)


def test_reaper_chain(correction):
    text = render_export(correction, "reaper")
    lines = text.splitlines()

    assert lines[0] == "<FXCHAIN"
    assert "ReaEQ" in text
    assert lines[-1] == ">"
    # 1 kHz band, gain -2.5 dB on a +-18 dB slider
    assert f"  {17 * 5 + 2} {(-2.5 + 18.0) / 36.0:.6f}" in lines


def test_format_names_are_case_insensitive(correction):
    assert render_export(correction, "EQAPO") == render_export(correction, "eqapo")


def test_unknown_format_raises(correction):
    with pytest.raises(ValueError):
        render_export(correction, "wavelab")
    with pytest.raises(ValueError):
        export_file_extension("wavelab")


def test_file_extensions():
    assert export_file_extension("reaper") == ".RfxChain"
    assert export_file_extension("csv") == ".csv"
