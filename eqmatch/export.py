# eqmatch/export.py
"""
Render a correction profile into text consumed by other tools.

Formats:
- "reaper": REAPER FX chain (.RfxChain) with one ReaEQ band per profile band
- "eqapo":  Equalizer APO parametric config, one peaking filter per band
- "json":   structured dump of bands and descriptors
- "txt":    human-readable, one line per band
- "csv":    frequency, gain, Q, bandwidth, confidence

All formats keep band order. Frequencies are written as integer Hz, gains
with at least two decimals. Q is frequency / bandwidth.
"""

from __future__ import annotations

import csv
import io
import json
import math
from typing import Callable, Dict, List

from eqmatch.profile import BandProfile, EQProfile, profile_to_dict

# ReaEQ slider ranges used for normalised parameters.
REAPER_FREQ_MIN_HZ = 20.0
REAPER_FREQ_MAX_HZ = 20000.0
REAPER_GAIN_RANGE_DB = 18.0
REAPER_MAX_BANDWIDTH_OCTAVES = 4.0
REAPER_BAND_TYPE_PEAK = 0.4

FILE_EXTENSIONS: Dict[str, str] = {
    "reaper": ".RfxChain",
    "eqapo": ".txt",
    "json": ".json",
    "txt": ".txt",
    "csv": ".csv",
}


def band_q(band: BandProfile) -> float:
    if band.bandwidth <= 0.0:
        raise ValueError(f"Band at {band.frequency:.1f} Hz has non-positive bandwidth {band.bandwidth}")
    return band.frequency / band.bandwidth


def q_to_octaves(q: float) -> float:
    """
    Bandwidth in octaves of a peaking filter with the given Q.
    """
    return 2.0 * math.asinh(1.0 / (2.0 * q)) / math.log(2.0)


def _clip01(value: float) -> float:
    return min(1.0, max(0.0, value))


# --------------------------------------------------------------------------------------
# Formats
# --------------------------------------------------------------------------------------


def _render_reaper(profile: EQProfile) -> str:
    log_min = math.log2(REAPER_FREQ_MIN_HZ)
    log_max = math.log2(REAPER_FREQ_MAX_HZ)

    lines: List[str] = [
        "<FXCHAIN",
        "WNDRECT 0 0 0 0",
        "SHOW 0",
        "LASTSEL 0",
        "DOCKED 0",
        '<VST "VST: ReaEQ (Cockos)" ReaEQ.vst.dylib 0 "" 1919247729',
    ]

    for band_index, band in enumerate(profile.bands):
        base = band_index * 5
        freq_norm = _clip01((math.log2(band.frequency) - log_min) / (log_max - log_min))
        gain_norm = _clip01((band.gain_db + REAPER_GAIN_RANGE_DB) / (2.0 * REAPER_GAIN_RANGE_DB))
        width_norm = _clip01(q_to_octaves(band_q(band)) / REAPER_MAX_BANDWIDTH_OCTAVES)

        lines.append(f"  {base} 1.0")
        lines.append(f"  {base + 1} {freq_norm:.6f}")
        lines.append(f"  {base + 2} {gain_norm:.6f}")
        lines.append(f"  {base + 3} {width_norm:.6f}")
        lines.append(f"  {base + 4} {REAPER_BAND_TYPE_PEAK}")

    lines.extend([">", "FLOATPOS 0 0 0 0", "FXID {GUID}", "WAK 0 0", ">"])
    return "\n".join(lines) + "\n"


def _render_eqapo(profile: EQProfile) -> str:
    lines = ["# EQ match correction (peaking filters)"]
    for band_index, band in enumerate(profile.bands, start=1):
        lines.append(
            f"Filter {band_index}: ON PK Fc {round(band.frequency)} Hz "
            f"Gain {band.gain_db:.2f} dB Q {band_q(band):.2f}"
        )
    return "\n".join(lines) + "\n"


def _render_json(profile: EQProfile) -> str:
    data = profile_to_dict(profile)
    for entry, band in zip(data["bands"], profile.bands):
        entry["q"] = band_q(band)
    return json.dumps(data, indent=2) + "\n"


def _render_text(profile: EQProfile) -> str:
    lines = ["EQ Settings:", ""]
    for band in profile.bands:
        lines.append(
            f"{round(band.frequency):>6d} Hz: {band.gain_db:>+6.2f} dB (Q: {band_q(band):.2f})"
        )
    return "\n".join(lines) + "\n"


def _render_csv(profile: EQProfile) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["frequency_hz", "gain_db", "q", "bandwidth_hz", "confidence"])
    for band in profile.bands:
        writer.writerow(
            [
                f"{round(band.frequency)}",
                f"{band.gain_db:.4f}",
                f"{band_q(band):.4f}",
                f"{band.bandwidth:.2f}",
                f"{band.confidence:.3f}",
            ]
        )
    return buffer.getvalue()


_RENDERERS: Dict[str, Callable[[EQProfile], str]] = {
    "reaper": _render_reaper,
    "eqapo": _render_eqapo,
    "json": _render_json,
    "txt": _render_text,
    "csv": _render_csv,
}

EXPORT_FORMATS = tuple(_RENDERERS)


def render_export(correction_profile: EQProfile, format: str) -> str:
    key = format.strip().lower()
    if key not in _RENDERERS:
        raise ValueError(f"Unknown export format: {format!r} (expected one of {', '.join(EXPORT_FORMATS)})")
    return _RENDERERS[key](correction_profile)


def export_file_extension(format: str) -> str:
    key = format.strip().lower()
    if key not in FILE_EXTENSIONS:
        raise ValueError(f"Unknown export format: {format!r}")
    return FILE_EXTENSIONS[key]
