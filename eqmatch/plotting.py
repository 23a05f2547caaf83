# eqmatch/plotting.py
"""
Plotting for EQ match results.

Design goals:
- consistent plot appearance
- explicit labels, units, and titles
- no hidden global matplotlib state
- readable, boring plotting code
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.ticker as mticker

from eqmatch.matching import MatchResult


# -------------------------------------------------------------------
# Global plotting defaults (local, not rcParams-global)
# -------------------------------------------------------------------

DEFAULT_FIGURE_SIZE = (10.0, 6.0)
DEFAULT_DPI = 100
DEFAULT_GRID = True

MAJOR_TICKS_HZ = [20, 50, 100, 200, 500, 1000, 2000, 5000, 10000, 20000]


# -------------------------------------------------------------------
# Figure / axis helpers
# -------------------------------------------------------------------

def create_figure_and_axis(
    title: Optional[str] = None,
    figure_size: Tuple[float, float] = DEFAULT_FIGURE_SIZE,
) -> Tuple[plt.Figure, plt.Axes]:
    """
    Create a matplotlib figure and axis with consistent defaults.
    """
    figure, axis = plt.subplots(figsize=figure_size, dpi=DEFAULT_DPI)

    if title is not None:
        axis.set_title(title)

    axis.grid(DEFAULT_GRID)
    return figure, axis


def finalize_and_show_or_save(
    figure: plt.Figure,
    output_path: Optional[str | Path] = None,
    show_interactive: bool = True,
) -> None:
    """
    Finalise a plot: either show it interactively or save to disk.

    If output_path is provided:
        - the figure is saved as PNG
        - the figure is closed
    Otherwise:
        - the figure is shown interactively (unless show_interactive=False)
    """
    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        figure.savefig(output_path, bbox_inches="tight")
        plt.close(figure)
        return

    if show_interactive:
        plt.show()

    plt.close(figure)


def label_log_frequency_axis(axis: plt.Axes) -> None:
    """
    Log-x frequency axis with human-readable Hz ticks instead of 10^x.
    """
    axis.set_xscale("log")
    axis.set_xticks(MAJOR_TICKS_HZ)

    def _hz_formatter(x, pos):
        if x >= 1000.0:
            return f"{int(x / 1000)}k"
        return f"{int(x)}"

    axis.xaxis.set_major_formatter(mticker.FuncFormatter(_hz_formatter))
    axis.xaxis.set_minor_formatter(mticker.NullFormatter())
    axis.set_xlabel("Frequency (Hz)")


def label_decibel_axis(axis: plt.Axes) -> None:
    axis.set_ylabel("Level (dB)")


# -------------------------------------------------------------------
# Match plot
# -------------------------------------------------------------------

def plot_match_figure(
    result: MatchResult,
    title: Optional[str] = None,
    low_confidence_threshold: float = 0.3,
):
    """
    Normalised reference and input curves plus the correction curve.

    Bands below low_confidence_threshold are drawn as hollow markers on the
    correction curve.
    """
    figure, axis = create_figure_and_axis(title=title)

    correction = result.correction_profile
    frequencies = correction.frequencies
    gains = correction.gains_db
    confidences = correction.confidences

    label_log_frequency_axis(axis)
    label_decibel_axis(axis)

    axis.plot(frequencies, np.asarray(result.reference_normalized), label="reference (normalised)")
    axis.plot(frequencies, np.asarray(result.input_normalized), alpha=0.8, label="input (normalised)")
    axis.plot(frequencies, gains, linewidth=2.0, label="correction")

    weak = confidences < low_confidence_threshold
    axis.scatter(frequencies[~weak], gains[~weak], s=18, zorder=3)
    axis.scatter(frequencies[weak], gains[weak], s=18, facecolors="none", edgecolors="grey", zorder=3)

    axis.axhline(0.0, color="black", linewidth=0.8)
    axis.set_xlim(float(frequencies[0]) / 1.12, float(frequencies[-1]) * 1.12)

    all_values = np.concatenate(
        [np.asarray(result.reference_normalized), np.asarray(result.input_normalized), gains]
    )
    y_low = float(np.percentile(all_values, 1.0))
    y_high = float(np.percentile(all_values, 99.0))
    axis.set_ylim(min(y_low, -1.0) - 3.0, max(y_high, 1.0) + 3.0)

    axis.grid(True, which="both", linestyle=":", linewidth=0.5)
    axis.legend(loc="best", title=f"quality {result.quality_score * 100.0:.0f}%")
    return figure


def plot_match_result(
    result: MatchResult,
    output_basename: Optional[str | Path] = None,
    show_interactive: bool = True,
    title: Optional[str] = None,
) -> Optional[Path]:
    """
    Plot a match result; if output_basename is given, write <basename>_match.png.
    """
    figure = plot_match_figure(result, title=title)

    if output_basename is None:
        output_path = None
    else:
        output_basename = Path(output_basename)
        output_path = output_basename.with_name(f"{output_basename.stem}_match.png")

    finalize_and_show_or_save(
        figure=figure,
        output_path=output_path,
        show_interactive=show_interactive,
    )
    return output_path
