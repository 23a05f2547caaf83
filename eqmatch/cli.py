# eqmatch/cli.py
"""
Command Line Interface (CLI) for spectral profiling and EQ matching.

Usage examples:
  python -m eqmatch --help
  python -m eqmatch profile --input reference.wav --save reference_profile.json
  python -m eqmatch profile --input reference.flac --bands
  python -m eqmatch match --reference reference.wav --input mix.wav --preset vocals
  python -m eqmatch match --reference reference_profile.json --input mix.wav \
      --format eqapo --export correction.txt --plot plots/mix --no_show
  python -m eqmatch generate --output-dir demo

Notes:
- Audio is analysed as a mono downmix at 48 kHz (resampled when needed).
- --reference / --input accept audio files (WAV, FLAC, OGG, AIFF, ...) or profile
  JSON written by `profile --save`.
- Exit status is 2 for bad arguments or unreadable inputs.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np

from eqmatch.bands import build_band_layout, summarise_band_layout_text
from eqmatch.export import EXPORT_FORMATS, export_file_extension, render_export
from eqmatch.frames import SUPPORTED_WINDOWS
from eqmatch.io import (
    DEFAULT_ANALYSIS_SAMPLE_RATE_HZ,
    load_audio_file,
    prepare_analysis_samples,
    write_wav_file_pcm16,
)
from eqmatch.matching import (
    MATCH_PRESETS,
    match,
    match_config_from_preset,
    summarise_match_result_text,
)
from eqmatch.preview import apply_correction
from eqmatch.profile import (
    AnalysisSettings,
    EQProfile,
    analyse_pair,
    build_profile,
    load_profile_json,
    save_profile_json,
    summarise_profile_text,
)
from eqmatch.signals import generate_demo_pair

logger = logging.getLogger("eqmatch.cli")

EXIT_USAGE_ERROR = 2


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    top_level_parser = argparse.ArgumentParser(
        prog="eqmatch",
        description="Third-octave spectral profiles and EQ matching between two recordings.",
    )

    verbosity_group = top_level_parser.add_mutually_exclusive_group()
    verbosity_group.add_argument(
        "--verbose",
        action="store_true",
        help="Log progress (INFO level).",
    )
    verbosity_group.add_argument(
        "--quiet",
        action="store_true",
        help="Only log errors.",
    )

    subparsers = top_level_parser.add_subparsers(
        dest="command_name",
        required=True,
        help="Command to run. Use: eqmatch <command> --help",
    )

    # ------------------------------------------------------------------
    # profile
    # ------------------------------------------------------------------
    profile_parser = subparsers.add_parser(
        "profile",
        help="Analyse one audio file into a band profile.",
    )

    profile_parser.add_argument(
        "--input",
        dest="input_audio_file_path",
        type=str,
        required=True,
        help="Path to input audio file: WAV, FLAC, OGG, AIFF, ... (any channel count; downmixed to mono).",
    )

    profile_parser.add_argument(
        "--save",
        dest="save_profile_path",
        type=str,
        default=None,
        help="Write the profile as JSON to this path.",
    )

    profile_parser.add_argument(
        "--bands",
        dest="show_band_layout",
        action="store_true",
        help="Also print the band table (centre and edge frequencies).",
    )

    _add_analysis_arguments(profile_parser)

    # ------------------------------------------------------------------
    # match
    # ------------------------------------------------------------------
    match_parser = subparsers.add_parser(
        "match",
        help="Compute the correction that moves --input towards --reference.",
    )

    match_parser.add_argument(
        "--reference",
        dest="reference_path",
        type=str,
        required=True,
        help="Reference audio file or saved profile JSON.",
    )

    match_parser.add_argument(
        "--input",
        dest="input_path",
        type=str,
        required=True,
        help="Input audio file or saved profile JSON.",
    )

    match_parser.add_argument(
        "--preset",
        dest="preset_name",
        type=str,
        choices=sorted(MATCH_PRESETS),
        default="balanced",
        help="Starting configuration; the options below override it (default: balanced).",
    )

    match_parser.add_argument(
        "--intensity",
        dest="intensity",
        type=float,
        default=None,
        help="Fraction of the gap to correct, 0..1.",
    )

    match_parser.add_argument(
        "--max-correction",
        dest="max_correction",
        type=float,
        default=None,
        help="Per-band clamp in dB (symmetric).",
    )

    match_parser.add_argument(
        "--smoothing",
        dest="smoothing_factor",
        type=float,
        default=None,
        help="Smoothing across bands, 0..1.",
    )

    match_parser.add_argument(
        "--no-psychoacoustic",
        dest="no_psychoacoustic",
        action="store_true",
        help="Disable loudness-contour weighting of the gap.",
    )

    match_parser.add_argument(
        "--no-preserve-dynamics",
        dest="no_preserve_dynamics",
        action="store_true",
        help="Do not scale corrections down when the input is more dynamic than the reference.",
    )

    match_parser.add_argument(
        "--format",
        dest="export_format",
        type=str,
        choices=EXPORT_FORMATS,
        default=None,
        help="Export format. Printed to stdout unless --export is given (default for --export: txt).",
    )

    match_parser.add_argument(
        "--export",
        dest="export_path",
        type=str,
        default=None,
        help="Write the correction to this file.",
    )

    match_parser.add_argument(
        "--plot",
        dest="plot_basename",
        type=str,
        nargs="?",
        const="",
        default=None,
        help="Plot the match. With a basename, save <basename>_match.png; without, show it.",
    )

    match_parser.add_argument(
        "--no_show",
        action="store_true",
        help="Do not open an interactive plot window.",
    )

    match_parser.add_argument(
        "--preview",
        dest="preview_wav_file_path",
        type=str,
        default=None,
        help="Write the input filtered through the correction (requires an audio --input).",
    )

    _add_analysis_arguments(match_parser)

    # ------------------------------------------------------------------
    # generate
    # ------------------------------------------------------------------
    generate_parser = subparsers.add_parser(
        "generate",
        help="Write a demo reference/input WAV pair with a known tonal difference.",
    )

    generate_parser.add_argument(
        "--output-dir",
        dest="output_directory",
        type=str,
        required=True,
        help="Directory for reference.wav and input.wav.",
    )

    generate_parser.add_argument(
        "--duration",
        dest="duration_seconds",
        type=float,
        default=4.0,
        help="Length of each file in seconds (default: 4).",
    )

    generate_parser.add_argument(
        "--seed",
        dest="random_seed",
        type=int,
        default=0,
        help="Noise seed (default: 0).",
    )

    return top_level_parser.parse_args(argv)


def _add_analysis_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--fft-size",
        dest="fft_size",
        type=int,
        default=None,
        help="Analysis frame length in samples (power of two; hop is half of it).",
    )

    parser.add_argument(
        "--window",
        dest="window_name",
        type=str,
        choices=SUPPORTED_WINDOWS,
        default=None,
        help="Analysis window (default: blackmanharris).",
    )


def configure_logging(parsed_arguments: argparse.Namespace) -> None:
    if parsed_arguments.verbose:
        level = logging.INFO
    elif parsed_arguments.quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def analysis_settings_from_arguments(parsed_arguments: argparse.Namespace) -> AnalysisSettings:
    settings = AnalysisSettings()
    frame_changes = {}

    if parsed_arguments.fft_size is not None:
        fft_size = int(parsed_arguments.fft_size)
        frame_changes["n_fft"] = fft_size
        frame_changes["hop_length"] = max(1, fft_size // 2)

    if parsed_arguments.window_name is not None:
        frame_changes["window"] = str(parsed_arguments.window_name)

    if frame_changes:
        settings = replace(settings, frames=replace(settings.frames, **frame_changes))
    return settings


def _is_profile_json(path: Path) -> bool:
    return path.suffix.lower() == ".json"


def _load_analysis_samples(path: Path) -> np.ndarray:
    loaded_audio = load_audio_file(path)
    return prepare_analysis_samples(loaded_audio, DEFAULT_ANALYSIS_SAMPLE_RATE_HZ)


def load_match_inputs(
    reference_path: Path,
    input_path: Path,
    settings: AnalysisSettings,
) -> Tuple[EQProfile, EQProfile, Optional[np.ndarray]]:
    """
    Profiles for both sides plus the input samples (None when the input is a JSON profile).
    """
    reference_samples = None if _is_profile_json(reference_path) else _load_analysis_samples(reference_path)
    input_samples = None if _is_profile_json(input_path) else _load_analysis_samples(input_path)

    if reference_samples is not None and input_samples is not None:
        reference_profile, input_profile = analyse_pair(
            reference_samples, input_samples, DEFAULT_ANALYSIS_SAMPLE_RATE_HZ, settings
        )
        return reference_profile, input_profile, input_samples

    if reference_samples is None:
        reference_profile = load_profile_json(reference_path)
    else:
        reference_profile = build_profile(reference_samples, DEFAULT_ANALYSIS_SAMPLE_RATE_HZ, settings)

    if input_samples is None:
        input_profile = load_profile_json(input_path)
    else:
        input_profile = build_profile(input_samples, DEFAULT_ANALYSIS_SAMPLE_RATE_HZ, settings)

    return reference_profile, input_profile, input_samples


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def run_profile_command(parsed_arguments: argparse.Namespace) -> None:
    input_path = Path(parsed_arguments.input_audio_file_path)
    settings = analysis_settings_from_arguments(parsed_arguments)

    samples = _load_analysis_samples(input_path)
    profile = build_profile(samples, DEFAULT_ANALYSIS_SAMPLE_RATE_HZ, settings)

    print(summarise_profile_text(profile, name=input_path.name))

    if parsed_arguments.show_band_layout:
        print(summarise_band_layout_text(build_band_layout(settings.layout)))

    if parsed_arguments.save_profile_path is not None:
        written = save_profile_json(profile, parsed_arguments.save_profile_path)
        print(f"Wrote profile: {written}")


def run_match_command(parsed_arguments: argparse.Namespace) -> None:
    settings = analysis_settings_from_arguments(parsed_arguments)

    config = match_config_from_preset(
        parsed_arguments.preset_name,
        intensity=parsed_arguments.intensity,
        max_correction=parsed_arguments.max_correction,
        smoothing_factor=parsed_arguments.smoothing_factor,
        use_psychoacoustic=False if parsed_arguments.no_psychoacoustic else None,
        preserve_dynamics=False if parsed_arguments.no_preserve_dynamics else None,
    )

    reference_profile, input_profile, input_samples = load_match_inputs(
        Path(parsed_arguments.reference_path),
        Path(parsed_arguments.input_path),
        settings,
    )

    result = match(reference_profile, input_profile, config)
    print(summarise_match_result_text(result))

    if parsed_arguments.export_path is not None:
        export_format = parsed_arguments.export_format or "txt"
        export_path = Path(parsed_arguments.export_path)
        if export_path.suffix == "":
            export_path = export_path.with_suffix(export_file_extension(export_format))
        export_path.parent.mkdir(parents=True, exist_ok=True)
        export_path.write_text(render_export(result.correction_profile, export_format), encoding="utf-8")
        print(f"Wrote {export_format} export: {export_path}")
    elif parsed_arguments.export_format is not None:
        print(render_export(result.correction_profile, parsed_arguments.export_format), end="")

    if parsed_arguments.plot_basename is not None:
        # matplotlib is only imported when a plot is requested.
        from eqmatch.plotting import plot_match_result

        output_basename = parsed_arguments.plot_basename or None
        written_plot = plot_match_result(
            result,
            output_basename=output_basename,
            show_interactive=not bool(parsed_arguments.no_show),
            title=f"{Path(parsed_arguments.input_path).name} -> {Path(parsed_arguments.reference_path).name}",
        )
        if written_plot is not None:
            print(f"Wrote plot: {written_plot}")

    if parsed_arguments.preview_wav_file_path is not None:
        if input_samples is None:
            raise ValueError("--preview needs --input to be an audio file, not a profile JSON")
        filtered = apply_correction(input_samples, DEFAULT_ANALYSIS_SAMPLE_RATE_HZ, result.correction_profile)
        peak = float(np.max(np.abs(filtered))) if filtered.size else 0.0
        if peak > 1.0:
            logger.warning("Preview peaks at %.2f (above full scale); it will be clipped", peak)
        written = write_wav_file_pcm16(
            parsed_arguments.preview_wav_file_path, filtered, DEFAULT_ANALYSIS_SAMPLE_RATE_HZ
        )
        print(f"Wrote preview WAV: {written}")


def run_generate_command(parsed_arguments: argparse.Namespace) -> None:
    output_dir = Path(parsed_arguments.output_directory)

    reference, coloured_input = generate_demo_pair(
        sample_rate_hz=DEFAULT_ANALYSIS_SAMPLE_RATE_HZ,
        duration_seconds=float(parsed_arguments.duration_seconds),
        random_seed=int(parsed_arguments.random_seed),
    )

    for name, signal in (("reference", reference), ("input", coloured_input)):
        written = write_wav_file_pcm16(output_dir / f"{name}.wav", signal.samples, signal.sample_rate_hz)
        print(f"Wrote: {written}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parsed_arguments = parse_arguments(argv)
    configure_logging(parsed_arguments)

    command_name = str(parsed_arguments.command_name)

    try:
        if command_name == "profile":
            run_profile_command(parsed_arguments)
        elif command_name == "match":
            run_match_command(parsed_arguments)
        elif command_name == "generate":
            run_generate_command(parsed_arguments)
        else:
            raise ValueError(f"Unknown command: {command_name}")
    except (ValueError, OSError) as error:
        print(f"error: {error}", file=sys.stderr)
        return EXIT_USAGE_ERROR

    return 0


if __name__ == "__main__":
    sys.exit(main())
