# eqmatch/__init__.py
"""
eqmatch package

Spectral profiling and EQ matching for audio recordings.

This package contains:
- STFT framing and third-octave band aggregation (eqmatch.frames, eqmatch.bands)
- band profiles with loudness / dynamics / spectral descriptors (eqmatch.profile)
- the match engine and quality score (eqmatch.matching, eqmatch.quality)
- exporters and an offline EQ preview (eqmatch.export, eqmatch.preview)
- WAV loading, plotting, test signals and the CLI (eqmatch.io, eqmatch.plotting,
  eqmatch.signals, eqmatch.cli)

Typical usage:
    from eqmatch import build_profile, match
    result = match(build_profile(ref, 48000), build_profile(mix, 48000))
"""

from .profile import (
    AnalysisSettings,
    BandProfile,
    EQProfile,
    analyse_pair,
    build_profile,
    load_profile_json,
    save_profile_json,
)
from .matching import (
    MATCH_PRESETS,
    MatchConfig,
    MatchResult,
    MatchTuning,
    match,
    match_config_from_preset,
)
from .quality import score
from .export import EXPORT_FORMATS, render_export
from .preview import apply_correction

__all__ = [
    "AnalysisSettings",
    "BandProfile",
    "EQProfile",
    "analyse_pair",
    "build_profile",
    "load_profile_json",
    "save_profile_json",
    "MATCH_PRESETS",
    "MatchConfig",
    "MatchResult",
    "MatchTuning",
    "match",
    "match_config_from_preset",
    "score",
    "EXPORT_FORMATS",
    "render_export",
    "apply_correction",
]
