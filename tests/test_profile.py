import json

import numpy as np
import pytest

from eqmatch.profile import (
    analyse_pair,
    build_profile,
    load_profile_json,
    profile_from_dict,
    profile_to_dict,
    save_profile_json,
    summarise_profile_text,
)
from eqmatch.signals import generate_sine

SAMPLE_RATE_HZ = 48_000


def test_profile_has_one_band_per_layout_band(white_noise):
    profile = build_profile(white_noise, SAMPLE_RATE_HZ)

    assert len(profile.bands) == 31
    assert np.all(np.diff(profile.frequencies) > 0.0)
    assert np.all(profile.bandwidths > 0.0)
    assert np.all((profile.confidences >= 0.0) & (profile.confidences <= 1.0))


def test_band_layout_is_identical_across_inputs_and_rates(white_noise, pink_noise):
    a = build_profile(white_noise, SAMPLE_RATE_HZ)
    b = build_profile(pink_noise[:30000], 44_100)

    np.testing.assert_array_equal(a.frequencies, b.frequencies)
    np.testing.assert_array_equal(a.bandwidths, b.bandwidths)


def test_build_profile_is_deterministic(pink_noise):
    assert build_profile(pink_noise, SAMPLE_RATE_HZ) == build_profile(pink_noise, SAMPLE_RATE_HZ)


def test_silence_gives_finite_profile_without_confidence():
    profile = build_profile(np.zeros(SAMPLE_RATE_HZ, dtype=np.float32), SAMPLE_RATE_HZ)

    assert np.all(profile.confidences == 0.0)
    assert np.all(np.isfinite(profile.gains_db))
    assert profile.overall_loudness == pytest.approx(-120.0)
    assert profile.dynamic_range == 0.0
    for value in (profile.spectral_centroid, profile.spectral_rolloff):
        assert np.isfinite(value)


def test_very_short_input_still_profiles():
    profile = build_profile(np.array([0.1, -0.2, 0.3]), SAMPLE_RATE_HZ)

    assert len(profile.bands) == 31
    assert np.all(np.isfinite(profile.gains_db))


def test_pink_noise_is_flat_where_white_noise_tilts(white_noise, pink_noise):
    white = build_profile(white_noise, SAMPLE_RATE_HZ)
    pink = build_profile(pink_noise, SAMPLE_RATE_HZ)

    mid = (white.frequencies >= 250.0) & (white.frequencies <= 8000.0)
    pink_span = np.ptp(pink.gains_db[mid])
    white_span = np.ptp(white.gains_db[mid])

    assert pink_span < 3.0
    assert white_span > 12.0


def test_descriptors_track_spectral_content():
    low = build_profile(generate_sine(SAMPLE_RATE_HZ, 200.0, duration_seconds=1.0).samples, SAMPLE_RATE_HZ)
    high = build_profile(generate_sine(SAMPLE_RATE_HZ, 5000.0, duration_seconds=1.0).samples, SAMPLE_RATE_HZ)

    assert low.spectral_centroid == pytest.approx(200.0, rel=0.1)
    assert high.spectral_centroid == pytest.approx(5000.0, rel=0.1)
    assert low.spectral_rolloff < high.spectral_rolloff
    # A 0.5 amplitude sine has a mean square of 0.125 (about -9 dB).
    assert low.overall_loudness == pytest.approx(-9.03, abs=0.3)


def test_level_change_moves_dynamic_range():
    quiet = 0.01 * np.random.default_rng(3).standard_normal(SAMPLE_RATE_HZ)
    loud = 0.5 * np.random.default_rng(4).standard_normal(SAMPLE_RATE_HZ)
    steady = build_profile(np.concatenate([loud, loud]), SAMPLE_RATE_HZ)
    varying = build_profile(np.concatenate([quiet, loud]), SAMPLE_RATE_HZ)

    assert steady.dynamic_range < 1.0
    assert varying.dynamic_range > 20.0


@pytest.mark.parametrize(
    "samples, sample_rate",
    [
        (np.zeros(0), SAMPLE_RATE_HZ),
        (np.array([0.0, np.nan, 0.1]), SAMPLE_RATE_HZ),
        (np.array([0.0, np.inf]), SAMPLE_RATE_HZ),
        (np.zeros((100, 2)), SAMPLE_RATE_HZ),
        (np.zeros(100), 0),
        (np.zeros(100), -44_100),
        (np.zeros(100), "fast"),
    ],
)
def test_invalid_input_raises(samples, sample_rate):
    with pytest.raises(ValueError):
        build_profile(samples, sample_rate)


def test_column_vector_is_accepted(white_noise):
    column = white_noise.reshape(-1, 1)
    assert build_profile(column, SAMPLE_RATE_HZ) == build_profile(white_noise, SAMPLE_RATE_HZ)


def test_analyse_pair_matches_sequential_builds(white_noise, pink_noise):
    reference, input_profile = analyse_pair(pink_noise, white_noise, SAMPLE_RATE_HZ)

    assert reference == build_profile(pink_noise, SAMPLE_RATE_HZ)
    assert input_profile == build_profile(white_noise, SAMPLE_RATE_HZ)


def test_json_round_trip(tmp_path, pink_noise):
    profile = build_profile(pink_noise, SAMPLE_RATE_HZ)

    path = save_profile_json(profile, tmp_path / "profiles" / "pink.json")

    assert path.exists()
    assert load_profile_json(path) == profile
    assert json.loads(path.read_text())["version"] == 1


def test_profile_from_dict_rejects_bad_data(pink_noise):
    data = profile_to_dict(build_profile(pink_noise, SAMPLE_RATE_HZ))

    with pytest.raises(ValueError):
        profile_from_dict({**data, "version": 99})

    incomplete = dict(data)
    del incomplete["dynamic_range"]
    with pytest.raises(ValueError):
        profile_from_dict(incomplete)


def test_summary_lists_every_band(pink_noise):
    text = summarise_profile_text(build_profile(pink_noise, SAMPLE_RATE_HZ), name="pink")

    assert text.startswith("[pink] loudness=")
    assert len(text.splitlines()) == 32
