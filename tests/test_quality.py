import numpy as np
import pytest

from eqmatch.quality import score, weighted_rms_deviation


def test_perfect_correction_scores_one(make_profile):
    reference = make_profile(np.linspace(-4.0, 4.0, 31))
    input_profile = make_profile(np.zeros(31))
    correction = make_profile(np.linspace(-4.0, 4.0, 31))

    assert score(reference, input_profile, correction) == pytest.approx(1.0)


def test_three_db_residual_scores_half(make_profile):
    reference = make_profile(np.full(31, 3.0))
    flat = make_profile()

    assert score(reference, flat, flat, scale_db=3.0) == pytest.approx(0.5)


def test_untrusted_bands_do_not_count(make_profile):
    confidence = np.ones(31)
    confidence[5] = 0.0
    gains = np.zeros(31)
    gains[5] = 20.0

    reference = make_profile(gains)
    correction = make_profile(confidence=confidence)

    assert score(reference, make_profile(), correction) == pytest.approx(1.0)


def test_no_confidence_falls_back_to_plain_rms(make_profile):
    untrusted = make_profile(confidence=0.0)

    assert score(make_profile(), make_profile(), untrusted) == pytest.approx(1.0)
    assert score(make_profile(np.full(31, 3.0)), make_profile(), untrusted) == pytest.approx(0.5)


def test_weighted_rms_deviation():
    assert weighted_rms_deviation(np.array([3.0, 4.0]), np.array([1.0, 1.0])) == pytest.approx(np.sqrt(12.5))
    assert weighted_rms_deviation(np.array([3.0, 4.0]), np.array([0.0, 0.0])) == pytest.approx(np.sqrt(12.5))
    assert weighted_rms_deviation(np.zeros(4), np.zeros(4)) == 0.0


def test_invalid_arguments_raise(make_profile):
    with pytest.raises(ValueError):
        score(make_profile(), make_profile(), make_profile(), scale_db=0.0)
