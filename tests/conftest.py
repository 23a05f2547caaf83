import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from eqmatch.bands import build_band_layout
from eqmatch.profile import BandProfile, EQProfile
from eqmatch.signals import generate_noise

SAMPLE_RATE_HZ = 48_000


@pytest.fixture(scope="session")
def white_noise():
    return generate_noise(SAMPLE_RATE_HZ, duration_seconds=2.0, noise_type="white", random_seed=1).samples


@pytest.fixture(scope="session")
def pink_noise():
    return generate_noise(SAMPLE_RATE_HZ, duration_seconds=2.0, noise_type="pink", random_seed=2).samples


@pytest.fixture
def make_profile():
    """
    Build an EQProfile on the default layout from a gain curve.

    Full confidence and equal dynamic range by default, so match() sees only
    the tonal difference.
    """
    layout = build_band_layout()

    def _make(gains_db=None, confidence=1.0, dynamic_range=6.0):
        if gains_db is None:
            gains_db = np.zeros(layout.band_count)
        gains_db = np.asarray(gains_db, dtype=np.float64)
        confidences = np.broadcast_to(np.asarray(confidence, dtype=np.float64), gains_db.shape)
        bands = tuple(
            BandProfile(
                frequency=layout.centre_hz[i],
                gain_db=float(gains_db[i]),
                bandwidth=layout.bandwidth_hz[i],
                confidence=float(confidences[i]),
            )
            for i in range(layout.band_count)
        )
        return EQProfile(
            bands=bands,
            overall_loudness=-20.0,
            dynamic_range=float(dynamic_range),
            spectral_centroid=1000.0,
            spectral_rolloff=8000.0,
        )

    return _make


@pytest.fixture
def band_index_near():
    centres = np.asarray(build_band_layout().centre_hz)

    def _index(frequency_hz: float) -> int:
        return int(np.argmin(np.abs(np.log2(centres / frequency_hz))))

    return _index
