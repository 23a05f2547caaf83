# eqmatch/io.py
"""
Audio file I/O utilities for EQ matching.

Design goals:
- readable and explicit
- robust handling of common WAV encodings (uint8, int16, int32, float32)
- other containers (FLAC, OGG, AIFF, ...) decoded through soundfile
- consistent internal format: float32 in range [-1, 1]
- one analysis channel per recording (mono downmix)
- a single canonical analysis sample rate, so that two recordings always
  produce band profiles with the same FFT bin layout

The analysis engine itself never touches files; this module is the decoder
that feeds it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from math import gcd
from pathlib import Path

import numpy as np

try:
    from scipy.io import wavfile
    from scipy.signal import resample_poly
except ImportError as import_error:  # pragma: no cover
    raise ImportError(
        "scipy is required for WAV reading and resampling. Install with: pip install scipy"
    ) from import_error

try:
    import soundfile as sf
except ImportError as import_error:  # pragma: no cover
    raise ImportError(
        "soundfile is required for non-WAV audio. Install with: pip install soundfile"
    ) from import_error


DEFAULT_ANALYSIS_SAMPLE_RATE_HZ = 48_000

logger = logging.getLogger("eqmatch.io")


@dataclass(frozen=True)
class LoadedAudio:
    """
    Container for loaded audio with a consistent internal representation.
    """
    samples: np.ndarray          # shape (num_samples, num_channels), float32 in [-1, 1]
    sample_rate_hz: int          # as stored in the file
    file_path: Path              # source file


def _convert_integer_pcm_to_float32(samples: np.ndarray) -> np.ndarray:
    """
    Convert integer PCM to float32 in [-1, 1].

    Supports:
    - uint8: offset binary, centre 128
    - int16: scale by 32768
    - int32: scale by 2147483648

    Note:
    Some WAV files store 24-bit PCM in an int32 container.
    This function still produces a valid float range mapping.
    """
    if samples.dtype == np.uint8:
        return (samples.astype(np.float32) - 128.0) / 128.0

    if samples.dtype == np.int16:
        return (samples.astype(np.float32) / 32768.0)

    if samples.dtype == np.int32:
        return (samples.astype(np.float32) / 2147483648.0)

    raise ValueError(f"Unsupported integer PCM dtype: {samples.dtype}")


def convert_wav_samples_to_float32(samples_from_wav: np.ndarray) -> np.ndarray:
    """
    Convert WAV samples to float32 in [-1, 1] regardless of source dtype.

    - float32/float64: passed through (clipped to [-1,1])
    - uint8/int16/int32: scaled appropriately
    """
    if np.issubdtype(samples_from_wav.dtype, np.floating):
        float_samples = samples_from_wav.astype(np.float32, copy=False)
        return np.clip(float_samples, -1.0, 1.0).astype(np.float32)

    if np.issubdtype(samples_from_wav.dtype, np.integer):
        float_samples = _convert_integer_pcm_to_float32(samples_from_wav)
        return np.clip(float_samples, -1.0, 1.0).astype(np.float32)

    raise ValueError(f"Unsupported WAV dtype: {samples_from_wav.dtype}")


def ensure_2d_channel_array(float_samples: np.ndarray) -> np.ndarray:
    """
    Ensure samples are shaped (num_samples, num_channels).
    """
    if float_samples.ndim == 1:
        return float_samples.reshape((-1, 1))

    if float_samples.ndim == 2:
        return float_samples

    raise ValueError(f"Expected 1D or 2D audio array, got shape {float_samples.shape}")


def downmix_to_mono(float_samples: np.ndarray) -> np.ndarray:
    """
    Downmix stereo (or multichannel) to mono by averaging channels.
    Returns shape (num_samples,).
    """
    float_samples = ensure_2d_channel_array(float_samples)

    mono_samples = np.mean(float_samples, axis=1, dtype=np.float64)
    return mono_samples.astype(np.float32)


def resample_to_rate(
    samples: np.ndarray,
    source_rate_hz: int,
    target_rate_hz: int,
) -> np.ndarray:
    """
    Resample a 1D signal with a polyphase FIR (scipy.signal.resample_poly).

    The up/down factors are reduced by their gcd, so 44.1k -> 48k runs as
    160/147.
    """
    if source_rate_hz <= 0 or target_rate_hz <= 0:
        raise ValueError(
            f"Sample rates must be positive, got source={source_rate_hz} target={target_rate_hz}"
        )

    if samples.ndim != 1:
        raise ValueError("resample_to_rate expects a 1D mono array.")

    if int(source_rate_hz) == int(target_rate_hz) or samples.size == 0:
        return samples.astype(np.float32, copy=False)

    divisor = gcd(int(source_rate_hz), int(target_rate_hz))
    up = int(target_rate_hz) // divisor
    down = int(source_rate_hz) // divisor

    resampled = resample_poly(samples.astype(np.float64, copy=False), up, down)
    return resampled.astype(np.float32)


def load_wav_file(wav_file_path: str | Path) -> LoadedAudio:
    """
    Load a WAV file, convert to float32 and ensure shape (N, C).

    Typical usage:
        loaded = load_wav_file("reference.wav")
        mono = prepare_analysis_samples(loaded)
    """
    wav_file_path = Path(wav_file_path)

    sample_rate_hz, samples_from_wav = wavfile.read(str(wav_file_path))

    float_samples = convert_wav_samples_to_float32(samples_from_wav)
    float_samples = ensure_2d_channel_array(float_samples)

    if float_samples.shape[0] == 0:
        raise ValueError(f"WAV file contains no samples: {wav_file_path}")

    logger.debug(
        "Loaded %s: %d samples, %d channel(s), %d Hz",
        wav_file_path,
        float_samples.shape[0],
        float_samples.shape[1],
        int(sample_rate_hz),
    )

    return LoadedAudio(
        samples=float_samples.astype(np.float32, copy=False),
        sample_rate_hz=int(sample_rate_hz),
        file_path=wav_file_path,
    )


def load_soundfile(audio_file_path: str | Path) -> LoadedAudio:
    """
    Load any container libsndfile understands (FLAC, OGG, AIFF, ...) as float32 (N, C).
    """
    audio_file_path = Path(audio_file_path)
    if not audio_file_path.is_file():
        raise FileNotFoundError(f"No such audio file: {audio_file_path}")

    try:
        samples, sample_rate_hz = sf.read(str(audio_file_path), dtype="float32", always_2d=True)
    except RuntimeError as error:
        raise ValueError(f"Could not decode audio file {audio_file_path}: {error}") from error

    if samples.shape[0] == 0:
        raise ValueError(f"Audio file contains no samples: {audio_file_path}")

    logger.debug(
        "Loaded %s via soundfile: %d samples, %d channel(s), %d Hz",
        audio_file_path,
        samples.shape[0],
        samples.shape[1],
        int(sample_rate_hz),
    )

    return LoadedAudio(
        samples=np.clip(samples, -1.0, 1.0).astype(np.float32, copy=False),
        sample_rate_hz=int(sample_rate_hz),
        file_path=audio_file_path,
    )


def load_audio_file(audio_file_path: str | Path) -> LoadedAudio:
    """
    Load an audio file by suffix: .wav through scipy, everything else through soundfile.
    """
    audio_file_path = Path(audio_file_path)
    if audio_file_path.suffix.lower() == ".wav":
        return load_wav_file(audio_file_path)
    return load_soundfile(audio_file_path)


def prepare_analysis_samples(
    loaded_audio: LoadedAudio,
    target_sample_rate_hz: int = DEFAULT_ANALYSIS_SAMPLE_RATE_HZ,
) -> np.ndarray:
    """
    Return the single analysis channel: mono downmix at the analysis rate.
    """
    mono_samples = downmix_to_mono(loaded_audio.samples)

    if loaded_audio.sample_rate_hz != target_sample_rate_hz:
        logger.info(
            "Resampling %s from %d Hz to %d Hz",
            loaded_audio.file_path,
            loaded_audio.sample_rate_hz,
            target_sample_rate_hz,
        )
        mono_samples = resample_to_rate(
            mono_samples,
            source_rate_hz=loaded_audio.sample_rate_hz,
            target_rate_hz=target_sample_rate_hz,
        )

    return mono_samples


def write_wav_file_pcm16(
    output_file_path: str | Path,
    samples_float32: np.ndarray,
    sample_rate_hz: int,
) -> Path:
    """
    Write mono float32 samples to 16-bit PCM WAV.

    Accepted shapes: (num_samples,) or (num_samples, 1).
    """
    output_file_path = Path(output_file_path)
    if output_file_path.suffix.lower() != ".wav":
        output_file_path = output_file_path.with_suffix(".wav")

    samples_float32 = np.asarray(samples_float32, dtype=np.float32)

    if samples_float32.ndim == 2 and samples_float32.shape[1] == 1:
        samples_float32 = samples_float32[:, 0]

    if samples_float32.ndim != 1:
        raise ValueError(f"Expected mono (N) or (N,1). Got shape {samples_float32.shape}")

    clipped_samples = np.clip(samples_float32, -1.0, 1.0)
    int16_samples = (clipped_samples * 32767.0).astype(np.int16)

    output_file_path.parent.mkdir(parents=True, exist_ok=True)
    wavfile.write(str(output_file_path), int(sample_rate_hz), int16_samples)
    return output_file_path
