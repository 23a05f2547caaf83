import json

import pytest
import soundfile as sf
from scipy.io import wavfile

from eqmatch.cli import main


@pytest.fixture
def demo_dir(tmp_path):
    assert main(["--quiet", "generate", "--output-dir", str(tmp_path), "--duration", "1.0"]) == 0
    return tmp_path


def test_generate_writes_pair(demo_dir):
    assert (demo_dir / "reference.wav").exists()
    assert (demo_dir / "input.wav").exists()


def test_profile_command_saves_json(demo_dir, capsys):
    saved = demo_dir / "reference.json"

    status = main(["profile", "--input", str(demo_dir / "reference.wav"), "--save", str(saved)])

    assert status == 0
    assert "loudness=" in capsys.readouterr().out
    assert len(json.loads(saved.read_text())["bands"]) == 31


def test_match_command_exports_plots_and_previews(demo_dir, capsys):
    export_path = demo_dir / "correction"
    preview_path = demo_dir / "preview.wav"

    status = main(
        [
            "--quiet",
            "match",
            "--reference", str(demo_dir / "reference.wav"),
            "--input", str(demo_dir / "input.wav"),
            "--preset", "mastering",
            "--format", "eqapo",
            "--export", str(export_path),
            "--plot", str(demo_dir / "plots" / "demo"),
            "--no_show",
            "--preview", str(preview_path),
        ]
    )

    assert status == 0
    output = capsys.readouterr().out
    assert output.startswith("quality=")
    assert (demo_dir / "correction.txt").read_text().count("Filter") == 31
    assert (demo_dir / "plots" / "demo_match.png").exists()
    assert preview_path.exists()


def test_match_accepts_saved_profile(demo_dir, capsys):
    saved = demo_dir / "reference.json"
    assert main(["--quiet", "profile", "--input", str(demo_dir / "reference.wav"), "--save", str(saved)]) == 0

    status = main(
        ["--quiet", "match", "--reference", str(saved), "--input", str(demo_dir / "input.wav"), "--format", "csv"]
    )

    assert status == 0
    assert "frequency_hz,gain_db,q,bandwidth_hz,confidence" in capsys.readouterr().out


def test_preview_needs_audio_input(demo_dir, capsys):
    saved = demo_dir / "input.json"
    assert main(["--quiet", "profile", "--input", str(demo_dir / "input.wav"), "--save", str(saved)]) == 0

    status = main(
        [
            "match",
            "--reference", str(demo_dir / "reference.wav"),
            "--input", str(saved),
            "--preview", str(demo_dir / "preview.wav"),
        ]
    )

    assert status == 2
    assert "error:" in capsys.readouterr().err


def test_bad_intensity_is_a_usage_error(demo_dir, capsys):
    status = main(
        [
            "match",
            "--reference", str(demo_dir / "reference.wav"),
            "--input", str(demo_dir / "input.wav"),
            "--intensity", "1.5",
        ]
    )

    assert status == 2
    assert "intensity" in capsys.readouterr().err


def test_missing_file_is_a_usage_error(tmp_path, capsys):
    assert main(["profile", "--input", str(tmp_path / "nope.wav")]) == 2
    assert capsys.readouterr().err.startswith("error:")


def test_profile_command_prints_band_table(demo_dir, capsys):
    status = main(["profile", "--input", str(demo_dir / "reference.wav"), "--bands"])

    assert status == 0
    output = capsys.readouterr().out
    assert "31 bands" in output
    assert "1000.0 Hz" in output


def test_match_reads_flac_inputs(demo_dir, capsys):
    for name in ("reference", "input"):
        rate, samples = wavfile.read(str(demo_dir / f"{name}.wav"))
        sf.write(str(demo_dir / f"{name}.flac"), samples, rate, subtype="PCM_16")

    status = main(
        [
            "--quiet",
            "match",
            "--reference", str(demo_dir / "reference.flac"),
            "--input", str(demo_dir / "input.flac"),
        ]
    )

    assert status == 0
    assert capsys.readouterr().out.startswith("quality=")
