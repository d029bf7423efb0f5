from __future__ import annotations

import wave
from pathlib import Path

import pytest

from rouse import audio, sound_library
from rouse.sound_library import DEFAULT_SOUND, SoundLibrary, SoundSettings


def _write_silence_wav(path: Path) -> None:
    with wave.open(str(path), "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(8000)
        wav_file.writeframes((0).to_bytes(2, byteorder="little", signed=True))


@pytest.fixture
def built_in_sample(tmp_path: Path, monkeypatch) -> Path:
    """Render the built-in tone into tmp_path instead of $XDG_RUNTIME_DIR."""
    sample = tmp_path / "builtin" / "rouse-alarm.wav"
    monkeypatch.setitem(
        sound_library._BUILT_IN, DEFAULT_SOUND, ("Classic Beep", lambda: audio.ensure_alarm_sample(sample))
    )
    return sample


def test_resolve_builtin_default(tmp_path: Path, built_in_sample: Path) -> None:
    library = SoundLibrary(custom_dir=tmp_path / "custom")
    settings = SoundSettings.with_defaults()

    path = library.resolve_with_default(None, settings=settings)

    assert path == built_in_sample
    assert path.exists()


def test_resolve_custom_overrides_builtin(tmp_path: Path, built_in_sample: Path) -> None:
    custom_file = tmp_path / "custom-tone.wav"
    _write_silence_wav(custom_file)

    library = SoundLibrary(custom_dir=tmp_path)
    settings = SoundSettings.with_defaults(default_alarm="custom-tone")

    assert library.resolve_with_default("missing", settings=settings) == custom_file.resolve()
    assert library.resolve_with_default("custom-tone", settings=settings) == custom_file.resolve()


def test_unknown_sound_without_custom_default_falls_back_to_builtin(tmp_path: Path, built_in_sample: Path) -> None:
    library = SoundLibrary(custom_dir=tmp_path / "custom")
    settings = SoundSettings.with_defaults(default_alarm="also-missing")

    assert library.resolve_with_default("nope", settings=settings) == built_in_sample


def test_custom_listing_filters_extensions(tmp_path: Path, built_in_sample: Path) -> None:
    _write_silence_wav(tmp_path / "morning_birds.wav")
    (tmp_path / "notes.txt").write_text("not audio", encoding="utf-8")

    library = SoundLibrary(custom_dir=tmp_path)
    custom = library.custom_sounds()

    assert [info.sound_id for info in custom] == ["morning_birds"]
    assert custom[0].label == "Morning Birds"
    ids = [info.sound_id for info in library.available_sounds()]
    assert ids == [DEFAULT_SOUND, "morning_birds"]


def test_absolute_path_resolves(tmp_path: Path) -> None:
    custom_file = tmp_path / "direct.wav"
    _write_silence_wav(custom_file)

    info = SoundLibrary(custom_dir=tmp_path / "empty").resolve_sound(str(custom_file))

    assert info is not None
    assert info.path == custom_file.resolve()
    assert not info.built_in


def test_empty_id_resolves_to_nothing(tmp_path: Path) -> None:
    assert SoundLibrary(custom_dir=tmp_path).resolve_sound("") is None
