"""Audio control utilities for Rouse."""

from __future__ import annotations

import logging
import math
import os
import re
import shutil
import subprocess  # nosec B404 - subprocess used for pactl interactions
import wave
from pathlib import Path

_LOGGER = logging.getLogger("rouse.audio")
_ALARM_FILENAME = "rouse-alarm.wav"
_SAMPLE_RATE = 48_000
_ALARM_FREQUENCY_HZ = 880
_ALARM_MAX_AMPLITUDE = 30_000
_ALARM_DURATION_SECONDS = 0.25
_ALARM_DECAY_RATE = 3.0
_ALARM_FADE_IN_SECONDS = 0.02
_ALARM_GAP_SECONDS = 0.15
_ALARM_PULSES = 3
_PLAYERS = ("pw-play", "paplay", "aplay")


def _runtime_env() -> dict[str, str]:
    env = os.environ.copy()
    env.setdefault("XDG_RUNTIME_DIR", f"/run/user/{os.getuid()}")
    return env


def _run_pactl(args: list[str]) -> subprocess.CompletedProcess[str] | None:
    try:
        result = subprocess.run(  # nosec B603 B607 - hardcoded command array
            ["pactl", *args],
            capture_output=True,
            text=True,
            check=True,
            env=_runtime_env(),
        )
        return result
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        _LOGGER.debug("[audio] pactl %s failed: %s", " ".join(args), exc)
        return None


def _alarm_sample_path() -> Path:
    runtime_dir = Path(_runtime_env()["XDG_RUNTIME_DIR"])
    return runtime_dir / _ALARM_FILENAME


def _write_alarm_pulses(wav_file: wave.Wave_write) -> None:
    samples = max(1, int(_SAMPLE_RATE * _ALARM_DURATION_SECONDS))
    fade_in_samples = max(1, int(_SAMPLE_RATE * _ALARM_FADE_IN_SECONDS))
    silence = (0).to_bytes(2, byteorder="little", signed=True) * int(_SAMPLE_RATE * _ALARM_GAP_SECONDS)
    for _ in range(_ALARM_PULSES):
        frames = bytearray()
        for i in range(samples):
            t = i / _SAMPLE_RATE
            decay = math.exp(-_ALARM_DECAY_RATE * t / _ALARM_DURATION_SECONDS)
            fade_in = min(1.0, i / fade_in_samples)
            angle = 2 * math.pi * _ALARM_FREQUENCY_HZ * t
            value = int(fade_in * decay * _ALARM_MAX_AMPLITUDE * math.sin(angle))
            frames += value.to_bytes(2, byteorder="little", signed=True)
        wav_file.writeframes(bytes(frames))
        wav_file.writeframes(silence)


def render_alarm_sample(destination: Path) -> Path | None:
    """Render the built-in alarm tone to the provided path."""
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with wave.open(str(destination), "wb") as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(_SAMPLE_RATE)
            _write_alarm_pulses(wav_file)
        return destination
    except OSError as exc:
        _LOGGER.debug("[audio] Unable to create alarm sample at %s: %s", destination, exc)
        return None


def ensure_alarm_sample(destination: Path | None = None) -> Path | None:
    """Return the rendered built-in alarm tone, creating it on first use."""
    path = destination or _alarm_sample_path()
    if path.exists():
        return path
    return render_alarm_sample(path)


def find_audio_sink() -> str | None:
    """Find the audio sink to use for volume control.

    Prefers the default sink, falls back to any available non-monitor sink.

    Returns:
        The sink name or None if not found.
    """
    result = _run_pactl(["get-default-sink"])
    if result:
        default_sink = result.stdout.strip()
        if default_sink:
            _LOGGER.debug("[audio] Detected default sink: %s", default_sink)
            return default_sink

    result = _run_pactl(["list", "sinks", "short"])
    if result:
        for line in result.stdout.split("\n"):
            if line.strip():
                parts = line.split()
                if len(parts) > 1:
                    sink_name = parts[1]
                    if not sink_name.endswith(".monitor"):
                        _LOGGER.debug("[audio] Using fallback sink: %s", sink_name)
                        return sink_name
    _LOGGER.warning("[audio] No audio sinks detected (XDG_RUNTIME_DIR=%s)", _runtime_env().get("XDG_RUNTIME_DIR"))
    return None


def get_current_volume(sink: str | None = None) -> int | None:
    """Get current volume percentage (0-100) from the audio sink, or None if unavailable."""
    if sink is None:
        sink = find_audio_sink()
    if not sink:
        return None
    result = _run_pactl(["get-sink-volume", sink])
    if not result:
        return None
    # Output format: "Volume: front-left: 32768 /  50% / -18.06 dB,   front-right: ..."
    match = re.search(r"(\d+)%", result.stdout)
    if match:
        return int(match.group(1))
    return None


def set_volume(percent: int, sink: str | None = None, *, allow_zero: bool = False) -> bool:
    """Set audio volume using pactl.

    Args:
        percent: Volume percentage (0-100), will be clamped to valid range.
        sink: Optional sink name. If None, will find the default sink.
        allow_zero: When True, allows setting volume to 0%. Default False to prevent accidental muting.

    Returns:
        True if successful, False otherwise.
    """
    if sink is None:
        sink = find_audio_sink()
    if not sink:
        return False

    percent = max(0, min(100, percent))
    if not allow_zero and percent == 0:
        _LOGGER.warning("[audio] Prevented setting volume to 0%% (use allow_zero=True to override)")
        percent = 20

    result = _run_pactl(["set-sink-volume", sink, f"{percent}%"])
    if not result:
        return False
    if percent > 0:
        _run_pactl(["set-sink-mute", sink, "0"])
    return True


def _find_player() -> str | None:
    for candidate in _PLAYERS:
        if shutil.which(candidate):
            return candidate
    return None


def spawn_sample(sample_path: Path | None) -> subprocess.Popen[bytes] | None:
    """Start playing a sample without waiting; the caller owns the returned process."""
    if not sample_path or not sample_path.exists():
        return None
    player = _find_player()
    if not player:
        _LOGGER.debug("[audio] No audio player available")
        return None
    try:
        return subprocess.Popen(  # nosec B603 - hardcoded command array
            [player, str(sample_path)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=_runtime_env(),
        )
    except OSError as exc:
        _LOGGER.debug("[audio] Failed to play sample: %s", exc)
        return None
