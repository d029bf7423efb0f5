"""Sound catalog and resolution helpers for built-in and custom alarm sounds."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from rouse import audio as rouse_audio

DEFAULT_SOUND = "system_alarm"

_DEFAULT_CUSTOM_DIR = Path.home() / ".local" / "share" / "rouse" / "sounds"
_ALLOWED_EXTENSIONS = {".wav", ".mp3", ".ogg"}


@dataclass(frozen=True)
class SoundInfo:
    sound_id: str
    label: str
    path: Path
    built_in: bool


@dataclass(frozen=True)
class SoundSettings:
    default_alarm: str
    custom_dir: Path = _DEFAULT_CUSTOM_DIR

    @classmethod
    def with_defaults(
        cls,
        *,
        custom_dir: Path | None = None,
        default_alarm: str = DEFAULT_SOUND,
    ) -> SoundSettings:
        return cls(
            default_alarm=default_alarm,
            custom_dir=custom_dir or _DEFAULT_CUSTOM_DIR,
        )


# Built-in tones are rendered on demand rather than shipped as files.
_BUILT_IN: dict[str, tuple[str, Callable[[], Path | None]]] = {
    DEFAULT_SOUND: ("Classic Beep", rouse_audio.ensure_alarm_sample),
}


def _label_for(stem: str) -> str:
    return stem.replace("_", " ").replace("-", " ").title()


class SoundLibrary:
    """Resolve sound identifiers to concrete files."""

    def __init__(self, *, custom_dir: Path | None = None) -> None:
        self.custom_dir = custom_dir or _DEFAULT_CUSTOM_DIR

    def built_in_sounds(self) -> list[SoundInfo]:
        sounds: list[SoundInfo] = []
        for sound_id, (label, render) in _BUILT_IN.items():
            path = render()
            if path is None:
                continue
            sounds.append(SoundInfo(sound_id=sound_id, label=label, path=path, built_in=True))
        return sounds

    def custom_sounds(self) -> list[SoundInfo]:
        sounds: list[SoundInfo] = []
        if not self.custom_dir.exists():
            return sounds
        for candidate in sorted(self.custom_dir.glob("*")):
            if not candidate.is_file():
                continue
            if candidate.suffix.lower() not in _ALLOWED_EXTENSIONS:
                continue
            sounds.append(
                SoundInfo(
                    sound_id=candidate.stem,
                    label=_label_for(candidate.stem),
                    path=candidate.resolve(),
                    built_in=False,
                )
            )
        return sounds

    def available_sounds(self) -> list[SoundInfo]:
        """Built-in sounds first, then custom files. A custom file replaces a built-in of the same id."""
        custom = self.custom_sounds()
        custom_ids = {info.sound_id for info in custom}
        return [info for info in self.built_in_sounds() if info.sound_id not in custom_ids] + custom

    def _find_custom(self, sound_id: str) -> SoundInfo | None:
        for info in self.custom_sounds():
            if info.sound_id == sound_id:
                return info
        return None

    def _find_built_in(self, sound_id: str) -> SoundInfo | None:
        entry = _BUILT_IN.get(sound_id)
        if entry is None:
            return None
        label, render = entry
        path = render()
        if path is None:
            return None
        return SoundInfo(sound_id=sound_id, label=label, path=path, built_in=True)

    def resolve_sound(self, sound_id: str | None) -> SoundInfo | None:
        """Resolve a sound id or path into a SoundInfo."""
        if not sound_id:
            return None

        candidate_path = Path(sound_id)
        if candidate_path.suffix.lower() in _ALLOWED_EXTENSIONS and candidate_path.exists():
            return SoundInfo(
                sound_id=sound_id,
                label=candidate_path.stem,
                path=candidate_path.resolve(),
                built_in=False,
            )

        info = self._find_custom(sound_id)
        if info:
            return info
        return self._find_built_in(sound_id)

    def resolve_with_default(self, sound_id: str | None, *, settings: SoundSettings) -> Path | None:
        """Resolve a sound id, falling back to the configured default alarm sound."""
        info = self.resolve_sound(sound_id)
        if info:
            return info.path
        fallback = self.resolve_sound(settings.default_alarm)
        if fallback:
            return fallback.path
        built_in = self._find_built_in(DEFAULT_SOUND)
        return built_in.path if built_in else None

    def ensure_custom_dir(self) -> None:
        """Make sure the custom directory exists."""
        self.custom_dir.mkdir(parents=True, exist_ok=True)
