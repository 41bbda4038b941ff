"""Emotion profile catalogue: static data, kept apart from scoring logic.

The shipped catalogue lives in ``data/emotion_profiles.yaml``. Scorers take
any :class:`ProfileCatalogue`, so tests can build small synthetic ones.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import yaml

from cuesense.services.emotion.types import EmotionProfile

logger = logging.getLogger("cuesense.emotion.profiles")

DEFAULT_PROFILES_PATH = Path(__file__).parent / "data" / "emotion_profiles.yaml"

_PROFILE_KEYS = {f.name for f in fields(EmotionProfile)} - {"name"}


@dataclass(frozen=True)
class ProfileCatalogue:
    """Immutable, ordered set of emotion profiles."""
    profiles: Tuple[EmotionProfile, ...]
    version: str = "unversioned"

    def __iter__(self) -> Iterator[EmotionProfile]:
        return iter(self.profiles)

    def __len__(self) -> int:
        return len(self.profiles)

    def names(self) -> List[str]:
        return [p.name for p in self.profiles]

    def get(self, name: str) -> Optional[EmotionProfile]:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None

    @classmethod
    def from_profiles(
        cls,
        profiles: Sequence[EmotionProfile],
        version: str = "unversioned",
    ) -> "ProfileCatalogue":
        return cls(profiles=tuple(profiles), version=version)


def _build_profile(name: str, entry: Dict[str, Any]) -> EmotionProfile:
    if not isinstance(entry, dict):
        raise ValueError(f"Profile {name!r} must be a mapping, got {type(entry).__name__}")
    unknown = set(entry) - _PROFILE_KEYS
    if unknown:
        raise ValueError(f"Profile {name!r} has unknown keys: {sorted(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in entry.items():
        if key == "description":
            values[key] = str(value)
        else:
            values[key] = float(value)
    if values.get("weight", 1.0) <= 0:
        raise ValueError(f"Profile {name!r} weight must be positive")
    return EmotionProfile(name=str(name), **values)


def load_profiles(path: Union[str, Path, None] = None) -> ProfileCatalogue:
    """Parse a profile YAML document.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document is malformed or a profile has unknown keys.
    """
    src = Path(path) if path is not None else DEFAULT_PROFILES_PATH
    if not src.exists():
        raise FileNotFoundError(f"Profile catalogue not found: {src}")
    with open(src, encoding="utf-8") as f:
        doc = yaml.safe_load(f)
    if not isinstance(doc, dict) or not isinstance(doc.get("profiles"), dict):
        raise ValueError(f"{src} must contain a 'profiles' mapping")

    profiles = [_build_profile(name, entry) for name, entry in doc["profiles"].items()]
    catalogue = ProfileCatalogue.from_profiles(profiles, version=str(doc.get("version", "unversioned")))
    logger.info("Loaded %d emotion profiles (version %s)", len(catalogue), catalogue.version)
    return catalogue


@functools.lru_cache(maxsize=1)
def default_catalogue() -> ProfileCatalogue:
    """The shipped catalogue, parsed once per process."""
    return load_profiles(DEFAULT_PROFILES_PATH)
