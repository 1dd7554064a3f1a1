"""
Named text signals behind a swappable extractor.

Analyzers ask for signals by type ("how many stagnation markers?", "what is
the dominant tone?") and never see the keyword tables themselves, so a
locale or genre can be swapped by loading another signal set.
"""

import re
from abc import ABC, abstractmethod
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from ..errors import ConfigError
from ..utils.text import word_count

DATA_DIR = Path(__file__).parent / "data"


class SignalType(str, Enum):
    FORWARD_MOTION = "forward_motion"
    STAGNATION = "stagnation"
    CONFLICT_ESCALATION = "conflict_escalation"
    RESOLUTION = "resolution"
    RESOLUTION_EVENT = "resolution_event"
    ROMANCE_COMMITMENT = "romance_commitment"
    EMOTION = "emotion"
    SENSORY = "sensory"
    FIGURATIVE = "figurative"
    TENSION = "tension"
    EMOTIONAL_DEPTH = "emotional_depth"
    RELATIONSHIP_PROGRESS = "relationship_progress"
    RELATIONSHIP_REGRESS = "relationship_regress"
    AGENCY = "agency"
    PASSIVITY = "passivity"
    SETTING_MOTIF = "setting_motif"


class SignalSet(BaseModel):
    """Keyword tables for one locale/genre."""

    name: str
    locale: str = "en"
    word_boundaries: bool = True
    markers: Dict[SignalType, List[str]] = Field(default_factory=dict)
    tones: Dict[str, List[str]] = Field(default_factory=dict)
    templates: Dict[str, List[str]] = Field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: Path) -> "SignalSet":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls(**data)


class TextSignalExtractor(ABC):
    """Counts named signals in text."""

    @abstractmethod
    def matches(self, text: str, signal: SignalType) -> List[str]:
        """Return every marker occurrence of ``signal`` in ``text``."""
        ...

    @abstractmethod
    def tone_profile(self, text: str) -> Dict[str, int]:
        """Return hit counts per tone name."""
        ...

    @abstractmethod
    def template(self, kind: str, index: int = 0) -> Optional[str]:
        """Return a locale-specific repair template, if the signal set has one."""
        ...

    @property
    def locale(self) -> str:
        return "en"

    def markers(self, signal: SignalType) -> List[str]:
        """Marker phrases behind ``signal``; empty for extractors without a table."""
        return []

    def count(self, text: str, signal: SignalType) -> int:
        return len(self.matches(text, signal))

    def distinct(self, text: str, signal: SignalType) -> int:
        return len(set(self.matches(text, signal)))

    def density(self, text: str, signal: SignalType) -> float:
        """Marker hits per word."""
        words = word_count(text)
        if words == 0:
            return 0.0
        return self.count(text, signal) / words

    def contains(self, text: str, signal: SignalType) -> bool:
        return bool(self.matches(text, signal))

    def dominant_tone(self, text: str, default: str = "neutral") -> str:
        profile = self.tone_profile(text)
        if not profile or max(profile.values()) == 0:
            return default
        return max(profile.items(), key=lambda kv: (kv[1], kv[0]))[0]


class KeywordSignalExtractor(TextSignalExtractor):
    """Regex keyword matching driven by a SignalSet."""

    def __init__(self, signal_set: SignalSet):
        self.signal_set = signal_set
        self._patterns: Dict[SignalType, re.Pattern] = {}
        for signal, markers in signal_set.markers.items():
            self._patterns[signal] = self._compile(markers)
        self._tone_patterns = {
            tone: self._compile(markers) for tone, markers in signal_set.tones.items()
        }

    @property
    def locale(self) -> str:
        return self.signal_set.locale

    def _compile(self, markers: List[str]) -> re.Pattern:
        alternatives = sorted({m.lower() for m in markers if m}, key=len, reverse=True)
        if not alternatives:
            return re.compile(r"(?!x)x")
        body = "|".join(re.escape(m) for m in alternatives)
        if self.signal_set.word_boundaries:
            return re.compile(rf"(?<!\w)(?:{body})(?!\w)", re.IGNORECASE)
        return re.compile(rf"(?:{body})", re.IGNORECASE)

    def markers(self, signal: SignalType) -> List[str]:
        return list(self.signal_set.markers.get(signal, []))

    def matches(self, text: str, signal: SignalType) -> List[str]:
        pattern = self._patterns.get(signal)
        if pattern is None:
            return []
        return [m.group(0).lower() for m in pattern.finditer(text)]

    def tone_profile(self, text: str) -> Dict[str, int]:
        return {tone: len(p.findall(text)) for tone, p in self._tone_patterns.items()}

    def template(self, kind: str, index: int = 0) -> Optional[str]:
        options = self.signal_set.templates.get(kind) or []
        if not options:
            return None
        return options[index % len(options)]


@lru_cache(maxsize=8)
def _builtin(locale: str) -> SignalSet:
    path = DATA_DIR / f"{locale}.yaml"
    logger.debug(f"Loading built-in signal set {path.name}")
    return SignalSet.from_yaml(path)


BUILTIN_LOCALES = tuple(sorted(p.stem for p in DATA_DIR.glob("*.yaml")))


def load_signal_set(source: Union[str, Path, None] = None) -> SignalSet:
    """Load a built-in set by locale ("en", "ko") or a custom YAML file.

    Config turns ``signal_set: ko`` into ``Path("ko")``, so a bare name that
    matches a built-in locale wins over a file of the same name.
    """
    if source is None:
        return _builtin("en")
    name = str(source)
    if name in BUILTIN_LOCALES:
        return _builtin(name)
    path = Path(source)
    if not path.is_file():
        raise ConfigError(
            f"Signal set not found: {name}",
            rationale=f"use a built-in locale {list(BUILTIN_LOCALES)} or a YAML file path",
        )
    try:
        return SignalSet.from_yaml(path)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise ConfigError(f"Signal set {path} is invalid: {e}") from e


def default_extractor(source: Union[str, Path, None] = None) -> KeywordSignalExtractor:
    return KeywordSignalExtractor(load_signal_set(source))
