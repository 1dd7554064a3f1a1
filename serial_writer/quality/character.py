"""Character-development analyzer."""

import re
from typing import Dict, List, Optional

from ..models import Engine, EngineAnalysis
from ..signals import SignalType
from ..utils.text import extract_dialogue, split_sentences
from .base import AnalysisContext, Analyzer
from .metrics import dialogue_diversity

AGENCY_THRESHOLD = 0.6
DIALOGUE_THRESHOLD = 0.7
PRESENCE_THRESHOLD = 0.5
NEUTRAL = 0.7

_PRONOUN_RE = re.compile(r"\b(?:she|he|her|him|his|hers|they|them|their)\b|그녀|그는|그가|그의")


class CharacterAnalyzer(Analyzer):
    """Agency against passivity, dialogue variety, and whether the leads act in character."""

    engine = Engine.CHARACTER

    def analyze(self, text: str, context: AnalysisContext) -> EngineAnalysis:
        x = self.extractor
        agency_hits = x.count(text, SignalType.AGENCY)
        passive_hits = x.count(text, SignalType.PASSIVITY)
        if agency_hits + passive_hits:
            agency = agency_hits / (agency_hits + passive_hits)
        else:
            agency = 0.4

        lines = extract_dialogue(text)
        diversity = dialogue_diversity(lines) if len(lines) >= 2 else 0.3

        presence, consistency = self._cast(text, context)

        score = 10 * (0.35 * agency + 0.30 * diversity + 0.20 * presence + 0.15 * consistency)
        indicators = {
            "agency": agency >= AGENCY_THRESHOLD,
            "dialogue_diversity": len(lines) >= 2 and diversity >= DIALOGUE_THRESHOLD,
            "cast_present": presence >= PRESENCE_THRESHOLD,
            "consistent_traits": consistency >= NEUTRAL,
        }
        issues = []
        if not indicators["agency"]:
            issues.append("characters react instead of choosing")
        if not indicators["dialogue_diversity"]:
            issues.append("dialogue is sparse or repetitive")
        if not indicators["cast_present"]:
            issues.append("the main characters barely appear")
        if not indicators["consistent_traits"]:
            issues.append("established personality traits do not show")

        return self._result(score, indicators, {
            "agency": agency,
            "dialogue_lines": len(lines),
            "dialogue_diversity": diversity,
            "presence": presence,
            "consistency": consistency,
        }, issues)

    def _cast(self, text: str, context: AnalysisContext) -> tuple:
        """Share of main characters on page, and share of those whose traits show."""
        if context.state is None:
            return NEUTRAL, NEUTRAL
        main = context.state.protagonists()
        if not main:
            return NEUTRAL, NEUTRAL
        lowered = text.lower()
        present = [c for c in main if c.name.lower() in lowered]
        presence = len(present) / len(main)

        with_traits = [c for c in present if c.traits.personality]
        if not with_traits:
            return presence, NEUTRAL
        about_by_name = _attribute(split_sentences(text), [c.name for c in main])
        shown = 0
        for c in with_traits:
            about = about_by_name[c.name]
            # trait words tend to be inflected ("stubborn" -> "stubbornly")
            stems = [t.lower()[:5] for t in c.traits.personality if t]
            if any(stem in s for s in about for stem in stems) or self._acts(about):
                shown += 1
        return presence, shown / len(with_traits)

    def _acts(self, sentences) -> bool:
        return any(self.extractor.contains(s, SignalType.AGENCY) for s in sentences)


def _attribute(sentences: List[str], names: List[str]) -> Dict[str, List[str]]:
    """Sentences about each character, lower-cased.

    A sentence naming no one but carrying a pronoun belongs to the character
    named first in the closest preceding sentence that named anyone.
    """
    about: Dict[str, List[str]] = {name: [] for name in names}
    last: Optional[str] = None
    for sentence in sentences:
        lowered = sentence.lower()
        named = sorted(
            (lowered.find(name.lower()), name) for name in names if name.lower() in lowered
        )
        if named:
            for _, name in named:
                about[name].append(lowered)
            last = named[0][1]
        elif last is not None and _PRONOUN_RE.search(lowered):
            about[last].append(lowered)
    return about
