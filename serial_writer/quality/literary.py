"""Literary-style analyzer."""

from ..models import Engine, EngineAnalysis
from ..signals import SignalType
from .base import AnalysisContext, Analyzer, ratio
from .metrics import repetition_rate, sentence_length_variation, vocabulary_diversity

DIVERSITY_TARGET = 0.7
SENSORY_PER_100 = 1.0
FIGURATIVE_PER_100 = 0.2
RHYTHM_RANGE = (0.35, 1.0)
MAX_INTERNAL_REPETITION = 0.1


class LiteraryAnalyzer(Analyzer):
    engine = Engine.LITERARY

    def analyze(self, text: str, context: AnalysisContext) -> EngineAnalysis:
        x = self.extractor
        diversity = vocabulary_diversity(text)
        sensory = 100 * x.density(text, SignalType.SENSORY)
        figurative = 100 * x.density(text, SignalType.FIGURATIVE)
        rhythm = sentence_length_variation(text)
        repetition = repetition_rate(text)

        low, high = RHYTHM_RANGE
        if rhythm < low:
            rhythm_fit = rhythm / low
        elif rhythm > high:
            rhythm_fit = max(0.0, 1 - (rhythm - high))
        else:
            rhythm_fit = 1.0

        components = [
            ratio(diversity, DIVERSITY_TARGET),
            ratio(sensory, SENSORY_PER_100),
            ratio(figurative, FIGURATIVE_PER_100),
            rhythm_fit,
            1 - ratio(repetition, 3 * MAX_INTERNAL_REPETITION),
        ]
        score = 10 * sum(components) / len(components)

        indicators = {
            "vocabulary": diversity >= DIVERSITY_TARGET,
            "sensory_detail": sensory >= SENSORY_PER_100,
            "figurative_language": figurative >= FIGURATIVE_PER_100,
            "rhythm_variation": rhythm_fit == 1.0,
            "fresh_phrasing": repetition <= MAX_INTERNAL_REPETITION,
        }
        issues = [
            message for key, message in (
                ("vocabulary", "narrow vocabulary"),
                ("sensory_detail", "few sensory details"),
                ("figurative_language", "no figurative language"),
                ("rhythm_variation", "monotonous sentence rhythm"),
                ("fresh_phrasing", "repeated phrasing within the chapter"),
            ) if not indicators[key]
        ]
        return self._result(score, indicators, {
            "vocabulary_diversity": diversity,
            "sensory_per_100": sensory,
            "figurative_per_100": figurative,
            "rhythm_variation": rhythm,
            "repetition": repetition,
        }, issues)
