"""Rule-based vocal emotion classification.

Maps a FeatureVector to one of 21 emotions grouped into three categories:

- friendly: low-intensity, gentle sounds
- attention: medium intensity, seeking behaviour
- warning: high-intensity, aggressive or defensive sounds

Features are first normalized with fixed linear caps, each clamped to
[0, 1]. Every rule is a conjunction of open-interval range tests on the
normalized features and yields either 0 or its fixed confidence. The rule
with the highest confidence wins; on a tie the rule defined first wins.
Results at or below ``MIN_RESULT_CONFIDENCE`` are discarded.

Example:
    >>> from mewt.types import FeatureVector
    >>> quiet = FeatureVector(0.01, 800.0, 0.2, 1e-8, 1e-5)
    >>> classify_emotion(quiet).emotion_id
    'comfortable'
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from mewt.types import EmotionResult, FeatureVector

MIN_RESULT_CONFIDENCE = 0.5

# Linear scale applied to each raw feature before clamping to [0, 1].
NORMALIZATION_SCALES: Dict[str, float] = {
    "zcr": 10.0,
    "centroid": 1.0 / 5000.0,
    "rolloff": 2.0,
    "energy": 1e6,
    "rms": 1e3,
}


@dataclass(frozen=True)
class EmotionCategory:
    id: str
    title: str
    description: str


@dataclass(frozen=True)
class Emotion:
    id: str
    icon: str
    title: str
    description: str
    category_id: str


EMOTION_CATEGORIES: Tuple[EmotionCategory, ...] = (
    EmotionCategory("friendly", "Friendly", "Cat feels pleased, content, or friendly"),
    EmotionCategory("attention", "Attention", "Cat wants to get your attention"),
    EmotionCategory("warning", "Warning", "Cat feels anxious, angry, or wants to warn"),
)

EMOTIONS: Tuple[Emotion, ...] = (
    Emotion("call", "😺", "Friendly Call", "Friendly calling to other cats", "friendly"),
    Emotion("comfortable", "😌", "Comfortable", "Your cat feels comfortable and relaxed", "friendly"),
    Emotion("flighty", "🥰", "Affectionate", "Affectionately calling to other cats", "friendly"),
    Emotion("satisfy", "😊", "Satisfied", "Feeling satisfied", "friendly"),
    Emotion("yummy", "😋", "Delicious", "Enjoying tasty food", "friendly"),
    Emotion("hello", "👋", "Greeting", "Friendly greeting and being affectionate", "attention"),
    Emotion("for_food", "🍽️", "Food Request", "Greeting and requesting food", "attention"),
    Emotion("ask_for_play", "🧶", "Play Invitation", "Inviting to play", "attention"),
    Emotion("ask_for_hunting", "🐁", "Hunt Invitation", "Excited, wanting to hunt", "attention"),
    Emotion("discomfort", "😣", "Distressed", "Feeling upset, uncomfortable, leave me alone", "attention"),
    Emotion("find_mom", "🐈", "Help/Finding Mom", "Seeking help or looking for mom", "attention"),
    Emotion("anxious", "😰", "Anxious/Scared", "Feeling anxious or scared", "attention"),
    Emotion("courtship", "💕", "Mating Call", "Looking for a mate", "attention"),
    Emotion("curious", "🤔", "Curious", "Being perfunctory or curious", "attention"),
    Emotion("goaway", "🚫", "Go Away!", "Go away!", "warning"),
    Emotion("goout", "👉", "Get Out!", "Get out!", "warning"),
    Emotion("dieaway", "💀", "Back Off!", "Back off immediately!", "warning"),
    Emotion("warning", "⚠️", "Warning", "Warning and expulsion", "warning"),
    Emotion("unhappy", "😒", "Unhappy", "Leave me alone, dissatisfied", "warning"),
    Emotion("alert", "🚨", "Alert", "Hostile and vigilant", "warning"),
    Emotion("for_fight", "🥊", "Strong Warning", "Strong warning, preparing to fight", "warning"),
)

_EMOTIONS_BY_ID: Dict[str, Emotion] = {e.id: e for e in EMOTIONS}
_CATEGORIES_BY_ID: Dict[str, EmotionCategory] = {c.id: c for c in EMOTION_CATEGORIES}


@dataclass(frozen=True)
class NormalizedFeatures:
    """Features scaled and clamped to [0, 1]."""

    zcr: float
    centroid: float
    rolloff: float
    energy: float
    rms: float


def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def normalize(features: FeatureVector) -> NormalizedFeatures:
    """Apply the fixed linear caps to a raw FeatureVector."""
    return NormalizedFeatures(
        zcr=_clamp01(features.zero_crossing_rate * NORMALIZATION_SCALES["zcr"]),
        centroid=_clamp01(features.spectral_centroid * NORMALIZATION_SCALES["centroid"]),
        rolloff=_clamp01(features.spectral_rolloff * NORMALIZATION_SCALES["rolloff"]),
        energy=_clamp01(features.energy * NORMALIZATION_SCALES["energy"]),
        rms=_clamp01(features.rms * NORMALIZATION_SCALES["rms"]),
    )


@dataclass(frozen=True)
class Range:
    """Open interval test ``low < value < high``; a None bound is unbounded."""

    low: Optional[float] = None
    high: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.low is not None and not value > self.low:
            return False
        if self.high is not None and not value < self.high:
            return False
        return True


@dataclass(frozen=True)
class EmotionRule:
    """One row of the decision table."""

    emotion_id: str
    category_id: str
    conditions: Tuple[Tuple[str, Range], ...]
    confidence: float

    def evaluate(self, features: NormalizedFeatures) -> float:
        """Return ``confidence`` when every condition holds, else 0."""
        for name, bounds in self.conditions:
            if not bounds.contains(getattr(features, name)):
                return 0.0
        return self.confidence


def _rule(emotion_id: str, confidence: float, **conditions: Tuple[Optional[float], Optional[float]]) -> EmotionRule:
    return EmotionRule(
        emotion_id=emotion_id,
        category_id=_EMOTIONS_BY_ID[emotion_id].category_id,
        conditions=tuple((name, Range(*bounds)) for name, bounds in conditions.items()),
        confidence=confidence,
    )


# Evaluation order is significant: it breaks confidence ties.
EMOTION_RULES: Tuple[EmotionRule, ...] = (
    # friendly
    _rule("comfortable", 0.90, energy=(None, 0.2), rms=(None, 0.3), zcr=(None, 0.3)),
    _rule("satisfy", 0.80, energy=(0.1, 0.4), rms=(0.2, 0.5), zcr=(None, 0.4)),
    _rule("call", 0.75, energy=(0.2, 0.6), centroid=(0.3, 0.7), zcr=(0.2, 0.6)),
    _rule("flighty", 0.70, energy=(0.3, 0.6), rms=(0.3, 0.6), centroid=(0.4, None)),
    _rule("yummy", 0.75, energy=(0.2, 0.5), zcr=(0.3, 0.6), rolloff=(0.3, None)),
    # attention
    _rule("hello", 0.80, energy=(0.3, 0.7), centroid=(0.4, 0.8), rms=(0.3, None)),
    _rule("for_food", 0.85, energy=(0.4, 0.8), rms=(0.4, 0.8), zcr=(0.3, 0.7)),
    _rule("ask_for_play", 0.80, energy=(0.5, 0.8), centroid=(0.5, None), zcr=(0.4, None), rms=(0.4, None)),
    _rule("ask_for_hunting", 0.85, energy=(0.6, None), centroid=(0.6, None), zcr=(0.5, None), rms=(0.5, None)),
    _rule("curious", 0.60, energy=(0.2, 0.6), centroid=(0.3, 0.7), zcr=(0.3, 0.7)),
    _rule("find_mom", 0.90, energy=(0.7, None), rms=(0.6, None), centroid=(0.6, None), zcr=(0.6, None)),
    _rule("anxious", 0.85, centroid=(0.7, None), zcr=(0.6, None), energy=(0.4, None), rolloff=(0.6, None)),
    _rule("discomfort", 0.70, energy=(0.3, 0.7), zcr=(0.5, None), centroid=(0.5, None), rms=(0.3, None)),
    _rule("courtship", 0.75, energy=(0.5, None), centroid=(0.4, 0.8), rolloff=(0.4, None), rms=(0.4, None)),
    # warning
    _rule("for_fight", 0.95, energy=(0.8, None), centroid=(0.8, None), zcr=(0.8, None), rms=(0.8, None), rolloff=(0.7, None)),
    _rule("dieaway", 0.90, energy=(0.85, None), centroid=(0.7, None), zcr=(0.7, None), rms=(0.7, None)),
    _rule("goout", 0.85, energy=(0.75, None), centroid=(0.6, None), zcr=(0.6, None), rms=(0.6, None)),
    _rule("warning", 0.80, centroid=(0.7, None), zcr=(0.7, None), energy=(0.6, None), rms=(0.5, None)),
    _rule("alert", 0.80, centroid=(0.8, None), zcr=(0.6, None), energy=(0.5, None), rolloff=(0.7, None)),
    _rule("goaway", 0.75, energy=(0.6, None), centroid=(0.6, None), zcr=(0.5, None), rms=(0.5, None)),
    _rule("unhappy", 0.70, energy=(0.4, 0.8), centroid=(0.5, None), zcr=(0.4, None), rms=(0.4, None)),
)


def evaluate_rules(features: FeatureVector) -> List[Tuple[EmotionRule, float]]:
    """Evaluate every rule; returns ``(rule, confidence)`` in table order."""
    normalized = normalize(features)
    return [(rule, rule.evaluate(normalized)) for rule in EMOTION_RULES]


def classify_emotion(
    features: FeatureVector,
    min_confidence: float = MIN_RESULT_CONFIDENCE,
) -> Optional[EmotionResult]:
    """Classify a FeatureVector into the best-matching emotion.

    Args:
        features: Raw (unnormalized) acoustic features.
        min_confidence: Results with confidence at or below this are dropped.

    Returns:
        EmotionResult, or None if no rule matched confidently.
    """
    best: Optional[EmotionRule] = None
    best_confidence = 0.0
    for rule, confidence in evaluate_rules(features):
        # Strict comparison keeps the first-defined rule on ties.
        if confidence > best_confidence:
            best, best_confidence = rule, confidence

    if best is None or best_confidence <= min_confidence:
        return None
    return EmotionResult(
        emotion_id=best.emotion_id,
        confidence=best_confidence,
        category_id=best.category_id,
    )


def classify_emotion_category(features: FeatureVector) -> Optional[str]:
    """Category id of the best-matching emotion, or None."""
    result = classify_emotion(features)
    return result.category_id if result else None


def get_emotion(emotion_id: str) -> Optional[Emotion]:
    return _EMOTIONS_BY_ID.get(emotion_id)


def get_category(category_id: str) -> Optional[EmotionCategory]:
    return _CATEGORIES_BY_ID.get(category_id)


__all__ = [
    "MIN_RESULT_CONFIDENCE",
    "NORMALIZATION_SCALES",
    "Emotion",
    "EmotionCategory",
    "EMOTIONS",
    "EMOTION_CATEGORIES",
    "NormalizedFeatures",
    "normalize",
    "Range",
    "EmotionRule",
    "EMOTION_RULES",
    "evaluate_rules",
    "classify_emotion",
    "classify_emotion_category",
    "get_emotion",
    "get_category",
]
