import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from achayapathra.errors import AssessmentFailure, InvalidCategory, MissingInput
from achayapathra.safety.signals import ImageSignalProvider, ImageSignals


SAFE = "Safe to Consume"
CONSUME_IMMEDIATELY = "Consume Immediately"
NOT_SAFE = "Not Safe to Consume"

SAFE_THRESHOLD = 80
APPROVAL_THRESHOLD = 50


@dataclass(frozen=True)
class RuleProfile:
    risk: str
    max_hours: int
    immediate_threshold: int


RULE_PROFILES = {
    "vegetarian": RuleProfile(risk="perishable-low-risk", max_hours=8, immediate_threshold=6),
    "non-vegetarian": RuleProfile(risk="perishable-high-risk", max_hours=4, immediate_threshold=2),
}

STORAGE_MULTIPLIERS = {
    "refrigerated": 1.2,
    "room temperature": 1.0,
    "covered": 1.1,
    "uncovered": 0.8,
}

CONFIDENCE_RANGES = {
    SAFE: (0.85, 0.95),
    CONSUME_IMMEDIATELY: (0.70, 0.85),
    # rejecting is the more certain verdict
    NOT_SAFE: (0.90, 0.98),
}


class SafetyAssessment(BaseModel):
    safety_score: int
    status: str
    confidence: float
    explanation: str
    elapsed_hours: int
    signals: ImageSignals


def get_rule_profile(category: str) -> RuleProfile:
    profile = RULE_PROFILES.get(category)
    if profile is None:
        raise InvalidCategory(f"Unknown food category '{category}'")
    return profile


def _as_utc(value: datetime) -> datetime:
    # naive timestamps (e.g. read back from SQLite) are stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_whole_hours(preparation_time: datetime, evaluated_at: datetime) -> int:
    seconds = (_as_utc(evaluated_at) - _as_utc(preparation_time)).total_seconds()
    return max(0, int(seconds // 3600))


def time_score(elapsed_hours: int, profile: RuleProfile) -> float:
    if elapsed_hours <= profile.immediate_threshold:
        return 100.0

    if elapsed_hours > profile.max_hours:
        return 0.0

    # 100 -> 50 step at the threshold, then 10 points per extra hour
    score = 50 - 10 * (elapsed_hours - profile.immediate_threshold)
    return float(min(100, max(0, score)))


def storage_multiplier(storage_condition: Optional[str]) -> float:
    if not storage_condition:
        return 1.0
    return STORAGE_MULTIPLIERS.get(storage_condition.strip().lower(), 1.0)


def image_score(signals: ImageSignals, storage_condition: Optional[str]) -> float:
    score = 100.0

    if signals.discoloration_detected:
        score -= 30
    if signals.moisture_level > 80:
        score -= 20
    if signals.texture_score < 40:
        score -= 25

    return score * storage_multiplier(storage_condition)


def classify(score: int) -> str:
    if score >= SAFE_THRESHOLD:
        return SAFE
    if score >= APPROVAL_THRESHOLD:
        return CONSUME_IMMEDIATELY
    return NOT_SAFE


def draw_confidence(status: str, rng: random.Random) -> float:
    low, high = CONFIDENCE_RANGES[status]
    return round(low + rng.random() * (high - low), 2)


def explain(category: str, elapsed_hours: int, profile: RuleProfile, signals: ImageSignals, score: int) -> str:
    reasons = []

    if elapsed_hours > profile.max_hours:
        reasons.append(f"Time exceeded for {category} food ({elapsed_hours} hours)")
    if signals.discoloration_detected:
        reasons.append("Visible discoloration detected")
    if signals.moisture_level > 80:
        reasons.append("Excessive moisture visible")
    if signals.texture_score < 40:
        reasons.append("Texture degradation observed")
    if score >= SAFE_THRESHOLD:
        reasons.append("No visible spoilage indicators")

    return "; ".join(reasons)


def score_donation(
    category: str,
    preparation_time: Optional[datetime],
    storage_condition: Optional[str],
    signals: ImageSignals,
    evaluated_at: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> SafetyAssessment:
    """
    Combine elapsed time, storage and image signals into a safety verdict.

    Pure apart from the confidence draw, which comes from ``rng`` (a fresh
    generator per call when omitted).
    """
    profile = get_rule_profile(category)

    if preparation_time is None:
        raise MissingInput("Preparation time is required")

    evaluated_at = evaluated_at or datetime.now(timezone.utc)
    rng = rng or random.Random()

    hours = elapsed_whole_hours(preparation_time, evaluated_at)
    combined = (time_score(hours, profile) + image_score(signals, storage_condition)) / 2
    clamped = min(100.0, max(0.0, combined))

    # half-up, so 79.5 lands on 80
    final = int(math.floor(clamped + 0.5))
    status = classify(final)

    return SafetyAssessment(
        safety_score=final,
        status=status,
        confidence=draw_confidence(status, rng),
        explanation=explain(category, hours, profile, signals, final),
        elapsed_hours=hours,
        signals=signals,
    )


class SafetyScorer:
    """Runs the image signal provider and scores the result."""

    def __init__(self, provider: ImageSignalProvider, rng_factory=random.Random):
        self.provider = provider
        self.rng_factory = rng_factory

    def assess(
        self,
        category: str,
        preparation_time: Optional[datetime],
        storage_condition: Optional[str],
        image_ref: Optional[str],
        evaluated_at: Optional[datetime] = None,
    ) -> SafetyAssessment:
        # input errors surface before the provider is consulted
        get_rule_profile(category)
        if preparation_time is None:
            raise MissingInput("Preparation time is required")

        # anything past this point leaves the donation assessment_failed
        try:
            signals = ImageSignals.model_validate(self.provider.analyze(image_ref))

            return score_donation(
                category,
                preparation_time,
                storage_condition,
                signals,
                evaluated_at=evaluated_at,
                rng=self.rng_factory(),
            )
        except AssessmentFailure:
            raise
        except Exception as e:
            raise AssessmentFailure(f"Image analysis failed: {e}") from e
