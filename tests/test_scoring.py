import random
from datetime import datetime, timedelta, timezone

import pytest

from achayapathra.errors import AssessmentFailure, InvalidCategory, MissingInput
from achayapathra.safety.scoring import (
    CONSUME_IMMEDIATELY,
    NOT_SAFE,
    RULE_PROFILES,
    SAFE,
    SafetyScorer,
    classify,
    elapsed_whole_hours,
    image_score,
    score_donation,
    storage_multiplier,
    time_score,
)
from achayapathra.safety.signals import FixedImageSignalProvider, ImageSignals

from conftest import CLEAN_SIGNALS, SPOILED_SIGNALS

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
VEG = RULE_PROFILES["vegetarian"]
NON_VEG = RULE_PROFILES["non-vegetarian"]


def hours_ago(hours, minutes=0):
    return NOW - timedelta(hours=hours, minutes=minutes)


def signals(discoloration=False, moisture=20, texture=90, quality=80):
    return ImageSignals(
        overall_quality=quality,
        discoloration_detected=discoloration,
        moisture_level=moisture,
        texture_score=texture,
    )


@pytest.mark.parametrize("profile", [VEG, NON_VEG])
def test_time_score_is_full_up_to_threshold(profile):
    for hours in range(0, profile.immediate_threshold + 1):
        assert time_score(hours, profile) == 100


@pytest.mark.parametrize("profile", [VEG, NON_VEG])
def test_time_score_is_zero_past_max_hours(profile):
    for hours in range(profile.max_hours + 1, profile.max_hours + 30):
        assert time_score(hours, profile) == 0


def test_time_score_decays_linearly_after_a_cliff():
    # 100 -> 50 step right after the threshold, then -10 per hour
    assert time_score(7, VEG) == 40
    assert time_score(8, VEG) == 30
    assert time_score(3, NON_VEG) == 40
    assert time_score(4, NON_VEG) == 30


def test_elapsed_hours_truncate():
    assert elapsed_whole_hours(hours_ago(6, 59), NOW) == 6
    assert elapsed_whole_hours(hours_ago(0, 30), NOW) == 0
    # preparation in the future counts as fresh
    assert elapsed_whole_hours(NOW + timedelta(hours=2), NOW) == 0


def test_elapsed_hours_treats_naive_timestamps_as_utc():
    naive = hours_ago(3).replace(tzinfo=None)
    assert elapsed_whole_hours(naive, NOW) == 3


def test_image_score_deductions_and_storage():
    assert image_score(signals(), "room temperature") == 100
    assert image_score(signals(discoloration=True), "room temperature") == 70
    assert image_score(signals(moisture=81), "room temperature") == 80
    assert image_score(signals(moisture=80), "room temperature") == 100
    assert image_score(signals(texture=39), "room temperature") == 75
    assert image_score(signals(texture=40), "room temperature") == 100
    assert image_score(SPOILED_SIGNALS, "uncovered") == pytest.approx(20)
    assert image_score(signals(), "refrigerated") == pytest.approx(120)


def test_storage_multiplier_defaults_and_case():
    assert storage_multiplier("Refrigerated") == 1.2
    assert storage_multiplier(" covered ") == 1.1
    assert storage_multiplier("in the car boot") == 1.0
    assert storage_multiplier(None) == 1.0


@pytest.mark.parametrize(
    "score, expected",
    [(100, SAFE), (80, SAFE), (79, CONSUME_IMMEDIATELY), (50, CONSUME_IMMEDIATELY), (49, NOT_SAFE), (0, NOT_SAFE)],
)
def test_status_boundaries(score, expected):
    assert classify(score) == expected


def test_fresh_refrigerated_vegetarian_is_safe():
    result = score_donation("vegetarian", hours_ago(1), "refrigerated", CLEAN_SIGNALS, evaluated_at=NOW)

    assert result.safety_score == 100
    assert result.status == SAFE
    assert result.explanation == "No visible spoilage indicators"
    assert 0.85 <= result.confidence <= 0.95


def test_expired_non_vegetarian_is_never_safe():
    result = score_donation("non-vegetarian", hours_ago(5), "refrigerated", CLEAN_SIGNALS, evaluated_at=NOW)

    # time score 0 caps the average at 60 even with the refrigeration bonus
    assert result.safety_score == 60
    assert result.status == CONSUME_IMMEDIATELY
    assert result.explanation == "Time exceeded for non-vegetarian food (5 hours)"


def test_expired_food_at_room_temperature_caps_at_fifty():
    result = score_donation("vegetarian", hours_ago(9), "room temperature", CLEAN_SIGNALS, evaluated_at=NOW)

    assert result.safety_score == 50
    assert result.status != SAFE


def test_explanation_lists_every_triggered_condition_in_order():
    result = score_donation("vegetarian", hours_ago(12), "uncovered", SPOILED_SIGNALS, evaluated_at=NOW)

    assert result.safety_score == 10
    assert result.status == NOT_SAFE
    assert result.explanation == (
        "Time exceeded for vegetarian food (12 hours); "
        "Visible discoloration detected; "
        "Excessive moisture visible; "
        "Texture degradation observed"
    )
    assert 0.90 <= result.confidence <= 0.98


def test_consume_immediately_band():
    # time 40 (7h veg), image 70 (discoloration) -> 55
    result = score_donation(
        "vegetarian", hours_ago(7), "room temperature", signals(discoloration=True), evaluated_at=NOW
    )

    assert result.safety_score == 55
    assert result.status == CONSUME_IMMEDIATELY
    assert result.explanation == "Visible discoloration detected"
    assert 0.70 <= result.confidence <= 0.85


def test_final_score_rounds_half_up():
    # (100 + 45) / 2 = 72.5
    result = score_donation(
        "vegetarian", hours_ago(1), "room temperature", signals(discoloration=True, texture=10), evaluated_at=NOW
    )
    assert result.safety_score == 73


def test_final_score_stays_in_range():
    for category in RULE_PROFILES:
        for hours in (0, 2, 3, 5, 7, 9, 48):
            for storage in ("refrigerated", "room temperature", "covered", "uncovered", "unknown"):
                for sig in (CLEAN_SIGNALS, SPOILED_SIGNALS):
                    result = score_donation(category, hours_ago(hours), storage, sig, evaluated_at=NOW)
                    assert 0 <= result.safety_score <= 100
                    assert 0 <= result.confidence <= 1


def test_confidence_comes_from_the_supplied_generator():
    first = score_donation("vegetarian", hours_ago(1), "covered", CLEAN_SIGNALS, evaluated_at=NOW, rng=random.Random(7))
    second = score_donation("vegetarian", hours_ago(1), "covered", CLEAN_SIGNALS, evaluated_at=NOW, rng=random.Random(7))

    assert first.confidence == second.confidence
    assert first.confidence == round(first.confidence, 2)


def test_unknown_category_is_rejected():
    with pytest.raises(InvalidCategory):
        score_donation("dessert", hours_ago(1), "covered", CLEAN_SIGNALS, evaluated_at=NOW)


def test_missing_preparation_time_is_rejected():
    with pytest.raises(MissingInput):
        score_donation("vegetarian", None, "covered", CLEAN_SIGNALS, evaluated_at=NOW)


def test_scorer_checks_inputs_before_calling_the_provider():
    provider = FixedImageSignalProvider(CLEAN_SIGNALS)
    scorer = SafetyScorer(provider)

    with pytest.raises(InvalidCategory):
        scorer.assess("dessert", hours_ago(1), "covered", "donations/a.webp")

    with pytest.raises(MissingInput):
        scorer.assess("vegetarian", None, "covered", "donations/a.webp")

    assert provider.calls == []


def test_scorer_wraps_provider_errors():
    class BrokenProvider:
        def analyze(self, image_ref):
            raise RuntimeError("camera offline")

    scorer = SafetyScorer(BrokenProvider())

    with pytest.raises(AssessmentFailure, match="camera offline"):
        scorer.assess("vegetarian", hours_ago(1), "covered", "donations/a.webp")


def test_scorer_passes_image_reference_to_provider():
    provider = FixedImageSignalProvider(CLEAN_SIGNALS)
    result = SafetyScorer(provider).assess(
        "non-vegetarian", hours_ago(1), "refrigerated", "donations/b.webp", evaluated_at=NOW
    )

    assert provider.calls == ["donations/b.webp"]
    assert result.safety_score == 100
    assert result.signals == CLEAN_SIGNALS


def test_scorer_accepts_plain_mapping_from_provider():
    class MappingProvider:
        def analyze(self, image_ref):
            return CLEAN_SIGNALS.model_dump()

    result = SafetyScorer(MappingProvider()).assess(
        "vegetarian", hours_ago(1), "covered", "donations/a.webp", evaluated_at=NOW
    )

    assert result.signals == CLEAN_SIGNALS
    assert result.safety_score == 100


@pytest.mark.parametrize("reply", [None, "looks fine", {"overall_quality": 50}])
def test_scorer_wraps_unusable_provider_replies(reply):
    class OddProvider:
        def analyze(self, image_ref):
            return reply

    with pytest.raises(AssessmentFailure, match="Image analysis failed"):
        SafetyScorer(OddProvider()).assess("vegetarian", hours_ago(1), "covered", "donations/a.webp")
