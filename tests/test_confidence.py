import sys
import unittest
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from identity_engine.services.confidence import (  # noqa: E402
    EvidenceWeightInput,
    base_confidence,
    calculate_claim_confidence,
    calculate_evidence_weight,
    calculate_recency_decay,
    get_source_weight,
)

REFERENCE = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _item(strength="medium", source_type="resume", evidence_date=None, claim_type="skill"):
    return EvidenceWeightInput(
        strength=strength,
        source_type=source_type,
        evidence_date=evidence_date,
        claim_type=claim_type,
    )


class RecencyDecayTests(unittest.TestCase):
    def test_skill_halves_after_four_years(self):
        evidence_date = REFERENCE - timedelta(days=365.25 * 4)
        self.assertAlmostEqual(calculate_recency_decay(evidence_date, "skill", REFERENCE), 0.5, places=9)

    def test_attribute_decays_slower_than_skill(self):
        evidence_date = REFERENCE - timedelta(days=365.25 * 6)
        skill = calculate_recency_decay(evidence_date, "skill", REFERENCE)
        attribute = calculate_recency_decay(evidence_date, "attribute", REFERENCE)
        self.assertLess(skill, attribute)

    def test_education_and_certification_never_decay(self):
        old = date(1990, 6, 1)
        self.assertEqual(calculate_recency_decay(old, "education", REFERENCE), 1.0)
        self.assertEqual(calculate_recency_decay(old, "certification", REFERENCE), 1.0)

    def test_missing_or_future_date_is_not_decayed(self):
        self.assertEqual(calculate_recency_decay(None, "skill", REFERENCE), 1.0)
        self.assertEqual(calculate_recency_decay(REFERENCE + timedelta(days=30), "skill", REFERENCE), 1.0)

    def test_plain_date_is_midnight_utc(self):
        decay = calculate_recency_decay(date(2021, 1, 1), "skill", date(2025, 1, 1))
        self.assertAlmostEqual(decay, 0.5, places=3)


class EvidenceWeightTests(unittest.TestCase):
    def test_source_weights(self):
        self.assertEqual(get_source_weight("certification"), 1.5)
        self.assertEqual(get_source_weight("inferred"), 0.6)
        self.assertEqual(get_source_weight("something-else"), 1.0)
        self.assertEqual(get_source_weight(None), 1.0)

    def test_weight_multiplies_strength_source_and_decay(self):
        weight = calculate_evidence_weight(_item(strength="weak", source_type="story"), REFERENCE)
        self.assertAlmostEqual(weight, 0.7 * 0.8)

    def test_unknown_strength_counts_as_medium(self):
        self.assertEqual(calculate_evidence_weight(_item(strength="huge"), REFERENCE), 1.0)


class ClaimConfidenceTests(unittest.TestCase):
    def test_base_confidence_steps(self):
        self.assertEqual([base_confidence(n) for n in range(0, 6)], [0.0, 0.5, 0.7, 0.8, 0.9, 0.9])

    def test_empty_evidence_is_zero(self):
        self.assertEqual(calculate_claim_confidence([], REFERENCE), 0.0)

    def test_single_medium_resume_item(self):
        self.assertAlmostEqual(calculate_claim_confidence([_item()], REFERENCE), 0.5)

    def test_single_strong_certification(self):
        item = _item(strength="strong", source_type="certification", claim_type="certification")
        self.assertAlmostEqual(calculate_claim_confidence([item], REFERENCE), 0.9)

    def test_capped_below_one(self):
        item = _item(strength="strong", source_type="certification", claim_type="certification")
        self.assertEqual(calculate_claim_confidence([item, item, item], REFERENCE), 0.95)

    def test_more_equal_evidence_never_lowers_confidence(self):
        previous = 0.0
        for count in range(1, 7):
            confidence = calculate_claim_confidence([_item()] * count, REFERENCE)
            self.assertGreaterEqual(confidence, previous)
            self.assertGreaterEqual(confidence, 0.0)
            self.assertLessEqual(confidence, 0.95)
            previous = confidence

    def _mixed_four(self):
        return [
            _item(strength="strong", evidence_date=date(2024, 6, 1)),
            _item(strength="weak", source_type="story", evidence_date=date(2019, 7, 15)),
            _item(source_type="inferred"),
            _item(evidence_date=date(2022, 3, 1)),
        ]

    def test_adding_strong_certification_never_lowers_confidence(self):
        before = calculate_claim_confidence(self._mixed_four(), REFERENCE)
        extra = _item(strength="strong", source_type="certification")
        after = calculate_claim_confidence(self._mixed_four() + [extra], REFERENCE)
        self.assertGreaterEqual(after, before)

    def test_adding_weak_old_inferred_item_never_raises_confidence(self):
        before = calculate_claim_confidence(self._mixed_four(), REFERENCE)
        extra = _item(strength="weak", source_type="inferred", evidence_date=date(2010, 1, 1))
        after = calculate_claim_confidence(self._mixed_four() + [extra], REFERENCE)
        self.assertLess(after, before)

    def test_deterministic_for_fixed_reference(self):
        items = [
            _item(strength="strong", evidence_date=date(2022, 3, 1)),
            _item(strength="weak", source_type="story", evidence_date=date(2019, 7, 15)),
        ]
        first = calculate_claim_confidence(items, REFERENCE)
        second = calculate_claim_confidence(list(items), REFERENCE)
        self.assertEqual(first, second)

    def test_old_skill_evidence_lowers_confidence(self):
        fresh = calculate_claim_confidence([_item(evidence_date=date(2024, 12, 1))], REFERENCE)
        stale = calculate_claim_confidence([_item(evidence_date=date(2015, 1, 1))], REFERENCE)
        self.assertLess(stale, fresh)


if __name__ == "__main__":
    unittest.main()
