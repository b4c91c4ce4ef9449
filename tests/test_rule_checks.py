import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from identity_engine.schemas import Claim  # noqa: E402
from identity_engine.services.rule_checks import (  # noqa: E402
    exclusion_verdict,
    find_duplicates,
    find_missing_fields,
    is_duplicate_pair,
    run_rule_checks,
    sample_claims_for_eval,
)

BASE_TIME = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _claim(claim_id, label, claim_type="skill", minutes=0, embedding=None, evidence_count=1):
    return Claim(
        id=claim_id,
        user_id="user-1",
        type=claim_type,
        label=label,
        confidence=0.5,
        embedding=embedding,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        evidence_count=evidence_count,
    )


class ExclusionRuleTests(unittest.TestCase):
    def test_short_labels_need_exact_match(self):
        self.assertFalse(exclusion_verdict("React", "React Native"))
        self.assertTrue(exclusion_verdict("React", "react"))

    def test_founder_labels_compare_entity(self):
        self.assertFalse(exclusion_verdict("Founded Acme", "Founded Beta"))
        self.assertTrue(exclusion_verdict("Founded Acme", "Co-Founded Acme"))
        self.assertTrue(exclusion_verdict("Cofounded Acme", "Founder of Acme"))
        self.assertFalse(exclusion_verdict("Founded Acme Corp", "Acme Corp Leadership"))

    def test_aws_labels_compare_service(self):
        self.assertFalse(exclusion_verdict("AWS Lambda", "AWS Lambda Functions"))
        self.assertTrue(exclusion_verdict("AWS CloudFormation", "aws cloudformation"))
        self.assertFalse(exclusion_verdict("AWS CloudFormation", "CloudFormation Templates"))

    def test_long_unrelated_labels_fall_through(self):
        self.assertIsNone(exclusion_verdict("Distributed Systems Design", "Technical Leadership"))


class DuplicateDetectionTests(unittest.TestCase):
    def test_react_and_react_native_are_distinct(self):
        claims = [_claim("c1", "React"), _claim("c2", "React Native", minutes=5)]
        self.assertEqual(find_duplicates(claims), [])

    def test_founder_pairs(self):
        distinct = [_claim("c1", "Founded Acme", "achievement"), _claim("c2", "Founded Beta", "achievement", 1)]
        self.assertEqual(find_duplicates(distinct), [])

        same = [_claim("c1", "Founded Acme", "achievement"), _claim("c2", "Co-Founded Acme", "achievement", 1)]
        issues = find_duplicates(same)
        self.assertEqual(len(issues), 1)
        self.assertEqual(issues[0].claim_id, "c2")
        self.assertEqual(issues[0].related_claim_id, "c1")

    def test_near_identical_labels_flag_the_newer_claim(self):
        older = _claim("old", "Kubernetes Administration", minutes=0)
        newer = _claim("new", "Kubernetes Administrations", minutes=10)
        issues = find_duplicates([newer, older])
        self.assertEqual(len(issues), 1)
        issue = issues[0]
        self.assertEqual(issue.claim_id, "new")
        self.assertEqual(issue.related_claim_id, "old")
        self.assertEqual(issue.issue_type, "duplicate")
        self.assertEqual(issue.severity, "warning")
        self.assertEqual(issue.message, 'Possible duplicate of "Kubernetes Administration"')

    def test_semantic_duplicate_through_embeddings(self):
        first = _claim("c1", "Team Leadership Skills", "attribute", 0, embedding=[1.0, 0.0, 0.0])
        second = _claim("c2", "Leading Engineering Teams", "attribute", 1, embedding=[0.9, 0.1, 0.0])
        self.assertTrue(is_duplicate_pair(first, second))

        unrelated = _claim("c3", "Leading Engineering Teams", "attribute", 1, embedding=[0.0, 1.0, 0.0])
        self.assertFalse(is_duplicate_pair(first, unrelated))

    def test_different_types_are_never_compared(self):
        claims = [
            _claim("c1", "Kubernetes Administration", "skill"),
            _claim("c2", "Kubernetes Administration", "achievement", 1),
        ]
        self.assertEqual(find_duplicates(claims), [])

    def test_same_timestamp_flags_later_claim_in_list(self):
        claims = [_claim("a", "Kubernetes Administration"), _claim("b", "Kubernetes Administration")]
        issues = find_duplicates(claims)
        self.assertEqual([issue.claim_id for issue in issues], ["b"])

    def test_each_duplicate_is_flagged_once(self):
        claims = [
            _claim("a", "Kubernetes Administration", minutes=0),
            _claim("b", "Kubernetes Administrations", minutes=1),
            _claim("c", "Kubernetes Administration", minutes=2),
        ]
        issues = find_duplicates(claims)
        flagged = [issue.claim_id for issue in issues]
        self.assertEqual(sorted(flagged), ["b", "c"])
        self.assertEqual(len(flagged), len(set(flagged)))


class MissingFieldTests(unittest.TestCase):
    def test_missing_type_and_blank_label(self):
        claims = [
            Claim(id="c1", label="Python", confidence=0.5),
            Claim(id="c2", type="skill", label="   ", confidence=0.5),
            _claim("c3", "Go"),
        ]
        issues = find_missing_fields(claims)
        self.assertEqual([(issue.claim_id, issue.issue_type) for issue in issues], [("c1", "missing_field"), ("c2", "missing_field")])
        self.assertTrue(all(issue.severity == "error" for issue in issues))

    def test_run_rule_checks_combines_both(self):
        claims = [
            _claim("a", "Kubernetes Administration"),
            _claim("b", "Kubernetes Administration", minutes=1),
            Claim(id="c", label="Untyped", confidence=0.1),
        ]
        kinds = sorted(issue.issue_type for issue in run_rule_checks(claims))
        self.assertEqual(kinds, ["duplicate", "missing_field"])


class SamplingTests(unittest.TestCase):
    def test_fewer_claims_than_budget_returns_all(self):
        claims = [_claim("a", "Python"), _claim("b", "Go")]
        self.assertEqual([claim.id for claim in sample_claims_for_eval(claims, 5)], ["a", "b"])

    def test_least_evidence_then_newest_first(self):
        claims = [
            _claim("well-supported", "Python Development", minutes=0, evidence_count=9),
            _claim("old-thin", "Go Development", minutes=0, evidence_count=1),
            _claim("new-thin", "Rust Development", minutes=30, evidence_count=1),
            _claim("medium", "SQL Tuning Work", minutes=10, evidence_count=3),
        ]
        sampled = sample_claims_for_eval(claims, 3)
        self.assertEqual([claim.id for claim in sampled], ["new-thin", "old-thin", "medium"])

    def test_zero_budget(self):
        self.assertEqual(sample_claims_for_eval([_claim("a", "Python")], 0), [])


if __name__ == "__main__":
    unittest.main()
