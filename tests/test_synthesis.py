import sqlite3
import sys
import threading
import unittest
from datetime import datetime, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from identity_engine.schemas import BatchDecision, Claim, ClaimEvidenceLink, Evidence  # noqa: E402
from identity_engine.semantic.embeddings import SimpleEmbeddingProvider  # noqa: E402
from identity_engine.semantic.vector_search import FaissClaimSearch  # noqa: E402
from identity_engine.services.synthesis import ClaimSynthesizer, chunk  # noqa: E402
from identity_engine.storage import SQLiteClaimStore  # noqa: E402

REFERENCE = datetime(2025, 6, 1, tzinfo=timezone.utc)


class StubDecider:
    """Answers from a fixed plan keyed by evidence id."""

    def __init__(self, plan, fail_on_calls=()):
        self.plan = plan
        self.fail_on_calls = set(fail_on_calls)
        self.calls = []

    def decide(self, existing_claims, evidence_items):
        self.calls.append(
            {
                "claims": [claim.label for claim in existing_claims],
                "evidence": [item.id for item in evidence_items],
            }
        )
        if len(self.calls) in self.fail_on_calls:
            raise RuntimeError("model unavailable")
        return [
            BatchDecision.model_validate({"evidence_id": item.id, **self.plan[item.id]})
            for item in evidence_items
            if item.id in self.plan
        ]


class LinkWriteFailingStore(SQLiteClaimStore):
    def _insert_link_rows(self, conn, links):
        links = list(links)
        if links:
            raise sqlite3.OperationalError("disk I/O error")
        return []


def _new(label, claim_type="skill", strength="medium"):
    return {"strength": strength, "new_claim": {"type": claim_type, "label": label, "description": f"{label} work"}}


def _match(label, strength="medium"):
    return {"match": label, "strength": strength}


class ClaimSynthesizerTests(unittest.TestCase):
    def setUp(self):
        self.store = SQLiteClaimStore(":memory:")
        self.embedder = SimpleEmbeddingProvider(dimension=64)
        self.search = FaissClaimSearch(self.store)
        self._next_id = 0

    def tearDown(self):
        self.store.close()

    def _id(self):
        self._next_id += 1
        return f"claim-{self._next_id}"

    def _evidence(self, *items):
        evidence = [
            Evidence(
                id=evidence_id,
                user_id="user-1",
                text=text,
                kind="skill_listed",
                embedding=self.embedder.embed_one(text),
            )
            for evidence_id, text in items
        ]
        self.store.add_evidence("user-1", evidence)
        return evidence

    def _synthesizer(self, decider, batch_size=2):
        return ClaimSynthesizer(
            self.store,
            self.embedder,
            self.search,
            decider,
            batch_size=batch_size,
            id_factory=self._id,
            clock=lambda: REFERENCE,
        )

    def _claims_by_label(self):
        return {claim.label: claim for claim in self.store.list_claims("user-1")}

    def test_later_batch_reuses_claim_created_earlier(self):
        evidence = self._evidence(
            ("e1", "Kubernetes"),
            ("e2", "Python"),
            ("e3", "Deployed Kubernetes clusters"),
        )
        decider = StubDecider(
            {
                "e1": _new("Kubernetes"),
                "e2": _new("Python"),
                "e3": _new("Kubernetes", strength="strong"),
            }
        )
        progress = []
        updates = []

        result = self._synthesizer(decider).synthesize(
            "user-1",
            evidence,
            on_progress=lambda p: progress.append((p.current, p.total)),
            on_claim_update=updates.append,
            reference_date=REFERENCE,
        )

        self.assertEqual(result.claims_created, 2)
        self.assertEqual(result.claims_updated, 1)
        self.assertEqual(result.batches_total, 2)
        self.assertEqual(result.batches_failed, 0)
        self.assertEqual(progress, [(1, 2), (2, 2)])
        self.assertEqual(
            [(update.action, update.label) for update in updates],
            [("created", "Kubernetes"), ("created", "Python"), ("matched", "Kubernetes")],
        )
        self.assertIn("Kubernetes", decider.calls[1]["claims"])

        claims = self._claims_by_label()
        self.assertEqual(sorted(claims), ["Kubernetes", "Python"])
        kubernetes = claims["Kubernetes"]
        self.assertEqual(kubernetes.evidence_count, 2)
        self.assertAlmostEqual(kubernetes.confidence, 0.7 * (1.0 + 1.2) / 2)
        self.assertAlmostEqual(claims["Python"].confidence, 0.5)
        self.assertEqual(len(kubernetes.embedding), 64)

    def test_matches_existing_claim_case_insensitively(self):
        self.store.add_evidence("user-1", [Evidence(id="e0", text="Python", kind="skill_listed")])
        self.store.insert_claims(
            [
                Claim(
                    id="python",
                    user_id="user-1",
                    type="skill",
                    label="Python",
                    confidence=0.5,
                    embedding=self.embedder.embed_one("Python"),
                )
            ]
        )
        self.store.upsert_evidence_links([ClaimEvidenceLink(claim_id="python", evidence_id="e0", strength="medium")])
        evidence = self._evidence(("e1", "Python"))
        decider = StubDecider({"e1": _match("python", strength="strong")})

        result = self._synthesizer(decider).synthesize("user-1", evidence, reference_date=REFERENCE)

        self.assertEqual(result.claims_created, 0)
        self.assertEqual(result.claims_updated, 1)
        self.assertEqual(decider.calls[0]["claims"], ["Python"])
        claim = self._claims_by_label()["Python"]
        self.assertEqual(claim.evidence_count, 2)
        self.assertAlmostEqual(claim.confidence, 0.7 * (1.0 + 1.2) / 2)

    def test_same_label_within_batch_creates_one_claim(self):
        evidence = self._evidence(("e1", "Mentored juniors"), ("e2", "Coached new hires"))
        decider = StubDecider({"e1": _new("Mentorship", "attribute"), "e2": _new("mentorship", "attribute", "strong")})

        result = self._synthesizer(decider).synthesize("user-1", evidence, reference_date=REFERENCE)

        self.assertEqual(result.claims_created, 1)
        self.assertEqual(result.claims_updated, 1)
        claims = self.store.list_claims("user-1")
        self.assertEqual(len(claims), 1)
        self.assertEqual(claims[0].evidence_count, 2)
        self.assertAlmostEqual(claims[0].confidence, 0.7 * 1.1)

    def test_existing_link_is_not_counted_as_update(self):
        evidence = self._evidence(("e1", "Python"))
        self.store.insert_claims(
            [
                Claim(
                    id="python",
                    user_id="user-1",
                    type="skill",
                    label="Python",
                    confidence=0.5,
                    embedding=self.embedder.embed_one("Python"),
                )
            ]
        )
        self.store.upsert_evidence_links([ClaimEvidenceLink(claim_id="python", evidence_id="e1", strength="medium")])
        decider = StubDecider({"e1": _match("Python", strength="strong")})
        updates = []

        result = self._synthesizer(decider).synthesize(
            "user-1", evidence, on_claim_update=updates.append, reference_date=REFERENCE
        )

        self.assertEqual(result.claims_updated, 0)
        self.assertEqual(updates, [])
        self.assertEqual(self.store.list_links("python")[0].strength, "medium")
        self.assertAlmostEqual(self._claims_by_label()["Python"].confidence, 0.5)

    def test_failed_batch_write_leaves_nothing_behind(self):
        store = LinkWriteFailingStore(":memory:")
        self.addCleanup(store.close)
        evidence = [Evidence(id="e1", user_id="user-1", text="Kubernetes", kind="skill_listed")]
        store.add_evidence("user-1", evidence)
        synthesizer = ClaimSynthesizer(
            store,
            self.embedder,
            FaissClaimSearch(store),
            StubDecider({"e1": _new("Kubernetes")}),
            id_factory=self._id,
            clock=lambda: REFERENCE,
        )

        result = synthesizer.synthesize("user-1", evidence, reference_date=REFERENCE)

        self.assertEqual(result.batches_failed, 1)
        self.assertEqual(result.claims_created, 0)
        self.assertEqual(result.claim_updates, [])
        self.assertEqual(store.list_claims("user-1"), [])

    def test_unknown_match_without_proposal_is_ignored(self):
        evidence = self._evidence(("e1", "Rust"), ("e2", "Go"))
        decider = StubDecider(
            {
                "e1": _match("Nonexistent Claim"),
                "e2": {"match": "Also Missing", **_new("Go")},
            }
        )

        result = self._synthesizer(decider).synthesize("user-1", evidence, reference_date=REFERENCE)

        self.assertEqual(result.claims_created, 1)
        self.assertEqual(result.claims_updated, 0)
        self.assertEqual(list(self._claims_by_label()), ["Go"])

    def test_failed_batch_does_not_stop_the_run(self):
        evidence = self._evidence(("e1", "Terraform"), ("e2", "Ansible"))
        decider = StubDecider({"e1": _new("Terraform"), "e2": _new("Ansible")}, fail_on_calls={1})

        result = self._synthesizer(decider, batch_size=1).synthesize("user-1", evidence, reference_date=REFERENCE)

        self.assertEqual(result.batches_total, 2)
        self.assertEqual(result.batches_failed, 1)
        self.assertEqual(result.claims_created, 1)
        self.assertEqual(list(self._claims_by_label()), ["Ansible"])

    def test_cancellation_stops_before_next_batch(self):
        evidence = self._evidence(("e1", "Scala"), ("e2", "Kotlin"), ("e3", "Swift"))
        decider = StubDecider({"e1": _new("Scala"), "e2": _new("Kotlin"), "e3": _new("Swift")})
        cancel = threading.Event()

        def on_progress(progress):
            if progress.current == 1:
                cancel.set()

        result = self._synthesizer(decider, batch_size=1).synthesize(
            "user-1",
            evidence,
            on_progress=on_progress,
            cancel_event=cancel,
            reference_date=REFERENCE,
        )

        self.assertTrue(result.cancelled)
        self.assertEqual(result.claims_created, 1)
        self.assertEqual(len(decider.calls), 1)

    def test_oversized_evidence_is_skipped(self):
        evidence = self._evidence(("e1", "x" * 5001), ("e2", "GraphQL"))
        decider = StubDecider({"e1": _new("Noise"), "e2": _new("GraphQL")})

        result = self._synthesizer(decider).synthesize("user-1", evidence, reference_date=REFERENCE)

        self.assertEqual(result.evidence_skipped, 1)
        self.assertEqual(decider.calls[0]["evidence"], ["e2"])
        self.assertEqual(list(self._claims_by_label()), ["GraphQL"])

    def test_no_evidence_means_no_batches(self):
        decider = StubDecider({})
        result = self._synthesizer(decider).synthesize("user-1", [], reference_date=REFERENCE)
        self.assertEqual(result.batches_total, 0)
        self.assertEqual(decider.calls, [])

    def test_recalculate_ignores_unknown_claims(self):
        synthesizer = self._synthesizer(StubDecider({}))
        self.assertEqual(synthesizer.recalculate_confidences(["missing"], REFERENCE), {})


class ChunkTests(unittest.TestCase):
    def test_chunk_sizes(self):
        items = [Evidence(id=str(i), text="t", kind="skill_listed") for i in range(5)]
        self.assertEqual([len(batch) for batch in chunk(items, 2)], [2, 2, 1])
        with self.assertRaises(ValueError):
            chunk(items, 0)


if __name__ == "__main__":
    unittest.main()
