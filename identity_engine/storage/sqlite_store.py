from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Iterable, Iterator, Mapping

from identity_engine.schemas import (
    Claim,
    ClaimEvidenceLink,
    ClaimIssue,
    ClaimWithEvidence,
    Evidence,
    EvidenceContext,
    LinkedEvidence,
    Opportunity,
)

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS evidence (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        text TEXT NOT NULL,
        kind TEXT NOT NULL,
        context_json TEXT,
        source_type TEXT NOT NULL,
        evidence_date TEXT,
        embedding_json TEXT,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS identity_claims (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        type TEXT,
        label TEXT NOT NULL,
        description TEXT,
        confidence REAL NOT NULL DEFAULT 0,
        embedding_json TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS claim_evidence (
        claim_id TEXT NOT NULL,
        evidence_id TEXT NOT NULL,
        strength TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (claim_id, evidence_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS claim_issues (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        claim_id TEXT NOT NULL,
        document_id TEXT,
        issue_type TEXT NOT NULL,
        severity TEXT NOT NULL,
        message TEXT NOT NULL,
        related_claim_id TEXT,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS opportunities (
        id TEXT PRIMARY KEY,
        user_id TEXT,
        title TEXT NOT NULL,
        company TEXT,
        requirements_json TEXT,
        created_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_evidence_user ON evidence (user_id);",
    "CREATE INDEX IF NOT EXISTS idx_identity_claims_user ON identity_claims (user_id);",
    "CREATE INDEX IF NOT EXISTS idx_claim_issues_claim ON claim_issues (claim_id);",
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _parse_date(value: str | None) -> date | datetime | None:
    if not value:
        return None
    if "T" in value or " " in value:
        return datetime.fromisoformat(value)
    return date.fromisoformat(value)


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _dump_vector(vector: list[float] | None) -> str | None:
    if not vector:
        return None
    return json.dumps([float(v) for v in vector])


def _load_vector(raw: str | None) -> list[float] | None:
    if not raw:
        return None
    return [float(v) for v in json.loads(raw)]


class SQLiteClaimStore:
    """SQLite-backed ClaimStore. One shared connection, serialized by a lock."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._lock = threading.RLock()
        if db_path != ":memory:":
            directory = os.path.dirname(db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
        self._conn = sqlite3.connect(
            db_path,
            check_same_thread=False,
            timeout=5,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA busy_timeout=5000;")
        self.init_schema()

    def init_schema(self) -> None:
        with self._lock:
            for statement in _SCHEMA:
                self._conn.execute(statement)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                yield self._conn
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    # Evidence

    def add_evidence(self, user_id: str, items: Iterable[Evidence]) -> list[str]:
        now = _utc_now().isoformat()
        ids: list[str] = []
        with self._transaction() as conn:
            for item in items:
                conn.execute(
                    """
                    INSERT OR IGNORE INTO evidence (
                        id, user_id, text, kind, context_json, source_type,
                        evidence_date, embedding_json, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item.id,
                        user_id,
                        item.text,
                        item.kind,
                        item.context.model_dump_json() if item.context else None,
                        item.source_type,
                        _to_iso(item.evidence_date),
                        _dump_vector(item.embedding),
                        now,
                    ),
                )
                ids.append(item.id)
        return ids

    def list_evidence(self, user_id: str, evidence_ids: Iterable[str] | None = None) -> list[Evidence]:
        query = "SELECT * FROM evidence WHERE user_id = ?"
        params: list[Any] = [user_id]
        if evidence_ids is not None:
            ids = list(evidence_ids)
            if not ids:
                return []
            query += f" AND id IN ({','.join('?' for _ in ids)})"
            params.extend(ids)
        query += " ORDER BY created_at, rowid"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_evidence(row) for row in rows]

    @staticmethod
    def _row_to_evidence(row: sqlite3.Row) -> Evidence:
        context = EvidenceContext.model_validate_json(row["context_json"]) if row["context_json"] else None
        return Evidence(
            id=row["id"],
            user_id=row["user_id"],
            text=row["text"],
            kind=row["kind"],
            context=context,
            source_type=row["source_type"],
            evidence_date=_parse_date(row["evidence_date"]),
            embedding=_load_vector(row["embedding_json"]) or [],
        )

    # Claims

    def insert_claims(self, claims: Iterable[Claim]) -> int:
        with self._transaction() as conn:
            return self._insert_claim_rows(conn, claims)

    @staticmethod
    def _insert_claim_rows(conn: sqlite3.Connection, claims: Iterable[Claim]) -> int:
        now = _utc_now()
        inserted = 0
        for claim in claims:
            created_at = claim.created_at or now
            updated_at = claim.updated_at or created_at
            conn.execute(
                """
                INSERT INTO identity_claims (
                    id, user_id, type, label, description, confidence,
                    embedding_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    claim.id,
                    claim.user_id,
                    claim.type,
                    claim.label,
                    claim.description,
                    claim.confidence,
                    _dump_vector(claim.embedding),
                    created_at.isoformat(),
                    updated_at.isoformat(),
                ),
            )
            inserted += 1
        return inserted

    def list_claims(self, user_id: str) -> list[Claim]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT c.*, COUNT(ce.evidence_id) AS evidence_count
                FROM identity_claims c
                LEFT JOIN claim_evidence ce ON ce.claim_id = c.id
                WHERE c.user_id = ?
                GROUP BY c.id
                ORDER BY c.created_at, c.rowid
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_claim(row) for row in rows]

    def list_claim_embeddings(self, user_id: str) -> list[Claim]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM identity_claims
                WHERE user_id = ? AND embedding_json IS NOT NULL
                ORDER BY created_at, rowid
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_claim(row) for row in rows]

    @staticmethod
    def _row_to_claim(row: sqlite3.Row) -> Claim:
        keys = row.keys()
        return Claim(
            id=row["id"],
            user_id=row["user_id"],
            type=row["type"],
            label=row["label"],
            description=row["description"],
            confidence=row["confidence"],
            embedding=_load_vector(row["embedding_json"]),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
            evidence_count=row["evidence_count"] if "evidence_count" in keys else 0,
        )

    def update_confidences(self, confidences: Mapping[str, float], updated_at: datetime | None = None) -> int:
        stamp = (updated_at or _utc_now()).isoformat()
        updated = 0
        with self._transaction() as conn:
            for claim_id, confidence in confidences.items():
                cursor = conn.execute(
                    "UPDATE identity_claims SET confidence = ?, updated_at = ? WHERE id = ?",
                    (float(confidence), stamp, claim_id),
                )
                updated += cursor.rowcount
        return updated

    # Links

    def upsert_evidence_links(self, links: Iterable[ClaimEvidenceLink]) -> int:
        with self._transaction() as conn:
            return len(self._insert_link_rows(conn, links))

    @staticmethod
    def _insert_link_rows(conn: sqlite3.Connection, links: Iterable[ClaimEvidenceLink]) -> list[tuple[str, str]]:
        now = _utc_now().isoformat()
        inserted: list[tuple[str, str]] = []
        for link in links:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO claim_evidence (claim_id, evidence_id, strength, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (link.claim_id, link.evidence_id, link.strength, now),
            )
            if cursor.rowcount:
                inserted.append((link.claim_id, link.evidence_id))
        return inserted

    def apply_synthesis_batch(
        self,
        matched_links: Iterable[ClaimEvidenceLink],
        claims: Iterable[Claim],
        new_links: Iterable[ClaimEvidenceLink],
    ) -> set[tuple[str, str]]:
        """Write one synthesis batch in a single transaction.

        Returns the (claim_id, evidence_id) pairs that were actually inserted;
        links that already existed are left untouched and not returned.
        """
        with self._transaction() as conn:
            inserted = set(self._insert_link_rows(conn, matched_links))
            self._insert_claim_rows(conn, claims)
            inserted.update(self._insert_link_rows(conn, new_links))
        return inserted

    def list_links(self, claim_id: str) -> list[ClaimEvidenceLink]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT claim_id, evidence_id, strength FROM claim_evidence WHERE claim_id = ? ORDER BY rowid",
                (claim_id,),
            ).fetchall()
        return [ClaimEvidenceLink(claim_id=r["claim_id"], evidence_id=r["evidence_id"], strength=r["strength"]) for r in rows]

    def fetch_claims_with_evidence(self, claim_ids: Iterable[str]) -> list[ClaimWithEvidence]:
        ids = list(dict.fromkeys(claim_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        with self._lock:
            claim_rows = self._conn.execute(
                f"SELECT id, type, label, description FROM identity_claims WHERE id IN ({placeholders})",
                ids,
            ).fetchall()
            link_rows = self._conn.execute(
                f"""
                SELECT ce.claim_id, ce.evidence_id, ce.strength,
                       e.text, e.source_type, e.evidence_date
                FROM claim_evidence ce
                LEFT JOIN evidence e ON e.id = ce.evidence_id
                WHERE ce.claim_id IN ({placeholders})
                ORDER BY ce.rowid
                """,
                ids,
            ).fetchall()

        evidence_by_claim: dict[str, list[LinkedEvidence]] = {}
        for row in link_rows:
            evidence_by_claim.setdefault(row["claim_id"], []).append(
                LinkedEvidence(
                    evidence_id=row["evidence_id"],
                    text=row["text"] or "",
                    strength=row["strength"] or "medium",
                    source_type=row["source_type"] or "resume",
                    evidence_date=_parse_date(row["evidence_date"]),
                )
            )

        by_id = {row["id"]: row for row in claim_rows}
        results: list[ClaimWithEvidence] = []
        for claim_id in ids:
            row = by_id.get(claim_id)
            if row is None:
                continue
            results.append(
                ClaimWithEvidence(
                    id=row["id"],
                    type=row["type"],
                    label=row["label"],
                    description=row["description"],
                    evidence=evidence_by_claim.get(claim_id, []),
                )
            )
        return results

    # Issues

    def insert_issues(self, issues: Iterable[ClaimIssue]) -> int:
        now = _utc_now().isoformat()
        inserted = 0
        with self._transaction() as conn:
            for issue in issues:
                conn.execute(
                    """
                    INSERT INTO claim_issues (
                        claim_id, document_id, issue_type, severity, message, related_claim_id, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        issue.claim_id,
                        issue.document_id,
                        issue.issue_type,
                        issue.severity,
                        issue.message,
                        issue.related_claim_id,
                        now,
                    ),
                )
                inserted += 1
        return inserted

    def list_issues(self, user_id: str) -> list[ClaimIssue]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT i.* FROM claim_issues i
                JOIN identity_claims c ON c.id = i.claim_id
                WHERE c.user_id = ?
                ORDER BY i.id
                """,
                (user_id,),
            ).fetchall()
        return [
            ClaimIssue(
                claim_id=row["claim_id"],
                issue_type=row["issue_type"],
                severity=row["severity"],
                message=row["message"],
                related_claim_id=row["related_claim_id"],
                document_id=row["document_id"],
            )
            for row in rows
        ]

    # Opportunities

    def save_opportunity(self, opportunity: Opportunity) -> None:
        requirements_json = json.dumps(opportunity.requirements) if opportunity.requirements is not None else None
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO opportunities (id, user_id, title, company, requirements_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    opportunity.id,
                    opportunity.user_id,
                    opportunity.title,
                    opportunity.company,
                    requirements_json,
                    _utc_now().isoformat(),
                ),
            )

    def get_opportunity(self, opportunity_id: str) -> Opportunity | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM opportunities WHERE id = ?", (opportunity_id,)).fetchone()
        if row is None:
            return None
        requirements = json.loads(row["requirements_json"]) if row["requirements_json"] else None
        if requirements is not None and not isinstance(requirements, dict):
            logger.warning("opportunity_requirements_invalid id=%s", opportunity_id)
            requirements = None
        return Opportunity(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            company=row["company"],
            requirements=requirements,
        )
