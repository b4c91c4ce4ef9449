import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status

from identity_engine.api.deps import get_embedder, get_evaluator, get_store, get_synthesizer
from identity_engine.core.config import settings
from identity_engine.core.rate_limit import rate_limit
from identity_engine.core.security import require_api_key
from identity_engine.schemas import ClaimEvalResult, Evidence, SynthesisResult
from identity_engine.schemas.api import (
    ClaimListResponse,
    ClaimOut,
    EvaluateRequest,
    EvidenceCreateRequest,
    EvidenceCreateResponse,
    IssueListResponse,
    SynthesizeRequest,
)
from identity_engine.semantic.embeddings import EmbeddingProvider
from identity_engine.services.evaluation import ClaimEvaluator
from identity_engine.services.synthesis import ClaimSynthesizer
from identity_engine.storage import ClaimStore

router = APIRouter(dependencies=[Depends(require_api_key)])
logger = logging.getLogger(__name__)


@router.post("/users/{user_id}/evidence", response_model=EvidenceCreateResponse)
@rate_limit()
def add_evidence(
    request: Request,
    user_id: str,
    payload: EvidenceCreateRequest,
    store: ClaimStore = Depends(get_store),
    embedder: EmbeddingProvider = Depends(get_embedder),
):
    items = [
        Evidence(
            id=item.id or str(uuid.uuid4()),
            user_id=user_id,
            text=item.text,
            kind=item.kind,
            context=item.context,
            source_type=item.source_type,
            evidence_date=item.evidence_date,
            embedding=item.embedding or [],
        )
        for item in payload.items
    ]

    missing = [item for item in items if not item.embedding]
    if missing:
        try:
            vectors = embedder.embed([item.text for item in missing])
        except Exception as exc:  # noqa: BLE001
            logger.warning("evidence_embedding_failed user=%s count=%s: %s", user_id, len(missing), exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Embedding provider is unavailable.",
            ) from exc
        if len(vectors) != len(missing):
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Embedding provider returned an unexpected number of vectors.",
            )
        for item, vector in zip(missing, vectors):
            item.embedding = list(vector)

    evidence_ids = store.add_evidence(user_id, items)
    logger.info("evidence_added user=%s count=%s embedded=%s", user_id, len(evidence_ids), len(missing))
    return EvidenceCreateResponse(evidence_ids=evidence_ids)


@router.post("/users/{user_id}/synthesize", response_model=SynthesisResult)
@rate_limit(settings.llm_rate_limit)
def synthesize_claims(
    request: Request,
    user_id: str,
    payload: SynthesizeRequest | None = None,
    store: ClaimStore = Depends(get_store),
    synthesizer: ClaimSynthesizer = Depends(get_synthesizer),
):
    evidence_ids = payload.evidence_ids if payload else None
    evidence = store.list_evidence(user_id, evidence_ids)
    if evidence_ids is not None and len(evidence) != len(set(evidence_ids)):
        found = {item.id for item in evidence}
        unknown = [evidence_id for evidence_id in evidence_ids if evidence_id not in found]
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown evidence ids: {', '.join(unknown[:10])}",
        )
    return synthesizer.synthesize(user_id, evidence)


@router.get("/users/{user_id}/claims", response_model=ClaimListResponse)
@rate_limit()
def list_claims(request: Request, user_id: str, store: ClaimStore = Depends(get_store)):
    claims = store.list_claims(user_id)
    return ClaimListResponse(
        claims=[
            ClaimOut(
                id=claim.id,
                type=claim.type,
                label=claim.label,
                description=claim.description,
                confidence=claim.confidence,
                evidence_count=claim.evidence_count,
                created_at=claim.created_at,
                updated_at=claim.updated_at,
            )
            for claim in claims
        ]
    )


@router.post("/users/{user_id}/claims/evaluate", response_model=ClaimEvalResult)
@rate_limit(settings.llm_rate_limit)
def evaluate_claims(
    request: Request,
    user_id: str,
    payload: EvaluateRequest | None = None,
    evaluator: ClaimEvaluator = Depends(get_evaluator),
):
    payload = payload or EvaluateRequest()
    return evaluator.evaluate(
        user_id,
        document_id=payload.document_id,
        max_claims_for_ai_eval=payload.max_claims_for_ai_eval,
    )


@router.get("/users/{user_id}/claims/issues", response_model=IssueListResponse)
@rate_limit()
def list_claim_issues(request: Request, user_id: str, store: ClaimStore = Depends(get_store)):
    return IssueListResponse(issues=store.list_issues(user_id))
