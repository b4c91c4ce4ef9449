import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from identity_engine.api.deps import get_matcher, get_store
from identity_engine.core.rate_limit import rate_limit
from identity_engine.core.security import require_api_key
from identity_engine.schemas import MatchResult, Opportunity
from identity_engine.schemas.api import OpportunityCreateRequest, OpportunityCreateResponse
from identity_engine.services.matching import OpportunityMatcher, normalize_requirements
from identity_engine.storage import ClaimStore

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post("/opportunities", response_model=OpportunityCreateResponse)
@rate_limit()
def create_opportunity(
    request: Request,
    payload: OpportunityCreateRequest,
    store: ClaimStore = Depends(get_store),
):
    requirements = payload.requirements.model_dump()
    opportunity = Opportunity(
        id=payload.id or str(uuid.uuid4()),
        user_id=payload.user_id,
        title=payload.title,
        company=payload.company,
        requirements=requirements,
    )
    store.save_opportunity(opportunity)
    return OpportunityCreateResponse(
        id=opportunity.id,
        requirement_count=len(normalize_requirements(requirements)),
    )


@router.get("/opportunities/{opportunity_id}/match", response_model=MatchResult)
@rate_limit()
def match_opportunity(
    request: Request,
    opportunity_id: str,
    user_id: str = Query(min_length=1),
    store: ClaimStore = Depends(get_store),
    matcher: OpportunityMatcher = Depends(get_matcher),
):
    if store.get_opportunity(opportunity_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Opportunity not found.")
    return matcher.compute_match(opportunity_id, user_id)
