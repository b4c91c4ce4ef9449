from fastapi import APIRouter

from identity_engine.core.config import settings
from identity_engine.services.llm import llm_enabled

router = APIRouter()


@router.get("/health", summary="Health Check", description="Report service status and which collaborators are configured.")
async def health_check():
    return {
        "status": "healthy",
        "embedding_provider": settings.embedding_provider,
        "llm_enabled": llm_enabled("synthesize_claims"),
    }
