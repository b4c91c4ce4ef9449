import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi import _rate_limit_exceeded_handler
import sentry_sdk

from identity_engine.api.v1.health import router as health_router
from identity_engine.api.v1.claims import router as claims_router
from identity_engine.api.v1.opportunities import router as opportunities_router
from identity_engine.core.cors import cors_options
from identity_engine.core.rate_limit import limiter
from identity_engine.core.config import settings
from identity_engine.core.lifespan import lifespan

logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s %(message)s")
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn)

app = FastAPI(title="Identity Claims Engine API", version="0.1.0", lifespan=lifespan)

app.add_middleware(CORSMiddleware, **cors_options())
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.include_router(health_router, prefix="/v1", tags=["Health"])
app.include_router(claims_router, prefix="/v1", tags=["Claims"])
app.include_router(opportunities_router, prefix="/v1", tags=["Opportunities"])
