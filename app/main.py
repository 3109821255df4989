import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.api import api_router
from app.core.cidr import CLASSIFIERS, DatacenterClassifier
from app.core.config import settings
from app.core.rate_limit import limiter
from app.middleware import IPBlockerMiddleware
from app.services.ip_blocker import RequestGate
from app.services.streamed import StreamedClient, UpstreamError, get_streamed_client
from app.services.violations import BlockSweeper, ViolationRateLimiter, build_violation_store

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

# Create FastAPI app
app = FastAPI(
    title="Sports Stream Server",
    description="Sports data proxy with IP and bot blocking",
    version=APP_VERSION,
)

violation_store = build_violation_store(settings)
violation_limiter = ViolationRateLimiter(
    violation_store,
    max_failed_attempts=settings.IP_BLOCKER_MAX_FAILED_ATTEMPTS,
    block_duration=settings.IP_BLOCKER_BLOCK_DURATION_SECONDS,
)
datacenter_classifier = DatacenterClassifier(classifier_cls=CLASSIFIERS[settings.IP_BLOCKER_CLASSIFIER])
request_gate = RequestGate(violation_limiter, datacenter_classifier)
block_sweeper = BlockSweeper(violation_limiter, interval=settings.IP_BLOCKER_SWEEP_INTERVAL_SECONDS)


@app.on_event("startup")
def _start_sweeper():
    if settings.IP_BLOCKER_ENABLED:
        block_sweeper.start()
        logger.info(
            f"IP blocker enabled (store={settings.IP_BLOCKER_STORE}, "
            f"ranges={len(datacenter_classifier.ranges)})"
        )


@app.on_event("shutdown")
def _stop_sweeper():
    block_sweeper.stop(timeout=5)


# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

_origins_raw = (settings.CORS_ALLOW_ORIGINS or "").strip()
if _origins_raw == "*":
    _allow_origins = ["*"]
else:
    _allow_origins = [o.strip() for o in _origins_raw.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allow_origins,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Added last so it is the outermost layer and runs before everything else.
if settings.IP_BLOCKER_ENABLED:
    app.add_middleware(IPBlockerMiddleware, gate=request_gate)


@app.get("/")
async def root():
    return {
        "name": "Sports Stream Server",
        "version": APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Basic health check - API is running"""
    return {
        "status": "healthy",
        "build": {
            "git_sha": settings.BUILD_GIT_SHA,
            "image_tag": settings.BUILD_IMAGE_TAG,
        },
        "ip_blocker": {
            "enabled": settings.IP_BLOCKER_ENABLED,
            "store": settings.IP_BLOCKER_STORE,
            "sweeper_running": block_sweeper.running,
        },
    }


@app.get("/health/detailed")
async def health_detailed(client: StreamedClient = Depends(get_streamed_client)):
    """Detailed health check with upstream and store status"""
    status = {
        "api": "healthy",
        "upstream": "unknown",
        "violation_store": "unknown",
    }

    try:
        await client.get_json("/sports")
        status["upstream"] = "healthy"
    except UpstreamError as e:
        status["upstream"] = f"unavailable: {str(e)[:100]}"

    try:
        tracked = len(violation_store)
        status["violation_store"] = "healthy"
    except Exception as e:
        tracked = None
        status["violation_store"] = f"unavailable: {str(e)[:100]}"

    overall_status = "healthy" if all(v == "healthy" for v in status.values()) else "degraded"

    return {
        "status": overall_status,
        "services": status,
        "tracked_addresses": tracked,
        "version": APP_VERSION,
    }


# Include API routes
app.include_router(api_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        workers=settings.WORKERS,
    )
