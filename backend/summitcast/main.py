"""
SummitCast FastAPI Application
Main entry point for the backend API.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from summitcast.config import settings
from summitcast.errors import ComputationError, RequestValidationFailure
from summitcast.api.v1 import safety
from summitcast.utils.cache import get_cache_stats

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Backcountry safety synthesis API: weather, avalanche, snowpack, precipitation, alerts and air quality",
    version="1.0.0",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _describe_validation_error(exc: RequestValidationError) -> str:
    """First validation problem as 'field: message'."""
    errors = exc.errors()
    if not errors:
        return "Invalid request parameters"
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("query", "body", "path")]
    field = ".".join(location) or "request"
    return f"{field}: {first.get('msg', 'invalid value')}"


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": _describe_validation_error(exc)})


@app.exception_handler(RequestValidationFailure)
async def validation_failure_handler(request: Request, exc: RequestValidationFailure):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(ComputationError)
async def computation_error_handler(request: Request, exc: ComputationError):
    logger.error(f"Computation error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "SummitCast API",
        "version": "1.0.0",
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }


@app.get("/health")
async def health_check_root():
    """Root health check endpoint for Docker/load balancers"""
    return {"status": "healthy"}


@app.get(f"{settings.API_V1_PREFIX}/health")
async def health_check():
    """API health check endpoint"""
    return {"status": "healthy"}


@app.get(f"{settings.API_V1_PREFIX}/cache/stats")
async def cache_stats():
    """Hit/miss counters and size of the shared provider cache"""
    return get_cache_stats()


# Include API routers (the safety route is also served unprefixed)
app.include_router(safety.router, prefix=settings.API_V1_PREFIX, tags=["safety"])
app.include_router(safety.router, tags=["safety"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "summitcast.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,  # Auto-reload on code changes
    )
