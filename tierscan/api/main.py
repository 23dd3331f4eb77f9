"""FastAPI application for distribution lookups and scan control."""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tierscan.core.config import settings
from tierscan.core.resources import Resources
from tierscan.services.balance_lookup import create_balance_lookup
import logging
import time
import sys

from tierscan.api.routes import health, scan, thresholds

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open shared resources on startup and close them on shutdown."""
    resources = Resources(settings)
    await resources.open()
    app.state.resources = resources
    app.state.balance_lookup = create_balance_lookup(settings)
    logger.info(f"API ready with {len(settings.endpoint_list)} XRPL endpoint(s) configured")

    try:
        yield
    finally:
        logger.info("API shutting down")
        await resources.close()


app = FastAPI(title="XRP Tier Scan API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One log line per request with status and latency."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    # Lookups are frequent; keep them out of info logs
    log = logger.debug if request.url.path.startswith(("/health", "/api/classify")) else logger.info
    log(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Turn unexpected errors into a 500 that still carries CORS headers."""
    logger.error(f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "code": "INTERNAL_ERROR",
        },
        headers={
            "Access-Control-Allow-Origin": request.headers.get("origin", "*"),
            "Access-Control-Allow-Credentials": "true",
        }
    )


logger.info(f"Configuring CORS with origins: {settings.cors_origins_list}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(health.router)
app.include_router(thresholds.router)
app.include_router(scan.router)


@app.get("/")
async def root():
    return {"service": "tierscan-api", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.backend_port)
