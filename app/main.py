import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.api.router import api_router
from app.config import settings
from app.config.pricing import get_price_catalog


def setup_logging() -> None:
    """Configure application logging."""
    # Format: timestamp - level - logger name - message
    log_format = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
    date_format = "%H:%M:%S"

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=log_format,
        datefmt=date_format,
        stream=sys.stdout,
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)

    # Quieten uvicorn access logs (requests are logged by the middleware below)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    setup_logging()
    logger.info("Flock API starting up")

    if settings.stripe_enabled:
        # Refuse to boot with a missing Stripe price ID
        get_price_catalog()
    else:
        logger.warning("Stripe not configured - checkout and seat billing disabled")

    yield
    logger.info("Flock API shutting down")


app = FastAPI(
    title="Flock API",
    description="Church community API with seat-based billing",
    version="0.1.0",
    lifespan=lifespan,
)

# Trust X-Forwarded-Proto from the TLS-terminating proxy
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log failed requests and every billing or membership write."""
    if request.method == "OPTIONS" or request.url.path == "/health":
        return await call_next(request)

    response = await call_next(request)

    path = request.url.path
    is_write = request.method in ("POST", "DELETE") and ("billing" in path or "members" in path)
    if response.status_code >= 400 or is_write:
        logger.info(f"{request.method} {path} -> {response.status_code}")

    return response


app.include_router(api_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
