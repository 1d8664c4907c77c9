"""FastAPI routes for the ingestion endpoint."""

import ipaddress
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import IngestConfig
from .errors import IngestError, StorageError
from .models import TrackRequest
from .pipeline import IngestPipeline

logger = logging.getLogger(__name__)

DOMAIN_KEY_HEADER = "X-Domain-Key"


def _client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, falling back to the socket address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _fill_from_headers(payload: TrackRequest, request: Request) -> TrackRequest:
    """Use request metadata for fields the body left out."""
    updates = {}
    if payload.user_agent is None:
        updates["user_agent"] = request.headers.get("User-Agent")
    if payload.ip is None:
        ip = _client_ip(request)
        if ip:
            try:
                ipaddress.ip_address(ip)
                updates["ip"] = ip
            except ValueError:
                logger.debug(f"Ignoring unparseable client address: {ip!r}")
    if not updates:
        return payload
    return payload.model_copy(update=updates)


def create_track_router(pipeline: IngestPipeline) -> APIRouter:
    """Create the router exposing POST /track.

    Args:
        pipeline: The ingestion pipeline requests are handed to
    """
    router = APIRouter(tags=["ingest"])
    config = pipeline.config

    @router.post("/track")
    async def track(
        payload: TrackRequest,
        request: Request,
        x_domain_key: str | None = Header(default=None, alias=DOMAIN_KEY_HEADER),
    ):
        """Record a pageview or custom event."""
        if config.use_request_metadata:
            payload = _fill_from_headers(payload, request)

        try:
            await pipeline.track(payload, domain_key=x_domain_key)
        except IngestError as e:
            if isinstance(e, StorageError):
                logger.error(f"Tracking failed for {payload.domain}: {e}")
            return JSONResponse(status_code=e.status_code, content={"error": e.message})

        return {"status": "success"}

    return router


def create_app(pipeline: IngestPipeline, prefix: str = "") -> FastAPI:
    """Standalone app serving the tracking endpoint with CORS enabled.

    The pipeline's store connections and geo database are closed on shutdown.
    """
    config: IngestConfig = pipeline.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await pipeline.aclose()

    app = FastAPI(title="941 Analytics Ingest", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_allow_origins),
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type", DOMAIN_KEY_HEADER],
    )
    app.include_router(create_track_router(pipeline), prefix=prefix)
    return app
