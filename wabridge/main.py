import json
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

from fastapi import FastAPI, Response, Request, Depends, Header, HTTPException, status, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from wabridge.config import settings
from wabridge.storage import init_db, check_db_health, get_db, get_messages, get_rooms, get_stats
from wabridge.logging_utils import setup_logging, RequestLoggingMiddleware, log_webhook_data
from wabridge.media import GraphMediaFetcher, LocalMediaStore
from wabridge.pipeline import ProcessingContext, process_payload
from wabridge.utils import verify_hmac_signature
from wabridge.metrics import record_webhook_outcome, get_metrics, get_metrics_content_type
from wabridge.schemas import (
    HealthResponse,
    WebhookResponse,
    ErrorResponse,
    MessageResponse,
    MessagesListResponse,
    RoomResponse,
    RoomsListResponse,
    StatsResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@lru_cache()
def get_context() -> ProcessingContext:
    """Processing context for the configured WhatsApp Business channel."""
    fetcher = GraphMediaFetcher(
        store=LocalMediaStore(settings.MEDIA_ROOT),
        access_token=settings.WB_ACCESS_TOKEN,
        graph_url=settings.WB_GRAPH_URL,
        graph_version=settings.WB_GRAPH_VERSION,
        timeout=settings.MEDIA_FETCH_TIMEOUT,
    )
    return ProcessingContext(
        channel=settings.WB_CHANNEL,
        phone_number_id=settings.WB_PHONE_NUMBER_ID,
        fetcher=fetcher,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="WhatsApp Business Bridge",
    description="Reconciles WhatsApp Business webhooks into rooms and messages",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness check: always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness check: returns 200 only if:
    1. DB is reachable and schema is applied
    2. WEBHOOK_SECRET and WB_VERIFY_TOKEN are set (non-empty)

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.WEBHOOK_SECRET or not settings.WB_VERIFY_TOKEN:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="WEBHOOK_SECRET or WB_VERIFY_TOKEN not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Webhook Routes
# =============================================================================

@app.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: Annotated[str | None, Query(alias="hub.mode")] = None,
    verify_token: Annotated[str | None, Query(alias="hub.verify_token")] = None,
    challenge: Annotated[str | None, Query(alias="hub.challenge")] = None,
) -> str:
    """
    Subscription verification handshake.

    Echoes hub.challenge when hub.mode is "subscribe" and hub.verify_token
    matches WB_VERIFY_TOKEN.
    """
    if mode == "subscribe" and verify_token == settings.WB_VERIFY_TOKEN and challenge is not None:
        logger.info("Webhook verification succeeded")
        return challenge

    logger.warning("Webhook verification failed", extra={"mode": mode})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="verification failed")


@app.post(
    "/webhook",
    response_model=WebhookResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid signature"},
        422: {"description": "Validation error"},
    }
)
async def webhook(
    request: Request,
    x_hub_signature_256: Annotated[str | None, Header(alias="X-Hub-Signature-256")] = None,
    db: Session = Depends(get_db),
    context: ProcessingContext = Depends(get_context),
) -> WebhookResponse:
    """
    Reconcile a WhatsApp Business webhook delivery.

    - Validates the HMAC-SHA256 signature in X-Hub-Signature-256
    - Classifies every message/status/reaction item in the envelope
    - Reconciles each one in its own transaction; bad items are logged and skipped

    Always answers 200 for a signed, well-formed delivery so the provider
    does not redeliver notifications that were deliberately dropped.
    """
    raw_body = await request.body()
    logger.debug(f"Request body size: {len(raw_body)} bytes")

    if not verify_hmac_signature(raw_body, x_hub_signature_256, settings.WEBHOOK_SECRET):
        logger.error("Missing or invalid X-Hub-Signature-256")
        record_webhook_outcome("invalid_signature")
        log_webhook_data(request=request, result="invalid_signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid signature"
        )

    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Invalid JSON: {e}")
        record_webhook_outcome("validation_error")
        log_webhook_data(request=request, result="validation_error")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid JSON: {str(e)}"
        )

    if not isinstance(payload, dict):
        record_webhook_outcome("validation_error")
        log_webhook_data(request=request, result="validation_error")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Webhook body must be a JSON object"
        )

    results = await run_in_threadpool(process_payload, db, payload, context)

    processed = sum(1 for r in results if r.success)
    record_webhook_outcome("processed")
    log_webhook_data(request=request, result="processed", received=len(results), processed=processed)

    return WebhookResponse(status="ok", received=len(results), processed=processed)


# =============================================================================
# Rooms & Messages Routes
# =============================================================================

@app.get("/rooms", response_model=RoomsListResponse)
async def list_rooms(
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    db: Session = Depends(get_db)
) -> RoomsListResponse:
    """List rooms of the configured channel, most recent activity first."""
    rooms, total = get_rooms(db, channel=settings.WB_CHANNEL, limit=limit, offset=offset)
    return RoomsListResponse(
        data=[RoomResponse.model_validate(room) for room in rooms],
        total=total,
        limit=limit,
        offset=offset
    )


@app.get("/messages", response_model=MessagesListResponse)
async def list_messages(
    limit: Annotated[int, Query(ge=1, le=100, description="Maximum number of messages to return")] = 50,
    offset: Annotated[int, Query(ge=0, description="Number of messages to skip")] = 0,
    chat_id: Annotated[str | None, Query(description="Filter by room chat id (exact match)")] = None,
    since: Annotated[int | None, Query(ge=0, description="Filter messages with timestamp >= since (unix seconds)")] = None,
    q: Annotated[str | None, Query(description="Free-text search in message content (case-insensitive)")] = None,
    db: Session = Depends(get_db)
) -> MessagesListResponse:
    """
    List stored messages with pagination and filtering.

    Ordering:
        - Messages are ordered by timestamp ASC, id ASC (deterministic)
    """
    messages, total = get_messages(
        db=db,
        channel=settings.WB_CHANNEL,
        limit=limit,
        offset=offset,
        chat_id=chat_id,
        since=since,
        q=q
    )

    return MessagesListResponse(
        data=[MessageResponse.model_validate(msg) for msg in messages],
        total=total,
        limit=limit,
        offset=offset
    )


# =============================================================================
# Stats Route
# =============================================================================

@app.get("/stats", response_model=StatsResponse)
async def get_statistics(db: Session = Depends(get_db)) -> StatsResponse:
    """Room and delivery-state counters for the configured channel."""
    stats = get_stats(db, channel=settings.WB_CHANNEL)
    return StatsResponse(**stats)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
