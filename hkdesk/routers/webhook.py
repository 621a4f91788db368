from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import sessionmaker

from hkdesk.dependencies import get_services, get_session_factory
from hkdesk.logging_config import get_logger
from hkdesk.schemas.webhook import WebhookAck
from hkdesk.services.pipeline import SharedServices, WebhookBatch, build_processor, validate_envelope

logger = get_logger("webhook")

router = APIRouter()


async def process_batch(services: SharedServices, session_factory: sessionmaker, batch: WebhookBatch) -> None:
    """Background processing of one delivery with its own session."""
    db = session_factory()
    try:
        outcomes = await build_processor(services, db).process(batch)
        logger.info(
            "Webhook batch processed",
            extra={"context": {"results": [{"wamid": o.wamid, "status": o.status} for o in outcomes]}},
        )
    except Exception as exc:
        logger.error("Webhook batch failed", exc_info=True, extra={"context": {"error": str(exc)}})
    finally:
        db.close()


@router.get("/webhook")
async def verify_webhook(
    hub_mode: str | None = Query(default=None, alias="hub.mode"),
    hub_verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(default=None, alias="hub.challenge"),
    services: SharedServices = Depends(get_services),
):
    """Meta subscription handshake."""
    expected = services.settings.whatsapp_verify_token
    if hub_mode == "subscribe" and expected and hub_verify_token == expected:
        logger.info("Webhook verified")
        return PlainTextResponse(hub_challenge or "")
    logger.warning("Webhook verification failed", extra={"context": {"mode": hub_mode}})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: SharedServices = Depends(get_services),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Acknowledge at once; the pipeline runs after the response is sent."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    batch = validate_envelope(payload)
    if batch is None:
        logger.info("Webhook ignored: not a WhatsApp message delivery")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")

    logger.info(
        "Webhook received",
        extra={"context": {"business_id": batch.business_id, "messages": len(batch.messages)}},
    )
    background_tasks.add_task(process_batch, services, session_factory, batch)
    return WebhookAck()
