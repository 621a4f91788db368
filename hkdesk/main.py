from datetime import datetime, timezone

from fastapi import FastAPI

from hkdesk.config import settings
from hkdesk.database import init_db
from hkdesk.logging_config import get_logger, setup_logging
from hkdesk.routers import debug, media, webhook
from hkdesk.services.pipeline import SharedServices

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="hkdesk",
    description="WhatsApp maintenance desk: housekeeping requests routed to specialists by an agent",
    version="0.1.0",
)
app.state.services = SharedServices.from_settings(settings)

app.include_router(webhook.router)
app.include_router(debug.router)
app.include_router(media.router)


@app.on_event("startup")
async def startup() -> None:
    init_db()
    logger.info(
        "hkdesk started",
        extra={
            "context": {
                "model": settings.openai_model,
                "specialist_line": bool(settings.whatsapp_specialist_phone_number_id),
                "alerts": app.state.services.alerts.enabled,
            }
        },
    )


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
