"""
VinhoPay reservation bot backend.

ARCHITECTURE:
- WhatsApp Cloud API webhook: customers and partner restaurants talk to the bot
- Conversation engine: per-actor stage machines, state lives in the DB only
- Feedback dispatcher: background job that opens post-visit questionnaires
- SQL database: source of truth for all conversation state
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vinhopay.api.routes import admin, webhook
from vinhopay.core.config import settings
from vinhopay.db.init_db import init_db
from vinhopay.agent.feedback_dispatcher import start_feedback_scheduler, stop_feedback_scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    1. Initialize database tables
    2. Start the due-feedback scheduler (if enabled)

    Shutdown:
    1. Stop the scheduler
    """
    print("[*] Initializing database...")
    init_db()
    print("[OK] Database initialized")

    if settings.FEEDBACK_SCHEDULER_ENABLED:
        print("[*] Starting feedback scheduler...")
        start_feedback_scheduler()
    else:
        print("[WARN] Feedback scheduler disabled (FEEDBACK_SCHEDULER_ENABLED=0)")

    if not settings.WA_TOKEN:
        print("[WARN] WA_TOKEN not set: outbound WhatsApp messages will be dropped")

    yield

    if settings.FEEDBACK_SCHEDULER_ENABLED:
        stop_feedback_scheduler()


app = FastAPI(
    title="VinhoPay Reservation Bot",
    description="WhatsApp reservation negotiation between customers and partner restaurants.",
    version="0.2.0",
    lifespan=lifespan,
)

app.include_router(webhook.router, prefix="/webhook", tags=["webhook"])
app.include_router(admin.router, tags=["admin"])


@app.get("/health")
def health():
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "feedback_scheduler": settings.FEEDBACK_SCHEDULER_ENABLED,
    }
