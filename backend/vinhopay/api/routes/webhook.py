"""
WhatsApp webhook.

GET  /webhook - Meta verification handshake
POST /webhook - inbound messages; always answered with 200 so the provider
                does not retry-storm us. Redeliveries are dropped by message id.
"""
import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from vinhopay.conversation.router import process_inbound
from vinhopay.core.audit import mask_phone
from vinhopay.core.config import settings
from vinhopay.whatsapp.client import deliver_all
from vinhopay.whatsapp.webhook import parse_webhook_payload

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
def verify_webhook(
    mode: str = Query(None, alias="hub.mode"),
    token: str = Query(None, alias="hub.verify_token"),
    challenge: str = Query("", alias="hub.challenge"),
):
    if mode == "subscribe" and settings.WA_VERIFY_TOKEN and token == settings.WA_VERIFY_TOKEN:
        return PlainTextResponse(challenge)
    logger.warning("[WEBHOOK] Verification failed")
    return Response(status_code=403)


@router.post("")
async def receive_webhook(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("[WEBHOOK] Body is not JSON, ignored")
        return {"ok": True}

    message = parse_webhook_payload(payload)
    if message is None:
        return {"ok": True}

    logger.info(f"[WEBHOOK] Message from {mask_phone(message.sender_phone)}")
    try:
        # Sync DB + HTTP work runs in the thread pool
        replies = await run_in_threadpool(process_inbound, message)
        await run_in_threadpool(deliver_all, replies)
    except Exception as e:
        logger.error(f"[WEBHOOK] Processing failed: {type(e).__name__}: {e}", exc_info=True)
    return {"ok": True}
