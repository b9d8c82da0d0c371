import hmac
import json
import logging
from typing import Any, Dict, Literal, Optional
from urllib.parse import parse_qsl
from uuid import UUID
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from ..channels.telegram import parse_update
from ..channels.whatsapp import parse_messages
from ..errors import AgentGError, ChannelNotConfiguredError, UnauthorizedError
from ..models.calls import CallChannel, CallDirection, CallMode, CallPreferencesUpdate, CallRecord, StartSessionInput
from ..models.channels import InboundEvent, InboundMessage
from ..services import AgentGServices
from .deps import get_services, optional_caller, require_caller

router = APIRouter(prefix="/agent-g")
logger = logging.getLogger(__name__)

TERMINAL_CALL_STATUSES = {"completed", "ended", "failed", "busy", "no-answer", "canceled"}

class StartCallRequest(BaseModel):
    channel: CallChannel
    mode: CallMode
    initial_text: Optional[str] = None
    related_task_id: Optional[UUID] = None


async def _read_body(request: Request) -> Dict[str, Any]:
    """Providers post either JSON or form-encoded bodies."""
    raw = await request.body()
    if not raw:
        return {}
    if request.headers.get("content-type", "").startswith("application/x-www-form-urlencoded"):
        return dict(parse_qsl(raw.decode("utf-8")))
    try:
        data = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    return data


async def _record_and_handle(services: AgentGServices, message: InboundMessage, payload: Dict[str, Any]):
    await services.inbound_events.record(InboundEvent(
        channel=message.channel,
        external_id=message.external_id,
        text=message.text,
        payload=payload,
    ))
    return await services.inbound.handle(message)


@router.get("/calls")
async def list_calls(
    services: AgentGServices = Depends(get_services),
    user_id: Optional[str] = Depends(optional_caller),
):
    """Call preferences and the latest calls of the caller; guests get an empty view."""
    provider = services.calls_provider
    if not user_id:
        return {"guest": True, "provider": provider.name, "voice_connected": False, "prefs": None, "calls": []}

    prefs = await services.preferences.get(user_id)
    calls = await services.calls.list_for_user(user_id)
    return {
        "guest": False,
        "provider": provider.name,
        "voice_connected": bool(prefs and prefs.voice_connected),
        "prefs": prefs.model_dump(mode="json") if prefs else None,
        "calls": [call.model_dump(mode="json") for call in calls],
    }


@router.patch("/calls")
async def update_call_preferences(
    update: CallPreferencesUpdate,
    services: AgentGServices = Depends(get_services),
    user_id: str = Depends(require_caller),
):
    prefs = await services.preferences.upsert(user_id, update)
    return {"prefs": prefs.model_dump(mode="json")}


@router.post("/calls/start", status_code=201)
async def start_call(
    request: StartCallRequest,
    services: AgentGServices = Depends(get_services),
    user_id: str = Depends(require_caller),
):
    provider = services.calls_provider
    related_task_id = str(request.related_task_id) if request.related_task_id else None
    prefs = await services.preferences.get(user_id)

    result = await provider.start_inbound_session(StartSessionInput(
        user_id=user_id,
        channel=request.channel,
        mode=request.mode,
        phone_number=prefs.phone_number if prefs else None,
        related_task_id=related_task_id,
        initial_text=request.initial_text,
    ))
    if not result.ok:
        raise HTTPException(status_code=502, detail="Calls provider rejected the session")

    record = CallRecord(
        call_id=result.provider_call_id,
        provider=provider.name,
        direction=CallDirection.INBOUND,
        channel=request.channel.value,
        status=result.status,
        user_id=user_id,
        related_task_id=related_task_id,
        transcript=result.transcript or request.initial_text,
        summary=result.summary,
        meta={"mode": request.mode.value, **result.meta},
    )
    await services.calls.save(record)
    return {"call": record.model_dump(mode="json"), "provider": provider.name}


@router.post("/calls/webhook/inbound")
async def calls_inbound_webhook(request: Request, services: AgentGServices = Depends(get_services)):
    payload = await _read_body(request)
    provider = services.calls_provider
    result = await provider.on_webhook_event(payload)

    if result.ok and result.call_id:
        updated = await services.calls.update_status(result.call_id, result.status, result.meta)
        if updated is None:
            await services.calls.save(CallRecord(
                call_id=result.call_id,
                provider=provider.name,
                direction=CallDirection.INBOUND,
                channel=provider.channel,
                status=result.status,
                meta=result.meta,
            ))

    return result.model_dump()


@router.post("/calls/webhook/status")
async def calls_status_webhook(request: Request, services: AgentGServices = Depends(get_services)):
    payload = await _read_body(request)
    result = await services.calls_provider.on_webhook_event(payload)

    if result.ok and result.call_id:
        updated = await services.calls.update_status(
            result.call_id,
            result.status,
            result.meta,
            ended=result.status.lower() in TERMINAL_CALL_STATUSES,
        )
        if updated is None:
            logger.warning(f"[Calls] Status webhook for unknown call {result.call_id}")

    return result.model_dump()


@router.post("/calls/{call_id}/end")
async def end_call(
    call_id: str,
    services: AgentGServices = Depends(get_services),
    user_id: str = Depends(require_caller),
):
    result = await services.calls_provider.end_call(call_id)
    if result.ok:
        await services.calls.update_status(call_id, "ended", ended=True)
    return result.model_dump()


class TelegramSendRequest(BaseModel):
    chat_id: str = Field(min_length=1)
    text: str = Field(min_length=1, max_length=4000)
    parse_mode: Optional[Literal["Markdown", "HTML"]] = None


async def _set_telegram_webhook(services: AgentGServices, provided: Optional[str]):
    setup_secret = services.config.telegram.setup_secret
    if not setup_secret:
        raise ChannelNotConfiguredError("TELEGRAM_SETUP_SECRET missing")
    if not hmac.compare_digest((provided or "").strip(), setup_secret):
        raise UnauthorizedError("Invalid setup secret")

    webhook_url = f"{services.config.origin}/agent-g/telegram/webhook"
    result = await services.telegram.set_webhook(webhook_url)
    logger.info(f"[Telegram] setWebhook to {webhook_url}: ok={result['ok']}")
    return {"ok": result["ok"], "webhook_url": webhook_url, "telegram": result["result"]}


@router.get("/telegram/set-webhook")
async def set_telegram_webhook(
    services: AgentGServices = Depends(get_services),
    secret: Optional[str] = Query(default=None),
    x_telegram_setup_secret: Optional[str] = Header(default=None),
):
    return await _set_telegram_webhook(services, x_telegram_setup_secret or secret)


@router.post("/telegram/set-webhook")
async def set_telegram_webhook_post(
    request: Request,
    services: AgentGServices = Depends(get_services),
    secret: Optional[str] = Query(default=None),
    x_telegram_setup_secret: Optional[str] = Header(default=None),
):
    body = await _read_body(request)
    body_secret = body.get("secret") if isinstance(body.get("secret"), str) else None
    return await _set_telegram_webhook(services, x_telegram_setup_secret or secret or body_secret)


@router.post("/telegram/send")
async def telegram_send(
    request: TelegramSendRequest,
    services: AgentGServices = Depends(get_services),
    key: Optional[str] = Query(default=None),
    admin_id: Optional[str] = Query(default=None),
    x_admin_key: Optional[str] = Header(default=None),
    x_admin_id: Optional[str] = Header(default=None),
):
    """Admin-only direct message to a Telegram chat."""
    config = services.config
    if not config.admin_key:
        raise AgentGError("ADMIN_KEY not configured")

    provided_key = (x_admin_key or key or "").strip()
    if not provided_key:
        raise UnauthorizedError("Admin key required")
    if not hmac.compare_digest(provided_key, config.admin_key):
        raise HTTPException(status_code=403, detail="Invalid admin key")
    if config.admin_id and (x_admin_id or admin_id or "").strip() != config.admin_id:
        raise HTTPException(status_code=403, detail="Invalid admin id")

    result = await services.telegram.send(request.chat_id, request.text, request.parse_mode)
    if not result["ok"]:
        raise HTTPException(status_code=502, detail="Failed to send Telegram message")
    return {"ok": True, "chat_id": request.chat_id, "status": result["status"], "result": result["result"]}


@router.post("/telegram/webhook")
async def telegram_webhook(
    request: Request,
    services: AgentGServices = Depends(get_services),
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
):
    if not services.telegram.verify_secret(x_telegram_bot_api_secret_token):
        raise UnauthorizedError("Invalid Telegram webhook secret")

    update = await _read_body(request)
    message = parse_update(update)
    if message is None:
        return {"ok": True, "replied": False}

    reply = await _record_and_handle(services, message, update)

    replied = False
    for text in reply.reply_messages:
        replied = await services.telegram.send_message(message.external_id, text) or replied

    return {"ok": True, "replied": replied, "task_id": reply.task_id}


@router.get("/whatsapp/webhook")
async def whatsapp_verify(
    services: AgentGServices = Depends(get_services),
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str = Query(default="", alias="hub.challenge"),
):
    if not services.whatsapp.verify_subscription(hub_mode, hub_verify_token):
        raise HTTPException(status_code=403, detail="Verification failed")
    return PlainTextResponse(hub_challenge)


@router.post("/whatsapp/webhook")
async def whatsapp_webhook(
    request: Request,
    services: AgentGServices = Depends(get_services),
    x_hub_signature_256: Optional[str] = Header(default=None),
):
    raw = await request.body()
    if not services.whatsapp.verify_signature(raw, x_hub_signature_256):
        raise UnauthorizedError("Invalid WhatsApp signature")

    payload = await _read_body(request)
    messages = parse_messages(payload)

    if not services.whatsapp.can_send:
        # acknowledged so Meta does not redeliver; events are still recorded
        logger.error(f"[WhatsApp] Cannot reply, access token or phone number id missing; dropping {len(messages)} messages")
        for message in messages:
            await services.inbound_events.record(InboundEvent(
                channel=message.channel,
                external_id=message.external_id,
                text=message.text,
                payload=payload,
            ))
        return {"ok": True, "processed": 0}

    processed = 0
    for message in messages:
        reply = await _record_and_handle(services, message, payload)
        for text in reply.reply_messages:
            await services.whatsapp.send_text(message.external_id, text)
        processed += 1

    return {"ok": True, "processed": processed}
