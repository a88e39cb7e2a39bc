"""FastAPI endpoints for the career assistant.

Run locally with:
    uvicorn api.main:app --reload --port 8000

Routes:
    POST/OPTIONS /api/claude   completion gateway (plus welcome / visitor-info sentinels)
    POST /api/contact          contact form -> Slack
    POST /api/chat             live chat message or interview hand-off -> Slack
    POST /api/slack-dm         direct message -> Slack
    WS   /ws/live-chat         two-way live chat relayed through Slack
"""

import asyncio
import json
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from slack_sdk import WebClient
from starlette.exceptions import HTTPException as StarletteHTTPException

# Add project root to path so career_assistant package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from career_assistant.config import settings
from career_assistant.core.completion_gateway import CompletionGateway
from career_assistant.core.completion_provider import AnthropicCompletionProvider, CompletionProvider
from career_assistant.notifications.live_relay import LiveChatHub, start_socket_mode
from career_assistant.notifications.slack_relay import (
    NotificationSink,
    SlackNotificationRelay,
    build_contact_message,
    build_live_chat_message,
    build_slack_dm_message,
)
from career_assistant.signals.geo_lookup import GeoLookupProvider, IpApiGeoLookup
from career_assistant.signals.visitor_signals import parse_timestamp
from career_assistant.state.conversation_state import utc_now

load_dotenv()

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

MISSING_FIELDS_ERROR = "Missing required fields"
CONFIGURATION_ERROR = "Server configuration error"
SEND_FAILED_ERROR = "Failed to send message"
INVALID_BODY_ERROR = "Invalid request body"
LIVE_CHAT_UNAVAILABLE_ERROR = "Live chat is not configured"

LIVE_CHAT_SEND_TIMEOUT = 5.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect Slack Socket Mode so owner replies reach website visitors."""
    socket_client = None
    hub = get_live_chat_hub()
    app_token = settings.get_slack_app_token()
    if hub is not None and app_token:
        try:
            socket_client = await run_in_threadpool(start_socket_mode, hub, app_token)
        except Exception:
            logger.exception("Failed to connect to Slack Socket Mode; live chat is one-way")
    elif hub is not None:
        logger.warning("SLACK_APP_TOKEN not set; owner replies will not reach website visitors")

    yield

    if socket_client is not None:
        socket_client.close()
        logger.info("Disconnected from Slack Socket Mode")


app = FastAPI(title="Career Assistant API", lifespan=lifespan)

# --- CORS ---
# The widget is embedded on a static site, so any origin may call in.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)
if os.getenv("FRONTEND_URL"):
    logger.info(f"FRONTEND_URL={os.getenv('FRONTEND_URL')} (CORS allows all origins)")


# --- Request models ---
class CompletionRequest(BaseModel):
    message: Optional[str] = None
    browserData: Optional[Dict[str, Any]] = None
    messageHistory: Optional[List[Dict[str, Any]]] = None


class ContactRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None


class ChatRequest(BaseModel):
    message: Optional[str] = None
    userName: Optional[str] = None
    timestamp: Optional[Any] = None
    isInterviewHandoff: bool = False


class SlackDMRequest(BaseModel):
    name: Optional[str] = None
    message: Optional[str] = None


# --- Dependencies (overridden in tests) ---
def get_completion_provider() -> Optional[CompletionProvider]:
    """Build the provider per request so a key added later is picked up."""
    api_key = settings.get_claude_api_key()
    if not api_key:
        return None
    return AnthropicCompletionProvider(api_key)


def get_geo_lookup() -> Optional[GeoLookupProvider]:
    return IpApiGeoLookup()


def get_notification_relay() -> Optional[NotificationSink]:
    webhook_url = settings.get_slack_webhook_url()
    if not webhook_url:
        return None
    return SlackNotificationRelay(webhook_url)


_live_chat_hub: Optional[LiveChatHub] = None


def get_live_chat_hub() -> Optional[LiveChatHub]:
    """Process-wide hub; every connection must share it to receive broadcasts."""
    global _live_chat_hub
    if _live_chat_hub is None:
        bot_token = settings.get_slack_bot_token()
        if not bot_token:
            return None
        _live_chat_hub = LiveChatHub(WebClient(token=bot_token))
    return _live_chat_hub


def get_gateway(
    provider: Optional[CompletionProvider] = Depends(get_completion_provider),
    geo_lookup: Optional[GeoLookupProvider] = Depends(get_geo_lookup),
) -> CompletionGateway:
    return CompletionGateway(provider, geo_lookup=geo_lookup)


# --- Error shapes ---
@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected request body on {request.url.path}: {exc.errors()}")
    return JSONResponse({"error": INVALID_BODY_ERROR}, status_code=400)


def _filled(*values: Optional[str]) -> bool:
    return all(isinstance(v, str) and v.strip() for v in values)


def _relay(relay: Optional[NotificationSink], message: Dict[str, Any], kind: str) -> Optional[JSONResponse]:
    """Send to Slack; returns an error response, or None on success."""
    if relay is None:
        logger.error("SLACK_WEBHOOK_URL environment variable not set")
        return JSONResponse({"error": CONFIGURATION_ERROR}, status_code=500)
    if not relay.send(message):
        logger.error(f"{kind} notification was not delivered")
        return JSONResponse({"error": SEND_FAILED_ERROR}, status_code=500)
    return None


# --- Completion gateway ---
# Sync def so FastAPI runs these in a threadpool (provider and relay calls block)
@app.post("/api/claude")
def claude(req: CompletionRequest, request: Request, gateway: CompletionGateway = Depends(get_gateway)):
    result = gateway.handle(
        req.message,
        headers=request.headers,
        browser_data=req.browserData,
        message_history=req.messageHistory,
        client_host=request.client.host if request.client else None,
    )
    return JSONResponse(result.body, status_code=result.status_code)


@app.options("/api/claude")
def claude_options():
    return Response(status_code=200)


# --- Notification endpoints ---
@app.post("/api/contact")
def contact(req: ContactRequest, relay: Optional[NotificationSink] = Depends(get_notification_relay)):
    if not _filled(req.name, req.email, req.message):
        return JSONResponse({"error": MISSING_FIELDS_ERROR}, status_code=400)

    error = _relay(relay, build_contact_message(req.name, req.email, req.message), "Contact form")
    if error is not None:
        return error
    logger.info(f"Contact form message relayed for {req.name}")
    return {"success": True}


@app.post("/api/chat")
def chat(req: ChatRequest, relay: Optional[NotificationSink] = Depends(get_notification_relay)):
    if not _filled(req.message, req.userName):
        return JSONResponse({"error": MISSING_FIELDS_ERROR}, status_code=400)

    sent_at = parse_timestamp(req.timestamp) or utc_now()
    message = build_live_chat_message(
        req.userName,
        req.message,
        sent_at=sent_at,
        is_interview_handoff=req.isInterviewHandoff,
    )
    error = _relay(relay, message, "Interview hand-off" if req.isInterviewHandoff else "Live chat")
    if error is not None:
        return error

    return {
        "success": True,
        "messageId": str(int(time.time() * 1000)),
        "timestamp": utc_now().isoformat(),
    }


@app.post("/api/slack-dm")
def slack_dm(req: SlackDMRequest, relay: Optional[NotificationSink] = Depends(get_notification_relay)):
    if not _filled(req.name, req.message):
        return JSONResponse({"error": MISSING_FIELDS_ERROR}, status_code=400)

    error = _relay(relay, build_slack_dm_message(req.name, req.message), "Slack DM")
    if error is not None:
        return error
    return {"success": True}


# --- Live chat relay ---
@app.websocket("/ws/live-chat")
async def live_chat(websocket: WebSocket, hub: Optional[LiveChatHub] = Depends(get_live_chat_hub)):
    await websocket.accept()
    if hub is None:
        logger.error("SLACK_BOT_TOKEN environment variable not set")
        await websocket.send_json({"type": "error", "error": LIVE_CHAT_UNAVAILABLE_ERROR})
        await websocket.close()
        return

    loop = asyncio.get_running_loop()

    def send(payload: Dict[str, Any]) -> None:
        # Called from the Socket Mode thread, never from the event loop
        future = asyncio.run_coroutine_threadsafe(websocket.send_json(payload), loop)
        future.result(timeout=LIVE_CHAT_SEND_TIMEOUT)

    connection_id = hub.register(send)
    try:
        await websocket.send_json(hub.connection_payload(connection_id))
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                logger.warning(f"Ignoring malformed live chat frame from {connection_id}")
                continue
            if not isinstance(data, dict):
                logger.warning(f"Ignoring non-object live chat frame from {connection_id}")
                continue

            # Slack Web API calls block
            reply = await run_in_threadpool(hub.handle_client_message, connection_id, data)
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        logger.debug(f"Live chat socket closed: {connection_id}")
    finally:
        hub.unregister(connection_id)
