import asyncio
import base64
import json
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .logging_config import setup_logging
from .notifications.service import NotificationService, build_service, handle_request

setup_logging(get_settings())

logger = logging.getLogger(__name__)

EVENT_HEADER = "x-webhook-event"

app = FastAPI(title="Feed Push Functions", version="1.0.0")

# One loop per process: the cached Firestore client is bound to the loop it first ran on
_lambda_loop: Optional[asyncio.AbstractEventLoop] = None


def _get_lambda_loop() -> asyncio.AbstractEventLoop:
    global _lambda_loop
    if _lambda_loop is None or _lambda_loop.is_closed():
        _lambda_loop = asyncio.new_event_loop()
    return _lambda_loop


def get_service_factory() -> Callable[[Settings], NotificationService]:
    return build_service


@app.get("/health", tags=["Health"])
async def health(settings: Settings = Depends(get_settings)):
    return {"ok": True, "service": settings.service_name}


@app.post("/", tags=["Notifications"])
async def notify(
    request: Request,
    settings: Settings = Depends(get_settings),
    service_factory: Callable[[Settings], NotificationService] = Depends(get_service_factory),
    x_webhook_event: Optional[str] = Header(default=None),
):
    """
    Handle a webhook event (new post, new comment) or a direct notification call
    """
    raw_body = await request.body()
    response = await handle_request(raw_body, settings, x_webhook_event, service_factory)
    return JSONResponse(content=response.body, status_code=response.status_code)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda entry point for API Gateway proxy events.

    Args:
        event: API Gateway proxy event
        context: Lambda context (unused)

    Returns:
        API Gateway proxy response
    """
    headers = {key.lower(): value for key, value in (event.get("headers") or {}).items()}
    if "requestContext" in event or "httpMethod" in event:
        body = event.get("body")
        if body and event.get("isBase64Encoded"):
            body = base64.b64decode(body)
    else:
        # Direct invocation: the event is the payload itself
        body = event
    response = _get_lambda_loop().run_until_complete(
        handle_request(body, get_settings(), headers.get(EVENT_HEADER), build_service)
    )

    return {
        "statusCode": response.status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(response.body),
    }
