import hmac
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from .config import Settings, settings
from .dispatcher import EventDispatcher, encode_json
from .errors import InvalidArgument, RemoteUnavailable
from .events import EventClassifier
from .field_cache import FieldSchemaCache
from .issue_mapper import IssueMapper
from .jira import JiraClient
from .logger import get_logger, setup_logging
from .service import IssueService

logger = get_logger("main")

app = FastAPI(title="Jira Bridge")

# Function name used by the application -> IssueService method
FUNCTIONS = {
    "findIssues": "find_issues",
    "findIssue": "find_issue",
    "createIssue": "create_issue",
    "updateIssue": "update_issue",
    "deleteIssue": "delete_issue",
    "addComment": "add_comment",
    "doTransition": "do_transition",
    "serverInfo": "server_info",
}


@dataclass
class Bridge:
    service: IssueService
    classifier: EventClassifier
    dispatcher: EventDispatcher
    webhook_secret: str = ""


def build_bridge(config: Settings) -> Bridge:
    """Wire client, cache, mapper, classifier and dispatcher from settings."""
    client = JiraClient(
        config.jira_base_url,
        config.jira_username,
        config.jira_password,
        timeout_s=config.jira_timeout_seconds,
        max_attempts=config.jira_max_attempts,
        backoff_s=config.jira_retry_backoff_seconds,
    )
    fields_cache = FieldSchemaCache(client)
    mapper = IssueMapper(fields_cache)
    return Bridge(
        service=IssueService(client, fields_cache, mapper),
        classifier=EventClassifier(mapper, fields_cache, client, config.jira_username),
        dispatcher=EventDispatcher(config.app_events_url),
        webhook_secret=config.jira_webhook_secret,
    )


@app.on_event("startup")
def _startup() -> None:
    setup_logging(settings.log_level, settings.log_format, settings.log_file or None)
    settings.require()
    app.state.bridge = build_bridge(settings)
    app.state.bridge.service.warm_up()
    logger.info(f"Jira bridge started for {settings.jira_base_url}")


def _bridge(request: Request) -> Bridge:
    bridge = getattr(request.app.state, "bridge", None)
    if bridge is None:
        raise HTTPException(503, "Bridge not initialised")
    return bridge


@app.exception_handler(InvalidArgument)
async def _invalid_argument(request: Request, exc: InvalidArgument) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": exc.to_dict()})


@app.exception_handler(RemoteUnavailable)
async def _remote_unavailable(request: Request, exc: RemoteUnavailable) -> JSONResponse:
    logger.error(f"Jira call failed: {exc}")
    return JSONResponse(status_code=502, content={"error": exc.to_dict()})


@app.get("/health")
def health() -> Dict[str, str]:
    """Basic health check."""
    return {"status": "ok"}


def _verify_secret(expected: str, given: Optional[str]) -> None:
    if not expected:
        return
    if not given or not hmac.compare_digest(given, expected):
        raise HTTPException(401, "Invalid webhook secret")


@app.post("/webhook/jira")
async def jira_webhook(
    request: Request,
    secret: Optional[str] = None,
    x_webhook_secret: Optional[str] = Header(default=None),
) -> Dict[str, str]:
    """
    Receives Jira webhooks and relays them as application events.

    Answers {"status": "ok"} for every well-formed payload, including events
    that are ignored, so Jira never retries them.
    """
    bridge = _bridge(request)
    _verify_secret(bridge.webhook_secret, x_webhook_secret or secret)

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(400, "Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(400, "Invalid JSON payload")

    try:
        event = await run_in_threadpool(bridge.classifier.handle, payload)
        if event is not None:
            await run_in_threadpool(bridge.dispatcher.send, *event)
    except Exception as e:
        logger.error(
            f"Failed to process webhook {payload.get('webhookEvent')}: {e}",
            exc_info=True,
            extra={"webhook_event": payload.get("webhookEvent")},
        )

    return {"status": "ok"}


@app.post("/functions/{name}")
async def call_function(name: str, request: Request) -> Response:
    method_name = FUNCTIONS.get(name)
    if method_name is None:
        raise HTTPException(404, f"Unknown function [{name}]")
    bridge = _bridge(request)

    body = await request.body()
    try:
        params: Any = json.loads(body) if body.strip() else {}
    except ValueError:
        raise InvalidArgument("Request body is not valid JSON")
    if not isinstance(params, dict):
        raise InvalidArgument("Request body must be a JSON object")

    result = await run_in_threadpool(getattr(bridge.service, method_name), params)
    return Response(content=encode_json(result), media_type="application/json")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.listen_host, port=settings.listen_port)
