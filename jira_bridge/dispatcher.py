"""
Delivers application events to in-process handlers and, optionally, to an
HTTP endpoint of the application (APP_EVENTS_URL).
"""
import json
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import requests

from .logger import ContextLogger, get_logger

logger = get_logger("dispatcher")

Handler = Callable[[str, Dict[str, Any]], None]


def _encode(value: Any) -> Any:
    # Progress percentages are Decimals
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_json(value: Any) -> str:
    return json.dumps(value, default=_encode)


def encode_event(name: str, data: Dict[str, Any]) -> str:
    return encode_json({"event": name, "data": data})


class EventDispatcher:
    def __init__(
        self,
        events_url: Optional[str] = None,
        timeout_s: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.events_url = events_url or None
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        """Register ``handler(name, data)`` for event ``name`` ("*" for every event)."""
        self._handlers.setdefault(name, []).append(handler)

    def send(self, name: str, data: Dict[str, Any]) -> None:
        """Deliver an event. Handler and forwarding failures are logged, never raised."""
        log = ContextLogger("dispatcher", issue_key=data.get("key") or data.get("issueKey"), event=name)

        for handler in self._handlers.get(name, []) + self._handlers.get("*", []):
            try:
                handler(name, data)
            except Exception as e:
                log.error(f"Event handler {getattr(handler, '__name__', handler)!r} failed: {e}", exc_info=True)

        if self.events_url:
            self._forward(name, data, log)

    def _forward(self, name: str, data: Dict[str, Any], log: ContextLogger) -> None:
        try:
            r = self.session.post(
                self.events_url,
                data=encode_event(name, data),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_s,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            log.warning(f"Failed to forward event to {self.events_url}: {e}")
            return
        log.info("Event forwarded to application")
