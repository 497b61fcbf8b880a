"""
Control channel: the per-call WebSocket sideband to the realtime service.

Wraps a websockets client connection with JSON framing, a send lock and an
idempotent close. The channel never reconnects; when it closes the call's
session ends.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
import websockets
from websockets.exceptions import ConnectionClosed

from voicebridge.config import RealtimeConfig
from voicebridge.gateway import build_auth_headers

logger = structlog.get_logger(__name__)


def build_realtime_ws_url(config: RealtimeConfig, call_id: str) -> str:
    """
    Build the sideband URL for a call.

    The configured base is normalised to end in /v1/realtime and gets a
    call_id query parameter (plus api-version on Azure).
    """
    parts = urlsplit(config.realtime_ws_url.rstrip("/"))
    path = parts.path
    if not path.endswith("/v1/realtime"):
        if path.endswith("/realtime"):
            path = path[: -len("/realtime")] + "/v1/realtime"
        else:
            path = path + "/v1/realtime"

    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in ("call_id", "api-version")]
    query.append(("call_id", call_id))
    if config.is_azure and config.api_version:
        query.append(("api-version", config.api_version))
    return urlunsplit(parts._replace(path=path, query=urlencode(query)))


class ControlChannel:
    """JSON message channel over one WebSocket connection."""

    def __init__(self, websocket, call_id: str):
        self._websocket = websocket
        self.call_id = call_id
        self._send_lock = asyncio.Lock()
        self._closed = False

    @classmethod
    async def connect(cls, config: RealtimeConfig, call_id: str, open_timeout: float = 10.0) -> "ControlChannel":
        url = build_realtime_ws_url(config, call_id)
        logger.info("Connecting control channel", call_id=call_id, url=url)
        websocket = await websockets.connect(
            url,
            additional_headers=build_auth_headers(config),
            open_timeout=open_timeout,
            max_size=None,
        )
        logger.info("Control channel open", call_id=call_id)
        return cls(websocket, call_id)

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_json(self, message: Dict[str, Any]) -> bool:
        """
        Send one control message.

        Returns False (and marks the channel closed) when the peer is gone;
        messages sent after close are dropped.
        """
        if self._closed:
            logger.debug("Dropping message on closed channel", call_id=self.call_id, type=message.get("type"))
            return False
        logger.debug("Realtime send", call_id=self.call_id, type=message.get("type"))
        payload = json.dumps(message)
        try:
            async with self._send_lock:
                await self._websocket.send(payload)
        except ConnectionClosed:
            logger.info("Control channel closed during send", call_id=self.call_id, type=message.get("type"))
            self._closed = True
            return False
        return True

    async def messages(self) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield decoded JSON objects until the connection closes.

        Binary frames, undecodable text and non-object JSON are skipped.
        """
        try:
            async for raw in self._websocket:
                if isinstance(raw, bytes):
                    continue
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Failed to decode realtime payload", call_id=self.call_id, preview=raw[:64])
                    continue
                if isinstance(payload, dict):
                    yield payload
        except ConnectionClosed as exc:
            logger.info("Control channel closed", call_id=self.call_id, code=getattr(exc.rcvd, "code", None))

    async def close(self, reason: Optional[str] = None) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._websocket.close()
        except Exception:
            logger.debug("Error closing control channel", call_id=self.call_id, exc_info=True)
        logger.info("Control channel closed by bridge", call_id=self.call_id, reason=reason)
