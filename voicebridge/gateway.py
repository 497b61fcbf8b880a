"""
Signaling gateway for the Realtime SIP call-control REST endpoints.

Three operations are exposed (accept, refer, hangup), all POSTs against
{base}/v1/realtime/calls/{call_id}/{action}. Azure endpoints authenticate with
an api-key header and carry an api-version query parameter; OpenAI endpoints
use a bearer token.
"""

import asyncio
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

import aiohttp
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from voicebridge.config import RealtimeConfig

logger = structlog.get_logger(__name__)

CALL_NOT_FOUND_MARKER = "call_id_not_found"


class SignalingError(Exception):
    """Base class for call-control failures."""

    def __init__(self, call_id: str, message: str, status: Optional[int] = None, detail: str = ""):
        super().__init__(message)
        self.call_id = call_id
        self.status = status
        self.detail = detail


class CallNotFoundError(SignalingError):
    """The provider no longer knows the call (hung up before we acted)."""


class SignalingRequestError(SignalingError):
    """Any other non-2xx response from the call-control API."""


def with_api_version(url: str, api_version: Optional[str]) -> str:
    """Append api-version unless the URL already carries one."""
    if not api_version:
        return url
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if any(key == "api-version" for key, _ in query):
        return url
    query.append(("api-version", api_version))
    return urlunsplit(parts._replace(query=urlencode(query)))


def build_call_url(config: RealtimeConfig, call_id: str, action: str) -> str:
    base = config.base_url.rstrip("/")
    url = f"{base}/v1/realtime/calls/{quote(call_id, safe='')}/{action}"
    return with_api_version(url, config.api_version) if config.is_azure else url


def build_auth_headers(config: RealtimeConfig) -> Dict[str, str]:
    if config.is_azure:
        return {"api-key": config.api_key or ""}
    return {"Authorization": f"Bearer {config.api_key or ''}"}


class SignalingGateway:
    """Thin async client over the call-control REST API."""

    def __init__(self, config: RealtimeConfig, http_session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._http_session = http_session
        self._owns_session = http_session is None

    async def start(self) -> None:
        if self._http_session is None or self._http_session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_sec)
            self._http_session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def close(self) -> None:
        if self._owns_session and self._http_session and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None

    async def accept(self, call_id: str, session_config: Dict[str, Any]) -> None:
        """
        Accept an incoming call with the given realtime session config.

        model and type are always forced to the configured values.
        """
        body = dict(session_config)
        body["model"] = self.config.model
        body["type"] = "realtime"
        await self._post(call_id, "accept", body)
        logger.info("Call accepted", call_id=call_id)

    async def refer(self, call_id: str, target_uri: str) -> None:
        """Redirect the call to another SIP URI."""
        await self._post(call_id, "refer", {"target_uri": target_uri})
        logger.info("Call referred", call_id=call_id, target_uri=target_uri)

    async def hangup(self, call_id: str) -> None:
        await self._post_idempotent(call_id, "hangup", None)
        logger.info("Call hung up", call_id=call_id)

    # accept and refer act on the call; only a failed connect is safe to resend
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(aiohttp.ClientConnectorError),
        reraise=True,
    )
    async def _post(self, call_id: str, action: str, body: Optional[Dict[str, Any]]) -> None:
        await self._request(call_id, action, body)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type((aiohttp.ClientConnectionError, asyncio.TimeoutError)),
        reraise=True,
    )
    async def _post_idempotent(self, call_id: str, action: str, body: Optional[Dict[str, Any]]) -> None:
        await self._request(call_id, action, body)

    async def _request(self, call_id: str, action: str, body: Optional[Dict[str, Any]]) -> None:
        if self._http_session is None or self._http_session.closed:
            await self.start()

        url = build_call_url(self.config, call_id, action)
        headers = build_auth_headers(self.config)
        logger.debug("Call-control request", call_id=call_id, action=action, url=url)

        async with self._http_session.post(url, json=body, headers=headers) as response:
            if 200 <= response.status < 300:
                return
            detail = await response.text()

        message = f"{action} failed ({response.status}): {detail}"
        if response.status == 404 or CALL_NOT_FOUND_MARKER in detail:
            raise CallNotFoundError(call_id, message, status=response.status, detail=detail)
        logger.error("Call-control request failed", call_id=call_id, action=action,
                     status=response.status, detail=detail[:200])
        raise SignalingRequestError(call_id, message, status=response.status, detail=detail)
