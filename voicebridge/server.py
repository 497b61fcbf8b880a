"""
HTTP surface: the signed webhook endpoint plus health, monitoring and metrics.

Routes:
    GET  /                              service banner
    GET  /healthz                       liveness
    POST /openai/webhook                call notifications (signature verified)
    GET  /metrics                       Prometheus text format
    GET  /api/stats                     system stats
    GET  /api/calls?limit=N             recent calls
    GET  /api/calls/active              active calls
    GET  /api/calls/{call_id}           one call's metrics
    GET  /api/calls/{call_id}/transcript
    GET  /api/events                    SSE stream of stats and calls
"""

import asyncio
import json
import os
import time
from typing import Any, Dict, Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import structlog

from voicebridge.config import AppConfig
from voicebridge.core.analytics import CallAnalytics
from voicebridge.core.call_registry import CallRegistry
from voicebridge.gateway import SignalingGateway
from voicebridge.intake import IncomingCallIntake, InvalidNotificationError
from voicebridge.tools.registry import ToolRegistry, build_default_registry
from voicebridge.webhooks import WebhookVerificationError, WebhookVerifier, parse_webhook_body

logger = structlog.get_logger(__name__)

SERVICE_NAME = "voicebridge"
SSE_RECENT_CALLS = 5


class BridgeServer:
    """Wires the collaborators together and serves them over aiohttp."""

    def __init__(
        self,
        config: AppConfig,
        gateway: SignalingGateway,
        tools: ToolRegistry,
        registry: CallRegistry,
        analytics: CallAnalytics,
        intake: IncomingCallIntake,
        verifier: Optional[WebhookVerifier] = None,
    ):
        self.config = config
        self.gateway = gateway
        self.tools = tools
        self.registry = registry
        self.analytics = analytics
        self.intake = intake
        self.verifier = verifier
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/', self._index_handler)
        app.router.add_get('/healthz', self._health_handler)
        app.router.add_post('/openai/webhook', self._webhook_handler)
        app.router.add_get('/metrics', self._metrics_handler)
        app.router.add_get('/api/stats', self._stats_handler)
        app.router.add_get('/api/calls', self._calls_handler)
        app.router.add_get('/api/calls/active', self._active_calls_handler)
        app.router.add_get('/api/calls/{call_id}', self._call_handler)
        app.router.add_get('/api/calls/{call_id}/transcript', self._transcript_handler)
        app.router.add_get('/api/events', self._events_handler)
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def start(self) -> None:
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, self.config.server.host, self.config.server.port)
        await site.start()
        self._runner = runner
        logger.info("HTTP server started", host=self.config.server.host, port=self.config.server.port,
                    model=self.config.realtime.model, voice=self.config.realtime.voice)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP server stopped")

    async def _on_startup(self, app: web.Application) -> None:
        await self.gateway.start()

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.intake.shutdown()
        await self.gateway.close()

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _index_handler(self, request):
        return web.json_response({
            "ok": True,
            "service": SERVICE_NAME,
            "version": os.getenv("COMMIT_SHA", "local"),
        })

    async def _health_handler(self, request):
        return web.json_response({"ok": True, "active_sessions": len(self.registry)})

    async def _webhook_handler(self, request):
        body = await request.read()
        try:
            if self.config.test_mode:
                payload = parse_webhook_body(body)
            elif self.verifier is None:
                raise WebhookVerificationError("Webhook secret not configured")
            else:
                payload = self.verifier.unwrap(request.headers, body)
        except WebhookVerificationError as exc:
            logger.warning("Webhook verification failed", error=str(exc))
            return web.json_response({"error": "signature_invalid"}, status=400)

        try:
            self.intake.handle_notification(payload)
        except InvalidNotificationError as exc:
            logger.warning("Rejected call notification", error=str(exc), code=exc.code)
            return web.json_response({"error": exc.code}, status=400)

        return web.json_response({"ok": True})

    async def _metrics_handler(self, request):
        """Expose Prometheus metrics."""
        data = generate_latest()
        # aiohttp forbids 'charset=' inside content_type arg; pass full header via headers.
        return web.Response(body=data, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def _stats_handler(self, request):
        return web.json_response(self.analytics.get_system_stats())

    async def _calls_handler(self, request):
        try:
            limit = int(request.query.get("limit", "10"))
        except ValueError:
            limit = 10
        if limit <= 0:
            limit = 10
        calls = [m.to_dict() for m in self.analytics.get_recent_calls(limit)]
        return web.json_response({"calls": calls, "count": len(calls)})

    async def _active_calls_handler(self, request):
        calls = [m.to_dict() for m in self.analytics.get_active_calls()]
        return web.json_response({"calls": calls, "count": len(calls)})

    async def _call_handler(self, request):
        metrics = self.analytics.get_call_metrics(request.match_info["call_id"])
        if metrics is None:
            return web.json_response({"error": "Call not found"}, status=404)
        return web.json_response(metrics.to_dict())

    async def _transcript_handler(self, request):
        call_id = request.match_info["call_id"]
        transcript = self.analytics.get_call_transcript(call_id)
        if not transcript:
            return web.json_response({"error": "Transcript not found"}, status=404)
        entries = [
            {"timestamp": t.timestamp, "speaker": t.speaker, "text": t.text, "sentiment": t.sentiment}
            for t in transcript
        ]
        return web.json_response({"call_id": call_id, "transcript": entries, "count": len(entries)})

    def _dashboard_snapshot(self) -> Dict[str, Any]:
        return {
            "stats": self.analytics.get_system_stats(),
            "active_calls": [m.to_dict() for m in self.analytics.get_active_calls()],
            "recent_calls": [m.to_dict() for m in self.analytics.get_recent_calls(SSE_RECENT_CALLS)],
        }

    async def _events_handler(self, request):
        """Server-sent events: a snapshot every interval, a comment heartbeat in between."""
        response = web.StreamResponse(headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        })
        await response.prepare(request)

        interval = self.config.server.sse_interval_sec
        heartbeat = self.config.server.sse_heartbeat_sec
        loop = asyncio.get_running_loop()
        last_heartbeat = loop.time()
        try:
            while True:
                try:
                    data = json.dumps(self._dashboard_snapshot())
                except (TypeError, ValueError) as exc:
                    logger.warning("SSE dashboard payload failed", error=str(exc))
                else:
                    await response.write(f"data: {data}\n\n".encode("utf-8"))
                await asyncio.sleep(interval)
                if loop.time() - last_heartbeat >= heartbeat:
                    await response.write(f": ping {int(time.time() * 1000)}\n\n".encode("utf-8"))
                    last_heartbeat = loop.time()
        except ConnectionResetError:
            logger.debug("SSE client disconnected")
        return response


def create_server(config: AppConfig) -> BridgeServer:
    """Build the full object graph for one process."""
    analytics = CallAnalytics(retained_calls=config.analytics.retained_calls)
    gateway = SignalingGateway(config.realtime)
    tools = build_default_registry(config, gateway)
    registry = CallRegistry()
    intake = IncomingCallIntake(config, gateway, tools, registry, analytics)
    verifier = WebhookVerifier(config.realtime.webhook_secret) if config.realtime.webhook_secret else None
    return BridgeServer(config, gateway, tools, registry, analytics, intake, verifier)
