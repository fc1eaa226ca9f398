"""HTTP endpoints served by the monitor."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, fields
from typing import Any, Mapping

from aiohttp import web

from .config_store import ConfigStore
from .models import OutgoingWebhookPayload

logger = logging.getLogger(__name__)


class PayloadError(ValueError):
    """Outgoing webhook body could not be decoded."""


def parse_outgoing_webhook(data: Any) -> OutgoingWebhookPayload:
    if not isinstance(data, Mapping):
        raise PayloadError("payload must be a JSON object")
    values: dict[str, Any] = {}
    for item in fields(OutgoingWebhookPayload):
        if item.name not in data or data[item.name] is None:
            continue
        raw = data[item.name]
        if item.name == "timestamp":
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise PayloadError("timestamp must be an integer")
            values[item.name] = raw
        else:
            if not isinstance(raw, str):
                raise PayloadError(f"{item.name} must be a string")
            values[item.name] = raw
    return OutgoingWebhookPayload(**values)


def render_outgoing_webhook(payload: OutgoingWebhookPayload) -> dict[str, str]:
    text = json.dumps(asdict(payload), indent=2, ensure_ascii=False)
    return {"text": f"```\n{text}\n```"}


class InboundHTTPServer:
    """Status and outgoing-webhook endpoints."""

    def __init__(self, store: ConfigStore, host: str = "127.0.0.1", port: int = 8075):
        self._store = store
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/status", self.handle_status)
        self.app.router.add_post("/webhook/outgoing", self.handle_outgoing_webhook)

    async def handle_status(self, request: web.Request) -> web.Response:
        return web.json_response({"enabled": self._store.get().enabled})

    async def handle_outgoing_webhook(self, request: web.Request) -> web.Response:
        try:
            data = await request.json()
            payload = parse_outgoing_webhook(data)
        except ValueError as exc:
            logger.error("Не удалось разобрать исходящий вебхук: %s", exc)
            return web.json_response({"error": "invalid payload"}, status=400)
        return web.json_response(render_outgoing_webhook(payload))

    async def start(self) -> None:
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info("HTTP сервер запущен на %s:%s", self.host, self.port)

    async def stop(self) -> None:
        if self.runner is None:
            return
        await self.runner.cleanup()
        self.runner = None
        logger.info("HTTP сервер остановлен")
