"""Outbound webhook delivery."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from typing import Protocol

import aiohttp

from .models import ReactionWebhookPayload

USER_AGENT = "Reaction-Monitor-Webhook/1.0"
SEND_TIMEOUT = 10.0

logger = logging.getLogger(__name__)


class WebhookSenderProtocol(Protocol):
    async def send(self, url: str, payload: ReactionWebhookPayload) -> None: ...


def encode_payload(payload: ReactionWebhookPayload) -> bytes:
    return json.dumps(asdict(payload), separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


class WebhookSender:
    """Fire-and-forget POST of reaction notifications.

    Delivery is attempted once. Failures are logged and never raised, since
    the event callback that triggered the send has already returned.
    """

    def __init__(self, session: aiohttp.ClientSession, *, timeout: float = SEND_TIMEOUT):
        self._session = session
        self._timeout = timeout

    async def send(self, url: str, payload: ReactionWebhookPayload) -> None:
        try:
            body = encode_payload(payload)
        except (TypeError, ValueError) as exc:
            logger.error("Не удалось сериализовать payload вебхука: %s", exc)
            return

        logger.debug("Отправка вебхука на %s: %s", url, body.decode("utf-8"))
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        try:
            timeout_cfg = aiohttp.ClientTimeout(total=self._timeout)
            async with self._session.post(
                url,
                data=body,
                headers=headers,
                timeout=timeout_cfg,
            ) as resp:
                status = resp.status
                await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error("Ошибка отправки вебхука на %s: %s", url, exc)
            return

        if 200 <= status < 300:
            logger.debug(
                "Вебхук доставлен: %s, статус %s, %s %s",
                url,
                status,
                payload.action,
                payload.emoji_name,
            )
        else:
            logger.warning(
                "Вебхук отклонён: %s ответил статусом %s (%s %s)",
                url,
                status,
                payload.action,
                payload.emoji_name,
            )
