"""Decide which reaction events become webhook notifications."""

from __future__ import annotations

import logging

from .config_store import ConfigStore
from .membership import MembershipTracker
from .models import Post, ReactionEvent, ReactionWebhookPayload
from .platform import PlatformAPI, PlatformError
from .utils import BackgroundTasks
from .webhook import WebhookSenderProtocol

logger = logging.getLogger(__name__)

_URL_SCHEMES = ("http://", "https://")


def is_valid_webhook_url(url: str | None) -> bool:
    if not url:
        return False
    return url.startswith(_URL_SCHEMES)


class ReactionDispatcher:
    """Filter reaction events and hand eligible ones to the webhook sender.

    The checks run cheapest first. Only the enabled flag and the URL are
    checked on the caller's thread; lookups, the membership check and the
    send happen in background tasks.
    """

    def __init__(
        self,
        store: ConfigStore,
        tracker: MembershipTracker,
        platform: PlatformAPI,
        sender: WebhookSenderProtocol,
        tasks: BackgroundTasks,
    ):
        self._store = store
        self._tracker = tracker
        self._platform = platform
        self._sender = sender
        self._tasks = tasks

    def handle(self, event: ReactionEvent) -> bool:
        """Schedule processing of ``event``; returns False when dropped early."""

        config = self._store.get()
        if not config.enabled:
            return False
        if not is_valid_webhook_url(config.webhook_url):
            logger.debug("URL вебхука не задан или некорректен, реакция пропущена")
            return False

        self._tasks.spawn(
            self._process(event, config.webhook_url),
            name=f"reaction-{event.action}-{event.post_id}",
        )
        return True

    async def _process(self, event: ReactionEvent, webhook_url: str) -> None:
        try:
            post = await self._platform.get_post(event.post_id)
        except PlatformError as exc:
            logger.error("Не удалось получить пост %s: %s", event.post_id, exc)
            return

        if not self._tracker.is_channel_monitored(post.channel_id):
            logger.debug("Канал %s не отслеживается, реакция пропущена", post.channel_id)
            return

        payload = await self.build_payload(event, post)
        if payload is None:
            return
        self._tasks.spawn(
            self._sender.send(webhook_url, payload),
            name=f"webhook-{event.action}-{event.post_id}",
        )

    async def build_payload(
        self, event: ReactionEvent, post: Post
    ) -> ReactionWebhookPayload | None:
        try:
            user = await self._platform.get_user(event.user_id)
        except PlatformError as exc:
            logger.error("Не удалось получить пользователя %s: %s", event.user_id, exc)
            return None
        try:
            channel = await self._platform.get_channel(post.channel_id)
        except PlatformError as exc:
            logger.error("Не удалось получить канал %s: %s", post.channel_id, exc)
            return None
        try:
            team = await self._platform.get_team(channel.team_id)
        except PlatformError as exc:
            logger.error("Не удалось получить команду %s: %s", channel.team_id, exc)
            return None

        return ReactionWebhookPayload(
            action=event.action,
            user_id=event.user_id,
            username=user.username,
            post_id=event.post_id,
            channel_id=post.channel_id,
            channel_name=channel.name,
            team_id=channel.team_id,
            team_name=team.name,
            emoji_name=event.emoji_name,
            timestamp=event.timestamp,
        )
