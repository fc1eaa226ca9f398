"""Platform hooks tying together configuration, membership and dispatch."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any

from .config_store import ConfigStore
from .dispatcher import ReactionDispatcher
from .membership import MembershipTracker
from .models import (
    REACTION_ADDED,
    REACTION_REMOVED,
    BotProfile,
    Channel,
    ChannelMember,
    Configuration,
    Reaction,
    ReactionEvent,
)
from .platform import PlatformAPI, PlatformError
from .settings import SettingsStore
from .utils import BackgroundTasks
from .webhook import WebhookSenderProtocol

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration could not be loaded or the bot could not be provisioned."""


class ReactionPlugin:
    """Entry points invoked by the platform.

    Hooks may be called concurrently from different callbacks. The only
    shared mutable state is the snapshot held by :class:`ConfigStore`.
    """

    def __init__(
        self,
        platform: PlatformAPI,
        settings: SettingsStore,
        sender: WebhookSenderProtocol,
        *,
        store: ConfigStore | None = None,
        bot_profile: BotProfile | None = None,
    ):
        self._platform = platform
        self._settings = settings
        self._store = store or ConfigStore(Configuration())
        self._bot_profile = bot_profile or BotProfile()
        self._tasks = BackgroundTasks()
        self.tracker = MembershipTracker(self._store, platform)
        self.dispatcher = ReactionDispatcher(
            self._store, self.tracker, platform, sender, self._tasks
        )

    @property
    def store(self) -> ConfigStore:
        return self._store

    @property
    def tasks(self) -> BackgroundTasks:
        return self._tasks

    @property
    def bot_id(self) -> str | None:
        return self.tracker.bot_id

    def get_configuration(self) -> Configuration:
        return self._store.get()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def on_activate(self) -> None:
        self._tasks.bind(asyncio.get_running_loop())
        await self.on_configuration_change()
        self.set_enabled(True)
        logger.info("Плагин реакций активирован")

    async def on_deactivate(self, timeout: float = 10.0) -> None:
        self.set_enabled(False)
        if not await self._tasks.drain(timeout):
            logger.warning(
                "Не все отправки завершились за %.0f с, осталось %d",
                timeout,
                self._tasks.pending,
            )
        logger.info("Плагин реакций деактивирован")

    async def on_configuration_change(self) -> None:
        try:
            webhook_url = self._settings.get_webhook_url()
        except sqlite3.Error as exc:
            raise ConfigurationError("failed to load plugin configuration") from exc

        try:
            bot_id = await self._platform.ensure_bot(self._bot_profile)
        except PlatformError as exc:
            raise ConfigurationError("failed to ensure reactions bot") from exc
        self.tracker.set_bot_id(bot_id)

        with self.tracker.recording() as ledger:
            discovery = await self.tracker.discover()
            if not discovery.complete:
                logger.warning(
                    "Поиск каналов выполнен частично, команды с ошибками: %s",
                    ", ".join(discovery.failed_teams) or "-",
                )

            def rebuild(current: Configuration) -> Configuration:
                if discovery.complete:
                    channels = discovery.channels
                else:
                    # Keep what is already known for teams that could not be read.
                    channels = set(current.monitored_channels) | discovery.channels
                # Joins and leaves that arrived while discovery was running win.
                channels = ledger.apply(channels)
                return current.with_updates(
                    webhook_url=webhook_url, monitored_channels=channels
                )

            configuration = self._store.update(rebuild)
        logger.info(
            "Конфигурация обновлена: %d отслеживаемых каналов",
            len(configuration.monitored_channels),
        )

    def configuration_will_be_saved(self, new_config: Any) -> Any:
        """Let the host save ``new_config`` as is."""

        return None

    def set_enabled(self, enabled: bool) -> None:
        self._store.update(lambda current: current.with_updates(enabled=enabled))

    # ------------------------------------------------------------------
    # Reactions
    # ------------------------------------------------------------------
    def on_reaction_added(self, reaction: Reaction) -> None:
        self.dispatcher.handle(ReactionEvent.from_reaction(REACTION_ADDED, reaction))

    def on_reaction_removed(self, reaction: Reaction) -> None:
        self.dispatcher.handle(ReactionEvent.from_reaction(REACTION_REMOVED, reaction))

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------
    def on_channel_created(self, channel: Channel) -> None:
        if not self._store.get().enabled:
            return
        logger.debug("Создан канал %s (%s)", channel.id, channel.name)

    def on_user_joined_channel(self, member: ChannelMember) -> None:
        if self.tracker.on_member_joined(member):
            self._tasks.spawn(
                self._log_membership(member.channel_id, joined=True),
                name=f"bot-joined-{member.channel_id}",
            )

    def on_user_left_channel(self, member: ChannelMember) -> None:
        if self.tracker.on_member_left(member):
            self._tasks.spawn(
                self._log_membership(member.channel_id, joined=False),
                name=f"bot-left-{member.channel_id}",
            )

    async def _log_membership(self, channel_id: str, *, joined: bool) -> None:
        try:
            channel = await self._platform.get_channel(channel_id)
        except PlatformError as exc:
            logger.error("Не удалось получить канал %s: %s", channel_id, exc)
            return
        if joined:
            logger.info(
                "Бот добавлен в канал %s (%s), мониторинг начат", channel.name, channel_id
            )
        else:
            logger.info(
                "Бот удалён из канала %s (%s), мониторинг остановлен", channel.name, channel_id
            )
