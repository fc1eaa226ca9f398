"""Application bootstrap for Reaction Monitor."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiohttp

from .events import EventStream
from .http_server import InboundHTTPServer
from .platform import RestPlatformClient
from .plugin import ConfigurationError, ReactionPlugin
from .settings import SettingsStore
from .webhook import WebhookSender

logger = logging.getLogger(__name__)


class ReactionMonitorApp:
    """High level coordinator tying together the platform, the plugin and HTTP."""

    def __init__(
        self,
        *,
        db_path: Path,
        server_url: str,
        token: str,
        host: str = "127.0.0.1",
        port: int = 8075,
    ):
        self._settings = SettingsStore(db_path)
        self._server_url = server_url
        self._token = token
        self._host = host
        self._port = port
        self._reload_task: asyncio.Task[None] | None = None

    @property
    def settings(self) -> SettingsStore:
        return self._settings

    async def run(self) -> None:
        async with aiohttp.ClientSession() as session:
            platform = RestPlatformClient(session, self._server_url, self._token)
            plugin = ReactionPlugin(platform, self._settings, WebhookSender(session))
            server = InboundHTTPServer(plugin.store, self._host, self._port)
            stream = EventStream(session, self._server_url, self._token)

            await plugin.on_activate()
            await server.start()
            self._install_reload_handler(plugin)
            try:
                await self._supervise("event-stream", lambda: stream.listen(plugin))
            finally:
                self._remove_reload_handler()
                await plugin.on_deactivate()
                await server.stop()
                self._settings.close()

    def _install_reload_handler(self, plugin: ReactionPlugin) -> None:
        if not hasattr(signal, "SIGHUP"):
            return
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGHUP, self._schedule_reload, plugin)
        except (NotImplementedError, RuntimeError):
            logger.debug("Перезагрузка конфигурации по SIGHUP недоступна")

    def _remove_reload_handler(self) -> None:
        if not hasattr(signal, "SIGHUP"):
            return
        try:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGHUP)
        except (NotImplementedError, RuntimeError):
            pass

    def _schedule_reload(self, plugin: ReactionPlugin) -> None:
        if self._reload_task is not None and not self._reload_task.done():
            logger.info("Перезагрузка конфигурации уже выполняется")
            return
        self._reload_task = asyncio.create_task(
            self._reload(plugin), name="configuration-reload"
        )

    async def _reload(self, plugin: ReactionPlugin) -> None:
        try:
            await plugin.on_configuration_change()
        except ConfigurationError:
            logger.exception("Не удалось перезагрузить конфигурацию")

    async def _supervise(
        self,
        name: str,
        factory: Callable[[], Awaitable[None]],
        *,
        retry_delay: float = 5.0,
    ) -> None:
        while True:
            try:
                await factory()
            except asyncio.CancelledError:
                logger.info("Задача %s остановлена", name)
                raise
            except Exception:
                logger.exception("Задача %s завершилась с ошибкой", name)
            else:
                logger.warning("Задача %s завершилась неожиданно, будет перезапущена", name)
            await asyncio.sleep(retry_delay)
