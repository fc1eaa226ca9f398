"""Platform websocket event stream."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Mapping

import aiohttp

from .models import Channel, ChannelMember, Reaction

if TYPE_CHECKING:
    from .plugin import ReactionPlugin

logger = logging.getLogger(__name__)

_WEBSOCKET_PATH = "/api/v4/websocket"
_HEARTBEAT = 30.0


class MalformedEvent(ValueError):
    """Event frame is missing fields required by its handler."""


def websocket_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://") :]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://") :]
    return f"{base}{_WEBSOCKET_PATH}"


def parse_reaction(data: Mapping[str, Any]) -> Reaction:
    raw = data.get("reaction")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise MalformedEvent("reaction is not valid JSON") from exc
    if not isinstance(raw, Mapping):
        raise MalformedEvent("reaction is missing")
    user_id = str(raw.get("user_id") or "")
    post_id = str(raw.get("post_id") or "")
    if not user_id or not post_id:
        raise MalformedEvent("reaction has no user_id or post_id")
    try:
        create_at = int(raw.get("create_at") or 0)
    except (TypeError, ValueError) as exc:
        raise MalformedEvent("reaction create_at is not an integer") from exc
    return Reaction(
        user_id=user_id,
        post_id=post_id,
        emoji_name=str(raw.get("emoji_name") or ""),
        create_at=create_at,
        channel_id=str(raw.get("channel_id") or ""),
    )


def parse_member(data: Mapping[str, Any], broadcast: Mapping[str, Any]) -> ChannelMember:
    user_id = str(data.get("user_id") or broadcast.get("user_id") or "")
    channel_id = str(data.get("channel_id") or broadcast.get("channel_id") or "")
    if not user_id or not channel_id:
        raise MalformedEvent("membership event has no user_id or channel_id")
    return ChannelMember(channel_id=channel_id, user_id=user_id)


def route_event(plugin: "ReactionPlugin", frame: Mapping[str, Any]) -> bool:
    """Invoke the plugin hook matching ``frame``; returns False for ignored frames."""

    event = frame.get("event")
    if not isinstance(event, str):
        return False
    data = frame.get("data")
    broadcast = frame.get("broadcast")
    if not isinstance(data, Mapping):
        data = {}
    if not isinstance(broadcast, Mapping):
        broadcast = {}

    if event == "reaction_added":
        plugin.on_reaction_added(parse_reaction(data))
    elif event == "reaction_removed":
        plugin.on_reaction_removed(parse_reaction(data))
    elif event == "user_added":
        plugin.on_user_joined_channel(parse_member(data, broadcast))
    elif event == "user_removed":
        plugin.on_user_left_channel(parse_member(data, broadcast))
    elif event == "channel_created":
        channel_id = str(data.get("channel_id") or "")
        if not channel_id:
            raise MalformedEvent("channel_created has no channel_id")
        plugin.on_channel_created(
            Channel(
                id=channel_id,
                team_id=str(data.get("team_id") or broadcast.get("team_id") or ""),
                name=str(data.get("channel_name") or ""),
            )
        )
    else:
        return False
    return True


class EventStream:
    """Read events from the platform websocket and feed them to the plugin."""

    def __init__(self, session: aiohttp.ClientSession, base_url: str, token: str):
        self._session = session
        self._url = websocket_url(base_url)
        self._token = token

    async def listen(self, plugin: "ReactionPlugin") -> None:
        headers = {"Authorization": f"Bearer {self._token}"}
        async with self._session.ws_connect(
            self._url, headers=headers, heartbeat=_HEARTBEAT
        ) as ws:
            logger.info("Подключены к потоку событий %s", self._url)
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    self.handle_text(plugin, message.data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("Ошибка веб-сокета: %s", ws.exception())
                    break
        logger.warning("Поток событий закрыт")

    @staticmethod
    def handle_text(plugin: "ReactionPlugin", text: str) -> None:
        try:
            frame = json.loads(text)
        except ValueError:
            logger.debug("Пропущен кадр, не являющийся JSON")
            return
        if not isinstance(frame, Mapping):
            return
        try:
            route_event(plugin, frame)
        except MalformedEvent as exc:
            logger.debug("Пропущено событие %s: %s", frame.get("event"), exc)
