"""Chat platform REST client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Protocol, Sequence

import aiohttp

from .models import BotProfile, Channel, Post, Team, User

_API_PREFIX = "/api/v4"
_DEFAULT_USER_AGENT = "Reaction-Monitor/1.0"
_REQUEST_TIMEOUT = 15


logger = logging.getLogger(__name__)


class PlatformError(Exception):
    """A platform lookup failed."""

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class PlatformAPI(Protocol):
    async def get_post(self, post_id: str) -> Post: ...

    async def get_channel(self, channel_id: str) -> Channel: ...

    async def get_user(self, user_id: str) -> User: ...

    async def get_team(self, team_id: str) -> Team: ...

    async def get_teams(self) -> Sequence[Team]: ...

    async def get_channels_for_team_for_user(
        self, team_id: str, user_id: str
    ) -> Sequence[Channel]: ...

    async def ensure_bot(self, profile: BotProfile) -> str: ...


class RestPlatformClient:
    """Thin asynchronous wrapper around the Mattermost REST API."""

    def __init__(self, session: aiohttp.ClientSession, base_url: str, token: str):
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._token = token.strip()

    def auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "User-Agent": _DEFAULT_USER_AGENT,
            "Accept": "application/json",
        }

    async def get_post(self, post_id: str) -> Post:
        data = await self._request_object(f"/posts/{post_id}")
        return Post(
            id=str(data.get("id") or post_id),
            channel_id=str(data.get("channel_id") or ""),
            user_id=str(data.get("user_id") or ""),
        )

    async def get_channel(self, channel_id: str) -> Channel:
        data = await self._request_object(f"/channels/{channel_id}")
        return _parse_channel(data)

    async def get_user(self, user_id: str) -> User:
        data = await self._request_object(f"/users/{user_id}")
        return _parse_user(data)

    async def get_team(self, team_id: str) -> Team:
        data = await self._request_object(f"/teams/{team_id}")
        return _parse_team(data)

    async def get_teams(self) -> Sequence[Team]:
        data = await self._request("GET", "/teams")
        return [_parse_team(item) for item in _as_list(data)]

    async def get_channels_for_team_for_user(
        self, team_id: str, user_id: str
    ) -> Sequence[Channel]:
        data = await self._request(
            "GET",
            f"/users/{user_id}/teams/{team_id}/channels",
            params={"include_deleted": "false"},
        )
        return [_parse_channel(item) for item in _as_list(data)]

    async def ensure_bot(self, profile: BotProfile) -> str:
        try:
            user = await self.get_user_by_username(profile.username)
        except PlatformError as exc:
            if exc.status != 404:
                raise
        else:
            if not user.is_bot:
                raise PlatformError(
                    f"User {profile.username!r} exists and is not a bot account"
                )
            return user.id

        logger.info("Создаём бот-аккаунт %s", profile.username)
        payload = {
            "username": profile.username,
            "display_name": profile.display_name,
            "description": profile.description,
        }
        data = _as_object(await self._request("POST", "/bots", json=payload))
        bot_id = str(data.get("user_id") or "")
        if not bot_id:
            raise PlatformError("Bot creation response did not include user_id")
        return bot_id

    async def get_user_by_username(self, username: str) -> User:
        data = await self._request_object(f"/users/username/{username}")
        return _parse_user(data)

    async def _request_object(self, path: str) -> Mapping[str, Any]:
        return _as_object(await self._request("GET", path))

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        url = f"{self._base_url}{_API_PREFIX}{path}"
        try:
            timeout_cfg = aiohttp.ClientTimeout(total=_REQUEST_TIMEOUT)
            async with self._session.request(
                method,
                url,
                headers=self.auth_headers(),
                params=params,
                json=json,
                timeout=timeout_cfg,
            ) as resp:
                if resp.status >= 400:
                    detail = await resp.text()
                    raise PlatformError(
                        f"{method} {path} returned {resp.status}: {detail[:200]}",
                        status=resp.status,
                    )
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise PlatformError(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise PlatformError(f"{method} {path} returned invalid JSON") from exc


def _as_object(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise PlatformError("Expected a JSON object in platform response")
    return data


def _as_list(data: Any) -> list[Mapping[str, Any]]:
    if not isinstance(data, list):
        raise PlatformError("Expected a JSON array in platform response")
    return [item for item in data if isinstance(item, Mapping)]


def _parse_channel(data: Mapping[str, Any]) -> Channel:
    return Channel(
        id=str(data.get("id") or ""),
        team_id=str(data.get("team_id") or ""),
        name=str(data.get("name") or ""),
        display_name=str(data.get("display_name") or ""),
    )


def _parse_user(data: Mapping[str, Any]) -> User:
    return User(
        id=str(data.get("id") or ""),
        username=str(data.get("username") or ""),
        is_bot=bool(data.get("is_bot")),
    )


def _parse_team(data: Mapping[str, Any]) -> Team:
    return Team(
        id=str(data.get("id") or ""),
        name=str(data.get("name") or ""),
        display_name=str(data.get("display_name") or ""),
    )
