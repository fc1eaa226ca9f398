from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import aiohttp
import pytest
from aiohttp import test_utils, web

from reaction_monitor.models import BotProfile
from reaction_monitor.platform import PlatformError, RestPlatformClient


def make_app(bot_exists: bool = True) -> tuple[web.Application, list[dict[str, Any]]]:
    requests: list[dict[str, Any]] = []
    users = {
        "U1": {"id": "U1", "username": "alice"},
        "bot": {"id": "bot", "username": "reactions-bot", "is_bot": True},
    }

    async def record(request: web.Request) -> None:
        body = await request.json() if request.can_read_body else None
        requests.append(
            {
                "method": request.method,
                "path": request.path,
                "auth": request.headers.get("Authorization"),
                "query": dict(request.query),
                "body": body,
            }
        )

    async def post(request: web.Request) -> web.Response:
        await record(request)
        if request.match_info["post_id"] == "missing":
            return web.json_response({"message": "not found"}, status=404)
        return web.json_response({"id": "P1", "channel_id": "C1", "user_id": "U1"})

    async def channel(request: web.Request) -> web.Response:
        await record(request)
        return web.json_response({"id": "C1", "team_id": "T1", "name": "town-square"})

    async def user(request: web.Request) -> web.Response:
        await record(request)
        return web.json_response(users[request.match_info["user_id"]])

    async def user_by_name(request: web.Request) -> web.Response:
        await record(request)
        if not bot_exists:
            return web.json_response({"message": "not found"}, status=404)
        return web.json_response(users["bot"])

    async def team(request: web.Request) -> web.Response:
        await record(request)
        return web.json_response({"id": "T1", "name": "team"})

    async def teams(request: web.Request) -> web.Response:
        await record(request)
        return web.json_response([{"id": "T1", "name": "team"}, {"id": "T2", "name": "other"}])

    async def team_channels(request: web.Request) -> web.Response:
        await record(request)
        return web.json_response([{"id": "C1", "team_id": "T1", "name": "town-square"}])

    async def bots(request: web.Request) -> web.Response:
        await record(request)
        return web.json_response({"user_id": "new-bot"}, status=201)

    async def broken(request: web.Request) -> web.Response:
        await record(request)
        return web.Response(text="<html>", content_type="text/html")

    app = web.Application()
    app.router.add_get("/api/v4/posts/{post_id}", post)
    app.router.add_get("/api/v4/channels/{channel_id}", channel)
    app.router.add_get("/api/v4/users/username/{username}", user_by_name)
    app.router.add_get("/api/v4/users/{user_id}", user)
    app.router.add_get("/api/v4/teams", teams)
    app.router.add_get("/api/v4/teams/{team_id}", team)
    app.router.add_get("/api/v4/users/{user_id}/teams/{team_id}/channels", team_channels)
    app.router.add_post("/api/v4/bots", bots)
    app.router.add_get("/api/v4/broken", broken)
    return app, requests


def run_client(
    app: web.Application, action: Callable[[RestPlatformClient], Awaitable[Any]]
) -> Any:
    async def runner() -> Any:
        async with test_utils.TestServer(app) as server:
            async with aiohttp.ClientSession() as session:
                base_url = str(server.make_url("/"))
                client = RestPlatformClient(session, base_url, " secret ")
                return await action(client)

    return asyncio.run(runner())


def test_lookups_parse_responses() -> None:
    app, requests = make_app()

    async def action(client: RestPlatformClient) -> tuple[Any, ...]:
        return (
            await client.get_post("P1"),
            await client.get_channel("C1"),
            await client.get_user("U1"),
            await client.get_team("T1"),
        )

    post, channel, user, team = run_client(app, action)

    assert post.channel_id == "C1"
    assert channel.team_id == "T1"
    assert channel.name == "town-square"
    assert user.username == "alice"
    assert user.is_bot is False
    assert team.name == "team"
    assert {request["auth"] for request in requests} == {"Bearer secret"}


def test_team_and_channel_listing() -> None:
    app, requests = make_app()

    async def action(client: RestPlatformClient) -> tuple[Any, Any]:
        return await client.get_teams(), await client.get_channels_for_team_for_user("T1", "bot")

    teams, channels = run_client(app, action)

    assert [team.id for team in teams] == ["T1", "T2"]
    assert [channel.id for channel in channels] == ["C1"]
    assert requests[-1]["path"] == "/api/v4/users/bot/teams/T1/channels"
    assert requests[-1]["query"] == {"include_deleted": "false"}


def test_error_status_raises_platform_error() -> None:
    app, _ = make_app()

    async def action(client: RestPlatformClient) -> None:
        await client.get_post("missing")

    with pytest.raises(PlatformError) as excinfo:
        run_client(app, action)

    assert excinfo.value.status == 404


def test_invalid_json_raises_platform_error() -> None:
    app, _ = make_app()

    async def action(client: RestPlatformClient) -> None:
        await client._request("GET", "/broken")

    with pytest.raises(PlatformError):
        run_client(app, action)


def test_connection_failure_raises_platform_error() -> None:
    async def runner() -> None:
        async with test_utils.TestServer(web.Application()) as server:
            base_url = str(server.make_url("/"))
        async with aiohttp.ClientSession() as session:
            await RestPlatformClient(session, base_url, "token").get_post("P1")

    with pytest.raises(PlatformError):
        asyncio.run(runner())


def test_ensure_bot_returns_existing_bot() -> None:
    app, requests = make_app(bot_exists=True)

    bot_id = run_client(app, lambda client: client.ensure_bot(BotProfile()))

    assert bot_id == "bot"
    assert [request["method"] for request in requests] == ["GET"]
    assert requests[0]["path"] == "/api/v4/users/username/reactions-bot"


def test_ensure_bot_creates_missing_bot() -> None:
    app, requests = make_app(bot_exists=False)

    bot_id = run_client(app, lambda client: client.ensure_bot(BotProfile()))

    assert bot_id == "new-bot"
    created = requests[-1]
    assert created["method"] == "POST"
    assert created["body"] == {
        "username": "reactions-bot",
        "display_name": "Reactions Plugin Bot",
        "description": "Bot account created by the reactions plugin to monitor channels.",
    }
