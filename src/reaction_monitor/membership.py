"""Track the channels where the bot account is a member."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from .config_store import ConfigStore
from .models import ChannelMember
from .platform import PlatformAPI, PlatformError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DiscoveryResult:
    """Channels found during discovery plus the teams that could not be read."""

    channels: set[str] = field(default_factory=set)
    failed_teams: list[str] = field(default_factory=list)
    teams_ok: bool = True

    @property
    def complete(self) -> bool:
        return self.teams_ok and not self.failed_teams


class MembershipLedger:
    """Bot joins and leaves seen while a rediscovery is in flight.

    Only the latest change per channel is kept.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._changes: dict[str, bool] = {}

    def record(self, channel_id: str, joined: bool) -> None:
        with self._lock:
            self._changes[channel_id] = joined

    def apply(self, channels: set[str]) -> set[str]:
        with self._lock:
            changes = dict(self._changes)
        result = set(channels)
        for channel_id, joined in changes.items():
            if joined:
                result.add(channel_id)
            else:
                result.discard(channel_id)
        return result


class MembershipTracker:
    """Keep ``monitored_channels`` in line with the bot's channel memberships."""

    def __init__(self, store: ConfigStore, platform: PlatformAPI):
        self._store = store
        self._platform = platform
        self._bot_id: str | None = None
        self._ledgers_lock = threading.Lock()
        self._ledgers: list[MembershipLedger] = []

    @property
    def bot_id(self) -> str | None:
        return self._bot_id

    def set_bot_id(self, bot_id: str | None) -> None:
        self._bot_id = bot_id or None

    @contextmanager
    def recording(self) -> Iterator[MembershipLedger]:
        """Collect bot membership changes until the block exits."""

        ledger = MembershipLedger()
        with self._ledgers_lock:
            self._ledgers.append(ledger)
        try:
            yield ledger
        finally:
            with self._ledgers_lock:
                self._ledgers.remove(ledger)

    async def discover(self) -> DiscoveryResult:
        """Collect the channels the bot belongs to across every visible team.

        A team whose channels cannot be listed is logged and skipped.
        """

        result = DiscoveryResult()
        bot_id = self._bot_id
        if not bot_id:
            logger.warning("Бот-аккаунт не определён, поиск каналов пропущен")
            result.teams_ok = False
            return result

        try:
            teams = await self._platform.get_teams()
        except PlatformError as exc:
            logger.warning("Не удалось получить список команд: %s", exc)
            result.teams_ok = False
            return result

        for team in teams:
            try:
                channels = await self._platform.get_channels_for_team_for_user(team.id, bot_id)
            except PlatformError as exc:
                logger.warning(
                    "Не удалось получить каналы бота в команде %s: %s", team.id, exc
                )
                result.failed_teams.append(team.id)
                continue
            for channel in channels:
                result.channels.add(channel.id)
                logger.debug(
                    "Найден отслеживаемый канал %s (%s)", channel.id, channel.name
                )
        return result

    def is_channel_monitored(self, channel_id: str) -> bool:
        return channel_id in self._store.get().monitored_channels

    def is_bot(self, user_id: str) -> bool:
        return bool(self._bot_id) and user_id == self._bot_id

    def on_member_joined(self, member: ChannelMember) -> bool:
        """Start monitoring the channel when the bot joined it.

        Returns True when the member is the bot account.
        """

        if not self.is_bot(member.user_id):
            return False
        self._record(member.channel_id, True)
        self._store.mutate_channels(lambda channels: channels.add(member.channel_id))
        return True

    def on_member_left(self, member: ChannelMember) -> bool:
        if not self.is_bot(member.user_id):
            return False
        self._record(member.channel_id, False)
        self._store.mutate_channels(lambda channels: channels.discard(member.channel_id))
        return True

    def _record(self, channel_id: str, joined: bool) -> None:
        # Must run before the matching store mutation.
        with self._ledgers_lock:
            for ledger in self._ledgers:
                ledger.record(channel_id, joined)
