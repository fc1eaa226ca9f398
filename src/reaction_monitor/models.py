"""Data models used across the reaction monitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

REACTION_ADDED = "reaction_added"
REACTION_REMOVED = "reaction_removed"


@dataclass(frozen=True, slots=True)
class Configuration:
    """One published version of the runtime configuration.

    Instances are never modified after they are handed to the store; every
    change goes through :meth:`with_updates`, which builds a new snapshot.
    """

    webhook_url: str = ""
    enabled: bool = True
    monitored_channels: frozenset[str] = field(default_factory=frozenset)

    def with_updates(
        self,
        *,
        webhook_url: str | None = None,
        enabled: bool | None = None,
        monitored_channels: Iterable[str] | None = None,
    ) -> "Configuration":
        channels = self.monitored_channels if monitored_channels is None else monitored_channels
        return Configuration(
            webhook_url=webhook_url if webhook_url is not None else self.webhook_url,
            enabled=enabled if enabled is not None else self.enabled,
            monitored_channels=frozenset(channels),
        )

    def clone(self) -> "Configuration":
        return self.with_updates()


@dataclass(slots=True)
class Reaction:
    """Reaction record as delivered by the platform."""

    user_id: str
    post_id: str
    emoji_name: str
    create_at: int = 0
    channel_id: str = ""


@dataclass(slots=True)
class ReactionEvent:
    """Reaction added or removed, before enrichment."""

    action: str
    user_id: str
    post_id: str
    emoji_name: str
    timestamp: int
    channel_id: str = ""

    @classmethod
    def from_reaction(cls, action: str, reaction: Reaction) -> "ReactionEvent":
        return cls(
            action=action,
            user_id=reaction.user_id,
            post_id=reaction.post_id,
            emoji_name=reaction.emoji_name,
            timestamp=reaction.create_at,
            channel_id=reaction.channel_id,
        )


@dataclass(slots=True)
class Post:
    id: str
    channel_id: str
    user_id: str = ""


@dataclass(slots=True)
class Channel:
    id: str
    team_id: str
    name: str
    display_name: str = ""


@dataclass(slots=True)
class User:
    id: str
    username: str
    is_bot: bool = False


@dataclass(slots=True)
class Team:
    id: str
    name: str
    display_name: str = ""


@dataclass(slots=True)
class ChannelMember:
    """Membership change reported by the platform."""

    channel_id: str
    user_id: str


@dataclass(slots=True)
class BotProfile:
    """Identity used when provisioning the bot account."""

    username: str = "reactions-bot"
    display_name: str = "Reactions Plugin Bot"
    description: str = "Bot account created by the reactions plugin to monitor channels."


@dataclass(slots=True)
class ReactionWebhookPayload:
    """Body of the outbound notification."""

    action: str
    user_id: str
    username: str
    post_id: str
    channel_id: str
    channel_name: str
    team_id: str
    team_name: str
    emoji_name: str
    timestamp: int


@dataclass(slots=True)
class OutgoingWebhookPayload:
    """Callback body posted by the platform's outgoing webhooks."""

    token: str = ""
    team_id: str = ""
    team_domain: str = ""
    channel_id: str = ""
    channel_name: str = ""
    timestamp: int = 0
    user_id: str = ""
    user_name: str = ""
    post_id: str = ""
    text: str = ""
    trigger_word: str = ""
    file_ids: str = ""
