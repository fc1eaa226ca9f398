from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from reaction_monitor.config_store import ConfigStore, ConfigurationInvariantError
from reaction_monitor.models import Configuration


def test_get_returns_empty_configuration_before_initialisation() -> None:
    store = ConfigStore()

    config = store.get()

    assert config.webhook_url == ""
    assert config.enabled is True
    assert config.monitored_channels == frozenset()


def test_replace_publishes_new_snapshot() -> None:
    store = ConfigStore()
    first = Configuration(webhook_url="https://example.com/hook")
    store.replace(first)
    assert store.get() is first

    second = first.with_updates(enabled=False)
    store.replace(second)

    assert store.get() is second
    assert first.enabled is True


def test_replace_rejects_installed_snapshot() -> None:
    store = ConfigStore()
    config = Configuration()
    store.replace(config)

    with pytest.raises(ConfigurationInvariantError):
        store.replace(config)

    store.replace(config.clone())


def test_update_rejects_builder_returning_current() -> None:
    store = ConfigStore(Configuration())

    with pytest.raises(ConfigurationInvariantError):
        store.update(lambda current: current)

    updated = store.update(lambda current: current.with_updates(webhook_url="http://x"))
    assert store.get() is updated
    assert updated.webhook_url == "http://x"


def test_mutate_channels_copies_on_write() -> None:
    store = ConfigStore(Configuration(webhook_url="https://example.com/hook"))
    before = store.get()

    after = store.mutate_channels(lambda channels: channels.add("C1"))

    assert after is store.get()
    assert after is not before
    assert after.monitored_channels == {"C1"}
    assert after.webhook_url == "https://example.com/hook"
    assert before.monitored_channels == frozenset()


def test_mutate_channels_is_idempotent() -> None:
    store = ConfigStore()
    store.mutate_channels(lambda channels: channels.add("C1"))
    snapshot = store.get()

    store.mutate_channels(lambda channels: channels.add("C1"))
    assert store.get() is snapshot
    assert len(store.get().monitored_channels) == 1

    store.mutate_channels(lambda channels: channels.discard("C2"))
    assert store.get() is snapshot

    store.mutate_channels(lambda channels: channels.discard("C1"))
    assert store.get().monitored_channels == frozenset()


def test_failed_mutation_is_not_published() -> None:
    store = ConfigStore()
    store.mutate_channels(lambda channels: channels.add("C1"))
    snapshot = store.get()

    def broken(channels: set[str]) -> None:
        channels.add("C2")
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.mutate_channels(broken)

    assert store.get() is snapshot
    assert store.get().monitored_channels == {"C1"}


def test_concurrent_mutations_do_not_lose_updates() -> None:
    store = ConfigStore(Configuration(webhook_url="https://example.com/hook"))
    workers = 32
    barrier = threading.Barrier(workers)

    def add(index: int) -> None:
        barrier.wait()
        store.mutate_channels(lambda channels: channels.add(f"C{index}"))

    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(add, range(workers)))

    assert store.get().monitored_channels == {f"C{index}" for index in range(workers)}


def test_readers_see_consistent_snapshots_during_writes() -> None:
    store = ConfigStore(Configuration(webhook_url="https://v0.example.com"))
    stop = threading.Event()
    mismatches: list[Configuration] = []

    def writer() -> None:
        for version in range(1, 200):
            store.update(
                lambda current, version=version: current.with_updates(
                    webhook_url=f"https://v{version}.example.com",
                    monitored_channels={f"V{version}"},
                )
            )
        stop.set()

    def reader() -> None:
        while not stop.is_set():
            config = store.get()
            if not config.monitored_channels:
                continue
            (channel,) = config.monitored_channels
            if config.webhook_url != f"https://{channel.lower()}.example.com":
                mismatches.append(config)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    writer()
    for thread in threads:
        thread.join()

    assert mismatches == []
