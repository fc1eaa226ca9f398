"""Thread-safe holder for the active configuration snapshot."""

from __future__ import annotations

from typing import Callable

from .models import Configuration
from .utils import ReadWriteLock


class ConfigurationInvariantError(RuntimeError):
    """Raised when the store is used in a way that signals a logic defect."""


class ConfigStore:
    """Publish immutable :class:`Configuration` snapshots.

    A single readers/writer lock guards the pointer to the current snapshot.
    Readers share the lock; :meth:`replace`, :meth:`update` and
    :meth:`mutate_channels` hold
    it exclusively, so channel mutations are applied one at a time and no
    reader observes a half-built snapshot. Callbacks passed to
    :meth:`update` and :meth:`mutate_channels` run inside the critical
    section and must not call back into the store.
    """

    def __init__(self, initial: Configuration | None = None):
        self._lock = ReadWriteLock()
        self._current = initial

    def get(self) -> Configuration:
        with self._lock.read():
            current = self._current
        if current is None:
            return Configuration()
        return current

    def replace(self, config: Configuration) -> None:
        with self._lock.write():
            if self._current is config:
                raise ConfigurationInvariantError(
                    "replace() called with the configuration that is already installed"
                )
            self._current = config

    def update(self, builder: Callable[[Configuration], Configuration]) -> Configuration:
        """Build the next snapshot from the current one and publish it atomically."""

        with self._lock.write():
            current = self._current if self._current is not None else Configuration()
            updated = builder(current)
            if updated is self._current:
                raise ConfigurationInvariantError(
                    "update() builder returned the configuration that is already installed"
                )
            self._current = updated
            return updated

    def mutate_channels(self, mutator: Callable[[set[str]], None]) -> Configuration:
        """Apply ``mutator`` to a copy of the channel set and publish the result.

        Returns the snapshot installed afterwards. When the mutation leaves
        the set unchanged the current snapshot stays in place.
        """

        with self._lock.write():
            current = self._current if self._current is not None else Configuration()
            channels = set(current.monitored_channels)
            mutator(channels)
            if channels == current.monitored_channels and self._current is not None:
                return current
            updated = current.with_updates(monitored_channels=channels)
            self._current = updated
            return updated
