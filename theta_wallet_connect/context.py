# SPDX-FileCopyrightText: Copyright (C) 2024 David Stainton
# SPDX-License-Identifier: AGPL-3.0-only

"""
Shared state for a wallet connection.

A WalletContext is built once at process start and handed to the client.
It holds everything that outlives a single connect()/disconnect() cycle:
the pending request registry, the wallet's last pushed public config and
the table of live channels addressed by their marker name.
"""

import asyncio
import itertools
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import NoConfigYet

from typing import TYPE_CHECKING
if TYPE_CHECKING:
  from typing import Any, Callable, Dict, Iterator, Optional
  from .channel import Channel

  Completion = Callable[[Optional[str], Any], None]

logger = logging.getLogger('theta_wallet_connect')


@dataclass
class PendingRequest:
    """An in-flight request awaiting exactly one reply."""
    request_id: int
    method: str
    completion: "Completion"
    future: "asyncio.Future[Any]|None" = None


class PendingRequests:
    """
    Maps in-flight request identifiers to their completions.

    Entries are removed only when their reply arrives (or when a caller
    explicitly discards or fails them). There is no capacity bound and no
    expiry.
    """

    def __init__(self) -> None:
        self._entries : "Dict[int,PendingRequest]" = {}
        self._ids : "Iterator[int]" = itertools.count(1)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def next_id(self) -> int:
        """
        Return a fresh request identifier.

        Identifiers increase monotonically for the life of the registry, so
        two requests can never share one even if they are issued back to back.
        """
        return next(self._ids)

    def register(self, request_id: int, completion: "Completion", method: str = "",
                 future: "asyncio.Future[Any]|None" = None) -> None:
        self._entries[request_id] = PendingRequest(request_id, method, completion, future)

    def resolve(self, request_id: "Any", error: "str|None", result: "Any",
                error_code: "Any" = None) -> bool:
        """
        Remove the entry for request_id and invoke its completion.

        Completions registered with a future are the client's own and also
        receive the remote error code; caller supplied completions are
        invoked as completion(error, result).

        Returns:
            bool: False if nothing was pending under that identifier.
        """
        try:
            entry = self._entries.pop(request_id)
        except (KeyError, TypeError):
            # TypeError covers unhashable ids sent by the remote side
            return False
        if entry.future is not None:
            entry.completion(error, result, error_code)
        else:
            entry.completion(error, result)
        return True

    def discard(self, request_id: int) -> None:
        self._entries.pop(request_id, None)

    def fail_all(self, exc: Exception) -> int:
        """
        Fail and remove every pending entry.

        Entries awaited through a future get exc set on it; entries with a
        caller supplied completion receive str(exc) as their error message.

        Returns:
            int: The number of entries that were failed.
        """
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            if entry.future is not None:
                if not entry.future.done():
                    entry.future.set_exception(exc)
            else:
                entry.completion(str(exc), None)
        return len(entries)


class RemoteConfig:
    """
    Snapshot of the public config last pushed by the wallet.

    The snapshot is only ever replaced as a whole, never merged.
    """

    def __init__(self) -> None:
        self._config : "Dict[str,Any]|None" = None

    def is_set(self) -> bool:
        return self._config is not None

    def replace(self, new_config: "Mapping[str,Any]") -> None:
        if not isinstance(new_config, Mapping):
            raise TypeError(f"public config must be a mapping, got {type(new_config).__name__}")
        self._config = dict(new_config)

    def clear(self) -> None:
        self._config = None

    def snapshot(self) -> "Dict[str,Any]|None":
        if self._config is None:
            return None
        return dict(self._config)

    def get(self, key: str, default: "Any" = None) -> "Any":
        if self._config is None:
            return default
        return self._config.get(key, default)

    def _require(self, key: str) -> "Any":
        if self._config is None:
            raise NoConfigYet()
        return self._config.get(key)

    def chain_id(self) -> "Any":
        return self._require('chainId')

    def is_unlocked(self) -> "Any":
        return self._require('isUnlocked')


class WalletContext:
    """
    Process-wide state for talking to the wallet.

    Attributes:
        pending (PendingRequests): Requests awaiting a reply. Not cleared
            on disconnect, so identifiers stay unique across reconnects.
        public_config (RemoteConfig): The wallet's last pushed public config.
        channels (dict): Live channels keyed by their marker name.
    """

    def __init__(self) -> None:
        self.pending = PendingRequests()
        self.public_config = RemoteConfig()
        self.channels : "Dict[str,Channel]" = {}

    def get_channel(self, name: str) -> "Channel|None":
        return self.channels.get(name)

    def attach_channel(self, channel: "Channel") -> None:
        """
        Register channel under its marker name.

        Raises:
            RuntimeError: If a different channel already holds that name.
        """
        existing = self.channels.get(channel.name)
        if existing is not None and existing is not channel:
            raise RuntimeError(f"channel {channel.name} is already attached")
        logger.debug(f"attaching channel {channel.name}")
        self.channels[channel.name] = channel

    def detach_channel(self, channel: "Channel") -> bool:
        """Remove channel if it is the one registered under its name."""
        if self.channels.get(channel.name) is not channel:
            return False
        del self.channels[channel.name]
        return True
