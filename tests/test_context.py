# SPDX-FileCopyrightText: Copyright (C) 2024 David Stainton
# SPDX-License-Identifier: AGPL-3.0-only

import asyncio
import pytest

from theta_wallet_connect import (
    Disconnected,
    NoConfigYet,
    PendingRequests,
    RemoteConfig,
    RequesterIdentity,
    WalletContext,
)


def test_pending_requests_resolve_once():
    pending = PendingRequests()
    calls = []
    request_id = pending.next_id()
    pending.register(request_id, lambda err, res: calls.append((err, res)), method="requestAccounts")

    assert request_id in pending
    assert pending.resolve(request_id, None, ["0xabc"]) is True
    assert pending.resolve(request_id, None, ["0xdef"]) is False
    assert calls == [(None, ["0xabc"])]
    assert len(pending) == 0


def test_pending_requests_ids_increase():
    pending = PendingRequests()
    ids = [pending.next_id() for _ in range(100)]
    assert ids == list(range(ids[0], ids[0] + 100))


def test_pending_requests_resolve_unknown_id():
    pending = PendingRequests()
    assert pending.resolve(42, None, None) is False
    assert pending.resolve({"not": "hashable"}, None, None) is False


def test_pending_requests_discard():
    pending = PendingRequests()
    pending.register(1, lambda err, res: None)
    pending.discard(1)
    pending.discard(1)
    assert len(pending) == 0


@pytest.mark.asyncio
async def test_pending_requests_fail_all():
    pending = PendingRequests()
    loop = asyncio.get_running_loop()
    future = loop.create_future()
    calls = []
    pending.register(1, lambda err, res: None, future=future)
    pending.register(2, lambda err, res: calls.append((err, res)))

    assert pending.fail_all(Disconnected()) == 2

    assert isinstance(future.exception(), Disconnected)
    assert calls == [("Disconnected", None)]
    assert len(pending) == 0


def test_remote_config_before_push():
    config = RemoteConfig()
    assert not config.is_set()
    assert config.get("chainId") is None
    assert config.snapshot() is None
    with pytest.raises(NoConfigYet):
        config.chain_id()
    with pytest.raises(NoConfigYet):
        config.is_unlocked()


def test_remote_config_replace_and_clear():
    config = RemoteConfig()
    pushed = {"chainId": "mainnet", "isUnlocked": False, "extra": 1}
    config.replace(pushed)
    pushed["chainId"] = "mutated"

    assert config.chain_id() == "mainnet"
    assert config.is_unlocked() is False

    config.replace({"chainId": "testnet"})
    assert config.get("extra") is None
    assert config.snapshot() == {"chainId": "testnet"}

    config.clear()
    assert not config.is_set()


def test_remote_config_rejects_non_mapping():
    config = RemoteConfig()
    with pytest.raises(TypeError):
        config.replace(["chainId"])
    assert not config.is_set()


def test_requester_identity_wire_format():
    requester = RequesterIdentity.create("My dApp", "https://dapp.example/", "https://cdn.example/icon.png")
    assert requester.to_wire() == {
        "title": "My dApp",
        "iconUrl": "https://cdn.example/icon.png",
        "origin": "https://dapp.example/",
    }
    fallback = RequesterIdentity.create("My dApp", "https://dapp.example/")
    assert fallback.icon_url == "https://dapp.example/favicon.ico"


@pytest.mark.asyncio
async def test_pending_requests_pass_error_code_to_future_entries():
    pending = PendingRequests()
    loop = asyncio.get_running_loop()
    future = loop.create_future()
    calls = []
    pending.register(1, lambda err, res, code: calls.append((err, res, code)), future=future)
    pending.register(2, lambda err, res: calls.append((err, res)))

    assert pending.resolve(1, "User rejected the request.", None, 4001) is True
    assert pending.resolve(2, "locked", None, 4100) is True
    assert calls == [("User rejected the request.", None, 4001), ("locked", None)]


class Marker:
    def __init__(self, name):
        self.name = name


def test_wallet_context_channel_table():
    context = WalletContext()
    first = Marker("theta-wallet")
    second = Marker("theta-wallet")

    context.attach_channel(first)
    context.attach_channel(first)
    assert context.get_channel("theta-wallet") is first

    with pytest.raises(RuntimeError):
        context.attach_channel(second)
    assert context.get_channel("theta-wallet") is first

    assert context.detach_channel(second) is False
    assert context.get_channel("theta-wallet") is first
    assert context.detach_channel(first) is True
    assert context.get_channel("theta-wallet") is None
    assert context.detach_channel(first) is False
