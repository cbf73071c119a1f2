# SPDX-FileCopyrightText: Copyright (C) 2024 David Stainton
# SPDX-License-Identifier: AGPL-3.0-only

import asyncio
import pytest
import toml

from theta_wallet_connect import (
    CONNECT_TARGET,
    PUBLIC_CONFIG_UPDATE_METHOD,
    Config,
    ConnectionFailed,
    NotConnected,
    ThetaWalletConnect,
    WalletContext,
)


def write_config(directory, **overrides):
    """Write a wallet connect TOML config into directory and return its path."""
    config_data = {
        "Network": "unix",
        "Address": "@theta_wallet_connect_test",
        "LogLevel": "DEBUG",
        "Requester": {
            "Title": "Test dApp",
            "Origin": "https://dapp.example",
        },
    }
    config_data.update(overrides)
    path = directory / "wallet_connect.toml"
    with open(path, "w") as f:
        toml.dump(config_data, f)
    return str(path)


def reply_envelope(request_id, result=None, error=None):
    data = {"jsonrpc": "2.0", "id": request_id}
    if error is not None:
        data["error"] = error
    else:
        data["result"] = result
    return {"target": CONNECT_TARGET, "data": data}


def push_envelope(public_config):
    return {
        "target": CONNECT_TARGET,
        "data": {
            "jsonrpc": "2.0",
            "method": PUBLIC_CONFIG_UPDATE_METHOD,
            "params": [{"publicConfig": public_config}],
        },
    }


async def eventually(predicate, timeout=5.0):
    """Yield to the event loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class FakeChannel:
    """In-memory stand-in for Channel that records what is sent."""

    def __init__(self, name, network, address, on_closed=None,
                 fail=False, gate=None, responder=None):
        self.name = name
        self.network = network
        self.address = address
        self.close_listeners = [on_closed] if on_closed is not None else []
        self.fail = fail
        self.gate = gate
        self.responder = responder
        self.listeners = []
        self.sent = []
        self.opened = False
        self.closed = False

    async def open(self, loop):
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ConnectionFailed("Failed to connect to Theta Wallet.")
        self.opened = True

    def add_listener(self, listener):
        if listener not in self.listeners:
            self.listeners.append(listener)

    def remove_listener(self, listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def has_listeners(self):
        return bool(self.listeners)

    def add_close_listener(self, listener):
        if listener not in self.close_listeners:
            self.close_listeners.append(listener)

    def remove_close_listener(self, listener):
        if listener in self.close_listeners:
            self.close_listeners.remove(listener)

    def is_open(self):
        return self.opened and not self.closed

    async def send(self, envelope):
        if self.closed or not self.opened:
            raise NotConnected("channel to Theta Wallet is not open")
        self.sent.append(envelope)
        if self.responder is not None:
            self.responder(self, envelope)

    def deliver(self, message):
        for listener in list(self.listeners):
            listener(message)

    def remote_close(self):
        self.closed = True
        for listener in list(self.close_listeners):
            listener(self)

    def close(self):
        self.closed = True


class FakeChannelFactory:

    def __init__(self):
        self.channels = []
        self.fail = False
        self.gate = None
        self.responder = None

    def __call__(self, name, network, address, on_closed=None):
        channel = FakeChannel(name, network, address, on_closed=on_closed,
                              fail=self.fail, gate=self.gate, responder=self.responder)
        self.channels.append(channel)
        return channel

    @property
    def last(self):
        return self.channels[-1]


@pytest.fixture
def config_path(tmp_path):
    return write_config(tmp_path)


@pytest.fixture
def status_events():
    return []


@pytest.fixture
def config(config_path, status_events):
    return Config(config_path, on_connection_status=status_events.append)


@pytest.fixture
def channel_factory():
    return FakeChannelFactory()


@pytest.fixture
def context():
    return WalletContext()


@pytest.fixture
def wallet(config, context, channel_factory):
    return ThetaWalletConnect(config, context=context, channel_factory=channel_factory)
