# SPDX-FileCopyrightText: Copyright (C) 2024 David Stainton
# SPDX-License-Identifier: AGPL-3.0-only

"""
Theta Wallet Connect
====================

This module provides a minimal async Python client that lets an application
make requests to a Theta Wallet running in an isolated context. The wallet
is reachable only through a message channel which carries one-way,
untyped envelopes in both directions; this client turns that channel into
a request/response API.

The client handles:
- Connecting to and disconnecting from the wallet
- Correlating JSON-RPC replies with the requests that caused them
- Tracking the public config the wallet pushes (chain id, lock status)

All key management and transaction signing happens inside the wallet,
not in this client library.


Usage Example
-------------

```python
import asyncio
from theta_wallet_connect import ThetaWalletConnect, Config

async def main():
    cfg = Config("./wallet_connect.toml")
    wallet = ThetaWalletConnect(cfg)
    await wallet.connect()

    accounts = await wallet.request_accounts()
    print(accounts)

    await wallet.disconnect()

asyncio.run(main())
```
"""

import asyncio
import logging

import coloredlogs
import pprintpp
import toml

from .channel import Channel
from .context import PendingRequests, RemoteConfig, WalletContext
from .errors import (
    ConnectionFailed,
    Disconnected,
    InvalidArgument,
    NoConfigYet,
    NotConnected,
    RemoteError,
    RequestTimeout,
    WalletConnectError,
    wallet_connect_error_to_string,
)
from .wallet_connect_data import ConnectionState, RequesterIdentity

from typing import TYPE_CHECKING
if TYPE_CHECKING:
  from typing import Any, Callable, Dict, List, Optional, Sequence

# Export public API
__all__ = [
    'ThetaWalletConnect',
    'Config',
    'ConfigFile',
    'Channel',
    'WalletContext',
    'PendingRequests',
    'RemoteConfig',
    'RequesterIdentity',
    'ConnectionState',
    'WalletConnectError',
    'ConnectionFailed',
    'NotConnected',
    'InvalidArgument',
    'RemoteError',
    'NoConfigYet',
    'Disconnected',
    'RequestTimeout',
    'wallet_connect_error_to_string',
    'pretty_print_obj',
]

# The wallet's fixed endpoint.
WALLET_CONNECT_NETWORK = "unix"
WALLET_CONNECT_ADDRESS = "@theta_wallet_connect"

# CHANNEL_ID is the marker name under which the single live
# channel is registered in the WalletContext.
CHANNEL_ID = '__THETA_WALLET_CONNECT__'

# Envelope targets. Outbound requests are addressed to the wallet's
# forwarder, inbound traffic for us carries the connect target.
FORWARDER_TARGET = 'theta-wallet.contentscript-forwarder'
CONNECT_TARGET = 'theta-wallet.connect'

# Method name the wallet uses to push its public config.
PUBLIC_CONFIG_UPDATE_METHOD = 'updateThetaWalletPublicConfig'

JSONRPC_VERSION = '2.0'


def pretty_print_obj(obj: "Any") -> str:
    """
    Pretty-print a Python object using indentation and return the formatted string.

    Args:
        obj (Any): The object to pretty-print.

    Returns:
        str: The pretty-printed representation of the object.
    """
    pp = pprintpp.PrettyPrinter(indent=4)
    return pp.pformat(obj)


class ConfigFile:
    """
    ConfigFile represents everything loaded from a TOML file: the wallet
    endpoint, the requester identity and the optional request policies.
    """
    def __init__(self, network:str, address:str, requester_title:str, requester_origin:str,
                 requester_icon_url:"str|None"=None, log_level:str="INFO",
                 request_timeout:"float|None"=None, fail_pending_on_disconnect:bool=False) -> None:
        self.network : str = network
        self.address : str = address
        self.requester_title : str = requester_title
        self.requester_origin : str = requester_origin
        self.requester_icon_url : "str|None" = requester_icon_url
        self.log_level : str = log_level
        self.request_timeout : "float|None" = request_timeout
        self.fail_pending_on_disconnect : bool = fail_pending_on_disconnect

    @classmethod
    def load(cls, toml_path:str) -> "ConfigFile":
        with open(toml_path, 'r') as f:
            data = toml.load(f)

        network = data.get('Network', WALLET_CONNECT_NETWORK)
        if not isinstance(network, str) or not network.lower().startswith(("tcp", "unix")):
            raise ValueError(f"Unknown network type: {network!r}")
        address = data.get('Address', WALLET_CONNECT_ADDRESS)
        if not isinstance(address, str) or not address:
            raise ValueError("Address must be a non-empty string")

        requester = data.get('Requester')
        if not isinstance(requester, dict):
            raise ValueError("missing [Requester] section")
        title = requester.get('Title')
        origin = requester.get('Origin')
        if not isinstance(title, str) or not isinstance(origin, str) or not origin:
            raise ValueError("[Requester] needs a Title and an Origin")
        icon_url = requester.get('IconURL')

        request_timeout = data.get('RequestTimeout')
        if request_timeout is not None:
            if isinstance(request_timeout, bool) or not isinstance(request_timeout, (int, float)):
                raise ValueError("RequestTimeout must be a number of seconds")
            request_timeout = float(request_timeout)
            if request_timeout <= 0:
                raise ValueError("RequestTimeout must be positive")

        fail_pending_on_disconnect = data.get('FailPendingOnDisconnect', False)
        if not isinstance(fail_pending_on_disconnect, bool):
            raise ValueError("FailPendingOnDisconnect must be true or false")

        return cls(
            network=network,
            address=address,
            requester_title=title,
            requester_origin=origin,
            requester_icon_url=icon_url,
            log_level=str(data.get('LogLevel', 'INFO')).upper(),
            request_timeout=request_timeout,
            fail_pending_on_disconnect=fail_pending_on_disconnect,
        )

    def __str__(self) -> str:
        return (
            f"Network: {self.network}\n"
            f"Address: {self.address}\n"
            f"Requester: {self.requester_title} ({self.requester_origin})\n"
            f"RequestTimeout: {self.request_timeout}\n"
            f"FailPendingOnDisconnect: {self.fail_pending_on_disconnect}"
        )


class Config:
    """
    Configuration object for ThetaWalletConnect containing connection details
    and event callbacks.

    Attributes:
        network (str): Network type ('tcp' or 'unix')
        address (str): Wallet endpoint (host:port for TCP, path or @name for Unix sockets)
        log_level (str): Level for the 'theta_wallet_connect' logger
        request_timeout (float, optional): Seconds to wait for a reply, None waits forever
        fail_pending_on_disconnect (bool): Fail outstanding requests on teardown
        on_connection_status (callable): Callback for connection state changes
        on_public_config (callable): Callback for public config pushes

    Example:
        >>> def handle_config(public_config):
        ...     print(public_config['chainId'])
        >>>
        >>> config = Config("wallet_connect.toml", on_public_config=handle_config)
        >>> wallet = ThetaWalletConnect(config)
    """

    def __init__(self, filepath:str,
                 on_connection_status:"Callable|None"=None,
                 on_public_config:"Callable|None"=None) -> None:
        """
        Initialize the Config object.

        Args:
            filepath (str): Path to the TOML config file.

            on_connection_status (callable, optional): Callback invoked on every
                connection state transition. The callback receives a single argument:

                - event (dict): with keys:
                    - 'state' (str): 'disconnected', 'connecting' or 'connected'
                    - 'is_connected' (bool): the value of is_connected() after the transition
                    - 'err' (str): Error message if the transition was caused by a failure

                Example: ``{'state': 'connected', 'is_connected': False, 'err': ''}``

            on_public_config (callable, optional): Callback invoked after the wallet
                pushed a new public config. Receives a copy of the new config dict.

                Example: ``{'chainId': 'mainnet', 'isUnlocked': True}``

        Note:
            Callbacks run inside the channel's read loop and must not block.
        """

        cfgfile = ConfigFile.load(filepath)

        self.network = cfgfile.network
        self.address = cfgfile.address
        self.requester_title = cfgfile.requester_title
        self.requester_origin = cfgfile.requester_origin
        self.requester_icon_url = cfgfile.requester_icon_url
        self.log_level = cfgfile.log_level
        self.request_timeout = cfgfile.request_timeout
        self.fail_pending_on_disconnect = cfgfile.fail_pending_on_disconnect

        self.on_connection_status = on_connection_status
        self.on_public_config = on_public_config

    def requester_identity(self) -> RequesterIdentity:
        return RequesterIdentity.create(
            title=self.requester_title,
            origin=self.requester_origin,
            icon_url=self.requester_icon_url,
        )

    def handle_connection_status_event(self, event: "Dict[str,Any]") -> None:
        if self.on_connection_status:
            self.on_connection_status(event)

    def handle_public_config_event(self, public_config: "Dict[str,Any]") -> None:
        if self.on_public_config:
            self.on_public_config(public_config)


class ThetaWalletConnect:
    """
    Async client for a Theta Wallet reachable over a message channel.

    The client owns the connection state machine
    (disconnected -> connecting -> connected -> disconnected) and gates
    every RPC on being connected. Requests are correlated with their
    replies through the context's pending request registry; replies may
    arrive in any order.
    """

    def __init__(self, config:Config, context:"WalletContext|None"=None,
                 channel_factory:"Callable[..., Channel]|None"=None) -> None:
        """
        Args:
            config (Config): Endpoint, requester identity and callbacks.
            context (WalletContext, optional): Shared state; a fresh one is
                created when omitted.
            channel_factory (callable, optional): Builds the channel, called
                as ``factory(name, network, address, on_closed=...)``.
                Defaults to Channel.
        """
        self.config = config
        self.context = context if context is not None else WalletContext()
        self.channel_factory = channel_factory if channel_factory is not None else Channel
        self.state = ConnectionState.DISCONNECTED
        self._requester : "RequesterIdentity|None" = None
        self._channel : "Channel|None" = None
        self._connect_task : "asyncio.Task[bool]|None" = None

        self.logger = logging.getLogger('theta_wallet_connect')
        # Only install a handler if none exists to avoid duplicate log messages
        if not self.logger.handlers:
            coloredlogs.install(level=self.config.log_level, logger=self.logger)

    @property
    def channel(self) -> "Channel|None":
        return self._channel

    @property
    def requester(self) -> "RequesterIdentity|None":
        return self._requester

    async def __aenter__(self) -> "ThetaWalletConnect":
        await self.connect()
        return self

    async def __aexit__(self, *args: "Any") -> None:
        await self.disconnect()

    def _set_state(self, state: ConnectionState, err: str = "") -> None:
        if state is self.state:
            return
        self.logger.debug(f"connection state {self.state.value} -> {state.value}")
        self.state = state
        self.config.handle_connection_status_event({
            'state': state.value,
            'is_connected': self.is_connected(),
            'err': err,
        })

    async def connect(self) -> bool:
        """
        Connect to the wallet.

        Returns immediately if already connected. Callers arriving while a
        connect is in flight wait on that same attempt. If another client
        on the same context already holds a live channel, that channel is
        shared instead of opening a second one.

        Returns:
            bool: True once the channel is established.

        Raises:
            ConnectionFailed: If the channel could not be established, or
                another client on the context is still establishing it.
        """
        if self.state is ConnectionState.CONNECTED:
            return True
        if self.state is ConnectionState.CONNECTING and self._connect_task is not None:
            return await asyncio.shield(self._connect_task)

        existing = self.context.get_channel(CHANNEL_ID)
        if existing is not None:
            return self._share(existing)

        loop = asyncio.get_running_loop()
        self._requester = self.config.requester_identity()
        channel = self.channel_factory(CHANNEL_ID, self.config.network, self.config.address,
                                       on_closed=self._on_channel_closed)
        self.context.attach_channel(channel)
        self._channel = channel
        self._set_state(ConnectionState.CONNECTING)
        channel.add_listener(self.handle_message)

        self._connect_task = loop.create_task(self._establish(loop, channel))
        return await asyncio.shield(self._connect_task)

    def _share(self, channel: Channel) -> bool:
        if not channel.is_open():
            raise ConnectionFailed("Another client is still connecting to Theta Wallet.")
        self.logger.debug(f"sharing live channel {channel.name}")
        self._requester = self.config.requester_identity()
        self._channel = channel
        channel.add_listener(self.handle_message)
        channel.add_close_listener(self._on_channel_closed)
        self._set_state(ConnectionState.CONNECTED)
        return True

    async def _establish(self, loop: asyncio.AbstractEventLoop, channel: Channel) -> bool:
        try:
            await channel.open(loop)
        except Exception as e:
            self.logger.error(f"Error connecting to wallet: {e}")
            if self._channel is channel:
                self._teardown(channel, err=str(e))
            if isinstance(e, ConnectionFailed):
                raise
            raise ConnectionFailed(f"Failed to connect to Theta Wallet: {e}") from e

        if self._channel is not channel:
            channel.close()
            raise ConnectionFailed("Disconnected while connecting to Theta Wallet.")

        self.logger.info("connected to Theta Wallet")
        self._set_state(ConnectionState.CONNECTED)
        return True

    async def disconnect(self) -> bool:
        """
        Tear down the channel and forget the wallet's public config.

        A channel shared with other clients on the same context stays open
        until the last of them disconnects. Always succeeds, also when not
        connected.
        """
        channel = self._channel
        if channel is not None:
            self.logger.debug("disconnecting from Theta Wallet")
            self._teardown(channel)
        return True

    def _teardown(self, channel: Channel, err: str = "") -> None:
        self._channel = None
        channel.remove_listener(self.handle_message)
        channel.remove_close_listener(self._on_channel_closed)
        if not channel.has_listeners():
            channel.close()
            self.context.detach_channel(channel)
            self.context.public_config.clear()
            if self.config.fail_pending_on_disconnect:
                failed = self.context.pending.fail_all(Disconnected())
                if failed:
                    self.logger.info(f"failed {failed} pending requests on disconnect")
        self._set_state(ConnectionState.DISCONNECTED, err)

    def _on_channel_closed(self, channel: Channel) -> None:
        if self._channel is channel:
            self._teardown(channel, err="channel closed by wallet")

    def is_connected(self) -> bool:
        """
        Returns True once the channel is up and the wallet pushed its public config.
        """
        return self.state is ConnectionState.CONNECTED and self.context.public_config.is_set()

    async def request_accounts(self) -> "List[str]":
        """
        Ask the wallet for the accounts this requester may use.

        Returns:
            list[str]: Account addresses.
        """
        return await self.call('requestAccounts', [])

    async def send_transaction(self, transaction: "Any") -> "Any":
        """
        Ask the wallet to sign and broadcast a transaction.

        Args:
            transaction: Any object with a ``to_json()`` method, e.g. a
                thetajs style Transaction.

        Raises:
            InvalidArgument: If transaction has no to_json() method. Raised
                before anything is sent.
        """
        to_json = getattr(transaction, 'to_json', None)
        if transaction is None or not callable(to_json):
            raise InvalidArgument("transaction must expose a to_json() method")

        transaction_request = to_json()
        return await self.call('sendTransaction', [{'transactionRequest': transaction_request}])

    def get_chain_id(self) -> "Any":
        """
        Raises:
            NoConfigYet: If the wallet has not pushed its public config yet.
        """
        return self.context.public_config.chain_id()

    def is_unlocked(self) -> "Any":
        """
        Raises:
            NoConfigYet: If the wallet has not pushed its public config yet.
        """
        return self.context.public_config.is_unlocked()

    def public_config(self) -> "Dict[str,Any]|None":
        return self.context.public_config.snapshot()

    def _build_rpc_request(self, method: str, params: "List[Any]", request_id: int) -> "Dict[str,Any]":
        request : "Dict[str,Any]" = {
            'jsonrpc': JSONRPC_VERSION,
            'method': method,
            'params': params,
            'id': request_id,
        }
        requester = self._requester.to_wire() if self._requester is not None else None
        request['metadata'] = {'requester': requester}
        return request

    def _build_default_rpc_callback(self, future: "asyncio.Future[Any]") -> "Callable[..., None]":
        def callback(error: "str|None", result: "Any", error_code: "Any" = None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(RemoteError(error, error_code))
                return
            future.set_result(result)
        return callback

    async def call(self, method: str, params: "Sequence[Any]|None" = None,
                   callback: "Callable[[Optional[str], Any], None]|None" = None) -> "Any":
        """
        Send a JSON-RPC request to the wallet.

        Args:
            method (str): RPC method name.
            params (sequence, optional): Positional parameters.
            callback (callable, optional): Completion invoked as
                ``callback(error_message, result)`` when the reply arrives.
                When given, call() returns None as soon as the request is sent.

        Returns:
            The reply's result field, unless a callback was given.

        Raises:
            NotConnected: If the client is not connected.
            RemoteError: If the wallet replied with an error.
            RequestTimeout: If a RequestTimeout is configured and expired.
        """
        channel = self.channel
        if self.state is not ConnectionState.CONNECTED or channel is None:
            raise NotConnected(f"cannot call {method}: not connected to Theta Wallet")

        request_id = self.context.pending.next_id()
        request = self._build_rpc_request(method, list(params or []), request_id)

        future : "asyncio.Future[Any]|None" = None
        if callback is None:
            future = asyncio.get_running_loop().create_future()
            callback = self._build_default_rpc_callback(future)

        # Registered before sending, the reply may be dispatched before send() returns.
        self.context.pending.register(request_id, callback, method=method, future=future)

        envelope = {
            'target': FORWARDER_TARGET,
            'data': request,
        }
        try:
            await channel.send(envelope)
        except Exception as e:
            self.context.pending.discard(request_id)
            self.logger.error(f"Error sending {method} request: {e}")
            raise
        self.logger.debug(f"sent request:\n{pretty_print_obj(request)}")

        if future is None:
            return None
        if self.config.request_timeout is None:
            return await future
        try:
            return await asyncio.wait_for(future, self.config.request_timeout)
        except asyncio.TimeoutError:
            self.context.pending.discard(request_id)
            raise RequestTimeout(
                f"{method} request {request_id} got no reply within {self.config.request_timeout}s"
            ) from None

    def handle_message(self, message: "Any") -> None:
        """
        Dispatch one inbound envelope from the channel.

        Envelopes without the connect target or without a payload dict are
        ignored, the channel may carry unrelated traffic. Public config
        pushes replace the cached config; replies resolve their pending
        request. Replies with no pending request are dropped.
        """
        if not isinstance(message, dict):
            return
        if message.get('target') != CONNECT_TARGET:
            return
        payload = message.get('data')
        if not isinstance(payload, dict):
            return

        if payload.get('method') == PUBLIC_CONFIG_UPDATE_METHOD:
            self._handle_public_config_update(payload.get('params'))
            return

        request_id = payload.get('id')
        # ids are always ints we issued; True and 1.0 would hash like 1
        if isinstance(request_id, bool) or not isinstance(request_id, int):
            return
        if 'result' not in payload and 'error' not in payload:
            return

        error = payload.get('error')
        error_msg = None
        error_code = None
        if isinstance(error, dict):
            # JSON-RPC errors are objects carrying a message and a code
            error_msg = error.get('message', '')
            error_code = error.get('code')
        elif error is not None:
            error_msg = str(error)

        if not self.context.pending.resolve(request_id, error_msg, payload.get('result'), error_code):
            self.logger.debug(f"dropping reply for unknown request id {request_id!r}")

    def _handle_public_config_update(self, params: "Any") -> None:
        try:
            new_config = params[0]['publicConfig']
            self.context.public_config.replace(new_config)
        except (TypeError, IndexError, KeyError) as e:
            self.logger.debug(f"dropping malformed public config update: {e}")
            return

        public_config = self.context.public_config.snapshot()
        self.logger.debug(f"public config updated:\n{pretty_print_obj(public_config)}")
        self.config.handle_public_config_event(public_config)
