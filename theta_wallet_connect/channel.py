# SPDX-FileCopyrightText: Copyright (C) 2024 David Stainton
# SPDX-License-Identifier: AGPL-3.0-only

"""
Message channel to the wallet.

A Channel is a thin wrapper around a stream socket carrying length
prefixed CBOR envelopes in both directions. It knows nothing about RPC:
outbound envelopes are sent as given, inbound envelopes are decoded and
handed to every registered listener.
"""

import asyncio
import logging
import socket
import struct

import cbor2

from .errors import ConnectionFailed, NotConnected

from typing import TYPE_CHECKING
if TYPE_CHECKING:
  from typing import Any, Callable, List, Tuple

# LENGTH_PREFIX_SIZE is the size in bytes of the big endian
# length prefix in front of every CBOR envelope.
LENGTH_PREFIX_SIZE = 4


def server_address(network: str, address: str) -> "Tuple[int, str | Tuple[str,int]]":
    """
    Resolve a configured network and address to a socket family and address.

    Args:
        network (str): "tcp" or "unix" (case insensitive prefix match).
        address (str): host:port for TCP, a path or an @-prefixed abstract
            name for UNIX sockets.

    Returns:
        tuple: (socket family, socket address)

    Raises:
        RuntimeError: If the network type is not recognized.
    """
    network = network.lower()
    if network.startswith("tcp"):
        host, port_str = address.rsplit(":", 1)
        return socket.AF_INET, (host, int(port_str))
    if network.startswith("unix"):
        if address.startswith("@"):
            # Abstract UNIX socket: leading @ means first byte is null
            return socket.AF_UNIX, "\0" + address[1:]
        return socket.AF_UNIX, address
    raise RuntimeError(f"Unknown network type: {network}")


def encode_envelope(envelope: "Any") -> bytes:
    cbor_request = cbor2.dumps(envelope)
    return struct.pack('>I', len(cbor_request)) + cbor_request


class Channel:
    """
    Bidirectional async message channel to the wallet.

    Attributes:
        name (str): Marker name identifying this channel in the WalletContext.
        network (str): Network type ('tcp' or 'unix').
        address (str): Remote endpoint address.
        on_closed (callable, optional): First close listener. Close listeners
            are invoked with the channel once, when the wallet closes the
            stream or the read loop fails. Not invoked for close().
    """

    def __init__(self, name: str, network: str, address: str,
                 on_closed: "Callable[[Channel], None]|None" = None) -> None:
        self.name = name
        self.network = network
        self.address = address
        self._close_listeners : "List[Callable[[Channel], None]]" = []
        if on_closed is not None:
            self._close_listeners.append(on_closed)
        self.socket : "socket.socket|None" = None
        self.task : "asyncio.Task[None]|None" = None
        self._listeners : "List[Callable[[Any], None]]" = []
        self._closed = False
        # Mutex to protect socket send operations from interleaving
        self._send_lock = asyncio.Lock()
        self.logger = logging.getLogger('theta_wallet_connect')

    def is_open(self) -> bool:
        return self.socket is not None and not self._closed

    async def open(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Connect to the wallet and start the background read loop.

        Raises:
            ConnectionFailed: If the wallet endpoint cannot be reached.
        """
        family, addr = server_address(self.network, self.address)
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setblocking(False)
        self.logger.debug(f"connecting to wallet at {self.network}:{self.address}")
        try:
            await loop.sock_connect(sock, addr)
        except OSError as e:
            sock.close()
            raise ConnectionFailed("Failed to connect to Theta Wallet.") from e

        if self._closed:
            # closed while the connect was in flight
            sock.close()
            raise ConnectionFailed("Channel closed while connecting to Theta Wallet.")

        self.socket = sock
        self.logger.debug("starting read loop")
        self.task = loop.create_task(self.worker_loop(loop))

    def add_listener(self, listener: "Callable[[Any], None]") -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: "Callable[[Any], None]") -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def has_listeners(self) -> bool:
        return bool(self._listeners)

    def add_close_listener(self, listener: "Callable[[Channel], None]") -> None:
        if listener not in self._close_listeners:
            self._close_listeners.append(listener)

    def remove_close_listener(self, listener: "Callable[[Channel], None]") -> None:
        if listener in self._close_listeners:
            self._close_listeners.remove(listener)

    async def send(self, envelope: "Any") -> None:
        """
        Send one envelope to the wallet. Fire and forget.

        Raises:
            NotConnected: If the channel is not open.
        """
        if not self.is_open():
            raise NotConnected("channel to Theta Wallet is not open")
        data = encode_envelope(envelope)
        async with self._send_lock:
            loop = asyncio.get_running_loop()
            await loop.sock_sendall(self.socket, data)

    async def _recv_exactly(self, loop: asyncio.AbstractEventLoop, size: int) -> "bytes|None":
        buf = bytearray()
        while len(buf) < size:
            chunk = await loop.sock_recv(self.socket, size - len(buf))
            if not chunk:
                return None
            buf.extend(chunk)
        return bytes(buf)

    async def recv(self, loop: asyncio.AbstractEventLoop) -> "bytes|None":
        """
        Receive one raw CBOR frame.

        Returns:
            bytes: The frame body, or None once the wallet closed the stream.
        """
        length_prefix = await self._recv_exactly(loop, LENGTH_PREFIX_SIZE)
        if length_prefix is None:
            return None
        message_length = struct.unpack('>I', length_prefix)[0]
        return await self._recv_exactly(loop, message_length)

    def dispatch(self, message: "Any") -> None:
        for listener in list(self._listeners):
            listener(message)

    async def worker_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Background task that reads envelopes and dispatches them to listeners.
        """
        self.logger.debug("read loop start")
        try:
            while True:
                raw_data = await self.recv(loop)
                if raw_data is None:
                    self.logger.info("wallet closed the channel")
                    break
                try:
                    message = cbor2.loads(raw_data)
                except cbor2.CBORDecodeError as e:
                    self.logger.debug(f"dropping undecodable frame: {e}")
                    continue
                self.dispatch(message)
        except asyncio.CancelledError:
            return
        except Exception as e:
            self.logger.error(f"Error reading from socket: {e}")
        self._remote_closed()

    def _remote_closed(self) -> None:
        if self._closed:
            return
        self.close()
        for listener in list(self._close_listeners):
            listener(self)

    def close(self) -> None:
        """
        Stop the read loop and close the socket. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        self.logger.debug(f"closing channel {self.name}")
        if self.task is not None and self.task is not asyncio.current_task():
            self.task.cancel()
        if self.socket is not None:
            self.socket.close()
