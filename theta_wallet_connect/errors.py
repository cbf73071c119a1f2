# SPDX-FileCopyrightText: Copyright (C) 2024 David Stainton
# SPDX-License-Identifier: AGPL-3.0-only

"""Error types raised by the wallet connect client."""

WALLET_CONNECT_SUCCESS = 0
WALLET_CONNECT_ERROR_CONNECTION_FAILED = 1
WALLET_CONNECT_ERROR_NOT_CONNECTED = 2
WALLET_CONNECT_ERROR_INVALID_ARGUMENT = 3
WALLET_CONNECT_ERROR_REMOTE = 4
WALLET_CONNECT_ERROR_NO_CONFIG_YET = 5
WALLET_CONNECT_ERROR_DISCONNECTED = 6
WALLET_CONNECT_ERROR_TIMEOUT = 7


def wallet_connect_error_to_string(error_code: int) -> str:
    """Convert a wallet connect error code to a human-readable string."""
    error_messages = {
        WALLET_CONNECT_SUCCESS: "Success",
        WALLET_CONNECT_ERROR_CONNECTION_FAILED: "Connection failed",
        WALLET_CONNECT_ERROR_NOT_CONNECTED: "Not connected",
        WALLET_CONNECT_ERROR_INVALID_ARGUMENT: "Invalid argument",
        WALLET_CONNECT_ERROR_REMOTE: "Remote error",
        WALLET_CONNECT_ERROR_NO_CONFIG_YET: "No public config received yet",
        WALLET_CONNECT_ERROR_DISCONNECTED: "Disconnected",
        WALLET_CONNECT_ERROR_TIMEOUT: "Timeout",
    }
    return error_messages.get(error_code, f"Unknown wallet connect error code: {error_code}")


class WalletConnectError(Exception):
    """Base class for all wallet connect errors."""

    error_code = WALLET_CONNECT_SUCCESS

    def __init__(self, message: "str|None" = None) -> None:
        if message is None:
            message = wallet_connect_error_to_string(self.error_code)
        super().__init__(message)


class ConnectionFailed(WalletConnectError):
    """Raised by connect() when the channel to the wallet cannot be established."""

    error_code = WALLET_CONNECT_ERROR_CONNECTION_FAILED


class NotConnected(WalletConnectError):
    """Raised when an RPC is attempted without a live channel."""

    error_code = WALLET_CONNECT_ERROR_NOT_CONNECTED


class InvalidArgument(WalletConnectError, ValueError):
    error_code = WALLET_CONNECT_ERROR_INVALID_ARGUMENT


class RemoteError(WalletConnectError):
    """
    Raised when the wallet answers a request with an error object.

    Attributes:
        message (str): The ``message`` field of the remote error.
        code (int, optional): The JSON-RPC ``code`` field, when the wallet sent one.
    """

    error_code = WALLET_CONNECT_ERROR_REMOTE

    def __init__(self, message: str, code: "int|None" = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class NoConfigYet(WalletConnectError):
    """Raised by the public config accessors before the wallet pushed any config."""

    error_code = WALLET_CONNECT_ERROR_NO_CONFIG_YET


class Disconnected(WalletConnectError):
    """Fails pending requests on teardown when FailPendingOnDisconnect is set."""

    error_code = WALLET_CONNECT_ERROR_DISCONNECTED


class RequestTimeout(WalletConnectError):
    error_code = WALLET_CONNECT_ERROR_TIMEOUT
