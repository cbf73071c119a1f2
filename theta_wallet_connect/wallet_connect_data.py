# SPDX-FileCopyrightText: Copyright (C) 2024 David Stainton
# SPDX-License-Identifier: AGPL-3.0-only

import enum
from dataclasses import dataclass

from typing import TYPE_CHECKING
if TYPE_CHECKING:
  from typing import Dict


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class RequesterIdentity:
    """
    Identifies the hosting application to the wallet.

    Captured once per connect() and embedded in the metadata of every
    outbound request so the wallet can attribute it.
    """
    title: str
    icon_url: str
    origin: str

    @classmethod
    def create(cls, title: str, origin: str, icon_url: "str|None" = None) -> "RequesterIdentity":
        if not icon_url:
            icon_url = f"{origin.rstrip('/')}/favicon.ico"
        return cls(title=title, icon_url=icon_url, origin=origin)

    def to_wire(self) -> "Dict[str,str]":
        return {
            "title": self.title,
            "iconUrl": self.icon_url,
            "origin": self.origin,
        }
