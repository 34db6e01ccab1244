from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any


CLOSE_MESSAGE = "close"

_CLOSED = object()


class WindowChannel:
    """One side of the cross-window message channel.

    Each channel has a single consumer awaiting ``receive()``. Closing the
    channel is how a window going away is modelled: later sends are dropped
    and a pending ``receive()`` returns ``None``.
    """

    def __init__(self, name: str = "") -> None:
        self.name = str(name or "")
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, message: Any) -> bool:
        if self._closed:
            return False
        self._queue.put_nowait(message)
        return True

    async def receive(self) -> Any:
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)


@dataclass
class RedirectMessage:
    origin: str
    data: Any = field(default_factory=dict)
    source: WindowChannel | None = None

    @property
    def oauth_code(self) -> str:
        if not isinstance(self.data, dict):
            return ""
        return str(self.data.get("oauthCode") or "")

    @property
    def state(self) -> str:
        if not isinstance(self.data, dict):
            return ""
        return str(self.data.get("state") or "")
