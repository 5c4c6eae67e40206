from __future__ import annotations
import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
import websockets

from hangouts.signals import Signal
from shared.envelope import TransportError
from shared.log import get_logger

logger = get_logger(__name__)


class Channel(ABC):
    """
    Long-lived transport connection carrying multiplexed protocol frames.

    Signals:
        on_connect()                      channel is open and listening
        on_disconnect(error)              channel closed; error is None when clean
        on_receive(frame)                 one raw frame (decoded list or JSON text)
    """

    def __init__(self) -> None:
        self.on_connect: Signal = Signal("channel.on_connect")
        self.on_disconnect: Signal = Signal("channel.on_disconnect")
        self.on_receive: Signal = Signal("channel.on_receive")

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    async def connect(self) -> None:
        """Open the channel and start listening. Raises TransportError."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel. Raises TransportError."""

    @abstractmethod
    async def send_maps(self, maps: List[Dict[str, Any]]) -> None:
        """Send a list of key/value maps to the server on this channel."""

    @abstractmethod
    async def base_request(self, url: str, content_type: str, data: bytes) -> bytes:
        """POST ``data`` to ``url`` with the session's credentials; returns the body."""


def encode_maps(maps: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Flatten a map list into the channel's form fields.

    [{"p": "x"}, {"p": "y"}] -> {"count": 2, "ofs": 0, "req0_p": "x", "req1_p": "y"}
    """
    fields: Dict[str, Any] = {"count": len(maps), "ofs": 0}
    for index, map_ in enumerate(maps):
        for key, value in map_.items():
            fields[f"req{index}_{key}"] = value
    return fields


class WebSocketChannel(Channel):
    """
    Channel over a WebSocket relay.

    Each inbound text message is one frame (``["noop"]`` or ``[{"p": ...}]``).
    Outbound maps are sent as the JSON form fields built by :func:`encode_maps`.
    HTTP requests used by the chat API and image upload go through httpx.
    """

    def __init__(self, url: str, *, ping_interval: float = 15, ping_timeout: float = 45,
                 request_timeout: float = 30.0, headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__()
        self.url = url
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.request_timeout = request_timeout
        self.headers = dict(headers or {})
        self.websocket: Optional[websockets.ClientConnection] = None
        self._recv_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self.websocket is not None

    async def connect(self) -> None:
        if self.websocket is not None:
            logger.debug("Channel already connected to %s", self.url)
            return
        try:
            self.websocket = await websockets.connect(
                self.url,
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
                additional_headers=self.headers or None,
            )
        except (OSError, websockets.exceptions.WebSocketException) as e:
            raise TransportError(f"Could not open channel to {self.url}: {e}") from e
        logger.info("Channel connected to %s", self.url)
        self._recv_task = asyncio.create_task(self._recv_loop(self.websocket))
        await self.on_connect.emit()

    async def _recv_loop(self, websocket: websockets.ClientConnection) -> None:
        error: Optional[Exception] = None
        try:
            async for raw in websocket:
                await self.on_receive.emit(raw)
        except websockets.exceptions.ConnectionClosedError as e:
            logger.warning("Channel closed with error: %s", e)
            error = TransportError(f"Channel closed: {e}")
        finally:
            if self.websocket is websocket:
                self.websocket = None
            logger.info("Channel disconnected from %s", self.url)
            await self.on_disconnect.emit(error)

    async def disconnect(self) -> None:
        websocket = self.websocket
        if websocket is None:
            return
        try:
            await websocket.close(code=1000)
        except (OSError, websockets.exceptions.WebSocketException) as e:
            raise TransportError(f"Error closing channel: {e}") from e
        if self._recv_task is not None:
            await self._recv_task
            self._recv_task = None

    async def send_maps(self, maps: List[Dict[str, Any]]) -> None:
        if self.websocket is None:
            raise TransportError("Channel is not connected")
        try:
            await self.websocket.send(json.dumps(encode_maps(maps), separators=(',', ':')))
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportError(f"Channel closed while sending: {e}") from e
        logger.debug("Sent %d maps", len(maps))

    async def base_request(self, url: str, content_type: str, data: bytes) -> bytes:
        headers = dict(self.headers)
        headers["Content-Type"] = content_type
        try:
            async with httpx.AsyncClient(timeout=self.request_timeout) as client:
                response = await client.post(url, content=data, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e
        return response.content
