import json

import pytest

from hangouts.channel import WebSocketChannel, encode_maps
from shared.envelope import TransportError


class DummyWebSocket:
    def __init__(self, incoming=None) -> None:
        self.incoming = list(incoming or [])
        self.sent_messages: list[str] = []
        self.closed = False

    async def send(self, data: str) -> None:
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.incoming:
            yield message


def test_encode_maps_flattens_fields():
    fields = encode_maps([{"p": "one"}, {"p": "two", "x": 1}])

    assert fields == {"count": 2, "ofs": 0, "req0_p": "one", "req1_p": "two", "req1_x": 1}


@pytest.mark.asyncio
async def test_send_maps_writes_form_fields():
    channel = WebSocketChannel("ws://relay.invalid/channel")
    dummy = DummyWebSocket()
    channel.websocket = dummy

    await channel.send_maps([{"p": '{"3":{"1":{"1":"babel"}}}'}])

    assert json.loads(dummy.sent_messages[0]) == {"count": 1, "ofs": 0, "req0_p": '{"3":{"1":{"1":"babel"}}}'}


@pytest.mark.asyncio
async def test_send_maps_requires_connection():
    channel = WebSocketChannel("ws://relay.invalid/channel")

    with pytest.raises(TransportError):
        await channel.send_maps([])


@pytest.mark.asyncio
async def test_receive_loop_emits_frames_then_disconnect():
    channel = WebSocketChannel("ws://relay.invalid/channel")
    dummy = DummyWebSocket(['["noop"]', '[{"p":"{}"}]'])
    channel.websocket = dummy
    received, disconnects = [], []
    channel.on_receive.subscribe(received.append)
    channel.on_disconnect.subscribe(disconnects.append)

    await channel._recv_loop(dummy)

    assert received == ['["noop"]', '[{"p":"{}"}]']
    assert disconnects == [None]
    assert not channel.is_connected


@pytest.mark.asyncio
async def test_connect_failure_is_transport_error():
    # nothing listens on port 9 of localhost
    channel = WebSocketChannel("ws://127.0.0.1:9/channel")

    with pytest.raises(TransportError):
        await channel.connect()
    assert not channel.is_connected
