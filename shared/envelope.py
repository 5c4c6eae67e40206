from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import json


class HangoutsError(Exception):
    """Base class for every error raised by the protocol layer."""
    pass
class DecodeError(HangoutsError):
    """Raised when a wire payload does not have the expected shape."""
    pass
class UnknownFrameKindError(HangoutsError):
    """Raised when a frame decodes but carries nothing this client understands."""
    pass
class TransportError(HangoutsError):
    """Raised when the channel or a request made over it fails."""
    pass
class UnknownConversationError(HangoutsError):
    """Raised when an event references a conversation that is not in the store."""
    pass


# Payload tag of a (Client)BatchUpdate push
BATCH_UPDATE_TAG = "cbu"

# Service subscription that enables the update stream on a fresh channel
BABEL_SUBSCRIPTION: Dict[str, Any] = {"3": {"1": {"1": "babel"}}}

RawFrame = Union[List[Any], str, bytes]


class FrameKind(str, Enum):
    NOOP = "noop"
    PAYLOAD = "payload"
    UNKNOWN = "unknown"


@dataclass
class Frame:
    """
    One decoded channel message.

    The transport delivers either the heartbeat ``["noop"]`` or a wrapper
    whose first element is ``{"p": "<json>"}``. The inner JSON is a protocol
    buffer encoded with field numbers as mapping keys:

    {
        "3": {"2": "<client_id>"},          handshake
        "2": {"2": "[\"cbu\", ...]"}        pushed payload
    }
    """
    kind: FrameKind
    client_id: Optional[str] = None
    payload: Optional[List[Any]] = None

    @property
    def tag(self) -> Optional[str]:
        """Type discriminator at position 0 of the payload, e.g. ``"cbu"``."""
        if self.payload and isinstance(self.payload[0], str):
            return self.payload[0]
        return None

    @property
    def is_batch_update(self) -> bool:
        return self.tag == BATCH_UPDATE_TAG

    @classmethod
    def noop(cls) -> 'Frame':
        return cls(kind=FrameKind.NOOP)


def _loads(data: Union[str, bytes], what: str) -> Any:
    try:
        if isinstance(data, bytes):
            data = data.decode('utf-8')
        return json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Invalid JSON in {what}: {e}")


def parse_frame(raw: RawFrame) -> Frame:
    """Decode a raw transport frame into a :class:`Frame`.

    Raises DecodeError for anything that is not a noop or a ``{"p": ...}``
    wrapper with a JSON object inside.
    """
    message = _loads(raw, "frame") if isinstance(raw, (str, bytes)) else raw

    if not isinstance(message, list) or not message:
        raise DecodeError(f"Frame must be a non-empty array, got {type(message).__name__}")

    head = message[0]
    if head == "noop":
        return Frame.noop()

    if not isinstance(head, dict) or "p" not in head:
        raise DecodeError("Frame wrapper is missing the 'p' entry")
    if not isinstance(head["p"], str):
        raise DecodeError("Frame 'p' entry must be a JSON string")

    wrapper = _loads(head["p"], "frame wrapper")
    if not isinstance(wrapper, dict):
        raise DecodeError("Frame wrapper must decode to an object")

    frame = Frame(kind=FrameKind.UNKNOWN)

    handshake = wrapper.get("3")
    if handshake is not None:
        if not isinstance(handshake, dict) or not isinstance(handshake.get("2"), str):
            raise DecodeError("Handshake entry must carry a client id string at '2'")
        frame.client_id = handshake["2"]
        frame.kind = FrameKind.PAYLOAD

    pushed = wrapper.get("2")
    if pushed is not None:
        if not isinstance(pushed, dict) or not isinstance(pushed.get("2"), str):
            raise DecodeError("Payload entry must carry a JSON string at '2'")
        payload = _loads(pushed["2"], "payload")
        if not isinstance(payload, list) or not payload:
            raise DecodeError("Payload must decode to a non-empty array")
        frame.payload = payload
        frame.kind = FrameKind.PAYLOAD

    return frame


def require_known(frame: Frame) -> Frame:
    """Return the frame, raising UnknownFrameKindError for UNKNOWN frames."""
    if frame.kind is FrameKind.UNKNOWN:
        raise UnknownFrameKindError("Frame carries neither a client id nor a payload")
    return frame


def subscription_maps() -> List[Dict[str, str]]:
    """Map list for ``Channel.send_maps`` that adds the babel service."""
    return [{"p": json.dumps(BABEL_SUBSCRIPTION, separators=(',', ':'))}]
