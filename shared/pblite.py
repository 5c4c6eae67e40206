"""
pblite: protocol buffers encoded as JSON arrays.

A message is an array where field N lives at position N-1. Absent fields are
null (or simply past the end of the array), nested messages are nested
arrays, and repeated fields are arrays of values. Fields with large numbers
may be moved into a trailing JSON object keyed by the field number as a
string, which is merged back into the positions on decode.

Messages are described declaratively: a subclass of :class:`Message` lists
its fields in ``FIELDS`` and the generic :func:`decode` / :func:`encode`
functions interpret that table. No per-message parsing code exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, TypeVar

from shared.envelope import DecodeError
from shared.log import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound="Message")


@dataclass(frozen=True)
class Field:
    number: int         # 1-based protocol field number
    name: str
    type: Any           # int, str, bool, float, an Enum subclass or a Message subclass
    repeated: bool = False
    required: bool = False


class Message:
    """Base class for pblite messages.

    Every field in ``FIELDS`` becomes an attribute; singular fields default to
    None and repeated fields to an empty list.
    """

    FIELDS: ClassVar[Tuple[Field, ...]] = ()

    def __init__(self, **values: Any) -> None:
        names = {f.name for f in self.FIELDS}
        unknown = set(values) - names
        if unknown:
            raise TypeError(f"{type(self).__name__} has no fields {sorted(unknown)}")
        for f in self.FIELDS:
            default: Any = [] if f.repeated else None
            setattr(self, f.name, values.get(f.name, default))

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return all(getattr(self, f.name) == getattr(other, f.name) for f in self.FIELDS)

    def __repr__(self) -> str:
        present = []
        for f in self.FIELDS:
            value = getattr(self, f.name)
            if value is None or (f.repeated and not value):
                continue
            present.append(f"{f.name}={value!r}")
        return f"{type(self).__name__}({', '.join(present)})"

    def has(self, name: str) -> bool:
        value = getattr(self, name)
        return bool(value) if isinstance(value, list) else value is not None

    def to_dict(self) -> Dict[str, Any]:
        """Nested plain-dict view of the present fields, mainly for logging."""
        result: Dict[str, Any] = {}
        for f in self.FIELDS:
            value = getattr(self, f.name)
            if value is None or (f.repeated and not value):
                continue
            result[f.name] = _plain(value)
        return result


def _plain(value: Any) -> Any:
    if isinstance(value, Message):
        return value.to_dict()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.name
    return value


# ========================================
#           DECODING
# ========================================

def decode(message_cls: Type[M], pblite: Any, ignore_first_item: bool = False) -> M:
    """
    Decode a pblite array into an instance of ``message_cls``.

    Args:
        message_cls: Message subclass describing the expected shape
        pblite: Decoded JSON array
        ignore_first_item: Skip position 0, which then holds a type tag such
            as ``"cbu"`` instead of field 1

    Raises:
        DecodeError: wrong shapes, uncoercible scalars or missing required fields
    """
    return _decode_message(message_cls, pblite, message_cls.__name__, ignore_first_item)


def _decode_message(message_cls: Type[M], pblite: Any, path: str,
                    ignore_first_item: bool = False) -> M:
    if not isinstance(pblite, list):
        raise DecodeError(f"{path}: expected array, got {type(pblite).__name__}")

    items = pblite[1:] if ignore_first_item else pblite
    slots: Dict[int, Any] = {}
    if items and isinstance(items[-1], dict):
        for key, value in items[-1].items():
            try:
                slots[int(key)] = value
            except (TypeError, ValueError):
                raise DecodeError(f"{path}: invalid extension field key {key!r}")
        items = items[:-1]
    for index, value in enumerate(items):
        slots.setdefault(index + 1, value)

    message = message_cls()
    for f in message_cls.FIELDS:
        value = slots.get(f.number)
        field_path = f"{path}.{f.name}"
        if value is None:
            if f.required:
                raise DecodeError(f"{field_path}: required field {f.number} is missing")
            continue
        if f.repeated:
            if not isinstance(value, list):
                raise DecodeError(f"{field_path}: repeated field must be an array")
            decoded = []
            for i, item in enumerate(value):
                if item is None:
                    continue
                element = _decode_value(f.type, item, f"{field_path}[{i}]")
                if element is not None:
                    decoded.append(element)
            setattr(message, f.name, decoded)
        else:
            setattr(message, f.name, _decode_value(f.type, value, field_path))
    return message


def _decode_value(field_type: Any, value: Any, path: str) -> Any:
    if isinstance(field_type, type) and issubclass(field_type, Message):
        return _decode_message(field_type, value, path)
    if isinstance(field_type, type) and issubclass(field_type, Enum):
        number = _coerce_int(value, path)
        try:
            return field_type(number)
        except ValueError:
            logger.warning("%s: unknown %s value %s, leaving unset", path, field_type.__name__, number)
            return None
    if field_type is bool:
        return _coerce_bool(value, path)
    if field_type is int:
        return _coerce_int(value, path)
    if field_type is float:
        return _coerce_float(value, path)
    if field_type is str:
        if not isinstance(value, str):
            raise DecodeError(f"{path}: expected string, got {type(value).__name__}")
        return value
    raise TypeError(f"{path}: unsupported field type {field_type!r}")


def _coerce_int(value: Any, path: str) -> int:
    if isinstance(value, bool):
        raise DecodeError(f"{path}: expected integer, got boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise DecodeError(f"{path}: expected integer, got {value!r}")


def _coerce_float(value: Any, path: str) -> float:
    if isinstance(value, bool):
        raise DecodeError(f"{path}: expected number, got boolean")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise DecodeError(f"{path}: expected number, got {value!r}")


def _coerce_bool(value: Any, path: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise DecodeError(f"{path}: expected boolean, got {value!r}")


# ========================================
#           ENCODING
# ========================================

def encode(message: Message, tag: Optional[str] = None) -> List[Any]:
    """
    Encode a message into a pblite array.

    Args:
        message: Message instance
        tag: Optional type tag placed at position 0 (the counterpart of
            ``ignore_first_item`` when decoding)
    """
    array: List[Any] = []
    for f in message.FIELDS:
        value = getattr(message, f.name)
        if value is None or (f.repeated and not value):
            continue
        if len(array) < f.number:
            array.extend([None] * (f.number - len(array)))
        if f.repeated:
            array[f.number - 1] = [_encode_value(v) for v in value]
        else:
            array[f.number - 1] = _encode_value(value)
    return [tag] + array if tag is not None else array


def _encode_value(value: Any) -> Any:
    if isinstance(value, Message):
        return encode(value)
    if isinstance(value, Enum):
        return value.value
    return value
