from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar, NamedTuple

from bento_torrent.errors import BencodeEncodeError, MalformedSyntaxError, TruncatedInputError

MAX_NESTING_DEPTH = 256

DIGITS = b"0123456789"
END = b"e"


class Span(NamedTuple):
    """[start, end[ offsets of a value in the buffer it was decoded from"""
    start: int
    end: int

    def slice(self, data: bytes) -> bytes:
        return bytes(data[self.start: self.end])


@dataclass(frozen=True)
class BencodeValue(ABC):
    type_name: ClassVar[str]
    span: Span | None = field(default=None, compare=False, repr=False, kw_only=True)

    @abstractmethod
    def to_python(self):
        """Plain python equivalent (bytes, int, list or dict)"""


@dataclass(frozen=True)
class BencodeString(BencodeValue):
    type_name = "byte string"
    value: bytes

    def __post_init__(self):
        if not isinstance(self.value, bytes):
            raise TypeError(f"BencodeString holds bytes, not {type(self.value).__name__}")

    def to_python(self) -> bytes:
        return self.value

    def text(self, encoding: str = "utf-8") -> str:
        return self.value.decode(encoding)


@dataclass(frozen=True)
class BencodeInteger(BencodeValue):
    type_name = "integer"
    value: int

    def __post_init__(self):
        if not isinstance(self.value, int):
            raise TypeError(f"BencodeInteger holds int, not {type(self.value).__name__}")

    def to_python(self) -> int:
        return self.value


@dataclass(frozen=True)
class BencodeList(BencodeValue):
    type_name = "list"
    items: tuple[BencodeValue, ...] = ()

    def __post_init__(self):
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))
        for item in self.items:
            if not isinstance(item, BencodeValue):
                raise TypeError(f"list items must be bencode values, not {type(item).__name__}")

    def __iter__(self):
        return iter(self.items)

    def __len__(self):
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]

    def to_python(self) -> list:
        return [item.to_python() for item in self.items]


@dataclass(frozen=True)
class BencodeDict(BencodeValue):
    """Keys are kept in the order they were read, they are only sorted when encoding."""
    type_name = "dictionary"
    items: dict[bytes, BencodeValue] = field(default_factory=dict)

    # dict contents are not hashable
    __hash__ = None

    def __post_init__(self):
        # own copy, later changes to the caller's dict must not leak in
        object.__setattr__(self, "items", dict(self.items))
        for key, value in self.items.items():
            if not isinstance(key, bytes):
                raise TypeError(f"dictionary keys must be bytes, not {type(key).__name__}")
            if not isinstance(value, BencodeValue):
                raise TypeError(f"dictionary values must be bencode values, not {type(value).__name__}")

    def get(self, key: str | bytes, default=None) -> BencodeValue | None:
        return self.items.get(_key_bytes(key), default)

    def __getitem__(self, key: str | bytes) -> BencodeValue:
        return self.items[_key_bytes(key)]

    def __contains__(self, key) -> bool:
        return isinstance(key, (str, bytes)) and _key_bytes(key) in self.items

    def __iter__(self):
        return iter(self.items)

    def __len__(self):
        return len(self.items)

    def to_python(self) -> dict:
        return {key: value.to_python() for key, value in self.items.items()}


def _key_bytes(key) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    if isinstance(key, bytes):
        return key
    raise BencodeEncodeError(f"dictionary keys must be str or bytes, not {type(key).__name__}")


def _as_buffer(data) -> bytes:
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    raise ValueError("data to decode must be bytes")


def decode(data: bytes, offset: int = 0) -> tuple[BencodeValue, int]:
    """
        Decode the value starting at `offset`.
        Returns the value and the offset right after it. Bytes after the value are not looked at.
        Dictionary key order and duplicate keys (the last one wins) are accepted as is, the grammar is enforced
        strictly. Every decoded value remembers the [start, end[ span it occupied in `data`.
    """
    data = _as_buffer(data)
    if not 0 <= offset <= len(data):
        raise ValueError(f"offset {offset} outside of buffer of length {len(data)}")
    return _decode_next(data, offset, 0)


def bendecode(data: bytes) -> BencodeValue:
    """Decode a buffer holding exactly one value."""
    data = _as_buffer(data)
    value, end = _decode_next(data, 0, 0)
    if end != len(data):
        raise MalformedSyntaxError(f"{len(data) - end} trailing bytes after value", end)
    return value


def _decode_next(data: bytes, pos: int, depth: int) -> tuple[BencodeValue, int]:
    if pos >= len(data):
        raise TruncatedInputError("unexpected end of input", pos)
    match data[pos: pos + 1]:
        # int
        case b"i":
            number, end = _read_decimal(data, pos + 1, END, "integer", signed=True)
            return BencodeInteger(number, span=Span(pos, end)), end
        # list
        case b"l":
            return _decode_list(data, pos, depth)
        # dict
        case b"d":
            return _decode_dict(data, pos, depth)
        # str
        case lead if lead.isdigit():
            return _decode_string(data, pos)
        case lead:
            raise MalformedSyntaxError(f"unexpected byte {lead!r}, expected 'i', 'l', 'd' or a digit", pos)


def _read_decimal(data: bytes, pos: int, terminator: bytes, what: str, signed: bool = False) -> tuple[int, int]:
    """Parse `<digits><terminator>` at `pos`, returns the number and the offset after the terminator"""
    end = pos
    if signed and data[end: end + 1] == b"-":
        end += 1
    digits_start = end
    while end < len(data) and data[end] in DIGITS:
        end += 1
    if end == len(data):
        raise TruncatedInputError(f"unexpected end of input in {what}", end)
    if data[end: end + 1] != terminator:
        raise MalformedSyntaxError(f"unexpected byte {data[end: end + 1]!r} in {what}, expected {terminator!r}", end)
    digits = data[digits_start: end]
    if not digits:
        raise MalformedSyntaxError(f"missing digits in {what}", digits_start)
    if len(digits) > 1 and digits.startswith(b"0"):
        raise MalformedSyntaxError(f"leading zero in {what}", digits_start)
    if digits_start != pos and digits == b"0":
        raise MalformedSyntaxError(f"negative zero in {what}", pos)
    try:
        return int(data[pos: end]), end + 1
    except ValueError as e:
        # int() refuses absurdly long digit strings
        raise MalformedSyntaxError(f"{what} too long", pos) from e


def _decode_string(data: bytes, pos: int) -> tuple[BencodeString, int]:
    length, start = _read_decimal(data, pos, b":", "string length")
    end = start + length
    if end > len(data):
        raise TruncatedInputError(
            f"string declares {length} bytes but only {len(data) - start} remain", start)
    return BencodeString(data[start: end], span=Span(pos, end)), end


def _check_depth(depth: int, pos: int):
    if depth >= MAX_NESTING_DEPTH:
        raise MalformedSyntaxError(f"nesting deeper than {MAX_NESTING_DEPTH} levels", pos)


def _decode_list(data: bytes, pos: int, depth: int) -> tuple[BencodeList, int]:
    _check_depth(depth, pos)
    items = []
    cursor = pos + 1
    while data[cursor: cursor + 1] != END:
        item, cursor = _decode_next(data, cursor, depth + 1)
        items.append(item)
    return BencodeList(tuple(items), span=Span(pos, cursor + 1)), cursor + 1


def _decode_dict(data: bytes, pos: int, depth: int) -> tuple[BencodeDict, int]:
    _check_depth(depth, pos)
    items = {}
    cursor = pos + 1
    while data[cursor: cursor + 1] != END:
        lead = data[cursor: cursor + 1]
        if lead and not lead.isdigit():
            raise MalformedSyntaxError(f"dictionary key must be a byte string, found {lead!r}", cursor)
        key, cursor = _decode_string(data, cursor)
        items[key.value], cursor = _decode_next(data, cursor, depth + 1)
    return BencodeDict(items, span=Span(pos, cursor + 1)), cursor + 1


def encode(value: BencodeValue) -> bytes:
    """Canonical serialization of a bencode value."""
    chunks = []
    _encode_into(value, chunks)
    return b"".join(chunks)


def _encode_into(value: BencodeValue, out: list[bytes]):
    match value:
        case BencodeString(value=raw):
            out.append(b"%d:" % len(raw))
            out.append(raw)
        case BencodeInteger(value=number):
            out.append(b"i%de" % number)
        case BencodeList(items=items):
            out.append(b"l")
            for item in items:
                _encode_into(item, out)
            out.append(b"e")
        case BencodeDict(items=items):
            out.append(b"d")
            # bytes compare byte-wise, which is the order bencode requires
            for key in sorted(items):
                out.append(b"%d:" % len(key))
                out.append(key)
                _encode_into(items[key], out)
            out.append(b"e")
        case _:
            raise BencodeEncodeError(f"Unsupported type {type(value)}")


def to_bencode(data) -> BencodeValue:
    """Build a bencode value out of plain python data."""
    match data:
        case BencodeValue():
            return data
        case bytes() | bytearray() | memoryview():
            return BencodeString(bytes(data))
        case str():
            return BencodeString(data.encode("utf-8"))
        case bool():
            return BencodeInteger(1 if data else 0)
        case int():
            return BencodeInteger(data)
        case dict():
            items = {}
            for key, value in data.items():
                raw_key = _key_bytes(key)
                if raw_key in items:
                    raise BencodeEncodeError(f"duplicate dictionary key {raw_key!r}")
                items[raw_key] = to_bencode(value)
            return BencodeDict(items)
    try:
        iterator = iter(data)
    except TypeError:
        raise BencodeEncodeError(f"Unsupported type {type(data)}") from None
    # iterable
    return BencodeList(tuple(map(to_bencode, iterator)))


def benencode(data) -> bytes:
    return encode(to_bencode(data))
