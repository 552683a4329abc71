from typing import TypeVar

from bento_torrent.bencoding import BencodeDict, BencodeString, BencodeValue
from bento_torrent.errors import SchemaError

V = TypeVar("V", bound=BencodeValue)


def _field_name(parent: str, key: str) -> str:
    return f"{parent}.{key}" if parent else key


def expect(value: BencodeValue, kind: type[V], name: str) -> V:
    if not isinstance(value, kind):
        raise SchemaError(name, f"expected {kind.type_name}, got {value.type_name}")
    return value


def get_field(data: BencodeDict, key: str, kind: type[V], parent: str = "", required: bool = True) -> V | None:
    """
        Fetch `key` from a decoded dictionary, checking its variant.
        Missing required keys and wrong variants raise SchemaError naming the full field path.
    """
    value = data.get(key)
    if value is None:
        if required:
            raise SchemaError(_field_name(parent, key), "missing required field")
        return None
    return expect(value, kind, _field_name(parent, key))


def decode_text(value: BencodeString, name: str) -> str:
    try:
        return value.value.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SchemaError(name, f"not valid UTF-8 (byte {e.start})") from e


def get_text(data: BencodeDict, key: str, parent: str = "", required: bool = True) -> str | None:
    value = get_field(data, key, BencodeString, parent, required)
    return None if value is None else decode_text(value, _field_name(parent, key))
