import ipaddress
import random
import string
import struct
import urllib.parse
from dataclasses import dataclass, field
from typing import NamedTuple

from bento_torrent.bencoding import BencodeDict, BencodeInteger, BencodeList, BencodeString, BencodeValue, bendecode
from bento_torrent.errors import SchemaError
from bento_torrent.utils import expect, get_field, get_text

COMPACT_PEER_LENGTH = 6
PEER_ID_PREFIX = "-BT0001-"
DEFAULT_PORT = 6881
DEFAULT_NUMWANT = 50

# 0: none; 1: completed; 2: started; 3: stopped
EVENTS = {None: 0, "completed": 1, "started": 2, "stopped": 3}


class Peer(NamedTuple):
    ip: str
    port: int

    def __str__(self):
        return f"{self.ip}:{self.port}"


@dataclass(frozen=True, kw_only=True)
class TrackerResponse:
    """number of seconds the client should wait between regular announces"""
    interval: int
    """peers in the order the tracker sent them, duplicates included"""
    peers: tuple[Peer, ...] = ()
    """(optional) clients must not reannounce more frequently than this"""
    min_interval: int | None = None
    """(optional) to be sent back on the next announcements"""
    tracker_id: bytes | None = None
    """(optional) number of seeders"""
    complete: int | None = None
    """(optional) number of leechers"""
    incomplete: int | None = None
    warning_message: str | None = None


@dataclass(frozen=True)
class TrackerFailure:
    """The tracker refused the announce, `reason` is its human readable explanation"""
    reason: str


@dataclass
class TrackerRequestParameters:
    info_hash: bytes = field(repr=False)
    peer_id: str
    port: int = DEFAULT_PORT
    uploaded: int = 0
    downloaded: int = 0
    left: int = 0
    compact: bool = True
    event: str | None = None
    key: int = field(default_factory=lambda: random.randint(0, 2 ** 32 - 1))
    numwant: int = DEFAULT_NUMWANT

    def __post_init__(self):
        if len(self.info_hash) != 20:
            raise ValueError(f"info_hash must be 20 bytes, got {len(self.info_hash)}")
        if len(self.peer_id.encode()) != 20:
            raise ValueError(f"peer_id must be 20 bytes, got {self.peer_id!r}")
        if self.event not in EVENTS:
            raise ValueError(f"Unknown announce event {self.event!r}")

    @classmethod
    def for_torrent(cls, torrent_metainfo, peer_id: str, **kwargs) -> "TrackerRequestParameters":
        kwargs.setdefault("left", torrent_metainfo.total_length)
        return cls(info_hash=torrent_metainfo.info_hash, peer_id=peer_id, **kwargs)

    @property
    def event_numeral(self) -> int:
        return EVENTS[self.event]

    def get_url_query(self) -> str:
        params = {
            "info_hash": self.info_hash,
            "peer_id": self.peer_id,
            "port": self.port,
            "uploaded": self.uploaded,
            "downloaded": self.downloaded,
            "left": self.left,
            "compact": 1 if self.compact else 0,
            "key": self.key,
            "numwant": self.numwant,
        }
        if self.event:
            params["event"] = self.event
        # bytes values are percent-encoded byte by byte
        return urllib.parse.urlencode(params, quote_via=urllib.parse.quote)


def parse_compact_peers(blob: bytes, name: str = "peers") -> tuple[Peer, ...]:
    """Each peer is 4 bytes of IPv4 address followed by a 2 byte port, both big endian"""
    if len(blob) % COMPACT_PEER_LENGTH:
        raise SchemaError(name, f"compact peers length {len(blob)} is not a multiple of {COMPACT_PEER_LENGTH}")
    return tuple(
        Peer(str(ipaddress.IPv4Address(ip)), port)
        for ip, port in struct.iter_unpack("!4sH", blob)
    )


def _parse_peer_dicts(peers: BencodeList) -> tuple[Peer, ...]:
    result = []
    for i, value in enumerate(peers):
        name = f"peers[{i}]"
        entry = expect(value, BencodeDict, name)
        ip = get_text(entry, "ip", name)
        port = get_field(entry, "port", BencodeInteger, name).value
        if not 0 <= port <= 65535:
            raise SchemaError(f"{name}.port", f"{port} is not a valid port")
        result.append(Peer(ip, port))
    return tuple(result)


def _optional_int(data: BencodeDict, key: str) -> int | None:
    value = get_field(data, key, BencodeInteger, required=False)
    return None if value is None else value.value


def parse_tracker_response(data: BencodeValue) -> TrackerResponse | TrackerFailure:
    response = expect(data, BencodeDict, "tracker response")
    failure = get_field(response, "failure reason", BencodeString, required=False)
    if failure is not None:
        return TrackerFailure(failure.value.decode("utf-8", errors="replace"))

    interval = get_field(response, "interval", BencodeInteger).value
    if interval < 0:
        raise SchemaError("interval", f"must not be negative, got {interval}")

    match response.get("peers"):
        case BencodeString(value=blob):
            peers = parse_compact_peers(blob)
        case BencodeList() as peer_dicts:
            peers = _parse_peer_dicts(peer_dicts)
        case None:
            raise SchemaError("peers", "missing required field")
        case other:
            raise SchemaError("peers", f"expected byte string or list, got {other.type_name}")

    tracker_id = get_field(response, "tracker id", BencodeString, required=False)
    return TrackerResponse(
        interval=interval,
        peers=peers,
        min_interval=_optional_int(response, "min interval"),
        tracker_id=tracker_id.value if tracker_id is not None else None,
        complete=_optional_int(response, "complete"),
        incomplete=_optional_int(response, "incomplete"),
        warning_message=get_text(response, "warning message", required=False),
    )


def parse_tracker_response_bytes(data: bytes) -> TrackerResponse | TrackerFailure:
    return parse_tracker_response(bendecode(data))


def generate_peer_id() -> str:
    return PEER_ID_PREFIX + "".join(random.choices(string.digits, k=12))
