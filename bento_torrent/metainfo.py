import itertools
import os.path
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from hashlib import sha1

from bento_torrent.bencoding import BencodeDict, BencodeInteger, BencodeList, BencodeString, BencodeValue, \
    benencode, bendecode, encode, to_bencode
from bento_torrent.errors import SchemaError
from bento_torrent.utils import decode_text, expect, get_field, get_text

PIECE_HASH_LENGTH = 20


@dataclass(frozen=True, kw_only=True)
class IndividualFileInfo:
    """path components, the last one being the file name"""
    path: tuple[str, ...]
    """length of the file in bytes"""
    length: int
    """(optional) a 32-character hexadecimal string corresponding to the MD5 sum of the file. This is not used by
    BitTorrent at all, but it is included by some programs for greater compatibility."""
    md5sum: str | None = None

    @property
    def name(self) -> str:
        return os.path.join(*self.path)


@dataclass(frozen=True, kw_only=True)
class FileInfo(ABC):
    """in single file mode, the file name. In multi file mode, the name of the directory in which to store all the
    files. This is purely advisory."""
    name: str
    """number of bytes in each piece"""
    piece_length: int
    """string consisting of the concatenation of all 20-byte SHA1 hash values, one per piece (byte string,
    i.e. not urlencoded)"""
    pieces: bytes = field(repr=False)
    """(optional) this field is an integer. If it is set to "1", the client MUST publish its presence to get other
    peers ONLY via the trackers explicitly described in the metainfo file. If this field is set to "0" or is not
    present, the client may obtain peer from other means, e.g. PEX peer exchange, dht. Here, "private" may be read as
    "no external peer source"."""
    private: bool = False

    @property
    @abstractmethod
    def total_length(self) -> int:
        pass

    @abstractmethod
    def get_files(self) -> list[IndividualFileInfo]:
        pass

    def to_dict(self):
        info = {
            "name": self.name,
            "piece length": self.piece_length,
            "pieces": self.pieces,
        }
        if self.private:
            info["private"] = 1
        return info


@dataclass(frozen=True, kw_only=True)
class SingleFileInfo(FileInfo):
    length: int
    md5sum: str | None = None

    @property
    def total_length(self) -> int:
        return self.length

    def get_files(self) -> list[IndividualFileInfo]:
        return [IndividualFileInfo(path=(self.name,), length=self.length, md5sum=self.md5sum)]

    def to_dict(self):
        info = super().to_dict()
        info["length"] = self.length
        if self.md5sum is not None:
            info["md5sum"] = self.md5sum
        return info


@dataclass(frozen=True, kw_only=True)
class MultiFileInfo(FileInfo):
    """a list of dictionaries, one for each file"""
    files: tuple[IndividualFileInfo, ...]

    @property
    def total_length(self) -> int:
        return sum(file.length for file in self.files)

    def get_files(self) -> list[IndividualFileInfo]:
        return list(self.files)

    def to_dict(self):
        info = super().to_dict()
        info["files"] = [
            {"path": list(file.path), "length": file.length} | ({"md5sum": file.md5sum} if file.md5sum is not None else {})
            for file in self.files
        ]
        return info


@dataclass(frozen=True, kw_only=True)
class TorrentMetaInfo:
    """Data extracted from a .torrent file"""
    """The announce URL of the tracker"""
    announce: str
    """a dictionary that describes the file(s) of the torrent. There are two possible forms: one for the case of a
    'single-file' torrent with no directory structure, and one for the case of a 'multi-file' torrent"""
    info: FileInfo
    """sha1 hash of the bencoded info dictionary, exactly as it appeared in the file"""
    info_hash: bytes
    """the 20 byte sha1 of each piece, in piece order"""
    piece_hashes: tuple[bytes, ...] = field(repr=False)
    """(optional) this is an extention to the official specification, offering
    backwards-compatibility. (list of lists of strings)."""
    announce_list: tuple[tuple[str, ...], ...] | None = None
    """(optional) the creation time of the torrent, in standard UNIX epoch format (integer, seconds since 1-Jan-1970
    00:00:00 UTC)"""
    creation_date: int | None = None
    """(optional) free-form textual comments of the author"""
    comment: str | None = None
    """(optional) name and version of the program used to create the .torrent"""
    created_by: str | None = None
    """(optional) the string encoding format used to generate the pieces part of the info dictionary in the .torrent
    metafile"""
    encoding: str | None = None
    """the info dictionary as decoded, unknown keys included. Written back as is by to_value so the info hash
    survives re-encoding. None for torrents built with from_info"""
    raw_info: BencodeDict | None = field(default=None, compare=False, repr=False)

    @property
    def total_length(self) -> int:
        return self.info.total_length

    @property
    def num_pieces(self) -> int:
        return len(self.piece_hashes)

    def piece_size(self, index: int) -> int:
        """Size of piece `index`. Every piece is piece_length long except the last one"""
        if not 0 <= index < self.num_pieces:
            return 0
        if index < self.num_pieces - 1:
            return self.info.piece_length
        last_piece_size = self.total_length - (self.num_pieces - 1) * self.info.piece_length
        return last_piece_size if last_piece_size > 0 else self.info.piece_length

    def file_paths_for_piece(self, index: int) -> list[str]:
        """Paths (relative to the download folder) of the files holding data of piece `index`"""
        if not 0 <= index < self.num_pieces:
            return []
        if isinstance(self.info, SingleFileInfo):
            return [self.info.name]
        piece_start = index * self.info.piece_length
        piece_end = piece_start + self.piece_size(index)
        paths = []
        file_start = 0
        for file in self.info.get_files():
            file_end = file_start + file.length
            if file_end > piece_start and file_start < piece_end:
                paths.append(os.path.join(self.info.name, *file.path))
            file_start = file_end
        return paths

    def get_announce_urls(self) -> list[str]:
        if self.announce_list:
            return list(itertools.chain(*self.announce_list))
        return [self.announce]

    @classmethod
    def from_value(cls, data: BencodeValue, source: bytes | None = None) -> "TorrentMetaInfo":
        """
            Build the metainfo out of a decoded torrent.
            `source` is the buffer `data` was decoded from, the info hash is computed over its bytes.
        """
        root = expect(data, BencodeDict, "torrent")
        announce = get_text(root, "announce")
        info_value = get_field(root, "info", BencodeDict)
        info = _parse_info(info_value)
        return cls(
            announce=announce,
            info=info,
            info_hash=compute_info_hash(info_value, source),
            piece_hashes=split_piece_hashes(info.pieces),
            announce_list=_parse_announce_list(root.get("announce-list")),
            creation_date=_optional_int(root, "creation date"),
            comment=get_text(root, "comment", required=False),
            created_by=get_text(root, "created by", required=False),
            encoding=get_text(root, "encoding", required=False),
            raw_info=info_value,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "TorrentMetaInfo":
        return cls.from_value(bendecode(data), data)

    @classmethod
    def from_info(cls, info: FileInfo, announce: str, **kwargs) -> "TorrentMetaInfo":
        """New torrent for `info`, hashed over the canonical encoding of the info dictionary"""
        return cls(
            announce=announce,
            info=info,
            info_hash=sha1(benencode(info.to_dict())).digest(),
            piece_hashes=split_piece_hashes(info.pieces),
            **kwargs
        )

    def to_dict(self):
        data = {
            "announce": self.announce,
            "info": self.info.to_dict(),
            "announce-list": [list(tier) for tier in self.announce_list] if self.announce_list is not None else None,
            "creation date": self.creation_date,
            "comment": self.comment,
            "created by": self.created_by,
            "encoding": self.encoding,
        }
        return {key: val for key, val in data.items() if val is not None}

    def to_value(self) -> BencodeDict:
        """Bencode value of the whole torrent. A decoded info dictionary is kept verbatim, extra keys included"""
        data = self.to_dict()
        if self.raw_info is not None:
            data["info"] = self.raw_info
        return to_bencode(data)

    def encode(self) -> bytes:
        return encode(self.to_value())


def compute_info_hash(info_value: BencodeDict, source: bytes | None = None) -> bytes:
    """
        SHA1 of the info dictionary. Hashes the original bytes when the value was decoded from `source`,
        otherwise falls back to its canonical encoding.
    """
    if source is not None and info_value.span is not None:
        return sha1(info_value.span.slice(source)).digest()
    return sha1(encode(info_value)).digest()


def split_piece_hashes(pieces: bytes) -> tuple[bytes, ...]:
    if len(pieces) % PIECE_HASH_LENGTH:
        raise SchemaError("info.pieces", f"length {len(pieces)} is not a multiple of {PIECE_HASH_LENGTH}")
    return tuple(pieces[i: i + PIECE_HASH_LENGTH] for i in range(0, len(pieces), PIECE_HASH_LENGTH))


def _optional_int(data: BencodeDict, key: str, parent: str = "") -> int | None:
    value = get_field(data, key, BencodeInteger, parent, required=False)
    return None if value is None else value.value


def _parse_announce_list(value: BencodeValue | None) -> tuple[tuple[str, ...], ...] | None:
    if value is None:
        return None
    tiers = expect(value, BencodeList, "announce-list")
    return tuple(
        tuple(
            decode_text(expect(url, BencodeString, f"announce-list[{i}][{j}]"), f"announce-list[{i}][{j}]")
            for j, url in enumerate(expect(tier, BencodeList, f"announce-list[{i}]"))
        )
        for i, tier in enumerate(tiers)
    )


def _parse_file(value: BencodeValue, name: str) -> IndividualFileInfo:
    entry = expect(value, BencodeDict, name)
    length = get_field(entry, "length", BencodeInteger, name).value
    if length <= 0:
        raise SchemaError(f"{name}.length", f"must be positive, got {length}")
    path = get_field(entry, "path", BencodeList, name)
    if not len(path):
        raise SchemaError(f"{name}.path", "must have at least one component")
    return IndividualFileInfo(
        path=tuple(
            decode_text(expect(component, BencodeString, f"{name}.path[{i}]"), f"{name}.path[{i}]")
            for i, component in enumerate(path)
        ),
        length=length,
        md5sum=get_text(entry, "md5sum", name, required=False)
    )


def _parse_info(info: BencodeDict) -> FileInfo:
    common = dict(
        name=get_text(info, "name", "info"),
        piece_length=get_field(info, "piece length", BencodeInteger, "info").value,
        pieces=get_field(info, "pieces", BencodeString, "info").value,
        private=_optional_int(info, "private", "info") == 1,
    )
    if common["piece_length"] <= 0:
        raise SchemaError("info.piece length", f"must be positive, got {common['piece_length']}")

    length = _optional_int(info, "length", "info")
    files = get_field(info, "files", BencodeList, "info", required=False)
    if length is not None and files is not None:
        raise SchemaError("info", "both 'length' (single file) and 'files' (multi file) are present")
    if files is not None:
        return MultiFileInfo(
            files=tuple(_parse_file(file, f"info.files[{i}]") for i, file in enumerate(files)),
            **common
        )
    if length is None:
        raise SchemaError("info", "one of 'length' (single file) or 'files' (multi file) is required")
    if length < 0:
        raise SchemaError("info.length", f"must not be negative, got {length}")
    return SingleFileInfo(length=length, md5sum=get_text(info, "md5sum", "info", required=False), **common)


def load_torrent_metadata(torrent_path):
    with open(torrent_path, "rb") as f:
        return TorrentMetaInfo.from_bytes(f.read())
