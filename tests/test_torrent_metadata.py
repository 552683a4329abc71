import os
from hashlib import sha1

import pytest

from bento_torrent.bencoding import BencodeDict, BencodeString, bendecode, benencode, encode
from bento_torrent.errors import SchemaError, TruncatedInputError
from bento_torrent.metainfo import IndividualFileInfo, MultiFileInfo, SingleFileInfo, TorrentMetaInfo, \
    compute_info_hash, load_torrent_metadata, split_piece_hashes

PIECES = bytes(range(20))
INFO = b"d6:lengthi100e4:name4:test12:piece lengthi16384e6:pieces20:" + PIECES + b"e"
SINGLE_FILE_TORRENT = b"d8:announce20:http://tracker.test/4:info" + INFO + b"e"


def make_torrent(info=None, **fields):
    data = {"announce": "http://tracker.test/announce",
            "info": {"name": "test", "piece length": 16384, "pieces": PIECES, "length": 100}}
    if info is not None:
        data["info"] = info
    data.update(fields)
    return benencode({key: val for key, val in data.items() if val is not None})


def test_single_file_torrent():
    metadata = TorrentMetaInfo.from_bytes(SINGLE_FILE_TORRENT)
    assert metadata.announce == "http://tracker.test/"
    assert isinstance(metadata.info, SingleFileInfo)
    assert metadata.info.length == 100
    assert metadata.total_length == 100
    assert metadata.info.name == "test"
    assert metadata.info.piece_length == 16384
    assert metadata.piece_hashes == (PIECES,)
    assert metadata.info_hash == sha1(INFO).digest()
    assert metadata.announce_list is None
    assert metadata.get_announce_urls() == ["http://tracker.test/"]


def test_info_hash_uses_original_bytes():
    # keys out of order: the canonical re-encoding differs from what is in the file
    info = b"d4:name4:test6:lengthi100e6:pieces20:" + PIECES + b"12:piece lengthi16384ee"
    data = b"d8:announce20:http://tracker.test/4:info" + info + b"e"
    metadata = TorrentMetaInfo.from_bytes(data)
    assert metadata.info_hash == sha1(info).digest()
    assert metadata.info_hash != sha1(encode(bendecode(data)["info"])).digest()


def test_info_hash_matches_reencoding_for_canonical_input():
    root = bendecode(SINGLE_FILE_TORRENT)
    from_span = compute_info_hash(root["info"], SINGLE_FILE_TORRENT)
    reencoded = encode(root)
    assert reencoded == SINGLE_FILE_TORRENT
    assert from_span == compute_info_hash(bendecode(reencoded)["info"], reencoded)
    # no source buffer: falls back to the canonical encoding
    assert compute_info_hash(root["info"]) == from_span


def test_piece_hashes_split():
    hashes = split_piece_hashes(b"a" * 20 + b"b" * 20)
    assert hashes == (b"a" * 20, b"b" * 20)
    assert split_piece_hashes(b"") == ()
    with pytest.raises(SchemaError) as exc_info:
        split_piece_hashes(b"a" * 41)
    assert exc_info.value.field == "info.pieces"


def test_pieces_not_multiple_of_20():
    info = {"name": "test", "piece length": 16384, "pieces": b"x" * 41, "length": 100}
    with pytest.raises(SchemaError) as exc_info:
        TorrentMetaInfo.from_bytes(make_torrent(info))
    assert exc_info.value.field == "info.pieces"


def test_multi_file_torrent():
    info = {
        "name": "album",
        "piece length": 10,
        "pieces": b"p" * 60,
        "files": [
            {"length": 15, "path": ["cd1", "01.flac"]},
            {"length": 3, "path": ["cover.jpg"], "md5sum": "0" * 32},
            {"length": 7, "path": ["cd2", "01.flac"]},
        ],
        "private": 1,
    }
    metadata = TorrentMetaInfo.from_bytes(make_torrent(info))
    assert isinstance(metadata.info, MultiFileInfo)
    assert metadata.info.private
    assert metadata.total_length == 25
    assert metadata.num_pieces == 3
    assert [file.path for file in metadata.info.get_files()] == [("cd1", "01.flac"), ("cover.jpg",), ("cd2", "01.flac")]
    assert metadata.info.files[1].md5sum == "0" * 32
    assert metadata.piece_size(0) == 10
    assert metadata.piece_size(2) == 5
    assert metadata.piece_size(3) == 0
    assert metadata.file_paths_for_piece(0) == [os.path.join("album", "cd1", "01.flac")]
    assert metadata.file_paths_for_piece(1) == [os.path.join("album", "cd1", "01.flac"),
                                                os.path.join("album", "cover.jpg"),
                                                os.path.join("album", "cd2", "01.flac")]
    assert metadata.file_paths_for_piece(2) == [os.path.join("album", "cd2", "01.flac")]
    assert metadata.file_paths_for_piece(5) == []


def test_last_piece_size_when_length_is_exact():
    info = {"name": "exact", "piece length": 50, "pieces": b"p" * 40, "length": 100}
    metadata = TorrentMetaInfo.from_bytes(make_torrent(info))
    assert metadata.piece_size(1) == 50
    assert metadata.file_paths_for_piece(1) == ["exact"]


def test_optional_fields():
    metadata = TorrentMetaInfo.from_bytes(make_torrent(**{
        "announce-list": [["http://a/announce", "http://b/announce"], ["udp://c:80"]],
        "creation date": 1700000000,
        "comment": "just a nice torrent",
        "created by": "bento",
        "encoding": "UTF-8",
    }))
    assert metadata.announce_list == (("http://a/announce", "http://b/announce"), ("udp://c:80",))
    assert metadata.get_announce_urls() == ["http://a/announce", "http://b/announce", "udp://c:80"]
    assert metadata.creation_date == 1700000000
    assert metadata.comment == "just a nice torrent"
    assert metadata.created_by == "bento"
    assert metadata.encoding == "UTF-8"


@pytest.mark.parametrize("data, field", [
    (make_torrent(announce=None), "announce"),
    (make_torrent(announce=12), "announce"),
    (benencode({"announce": "http://tracker.test/"}), "info"),
    (make_torrent(info=["not", "a", "dict"]), "info"),
    (make_torrent(info={"piece length": 1, "pieces": b"", "length": 1}), "info.name"),
    (make_torrent(info={"name": "x", "pieces": b"", "length": 1}), "info.piece length"),
    (make_torrent(info={"name": "x", "piece length": 0, "pieces": b"", "length": 1}), "info.piece length"),
    (make_torrent(info={"name": "x", "piece length": 1, "length": 1}), "info.pieces"),
    (make_torrent(info={"name": "x", "piece length": 1, "pieces": b""}), "info"),
    (make_torrent(info={"name": "x", "piece length": 1, "pieces": b"", "length": 1,
                        "files": [{"length": 1, "path": ["a"]}]}), "info"),
    (make_torrent(info={"name": "x", "piece length": 1, "pieces": b"", "length": -1}), "info.length"),
    (make_torrent(info={"name": "x", "piece length": 1, "pieces": b"",
                        "files": [{"length": 0, "path": ["a"]}]}), "info.files[0].length"),
    (make_torrent(info={"name": "x", "piece length": 1, "pieces": b"",
                        "files": [{"length": 1, "path": ["a"]}, {"length": 1, "path": []}]}), "info.files[1].path"),
    (make_torrent(info={"name": "x", "piece length": 1, "pieces": b"",
                        "files": [{"length": 1, "path": ["a", 3]}]}), "info.files[0].path[1]"),
    (make_torrent(info={"name": "x", "piece length": 1, "pieces": b"", "files": ["a"]}), "info.files[0]"),
    (make_torrent(info={"name": b"\xff\xfe", "piece length": 1, "pieces": b"", "length": 1}), "info.name"),
    (make_torrent(**{"announce-list": ["http://a/announce"]}), "announce-list[0]"),
    (make_torrent(**{"announce-list": [[1]]}), "announce-list[0][0]"),
    (make_torrent(**{"announce-list": "http://a/announce"}), "announce-list"),
    (make_torrent(**{"creation date": "yesterday"}), "creation date"),
    (make_torrent(comment=5), "comment"),
    (benencode(["not", "a", "dict"]), "torrent"),
])
def test_schema_violations(data, field):
    with pytest.raises(SchemaError) as exc_info:
        TorrentMetaInfo.from_bytes(data)
    assert exc_info.value.field == field


def test_syntax_errors_propagate():
    with pytest.raises(TruncatedInputError):
        TorrentMetaInfo.from_bytes(SINGLE_FILE_TORRENT[:-5])


def test_torrent_file_creation(tmp_path):
    files = [
        IndividualFileInfo(path=("some_files", "a.txt"), length=30000),
        IndividualFileInfo(path=("b.bin",), length=70000),
    ]
    files_raw_data = bytes(i % 251 for i in range(100000))
    piece_length = 3 * (2 ** 14) + 50
    piece_hashes = bytearray()
    for piece_beginning in range(0, len(files_raw_data), piece_length):
        piece_hashes.extend(sha1(files_raw_data[piece_beginning:piece_beginning + piece_length]).digest())
    info = MultiFileInfo(name="some_files", files=tuple(files), piece_length=piece_length, pieces=bytes(piece_hashes))
    meta_info = TorrentMetaInfo.from_info(
        info,
        "udp://someplace:80/announce",
        comment="just a nice torrent"
    )
    torrent_path = tmp_path / "some_files.torrent"
    torrent_path.write_bytes(meta_info.encode())

    loaded = load_torrent_metadata(torrent_path)
    assert loaded == meta_info
    assert loaded.num_pieces == 3
    assert loaded.piece_size(2) == 100000 - 2 * piece_length


def test_single_file_encode_round_trip():
    metadata = TorrentMetaInfo.from_bytes(SINGLE_FILE_TORRENT)
    assert metadata.encode() == SINGLE_FILE_TORRENT
    assert TorrentMetaInfo.from_bytes(metadata.encode()) == metadata


def test_encode_keeps_unknown_info_keys():
    data = make_torrent({"name": "test", "piece length": 16384, "pieces": PIECES, "length": 100,
                         "source": "TRACKERX", "private": 0})
    metadata = TorrentMetaInfo.from_bytes(data)
    assert not metadata.info.private
    assert metadata.encode() == data
    reloaded = TorrentMetaInfo.from_bytes(metadata.encode())
    assert reloaded.info_hash == metadata.info_hash == sha1(bendecode(data)["info"].span.slice(data)).digest()


def test_to_value():
    metadata = TorrentMetaInfo.from_bytes(make_torrent(comment="hello"))
    value = metadata.to_value()
    assert isinstance(value, BencodeDict)
    assert value["info"] == bendecode(make_torrent())["info"]
    assert value["comment"] == BencodeString(b"hello")
    assert compute_info_hash(value["info"]) == metadata.info_hash

    built = TorrentMetaInfo.from_info(metadata.info, metadata.announce)
    assert built.raw_info is None
    assert built.to_value()["info"] == value["info"]
