import gzip

import pytest

import savebag
from savebag.compression import compress_payload
from savebag.errors import SaveFormatError
from tests import builders


def test_header_fields(gvas_bytes):
    doc = savebag.decode(gvas_bytes)
    header = doc.header
    assert header["format"] == "gvas"
    assert header["save_game_version"] == 3
    assert header["file_version_ue5"] == 1009
    assert header["engine_version"] == {
        "major": 5, "minor": 2, "patch": 1, "changelist": 123456, "branch": "++UE5+Release-5.2"}
    assert header["custom_versions"] == [{"guid": "03020100-0504-0706-0809-0a0b0c0d0e0f", "version": 7}]
    assert header["save_game_class_name"] == "/Script/Game.SaveGame"
    assert [str(p.name) for p in doc.properties] == ["Level", "PlayerName"]
    assert savebag.encode(doc) == gvas_bytes


def test_trailing_bytes_are_kept():
    data = builders.gvas_file([builders.prop("Level", "IntProperty", builders.i32(7))], trailer=b'\x00\x00\x00\x00')
    doc = savebag.decode(data)
    assert doc.header["trailer"] == "00000000"
    assert savebag.encode(doc) == data


@pytest.mark.parametrize("method", ["zlib", "gzip", "zstd", "lz4"])
def test_whole_file_compression(gvas_bytes, method):
    packed = compress_payload(gvas_bytes, method)
    doc = savebag.decode(packed)
    assert doc.header["compression"]["method"] == method
    assert doc.properties[0].value == 7
    assert savebag.decode(savebag.encode(doc)).properties == doc.properties


def test_zlib_wrapper_is_byte_exact(gvas_bytes):
    packed = compress_payload(gvas_bytes, "zlib", 9)
    assert savebag.encode(savebag.decode(packed)) == packed


def test_gzip_wrapper_is_byte_exact(gvas_bytes):
    packed = gzip.compress(gvas_bytes, compresslevel=9, mtime=0)
    assert savebag.encode(savebag.decode(packed)) == packed


def test_gvas_json_round_trip(gvas_bytes):
    doc = savebag.loads(savebag.dumps(savebag.decode(gvas_bytes)))
    assert savebag.encode(doc) == gvas_bytes


def test_compression_none_rejects_unknown_layout():
    with pytest.raises(SaveFormatError):
        savebag.decode(b'\xff' * 32, compression="none")


def test_unknown_format_cannot_be_encoded():
    with pytest.raises(SaveFormatError):
        savebag.encode(savebag.Document({"format": "xml"}))


def test_load_and_write_savefile(tmp_path, gvas_bytes):
    src = tmp_path / "game.sav"
    src.write_bytes(gvas_bytes)
    doc = savebag.load_savefile(src)
    dest = tmp_path / "copy.sav"
    savebag.write_savefile(dest, doc)
    assert dest.read_bytes() == gvas_bytes
