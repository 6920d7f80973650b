import pytest

from savebag.cursor import ZERO_GUID, Reader, Writer, guid_to_bytes, guid_to_str
from savebag.errors import LengthMismatchError, SaveFormatError, TruncatedInputError
from tests import builders


def test_reads_little_endian_scalars():
    data = builders.u8(0xFF) + builders.i32(-2) + builders.u64(2 ** 40) + builders.f64(0.25)
    r = Reader(data)
    assert r.read_u8() == 0xFF
    assert r.read_i32() == -2
    assert r.read_u64() == 2 ** 40
    assert r.read_f64() == 0.25
    assert r.at_end()


def test_read_past_end_is_truncated():
    r = Reader(b'\x01\x02')
    with pytest.raises(TruncatedInputError) as exc:
        r.read_u32()
    assert exc.value.offset == 0
    # position is unchanged after a failed read
    assert r.position == 0


def test_bounded_reader_raises_length_mismatch():
    r = Reader(b'\x01\x02\x03\x04\x05\x06')
    child = r.bounded(2)
    assert r.position == 2
    with pytest.raises(LengthMismatchError):
        child.read_u32()
    assert child.read_u16() == 0x0201
    assert child.at_end()


def test_bounded_larger_than_buffer_is_truncated():
    with pytest.raises(TruncatedInputError):
        Reader(b'\x00' * 3).bounded(10)


@pytest.mark.parametrize("text", ["Level", "", "Träume", "名前"])
def test_fstring_round_trip(text):
    w = Writer()
    w.write_fstring(text)
    assert Reader(w.to_bytes()).read_fstring() == text


def test_fstring_encodings():
    w = Writer()
    w.write_fstring("abc")
    assert w.to_bytes() == builders.i32(4) + b'abc\x00'

    w = Writer()
    w.write_fstring("é")
    assert w.to_bytes() == builders.i32(-2) + 'é'.encode('utf-16-le') + b'\x00\x00'


def test_null_fstring_differs_from_empty():
    w = Writer()
    w.write_fstring(None)
    w.write_fstring("")
    r = Reader(w.to_bytes())
    assert r.read_fstring() is None
    assert r.read_fstring() == ""


def test_latin1_fstring_is_read():
    data = builders.i32(3) + b'\xe9t\x00'
    assert Reader(data).read_fstring() == "ét"


def test_fstring_without_terminator():
    with pytest.raises(SaveFormatError):
        Reader(builders.i32(3) + b'abc').read_fstring()


def test_guid_layout():
    raw = bytes(range(16))
    text = guid_to_str(raw)
    assert text == "03020100-0504-0706-0809-0a0b0c0d0e0f"
    assert guid_to_bytes(text) == raw
    assert Reader(b'\x00' * 16).read_guid() is None

    w = Writer()
    w.write_guid(None)
    w.write_guid(ZERO_GUID)
    assert w.to_bytes() == b'\x00' * 32


def test_bad_guid_text():
    with pytest.raises(ValueError):
        guid_to_bytes("not-a-guid")
    with pytest.raises(SaveFormatError):
        Writer().write_guid("0000")


def test_writer_out_of_range_value():
    with pytest.raises(SaveFormatError):
        Writer().write_u8(256)


def test_patch_placeholder():
    w = Writer()
    w.write_u32(0)
    w.write_bytes(b'abc')
    w.patch_u32(0, 3)
    assert w.to_bytes() == builders.u32(3) + b'abc'
