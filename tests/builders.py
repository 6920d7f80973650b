"""Hand-rolled byte builders for test fixtures.

These write the wire format with plain `struct` so the codec is checked
against an independent rendition of the layout.
"""
import gzip
import struct
import zlib

import lz4.block

PACKAGE_TAG = 0x222222229E2A83C1


def u8(v):
    return struct.pack('<B', v)


def u16(v):
    return struct.pack('<H', v)


def u32(v):
    return struct.pack('<I', v)


def i32(v):
    return struct.pack('<i', v)


def u64(v):
    return struct.pack('<Q', v)


def f32(v):
    return struct.pack('<f', v)


def f64(v):
    return struct.pack('<d', v)


def fstring(s):
    if s is None:
        return i32(0)
    try:
        raw = s.encode('ascii') + b'\x00'
        return i32(len(raw)) + raw
    except UnicodeEncodeError:
        raw = s.encode('utf-16-le') + b'\x00\x00'
        return i32(-(len(raw) // 2)) + raw


NONE = fstring("None")


def prop(name, type_name, payload, tag=b'', index=0, guid=None):
    """One tagged property with inline names; size covers `payload`."""
    out = fstring(name) + fstring(type_name) + u32(len(payload)) + u32(index) + tag
    out += u8(0) if guid is None else u8(1) + guid
    return out + payload


def bag(*props):
    return b''.join(props) + NONE


def gvas_file(props, trailer=b''):
    header = (b'GVAS' + i32(3) + i32(522) + i32(1009)
              + u16(5) + u16(2) + u16(1) + u32(123456) + fstring("++UE5+Release-5.2")
              + i32(3) + i32(1) + bytes(range(16)) + i32(7)
              + fstring("/Script/Game.SaveGame"))
    return header + bag(*props) + trailer


def name_ref(index, number=None):
    if number is None:
        return u16(index)
    return u16(index | 0x8000) + u32(number)


NAMES = ["None", "Level", "IntProperty", "Score", "FloatProperty"]


def simple_archive_content(build_number=42, version=9):
    """crc | size | version | build | archive with two objects, the second
    one not loaded, using the NAMES table."""
    class_path = fstring("/Game/Test/BP_Save") + fstring("BP_Save_C")
    props0 = (name_ref(1) + name_ref(2) + u32(4) + u32(0) + u8(0) + i32(7)
              + name_ref(3) + name_ref(4) + u32(4) + u32(0) + u8(0) + f32(1.5)
              + name_ref(0))
    block0 = u32(0) + u32(len(props0) + 4) + props0 + u32(0) + u8(0)
    block1 = u32(1) + u32(0) + u8(0)

    head = u32(0) + u32(0) + u32(version) + u32(build_number) + u32(1000) + u32(1009) + class_path
    fixed = 8 + 4 + 8
    data_start = len(head) + fixed
    index_offset = data_start + len(block0) + len(block1)
    index = u32(2) + u8(1) + u8(0) + fstring("/Game/Test/Other") + name_ref(1) + u32(0)
    names_offset = index_offset + len(index)
    names = u32(len(NAMES)) + b''.join(fstring(n) for n in NAMES)
    return head + u64(names_offset) + u32(5) + u64(index_offset) + block0 + block1 + index + names


def _compress(compressor, custom, piece):
    if compressor == 0:
        compressor = {"zlib": 3, "gzip": 4, "none": 1}[custom.lower()]
    if compressor == 3:
        return zlib.compress(piece)
    if compressor == 4:
        return gzip.compress(piece, compresslevel=9, mtime=0)
    if compressor == 5:
        return lz4.block.compress(piece, store_size=False)
    return piece


def sav_file(content, version=9, chunk_size=0x20000, compressor=3, custom=None):
    """Wrap archive content the way the game writes it: the first payload
    word holds the payload size instead of the version. Compressor 0 takes
    its method from `custom`, written as an FString after the code."""
    payload = bytearray(content[8:])
    struct.pack_into('<I', payload, 0, version)
    content_size = len(payload) + 8
    crc = zlib.crc32(u32(content_size) + bytes(payload))
    struct.pack_into('<I', payload, 0, len(payload) - 4)
    out = u32(crc) + u32(content_size) + u32(version)
    for start in range(0, len(payload), chunk_size):
        piece = bytes(payload[start: start + chunk_size])
        blob = _compress(compressor, custom, piece)
        out += u64(PACKAGE_TAG) + u64(chunk_size) + u8(compressor)
        if compressor == 0:
            out += fstring(custom)
        out += (u64(len(blob)) + u64(len(piece))) * 2 + blob
    return out
