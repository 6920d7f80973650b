import logging
import struct
import zlib
from typing import *

from .compression import (METHODS, compress_payload, detect_and_decompress, detect_level,
                          lz4_block_compress, lz4_block_decompress)
from .cursor import Reader, Writer
from .errors import CorruptChunkError, TruncatedInputError

logger = logging.getLogger(__name__)

PACKAGE_TAG = 0x222222229E2A83C1
DEFAULT_CHUNK_SIZE = 2 << 16

COMPRESSOR_CODES = {
    0: "custom",
    1: "none",
    2: "oodle",
    3: "zlib",
    4: "gzip",
    5: "lz4",
}
COMPRESSOR_NAMES = {v: k for k, v in COMPRESSOR_CODES.items()}

# crc32, content size, version
SAV_HEADER_SIZE = 12


def is_chunked(data: bytes) -> bool:
    if len(data) < SAV_HEADER_SIZE + 8:
        return False
    return struct.unpack_from('<Q', data, SAV_HEADER_SIZE)[0] == PACKAGE_TAG


def _decompress_chunk(compressor: str, custom: Optional[str], blob: bytes, size: int) -> bytes:
    if compressor == "none":
        return blob
    if compressor == "lz4":
        return lz4_block_decompress(blob, size)
    if compressor == "custom":
        method = (custom or "").lower()
        if method not in METHODS:
            raise CorruptChunkError(f"Unsupported custom compressor: {custom}")
        return detect_and_decompress(blob, method)[0]
    if compressor in ("zlib", "gzip"):
        return detect_and_decompress(blob, compressor)[0]
    raise CorruptChunkError(f"Unsupported compressor: {compressor}")


def _compress_chunk(compressor: str, custom: Optional[str], data: bytes, level: Optional[int]) -> bytes:
    if compressor == "none":
        return data
    if compressor == "lz4":
        return lz4_block_compress(data)
    if compressor == "custom":
        method = (custom or "").lower()
        if method not in METHODS:
            raise CorruptChunkError(f"Unsupported custom compressor: {custom}")
        return compress_payload(data, method, level)
    if compressor in ("zlib", "gzip"):
        return compress_payload(data, compressor, level)
    raise CorruptChunkError(f"Unsupported compressor: {compressor}")


def read_chunks(data: bytes, verify_crc: bool = True) -> Tuple[bytes, Dict[str, Any]]:
    """Reassemble the archive content of a chunked `sav` file.

    Returns `crc32 | content size | payload` with the first payload word
    replaced by the file version, which is the buffer archive offsets are
    relative to, plus the container settings needed to write it back.
    """
    r = Reader(data)
    crc = r.read_u32()
    content_size = r.read_u32()
    version = r.read_u32()

    header: Dict[str, Any] = {"format": "sav", "version": version}
    parts: List[bytes] = []
    try:
        while not r.at_end():
            at = r.position
            tag = r.read_u64()
            if tag != PACKAGE_TAG:
                raise CorruptChunkError(f"Bad package tag 0x{tag:x}", at)
            chunk_size = r.read_u64()
            code = r.read_u8()
            compressor = COMPRESSOR_CODES.get(code)
            if compressor is None:
                raise CorruptChunkError(f"Unknown compressor {code}", at)
            custom = r.read_fstring() if compressor == "custom" else None
            compressed_size, uncompressed_size = r.read_u64(), r.read_u64()
            block = (r.read_u64(), r.read_u64())
            if block != (compressed_size, uncompressed_size):
                raise CorruptChunkError("Chunks with more than one block are not supported", at)
            blob = r.read_bytes(compressed_size)
            plain = _decompress_chunk(compressor, custom, blob, uncompressed_size)
            if len(plain) != uncompressed_size:
                raise CorruptChunkError(
                    f"Chunk inflated to {len(plain)} bytes, header says {uncompressed_size}", at)

            if not parts:
                header["chunk_size"] = chunk_size
                header["compressor"] = compressor
                if custom is not None:
                    header["custom_compressor"] = custom
                header["compression_level"] = detect_level(
                    (custom or "").lower() if compressor == "custom" else compressor, blob, plain)
            elif (chunk_size, compressor) != (header["chunk_size"], header["compressor"]):
                logger.warning("chunk at 0x%x uses different settings than the first chunk", at)
            logger.debug("chunk at 0x%x: %s %d -> %d bytes", at, compressor, compressed_size, uncompressed_size)
            parts.append(plain)
    except TruncatedInputError as e:
        raise CorruptChunkError(f"Chunk runs past end of file: {e.message}", e.offset) from e

    payload = bytearray(b"".join(parts))
    if len(payload) + 8 != content_size:
        raise CorruptChunkError(
            f"Content is {len(payload) + 8} bytes, header says {content_size}")
    if len(payload) < 4:
        raise CorruptChunkError("Content too short to hold a version")

    size_field = struct.unpack_from('<I', payload, 0)[0]
    if size_field != len(payload) - 4:
        logger.warning("unexpected size field %d (expected %d), keeping it", size_field, len(payload) - 4)
        header["size_field"] = size_field
    struct.pack_into('<I', payload, 0, version)

    content = struct.pack('<II', crc, content_size) + bytes(payload)
    if verify_crc and zlib.crc32(content[4:]) != crc:
        raise CorruptChunkError(f"CRC32 mismatch: stored 0x{crc:08x}, computed 0x{zlib.crc32(content[4:]):08x}")

    return content, header


def write_chunks(content: bytes, header: Dict[str, Any]) -> bytes:
    """Inverse of read_chunks. The first 8 bytes of `content` are
    placeholders for the crc32 and size."""
    payload = bytearray(content[8:])
    version = header.get("version", struct.unpack_from('<I', payload, 0)[0])
    struct.pack_into('<I', payload, 0, version)
    content_size = len(payload) + 8
    crc = zlib.crc32(struct.pack('<I', content_size) + bytes(payload))
    struct.pack_into('<I', payload, 0, header.get("size_field", len(payload) - 4))

    compressor = header.get("compressor", "zlib")
    custom = header.get("custom_compressor")
    level = header.get("compression_level")
    chunk_size = header.get("chunk_size", DEFAULT_CHUNK_SIZE)
    if compressor not in COMPRESSOR_NAMES:
        raise CorruptChunkError(f"Unknown compressor: {compressor}")
    if chunk_size <= 0:
        raise CorruptChunkError(f"Invalid chunk size: {chunk_size}")

    w = Writer()
    w.write_u32(crc)
    w.write_u32(content_size)
    w.write_u32(version)
    for start in range(0, len(payload), chunk_size):
        piece = bytes(payload[start: start + chunk_size])
        blob = _compress_chunk(compressor, custom, piece, level)
        w.write_u64(PACKAGE_TAG)
        w.write_u64(chunk_size)
        w.write_u8(COMPRESSOR_NAMES[compressor])
        if compressor == "custom":
            w.write_fstring(custom)
        for _ in range(2):
            w.write_u64(len(blob))
            w.write_u64(len(piece))
        w.write_bytes(blob)
    logger.debug("wrote %d content bytes as %s chunks of %d", content_size, compressor, chunk_size)
    return w.to_bytes()
