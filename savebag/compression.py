import gzip
import logging
import zlib
from typing import *

import lz4.block
import lz4.frame as lz4f
import zstandard as zstd

from .errors import CorruptChunkError

logger = logging.getLogger(__name__)

METHODS = ("none", "zlib", "deflate", "gzip", "lz4", "zstd")

# zlib.compress default first, then the usual alternatives
_LEVEL_CANDIDATES = (6, 9, 1, 2, 3, 4, 5, 7, 8, 0)


class DecompressionError(CorruptChunkError):
    pass


def _zlib(data: bytes) -> bytes:
    return zlib.decompress(data)


def _deflate_raw(data: bytes) -> bytes:
    # Raw deflate (no zlib/gzip headers)
    return zlib.decompress(data, wbits=-15)


def _gzip(data: bytes) -> bytes:
    return gzip.decompress(data)


def _lz4(data: bytes) -> bytes:
    return lz4f.decompress(data)


def _zstd(data: bytes) -> bytes:
    dctx = zstd.ZstdDecompressor()
    return dctx.decompress(data)


_DECOMPRESSORS: Dict[str, Callable[[bytes], bytes]] = {
    "zlib": _zlib,
    "deflate": _deflate_raw,
    "gzip": _gzip,
    "lz4": _lz4,
    "zstd": _zstd,
}

_FAILURES = (zlib.error, OSError, EOFError, RuntimeError, ValueError, zstd.ZstdError)


def _attempt(method: str, data: bytes) -> Optional[bytes]:
    try:
        return _DECOMPRESSORS[method](data)
    except _FAILURES:
        return None


def detect_and_decompress(raw_bytes: bytes, method: str = "auto") -> Tuple[bytes, str]:
    """
    Decompress bytes and report which method worked.

    method options:
    - 'none': return raw_bytes as-is
    - 'zlib': zlib with header
    - 'deflate': raw DEFLATE (no headers)
    - 'gzip': gzip stream
    - 'lz4': LZ4 frame
    - 'zstd': Zstandard
    - 'auto': try common methods heuristically in order
    """
    m = method.lower()
    if m == "none":
        return raw_bytes, m
    if m in _DECOMPRESSORS:
        try:
            return _DECOMPRESSORS[m](raw_bytes), m
        except _FAILURES as e:
            raise DecompressionError(f"{m} failed: {e}") from e
    if m != "auto":
        raise DecompressionError(f"Unknown compression method: {method}")

    # auto heuristic: fast header checks first
    candidates: List[str] = []
    if raw_bytes[:2] == b"\x1f\x8b":
        candidates.append("gzip")
    if raw_bytes[:4] == b"\x28\xb5\x2f\xfd":
        candidates.append("zstd")
    if raw_bytes[:4] == b"\x04\x22\x4d\x18":
        candidates.append("lz4")
    candidates += ["zlib", "deflate", "gzip", "lz4", "zstd"]

    for name in candidates:
        out = _attempt(name, raw_bytes)
        if out is not None:
            logger.debug("payload decompressed with %s (%d -> %d bytes)", name, len(raw_bytes), len(out))
            return out, name

    raise DecompressionError(
        "Could not decompress payload. Try --compression none|zlib|deflate|gzip|lz4|zstd."
    )


def compress_payload(data: bytes, method: str, level: Optional[int] = None) -> bytes:
    m = method.lower()
    if m == "none":
        return data
    if m == "zlib":
        return zlib.compress(data, 6 if level is None else level)
    if m == "deflate":
        co = zlib.compressobj(6 if level is None else level, zlib.DEFLATED, -15)
        return co.compress(data) + co.flush()
    if m == "gzip":
        return gzip.compress(data, compresslevel=9 if level is None else level, mtime=0)
    if m == "lz4":
        return lz4f.compress(data)
    if m == "zstd":
        cctx = zstd.ZstdCompressor(level=3 if level is None else level)
        return cctx.compress(data)
    raise CorruptChunkError(f"Unknown compression method: {method}")


def detect_level(method: str, compressed: bytes, plain: bytes) -> Optional[int]:
    """Find the zlib level that reproduces `compressed` from `plain`, if any."""
    if method not in ("zlib", "deflate"):
        return None
    for level in _LEVEL_CANDIDATES:
        if compress_payload(plain, method, level) == compressed:
            return level
    logger.debug("no %s level reproduces the input stream", method)
    return None


def lz4_block_decompress(data: bytes, uncompressed_size: int) -> bytes:
    try:
        return lz4.block.decompress(data, uncompressed_size=uncompressed_size)
    except lz4.block.LZ4BlockError as e:
        raise DecompressionError(f"lz4 failed: {e}") from e


def lz4_block_compress(data: bytes) -> bytes:
    return lz4.block.compress(data, store_size=False)
