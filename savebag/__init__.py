"""Codec for Unreal Engine property-bag save files.

`decode` turns the bytes of a save file into a `Document` and `encode`
turns it back into bytes identical to the input. Three layouts are
understood, optionally wrapped in a whole-file compression stream:

- ``gvas``: a plain ``GVAS`` SaveGame header followed by a property bag
- ``sav``: chunk-compressed archives with a name table and object list
- ``bag``: a headerless property bag
"""
import logging
from pathlib import Path
from typing import *

from .archive import read_sav_archive, write_sav_archive
from .chunks import is_chunked, read_chunks, write_chunks
from .compression import compress_payload, detect_and_decompress, detect_level
from .document import *
from .errors import *
from .gvas import MAGIC, looks_like_bag, read_bag, read_gvas, write_bag, write_gvas
from .jsonbridge import dumps, from_json, loads, to_json
from .names import NameTable
from .registry import Context

logger = logging.getLogger(__name__)

__version__ = "0.3.0"


def _sav_context() -> Context:
    return Context(NameTable(), object_refs_as_index=True, double_vectors=True)


def _decode_plain(data: bytes, verify_crc: bool) -> Optional[Document]:
    if data[:4] == MAGIC:
        header, properties = read_gvas(data)
        return Document(header, properties)
    if is_chunked(data):
        content, header = read_chunks(data, verify_crc)
        archive, build_number = read_sav_archive(content, _sav_context())
        header["build_number"] = build_number
        logger.info("sav v%d, build %d: %d objects, %d names",
                    header["version"], build_number, len(archive.objects), len(archive.names))
        return Document(header, archive=archive)
    if looks_like_bag(data):
        header, properties = read_bag(data)
        return Document(header, properties)
    return None


def decode(data: bytes, compression: str = "auto", verify_crc: bool = True) -> Document:
    """Decode a save file.

    `compression` names the whole-file wrapper (``auto`` detects it,
    ``none`` disables it). Chunk checksums are checked unless
    `verify_crc` is off.
    """
    if compression in ("auto", "none"):
        doc = _decode_plain(data, verify_crc)
        if doc is not None:
            return doc
        if compression == "none":
            raise SaveFormatError("Unrecognized save file layout", 0)

    plain, method = detect_and_decompress(data, compression)
    doc = _decode_plain(plain, verify_crc)
    if doc is None:
        raise SaveFormatError(f"Unrecognized save file layout after {method} decompression", 0)
    doc.header["compression"] = {"method": method, "level": detect_level(method, data, plain)}
    logger.info("whole file compressed with %s (%d -> %d bytes)", method, len(data), len(plain))
    return doc


def encode(doc: Document) -> bytes:
    """Encode a document back into save file bytes."""
    header = doc.header
    fmt = header.get("format")
    if fmt == "gvas":
        data = write_gvas(header, doc.properties)
    elif fmt == "bag":
        data = write_bag(header, doc.properties)
    elif fmt == "sav":
        if doc.archive is None:
            raise SaveFormatError("sav documents need an archive")
        content = write_sav_archive(doc.archive, _sav_context(), header["version"], header.get("build_number", 0))
        data = write_chunks(content, header)
    else:
        raise SaveFormatError(f"Unknown document format: {fmt!r}")

    wrapper = header.get("compression")
    if wrapper:
        data = compress_payload(data, wrapper["method"], wrapper.get("level"))
    return data


def load_savefile(path: Union[str, Path], compression: str = "auto", verify_crc: bool = True) -> Document:
    return decode(Path(path).read_bytes(), compression, verify_crc)


def write_savefile(path: Union[str, Path], doc: Document) -> None:
    Path(path).write_bytes(encode(doc))
