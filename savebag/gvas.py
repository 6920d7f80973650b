import logging
from typing import *

from .cursor import Reader, Writer, guid_to_str
from .document import PropertyEntry
from .errors import SaveFormatError
from .names import InlineNames
from .properties import read_properties, write_properties
from .registry import Context

logger = logging.getLogger(__name__)

MAGIC = b'GVAS'  # UE SaveGame header magic

# first UE5 object version with double precision vectors
UE5_LARGE_WORLD_COORDINATES = 1004
# first save game version that stores a UE5 package version
SAVE_GAME_VERSION_UE5 = 3


def _context(header: Dict[str, Any]) -> Context:
    return Context(InlineNames(),
                   double_vectors=header.get("file_version_ue5", 0) >= UE5_LARGE_WORLD_COORDINATES)


def read_gvas_header(reader: Reader) -> Dict[str, Any]:
    at = reader.position
    if reader.read_bytes(4) != MAGIC:
        raise SaveFormatError("Not a GVAS header at given offset", at)

    header: Dict[str, Any] = {"format": "gvas"}
    header["save_game_version"] = reader.read_i32()
    header["file_version_ue4"] = reader.read_i32()
    if header["save_game_version"] >= SAVE_GAME_VERSION_UE5:
        header["file_version_ue5"] = reader.read_i32()

    # engine version: uint16 major/minor/patch, uint32 changelist, branch (FString)
    header["engine_version"] = {
        "major": reader.read_u16(),
        "minor": reader.read_u16(),
        "patch": reader.read_u16(),
        "changelist": reader.read_u32(),
        "branch": reader.read_fstring(),
    }

    header["custom_versions_format"] = reader.read_i32()
    at = reader.position
    count = reader.read_i32()
    if count < 0:
        raise SaveFormatError(f"Negative custom version count {count}", at)
    header["custom_versions"] = [
        {"guid": guid_to_str(reader.read_bytes(16)), "version": reader.read_i32()}
        for _ in range(count)
    ]
    header["save_game_class_name"] = reader.read_fstring()
    logger.debug("GVAS v%d, class %s, %d custom versions",
                 header["save_game_version"], header["save_game_class_name"], count)
    return header


def write_gvas_header(writer: Writer, header: Dict[str, Any]) -> None:
    writer.write_bytes(MAGIC)
    writer.write_i32(header['save_game_version'])
    writer.write_i32(header['file_version_ue4'])
    if header['save_game_version'] >= SAVE_GAME_VERSION_UE5:
        writer.write_i32(header['file_version_ue5'])

    ev = header['engine_version']
    writer.write_u16(ev['major'])
    writer.write_u16(ev['minor'])
    writer.write_u16(ev['patch'])
    writer.write_u32(ev['changelist'])
    writer.write_fstring(ev['branch'])

    # custom versions: fmt, count, (GUID+i32)*count
    writer.write_i32(header['custom_versions_format'])
    writer.write_i32(len(header['custom_versions']))
    for entry in header['custom_versions']:
        writer.write_guid(entry['guid'])
        writer.write_i32(entry['version'])

    writer.write_fstring(header['save_game_class_name'])


def _read_trailer(reader: Reader, header: Dict[str, Any]) -> None:
    if reader.remaining:
        logger.debug("%d byte(s) after the property bag", reader.remaining)
        header["trailer"] = reader.read_bytes(reader.remaining).hex()


def read_gvas(data: bytes) -> Tuple[Dict[str, Any], List[PropertyEntry]]:
    reader = Reader(data)
    header = read_gvas_header(reader)
    # properties follow header until sentinel "None"
    properties = read_properties(reader, _context(header))
    _read_trailer(reader, header)
    return header, properties


def write_gvas(header: Dict[str, Any], properties: List[PropertyEntry]) -> bytes:
    writer = Writer()
    write_gvas_header(writer, header)
    write_properties(writer, _context(header), properties)
    writer.write_bytes(bytes.fromhex(header.get("trailer", "")))
    return writer.to_bytes()


def looks_like_bag(data: bytes) -> bool:
    """A bare property stream starts with a short NUL-terminated name."""
    if len(data) < 5:
        return False
    length = int.from_bytes(data[:4], 'little', signed=True)
    return 0 < length <= 1024 and len(data) >= 4 + length and data[3 + length] == 0


def read_bag(data: bytes) -> Tuple[Dict[str, Any], List[PropertyEntry]]:
    """Headerless property stream with inline names."""
    header: Dict[str, Any] = {"format": "bag"}
    reader = Reader(data)
    properties = read_properties(reader, _context(header))
    _read_trailer(reader, header)
    return header, properties


def write_bag(header: Dict[str, Any], properties: List[PropertyEntry]) -> bytes:
    writer = Writer()
    write_properties(writer, _context(header), properties)
    writer.write_bytes(bytes.fromhex(header.get("trailer", "")))
    return writer.to_bytes()
