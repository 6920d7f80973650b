"""Object archive used by chunked `sav` files.

Layout: optional package version, optional class path, name table offset,
version, object index offset, then one data block per object, the object
index and finally the name table. Offsets are relative to the start of the
buffer holding the archive.
"""
import logging
from typing import *

from .cursor import Reader, Writer
from .document import (Actor, Archive, Component, DynamicActor, PersistenceContainer, Transform, UObject,
                       Variable)
from .errors import SaveFormatError, TruncatedInputError
from .names import NameTable
from .properties import check_consumed, read_properties, write_properties
from .registry import Context, NativeStruct, register_struct

logger = logging.getLogger(__name__)

PROFILE_CLASS_PATH = "/Game/_Core/Blueprints/Base/BP_RemnantSaveGameProfile"
WORLD_CLASS_PATH = "/Game/_Core/Blueprints/Base/BP_RemnantSaveGame"

VARIABLE_COMPONENTS = frozenset((
    "GlobalVariables",
    "Variables",
    "Variable",
    "PersistenceKeys",
    "PersistanceKeys1",
    "PersistenceKeys1",
))

VAR_NONE = 0
VAR_BOOL = 1
VAR_INT = 2
VAR_FLOAT = 3
VAR_NAME = 4


def _read_variable(reader: Reader, ctx: Context) -> Variable:
    name = ctx.names.read(reader)
    at = reader.position
    var_type = reader.read_u8()
    if var_type == VAR_NONE:
        value = None
    elif var_type == VAR_BOOL:
        raw = reader.read_u32()
        # anything but 0 or 1 is kept as the stored word
        value = bool(raw) if raw <= 1 else raw
    elif var_type == VAR_INT:
        value = reader.read_i32()
    elif var_type == VAR_FLOAT:
        value = reader.read_f32()
    elif var_type == VAR_NAME:
        value = ctx.names.read(reader)
    else:
        raise SaveFormatError(f"Unknown variable type {var_type}", at)
    return Variable(name, var_type, value)


def _write_variable(writer: Writer, ctx: Context, var: Variable) -> None:
    ctx.names.write(writer, var.name)
    writer.write_u8(var.var_type)
    if var.var_type == VAR_BOOL:
        writer.write_u32(int(var.value or 0))
    elif var.var_type == VAR_INT:
        writer.write_i32(var.value)
    elif var.var_type == VAR_FLOAT:
        writer.write_f32(var.value)
    elif var.var_type == VAR_NAME:
        ctx.names.write(writer, var.value)
    elif var.var_type != VAR_NONE:
        raise SaveFormatError(f"Unknown variable type {var.var_type}", writer.position)


def _read_component(reader: Reader, ctx: Context) -> Component:
    key = reader.read_fstring()
    block = reader.bounded(reader.read_u32())
    try:
        if key in VARIABLE_COMPONENTS:
            component = Component(key, variables_name=ctx.names.read(block), reserved=block.read_u64())
            count = block.read_u32()
            component.variables = [_read_variable(block, ctx) for _ in range(count)]
            check_consumed(block, f"{key} component")
        else:
            properties = read_properties(block, ctx)
            component = Component(key, properties=properties, trailer=block.read_bytes(block.remaining))
    except SaveFormatError as e:
        e.add_path(f"<{key}>")
        raise
    return component


def _write_component(writer: Writer, ctx: Context, component: Component) -> None:
    writer.write_fstring(component.key)
    size_at = writer.position
    writer.write_u32(0)  # patched below
    start = writer.position
    try:
        if component.variables is not None:
            ctx.names.write(writer, component.variables_name)
            writer.write_u64(component.reserved)
            writer.write_u32(len(component.variables))
            for var in component.variables:
                _write_variable(writer, ctx, var)
        else:
            write_properties(writer, ctx, component.properties or [])
            writer.write_bytes(component.trailer)
    except SaveFormatError as e:
        e.add_path(f"<{component.key}>")
        raise
    writer.patch_u32(size_at, writer.position - start)


def _read_object_entry(reader: Reader, ctx: Context, object_id: int,
                       class_path: Optional[Tuple[Optional[str], Optional[str]]]) -> UObject:
    was_loaded = reader.read_u8() != 0
    if was_loaded and object_id == 0 and class_path is not None:
        path = class_path[0]
    else:
        path = reader.read_fstring()
    obj = UObject(was_loaded, path)
    if not was_loaded:
        obj.loaded_name = ctx.names.read(reader)
        obj.outer_id = reader.read_u32()
    return obj


def _write_object_entry(writer: Writer, ctx: Context, object_id: int, obj: UObject,
                        class_path: Optional[Tuple[Optional[str], Optional[str]]]) -> None:
    writer.write_u8(1 if obj.was_loaded else 0)
    if not (obj.was_loaded and object_id == 0 and class_path is not None):
        writer.write_fstring(obj.object_path)
    if not obj.was_loaded:
        if obj.loaded_name is None or obj.outer_id is None:
            raise SaveFormatError(f"Object {object_id} is not loaded but has no name and outer id")
        ctx.names.write(writer, obj.loaded_name)
        writer.write_u32(obj.outer_id)


def read_archive(reader: Reader, ctx: Context, has_package_version: bool, has_class_path: bool) -> Archive:
    data = reader.data
    package_version = (reader.read_u32(), reader.read_u32()) if has_package_version else None
    class_path = (reader.read_fstring(), reader.read_fstring()) if has_class_path else None
    name_table_offset = reader.read_u64()
    version = reader.read_u32()
    object_index_offset = reader.read_u64()

    if name_table_offset > reader.end or object_index_offset > reader.end:
        raise TruncatedInputError(
            f"Archive offsets 0x{name_table_offset:x}/0x{object_index_offset:x} outside buffer", reader.position)
    table_reader = Reader(data, name_table_offset, reader.end)
    names = NameTable.from_reader(table_reader)
    if not table_reader.at_end():
        logger.warning("%d byte(s) after the name table", table_reader.remaining)
    ctx = ctx.nested(names, class_path[0] if class_path else None)

    index_reader = Reader(data, object_index_offset, reader.end)
    count = index_reader.read_u32()
    objects = [_read_object_entry(index_reader, ctx, i, class_path) for i in range(count)]
    if index_reader.position != name_table_offset:
        logger.warning("object index ends at 0x%x, name table starts at 0x%x",
                       index_reader.position, name_table_offset)
    logger.debug("archive v%d: %d objects, %d names", version, count, len(names))

    order = []
    seen = set()
    for _ in range(count):
        at = reader.position
        object_id = reader.read_u32()
        if object_id >= count or object_id in seen:
            raise SaveFormatError(f"Bad object id {object_id} in data block", at)
        order.append(object_id)
        seen.add(object_id)
        obj = objects[object_id]
        block = reader.bounded(reader.read_u32())
        try:
            if block.remaining:
                obj.properties = read_properties(block, ctx)
                obj.trailer = block.read_bytes(block.remaining)
            if reader.read_u8():
                obj.components = [_read_component(reader, ctx) for _ in range(reader.read_u32())]
        except SaveFormatError as e:
            e.add_path(f"<object {object_id}>")
            raise
    if reader.position != object_index_offset:
        logger.warning("object data ends at 0x%x, object index starts at 0x%x",
                       reader.position, object_index_offset)

    return Archive(names=list(names.names), objects=objects, version=version,
                   package_version=package_version, class_path=class_path,
                   data_order=None if order == list(range(count)) else order)


def write_archive(writer: Writer, ctx: Context, archive: Archive) -> None:
    if archive.package_version is not None:
        writer.write_u32(archive.package_version[0])
        writer.write_u32(archive.package_version[1])
    if archive.class_path is not None:
        writer.write_fstring(archive.class_path[0])
        writer.write_fstring(archive.class_path[1])
    name_table_at = writer.position
    writer.write_u64(0)  # patched below
    writer.write_u32(archive.version)
    object_index_at = writer.position
    writer.write_u64(0)  # patched below

    names = NameTable(archive.names)
    ctx = ctx.nested(names, archive.class_path[0] if archive.class_path else None)
    order = archive.data_order if archive.data_order is not None else range(len(archive.objects))
    if sorted(order) != list(range(len(archive.objects))):
        raise SaveFormatError("Archive data order is not a permutation of the object ids")

    for object_id in order:
        obj = archive.objects[object_id]
        writer.write_u32(object_id)
        size_at = writer.position
        writer.write_u32(0)  # patched below
        start = writer.position
        try:
            if obj.properties is not None:
                write_properties(writer, ctx, obj.properties)
                writer.write_bytes(obj.trailer)
            writer.patch_u32(size_at, writer.position - start)
            if obj.components is None:
                writer.write_u8(0)
            else:
                writer.write_u8(1)
                writer.write_u32(len(obj.components))
                for component in obj.components:
                    _write_component(writer, ctx, component)
        except SaveFormatError as e:
            e.add_path(f"<object {object_id}>")
            raise

    writer.patch_u64(object_index_at, writer.position)
    writer.write_u32(len(archive.objects))
    for object_id, obj in enumerate(archive.objects):
        _write_object_entry(writer, ctx, object_id, obj, archive.class_path)

    writer.patch_u64(name_table_at, writer.position)
    names.to_writer(writer)
    if len(names) > len(archive.names):
        logger.debug("name table grew from %d to %d entries", len(archive.names), len(names))


def read_sav_archive(content: bytes, ctx: Context) -> Tuple[Archive, int]:
    """Read the top-level archive of a `sav` file; returns it with the
    build number from its header."""
    reader = Reader(content)
    reader.read_u32()  # crc32
    reader.read_u32()  # content size
    reader.read_u32()  # save game file version
    build_number = reader.read_u32()
    return read_archive(reader, ctx, True, True), build_number


def write_sav_archive(archive: Archive, ctx: Context, version: int, build_number: int) -> bytes:
    writer = Writer()
    writer.write_u32(0)  # crc32, set by the chunk writer
    writer.write_u32(0)  # content size, set by the chunk writer
    writer.write_u32(version)
    writer.write_u32(build_number)
    write_archive(writer, ctx, archive)
    return writer.to_bytes()


def _read_transform(reader: Reader) -> Transform:
    rotation = tuple(reader.read_f64() for _ in range(4))
    position = tuple(reader.read_f64() for _ in range(3))
    scale = tuple(reader.read_f64() for _ in range(3))
    return Transform(rotation, position, scale)


def _write_transform(writer: Writer, transform: Transform) -> None:
    for part in (transform.rotation, transform.position, transform.scale):
        for v in part:
            writer.write_f64(v)


def _slice(data: bytes, offset: int, size: int) -> bytes:
    if offset + size > len(data):
        raise TruncatedInputError(f"Block 0x{offset:x}+{size} outside blob of {len(data)} bytes", offset)
    return data[offset: offset + size]


def read_container(data: bytes, ctx: Context) -> PersistenceContainer:
    """World persistence: actors with their own archives, destroyed actor
    ids and dynamically spawned actors."""
    reader = Reader(data)
    version = reader.read_u32()
    index_offset = reader.read_u32()
    dynamic_offset = reader.read_u32()

    index = Reader(data, index_offset)
    infos = [(index.read_u64(), index.read_u32(), index.read_u32()) for _ in range(index.read_u32())]
    destroyed = [index.read_u64() for _ in range(index.read_u32())]

    container = PersistenceContainer(version, destroyed=destroyed)
    expected = reader.position
    for unique_id, offset, size in infos:
        if offset != expected:
            logger.warning("actor %d stored at 0x%x, not contiguous", unique_id, offset)
        expected = offset + size
        actor_reader = Reader(_slice(data, offset, size))
        try:
            transform = _read_transform(actor_reader) if actor_reader.read_u32() else None
            archive = read_archive(actor_reader, ctx, False, False)
        except SaveFormatError as e:
            e.add_path(f"<actor {unique_id}>")
            raise
        container.actors.append(Actor(unique_id, transform, archive))
    if expected != index_offset:
        logger.warning("actor index at 0x%x, expected 0x%x", index_offset, expected)
    if index.position != dynamic_offset:
        logger.warning("dynamic actors at 0x%x, expected 0x%x", dynamic_offset, index.position)

    dynamic = Reader(data, dynamic_offset)
    for _ in range(dynamic.read_u32()):
        unique_id = dynamic.read_u64()
        transform = _read_transform(dynamic)
        container.dynamic.append(DynamicActor(unique_id, transform, (dynamic.read_fstring(), dynamic.read_fstring())))
    logger.debug("container v%d: %d actors, %d destroyed, %d dynamic",
                 version, len(container.actors), len(destroyed), len(container.dynamic))
    return container


def write_container(ctx: Context, container: PersistenceContainer) -> bytes:
    writer = Writer()
    writer.write_u32(container.version)
    index_at = writer.position
    writer.write_u32(0)  # patched below
    dynamic_at = writer.position
    writer.write_u32(0)  # patched below

    infos = []
    for actor in container.actors:
        actor_writer = Writer()
        if actor.transform is None:
            actor_writer.write_u32(0)
        else:
            actor_writer.write_u32(1)
            _write_transform(actor_writer, actor.transform)
        try:
            write_archive(actor_writer, ctx, actor.archive)
        except SaveFormatError as e:
            e.add_path(f"<actor {actor.unique_id}>")
            raise
        blob = actor_writer.to_bytes()
        infos.append((actor.unique_id, writer.position, len(blob)))
        writer.write_bytes(blob)

    writer.patch_u32(index_at, writer.position)
    writer.write_u32(len(infos))
    for unique_id, offset, size in infos:
        writer.write_u64(unique_id)
        writer.write_u32(offset)
        writer.write_u32(size)
    writer.write_u32(len(container.destroyed))
    for unique_id in container.destroyed:
        writer.write_u64(unique_id)

    writer.patch_u32(dynamic_at, writer.position)
    writer.write_u32(len(container.dynamic))
    for actor in container.dynamic:
        writer.write_u64(actor.unique_id)
        _write_transform(writer, actor.transform)
        writer.write_fstring(actor.class_path[0])
        writer.write_fstring(actor.class_path[1])
    return writer.to_bytes()


class PersistenceBlob(NativeStruct):
    """Size-prefixed nested save data. Profile saves nest a whole archive,
    world saves a persistence container; anything else stays raw."""

    def read(self, reader: Reader, ctx: Context, size: Optional[int]) -> Union[Archive, PersistenceContainer, bytes]:
        blob = reader.read_bytes(reader.read_u32())
        if ctx.class_path == PROFILE_CLASS_PATH:
            return read_archive(Reader(blob), ctx, True, False)
        if ctx.class_path == WORLD_CLASS_PATH:
            return read_container(blob, ctx)
        logger.warning("unknown save class %r, keeping persistence blob as raw bytes", ctx.class_path)
        return blob

    def write(self, writer: Writer, ctx: Context, value: Union[Archive, PersistenceContainer, bytes]) -> None:
        if isinstance(value, Archive):
            nested = Writer()
            write_archive(nested, ctx, value)
            blob = nested.to_bytes()
        elif isinstance(value, PersistenceContainer):
            blob = write_container(ctx, value)
        else:
            blob = bytes(value)
        writer.write_u32(len(blob))
        writer.write_bytes(blob)


register_struct("PersistenceBlob", PersistenceBlob())
