import logging
from typing import *

from .cursor import Reader, Writer, guid_to_str
from .document import NONE_NAME, Array, Enum, FName, Map, PropertyEntry, Set, Struct, Text
from .errors import LengthMismatchError, SaveFormatError
from .registry import Context, PropertyType, get_native_struct, get_property_type, register

logger = logging.getLogger(__name__)

SENTINEL = "None"


def check_consumed(reader: Reader, what: str) -> None:
    if reader.remaining:
        raise LengthMismatchError(
            f"{what} left {reader.remaining} declared byte(s) unread", reader.position)


def read_property(reader: Reader, ctx: Context) -> Optional[PropertyEntry]:
    """Read one tagged property; None when the bag sentinel is reached."""
    at = reader.position
    name = ctx.names.read(reader)
    if name.value == SENTINEL:
        return None

    index = 0
    try:
        type_name = ctx.names.read(reader).value
        codec = get_property_type(type_name, at)
        size = reader.read_u32()
        index = reader.read_u32()
        tag = codec.read_tag(reader, ctx)
        guid = None
        if reader.read_u8():
            guid = guid_to_str(reader.read_bytes(16))
        payload = reader.bounded(size)
        value = codec.read(payload, ctx, tag)
        check_consumed(payload, type_name)
    except SaveFormatError as e:
        e.add_path(f"{name}[{index}]" if index else str(name))
        raise
    return PropertyEntry(name, type_name, value, index, guid)


def read_properties(reader: Reader, ctx: Context) -> List[PropertyEntry]:
    properties = []
    while True:
        prop = read_property(reader, ctx)
        if prop is None:
            return properties
        properties.append(prop)


def write_property(writer: Writer, ctx: Context, entry: PropertyEntry) -> None:
    try:
        codec = get_property_type(entry.type_name)
        ctx.names.write(writer, entry.name)
        ctx.names.write(writer, FName(entry.type_name))
        size_at = writer.position
        writer.write_u32(0)  # patched below
        writer.write_u32(entry.index)
        codec.write_tag(writer, ctx, entry.value)
        if entry.guid is None:
            writer.write_u8(0)
        else:
            writer.write_u8(1)
            writer.write_guid(entry.guid)
        start = writer.position
        codec.write(writer, ctx, entry.value)
        writer.patch_u32(size_at, writer.position - start)
    except SaveFormatError as e:
        e.add_path(f"{entry.name}[{entry.index}]" if entry.index else str(entry.name))
        raise


def write_properties(writer: Writer, ctx: Context, properties: List[PropertyEntry]) -> None:
    for prop in properties:
        write_property(writer, ctx, prop)
    ctx.names.write(writer, NONE_NAME)


def read_struct_value(reader: Reader, ctx: Context, struct_type: FName, size: Optional[int]) -> Any:
    native = get_native_struct(struct_type)
    if native is not None:
        return native.read(reader, ctx, size)
    return read_properties(reader, ctx)


def write_struct_value(writer: Writer, ctx: Context, struct_type: FName, value: Any) -> None:
    native = get_native_struct(struct_type)
    if native is not None:
        native.write(writer, ctx, value)
    else:
        write_properties(writer, ctx, value)


class _Number(PropertyType):
    fmt = ""

    def read_raw(self, reader: Reader, ctx: Context) -> Any:
        return getattr(reader, f"read_{self.fmt}")()

    def write_raw(self, writer: Writer, ctx: Context, value: Any) -> None:
        getattr(writer, f"write_{self.fmt}")(value)


@register("Int8Property")
class Int8Property(_Number):
    kind = "int8"
    fmt = "i8"


@register("Int16Property")
class Int16Property(_Number):
    kind = "int16"
    fmt = "i16"


@register("IntProperty")
class IntProperty(_Number):
    kind = "int32"
    fmt = "i32"


@register("Int64Property")
class Int64Property(_Number):
    kind = "int64"
    fmt = "i64"


@register("UInt16Property")
class UInt16Property(_Number):
    kind = "uint16"
    fmt = "u16"


@register("UInt32Property")
class UInt32Property(_Number):
    kind = "uint32"
    fmt = "u32"


@register("UInt64Property")
class UInt64Property(_Number):
    kind = "uint64"
    fmt = "u64"


@register("FloatProperty")
class FloatProperty(_Number):
    kind = "float"
    fmt = "f32"


@register("DoubleProperty")
class DoubleProperty(_Number):
    kind = "double"
    fmt = "f64"


@register("BoolProperty")
class BoolProperty(PropertyType):
    """The value lives in the tag; the payload is empty."""
    kind = "bool"

    def read_tag(self, reader: Reader, ctx: Context) -> bool:
        return reader.read_bool()

    def write_tag(self, writer: Writer, ctx: Context, value: bool) -> None:
        writer.write_bool(value)

    def read(self, reader: Reader, ctx: Context, tag: bool) -> bool:
        return tag

    def write(self, writer: Writer, ctx: Context, value: bool) -> None:
        pass

    def read_raw(self, reader: Reader, ctx: Context) -> bool:
        return reader.read_bool()

    def write_raw(self, writer: Writer, ctx: Context, value: bool) -> None:
        writer.write_bool(value)


@register("ByteProperty")
class ByteProperty(PropertyType):
    """A plain byte when the tag's enum name is None, an enum member name
    otherwise."""
    kind = "byte"

    def read_tag(self, reader: Reader, ctx: Context) -> FName:
        return ctx.names.read(reader)

    def write_tag(self, writer: Writer, ctx: Context, value: Union[int, Enum]) -> None:
        ctx.names.write(writer, value.enum_type if isinstance(value, Enum) else NONE_NAME)

    def read(self, reader: Reader, ctx: Context, tag: FName) -> Union[int, Enum]:
        if tag == NONE_NAME:
            return reader.read_u8()
        return Enum(tag, ctx.names.read(reader))

    def write(self, writer: Writer, ctx: Context, value: Union[int, Enum]) -> None:
        if isinstance(value, Enum):
            ctx.names.write(writer, value.member)
        else:
            writer.write_u8(value)

    def read_raw(self, reader: Reader, ctx: Context) -> int:
        return reader.read_u8()

    def write_raw(self, writer: Writer, ctx: Context, value: int) -> None:
        writer.write_u8(value)


@register("EnumProperty")
class EnumProperty(PropertyType):
    kind = "enum"

    def read_tag(self, reader: Reader, ctx: Context) -> FName:
        return ctx.names.read(reader)

    def write_tag(self, writer: Writer, ctx: Context, value: Enum) -> None:
        ctx.names.write(writer, value.enum_type or NONE_NAME)

    def read(self, reader: Reader, ctx: Context, tag: FName) -> Enum:
        return Enum(tag, ctx.names.read(reader))

    def write(self, writer: Writer, ctx: Context, value: Enum) -> None:
        ctx.names.write(writer, value.member)

    def read_raw(self, reader: Reader, ctx: Context) -> Enum:
        return Enum(None, ctx.names.read(reader))

    def write_raw(self, writer: Writer, ctx: Context, value: Enum) -> None:
        ctx.names.write(writer, value.member)


@register("StrProperty")
class StrProperty(PropertyType):
    kind = "str"

    def read_raw(self, reader: Reader, ctx: Context) -> Optional[str]:
        return reader.read_fstring()

    def write_raw(self, writer: Writer, ctx: Context, value: Optional[str]) -> None:
        writer.write_fstring(value)


@register("NameProperty")
class NameProperty(PropertyType):
    kind = "name"

    def read_raw(self, reader: Reader, ctx: Context) -> FName:
        return ctx.names.read(reader)

    def write_raw(self, writer: Writer, ctx: Context, value: FName) -> None:
        ctx.names.write(writer, value)


@register("TextProperty")
class TextProperty(PropertyType):
    """FText: flags, history type, then the history payload. Only the base
    (0) and none (-1) histories are understood; any other history is kept
    as raw bytes when the declared size bounds it."""
    kind = "text"

    def _read(self, reader: Reader, bounded: bool) -> Text:
        flags = reader.read_u32()
        history = reader.read_i8()
        if history == 0:
            return Text(flags, history, namespace=reader.read_fstring(),
                        key=reader.read_fstring(), source=reader.read_fstring())
        if history == -1:
            text = Text(flags, history, invariant_flag=reader.read_u32())
            if text.invariant_flag:
                text.invariant = reader.read_fstring()
            return text
        if not bounded:
            raise SaveFormatError(f"Unsupported text history {history}", reader.position)
        return Text(flags, history, raw=reader.read_bytes(reader.remaining))

    def read(self, reader: Reader, ctx: Context, tag: Any) -> Text:
        return self._read(reader, True)

    def read_raw(self, reader: Reader, ctx: Context) -> Text:
        return self._read(reader, False)

    def write_raw(self, writer: Writer, ctx: Context, value: Text) -> None:
        writer.write_u32(value.flags)
        writer.write_i8(value.history)
        if value.history == 0:
            writer.write_fstring(value.namespace)
            writer.write_fstring(value.key)
            writer.write_fstring(value.source)
        elif value.history == -1:
            writer.write_u32(value.invariant_flag)
            if value.invariant_flag:
                writer.write_fstring(value.invariant)
        elif value.raw is not None:
            writer.write_bytes(value.raw)
        else:
            raise SaveFormatError(f"Text history {value.history} needs raw bytes", writer.position)


@register("ObjectProperty", "ClassProperty", "WeakObjectProperty", "LazyObjectProperty", "InterfaceProperty")
class ObjectProperty(PropertyType):
    """Object reference: an object index inside archives, a path string in
    plain GVAS saves."""
    kind = "object"

    def read_raw(self, reader: Reader, ctx: Context) -> Union[int, Optional[str]]:
        if ctx.object_refs_as_index:
            return reader.read_i32()
        return reader.read_fstring()

    def write_raw(self, writer: Writer, ctx: Context, value: Union[int, Optional[str]]) -> None:
        if ctx.object_refs_as_index:
            if not isinstance(value, int):
                raise SaveFormatError(f"Object reference must be an index here, got {value!r}", writer.position)
            writer.write_i32(value)
        else:
            if isinstance(value, int):
                raise SaveFormatError(f"Object reference must be a path here, got {value!r}", writer.position)
            writer.write_fstring(value)


@register("SoftObjectProperty", "SoftClassProperty")
class SoftObjectProperty(PropertyType):
    kind = "softobject"

    def read_raw(self, reader: Reader, ctx: Context) -> Optional[str]:
        return reader.read_fstring()

    def write_raw(self, writer: Writer, ctx: Context, value: Optional[str]) -> None:
        writer.write_fstring(value)


@register("StructProperty")
class StructProperty(PropertyType):
    kind = "struct"

    def read_tag(self, reader: Reader, ctx: Context) -> Tuple[FName, Optional[str]]:
        return ctx.names.read(reader), reader.read_guid()

    def write_tag(self, writer: Writer, ctx: Context, value: Struct) -> None:
        ctx.names.write(writer, value.struct_type)
        writer.write_guid(value.guid)

    def read(self, reader: Reader, ctx: Context, tag: Tuple[FName, Optional[str]]) -> Struct:
        struct_type, guid = tag
        return Struct(struct_type, read_struct_value(reader, ctx, struct_type, reader.remaining), guid)

    def write(self, writer: Writer, ctx: Context, value: Struct) -> None:
        write_struct_value(writer, ctx, value.struct_type, value.value)

    def read_raw(self, reader: Reader, ctx: Context) -> Any:
        raise SaveFormatError("StructProperty elements need their struct type", reader.position)

    def write_raw(self, writer: Writer, ctx: Context, value: Any) -> None:
        raise SaveFormatError("StructProperty elements need their struct type", writer.position)


class _Container(PropertyType):
    def read_raw(self, reader: Reader, ctx: Context) -> Any:
        raise SaveFormatError(f"{self.kind} cannot be a container element", reader.position)

    def write_raw(self, writer: Writer, ctx: Context, value: Any) -> None:
        raise SaveFormatError(f"{self.kind} cannot be a container element", writer.position)


def _read_elements(count: int, read: Callable[[], Any]) -> list:
    elements = []
    for i in range(count):
        try:
            elements.append(read())
        except SaveFormatError as e:
            e.add_path(f"[{i}]")
            raise
    return elements


def _write_elements(elements: Iterable[Any], write: Callable[[Any], None]) -> None:
    for i, element in enumerate(elements):
        try:
            write(element)
        except SaveFormatError as e:
            e.add_path(f"[{i}]")
            raise


def _slot_codec(inner_type: str, at: int) -> Tuple[Callable, Callable]:
    """Element codec for map/set slots: struct slots hold property bags,
    everything else uses the type's bare form."""
    if inner_type == "StructProperty":
        return read_properties, write_properties
    codec = get_property_type(inner_type, at)
    return codec.read_raw, codec.write_raw


@register("ArrayProperty")
class ArrayProperty(_Container):
    """Count followed by bare elements. Byte arrays are kept as a blob;
    struct arrays carry one element tag whose size covers all elements."""
    kind = "array"

    def read_tag(self, reader: Reader, ctx: Context) -> str:
        return ctx.names.read(reader).value

    def write_tag(self, writer: Writer, ctx: Context, value: Array) -> None:
        ctx.names.write(writer, FName(value.inner_type))

    def read(self, reader: Reader, ctx: Context, inner_type: str) -> Array:
        at = reader.position
        count = reader.read_u32()
        if inner_type == "ByteProperty":
            return Array(inner_type, reader.read_bytes(count))
        if inner_type == "StructProperty":
            return self._read_structs(reader, ctx, count)
        codec = get_property_type(inner_type, at)
        return Array(inner_type, _read_elements(count, lambda: codec.read_raw(reader, ctx)))

    def _read_structs(self, reader: Reader, ctx: Context, count: int) -> Array:
        at = reader.position
        element_name = ctx.names.read(reader)
        element_type = ctx.names.read(reader).value
        if element_type != "StructProperty":
            raise SaveFormatError(f"Struct array element tag has type {element_type}", at)
        size = reader.read_u32()
        element_index = reader.read_u32()
        struct_type = ctx.names.read(reader)
        struct_guid = reader.read_guid()
        if reader.read_u8():
            raise SaveFormatError("Struct array element tag carries a property guid", reader.position - 1)
        body = reader.bounded(size)
        per_element = size // count if count else None
        elements = _read_elements(
            count, lambda: read_struct_value(body, ctx, struct_type, per_element))
        check_consumed(body, f"{struct_type} array")
        return Array("StructProperty", elements, struct_type, struct_guid, element_name, element_index)

    def write(self, writer: Writer, ctx: Context, value: Array) -> None:
        writer.write_u32(len(value.elements))
        if value.inner_type == "ByteProperty":
            writer.write_bytes(bytes(value.elements))
            return
        if value.inner_type == "StructProperty":
            if value.struct_type is None or value.element_name is None:
                raise SaveFormatError("Struct array needs a struct type and element name", writer.position)
            ctx.names.write(writer, value.element_name)
            ctx.names.write(writer, FName("StructProperty"))
            size_at = writer.position
            writer.write_u32(0)  # patched below
            writer.write_u32(value.element_index)
            ctx.names.write(writer, value.struct_type)
            writer.write_guid(value.struct_guid)
            writer.write_u8(0)
            start = writer.position
            _write_elements(value.elements, lambda v: write_struct_value(writer, ctx, value.struct_type, v))
            writer.patch_u32(size_at, writer.position - start)
            return
        codec = get_property_type(value.inner_type)
        _write_elements(value.elements, lambda v: codec.write_raw(writer, ctx, v))


@register("MapProperty")
class MapProperty(_Container):
    """Removed keys, then key/value pairs. Struct keys are GUIDs, struct
    values are property bags."""
    kind = "map"

    def read_tag(self, reader: Reader, ctx: Context) -> Tuple[str, str]:
        return ctx.names.read(reader).value, ctx.names.read(reader).value

    def write_tag(self, writer: Writer, ctx: Context, value: Map) -> None:
        ctx.names.write(writer, FName(value.key_type))
        ctx.names.write(writer, FName(value.value_type))

    @staticmethod
    def _key_codec(key_type: str, at: int) -> Tuple[Callable, Callable]:
        if key_type == "StructProperty":
            return (lambda reader, ctx: guid_to_str(reader.read_bytes(16)),
                    lambda writer, ctx, v: writer.write_guid(v))
        codec = get_property_type(key_type, at)
        return codec.read_raw, codec.write_raw

    def read(self, reader: Reader, ctx: Context, tag: Tuple[str, str]) -> Map:
        key_type, value_type = tag
        at = reader.position
        read_key, _ = self._key_codec(key_type, at)
        read_value, _ = _slot_codec(value_type, at)
        removed = _read_elements(reader.read_u32(), lambda: read_key(reader, ctx))
        entries = _read_elements(
            reader.read_u32(), lambda: (read_key(reader, ctx), read_value(reader, ctx)))
        return Map(key_type, value_type, entries, removed)

    def write(self, writer: Writer, ctx: Context, value: Map) -> None:
        _, write_key = self._key_codec(value.key_type, writer.position)
        _, write_value = _slot_codec(value.value_type, writer.position)
        writer.write_u32(len(value.removed))
        _write_elements(value.removed, lambda k: write_key(writer, ctx, k))
        writer.write_u32(len(value.entries))

        def write_pair(pair):
            k, v = pair
            write_key(writer, ctx, k)
            write_value(writer, ctx, v)

        _write_elements(value.entries, write_pair)


@register("SetProperty")
class SetProperty(_Container):
    kind = "set"

    def read_tag(self, reader: Reader, ctx: Context) -> str:
        return ctx.names.read(reader).value

    def write_tag(self, writer: Writer, ctx: Context, value: Set) -> None:
        ctx.names.write(writer, FName(value.inner_type))

    def read(self, reader: Reader, ctx: Context, inner_type: str) -> Set:
        read_element, _ = _slot_codec(inner_type, reader.position)
        removed = _read_elements(reader.read_u32(), lambda: read_element(reader, ctx))
        elements = _read_elements(reader.read_u32(), lambda: read_element(reader, ctx))
        return Set(inner_type, elements, removed)

    def write(self, writer: Writer, ctx: Context, value: Set) -> None:
        _, write_element = _slot_codec(value.inner_type, writer.position)
        writer.write_u32(len(value.removed))
        _write_elements(value.removed, lambda v: write_element(writer, ctx, v))
        writer.write_u32(len(value.elements))
        _write_elements(value.elements, lambda v: write_element(writer, ctx, v))
