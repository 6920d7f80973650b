"""Static tables mapping wire type tags and struct names to their codecs.

Both tables are filled at import time (property codecs in
`savebag.properties`, the persistence blob struct in `savebag.archive`) and
are only read afterwards.
"""
from abc import ABC, abstractmethod
from typing import *

from .cursor import Reader, Writer, guid_to_str
from .document import FName, PropertyEntry
from .errors import SaveFormatError, UnknownPropertyTypeError
from .names import NameCodec


class Context:
    """Per-archive settings shared by every codec while a bag is read or
    written."""

    def __init__(self, names: NameCodec, object_refs_as_index: bool = False,
                 double_vectors: bool = False, class_path: Optional[str] = None):
        self.names = names
        self.object_refs_as_index = object_refs_as_index
        self.double_vectors = double_vectors
        self.class_path = class_path

    def nested(self, names: NameCodec, class_path: Optional[str] = None) -> 'Context':
        return Context(names, self.object_refs_as_index, self.double_vectors, class_path)


class PropertyType(ABC):
    """Codec for one wire type tag.

    `read_tag`/`write_tag` handle the type-specific part of the property
    header, `read`/`write` the payload bounded by the declared size, and
    `read_raw`/`write_raw` the bare form used for container elements.
    """
    kind: str = ""

    def read_tag(self, reader: Reader, ctx: Context) -> Any:
        return None

    def write_tag(self, writer: Writer, ctx: Context, value: Any) -> None:
        pass

    def read(self, reader: Reader, ctx: Context, tag: Any) -> Any:
        return self.read_raw(reader, ctx)

    def write(self, writer: Writer, ctx: Context, value: Any) -> None:
        self.write_raw(writer, ctx, value)

    @abstractmethod
    def read_raw(self, reader: Reader, ctx: Context) -> Any:
        pass

    @abstractmethod
    def write_raw(self, writer: Writer, ctx: Context, value: Any) -> None:
        pass


PROPERTY_TYPES: Dict[str, PropertyType] = {}
KIND_TAGS: Dict[str, str] = {}


def register(*tags: str):
    """Class decorator registering a codec under one or more wire tags. The
    first tag is the canonical one for its kind."""
    def deco(cls: Type[PropertyType]) -> Type[PropertyType]:
        instance = cls()
        for tag in tags:
            PROPERTY_TYPES[tag] = instance
        KIND_TAGS.setdefault(cls.kind, tags[0])
        return cls
    return deco


def get_property_type(type_name: str, offset: Optional[int] = None) -> PropertyType:
    codec = PROPERTY_TYPES.get(type_name)
    if codec is None:
        raise UnknownPropertyTypeError(type_name, offset)
    return codec


def tag_for_kind(kind: str) -> Optional[str]:
    return KIND_TAGS.get(kind)


class NativeStruct(ABC):
    """Struct whose payload is a fixed binary layout instead of a property
    bag. `size` is the payload size when known."""

    @abstractmethod
    def read(self, reader: Reader, ctx: Context, size: Optional[int]) -> Any:
        pass

    @abstractmethod
    def write(self, writer: Writer, ctx: Context, value: Any) -> None:
        pass


NATIVE_STRUCTS: Dict[str, NativeStruct] = {}


def register_struct(name: str, handler: NativeStruct) -> None:
    NATIVE_STRUCTS[name] = handler


def get_native_struct(struct_type: FName) -> Optional[NativeStruct]:
    return NATIVE_STRUCTS.get(struct_type.value)


class FieldStruct(NativeStruct):
    """Fixed sequence of same-typed fields, decoded as a list of entries.

    When `wide_type` is set the layout exists in a 4-byte and an 8-byte
    variant; the payload size picks one, the archive setting decides for
    container elements.
    """

    def __init__(self, fields: Sequence[str], type_name: str, wide_type: Optional[str] = None):
        self.fields = list(fields)
        self.type_name = type_name
        self.wide_type = wide_type

    def _field_type(self, ctx: Context, size: Optional[int]) -> str:
        if self.wide_type is None:
            return self.type_name
        narrow = 4 * len(self.fields)
        if size == narrow:
            return self.type_name
        if size == 2 * narrow:
            return self.wide_type
        return self.wide_type if ctx.double_vectors else self.type_name

    def read(self, reader: Reader, ctx: Context, size: Optional[int]) -> List[PropertyEntry]:
        type_name = self._field_type(ctx, size)
        codec = get_property_type(type_name)
        return [PropertyEntry(FName(f), type_name, codec.read_raw(reader, ctx)) for f in self.fields]

    def write(self, writer: Writer, ctx: Context, value: List[PropertyEntry]) -> None:
        if [e.name.value for e in value] != self.fields:
            raise SaveFormatError(f"Expected fields {self.fields}, got {[str(e.name) for e in value]}")
        for entry in value:
            get_property_type(entry.type_name).write_raw(writer, ctx, entry.value)


class GuidStruct(NativeStruct):
    def read(self, reader: Reader, ctx: Context, size: Optional[int]) -> List[PropertyEntry]:
        return [PropertyEntry(FName("Value"), "StrProperty", guid_to_str(reader.read_bytes(16)))]

    def write(self, writer: Writer, ctx: Context, value: List[PropertyEntry]) -> None:
        if len(value) != 1:
            raise SaveFormatError("Guid struct takes exactly one Value field")
        writer.write_guid(value[0].value)


class PathStruct(NativeStruct):
    def read(self, reader: Reader, ctx: Context, size: Optional[int]) -> List[PropertyEntry]:
        return [PropertyEntry(FName("AssetPath"), "StrProperty", reader.read_fstring())]

    def write(self, writer: Writer, ctx: Context, value: List[PropertyEntry]) -> None:
        if len(value) != 1:
            raise SaveFormatError("Path struct takes exactly one AssetPath field")
        writer.write_fstring(value[0].value)


for _name, _fields in (("Vector", "XYZ"), ("Vector2D", "XY"), ("Vector4", "XYZW"), ("Quat", "XYZW")):
    register_struct(_name, FieldStruct(_fields, "FloatProperty", "DoubleProperty"))
register_struct("Rotator", FieldStruct(("Pitch", "Yaw", "Roll"), "FloatProperty", "DoubleProperty"))
register_struct("LinearColor", FieldStruct("RGBA", "FloatProperty"))
register_struct("Color", FieldStruct("BGRA", "ByteProperty"))
register_struct("IntPoint", FieldStruct("XY", "IntProperty"))
register_struct("IntVector", FieldStruct("XYZ", "IntProperty"))
register_struct("DateTime", FieldStruct(("Ticks",), "Int64Property"))
register_struct("Timespan", FieldStruct(("Ticks",), "Int64Property"))
register_struct("Guid", GuidStruct())
register_struct("SoftObjectPath", PathStruct())
register_struct("SoftClassPath", PathStruct())
