"""Lossless mapping between the document model and JSON.

Every property becomes a wrapper object ``{"type": kind, "value": ...}``
where `kind` carries bit width and signedness (``int32``, ``uint64``,
``float``, ``double`` ...). Annotations only appear when they differ from
their defaults:

- ``tag``: wire tag when it is an alias of the kind's canonical tag
- ``index``: array index of the property when not 0
- ``name``: the property name when the object key cannot express it
- ``guid``: property guid
- ``structType``/``structGuid``: struct properties and struct arrays
- ``elementType``/``keyType``/``valueType``: container element kinds
- ``elementName``/``elementIndex``: struct array element tag
- ``removed``: removed keys of maps and sets

Byte blobs are base64, enums are ``{"enumType", "memberName"}`` objects
and maps are lists of ``[key, value]`` pairs. Object key order follows
property order.
"""
import base64
import binascii
import json
import logging
from typing import *

from .chunks import COMPRESSOR_NAMES
from .compression import METHODS
from .cursor import guid_to_bytes
from .document import (Actor, Archive, Array, Component, Document, DynamicActor, Enum, FName, Map,
                       PersistenceContainer, PropertyEntry, Set, Struct, Text, Transform, UObject, Variable)
from .errors import MalformedJsonError
from .gvas import SAVE_GAME_VERSION_UE5
from .registry import PROPERTY_TYPES, get_property_type, tag_for_kind

logger = logging.getLogger(__name__)

_INT_RANGES = {
    "int8": (-2 ** 7, 2 ** 7 - 1),
    "int16": (-2 ** 15, 2 ** 15 - 1),
    "int32": (-2 ** 31, 2 ** 31 - 1),
    "int64": (-2 ** 63, 2 ** 63 - 1),
    "uint16": (0, 2 ** 16 - 1),
    "uint32": (0, 2 ** 32 - 1),
    "uint64": (0, 2 ** 64 - 1),
    "byte": (0, 2 ** 8 - 1),
}

_ARCHIVE = "$archive"
_CONTAINER = "$container"
_RAW = "$raw"


# JSON -> document helpers

def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _int(v: Any, kind: str = "int64") -> int:
    if not _is_int(v):
        raise MalformedJsonError(f"Expected an integer, got {v!r}")
    lo, hi = _INT_RANGES[kind]
    if not lo <= v <= hi:
        raise MalformedJsonError(f"{v} does not fit {kind}")
    return v


def _float(v: Any) -> float:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise MalformedJsonError(f"Expected a number, got {v!r}")
    return float(v)


def _str(v: Any, nullable: bool = True) -> Optional[str]:
    if v is None and nullable:
        return None
    if not isinstance(v, str):
        raise MalformedJsonError(f"Expected a string, got {v!r}")
    return v


def _obj(v: Any, what: str = "an object") -> dict:
    if not isinstance(v, dict):
        raise MalformedJsonError(f"Expected {what}, got {type(v).__name__}")
    return v


def _list(v: Any) -> list:
    if not isinstance(v, list):
        raise MalformedJsonError(f"Expected a list, got {type(v).__name__}")
    return v


def _field(obj: dict, key: str) -> Any:
    if key not in obj:
        raise MalformedJsonError(f"Missing '{key}'")
    return obj[key]


def _guid(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = _str(v, False)
    try:
        guid_to_bytes(s)
    except ValueError as e:
        raise MalformedJsonError(str(e)) from e
    return s


def _unb64(v: Any) -> bytes:
    try:
        return base64.b64decode(_str(v, False), validate=True)
    except binascii.Error as e:
        raise MalformedJsonError(f"Invalid base64: {e}") from e


def _b64(b: bytes) -> str:
    return base64.b64encode(b).decode('ascii')


def _each(items: Any, convert: Callable[[Any], Any]) -> list:
    out = []
    for i, item in enumerate(_list(items)):
        try:
            out.append(convert(item))
        except MalformedJsonError as e:
            e.add_path(f"[{i}]")
            raise
    return out


def _in(obj: dict, key: str, convert: Callable[[Any], Any]) -> Any:
    try:
        return convert(_field(obj, key))
    except MalformedJsonError as e:
        e.add_path(key)
        raise


def _opt(obj: dict, key: str, convert: Callable[[Any], Any], default: Any = None) -> Any:
    if key not in obj:
        return default
    return _in(obj, key, convert)


def fname_to_json(name: FName) -> Any:
    if name.number is None and name.value is not None and name.table_index is None:
        return name.value
    out = {"value": name.value}
    if name.number is not None:
        out["number"] = name.number
    if name.table_index is not None:
        out["tableIndex"] = name.table_index
    return out


def fname_from_json(v: Any) -> FName:
    if isinstance(v, str):
        return FName(v)
    obj = _obj(v, "a name")
    return FName(_in(obj, "value", _str), _opt(obj, "number", lambda n: _int(n, "uint32")),
                 _opt(obj, "tableIndex", lambda n: _int(n, "uint16")))


# values

def _enum_to_json(e: Enum) -> dict:
    return {
        "enumType": None if e.enum_type is None else fname_to_json(e.enum_type),
        "memberName": fname_to_json(e.member),
    }


def _enum_from_json(v: Any) -> Enum:
    obj = _obj(v, "an enum object")
    enum_type = _in(obj, "enumType", lambda t: None if t is None else fname_from_json(t))
    return Enum(enum_type, _in(obj, "memberName", fname_from_json))


def _text_to_json(t: Text) -> dict:
    out = {"flags": t.flags, "history": t.history}
    if t.history == 0:
        out.update(namespace=t.namespace, key=t.key, source=t.source)
    elif t.history == -1:
        out["invariantFlag"] = t.invariant_flag
        if t.invariant_flag:
            out["invariant"] = t.invariant
    else:
        out["raw"] = _b64(t.raw or b'')
    return out


def _text_from_json(v: Any) -> Text:
    obj = _obj(v, "a text object")
    text = Text(_in(obj, "flags", lambda n: _int(n, "uint32")),
                _in(obj, "history", lambda n: _int(n, "int8")))
    if text.history == 0:
        text.namespace = _in(obj, "namespace", _str)
        text.key = _in(obj, "key", _str)
        text.source = _in(obj, "source", _str)
    elif text.history == -1:
        text.invariant_flag = _in(obj, "invariantFlag", lambda n: _int(n, "uint32"))
        if text.invariant_flag:
            text.invariant = _in(obj, "invariant", _str)
    else:
        text.raw = _in(obj, "raw", _unb64)
    return text


def _value_to_json(kind: str, value: Any) -> Any:
    if kind == "byte" and isinstance(value, Enum) or kind == "enum":
        return _enum_to_json(value)
    if kind == "name":
        return fname_to_json(value)
    if kind == "text":
        return _text_to_json(value)
    return value


def _value_from_json(kind: str, v: Any) -> Any:
    if kind in _INT_RANGES:
        if kind == "byte" and isinstance(v, dict):
            e = _enum_from_json(v)
            if e.enum_type is None:
                raise MalformedJsonError("Byte enum needs an enumType")
            return e
        return _int(v, kind)
    if kind in ("float", "double"):
        return _float(v)
    if kind == "bool":
        if not isinstance(v, bool):
            raise MalformedJsonError(f"Expected true or false, got {v!r}")
        return v
    if kind in ("str", "softobject"):
        return _str(v)
    if kind == "name":
        return fname_from_json(v)
    if kind == "object":
        return v if _is_int(v) else _str(v)
    if kind == "enum":
        return _enum_from_json(v)
    if kind == "text":
        return _text_from_json(v)
    raise MalformedJsonError(f"{kind} cannot be used here")


def _struct_value_to_json(value: Any) -> Any:
    if isinstance(value, list):
        return properties_to_json(value)
    if isinstance(value, Archive):
        return {_ARCHIVE: archive_to_json(value)}
    if isinstance(value, PersistenceContainer):
        return {_CONTAINER: container_to_json(value)}
    return {_RAW: _b64(value)}


def _struct_value_from_json(v: Any) -> Any:
    obj = _obj(v, "a struct object")
    if len(obj) == 1:
        if _ARCHIVE in obj:
            return _in(obj, _ARCHIVE, archive_from_json)
        if _CONTAINER in obj:
            return _in(obj, _CONTAINER, container_from_json)
        if _RAW in obj:
            return _in(obj, _RAW, _unb64)
    return properties_from_json(obj)


def _slot_to_json(kind: str, value: Any, is_key: bool) -> Any:
    if kind == "struct":
        return value if is_key else properties_to_json(value)
    return _value_to_json(kind, value)


def _slot_from_json(kind: str, v: Any, is_key: bool) -> Any:
    if kind == "struct":
        return _guid(v) if is_key else properties_from_json(v)
    return _value_from_json(kind, v)


# properties

def _kind_of(type_name: str) -> str:
    return get_property_type(type_name).kind


def _annotate_type(out: dict, kind_key: str, tag_key: str, type_name: str) -> str:
    kind = _kind_of(type_name)
    out[kind_key] = kind
    if type_name != tag_for_kind(kind):
        out[tag_key] = type_name
    return kind


def _resolve_type(obj: dict, kind_key: str, tag_key: str) -> Tuple[str, str]:
    kind = _in(obj, kind_key, lambda k: _str(k, False))
    tag = _opt(obj, tag_key, lambda t: _str(t, False)) or tag_for_kind(kind)
    if tag is None:
        raise MalformedJsonError(f"Unknown type '{kind}'").add_path(kind_key)
    codec = PROPERTY_TYPES.get(tag)
    if codec is None or codec.kind != kind:
        raise MalformedJsonError(f"Tag '{tag}' is not of type '{kind}'").add_path(tag_key)
    return kind, tag


def property_to_json(entry: PropertyEntry) -> dict:
    v = entry.value
    out: Dict[str, Any] = {}
    kind = _annotate_type(out, "type", "tag", entry.type_name)
    if entry.index:
        out["index"] = entry.index
    if entry.guid is not None:
        out["guid"] = entry.guid

    if kind == "struct":
        out["structType"] = fname_to_json(v.struct_type)
        if v.guid is not None:
            out["structGuid"] = v.guid
        out["value"] = _struct_value_to_json(v.value)
    elif kind == "array":
        inner = _annotate_type(out, "elementType", "elementTag", v.inner_type)
        if inner == "struct":
            out["structType"] = fname_to_json(v.struct_type)
            if v.struct_guid is not None:
                out["structGuid"] = v.struct_guid
            if v.element_name != entry.name:
                out["elementName"] = fname_to_json(v.element_name)
            if v.element_index:
                out["elementIndex"] = v.element_index
            out["value"] = [_struct_value_to_json(e) for e in v.elements]
        elif inner == "byte":
            out["value"] = _b64(v.elements)
        else:
            out["value"] = [_value_to_json(inner, e) for e in v.elements]
    elif kind == "map":
        key_kind = _annotate_type(out, "keyType", "keyTag", v.key_type)
        value_kind = _annotate_type(out, "valueType", "valueTag", v.value_type)
        out["value"] = [[_slot_to_json(key_kind, k, True), _slot_to_json(value_kind, val, False)]
                        for k, val in v.entries]
        if v.removed:
            out["removed"] = [_slot_to_json(key_kind, k, True) for k in v.removed]
    elif kind == "set":
        inner = _annotate_type(out, "elementType", "elementTag", v.inner_type)
        out["value"] = [_slot_to_json(inner, e, False) for e in v.elements]
        if v.removed:
            out["removed"] = [_slot_to_json(inner, e, False) for e in v.removed]
    else:
        out["value"] = _value_to_json(kind, v)
    return out


def property_from_json(key: str, w: Any) -> PropertyEntry:
    obj = _obj(w, "a property object with 'type' and 'value'")
    kind, tag = _resolve_type(obj, "type", "tag")
    name = _opt(obj, "name", fname_from_json) or FName(key)
    index = _opt(obj, "index", lambda n: _int(n, "uint32"), 0)
    guid = _opt(obj, "guid", _guid)
    _field(obj, "value")

    if kind == "struct":
        value = Struct(_in(obj, "structType", fname_from_json),
                       _in(obj, "value", _struct_value_from_json),
                       _opt(obj, "structGuid", _guid))
    elif kind == "array":
        inner, inner_tag = _resolve_type(obj, "elementType", "elementTag")
        if inner == "struct":
            value = Array(inner_tag, _in(obj, "value", lambda l: _each(l, _struct_value_from_json)),
                          struct_type=_in(obj, "structType", fname_from_json),
                          struct_guid=_opt(obj, "structGuid", _guid),
                          element_name=_opt(obj, "elementName", fname_from_json) or name,
                          element_index=_opt(obj, "elementIndex", lambda n: _int(n, "uint32"), 0))
        elif inner == "byte":
            value = Array(inner_tag, _in(obj, "value", _unb64))
        else:
            value = Array(inner_tag, _in(obj, "value", lambda l: _each(l, lambda e: _value_from_json(inner, e))))
    elif kind == "map":
        key_kind, key_tag = _resolve_type(obj, "keyType", "keyTag")
        value_kind, value_tag = _resolve_type(obj, "valueType", "valueTag")

        def pair(p):
            p = _list(p)
            if len(p) != 2:
                raise MalformedJsonError(f"Map entries are [key, value] pairs, got {len(p)} item(s)")
            return _slot_from_json(key_kind, p[0], True), _slot_from_json(value_kind, p[1], False)

        value = Map(key_tag, value_tag, _in(obj, "value", lambda l: _each(l, pair)),
                    _opt(obj, "removed", lambda l: _each(l, lambda k: _slot_from_json(key_kind, k, True)), []))
    elif kind == "set":
        inner, inner_tag = _resolve_type(obj, "elementType", "elementTag")
        convert = lambda l: _each(l, lambda e: _slot_from_json(inner, e, False))
        value = Set(inner_tag, _in(obj, "value", convert), _opt(obj, "removed", convert, []))
    else:
        value = _in(obj, "value", lambda x: _value_from_json(kind, x))
    return PropertyEntry(name, tag, value, index, guid)


def properties_to_json(entries: List[PropertyEntry]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for entry in entries:
        key = entry.name.value or ""
        if entry.index:
            key += f"[{entry.index}]"
        unique, n = key, 1
        while unique in out:
            n += 1
            unique = f"{key}#{n}"
        wrapper = property_to_json(entry)
        if fname_to_json(entry.name) != unique:
            wrapper["name"] = fname_to_json(entry.name)
        out[unique] = wrapper
    return out


def properties_from_json(obj: Any) -> List[PropertyEntry]:
    entries = []
    for key, w in _obj(obj, "a property object").items():
        try:
            entries.append(property_from_json(key, w))
        except MalformedJsonError as e:
            e.add_path(key)
            raise
    return entries


# archives

def _transform_to_json(t: Optional[Transform]) -> Optional[dict]:
    if t is None:
        return None
    return {"rotation": list(t.rotation), "position": list(t.position), "scale": list(t.scale)}


def _transform_from_json(v: Any) -> Optional[Transform]:
    if v is None:
        return None
    obj = _obj(v, "a transform")

    def vec(n):
        def convert(l):
            items = _each(l, _float)
            if len(items) != n:
                raise MalformedJsonError(f"Expected {n} numbers, got {len(items)}")
            return tuple(items)
        return convert

    return Transform(_in(obj, "rotation", vec(4)), _in(obj, "position", vec(3)), _in(obj, "scale", vec(3)))


def _path_pair(v: Any) -> Optional[Tuple[Optional[str], Optional[str]]]:
    if v is None:
        return None
    items = _each(v, _str)
    if len(items) != 2:
        raise MalformedJsonError(f"Expected [path, name], got {len(items)} item(s)")
    return items[0], items[1]


def _variable_to_json(var: Variable) -> dict:
    value = fname_to_json(var.value) if isinstance(var.value, FName) else var.value
    return {"name": fname_to_json(var.name), "type": var.var_type, "value": value}


def _variable_from_json(v: Any) -> Variable:
    obj = _obj(v)
    var_type = _in(obj, "type", lambda n: _int(n, "byte"))
    converters = {
        0: lambda x: None,
        1: lambda x: x if isinstance(x, bool) else _int(x, "uint32"),
        2: lambda x: _int(x, "int32"),
        3: _float,
        4: fname_from_json,
    }
    if var_type not in converters:
        raise MalformedJsonError(f"Unknown variable type {var_type}").add_path("type")
    return Variable(_in(obj, "name", fname_from_json), var_type, _opt(obj, "value", converters[var_type]))


def _component_to_json(c: Component) -> dict:
    out: Dict[str, Any] = {"key": c.key}
    if c.variables is not None:
        out["variables_name"] = fname_to_json(c.variables_name)
        if c.reserved:
            out["reserved"] = c.reserved
        out["variables"] = [_variable_to_json(v) for v in c.variables]
    else:
        out["properties"] = properties_to_json(c.properties or [])
        if c.trailer:
            out["trailer"] = _b64(c.trailer)
    return out


def _component_from_json(v: Any) -> Component:
    obj = _obj(v)
    c = Component(_in(obj, "key", _str))
    if "variables" in obj:
        c.variables_name = _in(obj, "variables_name", fname_from_json)
        c.reserved = _opt(obj, "reserved", lambda n: _int(n, "uint64"), 0)
        c.variables = _in(obj, "variables", lambda l: _each(l, _variable_from_json))
    else:
        c.properties = _in(obj, "properties", properties_from_json)
        c.trailer = _opt(obj, "trailer", _unb64, b'')
    return c


def _object_to_json(o: UObject) -> dict:
    out: Dict[str, Any] = {"was_loaded": o.was_loaded, "object_path": o.object_path}
    if o.loaded_name is not None:
        out["loaded_name"] = fname_to_json(o.loaded_name)
    if o.outer_id is not None:
        out["outer_id"] = o.outer_id
    out["properties"] = None if o.properties is None else properties_to_json(o.properties)
    if o.trailer:
        out["trailer"] = _b64(o.trailer)
    if o.components is not None:
        out["components"] = [_component_to_json(c) for c in o.components]
    return out


def _object_from_json(v: Any) -> UObject:
    obj = _obj(v)

    def was_loaded(x):
        if not isinstance(x, bool):
            raise MalformedJsonError(f"Expected true or false, got {x!r}")
        return x

    return UObject(
        was_loaded=_in(obj, "was_loaded", was_loaded),
        object_path=_in(obj, "object_path", _str),
        loaded_name=_opt(obj, "loaded_name", fname_from_json),
        outer_id=_opt(obj, "outer_id", lambda n: _int(n, "uint32")),
        properties=_opt(obj, "properties", lambda p: None if p is None else properties_from_json(p)),
        trailer=_opt(obj, "trailer", _unb64, b''),
        components=_opt(obj, "components", lambda l: _each(l, _component_from_json)),
    )


def archive_to_json(a: Archive) -> dict:
    out: Dict[str, Any] = {
        "version": a.version,
        "package_version": None if a.package_version is None else list(a.package_version),
        "class_path": None if a.class_path is None else list(a.class_path),
        "names": list(a.names),
    }
    if a.data_order is not None:
        out["data_order"] = list(a.data_order)
    out["objects"] = [_object_to_json(o) for o in a.objects]
    return out


def archive_from_json(v: Any) -> Archive:
    obj = _obj(v, "an archive object")

    def package_version(p):
        if p is None:
            return None
        items = _each(p, lambda n: _int(n, "uint32"))
        if len(items) != 2:
            raise MalformedJsonError(f"Expected [ue4, ue5], got {len(items)} item(s)")
        return items[0], items[1]

    return Archive(
        names=_in(obj, "names", lambda l: _each(l, _str)),
        objects=_in(obj, "objects", lambda l: _each(l, _object_from_json)),
        version=_in(obj, "version", lambda n: _int(n, "uint32")),
        package_version=_opt(obj, "package_version", package_version),
        class_path=_opt(obj, "class_path", _path_pair),
        data_order=_opt(obj, "data_order", lambda l: _each(l, lambda n: _int(n, "uint32"))),
    )


def container_to_json(c: PersistenceContainer) -> dict:
    return {
        "version": c.version,
        "actors": [{"unique_id": a.unique_id, "transform": _transform_to_json(a.transform),
                    "archive": archive_to_json(a.archive)} for a in c.actors],
        "destroyed": list(c.destroyed),
        "dynamic": [{"unique_id": d.unique_id, "transform": _transform_to_json(d.transform),
                     "class_path": list(d.class_path)} for d in c.dynamic],
    }


def container_from_json(v: Any) -> PersistenceContainer:
    obj = _obj(v, "a container object")

    def actor(a):
        a = _obj(a)
        return Actor(_in(a, "unique_id", lambda n: _int(n, "uint64")), _in(a, "transform", _transform_from_json),
                     _in(a, "archive", archive_from_json))

    def dynamic(d):
        d = _obj(d)
        transform = _in(d, "transform", _transform_from_json)
        if transform is None:
            raise MalformedJsonError("Dynamic actors need a transform").add_path("transform")
        return DynamicActor(_in(d, "unique_id", lambda n: _int(n, "uint64")), transform,
                            _in(d, "class_path", _path_pair))

    return PersistenceContainer(
        version=_in(obj, "version", lambda n: _int(n, "uint32")),
        actors=_in(obj, "actors", lambda l: _each(l, actor)),
        destroyed=_opt(obj, "destroyed", lambda l: _each(l, lambda n: _int(n, "uint64")), []),
        dynamic=_opt(obj, "dynamic", lambda l: _each(l, dynamic), []),
    )


# header

FORMATS = ("gvas", "sav", "bag")

_LEVEL_RANGES = {
    "zlib": (-1, 9),
    "deflate": (-1, 9),
    "gzip": (0, 9),
    "zstd": (-2 ** 17, 22),
}


def _level(method: str) -> Callable[[Any], Optional[int]]:
    def convert(n):
        if n is None:
            return None
        n = _int(n, "int32")
        lo, hi = _LEVEL_RANGES.get(method, (n, n))
        if not lo <= n <= hi:
            raise MalformedJsonError(f"Level {n} is out of range for {method}")
        return n
    return convert


def _one_of(choices: Sequence[str]) -> Callable[[Any], str]:
    def convert(v):
        s = _str(v, False)
        if s not in choices:
            raise MalformedJsonError(f"Expected one of {', '.join(choices)}, got {s!r}")
        return s
    return convert


def _hex(v: Any) -> str:
    s = _str(v, False)
    try:
        bytes.fromhex(s)
    except ValueError as e:
        raise MalformedJsonError(f"Invalid hex string: {e}") from e
    return s


def _compression_from_json(v: Any) -> Optional[dict]:
    if v is None:
        return None
    obj = _obj(v)
    method = _in(obj, "method", _one_of(METHODS))
    return {"method": method, "level": _opt(obj, "level", _level(method))}


def _engine_version_from_json(v: Any) -> dict:
    obj = _obj(v)
    return {
        "major": _in(obj, "major", lambda n: _int(n, "uint16")),
        "minor": _in(obj, "minor", lambda n: _int(n, "uint16")),
        "patch": _in(obj, "patch", lambda n: _int(n, "uint16")),
        "changelist": _in(obj, "changelist", lambda n: _int(n, "uint32")),
        "branch": _in(obj, "branch", _str),
    }


def _custom_version_from_json(v: Any) -> dict:
    obj = _obj(v)
    return {
        "guid": _in(obj, "guid", lambda g: _guid(_str(g, False))),
        "version": _in(obj, "version", lambda n: _int(n, "int32")),
    }


def header_from_json(v: Any) -> Dict[str, Any]:
    """Check the container metadata the writers rely on. Unknown keys are
    kept as they are."""
    header = dict(_obj(v, "a header object"))
    fmt = _in(header, "format", _one_of(FORMATS))
    if fmt == "gvas":
        version = _in(header, "save_game_version", lambda n: _int(n, "int32"))
        _in(header, "file_version_ue4", lambda n: _int(n, "int32"))
        if version >= SAVE_GAME_VERSION_UE5:
            _in(header, "file_version_ue5", lambda n: _int(n, "int32"))
        header["engine_version"] = _in(header, "engine_version", _engine_version_from_json)
        _in(header, "custom_versions_format", lambda n: _int(n, "int32"))
        header["custom_versions"] = _in(header, "custom_versions", lambda l: _each(l, _custom_version_from_json))
        _in(header, "save_game_class_name", _str)
    elif fmt == "sav":
        _in(header, "version", lambda n: _int(n, "uint32"))
        _opt(header, "build_number", lambda n: _int(n, "uint32"))
        _opt(header, "size_field", lambda n: _int(n, "uint32"))
        compressor = _opt(header, "compressor", _one_of(tuple(COMPRESSOR_NAMES)), "zlib")
        if compressor == "custom":
            method = _in(header, "custom_compressor", lambda s: _one_of(METHODS)(_str(s, False).lower()))
        else:
            method = compressor
        chunk_size = _opt(header, "chunk_size", lambda n: _int(n, "uint64"))
        if chunk_size == 0:
            raise MalformedJsonError("Chunk size must be positive").add_path("chunk_size")
        _opt(header, "compression_level", _level(method))
    _opt(header, "trailer", _hex)
    if "compression" in header:
        header["compression"] = _in(header, "compression", _compression_from_json)
    return header


# documents

def to_json(doc: Document) -> Dict[str, Any]:
    out: Dict[str, Any] = {"header": dict(doc.header)}
    if doc.archive is not None:
        out["archive"] = archive_to_json(doc.archive)
    if doc.properties or doc.archive is None:
        out["properties"] = properties_to_json(doc.properties)
    return out


def from_json(obj: Any) -> Document:
    obj = _obj(obj, "a document object")
    return Document(
        header=_in(obj, "header", header_from_json),
        properties=_opt(obj, "properties", properties_from_json, []),
        archive=_opt(obj, "archive", archive_from_json),
    )


def dumps(doc: Document, indent: Optional[int] = 2) -> str:
    return json.dumps(to_json(doc), indent=indent)


def loads(text: Union[str, bytes]) -> Document:
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedJsonError(f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})") from e
    return from_json(obj)
