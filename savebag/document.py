from dataclasses import dataclass, field
from typing import *

__all__ = [
    "FName", "NONE_NAME", "PropertyEntry", "Enum", "Text", "Struct", "Array", "Map", "Set",
    "Variable", "Component", "UObject", "Archive", "Transform", "Actor", "DynamicActor",
    "PersistenceContainer", "Document",
]


@dataclass(frozen=True)
class FName:
    """A name reference. `number` is the optional instance suffix stored
    alongside a name-table index. `table_index` pins the entry to write when
    the name table lists the same string more than once."""
    value: Optional[str]
    number: Optional[int] = None
    table_index: Optional[int] = field(default=None, compare=False)

    def __str__(self):
        value = "" if self.value is None else self.value
        if self.number is None:
            return value
        return f"{value}_{self.number}"


NONE_NAME = FName("None")


@dataclass
class PropertyEntry:
    name: FName
    type_name: str
    value: Any
    index: int = 0
    guid: Optional[str] = None


@dataclass
class Enum:
    enum_type: Optional[FName]
    member: FName


@dataclass
class Text:
    flags: int
    history: int
    namespace: Optional[str] = None
    key: Optional[str] = None
    source: Optional[str] = None
    invariant_flag: int = 0
    invariant: Optional[str] = None
    raw: Optional[bytes] = None


@dataclass
class Struct:
    struct_type: FName
    value: Any
    guid: Optional[str] = None


@dataclass
class Array:
    inner_type: str
    elements: Union[list, bytes]
    struct_type: Optional[FName] = None
    struct_guid: Optional[str] = None
    element_name: Optional[FName] = None
    element_index: int = 0


@dataclass
class Map:
    key_type: str
    value_type: str
    entries: List[Tuple[Any, Any]] = field(default_factory=list)
    removed: list = field(default_factory=list)


@dataclass
class Set:
    inner_type: str
    elements: list = field(default_factory=list)
    removed: list = field(default_factory=list)


@dataclass
class Variable:
    name: FName
    var_type: int
    value: Any = None


@dataclass
class Component:
    """An actor component. `variables` is set for the Variables family of
    components, `properties` for every other key."""
    key: Optional[str]
    variables_name: Optional[FName] = None
    reserved: int = 0
    variables: Optional[List[Variable]] = None
    properties: Optional[List[PropertyEntry]] = None
    trailer: bytes = b''


@dataclass
class UObject:
    was_loaded: bool
    object_path: Optional[str]
    loaded_name: Optional[FName] = None
    outer_id: Optional[int] = None
    properties: Optional[List[PropertyEntry]] = None
    trailer: bytes = b''
    components: Optional[List[Component]] = None


@dataclass
class Archive:
    names: List[Optional[str]]
    objects: List[UObject]
    version: int
    package_version: Optional[Tuple[int, int]] = None
    class_path: Optional[Tuple[Optional[str], Optional[str]]] = None
    data_order: Optional[List[int]] = None


@dataclass
class Transform:
    rotation: Tuple[float, float, float, float]
    position: Tuple[float, float, float]
    scale: Tuple[float, float, float]


@dataclass
class Actor:
    unique_id: int
    transform: Optional[Transform]
    archive: Archive


@dataclass
class DynamicActor:
    unique_id: int
    transform: Transform
    class_path: Tuple[Optional[str], Optional[str]]


@dataclass
class PersistenceContainer:
    version: int
    actors: List[Actor] = field(default_factory=list)
    destroyed: List[int] = field(default_factory=list)
    dynamic: List[DynamicActor] = field(default_factory=list)


@dataclass
class Document:
    """Decoded save file.

    `header` carries the container metadata verbatim (format, versions,
    build number, compression settings). For `sav` files the property tree
    lives inside `archive`; `properties` holds the top-level bag of plain
    GVAS and bare property streams.
    """
    header: Dict[str, Any]
    properties: List[PropertyEntry] = field(default_factory=list)
    archive: Optional[Archive] = None
