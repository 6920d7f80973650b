import logging
from abc import ABC, abstractmethod
from typing import *

from .cursor import Reader, Writer
from .document import FName
from .errors import SaveFormatError

logger = logging.getLogger(__name__)

HAS_NUMBER = 0x8000


class NameCodec(ABC):
    @abstractmethod
    def read(self, reader: Reader) -> FName:
        pass

    @abstractmethod
    def write(self, writer: Writer, name: FName) -> None:
        pass


class InlineNames(NameCodec):
    """Names written in place as FStrings (plain GVAS saves)."""

    def read(self, reader: Reader) -> FName:
        return FName(reader.read_fstring())

    def write(self, writer: Writer, name: FName) -> None:
        if name.number is not None:
            raise SaveFormatError(f"Inline names cannot carry a number: {name}", writer.position)
        writer.write_fstring(name.value)


class NameTable(NameCodec):
    """Names written as u16 indices into a table stored at the end of an
    archive. Bit 15 of the index flags a following u32 number."""

    def __init__(self, names: Optional[List[Optional[str]]] = None):
        self.names: List[Optional[str]] = list(names or [])
        self._index: Dict[Optional[str], int] = {}
        for i, n in enumerate(self.names):
            self._index.setdefault(n, i)

    def __len__(self):
        return len(self.names)

    @classmethod
    def from_reader(cls, reader: Reader) -> 'NameTable':
        count = reader.read_u32()
        return cls([reader.read_fstring() for _ in range(count)])

    def to_writer(self, writer: Writer) -> None:
        writer.write_u32(len(self.names))
        for n in self.names:
            writer.write_fstring(n)

    def read(self, reader: Reader) -> FName:
        at = reader.position
        index = reader.read_u16()
        number = None
        if index & HAS_NUMBER:
            index &= ~HAS_NUMBER
            number = reader.read_u32()
        if index >= len(self.names):
            raise SaveFormatError(f"Name index {index} outside name table of {len(self.names)}", at)
        value = self.names[index]
        if self._index[value] != index:
            return FName(value, number, index)
        return FName(value, number)

    def lookup(self, value: Optional[str]) -> int:
        index = self._index.get(value)
        if index is None:
            index = len(self.names)
            if index >= HAS_NUMBER:
                raise SaveFormatError(f"Name table is full, cannot add {value!r}")
            self.names.append(value)
            self._index[value] = index
            logger.debug("added name %r to table at %d", value, index)
        return index

    def write(self, writer: Writer, name: FName) -> None:
        index = name.table_index
        if index is None or index >= len(self.names) or self.names[index] != name.value:
            index = self.lookup(name.value)
        if name.number is None:
            writer.write_u16(index)
        else:
            writer.write_u16(index | HAS_NUMBER)
            writer.write_u32(name.number)
