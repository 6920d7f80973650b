from typing import *

__all__ = [
    "SaveFormatError",
    "TruncatedInputError",
    "CorruptChunkError",
    "UnknownPropertyTypeError",
    "LengthMismatchError",
    "MalformedJsonError",
]


class SaveFormatError(Exception):
    """Base class for every codec failure.

    Carries the byte offset where decoding stopped (when known) and the dotted
    property path, which is filled in while the error unwinds through nested
    property bags.
    """

    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.offset = offset
        self._path: List[str] = []

    @property
    def path(self) -> str:
        out = ""
        for part in self._path:
            if part.startswith("["):
                out += part
            else:
                out += f".{part}" if out else part
        return out

    def add_path(self, part: str) -> 'SaveFormatError':
        self._path.insert(0, part)
        return self

    def __str__(self):
        s = self.message
        if self._path:
            s += f" (at {self.path})"
        if self.offset is not None:
            s += f" [offset 0x{self.offset:x}]"
        return s


class TruncatedInputError(SaveFormatError):
    pass


class CorruptChunkError(SaveFormatError):
    pass


class UnknownPropertyTypeError(SaveFormatError):
    def __init__(self, type_name: str, offset: Optional[int] = None):
        super().__init__(f"Unknown property type: {type_name}", offset)
        self.type_name = type_name


class LengthMismatchError(SaveFormatError):
    pass


class MalformedJsonError(SaveFormatError):
    pass
