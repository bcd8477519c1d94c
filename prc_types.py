#!/usr/bin/env python3
"""
Param Node Model
================

In-memory tree of typed param values shared by the binary parser, the
serializer and the XML bridge.

Node Types:
----------
| Tag | ParamType | Python class | Python value        |
|-----|-----------|--------------|---------------------|
| 1   | BOOL      | ParamValue   | bool                |
| 2   | I8        | ParamValue   | int (-128..127)     |
| 3   | U8        | ParamValue   | int (0..255)        |
| 4   | I16       | ParamValue   | int                 |
| 5   | U16       | ParamValue   | int                 |
| 6   | I32       | ParamValue   | int                 |
| 7   | U32       | ParamValue   | int                 |
| 8   | FLOAT     | ParamValue   | float (binary32)    |
| 9   | HASH      | ParamValue   | Hash40              |
| 10  | STRING    | ParamValue   | str                 |
| 11  | LIST      | ParamList    | ordered children    |
| 12  | STRUCT    | ParamStruct  | Hash40 -> child     |

Ownership:
---------
Scalars are immutable and can be shared. A container belongs to at most one
parent container at a time: insert it once, remove it (or copy() it) before
inserting it elsewhere. This keeps the tree free of cycles and shared
mutable sub-trees.
"""

import re
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from prc_hash40 import Hash40, to_hash40


# =============================================================================
# Errors
# =============================================================================

class ParamError(ValueError):
    """Base class for all param format errors."""


class ParamTypeError(ParamError, TypeError):
    """A node or value does not have the expected param type."""


def format_path(path: Sequence[Union[Hash40, int]]) -> str:
    """Render a node path like root.0x0012345678[3]"""
    parts = ['root']
    for part in path:
        if isinstance(part, Hash40):
            parts.append(f".{part}")
        else:
            parts.append(f"[{part}]")
    return ''.join(parts)


class MalformedInput(ParamError):
    """Binary param data could not be decoded."""

    def __init__(self, message: str, offset: Optional[int] = None,
                 path: Sequence[Union[Hash40, int]] = ()):
        self.message = message
        self.offset = offset
        self.path = tuple(path)
        detail = message
        if offset is not None:
            detail += f" (offset 0x{offset:X})"
        if self.path:
            detail += f" at {format_path(self.path)}"
        super().__init__(detail)


class MalformedText(ParamError):
    """Param XML could not be parsed into a node tree."""

    def __init__(self, message: str, path: Optional[str] = None,
                 line: Optional[int] = None, column: Optional[int] = None,
                 excerpt: Optional[str] = None):
        self.message = message
        self.path = path
        self.line = line
        self.column = column
        self.excerpt = excerpt
        detail = message
        if path:
            detail += f" at {path}"
        if line is not None:
            detail += f" (line {line}, column {column})"
        super().__init__(detail)


# =============================================================================
# Format Constants
# =============================================================================

MAGIC = b'paracobn'

# magic (8) + hash table size (4) + reference table size (4)
HEADER_SIZE = 0x10

# Nesting limit for parsing binary and XML input
MAX_DEPTH = 256


# =============================================================================
# Type Tags
# =============================================================================

class ParamType(IntEnum):
    """Param types, numbered as their on-disk type tags"""
    BOOL = 1
    I8 = 2
    U8 = 3
    I16 = 4
    U16 = 5
    I32 = 6
    U32 = 7
    FLOAT = 8
    HASH = 9
    STRING = 10
    LIST = 11
    STRUCT = 12


# Inclusive ranges for the fixed-width integer types
INT_RANGES = {
    ParamType.I8: (-0x80, 0x7F),
    ParamType.U8: (0, 0xFF),
    ParamType.I16: (-0x8000, 0x7FFF),
    ParamType.U16: (0, 0xFFFF),
    ParamType.I32: (-0x80000000, 0x7FFFFFFF),
    ParamType.U32: (0, 0xFFFFFFFF),
}

# Inline payload after the type tag. HASH is a hash table index and STRING
# an offset into the reference table.
PAYLOAD_FORMATS = {
    ParamType.BOOL: '<B',
    ParamType.I8: '<b',
    ParamType.U8: '<B',
    ParamType.I16: '<h',
    ParamType.U16: '<H',
    ParamType.I32: '<i',
    ParamType.U32: '<I',
    ParamType.FLOAT: '<f',
    ParamType.HASH: '<I',
    ParamType.STRING: '<I',
}


def to_float32(value: float) -> float:
    """Round a Python float to the nearest IEEE-754 binary32 value."""
    try:
        return struct.unpack('<f', struct.pack('<f', value))[0]
    except OverflowError:
        raise ValueError(f"Float out of binary32 range: {value!r}") from None


def float_bits(value: float) -> int:
    return struct.unpack('<I', struct.pack('<f', value))[0]


def float_from_bits(bits: int) -> float:
    return struct.unpack('<f', struct.pack('<I', bits))[0]


# Characters a STRING value cannot hold: NUL ends the stored string, the
# rest cannot be written in an XML 1.0 document.
INVALID_STRING_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]')


# =============================================================================
# Nodes
# =============================================================================

class ParamNode:
    """Common interface of every param node."""

    __slots__ = ()

    type: ParamType

    def unwrap(self, expected: ParamType) -> Any:
        """
        Extract the node's value, checking its type.

        Args:
            expected: Required ParamType

        Returns:
            Python value for scalars, the node itself for containers

        Raises:
            ParamTypeError: if the node has a different type
        """
        if self.type != expected:
            raise ParamTypeError(f"Expected {ParamType(expected).name}, found {self.type.name}")
        return self._unwrapped()

    def try_unwrap(self, expected: ParamType) -> Any:
        """Like unwrap() but returns None on a type mismatch."""
        if self.type != expected:
            return None
        return self._unwrapped()

    def _unwrapped(self):
        return self

    def copy(self) -> 'ParamNode':
        raise NotImplementedError


@dataclass(frozen=True, eq=False)
class ParamValue(ParamNode):
    """Scalar, hash or string node"""
    type: ParamType
    value: Any

    def __post_init__(self):
        try:
            param_type = ParamType(self.type)
        except ValueError:
            raise ParamTypeError(f"Unknown param type: {self.type!r}") from None
        object.__setattr__(self, 'type', param_type)
        object.__setattr__(self, 'value', _normalize(param_type, self.value))

    def _unwrapped(self):
        return self.value

    def copy(self) -> 'ParamValue':
        return self

    def _key(self):
        if self.type == ParamType.FLOAT:
            return (self.type, float_bits(self.value))
        return (self.type, self.value)

    def __eq__(self, other):
        if not isinstance(other, ParamValue):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self):
        return f"ParamValue({self.type.name}, {self.value!r})"


def _normalize(param_type: ParamType, value: Any) -> Any:
    """Validate a Python value for a scalar param type."""
    if param_type == ParamType.BOOL:
        if not isinstance(value, bool):
            raise ParamTypeError(f"BOOL value must be bool, got {type(value).__name__}")
        return value

    if param_type in INT_RANGES:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ParamTypeError(f"{param_type.name} value must be int, got {type(value).__name__}")
        low, high = INT_RANGES[param_type]
        if value < low or value > high:
            raise ValueError(f"{param_type.name} value out of range: {value}")
        return value

    if param_type == ParamType.FLOAT:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ParamTypeError(f"FLOAT value must be float, got {type(value).__name__}")
        return to_float32(float(value))

    if param_type == ParamType.HASH:
        if isinstance(value, bool) or not isinstance(value, (Hash40, int)):
            raise ParamTypeError(f"HASH value must be Hash40, got {type(value).__name__}")
        return Hash40(value)

    if param_type == ParamType.STRING:
        if not isinstance(value, str):
            raise ParamTypeError(f"STRING value must be str, got {type(value).__name__}")
        invalid = INVALID_STRING_RE.search(value)
        if invalid:
            raise ValueError(f"STRING value cannot contain {invalid.group()!r}")
        try:
            value.encode('utf-8')
        except UnicodeEncodeError as e:
            raise ValueError(f"STRING value is not valid UTF-8 text: {e.reason}") from None
        return value

    raise ParamTypeError(f"{param_type.name} is a container, use ParamList or ParamStruct")


class _ParamContainer(ParamNode):
    """Shared ownership bookkeeping for lists and structs"""

    __slots__ = ('_owner',)

    def __init__(self):
        self._owner = None

    @property
    def owner(self) -> Optional['_ParamContainer']:
        return self._owner

    def _adopt(self, node: ParamNode) -> ParamNode:
        if not isinstance(node, ParamNode):
            raise ParamTypeError(f"Expected a param node, got {type(node).__name__}")
        if isinstance(node, _ParamContainer):
            if node._owner is not None:
                raise ValueError("Node already belongs to a container; remove it or copy() it first")
            ancestor = self
            while ancestor is not None:
                if ancestor is node:
                    raise ValueError("Cannot insert a container into itself or one of its descendants")
                ancestor = ancestor._owner
            node._owner = self
        return node

    @staticmethod
    def _release(node: ParamNode) -> ParamNode:
        if isinstance(node, _ParamContainer):
            node._owner = None
        return node

    __hash__ = None


class ParamList(_ParamContainer):
    """Ordered, index-addressed list of nodes. Element types may differ."""

    __slots__ = ('_items',)

    type = ParamType.LIST

    def __init__(self, items: Iterable[ParamNode] = ()):
        super().__init__()
        self._items: List[ParamNode] = []
        for item in items:
            self.append(item)

    def __len__(self):
        return len(self._items)

    def __iter__(self) -> Iterator[ParamNode]:
        return iter(self._items)

    def __getitem__(self, index: int) -> ParamNode:
        return self._items[index]

    def __setitem__(self, index: int, node: ParamNode):
        old = self._items[index]
        if old is node:
            return
        self._items[index] = self._adopt(node)
        self._release(old)

    def __delitem__(self, index: int):
        self.pop(index)

    def append(self, node: ParamNode):
        self._items.append(self._adopt(node))

    def extend(self, nodes: Iterable[ParamNode]):
        for node in nodes:
            self.append(node)

    def insert(self, index: int, node: ParamNode):
        self._items.insert(index, self._adopt(node))

    def pop(self, index: int = -1) -> ParamNode:
        return self._release(self._items.pop(index))

    def remove(self, node: ParamNode):
        """
        Remove the first matching child.

        Containers match by identity, scalars by value (equal scalars are
        interchangeable).
        """
        for index, item in enumerate(self._items):
            if item is node or (isinstance(node, ParamValue) and item == node):
                del self._items[index]
                self._release(item)
                return
        raise ValueError("Node is not in this list")

    def clear(self):
        for item in self._items:
            self._release(item)
        self._items.clear()

    def copy(self) -> 'ParamList':
        return ParamList(item.copy() for item in self._items)

    def __eq__(self, other):
        if not isinstance(other, ParamList):
            return NotImplemented
        return self._items == other._items

    def __repr__(self):
        return f"ParamList({self._items!r})"


StructKey = Union[Hash40, int, str]

_MISSING = object()


class ParamStruct(_ParamContainer):
    """
    Mapping of Hash40 keys to nodes.

    Keys may be given as Hash40, int or str (names are hashed, 0x-hex text is
    parsed). Entries keep insertion order in memory; the serializer always
    writes them in ascending hash order.
    """

    __slots__ = ('_entries',)

    type = ParamType.STRUCT

    def __init__(self, entries: Union[Mapping[StructKey, ParamNode],
                                      Iterable[Tuple[StructKey, ParamNode]], None] = None):
        super().__init__()
        self._entries = {}
        if entries is None:
            return
        if isinstance(entries, Mapping):
            entries = entries.items()
        for key, node in entries:
            self[key] = node

    def __len__(self):
        return len(self._entries)

    def __iter__(self) -> Iterator[Hash40]:
        return iter(self._entries)

    def __contains__(self, key: StructKey) -> bool:
        return to_hash40(key) in self._entries

    def __getitem__(self, key: StructKey) -> ParamNode:
        return self._entries[to_hash40(key)]

    def get(self, key: StructKey, default=None):
        return self._entries.get(to_hash40(key), default)

    def __setitem__(self, key: StructKey, node: ParamNode):
        hashed = to_hash40(key)
        old = self._entries.get(hashed)
        if old is node:
            return
        self._entries[hashed] = self._adopt(node)
        if old is not None:
            self._release(old)

    def insert(self, key: StructKey, node: ParamNode):
        """Insert or replace the entry at key."""
        self[key] = node

    def __delitem__(self, key: StructKey):
        self._release(self._entries.pop(to_hash40(key)))

    def pop(self, key: StructKey, default=_MISSING):
        hashed = to_hash40(key)
        if hashed not in self._entries:
            if default is _MISSING:
                raise KeyError(hashed)
            return default
        return self._release(self._entries.pop(hashed))

    def clear(self):
        for node in self._entries.values():
            self._release(node)
        self._entries.clear()

    def keys(self):
        return self._entries.keys()

    def values(self):
        return self._entries.values()

    def items(self):
        return self._entries.items()

    def sorted_items(self) -> List[Tuple[Hash40, ParamNode]]:
        """Entries in ascending hash order, as stored on disk."""
        return sorted(self._entries.items(), key=lambda item: item[0])

    def to_dict(self) -> dict:
        return dict(self._entries)

    def copy(self) -> 'ParamStruct':
        return ParamStruct((key, node.copy()) for key, node in self._entries.items())

    def __eq__(self, other):
        if not isinstance(other, ParamStruct):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self):
        inner = ', '.join(f"{key}: {node!r}" for key, node in self._entries.items())
        return f"ParamStruct({{{inner}}})"
