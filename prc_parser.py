#!/usr/bin/env python3
"""
Param File Parser
=================

Decodes binary param (.prc) data into a node tree.

File Structure:
--------------
| Offset            | Size      | Content                                  |
|-------------------|-----------|------------------------------------------|
| 0x00              | 8 bytes   | Magic "paracobn"                         |
| 0x08              | 4 bytes   | Hash table size (bytes, 8 per entry)     |
| 0x0C              | 4 bytes   | Reference table size (bytes)             |
| 0x10              | hash_size | Hash table (u64 Hash40 entries)          |
| 0x10 + hash_size  | ref_size  | Reference table (strings, entry tables)  |
| after ref table   | variable  | Param tree, root node first              |

Node Layout:
-----------
Every node starts with a 1-byte type tag (see ParamType).

    scalar:  [tag] [payload]               payload inline, little-endian
    hash:    [tag] [u32 hash index]
    string:  [tag] [u32 reference table offset]
    list:    [tag] [u32 count] [count x u32 offset from list tag]
    struct:  [tag] [u32 count] [u32 reference table offset of entry table]

A struct entry table is count x (u32 hash index, u32 offset from struct tag),
sorted by ascending hash.

Validation:
----------
Every read is bounds checked. Child offsets must point past their parent's
header and each node may be reached only once, so parsing always
terminates. Nesting is limited to max_depth. Any violation raises
MalformedInput with the byte offset and node path; no partial tree is
returned.
"""

import logging
import struct
from typing import List, Tuple, Union

from prc_hash40 import HASH40_MASK, Hash40
from prc_types import (
    HEADER_SIZE, INVALID_STRING_RE, MAGIC, MAX_DEPTH, PAYLOAD_FORMATS,
    MalformedInput, ParamList, ParamNode, ParamStruct, ParamType, ParamValue,
)

logger = logging.getLogger(__name__)

Path = Tuple[Union[Hash40, int], ...]


class ParamParser:
    """Parser for one binary param buffer"""

    def __init__(self, data: bytes, max_depth: int = MAX_DEPTH):
        self.data = bytes(data)
        self.max_depth = max_depth
        self.hashes: List[Hash40] = []
        self.ref_start = 0
        self.ref_end = 0
        self.param_start = 0
        self._visited = set()

    # -------------------------------------------------------------------------
    # Low-level reads
    # -------------------------------------------------------------------------

    def _unpack(self, fmt: str, offset: int, limit: int, what: str, path: Path = ()) -> tuple:
        size = struct.calcsize(fmt)
        if offset < 0 or offset + size > limit:
            raise MalformedInput(f"Truncated {what}", offset, path)
        return struct.unpack_from(fmt, self.data, offset)

    def _read_string(self, ref_offset: int, node_offset: int, path: Path) -> str:
        start = self.ref_start + ref_offset
        if ref_offset >= self.ref_end - self.ref_start:
            raise MalformedInput(f"String offset 0x{ref_offset:X} outside reference table", node_offset, path)
        end = self.data.find(b'\x00', start, self.ref_end)
        if end == -1:
            raise MalformedInput("Unterminated string in reference table", start, path)
        try:
            text = self.data[start:end].decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedInput(f"Invalid UTF-8 string: {e.reason}", start + e.start, path) from None
        invalid = INVALID_STRING_RE.search(text)
        if invalid:
            raise MalformedInput(f"String contains invalid character {invalid.group()!r}",
                                 start + len(text[:invalid.start()].encode('utf-8')), path)
        return text

    def _hash_at(self, index: int, offset: int, path: Path) -> Hash40:
        if index >= len(self.hashes):
            raise MalformedInput(f"Hash index {index} out of range ({len(self.hashes)} hashes)", offset, path)
        return self.hashes[index]

    # -------------------------------------------------------------------------
    # Header and hash table
    # -------------------------------------------------------------------------

    def parse_header(self):
        """Validate the header and load the hash table."""
        data = self.data
        if len(data) < HEADER_SIZE:
            raise MalformedInput(f"Buffer too small for header ({len(data)} bytes)", 0)
        if data[:8] != MAGIC:
            raise MalformedInput(f"Invalid file magic {data[:8]!r}", 0)

        hash_size, ref_size = struct.unpack_from('<II', data, 8)
        if hash_size % 8:
            raise MalformedInput(f"Hash table size {hash_size} is not a multiple of 8", 8)

        self.ref_start = HEADER_SIZE + hash_size
        self.ref_end = self.ref_start + ref_size
        self.param_start = self.ref_end
        if self.param_start >= len(data):
            raise MalformedInput(
                f"Header extents exceed buffer (params at 0x{self.param_start:X}, "
                f"buffer is {len(data)} bytes)", 8)

        self.hashes = []
        for offset in range(HEADER_SIZE, self.ref_start, 8):
            value = struct.unpack_from('<Q', data, offset)[0]
            if value > HASH40_MASK:
                raise MalformedInput(f"Hash table entry 0x{value:X} exceeds 40 bits", offset)
            self.hashes.append(Hash40(value))

        logger.debug("Header: %d hashes, reference table %d bytes, params at 0x%X (%d bytes)",
                     len(self.hashes), ref_size, self.param_start, len(data) - self.param_start)

    # -------------------------------------------------------------------------
    # Param tree
    # -------------------------------------------------------------------------

    def parse(self) -> ParamNode:
        """Parse the whole buffer and return the root node."""
        self.parse_header()
        self._visited = set()
        return self._read_node(self.param_start, (), 0)

    def _read_node(self, offset: int, path: Path, depth: int) -> ParamNode:
        if depth > self.max_depth:
            raise MalformedInput(f"Nesting deeper than {self.max_depth} levels", offset, path)
        if offset in self._visited:
            raise MalformedInput("Node referenced more than once", offset, path)
        self._visited.add(offset)

        end = len(self.data)
        tag = self._unpack('<B', offset, end, "type tag", path)[0]
        try:
            param_type = ParamType(tag)
        except ValueError:
            raise MalformedInput(f"Unknown type tag {tag}", offset, path) from None

        if param_type == ParamType.LIST:
            return self._read_list(offset, path, depth)
        if param_type == ParamType.STRUCT:
            return self._read_struct(offset, path, depth)

        payload = self._unpack(PAYLOAD_FORMATS[param_type], offset + 1, end,
                               f"{param_type.name} value", path)[0]
        if param_type == ParamType.BOOL:
            value = payload != 0
        elif param_type == ParamType.HASH:
            value = self._hash_at(payload, offset, path)
        elif param_type == ParamType.STRING:
            value = self._read_string(payload, offset, path)
        else:
            value = payload
        return ParamValue(param_type, value)

    def _check_child(self, child: int, header_end: int, owner: int, path: Path):
        if child < header_end or child >= len(self.data):
            raise MalformedInput(f"Child offset 0x{child - owner:X} out of range", owner, path)

    def _read_list(self, offset: int, path: Path, depth: int) -> ParamList:
        end = len(self.data)
        count = self._unpack('<I', offset + 1, end, "list length", path)[0]
        header_end = offset + 5 + 4 * count
        if header_end > end:
            raise MalformedInput(f"List offset table ({count} entries) exceeds buffer", offset, path)
        offsets = struct.unpack_from(f'<{count}I', self.data, offset + 5)

        result = ParamList()
        for index, child_offset in enumerate(offsets):
            child = offset + child_offset
            child_path = path + (index,)
            self._check_child(child, header_end, offset, child_path)
            result.append(self._read_node(child, child_path, depth + 1))
        return result

    def _read_struct(self, offset: int, path: Path, depth: int) -> ParamStruct:
        count, ref_offset = self._unpack('<II', offset + 1, len(self.data), "struct header", path)
        header_end = offset + 9
        table_start = self.ref_start + ref_offset
        if table_start + 8 * count > self.ref_end:
            raise MalformedInput(f"Struct entry table ({count} entries) exceeds reference table",
                                 offset, path)
        pairs = struct.unpack_from(f'<{2 * count}I', self.data, table_start)

        result = ParamStruct()
        previous = None
        for i in range(count):
            hash_index, child_offset = pairs[2 * i], pairs[2 * i + 1]
            key = self._hash_at(hash_index, table_start + 8 * i, path)
            if previous is not None and key <= previous:
                raise MalformedInput(
                    f"Struct entries not in ascending hash order ({key} after {previous})",
                    table_start + 8 * i, path)
            previous = key

            child = offset + child_offset
            child_path = path + (key,)
            self._check_child(child, header_end, offset, child_path)
            result[key] = self._read_node(child, child_path, depth + 1)
        return result


def decode(data: bytes, max_depth: int = MAX_DEPTH) -> ParamNode:
    """
    Decode a binary param buffer.

    Args:
        data: Complete file contents
        max_depth: Maximum container nesting accepted

    Returns:
        Root node (a ParamStruct for game files)

    Raises:
        MalformedInput: if the buffer is not a valid param file
    """
    return ParamParser(data, max_depth).parse()
