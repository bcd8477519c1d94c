#!/usr/bin/env python3
"""
Param File Serializer
=====================

Rebuilds binary param (.prc) data from a node tree. See prc_parser.py for
the file layout.

Serialization runs in two passes:

1. Walk the tree, register every struct key and hash value with the hash
   pool, and compute the byte size of every node bottom-up. Sizes are needed
   first because a container's offset table is written before its children.
2. Finalize the hash pool (ascending order), then emit the tree depth-first.
   Struct entries are written in ascending hash order regardless of the
   order they were inserted in, and each struct's entry table goes into the
   reference table just before its children are written.

The output is header + hash table + reference table + param tree.
Serializing the same tree always produces the same bytes.
"""

import logging
import struct
from typing import Dict

from prc_pool import HashPool, RefPool
from prc_types import (
    MAGIC, PAYLOAD_FORMATS,
    ParamList, ParamNode, ParamStruct, ParamType, ParamTypeError, ParamValue,
)

logger = logging.getLogger(__name__)

# Tag byte + inline payload
SCALAR_SIZES = {param_type: 1 + struct.calcsize(fmt) for param_type, fmt in PAYLOAD_FORMATS.items()}

LIST_HEADER_SIZE = 5     # tag + u32 count (offset table follows)
STRUCT_HEADER_SIZE = 9   # tag + u32 count + u32 entry table offset


class ParamSerializer:
    """Serializer for one param tree. Pools are local to the instance."""

    def __init__(self):
        self.hash_pool = HashPool()
        self.ref_pool = RefPool()
        self._sizes: Dict[int, int] = {}
        self._params = bytearray()

    # -------------------------------------------------------------------------
    # Pass 1: hashes and sizes
    # -------------------------------------------------------------------------

    def _collect(self, node: ParamNode) -> int:
        """Register hashes below node and return its serialized size."""
        if isinstance(node, ParamValue):
            if node.type == ParamType.HASH:
                self.hash_pool.add(node.value)
            return SCALAR_SIZES[node.type]

        if isinstance(node, ParamList):
            size = LIST_HEADER_SIZE + 4 * len(node)
            for child in node:
                size += self._collect(child)
        elif isinstance(node, ParamStruct):
            size = STRUCT_HEADER_SIZE
            for key, child in node.items():
                self.hash_pool.add(key)
                size += self._collect(child)
        else:
            raise ParamTypeError(f"Cannot serialize {type(node).__name__}")

        self._sizes[id(node)] = size
        return size

    def _size_of(self, node: ParamNode) -> int:
        if isinstance(node, ParamValue):
            return SCALAR_SIZES[node.type]
        return self._sizes[id(node)]

    # -------------------------------------------------------------------------
    # Pass 2: emission
    # -------------------------------------------------------------------------

    def _write_node(self, node: ParamNode):
        out = self._params
        if isinstance(node, ParamList):
            self._write_list(node)
        elif isinstance(node, ParamStruct):
            self._write_struct(node)
        elif node.type == ParamType.BOOL:
            out += struct.pack('<BB', node.type, 1 if node.value else 0)
        elif node.type == ParamType.HASH:
            out += struct.pack('<BI', node.type, self.hash_pool.index_of(node.value))
        elif node.type == ParamType.STRING:
            out += struct.pack('<BI', node.type, self.ref_pool.add_string(node.value))
        else:
            out += struct.pack('<B', node.type) + struct.pack(PAYLOAD_FORMATS[node.type], node.value)

    def _write_list(self, node: ParamList):
        offsets = []
        cursor = LIST_HEADER_SIZE + 4 * len(node)
        for child in node:
            offsets.append(cursor)
            cursor += self._size_of(child)

        self._params += struct.pack(f'<BI{len(offsets)}I', ParamType.LIST, len(offsets), *offsets)
        for child in node:
            self._write_node(child)

    def _write_struct(self, node: ParamStruct):
        items = node.sorted_items()
        entries = []
        cursor = STRUCT_HEADER_SIZE
        for key, child in items:
            entries.append((self.hash_pool.index_of(key), cursor))
            cursor += self._size_of(child)

        table_offset = self.ref_pool.add_table(entries)
        self._params += struct.pack('<BII', ParamType.STRUCT, len(items), table_offset)
        for _, child in items:
            self._write_node(child)

    # -------------------------------------------------------------------------
    # File assembly
    # -------------------------------------------------------------------------

    def serialize(self, root: ParamNode) -> bytes:
        """Serialize a complete tree, header included."""
        total = self._collect(root)
        self.hash_pool.finalize()
        self._write_node(root)

        hash_table = self.hash_pool.to_bytes()
        ref_table = self.ref_pool.to_bytes()
        logger.debug("Serialized %d hashes, reference table %d bytes, params %d bytes",
                     len(self.hash_pool), len(ref_table), total)

        header = MAGIC + struct.pack('<II', len(hash_table), len(ref_table))
        return header + hash_table + ref_table + bytes(self._params)


def encode(root: ParamNode) -> bytes:
    """
    Encode a node tree as binary param data.

    Args:
        root: Root node (game files use a ParamStruct root)

    Returns:
        Complete file contents
    """
    return ParamSerializer().serialize(root)
