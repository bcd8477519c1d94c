#!/usr/bin/env python3
"""
Param Interning Pools
=====================

Deduplicated tables built while serializing a param tree. A fresh pair of
pools is created for every serialize call.

HashPool:
    Every struct key and hash value in the tree, stored once. Sorted in
    ascending order before any bytes are written, so struct entry tables
    sorted by hash are also sorted by hash index. Hash 0 is always present
    at index 0.

RefPool (reference table):
    Strings (null-terminated UTF-8) and struct entry tables
    ((u32 hash index, u32 offset) pairs), stored once each in first-seen
    order and addressed by byte offset from the start of the table.
"""

import bisect
import struct
from typing import Dict, Iterator, List, Sequence, Tuple

from prc_hash40 import Hash40


class HashPool:
    """Sorted, deduplicated hash table"""

    def __init__(self):
        self._hashes = {Hash40(0)}
        self._sorted: List[Hash40] = []
        self._finalized = False

    def add(self, value: Hash40):
        """Register a hash. Registering the same hash again has no effect."""
        if self._finalized:
            raise RuntimeError("HashPool is finalized")
        self._hashes.add(value)

    def finalize(self):
        """Fix the table order (ascending). Indices are valid afterwards."""
        if not self._finalized:
            self._sorted = sorted(self._hashes)
            self._finalized = True

    def index_of(self, value: Hash40) -> int:
        if not self._finalized:
            raise RuntimeError("HashPool must be finalized before indices are assigned")
        index = bisect.bisect_left(self._sorted, value)
        if index == len(self._sorted) or self._sorted[index] != value:
            raise KeyError(value)
        return index

    def __len__(self):
        return len(self._hashes)

    def __iter__(self) -> Iterator[Hash40]:
        self.finalize()
        return iter(self._sorted)

    def to_bytes(self) -> bytes:
        self.finalize()
        return b''.join(struct.pack('<Q', int(value)) for value in self._sorted)


class RefPool:
    """Reference table of strings and struct entry tables"""

    def __init__(self):
        self._data = bytearray()
        # Strings and tables are keyed separately so they never share an entry
        self._offsets: Dict[Tuple[str, object], int] = {}

    def _add(self, key, encoded: bytes) -> int:
        offset = self._offsets.get(key)
        if offset is None:
            offset = len(self._data)
            self._offsets[key] = offset
            self._data.extend(encoded)
        return offset

    def add_string(self, text: str) -> int:
        """
        Register a string.

        Returns:
            Byte offset of the string within the reference table
        """
        return self._add(('string', text), text.encode('utf-8') + b'\x00')

    def add_table(self, entries: Sequence[Tuple[int, int]]) -> int:
        """
        Register a struct entry table.

        Args:
            entries: (hash index, child offset) pairs, in ascending hash order

        Returns:
            Byte offset of the table within the reference table
        """
        entries = tuple(entries)
        encoded = b''.join(struct.pack('<II', hash_index, offset) for hash_index, offset in entries)
        return self._add(('table', entries), encoded)

    def __len__(self):
        return len(self._data)

    def to_bytes(self) -> bytes:
        return bytes(self._data)
