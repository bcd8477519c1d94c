#!/usr/bin/env python3
"""
Hash40 - Param Field Name Hashing
=================================

Param files never store field names. Struct keys and hash values are stored
as 40-bit "Hash40" values instead:

| Bits  | Meaning                               |
|-------|---------------------------------------|
| 0-31  | CRC-32 (zlib) of the UTF-8 name bytes |
| 32-39 | Length of the name in bytes           |

Reverse lookup is only possible with a label dictionary supplied by the
caller (label -> hash). Several labels can hash to the same value, so the
first label in the dictionary's own order wins. A hash with no matching
label stays unknown; nothing here tries to guess a name.

Raw hashes are written as ``0x`` followed by 10 lowercase hex digits, e.g.
``0x0a1b2c3d4e``.
"""

import re
import zlib
from functools import total_ordering
from typing import Dict, Mapping, Optional, Union


# =============================================================================
# CONSTANTS
# =============================================================================

HASH40_BITS = 40
HASH40_MASK = (1 << HASH40_BITS) - 1

# Matches the raw hash form. Any 0x-prefixed text is treated as a raw hash,
# never as a label, so labels of this shape are unusable.
RAW_HASH_RE = re.compile(r'^0[xX][0-9a-fA-F]{1,10}$')


# =============================================================================
# HASH40 VALUE TYPE
# =============================================================================

@total_ordering
class Hash40:
    """Immutable 40-bit hash value, ordered by numeric value."""

    __slots__ = ('_value',)

    def __init__(self, value: int):
        if isinstance(value, Hash40):
            value = value.value
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Hash40 value must be an int, got {type(value).__name__}")
        if value < 0 or value > HASH40_MASK:
            raise ValueError(f"Hash40 value out of 40-bit range: {value:#x}")
        object.__setattr__(self, '_value', value)

    def __setattr__(self, name, value):
        raise AttributeError("Hash40 is immutable")

    def __reduce__(self):
        return (Hash40, (self._value,))

    @property
    def value(self) -> int:
        return self._value

    @property
    def crc(self) -> int:
        """Low 32 bits: CRC-32 of the hashed name."""
        return self._value & 0xFFFFFFFF

    @property
    def length(self) -> int:
        """High 8 bits: byte length of the hashed name."""
        return self._value >> 32

    def __int__(self):
        return self._value

    def __index__(self):
        return self._value

    def __hash__(self):
        return hash(self._value)

    def __eq__(self, other):
        if isinstance(other, Hash40):
            return self._value == other._value
        return NotImplemented

    def __lt__(self, other):
        if isinstance(other, Hash40):
            return self._value < other._value
        return NotImplemented

    def __str__(self):
        return f"0x{self._value:010x}"

    def __repr__(self):
        return f"Hash40(0x{self._value:010x})"


def hash40(text: str) -> Hash40:
    """
    Compute the Hash40 of a field name.

    Args:
        text: Field name

    Returns:
        Hash40 combining the CRC-32 and byte length of the UTF-8 encoding
    """
    data = text.encode('utf-8')
    if len(data) > 0xFF:
        raise ValueError(f"Name too long for Hash40 ({len(data)} bytes, max 255)")
    return Hash40((len(data) << 32) | zlib.crc32(data))


# =============================================================================
# RAW HASH TEXT
# =============================================================================

def is_raw_hash(text: str) -> bool:
    """True if text is in the raw 0x-hex form rather than a label."""
    return RAW_HASH_RE.match(text) is not None


def has_raw_prefix(text: str) -> bool:
    """True if text claims to be a raw hash (starts with 0x), valid or not."""
    return text[:2].lower() == '0x'


def parse_raw_hash(text: str) -> Hash40:
    if not is_raw_hash(text):
        raise ValueError(f"Not a raw hash: {text!r}")
    return Hash40(int(text, 16))


def to_hash40(key: Union[Hash40, int, str]) -> Hash40:
    """
    Coerce a struct key into a Hash40.

    Strings starting with 0x are parsed as raw hashes (ValueError if they
    are not valid ones), any other string is hashed as a name.
    """
    if isinstance(key, Hash40):
        return key
    if isinstance(key, str):
        if has_raw_prefix(key):
            return parse_raw_hash(key)
        return hash40(key)
    return Hash40(key)


# =============================================================================
# LABEL LOOKUP
# =============================================================================

def label_of(value: Union[Hash40, int], labels: Optional[Mapping[str, Hash40]]) -> Optional[str]:
    """
    Find the label for a hash in a caller-supplied dictionary.

    Args:
        value: Hash to look up
        labels: Mapping of label -> hash (values may be Hash40 or int)

    Returns:
        First matching label in the mapping's iteration order, or None if
        the dictionary does not know the hash
    """
    if not labels:
        return None
    target = int(value)
    for label, hashed in labels.items():
        if int(hashed) == target:
            return label
    return None


def reverse_labels(labels: Optional[Mapping[str, Hash40]]) -> Dict[Hash40, str]:
    """
    Build a hash -> label index for one conversion.

    The first label per hash wins. Labels starting with 0x are skipped since
    they would read back as a raw hash, and so are empty labels,
    labels with surrounding whitespace (hash text is stripped when read) and
    labels holding control characters.
    """
    reverse = {}
    if not labels:
        return reverse
    for label, hashed in labels.items():
        if not label or label != label.strip() or not label.isprintable() or has_raw_prefix(label):
            continue
        key = Hash40(int(hashed))
        if key not in reverse:
            reverse[key] = label
    return reverse


def parse_labels(text: str) -> Dict[str, Hash40]:
    """
    Parse a label list.

    Format: one ``hash,label`` pair per line, hash in 0x-hex form. Blank
    lines and lines starting with '#' are ignored.

    Returns:
        Dictionary of label -> Hash40, in file order
    """
    labels = {}
    for line_num, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        hash_text, sep, label = line.partition(',')
        hash_text = hash_text.strip()
        label = label.strip()
        if not sep or not label or not is_raw_hash(hash_text):
            raise ValueError(f"Invalid label entry on line {line_num}: {line!r}")
        labels.setdefault(label, parse_raw_hash(hash_text))
    return labels
