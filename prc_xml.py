#!/usr/bin/env python3
"""
Param XML Bridge
================

Lossless conversion between param node trees and editable XML.

Element Tags:
------------
| Tag    | ParamType | Content                                        |
|--------|-----------|------------------------------------------------|
| bool   | BOOL      | true / false                                   |
| i8     | I8        | decimal integer                                |
| u8     | U8        | decimal integer                                |
| i16    | I16       | decimal integer                                |
| u16    | U16       | decimal integer                                |
| i32    | I32       | decimal integer                                |
| u32    | U32       | decimal integer                                |
| float  | FLOAT     | shortest decimal that reads back bit-exact     |
| hash   | HASH      | label or raw hash                              |
| string | STRING    | text                                           |
| list   | LIST      | child elements, position is the key            |
| struct | STRUCT    | child elements, each with a hash="..." key     |

Hash Text:
---------
Hashes (struct keys and hash values) are written as their label when the
caller's dictionary has one, otherwise as the raw form 0x + 10 hex digits.
Anything starting with 0x is always read back as a raw hash, and is an
error if it is not a valid one. Any other text is a label, looked up in the
dictionary or hashed with hash40. Reading a document back with the same
dictionary therefore gives the exact same hashes, whether or not the
dictionary knew them.

Example:
-------
    <?xml version="1.0" encoding="utf-8"?>
    <struct>
      <u32 hash="damage">42</u32>
      <list hash="0x0a1b2c3d4e">
        <float>1.5</float>
        <hash>fighter_kind_mario</hash>
      </list>
    </struct>
"""

import logging
import math
import re
import xml.etree.ElementTree as ET
from typing import Mapping, Optional, Union

from prc_hash40 import Hash40, has_raw_prefix, hash40, is_raw_hash, parse_raw_hash, reverse_labels
from prc_types import (
    INT_RANGES, MAX_DEPTH,
    MalformedText, ParamList, ParamNode, ParamStruct, ParamType, ParamValue,
    float_bits, float_from_bits, to_float32,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'

TAG_NAMES = {
    ParamType.BOOL: 'bool',
    ParamType.I8: 'i8',
    ParamType.U8: 'u8',
    ParamType.I16: 'i16',
    ParamType.U16: 'u16',
    ParamType.I32: 'i32',
    ParamType.U32: 'u32',
    ParamType.FLOAT: 'float',
    ParamType.HASH: 'hash',
    ParamType.STRING: 'string',
    ParamType.LIST: 'list',
    ParamType.STRUCT: 'struct',
}

TAG_TYPES = {name: param_type for param_type, name in TAG_NAMES.items()}

HASH_ATTRIBUTE = 'hash'

INT_RE = re.compile(r'^[+-]?[0-9]+$')
FLOAT_RE = re.compile(r'^[+-]?(([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?|inf|infinity|nan)$',
                      re.IGNORECASE)

# NaN other than the default quiet NaN, written with its bit pattern
NAN_BITS_RE = re.compile(r'^nan:0x([0-9a-f]{8})$', re.IGNORECASE)

DEFAULT_NAN_BITS = 0x7FC00000


# =============================================================================
# SCALAR FORMATTING
# =============================================================================

def format_float(value: float) -> str:
    """
    Format a binary32 float as the shortest decimal that reads back to the
    same bits. Always uses '.' as decimal point regardless of locale.

    NaNs other than the default quiet NaN are written as nan:0x + their 8 hex
    digit bit pattern so sign and payload survive.
    """
    if math.isnan(value):
        bits = float_bits(value)
        if bits == DEFAULT_NAN_BITS:
            return 'nan'
        return f'nan:0x{bits:08x}'
    if math.isinf(value):
        return 'inf' if value > 0 else '-inf'

    bits = float_bits(value)
    text = repr(value)
    for precision in range(1, 10):
        candidate = f'{value:.{precision}g}'
        try:
            if float_bits(float(candidate)) == bits:
                text = candidate
                break
        except OverflowError:
            continue
    if INT_RE.match(text):
        text += '.0'
    return text


def format_hash(value: Hash40, reverse: Mapping[Hash40, str]) -> str:
    label = reverse.get(value)
    if label is not None:
        return label
    return str(value)


def format_value(node: ParamValue, reverse: Mapping[Hash40, str]) -> str:
    if node.type == ParamType.BOOL:
        return 'true' if node.value else 'false'
    if node.type == ParamType.FLOAT:
        return format_float(node.value)
    if node.type == ParamType.HASH:
        return format_hash(node.value, reverse)
    if node.type == ParamType.STRING:
        return node.value
    return str(node.value)


# =============================================================================
# NODE -> XML
# =============================================================================

def _to_element(node: ParamNode, reverse: Mapping[Hash40, str],
                key: Optional[Hash40] = None) -> ET.Element:
    element = ET.Element(TAG_NAMES[node.type])
    if key is not None:
        element.set(HASH_ATTRIBUTE, format_hash(key, reverse))

    if isinstance(node, ParamStruct):
        for child_key, child in node.items():
            element.append(_to_element(child, reverse, child_key))
    elif isinstance(node, ParamList):
        for child in node:
            element.append(_to_element(child, reverse))
    else:
        element.text = format_value(node, reverse)
    return element


def to_text(node: ParamNode, labels: Optional[Mapping[str, Hash40]] = None) -> str:
    """
    Convert a node tree to an XML document.

    Args:
        node: Root node
        labels: Optional label -> hash dictionary used to name hashes

    Returns:
        XML text, declaration included
    """
    reverse = reverse_labels(labels)
    root = _to_element(node, reverse)
    ET.indent(root, space='  ')
    # ElementTree writes \r in text as is, and XML parsers read it back as \n
    text = ET.tostring(root, encoding='unicode').replace('\r', '&#13;')
    return XML_DECLARATION + text + '\n'


# =============================================================================
# XML -> NODE
# =============================================================================

def xml_excerpt(text: str, line: int, column: int) -> Optional[str]:
    """
    Show the source line of an XML error with a marker under the column.

        3:     <u32 hash="a">1</u3>
                                ^
    """
    lines = text.splitlines()
    if not 1 <= line <= len(lines):
        return None
    prefix = f"{line}: "
    return f"{prefix}{lines[line - 1]}\n{' ' * (len(prefix) + column)}^"


class ParamXmlReader:
    """Builds a node tree from a parsed XML element tree"""

    def __init__(self, labels: Optional[Mapping[str, Hash40]] = None,
                 strict: bool = False, max_depth: int = MAX_DEPTH):
        self.labels = labels or {}
        self.strict = strict
        self.max_depth = max_depth

    def resolve_hash(self, text: str, path: str) -> Hash40:
        """Turn a label or raw hash into a Hash40."""
        text = text.strip()
        if is_raw_hash(text):
            return parse_raw_hash(text)
        if has_raw_prefix(text):
            raise MalformedText(f"Invalid raw hash {text!r}", path)
        if text in self.labels:
            return Hash40(int(self.labels[text]))
        if self.strict:
            raise MalformedText(f"Unknown label {text!r}", path)
        try:
            return hash40(text)
        except ValueError as e:
            raise MalformedText(str(e), path) from None

    def parse_value(self, param_type: ParamType, text: str, path: str):
        """Parse the text of a scalar element."""
        if param_type == ParamType.STRING:
            return text

        stripped = text.strip()
        if param_type == ParamType.BOOL:
            if stripped == 'true':
                return True
            if stripped == 'false':
                return False
        elif param_type in INT_RANGES:
            if INT_RE.match(stripped):
                value = int(stripped)
                low, high = INT_RANGES[param_type]
                if low <= value <= high:
                    return value
                raise MalformedText(f"{TAG_NAMES[param_type]} value {value} out of range", path)
        elif param_type == ParamType.FLOAT:
            nan_bits = NAN_BITS_RE.match(stripped)
            if nan_bits:
                bits = int(nan_bits.group(1), 16)
                if (bits & 0x7F800000) == 0x7F800000 and bits & 0x007FFFFF:
                    return float_from_bits(bits)
                raise MalformedText(f"{stripped!r} is not a NaN bit pattern", path)
            if FLOAT_RE.match(stripped):
                try:
                    return to_float32(float(stripped))
                except ValueError as e:
                    raise MalformedText(str(e), path) from None
        elif param_type == ParamType.HASH:
            return self.resolve_hash(stripped, path)

        raise MalformedText(f"Cannot parse {stripped!r} as {TAG_NAMES[param_type]}", path)

    def read(self, element: ET.Element, path: Optional[str] = None, depth: int = 0) -> ParamNode:
        if path is None:
            path = f"/{element.tag}"
        if depth > self.max_depth:
            raise MalformedText(f"Nesting deeper than {self.max_depth} levels", path)

        param_type = TAG_TYPES.get(element.tag)
        if param_type is None:
            raise MalformedText(f"Unknown element <{element.tag}>", path)

        if param_type == ParamType.STRUCT:
            return self._read_struct(element, path, depth)
        if param_type == ParamType.LIST:
            return self._read_list(element, path, depth)

        if len(element):
            raise MalformedText(f"<{element.tag}> cannot contain child elements", path)
        value = self.parse_value(param_type, element.text or '', path)
        try:
            return ParamValue(param_type, value)
        except ValueError as e:
            raise MalformedText(str(e), path) from None

    def _check_container_text(self, element: ET.Element, path: str):
        texts = [element.text] + [child.tail for child in element]
        if any(text and text.strip() for text in texts):
            raise MalformedText(f"Unexpected text inside <{element.tag}>", path)

    def _read_list(self, element: ET.Element, path: str, depth: int) -> ParamList:
        self._check_container_text(element, path)
        result = ParamList()
        for index, child in enumerate(element):
            result.append(self.read(child, f"{path}/{child.tag}[{index}]", depth + 1))
        return result

    def _read_struct(self, element: ET.Element, path: str, depth: int) -> ParamStruct:
        self._check_container_text(element, path)
        result = ParamStruct()
        for index, child in enumerate(element):
            hash_text = child.get(HASH_ATTRIBUTE)
            if hash_text is None:
                raise MalformedText(f"Struct member <{child.tag}> has no hash attribute",
                                    f"{path}/{child.tag}[{index}]")
            child_path = f"{path}/{child.tag}[@hash='{hash_text}']"
            key = self.resolve_hash(hash_text, child_path)
            if key in result:
                raise MalformedText(f"Duplicate struct key {hash_text!r} ({key})", child_path)
            result[key] = self.read(child, child_path, depth + 1)
        return result


def from_text(text: Union[str, bytes], labels: Optional[Mapping[str, Hash40]] = None,
              strict: bool = False, max_depth: int = MAX_DEPTH) -> ParamNode:
    """
    Parse an XML document into a node tree.

    Args:
        text: XML document
        labels: Optional label -> hash dictionary
        strict: Reject labels missing from the dictionary instead of hashing them
        max_depth: Maximum container nesting accepted

    Raises:
        MalformedText: on XML syntax errors or anything that is not a valid
            param document
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        line, column = e.position
        source = text.decode('utf-8', errors='replace') if isinstance(text, bytes) else text
        message = str(e).rsplit(": line", 1)[0]
        raise MalformedText(f"Invalid XML: {message}", line=line, column=column,
                            excerpt=xml_excerpt(source, line, column)) from None
    node = ParamXmlReader(labels, strict, max_depth).read(root)
    logger.debug("Parsed <%s> document", root.tag)
    return node
