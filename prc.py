#!/usr/bin/env python3
"""
PRC - Param File Codec
======================

Public entry points for reading and writing param (.prc) files and their
XML form.

    import prc

    root = prc.decode(data)                 # bytes -> node tree
    root["damage"] = prc.ParamValue(prc.ParamType.U32, 42)
    data = prc.encode(root)                 # node tree -> bytes

    labels = prc.load_labels("ParamLabels.csv")
    text = prc.to_text(root, labels)        # node tree -> XML
    root = prc.from_text(text, labels)      # XML -> node tree

Everything works on in-memory data. The open/save/read/write helpers below
are thin file wrappers for scripts.
"""

from typing import Mapping, Optional

from prc_hash40 import Hash40, hash40, label_of, parse_labels, to_hash40
from prc_parser import ParamParser, decode
from prc_serializer import ParamSerializer, encode
from prc_types import (
    MAX_DEPTH,
    MalformedInput, MalformedText, ParamError, ParamList, ParamNode,
    ParamStruct, ParamType, ParamTypeError, ParamValue,
)
from prc_xml import from_text, to_text

__all__ = [
    'Hash40', 'hash40', 'label_of', 'parse_labels', 'to_hash40',
    'ParamError', 'ParamTypeError', 'MalformedInput', 'MalformedText',
    'ParamNode', 'ParamType', 'ParamValue', 'ParamList', 'ParamStruct',
    'ParamParser', 'ParamSerializer',
    'decode', 'encode', 'to_text', 'from_text',
    'open_prc', 'save_prc', 'read_xml', 'write_xml', 'load_labels',
]


def open_prc(path: str, max_depth: int = MAX_DEPTH) -> ParamNode:
    """Read and decode a param file."""
    with open(path, 'rb') as f:
        return decode(f.read(), max_depth)


def save_prc(path: str, root: ParamNode):
    """Encode a node tree and write it as a param file."""
    data = encode(root)
    with open(path, 'wb') as f:
        f.write(data)


def read_xml(path: str, labels: Optional[Mapping[str, Hash40]] = None,
             strict: bool = False) -> ParamNode:
    with open(path, 'rb') as f:
        return from_text(f.read(), labels, strict)


def write_xml(path: str, root: ParamNode, labels: Optional[Mapping[str, Hash40]] = None):
    text = to_text(root, labels)
    with open(path, 'w', encoding='utf-8', newline='\n') as f:
        f.write(text)


def load_labels(path: str):
    """
    Load a label file (one ``0xhash,label`` pair per line).

    Returns:
        Dictionary of label -> Hash40
    """
    with open(path, 'r', encoding='utf-8') as f:
        return parse_labels(f.read())
