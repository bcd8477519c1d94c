#!/usr/bin/env python3
"""
PRC XML Tool - Convert param files to XML and back
==================================================

Disassembles binary param (.prc) files into editable XML and assembles
edited XML back into param files.

Hashes are shown by name when a label file is given. Label files list one
``0xhash,label`` pair per line. Without a label, or for hashes the label
file does not know, the raw form (0x + 10 hex digits) is written instead.

Usage:
------
    python prc_xml_tool.py disasm fighter_param.prc -o fighter_param.xml
    python prc_xml_tool.py asm fighter_param.xml -o fighter_param.prc
    python prc_xml_tool.py -l ParamLabels.csv disasm vl.prc
    python prc_xml_tool.py -l ParamLabels.csv --strict asm vl.xml
"""

import sys
import os
import time
import logging
import argparse

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import prc
from prc_types import MalformedText, ParamError


# =============================================================================
# CONVERSION
# =============================================================================

def to_xml(in_path, out_path, labels=None):
    """
    Convert a param file to XML.

    Returns:
        Number of top-level entries in the root node
    """
    root = prc.open_prc(in_path)
    prc.write_xml(out_path, root, labels)
    return len(root) if isinstance(root, (prc.ParamStruct, prc.ParamList)) else 1


def to_prc(in_path, out_path, labels=None, strict=False):
    """
    Convert an XML file to a param file.

    Returns:
        Size of the written param file in bytes
    """
    root = prc.read_xml(in_path, labels, strict)
    prc.save_prc(out_path, root)
    return os.path.getsize(out_path)


# =============================================================================
# MAIN
# =============================================================================

def build_parser():
    parser = argparse.ArgumentParser(
        description='Convert param (.prc) files to/from XML',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python prc_xml_tool.py disasm vl.prc -o vl.xml
  python prc_xml_tool.py -l ParamLabels.csv asm vl.xml -o vl.prc
        """
    )

    parser.add_argument('-l', '--label', help='Label file (0xhash,label per line)')
    parser.add_argument('-s', '--strict', action='store_true',
                        help='Fail if a label is not in the label file instead of '
                             'hashing it (requires --label)')
    parser.add_argument('-o', '--out', help='The file to output the result to')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='mode', required=True)
    disasm = subparsers.add_parser('disasm', help='Convert from prc to xml')
    disasm.add_argument('file')
    asm = subparsers.add_parser('asm', help='Convert from xml to prc')
    asm.add_argument('file')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.strict and not args.label:
        parser.error('--strict requires --label')

    if args.verbose and not logging.getLogger().handlers:
        logging.basicConfig(level=logging.DEBUG)

    labels = None
    if args.label:
        try:
            labels = prc.load_labels(args.label)
        except (OSError, ValueError) as e:
            print(f"Error loading labels: {e}")
            return 1
        print(f"Loaded {len(labels)} labels from {args.label}")

    start = time.perf_counter()
    try:
        if args.mode == 'disasm':
            out_path = args.out or 'out.xml'
            count = to_xml(args.file, out_path, labels)
            print(f"Converted {args.file} -> {out_path} ({count} entries)")
        else:
            out_path = args.out or 'out.prc'
            size = to_prc(args.file, out_path, labels, args.strict)
            print(f"Converted {args.file} -> {out_path} ({size} bytes)")
    except MalformedText as e:
        print(f"Error in xml-to-prc step:\n{e}", file=sys.stderr)
        if e.excerpt:
            print(e.excerpt, file=sys.stderr)
        return 1
    except (ParamError, OSError) as e:
        step = 'prc-to-xml' if args.mode == 'disasm' else 'xml-to-prc'
        print(f"Error in {step} step:\n{e}", file=sys.stderr)
        return 1

    print(f"Completed in {time.perf_counter() - start:.3f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
