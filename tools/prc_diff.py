#!/usr/bin/env python3
"""
PRC Diff - Compare two param files
==================================

Walks two param trees side by side and reports every difference as a JSON
record:

| change       | Meaning                                        |
|--------------|------------------------------------------------|
| added        | Entry only present in the second file          |
| removed      | Entry only present in the first file           |
| changed      | Same type, different value                     |
| type_changed | Same position, different param type            |

Struct entries are matched by hash, list entries by position.

Usage:
------
    python prc_diff.py old.prc new.prc                 # Report to stdout
    python prc_diff.py old.prc new.prc -o diff.json    # Report to file
    python prc_diff.py old.prc new.prc -l ParamLabels.csv
"""

import sys
import os
import json
import argparse

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import prc
from prc_hash40 import Hash40, reverse_labels
from prc_types import ParamList, ParamStruct, ParamValue
from prc_xml import format_value


# =============================================================================
# DIFF
# =============================================================================

def _describe(node, reverse):
    """JSON-friendly rendering of a node for the report"""
    if isinstance(node, ParamValue):
        if isinstance(node.value, (bool, int)):
            return node.value
        return format_value(node, reverse)
    return f"<{node.type.name.lower()} of {len(node)}>"


def _render_path(path, reverse):
    parts = ['root']
    for part in path:
        if isinstance(part, Hash40):
            parts.append(f".{reverse.get(part, str(part))}")
        else:
            parts.append(f"[{part}]")
    return ''.join(parts)


def diff_params(a, b, labels=None):
    """
    Compare two node trees.

    Args:
        a: Old tree
        b: New tree
        labels: Optional label -> hash dictionary for readable paths

    Returns:
        List of {"path", "change", "old", "new"} records, in tree order
    """
    reverse = reverse_labels(labels)
    records = []

    def record(path, change, old, new):
        records.append({
            'path': _render_path(path, reverse),
            'change': change,
            'old': None if old is None else _describe(old, reverse),
            'new': None if new is None else _describe(new, reverse),
        })

    def walk(old, new, path):
        if old.type != new.type:
            records.append({
                'path': _render_path(path, reverse),
                'change': 'type_changed',
                'old': old.type.name.lower(),
                'new': new.type.name.lower(),
            })
        elif isinstance(old, ParamStruct):
            for key, child in old.sorted_items():
                if key in new:
                    walk(child, new[key], path + (key,))
                else:
                    record(path + (key,), 'removed', child, None)
            for key, child in new.sorted_items():
                if key not in old:
                    record(path + (key,), 'added', None, child)
        elif isinstance(old, ParamList):
            for index in range(max(len(old), len(new))):
                if index >= len(new):
                    record(path + (index,), 'removed', old[index], None)
                elif index >= len(old):
                    record(path + (index,), 'added', None, new[index])
                else:
                    walk(old[index], new[index], path + (index,))
        elif old != new:
            record(path, 'changed', old, new)

    walk(a, b, ())
    return records


# =============================================================================
# MAIN
# =============================================================================

def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Diff two param (.prc) files',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python prc_diff.py old.prc new.prc -o diff.json
  python prc_diff.py old.prc new.prc -l ParamLabels.csv
        """
    )

    parser.add_argument('a', help='Old param file')
    parser.add_argument('b', help='New param file')
    parser.add_argument('-o', '--out', help='Write the JSON report here instead of stdout')
    parser.add_argument('-l', '--label', help='Label file (0xhash,label per line)')

    args = parser.parse_args(argv)

    try:
        labels = prc.load_labels(args.label) if args.label else None
        records = diff_params(prc.open_prc(args.a), prc.open_prc(args.b), labels)
    except (ValueError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    report = json.dumps(records, indent=2)
    if args.out:
        with open(args.out, 'w') as f:
            f.write(report + '\n')
        print(f"{len(records)} differences written to {args.out}")
    else:
        print(report)

    return 0


if __name__ == "__main__":
    sys.exit(main())
